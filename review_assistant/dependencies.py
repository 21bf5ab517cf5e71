"""
Shared dependencies for dependency injection.

This module provides the process-wide collaborators FastAPI routes depend
on: the conversation store, the completion client and the session
dispatcher that owns one review agent per session.
"""

from functools import lru_cache

from review_assistant.agents.dispatcher import SessionDispatcher
from review_assistant.agents.reviewer import ReviewAgent
from review_assistant.config import settings
from review_assistant.llm.model import CompletionClient, get_completion_client
from review_assistant.review.parser import ResponseParser
from review_assistant.storage.repository import ConversationStore, SQLiteConversationStore
from review_assistant.storage.s3 import ReviewArchive


@lru_cache
def get_conversation_store() -> ConversationStore:
    """
    Provides the conversation store.

    Returns:
        ConversationStore: SQLite store at ``DATABASE_PATH``.
    """
    return SQLiteConversationStore(
        db_path=settings.DATABASE_PATH,
        timeout=settings.STORAGE_TIMEOUT_SECONDS,
    )


@lru_cache
def get_llm_client() -> CompletionClient:
    """
    Provides the completion client based on configuration.

    Returns:
        CompletionClient: Anthropic or OpenAI client.
    """
    return get_completion_client(settings)


@lru_cache
def get_review_archive() -> ReviewArchive:
    return ReviewArchive(settings)


@lru_cache
def get_dispatcher() -> SessionDispatcher:
    """
    Provides the session dispatcher.

    Agents share the store, client, parser and archive; each session gets
    its own agent instance.
    """
    store = get_conversation_store()
    llm_client = get_llm_client()
    archive = get_review_archive()
    parser = ResponseParser()

    def build_agent(session_id: str) -> ReviewAgent:
        return ReviewAgent(
            session_id=session_id,
            settings=settings,
            store=store,
            llm_client=llm_client,
            parser=parser,
            archive=archive,
        )

    return SessionDispatcher(build_agent)

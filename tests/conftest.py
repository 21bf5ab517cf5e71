"""Shared fixtures for the test suite."""

from unittest.mock import AsyncMock, MagicMock

import pytest

from review_assistant.agents.reviewer import ReviewAgent
from review_assistant.config import Settings
from review_assistant.llm.model import CompletionClient
from review_assistant.storage.repository import SQLiteConversationStore

SAMPLE_CODE = "def add(a, b):\n    return a + b\nprint(add(1, 2))\nx = None\nx.call()"

STRICT_RESPONSE = """The function works but the final call dereferences None.

Line 5: BUG Calling a method on None raises AttributeError | Fix: assign an object to x before calling
Line 1: STYLE Missing docstring on public function | Fix: add a docstring
"""


@pytest.fixture
def settings(tmp_path):
    """Settings isolated from the environment; one attempt, no backoff."""
    return Settings(
        _env_file=None,
        LLM_PROVIDER="anthropic",
        ANTHROPIC_API_KEY="",
        OPENAI_API_KEY="",
        LLM_MAX_RETRIES=1,
        LLM_TIMEOUT_SECONDS=5,
        DATABASE_PATH=str(tmp_path / "test.db"),
        S3_BUCKET_NAME="",
        SENTRY_DSN="",
    )


@pytest.fixture
def store(settings):
    """Initialized SQLite store in a temporary directory."""
    store = SQLiteConversationStore(settings.DATABASE_PATH)
    store.initialize()
    return store


@pytest.fixture
def llm_client():
    """Completion client mock answering in the strict grammar."""
    client = MagicMock(spec=CompletionClient)
    client.complete = AsyncMock(return_value=STRICT_RESPONSE)
    return client


@pytest.fixture
def agent(settings, store, llm_client):
    return ReviewAgent(
        session_id="session-1",
        settings=settings,
        store=store,
        llm_client=llm_client,
    )

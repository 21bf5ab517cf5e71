"""
Review, chat and session endpoints.

Routes validated requests to the session dispatcher. Review and chat
always answer with a well-formed body; outages show up as degraded
results, not HTTP errors.
"""

import logging
from typing import Optional
from fastapi import APIRouter, Depends, HTTPException, Query, status

from review_assistant.agents.dispatcher import SessionDispatcher
from review_assistant.api.schemas import (
    ChatRequest,
    ChatResponse,
    HistoryResponse,
    ReviewRequest,
    ReviewResponse,
    SessionCreated,
    SessionResponse,
)
from review_assistant.dependencies import get_conversation_store, get_dispatcher
from review_assistant.llm.schemas import Session, new_id
from review_assistant.storage.repository import ConversationStore, StorageError

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post(
    "/review",
    response_model=ReviewResponse,
    summary="Review a code snippet",
    description="Returns categorized, line-anchored suggestions for the submitted code",
)
async def review_code(
    request: ReviewRequest,
    dispatcher: SessionDispatcher = Depends(get_dispatcher),
):
    logger.info(
        "Received review request",
        extra={"session_id": request.session_id, "language": request.language},
    )
    result = await dispatcher.review(
        session_id=request.session_id,
        user_id=request.user_id,
        code=request.code,
        language=request.language,
        context=request.context,
    )
    return ReviewResponse(**result.model_dump())


@router.post(
    "/chat",
    response_model=ChatResponse,
    summary="Ask a follow-up question",
    description="Continues the session's conversation about its review",
)
async def chat(
    request: ChatRequest,
    dispatcher: SessionDispatcher = Depends(get_dispatcher),
):
    result = await dispatcher.chat(
        session_id=request.session_id,
        user_id=request.user_id,
        message=request.message,
        prior_review_context=request.review_context,
    )
    return ChatResponse(**result.model_dump())


@router.post(
    "/session",
    response_model=SessionCreated,
    summary="Create a session",
)
async def create_session(store: ConversationStore = Depends(get_conversation_store)):
    """
    Mint a new session and user id.

    User ids are generated here until authentication exists.
    """
    session = Session(session_id=new_id(), user_id=new_id())
    try:
        await store.create_session(session)
    except StorageError as e:
        logger.error(f"Failed to create session: {e}")
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Session storage unavailable",
        )
    return SessionCreated(session_id=session.session_id, user_id=session.user_id)


async def _load_session(store: ConversationStore, session_id: Optional[str]) -> SessionResponse:
    if not session_id:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Session ID required")

    try:
        session = await store.get_session(session_id)
    except StorageError as e:
        logger.error(f"Failed to load session {session_id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Session storage unavailable",
        )

    if session is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Session not found")
    return SessionResponse(**session.model_dump())


@router.get("/session", response_model=SessionResponse, summary="Look up a session")
async def get_session_by_query(
    session_id: Optional[str] = Query(None, alias="sessionId"),
    store: ConversationStore = Depends(get_conversation_store),
):
    return await _load_session(store, session_id)


@router.get("/session/{session_id}", response_model=SessionResponse, summary="Look up a session")
async def get_session(
    session_id: str,
    store: ConversationStore = Depends(get_conversation_store),
):
    return await _load_session(store, session_id)


@router.get(
    "/session/{session_id}/history",
    response_model=HistoryResponse,
    summary="Conversation history",
    description="Chronological page over the session's conversation log",
)
async def get_history(
    session_id: str,
    limit: int = Query(50, ge=1, le=500),
    offset: int = Query(0, ge=0),
    store: ConversationStore = Depends(get_conversation_store),
):
    await _load_session(store, session_id)
    try:
        messages = await store.load_history(session_id, limit=limit, offset=offset)
    except StorageError as e:
        logger.error(f"Failed to load history for {session_id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Session storage unavailable",
        )
    return HistoryResponse(session_id=session_id, messages=messages, limit=limit, offset=offset)

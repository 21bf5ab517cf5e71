"""
Request and response bodies of the HTTP API.

Loosely-typed JSON from clients is validated and coerced here, before any
request reaches a review agent. Field aliases keep the camelCase wire
names the web client uses.
"""

from datetime import datetime
from typing import List, Optional
from pydantic import BaseModel, ConfigDict, Field, field_validator

from review_assistant.llm.schemas import ConversationMessage, PriorReviewContext, Suggestion


class ApiModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class ReviewRequest(ApiModel):
    """Body of ``POST /api/review``."""

    code: str = Field(..., min_length=1, max_length=200_000)
    language: str = Field(..., min_length=1, max_length=50)
    user_id: str = Field(..., alias="userId", min_length=1)
    session_id: str = Field(..., alias="sessionId", min_length=1)
    context: Optional[str] = Field(None, max_length=2000)

    @field_validator("code")
    @classmethod
    def reject_blank_code(cls, v: str) -> str:
        # Code is kept verbatim; surrounding whitespace shifts line numbers
        if not v.strip():
            raise ValueError("code must not be blank")
        return v

    @field_validator("language", "user_id", "session_id")
    @classmethod
    def strip_identifiers(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("must not be blank")
        return v

    @field_validator("language")
    @classmethod
    def normalize_language(cls, v: str) -> str:
        return v.lower()


class ChatRequest(ApiModel):
    """Body of ``POST /api/chat``."""

    message: str = Field(..., min_length=1, max_length=10_000)
    user_id: str = Field(..., alias="userId", min_length=1)
    session_id: str = Field(..., alias="sessionId", min_length=1)
    review_context: Optional[PriorReviewContext] = Field(None, alias="reviewContext")

    @field_validator("message", "user_id", "session_id")
    @classmethod
    def reject_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("must not be blank")
        return v.strip()


class ReviewResponse(ApiModel):
    review_id: str = Field(..., alias="reviewId")
    suggestions: List[Suggestion]
    summary: str
    confidence: float
    timestamp: datetime
    parse_tier: str = Field(..., alias="parseTier")


class ChatResponse(ApiModel):
    response: str
    persisted: bool


class SessionCreated(ApiModel):
    session_id: str = Field(..., alias="sessionId")
    user_id: str = Field(..., alias="userId")


class SessionResponse(ApiModel):
    session_id: str = Field(..., alias="sessionId")
    user_id: str = Field(..., alias="userId")
    created_at: datetime = Field(..., alias="createdAt")
    last_active: datetime = Field(..., alias="lastActive")


class HistoryResponse(ApiModel):
    session_id: str = Field(..., alias="sessionId")
    messages: List[ConversationMessage]
    limit: int
    offset: int

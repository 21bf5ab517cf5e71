"""
Structured schemas for sessions, conversation turns, reviews and suggestions.

These Pydantic models are the strict data model every layer agrees on:
the HTTP boundary coerces loosely-typed request bodies into them, the
parser emits them and the store persists them.
"""

import hashlib
import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional
from pydantic import BaseModel, Field, field_validator


def utcnow() -> datetime:
    """Timezone-aware current UTC time."""
    return datetime.now(timezone.utc)


def new_id() -> str:
    return str(uuid.uuid4())


def code_fingerprint(code: str) -> str:
    """SHA-256 hex digest identifying a submitted snippet."""
    return hashlib.sha256(code.encode("utf-8", errors="surrogatepass")).hexdigest()


class SuggestionType(str, Enum):
    """Issue categories a suggestion can carry."""
    SECURITY = "security"
    PERFORMANCE = "performance"
    STYLE = "style"
    BUG = "bug"
    OPTIMIZATION = "optimization"


class Severity(str, Enum):
    """Suggestion severity levels, lowest first."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class MessageRole(str, Enum):
    """Author of a conversation turn."""
    USER = "user"
    ASSISTANT = "assistant"


class Session(BaseModel):
    """Unit of conversational continuity."""

    session_id: str
    user_id: str
    created_at: datetime = Field(default_factory=utcnow)
    last_active: datetime = Field(default_factory=utcnow)


class ConversationMessage(BaseModel):
    """One append-only turn of a session's conversation log."""

    id: str = Field(default_factory=new_id)
    session_id: str
    role: MessageRole
    content: str
    timestamp: datetime = Field(default_factory=utcnow)
    code_context: Optional[str] = None


class Suggestion(BaseModel):
    """
    One typed, severity-tagged, optionally line-anchored issue.

    The parser leaves ``id`` and ``review_id`` empty; the review agent
    assigns them once the owning review exists.
    """

    id: Optional[str] = None
    review_id: Optional[str] = None
    type: SuggestionType
    severity: Severity
    line: Optional[int] = Field(None, ge=1)
    column: Optional[int] = Field(None, ge=1)
    message: str
    suggestion: Optional[str] = None
    explanation: str


class ReviewRecord(BaseModel):
    """Persistent record of one analysis pass. Immutable once stored."""

    review_id: str = Field(default_factory=new_id)
    session_id: str
    language: str
    code_hash: str
    summary: str
    confidence: float = Field(..., ge=0.0, le=1.0)
    created_at: datetime = Field(default_factory=utcnow)


class ReviewResult(BaseModel):
    """Response of a review request."""

    review_id: str
    suggestions: List[Suggestion] = Field(..., min_length=1)
    summary: str
    confidence: float = Field(..., ge=0.0, le=1.0)
    timestamp: datetime
    parse_tier: str


class ChatResult(BaseModel):
    """Response of a chat request."""

    response: str
    persisted: bool = True


class PriorReviewContext(BaseModel):
    """Review context a client may attach to a chat message."""

    summary: Optional[str] = None
    language: Optional[str] = None
    code: Optional[str] = None
    suggestions: List[Suggestion] = Field(default_factory=list)

    @field_validator("suggestions", mode="before")
    @classmethod
    def drop_null_suggestions(cls, v):
        if v is None:
            return []
        return v

"""
Repository abstraction for conversation and review persistence.

Provides a high-level interface for storing and retrieving sessions,
conversation turns, reviews and suggestions, abstracting the underlying
storage mechanism. The bundled backend is SQLite; blocking calls run in a
worker thread and every call is bounded by a timeout.
"""

import asyncio
import logging
import sqlite3
import time
from abc import ABC, abstractmethod
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Callable, Iterator, List, Optional, Sequence, Tuple, TypeVar

from review_assistant.llm.schemas import (
    ConversationMessage,
    MessageRole,
    ReviewRecord,
    Session,
    Severity,
    Suggestion,
    SuggestionType,
    utcnow,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

SCHEMA_PATH = Path(__file__).parent / "schema.sql"
TIMESTAMP_FORMAT = "%Y-%m-%dT%H:%M:%S.%f+00:00"


class StorageError(Exception):
    """Base exception for storage errors."""
    pass


class StorageWriteFailure(StorageError):
    """A persistence call failed or timed out."""
    pass


class StorageReadFailure(StorageError):
    """A read call failed or timed out."""
    pass


class DeadlineExceeded(Exception):
    """Raised inside a worker thread when a call outlives its timeout."""
    pass


# Monotonic deadline of the storage call running in the current context
_deadline: ContextVar[Optional[float]] = ContextVar("storage_deadline", default=None)


def to_db_timestamp(value: datetime) -> str:
    """Fixed-width UTC timestamp so string order equals time order."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).strftime(TIMESTAMP_FORMAT)


def from_db_timestamp(value: str) -> datetime:
    return datetime.strptime(value, TIMESTAMP_FORMAT).replace(tzinfo=timezone.utc)


class ConversationStore(ABC):
    """
    Persistence contract consumed by the review agent.

    Pure persistence, no policy: messages are append-only and nothing is
    ever edited or deleted here.
    """

    @abstractmethod
    async def create_session(self, session: Session) -> Session:
        pass

    @abstractmethod
    async def get_session(self, session_id: str) -> Optional[Session]:
        pass

    @abstractmethod
    async def touch_session(self, session_id: str, user_id: str) -> Session:
        """Mark a session active, creating it for ``user_id`` if unknown."""
        pass

    @abstractmethod
    async def append(self, message: ConversationMessage) -> ConversationMessage:
        pass

    @abstractmethod
    async def append_turns(self, messages: Sequence[ConversationMessage]) -> List[ConversationMessage]:
        """Append several messages atomically: all are stored or none."""
        pass

    @abstractmethod
    async def load_recent(self, session_id: str, limit: int) -> List[ConversationMessage]:
        """The most recent ``limit`` messages, oldest first."""
        pass

    @abstractmethod
    async def load_history(
        self, session_id: str, limit: int = 100, offset: int = 0
    ) -> List[ConversationMessage]:
        """Chronological page over the full conversation log."""
        pass

    @abstractmethod
    async def save_review(self, review: ReviewRecord, suggestions: Sequence[Suggestion]) -> None:
        pass

    @abstractmethod
    async def get_review(self, review_id: str) -> Optional[Tuple[ReviewRecord, List[Suggestion]]]:
        pass

    @abstractmethod
    async def latest_review(self, session_id: str) -> Optional[Tuple[ReviewRecord, List[Suggestion]]]:
        pass


class SQLiteConversationStore(ConversationStore):
    """
    SQLite-backed conversation store.

    Usage:
        store = SQLiteConversationStore("review_assistant.db")
        store.initialize()
        await store.append(message)
    """

    def __init__(self, db_path: str, timeout: float = 5.0):
        """
        Initialize store.

        Args:
            db_path: Path to SQLite database file
            timeout: Seconds any single storage call may take
        """
        self.db_path = Path(db_path)
        self.timeout = timeout
        self._initialized = False

    def initialize(self) -> None:
        """Create the database file and apply the schema (idempotent)."""
        if self._initialized:
            return

        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        with self._connect() as conn:
            conn.execute("PRAGMA journal_mode=WAL")
            conn.executescript(SCHEMA_PATH.read_text())

        self._initialized = True
        logger.info(f"Initialized conversation store at {self.db_path}")

    @contextmanager
    def _connect(self) -> Iterator[sqlite3.Connection]:
        """
        One connection per operation; commit on success, roll back on error.

        Inside ``_run`` the call's deadline is enforced here: statements are
        interrupted once it passes and a late transaction is rolled back
        instead of committed.
        """
        deadline = _deadline.get()
        conn = sqlite3.connect(self.db_path, timeout=self.timeout)
        conn.row_factory = sqlite3.Row
        try:
            if deadline is not None:
                conn.set_progress_handler(lambda: int(time.monotonic() > deadline), 1000)
            conn.execute("PRAGMA foreign_keys=ON")
            yield conn
            if deadline is not None and time.monotonic() > deadline:
                raise DeadlineExceeded("deadline passed before commit")
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    async def _run(self, fn: Callable[..., T], *args, write: bool = True) -> T:
        """
        Run a blocking call in a worker thread, bounded by the timeout.

        The thread is always awaited to completion, so a reported failure
        means the transaction did not commit.
        """
        error_cls = StorageWriteFailure if write else StorageReadFailure
        try:
            if not self._initialized:
                await asyncio.to_thread(self.initialize)

            token = _deadline.set(time.monotonic() + self.timeout)
            try:
                # to_thread copies the current context, deadline included
                return await asyncio.to_thread(fn, *args)
            finally:
                _deadline.reset(token)
        except DeadlineExceeded as e:
            raise error_cls(f"{fn.__name__} timed out after {self.timeout}s") from e
        except sqlite3.OperationalError as e:
            if "interrupted" in str(e):
                raise error_cls(f"{fn.__name__} timed out after {self.timeout}s") from e
            raise error_cls(f"{fn.__name__} failed: {e}") from e
        except (sqlite3.Error, OSError, ValueError) as e:
            # ValueError covers text sqlite cannot encode, such as lone surrogates
            raise error_cls(f"{fn.__name__} failed: {e}") from e

    # =========================================================================
    # SESSIONS
    # =========================================================================

    async def create_session(self, session: Session) -> Session:
        await self._run(self._insert_session, session)
        logger.info(f"Created session {session.session_id}")
        return session

    async def get_session(self, session_id: str) -> Optional[Session]:
        return await self._run(self._select_session, session_id, write=False)

    async def touch_session(self, session_id: str, user_id: str) -> Session:
        return await self._run(self._touch_session, session_id, user_id)

    def _insert_session(self, session: Session) -> None:
        with self._connect() as conn:
            conn.execute(
                "INSERT INTO user_sessions (session_id, user_id, created_at, last_active) "
                "VALUES (?, ?, ?, ?)",
                (
                    session.session_id,
                    session.user_id,
                    to_db_timestamp(session.created_at),
                    to_db_timestamp(session.last_active),
                ),
            )

    def _select_session(self, session_id: str) -> Optional[Session]:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM user_sessions WHERE session_id = ?", (session_id,)
            ).fetchone()
        return self._row_to_session(row) if row else None

    def _touch_session(self, session_id: str, user_id: str) -> Session:
        now = to_db_timestamp(utcnow())
        with self._connect() as conn:
            conn.execute(
                "INSERT INTO user_sessions (session_id, user_id, created_at, last_active) "
                "VALUES (?, ?, ?, ?) "
                "ON CONFLICT(session_id) DO UPDATE SET last_active = excluded.last_active",
                (session_id, user_id, now, now),
            )
            row = conn.execute(
                "SELECT * FROM user_sessions WHERE session_id = ?", (session_id,)
            ).fetchone()
        return self._row_to_session(row)

    @staticmethod
    def _row_to_session(row: sqlite3.Row) -> Session:
        return Session(
            session_id=row["session_id"],
            user_id=row["user_id"],
            created_at=from_db_timestamp(row["created_at"]),
            last_active=from_db_timestamp(row["last_active"]),
        )

    # =========================================================================
    # CONVERSATION
    # =========================================================================

    async def append(self, message: ConversationMessage) -> ConversationMessage:
        stored = await self.append_turns([message])
        return stored[0]

    async def append_turns(self, messages: Sequence[ConversationMessage]) -> List[ConversationMessage]:
        return await self._run(self._insert_messages, list(messages))

    async def load_recent(self, session_id: str, limit: int) -> List[ConversationMessage]:
        if limit <= 0:
            return []
        return await self._run(self._select_recent, session_id, limit, write=False)

    async def load_history(
        self, session_id: str, limit: int = 100, offset: int = 0
    ) -> List[ConversationMessage]:
        return await self._run(self._select_history, session_id, limit, offset, write=False)

    def _insert_messages(self, messages: List[ConversationMessage]) -> List[ConversationMessage]:
        stored = []
        with self._connect() as conn:
            latest = {}
            for message in messages:
                if message.session_id not in latest:
                    row = conn.execute(
                        "SELECT MAX(timestamp) AS ts FROM conversation_history WHERE session_id = ?",
                        (message.session_id,),
                    ).fetchone()
                    latest[message.session_id] = from_db_timestamp(row["ts"]) if row["ts"] else None

                # Timestamps are strictly increasing within a session
                timestamp = message.timestamp
                if timestamp.tzinfo is None:
                    timestamp = timestamp.replace(tzinfo=timezone.utc)
                previous = latest[message.session_id]
                if previous is not None and timestamp <= previous:
                    timestamp = previous + timedelta(microseconds=1)
                latest[message.session_id] = timestamp

                message = message.model_copy(update={"timestamp": timestamp})
                conn.execute(
                    "INSERT INTO conversation_history "
                    "(id, session_id, role, content, timestamp, code_context) "
                    "VALUES (?, ?, ?, ?, ?, ?)",
                    (
                        message.id,
                        message.session_id,
                        message.role.value,
                        message.content,
                        to_db_timestamp(timestamp),
                        message.code_context,
                    ),
                )
                stored.append(message)
        return stored

    def _select_recent(self, session_id: str, limit: int) -> List[ConversationMessage]:
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT * FROM conversation_history WHERE session_id = ? "
                "ORDER BY timestamp DESC LIMIT ?",
                (session_id, limit),
            ).fetchall()
        return [self._row_to_message(row) for row in reversed(rows)]

    def _select_history(self, session_id: str, limit: int, offset: int) -> List[ConversationMessage]:
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT * FROM conversation_history WHERE session_id = ? "
                "ORDER BY timestamp ASC LIMIT ? OFFSET ?",
                (session_id, limit, offset),
            ).fetchall()
        return [self._row_to_message(row) for row in rows]

    @staticmethod
    def _row_to_message(row: sqlite3.Row) -> ConversationMessage:
        return ConversationMessage(
            id=row["id"],
            session_id=row["session_id"],
            role=MessageRole(row["role"]),
            content=row["content"],
            timestamp=from_db_timestamp(row["timestamp"]),
            code_context=row["code_context"],
        )

    # =========================================================================
    # REVIEWS
    # =========================================================================

    async def save_review(self, review: ReviewRecord, suggestions: Sequence[Suggestion]) -> None:
        await self._run(self._insert_review, review, list(suggestions))
        logger.info(f"Saved review {review.review_id} with {len(suggestions)} suggestion(s)")

    async def get_review(self, review_id: str) -> Optional[Tuple[ReviewRecord, List[Suggestion]]]:
        return await self._run(self._select_review, review_id, write=False)

    async def latest_review(self, session_id: str) -> Optional[Tuple[ReviewRecord, List[Suggestion]]]:
        return await self._run(self._select_latest_review, session_id, write=False)

    def _insert_review(self, review: ReviewRecord, suggestions: List[Suggestion]) -> None:
        with self._connect() as conn:
            conn.execute(
                "INSERT INTO code_reviews "
                "(review_id, session_id, language, code_hash, review_summary, confidence_score, created_at) "
                "VALUES (?, ?, ?, ?, ?, ?, ?)",
                (
                    review.review_id,
                    review.session_id,
                    review.language,
                    review.code_hash,
                    review.summary,
                    review.confidence,
                    to_db_timestamp(review.created_at),
                ),
            )
            conn.executemany(
                "INSERT INTO code_suggestions "
                "(id, review_id, position, type, severity, line_number, column_number, "
                "message, suggestion, explanation) "
                "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
                [
                    (
                        s.id,
                        review.review_id,
                        position,
                        s.type.value,
                        s.severity.value,
                        s.line,
                        s.column,
                        s.message,
                        s.suggestion,
                        s.explanation,
                    )
                    for position, s in enumerate(suggestions)
                ],
            )

    def _select_review(self, review_id: str) -> Optional[Tuple[ReviewRecord, List[Suggestion]]]:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM code_reviews WHERE review_id = ?", (review_id,)
            ).fetchone()
            if not row:
                return None
            return self._load_review(conn, row)

    def _select_latest_review(self, session_id: str) -> Optional[Tuple[ReviewRecord, List[Suggestion]]]:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM code_reviews WHERE session_id = ? "
                "ORDER BY created_at DESC LIMIT 1",
                (session_id,),
            ).fetchone()
            if not row:
                return None
            return self._load_review(conn, row)

    @staticmethod
    def _load_review(conn: sqlite3.Connection, row: sqlite3.Row) -> Tuple[ReviewRecord, List[Suggestion]]:
        review = ReviewRecord(
            review_id=row["review_id"],
            session_id=row["session_id"],
            language=row["language"],
            code_hash=row["code_hash"],
            summary=row["review_summary"] or "",
            confidence=row["confidence_score"],
            created_at=from_db_timestamp(row["created_at"]),
        )
        suggestion_rows = conn.execute(
            "SELECT * FROM code_suggestions WHERE review_id = ? ORDER BY position",
            (review.review_id,),
        ).fetchall()
        suggestions = [
            Suggestion(
                id=s["id"],
                review_id=s["review_id"],
                type=SuggestionType(s["type"]),
                severity=Severity(s["severity"]),
                line=s["line_number"],
                column=s["column_number"],
                message=s["message"],
                suggestion=s["suggestion"],
                explanation=s["explanation"],
            )
            for s in suggestion_rows
        ]
        return review, suggestions

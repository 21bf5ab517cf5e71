"""
Per-session review agent.

Owns one session's conversation state and orchestrates each request:
loading context, prompting the completion service, parsing the answer and
writing the new conversation turns. Completion and storage failures never
reach the caller; requests degrade to a well-formed, lower-confidence
result instead.
"""

import asyncio
import logging
import time
from enum import Enum
from typing import Any, List, Optional, Sequence

from review_assistant.agents.confidence import DEGRADED_CONFIDENCE, calculate_confidence_score
from review_assistant.config import Settings
from review_assistant.llm.model import CompletionClient, ServiceUnavailable
from review_assistant.llm.prompts import Prompt, build_chat_prompt, build_review_prompt
from review_assistant.llm.schemas import (
    ChatResult,
    ConversationMessage,
    MessageRole,
    PriorReviewContext,
    ReviewRecord,
    ReviewResult,
    Severity,
    Suggestion,
    SuggestionType,
    code_fingerprint,
    new_id,
    utcnow,
)
from review_assistant.observability.errors import ErrorSeverity, capture_exception
from review_assistant.observability.logging import LogContext, add_log_context
from review_assistant.observability.metrics import MetricNames, MetricType, record_metric
from review_assistant.review.formatter import extract_summary
from review_assistant.review.parser import ResponseParser
from review_assistant.storage.repository import ConversationStore, StorageError
from review_assistant.storage.s3 import ReviewArchive

logger = logging.getLogger(__name__)

DEGRADED_SUMMARY = "AI review service is temporarily unavailable."
DEGRADED_MESSAGE = "Unable to generate AI review at this time"
DEGRADED_EXPLANATION = "The AI service is temporarily unavailable. Please try again later."
CHAT_UNAVAILABLE_RESPONSE = (
    "Sorry, the AI service is temporarily unavailable, so I can't answer right now. "
    "Please try again in a moment."
)


class AgentState(str, Enum):
    """Stages of one request handled by the agent."""
    LOADING_CONTEXT = "loading_context"
    PROMPTING = "prompting"
    AWAITING_COMPLETION = "awaiting_completion"
    PARSING = "parsing"
    PERSISTING = "persisting"
    DONE = "done"
    DEGRADED = "degraded"


VALID_TRANSITIONS = {
    AgentState.LOADING_CONTEXT: {AgentState.PROMPTING},
    AgentState.PROMPTING: {AgentState.AWAITING_COMPLETION},
    # Chat answers skip parsing
    AgentState.AWAITING_COMPLETION: {AgentState.PARSING, AgentState.PERSISTING, AgentState.DEGRADED},
    AgentState.PARSING: {AgentState.PERSISTING},
    AgentState.PERSISTING: {AgentState.DONE},
    AgentState.DONE: set(),
    AgentState.DEGRADED: set(),
}


class InvalidTransition(RuntimeError):
    """Raised when the agent attempts a transition the table does not allow."""
    pass


class ReviewAgent:
    """
    Review agent for a single session.

    Not safe for concurrent use: the dispatcher delivers requests for a
    session to its agent one at a time.
    """

    def __init__(
        self,
        session_id: str,
        settings: Settings,
        store: ConversationStore,
        llm_client: CompletionClient,
        parser: Optional[ResponseParser] = None,
        archive: Optional[ReviewArchive] = None,
    ):
        """
        Initialize the agent.

        Args:
            session_id: Session this agent owns
            settings: Application settings
            store: Conversation store
            llm_client: Completion client
            parser: Response parser (default tier pipeline if omitted)
            archive: Optional S3 review archive
        """
        self.session_id = session_id
        self.settings = settings
        self.store = store
        self.llm_client = llm_client
        self.parser = parser or ResponseParser()
        self.archive = archive

        self.state: Optional[AgentState] = None
        self.last_transitions: List[AgentState] = []

    @property
    def completion_timeout(self) -> float:
        """Upper bound for one completion, retries and backoff included."""
        attempts = self.settings.LLM_MAX_RETRIES
        return self.settings.LLM_TIMEOUT_SECONDS * attempts + 10.0 * (attempts - 1)

    # =========================================================================
    # STATE MACHINE
    # =========================================================================

    def _begin(self) -> None:
        self.state = AgentState.LOADING_CONTEXT
        self.last_transitions = [self.state]

    def _transition(self, new_state: AgentState) -> None:
        if new_state not in VALID_TRANSITIONS[self.state]:
            raise InvalidTransition(f"Cannot move from {self.state.value} to {new_state.value}")
        logger.debug(f"State {self.state.value} -> {new_state.value}")
        self.state = new_state
        self.last_transitions.append(new_state)

    # =========================================================================
    # REVIEW
    # =========================================================================

    async def review(
        self,
        code: str,
        language: str,
        user_id: str,
        context: Optional[str] = None,
    ) -> ReviewResult:
        """
        Review a code snippet.

        Args:
            code: Source snippet
            language: Language tag
            user_id: Requesting user
            context: Optional focus-area hint

        Returns:
            ReviewResult with at least one suggestion; confidence is 0.0
            when the completion service was unavailable
        """
        review_id = new_id()

        with LogContext(session_id=self.session_id, review_id=review_id, operation="review"):
            self._begin()
            add_log_context(user_id=user_id, language=language)
            record_metric(MetricNames.REVIEW_STARTED, tags={"language": language})
            logger.info(f"Starting review of {len(code.splitlines())} line(s) of {language} code")

            await self._touch_session(user_id)
            history = await self._load_history()

            self._transition(AgentState.PROMPTING)
            prompt = build_review_prompt(code, language, self.settings, context, history)

            self._transition(AgentState.AWAITING_COMPLETION)
            try:
                raw_text = await self._complete(prompt)
            except ServiceUnavailable as e:
                self._transition(AgentState.DEGRADED)
                logger.warning(f"Review degraded: {e}")
                record_metric(MetricNames.REVIEW_DEGRADED)
                result = self._degraded_review(review_id)
                await self._persist_review(result, code, language)
                return result

            self._transition(AgentState.PARSING)
            outcome = self.parser.parse(raw_text, code)
            add_log_context(parse_tier=outcome.tier)
            record_metric(MetricNames.REVIEW_PARSE_TIER, tags={"tier": outcome.tier})

            suggestions = self._assign_ids(outcome.suggestions, review_id)
            result = ReviewResult(
                review_id=review_id,
                suggestions=suggestions,
                summary=extract_summary(raw_text, suggestions),
                confidence=calculate_confidence_score(outcome.tier, suggestions),
                timestamp=utcnow(),
                parse_tier=outcome.tier,
            )

            self._transition(AgentState.PERSISTING)
            await self._persist_review(result, code, language)
            await self._archive_review(result)

            self._transition(AgentState.DONE)
            record_metric(MetricNames.REVIEW_COMPLETED)
            logger.info(
                f"Review complete: {len(suggestions)} suggestion(s) "
                f"(tier: {outcome.tier}, confidence: {result.confidence:.2f})"
            )
            return result

    def _degraded_review(self, review_id: str) -> ReviewResult:
        suggestion = Suggestion(
            id=new_id(),
            review_id=review_id,
            type=SuggestionType.STYLE,
            severity=Severity.LOW,
            message=DEGRADED_MESSAGE,
            explanation=DEGRADED_EXPLANATION,
        )
        return ReviewResult(
            review_id=review_id,
            suggestions=[suggestion],
            summary=DEGRADED_SUMMARY,
            confidence=DEGRADED_CONFIDENCE,
            timestamp=utcnow(),
            parse_tier=AgentState.DEGRADED.value,
        )

    @staticmethod
    def _assign_ids(suggestions: Sequence[Suggestion], review_id: str) -> List[Suggestion]:
        return [s.model_copy(update={"id": new_id(), "review_id": review_id}) for s in suggestions]

    async def _persist_review(self, result: ReviewResult, code: str, language: str) -> None:
        """Store the review record and the two conversation turns describing it."""
        record = ReviewRecord(
            review_id=result.review_id,
            session_id=self.session_id,
            language=language,
            code_hash=code_fingerprint(code),
            summary=result.summary,
            confidence=result.confidence,
            created_at=result.timestamp,
        )
        await self._store_call(self.store.save_review(record, result.suggestions), "save_review")

        turns = [
            ConversationMessage(
                session_id=self.session_id,
                role=MessageRole.USER,
                content=f"Code review request for {language} code",
                code_context=code,
            ),
            ConversationMessage(
                session_id=self.session_id,
                role=MessageRole.ASSISTANT,
                content=result.summary,
            ),
        ]
        await self._store_call(self.store.append_turns(turns), "append_turns")

    async def _archive_review(self, result: ReviewResult) -> None:
        if self.archive is None or not self.archive.enabled:
            return
        key = await self.archive.upload_review(
            session_id=self.session_id,
            review_id=result.review_id,
            review_data=result.model_dump(mode="json"),
            timestamp=result.timestamp,
        )
        if key:
            record_metric(MetricNames.S3_UPLOAD)

    # =========================================================================
    # CHAT
    # =========================================================================

    async def chat(
        self,
        message: str,
        user_id: str,
        prior_review_context: Optional[PriorReviewContext] = None,
    ) -> ChatResult:
        """
        Answer a follow-up message about the session's review.

        Args:
            message: The user's message
            user_id: Requesting user
            prior_review_context: Review context supplied by the client; the
                session's latest stored review is used when omitted

        Returns:
            ChatResult with the model's raw text; ``persisted`` is False when
            the user and assistant turns could not be stored together
        """
        with LogContext(session_id=self.session_id, operation="chat"):
            self._begin()
            add_log_context(user_id=user_id)

            await self._touch_session(user_id)
            history = await self._load_history()
            review_context = prior_review_context or await self._latest_review_context()

            self._transition(AgentState.PROMPTING)
            prompt = build_chat_prompt(message, self.settings, history, review_context)

            self._transition(AgentState.AWAITING_COMPLETION)
            try:
                response = await self._complete(prompt)
            except ServiceUnavailable as e:
                self._transition(AgentState.DEGRADED)
                logger.warning(f"Chat degraded: {e}")
                record_metric(MetricNames.CHAT_DEGRADED)
                persisted = await self._write_chat_turns(message, CHAT_UNAVAILABLE_RESPONSE)
                return ChatResult(response=CHAT_UNAVAILABLE_RESPONSE, persisted=persisted)

            self._transition(AgentState.PERSISTING)
            persisted = await self._write_chat_turns(message, response)

            self._transition(AgentState.DONE)
            record_metric(MetricNames.CHAT_COMPLETED)
            return ChatResult(response=response, persisted=persisted)

    async def _write_chat_turns(self, message: str, response: str) -> bool:
        """Append the user and assistant turns as one unit."""
        turns = [
            ConversationMessage(session_id=self.session_id, role=MessageRole.USER, content=message),
            ConversationMessage(session_id=self.session_id, role=MessageRole.ASSISTANT, content=response),
        ]
        stored = await self._store_call(self.store.append_turns(turns), "append_turns")
        if stored is None:
            record_metric(MetricNames.CHAT_PERSIST_FAILED)
            logger.error("Chat turns were not persisted; transcript and store differ")
            return False
        return True

    async def _latest_review_context(self) -> Optional[PriorReviewContext]:
        latest = await self._store_call(self.store.latest_review(self.session_id), "latest_review")
        if latest is None:
            return None
        review, suggestions = latest
        return PriorReviewContext(
            summary=review.summary,
            language=review.language,
            suggestions=suggestions,
        )

    # =========================================================================
    # COLLABORATORS
    # =========================================================================

    async def _complete(self, prompt: Prompt) -> str:
        """Call the completion client; every failure becomes ServiceUnavailable."""
        start_time = time.perf_counter()
        try:
            return await asyncio.wait_for(
                self.llm_client.complete(prompt.messages, prompt.max_tokens, prompt.temperature),
                timeout=self.completion_timeout,
            )
        except asyncio.TimeoutError as e:
            record_metric(MetricNames.LLM_ERROR, tags={"reason": "timeout"})
            raise ServiceUnavailable(f"Completion timed out after {self.completion_timeout}s") from e
        except ServiceUnavailable as e:
            record_metric(MetricNames.LLM_ERROR, tags={"reason": "unavailable"})
            capture_exception(e, ErrorSeverity.WARNING, tags={"component": "llm"})
            raise
        except Exception as e:
            record_metric(MetricNames.LLM_ERROR, tags={"reason": type(e).__name__})
            capture_exception(e, tags={"component": "llm"})
            raise ServiceUnavailable(f"Completion failed: {e}") from e
        finally:
            record_metric(
                MetricNames.LLM_RESPONSE_TIME_MS,
                (time.perf_counter() - start_time) * 1000,
                MetricType.TIMER,
            )

    async def _touch_session(self, user_id: str) -> None:
        await self._store_call(self.store.touch_session(self.session_id, user_id), "touch_session")

    async def _load_history(self) -> List[ConversationMessage]:
        history = await self._store_call(
            self.store.load_recent(self.session_id, self.settings.HISTORY_WINDOW),
            "load_recent",
        )
        return history or []

    async def _store_call(self, call, operation: str) -> Optional[Any]:
        """
        Await a storage call, logging and swallowing storage failures.

        Returns None when the call failed.
        """
        try:
            return await call
        except StorageError as e:
            logger.error(f"Storage {operation} failed: {e}")
            record_metric(MetricNames.STORAGE_ERROR, tags={"operation": operation})
            capture_exception(e, ErrorSeverity.WARNING, tags={"component": "storage", "operation": operation})
            return None

"""Tests for the per-session review agent."""

import asyncio
import time
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from review_assistant.agents.reviewer import (
    CHAT_UNAVAILABLE_RESPONSE,
    DEGRADED_SUMMARY,
    AgentState,
    InvalidTransition,
    ReviewAgent,
)
from review_assistant.llm.model import ServiceUnavailable
from review_assistant.llm.schemas import MessageRole, PriorReviewContext, Severity, SuggestionType
from review_assistant.observability import errors
from review_assistant.observability.errors import ErrorTracker
from review_assistant.storage.repository import (
    ConversationStore,
    SQLiteConversationStore,
    StorageWriteFailure,
)

from tests.conftest import SAMPLE_CODE


def sent_messages(llm_client):
    """Messages passed to the most recent completion call."""
    return llm_client.complete.call_args.args[0]


class TestReview:
    """Tests for ReviewAgent.review."""

    @pytest.mark.asyncio
    async def test_review_success(self, agent, store):
        result = await agent.review(SAMPLE_CODE, "python", "u1")

        assert result.parse_tier == "strict"
        assert len(result.suggestions) == 2
        assert result.summary == "The function works but the final call dereferences None."
        assert result.confidence == pytest.approx(0.95)

        bug = result.suggestions[0]
        assert bug.type == SuggestionType.BUG
        assert bug.severity == Severity.HIGH
        assert bug.line == 5
        assert bug.id is not None
        assert all(s.review_id == result.review_id for s in result.suggestions)

        assert agent.state == AgentState.DONE
        assert agent.last_transitions == [
            AgentState.LOADING_CONTEXT,
            AgentState.PROMPTING,
            AgentState.AWAITING_COMPLETION,
            AgentState.PARSING,
            AgentState.PERSISTING,
            AgentState.DONE,
        ]

    @pytest.mark.asyncio
    async def test_review_persists_record_and_turns(self, agent, store):
        result = await agent.review(SAMPLE_CODE, "python", "u1")

        stored, suggestions = await store.get_review(result.review_id)
        assert stored.session_id == "session-1"
        assert len(suggestions) == 2

        history = await store.load_history("session-1")
        assert [m.role for m in history] == [MessageRole.USER, MessageRole.ASSISTANT]
        assert history[0].content == "Code review request for python code"
        assert history[0].code_context == SAMPLE_CODE
        assert history[1].content == result.summary

    @pytest.mark.asyncio
    async def test_review_creates_unknown_session(self, agent, store):
        await agent.review(SAMPLE_CODE, "python", "u1")

        session = await store.get_session("session-1")
        assert session.user_id == "u1"

    @pytest.mark.asyncio
    async def test_review_prompt_carries_history(self, agent, llm_client):
        await agent.review(SAMPLE_CODE, "python", "u1")
        await agent.review("y = 2", "python", "u1", context="naming")

        system, user = sent_messages(llm_client)
        assert "user: Code review request for python code" in system["content"]
        assert "Focus areas: naming" in user["content"]

    @pytest.mark.asyncio
    async def test_review_fallback_tier(self, agent, llm_client):
        llm_client.complete.return_value = "Looks fine."

        result = await agent.review(SAMPLE_CODE, "python", "u1")

        assert result.parse_tier == "fallback"
        assert len(result.suggestions) == 1
        assert 0.0 < result.confidence < 0.5

    @pytest.mark.asyncio
    @pytest.mark.parametrize("text", ["", "  \n  "])
    async def test_empty_completion_uses_fallback_tier(self, agent, llm_client, text):
        """An empty answer is parsed, not treated as an outage."""
        llm_client.complete.return_value = text

        result = await agent.review(SAMPLE_CODE, "python", "u1")

        assert result.parse_tier == "fallback"
        assert result.confidence == pytest.approx(0.3)
        assert len(result.suggestions) == 1
        assert result.summary != DEGRADED_SUMMARY
        assert agent.state == AgentState.DONE

    @pytest.mark.asyncio
    async def test_unencodable_code_is_reviewed(self, agent, store):
        """Code sqlite cannot store still gets a review; persistence is skipped."""
        code = "x = '\ud800'\n"

        result = await agent.review(code, "python", "u1")

        assert result.suggestions
        assert agent.state == AgentState.DONE
        assert await store.load_history("session-1") == []

    @pytest.mark.asyncio
    async def test_review_degraded(self, agent, llm_client, store):
        """An unavailable completion service yields a well-formed degraded review."""
        llm_client.complete.side_effect = ServiceUnavailable("quota exceeded")

        result = await agent.review(SAMPLE_CODE, "python", "u1")

        assert len(result.suggestions) == 1
        assert result.confidence == 0.0
        assert "unavailable" in result.summary
        assert result.summary == DEGRADED_SUMMARY
        assert result.suggestions[0].severity == Severity.LOW
        assert agent.state == AgentState.DEGRADED

        history = await store.load_history("session-1")
        assert len(history) == 2

    @pytest.mark.asyncio
    async def test_unexpected_client_error_degrades(self, agent, llm_client):
        llm_client.complete.side_effect = ValueError("malformed payload")

        result = await agent.review(SAMPLE_CODE, "python", "u1")

        assert result.confidence == 0.0
        assert agent.state == AgentState.DEGRADED

    @pytest.mark.asyncio
    async def test_slow_completion_degrades(self, settings, store, llm_client):
        async def slow(*args, **kwargs):
            await asyncio.sleep(5)
            return "never"

        llm_client.complete.side_effect = slow
        agent = ReviewAgent(
            session_id="session-1",
            settings=settings.model_copy(update={"LLM_TIMEOUT_SECONDS": 0.05}),
            store=store,
            llm_client=llm_client,
        )

        result = await agent.review(SAMPLE_CODE, "python", "u1")
        assert result.confidence == 0.0

    @pytest.mark.asyncio
    async def test_storage_outage_does_not_fail_review(self, settings, llm_client):
        broken = MagicMock(spec=ConversationStore)
        for name in (
            "touch_session", "load_recent", "append_turns", "save_review", "latest_review",
        ):
            setattr(broken, name, AsyncMock(side_effect=StorageWriteFailure("disk full")))
        agent = ReviewAgent("session-1", settings, broken, llm_client)

        result = await agent.review(SAMPLE_CODE, "python", "u1")

        assert result.parse_tier == "strict"
        assert agent.state == AgentState.DONE

    @pytest.mark.asyncio
    async def test_review_is_archived(self, settings, store, llm_client):
        archive = MagicMock()
        archive.enabled = True
        archive.upload_review = AsyncMock(return_value="reviews/key.json")
        agent = ReviewAgent("session-1", settings, store, llm_client, archive=archive)

        result = await agent.review(SAMPLE_CODE, "python", "u1")

        archive.upload_review.assert_awaited_once()
        assert archive.upload_review.call_args.kwargs["review_id"] == result.review_id


class TestChat:
    """Tests for ReviewAgent.chat."""

    @pytest.mark.asyncio
    async def test_chat_with_empty_history(self, agent, llm_client, store):
        llm_client.complete.return_value = "Happy to help."

        result = await agent.chat("What should I fix first?", "u1")

        assert result.response == "Happy to help."
        assert result.persisted is True

        system, user = sent_messages(llm_client)
        assert "No review has been performed" in system["content"]
        assert user == {"role": "user", "content": "What should I fix first?"}

        history = await store.load_history("session-1")
        assert [(m.role, m.content) for m in history] == [
            (MessageRole.USER, "What should I fix first?"),
            (MessageRole.ASSISTANT, "Happy to help."),
        ]
        assert agent.last_transitions[-2:] == [AgentState.PERSISTING, AgentState.DONE]

    @pytest.mark.asyncio
    async def test_chat_uses_latest_stored_review(self, agent, llm_client):
        await agent.review(SAMPLE_CODE, "python", "u1")
        llm_client.complete.return_value = "Line 5 calls a method on None."

        await agent.chat("Explain the bug", "u1")

        system = sent_messages(llm_client)[0]["content"]
        assert "## Prior Review" in system
        assert "Calling a method on None raises AttributeError" in system
        assert "## Recent Conversation" in system

    @pytest.mark.asyncio
    async def test_chat_prefers_supplied_context(self, agent, llm_client):
        llm_client.complete.return_value = "Sure."
        context = PriorReviewContext(summary="Client supplied summary.", language="go")

        await agent.chat("Why?", "u1", context)

        assert "Client supplied summary." in sent_messages(llm_client)[0]["content"]

    @pytest.mark.asyncio
    async def test_chat_persist_failure_is_reported(self, agent, llm_client, store):
        """A failed two-turn write is surfaced and leaves no partial exchange."""
        llm_client.complete.return_value = "Answer."

        with patch.object(store, "append_turns", AsyncMock(side_effect=StorageWriteFailure("locked"))):
            result = await agent.chat("Question?", "u1")

        assert result.response == "Answer."
        assert result.persisted is False
        assert await store.load_history("session-1") == []

    @pytest.mark.asyncio
    async def test_chat_write_timeout_stores_nothing(self, settings, store, llm_client, monkeypatch):
        """A chat reported as not persisted must not show up in history later."""
        llm_client.complete.return_value = "Answer."
        slow_store = SQLiteConversationStore(str(store.db_path), timeout=0.2)
        insert = slow_store._insert_messages

        def slow_insert(messages):
            time.sleep(0.5)
            return insert(messages)

        monkeypatch.setattr(slow_store, "_insert_messages", slow_insert)
        agent = ReviewAgent("session-1", settings, slow_store, llm_client)

        result = await agent.chat("Question?", "u1")

        assert result.response == "Answer."
        assert result.persisted is False
        time.sleep(0.5)
        assert await store.load_history("session-1") == []

    @pytest.mark.asyncio
    async def test_captured_errors_carry_request_context(self, agent, llm_client, settings, monkeypatch):
        tracker = ErrorTracker(settings)
        monkeypatch.setattr(errors, "_error_tracker", tracker)
        llm_client.complete.side_effect = ServiceUnavailable("down")

        await agent.chat("Anyone there?", "u1")

        context = tracker.get_errors()[0].context
        assert context["session_id"] == "session-1"
        assert context["user_id"] == "u1"
        assert context["operation"] == "chat"

    @pytest.mark.asyncio
    async def test_chat_degraded(self, agent, llm_client, store):
        llm_client.complete.side_effect = ServiceUnavailable("down")

        result = await agent.chat("Anyone there?", "u1")

        assert result.response == CHAT_UNAVAILABLE_RESPONSE
        assert result.persisted is True
        assert agent.state == AgentState.DEGRADED

        history = await store.load_history("session-1")
        assert [m.content for m in history] == ["Anyone there?", CHAT_UNAVAILABLE_RESPONSE]


class TestStateMachine:
    """Tests for transition enforcement."""

    def test_invalid_transition(self, agent):
        agent._begin()
        with pytest.raises(InvalidTransition):
            agent._transition(AgentState.DONE)

    def test_terminal_states(self, agent):
        agent._begin()
        agent._transition(AgentState.PROMPTING)
        agent._transition(AgentState.AWAITING_COMPLETION)
        agent._transition(AgentState.DEGRADED)
        with pytest.raises(InvalidTransition):
            agent._transition(AgentState.PERSISTING)

    def test_completion_timeout_covers_retries(self, agent, settings):
        updated = settings.model_copy(update={"LLM_MAX_RETRIES": 3, "LLM_TIMEOUT_SECONDS": 10})
        agent.settings = updated
        assert agent.completion_timeout == 10 * 3 + 20

"""
Per-session request routing.

Each session key maps to one actor: a ReviewAgent plus a lock that
serializes that session's requests. Different sessions share no lock and
no mutable state, so they run concurrently.
"""

import asyncio
import logging
import time
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import Callable, Dict, Optional

from review_assistant.agents.reviewer import ReviewAgent
from review_assistant.llm.schemas import ChatResult, PriorReviewContext, ReviewResult

logger = logging.getLogger(__name__)

AgentFactory = Callable[[str], ReviewAgent]


@dataclass
class SessionActor:
    """The single worker that owns one session."""

    agent: ReviewAgent
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    last_used: float = field(default_factory=time.monotonic)
    pending: int = 0

    @property
    def busy(self) -> bool:
        """True while any request is running or queued on this actor."""
        return self.pending > 0

    @asynccontextmanager
    async def turn(self):
        """Hold the actor for one request."""
        self.pending += 1
        try:
            async with self.lock:
                self.last_used = time.monotonic()
                yield self.agent
        finally:
            self.pending -= 1
            self.last_used = time.monotonic()


class SessionDispatcher:
    """
    Routes requests to the actor owning their session.

    Usage:
        dispatcher = SessionDispatcher(lambda sid: ReviewAgent(sid, ...))
        result = await dispatcher.review(session_id, user_id, code, "python")
    """

    def __init__(self, agent_factory: AgentFactory):
        """
        Args:
            agent_factory: Builds the agent for a session id on first use
        """
        self.agent_factory = agent_factory
        self._actors: Dict[str, SessionActor] = {}

    def __len__(self) -> int:
        return len(self._actors)

    def actor_for(self, session_id: str) -> SessionActor:
        """Return the session's actor, creating it on first use."""
        actor = self._actors.get(session_id)
        if actor is None:
            actor = SessionActor(agent=self.agent_factory(session_id))
            self._actors[session_id] = actor
            logger.debug(f"Created actor for session {session_id}")
        return actor

    async def review(
        self,
        session_id: str,
        user_id: str,
        code: str,
        language: str,
        context: Optional[str] = None,
    ) -> ReviewResult:
        async with self.actor_for(session_id).turn() as agent:
            return await agent.review(code, language, user_id, context)

    async def chat(
        self,
        session_id: str,
        user_id: str,
        message: str,
        prior_review_context: Optional[PriorReviewContext] = None,
    ) -> ChatResult:
        async with self.actor_for(session_id).turn() as agent:
            return await agent.chat(message, user_id, prior_review_context)

    def evict_idle(self, max_idle_seconds: float) -> int:
        """
        Drop actors idle for longer than ``max_idle_seconds``.

        Busy actors are never evicted. Returns the number of actors removed.
        """
        cutoff = time.monotonic() - max_idle_seconds
        idle = [
            session_id
            for session_id, actor in self._actors.items()
            if not actor.busy and actor.last_used < cutoff
        ]
        for session_id in idle:
            del self._actors[session_id]

        if idle:
            logger.info(f"Evicted {len(idle)} idle session actor(s)")
        return len(idle)

"""
Agent module for orchestrating reviews.

This module provides:
- The per-session review agent
- The dispatcher routing requests to one agent per session
- Confidence scoring
"""

from review_assistant.agents.reviewer import AgentState, ReviewAgent
from review_assistant.agents.dispatcher import SessionDispatcher
from review_assistant.agents.confidence import calculate_confidence_score

__all__ = [
    "AgentState",
    "ReviewAgent",
    "SessionDispatcher",
    "calculate_confidence_score",
]

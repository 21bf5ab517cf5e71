"""
LLM integration module for code review.

This module provides:
- Structured schemas for sessions, reviews and suggestions
- Prompts for review and follow-up chat
- Completion client abstraction (Anthropic/OpenAI)
"""

from review_assistant.llm.schemas import (
    ConversationMessage,
    MessageRole,
    PriorReviewContext,
    ReviewRecord,
    ReviewResult,
    Session,
    Severity,
    Suggestion,
    SuggestionType,
)
from review_assistant.llm.model import CompletionClient, ServiceUnavailable, get_completion_client

__all__ = [
    "CompletionClient",
    "ConversationMessage",
    "MessageRole",
    "PriorReviewContext",
    "ReviewRecord",
    "ReviewResult",
    "ServiceUnavailable",
    "Session",
    "Severity",
    "Suggestion",
    "SuggestionType",
    "get_completion_client",
]

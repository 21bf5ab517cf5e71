"""
Review output module.

This module provides:
- Tiered parsing of raw model text into suggestions
- Type and severity classification
- Explanation, summary and context formatting
"""

from review_assistant.review.parser import (
    FallbackParser,
    HeuristicBlockParser,
    ParseOutcome,
    ResponseParser,
    StrictGrammarParser,
)
from review_assistant.review.classifier import classify_text, severity_for

__all__ = [
    "FallbackParser",
    "HeuristicBlockParser",
    "ParseOutcome",
    "ResponseParser",
    "StrictGrammarParser",
    "classify_text",
    "severity_for",
]

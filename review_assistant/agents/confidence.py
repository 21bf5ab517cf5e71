"""
Confidence scoring for generated reviews.

A review's confidence reflects how well the model followed the requested
grammar: suggestions read back through the strict tier are trusted more
than heuristically recovered ones, and a fallback result says little.
"""

import logging
from typing import Sequence

from review_assistant.llm.schemas import Suggestion

logger = logging.getLogger(__name__)

DEGRADED_CONFIDENCE = 0.0

TIER_BASE_CONFIDENCE = {
    "strict": 0.85,
    "heuristic": 0.6,
    "fallback": 0.3,
}

# Bonus for the share of suggestions anchored to a line
ANCHOR_WEIGHT = 0.1


def clamp(value: float, low: float = 0.0, high: float = 1.0) -> float:
    return max(low, min(high, value))


def calculate_confidence_score(tier: str, suggestions: Sequence[Suggestion]) -> float:
    """
    Calculate overall confidence for a parsed review.

    Args:
        tier: Name of the parser tier that produced the suggestions
        suggestions: Parsed suggestions

    Returns:
        Confidence score between 0.0 and 1.0
    """
    base = TIER_BASE_CONFIDENCE.get(tier, 0.5)

    anchored_ratio = 0.0
    if suggestions:
        anchored = sum(1 for s in suggestions if s.line is not None)
        anchored_ratio = anchored / len(suggestions)

    score = clamp(base + ANCHOR_WEIGHT * anchored_ratio)
    logger.debug(f"Calculated confidence: {score:.2f} (tier={tier}, anchored={anchored_ratio:.2f})")
    return round(score, 4)

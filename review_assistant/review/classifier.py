"""
Type and severity classification for review suggestions.

Severity is never chosen freely: it is looked up from the suggestion type
and escalated only when the text carries an explicit escalation keyword.
"""

import re
from typing import Optional, Tuple

from review_assistant.llm.schemas import Severity, SuggestionType


BASE_SEVERITY = {
    SuggestionType.SECURITY: Severity.HIGH,
    SuggestionType.BUG: Severity.HIGH,
    SuggestionType.PERFORMANCE: Severity.MEDIUM,
    SuggestionType.OPTIMIZATION: Severity.MEDIUM,
    SuggestionType.STYLE: Severity.LOW,
}

# Only these types may be escalated to critical
ESCALATABLE_TYPES = {SuggestionType.SECURITY, SuggestionType.BUG}
ESCALATION_KEYWORDS = ("critical", "severe")

# Checked in order, first hit wins
KEYWORD_RULES = [
    (SuggestionType.SECURITY, (
        "security", "vulnerability", "vulnerable", "injection", "xss", "csrf", "authentication",
    )),
    (SuggestionType.BUG, (
        "bug", "error", "exception", "missing", "undefined", "null", "crash", "unterminated",
    )),
    (SuggestionType.PERFORMANCE, (
        "performance", "slow", "inefficient", "optimize", "bottleneck", "memory",
    )),
    (SuggestionType.OPTIMIZATION, (
        "optimization", "improve", "better", "refactor",
    )),
]

TAG_ALIASES = {
    "security": SuggestionType.SECURITY,
    "sec": SuggestionType.SECURITY,
    "performance": SuggestionType.PERFORMANCE,
    "perf": SuggestionType.PERFORMANCE,
    "style": SuggestionType.STYLE,
    "bug": SuggestionType.BUG,
    "error": SuggestionType.BUG,
    "optimization": SuggestionType.OPTIMIZATION,
    "optimisation": SuggestionType.OPTIMIZATION,
}


def has_escalation_keyword(text: Optional[str]) -> bool:
    if not text:
        return False
    lowered = text.lower()
    return any(re.search(rf"\b{kw}\b", lowered) for kw in ESCALATION_KEYWORDS)


def severity_for(suggestion_type: SuggestionType, text: Optional[str] = None) -> Severity:
    """
    Severity of a suggestion as a pure function of its type and text.

    Args:
        suggestion_type: Classified issue type
        text: Text scanned for escalation keywords

    Returns:
        The table severity, or CRITICAL for an escalated security/bug issue
    """
    if suggestion_type in ESCALATABLE_TYPES and has_escalation_keyword(text):
        return Severity.CRITICAL
    return BASE_SEVERITY[suggestion_type]


def is_known_tag(tag: str) -> bool:
    return tag.strip().lower() in TAG_ALIASES


def type_from_tag(tag: str) -> SuggestionType:
    """Map a grammar TYPE tag to a suggestion type; unknown tags are style."""
    return TAG_ALIASES.get(tag.strip().lower(), SuggestionType.STYLE)


def classify_text(text: str) -> Tuple[SuggestionType, Severity]:
    """Classify free text by keyword scan."""
    lowered = text.lower()
    for suggestion_type, keywords in KEYWORD_RULES:
        if any(keyword in lowered for keyword in keywords):
            return suggestion_type, severity_for(suggestion_type, text)
    return SuggestionType.STYLE, Severity.LOW

"""
Text formatting for review suggestions.

Builds the self-contained explanation attached to every suggestion,
extracts review summaries from raw model text and renders a stored review
back into prompt context for follow-up chat.
"""

import re
from typing import List, Optional, Sequence

from review_assistant.llm.schemas import PriorReviewContext, Suggestion, SuggestionType

MAX_MESSAGE_LENGTH = 120

NO_SUMMARY = "Code review completed."

TYPE_GUIDANCE = {
    SuggestionType.SECURITY: "This security issue should be addressed immediately.",
    SuggestionType.PERFORMANCE: "This performance issue may impact user experience.",
    SuggestionType.BUG: "This bug could cause runtime errors.",
    SuggestionType.STYLE: "This style issue affects code readability.",
    SuggestionType.OPTIMIZATION: "This optimization can improve code efficiency.",
}

_EMPHASIS_PATTERNS = [
    (re.compile(r"\*\*(.*?)\*\*"), r"\1"),
    (re.compile(r"__(.*?)__"), r"\1"),
    (re.compile(r"\*(.*?)\*"), r"\1"),
    (re.compile(r"`(.*?)`"), r"\1"),
]
_HEADING = re.compile(r"^\s*#{1,6}\s")
_LEADING_MARKERS = re.compile(r"^\s*(?:#+\s*|\d+[.)]\s*|[*\-+]\s+)")
_ISSUE_PREFIX = re.compile(r"^(Issue|Problem|Concern|Suggestion|Error|Bug)[:\s]+", re.IGNORECASE)
_SENTENCE_SPLIT = re.compile(r"(?<=[.!?])\s+")
_GRAMMAR_LINE = re.compile(r"^\W*line\s+\d+\s*:", re.IGNORECASE)


def strip_markdown(text: str) -> str:
    """Remove emphasis, inline code markup and a leading heading/list marker."""
    for pattern, replacement in _EMPHASIS_PATTERNS:
        text = pattern.sub(replacement, text)
    return _LEADING_MARKERS.sub("", text)


def truncate(text: str, limit: int = MAX_MESSAGE_LENGTH) -> str:
    if len(text) > limit:
        return text[:limit] + "..."
    return text


def clean_message(block: str) -> str:
    """
    First sentence of a block, stripped of markup and issue prefixes.

    A heading is used only when no body text follows it. Returns an empty
    string when the block holds no text.
    """
    lines = [line for line in block.splitlines() if line.strip()]
    if not lines:
        return ""

    first = lines[0]
    if _HEADING.match(first) and len(lines) > 1:
        first = lines[1]

    text = _ISSUE_PREFIX.sub("", strip_markdown(first).strip())
    sentence = _SENTENCE_SPLIT.split(text, maxsplit=1)[0].strip()
    return truncate(sentence)


def build_explanation(
    suggestion_type: SuggestionType,
    description: str,
    code_line: Optional[str] = None,
    fix: Optional[str] = None,
) -> str:
    """
    Synthesize the explanation for a suggestion.

    Concatenates the description, the quoted source line (when anchored),
    the fix (when known) and a type-specific guidance sentence.
    """
    explanation = description.strip()
    if explanation and explanation[-1] not in ".!?":
        explanation += "."

    if code_line is not None and code_line.strip():
        explanation += f' Found in: "{code_line.strip()}".'

    if fix:
        explanation += f" Suggested fix: {fix.strip()}"
        if explanation[-1] not in ".!?":
            explanation += "."

    explanation += " " + TYPE_GUIDANCE[suggestion_type]
    return explanation.strip()


def extract_summary(raw_text: str, suggestions: Sequence[Suggestion] = ()) -> str:
    """
    First two sentences of the model's prose, ignoring issue lines.

    Falls back to a count of the suggestions when the model wrote no prose.
    """
    prose_lines = [
        strip_markdown(line).strip()
        for line in raw_text.splitlines()
        if line.strip() and not _GRAMMAR_LINE.match(line)
    ]
    prose = " ".join(line for line in prose_lines if line)

    if prose:
        sentences = [s.strip() for s in _SENTENCE_SPLIT.split(prose) if s.strip()]
        summary = " ".join(sentences[:2])
        if summary[-1] not in ".!?":
            summary += "."
        return summary

    anchored = [s for s in suggestions if s.line is not None]
    if anchored:
        return f"Found {len(anchored)} issue(s) in the submitted code."
    return NO_SUMMARY


def format_suggestion(suggestion: Suggestion) -> str:
    """Render one suggestion as a single line of prompt context."""
    location = f"line {suggestion.line}" if suggestion.line else "general"
    line = f"- [{suggestion.severity.value.upper()}] {suggestion.type.value} ({location}): {suggestion.message}"
    if suggestion.suggestion:
        line += f" | Fix: {suggestion.suggestion}"
    return line


def format_review_context(context: PriorReviewContext) -> str:
    """Render a prior review as text for the chat system prompt."""
    parts: List[str] = []

    if context.language:
        parts.append(f"Language: {context.language}")
    if context.summary:
        parts.append(f"Summary: {context.summary}")
    if context.code:
        fence = context.language or ""
        parts.append(f"Reviewed code:\n```{fence}\n{context.code}\n```")
    if context.suggestions:
        parts.append("Suggestions:")
        parts.extend(format_suggestion(s) for s in context.suggestions)

    return "\n".join(parts) if parts else "(empty review)"

"""
Prompts for code review and follow-up chat.

The review prompt pins the model to a line-oriented grammar the parser can
read back; the chat prompt trades that strictness for conversational
answers grounded in the prior review and recent turns.
"""

from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence

from review_assistant.config import Settings
from review_assistant.llm.schemas import ConversationMessage, PriorReviewContext, SuggestionType
from review_assistant.review.formatter import format_review_context


ISSUE_TAGS = [t.value.upper() for t in SuggestionType]

REVIEW_SYSTEM_PROMPT = """You are an expert code reviewer. Analyze the provided {language} code for:
1. Security vulnerabilities
2. Performance issues
3. Code style and best practices
4. Potential bugs
5. Optimization opportunities

**Output Format:**
Report one issue per line, using exactly this grammar:
Line <number>: <TYPE> <short description> | Fix: <suggested fix>

**Rules:**
- <TYPE> must be one of: {tags}
- <number> is the 1-based line number in the submitted code
- Use the word "critical" in the description only for issues that must block release
- Do not add headings, numbering, markdown or commentary around the issue lines
- Start your answer with a one or two sentence summary, then the issue lines
"""

CHAT_SYSTEM_PROMPT = """You are a friendly senior engineer helping a developer understand a code review you performed.
Answer their questions about the review, explain the reasoning behind suggestions and show corrected code when it helps.
Keep answers focused on the reviewed code."""


@dataclass
class Prompt:
    """A ready-to-send completion request."""

    messages: List[Dict[str, str]]
    max_tokens: int
    temperature: float


def format_history(history: Sequence[ConversationMessage]) -> str:
    """Render conversation turns as ``role: content`` lines, oldest first."""
    return "\n".join(f"{msg.role.value}: {msg.content}" for msg in history)


def build_review_prompt(
    code: str,
    language: str,
    settings: Settings,
    context: Optional[str] = None,
    history: Sequence[ConversationMessage] = (),
) -> Prompt:
    """
    Build the review completion request.

    Args:
        code: Source snippet under review
        language: Language tag, also used on the code fence
        settings: Application settings (token budget, temperature)
        context: Optional focus-area hint from the caller
        history: Recent conversation turns, oldest first

    Returns:
        Prompt with low sampling temperature
    """
    system_prompt = REVIEW_SYSTEM_PROMPT.format(
        language=language,
        tags=", ".join(ISSUE_TAGS),
    )

    if history:
        system_prompt += (
            "\nPrevious conversation context:\n"
            f"{format_history(history)}\n\n"
            "Use this context to provide more personalized and relevant feedback."
        )

    user_parts = [
        f"Please review this {language} code:",
        f"\n```{language}\n{code}\n```",
    ]
    if context:
        user_parts.append(f"\nFocus areas: {context}")
    user_parts.append("\nList every issue using the required line grammar.")

    return Prompt(
        messages=[
            {"role": "system", "content": system_prompt},
            {"role": "user", "content": "\n".join(user_parts)},
        ],
        max_tokens=settings.REVIEW_MAX_TOKENS,
        temperature=settings.REVIEW_TEMPERATURE,
    )


def build_chat_prompt(
    message: str,
    settings: Settings,
    history: Sequence[ConversationMessage] = (),
    review_context: Optional[PriorReviewContext] = None,
) -> Prompt:
    """
    Build the follow-up chat completion request.

    The system message carries the role, the prior review and the recent
    turns; the new user message is always the final turn.
    """
    system_parts = [CHAT_SYSTEM_PROMPT]

    if review_context is not None:
        system_parts.append("\n## Prior Review\n" + format_review_context(review_context))
    else:
        system_parts.append("\nNo review has been performed in this conversation yet.")

    if history:
        system_parts.append("\n## Recent Conversation\n" + format_history(history))

    return Prompt(
        messages=[
            {"role": "system", "content": "\n".join(system_parts)},
            {"role": "user", "content": message},
        ],
        max_tokens=settings.CHAT_MAX_TOKENS,
        temperature=settings.CHAT_TEMPERATURE,
    )

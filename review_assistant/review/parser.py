"""
Tiered parsing of raw model output into structured suggestions.

Each tier is a strategy with the same interface. ResponseParser tries them
in order and keeps the first non-empty result, so every input text,
including empty or gibberish text, yields at least one suggestion.
"""

import logging
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import List, Optional, Sequence

from review_assistant.llm.schemas import Severity, Suggestion, SuggestionType
from review_assistant.review.classifier import classify_text, is_known_tag, severity_for, type_from_tag
from review_assistant.review.formatter import build_explanation, clean_message

logger = logging.getLogger(__name__)


def split_code_lines(code: str) -> List[str]:
    """Split a snippet into lines; line N of the code is ``lines[N - 1]``."""
    return code.split("\n")


def line_in_bounds(line: int, code_lines: Sequence[str]) -> bool:
    return 1 <= line <= len(code_lines)


class ParserStrategy(ABC):
    """One tier of the parsing pipeline."""

    name: str = "strategy"

    @abstractmethod
    def parse(self, text: str, code_lines: Sequence[str]) -> List[Suggestion]:
        """
        Extract suggestions from raw model text.

        Args:
            text: Raw completion text
            code_lines: Lines of the reviewed code, for bounds and quoting

        Returns:
            Suggestions found by this tier, possibly empty
        """
        pass


class StrictGrammarParser(ParserStrategy):
    """
    Reads lines of the form ``Line <n>: <TYPE> <description> | Fix: <fix>``.

    Out-of-range line numbers are dropped, never clamped.
    """

    name = "strict"

    LINE_PATTERN = re.compile(
        r"^\W*line\s+(?P<line>\d+)\s*[:\-]\s*"
        r"\**\[?(?P<tag>[A-Za-z]+)\]?\**\s*[:\-]?\s*"
        r"(?P<description>.*?)\s*\|\s*fix\s*:\s*(?P<fix>.*?)\s*$",
        re.IGNORECASE,
    )

    def parse(self, text: str, code_lines: Sequence[str]) -> List[Suggestion]:
        suggestions = []
        dropped = 0

        for raw_line in text.splitlines():
            match = self.LINE_PATTERN.match(raw_line.strip())
            if not match:
                continue

            line = int(match.group("line"))
            if not line_in_bounds(line, code_lines):
                dropped += 1
                continue

            tag = match.group("tag")
            description = match.group("description").strip()
            if not is_known_tag(tag):
                # Untagged line: the captured word opens the description
                description = f"{tag} {description}".strip()

            suggestion_type = type_from_tag(tag)
            description = description or f"{suggestion_type.value} issue"
            fix = match.group("fix").strip() or None

            suggestions.append(Suggestion(
                type=suggestion_type,
                severity=severity_for(suggestion_type, description),
                line=line,
                message=description,
                suggestion=fix,
                explanation=build_explanation(
                    suggestion_type, description, code_lines[line - 1], fix
                ),
            ))

        if dropped:
            logger.info(f"Dropped {dropped} out-of-range line reference(s)")
        return suggestions


class HeuristicBlockParser(ParserStrategy):
    """
    Splits free-form text into blocks at headings and list markers and
    classifies each block by keyword scan.
    """

    name = "heuristic"

    MIN_BLOCK_LENGTH = 20
    MIN_FIX_LENGTH = 6

    BLOCK_BOUNDARY = re.compile(r"\n(?=\s*(?:#{1,6}\s|\d+[.)]\s|[*\-+]\s))")
    LINE_MENTION = re.compile(r"\blines?\s+(\d+)", re.IGNORECASE)
    FIX_PATTERNS = [
        re.compile(r"\b(?:fix|solution|suggestion|recommendation)[:\s]+(.+?)(?:\n|$)", re.IGNORECASE),
        re.compile(r"\b(?:should|could|consider)[:\s]+(.+?)(?:\n|$)", re.IGNORECASE),
        re.compile(r"\b(?:use|try|replace)[:\s]+(.+?)(?:\n|$)", re.IGNORECASE),
    ]

    def parse(self, text: str, code_lines: Sequence[str]) -> List[Suggestion]:
        suggestions = []

        for block in self.BLOCK_BOUNDARY.split(text):
            if len(block.strip()) < self.MIN_BLOCK_LENGTH:
                continue

            message = clean_message(block)
            if not message:
                continue

            suggestion_type, severity = classify_text(block)
            fix = self.extract_fix(block)
            lines = self.extract_lines(block)

            if not lines:
                suggestions.append(self._build(suggestion_type, severity, message, fix))
                continue

            for line in lines:
                if line_in_bounds(line, code_lines):
                    suggestions.append(self._build(
                        suggestion_type, severity, message, fix, line, code_lines[line - 1]
                    ))

        return suggestions

    def extract_lines(self, block: str) -> List[int]:
        """Distinct ``line N`` mentions in order of appearance."""
        seen = []
        for match in self.LINE_MENTION.finditer(block):
            line = int(match.group(1))
            if line not in seen:
                seen.append(line)
        return seen

    def extract_fix(self, block: str) -> Optional[str]:
        for pattern in self.FIX_PATTERNS:
            match = pattern.search(block)
            if match and len(match.group(1).strip()) >= self.MIN_FIX_LENGTH:
                return match.group(1).strip()
        return None

    @staticmethod
    def _build(
        suggestion_type: SuggestionType,
        severity: Severity,
        message: str,
        fix: Optional[str],
        line: Optional[int] = None,
        code_line: Optional[str] = None,
    ) -> Suggestion:
        return Suggestion(
            type=suggestion_type,
            severity=severity,
            line=line,
            message=message,
            suggestion=fix,
            explanation=build_explanation(suggestion_type, message, code_line, fix),
        )


class FallbackParser(ParserStrategy):
    """Always yields exactly one generic style suggestion."""

    name = "fallback"

    MESSAGE = "No specific issues detected"
    EXPLANATION = (
        "The AI has analyzed your code. While no specific issues were detected, "
        "consider reviewing the code for best practices and potential improvements."
    )

    def parse(self, text: str, code_lines: Sequence[str]) -> List[Suggestion]:
        return [Suggestion(
            type=SuggestionType.STYLE,
            severity=Severity.LOW,
            message=self.MESSAGE,
            explanation=self.EXPLANATION,
        )]


@dataclass
class ParseOutcome:
    """Suggestions plus the name of the tier that produced them."""

    suggestions: List[Suggestion]
    tier: str


class ResponseParser:
    """Runs the parsing tiers in order; the first non-empty result wins."""

    def __init__(self, strategies: Optional[Sequence[ParserStrategy]] = None):
        self.strategies = list(strategies) if strategies else [
            StrictGrammarParser(),
            HeuristicBlockParser(),
        ]
        self.fallback = FallbackParser()

    def parse(self, text: str, code: str) -> ParseOutcome:
        """
        Parse raw model text against the reviewed code.

        Args:
            text: Raw completion text (may be empty)
            code: The reviewed snippet

        Returns:
            ParseOutcome whose suggestion list is never empty
        """
        code_lines = split_code_lines(code)
        text = text or ""

        for strategy in self.strategies:
            suggestions = strategy.parse(text, code_lines)
            if suggestions:
                logger.info(f"Parsed {len(suggestions)} suggestion(s) with {strategy.name} tier")
                return ParseOutcome(suggestions=suggestions, tier=strategy.name)
            logger.debug(f"{strategy.name} tier produced no suggestions")

        logger.info("No suggestions parsed, using fallback tier")
        return ParseOutcome(
            suggestions=self.fallback.parse(text, code_lines),
            tier=self.fallback.name,
        )

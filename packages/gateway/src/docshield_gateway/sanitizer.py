"""
Input Sanitizer for DocShield Gateway

Neutralises prompt-injection, role-break and code-injection patterns in
untrusted document text before it is sent to the upstream LLM.
"""

import logging
import re
from dataclasses import dataclass
from typing import List, Pattern, Union

from .config import DEFAULT_MAX_INPUT_SIZE, MAX_INPUT_SIZE

logger = logging.getLogger(__name__)

FILTERED_MARKER = "[FILTERED]"

# Compiled once at import; a broken pattern fails the import.
DANGEROUS_PATTERNS: List[Pattern[str]] = [
    re.compile(pattern, re.IGNORECASE)
    for pattern in (
        # Instruction override
        r"ignore\s+(previous|all|above|prior)\s+(instructions?|commands?)",
        r"forget\s+(everything|all|previous)",
        r"you\s+are\s+(now|a|the)\s+(different|new)",
        r"act\s+as\s+(if|a|an|the)",
        r"pretend\s+(to\s+be|you\s+are)",
        r"roleplay\s+as",
        # Role markers
        r"system\s*:\s*",
        r"assistant\s*:\s*",
        r"user\s*:\s*",
        r"human\s*:\s*",
        r"\[system\]",
        r"\[assistant\]",
        # Model control tokens
        r"<\|endoftext\|>",
        r"<\|im_start\|>",
        r"<\|im_end\|>",
        # Forged message boundaries
        r"\n{3,}",
        r"-{5,}",
        r"={5,}",
        r"\*{5,}",
        # Script and HTML injection
        r"<script[^>]*>",
        r"</script>",
        r"javascript\s*:",
        r"data\s*:\s*text/html",
        # Code injection shapes
        r";\s*drop\s+",
        r";\s*delete\s+from",
        r";\s*truncate\s+",
        r"union\s+select",
        r"exec\s*\(",
        r"eval\s*\(",
    )
]

DANGEROUS_KEYWORDS = (
    "reveal your instructions",
    "show your system prompt",
    "what are your rules",
    "ignore your safety",
    "bypass your restrictions",
    "admin mode",
    "developer mode",
    "debug mode",
    "maintenance mode",
    "sudo",
    "root access",
    "override security",
)

# Any whitespace run between keyword words matches, so whitespace
# normalisation can never assemble a keyword the filter did not see.
KEYWORD_PATTERNS: List[Pattern[str]] = [
    re.compile(r"\s+".join(re.escape(word) for word in keyword.split()), re.IGNORECASE)
    for keyword in DANGEROUS_KEYWORDS
]

_HORIZONTAL_WHITESPACE = re.compile(r"[^\S\n]+")
_EXCESS_NEWLINES = re.compile(r"\n{3,}")


@dataclass(frozen=True)
class SanitizeResult:
    """Outcome of sanitising one piece of text."""

    text: str
    was_truncated: bool = False
    was_filtered: bool = False
    filtered_count: int = 0
    original_length: int = 0

    @property
    def sanitized_length(self) -> int:
        return len(self.text.encode("utf-8"))

    @property
    def changed(self) -> bool:
        return self.was_filtered or self.was_truncated


def _to_valid_text(value: Union[str, bytes]) -> str:
    """Drop ill-formed UTF-8 (or lone surrogates) instead of failing."""
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="ignore")
    return value.encode("utf-8", errors="ignore").decode("utf-8")


def _byte_length(value: Union[str, bytes]) -> int:
    if isinstance(value, bytes):
        return len(value)
    return len(value.encode("utf-8", errors="ignore"))


def truncate_at_boundary(text: str, max_bytes: int) -> str:
    """Truncate to at most ``max_bytes`` UTF-8 bytes at a sentence or word break.

    Prefers the last ". " past the halfway point (keeping the period), then
    the last space past the halfway point, then a hard cut that never splits
    a code point.
    """
    raw = text.encode("utf-8")
    if len(raw) <= max_bytes:
        return text

    head = raw[:max_bytes]
    half = max_bytes // 2

    last_period = head.rfind(b". ")
    if last_period > half:
        return head[: last_period + 1].decode("utf-8")

    last_space = head.rfind(b" ")
    if last_space > half:
        return head[:last_space].decode("utf-8")

    return head.decode("utf-8", errors="ignore")


def normalize_whitespace(text: str) -> str:
    """Collapse horizontal whitespace, cap blank lines at one, and trim."""
    text = _HORIZONTAL_WHITESPACE.sub(" ", text)
    text = _EXCESS_NEWLINES.sub("\n\n", text)
    return text.strip()


class InputSanitizer:
    """Pattern and keyword filter for text entering the LLM."""

    def __init__(self, max_input_size: int = DEFAULT_MAX_INPUT_SIZE):
        if max_input_size <= 0 or max_input_size > MAX_INPUT_SIZE:
            max_input_size = DEFAULT_MAX_INPUT_SIZE
        self.max_input_size = max_input_size
        self.patterns = DANGEROUS_PATTERNS
        self.keyword_patterns = KEYWORD_PATTERNS

    def sanitize(self, value: Union[str, bytes]) -> SanitizeResult:
        """
        Sanitize text for safe AI processing.

        Args:
            value: Untrusted text, as ``str`` or raw bytes

        Returns:
            SanitizeResult with the sanitised text and what was done to it
        """
        original_length = _byte_length(value)
        text = _to_valid_text(value)

        was_truncated = False
        if len(text.encode("utf-8")) > self.max_input_size:
            text = truncate_at_boundary(text, self.max_input_size)
            was_truncated = True

        filtered_count = 0
        for pattern in self.patterns:
            text, count = pattern.subn(FILTERED_MARKER, text)
            filtered_count += count

        for pattern in self.keyword_patterns:
            text, count = pattern.subn(FILTERED_MARKER, text)
            filtered_count += count

        text = normalize_whitespace(text)

        # Markers are longer than some of the matches they replace
        if len(text.encode("utf-8")) > self.max_input_size:
            text = truncate_at_boundary(text, self.max_input_size).strip()
            was_truncated = True

        if filtered_count:
            logger.warning(
                f"Sanitizer filtered {filtered_count} dangerous matches "
                f"(original {original_length} bytes)"
            )

        return SanitizeResult(
            text=text,
            was_truncated=was_truncated,
            was_filtered=filtered_count > 0,
            filtered_count=filtered_count,
            original_length=original_length,
        )

    def is_safe_for_ai(self, value: Union[str, bytes]) -> bool:
        """Quick preflight: within size and free of every pattern and keyword.

        This never replaces calling ``sanitize`` before an upstream request.
        """
        if _byte_length(value) > self.max_input_size:
            return False

        text = _to_valid_text(value)
        if any(pattern.search(text) for pattern in self.patterns):
            return False
        return not any(pattern.search(text) for pattern in self.keyword_patterns)

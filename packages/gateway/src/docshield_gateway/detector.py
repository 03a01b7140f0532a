"""
Suspicious Output Detector for DocShield Gateway

Pattern and keyword based detection of credentials, secrets and personal
identifiers in LLM output, with in-place redaction.
"""

import logging
import re
from dataclasses import dataclass, field
from typing import List, Pattern, Tuple

logger = logging.getLogger(__name__)

REDACTED_MARKER = "[REDACTED]"

CREDENTIAL_PATTERN = "credential_pattern"
SENSITIVE_KEYWORD = "sensitive_keyword"

CREDENTIAL_PATTERNS: List[Pattern[str]] = [
    re.compile(pattern)
    for pattern in (
        # API keys and tokens
        r"(?i)api[_-]?key\s*[:=]\s*\S{20,}",
        r"(?i)api[_-]?secret\s*[:=]\s*\S{20,}",
        r"(?i)access[_-]?token\s*[:=]\s*\S{20,}",
        r"(?i)secret[_-]?key\s*[:=]\s*\S{20,}",
        r"(?i)bearer\s+[a-zA-Z0-9\-_.]+",
        # AWS credentials
        r"(?i)aws[_-]?access[_-]?key[_-]?id\s*[:=]\s*AKIA[A-Z0-9]{16}",
        r"\bAKIA[A-Z0-9]{16}\b",
        r"(?i)aws[_-]?secret[_-]?access[_-]?key\s*[:=]\s*\S{40}",
        # Database connection strings
        r"(?i)postgres(?:ql)?://[^:\s]+:[^@\s]+@",
        r"(?i)mysql://[^:\s]+:[^@\s]+@",
        r"(?i)mongodb(?:\+srv)?://[^:\s]+:[^@\s]+@",
        r"(?i)redis://[^:\s]*:[^@\s]+@",
        # Private keys
        r"-----BEGIN\s+(?:RSA\s+|EC\s+|ENCRYPTED\s+)?PRIVATE KEY-----",
        # Signed web tokens
        r"eyJ[a-zA-Z0-9_-]+\.eyJ[a-zA-Z0-9_-]+\.[a-zA-Z0-9_-]+",
        # FinanzOnline / ELDA participant identifiers and PINs
        r"(?i)teilnehmer[_-]?id\s*[:=]\s*\d{6,}",
        r"(?i)benutzer[_-]?id\s*[:=]\s*\S{4,}",
        r"(?i)fo[_-]?pin\s*[:=]\s*\S{4,}",
        r"(?i)elda[_-]?pin\s*[:=]\s*\S{4,}",
        # Austrian tax number (Steuernummer)
        r"\b\d{2}-\d{3}/\d{4}\b",
        # Card-like digit groups
        r"\b(?:\d{4}[- ]?){3}\d{4}\b",
        # Austrian social insurance number (SVNR)
        r"\b\d{4}\s?\d{2}\s?\d{2}\s?\d{2}\b",
    )
]

SENSITIVE_KEYWORDS = (
    # Credentials
    "password:",
    "passwort:",
    "pin:",
    "geheimzahl:",
    "secret:",
    "credential:",
    "api key:",
    "api-key:",
    "apikey:",
    "private key",
    "encryption key",
    # Authentication
    "session token:",
    "access token:",
    "refresh token:",
    "bearer token:",
    "auth token:",
    # Personal data (GDPR relevant)
    "sozialversicherungsnummer:",
    "svnr:",
    "geburtsdatum:",
    "iban:",
    "bic:",
    "kontonummer:",
    "kreditkarte:",
    "kartennummer:",
)

# The keyword plus the value-like run that follows it on the same line.
KEYWORD_PATTERNS: List[Pattern[str]] = [
    re.compile(re.escape(keyword) + r"[^\S\n]*[^ \n]*", re.IGNORECASE)
    for keyword in SENSITIVE_KEYWORDS
]

# Redaction can expose a new match (a marker completing a value run);
# passes repeat until the text is stable.
_MAX_PASSES = 4


@dataclass(frozen=True)
class SuspiciousResult:
    """Outcome of scanning one LLM-originated string."""

    is_suspicious: bool
    suspicious_types: List[str] = field(default_factory=list)
    redacted_content: str = ""
    suspicious_count: int = 0


class SuspiciousOutputDetector:
    """Detects and redacts leaked credentials and identifiers."""

    def __init__(self):
        self.credential_patterns = CREDENTIAL_PATTERNS
        self.keyword_patterns = KEYWORD_PATTERNS

    def _redact_pass(self, text: str) -> Tuple[str, int, List[str]]:
        count = 0
        types: List[str] = []

        for pattern in self.credential_patterns:
            text, hits = pattern.subn(REDACTED_MARKER, text)
            if hits:
                count += hits
                types.append(CREDENTIAL_PATTERN)

        for pattern in self.keyword_patterns:
            text, hits = pattern.subn(REDACTED_MARKER, text)
            if hits:
                count += hits
                types.append(SENSITIVE_KEYWORD)

        return text, count, types

    def check(self, output: str) -> SuspiciousResult:
        """
        Scan LLM output for sensitive content.

        Args:
            output: Any string that originated from the LLM

        Returns:
            SuspiciousResult with deduplicated category tags and the
            redacted text (identical to ``output`` when nothing was found)
        """
        redacted = output
        total = 0
        types: List[str] = []

        for _ in range(_MAX_PASSES):
            redacted, count, pass_types = self._redact_pass(redacted)
            if not count:
                break
            total += count
            for suspicious_type in pass_types:
                if suspicious_type not in types:
                    types.append(suspicious_type)

        if not total:
            return SuspiciousResult(is_suspicious=False, redacted_content=output)

        logger.warning(f"Detected {total} suspicious matches in AI output: {types}")
        return SuspiciousResult(
            is_suspicious=True,
            suspicious_types=types,
            redacted_content=redacted,
            suspicious_count=total,
        )

    def is_safe(self, output: str) -> bool:
        """True if the output contains nothing suspicious."""
        return not self.check(output).is_suspicious

    def redact(self, output: str) -> str:
        """Return the output with every suspicious match replaced."""
        return self.check(output).redacted_content


def fit_redacted(text: str, max_bytes: int) -> str:
    """
    Cut a redacted string to at most max_bytes of UTF-8.

    The cut falls on a code point boundary, and a marker left incomplete
    by the cut is dropped whole.
    """
    encoded = text.encode("utf-8")
    if len(encoded) <= max_bytes:
        return text

    capped = encoded[:max_bytes].decode("utf-8", errors="ignore")
    window = max(len(capped) - len(REDACTED_MARKER) + 1, 0)
    marker_start = capped.rfind("[", window)
    if marker_start != -1 and REDACTED_MARKER.startswith(capped[marker_start:]):
        capped = capped[:marker_start]
    return capped

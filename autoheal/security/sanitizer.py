"""
Secret redaction for logs and captured runner output.

Jira tokens, TestRail keys and AI provider keys travel through request
headers and settings; every log line passes through here before emission.
"""

import hashlib
import logging
import re
from copy import deepcopy
from dataclasses import dataclass
from enum import Enum, auto
from typing import Any, Dict, List, Optional, Pattern

logger = logging.getLogger(__name__)

SECRET_KEYS = (
    "password",
    "api_key",
    "apikey",
    "token",
    "secret",
    "authorization",
    "x-api-key",
)


class RedactionMethod(Enum):
    """Methods for redacting sensitive data."""
    MASK = auto()          # Replace with asterisks
    HASH = auto()          # Replace with short hash
    PLACEHOLDER = auto()   # Replace with placeholder text


@dataclass
class SensitiveDataPattern:
    """Pattern for identifying a secret."""

    name: str
    pattern: Pattern[str]
    redaction_method: RedactionMethod = RedactionMethod.PLACEHOLDER
    placeholder: str = "[REDACTED]"
    group: int = 0
    enabled: bool = True

    def matches(self, text: str) -> List[re.Match]:
        """Find all matches in text."""
        if not self.enabled:
            return []
        return list(self.pattern.finditer(text))


class DataSanitizer:
    """Redacts credentials from strings, dicts and log records."""

    def __init__(self, extra_patterns: Optional[List[SensitiveDataPattern]] = None):
        self.patterns: List[SensitiveDataPattern] = [
            SensitiveDataPattern(
                name="openrouter_key",
                pattern=re.compile(r"\bsk-or-[A-Za-z0-9\-_]{8,}"),
            ),
            SensitiveDataPattern(
                name="openai_key",
                pattern=re.compile(r"\bsk-[A-Za-z0-9\-_]{16,}"),
            ),
            SensitiveDataPattern(
                name="bearer_token",
                pattern=re.compile(r"Bearer\s+[A-Za-z0-9\-._~+/]+=*", re.IGNORECASE),
                placeholder="Bearer [REDACTED]",
            ),
            SensitiveDataPattern(
                name="basic_auth",
                pattern=re.compile(r"Basic\s+[A-Za-z0-9+/]+=*", re.IGNORECASE),
                placeholder="Basic [REDACTED]",
            ),
            SensitiveDataPattern(
                name="key_assignment",
                pattern=re.compile(
                    r"(?:api[_-]?key|api[_-]?token|access[_-]?token|password|passwd)"
                    r"\s*[:=]\s*[\"']?([^\"'\s,]+)",
                    re.IGNORECASE,
                ),
                group=1,
            ),
            SensitiveDataPattern(
                name="jwt_token",
                pattern=re.compile(r"eyJ[A-Za-z0-9_-]+\.eyJ[A-Za-z0-9_-]+\.[A-Za-z0-9_-]+"),
                redaction_method=RedactionMethod.HASH,
            ),
        ]
        if extra_patterns:
            self.patterns.extend(extra_patterns)

    def add_pattern(self, pattern: SensitiveDataPattern) -> None:
        self.patterns.append(pattern)

    def sanitize_string(self, text: str) -> str:
        """
        Redact every secret found in text.

        Args:
            text: Text to sanitize

        Returns:
            Sanitized text
        """
        if not text:
            return text

        spans = []
        for pattern in self.patterns:
            for match in pattern.matches(text):
                start, end = match.span(pattern.group)
                spans.append((start, end, pattern))

        # Apply from the end so earlier offsets stay valid; skip overlaps
        spans.sort(key=lambda item: item[0], reverse=True)
        result = text
        last_start = len(text) + 1
        for start, end, pattern in spans:
            if end > last_start:
                continue
            result = result[:start] + self._replacement(text[start:end], pattern) + result[end:]
            last_start = start
        return result

    @staticmethod
    def _replacement(matched_text: str, pattern: SensitiveDataPattern) -> str:
        if pattern.redaction_method == RedactionMethod.MASK:
            return "*" * len(matched_text)
        if pattern.redaction_method == RedactionMethod.HASH:
            digest = hashlib.sha256(matched_text.encode()).hexdigest()[:8]
            return f"[HASH:{digest}]"
        return pattern.placeholder

    def sanitize_dict(self, data: Dict[str, Any], max_depth: int = 10) -> Dict[str, Any]:
        """
        Sanitize a dictionary recursively; values under secret-looking keys
        are replaced outright.

        Returns:
            Sanitized dictionary (copy)
        """
        if max_depth <= 0:
            logger.warning("Max recursion depth reached in sanitize_dict")
            return data

        result = deepcopy(data)
        for key, value in result.items():
            result[key] = self._sanitize_value(value, key, max_depth)
        return result

    def _sanitize_value(self, value: Any, key: Optional[str], max_depth: int) -> Any:
        if key and isinstance(value, str) and value and self._is_secret_key(key):
            return "[REDACTED]"
        if isinstance(value, str):
            return self.sanitize_string(value)
        if isinstance(value, dict):
            return self.sanitize_dict(value, max_depth - 1)
        if isinstance(value, list):
            return [self._sanitize_value(item, None, max_depth) for item in value]
        return value

    @staticmethod
    def _is_secret_key(key: str) -> bool:
        key_lower = str(key).lower()
        return any(secret in key_lower for secret in SECRET_KEYS)

    def sanitize_log_record(self, record: logging.LogRecord) -> logging.LogRecord:
        """Sanitize a log record's message and args in place."""
        if record.args:
            record.msg = record.getMessage()
            record.args = None
        record.msg = self.sanitize_string(str(record.msg))
        return record


_default_sanitizer = DataSanitizer()


def sanitize_string(text: str) -> str:
    """Sanitize a string using default patterns."""
    return _default_sanitizer.sanitize_string(text)


def sanitize_dict(data: Dict[str, Any]) -> Dict[str, Any]:
    """Sanitize a dictionary using default patterns."""
    return _default_sanitizer.sanitize_dict(data)

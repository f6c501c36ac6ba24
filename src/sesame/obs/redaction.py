"""Redaction utilities – strip secrets from log payloads."""

from __future__ import annotations

import re
from collections.abc import Callable, Sequence

# Header names that must never appear in logs.
_SENSITIVE_HEADERS = frozenset(
    {
        "authorization",
        "cookie",
        "set-cookie",
        "set-login",
    }
)

# Patterns matched in values.
_SECRET_PATTERNS: list[re.Pattern[str]] = [
    re.compile(r"eyJ[A-Za-z0-9_-]{10,}\.[A-Za-z0-9_-]+(?:\.[A-Za-z0-9_-]+)?"),  # JWT-like
    # session cookie values, under any cookie name containing "session"
    re.compile(r"([\w-]*session[\w-]*=)[^;\s]+", re.IGNORECASE),
]


def _sub(pattern: re.Pattern[str], value: str) -> str:
    if pattern.groups:
        return pattern.sub(r"\1[REDACTED]", value)
    return pattern.sub("[REDACTED]", value)


def redact_headers(headers: dict[str, str]) -> dict[str, str]:
    """Return a copy of *headers* with sensitive entries masked."""
    out: dict[str, str] = {}
    for k, v in headers.items():
        if k.lower() in _SENSITIVE_HEADERS:
            out[k] = "[REDACTED]"
        else:
            out[k] = v
    return out


def redact_value(value: str) -> str:
    """Replace known secret patterns in *value* with ``[REDACTED]``."""
    result = value
    for pat in _SECRET_PATTERNS:
        result = _sub(pat, result)
    return result


def make_redactor(
    extra_patterns: Sequence[re.Pattern[str]] | None = None,
) -> Callable[[str], str]:
    """Build a redactor function, optionally extending the default patterns."""
    patterns = list(_SECRET_PATTERNS)
    if extra_patterns:
        patterns.extend(extra_patterns)

    def _redact(value: str) -> str:
        result = value
        for pat in patterns:
            result = _sub(pat, result)
        return result

    return _redact

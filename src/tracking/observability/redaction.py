"""Redaction helpers for safe logging. All event data must pass through these.

Event payloads carry contact details (email, phone) and client IPs. Logs may
show which fields were present and how a payload was shaped, never the
values themselves.
"""

import re
from typing import Any, Iterable, Mapping

_REDACTED = "[REDACTED]"

# Applied in order; email first so its digits are not taken for a phone
_PII_PATTERNS = (
    re.compile(r"[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}"),
    re.compile(r"\b(?:[0-9a-fA-F]{1,4}:){3,7}[0-9a-fA-F]{0,4}\b"),
    re.compile(r"\b(?:\d{1,3}\.){3}\d{1,3}\b"),
    re.compile(r"\+?\d[\d\s\-()]{8,}\d"),
)


def redact_string(value: str) -> str:
    """Replace emails, IP addresses and phone numbers in value."""
    for pattern in _PII_PATTERNS:
        value = pattern.sub(_REDACTED, value)
    return value


def redact_value(value: Any) -> str:
    """Log-safe string for any value.

    Scalars keep their value (strings after redact_string); mappings are
    reduced to their sorted keys and sequences to their length.
    """
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float)):
        return str(value)
    if isinstance(value, str):
        return redact_string(value)
    if isinstance(value, Mapping):
        return f"dict(keys={sorted(str(k) for k in value)})"
    if isinstance(value, (list, tuple, set, frozenset)):
        return f"list(len={len(value)})"
    return f"<{type(value).__name__}>"


def safe_log_context(**kwargs: Any) -> dict[str, str]:
    """Build a context dict safe for logging. All values are redacted."""
    return {k: redact_value(v) for k, v in kwargs.items()}


def present_fields(payload: Mapping[str, Any], fields: Iterable[str]) -> list[str]:
    """Names among fields that carry a value in payload (not None or "")."""
    return [f for f in fields if payload.get(f) not in (None, "")]

"""
core/sanitize.py -- Input sanitization for user-supplied strings.

Every string that is persisted from a request body passes through sanitize()
or sanitize_object() first. Tag stripping is deliberately blunt: anything that
looks like <...> is removed. Rendering layers still escape output; this only
keeps markup and oversized payloads out of the database.
"""

from __future__ import annotations

import re
from typing import Any

_TAG_RE = re.compile(r"<[^>]*>")
_EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


def strip_tags(value: str) -> str:
    """Remove anything resembling a markup tag and trim surrounding whitespace."""
    return _TAG_RE.sub("", value).strip()


def sanitize(value: Any, max_length: int = 1000) -> str:
    """Strip tags, trim, and truncate to max_length. Non-strings become ""."""
    if not isinstance(value, str):
        return ""
    return strip_tags(value)[:max_length]


def sanitize_object(obj: dict[str, Any], max_length: int = 2000) -> dict[str, Any]:
    """Return a shallow copy with every top-level string value sanitized.

    Nested dicts and lists are left as-is; callers sanitize those explicitly.
    """
    cleaned = dict(obj)
    for key, value in cleaned.items():
        if isinstance(value, str):
            cleaned[key] = sanitize(value, max_length)
    return cleaned


def is_valid_email(email: str) -> bool:
    """Shape check only (local@domain.tld). Exotic valid addresses may fail."""
    return isinstance(email, str) and _EMAIL_RE.match(email) is not None


def is_non_empty(value: Any) -> bool:
    return isinstance(value, str) and value.strip() != ""

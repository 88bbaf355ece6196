"""Redaction of free-form payload fields before they leave the process."""

from __future__ import annotations

import re
from typing import Any

# Tool name -> fields whose values are replaced with a length placeholder.
SENSITIVE_FIELDS: dict[str, tuple[str, ...]] = {
    "write": ("content",),
    "edit": ("old_string", "new_string"),
}

_PLACEHOLDER_RE = re.compile(r"^\[REDACTED(: \d+ chars)?\]$")


def placeholder(value: Any) -> str:
    """Return the redaction marker for *value*."""
    text = value if isinstance(value, str) else str(value)
    return f"[REDACTED: {len(text)} chars]"


def _is_placeholder(value: Any) -> bool:
    return isinstance(value, str) and _PLACEHOLDER_RE.match(value) is not None


def redact(tool_name: str, params: Any) -> Any:
    """Return a copy of *params* with sensitive field values replaced.

    Keys are always kept. Values that are already placeholders are left
    alone, so redacting twice gives the same result. Anything that is not a
    dict is returned unchanged.
    """
    if not isinstance(params, dict):
        return params

    redacted = dict(params)
    for name in SENSITIVE_FIELDS.get(tool_name, ()):
        if name not in redacted or redacted[name] is None:
            continue
        if _is_placeholder(redacted[name]):
            continue
        try:
            redacted[name] = placeholder(redacted[name])
        except Exception:
            redacted[name] = "[REDACTED]"
    return redacted

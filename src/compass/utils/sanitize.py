"""Error message sanitization to keep credentials out of logs and the store."""

from __future__ import annotations

import os
import re

_SECRET_PATTERNS: tuple[tuple[str, str], ...] = (
    (r"sk-ant-[a-zA-Z0-9_-]+", "[REDACTED_KEY]"),
    (r"sk-[a-zA-Z0-9_-]{20,}", "[REDACTED_KEY]"),
    (r"Bearer\s+\S+", "Bearer [REDACTED]"),
    (r"x-api-key:\s*\S+", "x-api-key: [REDACTED]"),
    (r"Authorization:\s*\S+", "Authorization: [REDACTED]"),
)

MAX_ERROR_LENGTH = 500


def sanitize_error(message: str) -> str:
    """Redact API keys and home paths, and cap the length."""
    if not message:
        return message

    sanitized = message
    for pattern, replacement in _SECRET_PATTERNS:
        sanitized = re.sub(pattern, replacement, sanitized)

    home = os.environ.get("HOME") or os.environ.get("USERPROFILE") or ""
    if home:
        sanitized = sanitized.replace(home, "[USER_HOME]")

    if len(sanitized) > MAX_ERROR_LENGTH:
        sanitized = sanitized[:MAX_ERROR_LENGTH] + "..."
    return sanitized

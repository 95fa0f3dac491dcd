"""Clean agent stderr before it lands in error messages and logs.

Agent CLIs colour their output, echo request headers on auth failures and
sometimes dump their environment. Previews drop terminal escapes, mask
credentials and keep the tail, where the actual error usually is.
"""

from __future__ import annotations

import re

_ANSI_ESCAPE = re.compile(r"\x1b\[[0-9;?]*[A-Za-z]|\x1b\][^\x07]*\x07")
_BLANK_LINES = re.compile(r"\n\s*\n+")

_SECRET_PATTERNS: tuple[tuple[re.Pattern[str], str], ...] = (
    # sk-ant-api03-..., sk-ant-oat01-... and plain sk-... keys
    (re.compile(r"\bsk-(?:ant-)?[A-Za-z0-9_\-]{8,}"), "[redacted-key]"),
    (
        re.compile(r"(?i)\b(authorization:\s*bearer|x-api-key:)\s*\S+"),
        r"\1 [redacted]",
    ),
    (
        re.compile(r"(?i)\b([A-Z0-9_]*(?:API_KEY|TOKEN|SECRET))\s*[=:]\s*['\"]?[^\s'\"&]+['\"]?"),
        r"\1=[redacted]",
    ),
)


def strip_terminal_escapes(text: str) -> str:
    return _ANSI_ESCAPE.sub("", text)


def redact_credentials(text: str) -> str:
    for pattern, replacement in _SECRET_PATTERNS:
        text = pattern.sub(replacement, text)
    return text


def sanitize_preview(text: str, *, max_chars: int) -> str:
    """Plain, credential-free stderr tail of at most ``max_chars`` characters."""

    compact = _BLANK_LINES.sub("\n", strip_terminal_escapes(text)).strip()
    if not compact:
        return ""
    redacted = redact_credentials(compact)
    if len(redacted) <= max_chars:
        return redacted
    return "..." + redacted[-max_chars:]

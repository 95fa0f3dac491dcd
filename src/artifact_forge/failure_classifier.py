"""Deterministic diagnosis of agent stderr for non-zero exits."""

from __future__ import annotations

from dataclasses import dataclass

_BILLING_OR_QUOTA_PATTERNS: tuple[str, ...] = (
    "quota",
    "insufficient",
    "billing",
    "credit balance",
    "usage limit",
)
_ACCESS_OR_AUTH_PATTERNS: tuple[str, ...] = (
    "unauthorized",
    "forbidden",
    "invalid api key",
    "authentication",
    "please run /login",
    "not logged in",
)
_MODEL_NOT_AVAILABLE_PATTERNS: tuple[str, ...] = (
    "model not found",
    "unknown model",
    "invalid model",
    "model is not available",
)
_RATE_LIMIT_PATTERNS: tuple[str, ...] = (
    "too many requests",
    "rate limit",
    "429",
    "overloaded",
    "try again later",
)
_TRANSIENT_PATTERNS: tuple[str, ...] = (
    "temporarily unavailable",
    "connection reset",
    "network error",
    "could not resolve host",
    "etimedout",
    "econnreset",
)

_RULES: tuple[tuple[str, tuple[str, ...], str], ...] = (
    ("billing_or_quota", _BILLING_OR_QUOTA_PATTERNS, "Check the agent account quota or billing."),
    ("access_or_auth", _ACCESS_OR_AUTH_PATTERNS, "Log in to the agent CLI or fix its API key."),
    (
        "model_not_available",
        _MODEL_NOT_AVAILABLE_PATTERNS,
        "Check ARTIFACT_FORGE_MODEL_* settings.",
    ),
    ("rate_limit", _RATE_LIMIT_PATTERNS, "Lower --limit to reduce parallel agents."),
    ("transient", _TRANSIENT_PATTERNS, "Network problem; a retry may succeed."),
)


@dataclass(slots=True)
class StderrDiagnosis:
    """Best-effort reason for an agent failure."""

    reason_code: str
    matched_pattern: str | None
    hint: str | None

    @property
    def is_known(self) -> bool:
        return self.matched_pattern is not None


def diagnose_agent_failure(*, exit_code: int, stdout: str, stderr: str) -> StderrDiagnosis:
    """Classify a non-zero agent exit by scanning its output streams."""

    haystack = f"{stderr}\n{stdout}".lower()
    for reason_code, patterns, hint in _RULES:
        pattern = _first_match(haystack, patterns)
        if pattern is not None:
            return StderrDiagnosis(reason_code=reason_code, matched_pattern=pattern, hint=hint)

    if exit_code in {137, 143}:
        return StderrDiagnosis(
            reason_code="killed",
            matched_pattern=None,
            hint="Agent process was killed by a signal.",
        )
    return StderrDiagnosis(reason_code="unknown", matched_pattern=None, hint=None)


def _first_match(haystack: str, patterns: tuple[str, ...]) -> str | None:
    for pattern in patterns:
        if pattern in haystack:
            return pattern
    return None

from __future__ import annotations

import allure

from artifact_forge.failure_classifier import diagnose_agent_failure
from artifact_forge.sanitization import (
    redact_credentials,
    sanitize_preview,
    strip_terminal_escapes,
)

pytestmark = [
    allure.epic("Agent Orchestration"),
    allure.feature("Failure Diagnostics"),
]


def test_billing_wins_over_rate_limit() -> None:
    diagnosis = diagnose_agent_failure(
        exit_code=1,
        stdout="",
        stderr="429: usage limit reached for your plan",
    )

    assert diagnosis.reason_code == "billing_or_quota"
    assert diagnosis.matched_pattern == "usage limit"
    assert diagnosis.is_known


def test_auth_failure_found_in_stdout() -> None:
    diagnosis = diagnose_agent_failure(exit_code=1, stdout="Not logged in", stderr="")

    assert diagnosis.reason_code == "access_or_auth"
    assert diagnosis.hint is not None


def test_unknown_model() -> None:
    diagnosis = diagnose_agent_failure(exit_code=1, stdout="", stderr="Error: invalid model 'x'")

    assert diagnosis.reason_code == "model_not_available"


def test_signal_exit_without_known_pattern() -> None:
    diagnosis = diagnose_agent_failure(exit_code=137, stdout="", stderr="")

    assert diagnosis.reason_code == "killed"
    assert not diagnosis.is_known


def test_unmatched_failure_is_unknown() -> None:
    diagnosis = diagnose_agent_failure(exit_code=2, stdout="", stderr="segfault")

    assert diagnosis.reason_code == "unknown"
    assert diagnosis.hint is None


def test_sanitize_preview_redacts_agent_credentials() -> None:
    text = (
        "Request failed: 401\n"
        "authorization: Bearer abcdef1234567890\n"
        "x-api-key: sk-ant-REDACTED\n"
        "ANTHROPIC_API_KEY=sk-ant-REDACTED\n"
        "CLAUDE_CODE_OAUTH_TOKEN='tok_987654321'\n"
        "GET https://api.example.com/v1?token=abc123&page=2"
    )

    preview = sanitize_preview(text, max_chars=500)

    secrets = ("abcdef1234567890", "secretvalue123", "othersecret456", "tok_987654321", "abc123")
    for secret in secrets:
        assert secret not in preview
    assert "authorization: Bearer [redacted]" in preview
    assert "ANTHROPIC_API_KEY=[redacted]" in preview
    assert "page=2" in preview
    assert preview.startswith("Request failed: 401")


def test_sanitize_preview_strips_terminal_escapes_and_blank_lines() -> None:
    text = "\x1b[1;31mError:\x1b[0m model not found\n\n\n\x1b]0;claude\x07retrying\n"

    assert sanitize_preview(text, max_chars=500) == "Error: model not found\nretrying"
    assert strip_terminal_escapes("\x1b[2K\x1b[?25lplain") == "plain"


def test_redact_credentials_leaves_ordinary_prose() -> None:
    text = "Used 1200 tokens; task-1234567890 finished"

    assert redact_credentials(text) == text


def test_sanitize_preview_keeps_the_tail_and_handles_empty() -> None:
    assert sanitize_preview("progress " * 5 + "fatal: quota", max_chars=12) == "...fatal: quota"
    assert sanitize_preview("   \n", max_chars=10) == ""

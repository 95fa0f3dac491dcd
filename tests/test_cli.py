from __future__ import annotations

import json
from pathlib import Path

import allure
from click.testing import CliRunner

from artifact_forge.main import artifact_forge

pytestmark = [
    allure.epic("Batch Runs"),
    allure.feature("CLI"),
]


def _write_batch(tmp_path: Path, tasks: list[dict], **extra) -> Path:
    path = tmp_path / "batch.json"
    path.write_text(json.dumps({"tasks": tasks, **extra}), "utf-8")
    return path


def test_run_writes_artifacts_with_echo_agent(tmp_path: Path, echo_agent: str) -> None:
    batch = _write_batch(
        tmp_path,
        [
            {
                "id": "inbox",
                "prompt": "[[echo-agent:preamble]] Build the inbox.",
                "output": "inbox.html",
            },
            {
                "id": "detail",
                "prompt": "[[echo-agent:fail-first]] Build detail.",
                "output": "detail.html",
            },
            {
                "id": "notes",
                "prompt": "[[echo-agent:markdown]]",
                "output": "notes.md",
                "kind": "text",
            },
        ],
        coverage={"expected": ["inbox.html", "detail.html", "notes.md"], "label": "artifacts"},
    )

    result = CliRunner().invoke(artifact_forge, ["run", str(batch), "--limit", "2"])

    assert result.exit_code == 0, result.output
    assert "[ok] inbox -> outputs/inbox.html (attempts=1, extracted)" in result.output
    assert "[ok] detail -> outputs/detail.html (attempts=2)" in result.output
    assert "Summary: total=3 succeeded=3 failed=0 extracted=1" in result.output
    assert "artifacts: 3/3 produced (100%)" in result.output
    assert "Run status: passed" in result.output
    assert (tmp_path / "outputs" / "inbox.html").read_text("utf-8").startswith("<!DOCTYPE html>")
    assert (tmp_path / "outputs" / "notes.md").read_text("utf-8").startswith("# Echo report")


def test_run_fails_on_exhausted_task_unless_forced(tmp_path: Path, echo_agent: str) -> None:
    batch = _write_batch(
        tmp_path,
        [{"id": "broken", "prompt": "[[echo-agent:exit=2]] Build it.", "output": "broken.html"}],
    )

    failed = CliRunner().invoke(artifact_forge, ["run", str(batch)])

    assert failed.exit_code == 1
    assert "[failed] broken: exhausted_retries - Agent exited with code 2" in failed.output
    assert "Failures: exhausted_retries=1" in failed.output
    assert not (tmp_path / "outputs" / "broken.html").exists()

    forced = CliRunner().invoke(artifact_forge, ["run", str(batch), "--force"])

    assert forced.exit_code == 0, forced.output
    assert "Run status: passed" in forced.output


def test_run_dry_run_lists_tasks_without_invoking(tmp_path: Path) -> None:
    batch = _write_batch(
        tmp_path,
        [
            {
                "id": "inbox",
                "prompt": "Build the inbox.",
                "output": "screens/inbox.html",
                "model_tier": "high",
                "checks": ["minimum_length"],
            },
        ],
    )

    result = CliRunner().invoke(artifact_forge, ["run", str(batch), "--dry-run"])

    assert result.exit_code == 0, result.output
    assert "Dry run:" in result.output
    assert (
        "  inbox kind=markup tier=high timeout=300s read=no checks=minimum_length "
        "output=outputs/screens/inbox.html"
    ) in result.output
    assert not (tmp_path / "outputs").exists()


def test_run_reports_batch_file_errors(tmp_path: Path) -> None:
    batch = _write_batch(tmp_path, [{"id": "a", "output": "a.html"}])

    result = CliRunner().invoke(artifact_forge, ["run", str(batch)])

    assert result.exit_code == 1
    assert "tasks[0]: 'prompt' or 'prompt_file' is required" in result.output


def test_run_reports_invalid_configuration(tmp_path: Path, monkeypatch) -> None:
    batch = _write_batch(tmp_path, [{"id": "a", "prompt": "x", "output": "a.html"}])
    monkeypatch.setenv("ARTIFACT_FORGE_MAX_ATTEMPTS", "0")

    result = CliRunner().invoke(artifact_forge, ["run", str(batch)])

    assert result.exit_code == 1
    assert "ARTIFACT_FORGE_MAX_ATTEMPTS must be > 0." in result.output


def test_coverage_command_summary_and_threshold(tmp_path: Path) -> None:
    brief = tmp_path / "brief.md"
    brief.write_text("| 1.1 | **Inbox** |\n| 1.2 | Detail |\n", "utf-8")
    produced = tmp_path / "screens"
    produced.mkdir()
    (produced / "inbox.html").write_text("<html></html>", "utf-8")
    (produced / "legacy.html").write_text("<html></html>", "utf-8")

    result = CliRunner().invoke(
        artifact_forge,
        ["coverage", "--brief", str(brief), "--produced", str(produced)],
    )

    assert result.exit_code == 0, result.output
    assert result.output.splitlines() == [
        "screens: 2/2 produced (50%)",
        "  Missing: detail.html",
        "  Extra: legacy.html",
    ]

    gated = CliRunner().invoke(
        artifact_forge,
        ["coverage", "--brief", str(brief), "--produced", str(produced), "--fail-under", "80"],
    )
    assert gated.exit_code == 1
    assert "Coverage 50% is below the required 80%" in gated.output


def test_coverage_command_detailed_inventory(tmp_path: Path) -> None:
    expected = tmp_path / "expected.json"
    expected.write_text(json.dumps(["inbox.html"]), "utf-8")
    inventory = tmp_path / "inventory.json"
    inventory.write_text(
        json.dumps({"screens": ["inbox.html"], "screenComponents": {"inbox.html": ["card"]}}),
        "utf-8",
    )

    result = CliRunner().invoke(
        artifact_forge,
        [
            "coverage",
            "--brief",
            str(expected),
            "--produced",
            str(inventory),
            "--detailed",
            "--label",
            "screens",
        ],
    )

    assert result.exit_code == 0, result.output
    assert "=== Detailed coverage: screens ===" in result.output
    assert "  card: 1 artifacts" in result.output


def test_agent_check_with_echo_agent(echo_agent: str) -> None:
    result = CliRunner().invoke(
        artifact_forge,
        ["agent", "check", "--prompt", "[[echo-agent:say=OK]]"],
    )

    assert result.exit_code == 0, result.output
    assert "probe=ok run=ok" in result.output
    assert "Check status: passed" in result.output


def test_agent_check_reports_missing_agent(monkeypatch) -> None:
    monkeypatch.setenv("ARTIFACT_FORGE_AGENT_COMMAND", "definitely-not-an-agent-binary-7f3a")

    result = CliRunner().invoke(artifact_forge, ["agent", "check"])

    assert result.exit_code == 1
    assert "available=no" in result.output
    assert "Hint: install the agent CLI or set ARTIFACT_FORGE_AGENT_COMMAND." in result.output

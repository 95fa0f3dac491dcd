"""Lightweight smoke checks for the external agent CLI."""

from __future__ import annotations

import shlex
import shutil
import subprocess
from dataclasses import dataclass

from artifact_forge.backend import AgentInvocationError, CliAgentInvoker, InvocationRequest
from artifact_forge.config import AgentSettings
from artifact_forge.models import ExecutionOptions, ModelTier


@dataclass(slots=True)
class AgentSmokeResult:
    """One agent smoke-check result."""

    command: str
    available: bool
    probe_ok: bool
    run_ok: bool
    skipped_run: bool
    error: str | None
    stdout_preview: str


def run_smoke_check(
    *,
    settings: AgentSettings,
    prompt: str | None,
    expect_substring: str,
    timeout_seconds: float,
    model_tier: ModelTier = ModelTier.LOW,
) -> AgentSmokeResult:
    """Probe the agent command and optionally run one synthetic prompt through the invoker."""

    argv = shlex.split(settings.command)
    if not argv or shutil.which(argv[0]) is None:
        return AgentSmokeResult(
            command=settings.command,
            available=False,
            probe_ok=False,
            run_ok=False,
            skipped_run=True,
            error=f"Executable not found in PATH: {argv[0] if argv else settings.command!r}",
            stdout_preview="",
        )

    probe_ok, probe_error, probe_stdout = _run_probe(argv=argv, timeout_seconds=timeout_seconds)
    if not probe_ok or prompt is None:
        return AgentSmokeResult(
            command=settings.command,
            available=True,
            probe_ok=probe_ok,
            run_ok=False,
            skipped_run=True,
            error=probe_error,
            stdout_preview=probe_stdout,
        )

    invoker = CliAgentInvoker(settings=settings)
    try:
        stdout = invoker.invoke(
            InvocationRequest(
                task_id="smoke",
                system_context="",
                user_prompt=prompt,
                options=ExecutionOptions(timeout_seconds=timeout_seconds, model_tier=model_tier),
            ),
        )
    except AgentInvocationError as error:
        return AgentSmokeResult(
            command=settings.command,
            available=True,
            probe_ok=True,
            run_ok=False,
            skipped_run=False,
            error=str(error),
            stdout_preview="",
        )

    run_ok = expect_substring in stdout
    return AgentSmokeResult(
        command=settings.command,
        available=True,
        probe_ok=True,
        run_ok=run_ok,
        skipped_run=False,
        error=(
            None
            if run_ok
            else f"Synthetic output missing expected substring: {expect_substring!r}"
        ),
        stdout_preview=_truncate(stdout),
    )


def _run_probe(*, argv: list[str], timeout_seconds: float) -> tuple[bool, str | None, str]:
    stdout = ""
    for flag in ("--version", "--help"):
        try:
            completed = subprocess.run(  # noqa: S603
                [*argv, flag],
                check=False,
                capture_output=True,
                text=True,
                stdin=subprocess.DEVNULL,
                timeout=timeout_seconds,
            )
        except subprocess.TimeoutExpired:
            return False, "Probe timed out.", ""
        except OSError as error:
            return False, f"Probe failed to start: {error}", ""

        stdout = _truncate(completed.stdout)
        if completed.returncode == 0:
            return True, None, stdout

    return False, "Probe command failed.", stdout


def _truncate(value: str, *, limit: int = 240) -> str:
    compact = value.strip().replace("\n", " ")
    if len(compact) <= limit:
        return compact
    return compact[:limit] + "..."

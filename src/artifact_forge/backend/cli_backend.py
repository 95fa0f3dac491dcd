"""Subprocess-based invoker for command-line agents."""

from __future__ import annotations

import shlex
import shutil
import subprocess
import threading
import time

from artifact_forge.backend.base import InvocationRequest
from artifact_forge.config import AgentSettings
from artifact_forge.failure_classifier import diagnose_agent_failure
from artifact_forge.models import ExecutionOptions, FailureClass
from artifact_forge.prompts import append_system_prompt, compose_prompt
from artifact_forge.sanitization import sanitize_preview

_KILL_REAP_SECONDS = 5


class AgentInvocationError(RuntimeError):
    """Agent attempt failure with its normalized failure class."""

    failure_class = FailureClass.NON_ZERO_EXIT

    def __init__(self, message: str) -> None:
        super().__init__(message)


class AgentSpawnError(AgentInvocationError):
    """The agent process could not be started."""

    failure_class = FailureClass.SPAWN_FAILURE


class AgentTimeoutError(AgentInvocationError):
    """The agent process exceeded its time budget and was killed."""

    failure_class = FailureClass.TIMEOUT

    def __init__(self, message: str, *, timeout_seconds: float) -> None:
        super().__init__(message)
        self.timeout_seconds = timeout_seconds


class AgentExitError(AgentInvocationError):
    """The agent process ran but exited with a non-zero code."""

    failure_class = FailureClass.NON_ZERO_EXIT

    def __init__(self, message: str, *, exit_code: int, reason_code: str) -> None:
        super().__init__(message)
        self.exit_code = exit_code
        self.reason_code = reason_code


class AgentCanceledError(AgentInvocationError):
    """The batch was canceled while the agent process was running."""

    failure_class = FailureClass.CANCELED


class CliAgentInvoker:
    """Spawn one agent process per attempt, prompt on stdin, output from stdout."""

    def __init__(
        self,
        *,
        settings: AgentSettings,
        poll_interval_seconds: float = 0.1,
    ) -> None:
        self.settings = settings
        self.poll_interval_seconds = poll_interval_seconds

    def invoke(self, request: InvocationRequest) -> str:
        options = request.options
        argv = build_agent_args(
            command=self.settings.command,
            model=self.settings.model_for(options.model_tier),
            options=options,
        )
        payload = compose_prompt(
            request.system_context,
            request.user_prompt,
            allow_file_read=options.allow_file_read,
        )
        process = _spawn(argv)
        stdout, stderr = _communicate_with_deadline(
            process,
            payload=payload,
            timeout_seconds=options.timeout_seconds,
            poll_interval_seconds=self.poll_interval_seconds,
            cancel_event=request.cancel_event,
            task_id=request.task_id,
        )

        if process.returncode == 0:
            return stdout

        diagnosis = diagnose_agent_failure(
            exit_code=process.returncode,
            stdout=stdout,
            stderr=stderr,
        )
        preview = sanitize_preview(stderr, max_chars=self.settings.stderr_preview_chars)
        message = f"Agent exited with code {process.returncode}"
        if preview:
            message = f"{message}: {preview}"
        if diagnosis.hint is not None:
            message = f"{message} ({diagnosis.reason_code}: {diagnosis.hint})"
        raise AgentExitError(
            message,
            exit_code=process.returncode,
            reason_code=diagnosis.reason_code,
        )


def build_agent_args(*, command: str, model: str, options: ExecutionOptions) -> list[str]:
    """Render argv for one attempt; read access is the only capability ever granted."""

    argv = shlex.split(command.strip())
    if not argv:
        raise AgentSpawnError("Agent command is empty. Set ARTIFACT_FORGE_AGENT_COMMAND.")

    argv.extend(
        [
            "-p",
            "--model",
            model,
            "--tools",
            "Read" if options.allow_file_read else "",
            "--append-system-prompt",
            append_system_prompt(allow_file_read=options.allow_file_read),
        ],
    )
    if options.allow_file_read:
        for directory in options.extra_read_dirs:
            argv.extend(["--add-dir", directory])
    return argv


def _spawn(argv: list[str]) -> subprocess.Popen[str]:
    executable = shutil.which(argv[0])
    if executable is None:
        raise AgentSpawnError(
            f"Agent executable not found: {argv[0]}. "
            "Install the agent CLI or set ARTIFACT_FORGE_AGENT_COMMAND.",
        )
    try:
        return subprocess.Popen(  # noqa: S603
            [executable, *argv[1:]],
            stdin=subprocess.PIPE,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            text=True,
            encoding="utf-8",
            errors="replace",
        )
    except PermissionError as error:
        raise AgentSpawnError(f"Agent executable is not runnable: {executable}: {error}") from error
    except OSError as error:
        raise AgentSpawnError(f"Failed to spawn agent {executable}: {error}") from error


def _communicate_with_deadline(  # noqa: PLR0913
    process: subprocess.Popen[str],
    *,
    payload: str,
    timeout_seconds: float,
    poll_interval_seconds: float,
    cancel_event: threading.Event | None,
    task_id: str,
) -> tuple[str, str]:
    deadline = time.monotonic() + timeout_seconds
    pending_input: str | None = payload

    while True:
        if cancel_event is not None and cancel_event.is_set():
            _kill_process(process)
            raise AgentCanceledError(f"Agent run canceled for task {task_id}")

        remaining = deadline - time.monotonic()
        if remaining <= 0:
            _kill_process(process)
            raise AgentTimeoutError(
                f"Agent process timed out after {timeout_seconds:g}s",
                timeout_seconds=timeout_seconds,
            )

        try:
            # Buffered output survives TimeoutExpired; input is only sent on the first call.
            stdout, stderr = process.communicate(
                input=pending_input,
                timeout=min(poll_interval_seconds, remaining),
            )
        except subprocess.TimeoutExpired:
            pending_input = None
            continue
        return stdout or "", stderr or ""


def _kill_process(process: subprocess.Popen[str]) -> None:
    try:
        process.kill()
    except OSError:
        return
    try:
        process.communicate(timeout=_KILL_REAP_SECONDS)
    except subprocess.TimeoutExpired:
        return

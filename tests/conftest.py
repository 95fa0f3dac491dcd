"""Shared test fixtures."""

from __future__ import annotations

import shlex
import sys
import threading
from collections.abc import Callable, Sequence

import pytest

from artifact_forge.backend import InvocationRequest

ECHO_AGENT_COMMAND = f"{shlex.quote(sys.executable)} -m artifact_forge.backend.echo_agent"

VALID_HTML = (
    "<!DOCTYPE html>\n<html><head><title>t</title></head><body><h1>ok</h1></body></html>"
)

Response = str | Exception | Callable[[InvocationRequest], str]


class ScriptedInvoker:
    """In-process invoker replaying scripted responses per task id."""

    def __init__(self, responses: dict[str, Sequence[Response]] | None = None) -> None:
        self.responses = {task_id: list(items) for task_id, items in (responses or {}).items()}
        self.default: Response = VALID_HTML
        self.requests: list[InvocationRequest] = []
        self._lock = threading.Lock()

    def invoke(self, request: InvocationRequest) -> str:
        with self._lock:
            self.requests.append(request)
            queue = self.responses.get(request.task_id)
            response = queue.pop(0) if queue else self.default
        if isinstance(response, Exception):
            raise response
        if callable(response):
            return response(request)
        return response

    def prompts_for(self, task_id: str) -> list[str]:
        return [request.user_prompt for request in self.requests if request.task_id == task_id]


@pytest.fixture()
def scripted_invoker() -> type[ScriptedInvoker]:
    return ScriptedInvoker


@pytest.fixture()
def echo_agent(monkeypatch) -> str:
    """Point the agent command at the local deterministic echo agent."""

    monkeypatch.setenv("ARTIFACT_FORGE_AGENT_COMMAND", ECHO_AGENT_COMMAND)
    return ECHO_AGENT_COMMAND


@pytest.fixture(autouse=True)
def _isolated_config(monkeypatch, tmp_path) -> None:
    """Keep tests independent of a developer's env and ./artifact-forge.json."""

    for name in (
        "ARTIFACT_FORGE_AGENT_COMMAND",
        "ARTIFACT_FORGE_MODEL_LOW",
        "ARTIFACT_FORGE_MODEL_MID",
        "ARTIFACT_FORGE_MODEL_HIGH",
        "ARTIFACT_FORGE_STDERR_PREVIEW_CHARS",
        "ARTIFACT_FORGE_MAX_PARALLEL_AGENTS",
        "ARTIFACT_FORGE_MAX_ATTEMPTS",
        "ARTIFACT_FORGE_TIMEOUT_SECONDS",
        "ARTIFACT_FORGE_POLL_INTERVAL_SECONDS",
        "ARTIFACT_FORGE_OUTPUT_ROOT",
    ):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.chdir(tmp_path)

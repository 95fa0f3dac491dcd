"""Invoker interface for external agent execution."""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from typing import Protocol, runtime_checkable

from artifact_forge.models import ExecutionOptions


@dataclass(slots=True)
class InvocationRequest:
    """Inputs required to execute one agent attempt."""

    task_id: str
    system_context: str
    user_prompt: str
    options: ExecutionOptions = field(default_factory=ExecutionOptions)
    cancel_event: threading.Event | None = None


@runtime_checkable
class AgentInvoker(Protocol):
    """Protocol implemented by agent invokers."""

    def invoke(self, request: InvocationRequest) -> str:
        """Run one attempt and return raw agent stdout."""

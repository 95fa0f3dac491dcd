"""Agent invoker implementations."""

from artifact_forge.backend.base import AgentInvoker, InvocationRequest
from artifact_forge.backend.cli_backend import (
    AgentCanceledError,
    AgentExitError,
    AgentInvocationError,
    AgentSpawnError,
    AgentTimeoutError,
    CliAgentInvoker,
)

__all__ = [
    "AgentCanceledError",
    "AgentExitError",
    "AgentInvocationError",
    "AgentInvoker",
    "AgentSpawnError",
    "AgentTimeoutError",
    "CliAgentInvoker",
    "InvocationRequest",
]

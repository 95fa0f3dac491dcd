"""Runtime configuration for agent invocation and worker orchestration."""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from artifact_forge.models import ModelTier

DEFAULT_CONFIG_FILENAME = "artifact-forge.json"


@dataclass(slots=True)
class AgentSettings:
    """External agent command prefix and model mapping."""

    command: str = "claude"
    model_low: str = "haiku"
    model_mid: str = "sonnet"
    model_high: str = "opus"
    stderr_preview_chars: int = 2_000

    def model_for(self, tier: ModelTier) -> str:
        """Resolve the agent model name for a capability tier."""

        return {
            ModelTier.LOW: self.model_low,
            ModelTier.MID: self.model_mid,
            ModelTier.HIGH: self.model_high,
        }[tier]


@dataclass(slots=True)
class WorkerSettings:
    """Scheduler and retry tunables."""

    max_parallel_agents: int = 10
    max_attempts: int = 2
    timeout_seconds: float = 300.0
    poll_interval_seconds: float = 0.1


@dataclass(slots=True)
class Settings:
    """Application settings, built once at startup and passed explicitly."""

    agent: AgentSettings = field(default_factory=AgentSettings)
    workers: WorkerSettings = field(default_factory=WorkerSettings)
    output_root: Path = Path("outputs")

    @classmethod
    def from_env(cls, config_path: Path | None = None) -> Settings:
        """Load settings from an optional JSON file, then environment overrides."""

        file_values = _load_config_file(config_path)
        agent_values = _section(file_values, "agent")
        worker_values = _section(file_values, "workers")
        agent_defaults = AgentSettings()
        worker_defaults = WorkerSettings()

        return cls(
            agent=AgentSettings(
                command=os.getenv(
                    "ARTIFACT_FORGE_AGENT_COMMAND",
                    str(agent_values.get("command", agent_defaults.command)),
                ),
                model_low=os.getenv(
                    "ARTIFACT_FORGE_MODEL_LOW",
                    str(agent_values.get("model_low", agent_defaults.model_low)),
                ),
                model_mid=os.getenv(
                    "ARTIFACT_FORGE_MODEL_MID",
                    str(agent_values.get("model_mid", agent_defaults.model_mid)),
                ),
                model_high=os.getenv(
                    "ARTIFACT_FORGE_MODEL_HIGH",
                    str(agent_values.get("model_high", agent_defaults.model_high)),
                ),
                stderr_preview_chars=_env_int(
                    "ARTIFACT_FORGE_STDERR_PREVIEW_CHARS",
                    agent_values.get("stderr_preview_chars", agent_defaults.stderr_preview_chars),
                ),
            ),
            workers=WorkerSettings(
                max_parallel_agents=_env_int(
                    "ARTIFACT_FORGE_MAX_PARALLEL_AGENTS",
                    worker_values.get(
                        "max_parallel_agents",
                        file_values.get("maxParallelAgents", worker_defaults.max_parallel_agents),
                    ),
                ),
                max_attempts=_env_int(
                    "ARTIFACT_FORGE_MAX_ATTEMPTS",
                    worker_values.get("max_attempts", worker_defaults.max_attempts),
                ),
                timeout_seconds=_env_float(
                    "ARTIFACT_FORGE_TIMEOUT_SECONDS",
                    worker_values.get("timeout_seconds", worker_defaults.timeout_seconds),
                ),
                poll_interval_seconds=_env_float(
                    "ARTIFACT_FORGE_POLL_INTERVAL_SECONDS",
                    worker_values.get(
                        "poll_interval_seconds",
                        worker_defaults.poll_interval_seconds,
                    ),
                ),
            ),
            output_root=Path(
                os.getenv(
                    "ARTIFACT_FORGE_OUTPUT_ROOT",
                    str(file_values.get("output_root", "outputs")),
                ),
            ),
        )

    def validate(self) -> None:
        """Raise configuration error if any limit is out of range."""

        if not self.agent.command.strip():
            raise ValueError("ARTIFACT_FORGE_AGENT_COMMAND must not be empty.")
        for tier in ModelTier:
            if not self.agent.model_for(tier).strip():
                raise ValueError(f"Empty model name for tier={tier.value!r}")
        if self.agent.stderr_preview_chars <= 0:
            raise ValueError("ARTIFACT_FORGE_STDERR_PREVIEW_CHARS must be > 0.")
        if self.workers.max_parallel_agents <= 0:
            raise ValueError("ARTIFACT_FORGE_MAX_PARALLEL_AGENTS must be > 0.")
        if self.workers.max_attempts <= 0:
            raise ValueError("ARTIFACT_FORGE_MAX_ATTEMPTS must be > 0.")
        if self.workers.timeout_seconds <= 0:
            raise ValueError("ARTIFACT_FORGE_TIMEOUT_SECONDS must be > 0.")
        if self.workers.poll_interval_seconds <= 0:
            raise ValueError("ARTIFACT_FORGE_POLL_INTERVAL_SECONDS must be > 0.")


def _load_config_file(config_path: Path | None) -> dict[str, Any]:
    path = config_path or Path.cwd() / DEFAULT_CONFIG_FILENAME
    if not path.exists():
        if config_path is not None:
            raise ValueError(f"Config file not found: {config_path}")
        return {}
    try:
        payload = json.loads(path.read_text("utf-8"))
    except json.JSONDecodeError as error:
        raise ValueError(f"Config file is not valid JSON: {path}: {error}") from error
    if not isinstance(payload, dict):
        raise ValueError(f"Config file must contain a JSON object: {path}")
    return payload


def _section(values: dict[str, Any], name: str) -> dict[str, Any]:
    raw = values.get(name, {})
    if not isinstance(raw, dict):
        raise ValueError(f"Config section {name!r} must be an object.")
    return raw


def _env_int(name: str, default: Any) -> int:
    value = os.getenv(name)
    raw = default if value is None else value
    try:
        return int(raw)
    except (TypeError, ValueError) as error:
        raise ValueError(f"Invalid integer value for {name}: {raw!r}") from error


def _env_float(name: str, default: Any) -> float:
    value = os.getenv(name)
    raw = default if value is None else value
    try:
        return float(raw)
    except (TypeError, ValueError) as error:
        raise ValueError(f"Invalid number value for {name}: {raw!r}") from error

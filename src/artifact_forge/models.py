"""Domain models for agent invocation, validation, retry and coverage."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum


class ModelTier(str, Enum):
    """Model capability tier requested from the external agent."""

    LOW = "low"
    MID = "mid"
    HIGH = "high"


class ArtifactKind(str, Enum):
    """Artifact families with distinct structural checks."""

    MARKUP = "markup"
    TEXT = "text"
    JSON = "json"


class FailureClass(str, Enum):
    """Normalized failure classes reported per task."""

    SPAWN_FAILURE = "spawn_failure"
    TIMEOUT = "timeout"
    NON_ZERO_EXIT = "non_zero_exit"
    VALIDATION_FAILURE = "validation_failure"
    EXHAUSTED_RETRIES = "exhausted_retries"
    CANCELED = "canceled"


class RetryStatus(str, Enum):
    """Per-task retry lifecycle states."""

    PENDING = "pending"
    ATTEMPTING = "attempting"
    SUCCEEDED = "succeeded"
    EXHAUSTED = "exhausted"


@dataclass(frozen=True, slots=True)
class ExecutionOptions:
    """Per-task execution knobs passed to the invoker."""

    timeout_seconds: float = 300.0
    allow_file_read: bool = False
    extra_read_dirs: tuple[str, ...] = ()
    model_tier: ModelTier = ModelTier.MID

    def __post_init__(self) -> None:
        if self.timeout_seconds <= 0:
            raise ValueError(f"timeout_seconds must be > 0, got {self.timeout_seconds!r}")


@dataclass(frozen=True, slots=True)
class AgentTask:
    """One independent unit of work: one prompt, one expected artifact."""

    task_id: str
    system_context: str
    user_prompt: str
    options: ExecutionOptions = field(default_factory=ExecutionOptions)
    artifact_kind: ArtifactKind = ArtifactKind.MARKUP


@dataclass(slots=True)
class InvocationResult:
    """Final outcome of one task after retries."""

    task_id: str
    output: str = ""
    error: str | None = None
    failure_class: FailureClass | None = None
    attempts: int = 0
    was_extracted: bool = False
    best_effort_output: str = ""

    @property
    def ok(self) -> bool:
        """Whether the task produced accepted output."""

        return bool(self.output) and self.error is None


@dataclass(slots=True)
class ValidationOutcome:
    """Accept/reject verdict plus cleaned content."""

    valid: bool
    content: str
    errors: list[str] = field(default_factory=list)
    was_extracted: bool = False


@dataclass(frozen=True, slots=True)
class AttemptOutcome:
    """What one invoke+validate attempt produced."""

    output: str = ""
    errors: tuple[str, ...] = ()
    failure_class: FailureClass | None = None
    was_extracted: bool = False

    @property
    def succeeded(self) -> bool:
        return bool(self.output) and not self.errors


@dataclass(frozen=True, slots=True)
class RetryState:
    """Retry bookkeeping owned by the retry controller for one task."""

    max_attempts: int
    attempt: int = 0
    last_errors: tuple[str, ...] = ()
    status: RetryStatus = RetryStatus.PENDING

    @property
    def is_terminal(self) -> bool:
        return self.status in {RetryStatus.SUCCEEDED, RetryStatus.EXHAUSTED}


@dataclass(slots=True)
class CoverageReport:
    """Completeness of a produced inventory against an expected one."""

    label: str
    expected_count: int
    produced_count: int
    coverage_percent: int
    missing: list[str] = field(default_factory=list)
    extra: list[str] = field(default_factory=list)


@dataclass(slots=True)
class DetailedCoverageReport(CoverageReport):
    """Coverage report with shared building-block usage counts."""

    component_usage: dict[str, int] = field(default_factory=dict)
    icon_usage: dict[str, int] = field(default_factory=dict)

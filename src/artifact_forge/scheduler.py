"""Concurrency-limited worker pool for independent agent tasks."""

from __future__ import annotations

import logging
import threading
from collections import Counter
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field

from artifact_forge.models import AgentTask, FailureClass, InvocationResult
from artifact_forge.retry import RetryController
from artifact_forge.validator import OutputValidator

logger = logging.getLogger(__name__)

ValidatorFactory = Callable[[AgentTask], OutputValidator | None]


@dataclass(slots=True)
class BatchSummary:
    """Aggregate per-batch counters for CLI reporting."""

    total: int = 0
    succeeded: int = 0
    failed: int = 0
    extracted: int = 0
    failure_counts: dict[str, int] = field(default_factory=dict)

    @classmethod
    def from_results(cls, results: Sequence[InvocationResult]) -> BatchSummary:
        failures = Counter(
            (result.failure_class.value if result.failure_class else "error")
            for result in results
            if not result.ok
        )
        succeeded = sum(1 for result in results if result.ok)
        return cls(
            total=len(results),
            succeeded=succeeded,
            failed=len(results) - succeeded,
            extracted=sum(1 for result in results if result.ok and result.was_extracted),
            failure_counts=dict(sorted(failures.items())),
        )


class _TaskCursor:
    """Shared index over the task list; each index is handed out exactly once."""

    def __init__(self, size: int, cancel_event: threading.Event) -> None:
        self._size = size
        self._next = 0
        self._lock = threading.Lock()
        self._cancel_event = cancel_event

    def claim(self) -> int | None:
        with self._lock:
            if self._cancel_event.is_set() or self._next >= self._size:
                return None
            index = self._next
            self._next += 1
            return index


class WorkerPool:
    """Run tasks through the retry controller with a bounded number in flight.

    Results are positionally aligned with the input tasks. A task failure is
    captured as data in its ``InvocationResult`` and never aborts siblings.
    """

    def __init__(self, controller: RetryController, *, limit: int) -> None:
        if limit < 1:
            raise ValueError(f"Concurrency limit must be >= 1, got {limit!r}")
        self.controller = controller
        self.limit = limit

    def run_all(
        self,
        tasks: Sequence[AgentTask],
        *,
        validator_for: ValidatorFactory | None = None,
        cancel_event: threading.Event | None = None,
    ) -> list[InvocationResult]:
        """Execute every task; the returned list matches ``tasks`` index for index."""

        _validate_batch(tasks)
        if not tasks:
            return []

        cancel = cancel_event or threading.Event()
        cursor = _TaskCursor(len(tasks), cancel)
        results: list[InvocationResult | None] = [None] * len(tasks)
        worker_count = min(self.limit, len(tasks))
        logger.info("Spawning %d workers (max %d parallel)...", len(tasks), self.limit)

        def _worker() -> None:
            while (index := cursor.claim()) is not None:
                task = tasks[index]
                try:
                    validator = validator_for(task) if validator_for is not None else None
                except Exception as error:  # noqa: BLE001
                    logger.exception("Task %s: validator setup failed", task.task_id)
                    results[index] = InvocationResult(
                        task_id=task.task_id,
                        error=f"Validator setup failed: {error}",
                    )
                    continue
                results[index] = self._process(task, validator=validator, cancel_event=cancel)

        threads = [
            threading.Thread(target=_worker, name=f"agent-worker-{number}", daemon=True)
            for number in range(worker_count)
        ]
        for thread in threads:
            thread.start()
        try:
            for thread in threads:
                thread.join()
        except KeyboardInterrupt:
            logger.warning("Interrupted; canceling in-flight agent tasks")
            cancel.set()
            for thread in threads:
                thread.join()
            raise

        return [
            result if result is not None else _not_started_result(tasks[index])
            for index, result in enumerate(results)
        ]

    def run_one(
        self,
        task: AgentTask,
        *,
        validator: OutputValidator | None = None,
        cancel_event: threading.Event | None = None,
    ) -> InvocationResult:
        """Execute a single task in the calling thread."""

        return self._process(task, validator=validator, cancel_event=cancel_event)

    def _process(
        self,
        task: AgentTask,
        *,
        validator: OutputValidator | None,
        cancel_event: threading.Event | None,
    ) -> InvocationResult:
        logger.info("Starting: %s", task.task_id)
        try:
            result = self.controller.run(task, validator=validator, cancel_event=cancel_event)
        except Exception as error:  # noqa: BLE001
            logger.exception("Task %s crashed", task.task_id)
            return InvocationResult(task_id=task.task_id, error=f"Unexpected error: {error}")

        if result.ok:
            logger.info("Completed: %s (attempts=%d)", task.task_id, result.attempts)
        else:
            logger.warning("Failed: %s - %s", task.task_id, result.error)
        return result


def _validate_batch(tasks: Sequence[AgentTask]) -> None:
    seen: set[str] = set()
    for index, task in enumerate(tasks):
        if not isinstance(task, AgentTask):
            raise TypeError(f"tasks[{index}] must be an AgentTask, got {type(task).__name__}")
        if task.task_id in seen:
            raise ValueError(f"Duplicate task id in batch: {task.task_id!r}")
        seen.add(task.task_id)


def _not_started_result(task: AgentTask) -> InvocationResult:
    return InvocationResult(
        task_id=task.task_id,
        error="Canceled before start",
        failure_class=FailureClass.CANCELED,
    )

from __future__ import annotations

import threading
import time

import allure
import pytest

from artifact_forge.backend import InvocationRequest
from artifact_forge.models import AgentTask, FailureClass
from artifact_forge.retry import RetryController
from artifact_forge.scheduler import BatchSummary, WorkerPool
from artifact_forge.validator import validate_markup_output

pytestmark = [
    allure.epic("Agent Orchestration"),
    allure.feature("Concurrency-Limited Scheduler"),
]


def _tasks(count: int) -> list[AgentTask]:
    return [
        AgentTask(task_id=f"screen-{index}", system_context="", user_prompt=f"screen {index}")
        for index in range(count)
    ]


def _html(label: str) -> str:
    return f"<!DOCTYPE html><html><body>{label}</body></html>"


class _InstrumentedInvoker:
    """Tracks how many invocations are in flight at once."""

    def __init__(self, *, delay: float = 0.02) -> None:
        self.delay = delay
        self.in_flight = 0
        self.max_in_flight = 0
        self._lock = threading.Lock()

    def invoke(self, request: InvocationRequest) -> str:
        with self._lock:
            self.in_flight += 1
            self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            time.sleep(self.delay)
            return _html(request.task_id)
        finally:
            with self._lock:
                self.in_flight -= 1


def test_results_are_positional_despite_latency(scripted_invoker) -> None:
    tasks = _tasks(4)
    delays = {"screen-0": 0.2, "screen-1": 0.0, "screen-2": 0.1, "screen-3": 0.05}

    def _respond(request: InvocationRequest) -> str:
        time.sleep(delays[request.task_id])
        return _html(request.task_id)

    invoker = scripted_invoker({task.task_id: [_respond] for task in tasks})
    pool = WorkerPool(RetryController(invoker), limit=4)

    results = pool.run_all(tasks, validator_for=lambda _task: validate_markup_output)

    assert [result.task_id for result in results] == [task.task_id for task in tasks]
    assert all(result.ok for result in results)
    assert [task.task_id in result.output for task, result in zip(tasks, results)] == [True] * 4


def test_in_flight_invocations_never_exceed_limit() -> None:
    invoker = _InstrumentedInvoker()
    pool = WorkerPool(RetryController(invoker), limit=3)

    results = pool.run_all(_tasks(10))

    assert len(results) == 10
    assert all(result.ok for result in results)
    assert 1 <= invoker.max_in_flight <= 3


def test_limit_one_runs_sequentially() -> None:
    invoker = _InstrumentedInvoker(delay=0.005)

    WorkerPool(RetryController(invoker), limit=1).run_all(_tasks(5))

    assert invoker.max_in_flight == 1


def test_one_failing_task_does_not_affect_siblings(scripted_invoker) -> None:
    invoker = scripted_invoker({"screen-1": ["no html here", "still no html"]})
    pool = WorkerPool(RetryController(invoker, max_attempts=2), limit=2)

    results = pool.run_all(_tasks(3), validator_for=lambda _task: validate_markup_output)

    assert [result.ok for result in results] == [True, False, True]
    assert results[1].failure_class == FailureClass.EXHAUSTED_RETRIES
    assert results[1].attempts == 2


def test_unexpected_invoker_crash_is_captured(scripted_invoker) -> None:
    invoker = scripted_invoker({"screen-0": [KeyError("boom")]})

    results = WorkerPool(RetryController(invoker), limit=2).run_all(_tasks(2))

    assert results[0].error == "Unexpected error: 'boom'"
    assert results[1].ok


def test_validator_factory_failure_is_per_task(scripted_invoker) -> None:
    def _factory(task: AgentTask):
        if task.task_id == "screen-0":
            raise RuntimeError("no checks configured")
        return validate_markup_output

    results = WorkerPool(RetryController(scripted_invoker()), limit=2).run_all(
        _tasks(2),
        validator_for=_factory,
    )

    assert results[0].error == "Validator setup failed: no checks configured"
    assert results[1].ok


def test_empty_batch_returns_empty_list(scripted_invoker) -> None:
    assert WorkerPool(RetryController(scripted_invoker()), limit=2).run_all([]) == []


def test_duplicate_task_ids_are_rejected(scripted_invoker) -> None:
    pool = WorkerPool(RetryController(scripted_invoker()), limit=2)
    tasks = [*_tasks(2), _tasks(1)[0]]

    with pytest.raises(ValueError, match="Duplicate task id"):
        pool.run_all(tasks)


def test_non_task_items_are_rejected(scripted_invoker) -> None:
    pool = WorkerPool(RetryController(scripted_invoker()), limit=2)

    with pytest.raises(TypeError, match=r"tasks\[0\]"):
        pool.run_all(["not a task"])  # type: ignore[list-item]


def test_limit_must_be_positive(scripted_invoker) -> None:
    with pytest.raises(ValueError, match="Concurrency limit"):
        WorkerPool(RetryController(scripted_invoker()), limit=0)


def test_canceled_batch_marks_unstarted_tasks(scripted_invoker) -> None:
    cancel = threading.Event()
    cancel.set()

    results = WorkerPool(RetryController(scripted_invoker()), limit=2).run_all(
        _tasks(3),
        cancel_event=cancel,
    )

    assert [result.failure_class for result in results] == [FailureClass.CANCELED] * 3
    assert all(result.error == "Canceled before start" for result in results)


def test_run_one_uses_calling_thread(scripted_invoker) -> None:
    seen: list[str] = []

    def _respond(request: InvocationRequest) -> str:
        seen.append(threading.current_thread().name)
        return _html(request.task_id)

    invoker = scripted_invoker({"screen-0": [_respond]})
    result = WorkerPool(RetryController(invoker), limit=4).run_one(_tasks(1)[0])

    assert result.ok
    assert seen == [threading.current_thread().name]


def test_batch_summary_counts_failures(scripted_invoker) -> None:
    invoker = scripted_invoker({"screen-1": ["plain", "plain"]})
    results = WorkerPool(RetryController(invoker), limit=3).run_all(
        _tasks(3),
        validator_for=lambda _task: validate_markup_output,
    )

    summary = BatchSummary.from_results(results)

    assert summary.total == 3
    assert summary.succeeded == 2
    assert summary.failed == 1
    assert summary.failure_counts == {"exhausted_retries": 1}

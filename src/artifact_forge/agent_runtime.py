"""Prefect tasks and flow for generating a batch of artifacts with CLI agents."""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass

from prefect import flow, task
from prefect.cache_policies import NO_CACHE

from artifact_forge.backend import AgentInvoker, CliAgentInvoker
from artifact_forge.config import Settings
from artifact_forge.contracts import BatchSpec
from artifact_forge.coverage import compare_inventories
from artifact_forge.models import CoverageReport, InvocationResult
from artifact_forge.retry import RetryController
from artifact_forge.scheduler import BatchSummary, WorkerPool
from artifact_forge.writer import ArtifactWriter, WriteOutcome, WriteStatus

logger = logging.getLogger(__name__)

_PERSISTED = frozenset({WriteStatus.WRITTEN, WriteStatus.FORCED})


@dataclass(slots=True)
class BatchRunResult:
    """Everything one batch run produced, for CLI rendering."""

    results: list[InvocationResult]
    writes: list[WriteOutcome]
    summary: BatchSummary
    coverage: CoverageReport | None
    elapsed_seconds: float


def build_worker_pool(
    settings: Settings,
    *,
    limit: int | None = None,
    invoker: AgentInvoker | None = None,
) -> WorkerPool:
    """Wire invoker -> retry controller -> pool from explicit settings."""

    agent_invoker = invoker or CliAgentInvoker(
        settings=settings.agent,
        poll_interval_seconds=settings.workers.poll_interval_seconds,
    )
    controller = RetryController(agent_invoker, max_attempts=settings.workers.max_attempts)
    return WorkerPool(controller, limit=limit or settings.workers.max_parallel_agents)


@task(cache_policy=NO_CACHE)
def run_batch_task(
    *,
    batch: BatchSpec,
    pool: WorkerPool,
    cancel_event: threading.Event | None = None,
) -> list[InvocationResult]:
    """Run every batch task through the pool; results align with ``batch.entries``."""

    return pool.run_all(batch.tasks, validator_for=batch.validator_for, cancel_event=cancel_event)


@task(cache_policy=NO_CACHE)
def persist_results_task(
    *,
    batch: BatchSpec,
    results: list[InvocationResult],
    writer: ArtifactWriter,
) -> list[WriteOutcome]:
    """Write accepted (or forced best-effort) outputs to their artifact paths."""

    writes = writer.write_all(batch.entries, results)
    logger.info(
        "Persisted %d/%d artifacts",
        sum(1 for outcome in writes if outcome.status in _PERSISTED),
        len(writes),
    )
    return writes


def batch_coverage(batch: BatchSpec) -> CoverageReport | None:
    """Coverage of the batch's artifact files on disk against its expected inventory."""

    if batch.coverage is None:
        return None
    produced = [entry.output_path.name for entry in batch.entries if entry.output_path.exists()]
    return compare_inventories(batch.coverage.expected, produced, label=batch.coverage.label)


@flow(name="generate_artifacts_flow", validate_parameters=False)
def generate_artifacts_flow(  # noqa: PLR0913
    *,
    batch: BatchSpec,
    settings: Settings,
    limit: int | None = None,
    force: bool = False,
    invoker: AgentInvoker | None = None,
    cancel_event: threading.Event | None = None,
    on_progress: Callable[[str], None] | None = None,
) -> BatchRunResult:
    """Run -> persist -> coverage for one parsed batch file.

    Per-task retries happen inside the retry controller; the Prefect tasks are
    not retried.
    """
    emit = on_progress or (lambda _: None)
    started = time.monotonic()
    pool = build_worker_pool(settings, limit=limit, invoker=invoker)
    emit(f"Batch {batch.source_path.name}: {len(batch.entries)} tasks, limit={pool.limit}")

    results = run_batch_task(batch=batch, pool=pool, cancel_event=cancel_event)
    writes = persist_results_task(
        batch=batch,
        results=results,
        writer=ArtifactWriter(force=force),
    )
    summary = BatchSummary.from_results(results)
    elapsed = time.monotonic() - started
    emit(f"Batch {batch.source_path.name} finished in {elapsed:.1f}s")
    return BatchRunResult(
        results=results,
        writes=writes,
        summary=summary,
        coverage=batch_coverage(batch),
        elapsed_seconds=elapsed,
    )

"""Controllers for artifact-forge CLI commands."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from artifact_forge.agent_runtime import BatchRunResult, generate_artifacts_flow
from artifact_forge.config import Settings
from artifact_forge.contracts import (
    BatchSpec,
    load_batch_file,
    load_expected_inventory,
    load_produced_inventory,
)
from artifact_forge.coverage import (
    build_detailed_report,
    render_coverage_lines,
    render_detailed_coverage_lines,
)
from artifact_forge.smoke import run_smoke_check
from artifact_forge.writer import WriteStatus


@dataclass(slots=True)
class RunBatchCommand:
    """CLI input for one batch run."""

    batch_file: Path
    config_path: Path | None = None
    limit: int | None = None
    force: bool = False
    dry_run: bool = False


@dataclass(slots=True)
class CoverageCommand:
    """CLI input for a coverage report."""

    brief: Path
    produced: Path
    detailed: bool = False
    label: str = ""
    extension: str = ".html"
    fail_under: int = 0


@dataclass(slots=True)
class AgentCheckCommand:
    """CLI input for the agent smoke check."""

    config_path: Path | None
    prompt: str | None
    expect_substring: str
    timeout_seconds: float


@dataclass(slots=True)
class CommandResult:
    """Report lines to render in CLI plus the exit verdict."""

    lines: list[str]
    success: bool


class ArtifactForgeCliController:
    """Coordinates batch runs, coverage reports and agent checks.

    Configuration and batch-file problems raise ``ValueError``; task failures
    are reported as lines.
    """

    def run_batch(self, command: RunBatchCommand) -> CommandResult:
        settings = _load_settings(command.config_path)
        if command.limit is not None and command.limit < 1:
            raise ValueError(f"--limit must be >= 1, got {command.limit}")
        batch = load_batch_file(
            command.batch_file,
            output_root=settings.output_root,
            default_timeout_seconds=settings.workers.timeout_seconds,
        )
        limit = command.limit or settings.workers.max_parallel_agents
        if command.dry_run:
            return CommandResult(lines=_dry_run_lines(batch, limit=limit), success=True)

        progress: list[str] = []
        run = generate_artifacts_flow(
            batch=batch,
            settings=settings,
            limit=limit,
            force=command.force,
            on_progress=progress.append,
        )
        lines = [*progress, *_run_lines(run)]
        success = run.summary.failed == 0 or command.force
        lines.append(f"Run status: {'passed' if success else 'failed'}")
        return CommandResult(lines=lines, success=success)

    def coverage(self, command: CoverageCommand) -> CommandResult:
        expected = load_expected_inventory(command.brief, extension=command.extension)
        produced = load_produced_inventory(command.produced)
        label = command.label or command.produced.stem
        report = build_detailed_report(
            expected,
            produced.names,
            components_by_artifact=produced.components_by_artifact,
            icons_by_artifact=produced.icons_by_artifact,
            label=label,
        )
        if command.detailed:
            lines = render_detailed_coverage_lines(report)
        else:
            lines = render_coverage_lines(report, detailed=True)
        success = report.coverage_percent >= command.fail_under
        if not success:
            lines.append(
                f"Coverage {report.coverage_percent}% is below the required {command.fail_under}%",
            )
        return CommandResult(lines=lines, success=success)

    def agent_check(self, command: AgentCheckCommand) -> CommandResult:
        settings = _load_settings(command.config_path)
        result = run_smoke_check(
            settings=settings.agent,
            prompt=command.prompt,
            expect_substring=command.expect_substring,
            timeout_seconds=command.timeout_seconds,
        )
        run_state = "ok" if result.run_ok else ("skipped" if result.skipped_run else "failed")
        line = (
            f"  command={result.command!r} available={'yes' if result.available else 'no'} "
            f"probe={'ok' if result.probe_ok else 'failed'} run={run_state}"
        )
        if result.error:
            line += f" error={result.error}"
        lines = ["Agent check:", line]
        if result.stdout_preview:
            lines.append(f"    stdout={result.stdout_preview}")

        success = result.available and result.probe_ok
        if command.prompt is not None:
            success = success and result.run_ok
        lines.append(f"Check status: {'passed' if success else 'failed'}")
        if not result.available:
            lines.append("Hint: install the agent CLI or set ARTIFACT_FORGE_AGENT_COMMAND.")
        return CommandResult(lines=lines, success=success)


def _load_settings(config_path: Path | None) -> Settings:
    settings = Settings.from_env(config_path)
    settings.validate()
    return settings


def _dry_run_lines(batch: BatchSpec, *, limit: int) -> list[str]:
    lines = [f"Dry run: {batch.source_path} ({len(batch.entries)} tasks, limit={limit})"]
    for entry in batch.entries:
        options = entry.task.options
        checks = ",".join(entry.checks) or "-"
        lines.append(
            f"  {entry.task.task_id} kind={entry.task.artifact_kind.value} "
            f"tier={options.model_tier.value} timeout={options.timeout_seconds:g}s "
            f"read={'yes' if options.allow_file_read else 'no'} checks={checks} "
            f"output={entry.output_path}",
        )
    if batch.coverage is not None:
        lines.append(f"  coverage: {len(batch.coverage.expected)} expected artifacts")
    return lines


def _run_lines(run: BatchRunResult) -> list[str]:
    lines: list[str] = []
    for result, outcome in zip(run.results, run.writes, strict=True):
        if result.ok:
            suffix = ", extracted" if result.was_extracted else ""
            lines.append(
                f"  [ok] {result.task_id} -> {outcome.path} (attempts={result.attempts}{suffix})",
            )
            continue
        failure = result.failure_class.value if result.failure_class else "error"
        lines.append(f"  [failed] {result.task_id}: {failure} - {result.error}")
        if outcome.status == WriteStatus.FORCED:
            lines.append(f"    WARNING wrote {outcome.path}: {outcome.message}")
        elif outcome.status == WriteStatus.KEPT_EXISTING:
            lines.append(f"    kept existing {outcome.path}")

    summary = run.summary
    lines.append(
        f"Summary: total={summary.total} succeeded={summary.succeeded} "
        f"failed={summary.failed} extracted={summary.extracted} "
        f"elapsed={run.elapsed_seconds:.1f}s",
    )
    if summary.failure_counts:
        lines.append(
            "Failures: "
            + " ".join(f"{name}={count}" for name, count in summary.failure_counts.items()),
        )
    if run.coverage is not None:
        lines.extend(render_coverage_lines(run.coverage, detailed=True))
    return lines

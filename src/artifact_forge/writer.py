"""Persist accepted agent outputs as artifact files."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass
from enum import Enum
from pathlib import Path

from artifact_forge.contracts import BatchTaskSpec
from artifact_forge.models import ArtifactKind, InvocationResult
from artifact_forge.postprocess import correct_asset_paths
from artifact_forge.validator import validate_output

logger = logging.getLogger(__name__)

MANUAL_REVIEW_WARNING = "manual review required"


class WriteStatus(str, Enum):
    """What happened to one task's artifact file."""

    WRITTEN = "written"
    FORCED = "forced"
    KEPT_EXISTING = "kept_existing"
    SKIPPED = "skipped"


@dataclass(slots=True)
class WriteOutcome:
    task_id: str
    path: Path
    status: WriteStatus
    message: str = ""


class ArtifactWriter:
    """Write accepted content; with ``force`` also write best-effort output.

    An existing file that is still a valid artifact is never overwritten by
    invalid output.
    """

    def __init__(self, *, project_root: Path | None = None, force: bool = False) -> None:
        self.project_root = project_root or Path.cwd()
        self.force = force

    def write(self, entry: BatchTaskSpec, result: InvocationResult) -> WriteOutcome:
        path = entry.output_path
        kind = entry.task.artifact_kind
        if result.ok:
            self._persist(entry, result.output)
            return WriteOutcome(task_id=result.task_id, path=path, status=WriteStatus.WRITTEN)

        if not self.force or not result.best_effort_output.strip():
            return WriteOutcome(
                task_id=result.task_id,
                path=path,
                status=WriteStatus.SKIPPED,
                message=result.error or "no output",
            )

        if path.exists() and validate_output(path.read_text("utf-8"), kind).valid:
            logger.warning(
                "Task %s: keeping existing valid %s instead of invalid output",
                result.task_id,
                path,
            )
            return WriteOutcome(
                task_id=result.task_id,
                path=path,
                status=WriteStatus.KEPT_EXISTING,
                message="existing file is valid",
            )

        self._persist(entry, result.best_effort_output)
        logger.warning(
            "Task %s: wrote unvalidated output to %s - %s (%s)",
            result.task_id,
            path,
            MANUAL_REVIEW_WARNING,
            result.error,
        )
        return WriteOutcome(
            task_id=result.task_id,
            path=path,
            status=WriteStatus.FORCED,
            message=f"{MANUAL_REVIEW_WARNING}: {result.error}",
        )

    def write_all(
        self,
        entries: Sequence[BatchTaskSpec],
        results: Sequence[InvocationResult],
    ) -> list[WriteOutcome]:
        if len(entries) != len(results):
            raise ValueError(
                f"Result count {len(results)} does not match batch size {len(entries)}",
            )
        return [self.write(entry, result) for entry, result in zip(entries, results, strict=True)]

    def asset_depth(self, path: Path) -> int:
        """Directory levels between the project root and the artifact's folder."""

        try:
            relative = path.resolve().relative_to(self.project_root.resolve())
        except ValueError:
            return len(path.parent.parts)
        return len(relative.parent.parts)

    def _persist(self, entry: BatchTaskSpec, content: str) -> None:
        path = entry.output_path
        if entry.fix_asset_paths and entry.task.artifact_kind == ArtifactKind.MARKUP:
            content = correct_asset_paths(content, self.asset_depth(path))
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content, "utf-8")

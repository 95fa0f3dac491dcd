"""File-based contracts: batch files and artifact inventories."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from artifact_forge.coverage import extract_expected_from_brief
from artifact_forge.models import AgentTask, ArtifactKind, ExecutionOptions, ModelTier
from artifact_forge.prompts import compose_system_context
from artifact_forge.validator import (
    POST_CHECKS_BY_NAME,
    OutputValidator,
    build_artifact_validator,
)

_OPTION_KEYS = frozenset(
    {
        "kind",
        "timeout_seconds",
        "allow_file_read",
        "extra_read_dirs",
        "model_tier",
        "checks",
        "fix_asset_paths",
    },
)


@dataclass(slots=True)
class BatchTaskSpec:
    """One batch entry: the agent task plus where and how its artifact is persisted."""

    task: AgentTask
    output_path: Path
    checks: tuple[str, ...] = ()
    fix_asset_paths: bool = False


@dataclass(slots=True)
class CoverageSpec:
    """Expected inventory checked after a batch has been persisted."""

    expected: list[str]
    label: str = ""


@dataclass(slots=True)
class BatchSpec:
    """Parsed batch file."""

    source_path: Path
    entries: list[BatchTaskSpec]
    coverage: CoverageSpec | None = None

    @property
    def tasks(self) -> list[AgentTask]:
        return [entry.task for entry in self.entries]

    def entry_for(self, task_id: str) -> BatchTaskSpec:
        for entry in self.entries:
            if entry.task.task_id == task_id:
                return entry
        raise KeyError(task_id)

    def validator_for(self, task: AgentTask) -> OutputValidator:
        """Artifact validator for a task: structural check plus its named post-checks."""

        entry = self.entry_for(task.task_id)
        return build_artifact_validator(
            task.artifact_kind,
            [POST_CHECKS_BY_NAME[name] for name in entry.checks],
        )


@dataclass(slots=True)
class ProducedInventory:
    """Produced artifact names with optional per-artifact building-block usage."""

    names: list[str]
    components_by_artifact: dict[str, list[str]] = field(default_factory=dict)
    icons_by_artifact: dict[str, list[str]] = field(default_factory=dict)


def load_json(path: Path) -> Any:
    """Load a JSON document, reporting the path on parse errors."""

    try:
        return json.loads(path.read_text("utf-8"))
    except json.JSONDecodeError as error:
        raise ValueError(f"Invalid JSON in {path}: {error}") from error


def load_batch_file(
    path: Path,
    *,
    output_root: Path,
    default_timeout_seconds: float = 300.0,
) -> BatchSpec:
    """Parse a batch file into agent tasks.

    Relative ``role_file``/``skill_file``/``prompt_file``/``extra_read_dirs`` and
    the coverage ``brief`` resolve against the batch file's directory; relative
    ``output`` paths resolve against ``output_root``.
    """

    if not path.exists():
        raise ValueError(f"Batch file not found: {path}")
    payload = load_json(path)
    if not isinstance(payload, dict):
        raise ValueError(f"Batch file must contain a JSON object: {path}")

    base_dir = path.parent
    defaults = payload.get("defaults", {})
    if not isinstance(defaults, dict):
        raise ValueError("'defaults' must be an object.")
    unknown = sorted(set(defaults) - _OPTION_KEYS)
    if unknown:
        raise ValueError(f"Unknown keys in 'defaults': {', '.join(unknown)}")

    raw_tasks = payload.get("tasks")
    if not isinstance(raw_tasks, list) or not raw_tasks:
        raise ValueError("'tasks' must be a non-empty list.")

    entries: list[BatchTaskSpec] = []
    seen: set[str] = set()
    for index, raw in enumerate(raw_tasks):
        try:
            entry = _parse_task(
                raw,
                defaults=defaults,
                base_dir=base_dir,
                output_root=output_root,
                default_timeout_seconds=default_timeout_seconds,
            )
        except (TypeError, ValueError) as error:
            raise ValueError(f"tasks[{index}]: {error}") from error
        if entry.task.task_id in seen:
            raise ValueError(f"tasks[{index}]: duplicate id {entry.task.task_id!r}")
        seen.add(entry.task.task_id)
        entries.append(entry)

    return BatchSpec(
        source_path=path,
        entries=entries,
        coverage=_parse_coverage(payload.get("coverage"), base_dir=base_dir),
    )


def load_expected_inventory(path: Path, *, extension: str = ".html") -> list[str]:
    """Expected names from a JSON list/``{"screens": [...]}`` or a markdown brief table."""

    if not path.exists():
        raise ValueError(f"Expected inventory not found: {path}")
    if path.suffix.lower() == ".json":
        payload = load_json(path)
        names = payload.get("screens") if isinstance(payload, dict) else payload
        return _string_list(names, what=f"expected inventory {path}")
    return extract_expected_from_brief(path.read_text("utf-8"), extension=extension)


def load_produced_inventory(path: Path) -> ProducedInventory:
    """Produced names from a directory listing or a JSON inventory document."""

    if not path.exists():
        raise ValueError(f"Produced inventory not found: {path}")
    if path.is_dir():
        return ProducedInventory(
            names=sorted(item.name for item in path.iterdir() if item.is_file()),
        )

    payload = load_json(path)
    if isinstance(payload, list):
        return ProducedInventory(names=_string_list(payload, what=str(path)))
    if not isinstance(payload, dict):
        raise ValueError(f"Produced inventory must be a list or an object: {path}")
    return ProducedInventory(
        names=_string_list(payload.get("screens", []), what=f"{path} screens"),
        components_by_artifact=_usage_map(payload.get("screenComponents", {}), what=str(path)),
        icons_by_artifact=_usage_map(payload.get("screenIcons", {}), what=str(path)),
    )


def _parse_task(
    raw: Any,
    *,
    defaults: dict[str, Any],
    base_dir: Path,
    output_root: Path,
    default_timeout_seconds: float,
) -> BatchTaskSpec:
    if not isinstance(raw, dict):
        raise TypeError("task entry must be an object")
    task_id = raw.get("id")
    if not isinstance(task_id, str) or not task_id.strip():
        raise ValueError("'id' must be a non-empty string")
    output = raw.get("output")
    if not isinstance(output, str) or not output.strip():
        raise ValueError("'output' must be a non-empty string")

    merged = {**defaults, **{key: value for key, value in raw.items() if key in _OPTION_KEYS}}
    kind = ArtifactKind(merged.get("kind", ArtifactKind.MARKUP.value))
    checks = tuple(_string_list(merged.get("checks", []), what="'checks'"))
    unknown_checks = [name for name in checks if name not in POST_CHECKS_BY_NAME]
    if unknown_checks:
        raise ValueError(f"unknown checks: {', '.join(unknown_checks)}")

    options = ExecutionOptions(
        timeout_seconds=float(merged.get("timeout_seconds", default_timeout_seconds)),
        allow_file_read=_as_bool(merged.get("allow_file_read", False), "allow_file_read"),
        extra_read_dirs=tuple(
            str(_resolve(base_dir, item))
            for item in _string_list(merged.get("extra_read_dirs", []), what="'extra_read_dirs'")
        ),
        model_tier=ModelTier(merged.get("model_tier", ModelTier.MID.value)),
    )
    task = AgentTask(
        task_id=task_id.strip(),
        system_context=compose_system_context(
            _inline_or_file(raw, "role", base_dir=base_dir),
            _inline_or_file(raw, "skill", base_dir=base_dir),
        ),
        user_prompt=_required_text(raw, "prompt", base_dir=base_dir),
        options=options,
        artifact_kind=kind,
    )
    return BatchTaskSpec(
        task=task,
        output_path=_resolve(output_root, output),
        checks=checks,
        fix_asset_paths=_as_bool(merged.get("fix_asset_paths", False), "fix_asset_paths"),
    )


def _parse_coverage(raw: Any, *, base_dir: Path) -> CoverageSpec | None:
    if raw is None:
        return None
    if not isinstance(raw, dict):
        raise ValueError("'coverage' must be an object.")
    label = str(raw.get("label", ""))
    if "expected" in raw:
        expected = _string_list(raw["expected"], what="'coverage.expected'")
        return CoverageSpec(expected=expected, label=label)
    brief = raw.get("brief")
    if not isinstance(brief, str) or not brief.strip():
        raise ValueError("'coverage' needs either 'expected' or 'brief'.")
    return CoverageSpec(
        expected=load_expected_inventory(
            _resolve(base_dir, brief),
            extension=str(raw.get("extension", ".html")),
        ),
        label=label,
    )


def _inline_or_file(raw: dict[str, Any], key: str, *, base_dir: Path) -> str:
    inline = raw.get(key)
    file_ref = raw.get(f"{key}_file")
    if inline is not None and file_ref is not None:
        raise ValueError(f"use either '{key}' or '{key}_file', not both")
    if file_ref is not None:
        if not isinstance(file_ref, str):
            raise TypeError(f"'{key}_file' must be a string")
        file_path = _resolve(base_dir, file_ref)
        if not file_path.exists():
            raise ValueError(f"'{key}_file' not found: {file_path}")
        return file_path.read_text("utf-8")
    if inline is None:
        return ""
    if not isinstance(inline, str):
        raise TypeError(f"'{key}' must be a string")
    return inline


def _required_text(raw: dict[str, Any], key: str, *, base_dir: Path) -> str:
    text = _inline_or_file(raw, key, base_dir=base_dir)
    if not text.strip():
        raise ValueError(f"'{key}' or '{key}_file' is required")
    return text


def _resolve(base: Path, value: str) -> Path:
    candidate = Path(value).expanduser()
    return candidate if candidate.is_absolute() else base / candidate


def _as_bool(value: Any, name: str) -> bool:
    if not isinstance(value, bool):
        raise TypeError(f"'{name}' must be true or false")
    return value


def _string_list(value: Any, *, what: str) -> list[str]:
    if not isinstance(value, list) or not all(isinstance(item, str) for item in value):
        raise ValueError(f"{what} must be a list of strings")
    return list(value)


def _usage_map(value: Any, *, what: str) -> dict[str, list[str]]:
    if not isinstance(value, dict):
        raise ValueError(f"{what}: usage maps must be objects")
    return {
        str(name): _string_list(items, what=f"{what} usage for {name!r}")
        for name, items in value.items()
    }

"""Coverage of produced artifacts against an expected inventory."""

from __future__ import annotations

import math
import re
from collections import Counter
from collections.abc import Iterable, Mapping, Sequence

from artifact_forge.models import CoverageReport, DetailedCoverageReport

_EXTENSION = re.compile(r"\.[A-Za-z0-9]+$")
_BRIEF_ROW = re.compile(r"^\|\s*\d+\.\d+\s*\|\s*\*?\*?([^|*]+)\*?\*?\s*\|", re.MULTILINE)
_BRIEF_HEADER_CELLS = frozenset({"#", "screen", "name"})
_PREVIEW_ITEMS = 5


def normalize_identifier(value: str) -> str:
    """Case-fold and drop a trailing file extension."""

    return _EXTENSION.sub("", value.strip()).casefold()


def compare_inventories(
    expected: Sequence[str],
    produced: Sequence[str],
    *,
    label: str = "",
) -> CoverageReport:
    """Compare normalized identifier sets; coverage is clamped to 100%."""

    expected_keys = {normalize_identifier(item) for item in expected}
    produced_keys = {normalize_identifier(item) for item in produced}

    missing = _unique_by_key(
        item for item in expected if normalize_identifier(item) not in produced_keys
    )
    extra = _unique_by_key(
        item for item in produced if normalize_identifier(item) not in expected_keys
    )

    if expected_keys:
        matched = len(produced_keys & expected_keys)
        coverage = min(_round_half_up(100 * matched / len(expected_keys)), 100)
    else:
        coverage = 100

    return CoverageReport(
        label=label,
        expected_count=len(expected),
        produced_count=len(produced),
        coverage_percent=coverage,
        missing=missing,
        extra=extra,
    )


def tally_usage(usage_by_artifact: Mapping[str, Iterable[str]]) -> dict[str, int]:
    """Count how many artifacts use each named building block."""

    counts: Counter[str] = Counter()
    for names in usage_by_artifact.values():
        counts.update(set(names))
    return dict(sorted(counts.items(), key=lambda item: (-item[1], item[0])))


def build_detailed_report(
    expected: Sequence[str],
    produced: Sequence[str],
    *,
    components_by_artifact: Mapping[str, Iterable[str]] | None = None,
    icons_by_artifact: Mapping[str, Iterable[str]] | None = None,
    label: str = "",
) -> DetailedCoverageReport:
    basic = compare_inventories(expected, produced, label=label)
    return DetailedCoverageReport(
        label=basic.label,
        expected_count=basic.expected_count,
        produced_count=basic.produced_count,
        coverage_percent=basic.coverage_percent,
        missing=basic.missing,
        extra=basic.extra,
        component_usage=tally_usage(components_by_artifact or {}),
        icon_usage=tally_usage(icons_by_artifact or {}),
    )


def extract_expected_from_brief(brief: str, *, extension: str = ".html") -> list[str]:
    """Parse ``| 1.1 | **Screen Name** | ... |`` table rows into artifact file names."""

    names: list[str] = []
    for match in _BRIEF_ROW.finditer(brief):
        name = match.group(1).strip()
        if not name or name.casefold() in _BRIEF_HEADER_CELLS:
            continue
        slug = slugify(name)
        if slug:
            names.append(f"{slug}{extension}")
    return names


def slugify(value: str) -> str:
    lowered = re.sub(r"[^a-z0-9\s-]", "", value.lower())
    return re.sub(r"-+", "-", re.sub(r"\s+", "-", lowered.strip())).strip("-")


def render_coverage_lines(report: CoverageReport, *, detailed: bool = False) -> list[str]:
    """Render the one-line summary, optionally followed by missing/extra previews."""

    label = report.label or "artifacts"
    lines = [
        f"{label}: {report.produced_count}/{report.expected_count} produced "
        f"({report.coverage_percent}%)",
    ]
    if detailed:
        if report.missing:
            lines.append(f"  Missing: {_preview(report.missing)}")
        if report.extra:
            lines.append(f"  Extra: {_preview(report.extra)}")
    return lines


def render_detailed_coverage_lines(report: DetailedCoverageReport, *, top: int = 10) -> list[str]:
    lines = [
        f"=== Detailed coverage: {report.label or 'artifacts'} ===",
        f"Expected: {report.expected_count}",
        f"Produced: {report.produced_count}",
        f"Coverage: {report.coverage_percent}%",
    ]
    if report.missing:
        lines.append(f"Missing ({len(report.missing)}):")
        lines.extend(f"  - {item}" for item in report.missing)
    else:
        lines.append("Missing: none")
    if report.extra:
        lines.append(f"Extra ({len(report.extra)}):")
        lines.extend(f"  - {item}" for item in report.extra)

    for title, usage in (("component", report.component_usage), ("icon", report.icon_usage)):
        if not usage:
            continue
        lines.append(f"Top {title} usage:")
        for name, count in list(usage.items())[:top]:
            lines.append(f"  {name}: {count} artifacts")
    return lines


def _unique_by_key(items: Iterable[str]) -> list[str]:
    seen: set[str] = set()
    unique: list[str] = []
    for item in items:
        key = normalize_identifier(item)
        if key in seen:
            continue
        seen.add(key)
        unique.append(item)
    return unique


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def _preview(items: Sequence[str]) -> str:
    head = ", ".join(items[:_PREVIEW_ITEMS])
    if len(items) > _PREVIEW_ITEMS:
        return f"{head} (+{len(items) - _PREVIEW_ITEMS} more)"
    return head

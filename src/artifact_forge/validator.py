"""Output validation and cleanup for raw agent stdout."""

from __future__ import annotations

import json
import re
from collections.abc import Callable, Iterable, Mapping, Sequence
from dataclasses import dataclass

from artifact_forge.models import ArtifactKind, ValidationOutcome

OutputValidator = Callable[[str], ValidationOutcome]
PostCheck = Callable[[str], "CheckResult"]

_OPENING_FENCE = re.compile(r"^```(\w+)?[ \t]*\n?")
_CLOSING_FENCE = re.compile(r"\n?```\s*$")
_DOCTYPE_DOCUMENT = re.compile(r"(<!DOCTYPE html>[\s\S]*</html>)", re.IGNORECASE)
_HTML_DOCUMENT = re.compile(r"(<html[\s\S]*</html>)", re.IGNORECASE)
_MARKDOWN_HEADING = re.compile(r"^#{1,6}\s", re.MULTILINE)

# Checked in order; every match is reported.
FAILURE_SIGNATURES: tuple[tuple[str, str], ...] = (
    ("waiting for permission", "Contains permission wait message"),
    ("need permission", "Contains permission request"),
    ("could you grant", "Contains permission request"),
    ("i've created", "Contains conversational preamble"),
    ("i have created", "Contains conversational preamble"),
    ("here's the", "Contains conversational preamble"),
    ("here is the", "Contains conversational preamble"),
    ("the design system includes", "Contains summary instead of artifact"),
    ("## summary", "Contains markdown summary instead of artifact"),
)

STYLESHEET_TOKENS: tuple[str, ...] = (":root", "{", "<style")

STYLESHEET_COMPONENT_GROUPS: Mapping[str, tuple[str, ...]] = {
    "buttons": (".button-primary", ".btn-primary"),
    "forms": (".form-input", ".form-select"),
    "cards": (".card",),
    "lists": (".list-item",),
    "navigation": (".header", ".side-menu"),
    "feedback": (".modal", ".toast"),
    "layout": (".filter-pill",),
}

MIN_STYLESHEET_LINES = 500


@dataclass(slots=True)
class CheckResult:
    """Result of one composable post-check."""

    passed: bool
    error: str | None = None
    detail: dict[str, object] | None = None


def strip_code_fences(content: str) -> str:
    """Remove a leading ```lang fence and the trailing ``` fence that closes it.

    A trailing fence without an opening one belongs to the document (markdown
    ending in a code block) and is kept.
    """

    result = content.strip()
    opening = _OPENING_FENCE.match(result)
    if opening is None:
        return result
    result = result[opening.end() :]
    closing = _CLOSING_FENCE.search(result)
    if closing is not None:
        result = result[: closing.start()]
    return result.strip()


def detect_failure_signatures(content: str) -> list[str]:
    """Return one error per failure signature class found in ``content``."""

    lower = content.lower()
    errors: list[str] = []
    for phrase, error in FAILURE_SIGNATURES:
        if phrase in lower and error not in errors:
            errors.append(error)
    return errors


def is_markup_document(content: str) -> bool:
    """Document must open with a doctype or root tag and close with the root tag."""

    lower = content.strip().lower()
    has_open = lower.startswith("<!doctype html") or lower.startswith("<html")
    return has_open and lower.endswith("</html>")


def has_heading(content: str) -> bool:
    return bool(_MARKDOWN_HEADING.search(content))


def is_json_document(content: str) -> bool:
    try:
        parsed = json.loads(content)
    except json.JSONDecodeError:
        return False
    return isinstance(parsed, (dict, list))


def extract_markup_document(content: str) -> str | None:
    """Find an embedded ``<!DOCTYPE html>``/``<html`` ... ``</html>`` document."""

    for pattern in (_DOCTYPE_DOCUMENT, _HTML_DOCUMENT):
        match = pattern.search(content)
        if match is not None:
            return match.group(1)
    return None


def extract_json_document(content: str) -> str | None:
    """Find the outermost JSON object or array span."""

    candidates: list[tuple[int, str, str]] = []
    for opener, closer in (("{", "}"), ("[", "]")):
        start = content.find(opener)
        if start != -1:
            candidates.append((start, opener, closer))
    for start, _opener, closer in sorted(candidates):
        end = content.rfind(closer)
        if end > start:
            candidate = content[start : end + 1]
            if is_json_document(candidate):
                return candidate
    return None


def extract_text_document(content: str) -> str | None:
    """Slice from the first markdown heading, dropping any preamble."""

    match = _MARKDOWN_HEADING.search(content)
    if match is None:
        return None
    return content[match.start() :].strip()


_STRUCTURE_CHECKS: dict[ArtifactKind, tuple[Callable[[str], bool], str]] = {
    ArtifactKind.MARKUP: (is_markup_document, "Missing HTML document structure"),
    ArtifactKind.TEXT: (has_heading, "Missing markdown headers"),
    ArtifactKind.JSON: (is_json_document, "Output is not a valid JSON document"),
}

_EXTRACTORS: dict[ArtifactKind, Callable[[str], str | None]] = {
    ArtifactKind.MARKUP: extract_markup_document,
    ArtifactKind.TEXT: extract_text_document,
    ArtifactKind.JSON: extract_json_document,
}


def validate_output(
    raw_output: str,
    kind: ArtifactKind = ArtifactKind.MARKUP,
) -> ValidationOutcome:
    """Strip fences, reject failure signatures, check structure, fall back to extraction."""

    is_structured, structure_error = _STRUCTURE_CHECKS[kind]
    cleaned = strip_code_fences(raw_output)
    errors = detect_failure_signatures(cleaned)
    structured = is_structured(cleaned)

    if structured and not errors:
        return ValidationOutcome(valid=True, content=cleaned, errors=[], was_extracted=False)

    extractor = _EXTRACTORS.get(kind)
    extracted = extractor(cleaned) if extractor is not None else None
    if extracted is not None and extracted != cleaned and is_structured(extracted):
        if not detect_failure_signatures(extracted):
            return ValidationOutcome(valid=True, content=extracted, errors=[], was_extracted=True)

    if not structured:
        errors.append(structure_error)
    return ValidationOutcome(valid=False, content=cleaned, errors=errors, was_extracted=False)


def validate_markup_output(raw_output: str) -> ValidationOutcome:
    return validate_output(raw_output, ArtifactKind.MARKUP)


def validate_text_output(raw_output: str) -> ValidationOutcome:
    return validate_output(raw_output, ArtifactKind.TEXT)


def validate_json_output(raw_output: str) -> ValidationOutcome:
    return validate_output(raw_output, ArtifactKind.JSON)


def check_required_tokens(
    content: str,
    tokens: Sequence[str] = STYLESHEET_TOKENS,
) -> CheckResult:
    """Require every literal token (e.g. a ``:root`` variables block and ``<style``)."""

    missing = [token for token in tokens if token not in content]
    if not missing:
        return CheckResult(passed=True)
    return CheckResult(
        passed=False,
        error=f"Missing required tokens: {', '.join(missing)}",
        detail={"missing": missing},
    )


def check_required_components(
    content: str,
    groups: Mapping[str, Sequence[str]] = STYLESHEET_COMPONENT_GROUPS,
) -> CheckResult:
    """Require at least one marker per component group and report coverage."""

    missing: list[str] = []
    for group, markers in groups.items():
        if not any(marker in content for marker in markers):
            missing.append(f"{group} ({' or '.join(markers)})")
    total = len(groups)
    coverage = round(100 * (total - len(missing)) / total) if total else 100
    detail: dict[str, object] = {"missing": missing, "coverage": coverage}
    if not missing:
        return CheckResult(passed=True, detail=detail)
    return CheckResult(
        passed=False,
        error=f"Missing component styles ({coverage}% coverage): {', '.join(missing)}",
        detail=detail,
    )


def check_minimum_length(content: str, min_lines: int = MIN_STYLESHEET_LINES) -> CheckResult:
    """Catch truncated output by line count."""

    lines = len(content.split("\n"))
    detail: dict[str, object] = {"lines": lines, "required": min_lines}
    if lines >= min_lines:
        return CheckResult(passed=True, detail=detail)
    return CheckResult(
        passed=False,
        error=f"Output too short: {lines} lines, expected at least {min_lines} (likely truncated)",
        detail=detail,
    )


def build_artifact_validator(
    kind: ArtifactKind = ArtifactKind.MARKUP,
    checks: Iterable[PostCheck] = (),
) -> OutputValidator:
    """Compose the base validator with post-checks run on the cleaned content."""

    post_checks = tuple(checks)

    def _validate(raw_output: str) -> ValidationOutcome:
        outcome = validate_output(raw_output, kind)
        if not outcome.valid:
            return outcome
        errors = [
            result.error or "Post-check failed"
            for result in (check(outcome.content) for check in post_checks)
            if not result.passed
        ]
        if errors:
            return ValidationOutcome(
                valid=False,
                content=outcome.content,
                errors=errors,
                was_extracted=outcome.was_extracted,
            )
        return outcome

    return _validate


POST_CHECKS_BY_NAME: dict[str, PostCheck] = {
    "stylesheet_tokens": check_required_tokens,
    "stylesheet_components": check_required_components,
    "minimum_length": check_minimum_length,
}

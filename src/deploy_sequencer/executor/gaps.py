"""
deploy-sequencer — failure output analysis

File: src/deploy_sequencer/executor/gaps.py

Purpose
- Recognize recoverable gaps (a custom field or custom object missing on the
  target) in validation error text.
- Recognize plannable components named as missing so callers can suggest
  adding locally available ones to the selection.
- Analyze pasted ``sf ... --json`` output for the CLI output analyzer.

Functional requirements
- Each distinct gap is reported once, in first-seen order.
- Object references that are record ids (leading digit) are kept verbatim;
  resolving them is the retriever's job.
"""

from __future__ import annotations

import json
import re
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from typing import Final

from deploy_sequencer.domain.models import (
    AssetCategory,
    AssetIdentifier,
    ComponentProblem,
    GapDescriptor,
    GapKind,
    JSONValue,
    parse_category,
)

_FIELD_GAP: Final[re.Pattern[str]] = re.compile(
    r"""field\s+["']([A-Za-z0-9_]+__c)["']\s+for\s+the\s+object\s+["']([A-Za-z0-9_]+)["']""",
    re.IGNORECASE,
)
_OBJECT_GAP: Final[re.Pattern[str]] = re.compile(
    r"""object\s+["']([A-Za-z0-9_]+)["']\s+doesn't\s+exist""",
    re.IGNORECASE,
)

_MISSING_COMPONENT: Final[re.Pattern[str]] = re.compile(
    r"""\b(ApexClass|Apex\s+class|Flow|GenAiFunction|GenAiPlugin|GenAiPlannerBundle)\s+"""
    r"""(?:named\s+)?["']?([A-Za-z][A-Za-z0-9_]*)["']?\s+"""
    r"""(?:does\s+not\s+exist|doesn't\s+exist|not\s+found|cannot\s+be\s+found)""",
    re.IGNORECASE,
)
_INVALID_TYPE: Final[re.Pattern[str]] = re.compile(r"Invalid\s+type:\s*([A-Za-z][A-Za-z0-9_]*)")


def parse_gaps(errors: Iterable[str]) -> tuple[GapDescriptor, ...]:
    """Extract recoverable gaps.

    A line matching the field pattern is not also read as an object gap.
    """

    found: dict[GapDescriptor, None] = {}
    for line in errors:
        field_match = _FIELD_GAP.search(line)
        if field_match is not None:
            gap = GapDescriptor(
                kind=GapKind.CUSTOM_FIELD,
                name=field_match.group(1),
                object_name=field_match.group(2),
            )
            found.setdefault(gap, None)
            continue
        object_match = _OBJECT_GAP.search(line)
        if object_match is not None:
            found.setdefault(GapDescriptor(kind=GapKind.CUSTOM_OBJECT, name=object_match.group(1)))
    return tuple(found)


def missing_components(errors: Iterable[str]) -> tuple[AssetIdentifier, ...]:
    """Plannable assets that error text reports as missing on the target."""

    found: dict[AssetIdentifier, None] = {}
    for line in errors:
        for match in _MISSING_COMPONENT.finditer(line):
            raw_category = match.group(1).replace(" ", "")
            category = parse_category(raw_category)
            if category is not None:
                found.setdefault(AssetIdentifier(category, match.group(2)))
        for match in _INVALID_TYPE.finditer(line):
            found.setdefault(AssetIdentifier(AssetCategory.APEX_CLASS, match.group(1)))
    return tuple(found)


def extract_json_payload(text: str) -> Mapping[str, object] | None:
    """Parse the JSON document in CLI output, skipping any leading banner noise."""

    start = text.find("{")
    if start < 0:
        return None
    try:
        payload, _ = json.JSONDecoder().raw_decode(text, start)
    except json.JSONDecodeError:
        return None
    return payload if isinstance(payload, dict) else None


def component_problems(payload: Mapping[str, object]) -> tuple[ComponentProblem, ...]:
    """Read ``result.details.componentFailures`` (a list, or a single object)."""

    result = payload.get("result")
    details = result.get("details") if isinstance(result, dict) else None
    failures = details.get("componentFailures") if isinstance(details, dict) else None
    if failures is None:
        return ()
    if isinstance(failures, dict):
        failures = [failures]
    if not isinstance(failures, list):
        return ()

    problems: list[ComponentProblem] = []
    for failure in failures:
        if not isinstance(failure, dict):
            continue
        problems.append(
            ComponentProblem(
                component_type=str(failure.get("componentType") or "Unknown"),
                component_name=str(failure.get("fullName") or "Unknown"),
                problem=str(failure.get("problem") or "").strip(),
                line=_as_int(failure.get("lineNumber")),
                column=_as_int(failure.get("columnNumber")),
            )
        )
    return tuple(problems)


@dataclass(frozen=True, slots=True)
class OutputAnalysis:
    """What the output analyzer found in one pasted CLI response."""

    parsed: bool
    success: bool | None
    problems: tuple[ComponentProblem, ...]
    messages: tuple[str, ...]
    gaps: tuple[GapDescriptor, ...]
    missing: tuple[AssetIdentifier, ...]
    hints: tuple[str, ...]

    def to_dict(self) -> dict[str, JSONValue]:
        return {
            "parsed": self.parsed,
            "success": self.success,
            "problems": [problem.to_dict() for problem in self.problems],
            "messages": list(self.messages),
            "gaps": [gap.to_dict() for gap in self.gaps],
            "missing": [item.key for item in self.missing],
            "hints": list(self.hints),
        }


def analyze_cli_output(text: str) -> OutputAnalysis:
    payload = extract_json_payload(text)
    if payload is None:
        lines = tuple(line.strip() for line in text.splitlines() if line.strip())
        gaps = parse_gaps(lines)
        missing = missing_components(lines)
        return OutputAnalysis(
            parsed=False,
            success=None,
            problems=(),
            messages=lines,
            gaps=gaps,
            missing=missing,
            hints=_hints(gaps, missing, parsed=False),
        )

    status = payload.get("status")
    success = status == 0
    problems = component_problems(payload)
    message = payload.get("message")
    messages = (str(message),) if isinstance(message, str) and message and not success else ()
    lines = tuple(problem.render() for problem in problems) + messages
    gaps = parse_gaps(lines)
    missing = missing_components(lines)
    return OutputAnalysis(
        parsed=True,
        success=success,
        problems=problems,
        messages=messages,
        gaps=gaps,
        missing=missing,
        hints=_hints(gaps, missing, parsed=True),
    )


def _hints(
    gaps: tuple[GapDescriptor, ...],
    missing: tuple[AssetIdentifier, ...],
    *,
    parsed: bool,
) -> tuple[str, ...]:
    hints: list[str] = []
    if not parsed:
        hints.append("Output is not JSON; re-run the sf command with --json for structured errors.")
    for gap in gaps:
        if gap.object_is_id:
            hints.append(
                f"Object {gap.object_name} is a record id; retrieve the owning CustomObject "
                f"first, then the field {gap.name}."
            )
        else:
            hints.append(
                "Retrieve it from the org: "
                f"sf project retrieve start --metadata {gap.metadata_spec}"
            )
    for identifier in missing:
        hints.append(f"Add {identifier.key} to the deployment selection if it exists locally.")
    return tuple(hints)


def _as_int(value: object) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str) and value.strip().isdigit():
        return int(value.strip())
    return None


__all__ = [
    "OutputAnalysis",
    "analyze_cli_output",
    "component_problems",
    "extract_json_payload",
    "missing_components",
    "parse_gaps",
]

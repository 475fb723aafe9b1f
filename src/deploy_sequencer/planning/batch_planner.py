"""
deploy-sequencer — batch planner

File: src/deploy_sequencer/planning/batch_planner.py

Purpose
- Turn a user selection into a category-ordered, deterministic deployment plan.

Functional requirements
- One batch per non-empty category, emitted in platform layer order, numbered
  sequentially without reserving numbers for absent categories.
- Items inside a batch follow same-category references (dependencies first);
  a same-category cycle falls back to the stable closure order with a warning.
- Plan validation reports ordering and duplication problems as data, never raises.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from typing import Final

import structlog

from deploy_sequencer.domain.models import (
    LAYER_ORDER,
    AssetCategory,
    AssetIdentifier,
    DependencyClosure,
    DeployBatch,
    DeployPlan,
    JSONValue,
    PlanValidation,
    Reference,
    layer_index,
)
from deploy_sequencer.planning.closure import DependencyClosureBuilder
from deploy_sequencer.planning.ordering import CycleError, DependencyGraph

_LOGGER = structlog.get_logger(__name__)

EMPTY_SELECTION_WARNING: Final[str] = "No valid items selected for deployment"

# Checked in order; the first keyword group fully contained in the lowered name wins.
_NAME_HEURISTICS: Final[tuple[tuple[tuple[str, ...], AssetCategory], ...]] = (
    (("bot", "version"), AssetCategory.BOT_VERSION),
    (("bot",), AssetCategory.BOT),
    (("planner",), AssetCategory.GEN_AI_PLANNER_BUNDLE),
    (("plugin",), AssetCategory.GEN_AI_PLUGIN),
    (("func",), AssetCategory.GEN_AI_FUNCTION),
    (("flow",), AssetCategory.FLOW),
)


class SelectionError(ValueError):
    """Raised when a selection token cannot be turned into an asset identifier."""


def infer_category(name: str) -> AssetCategory:
    """Guess the category of a bare asset name from keywords; defaults to ApexClass.

    Bot version names are always ``<Bot>.<Version>``, so an undotted name that
    mentions both "bot" and "version" is taken to be a bot.
    """

    lowered = name.lower()
    for keywords, category in _NAME_HEURISTICS:
        if category is AssetCategory.BOT_VERSION and "." not in name:
            continue
        if all(keyword in lowered for keyword in keywords):
            return category
    return AssetCategory.APEX_CLASS


def parse_selection(tokens: Iterable[str]) -> tuple[AssetIdentifier, ...]:
    """Parse ``Category:Name`` or bare ``Name`` tokens, dropping blanks and repeats."""

    parsed: list[AssetIdentifier] = []
    seen: set[AssetIdentifier] = set()
    for raw in tokens:
        token = raw.strip()
        if not token:
            continue
        try:
            if ":" in token:
                identifier = AssetIdentifier.parse(token)
            else:
                identifier = AssetIdentifier(infer_category(token), token)
        except ValueError as exc:
            raise SelectionError(f"invalid selection {token!r}: {exc}") from exc
        if identifier in seen:
            continue
        seen.add(identifier)
        parsed.append(identifier)
    return tuple(parsed)


@dataclass(frozen=True, slots=True)
class PlanSummary:
    total_batches: int
    total_items: int
    batch_order: tuple[str, ...]

    def to_dict(self) -> dict[str, JSONValue]:
        return {
            "total_batches": self.total_batches,
            "total_items": self.total_items,
            "batch_order": list(self.batch_order),
        }


@dataclass(frozen=True, slots=True)
class PlanReport:
    """Plan response: the plan, its validation result and a readable order summary."""

    plan: DeployPlan
    validation: PlanValidation
    summary: PlanSummary

    def to_dict(self) -> dict[str, JSONValue]:
        return {
            "plan": self.plan.to_dict(),
            "validation": self.validation.to_dict(),
            "summary": self.summary.to_dict(),
        }


def summarize(plan: DeployPlan) -> PlanSummary:
    lines = tuple(
        f"{batch.batch_number}. {batch.category} ({len(batch.items)} items)"
        for batch in plan.batches
    )
    return PlanSummary(
        total_batches=len(plan.batches),
        total_items=plan.total_items,
        batch_order=lines,
    )


def validate_plan(plan: DeployPlan) -> PlanValidation:
    """Check layer ordering, duplicates and batch membership of ``plan``."""

    errors: list[str] = []
    if plan.is_empty:
        errors.append("Deployment plan is empty")

    seen: set[AssetIdentifier] = set()
    previous: DeployBatch | None = None
    for batch in plan.batches:
        if previous is not None and layer_index(batch.category) < layer_index(previous.category):
            errors.append(
                f"Invalid batch order: {batch.category} should come before {previous.category}"
            )
        for item in batch.items:
            if item.category is not batch.category:
                errors.append(
                    f"Item {item.key} does not belong in {batch.category} batch "
                    f"{batch.batch_number}"
                )
            if item in seen:
                errors.append(f"Duplicate item in plan: {item.key}")
            seen.add(item)
        previous = batch

    return PlanValidation(valid=not errors, errors=tuple(errors))


def order_category(
    category: AssetCategory,
    members: Sequence[AssetIdentifier],
    references: Iterable[Reference],
) -> tuple[tuple[AssetIdentifier, ...], str | None]:
    """Order one category's members so referenced assets come first.

    Returns the ordered members and, when a cycle forced the stable fallback,
    a warning describing it.
    """

    by_name = {member.name: member for member in members}
    graph = DependencyGraph(nodes=by_name)
    for reference in references:
        if reference.source_category is not category or reference.target_category is not category:
            continue
        if reference.source_name not in by_name or reference.target_name not in by_name:
            continue
        graph.add_edge(reference.target_name, reference.source_name)

    try:
        ordered = graph.topological_sort()
    except CycleError as exc:
        _LOGGER.warning("planner_category_cycle", category=str(category), cycle=str(exc))
        return tuple(members), f"Circular {category} references, using discovery order: {exc}"
    return tuple(by_name[name] for name in ordered), None


class BatchPlanner:
    """Builds deployment plans from selections through a closure builder."""

    __slots__ = ("_closure_builder",)

    def __init__(self, closure_builder: DependencyClosureBuilder) -> None:
        self._closure_builder = closure_builder

    def build_plan(self, selection: Iterable[AssetIdentifier | str]) -> DeployPlan:
        seeds = _coerce_selection(selection)
        if not seeds:
            return DeployPlan(batches=(), warnings=(EMPTY_SELECTION_WARNING,))
        return self.plan_from_closure(self._closure_builder.build(seeds))

    async def build_plan_async(self, selection: Iterable[AssetIdentifier | str]) -> DeployPlan:
        seeds = _coerce_selection(selection)
        if not seeds:
            return DeployPlan(batches=(), warnings=(EMPTY_SELECTION_WARNING,))
        closure = await self._closure_builder.build_async(seeds)
        return self.plan_from_closure(closure)

    def report(self, selection: Iterable[AssetIdentifier | str]) -> PlanReport:
        plan = self.build_plan(selection)
        return PlanReport(plan=plan, validation=validate_plan(plan), summary=summarize(plan))

    def plan_from_closure(self, closure: DependencyClosure) -> DeployPlan:
        warnings: list[str] = list(closure.warnings)
        grouped = closure.by_category()

        batches: list[DeployBatch] = []
        for category in LAYER_ORDER:
            members = grouped.get(category)
            if not members:
                continue
            ordered, cycle_warning = order_category(category, members, closure.references)
            if cycle_warning is not None:
                warnings.append(cycle_warning)
            batches.append(
                DeployBatch(batch_number=len(batches) + 1, category=category, items=ordered)
            )

        if not batches:
            warnings.append(EMPTY_SELECTION_WARNING)
        plan = DeployPlan(batches=tuple(batches), warnings=tuple(warnings))
        _LOGGER.info(
            "planner_plan_built",
            items=plan.total_items,
            batches=len(plan.batches),
            fingerprint=plan.fingerprint,
        )
        return plan


def _coerce_selection(selection: Iterable[AssetIdentifier | str]) -> tuple[AssetIdentifier, ...]:
    ordered: dict[AssetIdentifier, None] = {}
    for entry in selection:
        if isinstance(entry, AssetIdentifier):
            ordered[entry] = None
        else:
            ordered.update(dict.fromkeys(parse_selection([entry])))
    return tuple(ordered)


__all__ = [
    "EMPTY_SELECTION_WARNING",
    "BatchPlanner",
    "PlanReport",
    "PlanSummary",
    "SelectionError",
    "infer_category",
    "order_category",
    "parse_selection",
    "summarize",
    "validate_plan",
]

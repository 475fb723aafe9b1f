"""Dependency closure, intra-category ordering and batch planning."""

from deploy_sequencer.planning.batch_planner import (
    EMPTY_SELECTION_WARNING,
    BatchPlanner,
    PlanReport,
    PlanSummary,
    SelectionError,
    infer_category,
    order_category,
    parse_selection,
    summarize,
    validate_plan,
)
from deploy_sequencer.planning.closure import (
    DEFAULT_MAX_WORKERS,
    RECURSIVE_CATEGORIES,
    DependencyClosureBuilder,
)
from deploy_sequencer.planning.ordering import CycleError, DependencyGraph
from deploy_sequencer.planning.plan_io import PlanFileError, dump_plan, load_plan, save_plan

__all__ = [
    "DEFAULT_MAX_WORKERS",
    "EMPTY_SELECTION_WARNING",
    "RECURSIVE_CATEGORIES",
    "BatchPlanner",
    "CycleError",
    "DependencyClosureBuilder",
    "DependencyGraph",
    "PlanFileError",
    "PlanReport",
    "PlanSummary",
    "SelectionError",
    "dump_plan",
    "infer_category",
    "load_plan",
    "order_category",
    "parse_selection",
    "save_plan",
    "summarize",
    "validate_plan",
]

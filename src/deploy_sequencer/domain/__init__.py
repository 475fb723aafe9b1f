"""
deploy-sequencer — domain package

File: src/deploy_sequencer/domain/__init__.py

Purpose
- Domain types shared across planes: identifiers, references, closures, plans,
  manifests and remote walk outcomes.

What should be included in this file
- Re-export of core domain entities for convenience.
- Keep domain layer free of IO side effects.
"""

from deploy_sequencer.domain.models import (
    LAYER_ORDER,
    AssetCategory,
    AssetIdentifier,
    ComponentProblem,
    CumulativeManifest,
    DependencyClosure,
    DeployBatch,
    DeployMode,
    DeployPlan,
    GapDescriptor,
    GapKind,
    PlanValidation,
    Reference,
    ReferenceKind,
    SkippedDependency,
    ValidationOutcome,
    WalkResult,
    WalkState,
    dedupe_references,
    layer_index,
    parse_category,
)

__all__ = [
    "LAYER_ORDER",
    "AssetCategory",
    "AssetIdentifier",
    "ComponentProblem",
    "CumulativeManifest",
    "DependencyClosure",
    "DeployBatch",
    "DeployMode",
    "DeployPlan",
    "GapDescriptor",
    "GapKind",
    "PlanValidation",
    "Reference",
    "ReferenceKind",
    "SkippedDependency",
    "ValidationOutcome",
    "WalkResult",
    "WalkState",
    "dedupe_references",
    "layer_index",
    "parse_category",
]

"""Frozen domain models for references, closures, plans, manifests and walk outcomes."""

from __future__ import annotations

import hashlib
import json
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Final, NoReturn

from deploy_sequencer.constants import DEFAULT_API_VERSION, PLAN_FILE_SCHEMA_VERSION

JSONScalar = str | int | float | bool | None
JSONValue = JSONScalar | list["JSONValue"] | dict[str, "JSONValue"]


class AssetCategory(StrEnum):
    """Deployable metadata categories, declared in platform layer order."""

    APEX_CLASS = "ApexClass"
    FLOW = "Flow"
    GEN_AI_FUNCTION = "GenAiFunction"
    GEN_AI_PLUGIN = "GenAiPlugin"
    GEN_AI_PLANNER_BUNDLE = "GenAiPlannerBundle"
    BOT = "Bot"
    BOT_VERSION = "BotVersion"


LAYER_ORDER: Final[tuple[AssetCategory, ...]] = (
    AssetCategory.APEX_CLASS,
    AssetCategory.FLOW,
    AssetCategory.GEN_AI_FUNCTION,
    AssetCategory.GEN_AI_PLUGIN,
    AssetCategory.GEN_AI_PLANNER_BUNDLE,
    AssetCategory.BOT,
    AssetCategory.BOT_VERSION,
)

_LAYER_INDEX: Final[dict[AssetCategory, int]] = {
    category: index for index, category in enumerate(LAYER_ORDER)
}

# Lower-cased spellings accepted in selection tokens and plan files.
_CATEGORY_ALIASES: Final[dict[str, AssetCategory]] = {
    "apexclass": AssetCategory.APEX_CLASS,
    "apex": AssetCategory.APEX_CLASS,
    "class": AssetCategory.APEX_CLASS,
    "flow": AssetCategory.FLOW,
    "genaifunction": AssetCategory.GEN_AI_FUNCTION,
    "function": AssetCategory.GEN_AI_FUNCTION,
    "genaiplugin": AssetCategory.GEN_AI_PLUGIN,
    "plugin": AssetCategory.GEN_AI_PLUGIN,
    "genaiplannerbundle": AssetCategory.GEN_AI_PLANNER_BUNDLE,
    "genaiplanner": AssetCategory.GEN_AI_PLANNER_BUNDLE,
    "planner": AssetCategory.GEN_AI_PLANNER_BUNDLE,
    "bot": AssetCategory.BOT,
    "botversion": AssetCategory.BOT_VERSION,
}


def layer_index(category: AssetCategory) -> int:
    """Return the zero-based deployment layer of ``category``."""

    return _LAYER_INDEX[category]


def parse_category(raw: str) -> AssetCategory | None:
    """Resolve a category name or alias; ``None`` when unknown."""

    normalized = raw.strip().replace("_", "").replace("-", "").lower()
    return _CATEGORY_ALIASES.get(normalized)


class ReferenceKind(StrEnum):
    DIRECT = "direct"
    INFERRED = "inferred"


class DeployMode(StrEnum):
    VALIDATE = "validate"
    DEPLOY = "deploy"


class GapKind(StrEnum):
    CUSTOM_FIELD = "CustomField"
    CUSTOM_OBJECT = "CustomObject"


class WalkState(StrEnum):
    """States of the batch-by-batch remote walk."""

    PLANNING = "planning"
    VALIDATING_BATCH = "validating_batch"
    RETRIEVING_GAP = "retrieving_gap"
    FAILED = "failed"
    TIMED_OUT = "timed_out"
    COMPLETED = "completed"

    @property
    def is_terminal(self) -> bool:
        return self in {WalkState.FAILED, WalkState.TIMED_OUT, WalkState.COMPLETED}


@dataclass(frozen=True, slots=True, order=True)
class AssetIdentifier:
    """Natural key of one deployable asset."""

    category: AssetCategory
    name: str

    def __post_init__(self) -> None:
        if not isinstance(self.category, AssetCategory):
            try:
                object.__setattr__(self, "category", AssetCategory(self.category))
            except ValueError:
                _fail("AssetIdentifier.category", f"unknown category {self.category!r}")
        if not isinstance(self.name, str) or not self.name.strip():
            _fail("AssetIdentifier.name", "must be a non-empty string")
        object.__setattr__(self, "name", self.name.strip())
        if self.category is AssetCategory.BOT_VERSION and "." not in self.name:
            _fail("AssetIdentifier.name", "bot version names must be '<Bot>.<Version>'")

    @property
    def key(self) -> str:
        return f"{self.category}:{self.name}"

    @property
    def bot_name(self) -> str | None:
        if self.category is AssetCategory.BOT:
            return self.name
        if self.category is AssetCategory.BOT_VERSION:
            return self.name.split(".", 1)[0]
        return None

    @property
    def version_label(self) -> str | None:
        if self.category is not AssetCategory.BOT_VERSION:
            return None
        return self.name.split(".", 1)[1]

    @classmethod
    def parse(cls, token: str) -> AssetIdentifier:
        """Parse a ``Category:Name`` token, splitting on the first colon."""

        raw_category, separator, raw_name = token.partition(":")
        if not separator:
            raise ValueError(f"expected 'Category:Name', got {token!r}")
        category = parse_category(raw_category)
        if category is None:
            raise ValueError(f"unknown asset category {raw_category.strip()!r} in {token!r}")
        return cls(category, raw_name)

    @classmethod
    def bot_version(cls, bot_name: str, version_label: str) -> AssetIdentifier:
        return cls(AssetCategory.BOT_VERSION, f"{bot_name}.{version_label}")

    def __str__(self) -> str:
        return self.key


@dataclass(frozen=True, slots=True)
class Reference:
    """Directed dependency edge: the source asset needs the target asset."""

    source_category: AssetCategory
    source_name: str
    target_category: AssetCategory
    target_name: str
    kind: ReferenceKind = ReferenceKind.DIRECT

    def __post_init__(self) -> None:
        for attr in ("source_category", "target_category"):
            value = getattr(self, attr)
            if not isinstance(value, AssetCategory):
                object.__setattr__(self, attr, AssetCategory(value))
        for attr in ("source_name", "target_name"):
            value = getattr(self, attr)
            if not isinstance(value, str) or not value.strip():
                _fail(f"Reference.{attr}", "must be a non-empty string")
            object.__setattr__(self, attr, value.strip())
        if not isinstance(self.kind, ReferenceKind):
            object.__setattr__(self, "kind", ReferenceKind(self.kind))

    @property
    def source(self) -> AssetIdentifier:
        return AssetIdentifier(self.source_category, self.source_name)

    @property
    def target(self) -> AssetIdentifier:
        return AssetIdentifier(self.target_category, self.target_name)

    @property
    def dedupe_key(self) -> tuple[str, str, str, str]:
        return (
            str(self.source_category),
            self.source_name,
            str(self.target_category),
            self.target_name,
        )

    def to_dict(self) -> dict[str, JSONValue]:
        return {
            "source": self.source.key,
            "target": self.target.key,
            "kind": str(self.kind),
        }


def dedupe_references(references: Iterable[Reference]) -> tuple[Reference, ...]:
    """Collapse references sharing the same 4-tuple, keeping the first seen."""

    seen: set[tuple[str, str, str, str]] = set()
    unique: list[Reference] = []
    for reference in references:
        marker = reference.dedupe_key
        if marker in seen:
            continue
        seen.add(marker)
        unique.append(reference)
    return tuple(unique)


@dataclass(frozen=True, slots=True)
class SkippedDependency:
    """A referenced asset that is absent from the local workspace."""

    identifier: AssetIdentifier
    required_by: AssetIdentifier | None = None

    @property
    def warning(self) -> str:
        return (
            f"Skipped {self.identifier.category} dependency (not found locally): "
            f"{self.identifier.name}"
        )

    def to_dict(self) -> dict[str, JSONValue]:
        return {
            "identifier": self.identifier.key,
            "required_by": self.required_by.key if self.required_by is not None else None,
        }


@dataclass(frozen=True, slots=True)
class DependencyClosure:
    members: tuple[AssetIdentifier, ...]
    references: tuple[Reference, ...] = ()
    skipped: tuple[SkippedDependency, ...] = ()
    warnings: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        if len(set(self.members)) != len(self.members):
            _fail("DependencyClosure.members", "members must be unique")

    def __contains__(self, identifier: object) -> bool:
        return identifier in self.members

    def by_category(self) -> dict[AssetCategory, tuple[AssetIdentifier, ...]]:
        grouped: dict[AssetCategory, list[AssetIdentifier]] = {}
        for member in self.members:
            grouped.setdefault(member.category, []).append(member)
        return {category: tuple(items) for category, items in grouped.items()}


@dataclass(frozen=True, slots=True)
class DeployBatch:
    batch_number: int
    category: AssetCategory
    items: tuple[AssetIdentifier, ...]

    def __post_init__(self) -> None:
        if isinstance(self.batch_number, bool) or self.batch_number < 1:
            _fail("DeployBatch.batch_number", "must be >= 1")
        if not isinstance(self.category, AssetCategory):
            object.__setattr__(self, "category", AssetCategory(self.category))
        object.__setattr__(self, "items", tuple(self.items))

    @property
    def names(self) -> tuple[str, ...]:
        return tuple(item.name for item in self.items)

    def to_dict(self) -> dict[str, JSONValue]:
        return {
            "batch_number": self.batch_number,
            "category": str(self.category),
            "items": [item.key for item in self.items],
        }

    @classmethod
    def from_dict(cls, payload: Mapping[str, object]) -> DeployBatch:
        raw_items = payload.get("items")
        if not isinstance(raw_items, list):
            _fail("DeployBatch.items", "expected a list of 'Category:Name' strings")
        items: list[AssetIdentifier] = []
        for index, raw in enumerate(raw_items):
            if not isinstance(raw, str):
                _fail(f"DeployBatch.items[{index}]", "expected string")
            items.append(AssetIdentifier.parse(raw))
        number = payload.get("batch_number")
        if not isinstance(number, int):
            _fail("DeployBatch.batch_number", "expected integer")
        raw_category = payload.get("category")
        category = parse_category(raw_category) if isinstance(raw_category, str) else None
        if category is None:
            _fail("DeployBatch.category", f"unknown category {raw_category!r}")
        return cls(batch_number=number, category=category, items=tuple(items))


@dataclass(frozen=True, slots=True)
class DeployPlan:
    batches: tuple[DeployBatch, ...]
    warnings: tuple[str, ...] = ()

    @property
    def total_items(self) -> int:
        return sum(len(batch.items) for batch in self.batches)

    @property
    def estimated_steps(self) -> int:
        return len(self.batches)

    @property
    def is_empty(self) -> bool:
        return not self.batches

    @property
    def fingerprint(self) -> str:
        """Stable short digest of the ordered batch contents."""

        payload = json.dumps(
            [batch.to_dict() for batch in self.batches],
            sort_keys=True,
            separators=(",", ":"),
        )
        return hashlib.sha256(payload.encode("utf-8")).hexdigest()[:12]

    def batch(self, batch_number: int) -> DeployBatch:
        for candidate in self.batches:
            if candidate.batch_number == batch_number:
                return candidate
        raise KeyError(f"plan has no batch {batch_number}")

    def to_dict(self) -> dict[str, JSONValue]:
        return {
            "schema_version": PLAN_FILE_SCHEMA_VERSION,
            "batches": [batch.to_dict() for batch in self.batches],
            "total_items": self.total_items,
            "warnings": list(self.warnings),
        }

    @classmethod
    def from_dict(cls, payload: Mapping[str, object]) -> DeployPlan:
        version = payload.get("schema_version", PLAN_FILE_SCHEMA_VERSION)
        if version != PLAN_FILE_SCHEMA_VERSION:
            _fail("DeployPlan.schema_version", f"unsupported plan schema version {version!r}")
        raw_batches = payload.get("batches")
        if not isinstance(raw_batches, list):
            _fail("DeployPlan.batches", "expected a list")
        batches: list[DeployBatch] = []
        for index, raw in enumerate(raw_batches):
            if not isinstance(raw, Mapping):
                _fail(f"DeployPlan.batches[{index}]", "expected object")
            batches.append(DeployBatch.from_dict(raw))
        raw_warnings = payload.get("warnings", [])
        warnings = (
            tuple(str(item) for item in raw_warnings) if isinstance(raw_warnings, list) else ()
        )
        return cls(batches=tuple(batches), warnings=warnings)


@dataclass(frozen=True, slots=True)
class PlanValidation:
    valid: bool
    errors: tuple[str, ...] = ()

    def to_dict(self) -> dict[str, JSONValue]:
        return {"valid": self.valid, "errors": list(self.errors)}


@dataclass(frozen=True, slots=True)
class CumulativeManifest:
    """Category-grouped manifest content for one batch of a plan."""

    batch_number: int
    groups: tuple[tuple[AssetCategory, tuple[str, ...]], ...]
    api_version: str = DEFAULT_API_VERSION

    @classmethod
    def from_plan(
        cls,
        plan: DeployPlan,
        batch_number: int,
        *,
        api_version: str = DEFAULT_API_VERSION,
    ) -> CumulativeManifest:
        """Union of batches ``1..batch_number``, grouped in layer order."""

        selected = [batch for batch in plan.batches if batch.batch_number <= batch_number]
        if not selected or selected[-1].batch_number != batch_number:
            raise KeyError(f"plan has no batch {batch_number}")
        return cls._from_items(
            batch_number,
            (item for batch in selected for item in batch.items),
            api_version=api_version,
        )

    @classmethod
    def for_batch(
        cls,
        plan: DeployPlan,
        batch_number: int,
        *,
        api_version: str = DEFAULT_API_VERSION,
    ) -> CumulativeManifest:
        """Manifest holding only the items of ``batch_number``."""

        batch = plan.batch(batch_number)
        return cls._from_items(batch_number, batch.items, api_version=api_version)

    @classmethod
    def _from_items(
        cls,
        batch_number: int,
        items: Iterable[AssetIdentifier],
        *,
        api_version: str,
    ) -> CumulativeManifest:
        grouped: dict[AssetCategory, list[str]] = {}
        seen: set[AssetIdentifier] = set()
        for item in items:
            if item in seen:
                continue
            seen.add(item)
            grouped.setdefault(item.category, []).append(item.name)
        groups = tuple(
            (category, tuple(grouped[category])) for category in LAYER_ORDER if category in grouped
        )
        return cls(batch_number=batch_number, groups=groups, api_version=api_version)

    @property
    def identifiers(self) -> tuple[AssetIdentifier, ...]:
        return tuple(
            AssetIdentifier(category, name) for category, names in self.groups for name in names
        )

    @property
    def item_count(self) -> int:
        return sum(len(names) for _, names in self.groups)

    def members(self, category: AssetCategory) -> tuple[str, ...]:
        for candidate, names in self.groups:
            if candidate is category:
                return names
        return ()


@dataclass(frozen=True, slots=True)
class GapDescriptor:
    """A recoverable validation gap: a field or object missing on the target."""

    kind: GapKind
    name: str
    object_name: str | None = None

    @property
    def object_is_id(self) -> bool:
        return self.object_name is not None and self.object_name[:1].isdigit()

    @property
    def metadata_name(self) -> str:
        if self.kind is GapKind.CUSTOM_FIELD and self.object_name:
            return f"{self.object_name}.{self.name}"
        return self.name

    @property
    def metadata_spec(self) -> str:
        return f"{self.kind}:{self.metadata_name}"

    def with_object(self, object_name: str) -> GapDescriptor:
        return GapDescriptor(kind=self.kind, name=self.name, object_name=object_name)

    def to_dict(self) -> dict[str, JSONValue]:
        return {"kind": str(self.kind), "name": self.name, "object_name": self.object_name}


@dataclass(frozen=True, slots=True)
class ComponentProblem:
    component_type: str
    component_name: str
    problem: str
    line: int | None = None
    column: int | None = None

    def render(self) -> str:
        rendered = f"{self.component_type}/{self.component_name}: {self.problem}"
        if self.line is not None:
            location = f"line {self.line}"
            if self.column is not None:
                location += f", column {self.column}"
            rendered += f" ({location})"
        return rendered

    def to_dict(self) -> dict[str, JSONValue]:
        return {
            "component_type": self.component_type,
            "component_name": self.component_name,
            "problem": self.problem,
            "line": self.line,
            "column": self.column,
        }


@dataclass(frozen=True, slots=True)
class ValidationOutcome:
    batch_number: int
    category: AssetCategory
    success: bool
    errors: tuple[str, ...] = ()
    gaps: tuple[GapDescriptor, ...] = ()
    items_validated: int = 0
    manifest_path: str | None = None
    retries: int = 0
    duration_ms: int = 0

    def to_dict(self) -> dict[str, JSONValue]:
        return {
            "batch_number": self.batch_number,
            "category": str(self.category),
            "success": self.success,
            "errors": list(self.errors),
            "gaps": [gap.to_dict() for gap in self.gaps],
            "items_validated": self.items_validated,
            "manifest_path": self.manifest_path,
            "retries": self.retries,
            "duration_ms": self.duration_ms,
        }


@dataclass(frozen=True, slots=True)
class WalkResult:
    state: WalkState
    mode: DeployMode
    total_batches: int
    outcomes: tuple[ValidationOutcome, ...] = ()
    start_batch: int = 1
    failed_at_batch: int | None = None
    next_batch_to_validate: int | None = None
    missing_found_locally: tuple[AssetIdentifier, ...] = ()
    suggestion: str | None = None
    duration_ms: int = 0
    manifest_paths: tuple[str, ...] = field(default=())

    @property
    def succeeded_batches(self) -> tuple[int, ...]:
        return tuple(outcome.batch_number for outcome in self.outcomes if outcome.success)

    def to_dict(self) -> dict[str, JSONValue]:
        return {
            "state": str(self.state),
            "mode": str(self.mode),
            "total_batches": self.total_batches,
            "start_batch": self.start_batch,
            "outcomes": [outcome.to_dict() for outcome in self.outcomes],
            "failed_at_batch": self.failed_at_batch,
            "next_batch_to_validate": self.next_batch_to_validate,
            "missing_found_locally": [item.key for item in self.missing_found_locally],
            "suggestion": self.suggestion,
            "duration_ms": self.duration_ms,
            "manifest_paths": list(self.manifest_paths),
        }


def _fail(path: str, message: str) -> NoReturn:
    raise ValueError(f"{path}: {message}")


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
    "JSONScalar",
    "JSONValue",
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

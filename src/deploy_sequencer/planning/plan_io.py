"""Persist deployment plans as JSON or YAML so a walk can resume from a file."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Final

import yaml

from deploy_sequencer.domain.models import DeployPlan
from deploy_sequencer.utils.fs import atomic_write, ensure_directory

_YAML_SUFFIXES: Final[frozenset[str]] = frozenset({".yaml", ".yml"})


class PlanFileError(ValueError):
    """Raised when a plan file cannot be read, parsed or validated."""


def plan_format(path: Path) -> str:
    return "yaml" if path.suffix.lower() in _YAML_SUFFIXES else "json"


def dump_plan(plan: DeployPlan, *, fmt: str = "json") -> str:
    payload = plan.to_dict()
    if fmt == "yaml":
        return yaml.safe_dump(payload, sort_keys=False, default_flow_style=False)
    if fmt == "json":
        return json.dumps(payload, indent=2) + "\n"
    raise PlanFileError(f"unsupported plan format {fmt!r}; expected 'json' or 'yaml'")


def save_plan(plan: DeployPlan, path: str | Path) -> Path:
    """Write ``plan`` atomically; the suffix (``.json``/``.yaml``/``.yml``) picks the format."""

    target = Path(path).expanduser()
    ensure_directory(target.parent)
    atomic_write(target, dump_plan(plan, fmt=plan_format(target)))
    return target


def load_plan(path: str | Path) -> DeployPlan:
    source = Path(path).expanduser()
    try:
        text = source.read_text(encoding="utf-8")
    except OSError as exc:
        raise PlanFileError(f"cannot read plan file {source}: {exc}") from exc

    try:
        if plan_format(source) == "yaml":
            payload = yaml.safe_load(text)
        else:
            payload = json.loads(text)
    except (yaml.YAMLError, json.JSONDecodeError) as exc:
        raise PlanFileError(f"cannot parse plan file {source}: {exc}") from exc

    if not isinstance(payload, dict):
        raise PlanFileError(f"plan file {source} must contain a mapping at the top level")
    try:
        return DeployPlan.from_dict(payload)
    except (ValueError, KeyError) as exc:
        raise PlanFileError(f"invalid plan file {source}: {exc}") from exc


__all__ = ["PlanFileError", "dump_plan", "load_plan", "plan_format", "save_plan"]

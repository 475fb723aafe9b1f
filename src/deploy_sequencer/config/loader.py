"""
deploy-sequencer — runtime config loader.

File: src/deploy_sequencer/config/loader.py

Purpose
- Load effective runtime config from defaults, TOML file, env vars, and CLI overrides.

What should be included in this file
- Precedence logic: CLI > env (DEPLOYSEQ_) > file > defaults.
- TOML loading via ``tomllib``.
- Deterministic environment variable mapping and coercion.
- Path normalization relative to the config file location.
- Redacted deterministic dump of effective config.

Functional requirements
- Look for ``deploy_sequencer.toml`` in the project root when no file is named.
- Support profile overlays selected by CLI/env.
"""

from __future__ import annotations

import json
import os
import tomllib
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Final, Literal

from deploy_sequencer.config.schema import (
    PATH_FIELDS,
    apply_profile_overlay,
    assert_valid_config,
    default_config,
    dump_redacted,
    merge_config,
)

DEFAULT_CONFIG_FILE: Final[str] = "deploy_sequencer.toml"
ENV_PREFIX: Final[str] = "DEPLOYSEQ_"

_BOOLEAN_TRUE: Final[frozenset[str]] = frozenset({"1", "true", "t", "yes", "y", "on"})
_BOOLEAN_FALSE: Final[frozenset[str]] = frozenset({"0", "false", "f", "no", "n", "off"})

ValueKind = Literal["str", "int", "float", "bool"]


@dataclass(frozen=True, slots=True)
class _Binding:
    path: tuple[str, ...]
    value_type: ValueKind


# Keys whose default is None, so their type cannot be read off the defaults.
_OPTIONAL_BINDINGS: Final[tuple[_Binding, ...]] = (
    _Binding(("target", "org"), "str"),
    _Binding(("target", "api_version"), "str"),
)


class ConfigLoadError(ValueError):
    """Raised when config cannot be loaded or overrides cannot be coerced."""


def load_config(
    config_path: str | Path | None = None,
    *,
    project_root: str | Path | None = None,
    profile: str | None = None,
    cli_overrides: Mapping[str, object] | None = None,
    environ: Mapping[str, str] | None = None,
) -> dict[str, Any]:
    """Load effective config with deterministic precedence: CLI > env > file > defaults.

    Without ``config_path`` the file is looked up as ``deploy_sequencer.toml``
    under ``project_root`` (default: the working directory) and is optional.
    Relative paths resolve against the directory holding the config file.
    """

    resolved_path = _resolve_config_path(config_path, project_root)
    explicit_path = config_path is not None
    env_map = dict(os.environ if environ is None else environ)
    cli_map = dict(cli_overrides or {})

    file_payload = _load_toml_file(resolved_path, required=explicit_path)
    selected_profile = _resolve_profile(profile=profile, cli_overrides=cli_map, environ=env_map)

    merged = merge_config(default_config(), file_payload)
    merged = assert_valid_config(merged)

    if selected_profile is not None:
        merged = apply_profile_overlay(merged, selected_profile)

    merged = merge_config(merged, _collect_env_overrides(merged, env_map))
    merged = merge_config(merged, _materialize_cli_overrides(cli_map))
    merged = assert_valid_config(merged, active_profile=selected_profile)

    return normalize_paths(merged, base_dir=resolved_path.parent)


def normalize_paths(config: Mapping[str, object], *, base_dir: Path) -> dict[str, Any]:
    """Normalize configured path fields relative to ``base_dir``."""

    materialized = merge_config({}, config)
    for field_path in PATH_FIELDS:
        _normalize_path_field(materialized, field_path, base_dir)
    return materialized


def effective_config(config: Mapping[str, object]) -> dict[str, Any]:
    """Return a redacted effective config representation suitable for logging."""

    return dump_redacted(config)


def dump_effective_config(config: Mapping[str, object]) -> str:
    """Return deterministic JSON dump of redacted effective config."""

    return json.dumps(
        effective_config(config), sort_keys=True, separators=(",", ":"), ensure_ascii=False
    )


def env_binding_names(config: Mapping[str, object] | None = None) -> tuple[str, ...]:
    """Environment variables that override config keys, sorted."""

    return tuple(sorted(_build_bindings(config if config is not None else default_config())))


def _resolve_config_path(
    config_path: str | Path | None,
    project_root: str | Path | None,
) -> Path:
    if config_path is not None:
        return Path(config_path).expanduser().resolve()
    root = Path(project_root).expanduser() if project_root is not None else Path.cwd()
    return (root / DEFAULT_CONFIG_FILE).resolve()


def _load_toml_file(path: Path, *, required: bool) -> dict[str, Any]:
    if not path.exists():
        if required:
            raise ConfigLoadError(f"config file not found: {path}")
        return {}

    try:
        with path.open("rb") as handle:
            parsed = tomllib.load(handle)
    except tomllib.TOMLDecodeError as exc:
        raise ConfigLoadError(f"invalid TOML in {path}: {exc}") from exc
    except OSError as exc:
        raise ConfigLoadError(f"unable to read config file {path}: {exc}") from exc

    return parsed


def _resolve_profile(
    *,
    profile: str | None,
    cli_overrides: Mapping[str, object],
    environ: Mapping[str, str],
) -> str | None:
    candidate: object = profile
    if candidate is None:
        candidate = cli_overrides.get("profile")
        if candidate is not None and not isinstance(candidate, str):
            raise ConfigLoadError("cli override 'profile' must be a string")
    if candidate is None:
        candidate = environ.get(f"{ENV_PREFIX}PROFILE")
    if candidate is None:
        return None
    selected = str(candidate).strip()
    return selected or None


def _collect_env_overrides(
    config: Mapping[str, object], environ: Mapping[str, str]
) -> dict[str, Any]:
    bindings = _build_bindings(config)
    overrides: dict[str, Any] = {}
    for env_name in sorted(bindings):
        raw = environ.get(env_name)
        if raw is None:
            continue
        binding = bindings[env_name]
        _set_nested(overrides, binding.path, _coerce_env(raw, binding, env_name))
    return overrides


def _build_bindings(config: Mapping[str, object]) -> dict[str, _Binding]:
    bindings: dict[str, _Binding] = {}
    for path, value in _iter_scalar_paths(config):
        if path[0] in {"profiles", "meta"}:
            continue
        kind = _kind_for_value(value)
        if kind is not None:
            bindings[_env_name_for_path(path)] = _Binding(path=path, value_type=kind)
    for binding in _OPTIONAL_BINDINGS:
        bindings.setdefault(_env_name_for_path(binding.path), binding)
    return bindings


def _iter_scalar_paths(
    payload: Mapping[str, object],
    prefix: tuple[str, ...] = (),
) -> list[tuple[tuple[str, ...], object]]:
    pairs: list[tuple[tuple[str, ...], object]] = []
    for key in sorted(payload):
        value = payload[key]
        path = (*prefix, key)
        if isinstance(value, Mapping):
            pairs.extend(_iter_scalar_paths(value, path))
        else:
            pairs.append((path, value))
    return pairs


def _kind_for_value(value: object) -> ValueKind | None:
    if isinstance(value, bool):
        return "bool"
    if isinstance(value, int):
        return "int"
    if isinstance(value, float):
        return "float"
    if isinstance(value, str):
        return "str"
    return None


def _coerce_env(raw: str, binding: _Binding, env_name: str) -> object:
    value = raw.strip()
    dotted = ".".join(binding.path)
    if binding.value_type == "str":
        return value
    if binding.value_type == "int":
        try:
            return int(value)
        except ValueError as exc:
            raise ConfigLoadError(f"{env_name} -> {dotted} must be an integer") from exc
    if binding.value_type == "float":
        try:
            return float(value)
        except ValueError as exc:
            raise ConfigLoadError(f"{env_name} -> {dotted} must be a number") from exc

    lowered = value.lower()
    if lowered in _BOOLEAN_TRUE:
        return True
    if lowered in _BOOLEAN_FALSE:
        return False
    raise ConfigLoadError(
        f"{env_name} -> {dotted} must be a boolean (true/false/1/0/yes/no/on/off)"
    )


def _materialize_cli_overrides(cli_overrides: Mapping[str, object]) -> dict[str, Any]:
    payload: dict[str, Any] = {}
    for key in sorted(cli_overrides):
        if key == "profile":
            continue
        value = cli_overrides[key]
        if value is None:
            # Unset CLI flags never override lower layers.
            continue
        path = tuple(part for part in key.split(".") if part)
        if not path:
            raise ConfigLoadError(f"invalid CLI override key {key!r}")
        _set_nested(payload, path, value)
    return payload


def _set_nested(target: dict[str, Any], path: tuple[str, ...], value: object) -> None:
    cursor = target
    for part in path[:-1]:
        next_node = cursor.get(part)
        if not isinstance(next_node, dict):
            next_node = {}
            cursor[part] = next_node
        cursor = next_node
    cursor[path[-1]] = value


def _get_nested(payload: Mapping[str, object], path: tuple[str, ...]) -> object | None:
    cursor: object = payload
    for part in path:
        if not isinstance(cursor, Mapping) or part not in cursor:
            return None
        cursor = cursor[part]
    return cursor


def _normalize_path_field(config: dict[str, Any], path: tuple[str, ...], base_dir: Path) -> None:
    value = _get_nested(config, path)
    if isinstance(value, str):
        _set_nested(config, path, _normalize_one_path(value, base_dir))


def _normalize_one_path(raw: str, base_dir: Path) -> str:
    candidate = Path(os.path.expandvars(raw)).expanduser()
    if not candidate.is_absolute():
        candidate = base_dir / candidate
    return Path(os.path.normpath(str(candidate))).as_posix()


def _env_name_for_path(path: tuple[str, ...]) -> str:
    return ENV_PREFIX + "_".join(part.upper() for part in path)


__all__ = [
    "ConfigLoadError",
    "DEFAULT_CONFIG_FILE",
    "ENV_PREFIX",
    "dump_effective_config",
    "effective_config",
    "env_binding_names",
    "load_config",
    "normalize_paths",
]

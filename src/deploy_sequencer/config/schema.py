"""
deploy-sequencer — configuration schema and validation.

File: src/deploy_sequencer/config/schema.py

Purpose
- Define authoritative configuration defaults and strict validation rules.

What should be included in this file
- Schema versioning and migration guidance.
- Field rules for types, enums and numeric bounds, declared per section.
- Profile overlay validation and deterministic deep-merge helpers.
- Redaction rules for sensitive fields.

Functional requirements
- Validate config payloads and return structured errors (field path + message).
- Support the built-in ``strict``, ``ci`` and ``interactive`` profiles.
- Never accept embedded credentials; org authentication stays with the ``sf`` CLI.
"""

from __future__ import annotations

import copy
import math
import re
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import Any, Final, Literal, TypedDict

from deploy_sequencer.constants import (
    ARTIFACT_DIR,
    CONFIG_SCHEMA_VERSION,
    DEFAULT_CLI_BINARY,
    DEFAULT_COMMAND_TIMEOUT_SECONDS,
    DEFAULT_MAX_GAP_RETRIES,
    DEFAULT_SAFETY_MARGIN_SECONDS,
    DEFAULT_SOURCE_DIR,
    DEFAULT_TIME_BUDGET_SECONDS,
    DEFAULT_WAIT_MINUTES,
    LOG_DIR,
)

ConfigSchemaVersion: Final[int] = CONFIG_SCHEMA_VERSION
BUILTIN_PROFILE_NAMES: Final[tuple[str, ...]] = ("strict", "ci", "interactive")
LOG_LEVELS: Final[tuple[str, ...]] = ("DEBUG", "INFO", "WARNING", "ERROR")

_PROFILE_NAME_PATTERN = re.compile(r"^[a-z][a-z0-9_-]*$")
_API_VERSION_PATTERN = re.compile(r"^\d{2,3}\.0$")
_CAMEL_CASE_BOUNDARY = re.compile(r"([a-z0-9])([A-Z])")
_NON_ALNUM = re.compile(r"[^a-z0-9]+")

_SENSITIVE_KEY_TOKENS: Final[frozenset[str]] = frozenset(
    {"secret", "token", "password", "passwd", "key", "private", "credential", "auth", "sid"}
)
_SENSITIVE_KEY_PHRASES: Final[tuple[str, ...]] = (
    "access_token",
    "refresh_token",
    "session_id",
    "client_secret",
    "private_key",
    "password",
    "secret",
    "sfdx_auth_url",
)

# Config paths normalized relative to the config file location.
PATH_FIELDS: Final[tuple[tuple[str, ...], ...]] = (
    ("project", "root"),
    ("paths", "artifact_dir"),
    ("paths", "log_dir"),
)


class MetaConfig(TypedDict):
    schema_version: int


class ProjectConfig(TypedDict):
    root: str
    source_dir: str


class TargetConfig(TypedDict):
    org: str | None
    api_version: str | None
    cli_binary: str


class ValidationConfig(TypedDict):
    max_gap_retries: int
    time_budget_seconds: float
    safety_margin_seconds: float
    wait_minutes: int
    command_timeout_seconds: float


class ClosureConfig(TypedDict):
    max_workers: int


class PathsConfig(TypedDict):
    artifact_dir: str
    log_dir: str


class ObservabilityConfig(TypedDict):
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"]
    log_to_stdout: bool
    redact_secrets: bool


class ProfileOverlay(TypedDict, total=False):
    project: dict[str, object]
    target: dict[str, object]
    validation: dict[str, object]
    closure: dict[str, object]
    paths: dict[str, object]
    observability: dict[str, object]


class SequencerConfig(TypedDict):
    meta: MetaConfig
    project: ProjectConfig
    target: TargetConfig
    validation: ValidationConfig
    closure: ClosureConfig
    paths: PathsConfig
    observability: ObservabilityConfig
    profiles: dict[str, ProfileOverlay]


DEFAULT_CONFIG: Final[SequencerConfig] = {
    "meta": {
        "schema_version": ConfigSchemaVersion,
    },
    "project": {
        "root": ".",
        "source_dir": DEFAULT_SOURCE_DIR.as_posix(),
    },
    "target": {
        "org": None,
        "api_version": None,
        "cli_binary": DEFAULT_CLI_BINARY,
    },
    "validation": {
        "max_gap_retries": DEFAULT_MAX_GAP_RETRIES,
        "time_budget_seconds": DEFAULT_TIME_BUDGET_SECONDS,
        "safety_margin_seconds": DEFAULT_SAFETY_MARGIN_SECONDS,
        "wait_minutes": DEFAULT_WAIT_MINUTES,
        "command_timeout_seconds": DEFAULT_COMMAND_TIMEOUT_SECONDS,
    },
    "closure": {
        "max_workers": 8,
    },
    "paths": {
        "artifact_dir": ARTIFACT_DIR.as_posix(),
        "log_dir": LOG_DIR.as_posix(),
    },
    "observability": {
        "log_level": "INFO",
        "log_to_stdout": False,
        "redact_secrets": True,
    },
    "profiles": {
        "strict": {
            "validation": {"max_gap_retries": 0},
        },
        "ci": {
            "validation": {"time_budget_seconds": 1800.0, "safety_margin_seconds": 60.0},
            "observability": {"log_to_stdout": True},
        },
        "interactive": {
            "validation": {"time_budget_seconds": 300.0},
        },
    },
}


FieldKind = Literal["int", "float", "bool", "str", "path", "enum"]


@dataclass(frozen=True, slots=True)
class _Field:
    kind: FieldKind
    minimum: float | None = None
    exclusive_minimum: bool = False
    choices: tuple[str, ...] = ()
    optional: bool = False
    pattern: re.Pattern[str] | None = None
    hint: str = ""


_SECTIONS: Final[dict[str, dict[str, _Field]]] = {
    "meta": {
        "schema_version": _Field("int", minimum=1),
    },
    "project": {
        "root": _Field("path"),
        "source_dir": _Field("path"),
    },
    "target": {
        "org": _Field("str", optional=True),
        "api_version": _Field(
            "str", optional=True, pattern=_API_VERSION_PATTERN, hint="e.g. '59.0'"
        ),
        "cli_binary": _Field("str"),
    },
    "validation": {
        "max_gap_retries": _Field("int", minimum=0),
        "time_budget_seconds": _Field("float", minimum=0, exclusive_minimum=True),
        "safety_margin_seconds": _Field("float", minimum=0),
        "wait_minutes": _Field("int", minimum=1),
        "command_timeout_seconds": _Field("float", minimum=0, exclusive_minimum=True),
    },
    "closure": {
        "max_workers": _Field("int", minimum=1),
    },
    "paths": {
        "artifact_dir": _Field("path"),
        "log_dir": _Field("path"),
    },
    "observability": {
        "log_level": _Field("enum", choices=LOG_LEVELS),
        "log_to_stdout": _Field("bool"),
        "redact_secrets": _Field("bool"),
    },
}

_OVERLAY_SECTIONS: Final[frozenset[str]] = frozenset(_SECTIONS) - {"meta"}


@dataclass(frozen=True, slots=True)
class ConfigValidationIssue:
    """Single structured validation failure."""

    path: str
    message: str


@dataclass(frozen=True, slots=True)
class ConfigValidationResult:
    """Validation result with normalized config when no issues were found."""

    config: dict[str, Any] | None
    issues: tuple[ConfigValidationIssue, ...]

    @property
    def is_valid(self) -> bool:
        return self.config is not None and not self.issues


class ConfigValidationError(ValueError):
    """Raised when strict config validation fails."""

    def __init__(self, issues: Sequence[ConfigValidationIssue]) -> None:
        self.issues = tuple(issues)
        if not self.issues:
            rendered = "unknown validation failure"
        else:
            rendered = "\n".join(f"- {item.path}: {item.message}" for item in self.issues)
        super().__init__(f"invalid config:\n{rendered}")


class _IssueCollector:
    __slots__ = ("_items",)

    def __init__(self) -> None:
        self._items: list[ConfigValidationIssue] = []

    def add(self, path: str, message: str) -> None:
        self._items.append(ConfigValidationIssue(path=path, message=message))

    def items(self) -> tuple[ConfigValidationIssue, ...]:
        return tuple(self._items)

    @property
    def has_issues(self) -> bool:
        return bool(self._items)


def default_config() -> SequencerConfig:
    """Return a deep copy of the built-in defaults."""

    return copy.deepcopy(DEFAULT_CONFIG)


def migration_guidance(found_version: int) -> str:
    if found_version < ConfigSchemaVersion:
        return (
            f"schema version {found_version} is older than supported {ConfigSchemaVersion}; "
            "upgrade deploy_sequencer.toml to the current schema"
        )
    if found_version > ConfigSchemaVersion:
        return (
            f"schema version {found_version} is newer than supported {ConfigSchemaVersion}; "
            "upgrade the deploy-sequencer package"
        )
    return "schema version is current"


def merge_config(base: Mapping[str, object], overlay: Mapping[str, object]) -> dict[str, Any]:
    """Deterministically deep-merge ``overlay`` onto ``base``."""

    merged = _deep_copy_mapping(base)
    _merge_into(merged, overlay)
    return merged


def apply_profile_overlay(config: Mapping[str, object], profile: str | None) -> dict[str, Any]:
    """Apply a named profile overlay and re-validate the resulting config."""

    materialized = _deep_copy_mapping(config)
    selected = profile.strip() if profile is not None else ""
    if not selected:
        return materialized

    profiles_raw = materialized.get("profiles")
    overlay_raw = profiles_raw.get(selected) if isinstance(profiles_raw, Mapping) else None
    if overlay_raw is None:
        raise ConfigValidationError(
            (ConfigValidationIssue("profiles", f"profile {selected!r} is not defined"),)
        )
    if not isinstance(overlay_raw, Mapping):
        raise ConfigValidationError(
            (ConfigValidationIssue(f"profiles.{selected}", "profile overlay must be an object"),)
        )

    return assert_valid_config(merge_config(materialized, overlay_raw), active_profile=selected)


def validate_config(
    config: Mapping[str, object] | object,
    *,
    active_profile: str | None = None,
) -> ConfigValidationResult:
    """Validate config and return structured issues with deterministic paths."""

    issues = _IssueCollector()
    root = _as_object(config, "<root>", issues)
    if root is None:
        return ConfigValidationResult(config=None, issues=issues.items())

    normalized = _validate_root(root, issues)

    selected_profile = active_profile.strip() if isinstance(active_profile, str) else None
    if selected_profile:
        profiles = normalized.get("profiles")
        if not isinstance(profiles, Mapping) or selected_profile not in profiles:
            issues.add("profiles", f"profile {selected_profile!r} is not defined")
        else:
            _validate_root(merge_config(normalized, profiles[selected_profile]), issues)

    if issues.has_issues:
        return ConfigValidationResult(config=None, issues=issues.items())
    return ConfigValidationResult(config=normalized, issues=())


def assert_valid_config(
    config: Mapping[str, object] | object,
    *,
    active_profile: str | None = None,
) -> dict[str, Any]:
    """Validate config and raise ``ConfigValidationError`` on failure."""

    result = validate_config(config, active_profile=active_profile)
    if result.config is None:
        raise ConfigValidationError(result.issues)
    return result.config


def redact_config(config: Mapping[str, object] | object) -> dict[str, Any]:
    """Return a redacted copy for logs and ``deployseq config`` output."""

    if not isinstance(config, Mapping):
        return {}
    redacted = _redact_value(config, parent_key=None)
    return redacted if isinstance(redacted, dict) else {}


def dump_redacted(config: Mapping[str, object] | object) -> dict[str, Any]:
    return redact_config(config)


def _validate_root(payload: Mapping[str, object], issues: _IssueCollector) -> dict[str, Any]:
    _reject_unknown_keys(payload, {*_SECTIONS, "profiles"}, "", issues)
    _require_keys(payload, set(_SECTIONS), "", issues)

    out: dict[str, Any] = {}
    for section in sorted(_SECTIONS):
        raw = payload.get(section)
        if raw is None:
            continue
        section_obj = _as_object(raw, section, issues)
        if section_obj is not None:
            out[section] = _validate_section(section_obj, section, issues, partial=False)

    meta = out.get("meta", {})
    version = meta.get("schema_version")
    if isinstance(version, int) and version != ConfigSchemaVersion:
        issues.add("meta.schema_version", migration_guidance(version))

    validation = out.get("validation", {})
    budget = validation.get("time_budget_seconds")
    margin = validation.get("safety_margin_seconds")
    if isinstance(budget, float) and isinstance(margin, float) and margin >= budget:
        issues.add(
            "validation.safety_margin_seconds",
            "must be smaller than validation.time_budget_seconds",
        )

    profiles_raw = payload.get("profiles")
    if profiles_raw is not None:
        profiles_obj = _as_object(profiles_raw, "profiles", issues)
        if profiles_obj is not None:
            out["profiles"] = _validate_profiles(profiles_obj, "profiles", issues)
    return out


def _validate_section(
    payload: Mapping[str, object],
    path: str,
    issues: _IssueCollector,
    *,
    partial: bool,
) -> dict[str, Any]:
    fields = _SECTIONS[path.rsplit(".", 1)[-1]]
    _reject_unknown_keys(payload, set(fields), path, issues)
    if not partial:
        _require_keys(
            payload, {name for name, rule in fields.items() if not rule.optional}, path, issues
        )

    out: dict[str, Any] = {}
    for name in sorted(fields):
        if name not in payload:
            continue
        rule = fields[name]
        value = payload[name]
        field_path = _join(path, name)
        if value is None and rule.optional:
            out[name] = None
            continue
        parsed = _parse_field(value, rule, field_path, issues)
        if parsed is not None:
            out[name] = parsed
    return out


def _parse_field(value: object, rule: _Field, path: str, issues: _IssueCollector) -> object:
    if rule.kind == "bool":
        return _as_bool(value, path, issues)
    if rule.kind == "int":
        return _as_int(value, path, issues, minimum=rule.minimum)
    if rule.kind == "float":
        return _as_float(
            value, path, issues, minimum=rule.minimum, exclusive=rule.exclusive_minimum
        )
    if rule.kind == "enum":
        return _as_enum(value, path, issues, allowed_values=rule.choices)
    if rule.kind == "path":
        return _as_path_text(value, path, issues)

    parsed = _as_str(value, path, issues)
    if parsed is not None and rule.pattern is not None and not rule.pattern.fullmatch(parsed):
        suffix = f" ({rule.hint})" if rule.hint else ""
        issues.add(path, f"invalid value {parsed!r}{suffix}")
        return None
    return parsed


def _validate_profiles(
    payload: Mapping[str, object],
    path: str,
    issues: _IssueCollector,
) -> dict[str, Any]:
    out: dict[str, Any] = {}
    for profile_name in sorted(payload):
        profile_path = _join(path, profile_name)
        if not _PROFILE_NAME_PATTERN.fullmatch(profile_name):
            issues.add(profile_path, "profile name must match ^[a-z][a-z0-9_-]*$")
            continue
        profile_obj = _as_object(payload[profile_name], profile_path, issues)
        if profile_obj is None:
            continue
        _reject_unknown_keys(profile_obj, set(_OVERLAY_SECTIONS), profile_path, issues)
        overlay: dict[str, Any] = {}
        for section in sorted(_OVERLAY_SECTIONS & set(profile_obj)):
            section_path = _join(profile_path, section)
            section_obj = _as_object(profile_obj[section], section_path, issues)
            if section_obj is not None:
                overlay[section] = _validate_section(
                    section_obj, section_path, issues, partial=True
                )
        out[profile_name] = overlay
    return out


def _as_object(value: object, path: str, issues: _IssueCollector) -> dict[str, object] | None:
    if not isinstance(value, Mapping):
        issues.add(path, f"expected object, got {type(value).__name__}")
        return None
    out: dict[str, object] = {}
    for key, item in value.items():
        if not isinstance(key, str):
            issues.add(path, f"object key must be string, got {type(key).__name__}")
            continue
        out[key] = item
    return out


def _as_str(value: object, path: str, issues: _IssueCollector) -> str | None:
    if not isinstance(value, str):
        issues.add(path, f"expected string, got {type(value).__name__}")
        return None
    parsed = value.strip()
    if not parsed:
        issues.add(path, "must not be empty")
        return None
    return parsed


def _as_path_text(value: object, path: str, issues: _IssueCollector) -> str | None:
    parsed = _as_str(value, path, issues)
    if parsed is not None and "\x00" in parsed:
        issues.add(path, "must not contain NUL bytes")
        return None
    return parsed


def _as_bool(value: object, path: str, issues: _IssueCollector) -> bool | None:
    if isinstance(value, bool):
        return value
    issues.add(path, f"expected boolean, got {type(value).__name__}")
    return None


def _as_int(
    value: object,
    path: str,
    issues: _IssueCollector,
    *,
    minimum: float | None = None,
) -> int | None:
    if isinstance(value, bool) or not isinstance(value, int):
        issues.add(path, f"expected integer, got {type(value).__name__}")
        return None
    if minimum is not None and value < minimum:
        issues.add(path, f"must be >= {int(minimum)}")
        return None
    return value


def _as_float(
    value: object,
    path: str,
    issues: _IssueCollector,
    *,
    minimum: float | None = None,
    exclusive: bool = False,
) -> float | None:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        issues.add(path, f"expected number, got {type(value).__name__}")
        return None
    parsed = float(value)
    if not math.isfinite(parsed):
        issues.add(path, "must be finite")
        return None
    if minimum is not None:
        if exclusive and parsed <= minimum:
            issues.add(path, f"must be > {minimum}")
            return None
        if not exclusive and parsed < minimum:
            issues.add(path, f"must be >= {minimum}")
            return None
    return parsed


def _as_enum(
    value: object,
    path: str,
    issues: _IssueCollector,
    *,
    allowed_values: tuple[str, ...],
) -> str | None:
    parsed = _as_str(value, path, issues)
    if parsed is None:
        return None
    if parsed not in allowed_values:
        expected = ", ".join(sorted(allowed_values))
        issues.add(path, f"invalid value {parsed!r}; expected one of: {expected}")
        return None
    return parsed


def _reject_unknown_keys(
    payload: Mapping[str, object],
    allowed: set[str],
    path: str,
    issues: _IssueCollector,
) -> None:
    for key in sorted(payload):
        if key in allowed:
            continue
        key_path = _join(path, key)
        if _looks_sensitive_key(key):
            issues.add(
                key_path,
                "embedded credentials are forbidden; authenticate the org with `sf org login`",
            )
        else:
            issues.add(key_path, "unknown field")


def _require_keys(
    payload: Mapping[str, object],
    required: set[str],
    path: str,
    issues: _IssueCollector,
) -> None:
    for key in sorted(required):
        if key not in payload:
            issues.add(_join(path, key), "missing required field")


def _looks_sensitive_key(key: str) -> bool:
    normalized = _normalize_key(key)
    if any(phrase in normalized for phrase in _SENSITIVE_KEY_PHRASES):
        return True
    return any(token in _SENSITIVE_KEY_TOKENS for token in normalized.split("_") if token)


def _normalize_key(key: str) -> str:
    with_boundaries = _CAMEL_CASE_BOUNDARY.sub(r"\1_\2", key.strip())
    return _NON_ALNUM.sub("_", with_boundaries.lower()).strip("_")


def _join(path: str, key: str) -> str:
    if not path:
        return key
    return f"{path}.{key}"


def _merge_into(target: dict[str, Any], overlay: Mapping[str, object]) -> None:
    for key in sorted(overlay):
        value = overlay[key]
        if isinstance(value, Mapping):
            existing = target.get(key)
            nested = existing if isinstance(existing, dict) else {}
            _merge_into(nested, value)
            target[key] = nested
        else:
            target[key] = copy.deepcopy(value)


def _deep_copy_mapping(value: Mapping[str, object]) -> dict[str, Any]:
    out: dict[str, Any] = {}
    for key in sorted(value):
        item = value[key]
        out[key] = _deep_copy_mapping(item) if isinstance(item, Mapping) else copy.deepcopy(item)
    return out


def _redact_value(value: object, parent_key: str | None) -> object:
    if isinstance(value, Mapping):
        return {
            key: "<redacted>"
            if _looks_sensitive_key(key) and isinstance(value[key], str)
            else _redact_value(value[key], key)
            for key in sorted(value)
        }
    if isinstance(value, (list, tuple)):
        return [_redact_value(item, parent_key) for item in value]
    return value


__all__ = [
    "BUILTIN_PROFILE_NAMES",
    "DEFAULT_CONFIG",
    "LOG_LEVELS",
    "PATH_FIELDS",
    "ConfigSchemaVersion",
    "ConfigValidationError",
    "ConfigValidationIssue",
    "ConfigValidationResult",
    "ProfileOverlay",
    "SequencerConfig",
    "apply_profile_overlay",
    "assert_valid_config",
    "default_config",
    "dump_redacted",
    "merge_config",
    "migration_guidance",
    "redact_config",
    "validate_config",
]

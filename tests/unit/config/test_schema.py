"""
deploy-sequencer — unit tests for config schema validation

File: tests/unit/config/test_schema.py

Purpose
- Validate strict config schema behavior, structured errors, profile overlays, and redaction.

What this test file should cover
- The built-in defaults validate cleanly.
- Rejects unknown keys and invalid types with actionable paths.
- Rejects embedded org credentials.
- Ensures redaction is recursive and non-destructive.
"""

from __future__ import annotations

import pytest

from deploy_sequencer.config.schema import (
    BUILTIN_PROFILE_NAMES,
    ConfigSchemaVersion,
    ConfigValidationError,
    apply_profile_overlay,
    assert_valid_config,
    default_config,
    dump_redacted,
    merge_config,
    migration_guidance,
    validate_config,
)


def _issues(payload: object) -> dict[str, str]:
    result = validate_config(payload)
    assert not result.is_valid
    return {issue.path: issue.message for issue in result.issues}


@pytest.mark.unit
def test_defaults_are_valid() -> None:
    result = validate_config(default_config())

    assert result.is_valid
    assert result.issues == ()
    assert set(BUILTIN_PROFILE_NAMES) <= set(result.config["profiles"])  # type: ignore[index]


@pytest.mark.unit
def test_default_config_is_a_copy() -> None:
    first = default_config()
    first["validation"]["max_gap_retries"] = 99

    assert default_config()["validation"]["max_gap_retries"] == 3


@pytest.mark.unit
def test_margin_must_be_smaller_than_budget() -> None:
    config = merge_config(
        default_config(),
        {"validation": {"time_budget_seconds": 10.0, "safety_margin_seconds": 10.0}},
    )

    assert _issues(config) == {
        "validation.safety_margin_seconds": "must be smaller than validation.time_budget_seconds"
    }


@pytest.mark.unit
@pytest.mark.parametrize("version", ["59.0", "60.0", "100.0"])
def test_api_version_accepts_release_numbers(version: str) -> None:
    config = merge_config(default_config(), {"target": {"api_version": version}})
    assert validate_config(config).is_valid


@pytest.mark.unit
@pytest.mark.parametrize("version", ["59", "v59.0", "59.1", "latest"])
def test_api_version_rejects_other_shapes(version: str) -> None:
    config = merge_config(default_config(), {"target": {"api_version": version}})

    issues = _issues(config)

    assert issues["target.api_version"] == f"invalid value {version!r} (e.g. '59.0')"


@pytest.mark.unit
def test_type_and_range_errors_carry_paths() -> None:
    config = merge_config(
        default_config(),
        {
            "validation": {"max_gap_retries": "3", "wait_minutes": 0},
            "observability": {"log_level": "TRACE", "log_to_stdout": "yes"},
            "closure": {"max_workers": True},
        },
    )

    issues = _issues(config)

    assert issues["validation.max_gap_retries"] == "expected integer, got str"
    assert issues["validation.wait_minutes"] == "must be >= 1"
    assert issues["observability.log_level"].startswith("invalid value 'TRACE'")
    assert issues["observability.log_to_stdout"] == "expected boolean, got str"
    assert issues["closure.max_workers"] == "expected integer, got bool"


@pytest.mark.unit
def test_unknown_and_missing_keys() -> None:
    config = default_config()
    del config["closure"]  # type: ignore[misc]
    config["validation"]["retries"] = 4  # type: ignore[typeddict-unknown-key]
    config["plugins"] = {}  # type: ignore[typeddict-unknown-key]

    issues = _issues(config)

    assert issues["closure"] == "missing required field"
    assert issues["validation.retries"] == "unknown field"
    assert issues["plugins"] == "unknown field"


@pytest.mark.unit
@pytest.mark.parametrize("key", ["access_token", "sfdxAuthUrl", "password", "clientSecret"])
def test_embedded_credentials_are_rejected(key: str) -> None:
    config = default_config()
    config["target"][key] = "00D000000000001!AQ0AQ"  # type: ignore[literal-required]

    issues = _issues(config)

    assert issues[f"target.{key}"].startswith("embedded credentials are forbidden")


@pytest.mark.unit
def test_schema_version_mismatch_has_migration_guidance() -> None:
    config = merge_config(default_config(), {"meta": {"schema_version": ConfigSchemaVersion + 1}})

    issues = _issues(config)

    assert issues["meta.schema_version"] == migration_guidance(ConfigSchemaVersion + 1)
    assert "upgrade the deploy-sequencer package" in issues["meta.schema_version"]
    assert migration_guidance(ConfigSchemaVersion) == "schema version is current"


@pytest.mark.unit
def test_profile_names_and_overlay_sections_are_checked() -> None:
    config = merge_config(
        default_config(),
        {
            "profiles": {
                "Nightly": {"validation": {"max_gap_retries": 1}},
                "night": {"meta": {"schema_version": 1}, "validation": {"wait_minutes": 0}},
            }
        },
    )

    issues = _issues(config)

    assert issues["profiles.Nightly"] == "profile name must match ^[a-z][a-z0-9_-]*$"
    assert issues["profiles.night.meta"] == "unknown field"
    assert issues["profiles.night.validation.wait_minutes"] == "must be >= 1"


@pytest.mark.unit
def test_apply_profile_overlay() -> None:
    config = assert_valid_config(default_config())

    strict = apply_profile_overlay(config, "strict")

    assert strict["validation"]["max_gap_retries"] == 0
    assert config["validation"]["max_gap_retries"] == 3
    assert apply_profile_overlay(config, None) == config
    assert apply_profile_overlay(config, "  ") == config


@pytest.mark.unit
def test_apply_undefined_profile_raises() -> None:
    with pytest.raises(ConfigValidationError) as excinfo:
        apply_profile_overlay(default_config(), "nightly")

    assert str(excinfo.value) == "invalid config:\n- profiles: profile 'nightly' is not defined"
    assert excinfo.value.issues[0].path == "profiles"


@pytest.mark.unit
def test_active_profile_is_validated_against_merged_config() -> None:
    config = merge_config(
        default_config(),
        {"profiles": {"tight": {"validation": {"safety_margin_seconds": 90.0}}}},
    )

    assert validate_config(config).is_valid
    result = validate_config(config, active_profile="tight")
    assert [issue.path for issue in result.issues] == ["validation.safety_margin_seconds"]


@pytest.mark.unit
def test_merge_config_is_deep_and_non_destructive() -> None:
    base = {"a": {"b": 1, "c": [1, 2]}, "d": 1}
    overlay = {"a": {"b": 2}, "e": 3}

    merged = merge_config(base, overlay)

    assert merged == {"a": {"b": 2, "c": [1, 2]}, "d": 1, "e": 3}
    assert base == {"a": {"b": 1, "c": [1, 2]}, "d": 1}
    assert merged["a"]["c"] is not base["a"]["c"]


@pytest.mark.unit
def test_redaction_is_recursive_and_non_destructive() -> None:
    payload = {
        "target": {"org": "qa", "accessToken": "00D!abc"},
        "extra": [{"refresh_token": "x", "name": "ok"}],
    }

    redacted = dump_redacted(payload)

    assert redacted == {
        "extra": [{"name": "ok", "refresh_token": "<redacted>"}],
        "target": {"accessToken": "<redacted>", "org": "qa"},
    }
    assert payload["target"]["accessToken"] == "00D!abc"
    assert dump_redacted(["not", "a", "mapping"]) == {}

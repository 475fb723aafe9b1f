"""Unit tests for plan file persistence."""

from __future__ import annotations

import json
from pathlib import Path

import pytest
import yaml

from deploy_sequencer.domain.models import AssetCategory, AssetIdentifier, DeployBatch, DeployPlan
from deploy_sequencer.planning.plan_io import (
    PlanFileError,
    dump_plan,
    load_plan,
    plan_format,
    save_plan,
)


def _plan() -> DeployPlan:
    return DeployPlan(
        batches=(
            DeployBatch(
                1,
                AssetCategory.APEX_CLASS,
                (AssetIdentifier(AssetCategory.APEX_CLASS, "OrderService"),),
            ),
            DeployBatch(
                2,
                AssetCategory.BOT_VERSION,
                (AssetIdentifier.bot_version("SupportBot", "v1"),),
            ),
        ),
        warnings=("Skipped GenAiFunction dependency (not found locally): C2",),
    )


@pytest.mark.unit
@pytest.mark.parametrize("suffix", [".json", ".yaml", ".yml"])
def test_save_and_load_preserve_plan(tmp_path: Path, suffix: str) -> None:
    plan = _plan()

    written = save_plan(plan, tmp_path / "plans" / f"plan{suffix}")
    loaded = load_plan(written)

    assert loaded == plan
    assert loaded.fingerprint == plan.fingerprint


@pytest.mark.unit
def test_format_follows_suffix(tmp_path: Path) -> None:
    assert plan_format(tmp_path / "p.YML") == "yaml"
    assert plan_format(tmp_path / "p.txt") == "json"

    save_plan(_plan(), tmp_path / "p.yaml")
    payload = yaml.safe_load((tmp_path / "p.yaml").read_text(encoding="utf-8"))
    assert payload["batches"][1]["items"] == ["BotVersion:SupportBot.v1"]


@pytest.mark.unit
def test_dump_rejects_unknown_format() -> None:
    with pytest.raises(PlanFileError, match="unsupported plan format"):
        dump_plan(_plan(), fmt="toml")


@pytest.mark.unit
def test_load_reports_missing_file(tmp_path: Path) -> None:
    with pytest.raises(PlanFileError, match="cannot read plan file"):
        load_plan(tmp_path / "absent.json")


@pytest.mark.unit
def test_load_reports_parse_errors(tmp_path: Path) -> None:
    broken = tmp_path / "broken.json"
    broken.write_text("{not json", encoding="utf-8")
    with pytest.raises(PlanFileError, match="cannot parse plan file"):
        load_plan(broken)


@pytest.mark.unit
def test_load_rejects_non_mapping_and_invalid_content(tmp_path: Path) -> None:
    listing = tmp_path / "list.json"
    listing.write_text("[]", encoding="utf-8")
    with pytest.raises(PlanFileError, match="mapping at the top level"):
        load_plan(listing)

    bad_item = tmp_path / "bad.json"
    bad_item.write_text(
        json.dumps(
            {
                "schema_version": 1,
                "batches": [{"batch_number": 1, "category": "Flow", "items": ["Nope"]}],
            }
        ),
        encoding="utf-8",
    )
    with pytest.raises(PlanFileError, match="invalid plan file"):
        load_plan(bad_item)

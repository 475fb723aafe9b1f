"""
deploy-sequencer — unit tests for failure output analysis

File: tests/unit/executor/test_gaps.py

Purpose
- Validate gap recognition, missing-component detection and CLI output analysis.

What this test file should cover
- Field and object gaps in either quote style, deduplicated in first-seen order.
- Record-id owners kept verbatim and hinted differently.
- Component failures read from a list or a single object.
- Non-JSON output falls back to line scanning.
"""

from __future__ import annotations

import json

import pytest

from deploy_sequencer.domain.models import AssetCategory, AssetIdentifier, GapDescriptor, GapKind
from deploy_sequencer.executor.gaps import (
    analyze_cli_output,
    component_problems,
    extract_json_payload,
    missing_components,
    parse_gaps,
)


@pytest.mark.unit
def test_field_and_object_gaps_are_recognized() -> None:
    errors = [
        "ApexClass/OrderService: Cannot find field 'Region__c' for the object 'Account'",
        'In field: "Tier__c" for the object "Account" is not defined',
        "object 'Invoice__c' doesn't exist",
        "Cannot find field 'Region__c' for the object 'Account'",
    ]

    assert parse_gaps(errors) == (
        GapDescriptor(GapKind.CUSTOM_FIELD, "Region__c", "Account"),
        GapDescriptor(GapKind.CUSTOM_FIELD, "Tier__c", "Account"),
        GapDescriptor(GapKind.CUSTOM_OBJECT, "Invoice__c"),
    )


@pytest.mark.unit
def test_field_line_is_not_also_an_object_gap() -> None:
    line = "field 'A__c' for the object 'B__c' failed; object 'B__c' doesn't exist"
    assert parse_gaps([line]) == (GapDescriptor(GapKind.CUSTOM_FIELD, "A__c", "B__c"),)


@pytest.mark.unit
def test_unrelated_errors_have_no_gaps() -> None:
    assert parse_gaps(["Variable does not exist: total", "Unexpected token"]) == ()


@pytest.mark.unit
def test_record_id_owner_is_kept_verbatim() -> None:
    (gap,) = parse_gaps(["field 'Region__c' for the object '01I5g000000XyZa'"])
    assert gap.object_name == "01I5g000000XyZa"
    assert gap.object_is_id


@pytest.mark.unit
def test_missing_components() -> None:
    errors = [
        "GenAiFunction/X: Flow named Lookup_Order does not exist",
        "Apex class 'OrderService' not found",
        "Invalid type: AuditService",
        "Flow named Lookup_Order does not exist",
    ]

    assert missing_components(errors) == (
        AssetIdentifier(AssetCategory.FLOW, "Lookup_Order"),
        AssetIdentifier(AssetCategory.APEX_CLASS, "OrderService"),
        AssetIdentifier(AssetCategory.APEX_CLASS, "AuditService"),
    )


@pytest.mark.unit
def test_extract_json_payload_skips_banner() -> None:
    text = 'Warning: update available\n{"status": 1, "message": "boom"}\ntrailing'
    assert extract_json_payload(text) == {"status": 1, "message": "boom"}
    assert extract_json_payload("no json here") is None
    assert extract_json_payload("{broken") is None


@pytest.mark.unit
def test_component_problems_accepts_single_object() -> None:
    single = {
        "result": {
            "details": {
                "componentFailures": {
                    "componentType": "ApexClass",
                    "fullName": "OrderService",
                    "problem": " Missing ';' ",
                    "lineNumber": "12",
                    "columnNumber": 4,
                }
            }
        }
    }

    (problem,) = component_problems(single)

    assert problem.problem == "Missing ';'"
    assert (problem.line, problem.column) == (12, 4)
    assert component_problems({"result": {}}) == ()


@pytest.mark.unit
def test_analyze_json_failure() -> None:
    payload = {
        "status": 1,
        "message": "Deploy failed.",
        "result": {
            "details": {
                "componentFailures": [
                    {
                        "componentType": "Flow",
                        "fullName": "Lookup_Order",
                        "problem": "Cannot find field 'Region__c' for the object 'Account'",
                    },
                    {
                        "componentType": "GenAiFunction",
                        "fullName": "LookupOrder",
                        "problem": "Flow named Helper_Flow does not exist",
                    },
                ]
            }
        },
    }

    analysis = analyze_cli_output(json.dumps(payload))

    assert analysis.parsed
    assert analysis.success is False
    assert len(analysis.problems) == 2
    assert analysis.messages == ("Deploy failed.",)
    assert [gap.metadata_spec for gap in analysis.gaps] == ["CustomField:Account.Region__c"]
    assert [item.key for item in analysis.missing] == ["Flow:Helper_Flow"]
    assert any("sf project retrieve start --metadata CustomField:Account.Region__c" in hint
               for hint in analysis.hints)
    assert analysis.to_dict()["missing"] == ["Flow:Helper_Flow"]


@pytest.mark.unit
def test_analyze_json_success_has_no_messages() -> None:
    analysis = analyze_cli_output(json.dumps({"status": 0, "message": "ok", "result": {}}))
    assert analysis.success is True
    assert analysis.messages == ()
    assert analysis.hints == ()


@pytest.mark.unit
def test_analyze_plain_text_falls_back_to_lines() -> None:
    text = "\nError: field 'Region__c' for the object '01I5g000000XyZa'\n\n"

    analysis = analyze_cli_output(text)

    assert not analysis.parsed
    assert analysis.success is None
    assert analysis.messages == ("Error: field 'Region__c' for the object '01I5g000000XyZa'",)
    assert analysis.hints[0].startswith("Output is not JSON")
    assert "record id" in analysis.hints[1]

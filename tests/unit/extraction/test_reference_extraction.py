"""
deploy-sequencer — unit tests for reference extraction

File: tests/unit/extraction/test_reference_extraction.py

Purpose
- Validate the structured walk, the pattern battery and the composite
  extractor that merges them.

What this test file should cover
- Each category's recognized substructures produce direct references.
- Invocation type discriminators decide the target category.
- Inferred names that are templated or namespaced are dropped.
- Self references and duplicates never survive the composite.
- Malformed definitions degrade to the pattern battery instead of raising.
"""

from __future__ import annotations

import re

import pytest

from deploy_sequencer.domain.models import AssetCategory, Reference, ReferenceKind
from deploy_sequencer.extraction.base import category_for_discriminator, is_plain_identifier
from deploy_sequencer.extraction.extractor import ReferenceExtractor
from deploy_sequencer.extraction.patterns import PatternReferenceStrategy, ReferencePattern
from deploy_sequencer.extraction.structured import StructuredReferenceStrategy

_NS = 'xmlns="http://soap.sforce.com/2006/04/metadata"'


def _targets(references: list[Reference]) -> list[tuple[str, str, str]]:
    return [
        (str(ref.target_category), ref.target_name, str(ref.kind)) for ref in references
    ]


@pytest.mark.unit
@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("apex", AssetCategory.APEX_CLASS),
        (" Flow ", AssetCategory.FLOW),
        ("standardInvocableAction", None),
        (None, None),
    ],
)
def test_discriminators(raw: str | None, expected: AssetCategory | None) -> None:
    assert category_for_discriminator(raw) is expected


@pytest.mark.unit
@pytest.mark.parametrize(
    ("value", "plain"),
    [
        ("OrderService", True),
        ("Lookup_Order", True),
        ("ns__Thing", False),
        ("{!$Flow.Name}", False),
        ("9Lives", False),
    ],
)
def test_plain_identifier(value: str, plain: bool) -> None:
    assert is_plain_identifier(value) is plain


@pytest.mark.unit
def test_function_invocation_target_uses_type() -> None:
    content = (
        f"<GenAiFunction {_NS}>"
        "<invocationTarget>Lookup_Order</invocationTarget>"
        "<invocationTargetType>flow</invocationTargetType>"
        "</GenAiFunction>"
    )

    found = StructuredReferenceStrategy().extract(
        AssetCategory.GEN_AI_FUNCTION, "LookupOrder", content
    )

    assert _targets(found) == [("Flow", "Lookup_Order", "direct")]


@pytest.mark.unit
def test_function_with_unknown_target_type_yields_nothing() -> None:
    content = (
        "<GenAiFunction><invocationTarget>sendEmail</invocationTarget>"
        "<invocationTargetType>standardInvocableAction</invocationTargetType></GenAiFunction>"
    )
    assert StructuredReferenceStrategy().extract(AssetCategory.GEN_AI_FUNCTION, "F", content) == []


@pytest.mark.unit
def test_flow_action_calls_and_subflows() -> None:
    content = (
        f"<Flow {_NS}>"
        "<actionCalls><actionName>OrderService</actionName><actionType>apex</actionType>"
        "</actionCalls>"
        "<actionCalls><actionName>chatterPost</actionName><actionType>chatterPost</actionType>"
        "</actionCalls>"
        "<subflows><flowName>Child_Flow</flowName></subflows>"
        "</Flow>"
    )

    found = StructuredReferenceStrategy().extract(AssetCategory.FLOW, "Parent", content)

    assert _targets(found) == [
        ("ApexClass", "OrderService", "direct"),
        ("Flow", "Child_Flow", "direct"),
    ]


@pytest.mark.unit
def test_planner_links_and_local_topics() -> None:
    content = (
        f"<GenAiPlannerBundle {_NS}>"
        "<localTopicLinks><genAiPluginName>OrderPlugin</genAiPluginName></localTopicLinks>"
        "<localActionLinks><genAiFunctionName>C2</genAiFunctionName></localActionLinks>"
        "<localTopics>"
        "<localActionLinks><functionName>TopicFn</functionName></localActionLinks>"
        "<localActions><invocationTarget>Helper</invocationTarget>"
        "<invocationTargetType>apex</invocationTargetType>"
        "<source>Source_Fn</source></localActions>"
        "</localTopics>"
        "</GenAiPlannerBundle>"
    )

    found = StructuredReferenceStrategy().extract(
        AssetCategory.GEN_AI_PLANNER_BUNDLE, "SupportPlanner", content
    )

    assert _targets(found) == [
        ("GenAiPlugin", "OrderPlugin", "direct"),
        ("GenAiFunction", "C2", "direct"),
        ("GenAiFunction", "TopicFn", "direct"),
        ("ApexClass", "Helper", "direct"),
        ("GenAiFunction", "Source_Fn", "inferred"),
    ]


@pytest.mark.unit
def test_plugin_function_entries_accept_bare_text() -> None:
    content = (
        "<GenAiPlugin>"
        "<genAiFunctions><functionName>Wrapped</functionName></genAiFunctions>"
        "<genAiFunctions>Bare</genAiFunctions>"
        "</GenAiPlugin>"
    )

    found = StructuredReferenceStrategy().extract(AssetCategory.GEN_AI_PLUGIN, "P", content)

    assert [ref.target_name for ref in found] == ["Wrapped", "Bare"]


@pytest.mark.unit
def test_bot_and_bot_version_links() -> None:
    bot = "<Bot><botVersions><fullName>v1</fullName></botVersions></Bot>"
    version = (
        "<BotVersion><conversationDefinitionPlanners>"
        "<genAiPlannerName>SupportPlanner</genAiPlannerName>"
        "</conversationDefinitionPlanners></BotVersion>"
    )
    strategy = StructuredReferenceStrategy()

    assert _targets(strategy.extract(AssetCategory.BOT, "SupportBot", bot)) == [
        ("BotVersion", "SupportBot.v1", "direct")
    ]
    assert _targets(strategy.extract(AssetCategory.BOT_VERSION, "SupportBot.v1", version)) == [
        ("GenAiPlannerBundle", "SupportPlanner", "direct")
    ]


@pytest.mark.unit
def test_structured_walk_ignores_malformed_xml_and_classes() -> None:
    strategy = StructuredReferenceStrategy()
    assert strategy.extract(AssetCategory.FLOW, "F", "<Flow><actionCalls>") == []
    assert strategy.extract(AssetCategory.APEX_CLASS, "C", "public class C {}") == []


@pytest.mark.unit
def test_pattern_battery_reads_raw_text() -> None:
    content = (
        "<Flow><actionCalls><actionName>OrderService</actionName>"
        "<actionType>apex</actionType></actionCalls>"
        "<subflows><flowName>Child</flowName></subflows>"
        "see apex://UriClass and flow://UriFlow</Flow>"
    )

    found = PatternReferenceStrategy().extract(AssetCategory.FLOW, "Parent", content)
    targets = {(str(ref.target_category), ref.target_name) for ref in found}

    assert {
        ("ApexClass", "OrderService"),
        ("Flow", "Child"),
        ("ApexClass", "UriClass"),
        ("Flow", "UriFlow"),
    } <= targets
    assert all(ref.kind is ReferenceKind.INFERRED for ref in found)


@pytest.mark.unit
def test_pattern_pair_does_not_borrow_next_type() -> None:
    content = (
        "<actionName>first</actionName>"
        "<actionName>Second</actionName><actionType>apex</actionType>"
    )

    found = PatternReferenceStrategy().extract(AssetCategory.FLOW, "F", content)

    apex = [ref.target_name for ref in found if ref.target_category is AssetCategory.APEX_CLASS]
    assert apex == ["Second"]


@pytest.mark.unit
def test_pattern_battery_drops_namespaced_names() -> None:
    content = "<genAiFunctionName>ns__Packaged</genAiFunctionName>"
    assert PatternReferenceStrategy().extract(AssetCategory.GEN_AI_PLUGIN, "P", content) == []


@pytest.mark.unit
def test_pattern_battery_is_extensible() -> None:
    extra = ReferencePattern(
        "custom_handler",
        re.compile(r"<handlerClass>([^<]+)</handlerClass>"),
        category=AssetCategory.APEX_CLASS,
    )
    strategy = PatternReferenceStrategy().with_patterns(extra)

    found = strategy.extract(AssetCategory.FLOW, "F", "<handlerClass>Handler</handlerClass>")

    assert [ref.target_name for ref in found] == ["Handler"]
    assert len(strategy.patterns) == len(PatternReferenceStrategy().patterns) + 1


@pytest.mark.unit
def test_reference_pattern_needs_exactly_one_category_source() -> None:
    with pytest.raises(ValueError, match="exactly one"):
        ReferencePattern("broken", re.compile("x"))


@pytest.mark.unit
def test_composite_prefers_structured_kind_and_drops_self_references() -> None:
    content = (
        "<Flow><actionCalls><actionName>OrderService</actionName>"
        "<actionType>apex</actionType></actionCalls>"
        "<subflows><flowName>Parent</flowName></subflows>"
        "<subflows><flowName>Child</flowName></subflows></Flow>"
    )

    found = ReferenceExtractor().extract(AssetCategory.FLOW, "Parent", content)

    assert _targets(found) == [
        ("ApexClass", "OrderService", "direct"),
        ("Flow", "Child", "direct"),
    ]


@pytest.mark.unit
def test_composite_falls_back_to_patterns_on_malformed_xml() -> None:
    broken = "<GenAiPlugin><genAiFunctionName>Recovered</genAiFunctionName>"

    found = ReferenceExtractor().extract(AssetCategory.GEN_AI_PLUGIN, "P", broken)

    assert _targets(found) == [("GenAiFunction", "Recovered", "inferred")]


@pytest.mark.unit
def test_composite_handles_empty_content() -> None:
    extractor = ReferenceExtractor()
    assert extractor.extract(AssetCategory.FLOW, "F", None) == []
    assert extractor.extract(AssetCategory.FLOW, "F", "") == []


@pytest.mark.unit
def test_composite_requires_a_strategy() -> None:
    with pytest.raises(ValueError, match="at least one"):
        ReferenceExtractor(strategies=())

"""Structured reference extraction: walk the known substructures of each definition."""

from __future__ import annotations

from collections.abc import Callable, Iterator
from typing import Final
from xml.etree import ElementTree as ET

from deploy_sequencer.domain.models import AssetCategory, Reference, ReferenceKind
from deploy_sequencer.extraction.base import category_for_discriminator, is_plain_identifier

_Hit = tuple[AssetCategory, str, ReferenceKind]
_Walker = Callable[[ET.Element, str], Iterator[_Hit]]

_DIRECT: Final[ReferenceKind] = ReferenceKind.DIRECT
_INFERRED: Final[ReferenceKind] = ReferenceKind.INFERRED


class StructuredReferenceStrategy:
    """Parse the definition as XML and read references from recognized fields."""

    name = "structured"

    def __init__(self) -> None:
        self._walkers: dict[AssetCategory, _Walker] = {
            AssetCategory.GEN_AI_FUNCTION: _walk_function,
            AssetCategory.FLOW: _walk_flow,
            AssetCategory.GEN_AI_PLANNER_BUNDLE: _walk_planner,
            AssetCategory.GEN_AI_PLUGIN: _walk_plugin,
            AssetCategory.BOT: _walk_bot,
            AssetCategory.BOT_VERSION: _walk_bot_version,
        }

    def extract(self, category: AssetCategory, name: str, content: str) -> list[Reference]:
        walker = self._walkers.get(category)
        if walker is None or not content.strip():
            return []
        try:
            root = ET.fromstring(content)
        except ET.ParseError:
            return []

        references: list[Reference] = []
        for target_category, target_name, kind in walker(root, name):
            cleaned = target_name.strip()
            if not cleaned:
                continue
            if kind is _INFERRED and not is_plain_identifier(cleaned):
                continue
            references.append(
                Reference(
                    source_category=category,
                    source_name=name,
                    target_category=target_category,
                    target_name=cleaned,
                    kind=kind,
                )
            )
        return references


def _walk_function(root: ET.Element, _name: str) -> Iterator[_Hit]:
    yield from _invocation_pair(root)
    for value in _texts(root, "apexClass"):
        yield AssetCategory.APEX_CLASS, value, _DIRECT
    for value in _texts(root, "invocableActionName"):
        yield AssetCategory.APEX_CLASS, value, _INFERRED


def _walk_flow(root: ET.Element, _name: str) -> Iterator[_Hit]:
    for action in _children(root, "actionCalls"):
        category = category_for_discriminator(_text(action, "actionType"))
        target = _text(action, "actionName")
        if category is not None and target:
            yield category, target, _DIRECT
    for subflow in _children(root, "subflows"):
        target = _text(subflow, "flowName")
        if target:
            yield AssetCategory.FLOW, target, _DIRECT


def _walk_planner(root: ET.Element, _name: str) -> Iterator[_Hit]:
    for link in _children(root, "localTopicLinks"):
        for value in _texts(link, "genAiPluginName"):
            yield AssetCategory.GEN_AI_PLUGIN, value, _DIRECT
    for link in _children(root, "localActionLinks"):
        for value in _texts(link, "genAiFunctionName"):
            yield AssetCategory.GEN_AI_FUNCTION, value, _DIRECT

    for topic in _children(root, "localTopics"):
        for link in _children(topic, "localActionLinks"):
            for value in _texts(link, "functionName", "genAiFunctionName"):
                yield AssetCategory.GEN_AI_FUNCTION, value, _DIRECT
        for action in _children(topic, "localActions"):
            yield from _invocation_pair(action)
            for value in _texts(action, "source"):
                yield AssetCategory.GEN_AI_FUNCTION, value, _INFERRED

    for action in _children(root, "plannerActions"):
        yield from _invocation_pair(action)

    for entry in _children(root, "genAiPlugins"):
        for value in _entry_names(entry, "genAiPluginName", "genAiPlugin", "name"):
            yield AssetCategory.GEN_AI_PLUGIN, value, _DIRECT


def _walk_plugin(root: ET.Element, _name: str) -> Iterator[_Hit]:
    for entry in _children(root, "genAiFunctions"):
        names = _entry_names(entry, "functionName", "genAiFunction", "genAiFunctionName", "name")
        for value in names:
            yield AssetCategory.GEN_AI_FUNCTION, value, _DIRECT
    for action in _children(root, "localActions"):
        yield from _invocation_pair(action)


def _walk_bot(root: ET.Element, name: str) -> Iterator[_Hit]:
    for version in _children(root, "botVersions"):
        label = _text(version, "fullName")
        if label:
            yield AssetCategory.BOT_VERSION, f"{name}.{label}", _DIRECT


def _walk_bot_version(root: ET.Element, _name: str) -> Iterator[_Hit]:
    for planner in _children(root, "conversationDefinitionPlanners"):
        for value in _texts(planner, "genAiPlannerName", "genAiPlannerBundle"):
            yield AssetCategory.GEN_AI_PLANNER_BUNDLE, value, _DIRECT


def _invocation_pair(element: ET.Element) -> Iterator[_Hit]:
    category = category_for_discriminator(_text(element, "invocationTargetType"))
    target = _text(element, "invocationTarget")
    if category is not None and target:
        yield category, target, _DIRECT


def _entry_names(entry: ET.Element, *child_tags: str) -> Iterator[str]:
    """Names from list entries that are either bare text or wrap a name child."""

    nested = list(_texts(entry, *child_tags))
    if nested:
        yield from nested
        return
    text = (entry.text or "").strip()
    if text:
        yield text


def _local(tag: str) -> str:
    return tag.rsplit("}", 1)[-1]


def _children(element: ET.Element, tag: str) -> Iterator[ET.Element]:
    for child in element:
        if _local(child.tag) == tag:
            yield child


def _text(element: ET.Element, tag: str) -> str | None:
    for child in _children(element, tag):
        value = (child.text or "").strip()
        if value:
            return value
    return None


def _texts(element: ET.Element, *tags: str) -> Iterator[str]:
    for child in element:
        if _local(child.tag) in tags:
            value = (child.text or "").strip()
            if value:
                yield value


__all__ = ["StructuredReferenceStrategy"]

"""Pattern-based reference extraction over raw definition text.

This strategy catches schema variants the structured walk does not know about.
Every hit is reported as ``inferred``. Extend coverage by appending a
:class:`ReferencePattern` to the battery; the structured walker is untouched.
"""

from __future__ import annotations

import re
from collections.abc import Iterable, Iterator
from dataclasses import dataclass
from typing import Final

from deploy_sequencer.domain.models import AssetCategory, Reference, ReferenceKind
from deploy_sequencer.extraction.base import category_for_discriminator, is_plain_identifier


@dataclass(frozen=True, slots=True)
class ReferencePattern:
    """One regex in the fallback battery.

    Either ``category`` is fixed, or ``type_group`` names the capture group that
    holds an explicit type discriminator deciding the category.
    """

    name: str
    regex: re.Pattern[str]
    category: AssetCategory | None = None
    name_group: int = 1
    type_group: int | None = None

    def __post_init__(self) -> None:
        if (self.category is None) == (self.type_group is None):
            raise ValueError(f"pattern {self.name!r} needs exactly one of category or type_group")

    def matches(self, content: str) -> Iterator[tuple[AssetCategory, str]]:
        for match in self.regex.finditer(content):
            target = match.group(self.name_group).strip()
            if not target:
                continue
            if self.type_group is not None:
                category = category_for_discriminator(match.group(self.type_group))
                if category is None:
                    continue
                yield category, target
            elif self.category is not None:
                yield self.category, target


def _tag(tag: str) -> re.Pattern[str]:
    return re.compile(rf"<{tag}>\s*([^<]+?)\s*</{tag}>", re.IGNORECASE)


def _pair(name_tag: str, type_tag: str) -> re.Pattern[str]:
    # The gap between the two tags may not open another ``name_tag`` element.
    return re.compile(
        rf"<{name_tag}>\s*([^<]+?)\s*</{name_tag}>"
        rf"(?:(?!<{name_tag}>)[\s\S])*?"
        rf"<{type_tag}>\s*([^<]+?)\s*</{type_tag}>",
        re.IGNORECASE,
    )


DEFAULT_PATTERNS: Final[tuple[ReferencePattern, ...]] = (
    ReferencePattern(
        "invocation_target", _pair("invocationTarget", "invocationTargetType"), type_group=2
    ),
    ReferencePattern("action_call", _pair("actionName", "actionType"), type_group=2),
    ReferencePattern(
        "planner_name", _tag("genAiPlannerName"), category=AssetCategory.GEN_AI_PLANNER_BUNDLE
    ),
    ReferencePattern("plugin_name", _tag("genAiPluginName"), category=AssetCategory.GEN_AI_PLUGIN),
    ReferencePattern(
        "function_name", _tag("genAiFunctionName"), category=AssetCategory.GEN_AI_FUNCTION
    ),
    ReferencePattern(
        "local_function_name", _tag("functionName"), category=AssetCategory.GEN_AI_FUNCTION
    ),
    ReferencePattern("action_source", _tag("source"), category=AssetCategory.GEN_AI_FUNCTION),
    ReferencePattern("apex_class", _tag("apexClass"), category=AssetCategory.APEX_CLASS),
    ReferencePattern("class_name", _tag("className"), category=AssetCategory.APEX_CLASS),
    ReferencePattern(
        "apex_uri", re.compile(r"apex://([A-Za-z0-9_]+)"), category=AssetCategory.APEX_CLASS
    ),
    ReferencePattern(
        "invocable_action", _tag("invocableActionName"), category=AssetCategory.APEX_CLASS
    ),
    ReferencePattern("flow", _tag("flow"), category=AssetCategory.FLOW),
    ReferencePattern("flow_name", _tag("flowName"), category=AssetCategory.FLOW),
    ReferencePattern(
        "flow_uri", re.compile(r"flow://([A-Za-z0-9_]+)"), category=AssetCategory.FLOW
    ),
)


class PatternReferenceStrategy:
    """Scan raw text with a battery of permissive patterns."""

    name = "patterns"

    def __init__(self, patterns: Iterable[ReferencePattern] = DEFAULT_PATTERNS) -> None:
        self._patterns: tuple[ReferencePattern, ...] = tuple(patterns)

    @property
    def patterns(self) -> tuple[ReferencePattern, ...]:
        return self._patterns

    def with_patterns(self, *extra: ReferencePattern) -> PatternReferenceStrategy:
        return PatternReferenceStrategy((*self._patterns, *extra))

    def extract(self, category: AssetCategory, name: str, content: str) -> list[Reference]:
        references: list[Reference] = []
        for pattern in self._patterns:
            for target_category, target_name in pattern.matches(content):
                if not is_plain_identifier(target_name):
                    continue
                references.append(
                    Reference(
                        source_category=category,
                        source_name=name,
                        target_category=target_category,
                        target_name=target_name,
                        kind=ReferenceKind.INFERRED,
                    )
                )
        return references


__all__ = ["DEFAULT_PATTERNS", "PatternReferenceStrategy", "ReferencePattern"]

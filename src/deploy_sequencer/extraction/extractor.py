"""Composite reference extractor: structured walk first, pattern battery second."""

from __future__ import annotations

from collections.abc import Sequence

import structlog

from deploy_sequencer.domain.models import AssetCategory, Reference, dedupe_references
from deploy_sequencer.extraction.base import ReferenceStrategy
from deploy_sequencer.extraction.patterns import PatternReferenceStrategy
from deploy_sequencer.extraction.structured import StructuredReferenceStrategy

_LOGGER = structlog.get_logger(__name__)


class ReferenceExtractor:
    """Run strategies in order and merge their findings.

    A later strategy only contributes targets that no earlier strategy already
    captured, so the pattern battery fills gaps without duplicating what the
    structured walk found. Self references are dropped and the result is
    deduplicated on the ``(source, target)`` 4-tuple.
    """

    __slots__ = ("_strategies",)

    def __init__(self, strategies: Sequence[ReferenceStrategy] | None = None) -> None:
        if strategies is None:
            strategies = (StructuredReferenceStrategy(), PatternReferenceStrategy())
        if not strategies:
            raise ValueError("at least one extraction strategy is required")
        self._strategies: tuple[ReferenceStrategy, ...] = tuple(strategies)

    @property
    def strategies(self) -> tuple[ReferenceStrategy, ...]:
        return self._strategies

    def extract(self, category: AssetCategory, name: str, content: str | None) -> list[Reference]:
        if not content:
            return []

        captured: set[tuple[AssetCategory, str]] = set()
        merged: list[Reference] = []
        for strategy in self._strategies:
            try:
                found = strategy.extract(category, name, content)
            except ValueError as exc:
                _LOGGER.debug(
                    "extraction_strategy_failed",
                    strategy=strategy.name,
                    asset=f"{category}:{name}",
                    error=str(exc),
                )
                continue

            contributed: set[tuple[AssetCategory, str]] = set()
            for reference in found:
                target = (reference.target_category, reference.target_name)
                if target == (category, name) or target in captured:
                    continue
                contributed.add(target)
                merged.append(reference)
            captured |= contributed

        return list(dedupe_references(merged))


__all__ = ["ReferenceExtractor"]

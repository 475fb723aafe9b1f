"""Transitive dependency closure over locally present assets."""

from __future__ import annotations

import asyncio
from collections.abc import Iterable
from dataclasses import dataclass
from typing import Final

import structlog

from deploy_sequencer.domain.models import (
    AssetCategory,
    AssetIdentifier,
    DependencyClosure,
    Reference,
    SkippedDependency,
    dedupe_references,
)
from deploy_sequencer.extraction.extractor import ReferenceExtractor
from deploy_sequencer.inventory.workspace import AssetInventory
from deploy_sequencer.utils.concurrency import CancellationToken, WorkerPool

_LOGGER = structlog.get_logger(__name__)

DEFAULT_MAX_WORKERS: Final[int] = 8

# Targets of these categories are scanned for further references; classes are leaves.
RECURSIVE_CATEGORIES: Final[frozenset[AssetCategory]] = frozenset(
    {
        AssetCategory.FLOW,
        AssetCategory.GEN_AI_FUNCTION,
        AssetCategory.GEN_AI_PLUGIN,
        AssetCategory.GEN_AI_PLANNER_BUNDLE,
        AssetCategory.BOT_VERSION,
    }
)


@dataclass(frozen=True, slots=True)
class _ScanResult:
    identifier: AssetIdentifier
    references: tuple[Reference, ...]
    companions: tuple[AssetIdentifier, ...] = ()


class DependencyClosureBuilder:
    """Expand seed assets into everything they need that exists locally.

    Definitions of one frontier are read and parsed concurrently on worker
    threads; the visited set and result lists are only touched from the event
    loop, one frontier at a time.
    """

    __slots__ = ("_inventory", "_extractor", "_max_workers", "_cancel_token")

    def __init__(
        self,
        inventory: AssetInventory,
        extractor: ReferenceExtractor | None = None,
        *,
        max_workers: int = DEFAULT_MAX_WORKERS,
        cancel_token: CancellationToken | None = None,
    ) -> None:
        if max_workers <= 0:
            raise ValueError("max_workers must be > 0")
        self._inventory = inventory
        self._extractor = extractor if extractor is not None else ReferenceExtractor()
        self._max_workers = max_workers
        self._cancel_token = cancel_token

    @property
    def inventory(self) -> AssetInventory:
        return self._inventory

    def build(self, seeds: Iterable[AssetIdentifier]) -> DependencyClosure:
        """Synchronous wrapper around :meth:`build_async`."""

        return asyncio.run(self.build_async(seeds))

    async def build_async(self, seeds: Iterable[AssetIdentifier]) -> DependencyClosure:
        visited: set[AssetIdentifier] = set()
        members: list[AssetIdentifier] = []
        references: list[Reference] = []
        skipped: dict[AssetIdentifier, SkippedDependency] = {}
        warnings: list[str] = []

        def skip(identifier: AssetIdentifier, required_by: AssetIdentifier | None) -> None:
            entry = SkippedDependency(identifier=identifier, required_by=required_by)
            skipped[identifier] = entry
            warnings.append(entry.warning)

        frontier: list[AssetIdentifier] = []
        for seed in seeds:
            if seed in visited or seed in skipped:
                continue
            if not self._inventory.exists(seed):
                skip(seed, None)
                continue
            visited.add(seed)
            members.append(seed)
            frontier.append(seed)

        pool: WorkerPool[_ScanResult] = WorkerPool(self._max_workers, self._cancel_token)
        depth = 0
        while frontier:
            scans = await pool.map_ordered(self._scan_async, frontier)
            next_frontier: list[AssetIdentifier] = []

            for scan in scans:
                for companion in scan.companions:
                    if companion not in visited:
                        visited.add(companion)
                        members.append(companion)

                for reference in scan.references:
                    references.append(reference)
                    target = reference.target
                    if target in visited or target in skipped:
                        continue
                    if not self._inventory.exists(target):
                        skip(target, reference.source)
                        continue
                    visited.add(target)
                    members.append(target)
                    warnings.append(f"Added {target.category} dependency: {target.name}")
                    if target.category in RECURSIVE_CATEGORIES:
                        next_frontier.append(target)

            _LOGGER.debug(
                "closure_frontier_scanned",
                depth=depth,
                scanned=len(frontier),
                queued=len(next_frontier),
            )
            frontier = next_frontier
            depth += 1

        _LOGGER.info("closure_resolved", members=len(members), skipped=len(skipped))
        return DependencyClosure(
            members=tuple(members),
            references=dedupe_references(references),
            skipped=tuple(skipped.values()),
            warnings=tuple(warnings),
        )

    async def _scan_async(self, identifier: AssetIdentifier) -> _ScanResult:
        return await asyncio.to_thread(self._scan, identifier)

    def _scan(self, identifier: AssetIdentifier) -> _ScanResult:
        if identifier.category is AssetCategory.APEX_CLASS:
            return _ScanResult(identifier=identifier, references=())

        found = self._extract(identifier)
        if identifier.category is not AssetCategory.BOT:
            return _ScanResult(identifier=identifier, references=tuple(found))

        # Bot versions are not indexed separately; every colocated version file is part of the bot.
        versions = self._inventory.bot_versions(identifier.name)
        for version in versions:
            found.extend(self._extract(version))
        return _ScanResult(identifier=identifier, references=tuple(found), companions=versions)

    def _extract(self, identifier: AssetIdentifier) -> list[Reference]:
        content = self._inventory.read_definition(identifier)
        if content is None:
            _LOGGER.debug("closure_definition_unreadable", identifier=identifier.key)
            return []
        return self._extractor.extract(identifier.category, identifier.name, content)


__all__ = ["DEFAULT_MAX_WORKERS", "RECURSIVE_CATEGORIES", "DependencyClosureBuilder"]

"""
deploy-sequencer — unit tests for the dependency closure builder

File: tests/unit/planning/test_closure.py

Purpose
- Validate transitive expansion of seeds over locally present assets.

What this test file should cover
- Full chain expansion from a bot down to the Apex class it ends in.
- Missing targets reported exactly once as skipped, never as members.
- Termination and uniqueness on arbitrary (including cyclic) reference graphs.
- Apex classes are treated as leaves.
"""

from __future__ import annotations

from collections.abc import Iterable
from pathlib import Path
from typing import TYPE_CHECKING

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from deploy_sequencer.domain.models import AssetCategory, AssetIdentifier
from deploy_sequencer.planning.closure import DependencyClosureBuilder
from deploy_sequencer.utils.concurrency import CancellationToken

if TYPE_CHECKING:
    from conftest import SourceWorkspace


class _MemoryInventory:
    """Inventory over in-memory definitions; only flows are used here."""

    def __init__(self, definitions: dict[AssetIdentifier, str]) -> None:
        self._definitions = definitions

    def list_names(self, category: AssetCategory) -> tuple[str, ...]:
        return tuple(
            sorted(item.name for item in self._definitions if item.category is category)
        )

    def exists(self, identifier: AssetIdentifier) -> bool:
        return identifier in self._definitions

    def locate(self, identifier: AssetIdentifier) -> Path | None:
        return Path(identifier.name) if identifier in self._definitions else None

    def read_definition(self, identifier: AssetIdentifier) -> str | None:
        return self._definitions.get(identifier)

    def bot_versions(self, bot_name: str) -> tuple[AssetIdentifier, ...]:
        return ()


def _flow(name: str) -> AssetIdentifier:
    return AssetIdentifier(AssetCategory.FLOW, name)


def _flow_definition(subflows: Iterable[str]) -> str:
    body = "".join(f"<subflows><flowName>{name}</flowName></subflows>" for name in subflows)
    return f"<Flow>{body}</Flow>"


def _keys(items: Iterable[AssetIdentifier]) -> list[str]:
    return [item.key for item in items]


@pytest.mark.unit
def test_support_bot_chain_is_fully_expanded(support_bot_workspace: SourceWorkspace) -> None:
    builder = DependencyClosureBuilder(support_bot_workspace.inventory)

    closure = builder.build([AssetIdentifier(AssetCategory.BOT, "SupportBot")])

    assert set(_keys(closure.members)) == {
        "Bot:SupportBot",
        "BotVersion:SupportBot.v1",
        "GenAiPlannerBundle:SupportPlanner",
        "GenAiPlugin:OrderPlugin",
        "GenAiFunction:LookupOrder",
        "GenAiFunction:C2",
        "Flow:Lookup_Order",
        "ApexClass:OrderService",
    }
    assert closure.members[0].key == "Bot:SupportBot"
    assert closure.skipped == ()
    assert "Added GenAiPlannerBundle dependency: SupportPlanner" in closure.warnings
    assert not any("BotVersion" in warning for warning in closure.warnings)


@pytest.mark.unit
def test_missing_dependency_is_skipped_once(support_bot_without_c2: SourceWorkspace) -> None:
    builder = DependencyClosureBuilder(support_bot_without_c2.inventory)

    closure = builder.build([AssetIdentifier(AssetCategory.BOT, "SupportBot")])

    c2 = AssetIdentifier(AssetCategory.GEN_AI_FUNCTION, "C2")
    assert c2 not in closure
    assert [entry.identifier for entry in closure.skipped] == [c2]
    assert closure.skipped[0].required_by == AssetIdentifier(
        AssetCategory.GEN_AI_PLANNER_BUNDLE, "SupportPlanner"
    )
    skipped_warnings = [w for w in closure.warnings if w.startswith("Skipped")]
    assert skipped_warnings == ["Skipped GenAiFunction dependency (not found locally): C2"]


@pytest.mark.unit
def test_missing_seed_is_skipped(workspace: SourceWorkspace) -> None:
    workspace.add_class("Present")
    builder = DependencyClosureBuilder(workspace.inventory)

    closure = builder.build(
        [
            AssetIdentifier(AssetCategory.APEX_CLASS, "Present"),
            AssetIdentifier(AssetCategory.FLOW, "Absent"),
        ]
    )

    assert _keys(closure.members) == ["ApexClass:Present"]
    assert [entry.identifier.name for entry in closure.skipped] == ["Absent"]
    assert closure.skipped[0].required_by is None


@pytest.mark.unit
def test_apex_classes_are_leaves(workspace: SourceWorkspace) -> None:
    workspace.add_class("Caller", body="public class Caller { Callee c; } // flow://Hidden")
    workspace.add_class("Callee")
    workspace.add_flow("Hidden")

    closure = DependencyClosureBuilder(workspace.inventory).build(
        [AssetIdentifier(AssetCategory.APEX_CLASS, "Caller")]
    )

    assert _keys(closure.members) == ["ApexClass:Caller"]


@pytest.mark.unit
@pytest.mark.asyncio
async def test_build_async_matches_sync(support_bot_workspace: SourceWorkspace) -> None:
    builder = DependencyClosureBuilder(support_bot_workspace.inventory, max_workers=2)
    seeds = [AssetIdentifier(AssetCategory.GEN_AI_PLUGIN, "OrderPlugin")]

    closure = await builder.build_async(seeds)

    assert _keys(closure.members) == [
        "GenAiPlugin:OrderPlugin",
        "GenAiFunction:LookupOrder",
        "Flow:Lookup_Order",
        "ApexClass:OrderService",
    ]


@pytest.mark.unit
@pytest.mark.asyncio
async def test_cancelled_token_stops_scanning(support_bot_workspace: SourceWorkspace) -> None:
    token = CancellationToken()
    token.cancel("shutdown")
    builder = DependencyClosureBuilder(support_bot_workspace.inventory, cancel_token=token)

    with pytest.raises(BaseException, match="shutdown"):
        await builder.build_async([AssetIdentifier(AssetCategory.BOT, "SupportBot")])


@pytest.mark.unit
def test_max_workers_must_be_positive(workspace: SourceWorkspace) -> None:
    with pytest.raises(ValueError, match="max_workers"):
        DependencyClosureBuilder(workspace.inventory, max_workers=0)


_GRAPHS = st.integers(min_value=1, max_value=10).flatmap(
    lambda size: st.tuples(
        st.just(size),
        st.lists(
            st.tuples(st.integers(0, size + 2), st.integers(0, size + 2)),
            max_size=40,
        ),
        st.lists(st.integers(0, size - 1), min_size=1, max_size=3),
    )
)


@pytest.mark.unit
@settings(max_examples=50, deadline=None)
@given(_GRAPHS)
def test_closure_terminates_on_arbitrary_graphs(
    graph: tuple[int, list[tuple[int, int]], list[int]],
) -> None:
    size, edges, seed_indexes = graph
    # Nodes ``size..size+2`` are referenced but never defined locally.
    children: dict[int, list[str]] = {index: [] for index in range(size)}
    for source, target in edges:
        if source < size:
            children[source].append(f"F{target}")
    definitions = {
        _flow(f"F{index}"): _flow_definition(names) for index, names in children.items()
    }
    inventory = _MemoryInventory(definitions)

    closure = DependencyClosureBuilder(inventory, max_workers=3).build(
        _flow(f"F{index}") for index in seed_indexes
    )

    members = set(closure.members)
    assert len(members) == len(closure.members)
    assert all(inventory.exists(member) for member in members)
    assert not members & {entry.identifier for entry in closure.skipped}

    reachable: set[str] = set()
    stack = [f"F{index}" for index in seed_indexes]
    while stack:
        name = stack.pop()
        if name in reachable or not inventory.exists(_flow(name)):
            continue
        reachable.add(name)
        stack.extend(children[int(name[1:])])
    assert {member.name for member in members} == reachable

    skipped_names = [entry.identifier.name for entry in closure.skipped]
    assert len(skipped_names) == len(set(skipped_names))

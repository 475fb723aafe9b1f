"""Same-category ordering: a small directed graph sorted with Kahn's algorithm.

An edge ``(first, then)`` means ``first`` has to be deployed before ``then``.
Ties between ready nodes break alphabetically so plans are reproducible.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from heapq import heappop, heappush


class CycleError(ValueError):
    """Raised by ``topological_sort`` when some nodes can never become ready."""

    cycles: tuple[tuple[str, ...], ...]

    def __init__(self, cycles: Iterable[Sequence[str]]) -> None:
        self.cycles = tuple(tuple(path) for path in cycles)
        rendered = "; ".join(" -> ".join(path) for path in self.cycles)
        super().__init__(f"dependency cycle: {rendered}" if rendered else "dependency cycle")


class DependencyGraph:
    __slots__ = ("_before", "_after")

    def __init__(
        self,
        nodes: Iterable[str] | None = None,
        edges: Iterable[tuple[str, str]] | None = None,
    ) -> None:
        # node -> nodes it waits for / node -> nodes waiting for it
        self._before: dict[str, set[str]] = {}
        self._after: dict[str, set[str]] = {}
        for node in nodes or ():
            self.add_node(node)
        for first, then in edges or ():
            self.add_edge(first, then)

    def add_node(self, node: str) -> None:
        if not node:
            raise ValueError("node name must be non-empty")
        self._before.setdefault(node, set())
        self._after.setdefault(node, set())

    def add_edge(self, first: str, then: str) -> None:
        self.add_node(first)
        self.add_node(then)
        self._after[first].add(then)
        self._before[then].add(first)

    def topological_sort(self) -> tuple[str, ...]:
        waiting = {node: len(blockers) for node, blockers in self._before.items()}
        ready = sorted(node for node, count in waiting.items() if count == 0)
        order: list[str] = []
        while ready:
            node = heappop(ready)
            order.append(node)
            for dependent in self._after[node]:
                waiting[dependent] -= 1
                if waiting[dependent] == 0:
                    heappush(ready, dependent)

        if len(order) < len(waiting):
            raise CycleError(self._cycles_among(set(waiting).difference(order)))
        return tuple(order)

    def detect_cycles(self) -> tuple[tuple[str, ...], ...]:
        """Closed paths such as ``("A", "B", "A")``, each starting at its smallest node."""

        try:
            self.topological_sort()
        except CycleError as exc:
            return exc.cycles
        return ()

    def _cycles_among(self, stuck: set[str]) -> tuple[tuple[str, ...], ...]:
        # Every stuck node waits on at least one other stuck node, so walking
        # blockers from any of them must eventually revisit a node.
        found: dict[tuple[str, ...], None] = {}
        for start in sorted(stuck):
            walk: list[str] = []
            seen_at: dict[str, int] = {}
            node = start
            while node not in seen_at:
                seen_at[node] = len(walk)
                walk.append(node)
                node = min(self._before[node] & stuck)
            loop = walk[seen_at[node] :]
            loop.reverse()
            found[_closed_path(loop)] = None
        return tuple(sorted(found))


def _closed_path(loop: list[str]) -> tuple[str, ...]:
    pivot = loop.index(min(loop))
    rotated = loop[pivot:] + loop[:pivot]
    return (*rotated, rotated[0])


__all__ = ["CycleError", "DependencyGraph"]

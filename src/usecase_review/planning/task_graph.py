"""Prerequisite graph over use-case ids.

An edge ``(dependency, dependent)`` means the dependency runs first. Ordering
never raises on cycles: whatever cannot be placed is reported back so the
planner can flag it.
"""

from __future__ import annotations

import heapq
from collections import deque
from collections.abc import Callable, Iterable
from dataclasses import dataclass

SortKey = Callable[[str], tuple[object, ...]]


@dataclass(frozen=True, slots=True)
class TopologicalOrder:
    ordered: tuple[str, ...]
    # nodes on a cycle or downstream of one
    unresolved: tuple[str, ...]

    @property
    def complete(self) -> bool:
        return not self.unresolved


class DependencyGraph:
    __slots__ = ("_requires", "_unlocks")

    def __init__(
        self,
        nodes: Iterable[str] | None = None,
        edges: Iterable[tuple[str, str]] | None = None,
    ) -> None:
        self._requires: dict[str, set[str]] = {}
        self._unlocks: dict[str, set[str]] = {}
        for node_id in nodes or ():
            self.add_node(node_id)
        for dependency, dependent in edges or ():
            self.add_edge(dependency, dependent)

    def add_node(self, node_id: str) -> None:
        if not node_id:
            raise ValueError("use-case id must be non-empty")
        self._requires.setdefault(node_id, set())
        self._unlocks.setdefault(node_id, set())

    def add_edge(self, dependency: str, dependent: str) -> None:
        self.add_node(dependency)
        self.add_node(dependent)
        self._requires[dependent].add(dependency)
        self._unlocks[dependency].add(dependent)

    def topological_order(self, key: SortKey | None = None) -> TopologicalOrder:
        """Kahn ordering; among ready nodes the smallest ``key`` goes first."""

        rank: SortKey = key or (lambda node_id: (node_id,))
        waiting = {node_id: len(deps) for node_id, deps in self._requires.items()}
        frontier = [(rank(node_id), node_id) for node_id, count in waiting.items() if not count]
        heapq.heapify(frontier)

        ordered: list[str] = []
        while frontier:
            node_id = heapq.heappop(frontier)[1]
            ordered.append(node_id)
            del waiting[node_id]
            for dependent in self._unlocks[node_id]:
                waiting[dependent] -= 1
                if not waiting[dependent]:
                    heapq.heappush(frontier, (rank(dependent), dependent))

        stuck = sorted(waiting, key=lambda node_id: (rank(node_id), node_id))
        return TopologicalOrder(ordered=tuple(ordered), unresolved=tuple(stuck))

    def detect_cycles(self) -> tuple[tuple[str, ...], ...]:
        """One closed path per cyclic component, e.g. ``("UC-002", "UC-003", "UC-002")``.

        Each path starts and ends at the component's smallest id.
        """

        cycles = []
        for component in self._strong_components():
            anchor = min(component)
            if len(component) == 1 and anchor not in self._unlocks[anchor]:
                continue
            cycles.append(self._loop_through(anchor, component))
        return tuple(sorted(cycles))

    def _strong_components(self) -> list[set[str]]:
        # Tarjan
        index: dict[str, int] = {}
        low: dict[str, int] = {}
        stack: list[str] = []
        on_stack: set[str] = set()
        components: list[set[str]] = []

        def visit(node_id: str) -> None:
            index[node_id] = low[node_id] = len(index)
            stack.append(node_id)
            on_stack.add(node_id)
            for dependent in sorted(self._unlocks[node_id]):
                if dependent not in index:
                    visit(dependent)
                    low[node_id] = min(low[node_id], low[dependent])
                elif dependent in on_stack:
                    low[node_id] = min(low[node_id], index[dependent])
            if low[node_id] != index[node_id]:
                return
            component: set[str] = set()
            while True:
                member = stack.pop()
                on_stack.discard(member)
                component.add(member)
                if member == node_id:
                    break
            components.append(component)

        for node_id in sorted(self._requires):
            if node_id not in index:
                visit(node_id)
        return components

    def _loop_through(self, anchor: str, component: set[str]) -> tuple[str, ...]:
        # shortest way back to the anchor, staying inside the component
        came_from: dict[str, str] = {}
        queue = deque([anchor])
        while queue:
            current = queue.popleft()
            for dependent in sorted(self._unlocks[current] & component):
                if dependent == anchor:
                    path = [anchor]
                    while current != anchor:
                        path.append(current)
                        current = came_from[current]
                    path.append(anchor)
                    return tuple(reversed(path))
                if dependent not in came_from:
                    came_from[dependent] = current
                    queue.append(dependent)
        raise AssertionError(f"{anchor} is not on a cycle")


__all__ = ["DependencyGraph", "SortKey", "TopologicalOrder"]

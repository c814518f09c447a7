"""Budgeted, dependency-respecting execution plans for one repository.

A plan is built in three steps:

1. Closure: every target is expanded to its transitive prerequisites. The
   expansion is an explicit worklist with a memo map and an "expanding" set;
   a dependency that is already on the current branch is recorded but not
   expanded again, so a cycle truncates the closure at the repeated node
   instead of failing the plan.
2. Ordering: Kahn's algorithm over the merged ids with in-set edges only.
   The ready queue prefers prerequisites over targets, then ascending
   numeric id. Ids stuck in cycles are appended in ascending id order.
3. Budget: if the progressive plan does not fit ``max_runs_per_repo`` the
   flat target-only plan is used instead, and the result is truncated so it
   always contains at least one target.
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator, Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any

import structlog

from usecase_review.domain.ids import use_case_number, use_case_sort_key
from usecase_review.domain.models import JSONValue, PlanItem, StepKind, UseCase
from usecase_review.planning.task_graph import DependencyGraph


class DependencyClosure:
    """Memoized transitive-prerequisite lookup over a fixed catalog.

    Expansion stops at a node already on the current branch. Inside a cycle the
    memoized closure of a member is therefore the one computed from whichever
    entry point was expanded first, and one instance shared across repos keeps
    that first answer for the whole review.
    """

    __slots__ = ("_index", "_memo")

    def __init__(self, use_cases: Iterable[UseCase]) -> None:
        self._index: dict[str, UseCase] = {}
        for use_case in use_cases:
            self._index.setdefault(use_case.id, use_case)
        self._memo: dict[str, frozenset[str]] = {}

    def __contains__(self, use_case_id: object) -> bool:
        return use_case_id in self._index

    def get(self, use_case_id: str) -> UseCase | None:
        return self._index.get(use_case_id)

    def closure(self, use_case_id: str) -> frozenset[str]:
        """Return all catalog ids ``use_case_id`` transitively depends on (never itself)."""
        cached = self._memo.get(use_case_id)
        if cached is not None:
            return cached
        root = self._index.get(use_case_id)
        if root is None:
            return frozenset()

        expanding: set[str] = {use_case_id}
        frames: list[tuple[str, Iterator[str], set[str]]] = [
            (use_case_id, iter(root.dependencies), set())
        ]
        while frames:
            node, dependency_iter, accumulated = frames[-1]
            try:
                dependency = next(dependency_iter)
            except StopIteration:
                frames.pop()
                expanding.discard(node)
                result = frozenset(accumulated - {node})
                self._memo[node] = result
                if frames:
                    frames[-1][2].update(result)
                continue

            dependency_use_case = self._index.get(dependency)
            if dependency_use_case is None:
                continue
            accumulated.add(dependency)

            memoized = self._memo.get(dependency)
            if memoized is not None:
                accumulated.update(memoized)
                continue
            if dependency in expanding:
                # Cycle: keep the repeated node but stop expanding this branch.
                continue

            expanding.add(dependency)
            frames.append((dependency, iter(dependency_use_case.dependencies), set()))

        return self._memo[use_case_id]


@dataclass(frozen=True, slots=True)
class RepoPlan:
    """Budget-truncated plan for one repository plus its closure bookkeeping."""

    repo: str
    targets: tuple[str, ...]
    items: tuple[PlanItem, ...]
    closures: Mapping[str, tuple[str, ...]] = field(default_factory=dict)
    used_flat_fallback: bool = False
    truncated: bool = False

    @property
    def has_prerequisites(self) -> bool:
        return any(item.step_kind is StepKind.PREREQUISITE for item in self.items)

    def closure_for(self, item: PlanItem) -> tuple[str, ...]:
        """Budget-filtered prerequisites a step must see succeed first."""
        if item.step_kind is not StepKind.TARGET:
            return ()
        return self.closures.get(item.id, ())

    def to_dict(self) -> dict[str, JSONValue]:
        return {
            "repo": self.repo,
            "targets": list(self.targets),
            "items": [item.to_dict() for item in self.items],
            "closures": {key: list(value) for key, value in sorted(self.closures.items())},
            "used_flat_fallback": self.used_flat_fallback,
            "truncated": self.truncated,
        }


def build_plan(
    all_use_cases: Sequence[UseCase],
    target_use_cases: Sequence[UseCase],
    progressive_enabled: bool,
    *,
    closure: DependencyClosure | None = None,
    logger: Any | None = None,
) -> tuple[PlanItem, ...]:
    """Order targets (and, when progressive, their prerequisites) into one plan."""

    log = logger if logger is not None else structlog.get_logger(__name__)
    resolver = closure if closure is not None else DependencyClosure(all_use_cases)

    index: dict[str, UseCase] = {use_case.id: use_case for use_case in all_use_cases}
    for target in target_use_cases:
        index.setdefault(target.id, target)

    target_ids: list[str] = []
    for target in target_use_cases:
        if target.id not in target_ids:
            target_ids.append(target.id)
    target_set = frozenset(target_ids)

    required_by: dict[str, set[str]] = {}
    for target_id in target_ids:
        required_by.setdefault(target_id, set()).add(target_id)
        if not progressive_enabled:
            continue
        for dependency_id in resolver.closure(target_id):
            if dependency_id in index:
                required_by.setdefault(dependency_id, set()).add(target_id)

    graph = DependencyGraph(nodes=required_by)
    for use_case_id in required_by:
        for dependency_id in index[use_case_id].dependencies:
            if dependency_id in required_by:
                graph.add_edge(dependency_id, use_case_id)

    def ready_key(use_case_id: str) -> tuple[object, ...]:
        kind_rank = 1 if use_case_id in target_set else 0
        return (kind_rank, use_case_number(use_case_id), use_case_id)

    topo = graph.topological_order(key=ready_key)
    if not topo.complete:
        log.warning(
            "planner_cycle_truncated",
            unresolved=list(topo.unresolved),
            cycles=[list(cycle) for cycle in graph.detect_cycles()],
        )
    ordered_ids = topo.ordered + tuple(sorted(topo.unresolved, key=use_case_sort_key))

    return tuple(
        PlanItem(
            use_case=index[use_case_id],
            step_kind=StepKind.TARGET if use_case_id in target_set else StepKind.PREREQUISITE,
            required_by_targets=tuple(sorted(required_by[use_case_id], key=use_case_sort_key)),
        )
        for use_case_id in ordered_ids
    )


def select_within_budget(plan: Sequence[PlanItem], max_runs: int) -> tuple[PlanItem, ...]:
    """Take the first ``max_runs`` items, extending until at least one target is included.

    A plan without any target is simply truncated to ``max_runs``.
    """

    limit = max(0, max_runs)
    selected = list(plan[:limit])
    cursor = len(selected)
    has_target = any(item.is_target for item in plan)
    while has_target and cursor < len(plan) and not any(item.is_target for item in selected):
        selected.append(plan[cursor])
        cursor += 1
    return tuple(selected)


def plan_for_repo(
    repo: str,
    all_use_cases: Sequence[UseCase],
    target_use_cases: Sequence[UseCase],
    *,
    progressive_enabled: bool,
    max_runs_per_repo: int,
    closure: DependencyClosure | None = None,
    logger: Any | None = None,
) -> RepoPlan:
    """Build, budget-fit and truncate the plan for one repository's targets."""

    log = logger if logger is not None else structlog.get_logger(__name__)
    resolver = closure if closure is not None else DependencyClosure(all_use_cases)

    candidate = build_plan(
        all_use_cases,
        target_use_cases,
        progressive_enabled,
        closure=resolver,
        logger=log,
    )
    used_flat_fallback = False
    if progressive_enabled and len(candidate) > max_runs_per_repo:
        used_flat_fallback = True
        log.info(
            "planner_budget_fallback",
            repo=repo,
            progressive_items=len(candidate),
            max_runs_per_repo=max_runs_per_repo,
        )
        candidate = build_plan(
            all_use_cases,
            target_use_cases,
            False,
            closure=resolver,
            logger=log,
        )

    items = select_within_budget(candidate, max_runs_per_repo)
    surviving = {item.id for item in items}
    closures: dict[str, tuple[str, ...]] = {}
    for item in items:
        if not item.is_target:
            continue
        kept = (dep for dep in resolver.closure(item.id) if dep in surviving)
        closures[item.id] = tuple(sorted(kept, key=use_case_sort_key))

    plan = RepoPlan(
        repo=repo,
        targets=tuple(item.id for item in items if item.is_target),
        items=items,
        closures=closures,
        used_flat_fallback=used_flat_fallback,
        truncated=len(items) < len(candidate),
    )
    log.info(
        "planner_repo_plan",
        repo=repo,
        items=len(plan.items),
        targets=len(plan.targets),
        used_flat_fallback=used_flat_fallback,
        truncated=plan.truncated,
    )
    return plan


__all__ = [
    "DependencyClosure",
    "RepoPlan",
    "build_plan",
    "plan_for_repo",
    "select_within_budget",
]

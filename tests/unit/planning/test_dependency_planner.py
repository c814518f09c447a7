"""
usecase-review: unit tests for the dependency planner

Covers closure expansion (including cycle truncation), prerequisite-first
ordering, the flat fallback when the progressive plan exceeds the budget, and
budget truncation that always keeps a target.
"""

from __future__ import annotations

from hypothesis import given, settings
from hypothesis import strategies as st

from review_fakes import uc
from usecase_review.domain.models import PlanItem, StepKind, UseCase
from usecase_review.planning.dependency_planner import (
    DependencyClosure,
    build_plan,
    plan_for_repo,
    select_within_budget,
)


def _ids(items: tuple[PlanItem, ...]) -> list[str]:
    return [item.id for item in items]


def test_two_step_chain_plans_prerequisite_then_target() -> None:
    catalog = [uc(1, "A"), uc(2, "A", 1)]

    plan = plan_for_repo(
        "alpha",
        catalog,
        [catalog[1]],
        progressive_enabled=True,
        max_runs_per_repo=5,
    )

    assert [(item.id, item.step_kind) for item in plan.items] == [
        ("UC-001", StepKind.PREREQUISITE),
        ("UC-002", StepKind.TARGET),
    ]
    assert plan.items[0].required_by_targets == ("UC-002",)
    assert plan.closure_for(plan.items[1]) == ("UC-001",)
    assert not plan.used_flat_fallback
    assert not plan.truncated


def test_closure_is_transitive_and_memoized() -> None:
    closure = DependencyClosure([uc(1), uc(2, "core", 1), uc(3, "core", 2), uc(4, "core", 3, 1)])

    assert closure.closure("UC-004") == frozenset({"UC-001", "UC-002", "UC-003"})
    assert closure.closure("UC-001") == frozenset()
    assert closure.closure("UC-999") == frozenset()


def test_closure_ignores_dependencies_outside_the_catalog() -> None:
    closure = DependencyClosure([uc(2, "core", 1)])
    assert closure.closure("UC-002") == frozenset()


def test_closure_truncates_cycles_instead_of_failing() -> None:
    catalog = [uc(1, "core", 3), uc(2, "core", 1), uc(3, "core", 2)]
    closure = DependencyClosure(catalog)

    assert closure.closure("UC-003") == frozenset({"UC-001", "UC-002"})

    plan = build_plan(catalog, [catalog[2]], True, closure=closure)
    assert sorted(_ids(plan)) == ["UC-001", "UC-002", "UC-003"]
    assert plan[-1].id == "UC-003"


def test_cycle_member_closure_depends_on_first_entry_point() -> None:
    catalog = [uc(1, "core", 3), uc(2, "core", 1), uc(3, "core", 2)]

    shared = DependencyClosure(catalog)
    shared.closure("UC-003")
    fresh = DependencyClosure(catalog)

    assert shared.closure("UC-001") == frozenset({"UC-003"})
    assert fresh.closure("UC-001") == frozenset({"UC-002", "UC-003"})


def test_prerequisites_run_before_unrelated_targets() -> None:
    catalog = [uc(1), uc(5), uc(9, "core", 1)]

    plan = build_plan(catalog, [catalog[1], catalog[2]], True)

    assert _ids(plan) == ["UC-001", "UC-005", "UC-009"]
    assert plan[0].step_kind is StepKind.PREREQUISITE


def test_shared_prerequisite_lists_every_requiring_target() -> None:
    catalog = [uc(1), uc(2, "core", 1), uc(3, "core", 1)]

    plan = build_plan(catalog, [catalog[2], catalog[1]], True)

    assert plan[0].id == "UC-001"
    assert plan[0].required_by_targets == ("UC-002", "UC-003")


def test_flat_plan_contains_only_targets() -> None:
    catalog = [uc(1), uc(2, "core", 1)]
    plan = build_plan(catalog, [catalog[1]], False)
    assert _ids(plan) == ["UC-002"]
    assert plan[0].is_target


def test_budget_overflow_falls_back_to_flat_targets() -> None:
    catalog = [uc(1), uc(2, "core", 1), uc(3, "core", 2), uc(10), uc(11, "core", 3)]
    targets = [catalog[3], catalog[4]]

    plan = plan_for_repo(
        "alpha",
        catalog,
        targets,
        progressive_enabled=True,
        max_runs_per_repo=3,
    )

    assert plan.used_flat_fallback
    assert len(plan.items) <= 3
    assert all(item.step_kind is StepKind.TARGET for item in plan.items)
    assert _ids(plan.items) == ["UC-010", "UC-011"]
    assert plan.closure_for(plan.items[1]) == ()


def test_budget_truncation_filters_closures_to_surviving_items() -> None:
    catalog = [uc(1), uc(2), uc(3, "core", 1, 2)]

    plan = plan_for_repo(
        "alpha",
        catalog,
        [catalog[2]],
        progressive_enabled=False,
        max_runs_per_repo=1,
    )

    assert _ids(plan.items) == ["UC-003"]
    assert plan.closures == {"UC-003": ()}
    assert plan.targets == ("UC-003",)


def test_select_within_budget_extends_until_a_target_is_included() -> None:
    catalog = [uc(1), uc(2), uc(3, "core", 1, 2)]
    plan = build_plan(catalog, [catalog[2]], True)

    selected = select_within_budget(plan, 1)

    assert _ids(selected) == ["UC-001", "UC-002", "UC-003"]
    assert select_within_budget(plan, 0)[-1].is_target
    assert select_within_budget((), 3) == ()


def test_select_within_budget_without_targets_truncates_to_budget() -> None:
    plan = tuple(
        PlanItem(use_case=uc(number), step_kind=StepKind.PREREQUISITE) for number in (1, 2)
    )

    assert _ids(select_within_budget(plan, 1)) == ["UC-001"]
    assert select_within_budget(plan, 0) == ()


@st.composite
def _acyclic_catalogs(draw: st.DrawFn) -> list[UseCase]:
    size = draw(st.integers(min_value=1, max_value=25))
    catalog: list[UseCase] = []
    for number in range(1, size + 1):
        deps = draw(
            st.lists(st.integers(min_value=1, max_value=number - 1), max_size=4)
            if number > 1
            else st.just([])
        )
        domain = draw(st.sampled_from(["search", "graph", "docs"]))
        catalog.append(uc(number, domain, *deps))
    return catalog


@settings(max_examples=75, deadline=None)
@given(catalog=_acyclic_catalogs(), data=st.data())
def test_topological_order_never_places_item_before_in_plan_dependency(
    catalog: list[UseCase], data: st.DataObject
) -> None:
    targets = data.draw(st.lists(st.sampled_from(catalog), min_size=1, max_size=6))

    plan = build_plan(catalog, targets, True)

    position = {item.id: index for index, item in enumerate(plan)}
    for item in plan:
        for dependency in item.use_case.dependencies:
            if dependency in position:
                assert position[dependency] < position[item.id]


@settings(max_examples=75, deadline=None)
@given(catalog=_acyclic_catalogs(), data=st.data())
def test_budgeted_plan_respects_budget_and_keeps_a_target(
    catalog: list[UseCase], data: st.DataObject
) -> None:
    targets = data.draw(st.lists(st.sampled_from(catalog), min_size=1, max_size=6, unique=True))
    budget = data.draw(st.integers(min_value=1, max_value=12))

    plan = plan_for_repo(
        "repo",
        catalog,
        targets,
        progressive_enabled=True,
        max_runs_per_repo=budget,
    )

    assert plan.items
    assert any(item.is_target for item in plan.items)
    assert len(plan.items) <= budget
    if plan.used_flat_fallback:
        assert all(item.is_target for item in plan.items)


@settings(max_examples=75, deadline=None)
@given(
    kinds=st.lists(st.booleans(), min_size=1, max_size=30),
    budget=st.integers(min_value=1, max_value=40),
)
def test_select_within_budget_is_nonempty_with_a_target(kinds: list[bool], budget: int) -> None:
    plan = tuple(
        PlanItem(
            use_case=uc(index + 1),
            step_kind=StepKind.TARGET if is_target else StepKind.PREREQUISITE,
        )
        for index, is_target in enumerate(kinds)
    )

    selected = select_within_budget(plan, budget)

    assert selected == plan[: len(selected)]
    if any(kinds):
        assert selected
        assert any(item.is_target for item in selected)
    else:
        assert len(selected) == min(budget, len(plan))

"""Planning layer: dependency closure, deterministic ordering, and per-repo budgets."""

from usecase_review.planning.dependency_planner import (
    DependencyClosure,
    RepoPlan,
    build_plan,
    plan_for_repo,
    select_within_budget,
)
from usecase_review.planning.task_graph import DependencyGraph, TopologicalOrder

__all__ = [
    "DependencyClosure",
    "DependencyGraph",
    "RepoPlan",
    "TopologicalOrder",
    "build_plan",
    "plan_for_repo",
    "select_within_budget",
]

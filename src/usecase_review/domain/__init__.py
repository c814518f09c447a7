"""Domain types shared across packages: use cases, plan items, run results, history stats."""

from usecase_review.domain.ids import layer_for, use_case_number, use_case_sort_key
from usecase_review.domain.models import (
    Citation,
    ExplorationFinding,
    HistoryStats,
    PlanItem,
    RunResult,
    StepKind,
    UseCase,
)

__all__ = [
    "Citation",
    "ExplorationFinding",
    "HistoryStats",
    "PlanItem",
    "RunResult",
    "StepKind",
    "UseCase",
    "layer_for",
    "use_case_number",
    "use_case_sort_key",
]

"""Result aggregation and the release gate."""

from usecase_review.evaluation.gate import GateResult, GateThresholds, evaluate_gate
from usecase_review.evaluation.summary import (
    ExplorationSummary,
    Progression,
    ReviewSummary,
    summarize_exploration,
    summarize_results,
)

__all__ = [
    "ExplorationSummary",
    "GateResult",
    "GateThresholds",
    "Progression",
    "ReviewSummary",
    "evaluate_gate",
    "summarize_exploration",
    "summarize_results",
]

"""Unit tests for domain model validation and serialization."""

from __future__ import annotations

import pytest
from hypothesis import given
from hypothesis import strategies as st

from usecase_review.domain.models import (
    HistoryStats,
    PlanItem,
    RunResult,
    StepKind,
    UseCase,
)


def test_use_case_drops_self_and_duplicate_dependencies() -> None:
    use_case = UseCase(
        id="UC-005",
        domain=" search ",
        need=" find it ",
        dependencies=("UC-001", "UC-005", "UC-001", "UC-002"),
    )

    assert use_case.dependencies == ("UC-001", "UC-002")
    assert use_case.domain == "search"
    assert use_case.need == "find it"
    assert use_case.number == 5
    assert use_case.layer == "L0"


def test_use_case_rejects_malformed_ids() -> None:
    with pytest.raises(ValueError):
        UseCase(id="UC-1", domain="a", need="b")
    with pytest.raises(ValueError):
        UseCase(id="UC-001", domain="a", need="b", dependencies=("nope",))


def test_plan_item_serializes_role_and_layer() -> None:
    item = PlanItem(
        use_case=UseCase(id="UC-045", domain="graph", need="callers"),
        step_kind=StepKind.PREREQUISITE,
        required_by_targets=("UC-050",),
    )

    payload = item.to_dict()
    assert payload["step_kind"] == "prerequisite"
    assert payload["layer"] == "L1"
    assert payload["required_by_targets"] == ["UC-050"]
    assert not item.is_target


def test_history_stats_uncertainty_defaults_to_one_without_runs() -> None:
    assert HistoryStats().uncertainty == 1.0


def test_history_stats_uncertainty_weights_failures_and_strict_signals() -> None:
    stats = HistoryStats(runs=4, successes=2, failures=2, strict_failures=1)
    assert stats.uncertainty == pytest.approx(0.5 + 0.25 * 0.25 + 0.1 / 4)


def test_history_stats_rejects_negative_counters() -> None:
    with pytest.raises(ValueError, match="failures"):
        HistoryStats(runs=1, failures=-1)


@given(
    runs=st.integers(min_value=0, max_value=10_000),
    successes=st.integers(min_value=0, max_value=10_000),
    failures=st.integers(min_value=0, max_value=10_000),
    strict=st.integers(min_value=0, max_value=10_000),
)
def test_history_stats_uncertainty_stays_in_unit_interval(
    runs: int, successes: int, failures: int, strict: int
) -> None:
    stats = HistoryStats(runs=runs, successes=successes, failures=failures, strict_failures=strict)
    assert 0.0 <= stats.uncertainty <= 1.0


def test_run_result_clamps_confidence_and_dedupes_signals() -> None:
    result = RunResult(
        repo="alpha",
        use_case_id="UC-001",
        domain="core",
        intent="[UC-001] core: need",
        step_kind=StepKind.TARGET,
        success=False,
        dependency_ready=True,
        total_confidence=3.5,
        strict_signals=("retry", "retry", "fallback"),
    )

    assert result.total_confidence == 1.0
    assert result.to_dict()["strict_signals"] == ["retry", "fallback"]

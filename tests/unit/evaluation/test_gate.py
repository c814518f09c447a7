"""
usecase-review: unit tests for the release gate

Violation reasons are asserted verbatim because downstream tooling parses
them.
"""

from __future__ import annotations

import pytest

from usecase_review.evaluation.gate import GateThresholds, evaluate_gate
from usecase_review.evaluation.summary import Progression, ReviewSummary


def _summary(**overrides: object) -> ReviewSummary:
    values: dict[str, object] = {
        "total_runs": 10,
        "passed_runs": 10,
        "pass_rate": 1.0,
        "evidence_rate": 1.0,
        "useful_summary_rate": 1.0,
        "strict_failure_share": 0.0,
    }
    values.update(overrides)
    return ReviewSummary(**values)  # type: ignore[arg-type]


def test_clean_summary_passes() -> None:
    gate = evaluate_gate(_summary())
    assert gate.passed
    assert gate.reasons == ()


def test_no_runs_fails_the_gate() -> None:
    gate = evaluate_gate(
        _summary(
            total_runs=0,
            passed_runs=0,
            pass_rate=0.0,
            evidence_rate=0.0,
            useful_summary_rate=0.0,
        )
    )

    assert not gate.passed
    assert gate.reasons[0] == "no_runs_executed"
    assert "pass_rate_below_threshold:0.000<0.750" in gate.reasons


def test_pass_rate_above_threshold_is_not_a_violation() -> None:
    gate = evaluate_gate(_summary(pass_rate=0.80))
    assert not any(reason.startswith("pass_rate") for reason in gate.reasons)


def test_violations_follow_fixed_order_and_format() -> None:
    summary = _summary(
        pass_rate=0.5,
        evidence_rate=0.8,
        useful_summary_rate=0.7,
        strict_failure_share=0.1,
        progression=Progression(
            enabled=True,
            prerequisite_runs=0,
            target_runs=4,
            target_pass_rate=0.5,
            target_dependency_ready_share=0.75,
        ),
    )

    gate = evaluate_gate(summary)

    assert gate.reasons == (
        "pass_rate_below_threshold:0.500<0.750",
        "evidence_rate_below_threshold:0.800<0.900",
        "useful_summary_rate_below_threshold:0.700<0.800",
        "strict_failure_share_above_threshold:0.100>0.000",
        "missing_prerequisite_runs",
        "prerequisite_pass_rate_below_threshold:0.000<0.750",
        "target_pass_rate_below_threshold:0.500<0.750",
        "target_dependency_ready_share_below_threshold:0.750<1.000",
    )


def test_progression_checks_are_skipped_when_disabled() -> None:
    summary = _summary(progression=Progression(enabled=False, target_pass_rate=0.0))
    assert evaluate_gate(summary).passed


def test_custom_thresholds_are_applied() -> None:
    thresholds = GateThresholds.from_mapping({"minPassRate": 0.5, "max_strict_failure_share": 0.2})

    gate = evaluate_gate(_summary(pass_rate=0.55, strict_failure_share=0.1), thresholds)

    assert gate.passed
    assert gate.to_dict()["thresholds"]["min_pass_rate"] == 0.5  # type: ignore[index]


@pytest.mark.parametrize(
    ("overrides", "message"),
    [
        ({"min_pass_rate": 1.5}, "within"),
        ({"min_pass_rate": "high"}, "number"),
        ({"minimum_vibes": 0.5}, "unknown"),
    ],
)
def test_threshold_overrides_are_validated(overrides: dict[str, object], message: str) -> None:
    with pytest.raises(ValueError, match=message):
        GateThresholds.from_mapping(overrides)

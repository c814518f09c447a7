"""Unit tests for result and exploration aggregation."""

from __future__ import annotations

import pytest

from review_fakes import uc
from usecase_review.domain.models import ExplorationFinding, PlanItem, RunResult, StepKind
from usecase_review.evaluation.summary import (
    ReviewSummary,
    summarize_exploration,
    summarize_results,
)


def _result(
    use_case_id: str,
    *,
    domain: str = "core",
    kind: StepKind = StepKind.TARGET,
    success: bool = True,
    evidence: int = 1,
    useful: bool = True,
    strict: tuple[str, ...] = (),
    ready: bool = True,
) -> RunResult:
    return RunResult(
        repo="alpha",
        use_case_id=use_case_id,
        domain=domain,
        intent=f"[{use_case_id}] {domain}: need",
        step_kind=kind,
        success=success,
        dependency_ready=ready,
        evidence_count=evidence,
        has_useful_summary=useful,
        strict_signals=strict,
    )


def test_empty_results_produce_zero_rates() -> None:
    summary = summarize_results([])
    assert summary.total_runs == 0
    assert summary.pass_rate == 0.0
    assert not summary.progression.enabled
    assert summary.by_domain == {}


def test_rates_and_domains_are_computed_per_run() -> None:
    results = [
        _result("UC-001", domain="search"),
        _result("UC-002", domain="search", success=False, evidence=0, useful=False),
        _result("UC-040", domain="graph", success=False, strict=("retry",)),
        _result("UC-041", domain="graph"),
    ]

    summary = summarize_results(results)

    assert summary.total_runs == 4
    assert summary.passed_runs == 2
    assert summary.pass_rate == 0.5
    assert summary.evidence_rate == 0.75
    assert summary.useful_summary_rate == 0.75
    assert summary.strict_failure_share == 0.25
    assert list(summary.by_domain) == ["graph", "search"]
    assert summary.by_domain["graph"].strict_failure_share == 0.5
    assert summary.progression.by_layer["L0"].runs == 2
    assert summary.progression.by_layer["L1"].pass_rate == 0.5


def test_progression_is_enabled_only_when_plan_has_prerequisites() -> None:
    results = [
        _result("UC-001", kind=StepKind.PREREQUISITE),
        _result("UC-002", kind=StepKind.PREREQUISITE, success=False),
        _result("UC-003", ready=False, success=False),
        _result("UC-004"),
    ]
    items = [
        PlanItem(use_case=uc(1), step_kind=StepKind.PREREQUISITE),
        PlanItem(use_case=uc(2), step_kind=StepKind.PREREQUISITE),
        PlanItem(use_case=uc(3, "core", 1, 2), step_kind=StepKind.TARGET),
        PlanItem(use_case=uc(4), step_kind=StepKind.TARGET),
    ]

    summary = summarize_results(results, items)
    flat = summarize_results(results, [item for item in items if item.is_target])

    progression = summary.progression
    assert progression.enabled
    assert progression.prerequisite_runs == 2
    assert progression.prerequisite_pass_rate == 0.5
    assert progression.target_runs == 2
    assert progression.target_pass_rate == 0.5
    assert progression.target_dependency_ready_share == 0.5
    assert not flat.progression.enabled


def test_summary_round_trips_through_report_payload() -> None:
    summary = summarize_results(
        [_result("UC-001", kind=StepKind.PREREQUISITE), _result("UC-002", success=False)],
        [
            PlanItem(use_case=uc(1), step_kind=StepKind.PREREQUISITE),
            PlanItem(use_case=uc(2, "core", 1), step_kind=StepKind.TARGET),
        ],
    )

    rebuilt = ReviewSummary.from_mapping(summary.to_dict())

    assert rebuilt == summary


def test_exploration_summary_collects_observations_and_concerns() -> None:
    findings = [
        ExplorationFinding(
            repo="alpha",
            intent="architecture",
            success=True,
            evidence_count=2,
            has_useful_summary=True,
            summary=" Layered CLI ",
        ),
        ExplorationFinding(
            repo="alpha",
            intent="risk",
            success=False,
            strict_signals=("fallback",),
            errors=("query_timeout:90s",),
        ),
    ]

    summary = summarize_exploration(findings, repo_count=2)

    assert summary.total_findings == 2
    assert summary.successful_findings == 1
    assert summary.useful_summary_share == 0.5
    assert summary.strict_failure_share == 0.5
    assert summary.unique_repos_covered == 1
    assert summary.repo_coverage_share == pytest.approx(0.5)
    assert summary.observations == ("Layered CLI",)
    assert summary.concern_signals == ("fallback", "query_timeout:90s")

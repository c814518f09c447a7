"""Reduce run results and exploration findings into review-level rates."""

from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field

from usecase_review.domain.ids import layer_for
from usecase_review.domain.models import (
    ExplorationFinding,
    JSONValue,
    PlanItem,
    RunResult,
    StepKind,
    dedupe_preserving_order,
)


def ratio(numerator: int, denominator: int) -> float:
    if denominator <= 0:
        return 0.0
    return numerator / denominator


@dataclass(frozen=True, slots=True)
class DomainSummary:
    runs: int
    pass_rate: float
    evidence_rate: float
    useful_summary_rate: float
    strict_failure_share: float

    def to_dict(self) -> dict[str, JSONValue]:
        return {
            "runs": self.runs,
            "pass_rate": self.pass_rate,
            "evidence_rate": self.evidence_rate,
            "useful_summary_rate": self.useful_summary_rate,
            "strict_failure_share": self.strict_failure_share,
        }


@dataclass(frozen=True, slots=True)
class LayerSummary:
    runs: int
    passed: int
    pass_rate: float

    def to_dict(self) -> dict[str, JSONValue]:
        return {"runs": self.runs, "passed": self.passed, "pass_rate": self.pass_rate}


@dataclass(frozen=True, slots=True)
class Progression:
    """Prerequisite/target split; ``enabled`` only when the plan had prerequisites."""

    enabled: bool
    prerequisite_runs: int = 0
    prerequisite_pass_rate: float = 0.0
    target_runs: int = 0
    target_pass_rate: float = 0.0
    target_dependency_ready_share: float = 0.0
    by_layer: Mapping[str, LayerSummary] = field(default_factory=dict)

    def to_dict(self) -> dict[str, JSONValue]:
        return {
            "enabled": self.enabled,
            "prerequisite_runs": self.prerequisite_runs,
            "prerequisite_pass_rate": self.prerequisite_pass_rate,
            "target_runs": self.target_runs,
            "target_pass_rate": self.target_pass_rate,
            "target_dependency_ready_share": self.target_dependency_ready_share,
            "by_layer": {key: value.to_dict() for key, value in self.by_layer.items()},
        }


@dataclass(frozen=True, slots=True)
class ReviewSummary:
    total_runs: int
    passed_runs: int
    pass_rate: float
    evidence_rate: float
    useful_summary_rate: float
    strict_failure_share: float
    by_domain: Mapping[str, DomainSummary] = field(default_factory=dict)
    progression: Progression = field(default_factory=lambda: Progression(enabled=False))

    def to_dict(self) -> dict[str, JSONValue]:
        return {
            "total_runs": self.total_runs,
            "passed_runs": self.passed_runs,
            "pass_rate": self.pass_rate,
            "evidence_rate": self.evidence_rate,
            "useful_summary_rate": self.useful_summary_rate,
            "strict_failure_share": self.strict_failure_share,
            "by_domain": {key: value.to_dict() for key, value in self.by_domain.items()},
            "progression": self.progression.to_dict(),
        }

    @classmethod
    def from_mapping(cls, payload: Mapping[str, object]) -> ReviewSummary:
        """Rebuild the gate-relevant fields from a written report's ``summary`` block."""

        raw_progression = payload.get("progression")
        progression_payload = raw_progression if isinstance(raw_progression, Mapping) else {}
        raw_layers = progression_payload.get("by_layer")
        by_layer = {
            str(layer): LayerSummary(
                runs=_int(entry.get("runs")),
                passed=_int(entry.get("passed")),
                pass_rate=_float(entry.get("pass_rate")),
            )
            for layer, entry in (raw_layers.items() if isinstance(raw_layers, Mapping) else ())
            if isinstance(entry, Mapping)
        }
        raw_domains = payload.get("by_domain")
        by_domain = {
            str(domain): DomainSummary(
                runs=_int(entry.get("runs")),
                pass_rate=_float(entry.get("pass_rate")),
                evidence_rate=_float(entry.get("evidence_rate")),
                useful_summary_rate=_float(entry.get("useful_summary_rate")),
                strict_failure_share=_float(entry.get("strict_failure_share")),
            )
            for domain, entry in (raw_domains.items() if isinstance(raw_domains, Mapping) else ())
            if isinstance(entry, Mapping)
        }
        return cls(
            total_runs=_int(payload.get("total_runs")),
            passed_runs=_int(payload.get("passed_runs")),
            pass_rate=_float(payload.get("pass_rate")),
            evidence_rate=_float(payload.get("evidence_rate")),
            useful_summary_rate=_float(payload.get("useful_summary_rate")),
            strict_failure_share=_float(payload.get("strict_failure_share")),
            by_domain=by_domain,
            progression=Progression(
                enabled=progression_payload.get("enabled") is True,
                prerequisite_runs=_int(progression_payload.get("prerequisite_runs")),
                prerequisite_pass_rate=_float(progression_payload.get("prerequisite_pass_rate")),
                target_runs=_int(progression_payload.get("target_runs")),
                target_pass_rate=_float(progression_payload.get("target_pass_rate")),
                target_dependency_ready_share=_float(
                    progression_payload.get("target_dependency_ready_share")
                ),
                by_layer=by_layer,
            ),
        )


@dataclass(frozen=True, slots=True)
class ExplorationSummary:
    total_findings: int
    successful_findings: int
    useful_summary_share: float
    evidence_share: float
    strict_failure_share: float
    unique_repos_covered: int
    repo_coverage_share: float
    observations: tuple[str, ...] = ()
    concern_signals: tuple[str, ...] = ()

    def to_dict(self) -> dict[str, JSONValue]:
        return {
            "total_findings": self.total_findings,
            "successful_findings": self.successful_findings,
            "useful_summary_share": self.useful_summary_share,
            "evidence_share": self.evidence_share,
            "strict_failure_share": self.strict_failure_share,
            "unique_repos_covered": self.unique_repos_covered,
            "repo_coverage_share": self.repo_coverage_share,
            "observations": list(self.observations),
            "concern_signals": list(self.concern_signals),
        }


def _rates(results: Sequence[RunResult]) -> tuple[int, float, float, float, float]:
    total = len(results)
    passed = sum(1 for result in results if result.success)
    with_evidence = sum(1 for result in results if result.evidence_count > 0)
    useful = sum(1 for result in results if result.has_useful_summary)
    strict = sum(1 for result in results if result.strict_signals)
    return (
        passed,
        ratio(passed, total),
        ratio(with_evidence, total),
        ratio(useful, total),
        ratio(strict, total),
    )


def summarize_results(
    results: Sequence[RunResult],
    plan_items: Iterable[PlanItem] = (),
) -> ReviewSummary:
    """Aggregate ``results``; ``plan_items`` supply layers and the progression switch."""

    items = tuple(plan_items)
    planned_layers = {item.id: item.layer for item in items}
    progression_enabled = any(item.step_kind is StepKind.PREREQUISITE for item in items)

    passed, pass_rate, evidence_rate, useful_rate, strict_share = _rates(results)

    grouped: dict[str, list[RunResult]] = {}
    for result in results:
        grouped.setdefault(result.domain, []).append(result)
    by_domain: dict[str, DomainSummary] = {}
    for domain in sorted(grouped):
        domain_results = grouped[domain]
        _, d_pass, d_evidence, d_useful, d_strict = _rates(domain_results)
        by_domain[domain] = DomainSummary(
            runs=len(domain_results),
            pass_rate=d_pass,
            evidence_rate=d_evidence,
            useful_summary_rate=d_useful,
            strict_failure_share=d_strict,
        )

    prerequisites = [r for r in results if r.step_kind is StepKind.PREREQUISITE]
    targets = [r for r in results if r.step_kind is StepKind.TARGET]

    layer_counts: dict[str, list[int]] = {}
    for result in results:
        layer = planned_layers.get(result.use_case_id) or layer_for(result.use_case_id)
        counts = layer_counts.setdefault(layer, [0, 0])
        counts[0] += 1
        counts[1] += 1 if result.success else 0
    by_layer = {
        layer: LayerSummary(runs=runs, passed=ok, pass_rate=ratio(ok, runs))
        for layer, (runs, ok) in sorted(layer_counts.items())
    }

    progression = Progression(
        enabled=progression_enabled,
        prerequisite_runs=len(prerequisites),
        prerequisite_pass_rate=ratio(
            sum(1 for r in prerequisites if r.success), len(prerequisites)
        ),
        target_runs=len(targets),
        target_pass_rate=ratio(sum(1 for r in targets if r.success), len(targets)),
        target_dependency_ready_share=ratio(
            sum(1 for r in targets if r.dependency_ready), len(targets)
        ),
        by_layer=by_layer,
    )
    return ReviewSummary(
        total_runs=len(results),
        passed_runs=passed,
        pass_rate=pass_rate,
        evidence_rate=evidence_rate,
        useful_summary_rate=useful_rate,
        strict_failure_share=strict_share,
        by_domain=by_domain,
        progression=progression,
    )


def summarize_exploration(
    findings: Sequence[ExplorationFinding],
    repo_count: int,
) -> ExplorationSummary:
    total = len(findings)
    unique_repos = len({finding.repo for finding in findings})
    coverage_denominator = max(unique_repos, repo_count)
    observations = dedupe_preserving_order(
        finding.summary.strip()
        for finding in findings
        if finding.summary is not None and finding.summary.strip()
    )
    concerns = dedupe_preserving_order(
        signal
        for finding in findings
        for signal in (*finding.strict_signals, *finding.errors)
        if signal
    )
    return ExplorationSummary(
        total_findings=total,
        successful_findings=sum(1 for finding in findings if finding.success),
        useful_summary_share=ratio(sum(1 for f in findings if f.has_useful_summary), total),
        evidence_share=ratio(sum(1 for f in findings if f.evidence_count > 0), total),
        strict_failure_share=ratio(sum(1 for f in findings if f.strict_signals), total),
        unique_repos_covered=unique_repos,
        repo_coverage_share=ratio(unique_repos, coverage_denominator),
        observations=observations,
        concern_signals=concerns,
    )


def _int(value: object) -> int:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return 0
    return int(value)


def _float(value: object) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return 0.0
    return float(value)


__all__ = [
    "DomainSummary",
    "ExplorationSummary",
    "LayerSummary",
    "Progression",
    "ReviewSummary",
    "ratio",
    "summarize_exploration",
    "summarize_results",
]

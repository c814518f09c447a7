"""Release gate over a ``ReviewSummary``."""

from __future__ import annotations

import math
from collections.abc import Mapping
from dataclasses import dataclass, field, fields, replace
from typing import Final

from usecase_review.domain.models import JSONValue
from usecase_review.evaluation.summary import ReviewSummary

NO_RUNS_EXECUTED: Final[str] = "no_runs_executed"
MISSING_PREREQUISITE_RUNS: Final[str] = "missing_prerequisite_runs"
MISSING_TARGET_RUNS: Final[str] = "missing_target_runs"

_CAMEL_ALIASES: Final[dict[str, str]] = {
    "minPassRate": "min_pass_rate",
    "minEvidenceRate": "min_evidence_rate",
    "minUsefulSummaryRate": "min_useful_summary_rate",
    "maxStrictFailureShare": "max_strict_failure_share",
    "minPrerequisitePassRate": "min_prerequisite_pass_rate",
    "minTargetPassRate": "min_target_pass_rate",
    "minTargetDependencyReadyShare": "min_target_dependency_ready_share",
}


@dataclass(frozen=True, slots=True)
class GateThresholds:
    min_pass_rate: float = 0.75
    min_evidence_rate: float = 0.90
    min_useful_summary_rate: float = 0.80
    max_strict_failure_share: float = 0.0
    min_prerequisite_pass_rate: float = 0.75
    min_target_pass_rate: float = 0.75
    min_target_dependency_ready_share: float = 1.0

    def __post_init__(self) -> None:
        for item in fields(self):
            value = getattr(self, item.name)
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                raise ValueError(f"{item.name} must be a number")
            if math.isnan(value) or not 0.0 <= value <= 1.0:
                raise ValueError(f"{item.name} must be within [0, 1], got {value!r}")
            object.__setattr__(self, item.name, float(value))

    @classmethod
    def names(cls) -> tuple[str, ...]:
        return tuple(item.name for item in fields(cls))

    @classmethod
    def from_mapping(
        cls,
        overrides: Mapping[str, object] | None,
        *,
        base: GateThresholds | None = None,
    ) -> GateThresholds:
        """Apply partial overrides (snake_case or camelCase names) on top of ``base``."""

        resolved = base if base is not None else cls()
        if not overrides:
            return resolved
        known = set(cls.names())
        changes: dict[str, float] = {}
        for raw_name, value in overrides.items():
            name = _CAMEL_ALIASES.get(raw_name, raw_name)
            if name not in known:
                raise ValueError(f"unknown gate threshold {raw_name!r}")
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                raise ValueError(f"{name} must be a number")
            changes[name] = float(value)
        return replace(resolved, **changes)

    def to_dict(self) -> dict[str, JSONValue]:
        return {item.name: getattr(self, item.name) for item in fields(self)}


@dataclass(frozen=True, slots=True)
class GateResult:
    passed: bool
    reasons: tuple[str, ...]
    thresholds: GateThresholds = field(default_factory=GateThresholds)

    def to_dict(self) -> dict[str, JSONValue]:
        return {
            "passed": self.passed,
            "reasons": list(self.reasons),
            "thresholds": self.thresholds.to_dict(),
        }


def below(name: str, actual: float, threshold: float) -> str:
    return f"{name}:{actual:.3f}<{threshold:.3f}"


def above(name: str, actual: float, threshold: float) -> str:
    return f"{name}:{actual:.3f}>{threshold:.3f}"


def evaluate_gate(
    summary: ReviewSummary,
    thresholds: GateThresholds | None = None,
) -> GateResult:
    """Collect threshold violations in their fixed reporting order; pass iff none."""

    limits = thresholds if thresholds is not None else GateThresholds()
    reasons: list[str] = []

    if summary.total_runs <= 0:
        reasons.append(NO_RUNS_EXECUTED)
    if summary.pass_rate < limits.min_pass_rate:
        reasons.append(below("pass_rate_below_threshold", summary.pass_rate, limits.min_pass_rate))
    if summary.evidence_rate < limits.min_evidence_rate:
        reasons.append(
            below("evidence_rate_below_threshold", summary.evidence_rate, limits.min_evidence_rate)
        )
    if summary.useful_summary_rate < limits.min_useful_summary_rate:
        reasons.append(
            below(
                "useful_summary_rate_below_threshold",
                summary.useful_summary_rate,
                limits.min_useful_summary_rate,
            )
        )
    if summary.strict_failure_share > limits.max_strict_failure_share:
        reasons.append(
            above(
                "strict_failure_share_above_threshold",
                summary.strict_failure_share,
                limits.max_strict_failure_share,
            )
        )

    progression = summary.progression
    if progression.enabled:
        if progression.prerequisite_runs <= 0:
            reasons.append(MISSING_PREREQUISITE_RUNS)
        if progression.target_runs <= 0:
            reasons.append(MISSING_TARGET_RUNS)
        if progression.prerequisite_pass_rate < limits.min_prerequisite_pass_rate:
            reasons.append(
                below(
                    "prerequisite_pass_rate_below_threshold",
                    progression.prerequisite_pass_rate,
                    limits.min_prerequisite_pass_rate,
                )
            )
        if progression.target_pass_rate < limits.min_target_pass_rate:
            reasons.append(
                below(
                    "target_pass_rate_below_threshold",
                    progression.target_pass_rate,
                    limits.min_target_pass_rate,
                )
            )
        if progression.target_dependency_ready_share < limits.min_target_dependency_ready_share:
            reasons.append(
                below(
                    "target_dependency_ready_share_below_threshold",
                    progression.target_dependency_ready_share,
                    limits.min_target_dependency_ready_share,
                )
            )

    return GateResult(passed=not reasons, reasons=tuple(reasons), thresholds=limits)


__all__ = [
    "MISSING_PREREQUISITE_RUNS",
    "MISSING_TARGET_RUNS",
    "NO_RUNS_EXECUTED",
    "GateResult",
    "GateThresholds",
    "evaluate_gate",
]

"""Frozen dataclass domain models with validation and canonical serialization."""

from __future__ import annotations

import math
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from enum import StrEnum

from usecase_review.domain import ids as domain_ids

JSONScalar = str | int | float | bool | None
JSONValue = JSONScalar | list["JSONValue"] | dict[str, "JSONValue"]


class StepKind(StrEnum):
    PREREQUISITE = "prerequisite"
    TARGET = "target"


def dedupe_preserving_order(values: Iterable[str]) -> tuple[str, ...]:
    seen: set[str] = set()
    ordered: list[str] = []
    for value in values:
        if value in seen:
            continue
        seen.add(value)
        ordered.append(value)
    return tuple(ordered)


def clamp01(value: float) -> float:
    if math.isnan(value):
        return 0.0
    return min(1.0, max(0.0, value))


@dataclass(frozen=True, slots=True)
class UseCase:
    """Single catalog entry; dependencies are deduplicated and never self-referencing."""

    id: str
    domain: str
    need: str
    dependencies: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        domain_ids.validate_use_case_id(self.id)
        object.__setattr__(self, "domain", self.domain.strip())
        object.__setattr__(self, "need", self.need.strip())
        deps = tuple(dep for dep in self.dependencies if dep != self.id)
        for dep in deps:
            domain_ids.validate_use_case_id(dep)
        object.__setattr__(self, "dependencies", dedupe_preserving_order(deps))

    @property
    def number(self) -> int:
        return domain_ids.use_case_number(self.id)

    @property
    def layer(self) -> str:
        return domain_ids.layer_for(self.id)

    def to_dict(self) -> dict[str, JSONValue]:
        return {
            "id": self.id,
            "domain": self.domain,
            "need": self.need,
            "dependencies": list(self.dependencies),
        }


@dataclass(frozen=True, slots=True)
class PlanItem:
    """A use case annotated with its role in one repository's plan."""

    use_case: UseCase
    step_kind: StepKind
    required_by_targets: tuple[str, ...] = ()

    @property
    def id(self) -> str:
        return self.use_case.id

    @property
    def domain(self) -> str:
        return self.use_case.domain

    @property
    def layer(self) -> str:
        return domain_ids.layer_for(self.use_case.id)

    @property
    def is_target(self) -> bool:
        return self.step_kind is StepKind.TARGET

    def to_dict(self) -> dict[str, JSONValue]:
        return {
            "id": self.use_case.id,
            "domain": self.use_case.domain,
            "need": self.use_case.need,
            "dependencies": list(self.use_case.dependencies),
            "step_kind": self.step_kind.value,
            "required_by_targets": list(self.required_by_targets),
            "layer": self.layer,
        }


@dataclass(frozen=True, slots=True)
class HistoryStats:
    """Per use-case counters reduced from a prior run report."""

    runs: int = 0
    successes: int = 0
    failures: int = 0
    strict_failures: int = 0
    dependency_not_ready: int = 0

    def __post_init__(self) -> None:
        for name in ("runs", "successes", "failures", "strict_failures", "dependency_not_ready"):
            if getattr(self, name) < 0:
                raise ValueError(f"{name} must be >= 0")

    def _rate(self, count: int) -> float:
        if self.runs <= 0:
            return 0.0
        return clamp01(count / self.runs)

    @property
    def success_rate(self) -> float:
        return self._rate(self.successes)

    @property
    def failure_rate(self) -> float:
        return self._rate(self.failures)

    @property
    def strict_rate(self) -> float:
        return self._rate(self.strict_failures)

    @property
    def dependency_not_ready_rate(self) -> float:
        return self._rate(self.dependency_not_ready)

    @property
    def uncertainty(self) -> float:
        """Failure-weighted uncertainty with a small-sample term; ``1.0`` without runs."""
        if self.runs <= 0:
            return 1.0
        return clamp01(self.failure_rate + 0.25 * self.strict_rate + 0.1 / self.runs)

    def to_dict(self) -> dict[str, JSONValue]:
        return {
            "runs": self.runs,
            "successes": self.successes,
            "failures": self.failures,
            "strict_failures": self.strict_failures,
            "dependency_not_ready": self.dependency_not_ready,
            "uncertainty": self.uncertainty,
        }


@dataclass(frozen=True, slots=True)
class RunResult:
    """Outcome of one (repo, use case) execution attempt."""

    repo: str
    use_case_id: str
    domain: str
    intent: str
    step_kind: StepKind
    success: bool
    dependency_ready: bool
    missing_prerequisites: tuple[str, ...] = ()
    pack_count: int = 0
    evidence_count: int = 0
    has_useful_summary: bool = False
    total_confidence: float = 0.0
    strict_signals: tuple[str, ...] = ()
    errors: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        object.__setattr__(self, "total_confidence", clamp01(float(self.total_confidence)))
        object.__setattr__(self, "strict_signals", dedupe_preserving_order(self.strict_signals))
        object.__setattr__(self, "missing_prerequisites", tuple(self.missing_prerequisites))
        object.__setattr__(self, "errors", tuple(self.errors))

    def to_dict(self) -> dict[str, JSONValue]:
        return {
            "repo": self.repo,
            "use_case_id": self.use_case_id,
            "domain": self.domain,
            "intent": self.intent,
            "step_kind": self.step_kind.value,
            "success": self.success,
            "dependency_ready": self.dependency_ready,
            "missing_prerequisites": list(self.missing_prerequisites),
            "pack_count": self.pack_count,
            "evidence_count": self.evidence_count,
            "has_useful_summary": self.has_useful_summary,
            "total_confidence": self.total_confidence,
            "strict_signals": list(self.strict_signals),
            "errors": list(self.errors),
        }


@dataclass(frozen=True, slots=True)
class Citation:
    file: str
    line: int | None = None

    @classmethod
    def from_mapping(cls, payload: Mapping[str, object]) -> Citation:
        raw_file = payload.get("file")
        raw_line = payload.get("line")
        line = raw_line if isinstance(raw_line, int) and not isinstance(raw_line, bool) else None
        return cls(file=str(raw_file or ""), line=line)

    def to_dict(self) -> dict[str, JSONValue]:
        return {"file": self.file, "line": self.line}


@dataclass(frozen=True, slots=True)
class ExplorationFinding:
    """Ungated outcome of an open-ended exploration intent."""

    repo: str
    intent: str
    success: bool
    pack_count: int = 0
    evidence_count: int = 0
    has_useful_summary: bool = False
    total_confidence: float = 0.0
    strict_signals: tuple[str, ...] = ()
    errors: tuple[str, ...] = ()
    summary: str | None = None
    citations: tuple[Citation, ...] = field(default_factory=tuple)

    def __post_init__(self) -> None:
        object.__setattr__(self, "total_confidence", clamp01(float(self.total_confidence)))
        object.__setattr__(self, "strict_signals", dedupe_preserving_order(self.strict_signals))

    def to_dict(self) -> dict[str, JSONValue]:
        return {
            "repo": self.repo,
            "intent": self.intent,
            "success": self.success,
            "pack_count": self.pack_count,
            "evidence_count": self.evidence_count,
            "has_useful_summary": self.has_useful_summary,
            "total_confidence": self.total_confidence,
            "strict_signals": list(self.strict_signals),
            "errors": list(self.errors),
            "summary": self.summary,
            "citations": [citation.to_dict() for citation in self.citations],
        }


__all__ = [
    "Citation",
    "ExplorationFinding",
    "HistoryStats",
    "JSONScalar",
    "JSONValue",
    "PlanItem",
    "RunResult",
    "StepKind",
    "UseCase",
    "clamp01",
    "dedupe_preserving_order",
]

"""Reduce a prior review report into per use-case history counters."""

from __future__ import annotations

import json
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from enum import StrEnum
from pathlib import Path
from types import MappingProxyType
from typing import Any

import structlog

from usecase_review.domain.ids import normalize_use_case_id
from usecase_review.domain.models import HistoryStats


class HistoryStatus(StrEnum):
    ABSENT = "absent"
    LOADED = "loaded"
    CORRUPT = "corrupt"


@dataclass(frozen=True, slots=True)
class HistoryLoad:
    """Outcome of loading history: absent, loaded, or corrupt (with the reason)."""

    status: HistoryStatus
    stats: Mapping[str, HistoryStats] = field(default_factory=lambda: MappingProxyType({}))
    source: str | None = None
    error: str | None = None

    @property
    def uncertainty_scores(self) -> Mapping[str, float]:
        return MappingProxyType({key: value.uncertainty for key, value in self.stats.items()})

    @property
    def available(self) -> bool:
        return self.status is HistoryStatus.LOADED

    def to_dict(self) -> dict[str, object]:
        return {
            "status": self.status.value,
            "source": self.source,
            "error": self.error,
            "use_cases": len(self.stats),
        }


@dataclass(slots=True)
class _Counter:
    runs: int = 0
    successes: int = 0
    failures: int = 0
    strict_failures: int = 0
    dependency_not_ready: int = 0

    def freeze(self) -> HistoryStats:
        return HistoryStats(
            runs=self.runs,
            successes=self.successes,
            failures=self.failures,
            strict_failures=self.strict_failures,
            dependency_not_ready=self.dependency_not_ready,
        )


def build_history_stats(payload: Mapping[str, Any]) -> dict[str, HistoryStats]:
    """Count runs, outcomes, strict failures and not-ready dependencies per use case.

    Accepts both the camelCase keys of the upstream harness report and the
    snake_case keys written by this tool's own report.
    """

    rows = payload.get("results")
    if not isinstance(rows, Sequence) or isinstance(rows, (str, bytes)):
        return {}

    counters: dict[str, _Counter] = {}
    for row in rows:
        if not isinstance(row, Mapping):
            continue
        raw_id = _first_present(row, "useCaseId", "use_case_id")
        use_case_id = normalize_use_case_id(raw_id) if isinstance(raw_id, str) else None
        if use_case_id is None:
            continue

        counter = counters.setdefault(use_case_id, _Counter())
        counter.runs += 1
        if row.get("success") is True:
            counter.successes += 1
        else:
            counter.failures += 1

        signals = _first_present(row, "strictSignals", "strict_signals")
        if isinstance(signals, Sequence) and not isinstance(signals, (str, bytes)) and signals:
            counter.strict_failures += 1

        if _first_present(row, "dependencyReady", "dependency_ready") is False:
            counter.dependency_not_ready += 1

    return {use_case_id: counters[use_case_id].freeze() for use_case_id in sorted(counters)}


def load_history(path: str | Path | None, *, logger: Any | None = None) -> HistoryLoad:
    """Load history from a prior report; never raises for a bad file."""

    log = logger if logger is not None else structlog.get_logger(__name__)
    if path is None:
        return HistoryLoad(status=HistoryStatus.ABSENT)

    history_path = Path(path)
    if not history_path.exists():
        log.info("history_absent", path=str(history_path))
        return HistoryLoad(status=HistoryStatus.ABSENT, source=str(history_path))

    try:
        payload = json.loads(history_path.read_text(encoding="utf-8"))
    except (OSError, UnicodeDecodeError, json.JSONDecodeError) as exc:
        return _corrupt(history_path, f"{type(exc).__name__}: {exc}", log)

    if not isinstance(payload, Mapping) or not isinstance(payload.get("results"), list):
        return _corrupt(history_path, "history root must be an object with a 'results' list", log)

    stats = build_history_stats(payload)
    log.info("history_loaded", path=str(history_path), use_cases=len(stats))
    return HistoryLoad(
        status=HistoryStatus.LOADED,
        stats=MappingProxyType(stats),
        source=str(history_path),
    )


def _corrupt(path: Path, reason: str, log: Any) -> HistoryLoad:
    log.warning("history_corrupt", path=str(path), error=reason)
    return HistoryLoad(status=HistoryStatus.CORRUPT, source=str(path), error=reason)


def _first_present(row: Mapping[str, Any], *keys: str) -> object:
    for key in keys:
        if key in row:
            return row[key]
    return None


__all__ = [
    "HistoryLoad",
    "HistoryStatus",
    "build_history_stats",
    "load_history",
]

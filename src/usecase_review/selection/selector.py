"""Target selection strategies over the full use-case catalog."""

from __future__ import annotations

import math
from collections import defaultdict, deque
from collections.abc import Mapping, Sequence
from enum import StrEnum
from typing import Any, Final

import structlog

from usecase_review.domain.ids import use_case_number
from usecase_review.domain.models import HistoryStats, UseCase, clamp01

STABLE_UNCERTAINTY_THRESHOLD: Final[float] = 0.15
DOMAIN_REPEAT_PENALTY: Final[float] = 0.85
DEFAULT_UNCERTAINTY: Final[float] = 1.0


class SelectionMode(StrEnum):
    SEQUENTIAL = "sequential"
    UNCERTAINTY = "uncertainty"
    BALANCED = "balanced"
    ADAPTIVE = "adaptive"
    PROBABILISTIC = "probabilistic"


def selection_probability(uncertainty: float, stats: HistoryStats | None) -> float:
    """History-driven probability that a use case is worth re-running, in ``[0, 1]``."""

    u = clamp01(uncertainty)
    if stats is None or stats.runs <= 0:
        return clamp01(0.7 + 0.3 * u)

    novelty_boost = 0.1 if stats.runs < 2 else 0.0
    repeated_success_penalty = min(0.7, max(0, stats.successes - stats.failures) * 0.08)
    confidence_penalty = min(0.2, max(0.0, (stats.success_rate - 0.85) * 1.25))
    return clamp01(
        0.05
        + 0.45 * u
        + 0.5 * stats.failure_rate
        + 0.4 * stats.strict_rate
        + 0.2 * stats.dependency_not_ready_rate
        + novelty_boost
        - repeated_success_penalty
        - confidence_penalty
    )


def select_use_cases(
    catalog: Sequence[UseCase],
    max_count: int,
    mode: SelectionMode | str,
    *,
    uncertainty_scores: Mapping[str, float] | None = None,
    history: Mapping[str, HistoryStats] | None = None,
    logger: Any | None = None,
) -> tuple[UseCase, ...]:
    """Pick up to ``max_count`` targets with the given strategy."""

    selected_mode = SelectionMode(mode)
    log = logger if logger is not None else structlog.get_logger(__name__)

    if max_count >= len(catalog):
        return tuple(catalog)
    if max_count <= 0:
        return ()

    scores = _resolve_scores(uncertainty_scores, history)
    if selected_mode is SelectionMode.SEQUENTIAL:
        chosen = tuple(catalog[:max_count])
    elif selected_mode is SelectionMode.UNCERTAINTY:
        chosen = _by_uncertainty_desc(catalog, scores)[:max_count]
    elif selected_mode is SelectionMode.BALANCED:
        chosen = _balanced(catalog, max_count)
    elif selected_mode is SelectionMode.ADAPTIVE:
        chosen = _adaptive(catalog, max_count, scores)
    else:
        chosen = _probabilistic(catalog, max_count, scores, history or {})

    log.info(
        "selector_decision",
        mode=selected_mode.value,
        catalog_size=len(catalog),
        max_count=max_count,
        selected=[use_case.id for use_case in chosen],
    )
    return chosen


def _resolve_scores(
    uncertainty_scores: Mapping[str, float] | None,
    history: Mapping[str, HistoryStats] | None,
) -> Mapping[str, float]:
    if uncertainty_scores is not None:
        return uncertainty_scores
    if history is not None:
        return {use_case_id: stats.uncertainty for use_case_id, stats in history.items()}
    return {}


def _score(scores: Mapping[str, float], use_case: UseCase) -> float:
    value = scores.get(use_case.id, DEFAULT_UNCERTAINTY)
    return DEFAULT_UNCERTAINTY if math.isnan(value) else value


def _by_uncertainty_desc(
    catalog: Sequence[UseCase], scores: Mapping[str, float]
) -> tuple[UseCase, ...]:
    return tuple(
        sorted(
            catalog,
            key=lambda use_case: (-_score(scores, use_case), use_case.number, use_case.id),
        )
    )


def _by_uncertainty_asc(
    catalog: Sequence[UseCase], scores: Mapping[str, float]
) -> tuple[UseCase, ...]:
    return tuple(
        sorted(
            catalog,
            key=lambda use_case: (_score(scores, use_case), use_case.number, use_case.id),
        )
    )


def _balanced(catalog: Sequence[UseCase], max_count: int) -> tuple[UseCase, ...]:
    queues: dict[str, deque[UseCase]] = defaultdict(deque)
    for use_case in catalog:
        queues[use_case.domain].append(use_case)

    domains = sorted(queues)
    chosen: list[UseCase] = []
    while len(chosen) < max_count and any(queues[domain] for domain in domains):
        for domain in domains:
            if len(chosen) >= max_count:
                break
            if queues[domain]:
                chosen.append(queues[domain].popleft())
    return tuple(chosen)


def _adaptive(
    catalog: Sequence[UseCase],
    max_count: int,
    scores: Mapping[str, float],
) -> tuple[UseCase, ...]:
    if max_count <= 2:
        uncertain_budget = max_count
    else:
        uncertain_budget = max_count - max(1, math.floor(max_count * 0.25))
    stable_budget = max_count - uncertain_budget

    descending = _by_uncertainty_desc(catalog, scores)
    ascending = _by_uncertainty_asc(catalog, scores)
    stable_pool = tuple(
        use_case
        for use_case in ascending
        if _score(scores, use_case) <= STABLE_UNCERTAINTY_THRESHOLD
    ) or ascending

    chosen: list[UseCase] = []
    chosen_ids: set[str] = set()

    def take(pool: Sequence[UseCase], budget: int) -> None:
        taken = 0
        for use_case in pool:
            if taken >= budget or len(chosen) >= max_count:
                return
            if use_case.id in chosen_ids:
                continue
            chosen.append(use_case)
            chosen_ids.add(use_case.id)
            taken += 1

    take(descending, uncertain_budget)
    take(stable_pool, stable_budget)
    take(descending, max_count - len(chosen))
    return tuple(chosen)


def _probabilistic(
    catalog: Sequence[UseCase],
    max_count: int,
    scores: Mapping[str, float],
    history: Mapping[str, HistoryStats],
) -> tuple[UseCase, ...]:
    by_domain: dict[str, list[tuple[float, UseCase]]] = defaultdict(list)
    for use_case in catalog:
        probability = selection_probability(_score(scores, use_case), history.get(use_case.id))
        by_domain[use_case.domain].append((probability, use_case))
    for candidates in by_domain.values():
        candidates.sort(key=lambda entry: (-entry[0], use_case_number(entry[1].id), entry[1].id))

    cursors: dict[str, int] = {domain: 0 for domain in by_domain}
    picked: dict[str, int] = {domain: 0 for domain in by_domain}
    chosen: list[UseCase] = []
    while len(chosen) < max_count:
        best: tuple[float, str] | None = None
        for domain in sorted(by_domain):
            position = cursors[domain]
            if position >= len(by_domain[domain]):
                continue
            probability = by_domain[domain][position][0]
            adjusted = probability / (1.0 + DOMAIN_REPEAT_PENALTY * picked[domain])
            if best is None or adjusted > best[0]:
                best = (adjusted, domain)
        if best is None:
            break
        domain = best[1]
        chosen.append(by_domain[domain][cursors[domain]][1])
        cursors[domain] += 1
        picked[domain] += 1
    return tuple(chosen)


__all__ = [
    "DOMAIN_REPEAT_PENALTY",
    "STABLE_UNCERTAINTY_THRESHOLD",
    "SelectionMode",
    "select_use_cases",
    "selection_probability",
]

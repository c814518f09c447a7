"""Whole-review orchestration: select, distribute, plan, then run repositories in turn."""

from __future__ import annotations

from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any

import structlog

from usecase_review.control_plane.executor import RepoExecutor, RepoOutcome
from usecase_review.domain.ids import generate_run_id
from usecase_review.domain.models import (
    ExplorationFinding,
    JSONValue,
    PlanItem,
    RunResult,
    UseCase,
)
from usecase_review.ingestion.history import HistoryLoad
from usecase_review.ingestion.manifest import RepoTarget
from usecase_review.observability.events import ReviewEventBus, ReviewEventType
from usecase_review.observability.logging import correlation_scope
from usecase_review.planning.dependency_planner import DependencyClosure, RepoPlan, plan_for_repo
from usecase_review.selection.distributor import distribute
from usecase_review.selection.selector import SelectionMode, select_use_cases
from usecase_review.utils.concurrency import CancellationToken

RepoCompleteCallback = Callable[[RepoPlan, RepoOutcome], object]


@dataclass(frozen=True, slots=True)
class ReviewPlan:
    """Selected targets and the per-repository plans derived from them."""

    selected: tuple[UseCase, ...]
    repos: tuple[RepoTarget, ...]
    repo_plans: tuple[RepoPlan, ...]
    unassigned: tuple[str, ...] = ()

    @property
    def items(self) -> tuple[PlanItem, ...]:
        return tuple(item for plan in self.repo_plans for item in plan.items)

    def plan_for(self, repo: str) -> RepoPlan | None:
        for plan in self.repo_plans:
            if plan.repo == repo:
                return plan
        return None

    def to_dict(self) -> dict[str, JSONValue]:
        return {
            "selected_use_cases": [use_case.id for use_case in self.selected],
            "unassigned": list(self.unassigned),
            "repos": [repo.to_dict() for repo in self.repos],
            "plans": [plan.to_dict() for plan in self.repo_plans],
        }


@dataclass(frozen=True, slots=True)
class ReviewRun:
    run_id: str
    plan: ReviewPlan
    outcomes: tuple[RepoOutcome, ...] = field(default_factory=tuple)

    @property
    def results(self) -> tuple[RunResult, ...]:
        return tuple(result for outcome in self.outcomes for result in outcome.results)

    @property
    def findings(self) -> tuple[ExplorationFinding, ...]:
        return tuple(finding for outcome in self.outcomes for finding in outcome.findings)


def prepare_review(
    catalog: Sequence[UseCase],
    repos: Sequence[RepoTarget],
    *,
    max_use_cases: int,
    selection_mode: SelectionMode | str,
    max_runs_per_repo: int,
    progressive_prerequisites: bool,
    history: HistoryLoad | None = None,
    logger: Any | None = None,
) -> ReviewPlan:
    """Select targets, spread them over ``repos`` and build each repository's plan.

    The distributor's per-repo cap is ``max_runs_per_repo``; targets that do
    not fit any repository are reported as ``unassigned``.
    """

    log = logger if logger is not None else structlog.get_logger(__name__)
    uncertainty: Mapping[str, float] | None = None
    stats = None
    if history is not None and history.available:
        uncertainty = history.uncertainty_scores
        stats = history.stats

    selected = select_use_cases(
        catalog,
        max_use_cases,
        selection_mode,
        uncertainty_scores=uncertainty,
        history=stats,
        logger=log,
    )
    assignments = distribute(selected, [repo.name for repo in repos], max_runs_per_repo)
    assigned = {use_case.id for targets in assignments.values() for use_case in targets}
    unassigned = tuple(use_case.id for use_case in selected if use_case.id not in assigned)

    closure = DependencyClosure(catalog)
    repo_plans = tuple(
        plan_for_repo(
            repo.name,
            catalog,
            assignments[repo.name],
            progressive_enabled=progressive_prerequisites,
            max_runs_per_repo=max_runs_per_repo,
            closure=closure,
            logger=log,
        )
        for repo in repos
    )
    if unassigned:
        log.info("review_targets_unassigned", count=len(unassigned), ids=list(unassigned))
    return ReviewPlan(
        selected=selected,
        repos=tuple(repos),
        repo_plans=repo_plans,
        unassigned=unassigned,
    )


class ReviewRunner:
    """Runs every repository of a ``ReviewPlan`` one at a time."""

    def __init__(
        self,
        executor: RepoExecutor,
        *,
        event_bus: ReviewEventBus | None = None,
        on_repo_complete: RepoCompleteCallback | None = None,
        logger: Any | None = None,
    ) -> None:
        self._executor = executor
        self._events = event_bus
        self._on_repo_complete = on_repo_complete
        self._logger = logger if logger is not None else structlog.get_logger(__name__)

    async def run(
        self,
        plan: ReviewPlan,
        cancel_token: CancellationToken | None = None,
        *,
        run_id: str | None = None,
    ) -> ReviewRun:
        token = cancel_token if cancel_token is not None else CancellationToken()
        resolved_run_id = run_id if run_id is not None else generate_run_id()
        outcomes: list[RepoOutcome] = []

        with correlation_scope(run_id=resolved_run_id):
            self._emit(
                ReviewEventType.REVIEW_STARTED,
                run_id=resolved_run_id,
                repos=[repo.name for repo in plan.repos],
                selected=len(plan.selected),
            )
            for repo in plan.repos:
                token.raise_if_cancelled()
                repo_plan = plan.plan_for(repo.name)
                if repo_plan is None:
                    continue
                outcome = await self._executor.run(repo, repo_plan, token)
                outcomes.append(outcome)
                self._emit(
                    ReviewEventType.REPO_COMPLETED,
                    repo=repo.name,
                    state=outcome.state.value,
                    steps=len(outcome.results),
                    passed=sum(1 for result in outcome.results if result.success),
                )
                if self._on_repo_complete is not None:
                    self._on_repo_complete(repo_plan, outcome)

            review = ReviewRun(run_id=resolved_run_id, plan=plan, outcomes=tuple(outcomes))
            self._emit(
                ReviewEventType.REVIEW_COMPLETED,
                run_id=resolved_run_id,
                total_runs=len(review.results),
                findings=len(review.findings),
            )
            self._logger.info(
                "review_completed",
                run_id=resolved_run_id,
                repos=len(outcomes),
                total_runs=len(review.results),
            )
            return review

    def _emit(
        self,
        event_type: ReviewEventType,
        *,
        repo: str | None = None,
        **payload: object,
    ) -> None:
        if self._events is None:
            return
        for error in self._events.emit(event_type, repo=repo, **payload):
            self._logger.warning(
                "event_dispatch_failed",
                event_type=error.event_type,
                target=error.target,
                error_type=error.error_type,
                error=error.message,
            )


__all__ = [
    "RepoCompleteCallback",
    "ReviewPlan",
    "ReviewRun",
    "ReviewRunner",
    "prepare_review",
]

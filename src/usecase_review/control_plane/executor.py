"""
Per-repository run executor.

One ``RepoExecutor.run`` call walks a repository through::

    IDLE -> READINESS_CHECK -> READY -> EXECUTING -> DONE
                            \\-> NOT_READY -> ALL_STEPS_FAILED

Steps run strictly in plan order. A target's readiness depends on the
success of its budget-filtered closure earlier in the same sequence, and the
first allow-listed error (see ``signals.is_fail_fast_error``) stops every
later query in the repository. The engine handle is released on every exit
path, including cancellation.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from enum import StrEnum
from typing import Any

import structlog

from usecase_review.constants import (
    DEFAULT_INIT_TIMEOUT_SECONDS,
    DEFAULT_QUERY_TIMEOUT_SECONDS,
    EXPLORATION_INTENTS,
)
from usecase_review.control_plane.engine import (
    EngineStartupError,
    QueryEngine,
    QueryEngineFactory,
    QueryResponse,
    engine_session,
)
from usecase_review.control_plane.signals import (
    QUERY_TIMEOUT_LABEL,
    describe_query_error,
    describe_readiness_error,
    extract_strict_signals,
    is_fail_fast_error,
)
from usecase_review.domain.models import (
    ExplorationFinding,
    JSONValue,
    PlanItem,
    RunResult,
)
from usecase_review.ingestion.manifest import RepoTarget
from usecase_review.observability.events import ReviewEventBus, ReviewEventType
from usecase_review.observability.logging import correlation_scope
from usecase_review.planning.dependency_planner import RepoPlan
from usecase_review.utils.concurrency import CancellationToken, run_with_timeout

_INIT_TIMEOUT_LABEL = "timeout"


class RepoState(StrEnum):
    IDLE = "idle"
    READINESS_CHECK = "readiness_check"
    READY = "ready"
    EXECUTING = "executing"
    DONE = "done"
    NOT_READY = "not_ready"
    ALL_STEPS_FAILED = "all_steps_failed"


@dataclass(frozen=True, slots=True)
class ExecutorSettings:
    init_timeout_seconds: float = DEFAULT_INIT_TIMEOUT_SECONDS
    query_timeout_seconds: float = DEFAULT_QUERY_TIMEOUT_SECONDS
    deterministic_queries: bool = True
    exploration_intents: tuple[str, ...] = EXPLORATION_INTENTS[:3]

    def __post_init__(self) -> None:
        if self.init_timeout_seconds <= 0:
            raise ValueError("init_timeout_seconds must be > 0")
        if self.query_timeout_seconds <= 0:
            raise ValueError("query_timeout_seconds must be > 0")


@dataclass(frozen=True, slots=True)
class RepoOutcome:
    """Everything one repository produced, in execution order."""

    repo: str
    state: RepoState
    results: tuple[RunResult, ...]
    findings: tuple[ExplorationFinding, ...] = ()
    readiness_error: str | None = None
    cascade_error: str | None = None

    @property
    def ready(self) -> bool:
        return self.readiness_error is None

    def to_dict(self) -> dict[str, JSONValue]:
        return {
            "repo": self.repo,
            "state": self.state.value,
            "ready": self.ready,
            "readiness_error": self.readiness_error,
            "cascade_error": self.cascade_error,
            "results": [result.to_dict() for result in self.results],
            "findings": [finding.to_dict() for finding in self.findings],
        }


def format_intent(item: PlanItem) -> str:
    """Query text for a planned step: ``[UC-001] domain: need``."""
    return f"[{item.id}] {item.domain}: {item.use_case.need}"


def prerequisite_error(missing: Sequence[str]) -> str:
    return f"prerequisite_not_satisfied:{','.join(missing)}"


def classify_success(response: QueryResponse, strict_signals: Sequence[str]) -> bool:
    return (
        response.pack_count > 0
        and response.evidence_count > 0
        and response.has_useful_summary
        and not strict_signals
    )


class RepoExecutor:
    """Runs one repository's plan against a freshly created query engine."""

    def __init__(
        self,
        engine_factory: QueryEngineFactory,
        settings: ExecutorSettings | None = None,
        *,
        event_bus: ReviewEventBus | None = None,
        logger: Any | None = None,
    ) -> None:
        self._engine_factory = engine_factory
        self._settings = settings if settings is not None else ExecutorSettings()
        self._events = event_bus
        self._logger = logger if logger is not None else structlog.get_logger(__name__)
        self._state = RepoState.IDLE

    @property
    def state(self) -> RepoState:
        return self._state

    @property
    def settings(self) -> ExecutorSettings:
        return self._settings

    async def run(
        self,
        repo: RepoTarget,
        plan: RepoPlan,
        cancel_token: CancellationToken | None = None,
    ) -> RepoOutcome:
        """Execute ``plan`` for ``repo``; raises ``ReviewCancelledError`` between steps."""

        token = cancel_token if cancel_token is not None else CancellationToken()
        self._state = RepoState.IDLE
        with correlation_scope(repo=repo.name):
            token.raise_if_cancelled()
            self._emit(ReviewEventType.REPO_STARTED, repo=repo.name, items=len(plan.items))
            try:
                async with engine_session(
                    self._engine_factory, repo, logger=self._logger
                ) as engine:
                    readiness_error = await self._check_readiness(engine, repo)
                    if readiness_error is not None:
                        return self._fail_all_steps(repo, plan, readiness_error)

                    self._state = RepoState.EXECUTING
                    results, cascade_error = await self._execute_steps(engine, repo, plan, token)
                    # a fail-fast cascade means the engine is unusable for this repo
                    findings = (
                        await self._explore(engine, repo, token) if cascade_error is None else ()
                    )
            except EngineStartupError as exc:
                return self._fail_all_steps(repo, plan, self._mark_not_ready(repo, exc.cause))

            self._state = RepoState.DONE
            outcome = RepoOutcome(
                repo=repo.name,
                state=self._state,
                results=results,
                findings=findings,
                cascade_error=cascade_error,
            )
            self._logger.info(
                "executor_repo_done",
                repo=repo.name,
                steps=len(results),
                passed=sum(1 for result in results if result.success),
                cascaded=cascade_error is not None,
                findings=len(findings),
            )
            return outcome

    async def _check_readiness(self, engine: QueryEngine, repo: RepoTarget) -> str | None:
        self._state = RepoState.READINESS_CHECK
        try:
            await run_with_timeout(
                engine.initialize(repo.root),
                self._settings.init_timeout_seconds,
                label=_INIT_TIMEOUT_LABEL,
            )
        except Exception as exc:  # noqa: BLE001 - readiness failure is repo-fatal, not run-fatal.
            return self._mark_not_ready(repo, exc)
        self._state = RepoState.READY
        return None

    def _mark_not_ready(self, repo: RepoTarget, exc: BaseException) -> str:
        error = describe_readiness_error(exc)
        self._state = RepoState.NOT_READY
        self._logger.warning("executor_repo_not_ready", repo=repo.name, error=error)
        self._emit(ReviewEventType.REPO_NOT_READY, repo=repo.name, error=error)
        return error

    def _fail_all_steps(self, repo: RepoTarget, plan: RepoPlan, error: str) -> RepoOutcome:
        results: list[RunResult] = []
        for item in plan.items:
            missing = plan.closure_for(item)
            results.append(
                RunResult(
                    repo=repo.name,
                    use_case_id=item.id,
                    domain=item.domain,
                    intent=format_intent(item),
                    step_kind=item.step_kind,
                    success=False,
                    dependency_ready=not missing,
                    missing_prerequisites=missing,
                    errors=(error,),
                )
            )
        self._state = RepoState.ALL_STEPS_FAILED
        return RepoOutcome(
            repo=repo.name,
            state=self._state,
            results=tuple(results),
            readiness_error=error,
            cascade_error=error,
        )

    async def _execute_steps(
        self,
        engine: QueryEngine,
        repo: RepoTarget,
        plan: RepoPlan,
        token: CancellationToken,
    ) -> tuple[tuple[RunResult, ...], str | None]:
        succeeded: dict[str, bool] = {}
        cascade_error: str | None = None
        results: list[RunResult] = []

        for item in plan.items:
            token.raise_if_cancelled()
            with correlation_scope(use_case_id=item.id):
                missing = tuple(dep for dep in plan.closure_for(item) if not succeeded.get(dep))
                if cascade_error is not None:
                    errors = [cascade_error]
                    if missing:
                        errors.append(prerequisite_error(missing))
                    result = RunResult(
                        repo=repo.name,
                        use_case_id=item.id,
                        domain=item.domain,
                        intent=format_intent(item),
                        step_kind=item.step_kind,
                        success=False,
                        dependency_ready=not missing,
                        missing_prerequisites=missing,
                        errors=tuple(errors),
                    )
                else:
                    result = await self._execute_step(engine, repo, item, missing)
                    cascade_error = _first_fail_fast(result.errors)
                    if cascade_error is not None:
                        self._logger.warning(
                            "executor_cascade_triggered",
                            repo=repo.name,
                            use_case_id=item.id,
                            error=cascade_error,
                        )
                        self._emit(
                            ReviewEventType.CASCADE_TRIGGERED,
                            repo=repo.name,
                            use_case_id=item.id,
                            error=cascade_error,
                        )

                succeeded[item.id] = result.success
                results.append(result)
                self._emit(
                    ReviewEventType.STEP_COMPLETED,
                    repo=repo.name,
                    use_case_id=item.id,
                    step_kind=item.step_kind.value,
                    success=result.success,
                    dependency_ready=result.dependency_ready,
                    errors=list(result.errors),
                )

        return tuple(results), cascade_error

    async def _execute_step(
        self,
        engine: QueryEngine,
        repo: RepoTarget,
        item: PlanItem,
        missing: tuple[str, ...],
    ) -> RunResult:
        intent = format_intent(item)
        response, error = await self._query(engine, intent)
        if response is None:
            return RunResult(
                repo=repo.name,
                use_case_id=item.id,
                domain=item.domain,
                intent=intent,
                step_kind=item.step_kind,
                success=False,
                dependency_ready=not missing,
                missing_prerequisites=missing,
                errors=(error,) if error else (),
            )

        strict_signals = extract_strict_signals(response)
        success = classify_success(response, strict_signals)
        self._logger.debug(
            "executor_step_classified",
            repo=repo.name,
            use_case_id=item.id,
            step_kind=item.step_kind.value,
            success=success,
            strict_signals=list(strict_signals),
        )
        return RunResult(
            repo=repo.name,
            use_case_id=item.id,
            domain=item.domain,
            intent=intent,
            step_kind=item.step_kind,
            success=success,
            dependency_ready=not missing,
            missing_prerequisites=missing,
            pack_count=response.pack_count,
            evidence_count=response.evidence_count,
            has_useful_summary=response.has_useful_summary,
            total_confidence=response.total_confidence,
            strict_signals=strict_signals,
        )

    async def _explore(
        self,
        engine: QueryEngine,
        repo: RepoTarget,
        token: CancellationToken,
    ) -> tuple[ExplorationFinding, ...]:
        findings: list[ExplorationFinding] = []
        for intent in self._settings.exploration_intents:
            token.raise_if_cancelled()
            response, error = await self._query(engine, intent)
            if response is None:
                finding = ExplorationFinding(
                    repo=repo.name,
                    intent=intent,
                    success=False,
                    errors=(error,) if error else (),
                )
            else:
                strict_signals = extract_strict_signals(response)
                finding = ExplorationFinding(
                    repo=repo.name,
                    intent=intent,
                    success=classify_success(response, strict_signals),
                    pack_count=response.pack_count,
                    evidence_count=response.evidence_count,
                    has_useful_summary=response.has_useful_summary,
                    total_confidence=response.total_confidence,
                    strict_signals=strict_signals,
                    summary=response.summary,
                    citations=response.citations,
                )
            findings.append(finding)

        if findings:
            self._emit(
                ReviewEventType.EXPLORATION_COMPLETED,
                repo=repo.name,
                findings=len(findings),
                successful=sum(1 for finding in findings if finding.success),
            )
        return tuple(findings)

    async def _query(
        self, engine: QueryEngine, intent: str
    ) -> tuple[QueryResponse | None, str | None]:
        try:
            response = await run_with_timeout(
                engine.query(intent, deterministic=self._settings.deterministic_queries),
                self._settings.query_timeout_seconds,
                label=QUERY_TIMEOUT_LABEL,
            )
        except Exception as exc:  # noqa: BLE001 - step errors are recorded, never raised.
            return None, describe_query_error(exc)
        return response, None

    def _emit(
        self,
        event_type: ReviewEventType,
        *,
        repo: str,
        use_case_id: str | None = None,
        **payload: object,
    ) -> None:
        if self._events is None:
            return
        errors = self._events.emit(event_type, repo=repo, use_case_id=use_case_id, **payload)
        for error in errors:
            self._logger.warning(
                "event_dispatch_failed",
                event_type=error.event_type,
                target=error.target,
                error_type=error.error_type,
                error=error.message,
            )


def _first_fail_fast(errors: Sequence[str]) -> str | None:
    for error in errors:
        if is_fail_fast_error(error):
            return error
    return None


__all__ = [
    "ExecutorSettings",
    "RepoExecutor",
    "RepoOutcome",
    "RepoState",
    "classify_success",
    "format_intent",
    "prerequisite_error",
]

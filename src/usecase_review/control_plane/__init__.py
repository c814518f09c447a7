"""Review execution: engine boundary, strict signals, per-repo executor, review runner."""

from usecase_review.control_plane.engine import (
    EngineError,
    EngineFactoryError,
    EngineStartupError,
    QueryEngine,
    QueryEngineFactory,
    QueryResponse,
    engine_session,
    load_engine_factory,
)
from usecase_review.control_plane.executor import (
    ExecutorSettings,
    RepoExecutor,
    RepoOutcome,
    RepoState,
    format_intent,
)
from usecase_review.control_plane.review import (
    ReviewPlan,
    ReviewRun,
    ReviewRunner,
    prepare_review,
)
from usecase_review.control_plane.signals import extract_strict_signals, is_fail_fast_error

__all__ = [
    "EngineError",
    "EngineFactoryError",
    "EngineStartupError",
    "ExecutorSettings",
    "QueryEngine",
    "QueryEngineFactory",
    "QueryResponse",
    "RepoExecutor",
    "RepoOutcome",
    "RepoState",
    "ReviewPlan",
    "ReviewRun",
    "ReviewRunner",
    "engine_session",
    "extract_strict_signals",
    "format_intent",
    "is_fail_fast_error",
    "load_engine_factory",
    "prepare_review",
]

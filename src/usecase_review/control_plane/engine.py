"""
Query-engine collaborator boundary.

The retrieval/synthesis engine is external. This module defines what the
executor needs from it (``initialize``, ``query``, ``shutdown``), the typed
response it reads, and how an engine factory is resolved from config.
"""

from __future__ import annotations

import importlib
from collections.abc import AsyncIterator, Callable, Mapping, Sequence
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Protocol, TypeAlias, runtime_checkable

import structlog

from usecase_review.domain.models import Citation
from usecase_review.ingestion.manifest import RepoTarget


class EngineError(RuntimeError):
    """Base class for errors raised by query engines."""


class EngineFactoryError(ValueError):
    """Raised when an engine factory reference cannot be resolved."""


class EngineStartupError(RuntimeError):
    """The engine factory itself raised, so no engine exists for the repository."""

    def __init__(self, repo: str, cause: Exception) -> None:
        self.repo = repo
        self.cause = cause
        super().__init__(f"engine factory failed for {repo}: {cause}")


@dataclass(frozen=True, slots=True)
class QueryResponse:
    """Structured fields of one engine answer that the review inspects."""

    pack_count: int = 0
    evidence_count: int = 0
    has_useful_summary: bool = False
    total_confidence: float = 0.0
    disclosures: tuple[str, ...] = ()
    coverage_gaps: tuple[str, ...] = ()
    synthesis_uncertainties: tuple[str, ...] = ()
    diagnostic_reasons: tuple[str, ...] = ()
    flags: Mapping[str, bool] = field(default_factory=dict)
    summary: str | None = None
    citations: tuple[Citation, ...] = ()

    def texts(self) -> tuple[str, ...]:
        """All free-text diagnostic fields, in scan order."""
        return (
            *self.disclosures,
            *self.coverage_gaps,
            *self.synthesis_uncertainties,
            *self.diagnostic_reasons,
        )

    @classmethod
    def from_mapping(cls, payload: Mapping[str, object]) -> QueryResponse:
        """Build from camelCase or snake_case keys; unknown keys are ignored."""
        raw_flags = payload.get("flags")
        flags = (
            {str(key): value for key, value in raw_flags.items() if isinstance(value, bool)}
            if isinstance(raw_flags, Mapping)
            else {}
        )
        raw_citations = payload.get("citations")
        citations = (
            tuple(
                Citation.from_mapping(entry)
                for entry in raw_citations
                if isinstance(entry, Mapping)
            )
            if isinstance(raw_citations, Sequence) and not isinstance(raw_citations, str)
            else ()
        )
        summary = payload.get("summary")
        return cls(
            pack_count=_as_count(_pick(payload, "packCount", "pack_count")),
            evidence_count=_as_count(_pick(payload, "evidenceCount", "evidence_count")),
            has_useful_summary=_pick(payload, "hasUsefulSummary", "has_useful_summary") is True,
            total_confidence=_as_float(_pick(payload, "totalConfidence", "total_confidence")),
            disclosures=_as_texts(payload.get("disclosures")),
            coverage_gaps=_as_texts(_pick(payload, "coverageGaps", "coverage_gaps")),
            synthesis_uncertainties=_as_texts(
                _pick(payload, "synthesisUncertainties", "synthesis_uncertainties")
            ),
            diagnostic_reasons=_as_texts(_pick(payload, "diagnosticReasons", "diagnostic_reasons")),
            flags=flags,
            summary=(summary.strip() or None) if isinstance(summary, str) else None,
            citations=citations,
        )


@runtime_checkable
class QueryEngine(Protocol):
    """Per-repository engine handle."""

    async def initialize(self, repo_root: Path) -> None:
        """Make the engine ready for ``repo_root``; raise when providers are unavailable."""

    async def query(self, intent: str, *, deterministic: bool) -> QueryResponse:
        """Answer one intent."""

    async def shutdown(self) -> None:
        """Release resources; idempotent."""


QueryEngineFactory: TypeAlias = Callable[[RepoTarget], QueryEngine]


def load_engine_factory(reference: str) -> QueryEngineFactory:
    """Resolve ``"package.module:attribute"`` to a callable engine factory."""

    module_name, separator, attribute = reference.strip().partition(":")
    if not separator or not module_name or not attribute:
        raise EngineFactoryError(
            f"engine factory must look like 'package.module:attribute' (got {reference!r})"
        )
    try:
        module = importlib.import_module(module_name)
    except ImportError as exc:
        raise EngineFactoryError(f"cannot import engine module {module_name!r}: {exc}") from exc

    target: Any = module
    for part in attribute.split("."):
        try:
            target = getattr(target, part)
        except AttributeError as exc:
            raise EngineFactoryError(
                f"engine module {module_name!r} has no attribute {attribute!r}"
            ) from exc
    if not callable(target):
        raise EngineFactoryError(f"engine factory {reference!r} is not callable")
    return target  # type: ignore[no-any-return]


@asynccontextmanager
async def engine_session(
    factory: QueryEngineFactory,
    repo: RepoTarget,
    *,
    logger: Any | None = None,
) -> AsyncIterator[QueryEngine]:
    """Create an engine for ``repo`` and always shut it down on exit.

    A factory that raises surfaces as ``EngineStartupError`` before the body runs.
    """

    log = logger if logger is not None else structlog.get_logger(__name__)
    try:
        engine = factory(repo)
    except Exception as exc:
        raise EngineStartupError(repo.name, exc) from exc
    try:
        yield engine
    finally:
        try:
            await engine.shutdown()
        except Exception as exc:  # noqa: BLE001 - release must not mask the run outcome.
            log.warning(
                "engine_shutdown_failed",
                repo=repo.name,
                error_type=type(exc).__name__,
                error=str(exc),
            )


def _pick(payload: Mapping[str, object], camel: str, snake: str) -> object:
    if camel in payload:
        return payload[camel]
    return payload.get(snake)


def _as_count(value: object) -> int:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return 0
    return max(0, int(value))


def _as_float(value: object) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return 0.0
    return float(value)


def _as_texts(value: object) -> tuple[str, ...]:
    if isinstance(value, str):
        return (value,) if value.strip() else ()
    if not isinstance(value, Sequence):
        return ()
    texts: list[str] = []
    for entry in value:
        if isinstance(entry, str) and entry.strip():
            texts.append(entry.strip())
        elif isinstance(entry, Mapping):
            reason = entry.get("reason") or entry.get("message") or entry.get("code")
            if isinstance(reason, str) and reason.strip():
                texts.append(reason.strip())
    return tuple(texts)


__all__ = [
    "EngineError",
    "EngineFactoryError",
    "EngineStartupError",
    "QueryEngine",
    "QueryEngineFactory",
    "QueryResponse",
    "engine_session",
    "load_engine_factory",
]

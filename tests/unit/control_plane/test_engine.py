"""Unit tests for the query-engine boundary."""

from __future__ import annotations

from pathlib import Path

import pytest

from review_fakes import EngineScript, ScriptedEngine
from usecase_review.control_plane.engine import (
    EngineFactoryError,
    EngineStartupError,
    QueryResponse,
    engine_session,
    load_engine_factory,
)
from usecase_review.ingestion.manifest import RepoTarget


def test_query_response_from_camel_case_mapping() -> None:
    response = QueryResponse.from_mapping(
        {
            "packCount": 3,
            "evidenceCount": 2.0,
            "hasUsefulSummary": True,
            "totalConfidence": 0.7,
            "disclosures": ["fallback provider used"],
            "coverageGaps": "missing tests",
            "diagnosticReasons": [{"reason": "retry after 429"}, {"other": 1}],
            "flags": {"degraded": True, "bogus": "yes"},
            "summary": "  The CLI lives in main.py  ",
            "citations": [{"file": "main.py", "line": 3}, "junk"],
        }
    )

    assert response.pack_count == 3
    assert response.evidence_count == 2
    assert response.has_useful_summary
    assert response.texts() == ("fallback provider used", "missing tests", "retry after 429")
    assert dict(response.flags) == {"degraded": True}
    assert response.summary == "The CLI lives in main.py"
    assert [citation.to_dict() for citation in response.citations] == [
        {"file": "main.py", "line": 3}
    ]


def test_query_response_from_mapping_ignores_bad_types() -> None:
    response = QueryResponse.from_mapping(
        {"pack_count": True, "evidence_count": -4, "has_useful_summary": "yes"}
    )
    assert response.pack_count == 0
    assert response.evidence_count == 0
    assert not response.has_useful_summary


def test_load_engine_factory_resolves_module_attribute() -> None:
    factory = load_engine_factory("review_fakes:passing_engine_factory")
    engine = factory(RepoTarget(name="alpha", root=Path(".")))
    assert isinstance(engine, ScriptedEngine)


@pytest.mark.parametrize(
    ("reference", "message"),
    [
        ("no_colon", "must look like"),
        ("definitely_not_a_module_xyz:factory", "cannot import"),
        ("review_fakes:missing_factory", "has no attribute"),
        ("review_fakes:GOOD", "not callable"),
    ],
)
def test_load_engine_factory_errors(reference: str, message: str) -> None:
    with pytest.raises(EngineFactoryError, match=message):
        load_engine_factory(reference)


async def test_engine_session_shuts_down_after_body_error(tmp_path: Path) -> None:
    created: list[ScriptedEngine] = []

    def factory(repo: RepoTarget) -> ScriptedEngine:
        engine = ScriptedEngine(repo, EngineScript())
        created.append(engine)
        return engine

    with pytest.raises(RuntimeError, match="boom"):
        async with engine_session(factory, RepoTarget(name="alpha", root=tmp_path)):
            raise RuntimeError("boom")

    assert created[0].shutdown_calls == 1


async def test_engine_session_swallows_shutdown_errors(tmp_path: Path) -> None:
    script = EngineScript(shutdown_error=RuntimeError("already closed"))
    repo = RepoTarget(name="alpha", root=tmp_path)

    async with engine_session(lambda target: ScriptedEngine(target, script), repo) as engine:
        assert engine.repo is repo

    assert engine.shutdown_calls == 1


async def test_engine_session_wraps_factory_failures(tmp_path: Path) -> None:
    cause = RuntimeError("no credentials")

    def factory(repo: RepoTarget) -> ScriptedEngine:
        raise cause

    with pytest.raises(EngineStartupError, match="alpha") as excinfo:
        async with engine_session(factory, RepoTarget(name="alpha", root=tmp_path)):
            pytest.fail("body must not run")

    assert excinfo.value.cause is cause
    assert excinfo.value.__cause__ is cause

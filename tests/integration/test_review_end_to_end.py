"""
usecase-review: end-to-end review over temporary repositories

Catalog and manifest on disk, scripted engines, reports written and read
back as history for the next review.
"""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from review_fakes import WEAK, EngineScript, ScriptedEngineFactory, make_repos, uc, write_catalog
from usecase_review.control_plane import (
    EngineError,
    ExecutorSettings,
    RepoExecutor,
    ReviewRunner,
    prepare_review,
)
from usecase_review.domain.models import StepKind
from usecase_review.ingestion import discover_repos, load_catalog, load_history
from usecase_review.observability import ReviewEventBus, ReviewEventType
from usecase_review.reporting import build_report, load_report, write_repo_report, write_report
from usecase_review.selection import SelectionMode

pytestmark = pytest.mark.integration

CATALOG = [uc(1, "search"), uc(2, "search", 1), uc(3, "graph"), uc(4, "graph", 3)]


@pytest.fixture
def corpus(tmp_path: Path) -> Path:
    write_catalog(tmp_path / "docs" / "catalog.md", CATALOG)
    repos_root = make_repos(tmp_path / "repos", "alpha", "beta", "gamma")
    (repos_root / "manifest.yaml").write_text(
        "repos:\n  - name: beta\n  - name: alpha\n",
        encoding="utf-8",
    )
    return tmp_path


def _executor(factory: ScriptedEngineFactory, bus: ReviewEventBus) -> RepoExecutor:
    return RepoExecutor(
        factory,
        ExecutorSettings(
            init_timeout_seconds=1.0,
            query_timeout_seconds=1.0,
            exploration_intents=("Explain the architecture.",),
        ),
        event_bus=bus,
    )


async def test_review_report_feeds_the_next_review(corpus: Path) -> None:
    catalog = load_catalog(corpus / "docs" / "catalog.md")
    repos = discover_repos(corpus / "repos")
    assert [repo.name for repo in repos] == ["beta", "alpha"]

    review_plan = prepare_review(
        catalog,
        repos,
        max_use_cases=4,
        selection_mode=SelectionMode.SEQUENTIAL,
        max_runs_per_repo=10,
        progressive_prerequisites=True,
    )
    # beta receives UC-001/UC-003, alpha UC-002/UC-004 and their prerequisites.
    alpha_plan = review_plan.plan_for("alpha")
    assert alpha_plan is not None
    assert alpha_plan.has_prerequisites

    factory = ScriptedEngineFactory({"alpha": EngineScript(responses={"UC-001": WEAK})})
    bus = ReviewEventBus()
    report_dir = corpus / "out"
    runner = ReviewRunner(
        _executor(factory, bus),
        event_bus=bus,
        on_repo_complete=lambda plan, outcome: write_repo_report(
            report_dir, plan, outcome, run_id="review-e2e"
        ),
    )

    run = await runner.run(review_plan, run_id="review-e2e")

    assert [outcome.repo for outcome in run.outcomes] == ["beta", "alpha"]
    assert len(run.results) == 6
    assert len(run.findings) == 2
    alpha_targets = {
        result.use_case_id: result
        for result in run.outcomes[1].results
        if result.step_kind is StepKind.TARGET
    }
    assert alpha_targets["UC-002"].dependency_ready is False
    assert alpha_targets["UC-002"].missing_prerequisites == ("UC-001",)
    assert alpha_targets["UC-004"].dependency_ready is True
    assert factory.engine_for("alpha").shutdown_calls == 1

    report = build_report(run, options={"selection_mode": "sequential"})
    assert not report.gate.passed
    assert "target_dependency_ready_share_below_threshold:0.750<1.000" in report.gate.reasons
    paths = write_report(report, report_dir)

    payload = load_report(paths.json_path)
    assert payload["run_id"] == "review-e2e"
    assert sorted(path.name for path in (report_dir / "repos").iterdir()) == [
        "alpha.json",
        "beta.json",
    ]
    beta_payload = json.loads((report_dir / "repos" / "beta.json").read_text(encoding="utf-8"))
    assert beta_payload["summary"]["total_runs"] == 2

    history = load_history(paths.json_path)
    assert history.available
    assert history.stats["UC-001"].runs == 2
    assert history.stats["UC-001"].failures == 1
    assert history.stats["UC-002"].dependency_not_ready == 1

    follow_up = prepare_review(
        catalog,
        repos,
        max_use_cases=1,
        selection_mode=SelectionMode.UNCERTAINTY,
        max_runs_per_repo=10,
        progressive_prerequisites=True,
        history=history,
    )
    assert [use_case.id for use_case in follow_up.selected] == ["UC-001"]

    completed = [event.repo for event in bus.replay(ReviewEventType.REPO_COMPLETED)]
    assert completed == ["beta", "alpha"]


async def test_engine_failures_are_isolated_per_repository(corpus: Path) -> None:
    catalog = load_catalog(corpus / "docs" / "catalog.md")
    repos = discover_repos(corpus / "repos")
    review_plan = prepare_review(
        catalog,
        repos,
        max_use_cases=4,
        selection_mode=SelectionMode.SEQUENTIAL,
        max_runs_per_repo=10,
        progressive_prerequisites=False,
    )
    factory = ScriptedEngineFactory(
        {
            "beta": EngineScript(responses={"UC-001": EngineError("provider_unavailable: quota")}),
            "alpha": EngineScript(init_error=EngineError("index missing")),
        }
    )
    bus = ReviewEventBus()

    run = await ReviewRunner(_executor(factory, bus), event_bus=bus).run(review_plan)

    beta, alpha = run.outcomes
    assert beta.cascade_error == "provider_unavailable: quota"
    assert [result.errors[0] for result in beta.results] == [
        "provider_unavailable: quota",
        "provider_unavailable: quota",
    ]
    assert factory.engine_for("beta").queried_ids == ["UC-001"]
    assert len(factory.engine_for("beta").intents) == 1
    assert beta.findings == ()

    assert alpha.readiness_error == "initialization_failed:index missing"
    assert not alpha.ready
    assert alpha.findings == ()
    assert all(not result.success for result in alpha.results)
    assert factory.engine_for("alpha").queried_ids == []

    report = build_report(run, options={})
    assert report.summary.total_runs == 4
    assert report.summary.passed_runs == 0
    assert not report.summary.progression.enabled
    assert not report.gate.passed

"""Review report assembly, persistence and markdown rendering."""

from __future__ import annotations

import json
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path
from typing import Any, Final

from usecase_review.control_plane.executor import RepoOutcome
from usecase_review.control_plane.review import ReviewRun
from usecase_review.domain.models import JSONValue
from usecase_review.evaluation.gate import GateResult, GateThresholds, evaluate_gate
from usecase_review.evaluation.summary import (
    ExplorationSummary,
    ReviewSummary,
    summarize_exploration,
    summarize_results,
)
from usecase_review.ingestion.history import HistoryLoad
from usecase_review.planning.dependency_planner import RepoPlan
from usecase_review.utils.fs import atomic_write, safe_filename

REPORT_FILENAME: Final[str] = "report.json"
MARKDOWN_FILENAME: Final[str] = "report.md"
REPO_REPORTS_DIRNAME: Final[str] = "repos"


class ReportLoadError(RuntimeError):
    """Raised when an existing report cannot be read back."""


@dataclass(frozen=True, slots=True)
class ReportPaths:
    json_path: Path
    markdown_path: Path


@dataclass(frozen=True, slots=True)
class ReviewReport:
    run: ReviewRun
    options: Mapping[str, object]
    summary: ReviewSummary
    exploration: ExplorationSummary
    gate: GateResult
    history: HistoryLoad | None = None
    generated_at: datetime = field(default_factory=lambda: datetime.now(tz=UTC))

    def to_dict(self) -> dict[str, JSONValue]:
        plan = self.run.plan
        return {
            "run_id": self.run.run_id,
            "generated_at": _iso8601z(self.generated_at),
            "options": _jsonable(self.options),
            "history": _jsonable(self.history.to_dict()) if self.history is not None else None,
            "selected_use_cases": [use_case.to_dict() for use_case in plan.selected],
            "unassigned_use_cases": list(plan.unassigned),
            "plan": [repo_plan.to_dict() for repo_plan in plan.repo_plans],
            "results": [result.to_dict() for result in self.run.results],
            "exploration": {
                "findings": [finding.to_dict() for finding in self.run.findings],
                "summary": self.exploration.to_dict(),
            },
            "summary": self.summary.to_dict(),
            "gate": self.gate.to_dict(),
        }


def build_report(
    run: ReviewRun,
    *,
    options: Mapping[str, object],
    thresholds: GateThresholds | None = None,
    history: HistoryLoad | None = None,
) -> ReviewReport:
    """Aggregate ``run`` and evaluate the gate."""

    summary = summarize_results(run.results, run.plan.items)
    exploration = summarize_exploration(run.findings, len(run.plan.repos))
    return ReviewReport(
        run=run,
        options=options,
        summary=summary,
        exploration=exploration,
        gate=evaluate_gate(summary, thresholds),
        history=history,
    )


def write_report(report: ReviewReport, report_dir: str | Path) -> ReportPaths:
    directory = Path(report_dir)
    payload = report.to_dict()
    json_path = directory / REPORT_FILENAME
    markdown_path = directory / MARKDOWN_FILENAME
    atomic_write(json_path, _dumps(payload))
    atomic_write(markdown_path, render_markdown(payload))
    return ReportPaths(json_path=json_path, markdown_path=markdown_path)


def repo_report_path(report_dir: str | Path, repo: str) -> Path:
    return Path(report_dir) / REPO_REPORTS_DIRNAME / f"{safe_filename(repo)}.json"


def write_repo_report(
    report_dir: str | Path,
    plan: RepoPlan,
    outcome: RepoOutcome,
    *,
    run_id: str | None = None,
) -> Path:
    """Persist one finished repository so partial progress survives a later crash."""

    path = repo_report_path(report_dir, outcome.repo)
    payload: dict[str, JSONValue] = {
        "run_id": run_id,
        "generated_at": _iso8601z(datetime.now(tz=UTC)),
        "plan": plan.to_dict(),
        **outcome.to_dict(),
        "summary": summarize_results(outcome.results, plan.items).to_dict(),
    }
    atomic_write(path, _dumps(payload))
    return path


def load_report(path: str | Path) -> dict[str, Any]:
    report_path = Path(path)
    try:
        payload = json.loads(report_path.read_text(encoding="utf-8"))
    except FileNotFoundError as exc:
        raise ReportLoadError(f"report not found: {report_path}") from exc
    except (OSError, UnicodeDecodeError) as exc:
        raise ReportLoadError(f"unable to read report {report_path}: {exc}") from exc
    except json.JSONDecodeError as exc:
        raise ReportLoadError(f"invalid JSON in report {report_path}: {exc}") from exc
    if not isinstance(payload, dict) or not isinstance(payload.get("summary"), Mapping):
        raise ReportLoadError(f"report {report_path} has no 'summary' object")
    return payload


def summary_from_report(payload: Mapping[str, object]) -> ReviewSummary:
    raw = payload.get("summary")
    if not isinstance(raw, Mapping):
        raise ReportLoadError("report has no 'summary' object")
    return ReviewSummary.from_mapping(raw)


def render_markdown(payload: Mapping[str, Any]) -> str:
    """Human-readable gate and summary tables for a report payload."""

    summary = payload.get("summary", {})
    gate = payload.get("gate", {})
    exploration = payload.get("exploration", {}).get("summary", {})
    lines: list[str] = [
        "# Use-case review",
        "",
        f"- Run: `{payload.get('run_id')}`",
        f"- Generated: {payload.get('generated_at')}",
        f"- Gate: **{'PASSED' if gate.get('passed') else 'FAILED'}**",
        "",
    ]

    reasons: Sequence[str] = gate.get("reasons", [])
    if reasons:
        lines.append("## Gate violations")
        lines.append("")
        lines.extend(f"- `{reason}`" for reason in reasons)
        lines.append("")

    lines.extend(
        [
            "## Summary",
            "",
            "| Metric | Value |",
            "| --- | --- |",
            f"| Runs | {summary.get('total_runs', 0)} |",
            f"| Passed | {summary.get('passed_runs', 0)} |",
            f"| Pass rate | {_pct(summary.get('pass_rate'))} |",
            f"| Evidence rate | {_pct(summary.get('evidence_rate'))} |",
            f"| Useful summary rate | {_pct(summary.get('useful_summary_rate'))} |",
            f"| Strict failure share | {_pct(summary.get('strict_failure_share'))} |",
            "",
        ]
    )

    by_domain: Mapping[str, Mapping[str, Any]] = summary.get("by_domain", {})
    if by_domain:
        lines.extend(["## By domain", "", "| Domain | Runs | Pass | Evidence | Strict |"])
        lines.append("| --- | --- | --- | --- | --- |")
        for domain, row in by_domain.items():
            lines.append(
                f"| {domain} | {row.get('runs', 0)} | {_pct(row.get('pass_rate'))} | "
                f"{_pct(row.get('evidence_rate'))} | {_pct(row.get('strict_failure_share'))} |"
            )
        lines.append("")

    progression: Mapping[str, Any] = summary.get("progression", {})
    if progression.get("enabled"):
        lines.extend(
            [
                "## Progression",
                "",
                f"- Prerequisite runs: {progression.get('prerequisite_runs', 0)} "
                f"(pass {_pct(progression.get('prerequisite_pass_rate'))})",
                f"- Target runs: {progression.get('target_runs', 0)} "
                f"(pass {_pct(progression.get('target_pass_rate'))})",
                "- Targets with prerequisites satisfied: "
                f"{_pct(progression.get('target_dependency_ready_share'))}",
                "",
                "| Layer | Runs | Pass |",
                "| --- | --- | --- |",
            ]
        )
        for layer, row in progression.get("by_layer", {}).items():
            lines.append(f"| {layer} | {row.get('runs', 0)} | {_pct(row.get('pass_rate'))} |")
        lines.append("")

    if exploration:
        lines.extend(
            [
                "## Exploration",
                "",
                f"- Findings: {exploration.get('successful_findings', 0)}/"
                f"{exploration.get('total_findings', 0)} successful",
                f"- Repo coverage: {_pct(exploration.get('repo_coverage_share'))}",
            ]
        )
        concerns: Sequence[str] = exploration.get("concern_signals", [])
        if concerns:
            lines.append(f"- Concerns: {', '.join(f'`{item}`' for item in concerns)}")
        lines.append("")

    return "\n".join(lines)


def _pct(value: object) -> str:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return "n/a"
    return f"{value * 100:.1f}%"


def _dumps(payload: Mapping[str, object]) -> str:
    return json.dumps(payload, indent=2, sort_keys=False, ensure_ascii=False) + "\n"


def _iso8601z(value: datetime) -> str:
    return value.astimezone(UTC).isoformat(timespec="seconds").replace("+00:00", "Z")


def _jsonable(value: object) -> JSONValue:
    if value is None or isinstance(value, (bool, int, float, str)):
        return value
    if isinstance(value, Path):
        return value.as_posix()
    if isinstance(value, Mapping):
        return {str(key): _jsonable(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_jsonable(item) for item in value]
    return str(value)


__all__ = [
    "MARKDOWN_FILENAME",
    "REPORT_FILENAME",
    "ReportLoadError",
    "ReportPaths",
    "ReviewReport",
    "build_report",
    "load_report",
    "render_markdown",
    "repo_report_path",
    "summary_from_report",
    "write_repo_report",
    "write_report",
]

"""Command-line interface router for usecase-review."""

from __future__ import annotations

import argparse
import asyncio
import contextlib
import json
import signal
import sys
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from usecase_review.config import (
    ConfigLoadError,
    ConfigValidationError,
    ReviewSettings,
    dump_effective_config,
    load_config,
)
from usecase_review.constants import EXPLORATION_INTENTS
from usecase_review.control_plane import (
    EngineError,
    EngineFactoryError,
    ExecutorSettings,
    RepoExecutor,
    ReviewPlan,
    ReviewRunner,
    load_engine_factory,
    prepare_review,
)
from usecase_review.control_plane.review import ReviewRun
from usecase_review.domain.ids import generate_run_id
from usecase_review.evaluation import GateResult, evaluate_gate
from usecase_review.ingestion import (
    CatalogLoadError,
    HistoryLoad,
    ManifestLoadError,
    discover_repos,
    load_catalog,
    load_history,
)
from usecase_review.observability import (
    LoggingConfig,
    ReviewEventBus,
    configure_structlog,
    setup_logging,
    shutdown_logging,
)
from usecase_review.reporting import (
    ReportLoadError,
    build_report,
    load_report,
    summary_from_report,
    write_repo_report,
    write_report,
)
from usecase_review.selection import SelectionMode
from usecase_review.ui.render import CLIRenderer, ProgressPrinter, create_renderer
from usecase_review.utils.concurrency import CancellationToken, ReviewCancelledError

EXIT_GATE_REJECTED = 1
EXIT_CONFIG_ERROR = 2
EXIT_ENGINE_ERROR = 3
EXIT_CANCELLED = 130


@dataclass(frozen=True, slots=True)
class CLIError(RuntimeError):
    """Typed CLI failure with an explicit process exit code."""

    message: str
    exit_code: int = 1

    def __str__(self) -> str:
        return self.message


# ---------------------------------------------------------------------------
# Parser
# ---------------------------------------------------------------------------


def build_parser() -> argparse.ArgumentParser:
    """Build the argparse command router."""

    parser = argparse.ArgumentParser(
        prog="uc-review",
        description=(
            "usecase-review: dependency-aware use-case scheduling and release gate.\n\n"
            "Common workflows:\n"
            "  uc-review plan                 Show per-repo plans without running\n"
            "  uc-review run --strict         Run the review; non-zero exit if the gate fails\n"
            "  uc-review gate report.json     Re-evaluate thresholds on a written report\n"
            "  uc-review config               Print the effective config\n"
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument(
        "--config",
        dest="config_path",
        default=None,
        help="Path to TOML config (default: ./usecase_review.toml if present).",
    )
    common.add_argument("--uc-start", type=int, default=None, help="First use-case number.")
    common.add_argument("--uc-end", type=int, default=None, help="Last use-case number.")
    common.add_argument("--max-use-cases", type=int, default=None, help="Target budget.")
    common.add_argument("--max-repos", type=int, default=None, help="Repository budget.")
    common.add_argument(
        "--selection-mode",
        choices=[mode.value for mode in SelectionMode],
        default=None,
        help="Target selection strategy.",
    )
    common.add_argument(
        "--no-progressive",
        action="store_true",
        default=False,
        help="Plan targets only; skip prerequisite expansion.",
    )
    common.add_argument(
        "--non-deterministic",
        action="store_true",
        default=False,
        help="Allow non-deterministic engine queries.",
    )
    common.add_argument(
        "--max-runs-per-repo", type=int, default=None, help="Per-repository step budget."
    )
    common.add_argument(
        "--init-timeout", type=float, default=None, help="Engine readiness timeout (seconds)."
    )
    common.add_argument(
        "--query-timeout", type=float, default=None, help="Per-query timeout (seconds)."
    )
    common.add_argument(
        "--threshold",
        action="append",
        default=[],
        metavar="NAME=VALUE",
        help="Gate threshold override, e.g. min_pass_rate=0.8 (repeatable).",
    )
    common.add_argument("--catalog", default=None, help="Use-case catalog markdown file.")
    common.add_argument("--repos-root", default=None, help="Directory holding the repositories.")
    common.add_argument("--history", default=None, help="Prior report used as run history.")
    common.add_argument("--report-dir", default=None, help="Where reports are written.")
    common.add_argument("--engine", default=None, help="Engine factory as 'module:attribute'.")
    common.add_argument("--json", action="store_true", help="Emit JSON output.")
    common.add_argument("--verbose", "-v", action="store_true", default=False)
    common.add_argument("--no-color", action="store_true", default=False)

    subparsers = parser.add_subparsers(dest="command", required=True)

    plan_parser = subparsers.add_parser(
        "plan", parents=[common], help="Select, distribute and plan without running"
    )
    plan_parser.set_defaults(handler=_cmd_plan)

    run_parser = subparsers.add_parser("run", parents=[common], help="Run the full review")
    run_parser.add_argument(
        "--strict",
        action="store_true",
        default=False,
        help="Exit with code 1 when the gate rejects the run.",
    )
    run_parser.set_defaults(handler=_cmd_run)

    gate_parser = subparsers.add_parser(
        "gate", parents=[common], help="Re-evaluate the gate against an existing report"
    )
    gate_parser.add_argument(
        "report_path",
        nargs="?",
        default=None,
        help="Report JSON (default: <report_dir>/report.json).",
    )
    gate_parser.set_defaults(handler=_cmd_gate)

    config_parser = subparsers.add_parser(
        "config", parents=[common], help="Print the effective config"
    )
    config_parser.set_defaults(handler=_cmd_config)

    return parser


# ---------------------------------------------------------------------------
# Entrypoint
# ---------------------------------------------------------------------------


def run_cli(argv: Sequence[str] | None = None) -> int:
    """Parse argv, route to a command handler, and return the process exit code."""

    parser = build_parser()
    namespace = parser.parse_args(list(argv) if argv is not None else None)
    handler = getattr(namespace, "handler", None)
    if not callable(handler):
        parser.print_help(sys.stderr)
        return EXIT_CONFIG_ERROR

    # Keep stdout for command output; log records stay in the stdlib tree.
    configure_structlog()
    try:
        result = handler(namespace)
    except CLIError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return exc.exit_code
    return int(result)


# ---------------------------------------------------------------------------
# Command handlers
# ---------------------------------------------------------------------------


def _cmd_plan(args: argparse.Namespace) -> int:
    settings = _load_settings(args)
    review_plan, history = _prepare(settings)

    if args.json:
        _emit_json(
            {
                "command": "plan",
                "options": settings.options(),
                "history": history.to_dict(),
                **review_plan.to_dict(),
            }
        )
        return 0

    renderer = _get_renderer(args)
    renderer.kv("Selected use cases", len(review_plan.selected))
    renderer.kv("Repositories", len(review_plan.repos))
    renderer.kv("History", history.status.value)
    if review_plan.unassigned:
        renderer.warning(f"{len(review_plan.unassigned)} targets did not fit any repository")
    _render_plans(renderer, review_plan)
    return 0


def _cmd_run(args: argparse.Namespace) -> int:
    settings = _load_settings(args)
    if settings.engine_factory is None:
        raise CLIError(
            "no engine factory configured; set [engine].factory or pass --engine",
            exit_code=EXIT_CONFIG_ERROR,
        )
    try:
        factory = load_engine_factory(settings.engine_factory)
    except EngineFactoryError as exc:
        raise CLIError(str(exc), exit_code=EXIT_CONFIG_ERROR) from exc

    run_id = generate_run_id()
    logging_handle = setup_logging(
        LoggingConfig(
            run_id=run_id,
            base_log_dir=settings.log_dir,
            level=settings.log_level,
            log_to_stdout=settings.log_to_stdout,
        )
    )
    try:
        review_plan, history = _prepare(settings)
        renderer = _get_renderer(args)
        bus = ReviewEventBus()
        if not args.json:
            bus.subscribe(None, ProgressPrinter(renderer))

        executor = RepoExecutor(
            factory,
            ExecutorSettings(
                init_timeout_seconds=settings.init_timeout_seconds,
                query_timeout_seconds=settings.query_timeout_seconds,
                deterministic_queries=settings.deterministic_queries,
                exploration_intents=EXPLORATION_INTENTS[: settings.exploration_intents],
            ),
            event_bus=bus,
        )
        runner = ReviewRunner(
            executor,
            event_bus=bus,
            on_repo_complete=lambda plan, outcome: write_repo_report(
                settings.report_dir, plan, outcome, run_id=run_id
            ),
        )
        try:
            run = asyncio.run(_run_review(runner, review_plan, run_id))
        except ReviewCancelledError as exc:
            print(f"cancelled: {exc.reason}", file=sys.stderr)
            return EXIT_CANCELLED
        except EngineError as exc:
            raise CLIError(f"engine error: {exc}", exit_code=EXIT_ENGINE_ERROR) from exc

        report = build_report(
            run,
            options=settings.options(),
            thresholds=settings.thresholds,
            history=history,
        )
        paths = write_report(report, settings.report_dir)
    finally:
        shutdown_logging(logging_handle)

    exit_code = EXIT_GATE_REJECTED if args.strict and not report.gate.passed else 0
    if args.json:
        _emit_json(
            {
                "command": "run",
                "run_id": run.run_id,
                "report": paths.json_path.as_posix(),
                "summary": report.summary.to_dict(),
                "gate": report.gate.to_dict(),
            }
        )
        return exit_code

    renderer.section("Summary:")
    renderer.kv("Run ID", run.run_id)
    renderer.kv("Runs", f"{report.summary.passed_runs}/{report.summary.total_runs} passed")
    renderer.kv("Pass rate", f"{report.summary.pass_rate:.3f}")
    renderer.kv("Evidence rate", f"{report.summary.evidence_rate:.3f}")
    renderer.kv("Useful summary rate", f"{report.summary.useful_summary_rate:.3f}")
    renderer.kv("Strict failure share", f"{report.summary.strict_failure_share:.3f}")
    _render_gate(renderer, report.gate)
    renderer.kv("Report", paths.json_path.as_posix())
    return exit_code


def _cmd_gate(args: argparse.Namespace) -> int:
    settings = _load_settings(args)
    report_path = (
        Path(args.report_path).expanduser().resolve()
        if args.report_path
        else settings.report_dir / "report.json"
    )
    try:
        payload = load_report(report_path)
        summary = summary_from_report(payload)
    except ReportLoadError as exc:
        raise CLIError(str(exc), exit_code=EXIT_CONFIG_ERROR) from exc

    gate = evaluate_gate(summary, settings.thresholds)
    exit_code = 0 if gate.passed else EXIT_GATE_REJECTED
    if args.json:
        _emit_json({"command": "gate", "report": report_path.as_posix(), "gate": gate.to_dict()})
        return exit_code

    renderer = _get_renderer(args)
    renderer.kv("Report", report_path.as_posix())
    renderer.kv("Runs", summary.total_runs)
    _render_gate(renderer, gate)
    return exit_code


def _cmd_config(args: argparse.Namespace) -> int:
    config = _load_config(args)
    if args.json:
        _emit_json({"command": "config", "config": config})
        return 0
    _get_renderer(args).text(dump_effective_config(config))
    return 0


# ---------------------------------------------------------------------------
# Review wiring
# ---------------------------------------------------------------------------


def _prepare(settings: ReviewSettings) -> tuple[ReviewPlan, HistoryLoad]:
    try:
        catalog = load_catalog(
            settings.catalog_path, uc_start=settings.uc_start, uc_end=settings.uc_end
        )
        repos = discover_repos(settings.repos_root, max_repos=settings.max_repos)
    except (CatalogLoadError, ManifestLoadError) as exc:
        raise CLIError(str(exc), exit_code=EXIT_CONFIG_ERROR) from exc

    history = load_history(settings.history_path)
    review_plan = prepare_review(
        catalog,
        repos,
        max_use_cases=settings.max_use_cases,
        selection_mode=settings.selection_mode,
        max_runs_per_repo=settings.max_runs_per_repo,
        progressive_prerequisites=settings.progressive_prerequisites,
        history=history,
    )
    return review_plan, history


async def _run_review(runner: ReviewRunner, plan: ReviewPlan, run_id: str) -> ReviewRun:
    token = CancellationToken()
    loop = asyncio.get_running_loop()
    installed: list[signal.Signals] = []
    for signum in (signal.SIGINT, signal.SIGTERM):
        with contextlib.suppress(NotImplementedError, RuntimeError):
            loop.add_signal_handler(signum, token.cancel, f"signal:{signum.name}")
            installed.append(signum)
    try:
        return await runner.run(plan, token, run_id=run_id)
    finally:
        for signum in installed:
            loop.remove_signal_handler(signum)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _load_config(args: argparse.Namespace) -> dict[str, Any]:
    try:
        return load_config(args.config_path, cli_overrides=_cli_overrides(args))
    except (ConfigLoadError, ConfigValidationError) as exc:
        raise CLIError(str(exc), exit_code=EXIT_CONFIG_ERROR) from exc


def _load_settings(args: argparse.Namespace) -> ReviewSettings:
    return ReviewSettings.from_config(_load_config(args))


def _cli_overrides(args: argparse.Namespace) -> dict[str, object]:
    overrides: dict[str, object] = {
        "review.uc_start": args.uc_start,
        "review.uc_end": args.uc_end,
        "review.max_use_cases": args.max_use_cases,
        "review.max_repos": args.max_repos,
        "review.selection_mode": args.selection_mode,
        "review.max_runs_per_repo": args.max_runs_per_repo,
        "timeouts.init_timeout_seconds": args.init_timeout,
        "timeouts.query_timeout_seconds": args.query_timeout,
        "engine.factory": args.engine,
    }
    if args.no_progressive:
        overrides["review.progressive_prerequisites"] = False
    if args.non_deterministic:
        overrides["review.deterministic_queries"] = False
    for key, raw in (
        ("paths.catalog", args.catalog),
        ("paths.repos_root", args.repos_root),
        ("paths.history", args.history),
        ("paths.report_dir", args.report_dir),
    ):
        if raw is not None:
            # CLI paths are relative to the working directory, not the config file.
            overrides[key] = Path(raw).expanduser().resolve().as_posix()
    for name, value in _parse_thresholds(args.threshold).items():
        overrides[f"thresholds.{name}"] = value
    return {key: value for key, value in overrides.items() if value is not None}


def _parse_thresholds(raw_items: Sequence[str]) -> dict[str, float]:
    parsed: dict[str, float] = {}
    for raw in raw_items:
        name, separator, value = raw.partition("=")
        if not separator or not name.strip():
            raise CLIError(f"--threshold expects NAME=VALUE (got {raw!r})", exit_code=2)
        try:
            parsed[name.strip()] = float(value)
        except ValueError as exc:
            raise CLIError(f"--threshold {name.strip()} must be a number", exit_code=2) from exc
    return parsed


def _render_plans(renderer: CLIRenderer, review_plan: ReviewPlan) -> None:
    for plan in review_plan.repo_plans:
        notes: list[str] = []
        if plan.used_flat_fallback:
            notes.append("flat fallback")
        if plan.truncated:
            notes.append("truncated")
        suffix = f" ({', '.join(notes)})" if notes else ""
        rows = [
            [
                item.id,
                item.step_kind.value,
                item.layer,
                item.domain,
                ",".join(item.required_by_targets),
            ]
            for item in plan.items
        ]
        renderer.section(f"{plan.repo}: {len(plan.items)} steps{suffix}")
        renderer.table(["ID", "KIND", "LAYER", "DOMAIN", "REQUIRED BY"], rows)


def _render_gate(renderer: CLIRenderer, gate: GateResult) -> None:
    renderer.section("Gate:")
    if gate.passed:
        renderer.ok("all thresholds met")
        return
    for reason in gate.reasons:
        renderer.fail(reason)


def _emit_json(payload: Mapping[str, object]) -> None:
    print(json.dumps(payload, sort_keys=True, separators=(",", ":"), ensure_ascii=False))


def _get_renderer(args: argparse.Namespace) -> CLIRenderer:
    return create_renderer(no_color=args.no_color, verbose=args.verbose)


__all__ = ["CLIError", "build_parser", "run_cli"]

"""
usecase-review: config schema, defaults and strict validation.

Sections: ``review``, ``timeouts``, ``thresholds``, ``paths``, ``engine``,
``observability``. Validation never stops at the first problem; every issue
is collected with its dotted path and raised together as
``ConfigValidationError``.
"""

from __future__ import annotations

import copy
import math
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Final, NotRequired, TypedDict, cast

from usecase_review.constants import (
    DEFAULT_CATALOG_PATH,
    DEFAULT_EXPLORATION_INTENTS,
    DEFAULT_INIT_TIMEOUT_SECONDS,
    DEFAULT_MAX_REPOS,
    DEFAULT_MAX_RUNS_PER_REPO,
    DEFAULT_MAX_USE_CASES,
    DEFAULT_QUERY_TIMEOUT_SECONDS,
    DEFAULT_REPORT_DIR,
    DEFAULT_REPOS_ROOT,
    DEFAULT_UC_END,
    DEFAULT_UC_START,
    EXPLORATION_INTENTS,
)
from usecase_review.evaluation.gate import GateThresholds
from usecase_review.selection.selector import SelectionMode

LOG_LEVELS: Final[tuple[str, ...]] = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")

# Path-valued fields normalized relative to the config file.
PATH_FIELDS: Final[tuple[tuple[str, ...], ...]] = (
    ("paths", "catalog"),
    ("paths", "repos_root"),
    ("paths", "history"),
    ("paths", "report_dir"),
    ("observability", "log_dir"),
)


class ReviewSection(TypedDict):
    uc_start: int
    uc_end: int
    max_use_cases: int
    max_repos: int
    selection_mode: str
    progressive_prerequisites: bool
    deterministic_queries: bool
    max_runs_per_repo: int
    exploration_intents: int


class TimeoutsSection(TypedDict):
    init_timeout_seconds: float
    query_timeout_seconds: float


class ThresholdsSection(TypedDict):
    min_pass_rate: float
    min_evidence_rate: float
    min_useful_summary_rate: float
    max_strict_failure_share: float
    min_prerequisite_pass_rate: float
    min_target_pass_rate: float
    min_target_dependency_ready_share: float


class PathsSection(TypedDict):
    catalog: str
    repos_root: str
    report_dir: str
    history: NotRequired[str]


class EngineSection(TypedDict, total=False):
    factory: str


class ObservabilitySection(TypedDict):
    log_level: str
    log_dir: str
    log_to_stdout: bool


class ReviewConfig(TypedDict):
    review: ReviewSection
    timeouts: TimeoutsSection
    thresholds: ThresholdsSection
    paths: PathsSection
    engine: EngineSection
    observability: ObservabilitySection


DEFAULT_CONFIG: Final[ReviewConfig] = {
    "review": {
        "uc_start": DEFAULT_UC_START,
        "uc_end": DEFAULT_UC_END,
        "max_use_cases": DEFAULT_MAX_USE_CASES,
        "max_repos": DEFAULT_MAX_REPOS,
        "selection_mode": SelectionMode.PROBABILISTIC.value,
        "progressive_prerequisites": True,
        "deterministic_queries": True,
        "max_runs_per_repo": DEFAULT_MAX_RUNS_PER_REPO,
        "exploration_intents": DEFAULT_EXPLORATION_INTENTS,
    },
    "timeouts": {
        "init_timeout_seconds": DEFAULT_INIT_TIMEOUT_SECONDS,
        "query_timeout_seconds": DEFAULT_QUERY_TIMEOUT_SECONDS,
    },
    "thresholds": {
        "min_pass_rate": 0.75,
        "min_evidence_rate": 0.90,
        "min_useful_summary_rate": 0.80,
        "max_strict_failure_share": 0.0,
        "min_prerequisite_pass_rate": 0.75,
        "min_target_pass_rate": 0.75,
        "min_target_dependency_ready_share": 1.0,
    },
    "paths": {
        "catalog": DEFAULT_CATALOG_PATH,
        "repos_root": DEFAULT_REPOS_ROOT,
        "report_dir": DEFAULT_REPORT_DIR,
    },
    "engine": {},
    "observability": {
        "log_level": "INFO",
        "log_dir": "logs/",
        "log_to_stdout": False,
    },
}


@dataclass(frozen=True, slots=True)
class ConfigValidationIssue:
    path: str
    message: str


class ConfigValidationError(ValueError):
    """Raised when strict config validation fails."""

    def __init__(self, issues: Sequence[ConfigValidationIssue]) -> None:
        self.issues = tuple(issues)
        if not self.issues:
            rendered = "unknown validation failure"
        else:
            rendered = "\n".join(f"- {item.path}: {item.message}" for item in self.issues)
        super().__init__(f"invalid config:\n{rendered}")


class _IssueCollector:
    __slots__ = ("_items",)

    def __init__(self) -> None:
        self._items: list[ConfigValidationIssue] = []

    def add(self, path: str, message: str) -> None:
        self._items.append(ConfigValidationIssue(path=path, message=message))

    def items(self) -> tuple[ConfigValidationIssue, ...]:
        return tuple(self._items)

    @property
    def has_issues(self) -> bool:
        return bool(self._items)


@dataclass(frozen=True, slots=True)
class ReviewSettings:
    """Typed view over a validated config; what the CLI hands to the review."""

    uc_start: int
    uc_end: int
    max_use_cases: int
    max_repos: int
    selection_mode: SelectionMode
    progressive_prerequisites: bool
    deterministic_queries: bool
    max_runs_per_repo: int
    exploration_intents: int
    init_timeout_seconds: float
    query_timeout_seconds: float
    thresholds: GateThresholds
    catalog_path: Path
    repos_root: Path
    report_dir: Path
    history_path: Path | None
    engine_factory: str | None
    log_level: str
    log_dir: Path
    log_to_stdout: bool

    @classmethod
    def from_config(cls, config: Mapping[str, Any]) -> ReviewSettings:
        review = config["review"]
        timeouts = config["timeouts"]
        paths = config["paths"]
        observability = config["observability"]
        history = paths.get("history")
        factory = config.get("engine", {}).get("factory")
        return cls(
            uc_start=review["uc_start"],
            uc_end=review["uc_end"],
            max_use_cases=review["max_use_cases"],
            max_repos=review["max_repos"],
            selection_mode=SelectionMode(review["selection_mode"]),
            progressive_prerequisites=review["progressive_prerequisites"],
            deterministic_queries=review["deterministic_queries"],
            max_runs_per_repo=review["max_runs_per_repo"],
            exploration_intents=review["exploration_intents"],
            init_timeout_seconds=timeouts["init_timeout_seconds"],
            query_timeout_seconds=timeouts["query_timeout_seconds"],
            thresholds=GateThresholds.from_mapping(config["thresholds"]),
            catalog_path=Path(paths["catalog"]),
            repos_root=Path(paths["repos_root"]),
            report_dir=Path(paths["report_dir"]),
            history_path=Path(history) if history else None,
            engine_factory=factory or None,
            log_level=observability["log_level"],
            log_dir=Path(observability["log_dir"]),
            log_to_stdout=observability["log_to_stdout"],
        )

    def options(self) -> dict[str, object]:
        """Resolved run options as recorded in the report."""
        return {
            "uc_start": self.uc_start,
            "uc_end": self.uc_end,
            "max_use_cases": self.max_use_cases,
            "max_repos": self.max_repos,
            "selection_mode": self.selection_mode.value,
            "progressive_prerequisites": self.progressive_prerequisites,
            "deterministic_queries": self.deterministic_queries,
            "max_runs_per_repo": self.max_runs_per_repo,
            "exploration_intents": self.exploration_intents,
            "init_timeout_seconds": self.init_timeout_seconds,
            "query_timeout_seconds": self.query_timeout_seconds,
            "thresholds": self.thresholds.to_dict(),
            "catalog": self.catalog_path.as_posix(),
            "repos_root": self.repos_root.as_posix(),
            "history": self.history_path.as_posix() if self.history_path else None,
            "engine_factory": self.engine_factory,
        }


def default_config() -> ReviewConfig:
    """Return a deep copy of the built-in defaults."""

    return copy.deepcopy(DEFAULT_CONFIG)


def merge_config(base: Mapping[str, object], overlay: Mapping[str, object]) -> dict[str, Any]:
    """Deep-merge ``overlay`` onto a copy of ``base``."""

    merged = copy.deepcopy(dict(base))
    _merge_into(merged, overlay)
    return merged


def validate_config(config: Mapping[str, object] | object) -> tuple[ConfigValidationIssue, ...]:
    issues = _IssueCollector()
    root = _as_object(config, "<root>", issues)
    if root is not None:
        _validate_root(root, issues)
    return issues.items()


def assert_valid_config(config: Mapping[str, object] | object) -> dict[str, Any]:
    """Validate ``config`` and return a normalized copy; raise on any issue."""

    issues = validate_config(config)
    if issues:
        raise ConfigValidationError(issues)
    return merge_config({}, cast("Mapping[str, object]", config))


def _validate_root(payload: Mapping[str, object], issues: _IssueCollector) -> None:
    validators: dict[str, Callable[[dict[str, object], str, _IssueCollector], None]] = {
        "review": _validate_review,
        "timeouts": _validate_timeouts,
        "thresholds": _validate_thresholds,
        "paths": _validate_paths,
        "engine": _validate_engine,
        "observability": _validate_observability,
    }
    _reject_unknown_keys(payload, set(validators), "", issues)
    for key in sorted(validators):
        raw = payload.get(key)
        if raw is None:
            issues.add(key, "missing required section")
            continue
        section = _as_object(raw, key, issues)
        if section is not None:
            validators[key](section, key, issues)


def _validate_review(payload: dict[str, object], path: str, issues: _IssueCollector) -> None:
    allowed = set(ReviewSection.__annotations__)
    _reject_unknown_keys(payload, allowed, path, issues)
    _require_keys(payload, allowed, path, issues)

    uc_start = _as_int(payload.get("uc_start"), _join(path, "uc_start"), issues, minimum=1)
    uc_end = _as_int(payload.get("uc_end"), _join(path, "uc_end"), issues, minimum=1)
    if uc_start is not None and uc_end is not None and uc_end < uc_start:
        issues.add(_join(path, "uc_end"), "must be >= review.uc_start")

    for key in ("max_use_cases", "max_repos", "max_runs_per_repo"):
        _as_int(payload.get(key), _join(path, key), issues, minimum=1)
    intents = _as_int(
        payload.get("exploration_intents"),
        _join(path, "exploration_intents"),
        issues,
        minimum=0,
    )
    if intents is not None and intents > len(EXPLORATION_INTENTS):
        issues.add(
            _join(path, "exploration_intents"),
            f"must be <= {len(EXPLORATION_INTENTS)}",
        )
    _as_enum(
        payload.get("selection_mode"),
        _join(path, "selection_mode"),
        issues,
        allowed_values=tuple(mode.value for mode in SelectionMode),
    )
    for key in ("progressive_prerequisites", "deterministic_queries"):
        _as_bool(payload.get(key), _join(path, key), issues)


def _validate_timeouts(payload: dict[str, object], path: str, issues: _IssueCollector) -> None:
    allowed = set(TimeoutsSection.__annotations__)
    _reject_unknown_keys(payload, allowed, path, issues)
    _require_keys(payload, allowed, path, issues)
    for key in sorted(allowed):
        value = _as_float(payload.get(key), _join(path, key), issues)
        if value is not None and value <= 0:
            issues.add(_join(path, key), "must be > 0")


def _validate_thresholds(payload: dict[str, object], path: str, issues: _IssueCollector) -> None:
    allowed = set(ThresholdsSection.__annotations__)
    _reject_unknown_keys(payload, allowed, path, issues)
    _require_keys(payload, allowed, path, issues)
    for key in sorted(allowed):
        value = _as_float(payload.get(key), _join(path, key), issues)
        if value is not None and not 0.0 <= value <= 1.0:
            issues.add(_join(path, key), "must be within [0, 1]")


def _validate_paths(payload: dict[str, object], path: str, issues: _IssueCollector) -> None:
    required = {"catalog", "repos_root", "report_dir"}
    _reject_unknown_keys(payload, required | {"history"}, path, issues)
    _require_keys(payload, required, path, issues)
    for key in sorted(payload):
        if key in required or key == "history":
            _as_path_text(payload[key], _join(path, key), issues)


def _validate_engine(payload: dict[str, object], path: str, issues: _IssueCollector) -> None:
    _reject_unknown_keys(payload, {"factory"}, path, issues)
    if "factory" not in payload:
        return
    factory = _as_str(payload["factory"], _join(path, "factory"), issues)
    if factory is not None:
        module_name, separator, attribute = factory.partition(":")
        if not separator or not module_name or not attribute:
            issues.add(_join(path, "factory"), "must look like 'package.module:attribute'")


def _validate_observability(
    payload: dict[str, object], path: str, issues: _IssueCollector
) -> None:
    allowed = set(ObservabilitySection.__annotations__)
    _reject_unknown_keys(payload, allowed, path, issues)
    _require_keys(payload, allowed, path, issues)
    level = payload.get("log_level")
    if isinstance(level, str):
        level = level.strip().upper()
    _as_enum(level, _join(path, "log_level"), issues, allowed_values=LOG_LEVELS)
    _as_path_text(payload.get("log_dir"), _join(path, "log_dir"), issues)
    _as_bool(payload.get("log_to_stdout"), _join(path, "log_to_stdout"), issues)


def _as_object(value: object, path: str, issues: _IssueCollector) -> dict[str, object] | None:
    if not isinstance(value, Mapping):
        issues.add(path, f"expected object, got {type(value).__name__}")
        return None
    out: dict[str, object] = {}
    for key, item in value.items():
        if not isinstance(key, str):
            issues.add(path, f"object key must be string, got {type(key).__name__}")
            continue
        out[key] = item
    return out


def _as_str(value: object, path: str, issues: _IssueCollector) -> str | None:
    if not isinstance(value, str):
        issues.add(path, f"expected string, got {type(value).__name__}")
        return None
    parsed = value.strip()
    if not parsed:
        issues.add(path, "must not be empty")
        return None
    return parsed


def _as_path_text(value: object, path: str, issues: _IssueCollector) -> str | None:
    parsed = _as_str(value, path, issues)
    if parsed is not None and "\x00" in parsed:
        issues.add(path, "must not contain NUL bytes")
        return None
    return parsed


def _as_bool(value: object, path: str, issues: _IssueCollector) -> bool | None:
    if isinstance(value, bool):
        return value
    issues.add(path, f"expected boolean, got {type(value).__name__}")
    return None


def _as_int(
    value: object,
    path: str,
    issues: _IssueCollector,
    *,
    minimum: int | None = None,
) -> int | None:
    if isinstance(value, bool) or not isinstance(value, int):
        issues.add(path, f"expected integer, got {type(value).__name__}")
        return None
    if minimum is not None and value < minimum:
        issues.add(path, f"must be >= {minimum}")
        return None
    return value


def _as_float(value: object, path: str, issues: _IssueCollector) -> float | None:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        issues.add(path, f"expected number, got {type(value).__name__}")
        return None
    parsed = float(value)
    if not math.isfinite(parsed):
        issues.add(path, "must be finite")
        return None
    return parsed


def _as_enum(
    value: object,
    path: str,
    issues: _IssueCollector,
    *,
    allowed_values: tuple[str, ...],
) -> str | None:
    parsed = _as_str(value, path, issues)
    if parsed is None:
        return None
    if parsed not in allowed_values:
        expected = ", ".join(sorted(allowed_values))
        issues.add(path, f"invalid value {parsed!r}; expected one of: {expected}")
        return None
    return parsed


def _reject_unknown_keys(
    payload: Mapping[str, object],
    allowed: set[str],
    path: str,
    issues: _IssueCollector,
) -> None:
    for key in sorted(payload):
        if key not in allowed:
            issues.add(_join(path, key), "unknown field")


def _require_keys(
    payload: Mapping[str, object],
    required: set[str],
    path: str,
    issues: _IssueCollector,
) -> None:
    for key in sorted(required):
        if key not in payload:
            issues.add(_join(path, key), "missing required field")


def _join(path: str, key: str) -> str:
    if not path:
        return key
    return f"{path}.{key}"


def _merge_into(target: dict[str, Any], overlay: Mapping[str, object]) -> None:
    for key in sorted(overlay):
        value = overlay[key]
        if isinstance(value, Mapping):
            existing = target.get(key)
            nested: dict[str, Any] = dict(existing) if isinstance(existing, Mapping) else {}
            _merge_into(nested, value)
            target[key] = nested
        else:
            target[key] = copy.deepcopy(value)


__all__ = [
    "DEFAULT_CONFIG",
    "LOG_LEVELS",
    "PATH_FIELDS",
    "ConfigValidationError",
    "ConfigValidationIssue",
    "ReviewConfig",
    "ReviewSettings",
    "assert_valid_config",
    "default_config",
    "merge_config",
    "validate_config",
]

"""Strict-signal extraction and fail-fast error classification."""

from __future__ import annotations

import re
from collections.abc import Iterable
from typing import Final

from usecase_review.control_plane.engine import QueryResponse
from usecase_review.domain.models import dedupe_preserving_order
from usecase_review.utils.concurrency import OperationTimeoutError

_FLAG_LABELS: Final[dict[str, str]] = {
    "fallback_used": "fallback_used",
    "fallbackused": "fallback_used",
    "fallback": "fallback_used",
    "retry": "retry",
    "retried": "retry",
    "retry_used": "retry",
    "degraded": "degraded",
    "timeout": "timeout",
    "timed_out": "timeout",
    "timedout": "timeout",
}

_TEXT_PATTERNS: Final[tuple[tuple[str, re.Pattern[str]], ...]] = (
    ("fallback", re.compile(r"fallback", re.IGNORECASE)),
    ("retry", re.compile(r"retry", re.IGNORECASE)),
    ("degraded", re.compile(r"degrad(?:e|ed|ing)", re.IGNORECASE)),
    (
        "prerequisite_not_satisfied",
        re.compile(r"prerequisite_(?:not_satisfied|missing)", re.IGNORECASE),
    ),
    ("provider_unavailable", re.compile(r"provider_unavailable", re.IGNORECASE)),
    ("validation_unavailable", re.compile(r"validation_unavailable", re.IGNORECASE)),
    ("timeout", re.compile(r"timeout", re.IGNORECASE)),
)

_UNVERIFIED_MARKER: Final[re.Pattern[str]] = re.compile(
    r"unverified_by_trace\(([^)]*)\)", re.IGNORECASE
)
BENIGN_UNVERIFIED_REASONS: Final[frozenset[str]] = frozenset(
    {
        "adequacy_missing",
        "multi_agent_conflict",
        "watch_state_missing",
        "watch_state_unavailable",
    }
)

_FAIL_FAST_PATTERNS: Final[tuple[re.Pattern[str], ...]] = (
    re.compile(r"query_timeout", re.IGNORECASE),
    re.compile(r"provider_unavailable", re.IGNORECASE),
    re.compile(r"model_policy_unavailable", re.IGNORECASE),
    re.compile(r"initialization_failed", re.IGNORECASE),
)

QUERY_TIMEOUT_LABEL: Final[str] = "query_timeout"
INIT_FAILED_LABEL: Final[str] = "initialization_failed"


def extract_strict_signals(response: QueryResponse) -> tuple[str, ...]:
    """Labels indicating the response's evidence cannot be trusted, deduplicated in order."""

    labels: list[str] = []
    for key, value in response.flags.items():
        if value is True:
            normalized = key.strip().lower()
            labels.append(_FLAG_LABELS.get(normalized, key.strip()))
    labels.extend(scan_texts(response.texts()))
    return dedupe_preserving_order(label for label in labels if label)


def scan_texts(texts: Iterable[str]) -> list[str]:
    labels: list[str] = []
    for text in texts:
        for label, pattern in _TEXT_PATTERNS:
            if pattern.search(text):
                labels.append(label)
        for match in _UNVERIFIED_MARKER.finditer(text):
            reason = match.group(1).strip().lower()
            if reason not in BENIGN_UNVERIFIED_REASONS:
                labels.append("unverified_by_trace")
    return labels


def is_fail_fast_error(message: str) -> bool:
    """Whether an error should stop every later query in the same repository."""

    return any(pattern.search(message) for pattern in _FAIL_FAST_PATTERNS)


def describe_query_error(exc: BaseException) -> str:
    if isinstance(exc, OperationTimeoutError):
        return str(exc)
    message = str(exc).strip()
    return message or type(exc).__name__


def describe_readiness_error(exc: BaseException) -> str:
    if isinstance(exc, OperationTimeoutError):
        return f"{INIT_FAILED_LABEL}:{exc}"
    message = str(exc).strip() or type(exc).__name__
    if message.lower().startswith(INIT_FAILED_LABEL):
        return message
    return f"{INIT_FAILED_LABEL}:{message}"


__all__ = [
    "BENIGN_UNVERIFIED_REASONS",
    "INIT_FAILED_LABEL",
    "QUERY_TIMEOUT_LABEL",
    "describe_query_error",
    "describe_readiness_error",
    "extract_strict_signals",
    "is_fail_fast_error",
    "scan_texts",
]

"""Shared utilities."""

from usecase_review.utils.concurrency import (
    CancellationToken,
    OperationTimeoutError,
    ReviewCancelledError,
    run_with_timeout,
)
from usecase_review.utils.fs import atomic_write, safe_filename

__all__ = [
    "CancellationToken",
    "OperationTimeoutError",
    "ReviewCancelledError",
    "atomic_write",
    "run_with_timeout",
    "safe_filename",
]

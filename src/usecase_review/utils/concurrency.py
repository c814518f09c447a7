"""Async primitives for review execution: cooperative cancellation and timeout races."""

from __future__ import annotations

import asyncio
import inspect
from contextlib import suppress
from typing import TYPE_CHECKING, TypeVar

if TYPE_CHECKING:
    from collections.abc import Awaitable

T = TypeVar("T")


class ReviewCancelledError(RuntimeError):
    """Raised at an iteration boundary once cancellation has been requested."""

    def __init__(self, reason: str) -> None:
        self.reason = reason
        super().__init__(f"review cancelled: {reason}")


class OperationTimeoutError(TimeoutError):
    """Timeout carrying the operation label and the budget that was exceeded."""

    def __init__(self, label: str, timeout_seconds: float) -> None:
        self.label = label
        self.timeout_seconds = timeout_seconds
        super().__init__(f"{label}:{_format_seconds(timeout_seconds)}s")


class CancellationToken:
    """Single cooperative cancellation signal, checked only between units of work."""

    def __init__(self) -> None:
        self._event = asyncio.Event()
        self._reason: str | None = None

    def cancel(self, reason: str = "cancelled") -> None:
        if self._reason is None:
            self._reason = reason
        self._event.set()

    @property
    def is_cancelled(self) -> bool:
        return self._event.is_set()

    @property
    def reason(self) -> str | None:
        return self._reason

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise ReviewCancelledError(self._reason or "cancelled")


async def run_with_timeout(
    coroutine: Awaitable[T],
    timeout_seconds: float,
    *,
    label: str = "operation_timeout",
) -> T:
    """Race ``coroutine`` against a timer; the loser is cancelled.

    Cancellation tokens are not consulted: an in-flight operation runs to
    completion or to its own timeout.
    """
    if timeout_seconds <= 0:
        _close_unscheduled_coroutine(coroutine)
        raise ValueError("timeout_seconds must be > 0")

    task: asyncio.Task[T] = asyncio.ensure_future(coroutine)
    done, _ = await asyncio.wait({task}, timeout=timeout_seconds)
    if task in done:
        return task.result()

    task.cancel()
    with suppress(asyncio.CancelledError):
        await task
    raise OperationTimeoutError(label, timeout_seconds)


def _format_seconds(value: float) -> str:
    return f"{value:g}"


def _close_unscheduled_coroutine(awaitable: Awaitable[object]) -> None:
    # Close raw coroutine objects that were never scheduled so CPython does not
    # emit "coroutine was never awaited" at GC time.
    if inspect.iscoroutine(awaitable):
        awaitable.close()


__all__ = [
    "CancellationToken",
    "OperationTimeoutError",
    "ReviewCancelledError",
    "run_with_timeout",
]

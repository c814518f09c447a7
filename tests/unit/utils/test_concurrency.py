"""Regression tests for timeout races and cooperative cancellation."""

from __future__ import annotations

import asyncio
import gc
import warnings

import pytest

from usecase_review.utils.concurrency import (
    CancellationToken,
    OperationTimeoutError,
    ReviewCancelledError,
    run_with_timeout,
)


async def _value(delay: float, value: int = 1) -> int:
    await asyncio.sleep(delay)
    return value


async def test_run_with_timeout_returns_result_inside_budget() -> None:
    assert await run_with_timeout(_value(0.0, 7), 1.0) == 7


async def test_run_with_timeout_raises_labelled_timeout_and_cancels_loser() -> None:
    cancelled = asyncio.Event()

    async def slow() -> None:
        try:
            await asyncio.sleep(5)
        except asyncio.CancelledError:
            cancelled.set()
            raise

    with pytest.raises(OperationTimeoutError) as excinfo:
        await run_with_timeout(slow(), 0.01, label="query_timeout")

    assert str(excinfo.value) == "query_timeout:0.01s"
    assert excinfo.value.label == "query_timeout"
    assert isinstance(excinfo.value, TimeoutError)
    assert cancelled.is_set()


async def test_run_with_timeout_propagates_operation_errors() -> None:
    async def broken() -> None:
        raise RuntimeError("provider_unavailable")

    with pytest.raises(RuntimeError, match="provider_unavailable"):
        await run_with_timeout(broken(), 1.0)


async def test_invalid_timeout_closes_the_coroutine() -> None:
    with warnings.catch_warnings():
        warnings.simplefilter("error", RuntimeWarning)
        with pytest.raises(ValueError, match="timeout_seconds"):
            await run_with_timeout(_value(0.0), 0)
        gc.collect()


def test_timeout_message_formats_whole_seconds_without_decimals() -> None:
    assert str(OperationTimeoutError("timeout", 120.0)) == "timeout:120s"


def test_cancellation_token_keeps_first_reason() -> None:
    token = CancellationToken()
    token.raise_if_cancelled()

    token.cancel("signal:SIGINT")
    token.cancel("second")

    assert token.is_cancelled
    assert token.reason == "signal:SIGINT"
    with pytest.raises(ReviewCancelledError) as excinfo:
        token.raise_if_cancelled()
    assert excinfo.value.reason == "signal:SIGINT"

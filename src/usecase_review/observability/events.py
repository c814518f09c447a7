"""Review progress events and the bus that fans them out."""

from __future__ import annotations

import itertools
import threading
from collections import deque
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum
from typing import Final

_ERROR_HISTORY: Final[int] = 1024


class ReviewEventType(StrEnum):
    REVIEW_STARTED = "review_started"
    REPO_STARTED = "repo_started"
    REPO_NOT_READY = "repo_not_ready"
    STEP_COMPLETED = "step_completed"
    CASCADE_TRIGGERED = "cascade_triggered"
    EXPLORATION_COMPLETED = "exploration_completed"
    REPO_COMPLETED = "repo_completed"
    REVIEW_COMPLETED = "review_completed"


@dataclass(frozen=True, slots=True)
class ReviewEvent:
    type: ReviewEventType
    repo: str | None = None
    use_case_id: str | None = None
    payload: Mapping[str, object] = field(default_factory=dict)
    occurred_at: datetime = field(default_factory=lambda: datetime.now(tz=UTC))

    def to_dict(self) -> dict[str, object]:
        return {
            "type": self.type.value,
            "repo": self.repo,
            "use_case_id": self.use_case_id,
            "payload": dict(self.payload),
            "occurred_at": self.occurred_at.isoformat().replace("+00:00", "Z"),
        }


Subscriber = Callable[[ReviewEvent], object]


@dataclass(frozen=True, slots=True)
class DispatchError:
    """A subscriber raised; the event still reached every other subscriber."""

    event_type: str
    target: str
    error_type: str
    message: str

    @classmethod
    def capture(cls, event: ReviewEvent, callback: Subscriber, exc: Exception) -> DispatchError:
        name = getattr(callback, "__qualname__", "") or type(callback).__name__
        module = getattr(callback, "__module__", "")
        return cls(
            event_type=event.type.value,
            target=f"{module}.{name}" if module else name,
            error_type=type(exc).__name__,
            message=str(exc),
        )


def _as_type(event_type: ReviewEventType | str | None) -> ReviewEventType | None:
    return None if event_type is None else ReviewEventType(event_type)


class ReviewEventBus:
    """Synchronous in-process sink.

    Subscribers keyed by ``None`` see every event. The last ``buffer_size``
    events stay available to ``replay`` for late subscribers and tests.
    """

    def __init__(self, *, buffer_size: int = 2048) -> None:
        if buffer_size < 1:
            raise ValueError("buffer_size must be at least 1")
        self._history: deque[ReviewEvent] = deque(maxlen=buffer_size)
        self._errors: deque[DispatchError] = deque(maxlen=_ERROR_HISTORY)
        self._listeners: dict[int, tuple[ReviewEventType | None, Subscriber]] = {}
        self._tokens = itertools.count(1)
        self._lock = threading.RLock()

    def subscribe(self, event_type: ReviewEventType | str | None, callback: Subscriber) -> int:
        if not callable(callback):
            raise ValueError("callback must be callable")
        wanted = _as_type(event_type)
        with self._lock:
            token = next(self._tokens)
            self._listeners[token] = (wanted, callback)
        return token

    def unsubscribe(self, token: int) -> bool:
        with self._lock:
            return self._listeners.pop(token, None) is not None

    def publish(self, event: ReviewEvent) -> tuple[DispatchError, ...]:
        with self._lock:
            self._history.append(event)
            targets = [
                callback
                for wanted, callback in self._listeners.values()
                if wanted is None or wanted is event.type
            ]

        failures: list[DispatchError] = []
        for callback in targets:
            try:
                callback(event)
            except Exception as exc:  # noqa: BLE001
                failures.append(DispatchError.capture(event, callback, exc))
        if failures:
            with self._lock:
                self._errors.extend(failures)
        return tuple(failures)

    def emit(
        self,
        event_type: ReviewEventType,
        *,
        repo: str | None = None,
        use_case_id: str | None = None,
        **payload: object,
    ) -> tuple[DispatchError, ...]:
        return self.publish(ReviewEvent(event_type, repo, use_case_id, payload))

    def replay(self, event_type: ReviewEventType | str | None = None) -> tuple[ReviewEvent, ...]:
        wanted = _as_type(event_type)
        with self._lock:
            kept = tuple(self._history)
        return tuple(event for event in kept if wanted is None or event.type is wanted)

    @property
    def dispatch_errors(self) -> tuple[DispatchError, ...]:
        with self._lock:
            return tuple(self._errors)


__all__ = [
    "DispatchError",
    "ReviewEvent",
    "ReviewEventBus",
    "ReviewEventType",
    "Subscriber",
]

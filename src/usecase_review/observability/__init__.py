"""Structured logging and the review event bus."""

from usecase_review.observability.events import (
    DispatchError,
    ReviewEvent,
    ReviewEventBus,
    ReviewEventType,
)
from usecase_review.observability.logging import (
    LoggingConfig,
    ReviewLoggingHandle,
    configure_structlog,
    correlation_scope,
    setup_logging,
    shutdown_logging,
)

__all__ = [
    "DispatchError",
    "LoggingConfig",
    "ReviewEvent",
    "ReviewEventBus",
    "ReviewEventType",
    "ReviewLoggingHandle",
    "configure_structlog",
    "correlation_scope",
    "setup_logging",
    "shutdown_logging",
]

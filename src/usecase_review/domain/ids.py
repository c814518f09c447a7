"""Use-case id parsing, ordering and layer derivation, plus run id generation."""

from __future__ import annotations

import re
import secrets
import time
from collections.abc import Callable
from typing import Final

from usecase_review.constants import (
    LAYER_RANGES,
    UNKNOWN_LAYER,
    USE_CASE_ID_PATTERN_DESCRIPTION,
)

CROCKFORD_BASE32_ALPHABET: Final[str] = "0123456789ABCDEFGHJKMNPQRSTVWXYZ"
ULID_LENGTH: Final[int] = 26
ULID_RANDOM_BYTES: Final[int] = 10
RUN_ID_PREFIX: Final[str] = "review"

_USE_CASE_ID_RE: Final[re.Pattern[str]] = re.compile(r"^UC-(\d{3,})$")
_USE_CASE_TOKEN_RE: Final[re.Pattern[str]] = re.compile(r"^uc-(\d{3,})$", re.IGNORECASE)

_RandBytes = Callable[[int], bytes]


def normalize_use_case_id(token: str) -> str | None:
    """Normalize tokens such as ``uc-007`` to ``UC-007``; return ``None`` for anything else."""
    if not isinstance(token, str):
        return None
    match = _USE_CASE_TOKEN_RE.fullmatch(token.strip())
    if match is None:
        return None
    return f"UC-{match.group(1)}"


def validate_use_case_id(use_case_id: str) -> None:
    """Validate canonical use-case ids of the form ``UC-001``."""
    if not isinstance(use_case_id, str):
        raise ValueError(f"use_case_id must be a string, got {type(use_case_id).__name__}")
    if _USE_CASE_ID_RE.fullmatch(use_case_id) is None:
        raise ValueError(
            f"use_case_id must match {USE_CASE_ID_PATTERN_DESCRIPTION} (got {use_case_id!r})"
        )


def use_case_number(use_case_id: str) -> int:
    """Return the numeric suffix of a canonical id."""
    match = _USE_CASE_ID_RE.fullmatch(use_case_id)
    if match is None:
        raise ValueError(
            f"use_case_id must match {USE_CASE_ID_PATTERN_DESCRIPTION} (got {use_case_id!r})"
        )
    return int(match.group(1))


def use_case_sort_key(use_case_id: str) -> tuple[int, str]:
    """Ascending numeric order with a lexical tie-break for equal suffixes."""
    match = _USE_CASE_ID_RE.fullmatch(use_case_id)
    if match is None:
        return (1 << 62, use_case_id)
    return (int(match.group(1)), use_case_id)


def layer_for(use_case_id: str) -> str:
    """Derive the maturity layer purely from the id's numeric suffix."""
    match = _USE_CASE_ID_RE.fullmatch(use_case_id) if isinstance(use_case_id, str) else None
    if match is None:
        return UNKNOWN_LAYER
    number = int(match.group(1))
    for layer, low, high in LAYER_RANGES:
        if low <= number <= high:
            return layer
    return UNKNOWN_LAYER


def generate_ulid(*, timestamp_ms: int | None = None, randbytes: _RandBytes | None = None) -> str:
    """Generate a ULID as a 26-character uppercase Crockford Base32 string."""
    ts_ms = int(time.time() * 1000) if timestamp_ms is None else timestamp_ms
    if ts_ms < 0 or ts_ms >= (1 << 48):
        raise ValueError("timestamp_ms out of range")
    source = randbytes if randbytes is not None else secrets.token_bytes
    random_bytes = source(ULID_RANDOM_BYTES)
    if len(random_bytes) != ULID_RANDOM_BYTES:
        raise ValueError(f"randbytes must return {ULID_RANDOM_BYTES} bytes")
    value = (ts_ms << 80) | int.from_bytes(random_bytes, "big")
    chars = []
    for _ in range(ULID_LENGTH):
        chars.append(CROCKFORD_BASE32_ALPHABET[value & 31])
        value >>= 5
    return "".join(reversed(chars))


def generate_run_id(*, timestamp_ms: int | None = None, randbytes: _RandBytes | None = None) -> str:
    return f"{RUN_ID_PREFIX}-{generate_ulid(timestamp_ms=timestamp_ms, randbytes=randbytes)}"


__all__ = [
    "CROCKFORD_BASE32_ALPHABET",
    "RUN_ID_PREFIX",
    "ULID_LENGTH",
    "generate_run_id",
    "generate_ulid",
    "layer_for",
    "normalize_use_case_id",
    "use_case_number",
    "use_case_sort_key",
    "validate_use_case_id",
]

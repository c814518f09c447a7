"""Unit tests for use-case id helpers and run id generation."""

from __future__ import annotations

import pytest

from usecase_review.domain import ids


def _zero_bytes(size: int) -> bytes:
    return b"\x00" * size


def test_normalize_use_case_id_accepts_any_case_and_whitespace() -> None:
    assert ids.normalize_use_case_id(" uc-007 ") == "UC-007"
    assert ids.normalize_use_case_id("UC-1234") == "UC-1234"
    assert ids.normalize_use_case_id("UC-7") is None
    assert ids.normalize_use_case_id("none") is None


def test_validate_use_case_id_rejects_non_canonical_forms() -> None:
    ids.validate_use_case_id("UC-001")
    for invalid in ("uc-001", "UC-01", "UC001", ""):
        with pytest.raises(ValueError, match="UC-001"):
            ids.validate_use_case_id(invalid)


def test_sort_key_orders_numerically_not_lexically() -> None:
    ordered = sorted(["UC-1000", "UC-010", "UC-002"], key=ids.use_case_sort_key)
    assert ordered == ["UC-002", "UC-010", "UC-1000"]


@pytest.mark.parametrize(
    ("use_case_id", "layer"),
    [
        ("UC-001", "L0"),
        ("UC-030", "L0"),
        ("UC-031", "L1"),
        ("UC-170", "L2"),
        ("UC-171", "L3"),
        ("UC-310", "L4"),
        ("UC-311", "unknown"),
        ("bogus", "unknown"),
    ],
)
def test_layer_for_uses_numeric_ranges(use_case_id: str, layer: str) -> None:
    assert ids.layer_for(use_case_id) == layer


def test_generate_run_id_is_prefixed_ulid() -> None:
    run_id = ids.generate_run_id(timestamp_ms=0, randbytes=_zero_bytes)
    assert run_id == "review-" + "0" * ids.ULID_LENGTH

    generated = {ids.generate_run_id() for _ in range(1000)}
    assert len(generated) == 1000


def test_generate_ulid_rejects_out_of_range_timestamp() -> None:
    with pytest.raises(ValueError, match="timestamp_ms"):
        ids.generate_ulid(timestamp_ms=-1)

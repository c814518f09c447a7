"""Spread selected targets across repositories under a per-repo cap."""

from __future__ import annotations

from collections.abc import Sequence

from usecase_review.domain.models import UseCase


def distribute(
    selected: Sequence[UseCase],
    repo_names: Sequence[str],
    per_repo_cap: int,
) -> dict[str, list[UseCase]]:
    """Round-robin assignment from a rotating cursor.

    Stops as soon as no repository can accept another use case; the remainder
    is simply left unassigned for this run.
    """

    assignments: dict[str, list[UseCase]] = {name: [] for name in repo_names}
    names = list(assignments)
    if not names or per_repo_cap <= 0:
        return assignments

    cursor = 0
    for use_case in selected:
        placed = False
        for offset in range(len(names)):
            index = (cursor + offset) % len(names)
            bucket = assignments[names[index]]
            if len(bucket) >= per_repo_cap:
                continue
            bucket.append(use_case)
            cursor = (index + 1) % len(names)
            placed = True
            break
        if not placed:
            break
    return assignments


__all__ = ["distribute"]

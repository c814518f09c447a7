"""Parse the markdown use-case catalog into flat ``UseCase`` records.

The catalog is a pipe table with four columns: id, domain, need and
dependencies. Anything that does not look like a data row (headers,
separators, prose, rows with a malformed id) is skipped rather than
rejected, so a partially broken catalog still yields a usable review.
"""

from __future__ import annotations

import re
from pathlib import Path
from typing import Final

from usecase_review.domain.ids import normalize_use_case_id, use_case_number
from usecase_review.domain.models import UseCase

_ROW_RE: Final[re.Pattern[str]] = re.compile(
    r"^\s*\|\s*(UC-\d{3,})\s*\|([^|]*)\|([^|]*)\|([^|]*)\|\s*$",
    re.IGNORECASE,
)
_NONE_LITERAL: Final[str] = "none"


class CatalogLoadError(RuntimeError):
    """Raised when the catalog document cannot be read."""


def parse_dependency_cell(cell: str, *, owner_id: str | None = None) -> tuple[str, ...]:
    """Parse ``"UC-002, UC-003"`` or ``"none"`` into an ordered, deduplicated id tuple."""

    text = cell.strip()
    if not text or text.lower() == _NONE_LITERAL:
        return ()

    seen: set[str] = set()
    parsed: list[str] = []
    for token in text.split(","):
        normalized = normalize_use_case_id(token)
        if normalized is None or normalized == owner_id or normalized in seen:
            continue
        seen.add(normalized)
        parsed.append(normalized)
    return tuple(parsed)


def parse_catalog_row(line: str) -> UseCase | None:
    """Return a ``UseCase`` for a well-formed table row, otherwise ``None``."""

    match = _ROW_RE.match(line)
    if match is None:
        return None

    use_case_id = normalize_use_case_id(match.group(1))
    if use_case_id is None:
        return None
    domain = match.group(2).strip()
    need = match.group(3).strip()
    if not domain or not need:
        return None

    return UseCase(
        id=use_case_id,
        domain=domain,
        need=need,
        dependencies=parse_dependency_cell(match.group(4), owner_id=use_case_id),
    )


def parse_catalog(
    text: str,
    *,
    uc_start: int = 1,
    uc_end: int | None = None,
) -> tuple[UseCase, ...]:
    """Parse catalog text, keeping ids whose numeric suffix is in ``[uc_start, uc_end]``."""

    if uc_end is not None and uc_end < uc_start:
        raise ValueError(f"uc_end ({uc_end}) must be >= uc_start ({uc_start})")

    seen: set[str] = set()
    use_cases: list[UseCase] = []
    for line in text.splitlines():
        use_case = parse_catalog_row(line)
        if use_case is None or use_case.id in seen:
            continue
        seen.add(use_case.id)

        number = use_case_number(use_case.id)
        if number < uc_start:
            continue
        if uc_end is not None and number > uc_end:
            continue
        use_cases.append(use_case)
    return tuple(use_cases)


def load_catalog(
    path: str | Path,
    *,
    uc_start: int = 1,
    uc_end: int | None = None,
) -> tuple[UseCase, ...]:
    catalog_path = Path(path)
    try:
        text = catalog_path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        raise CatalogLoadError(f"unable to read use-case catalog {catalog_path}: {exc}") from exc
    return parse_catalog(text, uc_start=uc_start, uc_end=uc_end)


__all__ = [
    "CatalogLoadError",
    "load_catalog",
    "parse_catalog",
    "parse_catalog_row",
    "parse_dependency_cell",
]

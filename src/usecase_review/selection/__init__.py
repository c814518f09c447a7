"""Target selection and repository distribution."""

from usecase_review.selection.distributor import distribute
from usecase_review.selection.selector import (
    SelectionMode,
    select_use_cases,
    selection_probability,
)

__all__ = [
    "SelectionMode",
    "distribute",
    "select_use_cases",
    "selection_probability",
]

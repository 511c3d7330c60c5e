"""Typed errors raised by the segmentation pipeline.

Every error derives from :class:`ValueError` so callers that guard pipeline
stages with ``except ValueError`` keep working. Each stage either succeeds
completely or raises one of these errors; nothing is retried and no partial
result is returned across a failing stage.
"""

from __future__ import annotations

from typing import Sequence


class SegmentationError(ValueError):
    """Base class for all segmentation pipeline errors."""


class InvalidInputError(SegmentationError):
    """Raised for malformed records or invalid parameters.

    Examples: a missing or unparseable transaction date, a negative amount,
    a transaction without a customer reference, or ``k`` outside its
    admissible range.
    """


class EmptyInputError(SegmentationError):
    """Raised when a stage receives nothing to work on.

    The typical case is a ledger in which every customer made a single
    visit, leaving no customer eligible for clustering.
    """


class DegenerateColumnError(SegmentationError):
    """Raised when a feature column cannot be standardized.

    Attributes
    ----------
    columns:
        Names of the columns with zero variance.
    """

    def __init__(self, message: str, columns: Sequence[str] = ()) -> None:
        super().__init__(message)
        self.columns = tuple(columns)

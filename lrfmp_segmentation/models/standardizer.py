"""Column-wise standardization of the customer feature matrix.

Distances between customers are only meaningful once every feature lives on
the same scale: without rescaling, monetary values in the hundreds would
swamp frequency counts in the single digits. Each column is transformed to
``z = (x - mean) / std`` using the sample standard deviation (ddof=1).

The fitted parameters are returned as an immutable :class:`ScalerParams`
object. Callers thread it explicitly to whatever needs to map centroids back
to original units; there is no module-level scaler.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional, Sequence

import numpy as np
import pandas as pd

from lrfmp_segmentation.errors import (
    DegenerateColumnError,
    EmptyInputError,
    InvalidInputError,
)

logger = logging.getLogger(__name__)

# Standard deviations at or below this value are treated as zero variance
ZERO_VARIANCE_TOLERANCE = 1e-12

# Sample standard deviation, applied consistently to every column
DDOF = 1


@dataclass(frozen=True)
class ScalerParams:
    """Per-column mean and standard deviation of a fitted standardization.

    Attributes
    ----------
    columns:
        Feature column names, in matrix order
    means:
        Column means
    stds:
        Column sample standard deviations (all strictly positive)
    """

    columns: tuple[str, ...]
    means: tuple[float, ...]
    stds: tuple[float, ...]

    def __post_init__(self) -> None:
        """Validate scaler parameters."""
        if not (len(self.columns) == len(self.means) == len(self.stds)):
            raise ValueError(
                f"columns, means and stds must have equal length: "
                f"{len(self.columns)}, {len(self.means)}, {len(self.stds)}"
            )
        for column, std in zip(self.columns, self.stds):
            if not std > 0:
                raise ValueError(f"Standard deviation must be positive: {std} (column={column})")

    def transform(self, values: np.ndarray) -> np.ndarray:
        """Standardize rows given in original units."""
        arr = self._check_width(values)
        return (arr - np.asarray(self.means)) / np.asarray(self.stds)

    def inverse_transform(self, values: np.ndarray) -> np.ndarray:
        """Map standardized rows back to original units."""
        arr = self._check_width(values)
        return arr * np.asarray(self.stds) + np.asarray(self.means)

    def inverse_transform_frame(
        self, values: np.ndarray, index: Optional[Sequence] = None
    ) -> pd.DataFrame:
        """Like :meth:`inverse_transform` but returns a labelled DataFrame."""
        return pd.DataFrame(
            self.inverse_transform(values), columns=list(self.columns), index=index
        )

    def _check_width(self, values: np.ndarray) -> np.ndarray:
        arr = np.asarray(values, dtype=float)
        if arr.ndim == 1:
            arr = arr.reshape(1, -1)
        if arr.shape[1] != len(self.columns):
            raise InvalidInputError(
                f"Expected {len(self.columns)} columns {list(self.columns)}, "
                f"got {arr.shape[1]}"
            )
        return arr


@dataclass(frozen=True, eq=False)
class StandardizedFeatureMatrix:
    """Standardized features, row-aligned with ``customer_ids``.

    Attributes
    ----------
    customer_ids:
        Customer identifier of each row
    columns:
        Feature column names
    values:
        Read-only ``(n_customers, n_features)`` float array
    """

    customer_ids: tuple[str, ...]
    columns: tuple[str, ...]
    values: np.ndarray

    def __post_init__(self) -> None:
        """Validate shape and freeze the underlying array."""
        arr = np.array(self.values, dtype=float)
        if arr.ndim != 2:
            raise ValueError(f"values must be a 2-D array, got {arr.ndim} dimensions")
        if arr.shape != (len(self.customer_ids), len(self.columns)):
            raise ValueError(
                f"values shape {arr.shape} does not match "
                f"({len(self.customer_ids)} customers, {len(self.columns)} columns)"
            )
        arr.flags.writeable = False
        object.__setattr__(self, "values", arr)

    @property
    def n_samples(self) -> int:
        return self.values.shape[0]

    @property
    def n_features(self) -> int:
        return self.values.shape[1]

    def to_dataframe(self) -> pd.DataFrame:
        """Return the matrix as a DataFrame indexed by customer_id."""
        return pd.DataFrame(
            self.values,
            index=pd.Index(self.customer_ids, name="customer_id"),
            columns=list(self.columns),
        )


def standardize(
    frame: pd.DataFrame,
) -> tuple[StandardizedFeatureMatrix, ScalerParams]:
    """Standardize every column of ``frame`` to zero mean and unit variance.

    Parameters
    ----------
    frame:
        Numeric features indexed by customer_id, one row per eligible
        customer. Single-visit customers must already be excluded so that
        they do not influence the column statistics.

    Returns
    -------
    tuple[StandardizedFeatureMatrix, ScalerParams]
        The standardized matrix and the parameters needed to invert it

    Raises
    ------
    EmptyInputError
        If the frame has no rows or no columns
    InvalidInputError
        If a column is non-numeric, values are NaN/infinite, or customer
        ids are duplicated
    DegenerateColumnError
        If any column has zero variance (including the single-row case)

    Examples
    --------
    >>> frame = pd.DataFrame({"recency": [0.0, 10.0, 20.0]}, index=["A", "B", "C"])
    >>> matrix, scaler = standardize(frame)
    >>> matrix.values.ravel().tolist()
    [-1.0, 0.0, 1.0]
    >>> scaler.means, scaler.stds
    ((10.0,), (10.0,))
    """
    if frame.empty or len(frame.columns) == 0:
        raise EmptyInputError("Cannot standardize an empty feature matrix")

    non_numeric = [
        str(col) for col in frame.columns if not pd.api.types.is_numeric_dtype(frame[col])
    ]
    if non_numeric:
        raise InvalidInputError(f"Feature columns must be numeric: {non_numeric}")

    if frame.index.duplicated().any():
        duplicates = frame.index[frame.index.duplicated()].tolist()
        raise InvalidInputError(
            f"Duplicate customer_ids in feature matrix: {duplicates[:5]}"
            f"{'...' if len(duplicates) > 5 else ''}"
        )

    values = frame.to_numpy(dtype=float)
    non_finite = ~np.isfinite(values)
    if non_finite.any():
        bad_columns = [str(frame.columns[j]) for j in np.where(non_finite.any(axis=0))[0]]
        raise InvalidInputError(f"NaN or infinite values in columns: {bad_columns}")

    columns = tuple(str(col) for col in frame.columns)
    if len(frame) < 2:
        raise DegenerateColumnError(
            "At least two customers are needed to estimate column variance",
            columns=columns,
        )

    means = values.mean(axis=0)
    stds = values.std(axis=0, ddof=DDOF)
    degenerate = [
        column for column, std in zip(columns, stds) if std <= ZERO_VARIANCE_TOLERANCE
    ]
    if degenerate:
        raise DegenerateColumnError(
            f"Zero-variance feature columns cannot be standardized: {degenerate}",
            columns=degenerate,
        )

    scaler = ScalerParams(
        columns=columns,
        means=tuple(float(m) for m in means),
        stds=tuple(float(s) for s in stds),
    )
    matrix = StandardizedFeatureMatrix(
        customer_ids=tuple(str(cid) for cid in frame.index),
        columns=columns,
        values=(values - means) / stds,
    )
    logger.info(
        f"Standardized {matrix.n_samples} customers x {matrix.n_features} features"
    )
    return matrix, scaler

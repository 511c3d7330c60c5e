"""Population and per-cluster summaries of a segmentation run.

Answers the questions an analyst asks before naming segments:
- How many customers were clustered, and how many were set aside as
  single-visit customers?
- How large is each cluster?
- What does a typical member of each cluster look like in original units?
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from typing import Sequence

import pandas as pd

from lrfmp_segmentation.errors import InvalidInputError
from lrfmp_segmentation.foundation.lrfmp import CustomerFeatureVector
from lrfmp_segmentation.models.partitioner import PartitionResult, denormalize_centroids
from lrfmp_segmentation.models.standardizer import ScalerParams

# Standard percentage precision: 2 decimal places (e.g., 45.67%)
PERCENTAGE_PRECISION = Decimal("0.01")


def _percentage(part: int, whole: int) -> Decimal:
    if whole == 0:
        return Decimal("0.00")
    return (Decimal(part) / Decimal(whole) * 100).quantize(
        PERCENTAGE_PRECISION, rounding=ROUND_HALF_UP
    )


@dataclass(frozen=True)
class PopulationSummary:
    """Headline counts of the customer population.

    Attributes
    ----------
    total_customers:
        Customers with at least one approved transaction
    single_visit_customers:
        Customers with exactly one visit (excluded from clustering)
    eligible_customers:
        Customers with two or more visits (clustered)
    single_visit_pct:
        Percentage of customers with a single visit
    total_revenue:
        Total spend across all customers
    """

    total_customers: int
    single_visit_customers: int
    eligible_customers: int
    single_visit_pct: Decimal
    total_revenue: Decimal

    def __post_init__(self) -> None:
        """Validate population counts."""
        if self.total_customers < 0:
            raise ValueError(
                f"Total customers cannot be negative: {self.total_customers}"
            )
        if self.single_visit_customers + self.eligible_customers != self.total_customers:
            raise ValueError(
                f"Single-visit ({self.single_visit_customers}) and eligible "
                f"({self.eligible_customers}) customers must add up to "
                f"total customers ({self.total_customers})"
            )
        if not 0 <= self.single_visit_pct <= 100:
            raise ValueError(
                f"Single-visit percentage must be 0-100: {self.single_visit_pct}"
            )
        if self.total_revenue < 0:
            raise ValueError(f"Total revenue cannot be negative: {self.total_revenue}")


def summarize_population(
    features: Sequence[CustomerFeatureVector],
) -> PopulationSummary:
    """Count single-visit and eligible customers.

    Examples
    --------
    >>> summary = summarize_population(build_lrfmp_features(events))
    >>> summary.single_visit_pct
    Decimal('50.00')
    """
    total = len(features)
    single = sum(1 for f in features if not f.is_eligible)
    revenue = sum((f.total_spend for f in features), Decimal("0"))
    return PopulationSummary(
        total_customers=total,
        single_visit_customers=single,
        eligible_customers=total - single,
        single_visit_pct=_percentage(single, total),
        total_revenue=revenue,
    )


@dataclass(frozen=True)
class ClusterProfile:
    """Description of one cluster in original feature units.

    Attributes
    ----------
    label:
        Cluster label
    size:
        Number of customers in the cluster
    share_pct:
        Percentage of clustered customers in this cluster
    centroid:
        Cluster centroid mapped back to original units (the member mean)
    median:
        Per-feature median of the members, less sensitive to outliers
    """

    label: int
    size: int
    share_pct: Decimal
    centroid: dict[str, float]
    median: dict[str, float]


def profile_clusters(
    frame: pd.DataFrame, result: PartitionResult, scaler: ScalerParams
) -> list[ClusterProfile]:
    """Profile every cluster of ``result``.

    Parameters
    ----------
    frame:
        The unstandardized feature frame (indexed by customer_id) that was
        passed to :func:`~lrfmp_segmentation.models.standardizer.standardize`
    result:
        Partition of the standardized matrix
    scaler:
        Parameters returned by the same standardization

    Returns
    -------
    list[ClusterProfile]
        One profile per label, ordered by label

    Raises
    ------
    InvalidInputError
        If ``frame`` lacks customers or columns present in ``result``
    """
    missing = set(result.customer_ids) - set(frame.index.astype(str))
    if missing:
        raise InvalidInputError(
            f"Feature frame is missing {len(missing)} partitioned customers: "
            f"{sorted(missing)[:5]}"
        )
    missing_cols = set(result.columns) - set(frame.columns.astype(str))
    if missing_cols:
        raise InvalidInputError(f"Feature frame missing columns: {missing_cols}")

    centroids = denormalize_centroids(result, scaler)
    members = frame.copy()
    members.index = members.index.astype(str)
    members = members.loc[list(result.customer_ids), list(result.columns)]
    members["cluster"] = list(result.labels)
    medians = members.groupby("cluster").median()

    sizes = result.cluster_sizes()
    total = len(result.customer_ids)
    profiles = []
    for label in sorted(sizes):
        profiles.append(
            ClusterProfile(
                label=label,
                size=sizes[label],
                share_pct=_percentage(sizes[label], total),
                centroid={col: float(v) for col, v in centroids.loc[label].items()},
                median={col: float(v) for col, v in medians.loc[label].items()},
            )
        )
    return profiles

"""End-to-end segmentation run from transaction events to clusters.

Stages, each of which either succeeds completely or raises a typed error:

1. Build LRFMP features for every customer
2. Set single-visit customers aside
3. Optionally widen the matrix with per-category spend
4. Standardize
5. Sweep candidate cluster counts (WSS and silhouette)
6. If the caller supplied ``chosen_k``: partition, denormalize centroids and
   profile the clusters

The final cluster count is never inferred from the sweep. Without
``chosen_k`` the run stops after step 5 and returns both curves.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from datetime import date
from typing import Iterable, Optional

import pandas as pd

from lrfmp_segmentation.analyses.profile import (
    ClusterProfile,
    PopulationSummary,
    profile_clusters,
    summarize_population,
)
from lrfmp_segmentation.config import SegmentationConfig
from lrfmp_segmentation.errors import EmptyInputError
from lrfmp_segmentation.foundation.lrfmp import (
    CustomerFeatureVector,
    TransactionEvent,
    build_lrfmp_features,
    select_eligible,
)
from lrfmp_segmentation.models.partitioner import (
    PartitionResult,
    denormalize_centroids,
    partition,
)
from lrfmp_segmentation.models.selector import ClusterCountSweep, sweep_cluster_counts
from lrfmp_segmentation.models.standardizer import (
    ScalerParams,
    StandardizedFeatureMatrix,
    standardize,
)
from lrfmp_segmentation.pandas.features import append_category_spend, feature_frame

logger = logging.getLogger(__name__)


@dataclass(frozen=True, eq=False)
class SegmentationResult:
    """Everything a segmentation run produces.

    Attributes
    ----------
    features:
        LRFMP vectors of every customer, including single-visit ones
    population:
        Counts of single-visit and eligible customers
    feature_table:
        Unstandardized clustering input indexed by customer_id
    matrix:
        Standardized clustering input
    scaler:
        Parameters needed to map centroids back to original units
    sweep:
        WSS and silhouette for every evaluated k
    partition:
        Final partition, None when no ``chosen_k`` was configured
    centroids:
        Denormalized centroids indexed by cluster label, or None
    profiles:
        Per-cluster profiles, empty when no partition was made
    """

    features: list[CustomerFeatureVector]
    population: PopulationSummary
    feature_table: pd.DataFrame
    matrix: StandardizedFeatureMatrix
    scaler: ScalerParams
    sweep: ClusterCountSweep
    partition: Optional[PartitionResult] = None
    centroids: Optional[pd.DataFrame] = None
    profiles: tuple[ClusterProfile, ...] = ()


def run_segmentation(
    events: Iterable[TransactionEvent],
    config: SegmentationConfig = SegmentationConfig(),
    observation_end: Optional[date] = None,
    cancel_event: Optional[threading.Event] = None,
) -> SegmentationResult:
    """Run the full LRFMP segmentation pipeline.

    Parameters
    ----------
    events:
        Completed transaction events
    config:
        Run configuration (sweep range, seed, chosen k, ...)
    observation_end:
        Reference date for recency. Defaults to the last event date.
    cancel_event:
        Optional event that cancels the cluster-count sweep between
        candidates

    Returns
    -------
    SegmentationResult

    Raises
    ------
    EmptyInputError
        If there are no events or no customer with two or more visits
    InvalidInputError
        If events or parameters are invalid
    DegenerateColumnError
        If a feature column is constant across eligible customers
    """
    events = list(events)
    if not events:
        raise EmptyInputError("No transaction events to segment")

    features = build_lrfmp_features(
        events,
        observation_end=observation_end,
        parallel=config.parallel,
        n_workers=config.n_workers,
    )
    population = summarize_population(features)
    logger.info(
        f"{population.total_customers} customers: {population.eligible_customers} "
        f"eligible, {population.single_visit_customers} single-visit "
        f"({population.single_visit_pct}%)"
    )

    eligible = select_eligible(features)
    table = feature_frame(eligible)
    if config.include_category_spend:
        table = append_category_spend(table, events)
        logger.info(f"Feature matrix widened to {len(table.columns)} columns")

    matrix, scaler = standardize(table)

    sweep = sweep_cluster_counts(
        matrix,
        k_min=config.k_min,
        k_max=config.k_max,
        random_seed=config.random_seed,
        max_iterations=config.max_iterations,
        parallel=config.parallel,
        n_workers=config.n_workers,
        cancel_event=cancel_event,
    )
    if sweep.candidates_disagree:
        logger.info(
            f"Silhouette favours k={sweep.best_silhouette_k} while the WSS elbow "
            f"is at k={sweep.elbow_k}"
        )

    if config.chosen_k is None:
        logger.info("No chosen_k configured; returning the sweep without a partition")
        return SegmentationResult(
            features=features,
            population=population,
            feature_table=table,
            matrix=matrix,
            scaler=scaler,
            sweep=sweep,
        )

    result = partition(
        matrix,
        config.chosen_k,
        random_seed=config.random_seed,
        max_iterations=config.max_iterations,
    )
    return SegmentationResult(
        features=features,
        population=population,
        feature_table=table,
        matrix=matrix,
        scaler=scaler,
        sweep=sweep,
        partition=result,
        centroids=denormalize_centroids(result, scaler),
        profiles=tuple(profile_clusters(table, result, scaler)),
    )

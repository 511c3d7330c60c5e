"""Centroid-based partitioning of standardized customers (Lloyd's k-means).

The algorithm alternates two steps until no customer changes cluster or the
iteration cap is reached:

1. **Assign**: every point goes to the centroid at minimum Euclidean distance,
   ties broken by the lowest label.
2. **Update**: every centroid moves to the mean of its members.

Initialization uses k-means++ seeding driven by ``numpy.random.default_rng``
so a given seed and input always produce the same partition. A cluster left
without members is handed the point farthest from its own centroid (taken
from a cluster that can spare one), so a run never loses a label.

Reaching the iteration cap is a normal outcome, flagged through
:class:`PartitionStatus` rather than raised.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum

import numpy as np
import pandas as pd
from scipy.spatial.distance import cdist

from lrfmp_segmentation.errors import EmptyInputError, InvalidInputError
from lrfmp_segmentation.models.standardizer import (
    ScalerParams,
    StandardizedFeatureMatrix,
)

logger = logging.getLogger(__name__)


class PartitionStatus(str, Enum):
    """How a k-means run terminated."""

    CONVERGED = "converged"
    ITERATION_CAP_REACHED = "iteration_cap_reached"


@dataclass(frozen=True, eq=False)
class KMeansFit:
    """Array-level result of :func:`fit_kmeans`.

    Attributes
    ----------
    labels:
        0-based cluster index of every row
    centroids:
        ``(k, n_features)`` array of cluster means
    wss:
        Within-cluster sum of squared Euclidean distances
    n_iterations:
        Number of assignment steps performed
    status:
        Whether the run converged or stopped at the iteration cap
    """

    labels: np.ndarray
    centroids: np.ndarray
    wss: float
    n_iterations: int
    status: PartitionStatus


@dataclass(frozen=True)
class ClusterCentroid:
    """Centroid of one cluster in standardized feature space."""

    label: int
    coordinates: tuple[float, ...]


@dataclass(frozen=True)
class PartitionResult:
    """Customer partition at a fixed cluster count.

    Labels are the integers ``1..k``. Their values carry no ranking and are
    only comparable within a single run.

    Attributes
    ----------
    k:
        Number of clusters
    customer_ids:
        Customers in matrix row order
    labels:
        Cluster label of each customer, row-aligned with ``customer_ids``
    centroids:
        One centroid per label, in standardized space
    columns:
        Feature column names of the centroid coordinates
    wss:
        Within-cluster sum of squares in standardized space
    n_iterations:
        Number of assignment steps performed
    status:
        Termination status of the run
    """

    k: int
    customer_ids: tuple[str, ...]
    labels: tuple[int, ...]
    centroids: tuple[ClusterCentroid, ...]
    columns: tuple[str, ...]
    wss: float
    n_iterations: int
    status: PartitionStatus

    @property
    def assignment(self) -> dict[str, int]:
        """Mapping of customer_id to cluster label."""
        return dict(zip(self.customer_ids, self.labels))

    @property
    def converged(self) -> bool:
        return self.status is PartitionStatus.CONVERGED

    def cluster_sizes(self) -> dict[int, int]:
        """Number of customers per label (every label present)."""
        sizes = {centroid.label: 0 for centroid in self.centroids}
        for label in self.labels:
            sizes[label] += 1
        return sizes

    def centroid_matrix(self) -> np.ndarray:
        """Centroids as a ``(k, n_features)`` array ordered by label."""
        return np.array([c.coordinates for c in self.centroids], dtype=float)


def _validate_parameters(n_samples: int, k: int, max_iterations: int) -> None:
    if n_samples == 0:
        raise EmptyInputError("Cannot partition an empty feature matrix")
    if k < 1:
        raise InvalidInputError(f"Number of clusters must be positive: {k}")
    if k > n_samples:
        raise InvalidInputError(
            f"Number of clusters ({k}) cannot exceed number of customers ({n_samples})"
        )
    if max_iterations < 1:
        raise InvalidInputError(f"max_iterations must be positive: {max_iterations}")


def _init_centroids(values: np.ndarray, k: int, rng: np.random.Generator) -> np.ndarray:
    """k-means++ seeding.

    Each further seed is drawn with probability proportional to its squared
    distance from the nearest seed chosen so far. When every remaining point
    coincides with a seed, an unchosen point is drawn uniformly instead.
    """
    n_samples = values.shape[0]
    chosen = [int(rng.integers(n_samples))]
    closest = cdist(values, values[chosen], "sqeuclidean").ravel()

    for _ in range(1, k):
        total = closest.sum()
        if total > 0:
            idx = int(rng.choice(n_samples, p=closest / total))
        else:
            remaining = np.setdiff1d(np.arange(n_samples), chosen)
            idx = int(rng.choice(remaining))
        chosen.append(idx)
        closest = np.minimum(
            closest, cdist(values, values[idx : idx + 1], "sqeuclidean").ravel()
        )

    return values[chosen].copy()


def _repair_empty_clusters(
    labels: np.ndarray, distances: np.ndarray, k: int
) -> np.ndarray:
    """Give every empty cluster one member.

    Empty clusters are processed in ascending label order. Each takes the
    point farthest from its currently assigned centroid, among points whose
    cluster has more than one member; ties go to the lowest row index.
    """
    counts = np.bincount(labels, minlength=k)
    if counts.min() > 0:
        return labels

    labels = labels.copy()
    own_distance = distances[np.arange(labels.shape[0]), labels].copy()
    for empty in np.flatnonzero(counts == 0):
        donors = counts[labels] > 1
        idx = int(np.argmax(np.where(donors, own_distance, -np.inf)))
        logger.debug(f"Cluster {empty} is empty; reseeding from row {idx}")
        counts[labels[idx]] -= 1
        labels[idx] = empty
        counts[empty] += 1
        own_distance[idx] = 0.0
    return labels


def _assign_points(values: np.ndarray, centroids: np.ndarray) -> np.ndarray:
    """Label each point with its nearest centroid, repairing empty clusters."""
    distances = cdist(values, centroids, "sqeuclidean")
    # argmin returns the first minimum, i.e. the lowest label on ties
    labels = distances.argmin(axis=1)
    return _repair_empty_clusters(labels, distances, centroids.shape[0])


def _update_centroids(values: np.ndarray, labels: np.ndarray, k: int) -> np.ndarray:
    return np.vstack([values[labels == j].mean(axis=0) for j in range(k)])


def fit_kmeans(
    values: np.ndarray,
    k: int,
    random_seed: int = 42,
    max_iterations: int = 300,
) -> KMeansFit:
    """Run Lloyd's k-means on a raw ``(n_samples, n_features)`` array.

    Parameters
    ----------
    values:
        Points to partition, typically standardized features
    k:
        Number of clusters (1 <= k <= n_samples)
    random_seed:
        Seed for the k-means++ initialization
    max_iterations:
        Maximum number of assign/update rounds

    Returns
    -------
    KMeansFit
        Labels, centroids, WSS, iteration count and termination status

    Raises
    ------
    EmptyInputError
        If ``values`` has no rows
    InvalidInputError
        If ``values`` is not a finite 2-D array or k/max_iterations are out
        of range
    """
    values = np.asarray(values, dtype=float)
    if values.ndim != 2:
        raise InvalidInputError(f"values must be a 2-D array, got {values.ndim} dimensions")
    _validate_parameters(values.shape[0], k, max_iterations)
    if not np.isfinite(values).all():
        raise InvalidInputError("values contain NaN or infinite entries")

    rng = np.random.default_rng(random_seed)
    centroids = _init_centroids(values, k, rng)

    labels = _assign_points(values, centroids)
    centroids = _update_centroids(values, labels, k)
    status = PartitionStatus.ITERATION_CAP_REACHED
    n_iterations = 1
    for iteration in range(2, max_iterations + 1):
        n_iterations = iteration
        new_labels = _assign_points(values, centroids)

        if np.array_equal(new_labels, labels):
            status = PartitionStatus.CONVERGED
            break

        labels = new_labels
        centroids = _update_centroids(values, labels, k)

    wss = float(((values - centroids[labels]) ** 2).sum())

    if status is PartitionStatus.ITERATION_CAP_REACHED:
        logger.warning(
            f"k-means (k={k}) stopped at the iteration cap ({max_iterations}); "
            f"wss={wss:.4f}"
        )
    else:
        logger.debug(f"k-means (k={k}) converged after {n_iterations} iterations")

    return KMeansFit(
        labels=labels,
        centroids=centroids,
        wss=wss,
        n_iterations=n_iterations,
        status=status,
    )


def partition(
    matrix: StandardizedFeatureMatrix,
    k: int,
    random_seed: int = 42,
    max_iterations: int = 300,
) -> PartitionResult:
    """Partition standardized customers into ``k`` clusters.

    Parameters
    ----------
    matrix:
        Standardized features of the eligible customers
    k:
        Number of clusters
    random_seed:
        Seed for reproducible initialization
    max_iterations:
        Iteration cap; hitting it yields a usable result with
        ``status == PartitionStatus.ITERATION_CAP_REACHED``

    Returns
    -------
    PartitionResult
        Customer assignment (labels ``1..k``), centroids and WSS

    Examples
    --------
    >>> import numpy as np
    >>> matrix = StandardizedFeatureMatrix(
    ...     customer_ids=("A", "B", "C", "D"),
    ...     columns=("x",),
    ...     values=np.array([[-1.0], [-1.1], [1.0], [1.1]]),
    ... )
    >>> result = partition(matrix, k=2, random_seed=0)
    >>> result.assignment["A"] == result.assignment["B"]
    True
    >>> result.assignment["A"] != result.assignment["C"]
    True
    """
    fit = fit_kmeans(
        matrix.values, k, random_seed=random_seed, max_iterations=max_iterations
    )
    centroids = tuple(
        ClusterCentroid(label=j + 1, coordinates=tuple(float(v) for v in row))
        for j, row in enumerate(fit.centroids)
    )
    result = PartitionResult(
        k=k,
        customer_ids=matrix.customer_ids,
        labels=tuple(int(label) + 1 for label in fit.labels),
        centroids=centroids,
        columns=matrix.columns,
        wss=fit.wss,
        n_iterations=fit.n_iterations,
        status=fit.status,
    )
    logger.info(
        f"Partitioned {matrix.n_samples} customers into {k} clusters "
        f"(status={fit.status.value}, iterations={fit.n_iterations}, wss={fit.wss:.4f})"
    )
    return result


def denormalize_centroids(
    result: PartitionResult, scaler: ScalerParams
) -> pd.DataFrame:
    """Express the centroids of ``result`` in original feature units.

    Raises
    ------
    InvalidInputError
        If the scaler was fitted on different columns than the partition
    """
    if tuple(result.columns) != tuple(scaler.columns):
        raise InvalidInputError(
            f"Scaler columns {list(scaler.columns)} do not match partition "
            f"columns {list(result.columns)}"
        )
    frame = scaler.inverse_transform_frame(
        result.centroid_matrix(),
        index=pd.Index([c.label for c in result.centroids], name="cluster"),
    )
    return frame

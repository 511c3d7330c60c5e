"""Cluster-count sweep: WSS and silhouette over a range of k.

Two model-selection signals are computed for every candidate k:

- **WSS** (within-cluster sum of squares): decreases as k grows, so the
  useful reading is where the curve bends (the "elbow").
- **Silhouette**: mean of ``(b - a) / max(a, b)`` over all customers, where
  ``a`` is the mean distance to the own cluster and ``b`` the mean distance
  to the nearest other cluster. Higher is better.

The two signals frequently point at different k. The sweep reports both
curves together with the silhouette argmax and the WSS elbow as candidates,
and leaves the final choice to the caller.

Each candidate k is an independent k-means run, so the sweep fans them out
to a process pool in ascending k and collects the results in the same order.
"""

from __future__ import annotations

import logging
import multiprocessing
import os
import threading
import time
from dataclasses import dataclass
from typing import Optional

import numpy as np
from sklearn.metrics import silhouette_score

from lrfmp_segmentation.errors import InvalidInputError
from lrfmp_segmentation.models.partitioner import PartitionStatus, fit_kmeans
from lrfmp_segmentation.models.standardizer import StandardizedFeatureMatrix

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ClusterCountScore:
    """Model-selection signals for a single cluster count.

    Attributes
    ----------
    k:
        Number of clusters
    wss:
        Within-cluster sum of squares in standardized space
    silhouette:
        Mean silhouette coefficient (-1 to 1)
    status:
        Termination status of the underlying k-means run
    n_iterations:
        Assignment steps performed by the run
    """

    k: int
    wss: float
    silhouette: float
    status: PartitionStatus
    n_iterations: int

    def __post_init__(self) -> None:
        """Validate score ranges."""
        if self.wss < 0:
            raise ValueError(f"WSS cannot be negative: {self.wss} (k={self.k})")
        if not -1.0 <= self.silhouette <= 1.0:
            raise ValueError(
                f"Silhouette must be between -1 and 1: {self.silhouette} (k={self.k})"
            )


@dataclass(frozen=True)
class ClusterCountSweep:
    """Result of a cluster-count sweep, ordered by k.

    Attributes
    ----------
    scores:
        One score per evaluated k, sorted ascending by k
    k_min:
        Requested lower bound of the range
    k_max:
        Effective upper bound of the range (after clipping to n - 1)
    cancelled:
        True when the sweep was cancelled before every k was evaluated
    """

    scores: tuple[ClusterCountScore, ...]
    k_min: int
    k_max: int
    cancelled: bool = False

    @property
    def ks(self) -> list[int]:
        return [score.k for score in self.scores]

    def wss_curve(self) -> dict[int, float]:
        return {score.k: score.wss for score in self.scores}

    def silhouette_curve(self) -> dict[int, float]:
        return {score.k: score.silhouette for score in self.scores}

    @property
    def best_silhouette_k(self) -> Optional[int]:
        """k with the highest mean silhouette (smallest k on ties)."""
        if not self.scores:
            return None
        best = max(self.scores, key=lambda s: (s.silhouette, -s.k))
        return best.k

    @property
    def elbow_k(self) -> Optional[int]:
        """k where the WSS curve bends most (largest second difference).

        Only defined for at least three consecutive k values; returns None
        otherwise.
        """
        ks = self.ks
        if len(ks) < 3 or ks != list(range(ks[0], ks[-1] + 1)):
            return None
        wss = np.array([score.wss for score in self.scores])
        second_diff = wss[:-2] - 2 * wss[1:-1] + wss[2:]
        return ks[int(np.argmax(second_diff)) + 1]

    @property
    def candidates_disagree(self) -> bool:
        """Whether the silhouette and elbow candidates point at different k."""
        elbow = self.elbow_k
        return elbow is not None and elbow != self.best_silhouette_k


def _evaluate_k(
    values: np.ndarray, k: int, random_seed: int, max_iterations: int
) -> ClusterCountScore:
    """Fit k-means at ``k`` and score it.

    This function is designed to be called by multiprocessing workers.
    """
    fit = fit_kmeans(values, k, random_seed=random_seed, max_iterations=max_iterations)
    silhouette = float(silhouette_score(values, fit.labels, metric="euclidean"))
    return ClusterCountScore(
        k=k,
        wss=fit.wss,
        silhouette=silhouette,
        status=fit.status,
        n_iterations=fit.n_iterations,
    )


def sweep_cluster_counts(
    matrix: StandardizedFeatureMatrix,
    k_min: int = 2,
    k_max: int = 20,
    random_seed: int = 42,
    max_iterations: int = 300,
    parallel: bool = True,
    n_workers: Optional[int] = None,
    cancel_event: Optional[threading.Event] = None,
) -> ClusterCountSweep:
    """Evaluate WSS and silhouette for every k in ``[k_min, k_max]``.

    **Range Clipping**: The silhouette coefficient is only defined for
    ``k <= n_customers - 1``. A larger ``k_max`` is clipped to that bound
    with a warning.

    **Parallel Processing**: When ``parallel`` is True and more than one k is
    evaluated, runs are distributed over a multiprocessing pool with
    ``n_workers`` processes (default: CPU count). Candidates are submitted
    and collected in ascending k.

    **Cancellation**: ``cancel_event`` is checked before the pool is opened,
    before each submission and after each collected result. Scores already
    computed, always the smallest k, are returned with ``cancelled=True``.

    Parameters
    ----------
    matrix:
        Standardized features of the eligible customers
    k_min:
        Smallest cluster count (>= 2)
    k_max:
        Largest cluster count
    random_seed:
        Seed shared by every k-means run
    max_iterations:
        Iteration cap for every k-means run
    parallel:
        Distribute candidate k over worker processes (default: True)
    n_workers:
        Number of worker processes. If None, uses CPU count.
    cancel_event:
        Optional event used to cancel the sweep cooperatively

    Returns
    -------
    ClusterCountSweep
        Scores sorted by k with the silhouette and elbow candidates

    Raises
    ------
    InvalidInputError
        If ``k_min < 2``, ``k_min > k_max``, or the matrix has too few
        customers for ``k_min``
    """
    if k_min < 2:
        raise InvalidInputError(f"k_min must be >= 2: {k_min}")
    if k_min > k_max:
        raise InvalidInputError(f"k_min ({k_min}) cannot exceed k_max ({k_max})")

    limit = matrix.n_samples - 1
    if k_min > limit:
        raise InvalidInputError(
            f"k_min ({k_min}) requires at least {k_min + 1} customers, "
            f"got {matrix.n_samples}"
        )
    if k_max > limit:
        logger.warning(
            f"k_max ({k_max}) exceeds n_customers - 1 ({limit}); clipping to {limit}"
        )
        k_max = limit

    candidates = list(range(k_min, k_max + 1))
    values = np.asarray(matrix.values)
    started = time.perf_counter()
    logger.info(
        f"Sweeping k={k_min}..{k_max} over {matrix.n_samples} customers "
        f"(seed={random_seed}, max_iterations={max_iterations})"
    )

    scores: dict[int, ClusterCountScore] = {}
    cancelled = False

    if parallel and len(candidates) > 1:
        if n_workers is None:
            workers = os.cpu_count() or 1
        else:
            workers = max(1, n_workers)
        workers = min(workers, len(candidates))
        if cancel_event is not None and cancel_event.is_set():
            cancelled = True
        else:
            with multiprocessing.Pool(processes=workers) as pool:
                # Submitted in ascending k so a cancelled sweep keeps the smallest k
                pending = []
                for k in candidates:
                    if cancel_event is not None and cancel_event.is_set():
                        cancelled = True
                        break
                    pending.append(
                        pool.apply_async(
                            _evaluate_k, (values, k, random_seed, max_iterations)
                        )
                    )
                for async_result in pending:
                    score = async_result.get()
                    scores[score.k] = score
                    if cancel_event is not None and cancel_event.is_set():
                        cancelled = len(scores) < len(candidates)
                        break
    else:
        for k in candidates:
            if cancel_event is not None and cancel_event.is_set():
                cancelled = True
                break
            scores[k] = _evaluate_k(values, k, random_seed, max_iterations)

    if cancelled:
        logger.warning(
            f"Cluster-count sweep cancelled after {len(scores)} of "
            f"{len(candidates)} candidates"
        )

    sweep = ClusterCountSweep(
        scores=tuple(scores[k] for k in sorted(scores)),
        k_min=k_min,
        k_max=k_max,
        cancelled=cancelled,
    )
    logger.info(
        f"Sweep finished in {time.perf_counter() - started:.2f}s: "
        f"best silhouette k={sweep.best_silhouette_k}, elbow k={sweep.elbow_k}"
    )
    return sweep

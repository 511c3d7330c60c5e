"""Run configuration for the LRFMP segmentation pipeline."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from lrfmp_segmentation.errors import InvalidInputError

# Default sweep range for the cluster-count selector
DEFAULT_K_MIN = 2
DEFAULT_K_MAX = 20

# Fixed seed so that repeated runs on the same ledger are reproducible
DEFAULT_RANDOM_SEED = 42

# Finite bound on Lloyd iterations; hitting it is a normal termination
DEFAULT_MAX_ITERATIONS = 300


@dataclass(frozen=True)
class SegmentationConfig:
    """Configuration for a segmentation run.

    Attributes
    ----------
    k_min:
        Smallest cluster count evaluated by the sweep (must be >= 2).
    k_max:
        Largest cluster count evaluated by the sweep.
    chosen_k:
        Final cluster count supplied by the caller. When None, the pipeline
        stops after the sweep so an analyst can inspect both the WSS and
        silhouette curves before choosing.
    random_seed:
        Seed for centroid initialization.
    max_iterations:
        Iteration cap for each k-means run.
    approved_status:
        Ledger ``order_status`` value that marks a completed transaction.
    date_format:
        ``strptime`` format of the ledger ``transaction_date`` column.
    other_category:
        Category assigned to rows with an empty ``product_line``.
    include_category_spend:
        Widen the feature matrix with per-category spend columns before
        standardization.
    parallel:
        Evaluate candidate cluster counts in worker processes.
    n_workers:
        Number of worker processes. If None, uses CPU count.
    """

    k_min: int = DEFAULT_K_MIN
    k_max: int = DEFAULT_K_MAX
    chosen_k: Optional[int] = None
    random_seed: int = DEFAULT_RANDOM_SEED
    max_iterations: int = DEFAULT_MAX_ITERATIONS
    approved_status: str = "Approved"
    date_format: str = "%d/%m/%Y"
    other_category: str = "Other"
    include_category_spend: bool = False
    parallel: bool = True
    n_workers: Optional[int] = None

    def __post_init__(self) -> None:
        """Validate configuration values."""
        if self.k_min < 2:
            raise InvalidInputError(f"k_min must be >= 2: {self.k_min}")
        if self.k_max < self.k_min:
            raise InvalidInputError(
                f"k_max ({self.k_max}) must be >= k_min ({self.k_min})"
            )
        if self.chosen_k is not None and self.chosen_k < 1:
            raise InvalidInputError(f"chosen_k must be positive: {self.chosen_k}")
        if self.max_iterations < 1:
            raise InvalidInputError(
                f"max_iterations must be positive: {self.max_iterations}"
            )
        if not self.approved_status:
            raise InvalidInputError("approved_status must be a non-empty string")
        if not self.other_category:
            raise InvalidInputError("other_category must be a non-empty string")
        if self.n_workers is not None and self.n_workers < 1:
            raise InvalidInputError(f"n_workers must be positive: {self.n_workers}")

"""LRFMP customer segmentation.

Derives Length, Recency, Frequency, Monetary and Periodicity features from a
transaction ledger and partitions repeat customers with k-means, exposing
both WSS and silhouette curves so an analyst can choose the cluster count.
"""

from .config import SegmentationConfig
from .errors import (
    DegenerateColumnError,
    EmptyInputError,
    InvalidInputError,
    SegmentationError,
)
from .pipeline import SegmentationResult, run_segmentation

__all__ = [
    "DegenerateColumnError",
    "EmptyInputError",
    "InvalidInputError",
    "SegmentationConfig",
    "SegmentationError",
    "SegmentationResult",
    "run_segmentation",
]

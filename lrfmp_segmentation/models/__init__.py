"""Standardization, cluster-count selection and k-means partitioning."""

from .partitioner import (
    ClusterCentroid,
    KMeansFit,
    PartitionResult,
    PartitionStatus,
    denormalize_centroids,
    fit_kmeans,
    partition,
)
from .selector import ClusterCountScore, ClusterCountSweep, sweep_cluster_counts
from .standardizer import ScalerParams, StandardizedFeatureMatrix, standardize

__all__ = [
    "ClusterCentroid",
    "ClusterCountScore",
    "ClusterCountSweep",
    "KMeansFit",
    "PartitionResult",
    "PartitionStatus",
    "ScalerParams",
    "StandardizedFeatureMatrix",
    "denormalize_centroids",
    "fit_kmeans",
    "partition",
    "standardize",
    "sweep_cluster_counts",
]

"""Summaries built on top of a segmentation run."""

from .profile import (
    ClusterProfile,
    PopulationSummary,
    profile_clusters,
    summarize_population,
)

__all__ = [
    "ClusterProfile",
    "PopulationSummary",
    "profile_clusters",
    "summarize_population",
]

"""Pandas DataFrame adapters for segmentation components."""

from .features import (
    append_category_spend,
    assignment_to_dataframe,
    dataframe_to_events,
    feature_frame,
    features_to_dataframe,
    profiles_to_dataframe,
    sweep_to_dataframe,
)
from .ledger import parse_ledger_csv, read_ledger_csv

__all__ = [
    # Feature adapters
    "append_category_spend",
    "dataframe_to_events",
    "feature_frame",
    "features_to_dataframe",
    # Result adapters
    "assignment_to_dataframe",
    "profiles_to_dataframe",
    "sweep_to_dataframe",
    # Ledger I/O
    "parse_ledger_csv",
    "read_ledger_csv",
]

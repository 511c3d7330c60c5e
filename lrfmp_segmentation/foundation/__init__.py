"""Foundational building blocks: ledger parsing and LRFMP features.

This package turns the raw transaction ledger into per-customer LRFMP
(Length-Recency-Frequency-Monetary-Periodicity) feature vectors.
"""

from .ledger import LedgerParser, LedgerParseResult, normalise_id, parse_ledger
from .lrfmp import (
    LRFMP_COLUMNS,
    UNKNOWN_CATEGORY,
    CustomerFeatureVector,
    TransactionEvent,
    build_lrfmp_features,
    category_spend,
    group_visits,
    select_eligible,
)

__all__ = [
    "LRFMP_COLUMNS",
    "UNKNOWN_CATEGORY",
    "CustomerFeatureVector",
    "LedgerParser",
    "LedgerParseResult",
    "TransactionEvent",
    "build_lrfmp_features",
    "category_spend",
    "group_visits",
    "normalise_id",
    "parse_ledger",
    "select_eligible",
]

"""Synthetic ledger generation.

Produces realistic-but-fake transaction ledgers with known behavioural
archetypes to exercise the segmentation pipeline without production data.
"""

from .generator import (
    DEFAULT_ARCHETYPES,
    DEFAULT_PRODUCT_LINES,
    ArchetypeConfig,
    generate_ledger,
)

__all__ = [
    "DEFAULT_ARCHETYPES",
    "DEFAULT_PRODUCT_LINES",
    "ArchetypeConfig",
    "generate_ledger",
]

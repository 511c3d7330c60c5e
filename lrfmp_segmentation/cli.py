"""Command line entry point for LRFMP customer segmentation."""

from __future__ import annotations

import argparse
import logging
from pathlib import Path

from lrfmp_segmentation.config import (
    DEFAULT_K_MAX,
    DEFAULT_K_MIN,
    DEFAULT_MAX_ITERATIONS,
    DEFAULT_RANDOM_SEED,
    SegmentationConfig,
)
from lrfmp_segmentation.errors import SegmentationError
from lrfmp_segmentation.foundation.ledger import LedgerParser
from lrfmp_segmentation.pandas.features import (
    assignment_to_dataframe,
    features_to_dataframe,
    profiles_to_dataframe,
    sweep_to_dataframe,
)
from lrfmp_segmentation.pandas.ledger import parse_ledger_csv
from lrfmp_segmentation.pipeline import run_segmentation

logger = logging.getLogger(__name__)


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Segment customers by LRFMP features and k-means clustering"
    )
    parser.add_argument("input", type=Path, help="Path to the transaction ledger CSV")
    parser.add_argument(
        "--output-dir",
        type=Path,
        required=True,
        help="Directory for the output CSV files",
    )
    parser.add_argument(
        "--k-min",
        type=int,
        default=DEFAULT_K_MIN,
        help=f"Smallest cluster count to evaluate (default: {DEFAULT_K_MIN})",
    )
    parser.add_argument(
        "--k-max",
        type=int,
        default=DEFAULT_K_MAX,
        help=f"Largest cluster count to evaluate (default: {DEFAULT_K_MAX})",
    )
    parser.add_argument(
        "--k",
        dest="chosen_k",
        type=int,
        help="Final cluster count. Without it only the k sweep is written.",
    )
    parser.add_argument(
        "--seed",
        type=int,
        default=DEFAULT_RANDOM_SEED,
        help=f"Random seed for centroid initialization (default: {DEFAULT_RANDOM_SEED})",
    )
    parser.add_argument(
        "--max-iterations",
        type=int,
        default=DEFAULT_MAX_ITERATIONS,
        help=f"Iteration cap per k-means run (default: {DEFAULT_MAX_ITERATIONS})",
    )
    parser.add_argument(
        "--approved-status",
        default="Approved",
        help="order_status value of completed transactions (default: Approved)",
    )
    parser.add_argument(
        "--date-format",
        default="%d/%m/%Y",
        help="strptime format of transaction_date (default: %%d/%%m/%%Y)",
    )
    parser.add_argument(
        "--category-spend",
        action="store_true",
        help="Add per-product-line spend columns to the clustering features",
    )
    parser.add_argument(
        "--serial",
        action="store_true",
        help="Evaluate cluster counts in this process instead of a worker pool",
    )
    parser.add_argument(
        "--workers",
        type=int,
        help="Number of worker processes for the k sweep (default: CPU count)",
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level (default: INFO)",
    )
    return parser


def segment_customers_cli(argv: list[str] | None = None) -> int:
    """Segment customers from a ledger CSV and export the results.

    Writes to ``--output-dir``:
    - ``features.csv``: LRFMP features of every customer
    - ``k_sweep.csv``: WSS and silhouette per candidate k
    - ``assignments.csv``, ``centroids.csv``, ``profiles.csv`` when ``--k``
      is given

    Args:
        argv: Command line arguments (defaults to sys.argv)

    Returns:
        Exit code (0 for success, non-zero for error)
    """
    args = _build_parser().parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        config = SegmentationConfig(
            k_min=args.k_min,
            k_max=args.k_max,
            chosen_k=args.chosen_k,
            random_seed=args.seed,
            max_iterations=args.max_iterations,
            approved_status=args.approved_status,
            date_format=args.date_format,
            include_category_spend=args.category_spend,
            parallel=not args.serial,
            n_workers=args.workers,
        )

        logger.info(f"Loading ledger from {args.input}")
        parser = LedgerParser(
            approved_status=config.approved_status,
            date_format=config.date_format,
            other_category=config.other_category,
        )
        parsed = parse_ledger_csv(args.input, parser)
        if not parsed.events:
            logger.error("No approved transactions found in input file")
            return 1

        result = run_segmentation(parsed.events, config)
    except SegmentationError as exc:
        logger.error(f"Segmentation failed: {exc}")
        return 1

    output_dir = args.output_dir
    output_dir.mkdir(parents=True, exist_ok=True)

    features_to_dataframe(result.features).to_csv(
        output_dir / "features.csv", index=False
    )
    sweep_to_dataframe(result.sweep).to_csv(output_dir / "k_sweep.csv", index=False)
    logger.info(
        f"k sweep exported: best silhouette k={result.sweep.best_silhouette_k}, "
        f"elbow k={result.sweep.elbow_k}"
    )

    if result.partition is not None and result.centroids is not None:
        assignment_to_dataframe(result.partition).to_csv(
            output_dir / "assignments.csv", index=False
        )
        result.centroids.to_csv(output_dir / "centroids.csv")
        profiles_to_dataframe(result.profiles).to_csv(
            output_dir / "profiles.csv", index=False
        )
        logger.info(
            f"Exported {len(result.partition.customer_ids)} assignments across "
            f"{result.partition.k} clusters to {output_dir}"
        )
    else:
        logger.info("Pass --k to export cluster assignments")

    return 0


def main() -> None:
    raise SystemExit(segment_customers_cli())


if __name__ == "__main__":  # pragma: no cover
    main()

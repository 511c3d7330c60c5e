"""Segment a synthetic ledger with LRFMP features and k-means."""

from datetime import date

from lrfmp_segmentation import SegmentationConfig, run_segmentation
from lrfmp_segmentation.foundation.ledger import LedgerParser
from lrfmp_segmentation.pandas import profiles_to_dataframe, sweep_to_dataframe
from lrfmp_segmentation.synthetic import generate_ledger


def main():
    """Run the sweep, then partition at the silhouette-favoured k."""
    print("=" * 80)
    print("LRFMP Segmentation Demo with Synthetic Ledger")
    print("=" * 80)

    # Step 1: Generate synthetic ledger rows
    print("\n📊 Step 1: Generating synthetic ledger...")
    rows = generate_ledger(
        {"loyal": 60, "lapsed": 40, "big_spender": 20},
        date(2022, 1, 1),
        date(2023, 12, 31),
        one_time_buyers=50,
        cancel_rate=0.05,
        missing_product_line_rate=0.02,
        seed=42,
    )
    parsed = LedgerParser().parse(rows)
    print(
        f"✓ {parsed.rows_read:,} ledger rows, {parsed.rows_kept:,} approved, "
        f"{parsed.rows_dropped_status:,} dropped"
    )

    # Step 2: Sweep cluster counts without committing to k
    print("\n📈 Step 2: Sweeping k=2..8...")
    config = SegmentationConfig(k_min=2, k_max=8)
    sweep_only = run_segmentation(parsed.events, config)
    population = sweep_only.population
    print(
        f"✓ {population.eligible_customers} repeat customers clustered, "
        f"{population.single_visit_customers} single-visit "
        f"({population.single_visit_pct}%) set aside"
    )
    print(sweep_to_dataframe(sweep_only.sweep).to_string(index=False))
    print(
        f"  Silhouette favours k={sweep_only.sweep.best_silhouette_k}, "
        f"WSS elbow at k={sweep_only.sweep.elbow_k}"
    )

    # Step 3: Partition at the analyst's choice
    chosen_k = sweep_only.sweep.best_silhouette_k
    print(f"\n🔧 Step 3: Partitioning at k={chosen_k}...")
    result = run_segmentation(
        parsed.events,
        SegmentationConfig(k_min=2, k_max=8, chosen_k=chosen_k),
    )
    print(result.centroids.round(1).to_string())
    print()
    print(profiles_to_dataframe(result.profiles).round(1).to_string(index=False))


if __name__ == "__main__":
    main()

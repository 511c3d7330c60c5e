"""Integration tests for the segmentation CLI.

Tests the complete workflow from a raw ledger CSV through the CLI to the
exported feature, sweep, assignment, centroid and profile tables.
"""

from datetime import date

import pandas as pd
import pytest

from lrfmp_segmentation.cli import segment_customers_cli
from lrfmp_segmentation.synthetic import generate_ledger


@pytest.fixture
def ledger_csv(tmp_path):
    """Synthetic ledger CSV with cancelled rows and blank product lines."""
    rows = generate_ledger(
        8,
        date(2022, 1, 1),
        date(2023, 12, 31),
        one_time_buyers=5,
        cancel_rate=0.05,
        missing_product_line_rate=0.05,
        seed=123,
    )
    path = tmp_path / "ledger.csv"
    pd.DataFrame(rows).to_csv(path, index=False)
    return path


class TestSegmentCustomersCli:
    """Test segment_customers_cli."""

    def test_sweep_only(self, ledger_csv, tmp_path):
        """Without --k only features and the sweep are written."""
        output_dir = tmp_path / "out"
        exit_code = segment_customers_cli(
            [str(ledger_csv), "--output-dir", str(output_dir), "--k-max", "5", "--serial"]
        )

        assert exit_code == 0
        assert (output_dir / "features.csv").exists()
        assert (output_dir / "k_sweep.csv").exists()
        assert not (output_dir / "assignments.csv").exists()

        sweep = pd.read_csv(output_dir / "k_sweep.csv")
        assert sweep["k"].tolist() == [2, 3, 4, 5]
        assert sweep["silhouette"].between(-1, 1).all()

    def test_with_chosen_k(self, ledger_csv, tmp_path):
        """--k exports assignments, centroids and profiles."""
        output_dir = tmp_path / "out"
        exit_code = segment_customers_cli(
            [
                str(ledger_csv),
                "--output-dir",
                str(output_dir),
                "--k-max",
                "4",
                "--k",
                "3",
                "--serial",
                "--log-level",
                "WARNING",
            ]
        )
        assert exit_code == 0

        features = pd.read_csv(output_dir / "features.csv", dtype={"customer_id": str})
        assignments = pd.read_csv(
            output_dir / "assignments.csv", dtype={"customer_id": str}
        )
        centroids = pd.read_csv(output_dir / "centroids.csv")
        profiles = pd.read_csv(output_dir / "profiles.csv")

        eligible = features[features["frequency"] >= 2]
        assert set(assignments["customer_id"]) == set(eligible["customer_id"])
        assert set(assignments["cluster"]) == {1, 2, 3}
        assert centroids["cluster"].tolist() == [1, 2, 3]
        assert profiles["size"].sum() == len(assignments)

    def test_category_spend_columns(self, ledger_csv, tmp_path):
        """--category-spend adds spend columns to the centroids."""
        output_dir = tmp_path / "out"
        exit_code = segment_customers_cli(
            [
                str(ledger_csv),
                "--output-dir",
                str(output_dir),
                "--k-max",
                "3",
                "--k",
                "2",
                "--category-spend",
                "--serial",
            ]
        )
        assert exit_code == 0
        centroids = pd.read_csv(output_dir / "centroids.csv")
        assert any(col.startswith("spend_") for col in centroids.columns)

    def test_parallel_sweep(self, ledger_csv, tmp_path):
        """The worker pool produces the same sweep as the serial run."""
        serial_dir = tmp_path / "serial"
        parallel_dir = tmp_path / "parallel"
        base = [str(ledger_csv), "--k-max", "4"]
        assert segment_customers_cli(base + ["--output-dir", str(serial_dir), "--serial"]) == 0
        assert (
            segment_customers_cli(
                base + ["--output-dir", str(parallel_dir), "--workers", "2"]
            )
            == 0
        )
        pd.testing.assert_frame_equal(
            pd.read_csv(serial_dir / "k_sweep.csv"),
            pd.read_csv(parallel_dir / "k_sweep.csv"),
        )

    def test_only_single_visit_customers_fails(self, tmp_path):
        """A ledger without repeat customers exits with an error."""
        rows = generate_ledger(
            0, date(2023, 1, 1), date(2023, 12, 31), one_time_buyers=10, seed=1
        )
        path = tmp_path / "ledger.csv"
        pd.DataFrame(rows).to_csv(path, index=False)

        exit_code = segment_customers_cli(
            [str(path), "--output-dir", str(tmp_path / "out"), "--serial"]
        )
        assert exit_code == 1

    def test_no_approved_rows_fails(self, tmp_path):
        """A ledger without approved rows exits with an error."""
        path = tmp_path / "ledger.csv"
        path.write_text(
            "transaction_id,customer_id,transaction_date,order_status,"
            "product_line,list_price\n"
            "1,C1,01/01/2023,Cancelled,Road,10.00\n"
        )
        exit_code = segment_customers_cli([str(path), "--output-dir", str(tmp_path / "out")])
        assert exit_code == 1

    def test_malformed_row_fails(self, tmp_path):
        """An approved row with a bad date exits with an error."""
        path = tmp_path / "ledger.csv"
        path.write_text(
            "transaction_id,customer_id,transaction_date,order_status,"
            "product_line,list_price\n"
            "1,C1,2023-01-01,Approved,Road,10.00\n"
        )
        exit_code = segment_customers_cli([str(path), "--output-dir", str(tmp_path / "out")])
        assert exit_code == 1

    def test_invalid_k_range_fails(self, ledger_csv, tmp_path):
        """An inverted k range is reported as an error."""
        exit_code = segment_customers_cli(
            [
                str(ledger_csv),
                "--output-dir",
                str(tmp_path / "out"),
                "--k-min",
                "5",
                "--k-max",
                "3",
            ]
        )
        assert exit_code == 1

"""Tests for the synthetic ledger generator."""

from collections import defaultdict
from datetime import date, datetime

import pytest

from lrfmp_segmentation.foundation.ledger import LedgerParser
from lrfmp_segmentation.synthetic import (
    DEFAULT_ARCHETYPES,
    ArchetypeConfig,
    generate_ledger,
)

START = date(2022, 1, 1)
END = date(2023, 12, 31)


def _visit_dates(rows):
    visits = defaultdict(set)
    for row in rows:
        visits[row["customer_id"]].add(
            datetime.strptime(row["transaction_date"], "%d/%m/%Y").date()
        )
    return visits


class TestGenerateLedger:
    """Test generate_ledger."""

    def test_rows_have_ledger_fields(self):
        """Every row carries the ledger columns."""
        rows = generate_ledger(2, START, END, seed=1)
        assert rows
        for row in rows:
            assert set(row) == {
                "transaction_id",
                "customer_id",
                "transaction_date",
                "order_status",
                "product_line",
                "list_price",
            }
            assert row["list_price"] > 0

    def test_deterministic_with_seed(self):
        """The same seed produces the same ledger."""
        assert generate_ledger(3, START, END, seed=7) == generate_ledger(
            3, START, END, seed=7
        )

    def test_transaction_ids_are_sequential(self):
        """Transaction ids run from 1 without gaps."""
        rows = generate_ledger(2, START, END, seed=3)
        assert [row["transaction_id"] for row in rows] == list(range(1, len(rows) + 1))

    def test_customer_ids_per_archetype(self):
        """Customer ids are prefixed by archetype name."""
        rows = generate_ledger({"loyal": 2, "lapsed": 1}, START, END, seed=5)
        customers = {row["customer_id"] for row in rows}
        assert customers == {"loyal-1", "loyal-2", "lapsed-1"}

    def test_visits_stay_in_window(self):
        """All visits fall between start and end."""
        visits = _visit_dates(generate_ledger(5, START, END, seed=9))
        for dates in visits.values():
            assert all(START <= d <= END for d in dates)

    def test_archetypes_shape_visit_pattern(self):
        """Loyal customers visit often; lapsed customers went quiet long ago."""
        visits = _visit_dates(generate_ledger(10, START, END, seed=11))
        loyal = [dates for cid, dates in visits.items() if cid.startswith("loyal-")]
        lapsed = [dates for cid, dates in visits.items() if cid.startswith("lapsed-")]
        assert all(len(dates) >= 9 for dates in loyal)
        assert all((END - max(dates)).days <= 5 for dates in loyal)
        assert all((END - max(dates)).days >= 300 for dates in lapsed)

    def test_one_time_buyers_visit_once(self):
        """One-time buyers have a single visit date."""
        rows = generate_ledger(0, START, END, one_time_buyers=5, seed=2)
        visits = _visit_dates(rows)
        assert set(visits) == {f"one_time-{i}" for i in range(1, 6)}
        assert all(len(dates) == 1 for dates in visits.values())

    def test_cancel_rate_marks_rows(self):
        """Cancelled rows use a non-approved status."""
        rows = generate_ledger(10, START, END, cancel_rate=0.5, seed=4)
        statuses = {row["order_status"] for row in rows}
        assert statuses == {"Approved", "Cancelled"}

    def test_missing_product_line_rate(self):
        """Some rows lose their product line."""
        rows = generate_ledger(10, START, END, missing_product_line_rate=1.0, seed=4)
        assert all(row["product_line"] == "" for row in rows)

    def test_custom_archetype(self):
        """Custom archetypes drive visit counts and prices."""
        weekly = ArchetypeConfig(
            name="weekly",
            visits_min=5,
            visits_max=5,
            mean_gap_days=7.0,
            gap_jitter=0.0,
            mean_list_price=10.0,
            max_lines_per_visit=1,
        )
        rows = generate_ledger(1, START, END, archetypes=[weekly], seed=8)
        assert len(rows) == 5
        dates = sorted(_visit_dates(rows)["weekly-1"])
        gaps = {(b - a).days for a, b in zip(dates, dates[1:])}
        assert gaps == {7}

    def test_output_parses(self):
        """Generated rows are accepted by the ledger parser."""
        rows = generate_ledger(
            3,
            START,
            END,
            one_time_buyers=2,
            cancel_rate=0.1,
            missing_product_line_rate=0.1,
            seed=6,
        )
        result = LedgerParser().parse(rows)
        assert result.rows_read == len(rows)
        assert result.rows_kept + result.rows_dropped_status == len(rows)

    def test_default_archetypes(self):
        """The default set covers loyal, lapsed and big-spender customers."""
        assert [a.name for a in DEFAULT_ARCHETYPES] == ["loyal", "lapsed", "big_spender"]

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"cancel_rate": 1.0},
            {"cancel_rate": -0.1},
            {"missing_product_line_rate": 1.5},
        ],
    )
    def test_invalid_rates_raise_error(self, kwargs):
        """Noise rates outside their range are rejected."""
        with pytest.raises(ValueError):
            generate_ledger(1, START, END, **kwargs)

    def test_start_after_end_raises_error(self):
        """The window must not be inverted."""
        with pytest.raises(ValueError, match="start date"):
            generate_ledger(1, END, START)

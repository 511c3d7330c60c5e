"""Tests for LRFMP (Length-Recency-Frequency-Monetary-Periodicity) features."""

from datetime import date, datetime
from decimal import Decimal

import pytest

from lrfmp_segmentation.errors import EmptyInputError, InvalidInputError
from lrfmp_segmentation.foundation.lrfmp import (
    LRFMP_COLUMNS,
    UNKNOWN_CATEGORY,
    CustomerFeatureVector,
    TransactionEvent,
    build_lrfmp_features,
    category_spend,
    group_visits,
    select_eligible,
)


def _event(customer_id, day, amount, category="Road"):
    return TransactionEvent(customer_id, day, Decimal(str(amount)), category)


@pytest.fixture
def scenario_events():
    """Customer A visits on days 1, 31 and 61; customer B once on day 1."""
    return [
        _event("A", date(2023, 1, 1), 100),
        _event("A", date(2023, 1, 31), 100),
        _event("A", date(2023, 3, 2), 100),
        _event("B", date(2023, 1, 1), 50),
    ]


class TestTransactionEvent:
    """Test TransactionEvent validation and normalisation."""

    def test_valid_event(self):
        """Valid events keep their values."""
        event = TransactionEvent("C1", date(2023, 5, 1), Decimal("19.99"), "Touring")
        assert event.customer_id == "C1"
        assert event.event_date == date(2023, 5, 1)
        assert event.amount == Decimal("19.99")
        assert event.category == "Touring"

    def test_datetime_truncated_to_date(self):
        """Datetimes are reduced to their calendar date."""
        event = TransactionEvent("C1", datetime(2023, 5, 1, 18, 30), Decimal("1"))
        assert event.event_date == date(2023, 5, 1)
        assert not isinstance(event.event_date, datetime)

    def test_numeric_amount_converted_to_decimal(self):
        """Float amounts are converted to Decimal without binary noise."""
        event = TransactionEvent("C1", date(2023, 5, 1), 12.5)
        assert event.amount == Decimal("12.5")

    def test_missing_category_becomes_unknown(self):
        """Empty categories map to the unknown sentinel."""
        event = TransactionEvent("C1", date(2023, 5, 1), Decimal("1"), "")
        assert event.category == UNKNOWN_CATEGORY

    def test_null_date_raises_error(self):
        """A missing date is invalid input."""
        with pytest.raises(InvalidInputError, match="event_date must be a date"):
            TransactionEvent("C1", None, Decimal("1"))

    def test_negative_amount_raises_error(self):
        """Negative amounts are invalid input."""
        with pytest.raises(InvalidInputError, match="Amount cannot be negative"):
            TransactionEvent("C1", date(2023, 5, 1), Decimal("-0.01"))

    def test_nan_amount_raises_error(self):
        """NaN amounts are invalid input."""
        with pytest.raises(InvalidInputError, match="not a number"):
            TransactionEvent("C1", date(2023, 5, 1), float("nan"))

    def test_non_numeric_amount_raises_error(self):
        """Unparseable amounts are invalid input."""
        with pytest.raises(InvalidInputError, match="not a number"):
            TransactionEvent("C1", date(2023, 5, 1), "abc")

    def test_missing_customer_raises_error(self):
        """Events must reference a customer."""
        with pytest.raises(InvalidInputError, match="no customer reference"):
            TransactionEvent("", date(2023, 5, 1), Decimal("1"))

    def test_invalid_input_error_is_value_error(self):
        """Typed errors remain catchable as ValueError."""
        with pytest.raises(ValueError):
            TransactionEvent("C1", date(2023, 5, 1), Decimal("-1"))


class TestCustomerFeatureVector:
    """Test CustomerFeatureVector invariants."""

    def _vector(self, **overrides):
        values = dict(
            customer_id="C1",
            length=60,
            recency=0,
            frequency=3,
            monetary=Decimal("100.00"),
            periodicity=30.0,
            total_spend=Decimal("300.00"),
            first_visit=date(2023, 1, 1),
            last_visit=date(2023, 3, 2),
        )
        values.update(overrides)
        return CustomerFeatureVector(**values)

    def test_valid_vector(self):
        """Valid vectors are eligible and expose their row."""
        vector = self._vector()
        assert vector.is_eligible
        assert vector.as_row() == (60.0, 0.0, 3.0, 100.0, 30.0)
        assert len(vector.as_row()) == len(LRFMP_COLUMNS)

    def test_negative_length_raises_error(self):
        """Negative length should raise ValueError."""
        with pytest.raises(ValueError, match="Length cannot be negative"):
            self._vector(length=-1)

    def test_negative_recency_raises_error(self):
        """Negative recency should raise ValueError."""
        with pytest.raises(ValueError, match="Recency cannot be negative"):
            self._vector(recency=-1)

    def test_zero_frequency_raises_error(self):
        """Zero frequency should raise ValueError."""
        with pytest.raises(ValueError, match="Frequency must be positive"):
            self._vector(frequency=0, periodicity=None)

    def test_negative_monetary_raises_error(self):
        """Negative monetary should raise ValueError."""
        with pytest.raises(ValueError, match="Monetary value cannot be negative"):
            self._vector(monetary=Decimal("-1"))

    def test_periodicity_missing_for_repeat_customer_raises_error(self):
        """Repeat customers must have a periodicity."""
        with pytest.raises(ValueError, match="Periodicity must be None exactly"):
            self._vector(periodicity=None)

    def test_periodicity_present_for_single_visit_raises_error(self):
        """Single-visit customers cannot have a periodicity."""
        with pytest.raises(ValueError, match="Periodicity must be None exactly"):
            self._vector(frequency=1, length=0, periodicity=5.0)

    def test_single_visit_row_raises_error(self):
        """Single-visit customers have no clustering row."""
        vector = self._vector(frequency=1, length=0, periodicity=None)
        assert not vector.is_eligible
        with pytest.raises(InvalidInputError, match="single visit"):
            vector.as_row()


class TestBuildLRFMPFeatures:
    """Test build_lrfmp_features."""

    def test_empty_input_returns_empty_list(self):
        """No events yield no features."""
        assert build_lrfmp_features([]) == []

    def test_reference_scenario(self, scenario_events):
        """A has (60, 0, 3, 100, 30); B is a single-visit customer."""
        features = {f.customer_id: f for f in build_lrfmp_features(scenario_events)}

        a = features["A"]
        assert a.length == 60
        assert a.recency == 0
        assert a.frequency == 3
        assert a.monetary == Decimal("100.00")
        assert a.periodicity == 30.0
        assert a.total_spend == Decimal("300.00")

        b = features["B"]
        assert b.length == 0
        assert b.recency == 60
        assert b.frequency == 1
        assert b.monetary == Decimal("50.00")
        assert b.periodicity is None

    def test_sorted_by_customer_id(self, scenario_events):
        """Output is sorted by customer_id."""
        features = build_lrfmp_features(list(reversed(scenario_events)))
        assert [f.customer_id for f in features] == ["A", "B"]

    def test_same_day_events_merge_into_one_visit(self):
        """Same-day purchases count once for frequency but fully for spend."""
        events = [
            _event("C", date(2023, 1, 1), 10),
            _event("C", date(2023, 1, 1), 20),
            _event("C", date(2023, 1, 11), 30),
        ]
        (c,) = build_lrfmp_features(events)
        assert c.frequency == 2
        assert c.total_spend == Decimal("60.00")
        assert c.monetary == Decimal("30.00")
        assert c.length == 10
        assert c.periodicity == 10.0

    def test_two_visits_periodicity_is_single_gap(self):
        """With two visits the periodicity equals the only gap."""
        events = [_event("C", date(2023, 1, 1), 1), _event("C", date(2023, 1, 8), 1)]
        (c,) = build_lrfmp_features(events)
        assert c.periodicity == 7.0

    def test_periodicity_is_median_of_gaps(self):
        """Periodicity uses the median, not the mean, of the gaps."""
        # gaps: 2, 5, 10
        events = [
            _event("C", date(2023, 1, 1), 1),
            _event("C", date(2023, 1, 3), 1),
            _event("C", date(2023, 1, 8), 1),
            _event("C", date(2023, 1, 18), 1),
        ]
        (c,) = build_lrfmp_features(events)
        assert c.periodicity == 5.0

    def test_periodicity_even_number_of_gaps(self):
        """An even number of gaps averages the two middle gaps."""
        # gaps: 2, 4, 10, 20
        events = [
            _event("C", date(2023, 1, 1), 1),
            _event("C", date(2023, 1, 3), 1),
            _event("C", date(2023, 1, 7), 1),
            _event("C", date(2023, 1, 17), 1),
            _event("C", date(2023, 2, 6), 1),
        ]
        (c,) = build_lrfmp_features(events)
        assert c.periodicity == 7.0
        assert c.length == 36

    def test_unsorted_events(self):
        """Event order does not matter."""
        events = [
            _event("C", date(2023, 1, 21), 1),
            _event("C", date(2023, 1, 1), 1),
            _event("C", date(2023, 1, 11), 1),
        ]
        (c,) = build_lrfmp_features(events)
        assert c.first_visit == date(2023, 1, 1)
        assert c.last_visit == date(2023, 1, 21)
        assert c.periodicity == 10.0

    def test_recency_uses_global_reference(self):
        """Recency is measured against the last visit anywhere in the data."""
        events = [
            _event("X", date(2023, 1, 1), 1),
            _event("X", date(2023, 1, 10), 1),
            _event("Y", date(2023, 1, 10), 1),
            _event("Z", date(2023, 1, 20), 1),
        ]
        features = {f.customer_id: f for f in build_lrfmp_features(events)}
        assert features["X"].recency == features["Y"].recency == 10
        assert features["Z"].recency == 0

    def test_monetary_rounded_to_cents(self):
        """Monetary is quantized half-up to cents."""
        events = [
            _event("C", date(2023, 1, 1), 50),
            _event("C", date(2023, 1, 2), 25),
            _event("C", date(2023, 1, 3), 25),
        ]
        (c,) = build_lrfmp_features(events)
        assert c.monetary == Decimal("33.33")

    def test_explicit_observation_end(self, scenario_events):
        """A later observation end shifts every recency."""
        features = build_lrfmp_features(scenario_events, observation_end=date(2023, 3, 12))
        assert [f.recency for f in features] == [10, 70]

    def test_observation_end_accepts_datetime(self, scenario_events):
        """Datetime observation ends are truncated to dates."""
        features = build_lrfmp_features(
            scenario_events, observation_end=datetime(2023, 3, 12, 23, 59)
        )
        assert features[0].recency == 10

    def test_observation_end_before_last_event_raises_error(self, scenario_events):
        """An observation end before the data ends is rejected."""
        with pytest.raises(InvalidInputError, match="cannot be before the last event"):
            build_lrfmp_features(scenario_events, observation_end=date(2023, 3, 1))

    def test_non_event_input_raises_error(self):
        """Only TransactionEvent instances are accepted."""
        with pytest.raises(InvalidInputError, match="Expected TransactionEvent at index 0"):
            build_lrfmp_features([{"customer_id": "C1"}])

    def test_parallel_matches_serial(self, scenario_events):
        """The multiprocessing path yields the same features."""
        events = scenario_events + [
            _event(f"P{i}", date(2023, 1, 1 + i), 10 + i) for i in range(10)
        ] + [_event(f"P{i}", date(2023, 2, 1 + i), 5) for i in range(10)]

        serial = build_lrfmp_features(events, parallel=False)
        parallel = build_lrfmp_features(
            events, parallel=True, parallel_threshold=1, n_workers=2
        )
        assert parallel == serial


class TestSelectEligible:
    """Test select_eligible."""

    def test_single_visit_customers_excluded(self, scenario_events):
        """Only repeat customers are eligible."""
        eligible = select_eligible(build_lrfmp_features(scenario_events))
        assert [f.customer_id for f in eligible] == ["A"]

    def test_all_single_visit_raises_error(self):
        """No repeat customer means nothing to cluster."""
        features = build_lrfmp_features(
            [_event("A", date(2023, 1, 1), 1), _event("B", date(2023, 1, 2), 1)]
        )
        with pytest.raises(EmptyInputError, match="No customers eligible"):
            select_eligible(features)


class TestGroupingAndCategorySpend:
    """Test the intermediate per-customer mappings."""

    def test_group_visits(self, scenario_events):
        """Visits are grouped per customer with summed spend."""
        grouped = group_visits(scenario_events)
        assert grouped["A"]["visit_dates"] == {
            date(2023, 1, 1),
            date(2023, 1, 31),
            date(2023, 3, 2),
        }
        assert grouped["A"]["total_spend"] == Decimal("300")
        assert grouped["B"]["total_spend"] == Decimal("50")

    def test_category_spend(self):
        """Spend is summed per customer and category."""
        events = [
            _event("A", date(2023, 1, 1), 10, "Road"),
            _event("A", date(2023, 1, 1), 15, "Road"),
            _event("A", date(2023, 1, 2), 5, "Touring"),
            _event("B", date(2023, 1, 2), 7, ""),
        ]
        spend = category_spend(events)
        assert spend["A"] == {"Road": Decimal("25"), "Touring": Decimal("5")}
        assert spend["B"] == {UNKNOWN_CATEGORY: Decimal("7")}

"""LRFMP (Length-Recency-Frequency-Monetary-Periodicity) feature utilities.

LRFMP extends classic RFM with two temporal dimensions:
- Length: How long has the customer been buying? (first to last visit)
- Recency: How long since the last visit?
- Frequency: How many distinct visits?
- Monetary: How much is spent per visit?
- Periodicity: How regular are the visits? (median gap between visits)

Several transactions on the same day form a single visit. They are merged
for the temporal metrics but each one still counts towards spend.
"""

from __future__ import annotations

import logging
import multiprocessing
import os
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Iterable, Optional, Sequence

import numpy as np

from lrfmp_segmentation.errors import EmptyInputError, InvalidInputError

logger = logging.getLogger(__name__)

#: Feature columns, in the order used for the clustering matrix.
LRFMP_COLUMNS = ("length", "recency", "frequency", "monetary", "periodicity")

#: Category assigned to events that carry no category label.
UNKNOWN_CATEGORY = "unknown"

CENT = Decimal("0.01")


@dataclass(frozen=True)
class TransactionEvent:
    """A single completed transaction line for a customer.

    Attributes
    ----------
    customer_id:
        Unique customer identifier
    event_date:
        Calendar date of the transaction (datetimes are truncated to dates)
    amount:
        Line item amount, non-negative
    category:
        Product category label, ``"unknown"`` when not provided
    transaction_id:
        Optional identifier of the source ledger row
    """

    customer_id: str
    event_date: date
    amount: Decimal
    category: str = UNKNOWN_CATEGORY
    transaction_id: Optional[str] = None

    def __post_init__(self) -> None:
        """Validate and normalise the event."""
        if self.customer_id is None or str(self.customer_id).strip() == "":
            raise InvalidInputError(
                f"Transaction has no customer reference (transaction_id={self.transaction_id})"
            )
        object.__setattr__(self, "customer_id", str(self.customer_id))

        if isinstance(self.event_date, datetime):
            object.__setattr__(self, "event_date", self.event_date.date())
        elif not isinstance(self.event_date, date):
            raise InvalidInputError(
                f"event_date must be a date, got {self.event_date!r} (customer_id={self.customer_id})"
            )

        amount = self.amount
        if not isinstance(amount, Decimal):
            try:
                amount = Decimal(str(amount))
            except InvalidOperation as exc:
                raise InvalidInputError(
                    f"Amount is not a number: {self.amount!r} (customer_id={self.customer_id})"
                ) from exc
        if not amount.is_finite():
            raise InvalidInputError(
                f"Amount is not a number: {self.amount!r} (customer_id={self.customer_id})"
            )
        if amount < 0:
            raise InvalidInputError(
                f"Amount cannot be negative: {amount} (customer_id={self.customer_id})"
            )
        object.__setattr__(self, "amount", amount)

        if not self.category:
            object.__setattr__(self, "category", UNKNOWN_CATEGORY)


@dataclass(frozen=True)
class CustomerFeatureVector:
    """LRFMP features for a single customer.

    Attributes
    ----------
    customer_id:
        Unique customer identifier
    length:
        Days between first and last visit (0 for a single visit)
    recency:
        Days from the last visit to the observation end
    frequency:
        Number of distinct visit dates
    monetary:
        Average spend per visit (total_spend / frequency)
    periodicity:
        Median gap in days between consecutive visits, None for a single visit
    total_spend:
        Total spend across all transactions
    first_visit:
        Date of the first visit
    last_visit:
        Date of the last visit
    """

    customer_id: str
    length: int
    recency: int
    frequency: int
    monetary: Decimal
    periodicity: Optional[float]
    total_spend: Decimal
    first_visit: date
    last_visit: date

    def __post_init__(self) -> None:
        """Validate LRFMP invariants."""
        if self.length < 0:
            raise ValueError(
                f"Length cannot be negative: {self.length} (customer_id={self.customer_id})"
            )
        if self.recency < 0:
            raise ValueError(
                f"Recency cannot be negative: {self.recency} (customer_id={self.customer_id})"
            )
        if self.frequency <= 0:
            raise ValueError(
                f"Frequency must be positive: {self.frequency} (customer_id={self.customer_id})"
            )
        if self.monetary < 0:
            raise ValueError(
                f"Monetary value cannot be negative: {self.monetary} (customer_id={self.customer_id})"
            )
        if (self.periodicity is None) != (self.frequency == 1):
            raise ValueError(
                f"Periodicity must be None exactly when frequency == 1: "
                f"periodicity={self.periodicity}, frequency={self.frequency} "
                f"(customer_id={self.customer_id})"
            )
        if self.frequency == 1 and self.length != 0:
            raise ValueError(
                f"Single-visit customer must have length 0: {self.length} (customer_id={self.customer_id})"
            )

    @property
    def is_eligible(self) -> bool:
        """Whether the customer has at least two visits and can be clustered."""
        return self.periodicity is not None

    def as_row(self) -> tuple[float, ...]:
        """Return the LRFMP values as floats in :data:`LRFMP_COLUMNS` order."""
        if self.periodicity is None:
            raise InvalidInputError(
                f"Customer {self.customer_id} has a single visit and no periodicity"
            )
        return (
            float(self.length),
            float(self.recency),
            float(self.frequency),
            float(self.monetary),
            float(self.periodicity),
        )


def _calculate_lrfmp_for_customers(
    customer_data_chunk: dict[str, dict], observation_end: date
) -> list[CustomerFeatureVector]:
    """Calculate LRFMP features for a chunk of customers.

    This function is designed to be called by multiprocessing workers.

    Parameters
    ----------
    customer_data_chunk:
        Dictionary mapping customer_id to ``{"visit_dates", "total_spend"}``
    observation_end:
        Reference date for recency

    Returns
    -------
    list[CustomerFeatureVector]
        Features for customers in this chunk (unsorted)
    """
    features: list[CustomerFeatureVector] = []

    for customer_id, data in customer_data_chunk.items():
        visits = sorted(data["visit_dates"])
        frequency = len(visits)
        first_visit, last_visit = visits[0], visits[-1]

        total_spend = data["total_spend"].quantize(CENT, rounding=ROUND_HALF_UP)
        monetary = (total_spend / frequency).quantize(CENT, rounding=ROUND_HALF_UP)

        if frequency > 1:
            gaps = [(later - earlier).days for earlier, later in zip(visits, visits[1:])]
            periodicity: Optional[float] = float(np.median(gaps))
        else:
            periodicity = None

        features.append(
            CustomerFeatureVector(
                customer_id=customer_id,
                length=(last_visit - first_visit).days,
                recency=(observation_end - last_visit).days,
                frequency=frequency,
                monetary=monetary,
                periodicity=periodicity,
                total_spend=total_spend,
                first_visit=first_visit,
                last_visit=last_visit,
            )
        )

    return features


def group_visits(events: Iterable[TransactionEvent]) -> dict[str, dict]:
    """Group events into ``customer_id -> {visit_dates, total_spend}``.

    Same-day events collapse into one visit date but all amounts are summed.

    Raises
    ------
    InvalidInputError
        If an element is not a :class:`TransactionEvent`
    """
    customer_data: dict[str, dict] = {}
    for idx, event in enumerate(events):
        if not isinstance(event, TransactionEvent):
            raise InvalidInputError(
                f"Expected TransactionEvent at index {idx}, got {type(event).__name__}"
            )
        data = customer_data.setdefault(
            event.customer_id,
            {"visit_dates": set(), "total_spend": Decimal("0")},
        )
        data["visit_dates"].add(event.event_date)
        data["total_spend"] += event.amount
    return customer_data


def build_lrfmp_features(
    events: Iterable[TransactionEvent],
    observation_end: Optional[date] = None,
    parallel: bool = True,
    parallel_threshold: int = 10_000_000,
    n_workers: Optional[int] = None,
) -> list[CustomerFeatureVector]:
    """Build one LRFMP feature vector per customer present in ``events``.

    **Observation End**: By default recency is measured against the most
    recent visit anywhere in the dataset, so it expresses staleness relative
    to the latest activity rather than to the run date. A later
    ``observation_end`` can be supplied; an earlier one is rejected.

    **Parallel Processing**: Populations of at least ``parallel_threshold``
    customers are split into chunks and processed by a multiprocessing pool.

    Parameters
    ----------
    events:
        Completed transaction events for the full customer population.
    observation_end:
        Reference date for recency. Defaults to the global max event date.
    parallel:
        Enable parallel processing for large populations (default: True).
    parallel_threshold:
        Customer count above which the pool is used (default: 10,000,000).
    n_workers:
        Number of worker processes. If None, uses CPU count.

    Returns
    -------
    list[CustomerFeatureVector]
        One vector per customer, sorted by customer_id

    Raises
    ------
    InvalidInputError
        If an element is not a TransactionEvent or observation_end precedes
        the last event date.

    Examples
    --------
    >>> from datetime import date
    >>> from decimal import Decimal
    >>> events = [
    ...     TransactionEvent("A", date(2023, 1, 1), Decimal("100")),
    ...     TransactionEvent("A", date(2023, 1, 31), Decimal("100")),
    ...     TransactionEvent("A", date(2023, 3, 2), Decimal("100")),
    ... ]
    >>> features = build_lrfmp_features(events)
    >>> (features[0].length, features[0].frequency, features[0].periodicity)
    (60, 3, 30.0)
    """
    customer_data = group_visits(events)
    if not customer_data:
        return []

    last_event_date = max(
        max(data["visit_dates"]) for data in customer_data.values()
    )
    if observation_end is None:
        observation_end = last_event_date
    else:
        if isinstance(observation_end, datetime):
            observation_end = observation_end.date()
        if observation_end < last_event_date:
            raise InvalidInputError(
                f"observation_end ({observation_end}) cannot be before the last "
                f"event date ({last_event_date})"
            )

    num_customers = len(customer_data)
    use_parallel = parallel and num_customers >= parallel_threshold

    if use_parallel:
        if n_workers is None:
            workers = os.cpu_count() or 1
        else:
            workers = max(1, n_workers)
        customer_items = list(customer_data.items())
        chunk_size = max(1, num_customers // workers)
        chunks = [
            (dict(customer_items[i : i + chunk_size]), observation_end)
            for i in range(0, num_customers, chunk_size)
        ]
        logger.info(
            f"Building LRFMP features for {num_customers} customers "
            f"in {len(chunks)} chunks ({workers} workers)"
        )
        with multiprocessing.Pool(processes=workers) as pool:
            chunk_results = pool.starmap(_calculate_lrfmp_for_customers, chunks)

        features: list[CustomerFeatureVector] = []
        for chunk_result in chunk_results:
            features.extend(chunk_result)
    else:
        features = _calculate_lrfmp_for_customers(customer_data, observation_end)

    features.sort(key=lambda f: f.customer_id)
    logger.info(
        f"Built LRFMP features for {len(features)} customers "
        f"(observation_end={observation_end})"
    )
    return features


def select_eligible(
    features: Sequence[CustomerFeatureVector],
) -> list[CustomerFeatureVector]:
    """Return the customers with at least two visits.

    Single-visit customers have no periodicity and form a separate
    "new/one-time" population that is not clustered.

    Raises
    ------
    EmptyInputError
        If no customer has two or more visits.
    """
    eligible = [f for f in features if f.is_eligible]
    if not eligible:
        raise EmptyInputError(
            f"No customers eligible for clustering: all {len(features)} "
            "customers have a single visit"
        )
    excluded = len(features) - len(eligible)
    if excluded:
        logger.info(f"Excluded {excluded} single-visit customers from clustering")
    return eligible


def category_spend(
    events: Iterable[TransactionEvent],
) -> dict[str, dict[str, Decimal]]:
    """Total spend per category for each customer.

    Returns
    -------
    dict[str, dict[str, Decimal]]
        ``customer_id -> {category -> total spend}``
    """
    spend: dict[str, dict[str, Decimal]] = {}
    for event in events:
        per_category = spend.setdefault(event.customer_id, {})
        per_category[event.category] = (
            per_category.get(event.category, Decimal("0")) + event.amount
        )
    return spend

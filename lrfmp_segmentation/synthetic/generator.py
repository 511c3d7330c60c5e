from __future__ import annotations

from dataclasses import dataclass
from datetime import date, timedelta
import math
import random
from typing import Dict, List, Mapping, Optional, Sequence


@dataclass(frozen=True)
class ArchetypeConfig:
    """Purchasing behaviour of one synthetic customer type.

    Attributes
    ----------
    name: Archetype name, used as customer id prefix.
    visits_min: Minimum number of visits per customer.
    visits_max: Maximum number of visits per customer.
    mean_gap_days: Average number of days between consecutive visits.
    gap_jitter: Relative jitter in (0, 1) applied to each gap.
    dormant_days: Days between the customer's last visit and the window end.
    mean_list_price: Average price of a ledger line.
    price_variability: Coefficient in (0, 1] controlling price variance.
    max_lines_per_visit: Upper bound of ledger lines bought in one visit.
    """

    name: str
    visits_min: int = 2
    visits_max: int = 6
    mean_gap_days: float = 30.0
    gap_jitter: float = 0.2
    dormant_days: int = 0
    mean_list_price: float = 100.0
    price_variability: float = 0.3
    max_lines_per_visit: int = 2


DEFAULT_ARCHETYPES = (
    # Frequent, regular, recent
    ArchetypeConfig(
        name="loyal",
        visits_min=9,
        visits_max=12,
        mean_gap_days=25.0,
        dormant_days=3,
        mean_list_price=110.0,
    ),
    # Used to buy regularly, silent for most of a year
    ArchetypeConfig(
        name="lapsed",
        visits_min=3,
        visits_max=5,
        mean_gap_days=45.0,
        dormant_days=300,
        mean_list_price=80.0,
    ),
    # Rare visits with large baskets
    ArchetypeConfig(
        name="big_spender",
        visits_min=2,
        visits_max=4,
        mean_gap_days=120.0,
        dormant_days=40,
        mean_list_price=1500.0,
        price_variability=0.2,
    ),
)

DEFAULT_PRODUCT_LINES = ("Standard", "Road", "Touring", "Mountain")


def _sample_price(rng: random.Random, mean: float, variability: float) -> float:
    variability = min(max(variability, 0.01), 1.0)
    # Log-normal-ish by exponentiating a normal draw for positivity
    sigma = variability
    mu = math.log(max(mean, 0.01)) - 0.5 * sigma * sigma
    price = math.exp(rng.normalvariate(mu, sigma))
    return round(max(price, 0.01), 2)


def _visit_dates(
    rng: random.Random, archetype: ArchetypeConfig, start: date, end: date
) -> List[date]:
    # Walk backwards from the last visit so dormancy is controlled exactly
    last = end - timedelta(days=archetype.dormant_days + rng.randrange(0, 3))
    if last < start:
        last = start
    n_visits = rng.randint(archetype.visits_min, archetype.visits_max)
    visits = [last]
    current = last
    for _ in range(n_visits - 1):
        jitter = 1.0 + rng.uniform(-archetype.gap_jitter, archetype.gap_jitter)
        gap = max(1, int(round(archetype.mean_gap_days * jitter)))
        current = current - timedelta(days=gap)
        if current < start:
            break
        visits.append(current)
    return sorted(visits)


def generate_ledger(
    customers_per_archetype: int | Mapping[str, int],
    start: date,
    end: date,
    *,
    archetypes: Sequence[ArchetypeConfig] = DEFAULT_ARCHETYPES,
    one_time_buyers: int = 0,
    cancel_rate: float = 0.0,
    missing_product_line_rate: float = 0.0,
    product_lines: Sequence[str] = DEFAULT_PRODUCT_LINES,
    approved_status: str = "Approved",
    date_format: str = "%d/%m/%Y",
    seed: Optional[int] = None,
) -> List[Dict[str, object]]:
    """Generate raw ledger rows for customers drawn from ``archetypes``.

    Rows carry the ledger fields ``transaction_id``, ``customer_id``,
    ``transaction_date`` (formatted with ``date_format``), ``order_status``,
    ``product_line`` and ``list_price``. Customer ids are
    ``<archetype>-<n>``; one-time buyers are ``one_time-<n>``.

    Optional noise:
    - ``cancel_rate`` marks lines as ``"Cancelled"`` (dropped by the parser).
    - ``missing_product_line_rate`` blanks the product line.
    """

    if start > end:
        raise ValueError("start date must be <= end date")
    if not 0.0 <= cancel_rate < 1.0:
        raise ValueError(f"cancel_rate must be in [0, 1): {cancel_rate}")
    if not 0.0 <= missing_product_line_rate <= 1.0:
        raise ValueError(
            f"missing_product_line_rate must be in [0, 1]: {missing_product_line_rate}"
        )

    rng = random.Random(seed)
    rows: List[Dict[str, object]] = []
    txn_seq = 1

    def emit(customer_id: str, visit: date, mean_price: float, variability: float) -> None:
        nonlocal txn_seq
        status = approved_status
        if cancel_rate and rng.random() < cancel_rate:
            status = "Cancelled"
        product_line = rng.choice(list(product_lines))
        if missing_product_line_rate and rng.random() < missing_product_line_rate:
            product_line = ""
        rows.append(
            {
                "transaction_id": txn_seq,
                "customer_id": customer_id,
                "transaction_date": visit.strftime(date_format),
                "order_status": status,
                "product_line": product_line,
                "list_price": _sample_price(rng, mean_price, variability),
            }
        )
        txn_seq += 1

    for archetype in archetypes:
        if isinstance(customers_per_archetype, Mapping):
            n_customers = int(customers_per_archetype.get(archetype.name, 0))
        else:
            n_customers = int(customers_per_archetype)
        for i in range(n_customers):
            customer_id = f"{archetype.name}-{i + 1}"
            for visit in _visit_dates(rng, archetype, start, end):
                for _line in range(1 + rng.randrange(archetype.max_lines_per_visit)):
                    emit(
                        customer_id,
                        visit,
                        archetype.mean_list_price,
                        archetype.price_variability,
                    )

    total_days = (end - start).days + 1
    for i in range(one_time_buyers):
        visit = start + timedelta(days=rng.randrange(total_days))
        emit(f"one_time-{i + 1}", visit, 60.0, 0.4)

    return rows

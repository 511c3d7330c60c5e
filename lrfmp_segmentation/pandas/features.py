"""Pandas DataFrame adapters for LRFMP features and clustering results."""

from typing import Iterable, List, Sequence

import pandas as pd  # type: ignore

from lrfmp_segmentation.analyses.profile import ClusterProfile
from lrfmp_segmentation.errors import InvalidInputError
from lrfmp_segmentation.foundation.ledger import normalise_id
from lrfmp_segmentation.foundation.lrfmp import (
    LRFMP_COLUMNS,
    CustomerFeatureVector,
    TransactionEvent,
    category_spend,
)
from lrfmp_segmentation.models.partitioner import PartitionResult
from lrfmp_segmentation.models.selector import ClusterCountSweep

FEATURE_TABLE_COLUMNS = [
    "customer_id",
    "length",
    "recency",
    "frequency",
    "monetary",
    "periodicity",
    "total_spend",
    "first_visit",
    "last_visit",
]

CATEGORY_SPEND_PREFIX = "spend_"


def features_to_dataframe(features: Sequence[CustomerFeatureVector]) -> pd.DataFrame:
    """Convert feature vectors to a flat table.

    Args:
        features: Sequence of CustomerFeatureVector objects

    Returns:
        DataFrame with columns: customer_id, length, recency, frequency,
        monetary, periodicity, total_spend, first_visit, last_visit.
        ``periodicity`` is NaN for single-visit customers.

    Example:
        >>> features = build_lrfmp_features(events)
        >>> features_to_dataframe(features).head()
    """
    if not features:
        return pd.DataFrame(columns=FEATURE_TABLE_COLUMNS)

    rows = [
        {
            "customer_id": f.customer_id,
            "length": f.length,
            "recency": f.recency,
            "frequency": f.frequency,
            "monetary": float(f.monetary),
            "periodicity": f.periodicity,
            "total_spend": float(f.total_spend),
            "first_visit": f.first_visit,
            "last_visit": f.last_visit,
        }
        for f in features
    ]
    df = pd.DataFrame(rows, columns=FEATURE_TABLE_COLUMNS)
    df["periodicity"] = df["periodicity"].astype(float)
    return df.sort_values("customer_id").reset_index(drop=True)


def feature_frame(features: Sequence[CustomerFeatureVector]) -> pd.DataFrame:
    """Build the clustering input: LRFMP columns indexed by customer_id.

    Args:
        features: Eligible customers only (frequency >= 2)

    Returns:
        Float DataFrame with columns length, recency, frequency, monetary,
        periodicity

    Raises:
        InvalidInputError: If a single-visit customer is included
    """
    rows = [f.as_row() for f in features]
    return pd.DataFrame(
        rows,
        index=pd.Index([f.customer_id for f in features], name="customer_id"),
        columns=list(LRFMP_COLUMNS),
        dtype=float,
    )


def append_category_spend(
    frame: pd.DataFrame, events: Iterable[TransactionEvent]
) -> pd.DataFrame:
    """Widen a feature frame with one total-spend column per category.

    Columns are named ``spend_<category>`` and sorted by category. Only
    categories bought by at least one customer of ``frame`` get a column.
    Customers who never bought from a category get 0.0. Customers present
    in ``events`` but not in ``frame`` are ignored.

    Example:
        >>> wide = append_category_spend(feature_frame(eligible), events)
        >>> matrix, scaler = standardize(wide)
    """
    spend = category_spend(events)
    categories = sorted(
        {cat for cid in frame.index for cat in spend.get(str(cid), {})}
    )
    pivot = pd.DataFrame(
        [
            [float(spend.get(str(cid), {}).get(cat, 0)) for cat in categories]
            for cid in frame.index
        ],
        index=frame.index,
        columns=[f"{CATEGORY_SPEND_PREFIX}{cat}" for cat in categories],
        dtype=float,
    )
    return pd.concat([frame, pivot], axis=1)


def sweep_to_dataframe(sweep: ClusterCountSweep) -> pd.DataFrame:
    """Convert a cluster-count sweep to a ``k, wss, silhouette`` table.

    Returns:
        DataFrame with columns: k, wss, silhouette, status, n_iterations
    """
    columns = ["k", "wss", "silhouette", "status", "n_iterations"]
    return pd.DataFrame(
        [
            {
                "k": score.k,
                "wss": score.wss,
                "silhouette": score.silhouette,
                "status": score.status.value,
                "n_iterations": score.n_iterations,
            }
            for score in sweep.scores
        ],
        columns=columns,
    )


def assignment_to_dataframe(result: PartitionResult) -> pd.DataFrame:
    """Convert a partition to a ``customer_id, cluster`` table."""
    return pd.DataFrame(
        {"customer_id": list(result.customer_ids), "cluster": list(result.labels)}
    )


def dataframe_to_events(
    events_df: pd.DataFrame,
    customer_id_col: str = "customer_id",
    event_date_col: str = "event_date",
    amount_col: str = "amount",
    category_col: str | None = "category",
) -> List[TransactionEvent]:
    """Convert an already-filtered DataFrame of transactions to events.

    Args:
        events_df: One row per completed transaction line
        *_col: Column name mappings for flexibility. ``category_col`` may be
            None or absent, in which case every event is ``"unknown"``.

    Returns:
        List of validated TransactionEvent objects

    Raises:
        InvalidInputError: If required columns are missing or contain nulls,
            or an amount is negative

    Example:
        >>> df = pd.read_parquet("transactions.parquet")
        >>> events = dataframe_to_events(df, event_date_col="order_date")
        >>> features = build_lrfmp_features(events)
    """
    required_cols = [customer_id_col, event_date_col, amount_col]
    missing_cols = set(required_cols) - set(events_df.columns)
    if missing_cols:
        raise InvalidInputError(f"DataFrame missing required columns: {missing_cols}")

    if events_df.empty:
        return []

    null_cols = events_df[required_cols].isnull().any()
    if null_cols.any():
        null_col_names = null_cols[null_cols].index.tolist()
        raise InvalidInputError(
            f"Null/NaN values found in columns: {null_col_names}. "
            "Every transaction needs a customer, a date and an amount."
        )

    has_category = category_col is not None and category_col in events_df.columns
    events = []
    for record in events_df.to_dict("records"):
        category = record[category_col] if has_category else None
        events.append(
            TransactionEvent(
                customer_id=normalise_id(record[customer_id_col]),
                event_date=pd.to_datetime(record[event_date_col]).date(),
                amount=record[amount_col],
                category=None if pd.isna(category) else str(category),
            )
        )
    return events


def profiles_to_dataframe(profiles: Sequence[ClusterProfile]) -> pd.DataFrame:
    """Convert cluster profiles to one row per cluster.

    Returns:
        DataFrame with columns cluster, size, share_pct, then one
        ``<feature>`` column per centroid coordinate and one
        ``<feature>_median`` column per feature
    """
    rows = []
    for profile in profiles:
        row = {
            "cluster": profile.label,
            "size": profile.size,
            "share_pct": float(profile.share_pct),
        }
        row.update(profile.centroid)
        row.update({f"{col}_median": value for col, value in profile.median.items()})
        rows.append(row)
    return pd.DataFrame(rows)

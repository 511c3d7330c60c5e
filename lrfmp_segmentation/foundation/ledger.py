"""Transaction ledger filtering and parsing.

The ledger is the raw export of the sales system: one row per transaction
line, including cancelled orders and rows with incomplete product data.
Only approved rows are turned into :class:`TransactionEvent` records; the
rest are counted and dropped.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Iterable, Mapping

from lrfmp_segmentation.errors import InvalidInputError
from lrfmp_segmentation.foundation.lrfmp import TransactionEvent

logger = logging.getLogger(__name__)


def _is_missing(value: Any) -> bool:
    # NaN and NaT are the only values not equal to themselves
    return (
        value is None
        or value != value
        or (isinstance(value, str) and not value.strip())
    )


def normalise_id(value: Any) -> str:
    """Render a customer or transaction id as a string.

    Numeric ids read back as floats (e.g. ``2950.0``) keep their integer
    form, so ``2950``, ``2950.0`` and ``"2950"`` all map to ``"2950"``.
    """
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value).strip()


@dataclass(frozen=True)
class LedgerParseResult:
    """Events parsed from a ledger plus row accounting.

    Attributes
    ----------
    events:
        Events built from approved rows, in ledger order
    rows_read:
        Total number of ledger rows seen
    rows_dropped_status:
        Rows dropped because ``order_status`` was not the approved value
    """

    events: list[TransactionEvent] = field(default_factory=list)
    rows_read: int = 0
    rows_dropped_status: int = 0

    @property
    def rows_kept(self) -> int:
        return len(self.events)


class LedgerParser:
    """Filter approved ledger rows and convert them into transaction events."""

    #: Fields every ledger row must carry.
    REQUIRED_FIELDS = (
        "transaction_id",
        "customer_id",
        "transaction_date",
        "order_status",
        "list_price",
    )

    def __init__(
        self,
        approved_status: str = "Approved",
        date_format: str = "%d/%m/%Y",
        other_category: str = "Other",
    ) -> None:
        self.approved_status = approved_status
        self.date_format = date_format
        self.other_category = other_category

    def parse(self, records: Iterable[Mapping[str, Any]]) -> LedgerParseResult:
        """Parse ledger rows.

        Parameters
        ----------
        records:
            Iterable of raw ledger dictionaries with at least the fields in
            :attr:`REQUIRED_FIELDS`. ``product_line`` is optional; empty or
            missing values map to ``other_category``.

        Raises
        ------
        InvalidInputError
            If a row misses a required field, or an approved row has a
            missing/unparseable date, a missing customer reference, or a
            missing/negative/non-numeric price.
        """

        events: list[TransactionEvent] = []
        rows_read = 0
        dropped_status = 0
        for idx, record in enumerate(records):
            rows_read += 1
            missing = [name for name in self.REQUIRED_FIELDS if name not in record]
            if missing:
                raise InvalidInputError(
                    "Ledger row missing required fields",
                    {"missing_fields": missing, "record_index": idx},
                )

            status = record["order_status"]
            if _is_missing(status) or str(status).strip() != self.approved_status:
                dropped_status += 1
                continue

            customer_id = record["customer_id"]
            if _is_missing(customer_id):
                raise InvalidInputError(
                    "Approved ledger row has no customer reference",
                    {"record_index": idx, "transaction_id": record["transaction_id"]},
                )

            events.append(
                TransactionEvent(
                    customer_id=normalise_id(customer_id),
                    event_date=self._parse_date(record["transaction_date"], idx),
                    amount=self._parse_amount(record["list_price"], idx),
                    category=self._parse_category(record.get("product_line")),
                    transaction_id=(
                        None
                        if _is_missing(record["transaction_id"])
                        else normalise_id(record["transaction_id"])
                    ),
                )
            )

        result = LedgerParseResult(
            events=events, rows_read=rows_read, rows_dropped_status=dropped_status
        )
        logger.info(
            f"Parsed ledger: {result.rows_read} rows read, {result.rows_kept} kept, "
            f"{result.rows_dropped_status} dropped (order_status != {self.approved_status!r})"
        )
        return result

    def _parse_date(self, value: Any, idx: int) -> date:
        if _is_missing(value):
            raise InvalidInputError(
                "Approved ledger row has no transaction_date", {"record_index": idx}
            )
        if isinstance(value, datetime):
            return value.date()
        if isinstance(value, date):
            return value
        try:
            return datetime.strptime(str(value).strip(), self.date_format).date()
        except ValueError as exc:
            raise InvalidInputError(
                f"transaction_date does not match format {self.date_format!r}",
                {"record_index": idx, "value": value},
            ) from exc

    @staticmethod
    def _parse_amount(value: Any, idx: int) -> Decimal:
        if _is_missing(value):
            raise InvalidInputError(
                "Approved ledger row has no list_price", {"record_index": idx}
            )
        try:
            amount = Decimal(str(value).strip())
        except InvalidOperation as exc:
            raise InvalidInputError(
                "list_price is not a number", {"record_index": idx, "value": value}
            ) from exc
        if not amount.is_finite():
            raise InvalidInputError(
                "list_price is not a number", {"record_index": idx, "value": value}
            )
        if amount < 0:
            raise InvalidInputError(
                "list_price cannot be negative", {"record_index": idx, "value": value}
            )
        return amount

    def _parse_category(self, value: Any) -> str:
        if _is_missing(value):
            return self.other_category
        return str(value).strip()


def parse_ledger(
    records: Iterable[Mapping[str, Any]],
    *,
    approved_status: str = "Approved",
    date_format: str = "%d/%m/%Y",
    other_category: str = "Other",
) -> list[TransactionEvent]:
    """Convenience wrapper returning only the parsed events.

    Examples
    --------
    >>> rows = [
    ...     {"transaction_id": 1, "customer_id": "C1", "transaction_date": "25/02/2017",
    ...      "order_status": "Approved", "product_line": "", "list_price": "71.49"},
    ...     {"transaction_id": 2, "customer_id": "C1", "transaction_date": "26/02/2017",
    ...      "order_status": "Cancelled", "product_line": "Road", "list_price": "10.00"},
    ... ]
    >>> events = parse_ledger(rows)
    >>> [(e.customer_id, str(e.event_date), e.category) for e in events]
    [('C1', '2017-02-25', 'Other')]
    """
    parser = LedgerParser(
        approved_status=approved_status,
        date_format=date_format,
        other_category=other_category,
    )
    return parser.parse(records).events

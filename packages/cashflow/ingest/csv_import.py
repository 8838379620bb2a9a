"""Load transactions from a CSV export.

CSV header (column names are matched after trimming):

- required: ``type``, ``amount``, ``category``, ``date``
- optional: ``paymentMethod`` (or ``payment_method``), ``description``

Dates may be ``YYYY-MM-DD`` or ``DD/MM/YYYY``. Amounts may carry a ``₹``
prefix and thousands separators. Blank lines are skipped.
"""

from __future__ import annotations

import csv
import re
from collections.abc import Iterable, Iterator, Mapping
from datetime import date, datetime
from os import PathLike
from pathlib import Path

from pydantic import ValidationError

from ..logging_setup import get_logger
from ..models import Transaction

REQUIRED_HEADERS: tuple[str, ...] = ("type", "amount", "category", "date")
_PAYMENT_METHOD_HEADERS: tuple[str, ...] = ("paymentMethod", "payment_method")
_DATE_FORMATS: tuple[str, ...] = ("%Y-%m-%d", "%d/%m/%Y")

_logger = get_logger("cashflow.ingest.csv_import")


def _clean_text(value: str | None) -> str | None:
    if value is None:
        return None
    cleaned = re.sub(r"\s+", " ", value.replace("\r", " ").replace("\n", " ")).strip()
    return cleaned if cleaned != "" else None


def _parse_date(value: str | None) -> date:
    s = (value or "").strip()
    for fmt in _DATE_FORMATS:
        try:
            return datetime.strptime(s, fmt).date()
        except ValueError:
            continue
    raise ValueError(f"unrecognized date {s!r}; expected YYYY-MM-DD or DD/MM/YYYY")


def _parse_amount(value: str | None) -> str:
    s = (value or "").replace("₹", "").replace(",", "").strip()
    if not s:
        raise ValueError("amount is required")
    return s


def _row_to_transaction(row: Mapping[str, str | None]) -> Transaction:
    method = None
    for key in _PAYMENT_METHOD_HEADERS:
        method = _clean_text(row.get(key))
        if method:
            break
    return Transaction.model_validate(
        {
            "type": _clean_text(row.get("type")),
            "amount": _parse_amount(row.get("amount")),
            "category": _clean_text(row.get("category")),
            "payment_method": method,
            "date": _parse_date(row.get("date")),
            "description": _clean_text(row.get("description")) or "",
        }
    )


def to_transactions(rows: Iterable[Mapping[str, str | None]]) -> Iterator[Transaction]:
    """Convert CSV dict rows to :class:`Transaction` objects.

    Errors are raised as ``ValueError`` naming the 1-based file line (the
    header is line 1).
    """

    for line_no, row in enumerate(rows, start=2):
        if not any((v or "").strip() for v in row.values() if isinstance(v, str)):
            continue
        try:
            yield _row_to_transaction(row)
        except ValidationError as e:
            fields = ", ".join(".".join(str(p) for p in err["loc"]) for err in e.errors())
            raise ValueError(f"row {line_no}: invalid {fields}") from e
        except ValueError as e:
            raise ValueError(f"row {line_no}: {e}") from e


def load_transactions_from_csv(csv_path: str | PathLike[str]) -> list[Transaction]:
    """Read ``csv_path`` and return its transactions in file order.

    Raises ``csv.Error`` when the header row is absent or lacks a required
    column, and ``ValueError`` naming the row when a value is invalid.
    """

    p = Path(csv_path)
    with p.open(encoding="utf-8-sig", newline="") as f:
        reader = csv.DictReader(f)
        if not reader.fieldnames:
            raise csv.Error(f"CSV appears to have no header row: {csv_path}")
        reader.fieldnames = [name.strip() for name in reader.fieldnames]
        missing = [h for h in REQUIRED_HEADERS if h not in reader.fieldnames]
        if missing:
            raise csv.Error("CSV header mismatch. Missing columns: " + ", ".join(missing))
        out = list(to_transactions(reader))
    _logger.info("csv_import:loaded path=%s count=%d", p.name, len(out))
    return out


__all__ = ["REQUIRED_HEADERS", "load_transactions_from_csv", "to_transactions"]

"""Field normalization for ledger export rows.

Turns the raw string cells of a :class:`~ledger_import.models.RawTransactionRow`
into a typed :class:`~ledger_import.models.NormalizedTransaction`. The strict
helpers (:func:`parse_amount`, :func:`parse_date`) raise ``ValueError``;
:func:`normalize_row` is best-effort and turns those failures into defaults
plus a warning so that a parseable financial row is never dropped.

CSV loading follows RFC 4180 via the stdlib :mod:`csv` module.
"""

from __future__ import annotations

import csv
from collections.abc import Mapping
from datetime import date, datetime
from decimal import ROUND_HALF_UP, Decimal
from io import StringIO
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from .errors import CsvFormatError
from .logging_setup import get_logger
from .models import NormalizedTransaction, RawTransactionRow, TransactionType

_logger = get_logger("ledger_import.normalizers")

REQUIRED_COLUMNS: tuple[str, ...] = ("Date", "Transaction type", "Amount", "Name")

_CENTS = Decimal("0.01")
_AMOUNT_STRIP = str.maketrans("", "", "\"'$€£¥,() \t")

_TRANSACTION_TYPES: dict[str, TransactionType] = {
    "bill": TransactionType.BILL,
    "check": TransactionType.CHECK,
    "expense": TransactionType.EXPENSE,
    "invoice": TransactionType.INVOICE,
}

_NAMED_MONTH_FORMATS = ("%b %d, %Y", "%B %d, %Y", "%d %b %Y", "%d %B %Y", "%b %d %Y")

# ---------------------------------------------------------------------------
# Strict helpers
# ---------------------------------------------------------------------------


def parse_amount(raw: str | None) -> tuple[Decimal, bool]:
    """Parse an export amount into ``(absolute value, negative flag)``.

    Quotes, whitespace, currency symbols and thousands separators are removed.
    Parentheses or a leading ``-`` mark the amount as negative. The value is
    quantized to cents.
    """

    if raw is None:
        raise ValueError("amount is required")
    s = raw.strip().strip("\"'").strip()
    if not s:
        raise ValueError("amount is empty")

    negative = "(" in s or s.lstrip("$€£¥ ").startswith("-")
    cleaned = s.translate(_AMOUNT_STRIP).replace("-", "").lstrip("+")
    if not cleaned:
        raise ValueError(f"invalid amount: {raw!r}")
    try:
        value = Decimal(cleaned)
        if not value.is_finite():
            raise ValueError(f"invalid amount: {raw!r}")
        # Beyond the context precision quantize raises InvalidOperation
        return abs(value).quantize(_CENTS, rounding=ROUND_HALF_UP), negative
    except ArithmeticError as exc:
        raise ValueError(f"invalid amount: {raw!r}") from exc


def _parse_dashed(s: str) -> date:
    parts = s.split("-")
    if len(parts) != 3 or not all(p.isdigit() for p in parts):
        raise ValueError(f"invalid date: {s!r}")
    if len(parts[0]) == 4:
        return date(int(parts[0]), int(parts[1]), int(parts[2]))
    first, second, year = (int(p) for p in parts)
    if len(parts[2]) == 2:
        year += 2000
    # First field above 12 cannot be a month
    if first > 12:
        return date(year, second, first)
    return date(year, first, second)


def parse_date(raw: str | None) -> date:
    """Parse an export date.

    Accepted: ``M/D/YYYY``, ``M/D/YY``, ``YYYY-MM-DD`` (optionally followed by
    a time part), ``MM-DD-YYYY`` / ``DD-MM-YYYY`` (day-first when the first
    field is greater than 12) and a few named-month forms such as
    ``Jan 5, 2024``.
    """

    if raw is None:
        raise ValueError("date is required")
    s = raw.strip()
    if not s:
        raise ValueError("date is empty")

    head = s.split()[0].split("T", 1)[0]
    if "/" in head:
        parts = head.split("/")
        if len(parts) == 3 and all(p.isdigit() for p in parts):
            month, day, year = (int(p) for p in parts)
            if len(parts[2]) == 2:
                year += 2000
            try:
                return date(year, month, day)
            except (OverflowError, ValueError) as exc:
                raise ValueError(f"invalid date: {raw!r}") from exc
        raise ValueError(f"invalid date: {raw!r}")
    if "-" in head:
        try:
            return _parse_dashed(head)
        except (OverflowError, ValueError) as exc:
            raise ValueError(f"invalid date: {raw!r}") from exc

    for fmt in _NAMED_MONTH_FORMATS:
        try:
            return datetime.strptime(s, fmt).date()
        except ValueError:
            continue
    raise ValueError(f"invalid date: {raw!r}")


def map_transaction_type(raw: str | None) -> TransactionType:
    """Map the export's transaction type; anything unrecognized is a generic expense."""

    if not raw:
        return TransactionType.EXPENSE
    return _TRANSACTION_TYPES.get(raw.strip().lower(), TransactionType.EXPENSE)


def _opt(s: str) -> str | None:
    s = s.strip()
    return s or None


# ---------------------------------------------------------------------------
# Row normalization
# ---------------------------------------------------------------------------


def to_raw_row(row: RawTransactionRow | Mapping[str, Any]) -> RawTransactionRow:
    if isinstance(row, RawTransactionRow):
        return row
    if not isinstance(row, Mapping):
        raise TypeError(f"expected a mapping of column name to value, got {type(row).__name__}")
    return RawTransactionRow.model_validate(dict(row))


def normalize_row(
    row: RawTransactionRow | Mapping[str, Any],
    *,
    row_number: int,
    today: date | None = None,
) -> NormalizedTransaction:
    """Project a raw export row onto typed fields.

    Malformed dates fall back to ``today`` and malformed amounts to ``0.00``;
    each fallback adds a warning to the returned transaction. Only a non-row
    input raises.
    """

    raw = to_raw_row(row)
    warnings: list[str] = []

    try:
        amount, negative = parse_amount(raw.amount)
    except ValueError as exc:
        amount, negative = Decimal("0.00"), False
        warnings.append(f"row {row_number}: {exc}; amount set to 0.00")

    date_defaulted = False
    try:
        tx_date = parse_date(raw.date)
    except ValueError as exc:
        tx_date = today or date.today()
        date_defaulted = True
        warnings.append(f"row {row_number}: {exc}; using {tx_date.isoformat()}")

    for w in warnings:
        _logger.warning(w)

    return NormalizedTransaction(
        row_number=row_number,
        date=tx_date,
        amount=amount,
        negative=negative,
        counterparty_name=raw.name.strip(),
        transaction_type=map_transaction_type(raw.transaction_type),
        account_path=_opt(raw.account_full_name),
        account_name=_opt(raw.account_name),
        invoice_number=_opt(raw.invoice_number),
        project_code=_opt(raw.project_code),
        external_id=_opt(raw.external_id),
        date_defaulted=date_defaulted,
        warnings=tuple(warnings),
    )


# ---------------------------------------------------------------------------
# CSV loading
# ---------------------------------------------------------------------------


def read_transaction_csv(csv_text: str) -> list[RawTransactionRow]:
    """Parse export CSV text into validated rows.

    Values are trimmed and fully blank lines are dropped. Raises
    :class:`~ledger_import.errors.CsvFormatError` when a required column is
    missing from the header.
    """

    # Strip a UTF-8 BOM so the first header matches exactly
    if csv_text.startswith("\ufeff"):
        csv_text = csv_text[1:]
    with StringIO(csv_text, newline="") as f:
        reader = csv.DictReader(f)
        header = [h.strip() for h in (reader.fieldnames or [])]
        missing = [c for c in REQUIRED_COLUMNS if c not in header]
        if missing:
            raise CsvFormatError(f"missing required column(s): {', '.join(missing)}")
        reader.fieldnames = header

        rows: list[RawTransactionRow] = []
        for line_no, rec in enumerate(reader, start=2):
            cells = {
                k: (v or "").strip()
                for k, v in rec.items()
                if k is not None and not isinstance(v, list)
            }
            if not any(cells.values()):
                continue
            try:
                rows.append(RawTransactionRow.model_validate(cells))
            except ValidationError as exc:
                raise CsvFormatError(f"line {line_no}: {exc}") from exc
    return rows


def load_transaction_csv(path: Path | str) -> list[RawTransactionRow]:
    text = Path(path).read_text(encoding="utf-8")
    return read_transaction_csv(text)


__all__ = [
    "REQUIRED_COLUMNS",
    "parse_amount",
    "parse_date",
    "map_transaction_type",
    "to_raw_row",
    "normalize_row",
    "read_transaction_csv",
    "load_transaction_csv",
]

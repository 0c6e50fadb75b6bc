"""Duplicate detection within a batch and against persisted history.

Composite keys
--------------
- cost:    ``"<YYYY-MM-DD>|<amount .2f>|<name>"``
- revenue: ``"<amount .2f>|<YYYY-MM-DD>|<invoice #>|<name>"``

``<name>`` and ``<invoice #>`` pass through
:func:`~ledger_import.similarity.normalize_text` only (trimmed,
whitespace-collapsed, case-folded). Suffixes in names and punctuation are
kept, so ``"Acme Supply Co"`` and ``"Acme Supply"`` produce different keys even
though the resolver treats them as one vendor.

Cross-run detection checks the external transaction id first; a hit there is
authoritative. The composite key is only consulted for rows whose external id
is absent or unknown.
"""

from __future__ import annotations

import re
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from datetime import date, timedelta
from decimal import Decimal

from .models import (
    DuplicateMatchPath,
    ExistingRecord,
    ExpenseCategory,
    InBatchDuplicate,
    Ledger,
    NormalizedTransaction,
    Reconciliation,
)
from .similarity import normalize_text

_EXPENSE_DESC_RE = re.compile(r"^(?:bill|check|expense)\s*-\s*(.+?)(?:\s*\(|$)", re.IGNORECASE)
_EXPENSE_DESC_EMPTY_RE = re.compile(r"^(?:bill|check|expense)\s*-\s*(?:\(|$)", re.IGNORECASE)
_INVOICE_DESC_RE = re.compile(r"^Invoice from\s+(.+?)(?:\s*\(|$)", re.IGNORECASE)
_PARENTHETICAL_RE = re.compile(r"\s*\([^)]*\)\s*")
_PLACEHOLDER_NAME_RE = re.compile(r"no vendor|no payee|unassigned|unknown", re.IGNORECASE)

RECONCILIATION_THRESHOLD = Decimal("0.01")

# ---------------------------------------------------------------------------
# Keys
# ---------------------------------------------------------------------------


def _amount_key(amount: Decimal) -> str:
    return f"{abs(amount):.2f}"


def expense_key(tx_date: date, amount: Decimal, name: str | None) -> str:
    return f"{tx_date.isoformat()}|{_amount_key(amount)}|{normalize_text(name)}"


def revenue_key(
    amount: Decimal, tx_date: date, invoice_number: str | None, name: str | None
) -> str:
    invoice = normalize_text(invoice_number)
    return f"{_amount_key(amount)}|{tx_date.isoformat()}|{invoice}|{normalize_text(name)}"


def key_for(tx: NormalizedTransaction) -> str:
    if tx.ledger is Ledger.REVENUE:
        return revenue_key(tx.amount, tx.date, tx.invoice_number, tx.counterparty_name)
    return expense_key(tx.date, tx.amount, tx.counterparty_name)


def _history_keys(record: ExistingRecord) -> list[str]:
    """All composite keys under which a persisted record can be recognized.

    Older imports only stored the counterparty inside the description
    (``"bill - Acme (Unassigned)"``, ``"Invoice from Acme"``), so the name is
    taken from the description first and from the linked entity second.
    """

    desc = (record.description or "").strip()
    names: list[str] = []

    if record.ledger is Ledger.REVENUE:
        m = _INVOICE_DESC_RE.match(desc)
        if m:
            names.append(m.group(1).strip())
        if record.counterparty_name:
            names.append(record.counterparty_name)
        if not names:
            names.append("")
        return list(
            dict.fromkeys(
                revenue_key(record.amount, record.date, record.invoice_number, n) for n in names
            )
        )

    extracted = ""
    m = _EXPENSE_DESC_RE.match(desc)
    if m:
        extracted = _PARENTHETICAL_RE.sub(" ", m.group(1)).strip()
    if extracted:
        names.append(extracted)
    if record.counterparty_name:
        names.append(record.counterparty_name)
    # Rows imported without a name can only be matched by an empty-name key
    if (
        not desc
        or _EXPENSE_DESC_EMPTY_RE.match(desc)
        or (extracted and _PLACEHOLDER_NAME_RE.search(extracted))
    ):
        names.append("")
    return list(dict.fromkeys(expense_key(record.date, record.amount, n) for n in names))


# ---------------------------------------------------------------------------
# Detectors
# ---------------------------------------------------------------------------


class InBatchDetector:
    """First-occurrence-wins duplicate detection within one batch, per ledger."""

    def __init__(self) -> None:
        self._seen: dict[Ledger, dict[str, NormalizedTransaction]] = {
            Ledger.COST: {},
            Ledger.REVENUE: {},
        }

    def check(self, tx: NormalizedTransaction) -> InBatchDuplicate | None:
        key = key_for(tx)
        seen = self._seen[tx.ledger]
        first = seen.get(key)
        if first is None:
            seen[key] = tx
            return None
        label = "Duplicate revenue" if tx.ledger is Ledger.REVENUE else "Duplicate of"
        return InBatchDuplicate(
            transaction=tx,
            key=key,
            reason=f"{label}: {first.counterparty_name} on {first.date.isoformat()}",
            first_row_number=first.row_number,
        )


@dataclass(frozen=True, slots=True)
class CrossRunMatch:
    existing: ExistingRecord
    match_key: str
    matched_by: DuplicateMatchPath


class CrossRunDetector:
    """Match rows against previously imported records of both ledgers."""

    def __init__(
        self,
        *,
        external_ids: Mapping[Ledger, Mapping[str, ExistingRecord]] | None = None,
        history: Iterable[ExistingRecord] = (),
    ) -> None:
        self._by_external_id: dict[Ledger, dict[str, ExistingRecord]] = {
            ledger: dict((external_ids or {}).get(ledger, {})) for ledger in Ledger
        }
        self._by_key: dict[Ledger, dict[str, ExistingRecord]] = {ledger: {} for ledger in Ledger}
        for record in history:
            if record.external_id:
                self._by_external_id[record.ledger].setdefault(record.external_id, record)
            index = self._by_key[record.ledger]
            for key in _history_keys(record):
                index.setdefault(key, record)

    def check(self, tx: NormalizedTransaction) -> CrossRunMatch | None:
        if tx.external_id:
            hit = self._by_external_id[tx.ledger].get(tx.external_id)
            if hit is not None:
                return CrossRunMatch(hit, tx.external_id, "external_id")
        key = key_for(tx)
        hit = self._by_key[tx.ledger].get(key)
        if hit is None:
            return None
        # A persisted record carrying a different external id is another transaction
        if tx.external_id and hit.external_id and hit.external_id != tx.external_id:
            return None
        return CrossRunMatch(hit, key, "composite_key")


# ---------------------------------------------------------------------------
# History window and reconciliation
# ---------------------------------------------------------------------------


def history_window(dates: Iterable[date], padding_days: int = 1) -> tuple[date, date] | None:
    """Padded ``(start, end)`` range covering ``dates``; ``None`` when empty."""

    ordered = sorted(dates)
    if not ordered:
        return None
    pad = timedelta(days=padding_days)
    return ordered[0] - pad, ordered[-1] + pad


def reconcile(
    duplicate_amounts: Iterable[Decimal],
    existing: Iterable[ExistingRecord],
    *,
    threshold: Decimal = RECONCILIATION_THRESHOLD,
) -> Reconciliation:
    """Compare what was skipped as duplicate against what it matched in history.

    ``existing`` is de-duplicated by id so several rows pointing at one
    persisted record count it once. Internal labor and split parent rows are
    left out of the existing total.
    """

    unique = {r.id: r for r in existing}
    counted = [
        r
        for r in unique.values()
        if not r.is_split and r.category != ExpenseCategory.LABOR_INTERNAL
    ]
    existing_total = sum((abs(r.amount) for r in counted), Decimal("0.00"))
    duplicate_total = sum((abs(a) for a in duplicate_amounts), Decimal("0.00"))
    difference = abs(existing_total - duplicate_total)
    return Reconciliation(
        existing_total=existing_total,
        duplicate_total=duplicate_total,
        difference=difference,
        is_aligned=difference <= threshold,
        threshold=threshold,
    )


__all__ = [
    "expense_key",
    "revenue_key",
    "key_for",
    "InBatchDetector",
    "CrossRunMatch",
    "CrossRunDetector",
    "history_window",
    "reconcile",
    "RECONCILIATION_THRESHOLD",
]

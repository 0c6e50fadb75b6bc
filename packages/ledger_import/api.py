"""Public API for the ``ledger_import`` package.

``import_transactions`` runs the importer over already-parsed rows;
``import_csv`` reads an export file first. Both default to the SQL
collaborators from :mod:`ledger_import.persistence` and write the two ledgers
through ``insert_many`` unless ``persist=False``.

:mod:`ledger_import.persistence` is imported only when no ``sources`` are
given. The placeholder ids still come from :mod:`db.models.ledger` through
:mod:`ledger_import.settings`, so importing the package loads SQLAlchemy.
"""

from __future__ import annotations

import uuid
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, replace
from datetime import date
from pathlib import Path
from typing import Any

from .importer import TransactionImporter
from .logging_setup import get_logger
from .models import ImportResult, PayeeDraft, PayeeRecord, RawTransactionRow
from .normalizers import load_transaction_csv
from .settings import ImportSettings
from .sources import EntityRegistry, ImportSources

_logger = get_logger("ledger_import.api")


@dataclass(frozen=True, slots=True)
class DryRunPayeeRegistry:
    """Reads from a real registry but never writes to it.

    ``create`` hands out a fresh local id so the run can still link later
    rows to the would-be payee.
    """

    inner: EntityRegistry[PayeeRecord, PayeeDraft]

    def list_all(self) -> list[PayeeRecord]:
        return self.inner.list_all()

    def create(self, draft: PayeeDraft) -> str:
        return f"dry-run-{uuid.uuid4()}"


def persist_result(sources: ImportSources, result: ImportResult) -> tuple[int, int]:
    """Write both ledgers of ``result``; returns ``(expenses_written, revenues_written)``."""

    expenses = sources.expenses.insert_many(result.expenses) if result.expenses else 0
    revenues = sources.revenues.insert_many(result.revenues) if result.revenues else 0
    return expenses, revenues


def import_transactions(
    rows: Iterable[RawTransactionRow | Mapping[str, Any]],
    *,
    sources: ImportSources | None = None,
    database_url: str | None = None,
    settings: ImportSettings | None = None,
    import_batch_id: str | None = None,
    override_dedup: Iterable[str] = (),
    persist: bool = True,
    today: date | None = None,
) -> ImportResult:
    """Import export rows and (optionally) persist the resulting ledgers.

    Parameters
    ----------
    rows:
        Export rows keyed by column name.
    sources:
        Collaborators to read from and write to. Defaults to
        :func:`~ledger_import.persistence.sql_sources` for ``database_url``.
    settings:
        Thresholds and placeholders; defaults to :meth:`ImportSettings.from_env`.
    persist:
        When ``False`` nothing is written: new payees get local ids and the
        ledgers are only returned.
    """

    if sources is None:
        from .persistence import sql_sources

        sources = sql_sources(database_url)
    if not persist:
        sources = replace(sources, payees=DryRunPayeeRegistry(sources.payees))

    importer = TransactionImporter(sources, settings or ImportSettings.from_env())
    result = importer.run(
        rows,
        import_batch_id=import_batch_id,
        override_dedup=frozenset(override_dedup),
        today=today,
    )
    if persist:
        written = persist_result(sources, result)
        _logger.info("Persisted %d expenses and %d revenues", *written)
    return result


def import_csv(csv_path: Path | str, **kwargs: Any) -> ImportResult:
    """Load an export CSV and pass its rows to :func:`import_transactions`."""

    rows = load_transaction_csv(csv_path)
    return import_transactions(rows, **kwargs)


__all__ = ["DryRunPayeeRegistry", "persist_result", "import_transactions", "import_csv"]

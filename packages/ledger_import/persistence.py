# ruff: noqa: I001
"""SQL-backed collaborators for the importer.

Implements the :mod:`ledger_import.sources` protocols over the shared database
owned by ``libs/db``: ORM models from ``db.models.ledger`` and sessions from
``db.client.session_scope``. Every call opens its own short-lived session so
the classes are safe to use from the prefetch worker threads.

Ledger writes are idempotent: rows carrying an external id are inserted with
``INSERT ... ON CONFLICT DO NOTHING`` against the partial unique index on
``external_id`` (PostgreSQL and SQLite).
"""

from __future__ import annotations

import uuid
from collections.abc import Iterable, Sequence
from dataclasses import asdict
from datetime import date
from decimal import ROUND_HALF_UP, Decimal
from typing import Any

from sqlalchemy import insert, select, text
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.orm import Session

from db.client import session_scope
from db.models.ledger import (
    AccountMapping,
    Client,
    Expense,
    Payee,
    Project,
    ProjectAlias as ProjectAliasRow,
    Revenue,
)

from .logging_setup import get_logger
from .models import (
    AccountMappingRule,
    ClientRecord,
    ExistingRecord,
    ExpenseRecord,
    Ledger,
    PayeeDraft,
    PayeeRecord,
    PayeeType,
    ProjectAlias,
    ProjectRecord,
    RevenueRecord,
)
from .sources import ImportSources

_logger = get_logger("ledger_import.persistence")

# Keeps multi-row statements under SQLite's bound-parameter limit
_CHUNK = 200


def _chunks[T](items: Sequence[T], size: int = _CHUNK) -> Iterable[Sequence[T]]:
    for i in range(0, len(items), size):
        yield items[i : i + size]


def _to_decimal_2(value: Any) -> Decimal:
    return Decimal(str(value)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)


class _SqlSource:
    def __init__(self, database_url: str | None = None) -> None:
        self.database_url = database_url

    def _session(self):
        return session_scope(database_url=self.database_url)


# ---------------------------------------------------------------------------
# Registries and reference tables
# ---------------------------------------------------------------------------


class SqlPayeeRegistry(_SqlSource):
    def list_all(self) -> list[PayeeRecord]:
        with self._session() as session:
            rows = session.execute(select(Payee).where(Payee.is_active.is_(True))).scalars()
            return [
                PayeeRecord(
                    id=p.id,
                    payee_name=p.payee_name,
                    full_name=p.full_name,
                    payee_type=PayeeType(p.payee_type),
                )
                for p in rows
            ]

    def create(self, draft: PayeeDraft) -> str:
        payee_id = str(uuid.uuid4())
        with self._session() as session:
            session.add(
                Payee(
                    id=payee_id,
                    payee_name=draft.payee_name,
                    payee_type=draft.payee_type.value,
                    provides_labor=draft.provides_labor,
                    provides_materials=draft.provides_materials,
                    requires_1099=draft.requires_1099,
                    terms=draft.terms,
                    is_active=draft.is_active,
                )
            )
        return payee_id


class SqlClientRegistry(_SqlSource):
    def list_all(self) -> list[ClientRecord]:
        with self._session() as session:
            rows = session.execute(select(Client).where(Client.is_active.is_(True))).scalars()
            return [ClientRecord(c.id, c.client_name, c.company_name) for c in rows]


class SqlProjectSource(_SqlSource):
    def list_all(self) -> list[ProjectRecord]:
        with self._session() as session:
            rows = session.execute(select(Project)).scalars()
            return [ProjectRecord(p.id, p.project_number, p.project_name) for p in rows]


class SqlProjectAliasSource(_SqlSource):
    def list_all(self) -> list[ProjectAlias]:
        with self._session() as session:
            stmt = select(ProjectAliasRow).where(ProjectAliasRow.is_active.is_(True))
            return [
                ProjectAlias(
                    id=a.id,
                    project_id=a.project_id,
                    alias=a.alias,
                    match_type=a.match_type,  # type: ignore[arg-type]
                    is_active=a.is_active,
                )
                for a in session.execute(stmt).scalars()
            ]


class SqlAccountMappingSource(_SqlSource):
    def list_all(self) -> list[AccountMappingRule]:
        with self._session() as session:
            rows = session.execute(select(AccountMapping)).scalars()
            return [
                AccountMappingRule(
                    account_full_path=m.account_full_path,
                    app_category=m.app_category,
                    account_name=m.account_name,
                    is_active=m.is_active,
                )
                for m in rows
            ]


# ---------------------------------------------------------------------------
# Ledger stores
# ---------------------------------------------------------------------------


def _insert_ignoring_external_id_conflicts(
    session: Session, model: type[Expense] | type[Revenue], rows: list[dict[str, Any]]
) -> int:
    """Insert ``rows`` and return how many were written.

    Rows whose ``external_id`` already exists are skipped by the database
    where the dialect supports ``ON CONFLICT``; other dialects filter them
    with a lookup first.
    """

    dialect = session.get_bind().dialect.name
    written = 0
    for chunk in _chunks(rows):
        if dialect in ("postgresql", "sqlite"):
            ins = pg_insert if dialect == "postgresql" else sqlite_insert
            stmt = (
                ins(model)
                .values(list(chunk))
                .on_conflict_do_nothing(
                    index_elements=[model.external_id],
                    index_where=text("external_id IS NOT NULL"),
                )
                .returning(model.id)
            )
            written += len(session.execute(stmt).all())
            continue

        ids = [r["external_id"] for r in chunk]
        known = set(
            session.execute(select(model.external_id).where(model.external_id.in_(ids))).scalars()
        )
        fresh = [r for r in chunk if r["external_id"] not in known]
        if fresh:
            session.execute(insert(model), fresh)
        written += len(fresh)
    return written


class _SqlLedgerStore[R](_SqlSource):
    ledger: Ledger
    model: type[Expense] | type[Revenue]

    def _history_select(self):
        raise NotImplementedError

    def _to_existing(self, row: Any, name: str | None) -> ExistingRecord:
        raise NotImplementedError

    def _to_values(self, record: R) -> dict[str, Any]:
        values = asdict(record)  # type: ignore[call-overload]
        values["id"] = str(uuid.uuid4())
        values["amount"] = _to_decimal_2(values["amount"])
        return values

    def query_by_external_id(self, ids: Sequence[str]) -> dict[str, ExistingRecord]:
        wanted = list(dict.fromkeys(i for i in ids if i))
        out: dict[str, ExistingRecord] = {}
        if not wanted:
            return out
        with self._session() as session:
            for chunk in _chunks(wanted):
                stmt = self._history_select().where(self.model.external_id.in_(list(chunk)))
                for row, name in session.execute(stmt).all():
                    out[row.external_id] = self._to_existing(row, name)
        return out

    def query_by_date_range(self, start: date, end: date) -> list[ExistingRecord]:
        date_col = self._date_column()
        with self._session() as session:
            stmt = self._history_select().where(date_col >= start, date_col <= end)
            return [self._to_existing(row, name) for row, name in session.execute(stmt).all()]

    def _date_column(self):
        raise NotImplementedError

    def insert_many(self, records: Iterable[R]) -> int:
        with_eid: list[dict[str, Any]] = []
        without_eid: list[dict[str, Any]] = []
        seen: set[str] = set()
        for record in records:
            values = self._to_values(record)
            eid = values.get("external_id")
            if eid:
                # Same external id twice in one call: keep the first
                if eid in seen:
                    continue
                seen.add(eid)
                with_eid.append(values)
            else:
                without_eid.append(values)

        with self._session() as session:
            written = 0
            if with_eid:
                written += _insert_ignoring_external_id_conflicts(session, self.model, with_eid)
            for chunk in _chunks(without_eid):
                session.execute(insert(self.model), list(chunk))
                written += len(chunk)
        _logger.info(
            "Wrote %d of %d %s records", written, len(with_eid) + len(without_eid), self.ledger
        )
        return written


class SqlExpenseStore(_SqlLedgerStore[ExpenseRecord]):
    ledger = Ledger.COST
    model = Expense

    def _date_column(self):
        return Expense.expense_date

    def _history_select(self):
        return select(Expense, Payee.payee_name).outerjoin(Payee, Expense.payee_id == Payee.id)

    def _to_existing(self, row: Expense, name: str | None) -> ExistingRecord:
        return ExistingRecord(
            id=row.id,
            ledger=Ledger.COST,
            date=row.expense_date,
            amount=_to_decimal_2(row.amount),
            description=row.description,
            counterparty_name=name,
            external_id=row.external_id,
            category=row.category,
            is_split=bool(row.is_split),
        )

    def _to_values(self, record: ExpenseRecord) -> dict[str, Any]:
        values = super()._to_values(record)
        values["transaction_type"] = record.transaction_type.value
        values["category"] = str(record.category)
        return values


class SqlRevenueStore(_SqlLedgerStore[RevenueRecord]):
    ledger = Ledger.REVENUE
    model = Revenue

    def _date_column(self):
        return Revenue.invoice_date

    def _history_select(self):
        return select(Revenue, Client.client_name).outerjoin(Client, Revenue.client_id == Client.id)

    def _to_existing(self, row: Revenue, name: str | None) -> ExistingRecord:
        return ExistingRecord(
            id=row.id,
            ledger=Ledger.REVENUE,
            date=row.invoice_date,
            amount=_to_decimal_2(row.amount),
            description=row.description,
            counterparty_name=name,
            invoice_number=row.invoice_number,
            external_id=row.external_id,
        )


def sql_sources(database_url: str | None = None) -> ImportSources:
    """Bundle every SQL collaborator for ``database_url`` (``DATABASE_URL`` when ``None``)."""

    return ImportSources(
        payees=SqlPayeeRegistry(database_url),
        clients=SqlClientRegistry(database_url),
        projects=SqlProjectSource(database_url),
        project_aliases=SqlProjectAliasSource(database_url),
        account_mappings=SqlAccountMappingSource(database_url),
        expenses=SqlExpenseStore(database_url),
        revenues=SqlRevenueStore(database_url),
    )


__all__ = [
    "SqlPayeeRegistry",
    "SqlClientRegistry",
    "SqlProjectSource",
    "SqlProjectAliasSource",
    "SqlAccountMappingSource",
    "SqlExpenseStore",
    "SqlRevenueStore",
    "sql_sources",
]

"""Collaborator interfaces consumed by the importer.

The engine never talks to a database directly. It reads registries,
reference tables and ledger history through these protocols and writes new
payees through :meth:`EntityRegistry.create`. ``ledger_import.persistence``
provides the SQL-backed implementations; tests use in-memory ones.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from datetime import date
from typing import Protocol

from .models import (
    AccountMappingRule,
    ClientRecord,
    ExistingRecord,
    ExpenseRecord,
    PayeeDraft,
    PayeeRecord,
    ProjectAlias,
    ProjectRecord,
    RevenueRecord,
)


class ReferenceSource[T](Protocol):
    def list_all(self) -> list[T]: ...


class EntityRegistry[T, D](Protocol):
    def list_all(self) -> list[T]: ...

    def create(self, draft: D) -> str:
        """Persist a new entity and return its id."""
        ...


class TransactionStore[R](Protocol):
    def query_by_external_id(self, ids: Sequence[str]) -> dict[str, ExistingRecord]: ...

    def query_by_date_range(self, start: date, end: date) -> list[ExistingRecord]: ...

    def insert_many(self, records: Iterable[R]) -> int:
        """Insert records, skipping external ids already stored; return rows written."""
        ...


@dataclass(frozen=True, slots=True)
class ImportSources:
    """Everything one import run reads from or writes to."""

    payees: EntityRegistry[PayeeRecord, PayeeDraft]
    clients: ReferenceSource[ClientRecord]
    projects: ReferenceSource[ProjectRecord]
    project_aliases: ReferenceSource[ProjectAlias]
    account_mappings: ReferenceSource[AccountMappingRule]
    expenses: TransactionStore[ExpenseRecord]
    revenues: TransactionStore[RevenueRecord]


__all__ = ["ReferenceSource", "EntityRegistry", "TransactionStore", "ImportSources"]

"""Shared SQLAlchemy models registry for the workspace database.

Currently includes the ledger domain models used by ``ledger_import``.
"""

from .ledger import (
    UNASSIGNED_CLIENT_ID,
    UNASSIGNED_PROJECT_ID,
    AccountMapping,
    Base,
    Client,
    Expense,
    Payee,
    Project,
    ProjectAlias,
    Revenue,
)

__all__ = [
    "Base",
    "Payee",
    "Client",
    "Project",
    "ProjectAlias",
    "AccountMapping",
    "Expense",
    "Revenue",
    "UNASSIGNED_CLIENT_ID",
    "UNASSIGNED_PROJECT_ID",
]

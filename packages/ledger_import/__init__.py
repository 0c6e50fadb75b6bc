"""Public interface for the ``ledger_import`` package.

Re-exports the import entry points, the orchestrator and the public
models/types as the stable import surface. There is no runtime logic here.
"""

from .api import import_csv, import_transactions, persist_result
from .errors import CsvFormatError, LedgerImportError, ReferenceDataError
from .importer import TransactionImporter
from .models import (
    ExpenseCategory,
    ExpenseRecord,
    ImportResult,
    ImportSummary,
    Ledger,
    NormalizedTransaction,
    PayeeType,
    RawTransactionRow,
    RevenueRecord,
    TransactionType,
)
from .settings import ImportSettings
from .sources import ImportSources

__all__ = [
    # API
    "import_csv",
    "import_transactions",
    "persist_result",
    "TransactionImporter",
    "ImportSettings",
    "ImportSources",
    # Errors
    "LedgerImportError",
    "CsvFormatError",
    "ReferenceDataError",
    # Models
    "ExpenseCategory",
    "ExpenseRecord",
    "ImportResult",
    "ImportSummary",
    "Ledger",
    "NormalizedTransaction",
    "PayeeType",
    "RawTransactionRow",
    "RevenueRecord",
    "TransactionType",
]

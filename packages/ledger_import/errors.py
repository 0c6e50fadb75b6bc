"""Exceptions raised by the import engine.

Row-level problems never surface here: they are recovered in place (parse
defaults) or recorded on the :class:`~ledger_import.models.ImportResult`.
Only conditions that make a whole run unsafe are raised to the caller.
"""

from __future__ import annotations


class LedgerImportError(Exception):
    """Base class for run-level import failures."""


class CsvFormatError(LedgerImportError):
    """The export could not be read as a transaction CSV (bad or missing header)."""


class ReferenceDataError(LedgerImportError):
    """A registry, reference table or history lookup failed during prefetch.

    The run is aborted before any row is processed because resolution,
    classification and cross-run deduplication all depend on these tables.
    """

    def __init__(self, source: str, cause: BaseException) -> None:
        super().__init__(f"failed to load {source}: {cause}")
        self.source = source
        self.cause = cause


__all__ = ["LedgerImportError", "CsvFormatError", "ReferenceDataError"]

"""Data models for ``ledger_import``.

Three groups of types live here:

- Input: :class:`RawTransactionRow` (validated view of one export row keyed by
  the exact export column names) and :class:`NormalizedTransaction` (typed
  projection produced by :mod:`ledger_import.normalizers`).
- Reference/registry records: explicit, tagged records per entity kind
  (payee, client, project, project alias, account mapping rule) instead of
  free-form mappings.
- Output: the ledger records ready for insertion and the immutable
  :class:`ImportResult` returned by the importer, plus the small detail records
  it carries for triage (duplicates, reviews, unmapped accounts, ...).

Amounts are ``Decimal`` quantized to cents and always non-negative; the sign
seen in the export is kept only as a flag and never participates in identity.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from enum import StrEnum
from typing import Any, Literal, Protocol

from pydantic import BaseModel, ConfigDict, Field, field_validator

# ---------------------------------------------------------------------------
# Enumerations
# ---------------------------------------------------------------------------


class Ledger(StrEnum):
    COST = "cost"
    REVENUE = "revenue"


class TransactionType(StrEnum):
    BILL = "bill"
    CHECK = "check"
    # Generic expense (the export's "Expense" rows and anything unrecognized)
    EXPENSE = "expense"
    INVOICE = "invoice"

    @property
    def ledger(self) -> Ledger:
        return Ledger.REVENUE if self is TransactionType.INVOICE else Ledger.COST


class ExpenseCategory(StrEnum):
    LABOR_INTERNAL = "labor_internal"
    SUBCONTRACTORS = "subcontractors"
    MATERIALS = "materials"
    EQUIPMENT = "equipment"
    PERMITS = "permits"
    MANAGEMENT = "management"
    TOOLS = "tools"
    SOFTWARE = "software"
    VEHICLE_MAINTENANCE = "vehicle_maintenance"
    GAS = "gas"
    MEALS = "meals"
    OTHER = "other"


class PayeeType(StrEnum):
    SUBCONTRACTOR = "subcontractor"
    MATERIAL_SUPPLIER = "material_supplier"
    EQUIPMENT_RENTAL = "equipment_rental"
    PERMIT_AUTHORITY = "permit_authority"
    OTHER = "other"


class MatchKind(StrEnum):
    EXACT = "exact"
    FUZZY = "fuzzy"


class ClassificationSource(StrEnum):
    """Which tier of the category cascade resolved a cost row."""

    DATABASE = "database"
    STATIC = "static"
    DESCRIPTION = "description"
    DEFAULT = "default"


type AliasMatchType = Literal["exact", "starts_with", "contains"]
type DuplicateMatchPath = Literal["external_id", "composite_key"]


# ---------------------------------------------------------------------------
# Input rows
# ---------------------------------------------------------------------------


class RawTransactionRow(BaseModel):
    """One row of the ledger export.

    Aliases are the export's column headers, matched exactly and
    case-sensitively. Missing columns read as ``""``; unknown columns are kept
    as extras so nothing in the source row is lost.
    """

    model_config = ConfigDict(
        extra="allow", populate_by_name=True, str_strip_whitespace=True, frozen=True
    )

    date: str = Field("", alias="Date")
    amount: str = Field("", alias="Amount")
    name: str = Field("", alias="Name")
    transaction_type: str = Field("", alias="Transaction type")
    account_full_name: str = Field("", alias="Account full name")
    account_name: str = Field("", alias="Account name")
    invoice_number: str = Field("", alias="Invoice #")
    project_code: str = Field("", alias="Project/WO #")
    external_id: str = Field("", alias="QB_Transaction_Id")

    @field_validator(
        "date",
        "amount",
        "name",
        "transaction_type",
        "account_full_name",
        "account_name",
        "invoice_number",
        "project_code",
        "external_id",
        mode="before",
    )
    @classmethod
    def _coerce_cell(cls, v: Any) -> str:
        if v is None:
            return ""
        return v if isinstance(v, str) else str(v)


@dataclass(frozen=True, slots=True)
class NormalizedTransaction:
    """Typed projection of a :class:`RawTransactionRow`.

    ``row_number`` is the 1-based position of the row in the input batch and
    is used in duplicate reasons, warnings and error messages.
    """

    row_number: int
    date: date
    amount: Decimal
    counterparty_name: str
    transaction_type: TransactionType
    negative: bool = False
    account_path: str | None = None
    account_name: str | None = None
    invoice_number: str | None = None
    project_code: str | None = None
    external_id: str | None = None
    date_defaulted: bool = False
    warnings: tuple[str, ...] = ()

    @property
    def ledger(self) -> Ledger:
        return self.transaction_type.ledger


# ---------------------------------------------------------------------------
# Registry and reference records
# ---------------------------------------------------------------------------


class NamedEntity(Protocol):
    """Anything the resolver can match a free-text name against."""

    @property
    def id(self) -> str: ...

    @property
    def display_name(self) -> str: ...

    def name_variants(self) -> tuple[str, ...]: ...


@dataclass(frozen=True, slots=True)
class PayeeRecord:
    id: str
    payee_name: str
    full_name: str | None = None
    payee_type: PayeeType = PayeeType.OTHER

    @property
    def display_name(self) -> str:
        return self.payee_name

    def name_variants(self) -> tuple[str, ...]:
        if self.full_name and self.full_name.strip():
            return (self.payee_name, self.full_name)
        return (self.payee_name,)


@dataclass(frozen=True, slots=True)
class ClientRecord:
    id: str
    client_name: str
    company_name: str | None = None

    @property
    def display_name(self) -> str:
        return self.client_name

    def name_variants(self) -> tuple[str, ...]:
        if self.company_name and self.company_name.strip():
            return (self.client_name, self.company_name)
        return (self.client_name,)


@dataclass(frozen=True, slots=True)
class ProjectRecord:
    id: str
    project_number: str
    project_name: str | None = None


@dataclass(frozen=True, slots=True)
class ProjectAlias:
    id: str
    project_id: str
    alias: str
    match_type: AliasMatchType = "exact"
    is_active: bool = True


@dataclass(frozen=True, slots=True)
class AccountMappingRule:
    """Administrator-defined mapping from an account path to a cost category."""

    account_full_path: str
    app_category: str
    account_name: str | None = None
    is_active: bool = True


@dataclass(frozen=True, slots=True)
class PayeeDraft:
    """Creation request sent to the payee registry on a resolver miss."""

    payee_name: str
    payee_type: PayeeType
    provides_labor: bool = False
    provides_materials: bool = False
    requires_1099: bool = False
    terms: str = "Net 30"
    is_active: bool = True


# ---------------------------------------------------------------------------
# Matching
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class MatchCandidate[E: NamedEntity]:
    entity: E
    confidence: float
    kind: MatchKind


@dataclass(frozen=True, slots=True)
class ResolveResult[E: NamedEntity]:
    query: str
    candidates: tuple[MatchCandidate[E], ...] = ()
    best: MatchCandidate[E] | None = None


@dataclass(frozen=True, slots=True)
class ProjectMatch:
    project_id: str
    confidence: float
    match_kind: Literal[
        "exact_number", "exact_name", "alias_exact", "alias_starts_with", "alias_contains", "prefix"
    ]


@dataclass(frozen=True, slots=True)
class ProjectSuggestion:
    project_id: str
    project_number: str
    confidence: float


@dataclass(frozen=True, slots=True)
class Classification:
    category: str
    source: ClassificationSource


# ---------------------------------------------------------------------------
# Persisted history and output ledgers
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class ExistingRecord:
    """A previously imported ledger row as seen by the cross-run detector."""

    id: str
    ledger: Ledger
    date: date
    amount: Decimal
    description: str | None = None
    # Joined payee/client name, when the row is linked to one
    counterparty_name: str | None = None
    invoice_number: str | None = None
    external_id: str | None = None
    # Cost rows only; labor and split parents stay out of reconciliation totals
    category: str | None = None
    is_split: bool = False


@dataclass(frozen=True, slots=True)
class ExpenseRecord:
    project_id: str
    description: str
    category: str
    transaction_type: TransactionType
    amount: Decimal
    expense_date: date
    payee_id: str | None = None
    account_name: str | None = None
    account_full_name: str | None = None
    external_id: str | None = None
    import_batch_id: str | None = None


@dataclass(frozen=True, slots=True)
class RevenueRecord:
    project_id: str
    amount: Decimal
    invoice_date: date
    description: str
    client_id: str | None = None
    invoice_number: str | None = None
    account_name: str | None = None
    account_full_name: str | None = None
    external_id: str | None = None
    import_batch_id: str | None = None


# ---------------------------------------------------------------------------
# Result detail records
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class InBatchDuplicate:
    transaction: NormalizedTransaction
    key: str
    reason: str
    first_row_number: int


@dataclass(frozen=True, slots=True)
class DatabaseDuplicate:
    transaction: NormalizedTransaction
    existing_id: str
    match_key: str
    matched_by: DuplicateMatchPath


@dataclass(frozen=True, slots=True)
class ReimportedDuplicate:
    transaction: NormalizedTransaction
    existing_id: str
    match_key: str
    ledger: Ledger


@dataclass(frozen=True, slots=True)
class AutoCreatedPayee:
    name: str
    payee_id: str
    payee_type: PayeeType


@dataclass(frozen=True, slots=True)
class EntityMatchInfo:
    name: str
    entity_id: str
    entity_name: str
    confidence: float
    match_type: Literal["exact", "fuzzy", "auto"]


@dataclass(frozen=True, slots=True)
class ReviewSuggestion:
    entity_id: str
    entity_name: str
    confidence: float


@dataclass(frozen=True, slots=True)
class PendingReview:
    """A counterparty name whose best candidate fell in the manual-review band."""

    name: str
    entity_type: Literal["payee", "client"]
    suggestions: tuple[ReviewSuggestion, ...]
    account_full_name: str | None = None
    suggested_payee_type: PayeeType | None = None


@dataclass(frozen=True, slots=True)
class MappingStats:
    database_mapped: int = 0
    static_mapped: int = 0
    description_mapped: int = 0
    unmapped: int = 0

    @classmethod
    def from_counts(cls, counts: Mapping[ClassificationSource, int]) -> MappingStats:
        return cls(
            database_mapped=counts.get(ClassificationSource.DATABASE, 0),
            static_mapped=counts.get(ClassificationSource.STATIC, 0),
            description_mapped=counts.get(ClassificationSource.DESCRIPTION, 0),
            unmapped=counts.get(ClassificationSource.DEFAULT, 0),
        )

    @property
    def total(self) -> int:
        return self.database_mapped + self.static_mapped + self.description_mapped + self.unmapped


@dataclass(frozen=True, slots=True)
class UnmappedAccount:
    account_full_name: str
    transaction_count: int
    total_amount: Decimal
    suggested_category: str | None = None


@dataclass(frozen=True, slots=True)
class UnmatchedProject:
    project_code: str
    transaction_count: int
    total_amount: Decimal
    suggestions: tuple[ProjectSuggestion, ...] = ()


@dataclass(frozen=True, slots=True)
class MatchLogEntry:
    name: str
    matched_entity: str | None
    entity_type: Literal["payee", "client", "project", "account", "category"]
    confidence: float
    decision: Literal[
        "auto_matched",
        "alias_matched",
        "created",
        "create_failed",
        "pending_review",
        "unmatched",
        "mapped",
        "user_override",
    ]
    algorithm: str


@dataclass(frozen=True, slots=True)
class Reconciliation:
    """Existing-vs-duplicate totals for one ledger's cross-run duplicates."""

    existing_total: Decimal
    duplicate_total: Decimal
    difference: Decimal
    is_aligned: bool
    threshold: Decimal = Decimal("0.01")


# ---------------------------------------------------------------------------
# Import result
# ---------------------------------------------------------------------------


class ImportSummary(BaseModel):
    """Counts-only view of an :class:`ImportResult` (CLI/JSON friendly)."""

    model_config = ConfigDict(strict=True, extra="forbid")

    import_batch_id: str | None
    total_rows: int
    expenses: int
    revenues: int
    unassociated_expenses: int
    unassociated_revenues: int
    unassigned_client_revenues: int
    in_batch_duplicates_skipped: int
    database_duplicates_skipped: int
    revenue_in_batch_duplicates_skipped: int
    revenue_database_duplicates_skipped: int
    reimported_duplicates: int
    auto_created_payees: int
    pending_payee_reviews: int
    pending_client_reviews: int
    mapping_stats: dict[str, int]
    unmapped_accounts: list[str]
    warnings: int
    errors: list[str]


@dataclass(frozen=True, slots=True)
class ImportResult:
    """Outcome of one import run.

    Built once at the end of the run from the importer's private accumulator.
    Every input row is accounted for exactly once: imported into one of the two
    ledgers, skipped as a duplicate (in-batch or cross-run), or reported in
    ``errors``.
    """

    total_rows: int
    expenses: tuple[ExpenseRecord, ...] = ()
    revenues: tuple[RevenueRecord, ...] = ()
    unassociated_expenses: int = 0
    unassociated_revenues: int = 0
    unassigned_client_revenues: int = 0
    in_batch_duplicates: tuple[InBatchDuplicate, ...] = ()
    revenue_in_batch_duplicates: tuple[InBatchDuplicate, ...] = ()
    database_duplicates: tuple[DatabaseDuplicate, ...] = ()
    revenue_database_duplicates: tuple[DatabaseDuplicate, ...] = ()
    reimported_duplicates: tuple[ReimportedDuplicate, ...] = ()
    auto_created_payees: tuple[AutoCreatedPayee, ...] = ()
    payee_matches: tuple[EntityMatchInfo, ...] = ()
    client_matches: tuple[EntityMatchInfo, ...] = ()
    pending_payee_reviews: tuple[PendingReview, ...] = ()
    pending_client_reviews: tuple[PendingReview, ...] = ()
    mapping_stats: MappingStats = field(default_factory=MappingStats)
    unmapped_accounts: tuple[str, ...] = ()
    unmapped_account_details: tuple[UnmappedAccount, ...] = ()
    unmatched_projects: tuple[UnmatchedProject, ...] = ()
    category_mappings_used: Mapping[str, str] = field(default_factory=dict)
    match_log: tuple[MatchLogEntry, ...] = ()
    reconciliation: Reconciliation | None = None
    revenue_reconciliation: Reconciliation | None = None
    warnings: tuple[str, ...] = ()
    errors: tuple[str, ...] = ()
    import_batch_id: str | None = None

    # Convenience counters ---------------------------------------------------

    @property
    def in_batch_duplicates_skipped(self) -> int:
        return len(self.in_batch_duplicates)

    @property
    def revenue_in_batch_duplicates_skipped(self) -> int:
        return len(self.revenue_in_batch_duplicates)

    @property
    def database_duplicates_skipped(self) -> int:
        return len(self.database_duplicates)

    @property
    def revenue_database_duplicates_skipped(self) -> int:
        return len(self.revenue_database_duplicates)

    @property
    def auto_created_count(self) -> int:
        return len(self.auto_created_payees)

    def accounted_rows(self) -> int:
        """Imported + skipped + errored rows; equals ``total_rows`` for every run."""

        return (
            len(self.expenses)
            + len(self.revenues)
            + self.in_batch_duplicates_skipped
            + self.revenue_in_batch_duplicates_skipped
            + self.database_duplicates_skipped
            + self.revenue_database_duplicates_skipped
            + len(self.errors)
        )

    def to_summary(self) -> ImportSummary:
        return ImportSummary(
            import_batch_id=self.import_batch_id,
            total_rows=self.total_rows,
            expenses=len(self.expenses),
            revenues=len(self.revenues),
            unassociated_expenses=self.unassociated_expenses,
            unassociated_revenues=self.unassociated_revenues,
            unassigned_client_revenues=self.unassigned_client_revenues,
            in_batch_duplicates_skipped=self.in_batch_duplicates_skipped,
            database_duplicates_skipped=self.database_duplicates_skipped,
            revenue_in_batch_duplicates_skipped=self.revenue_in_batch_duplicates_skipped,
            revenue_database_duplicates_skipped=self.revenue_database_duplicates_skipped,
            reimported_duplicates=len(self.reimported_duplicates),
            auto_created_payees=self.auto_created_count,
            pending_payee_reviews=len(self.pending_payee_reviews),
            pending_client_reviews=len(self.pending_client_reviews),
            mapping_stats={
                "database_mapped": self.mapping_stats.database_mapped,
                "static_mapped": self.mapping_stats.static_mapped,
                "description_mapped": self.mapping_stats.description_mapped,
                "unmapped": self.mapping_stats.unmapped,
            },
            unmapped_accounts=list(self.unmapped_accounts),
            warnings=len(self.warnings),
            errors=list(self.errors),
        )


__all__ = [
    "Ledger",
    "TransactionType",
    "ExpenseCategory",
    "PayeeType",
    "MatchKind",
    "ClassificationSource",
    "RawTransactionRow",
    "NormalizedTransaction",
    "NamedEntity",
    "PayeeRecord",
    "ClientRecord",
    "ProjectRecord",
    "ProjectAlias",
    "AccountMappingRule",
    "PayeeDraft",
    "MatchCandidate",
    "ResolveResult",
    "ProjectMatch",
    "ProjectSuggestion",
    "Classification",
    "ExistingRecord",
    "ExpenseRecord",
    "RevenueRecord",
    "InBatchDuplicate",
    "DatabaseDuplicate",
    "ReimportedDuplicate",
    "AutoCreatedPayee",
    "EntityMatchInfo",
    "ReviewSuggestion",
    "PendingReview",
    "MappingStats",
    "UnmappedAccount",
    "UnmatchedProject",
    "MatchLogEntry",
    "Reconciliation",
    "ImportSummary",
    "ImportResult",
]

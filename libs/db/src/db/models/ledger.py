from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Numeric,
    String,
    Text,
    func,
    text,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

# Reserved placeholder rows. Seeded by migration 0001 and referenced by the
# importer when a transaction cannot be associated with a project or client.
UNASSIGNED_CLIENT_ID = "00000000-0000-0000-0000-000000000001"
UNASSIGNED_PROJECT_ID = "00000000-0000-0000-0000-000000000002"


class Base(DeclarativeBase):
    pass


# ---------------------------
# Registries: payees, clients
# ---------------------------


class Payee(Base):
    __tablename__ = "payees"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    payee_name: Mapped[str] = mapped_column(Text, nullable=False)
    # Optional long-form variant; matched alongside payee_name.
    full_name: Mapped[str | None] = mapped_column(Text, nullable=True)
    payee_type: Mapped[str] = mapped_column(
        String, nullable=False, server_default=text("'other'")
    )
    provides_labor: Mapped[bool] = mapped_column(
        Boolean, nullable=False, server_default=text("false")
    )
    provides_materials: Mapped[bool] = mapped_column(
        Boolean, nullable=False, server_default=text("false")
    )
    requires_1099: Mapped[bool] = mapped_column(
        Boolean, nullable=False, server_default=text("false")
    )
    terms: Mapped[str | None] = mapped_column(String, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, server_default=text("true"))
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )

    __table_args__ = (
        CheckConstraint(
            "payee_type in ('subcontractor','material_supplier','equipment_rental',"
            "'permit_authority','other')",
            name="ck_payees_payee_type",
        ),
    )


class Client(Base):
    __tablename__ = "clients"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    client_name: Mapped[str] = mapped_column(Text, nullable=False)
    company_name: Mapped[str | None] = mapped_column(Text, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, server_default=text("true"))
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )


# ---------------------------
# Reference: projects, aliases, account mappings
# ---------------------------


class Project(Base):
    __tablename__ = "projects"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    project_number: Mapped[str] = mapped_column(String, nullable=False)
    project_name: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )


class ProjectAlias(Base):
    __tablename__ = "project_aliases"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    project_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("projects.id", ondelete="CASCADE"), nullable=False
    )
    alias: Mapped[str] = mapped_column(Text, nullable=False)
    match_type: Mapped[str] = mapped_column(
        String, nullable=False, server_default=text("'exact'")
    )
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, server_default=text("true"))

    __table_args__ = (
        CheckConstraint(
            "match_type in ('exact','starts_with','contains')",
            name="ck_project_aliases_match_type",
        ),
    )


class AccountMapping(Base):
    """Administrator-curated account path → cost category rules."""

    __tablename__ = "account_mappings"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    account_full_path: Mapped[str] = mapped_column(Text, nullable=False)
    account_name: Mapped[str | None] = mapped_column(Text, nullable=True)
    app_category: Mapped[str] = mapped_column(String, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, server_default=text("true"))
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )


# ---------------------------
# Ledgers: expenses, revenues
# ---------------------------


class Expense(Base):
    __tablename__ = "expenses"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    project_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("projects.id"), nullable=False
    )
    payee_id: Mapped[str | None] = mapped_column(
        String(36), ForeignKey("payees.id"), nullable=True
    )
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    category: Mapped[str] = mapped_column(String, nullable=False)
    transaction_type: Mapped[str] = mapped_column(String, nullable=False)
    # Always stored as an absolute value.
    amount: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False)
    expense_date: Mapped[date] = mapped_column(Date, nullable=False)
    account_name: Mapped[str | None] = mapped_column(Text, nullable=True)
    account_full_name: Mapped[str | None] = mapped_column(Text, nullable=True)
    external_id: Mapped[str | None] = mapped_column(String, nullable=True)
    import_batch_id: Mapped[str | None] = mapped_column(String, nullable=True)
    is_split: Mapped[bool] = mapped_column(Boolean, nullable=False, server_default=text("false"))
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )

    __table_args__ = (
        CheckConstraint("amount >= 0", name="ck_expenses_amount_non_negative"),
        CheckConstraint(
            "transaction_type in ('bill','check','expense')",
            name="ck_expenses_transaction_type",
        ),
        Index(
            "uniq_expenses_external_id",
            "external_id",
            unique=True,
            postgresql_where=text("external_id IS NOT NULL"),
            sqlite_where=text("external_id IS NOT NULL"),
        ),
        Index("ix_expenses_expense_date", "expense_date"),
    )


class Revenue(Base):
    __tablename__ = "revenues"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    project_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("projects.id"), nullable=False
    )
    client_id: Mapped[str | None] = mapped_column(
        String(36), ForeignKey("clients.id"), nullable=True
    )
    amount: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False)
    invoice_date: Mapped[date] = mapped_column(Date, nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    invoice_number: Mapped[str | None] = mapped_column(String, nullable=True)
    account_name: Mapped[str | None] = mapped_column(Text, nullable=True)
    account_full_name: Mapped[str | None] = mapped_column(Text, nullable=True)
    external_id: Mapped[str | None] = mapped_column(String, nullable=True)
    import_batch_id: Mapped[str | None] = mapped_column(String, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )

    __table_args__ = (
        CheckConstraint("amount >= 0", name="ck_revenues_amount_non_negative"),
        Index(
            "uniq_revenues_external_id",
            "external_id",
            unique=True,
            postgresql_where=text("external_id IS NOT NULL"),
            sqlite_where=text("external_id IS NOT NULL"),
        ),
        Index("ix_revenues_invoice_date", "invoice_date"),
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

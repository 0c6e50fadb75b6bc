# ruff: noqa: I001
"""Ledger core tables and placeholder rows.

Revision ID: 0001_ledger_core
Revises: None
Create Date: 2026-10-17
"""

from __future__ import annotations

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op


# revision identifiers, used by Alembic.
revision: str = "0001_ledger_core"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None

# Mirrors db.models.ledger
UNASSIGNED_CLIENT_ID = "00000000-0000-0000-0000-000000000001"
UNASSIGNED_PROJECT_ID = "00000000-0000-0000-0000-000000000002"


def _created_at() -> sa.Column:
    return sa.Column(
        "created_at",
        sa.DateTime(timezone=True),
        nullable=False,
        server_default=sa.func.now(),
    )


def upgrade() -> None:
    op.create_table(
        "payees",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("payee_name", sa.Text(), nullable=False),
        sa.Column("full_name", sa.Text(), nullable=True),
        sa.Column("payee_type", sa.String(), nullable=False, server_default=sa.text("'other'")),
        sa.Column("provides_labor", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column(
            "provides_materials", sa.Boolean(), nullable=False, server_default=sa.text("false")
        ),
        sa.Column("requires_1099", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("terms", sa.String(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        _created_at(),
        sa.CheckConstraint(
            "payee_type in ('subcontractor','material_supplier','equipment_rental',"
            "'permit_authority','other')",
            name="ck_payees_payee_type",
        ),
    )

    op.create_table(
        "clients",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("client_name", sa.Text(), nullable=False),
        sa.Column("company_name", sa.Text(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        _created_at(),
    )

    op.create_table(
        "projects",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("project_number", sa.String(), nullable=False),
        sa.Column("project_name", sa.Text(), nullable=True),
        _created_at(),
    )

    op.create_table(
        "project_aliases",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column(
            "project_id",
            sa.String(36),
            sa.ForeignKey("projects.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("alias", sa.Text(), nullable=False),
        sa.Column("match_type", sa.String(), nullable=False, server_default=sa.text("'exact'")),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.CheckConstraint(
            "match_type in ('exact','starts_with','contains')",
            name="ck_project_aliases_match_type",
        ),
    )

    op.create_table(
        "account_mappings",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("account_full_path", sa.Text(), nullable=False),
        sa.Column("account_name", sa.Text(), nullable=True),
        sa.Column("app_category", sa.String(), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        _created_at(),
    )

    op.create_table(
        "expenses",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("project_id", sa.String(36), sa.ForeignKey("projects.id"), nullable=False),
        sa.Column("payee_id", sa.String(36), sa.ForeignKey("payees.id"), nullable=True),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("category", sa.String(), nullable=False),
        sa.Column("transaction_type", sa.String(), nullable=False),
        sa.Column("amount", sa.Numeric(18, 2), nullable=False),
        sa.Column("expense_date", sa.Date(), nullable=False),
        sa.Column("account_name", sa.Text(), nullable=True),
        sa.Column("account_full_name", sa.Text(), nullable=True),
        sa.Column("external_id", sa.String(), nullable=True),
        sa.Column("import_batch_id", sa.String(), nullable=True),
        sa.Column("is_split", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        _created_at(),
        sa.CheckConstraint("amount >= 0", name="ck_expenses_amount_non_negative"),
        sa.CheckConstraint(
            "transaction_type in ('bill','check','expense')",
            name="ck_expenses_transaction_type",
        ),
    )
    op.create_index(
        "uniq_expenses_external_id",
        "expenses",
        ["external_id"],
        unique=True,
        postgresql_where=sa.text("external_id IS NOT NULL"),
        sqlite_where=sa.text("external_id IS NOT NULL"),
    )
    op.create_index("ix_expenses_expense_date", "expenses", ["expense_date"])

    op.create_table(
        "revenues",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("project_id", sa.String(36), sa.ForeignKey("projects.id"), nullable=False),
        sa.Column("client_id", sa.String(36), sa.ForeignKey("clients.id"), nullable=True),
        sa.Column("amount", sa.Numeric(18, 2), nullable=False),
        sa.Column("invoice_date", sa.Date(), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("invoice_number", sa.String(), nullable=True),
        sa.Column("account_name", sa.Text(), nullable=True),
        sa.Column("account_full_name", sa.Text(), nullable=True),
        sa.Column("external_id", sa.String(), nullable=True),
        sa.Column("import_batch_id", sa.String(), nullable=True),
        _created_at(),
        sa.CheckConstraint("amount >= 0", name="ck_revenues_amount_non_negative"),
    )
    op.create_index(
        "uniq_revenues_external_id",
        "revenues",
        ["external_id"],
        unique=True,
        postgresql_where=sa.text("external_id IS NOT NULL"),
        sqlite_where=sa.text("external_id IS NOT NULL"),
    )
    op.create_index("ix_revenues_invoice_date", "revenues", ["invoice_date"])

    # Placeholders for records that cannot be associated during import
    op.bulk_insert(
        sa.table(
            "projects",
            sa.column("id", sa.String()),
            sa.column("project_number", sa.String()),
            sa.column("project_name", sa.Text()),
        ),
        [
            {
                "id": UNASSIGNED_PROJECT_ID,
                "project_number": "000-UNASSIGNED",
                "project_name": "Unassigned",
            }
        ],
    )
    op.bulk_insert(
        sa.table(
            "clients",
            sa.column("id", sa.String()),
            sa.column("client_name", sa.Text()),
        ),
        [{"id": UNASSIGNED_CLIENT_ID, "client_name": "Unassigned Client"}],
    )


def downgrade() -> None:
    op.drop_index("ix_revenues_invoice_date", table_name="revenues")
    op.drop_index("uniq_revenues_external_id", table_name="revenues")
    op.drop_table("revenues")
    op.drop_index("ix_expenses_expense_date", table_name="expenses")
    op.drop_index("uniq_expenses_external_id", table_name="expenses")
    op.drop_table("expenses")
    op.drop_table("account_mappings")
    op.drop_table("project_aliases")
    op.drop_table("projects")
    op.drop_table("clients")
    op.drop_table("payees")

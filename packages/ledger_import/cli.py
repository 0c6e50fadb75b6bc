# ruff: noqa: I001
"""CLI for the ``ledger_import`` package.

Exposes a Typer app (console script ``ledger-import``). Environment variables
(``DATABASE_URL`` and the ``LEDGER_IMPORT_*`` settings) are loaded from a
local ``.env`` with ``python-dotenv`` before any command runs. Business logic
lives in ``ledger_import.api``.
"""

from __future__ import annotations

import sys
import uuid
from pathlib import Path
from typing import Annotated

import typer
from dotenv import load_dotenv
from typer.models import OptionInfo

from .errors import LedgerImportError
from .logging_setup import configure_logging
from .models import ImportResult


def _print_summary(result: ImportResult) -> None:
    summary = result.to_summary()
    typer.echo(f"Batch: {summary.import_batch_id}")
    typer.echo(f"Rows: {summary.total_rows}")
    typer.echo(
        f"Expenses: {summary.expenses} ({summary.unassociated_expenses} unassigned project)"
    )
    typer.echo(
        f"Revenues: {summary.revenues} ({summary.unassociated_revenues} unassigned project, "
        f"{summary.unassigned_client_revenues} unassigned client)"
    )
    typer.echo(
        "Duplicates skipped: "
        f"{summary.in_batch_duplicates_skipped + summary.revenue_in_batch_duplicates_skipped} "
        "in file, "
        f"{summary.database_duplicates_skipped + summary.revenue_database_duplicates_skipped} "
        "already imported"
    )
    typer.echo(f"Payees created: {summary.auto_created_payees}")
    typer.echo(
        f"Pending reviews: {summary.pending_payee_reviews} payees, "
        f"{summary.pending_client_reviews} clients"
    )
    stats = summary.mapping_stats
    typer.echo(
        "Categories: "
        f"{stats['database_mapped']} user-mapped, {stats['static_mapped']} static, "
        f"{stats['description_mapped']} by description, {stats['unmapped']} default"
    )
    for account in result.unmapped_account_details:
        hint = f" (suggest: {account.suggested_category})" if account.suggested_category else ""
        typer.echo(
            f"  unmapped account: {account.account_full_name} "
            f"x{account.transaction_count}{hint}"
        )
    for project in result.unmatched_projects:
        hint = ", ".join(s.project_number for s in project.suggestions)
        typer.echo(
            f"  unmatched project: {project.project_code} x{project.transaction_count}"
            + (f" (did you mean: {hint})" if hint else "")
        )
    for err in summary.errors:
        typer.echo(f"  error: {err}", err=True)


def cmd_import_transactions(
    csv_path: str,
    *,
    database_url: str | None = None,
    batch_id: str | None = None,
    dry_run: bool = False,
    as_json: bool = False,
) -> int:
    """Import an export CSV and print a summary. Returns a process exit code."""

    from .api import import_csv

    batch_id = batch_id or str(uuid.uuid4())
    try:
        result = import_csv(
            csv_path,
            database_url=database_url,
            import_batch_id=batch_id,
            persist=not dry_run,
        )
    except FileNotFoundError:
        print(f"Error: File not found: {csv_path}", file=sys.stderr)
        return 1
    except LedgerImportError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    except Exception as e:
        print(f"Error: import failed: {e}", file=sys.stderr)
        return 1

    if as_json:
        typer.echo(result.to_summary().model_dump_json(indent=2))
    else:
        _print_summary(result)
    return 0


# ---- Typer-based console interface -------------------------------------------


app = typer.Typer(
    no_args_is_help=True,
    add_completion=False,
    help=(
        "Import ledger exports (bills, checks, expenses, invoices) into the expense "
        "and revenue ledgers. Loads DATABASE_URL from a local .env before running."
    ),
)

# Module-level option object to satisfy ruff B008 (no calls in parameter defaults)
CSV_PATH_OPTION: OptionInfo = typer.Option(
    ...,
    "--csv-path",
    help="Path to the ledger export CSV",
    dir_okay=False,
    file_okay=True,
    exists=False,  # the handler reports a readable error instead
    readable=True,
)


@app.callback()
def _root() -> None:
    """Load ``.env`` from the working directory and configure logging."""

    load_dotenv(dotenv_path=Path.cwd() / ".env", override=False)
    configure_logging()


@app.command("import-transactions")
def import_transactions_cmd(
    csv_path: Annotated[Path, CSV_PATH_OPTION],
    *,
    database_url: str | None = typer.Option(
        None, help="Override DATABASE_URL (falls back to env var)."
    ),
    batch_id: str | None = typer.Option(
        None, help="Import batch id stamped on every record (random when omitted)."
    ),
    dry_run: bool = typer.Option(
        False, "--dry-run", help="Run the full import without writing anything."
    ),
    as_json: bool = typer.Option(False, "--json", help="Print the summary as JSON."),
) -> None:
    """Import a ledger export CSV."""

    code = cmd_import_transactions(
        str(csv_path),
        database_url=database_url,
        batch_id=batch_id,
        dry_run=dry_run,
        as_json=as_json,
    )
    if code:
        raise typer.Exit(code)


if __name__ == "__main__":  # pragma: no cover
    app()

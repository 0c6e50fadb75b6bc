from collections.abc import Mapping
from dataclasses import replace
from datetime import date
from decimal import Decimal

import pytest

from ledger_import import ImportSettings, Ledger, TransactionImporter
from ledger_import.api import DryRunPayeeRegistry, import_transactions, persist_result
from ledger_import.models import (
    AccountMappingRule,
    ClientRecord,
    ExistingRecord,
    ExpenseCategory,
    PayeeRecord,
    PayeeType,
    ProjectRecord,
    TransactionType,
)

from tests.helpers.fakes import make_sources, row

UNASSIGNED_PROJECT = ImportSettings().unassigned_project_id
UNASSIGNED_CLIENT = ImportSettings().unassigned_client_id
MATERIALS = "Cost of Goods Sold:Supplies & Materials"
LABOR = "Cost of Goods Sold:Contract Labor"

PROJECTS = [
    ProjectRecord(UNASSIGNED_PROJECT, "000-UNASSIGNED", "Unassigned"),
    ProjectRecord("proj-smith", "24-101", "Smith Kitchen"),
]


def _run(sources, rows, **kwargs):
    return TransactionImporter(sources).run(rows, today=date(2024, 2, 1), **kwargs)


def test_routing_split_accounts_for_every_row():
    sources = make_sources(projects=PROJECTS, clients=[ClientRecord("c1", "Smith Family")])
    rows = [
        row("Acme Supply Co", "100.00", tx_type="Bill", account=MATERIALS, project="24-101"),
        row("City of Austin", "75.00", tx_type="Check", project="24-101"),
        row("Home Depot", "42.10", tx_type="Expense"),
        row("Smith Family", "5,000.00", tx_type="Invoice", invoice="1001", project="24-101"),
        row("Acme Supply Co", "100.00", tx_type="Bill", account=MATERIALS, project="24-101"),
        ["not", "a", "row"],
    ]

    result = _run(sources, rows)

    assert len(result.expenses) == 3
    assert len(result.revenues) == 1
    assert result.in_batch_duplicates_skipped == 1
    assert len(result.errors) == 1
    assert result.errors[0].startswith("row 6:")
    assert result.total_rows == 6
    assert result.accounted_rows() == result.total_rows
    assert [e.transaction_type for e in result.expenses] == [
        TransactionType.BILL,
        TransactionType.CHECK,
        TransactionType.EXPENSE,
    ]
    revenue = result.revenues[0]
    assert revenue.client_id == "c1"
    assert revenue.amount == Decimal("5000.00")
    assert revenue.description == "Invoice from Smith Family"


def test_expense_record_fields():
    sources = make_sources(projects=PROJECTS)

    result = _run(
        sources,
        [row("Acme Supply Co", "(1,250.00)", account=MATERIALS, project="24-101", external_id="Q1")],
        import_batch_id="batch-1",
    )

    [expense] = result.expenses
    assert expense.project_id == "proj-smith"
    assert expense.amount == Decimal("1250.00")
    assert expense.expense_date == date(2024, 1, 15)
    assert expense.description == "bill - Acme Supply Co"
    assert expense.category == ExpenseCategory.MATERIALS
    assert expense.account_name == "Supplies & Materials"
    assert expense.external_id == "Q1"
    assert expense.import_batch_id == "batch-1"
    assert result.mapping_stats.static_mapped == 1
    assert result.category_mappings_used == {MATERIALS: "materials"}


def test_rerun_of_persisted_batch_imports_nothing():
    sources = make_sources(projects=PROJECTS, clients=[ClientRecord("c1", "Smith Family")])
    rows = [
        row("Acme Supply Co", "100.00", account=MATERIALS, project="24-101"),
        row("Bob's Framing", "900.00", tx_type="Check", account=LABOR, external_id="QB-7"),
        row("Smith Family", "5000.00", tx_type="Invoice", invoice="1001"),
    ]

    first = _run(sources, rows)
    persist_result(sources, first)
    second = _run(sources, rows)

    assert (len(first.expenses), len(first.revenues)) == (2, 1)
    assert second.expenses == ()
    assert second.revenues == ()
    assert second.database_duplicates_skipped == 2
    assert second.revenue_database_duplicates_skipped == 1
    assert {d.matched_by for d in second.database_duplicates} == {"external_id", "composite_key"}
    assert second.auto_created_count == 0
    assert second.accounted_rows() == second.total_rows


def test_in_batch_detection_is_symmetric_in_count():
    a = row("Acme Supply Co", "100.00", account="Misc:A")
    b = row("ACME SUPPLY CO ", "100.00", account="Misc:B")

    forward = _run(make_sources(), [a, b])
    backward = _run(make_sources(), [b, a])

    for result in (forward, backward):
        assert len(result.expenses) == 1
        assert result.in_batch_duplicates_skipped == 1
    assert forward.expenses[0].account_full_name == "Misc:A"
    assert backward.expenses[0].account_full_name == "Misc:B"
    assert forward.in_batch_duplicates[0].first_row_number == 1


def test_external_id_takes_precedence_over_composite_key():
    persisted = ExistingRecord(
        id="exp-1",
        ledger=Ledger.COST,
        date=date(2023, 6, 1),
        amount=Decimal("1.00"),
        description="check - Someone Else",
        external_id="QB-42",
    )
    sources = make_sources(expense_history=[persisted])

    result = _run(sources, [row("Acme", "100.00", external_id="QB-42")])

    [dup] = result.database_duplicates
    assert dup.existing_id == "exp-1"
    assert dup.matched_by == "external_id"
    assert dup.match_key == "QB-42"
    assert result.expenses == ()


def test_unknown_project_falls_back_to_placeholder():
    sources = make_sources(projects=PROJECTS)

    result = _run(
        sources,
        [
            row("Acme", "10.00", project="24-109"),
            row("Acme", "20.00", project="24-109"),
            row("Smith", "30.00", tx_type="Invoice", project="nope"),
        ],
    )

    assert result.unassociated_expenses == 2
    assert result.unassociated_revenues == 1
    assert all(e.project_id == UNASSIGNED_PROJECT for e in result.expenses)
    assert result.expenses[0].description == "bill - Acme (Unassigned)"
    assert result.revenues[0].description == "Invoice from Smith (Unassigned)"
    unmatched = {u.project_code: u for u in result.unmatched_projects}
    assert unmatched["24-109"].transaction_count == 2
    assert unmatched["24-109"].total_amount == Decimal("30.00")
    assert unmatched["24-109"].suggestions[0].project_number == "24-101"


def test_placeholder_project_code_is_not_matchable():
    result = _run(make_sources(projects=PROJECTS), [row("Acme", "10.00", project="000-UNASSIGNED")])

    assert result.unassociated_expenses == 1


def test_suffix_variants_import_twice_but_share_one_payee():
    sources = make_sources()
    rows = [
        row("Acme Supply Co", "250.00", account=MATERIALS),
        row("Acme Supply", "250.00", account=MATERIALS),
    ]

    result = _run(sources, rows)

    assert len(result.expenses) == 2
    assert result.in_batch_duplicates_skipped == 0
    assert result.auto_created_count == 1
    assert [d.payee_name for d in sources.payees.created] == ["Acme Supply Co"]
    assert sources.payees.created[0].payee_type is PayeeType.MATERIAL_SUPPLIER
    assert {e.payee_id for e in result.expenses} == {"payee-1"}
    assert [m.match_type for m in result.payee_matches] == ["auto", "exact"]


def test_existing_payee_is_matched_not_created():
    sources = make_sources(payees=[PayeeRecord("p-abc", "ABC Electric LLC")])

    result = _run(sources, [row("ABC Electric", "10.00")])

    assert result.expenses[0].payee_id == "p-abc"
    assert sources.payees.created == []
    [entry] = [m for m in result.match_log if m.entity_type == "payee"]
    assert (entry.decision, entry.algorithm, entry.confidence) == ("auto_matched", "exact", 100.0)


def test_review_band_candidate_is_recorded_and_payee_created():
    sources = make_sources(payees=[PayeeRecord("p-acme", "Acme Supplies")])

    result = _run(sources, [row("Acme Supply", "10.00", account=MATERIALS)])

    [review] = result.pending_payee_reviews
    assert review.name == "Acme Supply"
    assert review.suggestions[0].entity_id == "p-acme"
    assert review.suggested_payee_type is PayeeType.MATERIAL_SUPPLIER
    assert result.auto_created_count == 1
    assert result.expenses[0].payee_id == "payee-1"


def test_payee_create_failure_keeps_row_without_payee():
    sources = make_sources(fail_create=True)

    result = _run(sources, [row("Brand New Vendor", "10.00")])

    [expense] = result.expenses
    assert expense.payee_id is None
    assert result.errors == ()
    assert any("could not be created" in w for w in result.warnings)
    assert [m.decision for m in result.match_log if m.entity_type == "payee"] == ["create_failed"]


def test_unknown_client_goes_to_unassigned_client():
    clients = [ClientRecord(UNASSIGNED_CLIENT, "Unassigned Client"), ClientRecord("c1", "Smith")]
    sources = make_sources(clients=clients)

    result = _run(
        sources,
        [row("Unassigned Client", "10.00", tx_type="Invoice"), row("Smith", "5", tx_type="Invoice")],
    )

    assert [r.client_id for r in result.revenues] == [UNASSIGNED_CLIENT, "c1"]
    assert result.unassigned_client_revenues == 1
    assert sources.payees.created == []


def test_user_account_mapping_is_applied():
    sources = make_sources(mappings=[AccountMappingRule("Misc:Dump Fees", "materials")])

    result = _run(sources, [row("Waste Co", "80.00", account="misc:dump fees")])

    assert result.expenses[0].category == "materials"
    assert result.mapping_stats.database_mapped == 1
    assert result.unmapped_accounts == ()


def test_unmapped_accounts_are_reported_in_first_seen_order():
    sources = make_sources()
    rows = [
        row("A", "1.00", account="Misc:Zeta"),
        row("B", "2.00", account="Misc:Alpha"),
        row("C", "3.00", account="Misc:Zeta"),
    ]

    result = _run(sources, rows)

    assert result.unmapped_accounts == ("Misc:Zeta", "Misc:Alpha")
    assert result.unmapped_account_details[0].transaction_count == 2


def test_override_dedup_reimports_confirmed_rows():
    persisted = ExistingRecord(
        "exp-1", Ledger.COST, date(2024, 1, 15), Decimal("100.00"), "bill - Acme"
    )
    sources = make_sources(expense_history=[persisted])
    rows = [row("Acme", "100.00")]

    skipped = _run(sources, rows)
    forced = _run(sources, rows, override_dedup={"2024-01-15|100.00|acme"})

    assert skipped.database_duplicates_skipped == 1
    assert len(forced.expenses) == 1
    [reimport] = forced.reimported_duplicates
    assert reimport.existing_id == "exp-1"
    assert forced.database_duplicates_skipped == 0


def test_reconciliation_compares_duplicates_with_history():
    persisted = ExistingRecord(
        "exp-1", Ledger.COST, date(2024, 1, 15), Decimal("100.00"), "bill - Acme"
    )
    sources = make_sources(expense_history=[persisted])

    result = _run(sources, [row("Acme", "100.00"), row("Fresh", "5.00")])

    assert result.reconciliation is not None
    assert result.reconciliation.existing_total == Decimal("100.00")
    assert result.reconciliation.duplicate_total == Decimal("100.00")
    assert result.reconciliation.is_aligned is True
    assert result.revenue_reconciliation is None


def test_history_window_is_padded_around_batch_dates():
    sources = make_sources()

    _run(sources, [row("A", "1", tx_date="01/10/2024"), row("B", "2", tx_date="01/20/2024")])

    assert sources.expenses.range_queries == [(date(2024, 1, 9), date(2024, 1, 21))]


def test_bad_cells_default_with_warnings():
    result = _run(make_sources(), [row("Acme", "abc", tx_date="someday")])

    [expense] = result.expenses
    assert expense.amount == Decimal("0.00")
    assert expense.expense_date == date(2024, 2, 1)
    assert len(result.warnings) == 2


def test_out_of_range_cells_default_instead_of_aborting_the_batch():
    rows = [
        row("Acme", "123456789012345678901234567"),
        row("Bob", "10.00", tx_date="1/1/99999999999999999999"),
        row("Carol", "5.00", tx_date="2024-01-99999999999999999999"),
        row("Dana", "7.00"),
    ]

    result = _run(make_sources(), rows)

    assert [e.amount for e in result.expenses] == [
        Decimal("0.00"),
        Decimal("10.00"),
        Decimal("5.00"),
        Decimal("7.00"),
    ]
    assert [e.expense_date for e in result.expenses][1:3] == [date(2024, 2, 1)] * 2
    assert len(result.warnings) == 3
    assert list(result.errors) == []


class _UnreadableRow(Mapping):
    def __getitem__(self, key):
        raise KeyError(key)

    def __iter__(self):
        raise RuntimeError("cell stream closed")

    def __len__(self):
        return 1


def test_unexpected_row_failure_is_recorded_and_run_continues():
    result = _run(make_sources(), [_UnreadableRow(), row("Acme", "12.00")])

    assert list(result.errors) == ["row 1: cell stream closed"]
    assert [e.amount for e in result.expenses] == [Decimal("12.00")]
    assert result.accounted_rows() == result.total_rows


def test_dry_run_registry_never_writes():
    sources = make_sources()

    result = import_transactions(
        [row("Brand New Vendor", "10.00")], sources=sources, persist=False
    )

    assert sources.payees.created == []
    assert sources.expenses.inserted == []
    assert result.expenses[0].payee_id.startswith("dry-run-")


def test_import_transactions_persists_by_default():
    sources = make_sources()

    import_transactions([row("Acme", "10.00"), row("Smith", "5", tx_type="Invoice")], sources=sources)

    assert len(sources.expenses.inserted) == 1
    assert len(sources.revenues.inserted) == 1


def test_dry_run_wrapper_lists_inner_registry():
    sources = make_sources(payees=[PayeeRecord("p1", "Acme")])
    wrapped = replace(sources, payees=DryRunPayeeRegistry(sources.payees))

    assert [p.id for p in wrapped.payees.list_all()] == ["p1"]


def test_importer_rejects_invalid_thresholds():
    with pytest.raises(ValueError):
        ImportSettings(auto_match_threshold=30, review_threshold=40)

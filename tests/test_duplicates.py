from dataclasses import replace
from datetime import date
from decimal import Decimal

from ledger_import.duplicates import (
    CrossRunDetector,
    InBatchDetector,
    expense_key,
    history_window,
    key_for,
    reconcile,
    revenue_key,
)
from ledger_import.models import (
    ExistingRecord,
    ExpenseCategory,
    Ledger,
    NormalizedTransaction,
    TransactionType,
)

D = date(2024, 1, 15)


def _tx(
    name: str = "Acme Supply Co",
    amount: str = "100.00",
    *,
    row_number: int = 1,
    tx_type: TransactionType = TransactionType.BILL,
    tx_date: date = D,
    invoice: str | None = None,
    external_id: str | None = None,
) -> NormalizedTransaction:
    return NormalizedTransaction(
        row_number=row_number,
        date=tx_date,
        amount=Decimal(amount),
        counterparty_name=name,
        transaction_type=tx_type,
        invoice_number=invoice,
        external_id=external_id,
    )


def _existing(
    description: str,
    amount: str = "100.00",
    *,
    ledger: Ledger = Ledger.COST,
    record_id: str = "e1",
    name: str | None = None,
    invoice: str | None = None,
    external_id: str | None = None,
) -> ExistingRecord:
    return ExistingRecord(
        id=record_id,
        ledger=ledger,
        date=D,
        amount=Decimal(amount),
        description=description,
        counterparty_name=name,
        invoice_number=invoice,
        external_id=external_id,
    )


def test_composite_keys():
    assert expense_key(D, Decimal("5"), "  Acme   Supply ") == "2024-01-15|5.00|acme supply"
    assert revenue_key(Decimal("1200.5"), D, " INV-7 ", "Smith") == "1200.50|2024-01-15|inv-7|smith"
    assert key_for(_tx(tx_type=TransactionType.INVOICE, invoice="9")).startswith("100.00|")


def test_in_batch_first_occurrence_wins_per_ledger():
    detector = InBatchDetector()

    assert detector.check(_tx(row_number=1)) is None
    dup = detector.check(_tx("acme supply co", row_number=2))
    # Same key on the other ledger is not a duplicate
    assert detector.check(_tx(row_number=3, tx_type=TransactionType.INVOICE)) is None

    assert dup is not None
    assert dup.first_row_number == 1
    assert dup.reason == "Duplicate of: Acme Supply Co on 2024-01-15"


def test_in_batch_keeps_suffix_variants_apart():
    detector = InBatchDetector()

    assert detector.check(_tx("Acme Supply Co")) is None
    assert detector.check(_tx("Acme Supply", row_number=2)) is None


def test_in_batch_revenue_reason():
    detector = InBatchDetector()
    detector.check(_tx("Smith", tx_type=TransactionType.INVOICE, invoice="1001"))
    dup = detector.check(_tx("Smith", row_number=2, tx_type=TransactionType.INVOICE, invoice="1001"))

    assert dup is not None
    assert dup.reason.startswith("Duplicate revenue: Smith")


def test_in_batch_invoice_number_ignores_case():
    detector = InBatchDetector()
    detector.check(_tx("Smith", "10.00", tx_type=TransactionType.INVOICE, invoice="INV-7"))
    dup = detector.check(
        _tx("Smith", "10.00", row_number=2, tx_type=TransactionType.INVOICE, invoice=" inv-7")
    )

    assert dup is not None
    assert dup.first_row_number == 1


def test_cross_run_invoice_number_ignores_case():
    existing = _existing(
        "Invoice from Smith", "10.00", ledger=Ledger.REVENUE, invoice="INV-7"
    )
    detector = CrossRunDetector(history=[existing])

    match = detector.check(_tx("Smith", "10.00", tx_type=TransactionType.INVOICE, invoice="inv-7"))

    assert match is not None
    assert match.matched_by == "composite_key"


def test_cross_run_external_id_wins():
    existing = _existing("check - Somebody Else", "999.00", external_id="QB-1")
    detector = CrossRunDetector(external_ids={Ledger.COST: {"QB-1": existing}})

    match = detector.check(_tx(external_id="QB-1"))

    assert match is not None
    assert match.matched_by == "external_id"
    assert match.existing.id == "e1"


def test_cross_run_composite_key_from_description():
    detector = CrossRunDetector(history=[_existing("bill - Acme Supply Co (Unassigned)")])

    match = detector.check(_tx())

    assert match is not None
    assert match.matched_by == "composite_key"
    assert match.match_key == "2024-01-15|100.00|acme supply co"


def test_cross_run_composite_key_from_linked_payee():
    detector = CrossRunDetector(history=[_existing("materials run", name="Acme Supply Co")])

    assert detector.check(_tx()) is not None


def test_cross_run_differing_external_ids_are_distinct_transactions():
    history = [_existing("bill - Acme Supply Co", external_id="QB-OLD")]
    detector = CrossRunDetector(history=history)

    assert detector.check(_tx(external_id="QB-NEW")) is None
    # Without an external id on the row the composite key still applies
    assert detector.check(_tx()) is not None


def test_cross_run_placeholder_descriptions_match_empty_names():
    detector = CrossRunDetector(history=[_existing("expense - No Vendor")])

    assert detector.check(_tx("", tx_type=TransactionType.EXPENSE)) is not None


def test_cross_run_revenue_history():
    record = _existing(
        "Invoice from Smith Family (Unassigned)",
        "1200.00",
        ledger=Ledger.REVENUE,
        invoice="1001",
    )
    detector = CrossRunDetector(history=[record])
    tx = _tx("Smith Family", "1200.00", tx_type=TransactionType.INVOICE, invoice="1001")

    assert detector.check(tx) is not None
    # Cost rows never match revenue history
    assert detector.check(_tx("Smith Family", "1200.00")) is None


def test_history_window_pads_range():
    assert history_window([date(2024, 1, 10), date(2024, 1, 3)], 1) == (
        date(2024, 1, 2),
        date(2024, 1, 11),
    )
    assert history_window([]) is None


def test_reconcile_counts_each_existing_record_once():
    existing = _existing("bill - Acme", "50.00")
    result = reconcile([Decimal("50.00"), Decimal("50.00")], [existing, existing])

    assert result.existing_total == Decimal("50.00")
    assert result.duplicate_total == Decimal("100.00")
    assert result.difference == Decimal("50.00")
    assert result.is_aligned is False


def test_reconcile_aligned_within_threshold():
    result = reconcile([Decimal("10.00")], [_existing("bill - Acme", "10.01")])

    assert result.is_aligned is True


def test_reconcile_leaves_labor_and_split_rows_out_of_existing_total():
    materials = _existing("bill - Acme", "40.00", record_id="e1")
    labor = replace(
        _existing("check - Crew", "25.00", record_id="e2"),
        category=ExpenseCategory.LABOR_INTERNAL,
    )
    split_parent = replace(_existing("bill - Depot", "60.00", record_id="e3"), is_split=True)

    result = reconcile([Decimal("40.00")], [materials, labor, split_parent])

    assert result.existing_total == Decimal("40.00")
    assert result.is_aligned is True

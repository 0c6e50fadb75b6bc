import textwrap
from datetime import date
from decimal import Decimal

import pytest

from ledger_import import CsvFormatError, TransactionType
from ledger_import.normalizers import (
    load_transaction_csv,
    map_transaction_type,
    normalize_row,
    parse_amount,
    parse_date,
    read_transaction_csv,
)


def _dedent(s: str) -> str:
    return textwrap.dedent(s).lstrip("\n")


@pytest.mark.parametrize(
    ("raw", "expected", "negative"),
    [
        ("1,250.50", Decimal("1250.50"), False),
        ('"$1,250.5"', Decimal("1250.50"), False),
        ("(300.00)", Decimal("300.00"), True),
        ("-42", Decimal("42.00"), True),
        ("$-9.999", Decimal("10.00"), True),
        ("  17  ", Decimal("17.00"), False),
    ],
)
def test_parse_amount_strips_formatting_and_reports_sign(raw, expected, negative):
    assert parse_amount(raw) == (expected, negative)


@pytest.mark.parametrize(
    "raw", ["", "   ", "abc", "$", "1.2.3", "NaN", "123456789012345678901234567"]
)
def test_parse_amount_rejects_garbage(raw):
    with pytest.raises(ValueError):
        parse_amount(raw)


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("1/15/2024", date(2024, 1, 15)),
        ("01/05/24", date(2024, 1, 5)),
        ("2024-03-09", date(2024, 3, 9)),
        ("2024-03-09T10:15:00", date(2024, 3, 9)),
        ("03-09-2024", date(2024, 3, 9)),
        ("25-12-2024", date(2024, 12, 25)),
        ("Jan 5, 2024", date(2024, 1, 5)),
        ("5 February 2024", date(2024, 2, 5)),
    ],
)
def test_parse_date_accepts_export_formats(raw, expected):
    assert parse_date(raw) == expected


@pytest.mark.parametrize(
    "raw",
    [
        "",
        "13/45/2024",
        "yesterday",
        "2024/13",
        "1/1/99999999999999999999",
        "99999999999999999999-01-01",
    ],
)
def test_parse_date_rejects_unparseable(raw):
    with pytest.raises(ValueError):
        parse_date(raw)


def test_transaction_type_mapping_defaults_to_expense():
    assert map_transaction_type("Bill") is TransactionType.BILL
    assert map_transaction_type(" INVOICE ") is TransactionType.INVOICE
    assert map_transaction_type("Credit Card Credit") is TransactionType.EXPENSE
    assert map_transaction_type("") is TransactionType.EXPENSE


def test_normalize_row_falls_back_with_warnings():
    tx = normalize_row(
        {"Date": "not a date", "Amount": "n/a", "Name": "  Acme  ", "Transaction type": "Check"},
        row_number=7,
        today=date(2024, 6, 1),
    )

    assert tx.amount == Decimal("0.00")
    assert tx.date == date(2024, 6, 1)
    assert tx.date_defaulted is True
    assert tx.counterparty_name == "Acme"
    assert tx.transaction_type is TransactionType.CHECK
    assert len(tx.warnings) == 2
    assert all(w.startswith("row 7:") for w in tx.warnings)


def test_normalize_row_defaults_out_of_range_cells():
    tx = normalize_row(
        {
            "Date": "1/1/99999999999999999999",
            "Amount": "123456789012345678901234567",
            "Name": "Acme",
            "Transaction type": "Bill",
        },
        row_number=3,
        today=date(2024, 6, 1),
    )

    assert tx.amount == Decimal("0.00")
    assert tx.date == date(2024, 6, 1)
    assert len(tx.warnings) == 2


def test_normalize_row_blank_optionals_become_none():
    tx = normalize_row(
        {
            "Date": "2/1/2024",
            "Amount": "10",
            "Name": "Acme",
            "Transaction type": "Invoice",
            "Invoice #": "  ",
            "QB_Transaction_Id": "",
        },
        row_number=1,
    )

    assert tx.invoice_number is None
    assert tx.external_id is None
    assert tx.project_code is None
    assert tx.warnings == ()


def test_normalize_row_rejects_non_mapping():
    with pytest.raises(TypeError):
        normalize_row(["2024-01-01", "10"], row_number=1)  # type: ignore[arg-type]


def test_read_csv_handles_bom_quotes_and_blank_lines():
    csv_text = "\ufeff" + _dedent(
        """
        Date,Transaction type,Amount,Name,Account full name,Project/WO #
        01/15/2024,Bill,"1,000.00","Acme, Inc.",Cost of Goods Sold:Supplies & Materials,24-101
        ,,,,,
        01/16/2024,Invoice,500,Smith Family,,24-101
        """
    )

    rows = read_transaction_csv(csv_text)

    assert len(rows) == 2
    assert rows[0].name == "Acme, Inc."
    assert rows[0].amount == "1,000.00"
    assert rows[0].account_full_name == "Cost of Goods Sold:Supplies & Materials"
    assert rows[1].transaction_type == "Invoice"
    assert rows[1].external_id == ""


def test_read_csv_reports_missing_required_columns():
    with pytest.raises(CsvFormatError, match="Transaction type, Amount"):
        read_transaction_csv("Date,Name\n01/15/2024,Acme\n")


def test_load_csv_reads_file(tmp_path):
    p = tmp_path / "export.csv"
    p.write_text("Date,Transaction type,Amount,Name\n01/15/2024,Check,12.5,Bob\n", encoding="utf-8")

    rows = load_transaction_csv(p)

    assert [r.name for r in rows] == ["Bob"]

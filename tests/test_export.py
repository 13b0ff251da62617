"""Tests for the export module."""

import json

import pytest

from mail_ledger.export import events_to_csv, export_events, sanitize_csv_cell
from mail_ledger.models import FinancialEvent


def make_event(**overrides):
    data = dict(
        id="m1",
        date="2024-10-24",
        display_date="24 oct",
        amount=19843.0,
        direction="expense",
        category="transfer",
        source="Banco Santander",
        description="Transferencia realizada",
    )
    data.update(overrides)
    return FinancialEvent(**data)


def test_csv_header_and_row():
    lines = events_to_csv([make_event()]).splitlines()
    assert lines[0] == '"Date","Description","Source","Category","Type","Amount"'
    assert lines[1] == '"2024-10-24","Transferencia realizada","Banco Santander","Transfer","Expense","19843.00"'


def test_csv_income_type():
    row = events_to_csv([make_event(direction="income", category="income")]).splitlines()[1]
    assert '"Income","Income"' in row


def test_csv_neutralizes_formulas():
    """Cells that look like formulas are prefixed and quotes doubled."""
    output = events_to_csv([make_event(description='=HYPERLINK("http://x")', source="@evil")])
    assert '"\'=HYPERLINK(""http://x"")"' in output
    assert "\"'@evil\"" in output


def test_csv_flattens_newlines():
    output = events_to_csv([make_event(description="Línea uno\nLínea dos")])
    assert "Línea uno Línea dos" in output
    assert len(output.splitlines()) == 2


def test_sanitize_csv_cell():
    assert sanitize_csv_cell("+56 9 1234") == "'+56 9 1234"
    assert sanitize_csv_cell("-100") == "'-100"
    assert sanitize_csv_cell("Compra") == "Compra"


def test_export_json(tmp_path):
    path = tmp_path / "ledger.json"
    export_events([make_event()], format="json", output_path=str(path))
    data = json.loads(path.read_text(encoding="utf-8"))
    assert data[0]["id"] == "m1"
    assert data[0]["category_label"] == "Transfer"


def test_export_csv_file(tmp_path):
    path = tmp_path / "ledger.csv"
    export_events([make_event(), make_event(id="m2")], format="csv", output_path=str(path))
    assert len(path.read_text(encoding="utf-8").splitlines()) == 3


def test_export_unknown_format(tmp_path):
    with pytest.raises(ValueError):
        export_events([], format="xlsx", output_path=str(tmp_path / "x"))


def test_sanitize_csv_cell_trims_before_check():
    """Leading whitespace does not hide a formula."""
    assert sanitize_csv_cell(' =HYPERLINK("http://x")') == '\'=HYPERLINK("http://x")'
    assert sanitize_csv_cell("\t@SUM(A1)") == "'@SUM(A1)"
    assert sanitize_csv_cell("\r\n+1") == "'+1"
    assert sanitize_csv_cell("  Compra  ") == "Compra"

"""Tests for notifications and amount formatting."""

from rich.console import Console

from mail_ledger.display import format_amount
from mail_ledger.models import FinancialEvent
from mail_ledger.notifications import ConsoleNotifier, notification_text


def make_event(event_id, amount, direction="expense"):
    return FinancialEvent(event_id, "2024-10-24", "24 oct", amount, direction, "card", "Banco", f"Compra {event_id}")


def test_format_amount():
    assert format_amount(1234567) == "1.234.567"
    assert format_amount(999) == "999"
    assert format_amount(1234.6) == "1.235"


def test_single_event_text():
    assert notification_text([make_event("a", 45990)]) == "Expense: Compra a for $45.990"
    assert notification_text([make_event("b", 1000, "income")]) == "Income: Compra b for $1.000"


def test_several_events_text():
    text = notification_text([make_event("a", 1000), make_event("b", 2500)])
    assert text == "2 movements detected for a total of $3.500"


def test_console_notifier_prints_panel():
    console = Console(record=True, width=80)
    ConsoleNotifier(console).notify([make_event("a", 45990)])
    output = console.export_text()
    assert "New movements" in output
    assert "Expense: Compra a for $45.990" in output


def test_console_notifier_ignores_empty():
    console = Console(record=True, width=80)
    ConsoleNotifier(console).notify([])
    assert console.export_text() == ""

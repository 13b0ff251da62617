"""Terminal notifications for newly detected movements."""

from __future__ import annotations

from rich.console import Console
from rich.panel import Panel

from .display import format_amount
from .models import FinancialEvent


def notification_text(events: list[FinancialEvent]) -> str:
    if len(events) == 1:
        event = events[0]
        kind = "Income" if event.direction == "income" else "Expense"
        return f"{kind}: {event.description} for ${format_amount(event.amount)}"
    total = sum(e.amount for e in events)
    return f"{len(events)} movements detected for a total of ${format_amount(total)}"


class ConsoleNotifier:
    """Shows a panel on the console when a sync finds new movements."""

    def __init__(self, console: Console | None = None) -> None:
        self.console = console or Console()

    def notify(self, events: list[FinancialEvent]) -> None:
        if not events:
            return
        self.console.print(Panel(notification_text(events), title="New movements", border_style="green"))

"""Rich-based display functions for mail-ledger."""

from __future__ import annotations

from rich.console import Console
from rich.panel import Panel
from rich.progress import (
    BarColumn,
    MofNCompleteColumn,
    Progress,
    SpinnerColumn,
    TextColumn,
    TimeElapsedColumn,
)
from rich.table import Table

from .constants import CATEGORIES, CATEGORY_COLORS, CATEGORY_LABELS
from .models import FinancialEvent, MonthlySummary, Preferences, ScanSettings
from .rules import RULE_LISTS

console = Console()


def format_amount(amount: float) -> str:
    """Whole pesos with dot thousands separators: 1234567 -> "1.234.567"."""
    return f"{round(amount):,}".replace(",", ".")


def _signed(event: FinancialEvent) -> str:
    if event.direction == "income":
        return f"[green]+${format_amount(event.amount)}[/green]"
    return f"[red]-${format_amount(event.amount)}[/red]"


def display_events(events: list[FinancialEvent], title: str = "Movements") -> None:
    """Display events newest first."""
    if not events:
        console.print("[dim]No movements to show.[/dim]")
        return

    table = Table(title=title)
    table.add_column("#", justify="right", style="dim")
    table.add_column("Date")
    table.add_column("Description")
    table.add_column("Source")
    table.add_column("Category")
    table.add_column("Amount", justify="right")
    table.add_column("Id", style="dim")

    for idx, event in enumerate(events, start=1):
        color = CATEGORY_COLORS.get(event.category, "white")
        table.add_row(
            str(idx),
            event.display_date or event.date,
            event.description,
            event.source,
            f"[{color}]{CATEGORY_LABELS.get(event.category, event.category)}[/{color}]",
            _signed(event),
            event.id,
        )

    console.print(table)


def display_summary(summary: MonthlySummary) -> None:
    net_color = "green" if summary.net_difference >= 0 else "red"
    console.print(
        Panel(
            f"Income: [green]${format_amount(summary.total_income)}[/green]  |  "
            f"Expenses: [red]${format_amount(summary.total_expense)}[/red]  |  "
            f"Net: [{net_color}]${format_amount(summary.net_difference)}[/{net_color}]  |  "
            f"Movements: {summary.event_count}",
            title=f"Summary {summary.month}",
        )
    )


def display_sync_status(status: str, error: str | None, warning: str | None) -> None:
    if status == "error":
        console.print(f"[bold red]Sync failed:[/bold red] {error}")
    elif warning:
        console.print(f"[yellow]Warning:[/yellow] {warning}")


def display_rules(settings: ScanSettings) -> None:
    table = Table(title="Rules")
    table.add_column("Id", style="dim")
    table.add_column("Type")
    table.add_column("Value")
    table.add_column("Enabled")

    count = 0
    for list_name in RULE_LISTS:
        for rule in getattr(settings, list_name):
            count += 1
            table.add_row(
                rule.id,
                rule.type,
                rule.value,
                "[green]yes[/green]" if rule.enabled else "[dim]no[/dim]",
            )

    if not count:
        console.print("[dim]No rules configured.[/dim]")
        return
    console.print(table)


def display_settings(preferences: Preferences) -> None:
    settings = preferences.scan_settings
    categories = ", ".join(
        f"[green]{c}[/green]" if c in settings.enabled_categories else f"[dim]{c}[/dim]"
        for c in CATEGORIES
    )
    rule_count = sum(len(getattr(settings, name)) for name in RULE_LISTS)
    lines = [
        f"[bold]Days to scan:[/bold] {settings.days_to_scan}",
        f"[bold]Default senders:[/bold] {'on' if settings.use_default_senders else 'off'}",
        f"[bold]Categories:[/bold] {categories}",
        f"[bold]Rules:[/bold] {rule_count}",
        f"[bold]Notifications:[/bold] {'on' if preferences.notifications_enabled else 'off'}",
        f"[bold]Dark mode:[/bold] {'on' if preferences.dark_mode else 'off'}",
        f"[bold]Selected month:[/bold] {preferences.selected_month}",
    ]
    console.print(Panel("\n".join(lines), title="Settings"))


def create_progress(description: str) -> Progress:
    """Create a configured Rich Progress bar."""
    return Progress(
        SpinnerColumn(),
        TextColumn(f"[bold blue]{description}"),
        TextColumn("{task.description}"),
        BarColumn(),
        MofNCompleteColumn(),
        TimeElapsedColumn(),
        console=console,
        transient=True,
    )

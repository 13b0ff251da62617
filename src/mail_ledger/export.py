"""Export the ledger to CSV or JSON."""

import csv
import io
import json

from .constants import CATEGORY_LABELS
from .models import FinancialEvent

CSV_HEADERS = ["Date", "Description", "Source", "Category", "Type", "Amount"]

# Leading characters spreadsheets treat as the start of a formula.
_FORMULA_PREFIXES = ("=", "+", "-", "@")


def sanitize_csv_cell(value: str) -> str:
    """Neutralize spreadsheet formulas and flatten newlines."""
    value = value.replace("\r\n", " ").replace("\r", " ").replace("\n", " ").strip()
    if value.startswith(_FORMULA_PREFIXES):
        value = "'" + value
    return value


def _row(event: FinancialEvent) -> list[str]:
    return [
        event.date,
        event.description,
        event.source,
        CATEGORY_LABELS.get(event.category, event.category),
        "Income" if event.direction == "income" else "Expense",
        f"{event.amount:.2f}",
    ]


def events_to_csv(events: list[FinancialEvent]) -> str:
    """Render events as CSV text; every cell is quoted, quotes are doubled."""
    buf = io.StringIO()
    writer = csv.writer(buf, quoting=csv.QUOTE_ALL, lineterminator="\n")
    writer.writerow(CSV_HEADERS)
    for event in events:
        writer.writerow([sanitize_csv_cell(cell) for cell in _row(event)])
    return buf.getvalue()


def events_to_json(events: list[FinancialEvent]) -> str:
    rows = []
    for event in events:
        row = event.to_dict()
        row["category_label"] = CATEGORY_LABELS.get(event.category, event.category)
        rows.append(row)
    return json.dumps(rows, indent=2, ensure_ascii=False)


def export_events(events: list[FinancialEvent], format: str, output_path: str) -> None:
    """Write events to *output_path* as 'csv' or 'json'."""
    if format == "csv":
        content = events_to_csv(events)
    elif format == "json":
        content = events_to_json(events)
    else:
        raise ValueError(f"Unsupported export format: {format!r}")

    with open(output_path, "w", newline="", encoding="utf-8") as f:
        f.write(content)

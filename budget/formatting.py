"""Text rendering for transaction listings and forecasts."""

from __future__ import annotations

from typing import Iterable, Sequence

from budget.models import ForecastResult, Transaction


def _format_table(headers: Sequence[str], rows: Sequence[Sequence[str]]) -> str:
    widths = [len(h) for h in headers]
    for row in rows:
        for idx, cell in enumerate(row):
            widths[idx] = max(widths[idx], len(cell))

    def format_row(row: Sequence[str]) -> str:
        return "  ".join(cell.ljust(widths[idx]) for idx, cell in enumerate(row)).rstrip()

    lines = [format_row(headers), "-" * (sum(widths) + 2 * (len(widths) - 1))]
    lines.extend(format_row(row) for row in rows)
    return "\n".join(lines)


def format_recurrence(transaction: Transaction) -> str:
    if transaction.recurrence is None:
        return "One-time"
    return f"{transaction.recurrence.period} ({transaction.recurrence.count})"


def format_transactions(entries: Iterable[tuple[int, Transaction]]) -> str:
    headers = ["Index", "Amount", "Date", "Recurrence", "Note"]
    rows = [
        [str(position), f"{t.amount:.2f}", t.date.isoformat(), format_recurrence(t), t.note]
        for position, t in entries
    ]
    return _format_table(headers, rows)


def format_forecast(result: ForecastResult) -> str:
    """One ``YYYY-MM: balance`` line per checkpoint."""

    lines = [f"{cp.date:%Y-%m}: {cp.amount:.2f}" for cp in result.checkpoints]
    if result.reached_nonpositive:
        lines.append("Balance reaches zero/negative within the displayed period.")
    return "\n".join(lines)

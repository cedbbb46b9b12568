import logging
from datetime import date, timedelta
from decimal import Decimal
from typing import Iterable, Optional

from dateutil.relativedelta import relativedelta

from budget.config import FORECAST_MONTHS
from budget.models import (
    BalanceCheckpoint, BudgetState, Event, ForecastResult, IndexOutOfRange, Recurrence, Transaction
)

logger = logging.getLogger(__name__)

# Fixed day offsets; "monthly" is deliberately 30 days, not a calendar month.
PERIOD_STEPS = {
    "weekly": 7,
    "biweekly": 14,
    "monthly": 30,
}


def _check_position(state: BudgetState, position: int) -> None:
    if not 0 <= position < len(state.transactions):
        raise IndexOutOfRange(position, len(state.transactions))


def add_transaction(
        state: BudgetState,
        amount: Decimal,
        t_date: date,
        recurrence: Optional[Recurrence] = None,
        note: str = "",
) -> Transaction:
    transaction = Transaction(amount=amount, date=t_date, recurrence=recurrence, note=note)
    state.transactions.append(transaction)
    return transaction


def edit_transaction(
        state: BudgetState,
        position: int,
        amount: Decimal,
        t_date: date,
        recurrence: Optional[Recurrence] = None,
        note: str = "",
) -> Transaction:
    _check_position(state, position)
    transaction = Transaction(amount=amount, date=t_date, recurrence=recurrence, note=note)
    state.transactions[position] = transaction
    return transaction


def delete_transaction(state: BudgetState, position: int) -> Transaction:
    _check_position(state, position)
    return state.transactions.pop(position)


def list_transactions(state: BudgetState) -> list[tuple[int, Transaction]]:
    return list(enumerate(state.transactions))


def set_balance(state: BudgetState, amount: Decimal) -> None:
    state.balance = amount


def expand_transaction(transaction: Transaction) -> list[Event]:
    """The original occurrence followed by every recurrence-generated repeat.

    An unrecognized period stops the expansion after the original event.
    """
    events = [Event(transaction.date, transaction.amount)]
    if transaction.recurrence is None:
        return events

    period, count = transaction.recurrence
    current = transaction.date
    for _ in range(count):
        step = PERIOD_STEPS.get(period)
        if step is None:
            break
        current += timedelta(days=step)
        events.append(Event(current, transaction.amount))
    return events


def expand_events(transactions: Iterable[Transaction]) -> list[Event]:
    events = []
    for transaction in transactions:
        events.extend(expand_transaction(transaction))
    # sorted() is stable, so same-day events keep their input order
    return sorted(events, key=lambda e: e.date)


def next_checkpoint(current: date) -> date:
    """First day of the calendar month after ``current``."""
    return current.replace(day=1) + timedelta(days=32) + relativedelta(day=1)


def forecast(
        state: BudgetState,
        as_of: Optional[date] = None,
        months: int = FORECAST_MONTHS,
) -> ForecastResult:
    """Project the balance at the start of each of the next ``months`` months.

    Every checkpoint is always produced; ``reached_nonpositive`` reports
    whether any of them held a balance of zero or less. Events dated on or
    after the last checkpoint fall outside the window and are ignored.
    """
    events = expand_events(state.transactions)
    balance = state.balance
    start = as_of or date.today()
    checkpoint = start
    checkpoints = []
    reached_nonpositive = False

    i = 0
    for _ in range(months):
        checkpoint = next_checkpoint(checkpoint)
        while i < len(events) and events[i].date < checkpoint:
            balance += events[i].amount
            i += 1
        checkpoints.append(BalanceCheckpoint(checkpoint, balance))
        if balance <= 0:
            reached_nonpositive = True

    logger.debug(
        "Forecast from %s: %d events, %d applied, reached_nonpositive=%s",
        start, len(events), i, reached_nonpositive
    )
    return ForecastResult(checkpoints=checkpoints, reached_nonpositive=reached_nonpositive)

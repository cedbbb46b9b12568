from __future__ import annotations
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import List, NamedTuple, Optional


class IndexOutOfRange(IndexError):
    """Raised when a transaction position does not exist in the store."""

    def __init__(self, position: int, count: int):
        super().__init__(f"No transaction at position {position} ({count} stored)")
        self.position = position
        self.count = count


class Recurrence(NamedTuple):
    period: str
    count: int


@dataclass
class Transaction:
    amount: Decimal
    date: date
    recurrence: Optional[Recurrence] = None
    note: str = ""


@dataclass
class BudgetState:
    balance: Decimal = Decimal("0")
    transactions: List[Transaction] = field(default_factory=list)


class Event(NamedTuple):
    date: date
    amount: Decimal


@dataclass
class BalanceCheckpoint:
    date: date
    amount: Decimal


@dataclass
class ForecastResult:
    checkpoints: List[BalanceCheckpoint]
    reached_nonpositive: bool = False

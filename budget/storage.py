import json
import logging
import re
from datetime import date
from decimal import Decimal
from pathlib import Path
from typing import Any, Optional

from budget.config import state_path
from budget.models import BudgetState, Recurrence, Transaction

logger = logging.getLogger(__name__)


# Decimals are first written as marked strings, then unquoted into bare numbers
_DECIMAL_MARK = "\x00decimal:"
_MARKED_DECIMAL = re.compile(r'"\\u0000decimal:([^"]+)"')


class EnhancedJSONEncoder(json.JSONEncoder):
    """Dates as ISO text, Decimals as exact JSON numbers (never via float)."""

    def default(self, obj):
        if isinstance(obj, date):
            return obj.isoformat()
        if isinstance(obj, Decimal):
            return f"{_DECIMAL_MARK}{obj}"
        return super().default(obj)

    def encode(self, o):
        return _MARKED_DECIMAL.sub(r"\1", super().encode(o))


def state_to_dict(state: BudgetState) -> dict[str, Any]:
    return {
        "balance": state.balance,
        "transactions": [
            {
                "amount": t.amount,
                "date": t.date,
                "recurrence": [t.recurrence.period, t.recurrence.count] if t.recurrence else None,
                "note": t.note,
            } for t in state.transactions
        ],
    }


def _to_decimal(value) -> Decimal:
    # json hands back Decimal for floats but int for whole numbers
    amount = value if isinstance(value, Decimal) else Decimal(value)
    if not amount.is_finite():
        raise ValueError(f"Amount is not a finite number: {value!r}")
    return amount


def _to_recurrence(value) -> Optional[Recurrence]:
    if value is None:
        return None
    period, count = value
    if not isinstance(period, str):
        raise ValueError(f"Recurrence period must be text: {period!r}")
    if not isinstance(count, int) or isinstance(count, bool) or count < 0:
        raise ValueError(f"Recurrence count must be a non-negative integer: {count!r}")
    return Recurrence(period, count)


def state_from_dict(data: dict[str, Any]) -> BudgetState:
    """Build a state from its serialized form; raises on malformed records."""
    transactions = []
    for t_data in data.get("transactions", []):
        note = t_data.get("note")
        if note is None:
            note = ""
        elif not isinstance(note, str):
            raise ValueError(f"Note must be text: {note!r}")
        transactions.append(Transaction(
            amount=_to_decimal(t_data["amount"]),
            date=date.fromisoformat(t_data["date"]),
            recurrence=_to_recurrence(t_data.get("recurrence")),
            note=note,
        ))
    return BudgetState(balance=_to_decimal(data.get("balance", 0)), transactions=transactions)


def save_state(state: BudgetState, path: Optional[Path] = None) -> Path:
    """Rewrite the whole state file."""
    path = Path(path) if path is not None else state_path()
    json_str = json.dumps(state_to_dict(state), cls=EnhancedJSONEncoder, indent=2)
    try:
        path.write_text(json_str, encoding="utf-8")
    except OSError:
        logger.exception("Failed to write budget state to %s", path)
        raise
    logger.info("Saved %d transactions to %s", len(state.transactions), path)
    return path


def load_state(path: Optional[Path] = None) -> BudgetState:
    """Load the saved state, or a fresh zero-balance one if it can't be read."""
    path = Path(path) if path is not None else state_path()
    if not path.exists():
        logger.info("No saved budget at %s, starting fresh", path)
        return BudgetState()

    try:
        data = json.loads(path.read_text(encoding="utf-8"), parse_float=Decimal)
        state = state_from_dict(data)
    except (OSError, ValueError, TypeError, KeyError, AttributeError, ArithmeticError) as e:
        logger.warning("Could not load budget from %s (%s), starting fresh", path, e)
        return BudgetState()

    logger.info("Loaded %d transactions from %s", len(state.transactions), path)
    return state

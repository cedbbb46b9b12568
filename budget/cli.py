import cmd
from datetime import date
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Optional

from budget.formatting import format_forecast, format_transactions
from budget.logic import (
    PERIOD_STEPS,
    add_transaction,
    delete_transaction,
    edit_transaction,
    forecast,
    list_transactions,
    set_balance,
)
from budget.models import BudgetState, IndexOutOfRange, Recurrence
from budget.storage import save_state


class BudgetCLI(cmd.Cmd):
    prompt = "(budget) "

    def __init__(self, state: BudgetState, save_path: Optional[Path] = None, stdout=None):
        super().__init__(stdout=stdout)
        self.intro = "Welcome to Budget Forecast. Type 'help' for commands."
        self.state = state
        self.save_path = save_path

    def _print(self, text=""):
        self.stdout.write(f"{text}\n")

    def _save(self):
        try:
            save_state(self.state, self.save_path)
        except OSError as e:
            self._print(f"Error saving data: {e}")

    # ===== TRANSACTIONS =====
    def do_add(self, arg):
        """Add a transaction: add <amount> <YYYY-MM-DD> [--recur <weekly|biweekly|monthly> <count>] [--note text]"""
        try:
            args = self._parse_transaction_args(arg.split())
        except ValueError as e:
            self._print(f"Invalid input: {e}")
            return

        add_transaction(self.state, args['amount'], args['date'], args['recurrence'], args['note'])
        self._save()
        confirmation = f"✓ Added {args['amount']:.2f} on {args['date']}"
        if args['recurrence']:
            confirmation += f" (recurring {args['recurrence'].period} x{args['recurrence'].count})"
        self._print(confirmation)

    def do_edit(self, arg):
        """Replace a transaction: edit <index> <amount> <YYYY-MM-DD> [--recur <period> <count>] [--note text]"""
        args = arg.split()
        try:
            if not args:
                raise ValueError("Missing transaction index")
            position = self._parse_position(args[0])
            fields = self._parse_transaction_args(args[1:])
        except ValueError as e:
            self._print(f"Invalid input: {e}")
            return

        try:
            edit_transaction(
                self.state, position, fields['amount'], fields['date'], fields['recurrence'], fields['note']
            )
        except IndexOutOfRange:
            self._print("Invalid transaction ID.")
            return
        self._save()
        self._print(f"✓ Updated transaction {position}")

    def do_delete(self, arg):
        """Delete a transaction: delete <index>"""
        try:
            position = self._parse_position(arg.strip())
        except ValueError as e:
            self._print(f"Invalid input: {e}")
            return

        try:
            delete_transaction(self.state, position)
        except IndexOutOfRange:
            self._print("Invalid transaction ID.")
            return
        self._save()
        self._print(f"✓ Deleted transaction {position}")

    def do_list(self, arg):
        """List transactions with their index"""
        self._print("\nTransactions:")
        self._print(format_transactions(list_transactions(self.state)))

    # ===== BALANCE & FORECAST =====
    def do_balance(self, arg):
        """Show or set the starting balance: balance [amount]"""
        if not arg.strip():
            self._print(f"Balance: {self.state.balance:.2f}")
            return
        try:
            amount = self._parse_amount(arg.strip())
        except ValueError as e:
            self._print(f"Invalid input: {e}")
            return
        set_balance(self.state, amount)
        self._save()
        self._print(f"✓ Balance set to {amount:.2f}")

    def do_forecast(self, arg):
        """Project the balance for the next 12 months: forecast [YYYY-MM-DD]"""
        try:
            as_of = self._parse_date(arg.strip()) if arg.strip() else date.today()
        except ValueError as e:
            self._print(f"Invalid input: {e}")
            return
        self._print(format_forecast(forecast(self.state, as_of)))

    # ===== UTILITIES =====
    def do_exit(self, arg):
        """Exit the program"""
        self._print("Goodbye!")
        return True

    do_quit = do_exit

    def do_EOF(self, arg):
        self._print()
        return self.do_exit(arg)

    def emptyline(self):
        pass

    # ===== HELPERS =====
    @staticmethod
    def _parse_amount(raw):
        try:
            amount = Decimal(raw)
        except InvalidOperation:
            raise ValueError(f"Invalid amount: {raw}")
        if not amount.is_finite():
            raise ValueError(f"Invalid amount: {raw}")
        return amount

    @staticmethod
    def _parse_date(raw):
        try:
            return date.fromisoformat(raw)
        except ValueError:
            raise ValueError("Date must be in YYYY-MM-DD format")

    @staticmethod
    def _parse_position(raw):
        if not raw.isdigit():
            raise ValueError(f"Invalid transaction index: {raw!r}")
        return int(raw)

    def _parse_transaction_args(self, args):
        """Parse <amount> <date> [--recur <period> <count>] [--note text]"""
        if len(args) < 2:
            raise ValueError("Missing required arguments (amount and date)")

        result = {
            'amount': self._parse_amount(args[0]),
            'date': self._parse_date(args[1]),
            'recurrence': None,
            'note': "",
        }

        i = 2
        while i < len(args):
            if args[i] == '--recur':
                if i + 2 >= len(args):
                    raise ValueError("--recur needs a period and a count")
                period = args[i+1].lower()
                if period not in PERIOD_STEPS:
                    raise ValueError(f"Invalid period, use: {'/'.join(PERIOD_STEPS)}")
                if not args[i+2].isdigit():
                    raise ValueError("Occurrence count must be a non-negative integer")
                result['recurrence'] = Recurrence(period, int(args[i+2]))
                i += 3
            elif args[i] == '--note':
                result['note'] = ' '.join(args[i+1:])
                break
            else:
                raise ValueError(f"Unexpected argument: {args[i]}")

        return result

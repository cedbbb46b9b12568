import unittest
import copy
import io
import json
import tempfile
from datetime import date, timedelta
from decimal import Decimal
from pathlib import Path
from unittest.mock import patch

from budget.models import (
    BudgetState, Transaction, Recurrence, Event, IndexOutOfRange
)

from budget.logic import (
    add_transaction, edit_transaction, delete_transaction, list_transactions, set_balance,
    expand_transaction, expand_events, next_checkpoint, forecast
)

from budget.storage import save_state, load_state, state_to_dict
from budget.config import state_path, STATE_FILE_ENV, DEFAULT_STATE_FILE
from budget.formatting import format_forecast, format_transactions
from budget.cli import BudgetCLI


class TestTransactionStore(unittest.TestCase):
    def setUp(self):
        """Fresh store with three one-time transactions"""
        self.state = BudgetState(balance=Decimal("100.00"))
        add_transaction(self.state, Decimal("10"), date(2024, 1, 1), note="first")
        add_transaction(self.state, Decimal("-20"), date(2024, 1, 2), note="second")
        add_transaction(self.state, Decimal("30"), date(2024, 1, 3), note="third")

    def test_new_state_is_empty(self):
        """A fresh store has zero balance and no transactions"""
        state = BudgetState()
        self.assertEqual(state.balance, Decimal("0"))
        self.assertEqual(state.transactions, [])

    def test_add_transaction(self):
        """Adding appends with all fields, and accepts any values"""
        t = add_transaction(
            self.state, Decimal("-5.50"), date(2030, 2, 28), Recurrence("fortnightly", 99), "odd"
        )
        self.assertEqual(len(self.state.transactions), 4)
        self.assertIs(self.state.transactions[-1], t)
        self.assertEqual(t.amount, Decimal("-5.50"))
        self.assertEqual(t.date, date(2030, 2, 28))
        self.assertEqual(t.recurrence, Recurrence("fortnightly", 99))
        self.assertEqual(t.note, "odd")

    def test_note_defaults_to_empty(self):
        t = add_transaction(self.state, Decimal("1"), date(2024, 1, 1))
        self.assertEqual(t.note, "")
        self.assertIsNone(t.recurrence)

    def test_list_transactions(self):
        """Listing yields (position, transaction) in storage order, as a fresh list"""
        entries = list_transactions(self.state)
        self.assertEqual([pos for pos, _ in entries], [0, 1, 2])
        self.assertEqual([t.note for _, t in entries], ["first", "second", "third"])

        entries.clear()
        self.assertEqual(len(list_transactions(self.state)), 3)

    def test_edit_transaction(self):
        """Editing replaces every field at the position"""
        edit_transaction(
            self.state, 1, Decimal("-99"), date(2024, 5, 5), Recurrence("weekly", 3), "changed"
        )
        t = self.state.transactions[1]
        self.assertEqual(t, Transaction(Decimal("-99"), date(2024, 5, 5), Recurrence("weekly", 3), "changed"))

        edit_transaction(self.state, 1, Decimal("1"), date(2024, 5, 6))
        self.assertIsNone(self.state.transactions[1].recurrence)
        self.assertEqual(self.state.transactions[1].note, "")

    def test_edit_out_of_range(self):
        """Editing a missing position raises and leaves the store unchanged"""
        before = copy.deepcopy(self.state)
        with self.assertRaises(IndexOutOfRange) as ctx:
            edit_transaction(self.state, 3, Decimal("1"), date(2024, 1, 1))
        self.assertEqual(ctx.exception.position, 3)
        self.assertEqual(ctx.exception.count, 3)
        self.assertEqual(self.state, before)

    def test_edit_does_not_change_earlier_listing(self):
        """A listing taken before an edit keeps the old transaction"""
        entries = list_transactions(self.state)
        edit_transaction(self.state, 0, Decimal("999"), date(2025, 1, 1), note="new")
        self.assertEqual(entries[0][1].note, "first")
        self.assertEqual(entries[0][1].amount, Decimal("10"))
        self.assertEqual(list_transactions(self.state)[0][1].note, "new")

    def test_delete_shifts_later_positions(self):
        """Deleting position i removes it and moves later transactions down"""
        removed = delete_transaction(self.state, 1)
        self.assertEqual(removed.note, "second")
        self.assertEqual([t.note for t in self.state.transactions], ["first", "third"])
        self.assertEqual(list_transactions(self.state)[1][1].note, "third")

    def test_delete_out_of_range(self):
        """Deleting a missing position raises and leaves the store unchanged"""
        before = copy.deepcopy(self.state)
        for position in (3, 10, -1):
            with self.assertRaises(IndexOutOfRange):
                delete_transaction(self.state, position)
        self.assertEqual(self.state, before)

    def test_index_out_of_range_is_index_error(self):
        with self.assertRaises(IndexError):
            delete_transaction(BudgetState(), 0)

    def test_set_balance(self):
        set_balance(self.state, Decimal("-3.25"))
        self.assertEqual(self.state.balance, Decimal("-3.25"))


class TestEventExpansion(unittest.TestCase):
    def test_one_time_transaction(self):
        t = Transaction(Decimal("5"), date(2024, 3, 1))
        self.assertEqual(expand_transaction(t), [Event(date(2024, 3, 1), Decimal("5"))])

    def test_expansion_cardinality(self):
        """A recognized period yields count + 1 events"""
        for period in ("weekly", "biweekly", "monthly"):
            for count in (0, 1, 5):
                t = Transaction(Decimal("1"), date(2024, 1, 1), Recurrence(period, count))
                self.assertEqual(len(expand_transaction(t)), count + 1)

    def test_step_sizes(self):
        """Weekly steps 7 days, biweekly 14, monthly a fixed 30"""
        for period, days in (("weekly", 7), ("biweekly", 14), ("monthly", 30)):
            t = Transaction(Decimal("-1"), date(2024, 1, 31), Recurrence(period, 4))
            events = expand_transaction(t)
            self.assertEqual(events[0].date, date(2024, 1, 31))
            for prev, nxt in zip(events, events[1:]):
                self.assertEqual(nxt.date - prev.date, timedelta(days=days))
                self.assertEqual(nxt.amount, Decimal("-1"))

    def test_monthly_drifts_from_calendar(self):
        t = Transaction(Decimal("1"), date(2024, 1, 1), Recurrence("monthly", 12))
        self.assertEqual(expand_transaction(t)[-1].date, date(2024, 12, 26))

    def test_unrecognized_period_yields_single_event(self):
        """An unknown period silently stops after the original event"""
        t = Transaction(Decimal("7"), date(2024, 1, 1), Recurrence("daily", 10))
        self.assertEqual(expand_transaction(t), [Event(date(2024, 1, 1), Decimal("7"))])

    def test_events_sorted_by_date(self):
        transactions = [
            Transaction(Decimal("1"), date(2024, 3, 1)),
            Transaction(Decimal("2"), date(2024, 1, 1), Recurrence("weekly", 10)),
        ]
        events = expand_events(transactions)
        self.assertEqual(len(events), 12)
        self.assertEqual([e.date for e in events], sorted(e.date for e in events))

    def test_same_day_events_keep_input_order(self):
        """Sorting is stable for equal dates"""
        a = Transaction(Decimal("1"), date(2024, 1, 8))
        b = Transaction(Decimal("2"), date(2024, 1, 1), Recurrence("weekly", 1))
        self.assertEqual([e.amount for e in expand_events([a, b])], [Decimal("2"), Decimal("1"), Decimal("2")])
        self.assertEqual([e.amount for e in expand_events([b, a])], [Decimal("2"), Decimal("2"), Decimal("1")])


class TestForecast(unittest.TestCase):
    def setUp(self):
        self.state = BudgetState(balance=Decimal("1000.00"))
        add_transaction(self.state, Decimal("-200.00"), date(2024, 1, 20), Recurrence("monthly", 2))

    def test_next_checkpoint(self):
        """Always the first of the following calendar month"""
        self.assertEqual(next_checkpoint(date(2024, 1, 15)), date(2024, 2, 1))
        self.assertEqual(next_checkpoint(date(2024, 1, 31)), date(2024, 2, 1))
        self.assertEqual(next_checkpoint(date(2024, 2, 29)), date(2024, 3, 1))
        self.assertEqual(next_checkpoint(date(2024, 12, 1)), date(2025, 1, 1))
        self.assertEqual(next_checkpoint(date(2024, 7, 31)), date(2024, 8, 1))

    def test_monthly_example_scenario(self):
        """Three -200 payments over three months, then flat"""
        result = forecast(self.state, as_of=date(2024, 1, 15))
        balances = [cp.amount for cp in result.checkpoints]
        self.assertEqual(balances[:3], [Decimal("800.00"), Decimal("600.00"), Decimal("400.00")])
        self.assertEqual(balances[3:], [Decimal("400.00")] * 9)
        self.assertEqual(result.checkpoints[0].date, date(2024, 2, 1))
        self.assertEqual(result.checkpoints[-1].date, date(2025, 1, 1))
        self.assertFalse(result.reached_nonpositive)

    def test_checkpoint_dates(self):
        """Twelve strictly increasing month starts, one month apart"""
        result = forecast(self.state, as_of=date(2024, 11, 30))
        dates = [cp.date for cp in result.checkpoints]
        self.assertEqual(len(dates), 12)
        self.assertTrue(all(d.day == 1 for d in dates))
        self.assertEqual(dates[0], date(2024, 12, 1))
        for prev, nxt in zip(dates, dates[1:]):
            self.assertEqual((nxt.year * 12 + nxt.month) - (prev.year * 12 + prev.month), 1)

    def test_balance_is_sum_of_prior_events(self):
        """Each checkpoint is the start balance plus events strictly before it"""
        add_transaction(self.state, Decimal("50"), date(2023, 6, 1))
        add_transaction(self.state, Decimal("12.34"), date(2024, 2, 1), Recurrence("biweekly", 20))
        add_transaction(self.state, Decimal("-3"), date(2024, 5, 31), Recurrence("weekly", 8))
        result = forecast(self.state, as_of=date(2024, 1, 15))
        events = expand_events(self.state.transactions)
        for cp in result.checkpoints:
            expected = self.state.balance + sum((e.amount for e in events if e.date < cp.date), Decimal("0"))
            self.assertEqual(cp.amount, expected)

    def test_nonpositive_is_flagged_not_truncated(self):
        """Going negative sets the flag but all checkpoints are still produced"""
        state = BudgetState(balance=Decimal("100"))
        add_transaction(state, Decimal("-150"), date(2024, 2, 10))
        add_transaction(state, Decimal("500"), date(2024, 4, 10))
        result = forecast(state, as_of=date(2024, 1, 15))
        self.assertTrue(result.reached_nonpositive)
        self.assertEqual(len(result.checkpoints), 12)
        self.assertEqual(result.checkpoints[1].amount, Decimal("-50"))
        self.assertEqual(result.checkpoints[-1].amount, Decimal("450"))

    def test_zero_balance_counts_as_nonpositive(self):
        result = forecast(BudgetState(), as_of=date(2024, 1, 15))
        self.assertEqual(len(result.checkpoints), 12)
        self.assertTrue(result.reached_nonpositive)

    def test_events_after_horizon_are_dropped(self):
        state = BudgetState(balance=Decimal("10"))
        add_transaction(state, Decimal("1"), date(2024, 12, 31))
        add_transaction(state, Decimal("1000"), date(2025, 1, 1))
        result = forecast(state, as_of=date(2024, 1, 15))
        self.assertEqual(result.checkpoints[-1].date, date(2025, 1, 1))
        self.assertEqual(result.checkpoints[-1].amount, Decimal("11"))

    def test_forecast_does_not_mutate_state(self):
        before = copy.deepcopy(self.state)
        forecast(self.state, as_of=date(2024, 1, 15))
        self.assertEqual(self.state, before)

    def test_debug_log_names_start_date(self):
        """The log reports the resolved start date, also when defaulted"""
        with patch("budget.logic.date") as mock_date:
            mock_date.today.return_value = date(2024, 1, 15)
            with self.assertLogs("budget.logic", level="DEBUG") as logs:
                forecast(self.state)
        self.assertIn("Forecast from 2024-01-15", logs.output[0])
        self.assertNotIn("None", logs.output[0])

    def test_as_of_defaults_to_today(self):
        with patch("budget.logic.date") as mock_date:
            mock_date.today.return_value = date(2024, 1, 15)
            result = forecast(self.state)
        self.assertEqual(result.checkpoints[0].date, date(2024, 2, 1))


class TestStorage(unittest.TestCase):
    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.path = Path(self.tmp.name) / "budget_state.json"

    def tearDown(self):
        self.tmp.cleanup()

    def test_save_and_load_round_trip(self):
        """Saving then loading yields an equal state"""
        state = BudgetState(balance=Decimal("1000.00"))
        add_transaction(state, Decimal("-200.00"), date(2024, 1, 20), Recurrence("monthly", 2), "rent")
        add_transaction(state, Decimal("0.1"), date(2024, 2, 29))
        add_transaction(state, Decimal("1234.56"), date(2025, 12, 31), Recurrence("biweekly", 0), "pay")

        save_state(state, self.path)
        loaded = load_state(self.path)
        self.assertEqual(loaded, state)
        self.assertIsInstance(loaded.balance, Decimal)
        self.assertIsInstance(loaded.transactions[0].recurrence, Recurrence)

    def test_round_trip_keeps_full_precision(self):
        """Amounts with more digits than a float holds survive a save"""
        state = BudgetState(balance=Decimal("12345678901234567.89"))
        add_transaction(state, Decimal("0.123456789012345678"), date(2024, 1, 1))
        add_transaction(state, Decimal("-1E+3"), date(2024, 1, 2))

        save_state(state, self.path)
        self.assertIn("12345678901234567.89", self.path.read_text())
        loaded = load_state(self.path)
        self.assertEqual(loaded, state)
        self.assertEqual(str(loaded.balance), "12345678901234567.89")
        self.assertEqual(str(loaded.transactions[0].amount), "0.123456789012345678")

    def test_loaded_state_supports_forecast_and_listing(self):
        state = BudgetState(balance=Decimal("10"))
        add_transaction(state, Decimal("-1"), date(2024, 1, 20), Recurrence("weekly", 2), "coffee")
        save_state(state, self.path)
        loaded = load_state(self.path)
        self.assertEqual(forecast(loaded, as_of=date(2024, 1, 15)).checkpoints[0].amount, Decimal("8"))
        self.assertIn("coffee", format_transactions(list_transactions(loaded)))

    def test_saved_format(self):
        state = BudgetState(balance=Decimal("5"))
        add_transaction(state, Decimal("-200.00"), date(2024, 1, 20), Recurrence("monthly", 2), "rent")
        add_transaction(state, Decimal("3"), date(2024, 1, 21))
        save_state(state, self.path)

        data = json.loads(self.path.read_text())
        self.assertEqual(data["balance"], 5)
        self.assertEqual(data["transactions"][0], {
            "amount": -200.0, "date": "2024-01-20", "recurrence": ["monthly", 2], "note": "rent"
        })
        self.assertIsNone(data["transactions"][1]["recurrence"])

    def test_save_rewrites_whole_file(self):
        state = BudgetState()
        add_transaction(state, Decimal("1"), date(2024, 1, 1))
        add_transaction(state, Decimal("2"), date(2024, 1, 2))
        save_state(state, self.path)
        delete_transaction(state, 0)
        save_state(state, self.path)
        self.assertEqual(len(load_state(self.path).transactions), 1)

    def test_load_missing_file(self):
        self.assertEqual(load_state(self.path), BudgetState())

    def test_load_malformed_falls_back_to_empty(self):
        """Unparseable or malformed files give a fresh zero-balance store"""
        bad_contents = [
            "{not json",
            "[]",
            '{"balance": 10, "transactions": [{"amount": 1}]}',
            '{"balance": 10, "transactions": [{"amount": 1, "date": "2024-13-01"}]}',
            '{"balance": "abc", "transactions": []}',
            '{"balance": 1, "transactions": [{"amount": 1, "date": "2024-01-01", "recurrence": ["weekly"]}]}',
            '{"balance": NaN, "transactions": []}',
            '{"balance": 1, "transactions": [{"amount": Infinity, "date": "2024-01-01"}]}',
            '{"balance": 1, "transactions": [{"amount": 1, "date": "2024-01-01", "note": 5}]}',
            '{"balance": 1, "transactions": [{"amount": 1, "date": "2024-01-01", "recurrence": [7, 2]}]}',
            '{"balance": 1, "transactions": [{"amount": 1, "date": "2024-01-01", "recurrence": ["weekly", -1]}]}',
        ]
        for content in bad_contents:
            self.path.write_text(content)
            with self.assertLogs("budget.storage", level="WARNING"):
                self.assertEqual(load_state(self.path), BudgetState())

    def test_load_without_notes(self):
        """Files from the variant without notes load with empty notes"""
        self.path.write_text(json.dumps({
            "balance": 1000,
            "transactions": [{"amount": -5, "date": "2024-01-01", "recurrence": ["weekly", 3]}],
        }))
        state = load_state(self.path)
        self.assertEqual(state.balance, Decimal("1000"))
        self.assertEqual(state.transactions[0], Transaction(Decimal("-5"), date(2024, 1, 1), Recurrence("weekly", 3)))

    def test_state_to_dict(self):
        state = BudgetState(balance=Decimal("1"))
        add_transaction(state, Decimal("2"), date(2024, 1, 1), note="x")
        self.assertEqual(state_to_dict(state)["transactions"][0]["note"], "x")

    def test_state_path_env_override(self):
        with patch.dict("os.environ", {STATE_FILE_ENV: str(self.path)}):
            self.assertEqual(state_path(), self.path)
        with patch.dict("os.environ", {}, clear=True):
            self.assertEqual(state_path(), Path(DEFAULT_STATE_FILE))


class TestFormatting(unittest.TestCase):
    def test_format_transactions(self):
        state = BudgetState()
        add_transaction(state, Decimal("-200"), date(2024, 1, 20), Recurrence("monthly", 2), "rent")
        add_transaction(state, Decimal("5.5"), date(2024, 1, 21))
        lines = format_transactions(list_transactions(state)).splitlines()
        self.assertTrue(lines[0].startswith("Index"))
        self.assertIn("-200.00", lines[2])
        self.assertIn("monthly (2)", lines[2])
        self.assertIn("rent", lines[2])
        self.assertIn("One-time", lines[3])

    def test_format_forecast(self):
        state = BudgetState(balance=Decimal("1000"))
        text = format_forecast(forecast(state, as_of=date(2024, 1, 15)))
        lines = text.splitlines()
        self.assertEqual(len(lines), 12)
        self.assertEqual(lines[0], "2024-02: 1000.00")
        self.assertEqual(lines[-1], "2025-01: 1000.00")

        text = format_forecast(forecast(BudgetState(), as_of=date(2024, 1, 15)))
        self.assertIn("zero/negative", text.splitlines()[-1])


class TestCLI(unittest.TestCase):
    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.path = Path(self.tmp.name) / "state.json"
        self.out = io.StringIO()
        self.state = BudgetState()
        self.cli = BudgetCLI(self.state, save_path=self.path, stdout=self.out)

    def tearDown(self):
        self.tmp.cleanup()

    def run_cmd(self, line):
        self.out.seek(0)
        self.out.truncate()
        self.cli.onecmd(line)
        return self.out.getvalue()

    def test_add_saves(self):
        """Adding through the CLI persists the state"""
        output = self.run_cmd("add -200 2024-01-20 --recur monthly 2 --note rent money")
        self.assertIn("✓ Added", output)
        self.assertEqual(self.state.transactions, [
            Transaction(Decimal("-200"), date(2024, 1, 20), Recurrence("monthly", 2), "rent money")
        ])
        self.assertEqual(load_state(self.path), self.state)

    def test_add_invalid_input(self):
        for line in ("add", "add abc 2024-01-01", "add 5 01/02/2024",
                     "add 5 2024-01-01 --recur daily 3", "add 5 2024-01-01 --recur weekly -1",
                     "add 5 2024-01-01 extra"):
            self.assertIn("Invalid input", self.run_cmd(line))
        self.assertEqual(self.state.transactions, [])
        self.assertFalse(self.path.exists())

    def test_edit_and_delete(self):
        self.run_cmd("add 1 2024-01-01")
        self.run_cmd("add 2 2024-01-02")
        self.assertIn("✓ Updated", self.run_cmd("edit 1 3 2024-02-02 --recur weekly 1"))
        self.assertEqual(self.state.transactions[1], Transaction(Decimal("3"), date(2024, 2, 2), Recurrence("weekly", 1)))

        self.assertIn("✓ Deleted", self.run_cmd("delete 0"))
        self.assertEqual(len(load_state(self.path).transactions), 1)

    def test_out_of_range_position(self):
        self.run_cmd("add 1 2024-01-01")
        before = copy.deepcopy(self.state)
        self.assertIn("Invalid transaction ID.", self.run_cmd("delete 4"))
        self.assertIn("Invalid transaction ID.", self.run_cmd("edit 1 3 2024-02-02"))
        self.assertIn("Invalid input", self.run_cmd("delete x"))
        self.assertEqual(self.state, before)

    def test_list(self):
        self.run_cmd("add 10 2024-01-01 --note salary")
        output = self.run_cmd("list")
        self.assertIn("Transactions:", output)
        self.assertIn("salary", output)

    def test_balance_and_forecast(self):
        self.assertIn("Balance: 0.00", self.run_cmd("balance"))
        self.run_cmd("balance 1000")
        self.assertEqual(load_state(self.path).balance, Decimal("1000"))
        self.run_cmd("add -200.00 2024-01-20 --recur monthly 2")

        output = self.run_cmd("forecast 2024-01-15")
        lines = output.splitlines()
        self.assertEqual(len(lines), 12)
        self.assertEqual(lines[:3], ["2024-02: 800.00", "2024-03: 600.00", "2024-04: 400.00"])
        self.assertIn("Invalid input", self.run_cmd("forecast tomorrow"))

    def test_save_error_is_reported(self):
        cli = BudgetCLI(self.state, save_path=Path(self.tmp.name) / "missing" / "state.json", stdout=self.out)
        self.out.seek(0)
        self.out.truncate()
        with self.assertLogs("budget.storage", level="ERROR"):
            cli.onecmd("add 1 2024-01-01")
        self.assertIn("Error saving data", self.out.getvalue())
        self.assertEqual(len(self.state.transactions), 1)

    def test_exit(self):
        self.assertTrue(self.cli.onecmd("exit"))
        self.assertTrue(self.cli.onecmd("EOF"))


if __name__ == '__main__':
    unittest.main()

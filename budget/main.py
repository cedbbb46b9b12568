from budget.cli import BudgetCLI
from budget.config import configure_logging, state_path
from budget.storage import load_state


def main():
    configure_logging()
    path = state_path()
    BudgetCLI(load_state(path), save_path=path).cmdloop()


if __name__ == "__main__":
    main()

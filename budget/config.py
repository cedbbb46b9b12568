from __future__ import annotations

import logging
import os
from pathlib import Path


DEFAULT_STATE_FILE = "budget_state.json"
STATE_FILE_ENV = "BUDGET_STATE_FILE"
LOG_LEVEL_ENV = "BUDGET_LOG_LEVEL"

FORECAST_MONTHS = 12


def state_path() -> Path:
    """Location of the persisted budget, honouring ``BUDGET_STATE_FILE``."""
    return Path(os.environ.get(STATE_FILE_ENV) or DEFAULT_STATE_FILE)


def configure_logging(level: str | None = None) -> None:
    level_name = (level or os.environ.get(LOG_LEVEL_ENV) or "WARNING").upper()
    logging.basicConfig(
        level=getattr(logging, level_name, logging.WARNING),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

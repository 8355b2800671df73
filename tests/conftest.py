"""Shared test fixtures for the prediction ledger."""

import logging
import sys
from pathlib import Path

import pytest
import structlog

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from access import AccessGuard, AccessPolicy  # noqa: E402
from ledger import PredictionLedger  # noqa: E402
from observability import metrics  # noqa: E402
from queries import LedgerViews  # noqa: E402
from stats import StatsEngine  # noqa: E402

START = 1_700_000_000
E18 = 10**18
ADMIN = "0xA11CE00000000000000000000000000000000001"
ALICE = "0xA1100000000000000000000000000000000000aa"
BOB = "0xB0B0000000000000000000000000000000000bb"


class FakeClock:
    """Manually advanced unix-seconds clock."""

    def __init__(self, now: int = START):
        self.now = now

    def __call__(self) -> int:
        return self.now

    def advance(self, seconds: int) -> None:
        self.now += seconds


@pytest.fixture(autouse=True)
def reset_observability():
    metrics.reset()
    yield
    metrics.reset()
    # CLI runs attach handlers to streams that are closed afterwards.
    logging.getLogger().handlers.clear()
    structlog.reset_defaults()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def db_path(tmp_path):
    return tmp_path / "ledger.db"


@pytest.fixture
def ledger(db_path, clock):
    return PredictionLedger(db_path, clock=clock, bootstrap_oracles=[ADMIN])


@pytest.fixture
def stats(ledger):
    return StatsEngine(ledger.db_path)


@pytest.fixture
def views(ledger, stats):
    return LedgerViews(ledger, stats)


@pytest.fixture
def guard(ledger):
    return AccessGuard(ledger, AccessPolicy([ADMIN]))


@pytest.fixture
def submit(ledger, clock):
    """Submit with sensible defaults; override any field by keyword."""

    def _submit(**overrides):
        params = {
            "predictor": ALICE,
            "asset": "BTC",
            "current_price": 50_000 * E18,
            "predicted_price": 52_000 * E18,
            "target_time": clock() + 3600,
            "model_type": "LSTM",
            "metadata": "{}",
        }
        params.update(overrides)
        return ledger.submit(**params)

    return _submit

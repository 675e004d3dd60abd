"""
conftest.py – shared fakes for the tracker tests.

Nothing here talks to Telegram or Bybit: the price oracle, the delivery
function and the history fetcher are replaced by in-memory fakes, and the
SQLite store lives under pytest's tmp_path.
"""

from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from services.pnl_engine.source_mapping import SourceMapping
from services.pnl_engine.tracker import PnlTracker
from services.signals_service.signal_store import SignalStore

SOURCE = "-1002404846297/5"
DEST = "-1002404846297/178"

BTC_SIGNAL = (
    "📈 SIGNAL: BTC/USDT LONG\n"
    "Entry: 60000\n"
    "1️⃣ Target 1: 61000\n"
    "2️⃣ Target 2: 62000\n"
    "Stop Loss: 59000"
)


class FakeClock:
    """Deterministic clock; advance() moves it forward."""

    def __init__(self, start=None):
        self.now = start or datetime(2024, 3, 10, 12, 0, tzinfo=timezone.utc)

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now = self.now + timedelta(**kwargs)
        return self.now


class FakeOracle:
    def __init__(self, prices=None):
        self.prices = dict(prices or {})
        self.calls = []

    async def fetch_price(self, pair):
        self.calls.append(pair)
        value = self.prices.get(pair)
        if isinstance(value, Exception):
            raise value
        return None if value is None else Decimal(str(value))


class FakeNotifier:
    def __init__(self, fail=False):
        self.sent = []
        self.fail = fail

    async def deliver(self, channel_id, text):
        self.sent.append((channel_id, text))
        return not self.fail

    def texts(self):
        return [text for _, text in self.sent]


class FakeHistory:
    def __init__(self, messages=None):
        self.messages = messages or {}
        self.requests = []

    async def fetch_recent_messages(self, channel_id, limit):
        self.requests.append((channel_id, limit))
        return list(self.messages.get(channel_id, []))[-limit:]


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store(tmp_path, clock):
    s = SignalStore(str(tmp_path / "signals.db"), clock=clock)
    s.init_db()
    return s


@pytest.fixture
def mapping():
    return SourceMapping({SOURCE: DEST})


@pytest.fixture
def oracle():
    return FakeOracle()


@pytest.fixture
def notifier():
    return FakeNotifier()


@pytest.fixture
def tracker(store, oracle, notifier, mapping, clock):
    return PnlTracker(store, oracle, notifier, mapping, clock=clock)

"""
Unit tests for utils/helpers.py, utils/logger.py and the Signal model serialization.
"""
import logging
from datetime import datetime, timezone
from decimal import Decimal

import pytest

from conftest import BTC_SIGNAL
from models.signal import Signal, SignalStatus
from services.signals_service.signal_parser import parse_signal
from utils.helpers import (
    chat_id_variants,
    decimal_str,
    fmt_pct,
    normalize_pair,
    pair_to_symbol,
    parse_ts,
    safe_decimal,
    split_thread,
    to_decimal,
)
from utils.logger import configure_logging


@pytest.mark.parametrize("raw, expected", [
    ("btc-usdt", "BTC/USDT"),
    ("#eth", "ETH/USDT"),
    ("SOL|USDC", "SOL/USDC"),
    (" xrp/usdt ", "XRP/USDT"),
])
def test_normalize_pair(raw, expected):
    assert normalize_pair(raw) == expected


def test_pair_to_symbol():
    assert pair_to_symbol("BTC/USDT") == "BTCUSDT"


def test_decimals():
    assert to_decimal(0.1) == Decimal("0.1")
    assert safe_decimal("abc") is None
    assert safe_decimal("NaN") is None
    assert decimal_str(Decimal("60000.00")) == "60000"
    assert decimal_str(Decimal("0.04500")) == "0.045"


@pytest.mark.parametrize("value, signed, expected", [
    (Decimal("1.666"), False, "1.67"),
    (Decimal("1.666"), True, "+1.67"),
    (Decimal("-2.5"), True, "-2.50"),
    (Decimal("0"), True, "0.00"),
])
def test_fmt_pct(value, signed, expected):
    assert fmt_pct(value, signed=signed) == expected


def test_chat_id_variants_with_thread():
    variants = chat_id_variants("-1002404846297/5")
    assert variants[0] == "-1002404846297/5"
    assert "1002404846297/5" in variants
    assert "-1002404846297" in variants
    assert chat_id_variants(None) == []


def test_split_thread():
    assert split_thread("-1002404846297/178") == ("-1002404846297", 178)
    assert split_thread("-100123") == ("-100123", None)


def test_parse_ts_assumes_utc():
    assert parse_ts("2024-03-10T12:00:00") == datetime(2024, 3, 10, 12, tzinfo=timezone.utc)
    assert parse_ts(None) is None


def test_signal_dict_round_trip():
    signal = parse_signal(BTC_SIGNAL)
    signal.id = "signal:BTC/USDT:1"
    signal.message_id = "42"
    signal.targets[0].hit = True
    signal.targets[0].hit_at = datetime(2024, 3, 10, 12, tzinfo=timezone.utc)
    signal.status = SignalStatus.STOPPED
    signal.stopped_at = datetime(2024, 3, 10, 13, tzinfo=timezone.utc)

    restored = Signal.from_dict(signal.to_dict())
    assert restored == signal
    assert restored.dedupe_key() == "BTC/USDT-LONG-60000-42"


def test_configure_logging_sets_root_level(tmp_path):
    root = logging.getLogger()
    saved_handlers, saved_level = root.handlers[:], root.level
    try:
        configure_logging(str(tmp_path / "logs"), "debug")
        assert root.level == logging.DEBUG
        assert len(root.handlers) == 2
        assert all(h.level == logging.NOTSET for h in root.handlers)
        assert logging.getLogger("telethon").level == logging.WARNING

        logging.getLogger("signal_parser").debug("📭 detalle")
        for handler in root.handlers:
            handler.flush()
        log_text = (tmp_path / "logs" / "pnl_tracker.log").read_text(encoding="utf-8")
        assert "📭 detalle" in log_text
    finally:
        for handler in root.handlers:
            handler.close()
        root.handlers[:] = saved_handlers
        root.setLevel(saved_level)

"""
Unit tests for services/signals_service/signal_parser.py.

Covers:
  - EmojiDialect   : strict '📈 SIGNAL:' format, profit / max loss maths
  - KeywordDialect : hashtag pairs, bare tickers, direction-price fallback
  - SignalParser   : rejects noise, dialect priority, target ordering
"""
from decimal import Decimal

import pytest

from conftest import BTC_SIGNAL
from models.signal import Direction, SignalStatus
from services.signals_service.signal_parser import (
    EmojiDialect,
    KeywordDialect,
    SignalParser,
    build_signal,
    parse_signal,
)


# ── EmojiDialect ───────────────────────────────────────────────────────────────

class TestEmojiDialect:

    def test_btc_example(self):
        signal = parse_signal(BTC_SIGNAL)
        assert signal is not None
        assert signal.pair == "BTC/USDT"
        assert signal.direction is Direction.LONG
        assert signal.entry_price == Decimal("60000")
        assert [t.price for t in signal.targets] == [Decimal("61000"), Decimal("62000")]
        assert [t.profit_percent for t in signal.targets] == [Decimal("1.67"), Decimal("3.33")]
        assert [t.number for t in signal.targets] == [1, 2]
        assert signal.stop_loss == Decimal("59000")
        assert signal.max_loss == Decimal("1.67")
        assert signal.status is SignalStatus.ACTIVE
        assert signal.raw_text == BTC_SIGNAL

    def test_short_targets_are_sorted_descending(self):
        text = (
            "📉 SIGNAL: ETH/USDT SHORT\n"
            "Entry: 100\n"
            "1️⃣ Target 1: 90\n"
            "2️⃣ Target 2: 95\n"
            "Stop Loss: 105"
        )
        signal = EmojiDialect().try_parse(text)
        assert signal.direction is Direction.SHORT
        assert [t.price for t in signal.targets] == [Decimal("95"), Decimal("90")]
        assert [t.profit_percent for t in signal.targets] == [Decimal("5.00"), Decimal("10.00")]
        assert signal.max_loss == Decimal("5.00")

    def test_without_header_is_not_emoji_format(self):
        assert EmojiDialect().try_parse("BTC/USDT LONG\nEntry: 1\nTarget 1: 2") is None

    def test_without_entry_returns_none(self):
        text = "📈 SIGNAL: BTC/USDT LONG\n1️⃣ Target 1: 61000"
        assert EmojiDialect().try_parse(text) is None

    def test_unlabelled_targets_keep_their_price(self):
        text = (
            "📈 SIGNAL: BTC/USDT LONG\n"
            "Entry: 60000\n"
            "Target 61000.5\n"
            "Target 62000\n"
            "Stop Loss: 59000"
        )
        signal = EmojiDialect().try_parse(text)
        assert [t.price for t in signal.targets] == [Decimal("61000.5"), Decimal("62000")]

    def test_label_without_colon_is_not_a_price(self):
        text = "📈 SIGNAL: BTC/USDT LONG\nEntry: 60000\nTarget 1 61000\nTarget 2 62000"
        signal = EmojiDialect().try_parse(text)
        assert [t.price for t in signal.targets] == [Decimal("61000"), Decimal("62000")]

    def test_stop_loss_is_optional(self):
        text = "📈 SIGNAL: SOL/USDT LONG\nEntry: 150\n1️⃣ Target 1: 165"
        signal = EmojiDialect().try_parse(text)
        assert signal.stop_loss is None
        assert signal.max_loss is None
        assert signal.targets[0].profit_percent == Decimal("10.00")


# ── KeywordDialect ─────────────────────────────────────────────────────────────

class TestKeywordDialect:

    def test_hashtag_pair_short(self):
        text = "#ETH/USDT SHORT\nEntry @ 3500\nTP1 - 3450\nTP2 - 3400\nSL: 3550"
        signal = KeywordDialect().try_parse(text)
        assert signal.pair == "ETH/USDT"
        assert signal.direction is Direction.SHORT
        assert signal.entry_price == Decimal("3500")
        assert [t.price for t in signal.targets] == [Decimal("3450"), Decimal("3400")]
        assert [t.profit_percent for t in signal.targets] == [Decimal("1.43"), Decimal("2.86")]
        assert signal.stop_loss == Decimal("3550")
        assert signal.max_loss == Decimal("1.43")

    def test_hashtag_without_quote_gets_default_quote(self):
        text = "LONG #SOL\nEntry zone: 150\nTP1: 155\nTP2: 160\nSL: 145"
        signal = KeywordDialect().try_parse(text)
        assert signal.pair == "SOL/USDT"
        assert signal.entry_price == Decimal("150")
        assert [t.price for t in signal.targets] == [Decimal("155"), Decimal("160")]
        assert signal.max_loss == Decimal("3.33")

    def test_direction_price_fallback_and_bare_ticker(self):
        text = "ETH short 3500\ntake profit 3400\nstop 3600"
        signal = KeywordDialect().try_parse(text)
        assert signal.pair == "ETH/USDT"
        assert signal.direction is Direction.SHORT
        assert signal.entry_price == Decimal("3500")
        assert [t.price for t in signal.targets] == [Decimal("3400")]
        assert signal.stop_loss == Decimal("3600")

    def test_pair_after_direction_keyword(self):
        text = "BUY BTC/USDT\nEntry: 60000\nTargets: 61000, 62000, 63000\nStop loss: 58000"
        signal = KeywordDialect().try_parse(text)
        assert signal.pair == "BTC/USDT"
        assert signal.direction is Direction.LONG
        assert [t.price for t in signal.targets] == [
            Decimal("61000"), Decimal("62000"), Decimal("63000"),
        ]
        assert signal.stop_loss == Decimal("58000")

    def test_custom_default_quote(self):
        text = "LONG #ADA\nEntry: 0.5\nTP1: 0.55"
        signal = KeywordDialect(default_quote="USDC").try_parse(text)
        assert signal.pair == "ADA/USDC"

    def test_amount_is_not_a_pair(self):
        text = "Risk 1000 USDT\nLONG #XRP\nEntry: 0.6\nTP1: 0.66"
        signal = KeywordDialect().try_parse(text)
        assert signal.pair == "XRP/USDT"

    @pytest.mark.parametrize("text", [
        "#SOL LONG\nEntry: 150\nTP1: 160\nSL: 140\nWatch BTC dominance",
        "#SOL LONG\nEntry: 150\nTP1: 160\nSL: 140\nBTC ETH correlation high",
        "SOL LONG\nEntry: 150\nTP1: 160\nSL: 140\nWatch BTC dominance",
    ])
    def test_ticker_mentioned_in_commentary_is_not_the_pair(self, text):
        signal = KeywordDialect().try_parse(text)
        assert signal.pair == "SOL/USDT"
        assert signal.entry_price == Decimal("150")

    @pytest.mark.parametrize("text, pair", [
        ("#ETH/BTC LONG\nEntry: 0.05\nTP1: 0.055", "ETH/BTC"),
        ("#BTCUSDT LONG\nEntry: 60000\nTP1: 61000", "BTC/USDT"),
        ("LINKUSDC long\nEntry: 14\nTP1: 15", "LINK/USDC"),
        ("sell eth/usdt\nEntry: 3500\nTP1: 3400", "ETH/USDT"),
    ])
    def test_explicit_quote_is_kept(self, text, pair):
        assert KeywordDialect().try_parse(text).pair == pair


# ── SignalParser ───────────────────────────────────────────────────────────────

class TestSignalParser:

    @pytest.mark.parametrize("text", [
        "",
        "   ",
        "Good morning traders, BTC looks strong today",
        "BTC long now! entry 60000",          # no target cue
        "Target reached on yesterday's call",  # no direction cue
    ])
    def test_noise_returns_none(self, text):
        assert SignalParser().parse(text) is None

    def test_emoji_dialect_wins_over_keyword(self):
        calls = []

        class Recorder(KeywordDialect):
            def try_parse(self, text):
                calls.append(text)
                return super().try_parse(text)

        parser = SignalParser(dialects=[EmojiDialect(), Recorder()])
        assert parser.parse(BTC_SIGNAL) is not None
        assert calls == []

    def test_falls_back_to_second_dialect(self):
        parser = SignalParser()
        signal = parser.parse("#ETH/USDT SHORT\nEntry @ 3500\nTP1 - 3450")
        assert signal is not None
        assert signal.pair == "ETH/USDT"

    def test_duplicate_targets_collapse(self):
        signal = build_signal(
            "BTC/USDT", Direction.LONG, Decimal("100"),
            [Decimal("110"), Decimal("105"), Decimal("110")], None, "",
        )
        assert [t.price for t in signal.targets] == [Decimal("105"), Decimal("110")]
        assert [t.number for t in signal.targets] == [1, 2]

    def test_long_profits_are_positive(self):
        signal = build_signal(
            "BTC/USDT", Direction.LONG, Decimal("100"),
            [Decimal("120"), Decimal("101")], Decimal("90"), "",
        )
        assert all(t.profit_percent > 0 for t in signal.targets)
        assert signal.max_loss == Decimal("10.00")

# services/signals_service/signal_parser.py
"""
Parser de señales de los canales fuente.

Cada "dialecto" sabe leer un formato de texto concreto. SignalParser los
prueba en orden y se queda con el primero que devuelve una señal. Que un
texto no sea señal es lo normal (la mayoría de mensajes son ruido), así
que el parser nunca lanza: devuelve None y deja un log en DEBUG.

Formato estricto (emoji):

    📈 SIGNAL: BTC/USDT LONG
    Entry: 60000
    1️⃣ Target 1: 61000
    2️⃣ Target 2: 62000
    Stop Loss: 59000

Formato libre (keywords):

    #ETH/USDT SHORT
    Entry @ 3500
    TP1 - 3450
    TP2 - 3400
    SL: 3550
"""

import logging
import re
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable, List, Optional

from models.signal import Direction, Signal, Target, profit_percent
from utils.helpers import normalize_pair, safe_decimal

logger = logging.getLogger("signal_parser")

NUMBER = r"\d+(?:\.\d+)?"
KEYCAP = r"[1-9]\ufe0f?\u20e3"

_PCT = Decimal("0.01")

KNOWN_QUOTES = ("USDT", "USDC", "FDUSD", "BUSD", "TUSD", "USD", "BTC", "ETH", "BNB", "EUR", "DAI")

# Palabras en mayúsculas que aparecen en las señales y NO son tickers
NOT_A_TICKER = {
    "LONG", "SHORT", "BUY", "SELL", "ENTRY", "TARGET", "TARGETS", "TP", "SL",
    "STOP", "LOSS", "TAKE", "PROFIT", "SIGNAL", "LEVERAGE", "CROSS", "ISOLATED",
    "AT", "ZONE", "NEW", "VIP", "SPOT", "FUTURES", "PRICE", "NOW", "MARKET",
}


def _num(value: str) -> Optional[Decimal]:
    d = safe_decimal(value)
    if d is None or d <= 0:
        return None
    return d


def _unique(values: Iterable[Decimal]) -> List[Decimal]:
    out: List[Decimal] = []
    for v in values:
        if v not in out:
            out.append(v)
    return out


def build_signal(
    pair: str,
    direction: Direction,
    entry: Decimal,
    target_prices: List[Decimal],
    stop_loss: Optional[Decimal],
    raw_text: str,
) -> Signal:
    """
    Arma la Signal final: ordena targets en el sentido favorable y
    calcula % de ganancia por target y pérdida máxima.
    """
    ordered = sorted(_unique(target_prices), reverse=direction is Direction.SHORT)

    targets = [
        Target(
            number=i,
            price=price,
            profit_percent=profit_percent(direction, entry, price).quantize(_PCT, ROUND_HALF_UP),
        )
        for i, price in enumerate(ordered, start=1)
    ]

    max_loss = None
    if stop_loss is not None:
        # pérdida = -(ganancia al precio del stop)
        max_loss = (-profit_percent(direction, entry, stop_loss)).quantize(_PCT, ROUND_HALF_UP)

    return Signal(
        pair=pair,
        direction=direction,
        entry_price=entry,
        targets=targets,
        stop_loss=stop_loss,
        max_loss=max_loss,
        raw_text=raw_text,
    )


# =============================================================
# 🔵 Dialectos
# =============================================================

class SignalDialect:
    """Estrategia de parseo: try_parse(text) -> Signal | None"""

    name = "base"

    def __init__(self, default_quote: str = "USDT"):
        self.default_quote = default_quote

    def try_parse(self, text: str) -> Optional[Signal]:
        raise NotImplementedError


class EmojiDialect(SignalDialect):
    """Formato estricto '📈 SIGNAL: PAIR LONG' con targets numerados por emoji."""

    name = "emoji"

    HEADER_RE = re.compile(r"SIGNAL:\s*#?([A-Z0-9]+/[A-Z0-9]+)\s+(LONG|SHORT)", re.IGNORECASE)
    ENTRY_RE = re.compile(rf"Entry:\s*({NUMBER})", re.IGNORECASE)
    # El número de 'Target N' solo es etiqueta si le sigue ':' u otro número
    TARGET_RE = re.compile(
        rf"(?:{KEYCAP}\s*)?"
        rf"(?:Target(?:\s*\d{{1,2}}(?=\s*:|\s+\d))?|{KEYCAP})"
        rf"\s*:?\s*({NUMBER})",
        re.IGNORECASE,
    )
    STOP_RE = re.compile(rf"Stop\s*Loss:?\s*({NUMBER})", re.IGNORECASE)

    def try_parse(self, text: str) -> Optional[Signal]:
        if "📈 SIGNAL:" not in text and "📉 SIGNAL:" not in text:
            return None

        header = self.HEADER_RE.search(text)
        if not header:
            logger.debug("📭 emoji: cabecera SIGNAL sin par/dirección")
            return None

        pair = normalize_pair(header.group(1), self.default_quote)
        direction = Direction(header.group(2).upper())

        entry_match = self.ENTRY_RE.search(text)
        entry = _num(entry_match.group(1)) if entry_match else None
        if entry is None:
            logger.debug(f"📭 emoji: sin entry para {pair}")
            return None

        targets = [p for p in (_num(m) for m in self.TARGET_RE.findall(text)) if p is not None]
        if not targets:
            logger.debug(f"📭 emoji: sin targets para {pair}")
            return None

        stop_match = self.STOP_RE.search(text)
        stop_loss = _num(stop_match.group(1)) if stop_match else None

        return build_signal(pair, direction, entry, targets, stop_loss, text)


class KeywordDialect(SignalDialect):
    """
    Formato libre: buy/sell/long/short + target/tp/take profit.
    Es el dialecto de respaldo, tolera bastante ruido alrededor.
    """

    name = "keyword"

    LONG_CUE_RE = re.compile(r"\b(?:buy|long)\b|📈|🟢", re.IGNORECASE)
    SHORT_CUE_RE = re.compile(r"\b(?:sell|short)\b|📉|🔴", re.IGNORECASE)
    TARGET_CUE_RE = re.compile(r"\b(?:targets?|tp\d*|take[\s\-]?profit)\b", re.IGNORECASE)

    HASHTAG_RE = re.compile(r"#([A-Za-z0-9]{2,15})(?:[/\-|]([A-Za-z0-9]{2,10}))?\b")
    QUOTED_PAIR_RE = re.compile(
        r"\b([A-Z0-9]{1,15})\s*[/\-|]\s*(" + "|".join(KNOWN_QUOTES) + r")\b",
        re.IGNORECASE,
    )
    # BTCUSDT pegado: solo en mayúsculas, en minúsculas casa con palabras ('teeth')
    GLUED_PAIR_RE = re.compile(r"\b([A-Z0-9]{2,15}?)(" + "|".join(KNOWN_QUOTES) + r")\b")
    SEPARATED_PAIR_RE = re.compile(r"\b([A-Z0-9]{2,10})\s*[/\-]\s*([A-Z0-9]{2,10})\b")
    DIRECTION_TICKER_RE = re.compile(
        r"\b(?:buy|sell|long|short)\s+#?([a-z][a-z0-9]{1,9})\b", re.IGNORECASE
    )
    BARE_TICKER_RE = re.compile(r"\b([A-Z][A-Z0-9]{1,9})\b")

    ENTRY_RE = re.compile(
        rf"\bentry(?:\s*(?:price|zone|at))?\s*[:\-=@]*\s*(?:at\s+)?({NUMBER})", re.IGNORECASE
    )
    DIRECTION_PRICE_RE = re.compile(
        rf"\b(?:buy|sell|long|short)\s*(?:@|at)?\s*({NUMBER})", re.IGNORECASE
    )
    TARGET_RE = re.compile(
        r"\b(?:take[\s\-]?profit|targets?|tp)"
        r"(?:\s*\d{1,2}(?=[\s:\-=@)]))?"
        r"\s*[:\-=@)]*\s*(?:at\s+)?"
        rf"({NUMBER}(?:\s*[,;|]\s+{NUMBER})*)",
        re.IGNORECASE,
    )
    STOP_RE = re.compile(
        rf"\b(?:stop[\s\-]?loss|sl|stop)\s*[:\-=@]*\s*(?:at\s+)?({NUMBER})", re.IGNORECASE
    )

    def _direction(self, text: str) -> Optional[Direction]:
        long_cue = self.LONG_CUE_RE.search(text)
        short_cue = self.SHORT_CUE_RE.search(text)
        if long_cue and short_cue:
            # gana la pista que aparece primero (normalmente la cabecera)
            return Direction.LONG if long_cue.start() < short_cue.start() else Direction.SHORT
        if long_cue:
            return Direction.LONG
        if short_cue:
            return Direction.SHORT
        return None

    def _split_glued(self, token: str) -> Optional[str]:
        token = token.upper()
        for quote in sorted(KNOWN_QUOTES, key=len, reverse=True):
            if token.endswith(quote) and len(token) - len(quote) >= 2:
                return f"{token[:-len(quote)]}/{quote}"
        return None

    def _pair(self, text: str) -> Optional[str]:
        """
        Orden de preferencia: hashtag (#SOL, #ETH/BTC, #BTCUSDT), par con
        separador, par pegado en mayúsculas y por último el ticker suelto.
        Un ticker mencionado de pasada ('BTC dominance') nunca gana a un hashtag.
        """
        for m in self.HASHTAG_RE.finditer(text):
            base = m.group(1).upper()
            if base in NOT_A_TICKER:
                continue
            if m.group(2):
                return f"{base}/{m.group(2).upper()}"
            return self._split_glued(base) or normalize_pair(base, self.default_quote)

        for regex in (self.QUOTED_PAIR_RE, self.GLUED_PAIR_RE):
            for m in regex.finditer(text):
                base = m.group(1).upper()
                # '1000/USDT' es un importe, no un par
                if base.isdigit() or base in NOT_A_TICKER:
                    continue
                return f"{base}/{m.group(2).upper()}"

        m = self.SEPARATED_PAIR_RE.search(text)
        if m:
            return f"{m.group(1)}/{m.group(2)}"

        m = self.DIRECTION_TICKER_RE.search(text)
        if m and m.group(1).upper() not in NOT_A_TICKER:
            return normalize_pair(m.group(1), self.default_quote)

        for m in self.BARE_TICKER_RE.finditer(text):
            if m.group(1) not in NOT_A_TICKER:
                return normalize_pair(m.group(1), self.default_quote)

        return None

    def _entry(self, text: str) -> Optional[Decimal]:
        m = self.ENTRY_RE.search(text)
        if m:
            return _num(m.group(1))
        m = self.DIRECTION_PRICE_RE.search(text)
        if m:
            return _num(m.group(1))
        return None

    def _targets(self, text: str) -> List[Decimal]:
        prices: List[Decimal] = []
        for group in self.TARGET_RE.findall(text):
            for raw in re.split(r"\s*[,;|]\s*", group):
                price = _num(raw)
                if price is not None:
                    prices.append(price)
        return prices

    def try_parse(self, text: str) -> Optional[Signal]:
        direction = self._direction(text)
        if direction is None or not self.TARGET_CUE_RE.search(text):
            return None

        pair = self._pair(text)
        if not pair:
            logger.debug("📭 keyword: no se detectó par")
            return None

        entry = self._entry(text)
        if entry is None:
            logger.debug(f"📭 keyword: sin entry para {pair}")
            return None

        targets = self._targets(text)
        if not targets:
            logger.debug(f"📭 keyword: sin targets para {pair}")
            return None

        stop_match = self.STOP_RE.search(text)
        stop_loss = _num(stop_match.group(1)) if stop_match else None

        return build_signal(pair, direction, entry, targets, stop_loss, text)


# =============================================================
# 🔵 Parser principal
# =============================================================

class SignalParser:
    """Prueba cada dialecto en orden; gana el primero que reconoce el texto."""

    def __init__(self, dialects: Optional[List[SignalDialect]] = None, default_quote: str = "USDT"):
        if dialects is None:
            dialects = [EmojiDialect(default_quote), KeywordDialect(default_quote)]
        self.dialects = dialects

    def parse(self, text: str) -> Optional[Signal]:
        if not text or not text.strip():
            return None

        for dialect in self.dialects:
            signal = dialect.try_parse(text)
            if signal is not None:
                logger.info(
                    f"✅ Señal reconocida ({dialect.name}) → {signal.pair} "
                    f"{signal.direction.value} @ {signal.entry_price}"
                )
                return signal

        logger.debug("📭 Texto ignorado: no es una señal")
        return None


_default_parser = SignalParser()


def parse_signal(text: str) -> Optional[Signal]:
    return _default_parser.parse(text)

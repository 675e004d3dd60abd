"""
utils/helpers.py
-----------------
Funciones pequeñas y reutilizables para toda la aplicación.
"""

from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import List, Optional, Tuple


# ============================================================
# 🔢 Decimales
# ============================================================
def to_decimal(value) -> Decimal:
    """
    Convierte str/int/float a Decimal sin arrastrar ruido binario
    (los float pasan primero por str).
    """
    if isinstance(value, Decimal):
        return value
    if isinstance(value, float):
        value = repr(value)
    return Decimal(str(value).strip())


def safe_decimal(value) -> Optional[Decimal]:
    try:
        d = to_decimal(value)
    except (InvalidOperation, ValueError, TypeError):
        return None
    if not d.is_finite():
        return None
    return d


def decimal_str(value: Decimal) -> str:
    """60000.00 → '60000', 0.04500 → '0.045'"""
    normalized = value.normalize()
    text = format(normalized, "f")
    return text


def fmt_pct(value: Decimal, signed: bool = False) -> str:
    q = value.quantize(Decimal("0.01"))
    if signed and q > 0:
        return f"+{q}"
    return str(q)


# ============================================================
# 🔵 Timestamps (siempre UTC)
# ============================================================
def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def format_ts(value: Optional[datetime]) -> Optional[str]:
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat()


def parse_ts(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    dt = datetime.fromisoformat(value)
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


# ============================================================
# 🔤 Normalizar par
# ============================================================
def normalize_pair(text: str, default_quote: str = "USDT") -> str:
    """
    Convierte: btc-usdt → BTC/USDT, #eth → ETH/USDT
    """
    text = text.replace("#", "").strip().upper()
    for sep in ("-", "|"):
        text = text.replace(sep, "/")
    if "/" not in text:
        text = f"{text}/{default_quote}"
    return text


def pair_to_symbol(pair: str) -> str:
    """BTC/USDT → BTCUSDT (formato de los exchanges)."""
    return pair.replace("/", "").replace("-", "").upper()


# ============================================================
# 🆔 IDs de chat
# ============================================================
def chat_id_variants(chat_id) -> List[str]:
    """
    Un mismo canal puede llegar como '-1001234', '1001234' o con
    hilo '-1001234/56'. Devuelve todas las formas a comparar contra
    el mapping, en orden de preferencia.
    """
    if chat_id is None or chat_id == "":
        return []

    raw = str(chat_id).strip()
    if "/" in raw:
        main_id, thread_id = raw.split("/", 1)
    else:
        main_id, thread_id = raw, None

    clean = main_id.lstrip("-").lstrip("0")
    variants = [raw]
    if thread_id:
        variants += [f"{clean}/{thread_id}", f"-{clean}/{thread_id}"]
    variants += [clean, f"-{clean}"]

    seen = []
    for v in variants:
        if v not in seen:
            seen.append(v)
    return seen


def split_thread(channel_id) -> Tuple[str, Optional[int]]:
    """'-1001234/56' → ('-1001234', 56)"""
    raw = str(channel_id).strip()
    if "/" not in raw:
        return raw, None
    main_id, thread_id = raw.split("/", 1)
    return main_id, int(thread_id)


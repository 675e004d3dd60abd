"""
models/signal.py
----------------
Modelo de datos para una señal de trading seguida por el tracker de PnL.

Una señal nace ACTIVE y solo puede terminar en COMPLETED (todos los
targets tocados) o STOPPED (stop loss tocado / cierre manual).
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import List, Optional

from utils.helpers import decimal_str, format_ts, parse_ts, to_decimal


class Direction(str, Enum):
    LONG = "LONG"
    SHORT = "SHORT"


class SignalStatus(str, Enum):
    ACTIVE = "ACTIVE"
    COMPLETED = "COMPLETED"
    STOPPED = "STOPPED"

    @property
    def is_terminal(self) -> bool:
        return self is not SignalStatus.ACTIVE


def profit_percent(direction: Direction, entry: Decimal, price: Decimal) -> Decimal:
    """% de ganancia al cerrar en `price` (negativo si es pérdida)."""
    if direction is Direction.LONG:
        return (price - entry) / entry * 100
    return (entry - price) / entry * 100


@dataclass
class Target:
    number: int
    price: Decimal
    profit_percent: Decimal
    hit: bool = False
    hit_at: Optional[datetime] = None

    def to_dict(self) -> dict:
        return {
            "number": self.number,
            "price": str(self.price),
            "profit_percent": str(self.profit_percent),
            "hit": self.hit,
            "hit_at": format_ts(self.hit_at),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Target":
        return cls(
            number=int(data["number"]),
            price=to_decimal(data["price"]),
            profit_percent=to_decimal(data["profit_percent"]),
            hit=bool(data.get("hit", False)),
            hit_at=parse_ts(data.get("hit_at")),
        )


@dataclass
class Signal:
    pair: str
    direction: Direction
    entry_price: Decimal
    targets: List[Target]
    stop_loss: Optional[Decimal] = None
    max_loss: Optional[Decimal] = None
    status: SignalStatus = SignalStatus.ACTIVE
    created_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    stopped_at: Optional[datetime] = None
    chat_id: Optional[str] = None
    message_id: Optional[str] = None
    destination_channel: Optional[str] = None
    raw_text: str = ""
    id: Optional[str] = None

    # ------------------------------------------------------------
    # Consultas
    # ------------------------------------------------------------
    @property
    def is_active(self) -> bool:
        return self.status is SignalStatus.ACTIVE

    @property
    def closed_at(self) -> Optional[datetime]:
        return self.completed_at or self.stopped_at

    def hit_targets(self) -> List[Target]:
        return [t for t in self.targets if t.hit]

    def pending_targets(self) -> List[Target]:
        return [t for t in self.targets if not t.hit]

    def all_targets_hit(self) -> bool:
        return bool(self.targets) and all(t.hit for t in self.targets)

    def average_profit(self) -> Decimal:
        if not self.targets:
            return Decimal("0")
        return sum((t.profit_percent for t in self.targets), Decimal("0")) / len(self.targets)

    def dedupe_key(self) -> str:
        return f"{self.pair}-{self.direction.value}-{decimal_str(self.entry_price)}-{self.message_id}"

    # ------------------------------------------------------------
    # Serialización (JSON-safe)
    # ------------------------------------------------------------
    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "pair": self.pair,
            "direction": self.direction.value,
            "entry_price": str(self.entry_price),
            "targets": [t.to_dict() for t in self.targets],
            "stop_loss": None if self.stop_loss is None else str(self.stop_loss),
            "max_loss": None if self.max_loss is None else str(self.max_loss),
            "status": self.status.value,
            "created_at": format_ts(self.created_at),
            "completed_at": format_ts(self.completed_at),
            "stopped_at": format_ts(self.stopped_at),
            "chat_id": self.chat_id,
            "message_id": self.message_id,
            "destination_channel": self.destination_channel,
            "raw_text": self.raw_text,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Signal":
        stop_loss = data.get("stop_loss")
        max_loss = data.get("max_loss")
        return cls(
            id=data.get("id"),
            pair=data["pair"],
            direction=Direction(data["direction"]),
            entry_price=to_decimal(data["entry_price"]),
            targets=[Target.from_dict(t) for t in data.get("targets", [])],
            stop_loss=None if stop_loss is None else to_decimal(stop_loss),
            max_loss=None if max_loss is None else to_decimal(max_loss),
            status=SignalStatus(data.get("status", SignalStatus.ACTIVE.value)),
            created_at=parse_ts(data.get("created_at")),
            completed_at=parse_ts(data.get("completed_at")),
            stopped_at=parse_ts(data.get("stopped_at")),
            chat_id=data.get("chat_id"),
            message_id=data.get("message_id"),
            destination_channel=data.get("destination_channel"),
            raw_text=data.get("raw_text", ""),
        )


"""
services/pnl_engine/lifecycle.py
--------------------------------
Máquina de estados de una señal: ACTIVE → COMPLETED | STOPPED.

Todo aquí es puro: recibe la señal, el precio y la hora, muta la señal
in-place y devuelve los eventos que hay que notificar. La persistencia y
el envío los hace el tracker.

Orden dentro de un tick:
    1) se marcan todos los targets alcanzados (pueden ser varios)
    2) si con eso se completan todos → COMPLETED y no se mira el stop
    3) si no, y el precio cruzó el stop → STOPPED
"""

import copy
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import List, Optional

from core.exceptions import SignalAlreadyClosed
from models.signal import Direction, Signal, SignalStatus, Target


class EventKind(str, Enum):
    TARGET_HIT = "target_hit"
    STOP_LOSS_HIT = "stop_loss_hit"
    COMPLETED = "completed"


@dataclass
class LifecycleEvent:
    kind: EventKind
    signal: Signal  # snapshot en el momento del evento
    target: Optional[Target] = None


def target_reached(direction: Direction, price: Decimal, target_price: Decimal) -> bool:
    if direction is Direction.LONG:
        return price >= target_price
    return price <= target_price


def stop_reached(direction: Direction, price: Decimal, stop_loss: Decimal) -> bool:
    if direction is Direction.LONG:
        return price <= stop_loss
    return price >= stop_loss


def _snapshot(signal: Signal) -> Signal:
    return copy.deepcopy(signal)


def evaluate_signal(signal: Signal, price: Decimal, now: datetime) -> List[LifecycleEvent]:
    if signal.status.is_terminal:
        return []

    events: List[LifecycleEvent] = []

    for target in signal.targets:
        if target.hit:
            continue
        if target_reached(signal.direction, price, target.price):
            target.hit = True
            target.hit_at = now
            events.append(LifecycleEvent(EventKind.TARGET_HIT, _snapshot(signal), copy.deepcopy(target)))

    if signal.all_targets_hit():
        signal.status = SignalStatus.COMPLETED
        signal.completed_at = now
        events.append(LifecycleEvent(EventKind.COMPLETED, _snapshot(signal)))
        return events

    if signal.stop_loss is not None and stop_reached(signal.direction, price, signal.stop_loss):
        signal.status = SignalStatus.STOPPED
        signal.stopped_at = now
        events.append(LifecycleEvent(EventKind.STOP_LOSS_HIT, _snapshot(signal)))

    return events


# ============================================================
# 🛠 Cierres manuales (admin)
# ============================================================

def force_complete(signal: Signal, now: datetime) -> Signal:
    """Marca todos los targets como tocados y cierra la señal como COMPLETED."""
    if signal.status.is_terminal:
        raise SignalAlreadyClosed(signal.id, signal.status.value)

    for target in signal.targets:
        if not target.hit:
            target.hit = True
            target.hit_at = now

    signal.status = SignalStatus.COMPLETED
    signal.completed_at = now
    return signal


def force_stop(signal: Signal, now: datetime) -> Signal:
    if signal.status.is_terminal:
        raise SignalAlreadyClosed(signal.id, signal.status.value)

    signal.status = SignalStatus.STOPPED
    signal.stopped_at = now
    return signal

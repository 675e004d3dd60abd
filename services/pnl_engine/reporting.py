"""
services/pnl_engine/reporting.py
--------------------------------
Estadísticas de PnL por periodo (diario / semanal / mensual).

Se asume una posición repartida a partes iguales entre los targets:
cada target tocado realiza 1/N de su % de ganancia y, si la señal acabó
en stop, la fracción restante pierde max_loss.
"""

import calendar
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from decimal import Decimal
from enum import Enum
from typing import Iterable, List, Tuple

from models.signal import Direction, Signal, SignalStatus

ZERO = Decimal("0")


class Period(str, Enum):
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"

    @property
    def title(self) -> str:
        return self.value.capitalize()


class Outcome(str, Enum):
    SUCCESSFUL = "successful"
    PARTIAL = "partial"
    FAILED = "failed"


@dataclass
class PnlReport:
    period: Period
    start: datetime
    end: datetime
    total: int = 0
    successful: int = 0
    partial: int = 0
    failed: int = 0
    total_profit: Decimal = ZERO
    total_loss: Decimal = ZERO
    long_count: int = 0
    short_count: int = 0
    top_pairs: List[Tuple[str, int]] = field(default_factory=list)

    @property
    def net_profit(self) -> Decimal:
        return self.total_profit - self.total_loss

    @property
    def win_rate(self) -> Decimal:
        if not self.total:
            return ZERO
        return Decimal(self.successful + self.partial) / Decimal(self.total) * 100

    @property
    def is_empty(self) -> bool:
        return self.total == 0


def _one_month_back(now: datetime) -> datetime:
    year, month = (now.year, now.month - 1) if now.month > 1 else (now.year - 1, 12)
    day = min(now.day, calendar.monthrange(year, month)[1])
    return now.replace(year=year, month=month, day=day)


def window_start(period: Period, now: datetime) -> datetime:
    if period is Period.DAILY:
        return now - timedelta(days=1)
    if period is Period.WEEKLY:
        return now - timedelta(days=7)
    return _one_month_back(now)


def classify(signal: Signal) -> Outcome:
    hits = len(signal.hit_targets())
    if signal.targets and hits == len(signal.targets):
        return Outcome.SUCCESSFUL
    if hits == 0 and signal.status is SignalStatus.STOPPED:
        return Outcome.FAILED
    return Outcome.PARTIAL


def realized_pnl(signal: Signal) -> Decimal:
    """
    % realizado por la señal:
        Σ profit(target tocado) / N  −  max_loss × (no tocados / N)  [si STOPPED]
    Con todos los targets tocados equivale a la media de sus profit_percent.
    """
    n = len(signal.targets)
    if n == 0:
        return ZERO

    hit = signal.hit_targets()
    pnl = sum((t.profit_percent for t in hit), ZERO) / n

    if signal.status is SignalStatus.STOPPED and signal.max_loss is not None:
        missed_fraction = Decimal(n - len(hit)) / n
        pnl -= signal.max_loss * missed_fraction

    return pnl


def select_closed(signals: Iterable[Signal], start: datetime, end: datetime) -> List[Signal]:
    selected = []
    for signal in signals:
        if not signal.status.is_terminal:
            continue
        closed_at = signal.closed_at
        if closed_at is not None and start <= closed_at <= end:
            selected.append(signal)
    return selected


def summarize(signals: Iterable[Signal], period: Period, now: datetime) -> PnlReport:
    period = Period(period)
    start = window_start(period, now)
    report = PnlReport(period=period, start=start, end=now)

    pairs: Counter = Counter()
    for signal in select_closed(signals, start, now):
        report.total += 1
        pairs[signal.pair] += 1

        if signal.direction is Direction.LONG:
            report.long_count += 1
        else:
            report.short_count += 1

        outcome = classify(signal)
        if outcome is Outcome.SUCCESSFUL:
            report.successful += 1
        elif outcome is Outcome.FAILED:
            report.failed += 1
        else:
            report.partial += 1

        pnl = realized_pnl(signal)
        if pnl > 0:
            report.total_profit += pnl
        else:
            report.total_loss -= pnl

    report.top_pairs = pairs.most_common(3)
    return report

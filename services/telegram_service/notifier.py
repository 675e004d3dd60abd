"""
services/telegram_service/notifier.py
-------------------------------------
Textos de notificación del tracker + envío por el bot de Telegram.

Los build_* son funciones puras del estado de la señal. Notifier.deliver()
nunca lanza: un fallo de envío se registra y se devuelve False, la
transición de estado que lo originó ya es definitiva.
"""

import logging
from typing import Optional

from models.signal import Direction, Signal, SignalStatus, Target
from services.pnl_engine.reporting import PnlReport, realized_pnl
from utils.helpers import decimal_str, fmt_pct, split_thread

logger = logging.getLogger("notifier")


def _side(signal: Signal) -> str:
    return signal.direction.value


def _trend_emoji(signal: Signal) -> str:
    return "📈" if signal.direction is Direction.LONG else "📉"


def _price(value) -> str:
    return decimal_str(value)


def _numbers(targets) -> str:
    return ", ".join(str(t.number) for t in targets)


def _hit_missed_lines(signal: Signal) -> str:
    lines = ""
    hit = signal.hit_targets()
    missed = signal.pending_targets()
    if hit:
        lines += f"\n\nTargets hit: {_numbers(hit)}"
    if missed:
        lines += f"\nTargets missed: {_numbers(missed)}"
    return lines


# ============================================================
# 🧾 Constructores de mensajes
# ============================================================

def build_new_signal_message(signal: Signal) -> str:
    lines = [
        f"Target {t.number}: {_price(t.price)} ({fmt_pct(t.profit_percent, signed=True)}%)"
        for t in signal.targets
    ]
    if signal.stop_loss is not None:
        lines.append(f"Stop Loss: {_price(signal.stop_loss)}")
    details = "".join(f"{line}\n" for line in lines)

    return (
        f"{_trend_emoji(signal)} NEW SIGNAL TRACKED: {signal.pair} {_side(signal)}\n\n"
        f"Entry: {_price(signal.entry_price)}\n"
        f"{details}\n"
        f"Signal status: {signal.status.value}\n"
        f"ID: {signal.id}"
    )


def build_target_hit_message(signal: Signal, target: Target) -> str:
    return (
        f"{_trend_emoji(signal)} TARGET {target.number} HIT! {signal.pair} {_side(signal)}\n\n"
        f"Entry: {_price(signal.entry_price)}\n"
        f"Target {target.number}: {_price(target.price)} ✅\n"
        f"Profit: {fmt_pct(target.profit_percent, signed=True)}% 💰\n\n"
        f"Signal status: {signal.status.value}\n"
        f"Remaining targets: {len(signal.pending_targets())}"
    )


def build_stop_loss_message(signal: Signal) -> str:
    overall = fmt_pct(realized_pnl(signal), signed=True)
    stop = _price(signal.stop_loss) if signal.stop_loss is not None else "-"
    return (
        f"🛑 STOP LOSS HIT! {signal.pair} {_side(signal)}\n\n"
        f"Entry: {_price(signal.entry_price)}\n"
        f"Stop Loss: {stop} ❌\n"
        f"Overall P&L: {overall}%\n\n"
        f"Signal status: {SignalStatus.STOPPED.value}"
        f"{_hit_missed_lines(signal)}"
    )


def build_completion_message(signal: Signal) -> str:
    emoji = "🚀" if signal.direction is Direction.LONG else "💰"
    prices = ", ".join(_price(t.price) for t in signal.targets)
    return (
        f"{emoji} ALL TARGETS HIT! {signal.pair} {_side(signal)}\n\n"
        f"Entry: {_price(signal.entry_price)}\n"
        f"Targets: {prices} ✅\n"
        f"Average Profit: {fmt_pct(signal.average_profit(), signed=True)}% 💰\n\n"
        f"Signal status: {SignalStatus.COMPLETED.value} ✨"
    )


def build_manual_override_message(signal: Signal) -> str:
    """Mensaje para /complete y /stop (según el estado final de la señal)."""
    if signal.status is SignalStatus.COMPLETED:
        emoji = "🚀" if signal.direction is Direction.LONG else "💰"
        prices = ", ".join(_price(t.price) for t in signal.targets)
        return (
            f"{emoji} MANUALLY COMPLETED! {signal.pair} {_side(signal)}\n\n"
            f"Entry: {_price(signal.entry_price)}\n"
            f"Targets: {prices} ✅\n"
            f"Average Profit: {fmt_pct(signal.average_profit(), signed=True)}% 💰\n\n"
            f"Signal status: COMPLETED (Manual) ✨"
        )

    if signal.stop_loss is not None:
        stop_line = f"Stop Loss: {_price(signal.stop_loss)} ❌"
    else:
        stop_line = "Manually marked as stopped"

    return (
        f"🛑 MANUALLY STOPPED! {signal.pair} {_side(signal)}\n\n"
        f"Entry: {_price(signal.entry_price)}\n"
        f"{stop_line}\n\n"
        f"Signal status: STOPPED (Manual)"
        f"{_hit_missed_lines(signal)}"
    )


def build_summary_message(report: PnlReport) -> str:
    top = ", ".join(f"{pair}: {count}" for pair, count in report.top_pairs) or "-"

    win_rate = report.win_rate
    if win_rate >= 70:
        win_emoji = "🔥"
    elif win_rate >= 50:
        win_emoji = "✅"
    else:
        win_emoji = "⚠️"
    profit_emoji = "💰" if report.net_profit > 0 else "📉"

    return (
        f"📊 {report.period.title} PNL Summary\n\n"
        f"Total Signals: {report.total}\n"
        f"✅ Successful: {report.successful}\n"
        f"⚠️ Partial: {report.partial}\n"
        f"❌ Failed: {report.failed}\n\n"
        f"Win Rate: {fmt_pct(win_rate)}% {win_emoji}\n"
        f"Net Profit: {fmt_pct(report.net_profit, signed=True)}% {profit_emoji}\n\n"
        f"Most Active Pairs: {top}\n"
        f"Direction Split: {report.long_count} Long | {report.short_count} Short"
    )


# ============================================================
# 📤 Envío
# ============================================================

class Notifier:
    """
    Contrato ÚNICO:
    - constructor requiere el bot (python-telegram-bot)
    - único método público de envío: deliver(channel_id, text)
    """

    def __init__(self, bot, fallback_channel: Optional[str] = None):
        if bot is None:
            raise ValueError("❌ Notifier requiere un bot válido")
        self.bot = bot
        self.fallback_channel = fallback_channel

    async def deliver(self, channel_id: Optional[str], text: str) -> bool:
        destination = channel_id or self.fallback_channel
        if not destination:
            logger.warning("⚠️ Sin canal de destino para la notificación, se omite")
            return False

        chat_id, thread_id = split_thread(destination)
        try:
            await self.bot.send_message(
                chat_id=int(chat_id) if chat_id.lstrip("-").isdigit() else chat_id,
                text=text,
                message_thread_id=thread_id,
            )
        except Exception as e:
            logger.error(f"❌ Error enviando notificación a {destination}: {e}")
            return False

        logger.info(f"📤 Notificación enviada a {destination}: {text[:50]!r}")
        return True

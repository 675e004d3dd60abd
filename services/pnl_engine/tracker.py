"""
services/pnl_engine/tracker.py
------------------------------
Servicio central del tracker de PnL.

Recibe mensajes de los canales fuente, guarda las señales, corre los
ticks de evaluación contra el precio actual y expone las operaciones de
administración (listar, cerrar a mano, borrar, resúmenes).

Todos los colaboradores se inyectan en el constructor:
    store      → SignalStore
    oracle     → objeto con `async fetch_price(pair) -> Decimal | None`
    notifier   → objeto con `async deliver(channel_id, text) -> bool`
    mapping    → SourceMapping
"""

import asyncio
import copy
import logging
from typing import Dict, List, Optional

from core.exceptions import SignalNotFound, StoreUnavailable
from models.signal import Signal
from services.pnl_engine.lifecycle import EventKind, LifecycleEvent, evaluate_signal, force_complete, force_stop
from services.pnl_engine.reporting import Period, PnlReport, summarize
from services.signals_service.signal_parser import SignalParser
from services.telegram_service.notifier import (
    build_completion_message,
    build_manual_override_message,
    build_new_signal_message,
    build_stop_loss_message,
    build_summary_message,
    build_target_hit_message,
)
from utils.helpers import utc_now

logger = logging.getLogger("pnl_tracker")


def event_message(event: LifecycleEvent) -> str:
    if event.kind is EventKind.TARGET_HIT:
        return build_target_hit_message(event.signal, event.target)
    if event.kind is EventKind.STOP_LOSS_HIT:
        return build_stop_loss_message(event.signal)
    return build_completion_message(event.signal)


class PnlTracker:
    def __init__(
        self,
        store,
        oracle,
        notifier,
        mapping,
        parser: Optional[SignalParser] = None,
        price_request_delay: float = 0.0,
        clock=utc_now,
    ):
        self.store = store
        self.oracle = oracle
        self.notifier = notifier
        self.mapping = mapping
        self.parser = parser or SignalParser()
        self.price_request_delay = price_request_delay
        self.clock = clock

        self._tick_running = False

        logger.info("🔧 PnlTracker inicializado correctamente.")

    # ==============================================================
    # 📩 INGESTA
    # ==============================================================
    async def process_message(self, chat_id, message_id, text: str) -> bool:
        """
        Devuelve True si el mensaje era una señal nueva y quedó guardada.
        Texto que no es señal o duplicados → False (no es un error).
        """
        destination = self.mapping.destination_for(chat_id)
        if not destination:
            logger.debug(f"Mensaje {message_id} de {chat_id} no viene de un canal fuente")
            return False

        signal = self.parser.parse(text)
        if signal is None:
            return False

        signal.chat_id = str(chat_id)
        signal.message_id = str(message_id)
        signal.destination_channel = destination
        signal.created_at = self.clock()

        signal_id = self.store.create(signal)
        if signal_id is None:
            return False

        logger.info(f"📥 Señal registrada | ID={signal_id} | {signal.pair} {signal.direction.value}")
        await self.notifier.deliver(destination, build_new_signal_message(signal))
        return True

    # ==============================================================
    # ⏱ TICK DE EVALUACIÓN
    # ==============================================================
    @property
    def tick_running(self) -> bool:
        return self._tick_running

    async def run_tick(self) -> bool:
        """
        Evalúa todas las señales activas. Si ya hay un tick en curso este
        se salta (no se encola) y devuelve False.
        """
        if self._tick_running:
            logger.warning("⏭ Tick anterior aún en curso, se omite este ciclo")
            return False

        self._tick_running = True
        try:
            await self._evaluate_active()
        finally:
            self._tick_running = False
        return True

    async def _evaluate_active(self) -> None:
        try:
            active = self.store.list_active()
        except StoreUnavailable as e:
            logger.error(f"❌ Store no disponible, tick abortado: {e}")
            return

        if not active:
            logger.debug("📭 No hay señales activas")
            return

        by_pair: Dict[str, List[Signal]] = {}
        for signal in active:
            by_pair.setdefault(signal.pair, []).append(signal)

        logger.info(f"🔍 Evaluando {len(active)} señal(es) activas en {len(by_pair)} par(es)")

        for index, (pair, signals) in enumerate(by_pair.items()):
            if index and self.price_request_delay:
                await asyncio.sleep(self.price_request_delay)

            price = await self._price_for(pair)
            if price is None:
                continue

            for signal in signals:
                try:
                    events = self._apply_price(signal, price)
                except StoreUnavailable as e:
                    logger.error(f"❌ Store no disponible a mitad de tick ({signal.id}): {e}")
                    return
                except SignalNotFound:
                    logger.info(f"🗑 {signal.id} eliminada durante el tick")
                    continue

                for event in events:
                    await self.notifier.deliver(event.signal.destination_channel, event_message(event))

    async def _price_for(self, pair: str):
        try:
            price = await self.oracle.fetch_price(pair)
        except Exception as e:
            logger.warning(f"⚠️ Precio no disponible para {pair}: {e}")
            return None

        if price is None:
            logger.warning(f"⚠️ Precio no disponible para {pair}, se reintenta en el próximo tick")
            return None

        logger.info(f"💹 Precio actual {pair}: {price}")
        return price

    def _apply_price(self, signal: Signal, price) -> List[LifecycleEvent]:
        now = self.clock()

        # precheck sobre la copia listada: sin cambios no se abre transacción
        if not evaluate_signal(copy.deepcopy(signal), price, now):
            return []

        events: List[LifecycleEvent] = []

        def apply(current: Signal) -> None:
            events[:] = evaluate_signal(current, price, now)

        self.store.mutate(signal.id, apply)
        for event in events:
            logger.info(f"🎯 {event.kind.value} → {signal.id}")
        return events

    # ==============================================================
    # 🛠 ADMINISTRACIÓN
    # ==============================================================
    def list_active_signals(self) -> List[Signal]:
        return self.store.list_active()

    def list_completed_signals(self) -> List[Signal]:
        return self.store.list_completed()

    def get_signal(self, signal_id: str) -> Signal:
        return self.store.get(signal_id)

    async def complete_signal(self, signal_id: str) -> Signal:
        now = self.clock()
        signal = self.store.mutate(signal_id, lambda s: force_complete(s, now))
        logger.info(f"✅ Señal {signal_id} completada manualmente")
        await self.notifier.deliver(signal.destination_channel, build_manual_override_message(signal))
        return signal

    async def stop_signal(self, signal_id: str) -> Signal:
        now = self.clock()
        signal = self.store.mutate(signal_id, lambda s: force_stop(s, now))
        logger.info(f"🛑 Señal {signal_id} detenida manualmente")
        await self.notifier.deliver(signal.destination_channel, build_manual_override_message(signal))
        return signal

    def delete_signal(self, signal_id: str) -> None:
        self.store.delete(signal_id)

    # ==============================================================
    # 📊 RESÚMENES
    # ==============================================================
    def build_report(self, period) -> PnlReport:
        return summarize(self.store.list_completed(), Period(period), self.clock())

    async def generate_summary(self, period="daily", channel_id: Optional[str] = None) -> PnlReport:
        report = self.build_report(period)

        if report.is_empty:
            logger.info(f"📭 Sin señales cerradas para el resumen {report.period.value}")
            return report

        message = build_summary_message(report)
        destinations = [channel_id] if channel_id else self.mapping.destinations()
        for dest in destinations:
            await self.notifier.deliver(dest, message)

        logger.info(f"📊 Resumen {report.period.value} generado con {report.total} señal(es)")
        return report

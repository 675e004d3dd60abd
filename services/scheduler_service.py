"""
services/scheduler_service.py
------------------------------
Servicio encargado de ejecutar ciclos periódicos:
 - Tick de evaluación de señales activas
 - Resúmenes PnL (diario 00:00 UTC, semanal domingo, mensual día 1)
 - Backfill de los canales fuente

Usa asyncio.create_task para correr los loops en paralelo; cada loop
captura y registra sus propios errores y sigue vivo.
"""

import asyncio
import logging
from datetime import datetime, timedelta, timezone
from typing import List, Optional, Set

from services.pnl_engine.reporting import Period
from utils.helpers import utc_now

logger = logging.getLogger("scheduler_service")


# ============================================================
# 🗓 Próxima ejecución de cada resumen
# ============================================================

def next_summary_run(period: Period, now: datetime) -> datetime:
    """
    daily   → próxima medianoche UTC
    weekly  → próximo domingo 00:00 UTC
    monthly → próximo día 1 a las 00:00 UTC
    """
    now = now.astimezone(timezone.utc)
    midnight = now.replace(hour=0, minute=0, second=0, microsecond=0)

    if period is Period.DAILY:
        return midnight + timedelta(days=1)

    if period is Period.WEEKLY:
        days_ahead = (6 - midnight.weekday()) % 7 or 7
        return midnight + timedelta(days=days_ahead)

    if midnight.month == 12:
        return midnight.replace(year=midnight.year + 1, month=1, day=1)
    return midnight.replace(month=midnight.month + 1, day=1)


def next_summary_after(period: Period, now: datetime, last_run: Optional[datetime]) -> datetime:
    """
    Igual que next_summary_run pero nunca devuelve una ejecución ya hecha:
    si el reloj va por detrás de last_run se calcula desde last_run.
    """
    if last_run is not None and now < last_run:
        now = last_run
    return next_summary_run(period, now)


class SchedulerService:
    def __init__(
        self,
        tracker,
        backfill,
        mapping,
        tick_interval: int = 60,
        backfill_interval: int = 300,
        backfill_limit: int = 10,
        clock=utc_now,
        sleep=asyncio.sleep,
    ):
        self.tracker = tracker
        self.backfill = backfill
        self.mapping = mapping
        self.tick_interval = tick_interval
        self.backfill_interval = backfill_interval
        self.backfill_limit = backfill_limit
        self.clock = clock
        self.sleep = sleep
        self.tasks: List[asyncio.Task] = []
        self.tick_tasks: Set[asyncio.Task] = set()

    # ============================================================
    # 🔹 LOOP: tick de evaluación
    # ============================================================
    async def _tick_loop(self):
        while True:
            try:
                # create_task: si un tick tarda más que el intervalo, el
                # siguiente lo descarta el propio tracker
                task = asyncio.create_task(self._safe_tick())
                self.tick_tasks.add(task)
                task.add_done_callback(self.tick_tasks.discard)
            except Exception as e:
                logger.error(f"❌ Error lanzando tick: {e}")
            await self.sleep(self.tick_interval)

    async def _safe_tick(self):
        try:
            await self.tracker.run_tick()
        except Exception:
            logger.exception("❌ Error en tick de evaluación")

    # ============================================================
    # 🔹 LOOP: resúmenes
    # ============================================================
    async def _summary_loop(self, period: Period):
        last_run = None
        while True:
            run_at = next_summary_after(period, self.clock(), last_run)
            logger.info(f"🗓 Resumen {period.value} programado para {run_at.isoformat()}")

            # el sleep puede despertar un poco antes de run_at
            now = self.clock()
            while now < run_at:
                await self.sleep((run_at - now).total_seconds())
                now = self.clock()

            last_run = run_at
            try:
                await self.tracker.generate_summary(period)
            except Exception:
                logger.exception(f"❌ Error generando resumen {period.value}")

    # ============================================================
    # 🔹 LOOP: backfill
    # ============================================================
    async def run_backfill_cycle(self) -> int:
        total = 0
        for channel in self.mapping.source_channels():
            logger.info(f"⏪ Backfill programado de {channel}")
            try:
                total += await self.backfill.backfill(channel, self.backfill_limit)
            except Exception as e:
                logger.error(f"❌ Error en backfill de {channel}: {e}")
        return total

    async def _backfill_loop(self):
        while True:
            await self.sleep(self.backfill_interval)
            await self.run_backfill_cycle()

    # ============================================================
    # 🔹 FUNCIÓN PRINCIPAL
    # ============================================================
    def start(self, loop: asyncio.AbstractEventLoop = None):
        """Registra todos los loops como tareas en segundo plano."""
        logger.info("🕒 Iniciando scheduler…")
        create = loop.create_task if loop else asyncio.create_task

        self.tasks.append(create(self._tick_loop()))
        for period in Period:
            self.tasks.append(create(self._summary_loop(period)))
        if self.backfill is not None:
            self.tasks.append(create(self._backfill_loop()))

        logger.info(f"🕒 Scheduler activo ({len(self.tasks)} loops).")

    async def stop(self):
        """Cancela los loops y también los ticks que sigan en vuelo."""
        pending = self.tasks + list(self.tick_tasks)
        for task in pending:
            task.cancel()
        await asyncio.gather(*pending, return_exceptions=True)
        self.tasks.clear()
        self.tick_tasks.clear()
        logger.info("🕒 Scheduler detenido.")

"""
services/pnl_engine/backfill.py
-------------------------------
Reprocesa mensajes históricos de un canal fuente por el mismo camino
que la ingesta en vivo (parser → store). Re-ejecutarlo es seguro: el
store descarta duplicados.
"""

import logging

from core.exceptions import UnknownSourceChannel

logger = logging.getLogger("backfill")


class BackfillController:
    def __init__(self, history, tracker, mapping):
        """
        history → objeto con `async fetch_recent_messages(channel_id, limit)`
                  que devuelve [(message_id, text), ...]
        tracker → PnlTracker (usa process_message)
        mapping → SourceMapping
        """
        self.history = history
        self.tracker = tracker
        self.mapping = mapping

    async def backfill(self, channel_id: str, limit: int = 100) -> int:
        if not self.mapping.destination_for(channel_id):
            raise UnknownSourceChannel(channel_id)

        logger.info(f"⏪ Backfill de {channel_id} (límite {limit})")
        messages = await self.history.fetch_recent_messages(channel_id, limit)
        logger.info(f"⏪ {len(messages)} mensaje(s) recuperados de {channel_id}")

        found = 0
        for message_id, text in messages:
            if not text:
                continue
            if await self.tracker.process_message(channel_id, str(message_id), text):
                found += 1

        logger.info(f"✅ Backfill terminado en {channel_id}: {found} señal(es) nuevas")
        return found

# services/telegram_service/telegram_reader.py
"""
Lector Telethon de los canales fuente.

- En vivo: escucha NewMessage de los chats mapeados y pasa cada texto
  al tracker.
- Histórico: fetch_recent_messages() para el backfill.

Los ids de canal aceptan hilo de foro: '-1002404846297/5'.
"""

import logging
from typing import List, Optional, Tuple

from telethon import TelegramClient, events

from utils.helpers import split_thread

logger = logging.getLogger("telegram_reader")


def to_peer_id(channel_id) -> int:
    """'2404846297' / '-2404846297' / '-1002404846297' → -1002404846297"""
    raw = str(channel_id).strip()
    if not raw.startswith("-100"):
        raw = "-100" + raw.lstrip("-")
    return int(raw)


def topic_id(message) -> Optional[int]:
    reply_to = getattr(message, "reply_to", None)
    if reply_to is None or not getattr(reply_to, "forum_topic", False):
        return None
    return getattr(reply_to, "reply_to_top_id", None) or getattr(reply_to, "reply_to_msg_id", None)


def build_client(session: str, api_id: int, api_hash: str) -> TelegramClient:
    return TelegramClient(session, api_id, api_hash)


class TelegramSourceReader:
    def __init__(self, client, tracker, mapping):
        self.client = client
        self.tracker = tracker
        self.mapping = mapping

    def source_chat_ids(self) -> List[int]:
        ids: List[int] = []
        for source in self.mapping.source_channels():
            main_id, _ = split_thread(source)
            peer = to_peer_id(main_id)
            if peer not in ids:
                ids.append(peer)
        return ids

    async def start(self) -> None:
        """Conecta Telethon y registra el handler de mensajes nuevos."""
        chats = self.source_chat_ids()
        if not chats:
            logger.error("❌ Telethon no puede escuchar: no hay canales fuente en el mapping")
            return

        await self.client.start()
        self.client.add_event_handler(self._on_new_message, events.NewMessage(chats=chats))
        logger.info(f"📡 Cliente Telethon escuchando {len(chats)} canal(es) fuente")

    async def run_until_disconnected(self) -> None:
        await self.client.run_until_disconnected()

    async def _on_new_message(self, event) -> None:
        message = event.message
        text = message.message or ""
        if not text:
            return

        thread = topic_id(message)
        chat_id = f"{event.chat_id}/{thread}" if thread else str(event.chat_id)
        logger.info(f"📩 Mensaje recibido de {chat_id}: {text[:120]!r}")

        try:
            await self.tracker.process_message(chat_id, str(message.id), text)
        except Exception:
            logger.exception(f"❌ Error procesando mensaje {message.id} de {chat_id}")

    async def fetch_recent_messages(self, channel_id, limit: int) -> List[Tuple[str, str]]:
        """Últimos `limit` mensajes del canal, del más antiguo al más nuevo."""
        main_id, thread = split_thread(channel_id)
        peer = to_peer_id(main_id)

        kwargs = {"limit": limit}
        if thread:
            kwargs["reply_to"] = thread

        logger.info(f"📚 Leyendo {limit} mensaje(s) de {peer} (hilo: {thread or 'ninguno'})")
        messages = await self.client.get_messages(peer, **kwargs)

        out = [(str(m.id), m.message) for m in messages if getattr(m, "message", None)]
        out.reverse()
        return out

# application_layer.py
import logging

import config
from core.exceptions import StoreUnavailable
from services.market_service.price_oracle import BybitPriceOracle
from services.pnl_engine.backfill import BackfillController
from services.pnl_engine.source_mapping import SourceMapping
from services.pnl_engine.tracker import PnlTracker
from services.scheduler_service import SchedulerService
from services.signals_service.signal_parser import SignalParser
from services.signals_service.signal_store import SignalStore
from services.telegram_service.notifier import Notifier
from services.telegram_service.telegram_reader import TelegramSourceReader, build_client

logger = logging.getLogger("application_layer")


class ApplicationLayer:
    """
    Capa de orquestación: centraliza wiring de servicios.
    IMPORTANTE:
    - bot es obligatorio (Notifier lo requiere)
    - si el store no responde al arrancar se lanza StoreUnavailable
    """

    def __init__(self, bot, telethon_client=None):
        if bot is None:
            raise TypeError(
                "ApplicationLayer.__init__() requiere bot (python-telegram-bot)."
            )

        # Infra
        self.store = SignalStore(config.DB_PATH, dedupe_ttl=config.DEDUPE_TTL_SECONDS)
        try:
            self.store.init_db()
            self.store.ping()
        except StoreUnavailable:
            logger.critical(f"💥 Store no disponible en {config.DB_PATH}")
            raise

        self.mapping = SourceMapping.load(config.PNL_MAPPING_PATH, config.PNL_RESULT_CHANNEL)
        self.notifier = Notifier(bot, fallback_channel=config.PNL_RESULT_CHANNEL)
        self.oracle = BybitPriceOracle(
            base_url=config.BYBIT_ENDPOINT,
            category=config.BYBIT_CATEGORY,
            timeout=config.PRICE_TIMEOUT_SECONDS,
        )

        # Services
        self.tracker = PnlTracker(
            store=self.store,
            oracle=self.oracle,
            notifier=self.notifier,
            mapping=self.mapping,
            parser=SignalParser(default_quote=config.DEFAULT_QUOTE),
            price_request_delay=config.PRICE_REQUEST_DELAY_SECONDS,
        )

        if telethon_client is None:
            telethon_client = build_client(config.TELEGRAM_SESSION, config.API_ID, config.API_HASH)
        self.reader = TelegramSourceReader(telethon_client, self.tracker, self.mapping)
        self.backfill = BackfillController(self.reader, self.tracker, self.mapping)

        self.scheduler = SchedulerService(
            tracker=self.tracker,
            backfill=self.backfill,
            mapping=self.mapping,
            tick_interval=config.TICK_INTERVAL_SECONDS,
            backfill_interval=config.BACKFILL_INTERVAL_SECONDS,
            backfill_limit=config.BACKFILL_LIMIT,
        )

        logger.info("✅ ApplicationLayer inicializado correctamente.")

    async def start(self, loop=None):
        """Conecta Telethon y arranca los loops en segundo plano."""
        await self.reader.start()
        self.scheduler.start(loop)

    async def shutdown(self):
        await self.scheduler.stop()
        await self.oracle.close()
        if self.reader.client.is_connected():
            await self.reader.client.disconnect()
        logger.info("👋 ApplicationLayer detenido.")

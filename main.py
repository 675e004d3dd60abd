# main.py
import argparse
import asyncio
import logging

from telegram import Bot
from telegram.ext import Application

import config
from application_layer import ApplicationLayer
from services.telegram_service.command_bot import register_handlers
from utils.logger import configure_logging

logger = logging.getLogger("main")


async def post_init(app: Application):
    """
    Se ejecuta dentro del loop asyncio de python-telegram-bot.
    Aquí inicializamos la capa de aplicación y lanzamos tareas de fondo
    sin depender de variables globales tipo `app`.
    """
    # 1) Construir ApplicationLayer con el bot real
    app_layer = ApplicationLayer(bot=app.bot)

    # 2) Registrar comandos de administración
    register_handlers(app, app_layer, admin_id=config.TELEGRAM_ADMIN_ID)

    # 3) Tareas de fondo (telethon + tick + resúmenes + backfill)
    try:
        await app_layer.start()
    except Exception as e:
        logger.exception("❌ No se pudo iniciar telegram_reader: %s", e)
        app_layer.scheduler.start()

    if app_layer.reader.client.is_connected():
        app.create_task(app_layer.reader.run_until_disconnected())
        logger.info("✅ Telegram reader (Telethon) iniciado")

    sources = len(app_layer.mapping.source_channels())
    await app_layer.notifier.deliver(
        config.PNL_RESULT_CHANNEL,
        f"🚀 PnL tracker started\nSources: {sources}\nTick: {config.TICK_INTERVAL_SECONDS}s",
    )
    logger.info("✅ Background tasks iniciadas correctamente")


async def post_shutdown(app: Application):
    app_layer = app.bot_data.get("app_layer")
    if app_layer:
        await app_layer.shutdown()


# ============================================================
# 🔧 Comandos de una sola ejecución
# ============================================================

async def run_backfill(channel: str, limit: int) -> int:
    async with Bot(config.TELEGRAM_BOT_TOKEN) as bot:
        app_layer = ApplicationLayer(bot=bot)
        try:
            await app_layer.reader.client.start()
            return await app_layer.backfill.backfill(channel, limit)
        finally:
            await app_layer.shutdown()


async def run_summary(period: str, channel: str = None):
    async with Bot(config.TELEGRAM_BOT_TOKEN) as bot:
        app_layer = ApplicationLayer(bot=bot)
        try:
            return await app_layer.tracker.generate_summary(period, channel_id=channel)
        finally:
            await app_layer.shutdown()


def build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Signal PnL Tracker")
    sub = parser.add_subparsers(dest="command")

    sub.add_parser("run", help="Run the bot (default)")

    backfill = sub.add_parser("backfill", help="Replay recent history of a source channel")
    backfill.add_argument("--channel", required=True)
    backfill.add_argument("--limit", type=int, default=100)

    summary = sub.add_parser("summary", help="Send one PnL summary")
    summary.add_argument("--period", choices=["daily", "weekly", "monthly"], default="daily")
    summary.add_argument("--channel", default=None)

    return parser


def main(argv=None):
    args = build_arg_parser().parse_args(argv)
    configure_logging(config.LOG_DIR, config.LOG_LEVEL)

    for problem in config.validate_config():
        logger.warning(problem)

    if args.command == "backfill":
        created = asyncio.run(run_backfill(args.channel, args.limit))
        logger.info(f"✅ Backfill terminado: {created} señal(es) nuevas")
        return

    if args.command == "summary":
        report = asyncio.run(run_summary(args.period, args.channel))
        logger.info(f"📊 Resumen {report.period.value}: {report.total} señal(es)")
        return

    logger.info("🚀 Bot iniciado. Polling...")
    application = (
        Application.builder()
        .token(config.TELEGRAM_BOT_TOKEN)
        .post_init(post_init)
        .post_shutdown(post_shutdown)
        .build()
    )
    application.run_polling()


if __name__ == "__main__":
    main()

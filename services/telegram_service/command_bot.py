# services/telegram_service/command_bot.py
import logging

from telegram import Update
from telegram.ext import CommandHandler, ContextTypes

from core.exceptions import SignalAlreadyClosed, SignalNotFound, TrackerError, UnknownSourceChannel
from services.pnl_engine.reporting import Period
from services.telegram_service.notifier import build_summary_message
from utils.helpers import fmt_pct

logger = logging.getLogger("command_bot")

MAX_LISTED = 20


def register_handlers(application, app_layer, admin_id: int = 0):
    """
    ÚNICA función pública que main.py debe importar.
    """
    application.bot_data["app_layer"] = app_layer
    application.bot_data["admin_id"] = admin_id

    application.add_handler(CommandHandler("help", cmd_help))
    application.add_handler(CommandHandler("active", cmd_active))
    application.add_handler(CommandHandler("completed", cmd_completed))
    application.add_handler(CommandHandler("summary", cmd_summary))
    application.add_handler(CommandHandler("complete", cmd_complete))
    application.add_handler(CommandHandler("stop", cmd_stop))
    application.add_handler(CommandHandler("delete", cmd_delete))
    application.add_handler(CommandHandler("backfill", cmd_backfill))
    application.add_handler(CommandHandler("update", cmd_update))

    logger.info("✅ Handlers registrados correctamente (command_bot).")


def _is_admin(update: Update, context: ContextTypes.DEFAULT_TYPE) -> bool:
    admin_id = context.application.bot_data.get("admin_id")
    user = update.effective_user
    return bool(admin_id) and user is not None and user.id == admin_id


def _app_layer(context: ContextTypes.DEFAULT_TYPE):
    return context.application.bot_data.get("app_layer")


def _signal_line(signal) -> str:
    hits = len(signal.hit_targets())
    return (
        f"• {signal.id} | {signal.pair} {signal.direction.value} | "
        f"{hits}/{len(signal.targets)} targets | {signal.status.value}"
    )


async def _guard(update: Update, context: ContextTypes.DEFAULT_TYPE):
    if not _is_admin(update, context):
        logger.warning(f"⛔ Comando rechazado de usuario {getattr(update.effective_user, 'id', None)}")
        await update.message.reply_text("⛔ Not authorized.")
        return None

    app_layer = _app_layer(context)
    if not app_layer:
        await update.message.reply_text("⚠️ app_layer no disponible.")
        return None
    return app_layer


async def cmd_help(update: Update, context: ContextTypes.DEFAULT_TYPE):
    txt = (
        "🤖 Signal PnL Tracker\n\n"
        "Commands:\n"
        "/active - active signals\n"
        "/completed - closed signals\n"
        "/summary <daily|weekly|monthly> - PnL summary\n"
        "/complete <id> - mark a signal as completed\n"
        "/stop <id> - mark a signal as stopped\n"
        "/delete <id> - delete a signal\n"
        "/backfill <chat_id> [limit] - re-read channel history\n"
        "/update - run an evaluation tick now\n"
    )
    await update.message.reply_text(txt)


async def cmd_active(update: Update, context: ContextTypes.DEFAULT_TYPE):
    app_layer = await _guard(update, context)
    if not app_layer:
        return

    signals = app_layer.tracker.list_active_signals()
    if not signals:
        return await update.message.reply_text("📭 No active signals.")

    lines = [_signal_line(s) for s in signals[-MAX_LISTED:]]
    await update.message.reply_text(f"🟢 Active signals ({len(signals)}):\n" + "\n".join(lines))


async def cmd_completed(update: Update, context: ContextTypes.DEFAULT_TYPE):
    app_layer = await _guard(update, context)
    if not app_layer:
        return

    signals = app_layer.tracker.list_completed_signals()
    if not signals:
        return await update.message.reply_text("📭 No closed signals.")

    lines = [
        f"{_signal_line(s)} | avg {fmt_pct(s.average_profit(), signed=True)}%"
        for s in signals[-MAX_LISTED:]
    ]
    await update.message.reply_text(f"🏁 Closed signals ({len(signals)}):\n" + "\n".join(lines))


async def cmd_summary(update: Update, context: ContextTypes.DEFAULT_TYPE):
    app_layer = await _guard(update, context)
    if not app_layer:
        return

    raw = context.args[0].lower() if context.args else Period.DAILY.value
    try:
        period = Period(raw)
    except ValueError:
        return await update.message.reply_text("⚠️ Usage: /summary <daily|weekly|monthly>")

    report = app_layer.tracker.build_report(period)
    if report.is_empty:
        return await update.message.reply_text(f"📭 No closed signals for the {period.value} summary.")
    await update.message.reply_text(build_summary_message(report))


async def _override(update: Update, context: ContextTypes.DEFAULT_TYPE, action: str):
    app_layer = await _guard(update, context)
    if not app_layer:
        return

    if not context.args:
        return await update.message.reply_text(f"⚠️ Usage: /{action} <signal_id>")

    signal_id = context.args[0]
    tracker = app_layer.tracker
    try:
        if action == "complete":
            signal = await tracker.complete_signal(signal_id)
        elif action == "stop":
            signal = await tracker.stop_signal(signal_id)
        else:
            tracker.delete_signal(signal_id)
            return await update.message.reply_text(f"🗑 Signal {signal_id} deleted.")
    except SignalNotFound:
        return await update.message.reply_text(f"❓ Signal {signal_id} not found.")
    except SignalAlreadyClosed as e:
        return await update.message.reply_text(f"⚠️ Signal {signal_id} is already {e.status}.")
    except TrackerError as e:
        logger.exception(f"Error en /{action}")
        return await update.message.reply_text(f"❌ Error: {e}")

    await update.message.reply_text(f"✅ Signal {signal.id} is now {signal.status.value}.")


async def cmd_complete(update: Update, context: ContextTypes.DEFAULT_TYPE):
    await _override(update, context, "complete")


async def cmd_stop(update: Update, context: ContextTypes.DEFAULT_TYPE):
    await _override(update, context, "stop")


async def cmd_delete(update: Update, context: ContextTypes.DEFAULT_TYPE):
    await _override(update, context, "delete")


async def cmd_backfill(update: Update, context: ContextTypes.DEFAULT_TYPE):
    app_layer = await _guard(update, context)
    if not app_layer:
        return

    if not context.args:
        return await update.message.reply_text("⚠️ Usage: /backfill <chat_id> [limit]")

    channel = context.args[0]
    try:
        limit = int(context.args[1]) if len(context.args) > 1 else 100
    except ValueError:
        return await update.message.reply_text("⚠️ limit must be a number")

    await update.message.reply_text(f"⏪ Backfilling {limit} message(s) from {channel}…")
    try:
        created = await app_layer.backfill.backfill(channel, limit)
    except UnknownSourceChannel:
        return await update.message.reply_text(f"❓ {channel} is not a mapped source channel.")
    except Exception as e:
        logger.exception("Error en /backfill")
        return await update.message.reply_text(f"❌ Backfill failed: {e}")

    await update.message.reply_text(f"✅ Backfill done: {created} new signal(s).")


async def cmd_update(update: Update, context: ContextTypes.DEFAULT_TYPE):
    app_layer = await _guard(update, context)
    if not app_layer:
        return

    ran = await app_layer.tracker.run_tick()
    if not ran:
        return await update.message.reply_text("⏭ A tick is already running.")
    await update.message.reply_text("✅ Active signals evaluated.")

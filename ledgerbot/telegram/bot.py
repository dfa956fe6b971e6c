from __future__ import annotations

import asyncio
import contextlib
import logging
from datetime import timedelta
from typing import Any

from telegram import BotCommand, Update
from telegram.ext import AIORateLimiter, Application, ContextTypes, MessageHandler, filters

from ..config import Settings, get_settings
from ..services.dispatcher import CommandDispatcher
from ..services.errors import ConfigurationError, PersistenceError

logger = logging.getLogger(__name__)

ALLOWED_UPDATES = ["message"]
GENERIC_FAILURE = "Something went wrong while saving your data. Please try again."

BOT_COMMANDS = [
    BotCommand("start", "Show the list of commands"),
    BotCommand("add_expense", "Add an expense"),
    BotCommand("add_income", "Add an income"),
    BotCommand("balance", "Show your balance"),
    BotCommand("report", "Weekly or monthly report"),
    BotCommand("set_limit", "Set a spending limit"),
]


_application: Application | None = None
_lock = asyncio.Lock()


async def handle_text(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    message = update.message
    if not message:
        return
    tele_user = update.effective_user
    if tele_user is None:
        await message.reply_text("Could not determine your Telegram user.")
        return

    dispatcher: CommandDispatcher = context.application.bot_data["dispatcher"]
    try:
        replies = await dispatcher.handle(tele_user.id, message.text)
    except PersistenceError:
        logger.exception("Failed to process message from Telegram user %s", tele_user.id)
        await message.reply_text(GENERIC_FAILURE)
        return
    for reply in replies:
        await message.reply_text(reply)


def build_dispatcher(settings: Settings) -> CommandDispatcher:
    from ..db import SessionLocal
    from ..services.ledger_store import SqlLedgerStore

    session_ttl = (
        timedelta(seconds=settings.session_ttl_seconds) if settings.session_ttl_seconds else None
    )
    return CommandDispatcher(
        SqlLedgerStore(SessionLocal),
        currency=settings.currency_label,
        session_ttl=session_ttl,
    )


def _create_application(token: str, dispatcher: CommandDispatcher) -> Application:
    application = (
        Application.builder()
        .token(token)
        .rate_limiter(AIORateLimiter())
        .build()
    )
    application.bot_data["dispatcher"] = dispatcher
    application.add_handler(MessageHandler(filters.TEXT, handle_text))
    return application


def _webhook_url(settings: Settings) -> str:
    if not settings.backend_base_url or not settings.telegram_webhook_secret:
        raise ConfigurationError("BACKEND_BASE_URL and TELEGRAM_WEBHOOK_SECRET are required for webhooks.")
    base_url = str(settings.backend_base_url)
    return base_url.rstrip("/") + f"/api/telegram/webhook/{settings.telegram_webhook_secret}"


async def init_bot() -> None:
    """Initialise the Telegram bot and register the webhook."""
    settings = get_settings()
    if not settings.telegram_bot_token or not settings.telegram_webhook_secret:
        logger.info("Telegram bot or webhook secret not configured; skipping bot initialisation.")
        return
    try:
        webhook_url = _webhook_url(settings)
    except ConfigurationError as exc:
        logger.warning("%s Skipping Telegram webhook setup.", exc)
        return

    async with _lock:
        global _application
        if _application is not None:
            return

        application = _create_application(settings.telegram_bot_token, build_dispatcher(settings))
        try:
            await application.initialize()
            await application.start()
            try:
                await application.bot.set_my_commands(BOT_COMMANDS)
            except Exception:
                logger.exception("Failed to set Telegram command list.")
            if settings.telegram_register_webhook_on_start:
                await application.bot.set_webhook(
                    url=webhook_url, drop_pending_updates=False, allowed_updates=ALLOWED_UPDATES
                )
        except Exception:
            logger.exception("Failed to initialise Telegram webhook; bot disabled for this run.")
            with contextlib.suppress(Exception):
                await application.stop()
            with contextlib.suppress(Exception):
                await application.shutdown()
            return

        _application = application
        logger.info("Telegram webhook configured at %s", webhook_url)


async def handle_update(payload: dict[str, Any]) -> None:
    """Process a Telegram update forwarded by FastAPI."""
    async with _lock:
        if _application is None:
            raise RuntimeError("Telegram bot is not initialised.")
        application = _application
    update = Update.de_json(payload, application.bot)
    await application.process_update(update)


async def shutdown_bot() -> None:
    """Tear down the Telegram bot."""
    async with _lock:
        global _application
        if _application is None:
            return
        await _application.stop()
        await _application.shutdown()
        _application = None

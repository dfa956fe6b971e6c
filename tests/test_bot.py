from __future__ import annotations

from datetime import datetime, timezone
from types import SimpleNamespace
from unittest import IsolatedAsyncioTestCase
from unittest.mock import AsyncMock, MagicMock, patch

from ledgerbot.services.dispatcher import CommandDispatcher
from ledgerbot.services.errors import PersistenceError
from ledgerbot.services.ledger_store import InMemoryLedgerStore
from ledgerbot.telegram import bot


class DummyMessage:
    """Minimal stand-in for a Telegram message used in handlers."""

    def __init__(self, text: str | None = None) -> None:
        self.text = text
        self.reply_text = AsyncMock()


def _update(message: DummyMessage, *, user_id: int | None = 528101001) -> SimpleNamespace:
    user = SimpleNamespace(id=user_id, full_name="Faris Tester") if user_id is not None else None
    return SimpleNamespace(message=message, effective_user=user)


def _context(dispatcher) -> SimpleNamespace:
    return SimpleNamespace(application=SimpleNamespace(bot_data={"dispatcher": dispatcher}))


class TelegramBotTests(IsolatedAsyncioTestCase):
    async def test_replies_are_sent_in_order(self) -> None:
        dispatcher = AsyncMock()
        dispatcher.handle.return_value = ["⚠️ Warning", "Expense added: Coffee - 15000 so'm (food)"]
        message = DummyMessage("food")

        await bot.handle_text(_update(message), _context(dispatcher))

        dispatcher.handle.assert_awaited_once_with(528101001, "food")
        self.assertEqual(
            [call.args[0] for call in message.reply_text.await_args_list],
            ["⚠️ Warning", "Expense added: Coffee - 15000 so'm (food)"],
        )

    async def test_persistence_error_sends_generic_failure(self) -> None:
        dispatcher = AsyncMock()
        dispatcher.handle.side_effect = PersistenceError("Could not save the ledger.")
        message = DummyMessage("food")

        with self.assertLogs("ledgerbot.telegram.bot", level="ERROR"):
            await bot.handle_text(_update(message), _context(dispatcher))

        message.reply_text.assert_awaited_once_with(bot.GENERIC_FAILURE)

    async def test_missing_user_is_reported(self) -> None:
        dispatcher = AsyncMock()
        message = DummyMessage("/balance")

        await bot.handle_text(_update(message, user_id=None), _context(dispatcher))

        dispatcher.handle.assert_not_called()
        message.reply_text.assert_awaited_once_with("Could not determine your Telegram user.")

    async def test_update_without_message_is_ignored(self) -> None:
        dispatcher = AsyncMock()

        await bot.handle_text(SimpleNamespace(message=None, effective_user=None), _context(dispatcher))

        dispatcher.handle.assert_not_called()

    async def test_expense_conversation_through_handler(self) -> None:
        dispatcher = CommandDispatcher(
            InMemoryLedgerStore(),
            currency="so'm",
            clock=lambda: datetime(2024, 5, 15, tzinfo=timezone.utc),
        )
        context = _context(dispatcher)

        last = None
        for text in ("/add_expense", "Coffee", "15000", "food"):
            last = DummyMessage(text)
            await bot.handle_text(_update(last), context)

        last.reply_text.assert_awaited_once_with("Expense added: Coffee - 15000 so'm (food)")

        balance = DummyMessage("/balance")
        await bot.handle_text(_update(balance), context)
        self.assertIn("Expenses: 15000 so'm", balance.reply_text.await_args.args[0])


class BotLifecycleTests(IsolatedAsyncioTestCase):
    async def test_init_skips_without_token(self) -> None:
        settings = SimpleNamespace(telegram_bot_token=None, telegram_webhook_secret=None)
        with patch.object(bot, "get_settings", return_value=settings), patch.object(
            bot, "_create_application"
        ) as create_mock:
            await bot.init_bot()

        create_mock.assert_not_called()

    async def test_init_skips_without_public_url(self) -> None:
        settings = SimpleNamespace(
            telegram_bot_token="token", telegram_webhook_secret="secret", backend_base_url=None
        )
        with patch.object(bot, "get_settings", return_value=settings), patch.object(
            bot, "_create_application"
        ) as create_mock:
            await bot.init_bot()

        create_mock.assert_not_called()

    async def test_handle_update_requires_initialised_bot(self) -> None:
        with patch.object(bot, "_application", None):
            with self.assertRaises(RuntimeError):
                await bot.handle_update({"update_id": 1})

    async def test_create_application_registers_dispatcher(self) -> None:
        dispatcher = MagicMock()
        builder = MagicMock()
        application = SimpleNamespace(bot_data={}, add_handler=MagicMock())
        builder.token.return_value.rate_limiter.return_value.build.return_value = application
        with patch.object(bot.Application, "builder", return_value=builder), patch.object(
            bot, "AIORateLimiter"
        ):
            created = bot._create_application("token", dispatcher)

        self.assertIs(created, application)
        self.assertIs(application.bot_data["dispatcher"], dispatcher)
        application.add_handler.assert_called_once()

from __future__ import annotations

import asyncio
import logging
from datetime import datetime

import sys
from pathlib import Path

CURRENT_DIR = Path(__file__).resolve().parents[2]
if str(CURRENT_DIR) not in sys.path:
    sys.path.insert(0, str(CURRENT_DIR))

from telethon import TelegramClient

from integration_tests.telegram_bot.common import (
    TestConfig,
    TelegramBotInteractor,
    ensure_authorized,
    parse_total_expense,
)

logger = logging.getLogger(__name__)


class BasicFlowsTester:
    def __init__(self, interactor: TelegramBotInteractor) -> None:
        self.interactor = interactor

    async def run(self) -> None:
        timestamp = datetime.utcnow().strftime("%H%M%S")

        await self.interactor.send_and_expect("/start", "/add_expense")

        before = await self.interactor.send_and_expect("/balance", "total balance")
        expenses_before = parse_total_expense(before.text or "")

        await self.interactor.send_and_expect("/add_expense", "expense name")
        await self.interactor.send_and_expect(f"Coffee {timestamp}", "expense amount")
        await self.interactor.send_and_expect("not a number", "positive number")
        await self.interactor.send_and_expect("15000", "expense category")
        await self.interactor.send_and_expect("food", f"coffee {timestamp} - 15000")

        after = await self.interactor.send_and_expect("/balance", "total balance")
        expenses_after = parse_total_expense(after.text or "")
        if expenses_after - expenses_before != 15000:
            raise RuntimeError(
                f"Balance did not grow by the expense: {expenses_before} -> {expenses_after}"
            )

        await self.interactor.send_and_expect("/add_income", "income source")
        await self.interactor.send_and_expect("integration", "income amount")
        await self.interactor.send_and_expect("20000", "income added")

        # Cancel-and-restart: a new flow replaces the unfinished one.
        await self.interactor.send_and_expect("/add_expense", "expense name")
        await self.interactor.send_and_expect("/set_limit", "spending limit")
        await self.interactor.send_and_expect("1", "spending limit set")
        await self.interactor.send_and_expect("/add_expense", "expense name")
        await self.interactor.send_and_expect("Tea", "expense amount")
        await self.interactor.send_and_expect("2", "expense category")
        await self.interactor.send_and_expect("food", "exceeded your limit")

        await self.interactor.send_and_expect("/report weekly", "weekly report")
        await self.interactor.send_and_expect("/report monthly", "expenses by category")
        await self.interactor.send_and_expect("/report yearly", "/report weekly or /report monthly")

        logger.info("Basic bot flow test completed successfully")


def load_client(config: TestConfig) -> TelegramClient:
    return TelegramClient(str(config.session_path), config.api_id, config.api_hash)


async def main_async() -> None:
    logging.basicConfig(level=logging.INFO, format="[%(levelname)s] %(message)s")
    config = TestConfig.from_env()
    client = load_client(config)
    await client.connect()
    try:
        await ensure_authorized(client, config)
        interactor = TelegramBotInteractor(client, config.bot_username)
        await interactor.initialise()
        await BasicFlowsTester(interactor).run()
    finally:
        await client.disconnect()


def main() -> None:
    asyncio.run(main_async())


if __name__ == "__main__":
    main()

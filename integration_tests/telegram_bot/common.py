from __future__ import annotations

import asyncio
import logging
import os
import re
from dataclasses import dataclass
from decimal import Decimal
from pathlib import Path
from typing import Callable

from dotenv import load_dotenv
from telethon import TelegramClient, events
from telethon.errors import SessionPasswordNeededError
from telethon.tl.custom.message import Message

logger = logging.getLogger(__name__)

EXPENSES_LINE_RE = re.compile(r"^Expenses: (?P<amount>-?[\d.]+)")

load_dotenv()


@dataclass
class TestConfig:
    api_id: int
    api_hash: str
    phone_number: str
    bot_username: str
    session_path: Path

    @classmethod
    def from_env(cls) -> "TestConfig":
        try:
            api_id = int(os.environ["TELEGRAM_TEST_API_ID"])
            api_hash = os.environ["TELEGRAM_TEST_API_HASH"]
            phone = os.environ["TELEGRAM_TEST_PHONE"]
        except KeyError as exc:
            raise SystemExit(f"Missing required env var: {exc.args[0]}") from exc

        bot_username = os.environ.get("TELEGRAM_MAIN_BOT_USERNAME")
        if not bot_username:
            raise SystemExit(
                "Set TELEGRAM_MAIN_BOT_USERNAME to the bot username (e.g. @LedgerBot)."
            )

        session_file = Path(
            os.environ.get(
                "TELEGRAM_TEST_SESSION",
                "integration_tests/telegram_bot/test_user.session",
            )
        )
        session_file.parent.mkdir(parents=True, exist_ok=True)
        return cls(
            api_id=api_id,
            api_hash=api_hash,
            phone_number=phone,
            bot_username=bot_username,
            session_path=session_file,
        )


class TelegramBotInteractor:
    def __init__(self, client: TelegramClient, bot_username: str) -> None:
        self.client = client
        self.bot_username = bot_username
        self._bot_entity = None

    async def initialise(self) -> None:
        self._bot_entity = await self.client.get_entity(self.bot_username)

    async def send_and_expect(
        self,
        text: str,
        expectations: list[str] | str,
        *,
        timeout: float = 60.0,
    ) -> Message:
        expectations_list = [expectations] if isinstance(expectations, str) else expectations
        expectations_lower = [exp.lower() for exp in expectations_list]

        def predicate(msg: Message) -> bool:
            text_lower = (msg.text or "").lower()
            if not text_lower:
                return False
            return any(exp in text_lower for exp in expectations_lower)

        return await self._send_and_wait(text, predicate, timeout)

    async def _send_and_wait(
        self,
        text: str,
        predicate: Callable[[Message], bool],
        timeout: float,
    ) -> Message:
        loop = asyncio.get_running_loop()
        future: asyncio.Future[Message] = loop.create_future()

        async def handler(event: events.NewMessage.Event) -> None:
            if predicate(event.message) and not future.done():
                future.set_result(event.message)

        self.client.add_event_handler(handler, events.NewMessage(from_users=self._bot_entity))
        try:
            await self.client.send_message(self._bot_entity, text)
            return await asyncio.wait_for(future, timeout)
        finally:
            self.client.remove_event_handler(handler)


def parse_total_expense(balance_text: str) -> Decimal:
    for line in balance_text.splitlines():
        match = EXPENSES_LINE_RE.match(line.strip())
        if match:
            return Decimal(match.group("amount"))
    raise ValueError(f"No expenses line in balance reply:\n{balance_text}")


async def ensure_authorized(client: TelegramClient, config: TestConfig) -> None:
    if await client.is_user_authorized():
        return
    logger.info("Authorising Telegram client for %s", config.phone_number)
    await client.send_code_request(config.phone_number)
    code = input("Enter the login code Telegram sent to your user: ")
    try:
        await client.sign_in(config.phone_number, code)
    except SessionPasswordNeededError:
        password = os.environ.get("TELEGRAM_TEST_PASSWORD")
        if not password:
            password = input("Enter your Telegram 2FA password: ")
        await client.sign_in(password=password)

"""Routes chat messages to commands or the active conversation flow and applies ledger effects."""

from __future__ import annotations

import logging
import textwrap
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Optional

from ..schemas.ledger import UserLedger
from .aggregator import LedgerSummary, Period, filter_by_period, parse_period, summarize, total_amount
from .conversation import (
    AppendExpense,
    AppendIncome,
    ConversationMachine,
    Flow,
    InMemorySessionStore,
    SessionStore,
    SetLimit,
    Transition,
    idle_session,
)
from .errors import ValidationError
from .formatting import format_amount_for_display
from .ledger_store import LedgerStore, UserId, user_key
from .locks import KeyedLock

logger = logging.getLogger(__name__)

HELP_TEXT = textwrap.dedent(
    """
    Hi! I am your personal finance bot. Use these commands:

    /add_expense - Add an expense
    /add_income - Add an income
    /balance - Show your balance
    /report weekly - Weekly report
    /report monthly - Monthly report
    /set_limit - Set a spending limit
    """
).strip()

REPORT_USAGE = "Please send /report weekly or /report monthly."
UNKNOWN_COMMAND = "Unknown command. Send /start to see what I can do."
IDLE_HINT = "Send /add_expense or /add_income to record something, or /start for all commands."
FLOW_EXPIRED = "Your previous entry timed out and was discarded. Start again with /add_expense, /add_income or /set_limit."
NO_EXPENSES = "No expenses"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class ParsedCommand:
    name: str
    args: list[str] = field(default_factory=list)


def parse_command(text: Optional[str]) -> Optional[ParsedCommand]:
    """Split ``/name@bot arg ...`` into its name and arguments; ``None`` for plain text."""
    stripped = (text or "").strip()
    if not stripped.startswith("/"):
        return None
    tokens = stripped.split()
    name = tokens[0][1:].split("@", 1)[0]
    return ParsedCommand(name=name, args=tokens[1:])


class CommandDispatcher:
    """Turns one inbound chat message into the replies for that user.

    Every call for the same user runs under that user's lock, so a ledger
    read-modify-write never interleaves with another one for the same user.
    """

    def __init__(
        self,
        store: LedgerStore,
        sessions: Optional[SessionStore] = None,
        *,
        currency: str = "",
        clock: Callable[[], datetime] = _utcnow,
        session_ttl: Optional[timedelta] = None,
        locks: Optional[KeyedLock] = None,
    ) -> None:
        self.store = store
        self.sessions = sessions if sessions is not None else InMemorySessionStore()
        self.currency = currency
        self.clock = clock
        self.session_ttl = session_ttl
        self.machine = ConversationMachine(currency=currency)
        self._locks = locks if locks is not None else KeyedLock()
        self._commands: dict[str, Callable[[str, ParsedCommand], Awaitable[list[str]]]] = {
            "start": self._help,
            "help": self._help,
            "balance": self._balance,
            "report": self._report,
            Flow.SET_LIMIT.value: self._start_flow,
            Flow.ADD_EXPENSE.value: self._start_flow,
            Flow.ADD_INCOME.value: self._start_flow,
        }

    async def handle(self, user_id: UserId, text: Optional[str]) -> list[str]:
        key = user_key(user_id)
        async with self._locks.hold(key):
            command = parse_command(text)
            if command is None:
                return await self._continue_flow(key, text)
            handler = self._commands.get(command.name)
            if handler is None:
                return [UNKNOWN_COMMAND]
            return await handler(key, command)

    def _money(self, amount: Decimal) -> str:
        return format_amount_for_display(amount, self.currency)

    async def _help(self, key: str, command: ParsedCommand) -> list[str]:
        return [HELP_TEXT]

    async def _start_flow(self, key: str, command: ParsedCommand) -> list[str]:
        transition = self.machine.begin(Flow(command.name), self.clock())
        await self.sessions.save(key, transition.session)
        logger.debug("User %s started the %s flow", key, command.name)
        return [transition.reply]

    async def _balance(self, key: str, command: ParsedCommand) -> list[str]:
        ledger = await self.store.get_or_create(key)
        summary = summarize(ledger.expenses, ledger.incomes)
        return [
            f"Total balance: {self._money(summary.balance)}\n"
            f"Income: {self._money(summary.total_income)}\n"
            f"Expenses: {self._money(summary.total_expense)}"
        ]

    async def _report(self, key: str, command: ParsedCommand) -> list[str]:
        try:
            period = parse_period(command.args[0] if command.args else None)
        except ValidationError:
            return [REPORT_USAGE]
        ledger = await self.store.get_or_create(key)
        now = self.clock()
        summary = summarize(
            filter_by_period(ledger.expenses, period, now),
            filter_by_period(ledger.incomes, period, now),
        )
        return [self._format_report(period, summary)]

    def _format_report(self, period: Period, summary: LedgerSummary) -> str:
        categories = "\n".join(
            f"{category}: {self._money(amount)}" for category, amount in summary.category_totals.items()
        )
        return (
            f"{period.label} report:\n\n"
            f"Total income: {self._money(summary.total_income)}\n"
            f"Total expenses: {self._money(summary.total_expense)}\n"
            f"Net balance: {self._money(summary.balance)}\n\n"
            f"Expenses by category:\n{categories or NO_EXPENSES}"
        )

    async def _continue_flow(self, key: str, text: Optional[str]) -> list[str]:
        now = self.clock()
        session = await self.sessions.get(key)
        if session.is_stale(now, self.session_ttl):
            await self.sessions.save(key, idle_session(now))
            logger.info("Discarded a stale %s flow for user %s", session.state.value, key)
            return [FLOW_EXPIRED]
        if session.is_idle:
            return [IDLE_HINT]

        transition = self.machine.advance(session, text, now)
        if not transition.accepted:
            return [transition.reply]
        replies = [transition.reply]
        if transition.effect is not None:
            replies = await self._apply_effect(key, transition)
        # Only reached once the ledger write went through.
        await self.sessions.save(key, transition.session)
        return replies

    async def _apply_effect(self, key: str, transition: Transition) -> list[str]:
        effect = transition.effect
        ledger = await self.store.get_or_create(key)
        if isinstance(effect, SetLimit):
            ledger = ledger.with_limit(effect.limit)
        elif isinstance(effect, AppendExpense):
            ledger = ledger.with_expense(effect.record)
        elif isinstance(effect, AppendIncome):
            ledger = ledger.with_income(effect.record)
        await self.store.save(key, ledger)

        replies: list[str] = []
        if isinstance(effect, AppendExpense):
            warning = self._limit_breach_warning(ledger)
            if warning:
                logger.info("User %s exceeded their spending limit", key)
                replies.append(warning)
        replies.append(transition.reply)
        return replies

    def _limit_breach_warning(self, ledger: UserLedger) -> Optional[str]:
        total_expense = total_amount(ledger.expenses)
        if ledger.limit > 0 and total_expense > ledger.limit:
            return (
                f"⚠️ Warning: your total expenses ({self._money(total_expense)}) "
                f"exceeded your limit ({self._money(ledger.limit)})!"
            )
        return None

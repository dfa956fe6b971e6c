"""Multi-step input flows driven by chat messages.

A flow collects one expense, one income or the spending limit over several
messages. The machine itself is pure: :meth:`ConversationMachine.advance`
returns a :class:`Transition` describing the next session and the ledger
change to apply, and the caller decides when both are committed.
"""

from __future__ import annotations

import asyncio
import copy
from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Optional, Union

from ..schemas.ledger import ExpenseRecord, IncomeRecord
from .errors import ValidationError
from .formatting import (
    AMOUNT_SCALE,
    MAX_AMOUNT,
    format_amount_for_display,
    parse_positive_amount,
    plain_amount,
)


class ConversationState(str, Enum):
    IDLE = "idle"
    AWAITING_LIMIT = "awaiting_limit"
    AWAITING_EXPENSE_NAME = "awaiting_expense_name"
    AWAITING_EXPENSE_AMOUNT = "awaiting_expense_amount"
    AWAITING_EXPENSE_CATEGORY = "awaiting_expense_category"
    AWAITING_INCOME_SOURCE = "awaiting_income_source"
    AWAITING_INCOME_AMOUNT = "awaiting_income_amount"


class Flow(str, Enum):
    SET_LIMIT = "set_limit"
    ADD_EXPENSE = "add_expense"
    ADD_INCOME = "add_income"


FLOW_ENTRY_STATES: dict[Flow, ConversationState] = {
    Flow.SET_LIMIT: ConversationState.AWAITING_LIMIT,
    Flow.ADD_EXPENSE: ConversationState.AWAITING_EXPENSE_NAME,
    Flow.ADD_INCOME: ConversationState.AWAITING_INCOME_SOURCE,
}

PROMPTS: dict[ConversationState, str] = {
    ConversationState.AWAITING_LIMIT: "Enter your spending limit (e.g. 1000000):",
    ConversationState.AWAITING_EXPENSE_NAME: "Enter the expense name:",
    ConversationState.AWAITING_EXPENSE_AMOUNT: "Enter the expense amount:",
    ConversationState.AWAITING_EXPENSE_CATEGORY: "Enter the expense category (e.g. food, transport):",
    ConversationState.AWAITING_INCOME_SOURCE: "Enter the income source (e.g. salary):",
    ConversationState.AWAITING_INCOME_AMOUNT: "Enter the income amount:",
}

MAX_LABEL_LENGTH = 255

AMOUNT_EXAMPLES: dict[ConversationState, str] = {
    ConversationState.AWAITING_LIMIT: "1000000",
    ConversationState.AWAITING_EXPENSE_AMOUNT: "50000",
    ConversationState.AWAITING_INCOME_AMOUNT: "2000000",
}


@dataclass
class ConversationSession:
    state: ConversationState = ConversationState.IDLE
    pending_fields: dict[str, Any] = field(default_factory=dict)
    updated_at: Optional[datetime] = None

    @property
    def is_idle(self) -> bool:
        return self.state is ConversationState.IDLE

    def is_stale(self, now: datetime, ttl: Optional[timedelta]) -> bool:
        if ttl is None or self.is_idle or self.updated_at is None:
            return False
        return now - self.updated_at > ttl


@dataclass(frozen=True)
class SetLimit:
    limit: Decimal


@dataclass(frozen=True)
class AppendExpense:
    record: ExpenseRecord


@dataclass(frozen=True)
class AppendIncome:
    record: IncomeRecord


LedgerEffect = Union[SetLimit, AppendExpense, AppendIncome]


@dataclass(frozen=True)
class Transition:
    session: ConversationSession
    reply: str
    effect: Optional[LedgerEffect] = None
    accepted: bool = True


def idle_session(now: Optional[datetime] = None) -> ConversationSession:
    return ConversationSession(updated_at=now)


def _is_valid_label(text: str) -> bool:
    return 0 < len(text) <= MAX_LABEL_LENGTH


def _today(now: datetime) -> date:
    if now.tzinfo is None:
        return now.date()
    return now.astimezone(timezone.utc).date()


class ConversationMachine:
    """Transition table for the expense, income and limit flows."""

    def __init__(self, currency: str = "") -> None:
        self.currency = currency
        self._handlers: dict[
            ConversationState, Callable[[ConversationSession, str, datetime], Transition]
        ] = {
            ConversationState.AWAITING_LIMIT: self._on_limit,
            ConversationState.AWAITING_EXPENSE_NAME: self._on_expense_name,
            ConversationState.AWAITING_EXPENSE_AMOUNT: self._on_expense_amount,
            ConversationState.AWAITING_EXPENSE_CATEGORY: self._on_expense_category,
            ConversationState.AWAITING_INCOME_SOURCE: self._on_income_source,
            ConversationState.AWAITING_INCOME_AMOUNT: self._on_income_amount,
        }

    def begin(self, flow: Flow, now: datetime) -> Transition:
        """Start ``flow`` from its entry state, dropping whatever was collected before."""
        state = FLOW_ENTRY_STATES[flow]
        return Transition(
            session=ConversationSession(state=state, pending_fields={}, updated_at=now),
            reply=PROMPTS[state],
        )

    def advance(self, session: ConversationSession, text: Optional[str], now: datetime) -> Transition:
        handler = self._handlers.get(session.state)
        if handler is None:
            raise ValueError(f"No input flow is active in state '{session.state.value}'.")
        return handler(session, (text or "").strip(), now)

    def _money(self, amount: Decimal) -> str:
        return format_amount_for_display(amount, self.currency)

    def _stay(self, session: ConversationSession, reply: str) -> Transition:
        return Transition(session=copy.deepcopy(session), reply=reply, accepted=False)

    def _step(
        self,
        session: ConversationSession,
        state: ConversationState,
        now: datetime,
        **collected: Any,
    ) -> Transition:
        pending = {**session.pending_fields, **collected}
        return Transition(
            session=ConversationSession(state=state, pending_fields=pending, updated_at=now),
            reply=PROMPTS[state],
        )

    def _reprompt_amount(self, session: ConversationSession) -> Transition:
        example = AMOUNT_EXAMPLES[session.state]
        return self._stay(
            session,
            f"Please enter a positive number below {plain_amount(MAX_AMOUNT)} "
            f"with at most {AMOUNT_SCALE} decimal places (e.g. {example}).",
        )

    def _reprompt_text(self, session: ConversationSession) -> Transition:
        return self._stay(
            session,
            f"Please send 1 to {MAX_LABEL_LENGTH} characters. {PROMPTS[session.state]}",
        )

    def _on_limit(self, session: ConversationSession, text: str, now: datetime) -> Transition:
        try:
            limit = parse_positive_amount(text)
        except ValidationError:
            return self._reprompt_amount(session)
        return Transition(
            session=idle_session(now),
            reply=f"Spending limit set to {self._money(limit)}.",
            effect=SetLimit(limit=limit),
        )

    def _on_expense_name(self, session: ConversationSession, text: str, now: datetime) -> Transition:
        if not _is_valid_label(text):
            return self._reprompt_text(session)
        return self._step(session, ConversationState.AWAITING_EXPENSE_AMOUNT, now, name=text)

    def _on_expense_amount(self, session: ConversationSession, text: str, now: datetime) -> Transition:
        try:
            amount = parse_positive_amount(text)
        except ValidationError:
            return self._reprompt_amount(session)
        return self._step(session, ConversationState.AWAITING_EXPENSE_CATEGORY, now, amount=amount)

    def _on_expense_category(self, session: ConversationSession, text: str, now: datetime) -> Transition:
        if not _is_valid_label(text):
            return self._reprompt_text(session)
        record = ExpenseRecord(
            name=session.pending_fields["name"],
            amount=session.pending_fields["amount"],
            category=text,
            date=_today(now),
        )
        return Transition(
            session=idle_session(now),
            reply=f"Expense added: {record.name} - {self._money(record.amount)} ({record.category})",
            effect=AppendExpense(record=record),
        )

    def _on_income_source(self, session: ConversationSession, text: str, now: datetime) -> Transition:
        if not _is_valid_label(text):
            return self._reprompt_text(session)
        return self._step(session, ConversationState.AWAITING_INCOME_AMOUNT, now, source=text)

    def _on_income_amount(self, session: ConversationSession, text: str, now: datetime) -> Transition:
        try:
            amount = parse_positive_amount(text)
        except ValidationError:
            return self._reprompt_amount(session)
        record = IncomeRecord(
            source=session.pending_fields["source"],
            amount=amount,
            date=_today(now),
        )
        return Transition(
            session=idle_session(now),
            reply=f"Income added: {record.source} - {self._money(record.amount)}",
            effect=AppendIncome(record=record),
        )


class SessionStore(ABC):
    """Keyed home of conversation sessions, swappable for a shared store."""

    @abstractmethod
    async def get(self, key: str) -> ConversationSession:
        """Return a copy of the session for ``key`` (idle when unknown)."""

    @abstractmethod
    async def save(self, key: str, session: ConversationSession) -> None:
        ...


class InMemorySessionStore(SessionStore):
    def __init__(self) -> None:
        self._sessions: dict[str, ConversationSession] = {}
        self._lock = asyncio.Lock()

    async def get(self, key: str) -> ConversationSession:
        async with self._lock:
            session = self._sessions.get(key)
            return copy.deepcopy(session) if session is not None else idle_session()

    async def save(self, key: str, session: ConversationSession) -> None:
        async with self._lock:
            if session.is_idle:
                self._sessions.pop(key, None)
            else:
                self._sessions[key] = copy.deepcopy(session)

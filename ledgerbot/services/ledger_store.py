from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Union
from uuid import uuid4

from sqlalchemy import delete, select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm import selectinload

from ..models.ledger import Ledger, LedgerExpense, LedgerIncome
from ..schemas.ledger import ExpenseRecord, IncomeRecord, UserLedger
from .errors import PersistenceError

logger = logging.getLogger(__name__)

UserId = Union[int, str]


def user_key(user_id: UserId) -> str:
    return str(user_id)


class LedgerStore(ABC):
    """Durable home of every user's ledger."""

    @abstractmethod
    async def get_or_create(self, user_id: UserId) -> UserLedger:
        """Return the user's ledger, creating an empty one on first contact.

        Creation is atomic: concurrent first contacts resolve to one ledger.
        """

    @abstractmethod
    async def save(self, user_id: UserId, ledger: UserLedger) -> None:
        """Replace the stored expenses, incomes and limit with ``ledger``'s."""


class InMemoryLedgerStore(LedgerStore):
    """Process-local store used for tests and database-less local runs."""

    def __init__(self) -> None:
        self._ledgers: dict[str, UserLedger] = {}
        self._lock = asyncio.Lock()

    async def get_or_create(self, user_id: UserId) -> UserLedger:
        key = user_key(user_id)
        async with self._lock:
            ledger = self._ledgers.get(key)
            if ledger is None:
                ledger = UserLedger(user_id=key)
                self._ledgers[key] = ledger
            return ledger.model_copy(deep=True)

    async def save(self, user_id: UserId, ledger: UserLedger) -> None:
        key = user_key(user_id)
        async with self._lock:
            existing = self._ledgers.get(key)
            ledger_id = existing.id if existing is not None else ledger.id
            self._ledgers[key] = ledger.model_copy(
                update={"id": ledger_id, "user_id": key}, deep=True
            )

    def __len__(self) -> int:
        return len(self._ledgers)


def _to_domain(row: Ledger) -> UserLedger:
    return UserLedger(
        id=row.id,
        user_id=row.user_key,
        limit=row.spending_limit,
        expenses=[
            ExpenseRecord(
                name=expense.name,
                amount=expense.amount,
                category=expense.category,
                date=expense.occurred_on,
            )
            for expense in row.expenses
        ],
        incomes=[
            IncomeRecord(source=income.source, amount=income.amount, date=income.occurred_on)
            for income in row.incomes
        ],
    )


class SqlLedgerStore(LedgerStore):
    """Ledger store backed by PostgreSQL through SQLAlchemy's async ORM."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def get_or_create(self, user_id: UserId) -> UserLedger:
        key = user_key(user_id)
        try:
            async with self._session_factory() as session:
                await session.execute(
                    pg_insert(Ledger)
                    .values(id=uuid4(), user_key=key, spending_limit=0)
                    .on_conflict_do_nothing(index_elements=[Ledger.user_key])
                )
                result = await session.execute(
                    select(Ledger)
                    .options(selectinload(Ledger.expenses), selectinload(Ledger.incomes))
                    .where(Ledger.user_key == key)
                )
                row = result.scalars().one()
                ledger = _to_domain(row)
                await session.commit()
        except (SQLAlchemyError, OSError) as exc:
            logger.exception("Failed to load ledger for user %s", key)
            raise PersistenceError("Could not load the ledger.") from exc
        return ledger

    async def save(self, user_id: UserId, ledger: UserLedger) -> None:
        key = user_key(user_id)
        try:
            async with self._session_factory() as session:
                async with session.begin():
                    result = await session.execute(
                        select(Ledger).where(Ledger.user_key == key).with_for_update()
                    )
                    row = result.scalars().first()
                    if row is None:
                        row = Ledger(id=ledger.id, user_key=key)
                        session.add(row)
                    row.spending_limit = ledger.limit
                    await session.flush()

                    await session.execute(delete(LedgerExpense).where(LedgerExpense.ledger_id == row.id))
                    await session.execute(delete(LedgerIncome).where(LedgerIncome.ledger_id == row.id))
                    session.add_all(
                        LedgerExpense(
                            ledger_id=row.id,
                            position=position,
                            name=expense.name,
                            amount=expense.amount,
                            category=expense.category,
                            occurred_on=expense.date,
                        )
                        for position, expense in enumerate(ledger.expenses)
                    )
                    session.add_all(
                        LedgerIncome(
                            ledger_id=row.id,
                            position=position,
                            source=income.source,
                            amount=income.amount,
                            occurred_on=income.date,
                        )
                        for position, income in enumerate(ledger.incomes)
                    )
        except (SQLAlchemyError, OSError) as exc:
            logger.exception("Failed to save ledger for user %s", key)
            raise PersistenceError("Could not save the ledger.") from exc

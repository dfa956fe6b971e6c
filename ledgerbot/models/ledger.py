from __future__ import annotations

from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import Date, ForeignKey, Integer, Numeric, String
from sqlalchemy.dialects.postgresql import UUID as PG_UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base


class Ledger(Base):
    """One ledger per chat user, keyed by the platform user identifier."""

    __tablename__ = "ledgers"

    user_key: Mapped[str] = mapped_column(String(64), unique=True, nullable=False, index=True)
    spending_limit: Mapped[Decimal] = mapped_column(Numeric(14, 2), default=Decimal("0"), nullable=False)

    expenses: Mapped[list["LedgerExpense"]] = relationship(
        back_populates="ledger",
        cascade="all, delete-orphan",
        order_by="LedgerExpense.position",
    )
    incomes: Mapped[list["LedgerIncome"]] = relationship(
        back_populates="ledger",
        cascade="all, delete-orphan",
        order_by="LedgerIncome.position",
    )


class LedgerExpense(Base):
    __tablename__ = "ledger_expenses"

    ledger_id: Mapped[UUID] = mapped_column(
        PG_UUID(as_uuid=True), ForeignKey("ledgers.id", ondelete="CASCADE"), nullable=False, index=True
    )
    position: Mapped[int] = mapped_column(Integer, nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    category: Mapped[str] = mapped_column(String(255), nullable=False)
    occurred_on: Mapped[date] = mapped_column(Date, nullable=False)

    ledger: Mapped[Ledger] = relationship(back_populates="expenses")


class LedgerIncome(Base):
    __tablename__ = "ledger_incomes"

    ledger_id: Mapped[UUID] = mapped_column(
        PG_UUID(as_uuid=True), ForeignKey("ledgers.id", ondelete="CASCADE"), nullable=False, index=True
    )
    position: Mapped[int] = mapped_column(Integer, nullable=False)
    source: Mapped[str] = mapped_column(String(255), nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    occurred_on: Mapped[date] = mapped_column(Date, nullable=False)

    ledger: Mapped[Ledger] = relationship(back_populates="incomes")

"""Totals, balances and period filters over ledger records.

Everything here is pure: callers pass the records and the current instant in,
nothing is read from the store or the clock.
"""

from __future__ import annotations

from collections import defaultdict
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from datetime import datetime, time, timedelta, timezone
from decimal import Decimal, localcontext
from enum import Enum
from typing import TypeVar

from ..schemas.ledger import ExpenseRecord, IncomeRecord
from .errors import ValidationError

WEEKLY_WINDOW = timedelta(days=7)
# Enough significant digits that no ledger total is ever rounded.
SUM_PRECISION = 64

RecordT = TypeVar("RecordT", ExpenseRecord, IncomeRecord)


class Period(str, Enum):
    WEEKLY = "weekly"
    MONTHLY = "monthly"

    @property
    def label(self) -> str:
        return "Weekly" if self is Period.WEEKLY else "Monthly"


@dataclass(frozen=True)
class LedgerSummary:
    total_income: Decimal
    total_expense: Decimal
    balance: Decimal
    category_totals: dict[str, Decimal] = field(default_factory=dict)


def parse_period(raw: str | None) -> Period:
    if not raw:
        raise ValidationError("A report period is required.")
    try:
        return Period(raw)
    except ValueError as exc:
        raise ValidationError(f"Unsupported report period '{raw}'.") from exc


def _as_utc(now: datetime) -> datetime:
    if now.tzinfo is None:
        return now.replace(tzinfo=timezone.utc)
    return now.astimezone(timezone.utc)


def period_start(period: Period, now: datetime) -> datetime:
    """Return the inclusive lower bound of ``period`` relative to ``now`` (UTC)."""
    now_utc = _as_utc(now)
    if period is Period.WEEKLY:
        return now_utc - WEEKLY_WINDOW
    if period is Period.MONTHLY:
        return datetime.combine(now_utc.date().replace(day=1), time.min, tzinfo=timezone.utc)
    raise ValidationError(f"Unsupported report period '{period}'.")


def filter_by_period(records: Iterable[RecordT], period: Period | str, now: datetime) -> list[RecordT]:
    """Keep the records dated inside ``period``.

    A record's date counts as midnight UTC of that day, so under ``weekly`` a
    record dated exactly seven days before ``now`` stays in only while ``now``
    itself is at midnight.
    """
    if not isinstance(period, Period):
        period = parse_period(period)
    start = period_start(period, now)
    return [
        record
        for record in records
        if datetime.combine(record.date, time.min, tzinfo=timezone.utc) >= start
    ]


def total_amount(records: Iterable[ExpenseRecord | IncomeRecord]) -> Decimal:
    with localcontext() as ctx:
        ctx.prec = SUM_PRECISION
        return sum((record.amount for record in records), Decimal("0"))


def category_totals(expenses: Iterable[ExpenseRecord]) -> dict[str, Decimal]:
    totals: defaultdict[str, Decimal] = defaultdict(Decimal)
    with localcontext() as ctx:
        ctx.prec = SUM_PRECISION
        for expense in expenses:
            totals[expense.category] += expense.amount
    return dict(totals)


def summarize(expenses: Sequence[ExpenseRecord], incomes: Sequence[IncomeRecord]) -> LedgerSummary:
    total_income = total_amount(incomes)
    total_expense = total_amount(expenses)
    with localcontext() as ctx:
        ctx.prec = SUM_PRECISION
        balance = total_income - total_expense
    return LedgerSummary(
        total_income=total_income,
        total_expense=total_expense,
        balance=balance,
        category_totals=category_totals(expenses),
    )

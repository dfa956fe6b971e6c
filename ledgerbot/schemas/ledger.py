import datetime as dt
from decimal import Decimal
from typing import Union
from uuid import UUID, uuid4

from pydantic import BaseModel, ConfigDict, Field, field_validator


class ExpenseRecord(BaseModel):
    """A single spending entry. Immutable once appended to a ledger."""

    model_config = ConfigDict(frozen=True)

    name: str = Field(min_length=1, max_length=255)
    amount: Decimal = Field(gt=0, max_digits=14, decimal_places=2)
    category: str = Field(min_length=1, max_length=255)
    date: dt.date


class IncomeRecord(BaseModel):
    """A single income entry. Immutable once appended to a ledger."""

    model_config = ConfigDict(frozen=True)

    source: str = Field(min_length=1, max_length=255)
    amount: Decimal = Field(gt=0, max_digits=14, decimal_places=2)
    date: dt.date


class UserLedger(BaseModel):
    """Everything the bot remembers about one user's money."""

    id: UUID = Field(default_factory=uuid4)
    user_id: str = Field(min_length=1, max_length=64)
    expenses: list[ExpenseRecord] = Field(default_factory=list)
    incomes: list[IncomeRecord] = Field(default_factory=list)
    limit: Decimal = Field(default=Decimal("0"), ge=0, max_digits=14, decimal_places=2)

    @field_validator("user_id", mode="before")
    @classmethod
    def _normalise_user_id(cls, value: Union[int, str]) -> str:
        """Telegram hands out integers; other platforms may use opaque strings."""
        if isinstance(value, bool):
            raise TypeError("User id must be an integer or a string")
        if isinstance(value, (int, str)):
            return str(value)
        raise TypeError("User id must be an integer or a string")

    def with_expense(self, record: ExpenseRecord) -> "UserLedger":
        return self.model_copy(update={"expenses": [*self.expenses, record]})

    def with_income(self, record: IncomeRecord) -> "UserLedger":
        return self.model_copy(update={"incomes": [*self.incomes, record]})

    def with_limit(self, limit: Decimal) -> "UserLedger":
        if limit < 0:
            raise ValueError("Limit cannot be negative")
        return self.model_copy(update={"limit": limit})

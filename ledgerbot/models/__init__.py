from .base import Base
from .ledger import Ledger, LedgerExpense, LedgerIncome

__all__ = [
    "Base",
    "Ledger",
    "LedgerExpense",
    "LedgerIncome",
]

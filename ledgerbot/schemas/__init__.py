from .ledger import ExpenseRecord, IncomeRecord, UserLedger

__all__ = [
    "ExpenseRecord",
    "IncomeRecord",
    "UserLedger",
]

from .aggregator import LedgerSummary, Period, filter_by_period, parse_period, summarize
from .conversation import (
    ConversationMachine,
    ConversationSession,
    ConversationState,
    Flow,
    InMemorySessionStore,
    SessionStore,
)
from .dispatcher import CommandDispatcher
from .errors import ConfigurationError, LedgerBotError, PersistenceError, ValidationError
from .ledger_store import InMemoryLedgerStore, LedgerStore, SqlLedgerStore

__all__ = [
    "LedgerSummary",
    "Period",
    "filter_by_period",
    "parse_period",
    "summarize",
    "ConversationMachine",
    "ConversationSession",
    "ConversationState",
    "Flow",
    "InMemorySessionStore",
    "SessionStore",
    "CommandDispatcher",
    "ConfigurationError",
    "LedgerBotError",
    "PersistenceError",
    "ValidationError",
    "InMemoryLedgerStore",
    "LedgerStore",
    "SqlLedgerStore",
]

class LedgerBotError(Exception):
    """Base class for errors raised by the ledger core."""


class ValidationError(LedgerBotError):
    """Raised for user input that cannot be accepted (bad amount, unknown period)."""


class PersistenceError(LedgerBotError):
    """Raised when the ledger store cannot be read or written."""


class ConfigurationError(LedgerBotError):
    """Raised when required startup parameters are missing."""

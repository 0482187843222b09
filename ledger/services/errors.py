"""Ledger error taxonomy

Every error raised by the services derives from LedgerError and carries the
HTTP status the API layer answers with. Errors flagged ``expose=False`` are
programming or storage failures: their detail is logged, never returned.
"""


class LedgerError(Exception):
    """Base class for all ledger domain errors"""
    status_code = 500
    expose = True
    public_message = "Internal Server Error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    @property
    def client_message(self) -> str:
        return self.message if self.expose else self.public_message


class ValidationError(LedgerError):
    """Raised when input is malformed, missing or out of range"""
    status_code = 400


class NotFound(LedgerError):
    """Raised when a company, account, period or transaction does not exist"""
    status_code = 404


class Conflict(LedgerError):
    """Raised when dependent rows or duplicates block the operation"""
    status_code = 409


class InvalidState(LedgerError):
    """Raised when the target's lifecycle state forbids the operation"""
    status_code = 422


class UnbalancedEntry(LedgerError):
    """Raised when the debits and credits of a posting do not match"""
    status_code = 500
    expose = False
    public_message = "Transaction could not be posted"


class StorageError(LedgerError):
    """Raised when the unit of work fails to commit"""
    status_code = 500
    expose = False
    public_message = "Internal Server Error"

"""Error kinds raised by the progress ledger.

Controllers map these onto HTTP status codes; the ledger itself only
retries `ConcurrencyConflict` and `StorageFailure`.
"""


class LedgerError(Exception):
    """Base class for all ledger failures."""
    retryable = False


class InvalidSubmission(LedgerError, ValueError):
    """The submitted quiz result is malformed."""


class InvalidScore(InvalidSubmission):
    """Score is negative, exceeds `max_score`, or `max_score` is zero."""


class InvalidPayload(InvalidSubmission):
    """The answers payload does not match the activity type."""


class UnknownActivity(LedgerError):
    pass


class UnknownUser(LedgerError):
    pass


class NotFound(LedgerError):
    pass


class ConcurrencyConflict(LedgerError):
    """Another writer changed the progress record first."""
    retryable = True


class StorageFailure(LedgerError):
    """The database rejected or dropped the transaction."""
    retryable = True

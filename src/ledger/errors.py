"""Ledger error taxonomy.

Every caller-facing failure carries a stable ``code``. ``transient`` tells the
caller whether retrying the same call can ever succeed; none of the domain
errors are transient.
"""


class LedgerError(Exception):
    """Base class for all ledger failures."""

    code = "ledger_error"
    transient = False

    def __init__(self, message: str, **context):
        super().__init__(message)
        self.message = message
        self.context = context

    def to_dict(self) -> dict:
        return {"error": self.code, "message": self.message, **self.context}


class ValidationError(LedgerError):
    """Malformed or out-of-range input."""

    code = "validation_error"

    def __init__(self, message: str, field: str | None = None, **context):
        super().__init__(message, field=field, **context)
        self.field = field


class SystemPaused(LedgerError):
    code = "system_paused"


class NotFound(LedgerError):
    code = "not_found"


class AlreadyResolved(LedgerError):
    code = "already_resolved"


class Unauthorized(LedgerError):
    code = "unauthorized"


class TooEarly(LedgerError):
    code = "too_early"


class LedgerUnavailableError(LedgerError):
    """Storage failure outside the domain taxonomy (locked, corrupt, missing disk)."""

    code = "internal_error"
    transient = True

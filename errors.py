class LedgerError(Exception):
    code = "ledger_error"


class InvalidArgument(LedgerError, ValueError):
    code = "invalid_argument"


class NotFound(LedgerError, LookupError):
    code = "not_found"


class AccessDenied(NotFound):
    """The entity exists but belongs to another owner.

    Subclasses NotFound so callers that only handle NotFound report both cases
    the same way and never reveal that another owner's record exists.
    """

    code = "access_denied"


class StorageFailure(LedgerError, RuntimeError):
    code = "storage_failure"

"""
Service-layer exceptions for the CV extraction pipeline.

Caller-facing operations raise these directly. The orchestrator's run and
import phases never let them escape: they are converted into a status
transition plus an error phase on the extraction row.
"""
from typing import Optional

from sqlalchemy import exc as sa_exc


class ServiceException(Exception):
    """Base exception for service layer errors."""
    pass


class InvalidInputError(ServiceException):
    """Raised for empty, oversized or unsupported uploads."""
    pass


class NotAuthorizedError(ServiceException):
    """Raised when the principal may not act on the tenant or employee."""
    pass


class StorageUnavailableError(ServiceException):
    """Raised when the blob store cannot be reached or written."""
    pass


class NotFoundError(ServiceException):
    """Raised when an extraction is not visible to the caller."""
    pass


class NotRetryableError(ServiceException):
    """Raised when a retry is requested for an extraction that is not failed."""
    pass


class DocumentParseError(ServiceException):
    """Raised when no text can be recovered from an uploaded document."""
    pass


class StaleTransitionError(ServiceException):
    """Raised when a status compare-and-swap loses against another writer."""
    pass


class LMFailure(ServiceException):
    """Failure talking to the language model.

    kind is one of: connection, timeout, provider, schema. usage carries the
    UsageRecord of the failed call once the client has filled it in.
    """

    def __init__(self, message: str, kind: str = "provider", usage=None):
        super().__init__(message)
        self.kind = kind
        self.usage = usage


class SchemaError(LMFailure):
    """The model answered, but the payload does not match the CV schema."""

    def __init__(self, message: str, usage=None):
        super().__init__(message, kind="schema", usage=usage)


class SaveFailure(ServiceException):
    """Failure persisting an import."""

    transient = False

    def __init__(self, message: str, original: Optional[BaseException] = None):
        super().__init__(message)
        self.original = original


class TransientSaveFailure(SaveFailure):
    """Deadlock, serialization conflict, timeout or lost connection."""

    transient = True


class PermanentSaveFailure(SaveFailure):
    """Constraint violation the payload cannot satisfy on retry."""

    transient = False


def classify_db_error(exc: BaseException) -> SaveFailure:
    """Map a database driver error onto the save failure taxonomy."""
    if isinstance(exc, SaveFailure):
        return exc
    if isinstance(exc, (sa_exc.IntegrityError, sa_exc.DataError, sa_exc.ProgrammingError)):
        return PermanentSaveFailure(str(exc), original=exc)
    if isinstance(exc, (sa_exc.OperationalError, sa_exc.TimeoutError)):
        return TransientSaveFailure(str(exc), original=exc)
    if isinstance(exc, sa_exc.DBAPIError) and exc.connection_invalidated:
        return TransientSaveFailure(str(exc), original=exc)
    return PermanentSaveFailure(str(exc), original=exc)

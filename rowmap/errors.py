"""
rowmap/errors.py
----------------
Exception hierarchy for the mapping engine.

Driver exceptions raised while executing a statement are not wrapped; they
reach the caller unchanged so that callers can inspect the driver's own
error codes.
"""


class RowmapError(Exception):
    """Base class for every error raised by rowmap itself."""


class DescriptorError(RowmapError):
    """An entity type cannot be mapped (no columns, bad annotation, no key...)."""


class ConnectionAcquisitionError(RowmapError):
    """No connection could be obtained from the pool."""


class RowDecodeError(RowmapError):
    """A result row does not fit the entity it is scanned into."""


class TransactionClosedError(RowmapError):
    """A transaction was used after commit or rollback."""


class QueryCancelledError(RowmapError):
    """The execution context was cancelled before a statement ran."""


class DeadlineExceededError(QueryCancelledError):
    """The execution context's deadline passed before a statement ran."""


class RollbackError(RowmapError):
    """
    The automatic rollback after a failed write failed as well.

    The rollback failure is the exception's ``__cause__``; the write error
    that triggered the rollback is kept in ``original``.
    """

    def __init__(self, message: str, original: BaseException):
        super().__init__(message)
        self.original = original

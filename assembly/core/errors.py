"""Error taxonomy shared by the lifecycle, quorum and voting services."""
from __future__ import annotations


class AssemblyError(RuntimeError):
    """Base exception for assembly service errors."""


class ValidationError(AssemblyError):
    """Raised when a request is malformed or would violate an invariant.

    Always raised before any write is attempted.
    """


class ConflictError(AssemblyError):
    """Raised when a uniqueness race is lost at the store.

    The caller may retry after refreshing its view of the data.
    """


class NotFoundError(AssemblyError):
    """Raised when a referenced entity does not exist."""


class StoreUnavailable(AssemblyError):
    """Raised when the entity store cannot be reached.

    Callers must not assume any write happened.
    """


class DuplicateActiveProxyError(ConflictError, ValidationError):
    """Raised when a principal already holds an approved proxy."""


__all__ = [
    "AssemblyError",
    "ConflictError",
    "DuplicateActiveProxyError",
    "NotFoundError",
    "StoreUnavailable",
    "ValidationError",
]

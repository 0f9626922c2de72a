"""Error taxonomy shared by the ledger, the evaluator and the HTTP surface."""

from __future__ import annotations


class ModerationError(RuntimeError):
    """Base exception for every failure the ledger reports to callers."""

    retryable: bool = False


class ValidationError(ModerationError):
    """Raised for malformed input such as an empty reason or a non-positive duration."""


class NotFoundError(ModerationError):
    """Raised when a case or community cannot be found."""


class InvalidStateError(ModerationError):
    """Raised for an illegal lifecycle transition, e.g. reversing a case twice.

    Callers should present this as "already done" rather than as a failure.
    """


class StoreUnavailableError(ModerationError):
    """Raised when the durable store cannot complete an operation.

    Nothing was committed; the caller may retry the whole intent.
    """

    retryable = True


class CacheError(ModerationError):
    """Raised by cache adapters. Never surfaced past the consistency coordinator."""

"""
Reconciliation errors.

Every failure surfaced by this package derives from ReconcileError, so the
entry point can report them uniformly while programming errors propagate.
"""
from typing import Optional


class ReconcileError(Exception):
    """Base class for reconcile failures."""


class StoreError(ReconcileError):
    """The resource store rejected a request."""


class NotFoundError(StoreError):
    """The resource does not exist."""

    def __init__(self, ref):
        super().__init__(f"resource {ref} not found")
        self.ref = ref


class ConflictError(StoreError):
    """The resource changed since it was last read by the writer."""


class RequestTimeoutError(StoreError, TimeoutError):
    """A store request did not complete within its timeout."""


class UnknownKindError(ReconcileError):
    """No adapter is registered for the requested resource kind."""


class SuspendedError(ReconcileError):
    """The resource is suspended, no reconciliation was requested."""

    def __init__(self, ref):
        super().__init__(f"resource {ref} is suspended")
        self.ref = ref


class ConflictExhaustedError(ReconcileError):
    """Every attempt to write the request marker hit a write conflict."""

    def __init__(self, ref, attempts: int, last_error: Optional[Exception] = None):
        super().__init__(
            f"failed to annotate {ref}: still conflicting after {attempts} attempts"
        )
        self.ref = ref
        self.attempts = attempts
        self.last_error = last_error


class PollFetchError(ReconcileError):
    """The store failed while polling, the wait was aborted."""

    def __init__(self, cause: Exception):
        super().__init__(f"failed to fetch resource while waiting: {cause}")
        self.cause = cause


class WaitTimeoutError(ReconcileError, TimeoutError):
    """The deadline elapsed before the awaited condition was satisfied."""


class ReconciliationFailedError(ReconcileError):
    """The controller reported a failed Ready condition."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

"""
Reconcile request trigger.

Stamps a fresh request marker into the resource's annotations with a
read-modify-write, re-reading and retrying with exponential backoff when the
write loses an optimistic-concurrency race.
"""
import logging
import random
import threading
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Optional

from source_reconciler.errors import ConflictError, ConflictExhaustedError
from source_reconciler.models.resource import ResourceRef
from source_reconciler.poller import Deadline
from source_reconciler.store import ResourceStore

logger = logging.getLogger(__name__)

RECONCILE_REQUEST_ANNOTATION = "reconcile.fluxcd.io/requestedAt"


@dataclass(frozen=True)
class Backoff:
    """
    Conflict retry schedule.

    Attributes:
        steps: Maximum number of write attempts
        duration: Delay before the second attempt, in seconds
        factor: Multiplier applied to the delay after each attempt
        jitter: Random extra fraction of the delay, 0.1 adds up to 10%
        cap: Upper bound on a single delay, None for unbounded
    """
    steps: int = 4
    duration: float = 0.01
    factor: float = 5.0
    jitter: float = 0.1
    cap: Optional[float] = None

    def delay(self, attempt: int, rand: Callable[[], float] = random.random) -> float:
        """Delay after the given failed attempt (1-based)."""
        delay = self.duration * (self.factor ** (attempt - 1))
        if self.cap is not None:
            delay = min(delay, self.cap)
        if self.jitter > 0:
            delay += delay * self.jitter * rand()
        return delay


DEFAULT_BACKOFF = Backoff()


class MarkerClock:
    """
    Produces reconcile request markers.

    Markers are RFC 3339 UTC timestamps with nanosecond precision. Successive
    markers from one clock are strictly increasing even when the wall clock
    is coarse or steps backwards.
    """

    def __init__(self, time_ns: Callable[[], int] = time.time_ns):
        self.time_ns = time_ns
        self._last = 0
        self._lock = threading.Lock()

    def now(self) -> str:
        with self._lock:
            ns = max(self.time_ns(), self._last + 1)
            self._last = ns
        seconds, nanos = divmod(ns, 1_000_000_000)
        stamp = datetime.fromtimestamp(seconds, tz=timezone.utc).strftime("%Y-%m-%dT%H:%M:%S")
        return f"{stamp}.{nanos:09d}Z"


MARKER_CLOCK = MarkerClock()


def _request_timeout(deadline: Optional[Deadline]) -> Optional[float]:
    return deadline.remaining() if deadline is not None else None


def request_reconciliation(
    store: ResourceStore,
    ref: ResourceRef,
    backoff: Backoff = DEFAULT_BACKOFF,
    deadline: Optional[Deadline] = None,
    clock: MarkerClock = MARKER_CLOCK,
    sleep: Callable[[float], None] = time.sleep
) -> str:
    """
    Request an out-of-band reconciliation of a resource.

    Capture any status value you want to compare against later before
    calling this, the stored resource is changed by it.

    Args:
        store: Resource store
        ref: Resource to annotate
        backoff: Retry schedule for write conflicts
        deadline: Overall deadline; it bounds every store request, retry
            delays are capped to it and retrying stops once it has passed
        clock: Source of request markers
        sleep: Sleep function

    Returns:
        The request marker that was written

    Raises:
        NotFoundError: The resource does not exist
        ConflictExhaustedError: Every attempt hit a write conflict
        StoreError: Any other store failure, not retried
    """
    attempt = 0
    last_error = None
    while attempt < backoff.steps:
        attempt += 1
        resource = store.get(ref, timeout=_request_timeout(deadline))
        marker = clock.now()
        resource.annotations[RECONCILE_REQUEST_ANNOTATION] = marker
        try:
            store.update(resource, timeout=_request_timeout(deadline))
        except ConflictError as e:
            last_error = e
            logger.debug(f"Conflict writing reconcile request for {ref} (attempt {attempt}/{backoff.steps}): {e}")
        else:
            logger.debug(f"Requested reconciliation of {ref} at {marker}")
            return marker

        if attempt >= backoff.steps:
            break
        delay = backoff.delay(attempt)
        if deadline is not None:
            if deadline.expired():
                break
            delay = min(delay, deadline.remaining())
        sleep(delay)

    raise ConflictExhaustedError(ref, attempt, last_error)

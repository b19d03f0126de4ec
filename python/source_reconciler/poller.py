"""
Bounded condition polling.

poll_until() fetches a snapshot and evaluates a predicate on it, sleeping
between checks until the predicate holds or the deadline expires. The first
check happens immediately. One Deadline may be shared by several waits so
that they draw on a single timeout budget.
"""
import logging
import time
from typing import Callable, TypeVar

from source_reconciler.errors import PollFetchError, ReconcileError, WaitTimeoutError

logger = logging.getLogger(__name__)

T = TypeVar("T")


class Deadline:
    """
    Absolute point in time after which waiting stops.

    Args:
        timeout: Seconds from now until the deadline
        clock: Monotonic clock returning seconds
    """

    def __init__(self, timeout: float, clock: Callable[[], float] = time.monotonic):
        self.timeout = timeout
        self.clock = clock
        self.expires_at = clock() + timeout

    def remaining(self) -> float:
        """Seconds left, never negative."""
        return max(0.0, self.expires_at - self.clock())

    def expired(self) -> bool:
        return self.clock() >= self.expires_at


def poll_until(
    fetch: Callable[[], T],
    predicate: Callable[[T], bool],
    interval: float,
    deadline: Deadline,
    sleep: Callable[[float], None] = time.sleep,
    description: str = "condition"
) -> T:
    """
    Block until predicate(fetch()) is true.

    Args:
        fetch: Returns the latest snapshot
        predicate: Decides whether the snapshot satisfies the wait; it may
            raise to abort the wait
        interval: Seconds to sleep between checks
        deadline: Bound on the total time spent waiting
        sleep: Sleep function
        description: Used in log and error messages

    Returns:
        The snapshot that satisfied the predicate

    Raises:
        PollFetchError: fetch() failed
        WaitTimeoutError: The deadline expired first, or a fetch timed out
            after it expired
    """
    attempt = 0
    while True:
        attempt += 1
        try:
            snapshot = fetch()
        except ReconcileError as e:
            # a request cut short by the deadline counts as a timeout
            if isinstance(e, TimeoutError) and deadline.expired():
                raise WaitTimeoutError(
                    f"timed out after {deadline.timeout}s waiting for {description}"
                ) from e
            raise PollFetchError(e) from e

        if predicate(snapshot):
            logger.debug(f"{description} satisfied after {attempt} check(s)")
            return snapshot

        remaining = deadline.remaining()
        if remaining <= 0:
            raise WaitTimeoutError(
                f"timed out after {deadline.timeout}s waiting for {description}"
            )
        logger.debug(f"{description} not yet satisfied (check {attempt}), retrying in {min(interval, remaining):.3f}s")
        sleep(min(interval, remaining))

"""
Reconciliation Orchestrator

Implements the request-and-wait protocol against an asynchronous controller:
1. Reads the resource and captures the last handled request marker
2. Stamps a new reconcile request marker (retrying on write conflicts)
3. Waits until the controller acknowledges the request
4. Waits until the controller reports a final Ready status for the current generation
5. Maps the final status to a result

All steps share one deadline built from the configured timeout.
"""
import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional

from source_reconciler.config import ReconcileSettings
from source_reconciler.errors import (
    ReconcileError,
    ReconciliationFailedError,
    SuspendedError,
    WaitTimeoutError,
)
from source_reconciler.models.resource import Resource, ResourceRef
from source_reconciler.poller import Deadline, poll_until
from source_reconciler.readiness import ReadinessState, handled, readiness_state
from source_reconciler.store import ResourceStore
from source_reconciler.trigger import DEFAULT_BACKOFF, Backoff, request_reconciliation

logger = logging.getLogger(__name__)


class ReconcilePhase(Enum):
    """State machine phases of one reconcile run."""
    INIT = "INIT"
    TRIGGER = "TRIGGER"
    WAIT_HANDLED = "WAIT_HANDLED"
    WAIT_READY = "WAIT_READY"
    EVALUATE = "EVALUATE"


class ReconcileOutcome(Enum):
    """Terminal states, exactly one per run."""
    SUCCEEDED = "Succeeded"
    REJECTED = "Rejected"
    FAILED = "Failed"
    TIMED_OUT = "TimedOut"


@dataclass
class ReconcileResult:
    """
    Outcome of a reconcile run

    Attributes:
        outcome: Terminal state
        phase: Phase the run ended in
        message: Human-readable summary, the controller's message on failure
        revision: Reconciled revision, when the controller reports one
        error: Exception that ended the run, None on success
    """
    outcome: ReconcileOutcome
    phase: ReconcilePhase
    message: str = ""
    revision: Optional[str] = None
    error: Optional[Exception] = None

    @property
    def succeeded(self) -> bool:
        return self.outcome is ReconcileOutcome.SUCCEEDED


class ReconcileOrchestrator:
    """
    Triggers reconciliation of a named resource and waits for the result.

    The store is the only collaborator; it decides which resource kind is
    being reconciled.
    """

    def __init__(
        self,
        store: ResourceStore,
        settings: Optional[ReconcileSettings] = None,
        kind_label: str = "resource",
        backoff: Backoff = DEFAULT_BACKOFF,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep
    ):
        self.store = store
        self.settings = settings or ReconcileSettings()
        self.kind_label = kind_label
        self.backoff = backoff
        self.clock = clock
        self.sleep = sleep

    def _wait(self, ref: ResourceRef, predicate: Callable[[Resource], bool],
              deadline: Deadline, description: str) -> Resource:
        return poll_until(
            fetch=lambda: self.store.get(ref, timeout=deadline.remaining()),
            predicate=predicate,
            interval=self.settings.poll_interval,
            deadline=deadline,
            sleep=self.sleep,
            description=description
        )

    def reconcile(self, name: str) -> ReconcileResult:
        """
        Run the reconcile protocol for one resource.

        Args:
            name: Resource name, in the configured namespace

        Returns:
            The terminal result. Failures of the protocol are reported in
            the result rather than raised.
        """
        ref = ResourceRef(namespace=self.settings.namespace, name=name)
        deadline = Deadline(self.settings.timeout, clock=self.clock)
        label = self.kind_label
        phase = ReconcilePhase.INIT

        try:
            resource = self.store.get(ref, timeout=deadline.remaining())
            if resource.suspended:
                error = SuspendedError(ref)
                logger.error(f"{label} {ref} is suspended, not requesting reconciliation")
                return ReconcileResult(ReconcileOutcome.REJECTED, phase, str(error), error=error)

            # must be read before the trigger rewrites the stored resource
            baseline_handled_at = resource.last_handled_reconcile_at

            phase = ReconcilePhase.TRIGGER
            logger.info(f"annotating {label} {name} in {ref.namespace} namespace")
            request_reconciliation(
                self.store, ref,
                backoff=self.backoff,
                deadline=deadline,
                sleep=self.sleep
            )
            logger.info(f"{label} annotated")

            phase = ReconcilePhase.WAIT_HANDLED
            logger.info(f"waiting for {label} reconciliation")
            self._wait(
                ref,
                lambda snapshot: handled(snapshot, baseline_handled_at),
                deadline,
                f"{label} {ref} reconciliation to be handled"
            )

            logger.info(f"{label} reconciliation completed")

            phase = ReconcilePhase.WAIT_READY
            logger.info(f"waiting for {label} to become ready")
            snapshot = self._wait(
                ref,
                lambda snapshot: not readiness_state(snapshot).pending,
                deadline,
                f"{label} {ref} to become ready"
            )
        except WaitTimeoutError as e:
            logger.error(f"{label} reconciliation timed out in phase {phase.value}: {e}")
            return ReconcileResult(ReconcileOutcome.TIMED_OUT, phase, str(e), error=e)
        except ReconcileError as e:
            logger.error(f"{label} reconciliation failed in phase {phase.value}: {e}")
            return ReconcileResult(ReconcileOutcome.FAILED, phase, str(e), error=e)

        phase = ReconcilePhase.EVALUATE
        readiness = readiness_state(snapshot)
        if readiness.state is ReadinessState.FAILED:
            error = ReconciliationFailedError(readiness.message)
            logger.error(f"{label} reconciliation failed: {readiness.message}")
            return ReconcileResult(ReconcileOutcome.FAILED, phase, readiness.message, error=error)

        logger.info(f"{label} is ready")
        revision = snapshot.revision
        if revision:
            logger.info(f"fetched revision {revision}")
        return ReconcileResult(ReconcileOutcome.SUCCEEDED, phase, readiness.message, revision=revision)

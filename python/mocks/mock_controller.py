"""
Mock Controller

Simulates the controller side of the reconcile protocol against a
MockResourceStore: after a number of reads it consumes the request marker,
and later reports a Ready condition for the current generation.
"""

import logging
from typing import Optional

from source_reconciler.models.resource import (
    READY_CONDITION,
    Artifact,
    Condition,
    ConditionStatus,
    Resource,
    ResourceRef,
)
from source_reconciler.trigger import RECONCILE_REQUEST_ANNOTATION

from mocks.mock_store import MockResourceStore


logger = logging.getLogger(__name__)


class MockController:
    """
    Controller driven by store reads

    Args:
        store: Store to act on; the controller hooks into its get() calls
        ref: Resource to reconcile
        handle_after: Number of reads before a pending request is acknowledged,
            None to never acknowledge
        ready_after: Number of reads before the Ready condition is reported,
            defaults to the same read as the acknowledgement
        ready: Status reported in the Ready condition
        message: Message reported in the Ready condition
        revision: Artifact revision published on success
        handled_at: Value written to lastHandledReconcileAt, defaults to the
            request marker found on the resource
    """

    def __init__(
        self,
        store: MockResourceStore,
        ref: ResourceRef,
        handle_after: Optional[int] = 3,
        ready_after: Optional[int] = None,
        ready: bool = True,
        message: str = "",
        revision: Optional[str] = None,
        handled_at: Optional[str] = None
    ):
        self.store = store
        self.ref = ref
        self.handle_after = handle_after
        self.ready_after = ready_after if ready_after is not None else handle_after
        self.ready = ready
        self.message = message
        self.revision = revision
        self.handled_at = handled_at
        self.reads = 0
        self.acknowledged = False
        self.reported = False
        store.on_get.append(self.tick)

    def _acknowledge(self, resource: Resource):
        marker = resource.annotations.get(RECONCILE_REQUEST_ANNOTATION, "")
        resource.last_handled_reconcile_at = self.handled_at or marker
        logger.info(f"MockController handled request {resource.last_handled_reconcile_at}")

    def _report(self, resource: Resource):
        resource.observed_generation = resource.generation
        status = ConditionStatus.TRUE if self.ready else ConditionStatus.FALSE
        resource.set_condition(Condition(READY_CONDITION, status, self.message))
        if self.ready and self.revision:
            resource.artifact = Artifact(revision=self.revision)
        logger.info(f"MockController reported Ready={status.value}")

    def tick(self):
        """Advance the controller by one observed read."""
        self.reads += 1
        if self.handle_after is None:
            return
        requested = RECONCILE_REQUEST_ANNOTATION in self.store.peek(self.ref).annotations
        if not self.acknowledged and requested and self.reads >= self.handle_after:
            self.store.mutate(self.ref, self._acknowledge)
            self.acknowledged = True
        if self.acknowledged and not self.reported and self.reads >= self.ready_after:
            self.store.mutate(self.ref, self._report)
            self.reported = True

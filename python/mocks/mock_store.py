"""
Mock Resource Store

In-memory ResourceStore with optimistic concurrency. Every stored write bumps
the resource version; update() fails with ConflictError when the caller's
version is stale. Useful for testing the reconcile protocol without a cluster.
"""

import logging
from typing import Callable, Dict, List, Optional

from source_reconciler.errors import ConflictError, NotFoundError, StoreError
from source_reconciler.models.resource import Resource, ResourceRef
from source_reconciler.store import ResourceStore


logger = logging.getLogger(__name__)


class MockResourceStore(ResourceStore):
    """
    In-memory store

    Attributes:
        conflicts: Number of upcoming update() calls to fail with a conflict,
            as if another writer got there first
        get_errors: Errors raised by upcoming get() calls, in order
        on_get: Callbacks run before every get(), e.g. a simulated controller
        timeouts: Request timeouts passed to get() and update(), in call order
    """

    def __init__(self):
        self.resources: Dict[ResourceRef, Resource] = {}
        self.version = 0
        self.conflicts = 0
        self.get_errors: List[Exception] = []
        self.on_get: List[Callable[[], None]] = []
        self.get_calls = 0
        self.update_calls = 0
        self.writes: List[Resource] = []
        self.timeouts: List[Optional[float]] = []

    def _bump(self, resource: Resource):
        self.version += 1
        resource.resource_version = str(self.version)

    def add(self, resource: Resource) -> Resource:
        """Create or overwrite a resource, ignoring versions."""
        stored = resource.copy()
        self._bump(stored)
        self.resources[stored.ref] = stored
        return stored.copy()

    def mutate(self, ref: ResourceRef, change: Callable[[Resource], None]):
        """Apply a change in place, as another writer would."""
        stored = self.resources[ref]
        change(stored)
        self._bump(stored)

    def peek(self, ref: ResourceRef) -> Resource:
        """Read a resource without running hooks or counting the call."""
        return self.resources[ref].copy()

    def get(self, ref: ResourceRef, timeout: Optional[float] = None) -> Resource:
        self.get_calls += 1
        self.timeouts.append(timeout)
        for hook in list(self.on_get):
            hook()
        if self.get_errors:
            raise self.get_errors.pop(0)
        if ref not in self.resources:
            raise NotFoundError(ref)
        return self.resources[ref].copy()

    def update(self, resource: Resource, timeout: Optional[float] = None) -> Resource:
        self.update_calls += 1
        self.timeouts.append(timeout)
        stored = self.resources.get(resource.ref)
        if stored is None:
            raise NotFoundError(resource.ref)

        if self.conflicts > 0:
            self.conflicts -= 1
            self._bump(stored)
            raise ConflictError(f"{resource.ref} was modified concurrently")
        if resource.resource_version != stored.resource_version:
            raise ConflictError(
                f"{resource.ref}: stale resource version {resource.resource_version}, "
                f"current is {stored.resource_version}"
            )

        # the client only owns metadata, status stays with the controller
        stored.annotations = dict(resource.annotations)
        self._bump(stored)
        self.writes.append(stored.copy())
        logger.debug(f"Stored {resource.ref} at version {stored.resource_version}")
        return stored.copy()


class FailingStore(MockResourceStore):
    """Store whose writes always fail with a non-conflict error."""

    def update(self, resource: Resource, timeout: Optional[float] = None) -> Resource:
        self.update_calls += 1
        raise StoreError("forbidden")

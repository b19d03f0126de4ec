"""
Resource store contract.

The store is the shared, remotely managed state between this client and the
controller. Writes are optimistic: update() succeeds only if the resource has
not changed since the caller fetched it.
"""
from abc import ABC, abstractmethod
from typing import Optional

from source_reconciler.models.resource import Resource, ResourceRef


class ResourceStore(ABC):
    """
    Fetch and update a single named resource.

    Both operations take an optional timeout in seconds bounding the single
    request, None for no bound.
    """

    @abstractmethod
    def get(self, ref: ResourceRef, timeout: Optional[float] = None) -> Resource:
        """
        Fetch the current snapshot of a resource.

        Raises:
            NotFoundError: The resource does not exist
            RequestTimeoutError: The request exceeded the timeout
            StoreError: Any other store failure
        """

    @abstractmethod
    def update(self, resource: Resource, timeout: Optional[float] = None) -> Resource:
        """
        Write a previously fetched resource back.

        Returns:
            The stored resource after the write

        Raises:
            ConflictError: The resource changed since it was fetched
            NotFoundError: The resource was deleted
            RequestTimeoutError: The request exceeded the timeout
            StoreError: Any other store failure
        """

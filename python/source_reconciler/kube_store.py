"""
Kubernetes-backed resource store.

Reads and replaces custom objects through the CustomObjectsApi. Replacing an
object with a stale metadata.resourceVersion is rejected by the API server
with 409 Conflict, which is what makes update() optimistic.
"""
import copy
import logging
from typing import Optional

import urllib3
from kubernetes import client, config
from kubernetes.client.rest import ApiException

from source_reconciler.errors import (
    ConflictError,
    NotFoundError,
    RequestTimeoutError,
    StoreError,
)
from source_reconciler.kinds import ResourceKind
from source_reconciler.models.resource import Resource, ResourceRef
from source_reconciler.store import ResourceStore

logger = logging.getLogger(__name__)


def load_api(kubeconfig: Optional[str] = None, context: Optional[str] = None) -> client.CustomObjectsApi:
    """
    Build a CustomObjectsApi client.

    Args:
        kubeconfig: Path to a kubeconfig file, None for the default location
        context: Kubeconfig context to use, None for the current context

    Returns:
        API client for custom resources
    """
    try:
        if kubeconfig or context:
            api_client = config.new_client_from_config(config_file=kubeconfig, context=context)
            return client.CustomObjectsApi(api_client)

        try:
            config.load_incluster_config()
            logger.debug("Using in-cluster configuration")
        except config.ConfigException:
            config.load_kube_config()
            logger.debug("Using default kubeconfig")
    except config.ConfigException as e:
        raise StoreError(f"unable to load Kubernetes configuration: {e}") from e
    return client.CustomObjectsApi()


class KubernetesResourceStore(ResourceStore):
    """ResourceStore for one custom resource kind."""

    def __init__(self, kind: ResourceKind, api: client.CustomObjectsApi):
        self.kind = kind
        self.api = api

    def _translate(self, ref: ResourceRef, e: ApiException) -> StoreError:
        if e.status == 404:
            return NotFoundError(ref)
        if e.status == 409:
            return ConflictError(f"{self.kind.kind} {ref} was modified concurrently: {e.reason}")
        return StoreError(f"{self.kind.kind} {ref}: API error {e.status} {e.reason}")

    def _transport_error(self, ref: ResourceRef, e: urllib3.exceptions.HTTPError) -> StoreError:
        reason = e.reason if isinstance(e, urllib3.exceptions.MaxRetryError) else e
        if isinstance(reason, urllib3.exceptions.TimeoutError):
            return RequestTimeoutError(f"{self.kind.kind} {ref}: request timed out: {e}")
        return StoreError(f"{self.kind.kind} {ref}: {e}")

    def get(self, ref: ResourceRef, timeout: Optional[float] = None) -> Resource:
        try:
            obj = self.api.get_namespaced_custom_object(
                group=self.kind.group,
                version=self.kind.version,
                namespace=ref.namespace,
                plural=self.kind.plural,
                name=ref.name,
                _request_timeout=timeout
            )
        except ApiException as e:
            raise self._translate(ref, e) from e
        except urllib3.exceptions.HTTPError as e:
            raise self._transport_error(ref, e) from e
        return self.kind.to_resource(obj)

    def update(self, resource: Resource, timeout: Optional[float] = None) -> Resource:
        ref = resource.ref
        body = copy.deepcopy(resource.raw) if resource.raw else {
            "apiVersion": f"{self.kind.group}/{self.kind.version}",
            "kind": self.kind.kind,
            "metadata": {"name": ref.name, "namespace": ref.namespace},
        }
        metadata = body.setdefault("metadata", {})
        metadata["annotations"] = dict(resource.annotations)
        if resource.resource_version:
            metadata["resourceVersion"] = resource.resource_version

        try:
            obj = self.api.replace_namespaced_custom_object(
                group=self.kind.group,
                version=self.kind.version,
                namespace=ref.namespace,
                plural=self.kind.plural,
                name=ref.name,
                body=body,
                _request_timeout=timeout
            )
        except ApiException as e:
            raise self._translate(ref, e) from e
        except urllib3.exceptions.HTTPError as e:
            raise self._transport_error(ref, e) from e
        logger.debug(f"Updated {self.kind.kind} {ref} (resourceVersion={obj.get('metadata', {}).get('resourceVersion')})")
        return self.kind.to_resource(obj)

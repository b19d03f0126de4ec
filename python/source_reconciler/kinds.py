"""
Reconcilable resource kinds.

Each kind is an adapter from the raw custom object to the Resource model.
The reconcile protocol itself never looks at the kind.
"""
from dataclasses import dataclass
from typing import Any, Dict, Tuple

from source_reconciler.errors import UnknownKindError
from source_reconciler.models.resource import (
    Artifact,
    Condition,
    Resource,
    ResourceRef,
)

SOURCE_GROUP = "source.toolkit.fluxcd.io"
KUSTOMIZE_GROUP = "kustomize.toolkit.fluxcd.io"
HELM_GROUP = "helm.toolkit.fluxcd.io"

ARTIFACT_REVISION = ("status", "artifact", "revision")
LAST_APPLIED_REVISION = ("status", "lastAppliedRevision")


def _lookup(obj: Dict[str, Any], path: Tuple[str, ...]) -> Any:
    for key in path:
        if not isinstance(obj, dict):
            return None
        obj = obj.get(key)
    return obj


@dataclass(frozen=True)
class ResourceKind:
    """
    API coordinates of a reconcilable kind

    Attributes:
        name: Short name used on the command line
        kind: Kubernetes kind
        group: API group
        version: API version
        plural: Resource plural used in API paths
        revision_path: Where the kind reports the revision it reconciled
    """
    name: str
    kind: str
    group: str
    version: str
    plural: str
    revision_path: Tuple[str, ...] = ARTIFACT_REVISION

    @property
    def display_name(self) -> str:
        if self.group == SOURCE_GROUP:
            return f"{self.kind} source"
        return self.kind

    def to_resource(self, obj: Dict[str, Any]) -> Resource:
        """Build a Resource snapshot from a raw custom object."""
        metadata = obj.get('metadata') or {}
        spec = obj.get('spec') or {}
        status = obj.get('status') or {}

        # last write wins for duplicate condition types
        resource = Resource(
            ref=ResourceRef(
                namespace=metadata.get('namespace', ''),
                name=metadata.get('name', '')
            ),
            generation=metadata.get('generation', 0),
            observed_generation=status.get('observedGeneration', 0),
            annotations=dict(metadata.get('annotations') or {}),
            last_handled_reconcile_at=status.get('lastHandledReconcileAt', ''),
            suspended=bool(spec.get('suspend', False)),
            resource_version=metadata.get('resourceVersion', ''),
            raw=obj
        )
        for item in status.get('conditions') or []:
            resource.set_condition(Condition.from_dict(item))

        revision = _lookup(obj, self.revision_path)
        if revision:
            artifact = status.get('artifact') or {}
            resource.artifact = Artifact(
                revision=revision,
                url=artifact.get('url', ''),
                checksum=artifact.get('checksum', '')
            )
        return resource


KINDS: Dict[str, ResourceKind] = {
    k.name: k for k in (
        ResourceKind("bucket", "Bucket", SOURCE_GROUP, "v1beta1", "buckets"),
        ResourceKind("git", "GitRepository", SOURCE_GROUP, "v1beta1", "gitrepositories"),
        ResourceKind("helm", "HelmRepository", SOURCE_GROUP, "v1beta1", "helmrepositories"),
        ResourceKind("chart", "HelmChart", SOURCE_GROUP, "v1beta1", "helmcharts"),
        ResourceKind("kustomization", "Kustomization", KUSTOMIZE_GROUP, "v1beta1",
                     "kustomizations", LAST_APPLIED_REVISION),
        ResourceKind("helmrelease", "HelmRelease", HELM_GROUP, "v2beta1",
                     "helmreleases", LAST_APPLIED_REVISION),
    )
}


def get_kind(name: str) -> ResourceKind:
    """Look up a kind by its short name."""
    try:
        return KINDS[name]
    except KeyError:
        raise UnknownKindError(
            f"unknown kind '{name}', expected one of: {', '.join(sorted(KINDS))}"
        ) from None


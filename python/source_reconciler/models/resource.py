"""
Resource data model

Snapshot of a reconcilable object as read from the store. The requesting
client owns one annotation key; the controller owns the status fields.
"""

import copy
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional


READY_CONDITION = "Ready"


class ConditionStatus(Enum):
    """Status of a condition as reported by the controller"""
    TRUE = "True"
    FALSE = "False"
    UNKNOWN = "Unknown"

    @classmethod
    def parse(cls, value: Optional[str]) -> 'ConditionStatus':
        """Map a raw status string, falling back to UNKNOWN."""
        for status in cls:
            if status.value == value:
                return status
        return cls.UNKNOWN


@dataclass
class Condition:
    """
    Named status report

    Attributes:
        type: Condition type, e.g. "Ready"
        status: True/False/Unknown
        message: Human-readable message from the controller
    """
    type: str
    status: ConditionStatus
    message: str = ""

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Condition':
        return cls(
            type=data.get('type', ''),
            status=ConditionStatus.parse(data.get('status')),
            message=data.get('message', '')
        )


@dataclass
class Artifact:
    """Result metadata published by the controller on success"""
    revision: str
    url: str = ""
    checksum: str = ""


@dataclass(frozen=True)
class ResourceRef:
    """Namespaced name of a resource"""
    namespace: str
    name: str

    def __str__(self) -> str:
        return f"{self.namespace}/{self.name}"


@dataclass
class Resource:
    """
    Reconcilable resource snapshot

    Attributes:
        ref: Namespace and name of the object
        generation: Incremented by the store on every spec change
        observed_generation: Last generation fully processed by the controller
        conditions: Status conditions, at most one per type
        annotations: Metadata annotations, carries the reconcile request marker
        last_handled_reconcile_at: Last request marker consumed by the controller
        suspended: True when the owner has suspended reconciliation
        artifact: Result metadata, if the controller published any
        resource_version: Opaque optimistic-concurrency token from the store
        raw: The underlying store object, if the store keeps one
    """
    ref: ResourceRef
    generation: int = 0
    observed_generation: int = 0
    conditions: List[Condition] = field(default_factory=list)
    annotations: Dict[str, str] = field(default_factory=dict)
    last_handled_reconcile_at: str = ""
    suspended: bool = False
    artifact: Optional[Artifact] = None
    resource_version: str = ""
    raw: Optional[Dict[str, Any]] = field(default=None, repr=False, compare=False)

    def find_condition(self, condition_type: str) -> Optional[Condition]:
        """Return the condition of the given type, or None."""
        for condition in self.conditions:
            if condition.type == condition_type:
                return condition
        return None

    def set_condition(self, condition: Condition):
        """Insert or replace the condition with the same type."""
        for i, existing in enumerate(self.conditions):
            if existing.type == condition.type:
                self.conditions[i] = condition
                return
        self.conditions.append(condition)

    @property
    def revision(self) -> Optional[str]:
        """Artifact revision, if any."""
        if self.artifact is None or not self.artifact.revision:
            return None
        return self.artifact.revision

    def copy(self) -> 'Resource':
        """Deep copy, so callers never share state with the store."""
        return copy.deepcopy(self)

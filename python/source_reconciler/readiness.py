"""
Readiness evaluation over resource snapshots.

Pure functions: they only look at the snapshot they are given.
"""
from dataclasses import dataclass
from enum import Enum

from source_reconciler.models.resource import READY_CONDITION, ConditionStatus, Resource


class ReadinessState(Enum):
    PENDING = "Pending"
    READY = "Ready"
    FAILED = "Failed"


@dataclass(frozen=True)
class Readiness:
    """Readiness state, with the controller's message when FAILED."""
    state: ReadinessState
    message: str = ""

    @property
    def pending(self) -> bool:
        return self.state is ReadinessState.PENDING


def handled(snapshot: Resource, baseline_handled_at: str) -> bool:
    """True once the controller has consumed a request newer than the baseline."""
    return snapshot.last_handled_reconcile_at != baseline_handled_at


def readiness_state(snapshot: Resource) -> Readiness:
    """
    Decide whether the controller finished reconciling the snapshot.

    A Ready condition only counts when the controller has observed the
    current generation; otherwise it describes an older spec.
    """
    if snapshot.observed_generation != snapshot.generation:
        return Readiness(ReadinessState.PENDING)

    condition = snapshot.find_condition(READY_CONDITION)
    if condition is None:
        return Readiness(ReadinessState.PENDING)
    if condition.status is ConditionStatus.TRUE:
        return Readiness(ReadinessState.READY, condition.message)
    if condition.status is ConditionStatus.FALSE:
        return Readiness(ReadinessState.FAILED, condition.message)
    return Readiness(ReadinessState.PENDING)

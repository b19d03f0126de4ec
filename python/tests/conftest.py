"""Shared fixtures: a fake monotonic clock whose sleep advances time."""
import pytest

from source_reconciler.models.resource import Resource, ResourceRef

from mocks.mock_store import MockResourceStore


class FakeClock:
    """Monotonic clock that only moves when sleep() is called."""

    def __init__(self, start: float = 1000.0):
        self.now = start
        self.sleeps = []

    def __call__(self) -> float:
        return self.now

    def sleep(self, seconds: float):
        self.sleeps.append(seconds)
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def ref():
    return ResourceRef(namespace="flux-system", name="podinfo")


@pytest.fixture
def store(ref):
    store = MockResourceStore()
    store.add(Resource(ref=ref, generation=1, observed_generation=1))
    return store

"""
Tests for the Kubernetes-backed store and the kind adapters.
"""
from unittest.mock import MagicMock, patch

import pytest
import urllib3
from kubernetes.client.rest import ApiException
from kubernetes.config.config_exception import ConfigException

from source_reconciler.config import ReconcileSettings
from source_reconciler.errors import (
    ConflictError,
    NotFoundError,
    PollFetchError,
    RequestTimeoutError,
    StoreError,
    UnknownKindError,
    WaitTimeoutError,
)
from source_reconciler.kinds import KINDS, get_kind
from source_reconciler.kube_store import KubernetesResourceStore, load_api
from source_reconciler.models.resource import ConditionStatus, ResourceRef
from source_reconciler.orchestrator import (
    ReconcileOrchestrator,
    ReconcileOutcome,
    ReconcilePhase,
)
from source_reconciler.trigger import RECONCILE_REQUEST_ANNOTATION


def bucket_object(**status):
    return {
        "apiVersion": "source.toolkit.fluxcd.io/v1beta1",
        "kind": "Bucket",
        "metadata": {
            "name": "podinfo",
            "namespace": "flux-system",
            "generation": 3,
            "resourceVersion": "4711",
            "annotations": {"team": "platform"},
        },
        "spec": {"bucketName": "podinfo", "interval": "1m", "suspend": False},
        "status": {
            "observedGeneration": 2,
            "lastHandledReconcileAt": "2024-01-01T00:00:00Z",
            "conditions": [
                {"type": "Ready", "status": "True", "message": "stored artifact"},
            ],
            "artifact": {"revision": "8d3c1f2", "url": "http://source-controller/bucket.tar.gz"},
            **status,
        },
    }


REF = ResourceRef("flux-system", "podinfo")


class TestKinds:

    def test_known_kinds(self):
        assert set(KINDS) == {"bucket", "git", "helm", "chart", "kustomization", "helmrelease"}

    def test_unknown_kind(self):
        with pytest.raises(UnknownKindError, match="bucket"):
            get_kind("ocirepository")

    def test_to_resource(self):
        resource = get_kind("bucket").to_resource(bucket_object())

        assert resource.ref == REF
        assert resource.generation == 3
        assert resource.observed_generation == 2
        assert resource.resource_version == "4711"
        assert resource.last_handled_reconcile_at == "2024-01-01T00:00:00Z"
        assert resource.suspended is False
        assert resource.find_condition("Ready").status is ConditionStatus.TRUE
        assert resource.revision == "8d3c1f2"

    def test_missing_status(self):
        obj = bucket_object()
        del obj["status"]
        resource = get_kind("bucket").to_resource(obj)

        assert resource.observed_generation == 0
        assert resource.last_handled_reconcile_at == ""
        assert resource.conditions == []
        assert resource.revision is None

    def test_duplicate_condition_types_keep_last(self):
        obj = bucket_object(conditions=[
            {"type": "Ready", "status": "True"},
            {"type": "Ready", "status": "False", "message": "fetch failed"},
        ])
        resource = get_kind("bucket").to_resource(obj)

        assert len(resource.conditions) == 1
        assert resource.find_condition("Ready").message == "fetch failed"

    def test_kustomization_reports_last_applied_revision(self):
        obj = {
            "metadata": {"name": "apps", "namespace": "flux-system", "generation": 1},
            "spec": {"suspend": True},
            "status": {"observedGeneration": 1, "lastAppliedRevision": "main/abc123"},
        }
        resource = get_kind("kustomization").to_resource(obj)

        assert resource.suspended is True
        assert resource.revision == "main/abc123"

    def test_display_name(self):
        assert get_kind("git").display_name == "GitRepository source"
        assert get_kind("helmrelease").display_name == "HelmRelease"


class TestKubernetesResourceStore:

    def setup_method(self):
        self.api = MagicMock()
        self.store = KubernetesResourceStore(get_kind("bucket"), self.api)

    def test_get(self):
        self.api.get_namespaced_custom_object.return_value = bucket_object()

        resource = self.store.get(REF)

        self.api.get_namespaced_custom_object.assert_called_once_with(
            group="source.toolkit.fluxcd.io",
            version="v1beta1",
            namespace="flux-system",
            plural="buckets",
            name="podinfo",
            _request_timeout=None
        )
        assert resource.generation == 3

    def test_get_not_found(self):
        self.api.get_namespaced_custom_object.side_effect = ApiException(status=404, reason="Not Found")

        with pytest.raises(NotFoundError):
            self.store.get(REF)

    def test_get_other_api_error(self):
        self.api.get_namespaced_custom_object.side_effect = ApiException(status=403, reason="Forbidden")

        with pytest.raises(StoreError, match="403") as excinfo:
            self.store.get(REF)
        assert not isinstance(excinfo.value, (NotFoundError, ConflictError))

    def test_update_writes_annotations_with_resource_version(self):
        self.api.get_namespaced_custom_object.return_value = bucket_object()
        resource = self.store.get(REF)
        resource.annotations[RECONCILE_REQUEST_ANNOTATION] = "2024-01-02T00:00:00.000000000Z"
        self.api.replace_namespaced_custom_object.side_effect = lambda **kw: kw["body"]

        self.store.update(resource)

        body = self.api.replace_namespaced_custom_object.call_args.kwargs["body"]
        assert body["metadata"]["resourceVersion"] == "4711"
        assert body["metadata"]["annotations"] == {
            "team": "platform",
            RECONCILE_REQUEST_ANNOTATION: "2024-01-02T00:00:00.000000000Z",
        }
        assert body["spec"]["bucketName"] == "podinfo"

    def test_update_does_not_modify_fetched_object(self):
        obj = bucket_object()
        self.api.get_namespaced_custom_object.return_value = obj
        resource = self.store.get(REF)
        resource.annotations[RECONCILE_REQUEST_ANNOTATION] = "now"
        self.api.replace_namespaced_custom_object.side_effect = lambda **kw: kw["body"]

        self.store.update(resource)

        assert RECONCILE_REQUEST_ANNOTATION not in obj["metadata"]["annotations"]

    def test_update_conflict(self):
        self.api.get_namespaced_custom_object.return_value = bucket_object()
        resource = self.store.get(REF)
        self.api.replace_namespaced_custom_object.side_effect = ApiException(status=409, reason="Conflict")

        with pytest.raises(ConflictError):
            self.store.update(resource)

    def test_get_passes_request_timeout(self):
        self.api.get_namespaced_custom_object.return_value = bucket_object()

        self.store.get(REF, timeout=1.5)

        assert self.api.get_namespaced_custom_object.call_args.kwargs["_request_timeout"] == 1.5

    def test_update_passes_request_timeout(self):
        self.api.get_namespaced_custom_object.return_value = bucket_object()
        resource = self.store.get(REF)
        self.api.replace_namespaced_custom_object.side_effect = lambda **kw: kw["body"]

        self.store.update(resource, timeout=0.25)

        assert self.api.replace_namespaced_custom_object.call_args.kwargs["_request_timeout"] == 0.25

    def test_transport_error(self):
        self.api.get_namespaced_custom_object.side_effect = urllib3.exceptions.MaxRetryError(
            None, "/apis/source.toolkit.fluxcd.io/v1beta1", reason=None
        )

        with pytest.raises(StoreError) as excinfo:
            self.store.get(REF)
        assert not isinstance(excinfo.value, RequestTimeoutError)

    def test_read_timeout(self):
        self.api.get_namespaced_custom_object.side_effect = urllib3.exceptions.ReadTimeoutError(
            None, "/apis", "Read timed out."
        )

        with pytest.raises(RequestTimeoutError):
            self.store.get(REF)

    def test_retries_exhausted_on_timeout(self):
        timeout = urllib3.exceptions.ConnectTimeoutError(None, "connect timed out")
        self.api.replace_namespaced_custom_object.side_effect = urllib3.exceptions.MaxRetryError(
            None, "/apis", reason=timeout
        )
        self.api.get_namespaced_custom_object.return_value = bucket_object()
        resource = self.store.get(REF)

        with pytest.raises(RequestTimeoutError):
            self.store.update(resource)


class TestLoadApi:

    def setup_method(self):
        patcher_config = patch("source_reconciler.kube_store.config")
        patcher_client = patch("source_reconciler.kube_store.client")
        self.config = patcher_config.start()
        self.client = patcher_client.start()
        self.config.ConfigException = ConfigException
        self.patchers = [patcher_config, patcher_client]

    def teardown_method(self):
        for patcher in self.patchers:
            patcher.stop()

    def test_explicit_kubeconfig_and_context(self):
        api = load_api("/tmp/kubeconfig", "kind-dev")

        self.config.new_client_from_config.assert_called_once_with(
            config_file="/tmp/kubeconfig", context="kind-dev"
        )
        self.client.CustomObjectsApi.assert_called_once_with(self.config.new_client_from_config.return_value)
        assert api is self.client.CustomObjectsApi.return_value
        self.config.load_incluster_config.assert_not_called()

    def test_context_only(self):
        load_api(context="kind-dev")

        self.config.new_client_from_config.assert_called_once_with(config_file=None, context="kind-dev")

    def test_in_cluster(self):
        load_api()

        self.config.load_incluster_config.assert_called_once_with()
        self.config.load_kube_config.assert_not_called()

    def test_falls_back_to_default_kubeconfig(self):
        self.config.load_incluster_config.side_effect = ConfigException("not running in a pod")

        load_api()

        self.config.load_kube_config.assert_called_once_with()
        self.client.CustomObjectsApi.assert_called_once_with()

    def test_no_configuration_available(self):
        self.config.load_incluster_config.side_effect = ConfigException("not running in a pod")
        self.config.load_kube_config.side_effect = ConfigException("Invalid kube-config file")

        with pytest.raises(StoreError, match="Invalid kube-config file"):
            load_api()

    def test_invalid_explicit_kubeconfig(self):
        self.config.new_client_from_config.side_effect = ConfigException("context kind-dev not found")

        with pytest.raises(StoreError, match="kind-dev"):
            load_api(context="kind-dev")


def reconciled_bucket(handled_at=""):
    return bucket_object(observedGeneration=3, lastHandledReconcileAt=handled_at)


class TestReconcileAgainstKubernetes:
    """The orchestrator driving the Kubernetes store through a mocked API."""

    def setup_method(self):
        self.api = MagicMock()
        self.api.replace_namespaced_custom_object.side_effect = lambda **kw: kw["body"]
        self.store = KubernetesResourceStore(get_kind("bucket"), self.api)

    def orchestrator(self, clock):
        return ReconcileOrchestrator(
            self.store,
            ReconcileSettings(poll_interval=1.0, timeout=10.0),
            kind_label="Bucket source",
            clock=clock,
            sleep=clock.sleep
        )

    def request_timeouts(self):
        calls = (self.api.get_namespaced_custom_object.call_args_list
                 + self.api.replace_namespaced_custom_object.call_args_list)
        return [c.kwargs["_request_timeout"] for c in calls]

    def test_every_request_is_bounded_by_the_deadline(self, clock):
        done = reconciled_bucket(handled_at="2024-01-02T00:00:00Z")
        self.api.get_namespaced_custom_object.side_effect = [
            reconciled_bucket(), reconciled_bucket(), reconciled_bucket(), done, done,
        ]

        result = self.orchestrator(clock).reconcile("podinfo")

        assert result.succeeded
        assert result.revision == "8d3c1f2"
        timeouts = self.request_timeouts()
        assert len(timeouts) == 6
        assert all(t is not None and 0 < t <= 10.0 for t in timeouts)
        # the fourth read comes after one poll interval
        assert self.api.get_namespaced_custom_object.call_args_list[3].kwargs["_request_timeout"] == pytest.approx(9.0)

    def test_transport_error_while_waiting(self, clock):
        self.api.get_namespaced_custom_object.side_effect = [
            reconciled_bucket(), reconciled_bucket(),
            urllib3.exceptions.MaxRetryError(None, "/apis", reason=None),
        ]

        result = self.orchestrator(clock).reconcile("podinfo")

        assert result.outcome is ReconcileOutcome.FAILED
        assert result.phase is ReconcilePhase.WAIT_HANDLED
        assert isinstance(result.error, PollFetchError)
        assert isinstance(result.error.cause, StoreError)

    def test_request_stalled_past_the_deadline_times_out(self, clock):
        """A read cut off by its request timeout ends the run as a timeout."""
        responses = iter([reconciled_bucket(), reconciled_bucket()])

        def get(**kwargs):
            obj = next(responses, None)
            if obj is not None:
                return obj
            clock.sleep(kwargs["_request_timeout"])
            raise urllib3.exceptions.ReadTimeoutError(None, "/apis", "Read timed out.")
        self.api.get_namespaced_custom_object.side_effect = get
        start = clock()

        result = self.orchestrator(clock).reconcile("podinfo")

        assert result.outcome is ReconcileOutcome.TIMED_OUT
        assert result.phase is ReconcilePhase.WAIT_HANDLED
        assert isinstance(result.error, WaitTimeoutError)
        assert clock() - start == pytest.approx(10.0)

"""Tests for EnvironmentManager"""

from __future__ import annotations

import json
import logging
import re
import threading
import time
from unittest.mock import MagicMock

import pytest
from kubernetes.client.exceptions import ApiException

from kubeharness.application.environment import (
    DeletionHandle,
    EnvironmentManager,
    namespace_name_generator,
)
from kubeharness.domain.config.environment import EnvironmentConfig
from kubeharness.domain.config.retry import RetryPolicy
from kubeharness.domain.errors import FatalProvisioningError, ProvisioningError


def _api_error(status: int, reason: str) -> ApiException:
    error = ApiException(status=status, reason=reason)
    error.body = json.dumps({"kind": "Status", "reason": reason, "code": status})
    return error


def _namespace_obj(name: str) -> MagicMock:
    obj = MagicMock()
    obj.metadata.name = name
    return obj


@pytest.fixture
def kube_client():
    kube = MagicMock()
    kube.read_namespace.side_effect = lambda name: _namespace_obj(name)
    return kube


@pytest.fixture
def manager(kube_client):
    config = EnvironmentConfig(base_name="csi", wait_for_deletion=False)
    policy = RetryPolicy(max_attempts=3, initial_delay=0.001, max_delay=0.01)
    mgr = EnvironmentManager(
        kube_client,
        config=config,
        policy=policy,
        name_generator=lambda base: f"e2e-tests-{base}-fixed",
    )
    yield mgr
    mgr.shutdown()


class TestNameGenerator:
    """Tests for namespace name generation"""

    def test_default_format(self):
        name = namespace_name_generator()("csi")
        assert re.fullmatch(r"e2e-tests-csi-[a-z0-9]{5}", name)

    def test_custom_prefix(self):
        assert namespace_name_generator("smoke")("csi").startswith("smoke-csi-")

    def test_names_differ(self):
        generate = namespace_name_generator()
        assert len({generate("csi") for _ in range(20)}) > 1


class TestCreateEnvironment:
    """Tests for create_environment"""

    def test_creates_namespace(self, manager, kube_client):
        name = manager.create_environment()

        assert name == "e2e-tests-csi-fixed"
        assert manager.namespace == name
        body = kube_client.create_namespace.call_args[0][0]
        assert body.metadata.name == name
        assert body.metadata.labels == {"e2e-framework": "csi"}

    def test_provisioning_failure_propagates(self, manager, kube_client):
        kube_client.create_namespace.side_effect = _api_error(403, "Forbidden")

        with pytest.raises(FatalProvisioningError):
            manager.create_environment()

        assert manager.namespace is None

    def test_existing_namespace_is_reused(self, manager, kube_client):
        kube_client.create_namespace.side_effect = _api_error(409, "AlreadyExists")

        assert manager.create_environment() == "e2e-tests-csi-fixed"


class TestDestroyEnvironment:
    """Tests for destroy_environment"""

    def test_deletes_current_namespace_in_background(self, manager, kube_client):
        name = manager.create_environment()

        handle = manager.destroy_environment()

        assert isinstance(handle, DeletionHandle)
        assert handle.namespace == name
        assert handle.wait(timeout=5) is True
        kube_client.delete_namespace.assert_called_once_with(name, grace_period_seconds=0)
        assert manager.namespace is None

    def test_no_namespace_raises(self, manager):
        with pytest.raises(ValueError, match="no namespace"):
            manager.destroy_environment()

    def test_already_deleted_namespace_is_fine(self, manager, kube_client):
        kube_client.delete_namespace.side_effect = _api_error(404, "NotFound")

        handle = manager.destroy_environment("gone")

        assert handle.wait(timeout=5) is True

    def test_transient_delete_error_is_retried(self, manager, kube_client):
        kube_client.delete_namespace.side_effect = [_api_error(500, "InternalError"), None]

        handle = manager.destroy_environment("flaky")

        assert handle.wait(timeout=5) is True
        assert kube_client.delete_namespace.call_count == 2

    def test_failure_is_reported_not_raised(self, manager, kube_client, caplog):
        """Test teardown failure is logged and exposed on the handle only"""
        kube_client.delete_namespace.side_effect = _api_error(403, "Forbidden")

        with caplog.at_level(logging.ERROR, logger="kubeharness.application.environment"):
            handle = manager.destroy_environment("locked")
            assert handle.wait(timeout=5) is False
            manager.shutdown()

        assert isinstance(handle.exception(), RuntimeError)
        with pytest.raises(RuntimeError, match="locked"):
            handle.result()
        assert any("locked" in record.getMessage() for record in caplog.records)

    def test_waits_for_namespace_to_disappear(self, kube_client):
        config = EnvironmentConfig(wait_for_deletion=True, delete_timeout=5, delete_poll_interval=0.01)
        mgr = EnvironmentManager(kube_client, config=config, policy=RetryPolicy(initial_delay=0.001, max_delay=0.01))
        try:
            handle = mgr.destroy_environment("ns-1")
            assert handle.wait(timeout=5) is True
        finally:
            mgr.shutdown()

        kube_client.wait_for_namespace_deleted.assert_called_once_with("ns-1", timeout=5, poll_interval=0.01)

    def test_pending_deletions_drain(self, manager):
        handle = manager.destroy_environment("ns-1")
        handle.wait(timeout=5)
        manager.shutdown()

        assert manager.pending_deletions() == 0


class TestEnvironmentContext:
    """Tests for the environment() context manager"""

    def test_creates_and_destroys(self, manager, kube_client):
        with manager.environment() as namespace:
            assert namespace == "e2e-tests-csi-fixed"

        manager.shutdown()
        kube_client.delete_namespace.assert_called_once_with(namespace, grace_period_seconds=0)

    def test_destroys_on_error(self, manager, kube_client):
        with pytest.raises(RuntimeError, match="test failed"):
            with manager.environment():
                raise RuntimeError("test failed")

        manager.shutdown()
        kube_client.delete_namespace.assert_called_once()


class TestPvcHelpers:
    """Tests for ensure_pvc and get_pvc"""

    def test_ensure_pvc_uses_current_namespace(self, manager, kube_client):
        manager.create_environment()
        manifest = {"metadata": {"name": "data"}, "spec": {"accessModes": ["ReadWriteOnce"]}}

        claim = manager.ensure_pvc(manifest)

        kube_client.create_pvc.assert_called_once_with("e2e-tests-csi-fixed", manifest)
        kube_client.read_pvc.assert_called_once_with("e2e-tests-csi-fixed", "data")
        assert claim is kube_client.read_pvc.return_value

    def test_ensure_pvc_keeps_explicit_namespace(self, manager, kube_client):
        manifest = {"metadata": {"name": "data", "namespace": "other"}}

        manager.ensure_pvc(manifest)

        kube_client.create_pvc.assert_called_once_with("other", manifest)

    def test_ensure_pvc_rejects_empty_object(self, manager, kube_client):
        with pytest.raises(ProvisioningError, match="empty"):
            manager.ensure_pvc(None)

        kube_client.create_pvc.assert_not_called()

    def test_get_pvc_reads_once(self, manager, kube_client):
        kube_client.read_pvc.side_effect = _api_error(503, "ServiceUnavailable")

        with pytest.raises(ApiException):
            manager.get_pvc("ns", "data")

        assert kube_client.read_pvc.call_count == 1


class TestTeardownAfterShutdown:
    """Tests for teardown scheduled on a shut-down manager"""

    def test_destroy_after_shutdown_does_not_raise(self, manager, kube_client, caplog):
        manager.shutdown()

        with caplog.at_level(logging.ERROR, logger="kubeharness.application.environment"):
            handle = manager.destroy_environment("ns-1")

        assert handle.done() is True
        assert handle.wait(timeout=1) is False
        assert isinstance(handle.exception(), RuntimeError)
        kube_client.delete_namespace.assert_not_called()
        assert any("ns-1" in record.getMessage() for record in caplog.records)

    def test_context_block_error_is_not_masked(self, manager):
        with pytest.raises(KeyError, match="from the test"):
            with manager.environment():
                manager.shutdown()
                raise KeyError("from the test")


class TestDeletionWorkers:
    """Tests for deletion concurrency and bounded shutdown"""

    def test_disappearance_wait_is_opt_in(self, kube_client):
        mgr = EnvironmentManager(kube_client, policy=RetryPolicy(initial_delay=0.001, max_delay=0.01))
        try:
            assert mgr.destroy_environment("ns-1").wait(timeout=5) is True
        finally:
            mgr.shutdown()

        assert EnvironmentConfig().wait_for_deletion is False
        kube_client.wait_for_namespace_deleted.assert_not_called()

    def test_deletions_run_concurrently(self, kube_client):
        """Test one slow deletion does not hold up the others"""
        release = threading.Event()

        def delete(name, grace_period_seconds):
            if name == "slow":
                release.wait(timeout=5)

        kube_client.delete_namespace.side_effect = delete
        mgr = EnvironmentManager(kube_client, policy=RetryPolicy(initial_delay=0.001, max_delay=0.01))
        try:
            slow = mgr.destroy_environment("slow")
            fast = mgr.destroy_environment("fast")

            assert fast.wait(timeout=5) is True
            assert slow.done() is False
        finally:
            release.set()
            mgr.shutdown()

        assert slow.wait(timeout=5) is True

    def test_bounded_shutdown_abandons_backoff(self, kube_client):
        kube_client.delete_namespace.side_effect = _api_error(503, "ServiceUnavailable")
        mgr = EnvironmentManager(
            kube_client,
            policy=RetryPolicy(max_attempts=5, initial_delay=10.0, max_delay=10.0),
        )
        handle = mgr.destroy_environment("stuck")

        start = time.monotonic()
        mgr.shutdown(timeout=0.1)

        assert handle.wait(timeout=5) is False
        assert time.monotonic() - start < 5
        assert kube_client.delete_namespace.call_count <= 1

"""Tests for Kubernetes client"""

from __future__ import annotations

from unittest.mock import MagicMock, patch

import pytest
from kubernetes.client.exceptions import ApiException
from kubernetes.config import ConfigException

from kubeharness.domain.config.kube import KubeConfig
from kubeharness.infrastructure.kube.client import KubeClient


class TestKubeClientInit:
    """Tests for KubeClient construction"""

    def test_from_kubeconfig(self):
        """Test client built from an explicit kubeconfig and context"""
        with patch("kubeharness.infrastructure.kube.client.config.new_client_from_config") as mock_new_client:
            api_client = MagicMock()
            mock_new_client.return_value = api_client

            kube = KubeClient.from_config(
                KubeConfig(kubeconfig="/tmp/kubeconfig", context="kind-e2e", request_timeout=10)
            )

            mock_new_client.assert_called_once_with(
                config_file="/tmp/kubeconfig",
                context="kind-e2e",
                persist_config=False,
            )
            assert kube.core_v1.api_client is api_client
            assert kube.request_timeout == 10

    def test_default_kubeconfig(self):
        with patch("kubeharness.infrastructure.kube.client.config.new_client_from_config") as mock_new_client:
            mock_new_client.return_value = MagicMock()

            KubeClient.from_config()

            assert mock_new_client.call_args.kwargs["config_file"] is None

    def test_in_cluster(self):
        with patch("kubeharness.infrastructure.kube.client.config.load_incluster_config") as mock_incluster:
            kube = KubeClient.from_config(KubeConfig(in_cluster=True))

            mock_incluster.assert_called_once()
            assert "client_configuration" in mock_incluster.call_args.kwargs
            assert kube.core_v1 is not None

    def test_config_error_raises_runtime_error(self):
        with patch("kubeharness.infrastructure.kube.client.config.new_client_from_config") as mock_new_client:
            mock_new_client.side_effect = ConfigException("Invalid kube-config file")

            with pytest.raises(RuntimeError, match="loading a kubernetes client configuration"):
                KubeClient.from_config(KubeConfig(kubeconfig="/nope"))


class TestKubeClientCalls:
    """Tests for single API calls"""

    def test_create_namespace_passes_timeout(self):
        core_v1 = MagicMock()
        kube = KubeClient(core_v1, request_timeout=15)
        body = MagicMock()

        kube.create_namespace(body)

        core_v1.create_namespace.assert_called_once_with(body=body, _request_timeout=15)

    def test_no_timeout_kwarg_when_unset(self):
        core_v1 = MagicMock()
        kube = KubeClient(core_v1)

        kube.read_namespace("ns")

        core_v1.read_namespace.assert_called_once_with(name="ns")

    def test_delete_namespace_grace_period(self):
        core_v1 = MagicMock()
        kube = KubeClient(core_v1)

        kube.delete_namespace("ns", grace_period_seconds=0)

        core_v1.delete_namespace.assert_called_once_with(name="ns", grace_period_seconds=0)

    def test_pvc_calls(self):
        core_v1 = MagicMock()
        kube = KubeClient(core_v1)
        body = {"metadata": {"name": "data"}}

        kube.create_pvc("ns", body)
        kube.read_pvc("ns", "data")

        core_v1.create_namespaced_persistent_volume_claim.assert_called_once_with(namespace="ns", body=body)
        core_v1.read_namespaced_persistent_volume_claim.assert_called_once_with(name="data", namespace="ns")

    def test_api_errors_are_not_retried(self):
        core_v1 = MagicMock()
        core_v1.create_namespaced_persistent_volume_claim.side_effect = ApiException(status=500)
        kube = KubeClient(core_v1)

        with pytest.raises(ApiException):
            kube.create_pvc("ns", {})

        assert core_v1.create_namespaced_persistent_volume_claim.call_count == 1


class TestNamespaceDeletionWait:
    """Tests for namespace_exists and wait_for_namespace_deleted"""

    def test_namespace_exists(self):
        core_v1 = MagicMock()
        kube = KubeClient(core_v1)

        assert kube.namespace_exists("ns") is True

        core_v1.read_namespace.side_effect = ApiException(status=404)
        assert kube.namespace_exists("ns") is False

    def test_namespace_exists_propagates_other_errors(self):
        core_v1 = MagicMock()
        core_v1.read_namespace.side_effect = ApiException(status=403)
        kube = KubeClient(core_v1)

        with pytest.raises(ApiException):
            kube.namespace_exists("ns")

    def test_wait_until_gone(self):
        core_v1 = MagicMock()
        core_v1.read_namespace.side_effect = [MagicMock(), ApiException(status=503), ApiException(status=404)]
        kube = KubeClient(core_v1)

        kube.wait_for_namespace_deleted("ns", timeout=5, poll_interval=0)

        assert core_v1.read_namespace.call_count == 3

    def test_wait_times_out(self):
        core_v1 = MagicMock()
        kube = KubeClient(core_v1)

        with pytest.raises(TimeoutError, match="ns"):
            kube.wait_for_namespace_deleted("ns", timeout=0.05, poll_interval=0.01)

    def test_wait_propagates_fatal_errors(self):
        core_v1 = MagicMock()
        core_v1.read_namespace.side_effect = ApiException(status=403)
        kube = KubeClient(core_v1)

        with pytest.raises(ApiException):
            kube.wait_for_namespace_deleted("ns", timeout=5, poll_interval=0)

        assert core_v1.read_namespace.call_count == 1

    def test_transient_errors_until_timeout_raise_timeout_error(self):
        core_v1 = MagicMock()
        core_v1.read_namespace.side_effect = ApiException(status=503)
        kube = KubeClient(core_v1)

        with pytest.raises(TimeoutError, match="ns"):
            kube.wait_for_namespace_deleted("ns", timeout=0.05, poll_interval=0.01)

        assert core_v1.read_namespace.call_count >= 2

"""Kubernetes API client"""

import logging
import os
from typing import Any, Optional

from kubernetes import client, config
from kubernetes.client.exceptions import ApiException
from tenacity import (
    RetryError,
    Retrying,
    retry_if_exception,
    retry_if_result,
    stop_after_delay,
    wait_fixed,
)

from kubeharness.domain.config.kube import KubeConfig
from kubeharness.domain.models.outcome import ErrorClass
from kubeharness.infrastructure.classifier import classify_api_error

logger = logging.getLogger(__name__)


class KubeClient:
    """Client for the Kubernetes core/v1 operations used by test environments.

    Each method performs exactly one API call (no retries); retry policy is the
    caller's concern. Errors surface as kubernetes ApiException or urllib3
    transport errors.
    """

    def __init__(self, core_v1: client.CoreV1Api, request_timeout: Optional[float] = None):
        """Initialize Kubernetes client

        Args:
            core_v1: CoreV1Api bound to an ApiClient
            request_timeout: Per-request timeout in seconds (None = client default)
        """
        self.core_v1 = core_v1
        self.request_timeout = request_timeout

    @classmethod
    def from_config(cls, kube_config: Optional[KubeConfig] = None) -> "KubeClient":
        """Build a client from explicit configuration

        Uses a dedicated ApiClient instead of the process-wide default
        configuration.

        Args:
            kube_config: Kubernetes configuration (defaults if None)

        Returns:
            KubeClient instance

        Raises:
            RuntimeError: If the client configuration cannot be loaded
        """
        kube_config = kube_config or KubeConfig()
        try:
            if kube_config.in_cluster:
                configuration = client.Configuration()
                config.load_incluster_config(client_configuration=configuration)
                api_client = client.ApiClient(configuration)
                source = "in-cluster service account"
            else:
                api_client = config.new_client_from_config(
                    config_file=os.path.expanduser(kube_config.kubeconfig) if kube_config.kubeconfig else None,
                    context=kube_config.context,
                    persist_config=False,
                )
                source = kube_config.kubeconfig or "default kubeconfig"
        except config.ConfigException as e:
            logger.error(f"Failed to load Kubernetes client configuration: {e}")
            raise RuntimeError(f"loading a kubernetes client configuration failed: {e}") from e

        logger.info(f"Kubernetes client initialized from {source}")
        return cls(client.CoreV1Api(api_client), request_timeout=kube_config.request_timeout)

    def _kwargs(self) -> dict:
        if self.request_timeout is None:
            return {}
        return {"_request_timeout": self.request_timeout}

    # Namespaces

    def create_namespace(self, body: Any) -> client.V1Namespace:
        return self.core_v1.create_namespace(body=body, **self._kwargs())

    def read_namespace(self, name: str) -> client.V1Namespace:
        return self.core_v1.read_namespace(name=name, **self._kwargs())

    def delete_namespace(self, name: str, grace_period_seconds: int = 0) -> None:
        """Request namespace deletion

        Args:
            name: Namespace name
            grace_period_seconds: Grace period for contained objects
        """
        logger.info(f"Deleting namespace {name}")
        self.core_v1.delete_namespace(
            name=name,
            grace_period_seconds=grace_period_seconds,
            **self._kwargs(),
        )

    def namespace_exists(self, name: str) -> bool:
        """Check whether a namespace is still present

        Raises:
            ApiException: For any error other than 404
        """
        try:
            self.read_namespace(name)
        except ApiException as e:
            if e.status == 404:
                return False
            raise
        return True

    def wait_for_namespace_deleted(self, name: str, timeout: float, poll_interval: float) -> None:
        """Poll until a namespace is gone

        Transient read errors are tolerated while polling.

        Raises:
            TimeoutError: If the namespace still exists, or could not be read,
                after timeout seconds
            ApiException: For a non-transient read error
        """
        retrying = Retrying(
            stop=stop_after_delay(timeout),
            wait=wait_fixed(poll_interval),
            retry=(
                retry_if_result(lambda exists: exists)
                | retry_if_exception(lambda e: classify_api_error(e) is ErrorClass.RETRYABLE)
            ),
        )
        try:
            retrying(self.namespace_exists, name)
        except RetryError as e:
            raise TimeoutError(f"namespace {name} was not deleted within {timeout}s") from e
        logger.debug(f"Namespace {name} is gone")

    # PersistentVolumeClaims

    def create_pvc(self, namespace: str, body: Any) -> client.V1PersistentVolumeClaim:
        return self.core_v1.create_namespaced_persistent_volume_claim(
            namespace=namespace, body=body, **self._kwargs()
        )

    def read_pvc(self, namespace: str, name: str) -> client.V1PersistentVolumeClaim:
        return self.core_v1.read_namespaced_persistent_volume_claim(
            name=name, namespace=namespace, **self._kwargs()
        )

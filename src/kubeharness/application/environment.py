"""Per-test environment lifecycle: namespace setup and background teardown"""

import logging
import random
import string
import threading
from concurrent.futures import CancelledError, Future, ThreadPoolExecutor, wait as wait_futures
from contextlib import contextmanager
from dataclasses import replace
from typing import Any, Callable, Iterator, Optional

from kubernetes import client
from kubernetes.client.exceptions import ApiException

from kubeharness.application.provisioner import ResourceProvisioner
from kubeharness.domain.config.environment import EnvironmentConfig
from kubeharness.domain.config.retry import RetryPolicy
from kubeharness.domain.models.outcome import OperationOutcome
from kubeharness.domain.models.resource import ResourceKind, ResourceRequest
from kubeharness.infrastructure.classifier import outcome_for_error
from kubeharness.infrastructure.kube.client import KubeClient
from kubeharness.infrastructure.retry import execute

logger = logging.getLogger(__name__)

NameGenerator = Callable[[str], str]

_SUFFIX_ALPHABET = string.ascii_lowercase + string.digits


def random_suffix(length: int = 5) -> str:
    return "".join(random.choices(_SUFFIX_ALPHABET, k=length))


def namespace_name_generator(prefix: str = "e2e-tests") -> NameGenerator:
    """Create a generator producing names like e2e-tests-<base>-x7k2q"""

    def _generate(base_name: str) -> str:
        return f"{prefix}-{base_name}-{random_suffix()}"

    return _generate


class DeletionHandle:
    """Handle to a namespace deletion running in the background

    Callers may ignore it, poll it or wait on it. Failures are logged
    regardless of whether anyone looks at the handle.
    """

    def __init__(self, namespace: str, future: Future):
        self.namespace = namespace
        self._future = future

    def done(self) -> bool:
        return self._future.done()

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Block until deletion finishes

        Returns:
            True if the namespace was deleted, False if deletion failed

        Raises:
            concurrent.futures.TimeoutError: If it is still running after timeout
        """
        try:
            return self._future.exception(timeout) is None
        except CancelledError:
            return False

    def exception(self, timeout: Optional[float] = None) -> Optional[BaseException]:
        return self._future.exception(timeout)

    def result(self, timeout: Optional[float] = None) -> None:
        """Wait for deletion and re-raise its error, if any"""
        self._future.result(timeout)


class EnvironmentManager:
    """Creates a namespace per unit of work and tears it down asynchronously"""

    def __init__(
        self,
        kube_client: KubeClient,
        config: Optional[EnvironmentConfig] = None,
        policy: Optional[RetryPolicy] = None,
        provisioner: Optional[ResourceProvisioner] = None,
        name_generator: Optional[NameGenerator] = None,
        max_workers: int = 4,
    ):
        """Initialize environment manager

        Args:
            kube_client: Kubernetes API client
            config: Environment configuration (defaults if None)
            policy: Retry policy for create and delete calls (defaults if None)
            provisioner: Resource provisioner (creates default if None)
            name_generator: Maps base name to namespace name (random suffix if None)
            max_workers: Number of background deletion workers
        """
        self.kube_client = kube_client
        self.config = config or EnvironmentConfig()
        self.policy = policy or RetryPolicy()
        self.provisioner = provisioner or ResourceProvisioner(kube_client, self.policy)
        self.name_generator = name_generator or namespace_name_generator(self.config.name_prefix)
        self.namespace: Optional[str] = None
        self._executor = ThreadPoolExecutor(
            max_workers=max_workers, thread_name_prefix="kubeharness-teardown"
        )
        self._pending: set = set()
        self._lock = threading.Lock()
        # Set on bounded shutdown; aborts backoff waits of running deletions
        self._closing = threading.Event()

    def create_environment(self) -> str:
        """Provision a fresh namespace for the current unit of work

        Returns:
            Name of the created namespace

        Raises:
            ProvisioningError: If the namespace cannot be provisioned
        """
        name = self.name_generator(self.config.base_name)
        body = client.V1Namespace(
            metadata=client.V1ObjectMeta(
                name=name,
                labels={"e2e-framework": self.config.base_name},
            )
        )
        request = ResourceRequest(kind=ResourceKind.NAMESPACE, name=name, body=body)
        provisioned = self.provisioner.provision(request)
        self.namespace = provisioned.obj.metadata.name
        logger.info(f"Created test namespace {self.namespace}")
        return self.namespace

    def destroy_environment(self, namespace: Optional[str] = None) -> DeletionHandle:
        """Schedule namespace deletion without waiting for it

        Args:
            namespace: Namespace to delete (current namespace if None)

        Returns:
            DeletionHandle for observing the background deletion

        Raises:
            ValueError: If there is no namespace to delete
        """
        namespace = namespace or self.namespace
        if not namespace:
            raise ValueError("no namespace to destroy; call create_environment() first")
        if namespace == self.namespace:
            self.namespace = None

        try:
            future = self._executor.submit(self._delete_namespace, namespace)
        except RuntimeError as e:
            # Executor already shut down; report through the handle only
            logger.error(f"deleting namespace {namespace} could not be scheduled: {e}")
            future = Future()
            future.set_exception(e)
            return DeletionHandle(namespace, future)
        with self._lock:
            self._pending.add(future)
        future.add_done_callback(lambda f: self._on_deleted(namespace, f))
        logger.debug(f"Scheduled deletion of namespace {namespace}")
        return DeletionHandle(namespace, future)

    @contextmanager
    def environment(self) -> Iterator[str]:
        """Create a namespace for the duration of a with-block"""
        namespace = self.create_environment()
        try:
            yield namespace
        finally:
            self.destroy_environment(namespace)

    def ensure_pvc(self, pvc: Any) -> client.V1PersistentVolumeClaim:
        """Create a PVC (or accept an existing one) and return the server object

        Args:
            pvc: V1PersistentVolumeClaim or manifest dict; the current namespace
                is used when it names none

        Raises:
            ProvisioningError: If the claim cannot be provisioned
        """
        request = ResourceRequest.from_object(ResourceKind.PERSISTENT_VOLUME_CLAIM, pvc)
        if not request.namespace and self.namespace:
            request = replace(request, namespace=self.namespace)
        return self.provisioner.provision(request).obj

    def get_pvc(self, namespace: str, name: str) -> client.V1PersistentVolumeClaim:
        """Read a PVC once (no retries)"""
        return self.kube_client.read_pvc(namespace, name)

    def pending_deletions(self) -> int:
        with self._lock:
            return len(self._pending)

    def shutdown(self, wait: bool = True, timeout: Optional[float] = None) -> None:
        """Stop accepting deletions and drain pending ones

        Worker threads are joined when the interpreter exits, so pending
        deletions delay exit until they finish. Passing a timeout bounds the
        drain: after it expires queued deletions are dropped and running ones
        stop at their next backoff wait. A running API call or deletion poll
        is not interrupted.

        Args:
            wait: Block until pending deletions finish
            timeout: Maximum seconds to wait before giving up on pending deletions
        """
        if wait and timeout is not None:
            with self._lock:
                pending = set(self._pending)
            _, not_done = wait_futures(pending, timeout=timeout)
            if not_done:
                logger.warning(f"Abandoning {len(not_done)} pending namespace deletion(s) after {timeout}s")
                self._closing.set()
                self._executor.shutdown(wait=False, cancel_futures=True)
                return
        self._executor.shutdown(wait=wait)

    def _delete_namespace(self, namespace: str) -> None:
        def _delete() -> OperationOutcome:
            try:
                self.kube_client.delete_namespace(
                    namespace, grace_period_seconds=self.config.delete_grace_period_seconds
                )
            except ApiException as e:
                if e.status == 404:
                    logger.info(f"Namespace {namespace} was already gone")
                    return OperationOutcome.success()
                return outcome_for_error(e)
            return OperationOutcome.success()

        outcome = execute(_delete, self.policy, cancel=self._closing)
        if not outcome.is_successful:
            raise RuntimeError(
                f"deleting namespace {namespace} failed after {outcome.attempts} attempt(s): {outcome.cause}"
            ) from outcome.cause

        if self.config.wait_for_deletion:
            self.kube_client.wait_for_namespace_deleted(
                namespace,
                timeout=self.config.delete_timeout,
                poll_interval=self.config.delete_poll_interval,
            )
        logger.info(f"Deleted namespace {namespace}")

    def _on_deleted(self, namespace: str, future: Future) -> None:
        with self._lock:
            self._pending.discard(future)
        if future.cancelled():
            logger.warning(f"Deletion of namespace {namespace} was cancelled")
            return
        error = future.exception()
        if error is not None:
            logger.error(f"deleting namespace {namespace} failed: {error}")

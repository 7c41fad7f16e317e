"""Service for provisioning cluster resources"""

import logging
import threading
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

from kubeharness.domain.config.retry import RetryPolicy
from kubeharness.domain.errors import (
    ExhaustionError,
    FatalProvisioningError,
    ProvisioningCancelledError,
    ProvisioningError,
    RequestValidationError,
)
from kubeharness.domain.models.outcome import ErrorClass, OperationOutcome, OutcomeKind
from kubeharness.domain.models.resource import ProvisionedResource, ResourceKind, ResourceRequest
from kubeharness.infrastructure.classifier import classify_api_error, outcome_for_error
from kubeharness.infrastructure.kube.client import KubeClient
from kubeharness.infrastructure.retry import execute

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class KindOperations:
    """Raw create/read calls for one resource kind"""

    create: Callable[[KubeClient, ResourceRequest], Any]
    read: Callable[[KubeClient, ResourceRequest], Any]


KIND_OPERATIONS: Dict[ResourceKind, KindOperations] = {
    ResourceKind.NAMESPACE: KindOperations(
        create=lambda kube, req: kube.create_namespace(req.body),
        read=lambda kube, req: kube.read_namespace(req.name),
    ),
    ResourceKind.PERSISTENT_VOLUME_CLAIM: KindOperations(
        create=lambda kube, req: kube.create_pvc(req.namespace, req.body),
        read=lambda kube, req: kube.read_pvc(req.namespace, req.name),
    ),
}


class ResourceProvisioner:
    """Creates resources with retries and returns the server's view of them"""

    def __init__(self, kube_client: KubeClient, policy: Optional[RetryPolicy] = None):
        """Initialize provisioner

        Args:
            kube_client: Kubernetes API client
            policy: Retry policy for create calls (defaults if None)
        """
        self.kube_client = kube_client
        self.policy = policy or RetryPolicy()

    def provision(
        self, request: ResourceRequest, cancel: Optional[threading.Event] = None
    ) -> ProvisionedResource:
        """Create a resource and read it back

        An object that already exists counts as provisioned. The confirmatory
        read is never retried.

        Args:
            request: Resource to create
            cancel: Optional event that aborts an in-progress backoff wait

        Returns:
            ProvisionedResource holding the object read from the server

        Raises:
            RequestValidationError: If the request is empty or of an unsupported kind
            FatalProvisioningError: On a non-retriable create error or a failed read
            ExhaustionError: If retries ran out on transient errors
            ProvisioningCancelledError: If cancelled during a backoff wait
        """
        operations = self._operations_for(request)
        outcome = execute(self._create_operation(operations, request), self.policy, cancel, request=request)
        if not outcome.is_successful:
            raise self._error_for(request, outcome) from outcome.cause

        if outcome.kind is OutcomeKind.ALREADY_EXISTS:
            logger.info(f"{request.identity} already exists, reading it back")
        else:
            logger.info(f"Created {request.identity} after {outcome.attempts} attempt(s)")

        try:
            obj = operations.read(self.kube_client, request)
        except Exception as e:
            logger.error(f"Confirmatory read of {request.identity} failed: {e}")
            raise FatalProvisioningError(
                f"reading {request.identity} after create failed: {e}",
                outcome=outcome,
                cause=e,
                error_class=ErrorClass.FATAL,
            ) from e

        return ProvisionedResource(request=request, obj=obj, outcome=outcome)

    def _operations_for(self, request: Optional[ResourceRequest]) -> Optional[KindOperations]:
        if request is None or not isinstance(request, ResourceRequest):
            # execute() rejects it before any attempt
            return None
        operations = KIND_OPERATIONS.get(request.kind)
        if operations is None:
            raise RequestValidationError(f"unsupported resource kind: {request.kind}")
        return operations

    def _create_operation(
        self, operations: Optional[KindOperations], request: ResourceRequest
    ) -> Callable[[], OperationOutcome]:
        def _create() -> OperationOutcome:
            try:
                obj = operations.create(self.kube_client, request)
            except Exception as e:
                outcome = outcome_for_error(e)
                if outcome.kind is OutcomeKind.ALREADY_EXISTS:
                    logger.debug(f"{request.identity} already exists")
                return outcome
            return OperationOutcome.success(obj)

        return _create

    def _error_for(self, request: Any, outcome: OperationOutcome) -> ProvisioningError:
        identity = request.identity if isinstance(request, ResourceRequest) else "resource"
        cause = outcome.cause
        error_class = classify_api_error(cause) if cause is not None else None

        if outcome.kind is OutcomeKind.INVALID:
            error: ProvisioningError = RequestValidationError(str(cause), outcome=outcome, cause=cause)
        elif outcome.kind is OutcomeKind.EXHAUSTED:
            error = ExhaustionError(
                f"creating {identity} failed after {outcome.attempts} attempts: {cause}",
                outcome=outcome,
                error_class=error_class,
            )
        elif outcome.kind is OutcomeKind.CANCELLED:
            error = ProvisioningCancelledError(
                f"creating {identity} was cancelled after {outcome.attempts} attempts",
                outcome=outcome,
                error_class=error_class,
            )
        else:
            error = FatalProvisioningError(
                f"failed to create {identity} with non-retriable error: {cause}",
                outcome=outcome,
                error_class=error_class,
            )
        return error

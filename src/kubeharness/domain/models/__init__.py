"""Domain models"""

from kubeharness.domain.models.outcome import ErrorClass, OperationOutcome, OutcomeKind, RetryContext
from kubeharness.domain.models.resource import (
    ProvisionedResource,
    ResourceKind,
    ResourceRequest,
    validate_request,
)

__all__ = [
    "ErrorClass",
    "OperationOutcome",
    "OutcomeKind",
    "ProvisionedResource",
    "ResourceKind",
    "ResourceRequest",
    "RetryContext",
    "validate_request",
]

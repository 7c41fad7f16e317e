"""Resource models - what to create and what the server returned"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional

from kubeharness.domain.errors import RequestValidationError
from kubeharness.domain.models.outcome import OperationOutcome, OutcomeKind


class ResourceKind(str, Enum):
    """Kinds of cluster resources the provisioner knows how to create"""

    NAMESPACE = "Namespace"
    PERSISTENT_VOLUME_CLAIM = "PersistentVolumeClaim"

    @property
    def is_namespaced(self) -> bool:
        return self is not ResourceKind.NAMESPACE


@dataclass(frozen=True)
class ResourceRequest:
    """Immutable description of a resource to create"""

    kind: ResourceKind
    name: str
    body: Any  # kubernetes.client model or plain manifest dict
    namespace: Optional[str] = None  # None for cluster-scoped kinds

    @property
    def identity(self) -> str:
        """Human-readable identity: kind/namespace/name"""
        if self.namespace:
            return f"{self.kind.value}/{self.namespace}/{self.name}"
        return f"{self.kind.value}/{self.name}"

    @classmethod
    def from_object(cls, kind: ResourceKind, obj: Any) -> "ResourceRequest":
        """Build a request from a kubernetes model or manifest dict

        Name and namespace are taken from the object's metadata.
        """
        if isinstance(obj, dict):
            metadata = obj.get("metadata") or {}
            name = metadata.get("name")
            namespace = metadata.get("namespace")
        else:
            metadata = getattr(obj, "metadata", None)
            name = getattr(metadata, "name", None)
            namespace = getattr(metadata, "namespace", None)
        return cls(kind=kind, name=name or "", body=obj, namespace=namespace)


@dataclass(frozen=True)
class ProvisionedResource:
    """Authoritative object read back after provisioning"""

    request: ResourceRequest
    obj: Any
    outcome: OperationOutcome

    @property
    def created(self) -> bool:
        """True if this call created the object, False if it already existed"""
        return self.outcome.kind is OutcomeKind.SUCCESS


def validate_request(request: Optional[ResourceRequest]) -> None:
    """Reject requests that cannot be sent to the API server

    Raises:
        RequestValidationError: If the request is missing, empty or incomplete
    """
    if request is None:
        raise RequestValidationError("object provided to create is empty")
    if not isinstance(request, ResourceRequest):
        raise RequestValidationError(f"expected a ResourceRequest, got {type(request).__name__}")
    if not request.body:
        raise RequestValidationError(f"object provided to create {request.kind.value} is empty")
    if not request.name:
        raise RequestValidationError(f"{request.kind.value} request has no metadata.name")
    if request.kind.is_namespaced and not request.namespace:
        raise RequestValidationError(f"{request.kind.value} {request.name} has no namespace")

"""Kubernetes client configuration model."""

from typing import Optional

from pydantic import BaseModel, Field


class KubeConfig(BaseModel):
    """Configuration for the Kubernetes API client.

    Attributes:
        kubeconfig: Path to kubeconfig file (None = KUBECONFIG env or ~/.kube/config)
        context: kubeconfig context to use (None = current context)
        in_cluster: Use the pod service account instead of a kubeconfig file
        request_timeout: Per-request timeout in seconds
    """

    kubeconfig: Optional[str] = None
    context: Optional[str] = None
    in_cluster: bool = False
    request_timeout: float = Field(30.0, gt=0.0)

"""Main application configuration model."""

from pydantic import BaseModel, ConfigDict, Field

from kubeharness.domain.config.environment import EnvironmentConfig
from kubeharness.domain.config.kube import KubeConfig
from kubeharness.domain.config.retry import RetryPolicy


class AppConfig(BaseModel):
    """Main application configuration.

    This is the root configuration model that aggregates all configuration sections.
    Validation is performed at load time to fail fast on configuration errors.

    Attributes:
        kube: Kubernetes client configuration
        retry: Provisioning retry policy
        environment: Per-test namespace configuration
    """

    kube: KubeConfig = Field(default_factory=KubeConfig)
    retry: RetryPolicy = Field(default_factory=RetryPolicy)
    environment: EnvironmentConfig = Field(default_factory=EnvironmentConfig)

    model_config = ConfigDict(
        validate_assignment=True,  # Validate on attribute assignment
        extra="forbid",  # Reject unknown fields
        json_schema_extra={
            "example": {
                "kube": {
                    "kubeconfig": "~/.kube/config",
                    "context": "kind-e2e",
                    "in_cluster": False,
                    "request_timeout": 30.0,
                },
                "retry": {
                    "max_attempts": 6,
                    "initial_delay": 1.0,
                    "backoff_multiplier": 2.0,
                    "max_delay": 30.0,
                    "max_elapsed": None,
                    "jitter": 0.0,
                },
                "environment": {
                    "base_name": "csi",
                    "name_prefix": "e2e-tests",
                    "delete_grace_period_seconds": 0,
                    "wait_for_deletion": False,
                    "delete_timeout": 300.0,
                    "delete_poll_interval": 2.0,
                },
            }
        },
    )

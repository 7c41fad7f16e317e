"""Test environment configuration model."""

from pydantic import BaseModel, Field


class EnvironmentConfig(BaseModel):
    """Configuration for per-test namespaces.

    Attributes:
        base_name: Suite name embedded in generated namespace names
        name_prefix: Prefix for generated namespace names
        delete_grace_period_seconds: Grace period passed to namespace deletion
        wait_for_deletion: Poll until the namespace is gone after deleting it; off by
            default so teardown never holds a worker for delete_timeout
        delete_timeout: Maximum seconds to wait for a namespace to disappear
        delete_poll_interval: Seconds between deletion polls
    """

    base_name: str = Field("e2e", min_length=1, max_length=30, pattern=r"^[a-z0-9]([-a-z0-9]*[a-z0-9])?$")
    name_prefix: str = Field("e2e-tests", min_length=1, max_length=20)
    delete_grace_period_seconds: int = Field(0, ge=0)
    wait_for_deletion: bool = False
    delete_timeout: float = Field(300.0, gt=0.0)
    delete_poll_interval: float = Field(2.0, gt=0.0)

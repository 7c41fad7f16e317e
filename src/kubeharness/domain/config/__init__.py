"""Configuration models with Pydantic validation."""

from kubeharness.domain.config.app import AppConfig
from kubeharness.domain.config.environment import EnvironmentConfig
from kubeharness.domain.config.kube import KubeConfig
from kubeharness.domain.config.retry import RetryPolicy

__all__ = [
    "AppConfig",
    "EnvironmentConfig",
    "KubeConfig",
    "RetryPolicy",
]

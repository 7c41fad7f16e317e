"""Configuration manager for loading and validating .kubeharness.yml"""

import copy
import logging
import os
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from pydantic import ValidationError

from kubeharness.domain.config import AppConfig, EnvironmentConfig, KubeConfig, RetryPolicy

logger = logging.getLogger(__name__)

CONFIG_FILE_NAME = ".kubeharness.yml"

_TRUE_VALUES = ("1", "true", "yes", "on")


class ConfigurationError(Exception):
    """Configuration validation error."""

    pass


class ConfigManager:
    """Manages configuration from .kubeharness.yml and environment variables

    Loads configuration with validation using Pydantic models. Configuration priority:
    1. Default values (defined in Pydantic models)
    2. .kubeharness.yml file (searched from current directory upwards)
    3. Environment variables (KUBECONFIG, KUBEHARNESS_*)
    4. CLI arguments (handled by CLI layer)
    """

    def __init__(self, config_path: Optional[Path] = None):
        """Initialize config manager

        Args:
            config_path: Path to .kubeharness.yml (searches from current dir if None)

        Raises:
            ConfigurationError: If configuration validation fails
        """
        if isinstance(config_path, str):
            config_path = Path(config_path)
        self.config_path = config_path or self._find_config_file()
        try:
            self.config: AppConfig = self._load_config()
        except ValidationError as e:
            # Format validation errors for user
            errors = []
            for error in e.errors():
                field = ".".join(str(x) for x in error["loc"])
                msg = error["msg"]
                errors.append(f"  - {field}: {msg}")
            raise ConfigurationError(
                "Configuration validation failed:\n" + "\n".join(errors)
            ) from e

    def _find_config_file(self) -> Optional[Path]:
        """Find .kubeharness.yml starting from current directory

        Returns:
            Path to config file or None if not found
        """
        current = Path.cwd()
        for parent in [current] + list(current.parents):
            config_file = parent / CONFIG_FILE_NAME
            if config_file.exists():
                logger.info(f"Found config file: {config_file}")
                return config_file
        logger.debug(f"No {CONFIG_FILE_NAME} found, using defaults")
        return None

    def _load_config(self) -> AppConfig:
        """Load configuration from file and validate with Pydantic

        Returns:
            Validated AppConfig instance

        Raises:
            ValidationError: If configuration is invalid
            ConfigurationError: If the file cannot be parsed
        """
        config_dict: Dict[str, Any] = copy.deepcopy(AppConfig().model_dump())

        if self.config_path and self.config_path.exists():
            try:
                with open(self.config_path, "r", encoding="utf-8") as f:
                    file_config = yaml.safe_load(f) or {}
            except (OSError, yaml.YAMLError) as e:
                raise ConfigurationError(f"Failed to read {self.config_path}: {e}") from e
            if not isinstance(file_config, dict):
                raise ConfigurationError(f"{self.config_path} must contain a mapping at top level")
            config_dict = self._merge_config(config_dict, file_config)
            logger.info(f"Loaded configuration from {self.config_path}")

        config_dict = self._apply_env_overrides(config_dict)

        return AppConfig(**config_dict)

    def _merge_config(self, base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
        """Recursively merge configuration dictionaries

        Args:
            base: Base configuration
            override: Override configuration

        Returns:
            Merged configuration
        """
        result = base.copy()
        for key, value in override.items():
            if value is None and isinstance(result.get(key), dict):
                # An empty section ("kube:") keeps its defaults
                continue
            if key in result and isinstance(result[key], dict) and isinstance(value, dict):
                result[key] = self._merge_config(result[key], value)
            else:
                result[key] = value
        return result

    def _apply_env_overrides(self, config: Dict[str, Any]) -> Dict[str, Any]:
        """Apply environment variable overrides

        Args:
            config: Configuration dictionary

        Returns:
            Configuration with env overrides applied
        """
        if os.getenv("KUBECONFIG"):
            # KUBECONFIG may hold a path list; the first entry wins
            config["kube"]["kubeconfig"] = os.getenv("KUBECONFIG").split(os.pathsep)[0]

        if os.getenv("KUBEHARNESS_CONTEXT"):
            config["kube"]["context"] = os.getenv("KUBEHARNESS_CONTEXT")

        if os.getenv("KUBEHARNESS_IN_CLUSTER"):
            config["kube"]["in_cluster"] = os.getenv("KUBEHARNESS_IN_CLUSTER").lower() in _TRUE_VALUES

        if os.getenv("KUBEHARNESS_BASE_NAME"):
            config["environment"]["base_name"] = os.getenv("KUBEHARNESS_BASE_NAME")

        return config

    def get_kube_config(self) -> KubeConfig:
        """Get Kubernetes client configuration

        Returns:
            Kubernetes configuration model
        """
        return self.config.kube

    def get_retry_policy(self) -> RetryPolicy:
        """Get provisioning retry policy

        Returns:
            Retry policy model
        """
        return self.config.retry

    def get_environment_config(self) -> EnvironmentConfig:
        return self.config.environment

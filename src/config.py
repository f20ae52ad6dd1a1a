"""
Configuration management for stack deployment.

Settings are resolved from built-in defaults, an optional YAML file, the
standard AWS environment variables, and finally explicit overrides.
"""

import os
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import boto3
import yaml

from errors import ConfigError

DEFAULT_CONFIG_FILE = "stack-deploy.yaml"


@dataclass
class DeployConfig:
    """Settings for one deployment run."""

    # AWS session
    region: str = "us-east-1"
    profile: Optional[str] = None

    # Template parameters
    artifact_location_parameter: str = "LambdaBucket"
    capabilities: List[str] = field(
        default_factory=lambda: ["CAPABILITY_NAMED_IAM", "CAPABILITY_AUTO_EXPAND"]
    )

    # Event tailing (seconds)
    poll_interval: float = 5.0
    error_backoff: float = 5.0
    event_lookback: float = 20.0

    # Terminal-state wait
    wait_delay: float = 15.0
    wait_max_attempts: int = 240

    # Artifact store
    version_page_size: int = 100
    bucket_region: Optional[str] = None

    def __post_init__(self) -> None:
        for name in ("poll_interval", "error_backoff", "wait_delay"):
            if getattr(self, name) <= 0:
                raise ConfigError("configure", name, "must be a positive number")
        if self.event_lookback < 0:
            raise ConfigError("configure", "event_lookback", "must not be negative")
        for name in ("wait_max_attempts", "version_page_size"):
            if int(getattr(self, name)) < 1:
                raise ConfigError("configure", name, "must be at least 1")
        if not self.artifact_location_parameter:
            raise ConfigError(
                "configure", "artifact_location_parameter", "must not be empty"
            )

    @property
    def artifact_bucket_region(self) -> str:
        """Region used when creating a new artifact bucket."""
        return self.bucket_region or self.region

    def create_session(self) -> boto3.Session:
        """Create AWS session with appropriate credentials."""
        session_args = {"region_name": self.region}
        if self.profile:
            session_args["profile_name"] = self.profile
        return boto3.Session(**session_args)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DeployConfig":
        """Create config from dictionary, rejecting unknown keys."""
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise ConfigError(
                "configure", "deployment", f"unknown settings: {', '.join(unknown)}"
            )
        try:
            return cls(**data)
        except (TypeError, ValueError) as e:
            raise ConfigError("configure", "deployment", e) from e


class ConfigManager:
    """Resolves the deployment configuration from its sources."""

    ENV_VARS = {
        "AWS_DEFAULT_REGION": "region",
        "AWS_REGION": "region",
        "AWS_PROFILE": "profile",
    }

    def __init__(self, config_file: Optional[Union[str, Path]] = None):
        """Initialize config manager.

        Args:
            config_file: Explicit YAML file. Without one, stack-deploy.yaml in
                the working directory is used if it exists.
        """
        self.config_file = Path(config_file) if config_file else None

    def _find_config_file(self) -> Optional[Path]:
        if self.config_file:
            if not self.config_file.exists():
                raise ConfigError(
                    "read", f"config file {self.config_file}", "file not found"
                )
            return self.config_file

        default = Path.cwd() / DEFAULT_CONFIG_FILE
        return default if default.exists() else None

    def _load_file(self) -> Dict[str, Any]:
        config_file = self._find_config_file()
        if config_file is None:
            return {}

        try:
            with open(config_file, 'r') as f:
                data = yaml.safe_load(f)
        except (OSError, yaml.YAMLError) as e:
            raise ConfigError("read", f"config file {config_file}", e) from e

        if data is None:
            return {}
        if not isinstance(data, dict):
            raise ConfigError(
                "read", f"config file {config_file}", "expected a mapping of settings"
            )
        return data

    def _load_env(self) -> Dict[str, Any]:
        # AWS_REGION takes precedence over AWS_DEFAULT_REGION
        data: Dict[str, Any] = {}
        for var, key in self.ENV_VARS.items():
            value = os.environ.get(var)
            if value:
                data[key] = value
        return data

    def load(self, **overrides: Any) -> DeployConfig:
        """Merge defaults, file, environment and non-None overrides."""
        merged: Dict[str, Any] = {}
        merged.update(self._load_file())
        merged.update(self._load_env())
        merged.update({k: v for k, v in overrides.items() if v is not None})
        return DeployConfig.from_dict(merged)


def get_deploy_config(
    config_file: Optional[Union[str, Path]] = None, **overrides: Any
) -> DeployConfig:
    """Get the deployment configuration for this run."""
    return ConfigManager(config_file).load(**overrides)

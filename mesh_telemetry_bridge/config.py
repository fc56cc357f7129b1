"""
Configuration for the telemetry bridge.

Values come from an optional YAML file and the environment. Environment
variables take precedence so container deployments can override a baked-in
file.
"""

import os
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

import yaml
from pydantic import BaseModel, Field, ValidationError

from mesh_telemetry_bridge.exceptions import ConfigurationError

# Environment variable -> config field
ENV_FIELDS = {
    "NATS_URL": "nats_url",
    "NATS_SEED": "nats_seed",
    "VM_URL": "vm_url",
    "POLL_INTERVAL_MS": "poll_interval_ms",
    "INITIAL_POLL_DELAY_MS": "initial_poll_delay_ms",
    "TELEMETRY_SUBJECT": "subject",
    "TELEMETRY_BUCKET": "kv_bucket",
    "EXPORT_TIMEOUT_SECONDS": "export_timeout_seconds",
}


class BridgeConfig(BaseModel):
    """Runtime settings for the bridge."""

    nats_url: str = Field("nats://nats:4222", min_length=1)
    nats_seed: str = Field("", repr=False, description="NKey seed for NATS auth")
    vm_url: str = Field("http://victoriametrics:8428", min_length=1)
    poll_interval_ms: int = Field(30000, gt=0)
    initial_poll_delay_ms: int = Field(5000, ge=0)
    subject: str = Field("mesh.telemetry.*", min_length=1)
    kv_bucket: str = Field("MESH-TELEMETRY", min_length=1)
    export_timeout_seconds: float = Field(10.0, gt=0)

    @property
    def poll_interval_seconds(self) -> float:
        return self.poll_interval_ms / 1000

    @property
    def initial_poll_delay_seconds(self) -> float:
        return self.initial_poll_delay_ms / 1000

    @classmethod
    def from_env(
        cls,
        environ: Optional[Mapping[str, str]] = None,
        base: Optional[Dict[str, Any]] = None,
    ) -> "BridgeConfig":
        """
        Build config from environment variables.

        Args:
            environ: Environment mapping (defaults to os.environ)
            base: Values to start from before applying the environment
        """
        environ = os.environ if environ is None else environ
        values: Dict[str, Any] = dict(base or {})
        for env_name, field_name in ENV_FIELDS.items():
            if env_name in environ:
                values[field_name] = environ[env_name]

        try:
            return cls(**values)
        except ValidationError as e:
            raise ConfigurationError(f"Invalid configuration: {e}") from e

    @classmethod
    def from_file(
        cls, path: str, environ: Optional[Mapping[str, str]] = None
    ) -> "BridgeConfig":
        """Load config from a YAML file, then apply environment overrides."""
        config_path = Path(path)
        try:
            with open(config_path) as f:
                data = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            raise ConfigurationError(f"Cannot read {config_path}: {e}") from e

        if not isinstance(data, dict):
            raise ConfigurationError(f"{config_path} must contain a mapping")
        return cls.from_env(environ, base=data)

    def validate_for_startup(self) -> None:
        """Check values that are only required when actually connecting."""
        if not self.nats_seed.strip():
            raise ConfigurationError("NATS_SEED required")

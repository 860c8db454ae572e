"""Scaler configuration management."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from kube_scaler.core.exceptions import ConfigurationError
from kube_scaler.core.models import ResourceKind, ScaleRequest, parse_replica_count
from kube_scaler.core.retry import RetryPolicy

DEFAULT_TOKEN_PATH = "/var/run/secrets/kubernetes.io/serviceaccount/token"
LOG_LEVELS = ("CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG")


class RetryPolicyConfig(BaseModel):
    """Timing of the three scaling phases, in seconds."""
    
    discovery_timeout: float = Field(default=180.0, gt=0, description="How long to wait for the resource to appear")
    discovery_interval: float = Field(default=10.0, ge=0, description="Delay between discovery attempts")
    scale_timeout: float = Field(default=60.0, gt=0, description="How long to keep retrying the scale command")
    scale_interval: float = Field(default=10.0, ge=0, description="Delay between scale attempts")
    confirm_attempts: int = Field(default=5, ge=1, description="Replica count reads before giving up")
    confirm_interval: float = Field(default=1.0, ge=0, description="Delay between replica count reads")
    
    def discovery_policy(self) -> RetryPolicy:
        return RetryPolicy(interval=self.discovery_interval, timeout=self.discovery_timeout)
    
    def scale_policy(self) -> RetryPolicy:
        return RetryPolicy(interval=self.scale_interval, timeout=self.scale_timeout)
    
    def confirm_policy(self) -> RetryPolicy:
        return RetryPolicy(interval=self.confirm_interval, max_attempts=self.confirm_attempts)


class ClusterConfig(BaseModel):
    """How to talk to the cluster."""
    
    resource_kind: ResourceKind = Field(
        default=ResourceKind.REPLICATION_CONTROLLER,
        description="Kind of resource to discover and scale",
    )
    verify_ssl: bool = Field(default=False, description="Verify the API server certificate")
    ca_cert_path: Optional[str] = Field(default=None, description="CA bundle for the API server")
    runner: str = Field(default="api", description="Scale command runner: api or binary")
    binary_path: str = Field(default="oc", description="CLI binary used by the binary runner")
    token_path: str = Field(default=DEFAULT_TOKEN_PATH, description="Service account token file")
    
    @field_validator("runner")
    @classmethod
    def check_runner(cls, value: str) -> str:
        if value not in ("api", "binary"):
            raise ValueError("runner must be 'api' or 'binary'")
        return value


class ScalerConfig(BaseSettings):
    """Configuration of one scale step."""
    
    model_config = SettingsConfigDict(
        env_prefix="KUBE_SCALER_",
        env_nested_delimiter="__",
        case_sensitive=False,
    )
    
    api_url: str = Field(
        default="https://openshift.default.svc.cluster.local",
        description="Cluster API endpoint",
    )
    deployment: str = Field(default="frontend", description="Deployment name prefix")
    namespace: str = Field(default="test", description="Namespace of the deployment")
    replica_count: str = Field(default="0", description="Requested replica count")
    auth_token: str = Field(default="", description="Bearer token; derived when empty")
    
    # Sub-configurations
    cluster: ClusterConfig = Field(default_factory=ClusterConfig)
    retry: RetryPolicyConfig = Field(default_factory=RetryPolicyConfig)
    
    # Logging
    log_level: str = Field(default="INFO", description="Logging level")
    
    @field_validator("replica_count", mode="before")
    @classmethod
    def coerce_replica_count(cls, value: Any) -> Any:
        # YAML and env overrides may hand us a bare integer
        if isinstance(value, int):
            return str(value)
        return value
    
    @field_validator("log_level")
    @classmethod
    def check_log_level(cls, value: str) -> str:
        level = value.upper()
        if level not in LOG_LEVELS:
            raise ValueError(f"log_level must be one of {', '.join(LOG_LEVELS)}")
        return level
    
    def validate_fields(self) -> Dict[str, str]:
        """Check the step fields.
        
        Returns:
            Mapping of field name to error message; empty when valid.
        """
        errors: Dict[str, str] = {}
        
        if not self.api_url:
            errors["api_url"] = "Please set apiURL"
        if not self.deployment:
            errors["deployment"] = "Please set depCfg"
        if not self.namespace:
            errors["namespace"] = "Please set nameSpace"
        
        if not self.replica_count:
            errors["replica_count"] = "Please set replicaCount"
        else:
            try:
                count = parse_replica_count(self.replica_count)
            except ValueError:
                errors["replica_count"] = "Please specify an integer for replicaCount"
            else:
                if count < 0:
                    errors["replica_count"] = "Please specify a non-negative replicaCount"
        
        return errors
    
    def to_request(self) -> ScaleRequest:
        """Build the immutable request for one run.
        
        Raises:
            ConfigurationError: If any field fails validation.
        """
        errors = self.validate_fields()
        if errors:
            raise ConfigurationError(errors)
        
        return ScaleRequest(
            api_endpoint=self.api_url,
            namespace=self.namespace,
            deployment_prefix=self.deployment,
            target_replica_count=parse_replica_count(self.replica_count),
            auth_token=self.auth_token,
            kind=self.cluster.resource_kind,
        )
    
    @classmethod
    def from_yaml(cls, path: str | Path, **overrides: Any) -> "ScalerConfig":
        """Load configuration from a YAML file."""
        with open(path, "r") as f:
            data = yaml.safe_load(f) or {}
        return cls(**_merge(data, overrides))
    
    @classmethod
    def from_env(cls, **overrides: Any) -> "ScalerConfig":
        """Load configuration from environment variables."""
        return cls(**overrides)
    
    def to_yaml(self, path: str | Path) -> None:
        """Save configuration to a YAML file."""
        with open(path, "w") as f:
            yaml.safe_dump(self.model_dump(mode="json"), f, default_flow_style=False)


def _merge(base: Dict[str, Any], overrides: Dict[str, Any]) -> Dict[str, Any]:
    """Overlay overrides onto base, merging nested sections."""
    merged = dict(base)
    for key, value in overrides.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def load_config(
    config_path: Optional[str] = None,
    use_env: bool = True,
    **overrides: Any,
) -> ScalerConfig:
    """Load scaler configuration.
    
    Priority order:
    1. Explicitly passed config_path
    2. KUBE_SCALER_CONFIG_PATH environment variable
    3. Default paths: ./config/scaler.yaml, ./scaler.yaml
    4. Environment variables only (pydantic-settings)
    
    Args:
        config_path: Optional path to YAML configuration file.
        use_env: Whether to load from environment variables.
        overrides: Field values that take precedence over every source.
        
    Returns:
        ScalerConfig instance.
        
    Raises:
        FileNotFoundError: If an explicit config_path does not exist.
    """
    if config_path:
        if not Path(config_path).exists():
            raise FileNotFoundError(f"Config file not found: {config_path}")
        return ScalerConfig.from_yaml(config_path, **overrides)
    
    env_config_path = os.environ.get("KUBE_SCALER_CONFIG_PATH")
    if env_config_path and Path(env_config_path).exists():
        return ScalerConfig.from_yaml(env_config_path, **overrides)
    
    default_paths = [
        "./config/scaler.yaml",
        "./scaler.yaml",
    ]
    
    for default_path in default_paths:
        if Path(default_path).exists():
            return ScalerConfig.from_yaml(default_path, **overrides)
    
    if use_env:
        return ScalerConfig.from_env(**overrides)
    
    return ScalerConfig(**overrides)

"""
Centralized configuration for apiavailability.

Uses Pydantic BaseSettings for environment variable integration
and validation. All configurable values should be defined here.

Configuration sources (in order of precedence):
1. Explicit constructor arguments
2. Environment variables (APIAVAILABILITY_*)
3. .env file
4. Default values

Example:
    from apiavailability.config import get_config

    config = get_config()
    print(config.resync_interval_seconds)  # From APIAVAILABILITY_RESYNC_INTERVAL_SECONDS

    # Override at runtime
    config = get_config(workers=2)
"""

from __future__ import annotations

import os
from typing import Literal, Optional

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from apiavailability.contracts.timeouts import (
    DEFAULT_WORKERS,
    DISCOVERY_PROBE_ATTEMPTS,
    DISCOVERY_PROBE_TIMEOUT_S,
    OTEL_METRICS_EXPORT_INTERVAL_MS,
    QUEUE_BACKOFF_BASE_DELAY_S,
    QUEUE_BACKOFF_MAX_DELAY_S,
    RESYNC_INTERVAL_S,
)


class AvailabilityConfig(BaseSettings):
    """
    Central configuration for the availability controller.

    All settings can be overridden via environment variables
    prefixed with APIAVAILABILITY_.

    Example:
        export APIAVAILABILITY_WORKERS=2
        export APIAVAILABILITY_PROBE_TIMEOUT_SECONDS=1.5
    """

    model_config = SettingsConfigDict(
        env_prefix="APIAVAILABILITY_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Service identification
    service_name: str = Field(
        default="apiavailability",
        description="Service name for telemetry and log attribution",
    )

    # Controller
    workers: int = Field(
        default=DEFAULT_WORKERS,
        ge=1,
        description="Number of concurrent reconciliation workers",
    )
    resync_interval_seconds: float = Field(
        default=RESYNC_INTERVAL_S,
        gt=0,
        description="Interval at which every APIService is re-checked",
    )

    # Discovery probe
    probe_timeout_seconds: float = Field(
        default=DISCOVERY_PROBE_TIMEOUT_S,
        gt=0,
        description="Timeout for a single discovery request",
    )
    probe_attempts: int = Field(
        default=DISCOVERY_PROBE_ATTEMPTS,
        ge=1,
        description="Concurrent discovery attempts per check",
    )
    verify_tls: bool = Field(
        default=False,
        description="Verify backend serving certificates during the probe",
    )

    # Work queue backoff
    backoff_base_delay_seconds: float = Field(
        default=QUEUE_BACKOFF_BASE_DELAY_S,
        gt=0,
        description="Retry delay after the first failure",
    )
    backoff_max_delay_seconds: float = Field(
        default=QUEUE_BACKOFF_MAX_DELAY_S,
        gt=0,
        description="Maximum retry delay",
    )

    # Kubernetes
    kubeconfig: Optional[str] = Field(
        default=None,
        description="Path to kubeconfig file (auto-detected if not set)",
    )

    # Status storage backend
    store_type: Literal["auto", "kubernetes", "memory"] = Field(
        default="auto",
        description="Status store backend (auto-detects if not set)",
    )

    # OTLP metrics export
    otlp_endpoint: str = Field(
        default="localhost:4317",
        description="OTLP gRPC endpoint for metric export",
    )
    otlp_insecure: bool = Field(
        default=True,
        description="Use insecure connection to OTLP endpoint",
    )
    metrics_export_interval_ms: int = Field(
        default=OTEL_METRICS_EXPORT_INTERVAL_MS,
        ge=1000,
        description="Metric export interval",
    )

    # Logging
    log_level: Literal["debug", "info", "warning", "error"] = Field(
        default="info",
        description="Logging level",
    )
    log_format: Literal["json", "text"] = Field(
        default="json",
        description="Log output format (json for Loki, text for console)",
    )

    @field_validator("kubeconfig")
    @classmethod
    def expand_path(cls, v: Optional[str]) -> Optional[str]:
        """Expand ~ and environment variables in paths."""
        if v is None:
            return v
        return os.path.expanduser(os.path.expandvars(v))

    @field_validator("otlp_endpoint")
    @classmethod
    def validate_endpoint(cls, v: str) -> str:
        """Validate OTLP endpoint format."""
        # Remove protocol prefix if present (SDK adds it)
        if v.startswith("http://"):
            v = v[7:]
        elif v.startswith("https://"):
            v = v[8:]
        return v

    @model_validator(mode="after")
    def check_backoff_bounds(self) -> "AvailabilityConfig":
        if self.backoff_max_delay_seconds < self.backoff_base_delay_seconds:
            raise ValueError(
                "backoff_max_delay_seconds must be >= backoff_base_delay_seconds"
            )
        return self


# Global singleton
_config: Optional[AvailabilityConfig] = None


def get_config(**overrides) -> AvailabilityConfig:
    """
    Get the global configuration instance.

    Creates a singleton on first call. Subsequent calls return
    the same instance unless overrides are provided.

    Args:
        **overrides: Override any config values

    Returns:
        AvailabilityConfig instance
    """
    global _config

    if overrides or _config is None:
        _config = AvailabilityConfig(**overrides)

    return _config


def reset_config() -> None:
    """Reset the global configuration (for testing)."""
    global _config
    _config = None


def is_kubernetes_available() -> bool:
    """Check if Kubernetes is available."""
    config = get_config()

    # Check explicit kubeconfig
    if config.kubeconfig:
        return os.path.exists(config.kubeconfig)

    # Check in-cluster
    if os.path.exists("/var/run/secrets/kubernetes.io/serviceaccount"):
        return True

    # Check KUBECONFIG env
    if os.environ.get("KUBECONFIG"):
        return os.path.exists(os.environ["KUBECONFIG"])

    # Check default kubeconfig
    return os.path.exists(os.path.expanduser("~/.kube/config"))

"""
Shared configuration management for the RBAC decision core.
"""

from typing import Any, Optional

from pydantic import Field, ValidationError as PydanticValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict

from .errors import ConfigurationError


class BaseConfig(BaseSettings):
    """Base configuration class with common settings."""

    model_config = SettingsConfigDict(
        env_prefix="RBAC_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore"
    )

    # Environment
    env: str = Field(default="local")
    service_name: str = Field(default="rbac")
    log_level: str = Field(default="info")
    log_json: bool = Field(default=True)
    enable_debug_logging: bool = Field(default=False)

    @property
    def effective_log_level(self) -> str:
        """Log level after applying the debug switch."""
        return "debug" if self.enable_debug_logging else self.log_level


class RbacConfig(BaseConfig):
    """Decision core configuration."""

    # Evaluation
    enable_role_hierarchy: bool = Field(default=True)
    strict_mode: bool = Field(default=False)
    default_tenant_id: Optional[str] = Field(default=None)

    # Decision cache
    enable_caching: bool = Field(default=True)
    cache_timeout_seconds: float = Field(default=300.0, ge=0)
    max_cache_size: int = Field(default=1000, gt=0)

    # Audit trail
    max_audit_log_size: int = Field(default=10000, gt=0)

    # Maintenance
    cleanup_interval_seconds: float = Field(default=300.0, gt=0)
    audit_trim_interval_seconds: float = Field(default=600.0, gt=0)


def get_config(**overrides: Any) -> RbacConfig:
    """Load configuration from the environment, applying explicit overrides."""
    try:
        return RbacConfig(**overrides)
    except PydanticValidationError as e:
        raise ConfigurationError(
            "Invalid RBAC configuration",
            details={"errors": [
                {"field": ".".join(str(p) for p in err["loc"]), "message": err["msg"]}
                for err in e.errors()
            ]}
        ) from e


def merge_config(config: RbacConfig, **overrides: Any) -> RbacConfig:
    """Return a validated copy of ``config`` with ``overrides`` applied."""
    values = config.model_dump()
    values.update(overrides)
    return get_config(**values)

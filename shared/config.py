"""
Shared configuration management for Route Guardian.
"""

from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class BaseConfig(BaseSettings):
    """Base configuration class with common settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="GUARDIAN_",
        case_sensitive=False,
        extra="allow"
    )

    # Environment
    env: str = Field(default="local")
    log_level: str = Field(default="info")

    # Rule sources
    access_file: str = Field(default="access.json")
    api_keys_file: str = Field(default="apikeys.json")

    # Guarding
    guarded_path: str = Field(default="/api")
    guard_management: bool = Field(default=True)
    anonymous_subject: str = Field(default="ANONYMOUS")

    # JWT bearer tokens
    jwt_secret: Optional[str] = Field(default=None)
    jwt_issuer: Optional[str] = Field(default=None)
    jwt_audience: Optional[str] = Field(default=None)
    jwt_algorithm: str = Field(default="HS256")
    jwt_role_claim: str = Field(default="rol")


class ServiceConfig(BaseConfig):
    """Service-specific configuration."""

    service_name: str
    port: int
    host: str = "0.0.0.0"

    def __init__(self, service_name: str, port: int, **kwargs):
        super().__init__(service_name=service_name, port=port, **kwargs)


def get_config(service_name: str, port: int, **overrides) -> ServiceConfig:
    """Get configuration for a specific service."""
    return ServiceConfig(service_name=service_name, port=port, **overrides)

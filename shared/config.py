"""
Shared configuration management for the Dashboard BFF.
"""

from typing import Dict, List, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class BaseConfig(BaseSettings):
    """Base configuration class with common settings."""

    model_config = SettingsConfigDict(
        env_prefix="BFF_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )

    # Environment
    env: str = Field(default="local")
    log_level: str = Field(default="info")
    cors_origins: List[str] = Field(default_factory=lambda: ["http://localhost:5173"])

    # Upstream providers
    coingecko_base_url: str = Field(default="https://api.coingecko.com/api/v3")
    coingecko_api_key: Optional[str] = Field(default=None)
    nasa_base_url: str = Field(default="https://api.nasa.gov")
    nasa_api_key: str = Field(default="DEMO_KEY")
    upstream_timeout_seconds: float = Field(default=5.0, gt=0)
    circuit_failure_threshold: int = Field(default=5, ge=1)
    circuit_recovery_seconds: float = Field(default=30.0, gt=0)

    # Captcha + sessions
    captcha_verify_url: str = Field(default="https://www.google.com/recaptcha/api/siteverify")
    captcha_secret: str = Field(default="")
    captcha_timeout_seconds: float = Field(default=5.0, gt=0)
    session_ttl_seconds: int = Field(default=900, ge=1)
    session_cookie_name: str = Field(default="session")

    # Rate limiting
    rate_limit_window_seconds: int = Field(default=60, ge=1)
    rate_limit_max_requests: int = Field(default=30, ge=1)

    # Caching
    cache_ttl_crypto_seconds: int = Field(default=60, ge=1)
    cache_ttl_mars_seconds: int = Field(default=1800, ge=1)
    cache_ttl_tech_seconds: int = Field(default=3600, ge=1)
    cache_max_entries: int = Field(default=512, ge=1)
    sweep_interval_seconds: float = Field(default=60.0, gt=0)

    # Fallback data
    fallback_data_path: Optional[str] = Field(default=None)

    def cache_ttls(self) -> Dict[str, int]:
        """Per-domain cache TTLs keyed by domain name."""
        return {
            "crypto": self.cache_ttl_crypto_seconds,
            "mars": self.cache_ttl_mars_seconds,
            "tech": self.cache_ttl_tech_seconds,
        }


class ServiceConfig(BaseConfig):
    """Service-specific configuration."""

    service_name: str = "bff"
    port: int = 3001
    host: str = "0.0.0.0"


def get_config(service_name: str, port: Optional[int] = None, **overrides) -> ServiceConfig:
    """Get configuration for a specific service.

    An explicit ``port`` wins over ``BFF_PORT``; keyword overrides win over
    the environment.
    """
    if port is not None:
        overrides["port"] = port
    return ServiceConfig(service_name=service_name, **overrides)

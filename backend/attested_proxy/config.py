"""
Configuration Management Module

Configures application parameters via environment variables or .env file.
"""

from functools import lru_cache
from typing import Literal, Optional
from urllib.parse import urljoin

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from attested_proxy.common.time import seconds_to_ms


class Settings(BaseSettings):
    """
    Application Configuration Class

    All configuration items can be overridden by environment variables, with names matching fields (uppercase).
    """

    # Application Config
    APP_NAME: str = "Attested Proxy"
    DEBUG: bool = False

    # Server Config
    HOST: str = "0.0.0.0"
    PORT: int = Field(default=3000, ge=1, le=65535)

    # Upstream Config
    # Base URL exposed by the secure transport; inbound paths are resolved against it
    UPSTREAM_BASE_URL: str = "https://localhost:8443/v1"
    # Where the verification document is served, relative to the base URL origin
    ATTESTATION_PATH: str = "/.well-known/attestation"
    # Injected as "Authorization: Bearer <key>" when the client sends none.
    # Optional: without it requests are forwarded unauthenticated.
    UPSTREAM_API_KEY: Optional[str] = None

    # Session Reset Config
    # Re-verification cadence (seconds)
    RESET_INTERVAL_SECONDS: int = Field(default=3600, gt=0)
    # "background": APScheduler job; "request": checked on each proxied request
    RESET_MODE: Literal["background", "request"] = "background"

    # HTTP Client Config
    # Request timeout (seconds)
    HTTP_TIMEOUT: int = 1800
    # Verify upstream TLS certificates
    TLS_VERIFY: bool = True

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    @field_validator("UPSTREAM_API_KEY")
    @classmethod
    def blank_api_key_is_absent(cls, v: Optional[str]) -> Optional[str]:
        if v is None or not v.strip():
            return None
        return v.strip()

    @field_validator("ATTESTATION_PATH")
    @classmethod
    def validate_attestation_path(cls, v: str) -> str:
        if not v.startswith("/"):
            raise ValueError("ATTESTATION_PATH must start with '/'")
        return v

    @property
    def reset_interval_ms(self) -> int:
        return seconds_to_ms(self.RESET_INTERVAL_SECONDS)

    @property
    def attestation_url(self) -> str:
        """Verification document URL on the upstream origin."""
        return urljoin(self.UPSTREAM_BASE_URL, self.ATTESTATION_PATH)


@lru_cache()
def get_settings() -> Settings:
    """
    Get application configuration (Singleton)

    Uses lru_cache to ensure configuration is loaded only once.

    Returns:
        Settings: Application configuration instance
    """
    return Settings()

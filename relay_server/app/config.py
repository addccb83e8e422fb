"""
Configuration module for the Relay Server.

This module uses Pydantic Settings to load and validate environment variables
for the upstream target, header policy and outbound transport limits.

Environment variables are loaded from .env file or system environment.
"""

from enum import Enum
from functools import lru_cache
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)

# Headers that can disclose the original caller's network path.
IDENTITY_HEADERS = frozenset(
    {
        "x-forwarded-for",
        "x-real-ip",
        "x-client-ip",
        "x-forwarded",
        "forwarded-for",
        "forwarded",
        "via",
    }
)


class HeaderMode(str, Enum):
    """Outbound header policy, one per deployment."""

    SYNTHETIC = "synthetic"
    TRANSPARENT = "transparent"


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    TARGET_URL is optional so the process can start (and answer /health)
    while unconfigured; every relay call then fails with a diagnostic.
    """

    # =========================================================================
    # Server Configuration
    # =========================================================================

    HOST: str = Field(
        default="0.0.0.0",
        description="Host to bind the relay server",
    )

    PORT: int = Field(
        default=3000,
        description="Port to bind the relay server",
        ge=1,
        le=65535,
    )

    LOG_LEVEL: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)",
    )

    # =========================================================================
    # Upstream Configuration
    # =========================================================================

    TARGET_URL: Optional[str] = Field(
        None,
        description="Third-party API base URL (e.g., https://www.tokocrypto.com)",
    )

    HEADER_MODE: HeaderMode = Field(
        default=HeaderMode.SYNTHETIC,
        description="Outbound header policy: 'synthetic' or 'transparent'",
    )

    API_KEY_HEADER: str = Field(
        default="X-MBX-APIKEY",
        description="Credential header copied to the upstream in synthetic mode",
        min_length=1,
    )

    USER_AGENT: str = Field(
        default=DEFAULT_USER_AGENT,
        description="Browser-like User-Agent presented to the upstream",
    )

    UPSTREAM_TIMEOUT_SECONDS: float = Field(
        default=30.0,
        description="Overall deadline for a single upstream call",
        gt=0,
        le=300,
    )

    MAX_REDIRECTS: int = Field(
        default=5,
        description="Maximum redirect hops followed on the upstream call",
        ge=0,
        le=20,
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    # =========================================================================
    # Validators
    # =========================================================================

    @field_validator("TARGET_URL")
    @classmethod
    def validate_target_url(cls, v: Optional[str]) -> Optional[str]:
        """
        Normalize the upstream base URL.

        Blank values are treated as unset. The trailing slash is dropped so the
        inbound path can be appended verbatim.

        Raises:
            ValueError: If the URL is not http(s)
        """
        if v is None:
            return None

        v = v.strip()
        if not v:
            return None

        if not v.lower().startswith(("http://", "https://")):
            raise ValueError(
                f"TARGET_URL must start with http:// or https://, got: {v}"
            )

        return v.rstrip("/")

    @field_validator("API_KEY_HEADER")
    @classmethod
    def validate_api_key_header(cls, v: str) -> str:
        v = v.strip()
        if v.lower() in IDENTITY_HEADERS:
            raise ValueError(
                f"API_KEY_HEADER cannot be an identity-revealing header: {v}"
            )
        return v

    @field_validator("LOG_LEVEL")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        allowed_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]

        if v.upper() not in allowed_levels:
            raise ValueError(
                f"LOG_LEVEL must be one of {allowed_levels}, got: {v}"
            )

        return v.upper()


# =============================================================================
# Settings Singleton
# =============================================================================

@lru_cache()
def get_settings() -> Settings:
    """
    Get or create a singleton Settings instance.

    This function is cached so that the settings are loaded only once
    during the application lifecycle.

    Returns:
        Settings instance with all configuration loaded and validated.

    Raises:
        ValidationError: If environment variables are invalid.
    """
    return Settings()


# =============================================================================
# Configuration Helpers
# =============================================================================

def validate_configuration(settings: Settings) -> dict:
    """
    Validate critical configuration settings and return a status report.

    Called during application startup so a missing TARGET_URL is visible in
    the logs before the first relay call fails.

    Returns:
        Dictionary with validation status and any warnings.

    Example:
        >>> status = validate_configuration(get_settings())
        >>> if not status["valid"]:
        ...     print(status["errors"])
    """
    errors = []
    warnings = []

    if not settings.TARGET_URL:
        errors.append("TARGET_URL is not set; every relay call will fail")
    elif settings.TARGET_URL.lower().startswith("http://"):
        warnings.append("TARGET_URL uses plain http")

    if settings.HEADER_MODE is HeaderMode.TRANSPARENT:
        warnings.append(
            "HEADER_MODE is transparent; caller headers other than "
            "identity headers reach the upstream"
        )

    return {
        "valid": len(errors) == 0,
        "errors": errors,
        "warnings": warnings,
        "header_mode": settings.HEADER_MODE.value,
        "target_url": settings.TARGET_URL,
    }

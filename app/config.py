"""
meetgate Application Configuration
==================================

PURPOSE:
    Pydantic-Settings based configuration for the meetgate gateway.
    All settings can be overridden via environment variables (MEETGATE_ prefix)
    or a local ``.env`` file.

    Settings are read once at startup and handed to the services that need
    them (crypto, key store, dispatcher). Services never reach back into the
    environment mid-request.
"""

import logging
from typing import List, Literal, Optional

from pydantic_settings import BaseSettings, SettingsConfigDict

from app.core.errors import ConfigurationError

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    """Gateway settings."""

    model_config = SettingsConfigDict(env_file=".env", env_prefix="MEETGATE_", extra="ignore")

    app_name: str = "meetgate"
    debug: bool = False

    # "development" surfaces internal exception details in error bodies.
    environment: Literal["development", "production"] = "production"

    # Process-wide secret for credential encryption at rest. REQUIRED.
    encryption_key: Optional[str] = None
    # Previous secret, kept only during a rotation window (dual-decrypt).
    previous_encryption_key: Optional[str] = None
    # Pepper for API key / session token hashing. Derived from encryption_key when unset.
    apikey_hmac_secret: Optional[str] = None

    # Datastore
    data_directory: str = "data"
    database_url: Optional[str] = None

    # Protocol
    protocol_version: str = "2.0"
    setup_url: str = "/dashboard/google-setup"

    # Analytics
    analytics_window_days: int = 7
    recent_requests_limit: int = 50
    log_retention_days: int = 30

    # Sessions issued by the identity provider integration
    session_ttl_hours: int = 24 * 7
    session_cookie_name: str = "session_token"

    # Tool executor (third-party calendar/meeting calls)
    tool_executor_url: Optional[str] = None
    tool_executor_timeout_s: float = 30.0

    # Best-effort API key usage updates
    usage_update_workers: int = 4

    # Logging
    log_directory: str = "logs"
    log_file: str = "meetgate.jsonl"

    # CORS - all origins, explicit header allow-list
    cors_allow_methods: List[str] = ["GET", "OPTIONS", "PATCH", "DELETE", "POST", "PUT"]
    cors_allow_headers: List[str] = [
        "X-CSRF-Token",
        "X-Requested-With",
        "Accept",
        "Accept-Version",
        "Content-Length",
        "Content-MD5",
        "Content-Type",
        "Date",
        "X-Api-Version",
        "X-API-Key",
        "Authorization",
    ]

    @property
    def is_development(self) -> bool:
        return self.environment == "development"

    def resolved_database_url(self) -> str:
        if self.database_url:
            return self.database_url
        return f"sqlite:///{self.data_directory}/meetgate.db"

    def require_encryption_key(self) -> str:
        """Return the encryption secret, raising ConfigurationError when it is unset."""
        if not self.encryption_key or not self.encryption_key.strip():
            raise ConfigurationError(
                "MEETGATE_ENCRYPTION_KEY is not set. "
                "Generate one with: python -c \"import secrets; print(secrets.token_urlsafe(48))\""
            )
        return self.encryption_key


settings = Settings()

"""
Gateway error code system.

GatewayError is the base exception for all structured errors. Each subclass
carries a default code from the registry (registry.yaml); the error handler
and the gateway dispatcher look the code up to obtain the HTTP status and the
caller-safe message.

Usage:
    from app.core.errors import ValidationError
    raise ValidationError(detail="credentials.client_secret is required")
"""

from __future__ import annotations

import re

CODE_PATTERN = re.compile(r"^GW-[A-Z]{2,6}-\d{3}$")


class GatewayError(Exception):
    """Structured application error tied to the error registry.

    Args:
        code: Registry error code, e.g. "GW-REQ-001". Defaults to the class code.
        detail: Internal-only detail message (exposed only in development mode).
        context: Arbitrary key-value context for structured logging.
    """

    default_code = "GW-SYS-001"

    def __init__(
        self,
        detail: str | None = None,
        *,
        code: str | None = None,
        context: dict | None = None,
    ) -> None:
        code = code or self.default_code
        if not CODE_PATTERN.match(code):
            raise ValueError(f"Invalid error code format: {code!r}")
        self.code = code
        self.detail = detail
        self.context = context or {}
        super().__init__(f"{code}: {detail}" if detail else code)


class ConfigurationError(RuntimeError):
    """Raised at startup when required configuration is missing."""


class ValidationError(GatewayError):
    """Malformed input (request body, credential descriptor)."""

    default_code = "GW-REQ-001"


class SetupRequired(GatewayError):
    """Valid identity, but no third-party credentials configured."""

    default_code = "GW-CRED-001"


class CredentialCorruptedError(GatewayError):
    """A stored credential record cannot be decrypted or parsed."""

    default_code = "GW-CRED-002"


class DecryptionError(GatewayError):
    """Ciphertext is malformed, tampered with, or was sealed under another key."""

    default_code = "GW-CRYPT-001"


class UpstreamError(GatewayError):
    """The tool executor failed."""

    default_code = "GW-UPS-001"


class InternalError(GatewayError):
    """Anything unanticipated."""

    default_code = "GW-SYS-001"


UNAUTHORIZED_CODE = "GW-AUTH-001"
FORBIDDEN_CODE = "GW-AUTH-002"
ADMIN_REQUIRED_CODE = "GW-AUTH-003"
NOT_FOUND_CODE = "GW-REQ-002"

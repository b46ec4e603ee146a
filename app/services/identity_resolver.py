"""
Identity Resolver - who is calling the gateway.

Order:
  1. ``X-API-Key`` header present -> API Key Store. An invalid key is
     FORBIDDEN; there is no fall-through to the session.
  2. Otherwise the session token (``Authorization: Bearer ...`` or the
     session cookie) -> SessionVerifier. Missing/invalid -> UNAUTHORIZED.

Authentication failures are returned as values, never raised.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from http.cookies import CookieError, SimpleCookie
from typing import Mapping, Optional

from app.core.database import get_session_context
from app.models.user import User
from app.services.api_key_service import ApiKeyStore
from app.services.session_service import SessionVerifier

logger = logging.getLogger(__name__)

API_KEY_HEADER = "x-api-key"


class IdentityFailure(str, Enum):
    UNAUTHORIZED = "unauthorized"
    FORBIDDEN = "forbidden"


@dataclass(frozen=True)
class Identity:
    user_id: str
    display: str
    via: str  # "api_key" | "session"
    is_admin: bool = False
    api_key_id: Optional[str] = None


@dataclass(frozen=True)
class IdentityResult:
    identity: Optional[Identity] = None
    failure: Optional[IdentityFailure] = None

    @property
    def ok(self) -> bool:
        return self.identity is not None


def extract_session_token(headers: Mapping[str, str], cookie_name: str = "session_token") -> Optional[str]:
    """Bearer token from Authorization, else the session cookie."""
    auth = headers.get("authorization")
    if auth:
        scheme, _, value = auth.partition(" ")
        if scheme.lower() == "bearer" and value.strip():
            return value.strip()

    raw_cookie = headers.get("cookie")
    if raw_cookie:
        jar = SimpleCookie()
        try:
            jar.load(raw_cookie)
        except CookieError:
            return None
        morsel = jar.get(cookie_name)
        if morsel is not None and morsel.value:
            return morsel.value
    return None


class IdentityResolver:
    """Resolve a request's headers to an Identity or a tagged failure.

    ``headers`` must be a case-insensitive mapping (Starlette Headers) or a
    dict with lowercase keys.
    """

    def __init__(
        self,
        api_keys: ApiKeyStore,
        sessions: SessionVerifier,
        cookie_name: str = "session_token",
    ):
        self._api_keys = api_keys
        self._sessions = sessions
        self._cookie_name = cookie_name

    def resolve(self, headers: Mapping[str, str]) -> IdentityResult:
        raw_key = headers.get(API_KEY_HEADER)
        if raw_key is not None:
            return self._resolve_api_key(raw_key)

        token = extract_session_token(headers, self._cookie_name)
        if not token:
            return IdentityResult(failure=IdentityFailure.UNAUTHORIZED)

        user = self._sessions.verify(token)
        if user is None:
            return IdentityResult(failure=IdentityFailure.UNAUTHORIZED)
        return IdentityResult(
            identity=Identity(
                user_id=user.id,
                display=user.display,
                via="session",
                is_admin=user.is_admin,
            )
        )

    def _resolve_api_key(self, raw_key: str) -> IdentityResult:
        verified = self._api_keys.verify(raw_key.strip())
        if verified is None:
            logger.info("Rejected invalid API key")
            return IdentityResult(failure=IdentityFailure.FORBIDDEN)

        with get_session_context(self._api_keys.engine) as session:
            user = session.get(User, verified.user_id)
            if user is None:
                # Key row outlived its user
                return IdentityResult(failure=IdentityFailure.FORBIDDEN)
            identity = Identity(
                user_id=user.id,
                display=user.display,
                via="api_key",
                is_admin=user.is_admin,
                api_key_id=verified.id,
            )
        return IdentityResult(identity=identity)

"""
Session authentication for the self-service and admin endpoints.

These routes are used from the dashboard, so only a login session is
accepted (Bearer token or session cookie); API keys authenticate the
protocol endpoint only.
"""

import logging
from typing import Optional

from fastapi import Depends, Request, Security
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from app.core.async_utils import run_sync
from app.core.errors import ADMIN_REQUIRED_CODE, UNAUTHORIZED_CODE, GatewayError
from app.services.container import GatewayServices, get_services
from app.services.identity_resolver import Identity

logger = logging.getLogger(__name__)

# auto_error=False: a missing bearer falls back to the session cookie
bearer_scheme = HTTPBearer(auto_error=False)


async def get_session_user(
    request: Request,
    bearer: Optional[HTTPAuthorizationCredentials] = Security(bearer_scheme),
    services: GatewayServices = Depends(get_services),
) -> Identity:
    """Resolve the session user or fail with 401."""
    if bearer is not None and bearer.credentials:
        token = bearer.credentials
    else:
        token = request.cookies.get(services.settings.session_cookie_name)
    if not token:
        raise GatewayError("no session token", code=UNAUTHORIZED_CODE)

    user = await run_sync(services.sessions.verify, token)
    if user is None:
        raise GatewayError("session token not valid", code=UNAUTHORIZED_CODE)
    return Identity(user_id=user.id, display=user.display, via="session", is_admin=user.is_admin)


async def require_admin(identity: Identity = Depends(get_session_user)) -> Identity:
    if not identity.is_admin:
        logger.warning("Admin endpoint denied for user=%s", identity.user_id)
        raise GatewayError("admin flag not set", code=ADMIN_REQUIRED_CODE)
    return identity

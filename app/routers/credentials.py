"""
Google Credential Setup Router
==============================

    POST   /api/google/setup-credentials - store the caller's OAuth client descriptor
    GET    /api/google/credentials       - configured flag + last update (never the secret)
    DELETE /api/google/credentials       - remove the stored descriptor

Session-authenticated.
"""

import logging
from datetime import datetime
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from app.auth.session_auth import get_session_user
from app.core.async_utils import run_sync
from app.core.timeutils import ensure_utc
from app.services.container import GatewayServices, get_services
from app.services.identity_resolver import Identity

logger = logging.getLogger(__name__)

router = APIRouter()


class SetupCredentialsRequest(BaseModel):
    credentials: Dict[str, Any] = Field(
        ...,
        description="OAuth client descriptor; client_id and client_secret are required",
    )


class CredentialStatusResponse(BaseModel):
    success: bool = True
    configured: bool
    updatedAt: Optional[datetime] = None
    message: Optional[str] = None


@router.post("/setup-credentials", response_model=CredentialStatusResponse)
async def setup_credentials(
    body: SetupCredentialsRequest,
    identity: Identity = Depends(get_session_user),
    services: GatewayServices = Depends(get_services),
):
    status = await run_sync(services.vault.store, identity.user_id, body.credentials)
    return CredentialStatusResponse(
        configured=status.configured,
        updatedAt=ensure_utc(status.updated_at),
        message="Google credentials saved successfully",
    )


@router.get("/credentials", response_model=CredentialStatusResponse)
async def credential_status(
    identity: Identity = Depends(get_session_user),
    services: GatewayServices = Depends(get_services),
):
    status = await run_sync(services.vault.status, identity.user_id)
    return CredentialStatusResponse(
        configured=status.configured,
        updatedAt=ensure_utc(status.updated_at),
    )


@router.delete("/credentials", response_model=CredentialStatusResponse)
async def delete_credentials(
    identity: Identity = Depends(get_session_user),
    services: GatewayServices = Depends(get_services),
):
    deleted = await run_sync(services.vault.delete, identity.user_id)
    return CredentialStatusResponse(
        configured=False,
        message="Google credentials removed" if deleted else "No credentials were stored",
    )

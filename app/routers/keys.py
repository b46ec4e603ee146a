"""
API Key Self-Service Router
===========================

    POST /api/mcp/generate-api-key  - issue a key (raw key returned ONCE)
    POST /api/mcp/revoke-api-key    - revoke one of the caller's keys
    GET  /api/mcp/api-keys          - list the caller's keys (previews only)
    GET  /api/mcp/usage             - the caller's recent requests and per-tool usage

Session-authenticated.
"""

import asyncio
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field

from app.auth.session_auth import get_session_user
from app.core.async_utils import run_sync
from app.core.errors import NOT_FOUND_CODE, GatewayError
from app.core.timeutils import ensure_utc
from app.services.container import GatewayServices, get_services
from app.services.identity_resolver import Identity

logger = logging.getLogger(__name__)

router = APIRouter()


class GenerateKeyResponse(BaseModel):
    success: bool = True
    apiKey: str = Field(..., description="Raw API key. Shown only once.")
    keyId: str
    preview: str
    createdAt: datetime
    message: str = "Store this key securely. It will not be shown again."


class RevokeKeyRequest(BaseModel):
    apiKeyId: str = Field(..., min_length=1, description="Id of the key to revoke")


class RevokeKeyResponse(BaseModel):
    success: bool = True
    message: str = "API key revoked successfully"


class ApiKeyItem(BaseModel):
    id: str
    preview: str
    isActive: bool
    createdAt: datetime
    lastUsed: Optional[datetime] = None
    usageCount: int = 0
    revokedAt: Optional[datetime] = None


class ApiKeyListResponse(BaseModel):
    keys: List[ApiKeyItem]
    count: int


@router.post("/generate-api-key", response_model=GenerateKeyResponse)
async def generate_api_key(
    identity: Identity = Depends(get_session_user),
    services: GatewayServices = Depends(get_services),
):
    generated = await run_sync(services.api_keys.generate, identity.user_id)
    return GenerateKeyResponse(
        apiKey=generated.raw_key,
        keyId=generated.id,
        preview=generated.preview,
        createdAt=ensure_utc(generated.created_at),
    )


@router.post("/revoke-api-key", response_model=RevokeKeyResponse)
async def revoke_api_key(
    body: RevokeKeyRequest,
    identity: Identity = Depends(get_session_user),
    services: GatewayServices = Depends(get_services),
):
    revoked = await run_sync(services.api_keys.revoke, body.apiKeyId, identity.user_id)
    if not revoked:
        raise GatewayError(
            f"key {body.apiKeyId} not revocable by {identity.user_id}",
            code=NOT_FOUND_CODE,
        )
    return RevokeKeyResponse()


@router.get("/api-keys", response_model=ApiKeyListResponse)
async def list_api_keys(
    identity: Identity = Depends(get_session_user),
    services: GatewayServices = Depends(get_services),
):
    keys = await run_sync(services.api_keys.list_for_user, identity.user_id)
    items = [
        ApiKeyItem(
            id=k.id,
            preview=k.preview,
            isActive=k.is_active,
            createdAt=ensure_utc(k.created_at),
            lastUsed=ensure_utc(k.last_used_at),
            usageCount=k.usage_count,
            revokedAt=ensure_utc(k.revoked_at),
        )
        for k in keys
    ]
    return ApiKeyListResponse(keys=items, count=len(items))


class UsageResponse(BaseModel):
    totalRequests: int
    successfulRequests: int
    successRate: float
    toolsUsage: Dict[str, int]
    requestsByDay: Dict[str, int]
    timeRange: str
    requests: List[Dict[str, Any]]


@router.get("/usage", response_model=UsageResponse)
async def my_usage(
    limit: int = Query(50, ge=1, le=200),
    identity: Identity = Depends(get_session_user),
    services: GatewayServices = Depends(get_services),
):
    """The caller's own request history and usage over the analytics window."""
    window = services.settings.analytics_window_days
    analytics, history = await asyncio.gather(
        run_sync(services.request_logger.analytics, window, identity.user_id),
        run_sync(services.request_logger.history_for_user, identity.user_id, limit),
    )
    return UsageResponse(
        totalRequests=analytics["totalRequests"],
        successfulRequests=analytics["successfulRequests"],
        successRate=analytics["successRate"],
        toolsUsage=analytics["toolsUsage"],
        requestsByDay=analytics["requestsByDay"],
        timeRange=analytics["timeRange"],
        requests=history,
    )

"""
MCP Gateway Router
==================

The protocol endpoint used by external tool-calling clients:

    POST    /api/mcp            - protocol request (API key or session)
    POST    /api/mcp/{path}     - same, for clients that append a path
    OPTIONS /api/mcp[/{path}]   - CORS preflight
    GET     /api/mcp/health     - liveness
    POST    /api/mcp/health     - liveness (protocol probe)

All orchestration lives in GatewayDispatcher; this module only adapts HTTP.
"""

import logging
from typing import Any, Optional

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse, Response

from app.config import Settings
from app.core.timeutils import utcnow
from app.services.container import GatewayServices, get_services

logger = logging.getLogger(__name__)

router = APIRouter()


def cors_headers(settings: Settings) -> dict:
    return {
        "Access-Control-Allow-Credentials": "true",
        "Access-Control-Allow-Origin": "*",
        "Access-Control-Allow-Methods": ",".join(settings.cors_allow_methods),
        "Access-Control-Allow-Headers": ", ".join(settings.cors_allow_headers),
    }


def client_address(request: Request) -> Optional[str]:
    """First hop of X-Forwarded-For, else the socket peer."""
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip() or None
    return request.client.host if request.client else None


async def _read_body(request: Request) -> Any:
    try:
        return await request.json()
    except ValueError:
        # Not JSON; the dispatcher reports it as a validation failure
        return None


# ---------------------------------------------------------------------------
# Health
# ---------------------------------------------------------------------------

@router.get("/health")
async def health(services: GatewayServices = Depends(get_services)):
    return {
        "status": "healthy",
        "version": services.settings.protocol_version,
        "timestamp": utcnow().isoformat(),
        "services": {
            "mcp": "operational",
            "google_apis": "operational" if services.settings.tool_executor_url else "not_configured",
        },
    }


@router.post("/health")
async def health_probe(services: GatewayServices = Depends(get_services)):
    return {
        "status": "healthy",
        "version": services.settings.protocol_version,
        "timestamp": utcnow().isoformat(),
        "message": "MCP Server is operational",
    }


# ---------------------------------------------------------------------------
# Protocol endpoint
# ---------------------------------------------------------------------------

@router.options("")
@router.options("/{path:path}")
async def preflight(services: GatewayServices = Depends(get_services)):
    return Response(status_code=200, headers=cors_headers(services.settings))


@router.post("")
@router.post("/{path:path}")
async def handle_protocol_request(
    request: Request,
    services: GatewayServices = Depends(get_services),
):
    body = await _read_body(request)
    result = await services.dispatcher.dispatch(
        request.headers,
        body,
        ip_address=client_address(request),
        user_agent=request.headers.get("user-agent"),
    )
    return JSONResponse(
        status_code=result.status_code,
        content=result.body,
        headers=cors_headers(services.settings),
    )

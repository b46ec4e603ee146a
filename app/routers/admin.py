"""
Admin Stats Router
==================

    GET /api/admin/mcp-stats - dashboard totals, trailing-window analytics and
                               the most recent gateway requests (admin only)
"""

import asyncio
import logging

from fastapi import APIRouter, Depends

from app.auth.session_auth import require_admin
from app.core.async_utils import run_sync
from app.core.timeutils import utcnow
from app.services.container import GatewayServices, get_services
from app.services.identity_resolver import Identity

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/mcp-stats")
async def mcp_stats(
    identity: Identity = Depends(require_admin),
    services: GatewayServices = Depends(get_services),
):
    settings = services.settings
    totals, analytics, recent, key_stats = await asyncio.gather(
        run_sync(services.request_logger.dashboard_totals),
        run_sync(services.request_logger.analytics, settings.analytics_window_days),
        run_sync(services.request_logger.recent, settings.recent_requests_limit),
        run_sync(services.api_keys.stats),
    )
    return {
        "totalUsers": totals["totalUsers"],
        "totalApiKeys": totals["totalApiKeys"],
        "activeApiKeys": totals["activeApiKeys"],
        "recentlyActiveApiKeys": key_stats["recentlyActive"],
        "totalCredentialRecords": totals["totalCredentialRecords"],
        "recentRequestCount": totals["recentRequests"],
        "totalRequests": analytics["totalRequests"],
        "successfulRequests": analytics["successfulRequests"],
        "successRate": analytics["successRate"],
        "uniqueUsers": analytics["uniqueUsers"],
        "toolsUsage": analytics["toolsUsage"],
        "requestsByDay": analytics["requestsByDay"],
        "timeRange": analytics["timeRange"],
        "recentRequests": recent,
        "generatedAt": utcnow().isoformat(),
    }

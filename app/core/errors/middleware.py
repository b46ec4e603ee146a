"""
FastAPI exception handlers for GatewayError and unexpected exceptions.

Looks up the registry and returns the gateway's JSON error envelope:
``{"error": ..., "message": ..., "timestamp": ...}``. Internal details are only
placed in ``message`` when running in development mode.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Tuple

from fastapi import Request
from fastapi.responses import JSONResponse

from app.core.errors import GatewayError, InternalError
from app.core.errors.registry import error_registry

logger = logging.getLogger(__name__)

_FALLBACK_CODE = InternalError.default_code


def build_error_body(
    code: str,
    detail: Optional[str] = None,
    expose_detail: bool = False,
    extra: Optional[Dict[str, Any]] = None,
) -> Tuple[int, Dict[str, Any]]:
    """Return (http_status, body) for a registry code."""
    entry = error_registry.get(code)
    if entry is None:
        logger.error("unregistered_error_code", extra={"error.code": code})
        entry = error_registry.lookup(_FALLBACK_CODE)

    message = detail if (expose_detail and detail) else entry.safe_message
    body: Dict[str, Any] = {
        "error": entry.title,
        "message": message,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
    if extra:
        body.update(extra)
    return entry.http_status, body


def log_gateway_error(exc: GatewayError, **context: Any) -> None:
    """Log a GatewayError at the severity its registry entry declares."""
    entry = error_registry.get(exc.code)
    severity = entry.severity if entry else "ERROR"
    log_extra = {
        "error.code": exc.code,
        "error.kind": type(exc).__name__,
        "error.message": exc.detail,
        **{f"error.ctx.{k}": v for k, v in {**exc.context, **context}.items()},
    }
    _severity_to_log_fn(severity)(entry.title if entry else "gateway_error", extra=log_extra)


def make_gateway_error_handler(expose_detail: bool):
    """Build the handler bound to the configured environment."""

    async def gateway_error_handler(request: Request, exc: GatewayError) -> JSONResponse:
        log_gateway_error(exc, path=request.url.path)
        status_code, body = build_error_body(exc.code, exc.detail, expose_detail)
        return JSONResponse(status_code=status_code, content=body)

    return gateway_error_handler


def make_unhandled_error_handler(expose_detail: bool):
    async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("unhandled_exception", extra={"path": request.url.path})
        status_code, body = build_error_body(_FALLBACK_CODE, str(exc), expose_detail)
        return JSONResponse(status_code=status_code, content=body)

    return unhandled_error_handler


def _severity_to_log_fn(severity: str):
    """Map registry severity to logger method."""
    return {
        "DEBUG": logger.debug,
        "INFO": logger.info,
        "WARN": logger.warning,
        "ERROR": logger.error,
        "CRITICAL": logger.critical,
    }.get(severity, logger.error)

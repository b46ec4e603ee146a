"""
Gateway Dispatcher - one protocol request, end to end.

    identity -> body validation -> pre-log -> credentials -> executor
             -> _meta enrichment -> finalize log

Expected outcomes (auth failures, validation, missing credentials, upstream
failures) become a GatewayResponse with the status and sanitized message from
the error registry. Details only reach the caller in development mode; they
always reach the server logs.

Every invocation that passes identity resolution leaves exactly one finalized
request-log entry, including invocations cancelled mid-flight.
"""

import asyncio
import logging
import time
from typing import Any, Dict, Mapping, Optional, Tuple

from pydantic import ValidationError as SchemaError

from app.config import Settings
from app.core.async_utils import run_sync
from app.core.errors import (
    FORBIDDEN_CODE,
    UNAUTHORIZED_CODE,
    GatewayError,
    InternalError,
    SetupRequired,
    UpstreamError,
    ValidationError,
)
from app.core.errors.middleware import build_error_body, log_gateway_error
from app.core.structured_logging import user_id_var
from app.core.timeutils import utcnow
from app.models.gateway import GatewayRequest, GatewayResponse
from app.services.credential_vault import CredentialVault
from app.services.identity_resolver import IdentityFailure, IdentityResolver
from app.services.request_logger import RequestLogger
from app.services.tool_executor import ToolExecutor

logger = logging.getLogger(__name__)

MAX_LOGGED_METHOD = 128


def _describe_schema_error(exc: SchemaError) -> str:
    parts = []
    for err in exc.errors():
        loc = ".".join(str(p) for p in err.get("loc", ())) or "body"
        parts.append(f"{loc}: {err.get('msg')}")
    return "; ".join(parts)


def parse_gateway_request(body: Any) -> GatewayRequest:
    """Validate a raw JSON body. Raises ValidationError."""
    if not isinstance(body, dict):
        raise ValidationError("Request body must be a JSON object")
    try:
        request = GatewayRequest.model_validate(body)
    except SchemaError as exc:
        raise ValidationError(_describe_schema_error(exc)) from exc
    if request.method == "tools/call" and not request.tool_name:
        raise ValidationError("tools/call requires params.name")
    return request


def _loggable_call(body: Any) -> Tuple[str, Optional[str]]:
    """(method, tool_name) for the log entry, even when the body is invalid."""
    if not isinstance(body, dict):
        return "invalid", None
    method = body.get("method")
    method = method[:MAX_LOGGED_METHOD] if isinstance(method, str) and method else "invalid"
    params = body.get("params")
    name = params.get("name") if isinstance(params, dict) else None
    return method, (name[:MAX_LOGGED_METHOD] if isinstance(name, str) and name else None)


class GatewayDispatcher:
    """Stateless orchestrator; safe to share across concurrent requests."""

    def __init__(
        self,
        resolver: IdentityResolver,
        vault: CredentialVault,
        request_logger: RequestLogger,
        executor: ToolExecutor,
        settings: Settings,
    ):
        self._resolver = resolver
        self._vault = vault
        self._request_logger = request_logger
        self._executor = executor
        self._settings = settings

    async def dispatch(
        self,
        headers: Mapping[str, str],
        body: Any,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> GatewayResponse:
        resolved = await run_sync(self._resolver.resolve, headers)
        if not resolved.ok:
            code = FORBIDDEN_CODE if resolved.failure is IdentityFailure.FORBIDDEN else UNAUTHORIZED_CODE
            status_code, error_body = build_error_body(code)
            return GatewayResponse(status_code=status_code, body=error_body)

        identity = resolved.identity
        uid_token = user_id_var.set(identity.user_id)
        try:
            return await self._dispatch_as(identity.user_id, body, ip_address, user_agent)
        finally:
            user_id_var.reset(uid_token)

    async def _dispatch_as(
        self,
        user_id: str,
        body: Any,
        ip_address: Optional[str],
        user_agent: Optional[str],
    ) -> GatewayResponse:
        method, tool_name = _loggable_call(body)
        started = time.perf_counter()
        entry_id = await run_sync(
            self._request_logger.start, user_id, method, tool_name, ip_address, user_agent
        )

        success = False
        error_message: Optional[str] = None
        try:
            request = parse_gateway_request(body)

            credentials = await run_sync(self._vault.fetch, user_id)
            if credentials is None:
                raise SetupRequired(f"no credential record for user {user_id}")

            result = await self._execute(credentials, request)
            success = not result.get("isError", False)
            if not success:
                error_message = "tool reported an error result"
            return GatewayResponse(status_code=200, body=self._with_meta(result, user_id))

        except GatewayError as exc:
            error_message = exc.detail or exc.code
            log_gateway_error(exc, user_id=user_id, method=method)
            return self._error_response(exc)

        except asyncio.CancelledError:
            error_message = "cancelled"
            raise

        except Exception as exc:
            error_message = f"{type(exc).__name__}: {exc}"
            logger.exception("Gateway dispatch failed for user=%s method=%s", user_id, method)
            status_code, error_body = build_error_body(
                InternalError.default_code, str(exc), self._settings.is_development
            )
            return GatewayResponse(status_code=status_code, body=error_body)

        finally:
            duration_ms = int((time.perf_counter() - started) * 1000)
            await self._finalize(entry_id, success, duration_ms, error_message)

    async def _execute(self, credentials: Dict[str, Any], request: GatewayRequest) -> Dict[str, Any]:
        try:
            result = await self._executor.execute(credentials, request)
        except GatewayError:
            raise
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            raise UpstreamError(f"{type(exc).__name__}: {exc}") from exc
        if not isinstance(result, dict):
            raise UpstreamError("executor returned a non-object result")
        return result

    async def _finalize(
        self,
        entry_id: str,
        success: bool,
        duration_ms: int,
        error_message: Optional[str],
    ) -> None:
        try:
            await asyncio.shield(
                run_sync(self._request_logger.finish, entry_id, success, duration_ms, error_message)
            )
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            logger.error("Failed to finalize request log entry %s: %s", entry_id, exc)

    def _with_meta(self, result: Dict[str, Any], user_id: str) -> Dict[str, Any]:
        tools = result.get("tools")
        return {
            **result,
            "_meta": {
                "userId": user_id,
                "timestamp": utcnow().isoformat(),
                "version": self._settings.protocol_version,
                "toolsCount": len(tools) if isinstance(tools, list) else 0,
            },
        }

    def _error_response(self, exc: GatewayError) -> GatewayResponse:
        extra = {"setupUrl": self._settings.setup_url} if isinstance(exc, SetupRequired) else None
        status_code, error_body = build_error_body(
            exc.code, exc.detail, self._settings.is_development, extra
        )
        return GatewayResponse(status_code=status_code, body=error_body)

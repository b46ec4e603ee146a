"""
Tool Executor - performs the calendar/meeting operation behind a gateway call.

ToolExecutor is the contract the dispatcher depends on. The default
CatalogueToolExecutor answers the protocol's discovery methods from the local
tool catalogue and forwards ``tools/call`` to the calendar worker service
configured by MEETGATE_TOOL_EXECUTOR_URL, passing the caller's decrypted
credential descriptor along with the call.
"""

import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

import httpx

from app.core.errors import UpstreamError, ValidationError
from app.core.structured_logging import APP_VERSION, SERVICE_NAME
from app.models.gateway import GatewayRequest
from app.services.tool_catalogue import MEET_TOOLS, check_arguments

logger = logging.getLogger(__name__)

CALL_PATH = "/tools/call"


class ToolExecutor(ABC):
    """Executes one parsed gateway request with the caller's credentials."""

    @abstractmethod
    async def execute(self, credentials: Dict[str, Any], request: GatewayRequest) -> Dict[str, Any]:
        ...

    async def aclose(self) -> None:
        return None


class CatalogueToolExecutor(ToolExecutor):
    """Serve discovery locally, forward tool calls over HTTP."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: float = 30.0,
        protocol_version: str = "2.0",
        client: Optional[httpx.AsyncClient] = None,
    ):
        self._base_url = base_url.rstrip("/") if base_url else None
        self._protocol_version = protocol_version
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=timeout)

    async def execute(self, credentials: Dict[str, Any], request: GatewayRequest) -> Dict[str, Any]:
        method = request.method
        if method == "initialize":
            return {
                "protocolVersion": self._protocol_version,
                "serverInfo": {"name": SERVICE_NAME, "version": APP_VERSION},
                "capabilities": {"tools": {}},
            }
        if method == "ping":
            return {}
        if method == "tools/list":
            return {"tools": MEET_TOOLS}
        if method == "tools/call":
            return await self._call_tool(credentials, request)
        raise ValidationError(f"Unknown MCP method: {method}", context={"method": method})

    async def _call_tool(self, credentials: Dict[str, Any], request: GatewayRequest) -> Dict[str, Any]:
        name = request.tool_name
        if not name:
            raise ValidationError("tools/call requires params.name")
        arguments = request.params.arguments if request.params else {}
        check_arguments(name, arguments)

        if not self._base_url:
            raise UpstreamError("Tool executor URL is not configured", context={"tool": name})

        try:
            resp = await self._client.post(
                f"{self._base_url}{CALL_PATH}",
                json={"name": name, "arguments": arguments, "credentials": credentials},
            )
        except httpx.HTTPError as exc:
            raise UpstreamError(
                f"Tool executor unreachable: {type(exc).__name__}",
                context={"tool": name},
            ) from exc

        if resp.status_code >= 400:
            raise UpstreamError(
                f"Tool executor returned HTTP {resp.status_code}",
                context={"tool": name, "status": resp.status_code},
            )
        try:
            data = resp.json()
        except ValueError as exc:
            raise UpstreamError("Tool executor returned invalid JSON", context={"tool": name}) from exc
        if not isinstance(data, dict):
            raise UpstreamError("Tool executor returned a non-object result", context={"tool": name})

        logger.debug("Tool %s completed via executor", name)
        return data

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

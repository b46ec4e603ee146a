"""
Gateway request/response models.

The protocol body is validated once, at the dispatcher boundary; the executor
only ever sees a GatewayRequest.
"""

from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field


class ToolCallParams(BaseModel):
    model_config = ConfigDict(extra="allow")

    name: Optional[str] = Field(None, min_length=1, description="Tool to invoke (tools/call)")
    arguments: Dict[str, Any] = Field(default_factory=dict, description="Tool arguments")


class GatewayRequest(BaseModel):
    """Inbound protocol request: ``{method, params?: {name?, arguments?}}``."""

    model_config = ConfigDict(extra="allow")

    method: str = Field(..., min_length=1, description="Protocol method, e.g. tools/list")
    params: Optional[ToolCallParams] = None

    @property
    def tool_name(self) -> Optional[str]:
        return self.params.name if self.params else None


class GatewayResponse(BaseModel):
    """What the dispatcher hands back to the transport layer."""

    status_code: int
    body: Dict[str, Any]

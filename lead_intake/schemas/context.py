from __future__ import annotations

from pydantic import BaseModel, Field


class ClientContext(BaseModel):
    client_id: str = Field(..., min_length=1, description="Stable identifier of the browser/device profile")
    session_id: str = Field(..., min_length=1, description="Identifier of the current browsing session")
    user_agent: str | None = Field(
        default=None,
        description="Client user-agent string; taken from the request headers when omitted",
    )
    ip_address: str | None = Field(
        default=None,
        description="Public IP of the visitor; taken from the request when omitted",
    )

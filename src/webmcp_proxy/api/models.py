"""
WebMCP Proxy API - Pydantic Models

Response shapes of the non-gateway routes. The gateway route itself
answers with plain ResultEnvelope dicts.
"""

from typing import Optional

from pydantic import BaseModel, Field


# =============================================================================
# Client configuration
# =============================================================================

class ClientConfigResponse(BaseModel):
    """Configuration injected into the admin pages / agent side."""
    items: bool = True
    media: bool = True
    item_sets: bool = True
    sites: bool = True
    users: bool = True
    vocabularies: bool = True
    bulk: bool = True
    proxy_url: str
    csrf_token: Optional[str] = Field(default=None, description="Omitted when every tool group is disabled")


# =============================================================================
# Health
# =============================================================================

class BackendStatus(BaseModel):
    name: str
    reachable: bool = False
    item_count: Optional[int] = None
    error: Optional[str] = None


class HealthResponse(BaseModel):
    """Gateway health. No secrets."""
    status: str
    version: str
    uptime_seconds: float
    backend: BackendStatus
    groups: list[str]
    tool_count: int
    mode: str

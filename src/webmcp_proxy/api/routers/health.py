"""
Health check endpoint.

Backend reachability, enabled tool groups and uptime.
No secrets leaked. No token required.
"""

import time

from fastapi import APIRouter, Depends

from ..models import BackendStatus, HealthResponse
from ..state import GatewayState, get_state

router = APIRouter()


@router.get("/health", response_model=HealthResponse)
async def health_check(state: GatewayState = Depends(get_state)):
    """
    Rich health check.

    Probes the backend with an empty item search. A failing backend makes
    the gateway "degraded", not "unhealthy": request checks still work.
    """
    status = "healthy"
    backend = BackendStatus(name=state.backend.__class__.__name__)

    try:
        found = state.backend.search("items", {"per_page": 0})
        backend.reachable = True
        backend.item_count = found.total_results
    except Exception as e:
        backend.error = str(e) or e.__class__.__name__
        status = "degraded"

    return HealthResponse(
        status=status,
        version=state.version,
        uptime_seconds=round(time.time() - state.start_time, 2),
        backend=backend,
        groups=state.config.groups.enabled(),
        tool_count=len(state.tool_names),
        mode="dev" if state.config.dev_mode else "standard",
    )

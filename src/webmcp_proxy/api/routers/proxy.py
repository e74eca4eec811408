"""
Gateway routes.

The proxy path accepts every common method so the dispatcher, not the
router, answers non-POST requests (with 405 and a ResultEnvelope).
"""

from typing import Optional

from fastapi import APIRouter, Depends, Request, Security
from fastapi.responses import JSONResponse
from fastapi.security import APIKeyHeader

from ...config import CLIENT_CONFIG_PATH
from ...tokens import CSRF_HEADER
from ..models import ClientConfigResponse
from ..state import GatewayState, get_state

PROXY_METHODS = ["GET", "HEAD", "OPTIONS", "POST", "PUT", "PATCH", "DELETE"]

CSRF_TOKEN_HEADER = APIKeyHeader(name=CSRF_HEADER, auto_error=False)


async def proxy(
    request: Request,
    token: Optional[str] = Security(CSRF_TOKEN_HEADER),
    state: GatewayState = Depends(get_state),
) -> JSONResponse:
    """Run one envelope through the dispatcher."""
    body = await request.body()
    status, result = state.dispatcher.handle_request(request.method, token, body)
    return JSONResponse(status_code=status, content=result)


async def client_config(state: GatewayState = Depends(get_state)):
    """
    Client configuration with a freshly issued (session) token.

    No token is handed out when every tool group is disabled.
    """
    token = state.token_store.issue() if state.config.groups.any_enabled() else None
    return state.config.client_config(token)


def build_router(proxy_url: str) -> APIRouter:
    router = APIRouter()
    router.add_api_route(proxy_url, proxy, methods=PROXY_METHODS, summary="Gateway")
    router.add_api_route(
        CLIENT_CONFIG_PATH,
        client_config,
        methods=["GET"],
        response_model=ClientConfigResponse,
        response_model_exclude_none=True,
        summary="Client configuration",
    )
    return router

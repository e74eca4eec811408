"""
WebMCP Proxy REST API
HTTP transport for the operation gateway.

The admin pages (and GatewayClient) POST envelopes to the proxy URL with
the session's anti-forgery token in the X-CSRF-Token header.
"""

from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .. import __version__
from ..backend import ResourceApiClient
from ..config import GatewayConfig
from ..memory_backend import InMemoryResourceApi
from ..proxy_logger import configure_logging, log_info
from ..tokens import SessionTokenStore, TokenStore
from .routers import health, proxy
from .state import GatewayState


# =============================================================================
# Lifespan
# =============================================================================

@asynccontextmanager
async def lifespan(app: FastAPI):
    state: GatewayState = app.state.gateway
    mode = "DEV" if state.config.dev_mode else "STANDARD"
    log_info(
        f"WebMCP proxy API ready (mode={mode}, backend={state.backend.__class__.__name__}, "
        f"groups={','.join(state.config.groups.enabled()) or 'none'})"
    )

    yield

    log_info("WebMCP proxy API shutting down")


# =============================================================================
# App
# =============================================================================

def create_app(
    config: Optional[GatewayConfig] = None,
    backend: Optional[ResourceApiClient] = None,
    token_store: Optional[TokenStore] = None,
) -> FastAPI:
    """
    Build the gateway app.

    Args:
        config: Gateway configuration (defaults to GatewayConfig())
        backend: ResourceApiClient to dispatch to (defaults to an empty
            InMemoryResourceApi with seeded vocabularies)
        token_store: Anti-forgery token store (defaults to a
            SessionTokenStore seeded with config.csrf_token)
    """
    config = config or GatewayConfig()
    configure_logging(config.log_dir)

    app = FastAPI(
        title="WebMCP Proxy",
        description="""
Operation gateway between AI agents and the resource API.

## Authentication

Fetch the session token from `GET /admin/webmcp/config` and send it in the
`X-CSRF-Token` header:
```
curl -X POST -H "X-CSRF-Token: <token>" -d '{"operation": "search", "resourceType": "items"}' \\
     http://127.0.0.1:8003/admin/webmcp/proxy
```
        """,
        version=__version__,
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
    )

    # Built here, not in lifespan, so transports that skip lifespan events still work
    app.state.gateway = GatewayState(
        config=config,
        backend=backend if backend is not None else InMemoryResourceApi(),
        token_store=token_store if token_store is not None else SessionTokenStore(config.csrf_token),
    )

    if config.cors_origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=config.cors_origins,
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    @app.get("/")
    async def root():
        """API root - basic info."""
        return {
            "name": "WebMCP Proxy",
            "version": __version__,
            "docs": "/docs",
            "proxy_url": config.proxy_url,
            "description": "Policy-enforcing gateway between AI agents and the resource API.",
        }

    app.include_router(health.router, tags=["health"])
    app.include_router(proxy.build_router(config.proxy_url), tags=["gateway"])

    return app

"""
Shared application state.

One GatewayState is built per app by create_app() and stored on
app.state.gateway; routes reach it through the get_state dependency.
"""

import time

from fastapi import Request

from .. import __version__
from ..backend import ResourceApiClient
from ..config import GatewayConfig
from ..dispatcher import OperationDispatcher
from ..gateway_client import GatewayClient
from ..tokens import TokenStore
from ..tools import build_catalog


class GatewayState:
    """Everything a request handler needs, constructed once."""

    def __init__(self, config: GatewayConfig, backend: ResourceApiClient, token_store: TokenStore):
        self.config = config
        self.backend = backend
        self.token_store = token_store
        self.dispatcher = OperationDispatcher(backend, token_store)
        self.start_time = time.time()
        self.version = __version__

        # Names only; the client is never opened here
        self.tool_names = build_catalog(config, GatewayClient(config)).names()


def get_state(request: Request) -> GatewayState:
    """Dependency to get the gateway state of the running app."""
    return request.app.state.gateway

"""
Pytest fixtures for the gateway tests.
"""

import asyncio
import sys
from pathlib import Path

import httpx
import pytest

# Make harness importable from every test module
sys.path.insert(0, str(Path(__file__).parent))

from harness import TOKEN, RecordingResourceApi

from webmcp_proxy.api import create_app
from webmcp_proxy.config import GatewayConfig
from webmcp_proxy.dispatcher import OperationDispatcher
from webmcp_proxy.gateway_client import GatewayClient
from webmcp_proxy.proxy_logger import configure_logging
from webmcp_proxy.tokens import SessionTokenStore


@pytest.fixture(autouse=True)
def log_dir(tmp_path):
    """Keep log output inside the test's temp dir."""
    path = tmp_path / "logs"
    configure_logging(path)
    return path


@pytest.fixture
def backend():
    return RecordingResourceApi()


@pytest.fixture
def token_store():
    return SessionTokenStore(TOKEN)


@pytest.fixture
def dispatcher(backend, token_store):
    return OperationDispatcher(backend, token_store)


@pytest.fixture
def config(log_dir):
    return GatewayConfig(csrf_token=TOKEN, log_dir=log_dir, base_url="http://testserver")


@pytest.fixture
def app(config, backend, token_store):
    return create_app(config, backend=backend, token_store=token_store)


@pytest.fixture
def run_agent(app, config):
    """
    Run an async scenario against a GatewayClient bound to the ASGI app.

    Usage: run_agent(lambda gateway: gateway.call(...))
    """
    def runner(scenario, gateway_config: GatewayConfig = None):
        async def main():
            transport = httpx.ASGITransport(app=app)
            async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as http_client:
                gateway = GatewayClient(gateway_config or config, http_client=http_client)
                return await scenario(gateway)
        return asyncio.run(main())
    return runner

"""
MCP wiring tests.
"""

import asyncio
import json

from mcp import types

from webmcp_proxy.config import GatewayConfig, ToolGroups
from webmcp_proxy.gateway_client import GatewayClient
from webmcp_proxy.mcp_server import SERVER_NAME, _as_text, build_server
from webmcp_proxy.tools import build_catalog


def offline_server(**groups):
    config = GatewayConfig(groups=ToolGroups(**groups))
    catalog = build_catalog(config, GatewayClient(config))
    return build_server(catalog), catalog


def test_server_name():
    server, _ = offline_server()
    assert server.name == SERVER_NAME


def test_list_tools_matches_catalog():
    server, catalog = offline_server(users=False)
    handler = server.request_handlers[types.ListToolsRequest]

    result = asyncio.run(handler(types.ListToolsRequest(method="tools/list")))

    names = [tool.name for tool in result.root.tools]
    assert names == catalog.names()
    assert "create-user" not in names


def test_as_text_is_json():
    text = _as_text({"o:title": "Café", "count": 2})
    assert json.loads(text) == {"o:title": "Café", "count": 2}
    assert "Café" in text

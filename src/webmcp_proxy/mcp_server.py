"""
MCP entry point: exposes the tool catalog to agents over stdio.

Every tool call and resource read is forwarded to the HTTP gateway through
GatewayClient, so the gateway stays the single place where requests are
authorized and dispatched.

Nothing here writes to stdout; that stream belongs to the MCP protocol.
"""

import asyncio
import json
from typing import Any

from mcp.server import Server
from mcp.server.stdio import stdio_server
from mcp.types import Resource, ResourceTemplate, TextContent, Tool

from .catalog import ToolCatalog
from .config import GatewayConfig
from .gateway_client import GatewayClient
from .proxy_logger import configure_logging, log_info
from .tools import build_catalog

SERVER_NAME = "webmcp-proxy"


def _as_text(result: Any) -> str:
    return json.dumps(result, indent=2, ensure_ascii=False, default=str)


def build_server(catalog: ToolCatalog) -> Server:
    """Wire a catalog into an MCP Server."""
    server = Server(SERVER_NAME)

    @server.list_tools()
    async def list_tools() -> list[Tool]:
        return [spec.to_mcp_tool() for spec in catalog.tools()]

    @server.call_tool()
    async def call_tool(name: str, arguments: dict[str, Any]) -> list[TextContent]:
        # MCP clients have no confirmation channel here, so no interaction handle
        result = await catalog.call(name, arguments or {})
        return [TextContent(type="text", text=_as_text(result))]

    @server.list_resources()
    async def list_resources() -> list[Resource]:
        return [spec.to_mcp() for spec in catalog.resources()]

    @server.list_resource_templates()
    async def list_resource_templates() -> list[ResourceTemplate]:
        return [spec.to_mcp() for spec in catalog.resource_templates()]

    @server.read_resource()
    async def read_resource(uri) -> str:
        return _as_text(await catalog.read_resource(str(uri)))

    return server


async def serve(config: GatewayConfig):
    async with GatewayClient(config) as gateway:
        catalog = build_catalog(config, gateway)
        server = build_server(catalog)
        log_info(f"MCP server starting: {len(catalog)} tools, gateway {config.gateway_base_url()}{config.proxy_url}")

        async with stdio_server() as (read_stream, write_stream):
            await server.run(read_stream, write_stream, server.create_initialization_options())


def main():
    config = GatewayConfig.from_env()
    configure_logging(config.log_dir)
    asyncio.run(serve(config))


if __name__ == "__main__":
    main()

"""
WebMCP proxy REST API entry point.

Usage:
    webmcp-proxy-api                          # Default 127.0.0.1:8003
    WEBMCP_API_PORT=9000 webmcp-proxy-api     # Custom port
    WEBMCP_CSRF_TOKEN=secret webmcp-proxy-api # Fixed token shared with the MCP server
"""

import uvicorn

from ..config import GatewayConfig
from ..proxy_logger import log_info
from .main import create_app


def main():
    config = GatewayConfig.from_env()
    app = create_app(config)

    log_info(f"Starting WebMCP proxy API on {config.host}:{config.port}")

    uvicorn.run(
        app,
        host=config.host,
        port=config.port,
        log_level="debug" if config.dev_mode else "info",
    )


if __name__ == "__main__":
    main()

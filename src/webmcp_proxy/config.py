"""
Gateway configuration.

Built once at startup (usually via GatewayConfig.from_env()) and passed by
reference into create_app(), build_catalog() and the MCP entry point.
Nothing below the entry points reads the environment.
"""

import os
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Mapping, Optional

from .proxy_logger import DEFAULT_LOG_DIR

DEFAULT_PROXY_URL = "/admin/webmcp/proxy"
DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 8003
CLIENT_CONFIG_PATH = "/admin/webmcp/config"

TRUTHY = ("1", "true", "yes", "on")
FALSY = ("0", "false", "no", "off", "")


def parse_flag(value: Any, default: bool = False) -> bool:
    """Interpret a bool or a form/env style string ("1", "true", "no", ...)."""
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text in TRUTHY:
        return True
    if text in FALSY:
        return False
    return default


@dataclass
class ToolGroups:
    """On/off toggles for each group of agent tools. A disabled group is never registered."""
    items: bool = True
    media: bool = True
    item_sets: bool = True
    sites: bool = True
    users: bool = True
    vocabularies: bool = True
    bulk: bool = True

    @classmethod
    def names(cls) -> list[str]:
        return [f.name for f in fields(cls)]

    @classmethod
    def from_settings(cls, settings: Mapping[str, Any]) -> "ToolGroups":
        """
        Build toggles from a settings mapping.

        Keys may be bare group names ("items") or the stored setting names
        ("webmcp_enable_items"). Missing keys keep their default (enabled).
        """
        values = {}
        for name in cls.names():
            raw = settings.get(name, settings.get(f"webmcp_enable_{name}"))
            values[name] = parse_flag(raw, default=True)
        return cls(**values)

    def as_dict(self) -> dict[str, bool]:
        return {name: getattr(self, name) for name in self.names()}

    def any_enabled(self) -> bool:
        return any(self.as_dict().values())

    def enabled(self) -> list[str]:
        return [name for name, on in self.as_dict().items() if on]


@dataclass
class GatewayConfig:
    """Host-supplied configuration for the gateway, catalog and client."""
    groups: ToolGroups = field(default_factory=ToolGroups)
    csrf_token: Optional[str] = None
    proxy_url: str = DEFAULT_PROXY_URL
    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT
    log_dir: Path = DEFAULT_LOG_DIR
    dev_mode: bool = False
    base_url: Optional[str] = None
    cors_origins: list[str] = field(default_factory=list)

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "GatewayConfig":
        """
        Read configuration from WEBMCP_* environment variables.

        WEBMCP_ENABLE_<GROUP>  - group toggles (default on)
        WEBMCP_CSRF_TOKEN      - fixed anti-forgery token (default: issued per session)
        WEBMCP_PROXY_URL       - gateway endpoint
        WEBMCP_API_HOST/PORT   - bind address for the HTTP gateway
        WEBMCP_LOG_DIR         - log directory
        WEBMCP_DEV_MODE        - auto-reload for local runs
        WEBMCP_BASE_URL        - where agent-side clients reach the gateway
        WEBMCP_CORS_ORIGINS    - comma-separated origins allowed to call the gateway
        """
        env = os.environ if environ is None else environ

        groups = ToolGroups.from_settings({
            name: env.get(f"WEBMCP_ENABLE_{name.upper()}")
            for name in ToolGroups.names()
        })

        return cls(
            groups=groups,
            csrf_token=env.get("WEBMCP_CSRF_TOKEN") or None,
            proxy_url=env.get("WEBMCP_PROXY_URL", DEFAULT_PROXY_URL),
            host=env.get("WEBMCP_API_HOST", DEFAULT_HOST),
            port=int(env.get("WEBMCP_API_PORT", DEFAULT_PORT)),
            log_dir=Path(env.get("WEBMCP_LOG_DIR", str(DEFAULT_LOG_DIR))).expanduser(),
            dev_mode=parse_flag(env.get("WEBMCP_DEV_MODE")),
            base_url=env.get("WEBMCP_BASE_URL") or None,
            cors_origins=[o.strip() for o in env.get("WEBMCP_CORS_ORIGINS", "").split(",") if o.strip()],
        )

    def client_config(self, token: Optional[str]) -> dict[str, Any]:
        """The configuration map handed to the page scripts / agent side."""
        config: dict[str, Any] = self.groups.as_dict()
        config["proxy_url"] = self.proxy_url
        if token:
            config["csrf_token"] = token
        return config

    def gateway_base_url(self) -> str:
        return self.base_url or f"http://{self.host}:{self.port}"

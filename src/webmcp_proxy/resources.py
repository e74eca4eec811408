"""
Read-only agent resources: instance dashboard, single item, site
navigation and API info. All reads go through the gateway like the tools.
"""

import asyncio
from typing import Any

from .catalog import ResourceSpec, ToolCatalog, forward
from .config import GatewayConfig
from .envelope import OPERATION_NAMES, Operation
from .gateway_client import GatewayClient

RECENT_ITEMS = 5

DASHBOARD_COUNTS = {
    "total_items": "items",
    "total_item_sets": "item_sets",
    "total_sites": "sites",
    "total_users": "users",
}


def _identifier(raw: str) -> Any:
    return int(raw) if raw.isdigit() else raw


def register_resources(catalog: ToolCatalog, config: GatewayConfig, gateway: GatewayClient):
    async def dashboard(params: dict[str, str]) -> dict[str, Any]:
        counts = [
            forward(gateway, Operation.search, resource_type, query={"per_page": 0})
            for resource_type in DASHBOARD_COUNTS.values()
        ]
        recent = forward(
            gateway, Operation.search, "items",
            query={"per_page": RECENT_ITEMS, "sort_by": "created", "sort_order": "desc"},
        )
        results = await asyncio.gather(*counts, recent)

        for ok, payload in results:
            if not ok:
                return payload

        summary: dict[str, Any] = {
            key: payload.get("totalResults", 0)
            for key, (_, payload) in zip(DASHBOARD_COUNTS, results)
        }
        summary["recent_items"] = results[-1][1].get("items", [])
        return summary

    async def item(params: dict[str, str]) -> dict[str, Any]:
        _, payload = await forward(gateway, Operation.get, "items", id=_identifier(params["id"]))
        return payload

    async def site_navigation(params: dict[str, str]) -> dict[str, Any]:
        site_id = _identifier(params["id"])
        ok, payload = await forward(gateway, Operation.get, "sites", id=site_id)
        if not ok:
            return payload
        return {"site_id": site_id, "navigation": payload.get("o:navigation") or []}

    async def api_info(params: dict[str, str]) -> dict[str, Any]:
        return {
            "proxy_url": config.proxy_url,
            "operations": sorted(OPERATION_NAMES),
            "groups": config.groups.enabled(),
            "tools": catalog.names(),
        }

    catalog.register_resource(ResourceSpec(
        uri="omeka://dashboard",
        name="omeka-dashboard",
        description="Summary of the instance: item, item set, site and user counts plus recent items.",
        read=dashboard,
    ))
    catalog.register_resource(ResourceSpec(
        uri="omeka://items/{id}",
        name="omeka-item",
        description="Full JSON-LD representation of one item.",
        read=item,
    ))
    catalog.register_resource(ResourceSpec(
        uri="omeka://sites/{id}/navigation",
        name="omeka-site-navigation",
        description="Navigation structure of a site.",
        read=site_navigation,
    ))
    catalog.register_resource(ResourceSpec(
        uri="omeka://api-info",
        name="omeka-api-info",
        description="Gateway endpoint, supported operations, enabled tool groups and tool names.",
        read=api_info,
    ))

"""
Tool catalog and invocation adapter.

A ToolSpec pairs a name, description and JSON-Schema input shape with an
async executor. Executors shape tool input into an envelope, send it
through the GatewayClient and unwrap the result:

    success        -> the data payload
    error result   -> the error ResultEnvelope as-is
    transport fail -> {"error": True, "message": ...}
    declined       -> {"cancelled": True, "message": ...}

Executors never raise; agents always get a JSON object back.

Destructive tools ask for confirmation through the interaction handle the
host passes in. A handle is anything with a request_user_interaction()
method (sync or async) that returns truthy to proceed.
"""

import inspect
import re
import unicodedata
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Mapping, Optional

import httpx
from mcp.types import Resource, ResourceTemplate, Tool

from .envelope import Identifier, Operation, error_result
from .gateway_client import GatewayCallError, GatewayClient
from .properties import AUTO_REFERENCE, PROPERTY_REFERENCE_KEY, normalize_property_data
from .proxy_logger import log_warn

ToolResult = dict[str, Any]
Executor = Callable[[dict[str, Any], Optional[Any]], Awaitable[ToolResult]]
ResourceReader = Callable[[dict[str, str]], Awaitable[ToolResult]]

JSON_MIME_TYPE = "application/json"


# =============================================================================
# Catalog entries
# =============================================================================

@dataclass
class ToolSpec:
    """One agent-invocable tool."""
    name: str
    description: str
    input_schema: dict[str, Any]
    execute: Executor
    group: str
    destructive: bool = False

    def to_mcp_tool(self) -> Tool:
        return Tool(name=self.name, description=self.description, inputSchema=self.input_schema)


@dataclass
class ResourceSpec:
    """
    One read-only resource.

    uri is either a fixed URI ("omeka://dashboard") or a template with
    {placeholders} ("omeka://items/{id}").
    """
    uri: str
    name: str
    description: str
    read: ResourceReader
    mime_type: str = JSON_MIME_TYPE
    _pattern: re.Pattern = field(init=False, repr=False)

    def __post_init__(self):
        parts = re.split(r"\{(\w+)\}", self.uri)
        regex = "".join(
            re.escape(part) if i % 2 == 0 else f"(?P<{part}>[^/]+)"
            for i, part in enumerate(parts)
        )
        self._pattern = re.compile(f"^{regex}$")

    @property
    def is_template(self) -> bool:
        return "{" in self.uri

    def match(self, uri: str) -> Optional[dict[str, str]]:
        """Template parameters if uri matches, None otherwise."""
        found = self._pattern.match(uri)
        return found.groupdict() if found else None

    def to_mcp(self):
        if self.is_template:
            return ResourceTemplate(
                uriTemplate=self.uri,
                name=self.name,
                description=self.description,
                mimeType=self.mime_type,
            )
        return Resource(uri=self.uri, name=self.name, description=self.description, mimeType=self.mime_type)


class ToolCatalog:
    """Registry of tools and resources, keyed by name / URI."""

    def __init__(self):
        self._tools: dict[str, ToolSpec] = {}
        self._resources: list[ResourceSpec] = []

    def register(self, spec: ToolSpec):
        if spec.name in self._tools:
            raise ValueError(f"Tool already registered: {spec.name}")
        self._tools[spec.name] = spec

    def register_resource(self, spec: ResourceSpec):
        if any(r.uri == spec.uri for r in self._resources):
            raise ValueError(f"Resource already registered: {spec.uri}")
        self._resources.append(spec)

    def get(self, name: str) -> Optional[ToolSpec]:
        return self._tools.get(name)

    def tools(self) -> list[ToolSpec]:
        return list(self._tools.values())

    def names(self) -> list[str]:
        return list(self._tools)

    def resources(self) -> list[ResourceSpec]:
        return [r for r in self._resources if not r.is_template]

    def resource_templates(self) -> list[ResourceSpec]:
        return [r for r in self._resources if r.is_template]

    def __len__(self) -> int:
        return len(self._tools)

    def __contains__(self, name: str) -> bool:
        return name in self._tools

    async def call(self, name: str, arguments: Optional[Mapping[str, Any]] = None, interaction: Any = None) -> ToolResult:
        spec = self._tools.get(name)
        if spec is None:
            return error_result(f"Unknown tool: {name}")
        try:
            return await spec.execute(dict(arguments or {}), interaction)
        except Exception as e:
            # Bad input shapes (missing required keys, wrong types) end up here
            log_warn(f"Tool {name} failed: {e.__class__.__name__}: {e}")
            return error_result(str(e) or e.__class__.__name__)

    async def read_resource(self, uri: str) -> ToolResult:
        for spec in self._resources:
            params = spec.match(uri)
            if params is not None:
                return await spec.read(params)
        return error_result(f"Unknown resource: {uri}")


# =============================================================================
# Invocation helpers
# =============================================================================

async def confirm(interaction: Any, message: str) -> bool:
    """
    Ask the host to confirm a destructive action.

    With no handle (or one that cannot prompt) the action proceeds.
    """
    request = getattr(interaction, "request_user_interaction", None)
    if not callable(request):
        return True

    answer = request({"type": "confirm", "message": message})
    if inspect.isawaitable(answer):
        answer = await answer
    return bool(answer)


def cancelled(message: str) -> ToolResult:
    return {"cancelled": True, "message": message}


async def forward(
    gateway: GatewayClient,
    operation: Operation,
    resource_type: str,
    id: Optional[Identifier] = None,
    query: Optional[Mapping[str, Any]] = None,
    data: Any = None,
    ids: Optional[list] = None,
) -> tuple[bool, ToolResult]:
    """
    Send one envelope and unwrap the ResultEnvelope.

    Returns (ok, payload): (True, data) on success, (False, error result)
    on a gateway error result or a transport failure.
    """
    try:
        result = await gateway.call(operation, resource_type, id=id, query=query, data=data, ids=ids)
    except GatewayCallError as e:
        return False, error_result(e.message)
    except httpx.HTTPError as e:
        return False, error_result(str(e) or e.__class__.__name__)

    if result.get("error"):
        return False, result
    return True, result.get("data")


async def forward_data(gateway: GatewayClient, operation: Operation, resource_type: str, **fields) -> ToolResult:
    """forward() for tools that hand back whatever the gateway returns."""
    _, payload = await forward(gateway, operation, resource_type, **fields)
    return payload


# =============================================================================
# Convenience fields
# =============================================================================

def literal(value: Any) -> list[dict[str, Any]]:
    """A one-element literal value list for a vocabulary term."""
    return [{"type": "literal", "@value": value, PROPERTY_REFERENCE_KEY: AUTO_REFERENCE}]


def build_item_data(tool_input: Mapping[str, Any]) -> dict[str, Any]:
    """
    Normalized `properties` plus title/description convenience fields.

    Explicit JSON-LD values in `properties` win over the convenience fields.
    """
    properties = tool_input.get("properties")
    data = normalize_property_data(properties) if isinstance(properties, Mapping) else {}

    if tool_input.get("title") and not data.get("dcterms:title"):
        data["dcterms:title"] = literal(tool_input["title"])
    if tool_input.get("description") and not data.get("dcterms:description"):
        data["dcterms:description"] = literal(tool_input["description"])
    return data


def slugify(title: str) -> str:
    """URL slug: lowercase, diacritics stripped, runs of other characters become '-'."""
    decomposed = unicodedata.normalize("NFD", title.lower())
    ascii_only = "".join(c for c in decomposed if not unicodedata.combining(c))
    return re.sub(r"[^a-z0-9]+", "-", ascii_only).strip("-")


def first_of(tool_input: Mapping[str, Any], *keys: str) -> Any:
    """First truthy value among keys (plain and o:-prefixed spellings)."""
    for key in keys:
        if tool_input.get(key):
            return tool_input[key]
    return None


def reference(id: Identifier) -> dict[str, Identifier]:
    return {"o:id": id}

"""
Agent tool table.

build_catalog() registers the tools of every enabled group, plus the
read-only resources when at least one group is on. A disabled group's
tools are simply never registered.

Role requirements in descriptions are documentation for the agent; the
backend enforces permissions.
"""

from typing import Any, Callable, Mapping

from .catalog import (
    ToolCatalog,
    ToolSpec,
    build_item_data,
    cancelled,
    confirm,
    first_of,
    forward,
    forward_data,
    literal,
    reference,
    slugify,
)
from .config import GatewayConfig
from .envelope import Operation
from .gateway_client import GatewayClient
from .properties import is_vocabulary_term
from .resources import register_resources

EDITOR_ROLES = "Requires role: editor, site_admin, or global_admin."
ADMIN_ROLE = "Requires role: global_admin."

USER_ROLES = ["global_admin", "site_admin", "editor", "reviewer", "author", "researcher"]

DEFAULT_PER_PAGE = 25

# Convenience field -> Dublin Core term
DUBLIN_CORE_FIELDS = {
    "title": "dcterms:title",
    "description": "dcterms:description",
    "creator": "dcterms:creator",
    "contributor": "dcterms:contributor",
    "date": "dcterms:date",
    "type": "dcterms:type",
    "format": "dcterms:format",
    "identifier": "dcterms:identifier",
    "language": "dcterms:language",
    "publisher": "dcterms:publisher",
    "rights": "dcterms:rights",
    "source": "dcterms:source",
    "relation": "dcterms:relation",
    "coverage": "dcterms:coverage",
}

# Media tool name -> (ingester, field carrying the source, description)
MEDIA_INGESTERS = {
    "add-media-url": (
        "url", "ingest_url",
        "Attach media to an item by fetching it from a public URL (image, audio, video, PDF). "
        "The backend downloads and stores the file.",
    ),
    "add-media-html": (
        "html", "html",
        "Attach an HTML snippet as media to an item. The HTML is stored inline.",
    ),
    "add-media-embed": (
        "oembed", "o:source",
        "Attach oEmbed media (Vimeo, SoundCloud, Flickr, ...) to an item by its canonical URL.",
    ),
    "add-media-youtube": (
        "youtube", "o:source",
        "Attach a YouTube video to an item. Optionally set start/end times in seconds.",
    ),
    "add-media-iiif": (
        "iiif", "o:source",
        "Attach a IIIF Image API resource to an item, given its info.json URL.",
    ),
    "add-media-iiif-presentation": (
        "iiif_presentation", "o:source",
        "Attach a IIIF Presentation manifest to an item, given the manifest URL.",
    ),
}


# =============================================================================
# Schema helpers
# =============================================================================

def _schema(properties: dict[str, Any], required: tuple[str, ...] = ()) -> dict[str, Any]:
    schema: dict[str, Any] = {"type": "object", "properties": properties}
    if required:
        schema["required"] = list(required)
    return schema


def _integer(description: str, **extra) -> dict[str, Any]:
    return {"type": "integer", "description": description, **extra}


def _string(description: str, **extra) -> dict[str, Any]:
    return {"type": "string", "description": description, **extra}


PROPERTIES_FIELD = {
    "type": "object",
    "description": (
        'Additional properties in JSON-LD format, e.g. '
        '{"dcterms:subject": [{"type": "literal", "@value": "History"}]}.'
    ),
}

PAGING_FIELDS = {
    "per_page": _integer("Results per page.", default=DEFAULT_PER_PAGE),
    "page": _integer("Page number.", default=1),
}


def _paging(tool_input: Mapping[str, Any]) -> dict[str, Any]:
    return {
        "per_page": tool_input.get("per_page") or DEFAULT_PER_PAGE,
        "page": tool_input.get("page") or 1,
    }


def item_payload(tool_input: Mapping[str, Any]) -> dict[str, Any]:
    """Item data from create-item style input."""
    data = build_item_data(tool_input)
    if tool_input.get("resource_template_id"):
        data["o:resource_template"] = reference(tool_input["resource_template_id"])
    if tool_input.get("item_set_ids"):
        data["o:item_set"] = [reference(i) for i in tool_input["item_set_ids"]]
    return data


def batch_item_payload(element: Mapping[str, Any]) -> dict[str, Any]:
    """
    One batch-create element. Term keys given at the top level are treated
    like `properties`; o: keys pass through.
    """
    terms = {k: v for k, v in element.items() if is_vocabulary_term(k)}
    explicit = element.get("properties") if isinstance(element.get("properties"), Mapping) else {}
    data = item_payload({**element, "properties": {**terms, **explicit}})
    for key, value in element.items():
        if key.startswith("o:"):
            data.setdefault(key, value)
    return data


def _delete_tool(
    gateway: GatewayClient,
    name: str,
    resource_type: str,
    label: str,
    group: str,
    roles: str,
) -> ToolSpec:
    async def execute(tool_input: dict[str, Any], interaction: Any = None):
        resource_id = tool_input["id"]
        message = f"Are you sure you want to delete {label} #{resource_id}? This action cannot be undone."
        if not await confirm(interaction, message):
            return cancelled("Deletion cancelled by user.")

        ok, payload = await forward(gateway, Operation.delete, resource_type, id=resource_id)
        if not ok:
            return payload
        return {"success": True, "message": f"{label.capitalize()} #{resource_id} deleted."}

    return ToolSpec(
        name=name,
        description=f"Delete a single {label} by ID. Asks for confirmation first. {roles}",
        input_schema=_schema({"id": _integer(f"{label.capitalize()} ID to delete.")}, required=("id",)),
        execute=execute,
        group=group,
        destructive=True,
    )


def _search_tool(
    gateway: GatewayClient,
    name: str,
    description: str,
    resource_type: str,
    group: str,
    properties: dict[str, Any],
    required: tuple[str, ...] = (),
    query_builder: Callable[[Mapping[str, Any]], dict[str, Any]] = lambda tool_input: {},
) -> ToolSpec:
    async def execute(tool_input: dict[str, Any], interaction: Any = None):
        return await forward_data(gateway, Operation.search, resource_type, query=query_builder(tool_input))

    return ToolSpec(name, description, _schema(properties, required), execute, group)


def _get_tool(gateway: GatewayClient, name: str, description: str, resource_type: str, group: str, id_description: str) -> ToolSpec:
    async def execute(tool_input: dict[str, Any], interaction: Any = None):
        return await forward_data(gateway, Operation.get, resource_type, id=tool_input["id"])

    return ToolSpec(name, description, _schema({"id": _integer(id_description)}, ("id",)), execute, group)


# =============================================================================
# Groups
# =============================================================================

def item_tools(gateway: GatewayClient) -> list[ToolSpec]:
    async def create_item(tool_input, interaction=None):
        return await forward_data(gateway, Operation.create, "items", data=item_payload(tool_input))

    async def update_item(tool_input, interaction=None):
        return await forward_data(gateway, Operation.update, "items", id=tool_input["id"], data=build_item_data(tool_input))

    async def catalog_item(tool_input, interaction=None):
        properties = tool_input.get("properties")
        data = build_item_data({"properties": properties}) if isinstance(properties, Mapping) else {}

        for field_name, term in DUBLIN_CORE_FIELDS.items():
            if tool_input.get(field_name) and not data.get(term):
                data[term] = literal(tool_input[field_name])

        subject = tool_input.get("subject")
        if subject and not data.get("dcterms:subject"):
            subjects = subject if isinstance(subject, list) else [subject]
            data["dcterms:subject"] = [value for s in subjects for value in literal(s)]

        if tool_input.get("resource_template_id"):
            data["o:resource_template"] = reference(tool_input["resource_template_id"])

        resource_class = tool_input.get("resource_class")
        if resource_class:
            prefix, _, local_name = str(resource_class).partition(":")
            not_found = {
                "error": True,
                "message": f'Resource class "{resource_class}" not found. '
                           f"Use list-resource-classes to browse available classes.",
            }
            if not local_name:
                return not_found
            ok, found = await forward(
                gateway, Operation.search, "resource_classes",
                query={"vocabulary_prefix": prefix, "local_name": local_name},
            )
            if not ok or not (found or {}).get("items"):
                return not_found
            data["o:resource_class"] = reference(found["items"][0]["o:id"])

        return await forward_data(gateway, Operation.update, "items", id=tool_input["id"], data=data)

    def search_query(tool_input):
        query = {}
        for key in ("fulltext_search", "resource_template_id", "item_set_id"):
            if tool_input.get(key):
                query[key] = tool_input[key]
        query.update(_paging(tool_input))
        if isinstance(tool_input.get("property"), list):
            query["property"] = tool_input["property"]
        return query

    catalog_fields = {
        "id": _integer("Item ID to catalog."),
        **{name: _string(f"{term} value.") for name, term in DUBLIN_CORE_FIELDS.items()},
        "subject": {
            "description": "dcterms:subject value(s). A string or an array of strings.",
            "oneOf": [{"type": "string"}, {"type": "array", "items": {"type": "string"}}],
        },
        "resource_class": _string(
            'RDF class term, e.g. "dctype:Image", "foaf:Person". See list-resource-classes.'
        ),
        "resource_template_id": _integer("Resource template ID. See list-resource-templates."),
        "properties": PROPERTIES_FIELD,
    }

    return [
        ToolSpec(
            "create-item",
            f"Create a new item. {EDITOR_ROLES}",
            _schema({
                "title": _string("Item title (mapped to dcterms:title)."),
                "description": _string("Item description (mapped to dcterms:description)."),
                "resource_template_id": _integer("Optional resource template ID."),
                "item_set_ids": {"type": "array", "items": {"type": "integer"}, "description": "Optional item set IDs."},
                "properties": PROPERTIES_FIELD,
            }),
            create_item,
            "items",
        ),
        ToolSpec(
            "update-item",
            f"Update an existing item. Fields not given are kept. {EDITOR_ROLES}",
            _schema({
                "id": _integer("Item ID to update."),
                "title": _string("New title (mapped to dcterms:title)."),
                "description": _string("New description (mapped to dcterms:description)."),
                "properties": PROPERTIES_FIELD,
            }, ("id",)),
            update_item,
            "items",
        ),
        _delete_tool(gateway, "delete-item", "items", "item", "items", EDITOR_ROLES),
        _search_tool(
            gateway, "search-items", "Search for items.", "items", "items",
            {
                "fulltext_search": _string("Full-text search query."),
                "resource_template_id": _integer("Filter by resource template ID."),
                "item_set_id": _integer("Filter by item set ID."),
                "property": {
                    "type": "array",
                    "description": "Property filters.",
                    "items": {
                        "type": "object",
                        "properties": {"property": {"type": "string"}, "type": {"type": "string"}, "text": {"type": "string"}},
                    },
                },
                **PAGING_FIELDS,
            },
            query_builder=search_query,
        ),
        _get_tool(gateway, "get-item", "Get a single item by ID.", "items", "items", "Item ID."),
        ToolSpec(
            "catalog-item",
            "Set catalog metadata on an existing item: Dublin Core fields, resource class "
            f"and resource template. {EDITOR_ROLES}",
            _schema(catalog_fields, ("id",)),
            catalog_item,
            "items",
        ),
    ]


def media_tools(gateway: GatewayClient) -> list[ToolSpec]:
    async def upload_media(tool_input, interaction=None):
        item_id = tool_input["item_id"]
        return {
            "success": True,
            "message": f"Upload media for item #{item_id} from its edit page.",
            "url": f"/admin/item/{item_id}/edit#media",
        }

    def make_ingest(ingester: str, source_field: str):
        async def execute(tool_input, interaction=None):
            source_input = "html" if ingester == "html" else "url"
            data: dict[str, Any] = {
                "o:ingester": ingester,
                "o:item": reference(tool_input["item_id"]),
                source_field: tool_input[source_input],
            }
            if ingester == "youtube":
                for bound in ("start", "end"):
                    if tool_input.get(bound) is not None:
                        data[bound] = str(tool_input[bound])
            if tool_input.get("title"):
                data["dcterms:title"] = literal(tool_input["title"])
            return await forward_data(gateway, Operation.create, "media", data=data)
        return execute

    specs = [
        ToolSpec(
            "upload-media",
            "Get the edit page URL where files can be uploaded to an item.",
            _schema({"item_id": _integer("The item ID to attach the media to.")}, ("item_id",)),
            upload_media,
            "media",
        ),
        _search_tool(
            gateway, "list-media", "List media attached to an item.", "media", "media",
            {"item_id": _integer("Item ID.")}, ("item_id",),
            query_builder=lambda tool_input: {"item_id": tool_input["item_id"]},
        ),
    ]

    for name, (ingester, source_field, description) in MEDIA_INGESTERS.items():
        source_input = "html" if ingester == "html" else "url"
        properties = {
            "item_id": _integer("ID of the item to attach the media to."),
            source_input: _string("HTML content to store." if ingester == "html" else "Source URL."),
            "title": _string("Optional media title (mapped to dcterms:title)."),
        }
        if ingester == "youtube":
            properties["start"] = _integer("Optional start time in seconds.")
            properties["end"] = _integer("Optional end time in seconds.")
        specs.append(ToolSpec(
            name,
            f"{description} {EDITOR_ROLES}",
            _schema(properties, ("item_id", source_input)),
            make_ingest(ingester, source_field),
            "media",
        ))

    return specs


def item_set_tools(gateway: GatewayClient) -> list[ToolSpec]:
    async def create_item_set(tool_input, interaction=None):
        return await forward_data(gateway, Operation.create, "item_sets", data=build_item_data(tool_input))

    async def update_item_set(tool_input, interaction=None):
        return await forward_data(gateway, Operation.update, "item_sets", id=tool_input["id"], data=build_item_data(tool_input))

    return [
        ToolSpec(
            "create-item-set",
            f"Create a new item set (collection). {EDITOR_ROLES}",
            _schema({
                "title": _string("Item set title (mapped to dcterms:title)."),
                "description": _string("Item set description (mapped to dcterms:description)."),
                "properties": PROPERTIES_FIELD,
            }),
            create_item_set,
            "item_sets",
        ),
        ToolSpec(
            "update-item-set",
            f"Update an existing item set. Fields not given are kept. {EDITOR_ROLES}",
            _schema({
                "id": _integer("Item set ID to update."),
                "title": _string("New title (mapped to dcterms:title)."),
                "description": _string("New description (mapped to dcterms:description)."),
                "properties": PROPERTIES_FIELD,
            }, ("id",)),
            update_item_set,
            "item_sets",
        ),
        _delete_tool(gateway, "delete-item-set", "item_sets", "item set", "item_sets", EDITOR_ROLES),
        _search_tool(
            gateway, "list-item-sets", "List item sets (collections).", "item_sets", "item_sets",
            dict(PAGING_FIELDS), query_builder=_paging,
        ),
    ]


def site_tools(gateway: GatewayClient) -> list[ToolSpec]:
    async def create_site(tool_input, interaction=None):
        title = first_of(tool_input, "title", "o:title") or ""
        data = {
            "o:title": title,
            "o:slug": first_of(tool_input, "slug", "o:slug") or slugify(title),
            "o:theme": first_of(tool_input, "theme", "o:theme") or "default",
        }
        return await forward_data(gateway, Operation.create, "sites", data=data)

    async def update_site(tool_input, interaction=None):
        data = {}
        for field_name in ("title", "slug", "theme"):
            value = first_of(tool_input, field_name, f"o:{field_name}")
            if value:
                data[f"o:{field_name}"] = value
        return await forward_data(gateway, Operation.update, "sites", id=tool_input["id"], data=data)

    return [
        ToolSpec(
            "create-site",
            f"Create a new site. {ADMIN_ROLE}",
            _schema({
                "title": _string("Site title."),
                "slug": _string('URL slug, e.g. "my-site". Generated from the title if omitted.'),
                "theme": _string("Theme name (optional)."),
            }, ("title",)),
            create_site,
            "sites",
        ),
        ToolSpec(
            "update-site",
            f"Update an existing site. {ADMIN_ROLE}",
            _schema({
                "id": _integer("Site ID to update."),
                "title": _string("New title."),
                "slug": _string("New URL slug."),
                "theme": _string("New theme name."),
            }, ("id",)),
            update_site,
            "sites",
        ),
        _search_tool(gateway, "list-sites", "List all sites.", "sites", "sites", {}),
    ]


def user_tools(gateway: GatewayClient) -> list[ToolSpec]:
    async def create_user(tool_input, interaction=None):
        data = {
            "o:name": first_of(tool_input, "name", "o:name"),
            "o:email": first_of(tool_input, "email", "o:email"),
            # Inactive accounts cannot log in
            "o:is_active": True,
        }
        role = first_of(tool_input, "role", "o:role")
        if role:
            data["o:role"] = role
        return await forward_data(gateway, Operation.create, "users", data=data)

    async def update_user(tool_input, interaction=None):
        data = {}
        for field_name in ("name", "email", "role"):
            value = first_of(tool_input, field_name, f"o:{field_name}")
            if value:
                data[f"o:{field_name}"] = value
        return await forward_data(gateway, Operation.update, "users", id=tool_input["id"], data=data)

    return [
        ToolSpec(
            "create-user",
            f"Create a new user. {ADMIN_ROLE}",
            _schema({
                "name": _string("User display name."),
                "email": _string("User email address."),
                "role": _string("User role.", enum=USER_ROLES),
            }, ("name", "email", "role")),
            create_user,
            "users",
        ),
        ToolSpec(
            "update-user",
            f"Update an existing user. {ADMIN_ROLE}",
            _schema({
                "id": _integer("User ID to update."),
                "name": _string("New display name."),
                "email": _string("New email address."),
                "role": _string("New role.", enum=USER_ROLES),
            }, ("id",)),
            update_user,
            "users",
        ),
        _delete_tool(gateway, "delete-user", "users", "user", "users", ADMIN_ROLE),
        _search_tool(gateway, "list-users", f"List all users. {ADMIN_ROLE}", "users", "users", {}),
    ]


def vocabulary_tools(gateway: GatewayClient) -> list[ToolSpec]:
    def class_query(tool_input):
        if tool_input.get("vocabulary_prefix"):
            return {"vocabulary_prefix": tool_input["vocabulary_prefix"]}
        return {}

    return [
        _search_tool(
            gateway, "list-vocabularies", "List available vocabularies (e.g. Dublin Core).",
            "vocabularies", "vocabularies", {},
        ),
        _search_tool(
            gateway, "list-resource-classes",
            "List RDF resource classes (e.g. dctype:Image, foaf:Person). "
            "The returned term is what catalog-item accepts as resource_class.",
            "resource_classes", "vocabularies",
            {"vocabulary_prefix": _string('Filter by vocabulary prefix, e.g. "dctype", "foaf".')},
            query_builder=class_query,
        ),
        _search_tool(
            gateway, "list-properties", "List the properties of a vocabulary.",
            "properties", "vocabularies",
            {"vocabulary_id": _integer("Vocabulary ID.")}, ("vocabulary_id",),
            query_builder=lambda tool_input: {"vocabulary_id": tool_input["vocabulary_id"]},
        ),
        _search_tool(
            gateway, "list-resource-templates", "List resource templates.",
            "resource_templates", "vocabularies", {},
        ),
        _get_tool(
            gateway, "get-resource-template", "Get a resource template by ID.",
            "resource_templates", "vocabularies", "Resource template ID.",
        ),
    ]


def bulk_tools(gateway: GatewayClient) -> list[ToolSpec]:
    async def batch_create_items(tool_input, interaction=None):
        elements = [batch_item_payload(e) if isinstance(e, Mapping) else e for e in tool_input["items"]]
        return await forward_data(gateway, Operation.batch_create, "items", data=elements)

    async def batch_delete_items(tool_input, interaction=None):
        ids = list(tool_input["ids"])
        message = f"Are you sure you want to delete {len(ids)} item(s)? This action cannot be undone."
        if not await confirm(interaction, message):
            return cancelled("Batch deletion cancelled by user.")
        return await forward_data(gateway, Operation.batch_delete, "items", ids=ids)

    return [
        ToolSpec(
            "batch-create-items",
            "Create several items in one call. Each element takes the create-item fields. "
            "One failing element does not stop the others.",
            _schema({
                "items": {"type": "array", "description": "Item objects to create.", "items": {"type": "object"}},
            }, ("items",)),
            batch_create_items,
            "bulk",
        ),
        ToolSpec(
            "batch-delete-items",
            "Delete several items. Asks for confirmation first.",
            _schema({
                "ids": {"type": "array", "items": {"type": "integer"}, "description": "Item IDs to delete."},
            }, ("ids",)),
            batch_delete_items,
            "bulk",
            destructive=True,
        ),
    ]


GROUP_BUILDERS: dict[str, Callable[[GatewayClient], list[ToolSpec]]] = {
    "items": item_tools,
    "media": media_tools,
    "item_sets": item_set_tools,
    "sites": site_tools,
    "users": user_tools,
    "vocabularies": vocabulary_tools,
    "bulk": bulk_tools,
}


def build_catalog(config: GatewayConfig, gateway: GatewayClient) -> ToolCatalog:
    """Register the tools of every enabled group, then the resources."""
    catalog = ToolCatalog()
    for group in config.groups.enabled():
        for spec in GROUP_BUILDERS[group](gateway):
            catalog.register(spec)

    if config.groups.any_enabled():
        register_resources(catalog, config, gateway)

    return catalog

"""
Tool catalog tests.

Tools are driven end to end: catalog -> GatewayClient -> ASGI app ->
dispatcher -> in-memory backend. The backend's call log shows what each
tool actually sent.
"""

import asyncio

import pytest
from harness import AsyncConfirmingInteraction, ConfirmingInteraction, literal_value

from webmcp_proxy.catalog import (
    ResourceSpec,
    ToolCatalog,
    ToolSpec,
    build_item_data,
    confirm,
    slugify,
)
from webmcp_proxy.config import GatewayConfig, ToolGroups
from webmcp_proxy.gateway_client import GatewayClient
from webmcp_proxy.tools import GROUP_BUILDERS, batch_item_payload, build_catalog


# =============================================================================
# FIXTURES
# =============================================================================

@pytest.fixture
def call_tool(run_agent, config):
    """call_tool(name, arguments, interaction=None) -> tool result"""
    def runner(name, arguments, interaction=None, gateway_config=None):
        async def scenario(gateway):
            catalog = build_catalog(gateway_config or config, gateway)
            return await catalog.call(name, arguments, interaction)
        return run_agent(scenario, gateway_config)
    return runner


def offline_catalog(**groups) -> ToolCatalog:
    config = GatewayConfig(groups=ToolGroups(**groups))
    return build_catalog(config, GatewayClient(config))


def seed_item(backend, title, **extra):
    return backend.create("items", {
        "dcterms:title": [{"property_id": "auto", "@value": title}],
        **extra,
    })


# =============================================================================
# FIELD SHAPING
# =============================================================================

class TestFieldShaping:

    def test_title_and_description_become_terms(self):
        data = build_item_data({"title": "Lighthouse", "description": "On the cliff"})
        assert data == {
            "dcterms:title": [{"type": "literal", "@value": "Lighthouse", "property_id": "auto"}],
            "dcterms:description": [{"type": "literal", "@value": "On the cliff", "property_id": "auto"}],
        }

    def test_explicit_term_wins_over_convenience_field(self):
        data = build_item_data({
            "title": "Ignored",
            "properties": {"dcterms:title": literal_value("Explicit")},
        })
        assert [v["@value"] for v in data["dcterms:title"]] == ["Explicit"]
        assert data["dcterms:title"][0]["property_id"] == "auto"

    def test_batch_element_top_level_terms(self):
        data = batch_item_payload({
            "title": "A",
            "dcterms:subject": literal_value("Maps"),
            "o:item_set": [{"o:id": 3}],
        })
        assert data["dcterms:title"][0]["@value"] == "A"
        assert data["dcterms:subject"][0]["property_id"] == "auto"
        assert data["o:item_set"] == [{"o:id": 3}]

    @pytest.mark.parametrize("title, slug", [
        ("My Site", "my-site"),
        ("Café Society: 1920s!", "cafe-society-1920s"),
        ("  --Already-Sluggy--  ", "already-sluggy"),
    ])
    def test_slugify(self, title, slug):
        assert slugify(title) == slug


# =============================================================================
# CONFIRMATION
# =============================================================================

class TestConfirm:

    def test_no_handle_proceeds(self):
        assert asyncio.run(confirm(None, "Sure?")) is True

    def test_sync_handle(self):
        interaction = ConfirmingInteraction(False)
        assert asyncio.run(confirm(interaction, "Sure?")) is False
        assert interaction.requests == [{"type": "confirm", "message": "Sure?"}]

    def test_async_handle(self):
        assert asyncio.run(confirm(AsyncConfirmingInteraction(True), "Sure?")) is True


# =============================================================================
# CATALOG STRUCTURE
# =============================================================================

class TestCatalogStructure:

    def test_every_group_registered(self):
        catalog = offline_catalog()
        groups = {spec.group for spec in catalog.tools()}
        assert groups == set(GROUP_BUILDERS)
        assert "create-item" in catalog
        assert "batch-delete-items" in catalog

    def test_disabled_group_never_registered(self):
        catalog = offline_catalog(users=False, media=False)
        assert "create-user" not in catalog
        assert "add-media-url" not in catalog
        assert "create-item" in catalog

    def test_all_disabled_means_nothing(self):
        catalog = offline_catalog(**{name: False for name in ToolGroups.names()})
        assert len(catalog) == 0
        assert catalog.resources() == []
        assert catalog.resource_templates() == []

    def test_resources_registered(self):
        catalog = offline_catalog()
        assert [r.uri for r in catalog.resources()] == ["omeka://dashboard", "omeka://api-info"]
        assert [r.uri for r in catalog.resource_templates()] == [
            "omeka://items/{id}", "omeka://sites/{id}/navigation",
        ]

    def test_destructive_tools_flagged(self):
        catalog = offline_catalog()
        destructive = sorted(spec.name for spec in catalog.tools() if spec.destructive)
        assert destructive == ["batch-delete-items", "delete-item", "delete-item-set", "delete-user"]

    def test_duplicate_name_rejected(self):
        catalog = ToolCatalog()

        async def noop(tool_input, interaction=None):
            return {}

        catalog.register(ToolSpec("x", "X", {"type": "object"}, noop, "items"))
        with pytest.raises(ValueError):
            catalog.register(ToolSpec("x", "X again", {"type": "object"}, noop, "items"))

    def test_mcp_tool_conversion(self):
        tool = offline_catalog().get("get-item").to_mcp_tool()
        assert tool.name == "get-item"
        assert tool.inputSchema["required"] == ["id"]

    def test_resource_template_matching(self):
        async def read(params):
            return params

        spec = ResourceSpec("omeka://sites/{id}/navigation", "nav", "Navigation", read)
        assert spec.match("omeka://sites/4/navigation") == {"id": "4"}
        assert spec.match("omeka://sites/4") is None
        assert spec.match("omeka://sites/4/5/navigation") is None

    def test_unknown_tool(self):
        result = asyncio.run(offline_catalog().call("summon-item", {}))
        assert result == {"error": True, "message": "Unknown tool: summon-item"}

    def test_missing_required_argument_is_error_result(self):
        result = asyncio.run(offline_catalog().call("get-item", {}))
        assert result["error"] is True


# =============================================================================
# ITEM TOOLS
# =============================================================================

class TestItemTools:

    def test_create_item(self, call_tool, backend):
        collection = backend.create("item_sets", {})
        result = call_tool("create-item", {
            "title": "Lighthouse",
            "description": "On the cliff",
            "item_set_ids": [collection["o:id"]],
        })
        assert result["o:title"] == "Lighthouse"
        assert result["o:item_set"] == [{"o:id": collection["o:id"]}]
        assert result["dcterms:description"][0]["@value"] == "On the cliff"

    def test_update_item_keeps_unstated_fields(self, call_tool, backend):
        item = seed_item(backend, "Old", **{"dcterms:creator": [{"property_id": "auto", "@value": "Ada"}]})
        result = call_tool("update-item", {"id": item["o:id"], "title": "New"})
        assert result["o:title"] == "New"
        assert result["dcterms:creator"][0]["@value"] == "Ada"

    def test_get_missing_item(self, call_tool):
        result = call_tool("get-item", {"id": 77})
        assert result["error"] is True
        assert result["message"].startswith("Not found.")

    def test_search_items_paging(self, call_tool, backend):
        for title in ("A", "B", "C"):
            seed_item(backend, title)
        result = call_tool("search-items", {"per_page": 2, "page": 2})
        assert result["totalResults"] == 3
        assert [i["o:title"] for i in result["items"]] == ["C"]
        assert backend.calls[-1] == ("search", "items", {"per_page": 2, "page": 2})

    def test_search_items_default_paging(self, call_tool, backend):
        call_tool("search-items", {"fulltext_search": "harbour"})
        assert backend.calls[-1] == ("search", "items", {"fulltext_search": "harbour", "per_page": 25, "page": 1})

    def test_catalog_item_sets_dublin_core_and_class(self, call_tool, backend):
        item = seed_item(backend, "Scan 12")
        result = call_tool("catalog-item", {
            "id": item["o:id"],
            "creator": "Ada",
            "subject": ["Maps", "Coast"],
            "resource_class": "dctype:StillImage",
        })

        image_class = backend.search("resource_classes", {"local_name": "StillImage"}).items[0]
        assert result["o:resource_class"] == {"o:id": image_class["o:id"]}
        assert result["dcterms:creator"][0]["@value"] == "Ada"
        assert [v["@value"] for v in result["dcterms:subject"]] == ["Maps", "Coast"]
        assert result["o:title"] == "Scan 12"

    @pytest.mark.parametrize("resource_class", ["dctype:Hologram", "StillImage"])
    def test_catalog_item_unknown_class(self, call_tool, backend, resource_class):
        item = seed_item(backend, "Scan 12")
        backend.calls.clear()
        result = call_tool("catalog-item", {"id": item["o:id"], "resource_class": resource_class})
        assert result == {
            "error": True,
            "message": f'Resource class "{resource_class}" not found. '
                       "Use list-resource-classes to browse available classes.",
        }
        assert backend.mutations() == []


# =============================================================================
# DESTRUCTIVE TOOLS
# =============================================================================

class TestDeleteTools:

    def test_declined_sends_nothing(self, call_tool, backend):
        item = seed_item(backend, "Keep")
        backend.calls.clear()
        interaction = ConfirmingInteraction(False)

        result = call_tool("delete-item", {"id": item["o:id"]}, interaction)

        assert result == {"cancelled": True, "message": "Deletion cancelled by user."}
        assert backend.calls == []
        assert interaction.requests[0]["message"] == (
            f"Are you sure you want to delete item #{item['o:id']}? This action cannot be undone."
        )

    def test_accepted(self, call_tool, backend):
        item = seed_item(backend, "Go")
        result = call_tool("delete-item", {"id": item["o:id"]}, AsyncConfirmingInteraction(True))
        assert result == {"success": True, "message": f"Item #{item['o:id']} deleted."}
        assert backend.search("items", {}).total_results == 0

    def test_delete_user_label(self, call_tool, backend):
        user = backend.create("users", {"o:name": "Ada", "o:email": "ada@example.org"})
        result = call_tool("delete-user", {"id": user["o:id"]})
        assert result["message"] == f"User #{user['o:id']} deleted."

    def test_delete_missing_passes_error_through(self, call_tool):
        result = call_tool("delete-item-set", {"id": 5}, ConfirmingInteraction(True))
        assert result["error"] is True

    def test_batch_delete_declined(self, call_tool, backend):
        interaction = ConfirmingInteraction(False)
        result = call_tool("batch-delete-items", {"ids": [1, 2]}, interaction)
        assert result == {"cancelled": True, "message": "Batch deletion cancelled by user."}
        assert interaction.requests[0]["message"].startswith("Are you sure you want to delete 2 item(s)?")
        assert backend.calls == []

    def test_batch_delete_partial(self, call_tool, backend):
        item = seed_item(backend, "A")
        result = call_tool("batch-delete-items", {"ids": [item["o:id"], 404]}, ConfirmingInteraction(True))
        assert result["deleted"] == 1
        assert result["failed"] == 1
        assert result["errors"][0]["id"] == 404


class TestBatchCreate:

    def test_mixed_batch(self, call_tool):
        result = call_tool("batch-create-items", {"items": [
            {"title": "A"},
            {"foo:bar": literal_value("nope")},
            {"title": "C", "dcterms:subject": literal_value("Maps")},
        ]})
        assert result["created"] == 2
        assert result["failed"] == 1
        assert result["errors"][0]["index"] == 1
        assert result["items"][1]["dcterms:subject"][0]["@value"] == "Maps"


# =============================================================================
# MEDIA, SITES, USERS, VOCABULARIES
# =============================================================================

class TestMediaTools:

    def test_upload_media_points_at_edit_page(self, call_tool, backend):
        result = call_tool("upload-media", {"item_id": 9})
        assert result["url"] == "/admin/item/9/edit#media"
        assert backend.calls == []

    def test_add_media_url(self, call_tool, backend):
        item = seed_item(backend, "Host")
        result = call_tool("add-media-url", {"item_id": item["o:id"], "url": "https://example.org/a.jpg", "title": "A"})
        assert result["o:ingester"] == "url"
        assert result["ingest_url"] == "https://example.org/a.jpg"
        assert result["o:item"] == {"o:id": item["o:id"]}
        assert result["o:title"] == "A"

    def test_add_media_youtube_bounds_are_strings(self, call_tool, backend):
        item = seed_item(backend, "Host")
        call_tool("add-media-youtube", {
            "item_id": item["o:id"], "url": "https://youtu.be/xyz", "start": 10, "end": 70,
        })
        _, resource_type, data = backend.mutations()[-1]
        assert resource_type == "media"
        assert data["o:source"] == "https://youtu.be/xyz"
        assert (data["start"], data["end"]) == ("10", "70")

    def test_add_media_html(self, call_tool, backend):
        item = seed_item(backend, "Host")
        result = call_tool("add-media-html", {"item_id": item["o:id"], "html": "<p>Hi</p>"})
        assert result["html"] == "<p>Hi</p>"

    def test_media_for_missing_item_fails(self, call_tool):
        result = call_tool("add-media-iiif", {"item_id": 99, "url": "https://iiif.example.org/info.json"})
        assert result["error"] is True

    def test_list_media(self, call_tool, backend):
        item = seed_item(backend, "Host")
        other = seed_item(backend, "Other")
        backend.create("media", {"o:item": {"o:id": item["o:id"]}, "o:ingester": "html", "html": "<p/>"})
        backend.create("media", {"o:item": {"o:id": other["o:id"]}, "o:ingester": "html", "html": "<p/>"})
        assert call_tool("list-media", {"item_id": item["o:id"]})["totalResults"] == 1


class TestSiteAndUserTools:

    def test_create_site_generates_slug(self, call_tool):
        result = call_tool("create-site", {"title": "Harbour Archive"})
        assert result["o:slug"] == "harbour-archive"
        assert result["o:theme"] == "default"

    def test_update_site_keeps_other_fields(self, call_tool, backend):
        site = backend.create("sites", {"o:title": "A", "o:slug": "a", "o:theme": "cozy"})
        result = call_tool("update-site", {"id": site["o:id"], "title": "B"})
        assert result["o:title"] == "B"
        assert result["o:theme"] == "cozy"

    def test_create_user_is_active(self, call_tool):
        result = call_tool("create-user", {"name": "Ada", "email": "ada@example.org", "role": "editor"})
        assert result["o:is_active"] is True
        assert result["o:role"] == "editor"

    def test_create_user_bad_role(self, call_tool):
        result = call_tool("create-user", {"name": "Ada", "email": "ada@example.org", "role": "pharaoh"})
        assert result == {"error": True, "message": "Invalid role: pharaoh"}


class TestVocabularyTools:

    def test_list_resource_classes_by_prefix(self, call_tool):
        result = call_tool("list-resource-classes", {"vocabulary_prefix": "foaf"})
        assert sorted(c["o:term"] for c in result["items"]) == ["foaf:Document", "foaf:Organization", "foaf:Person"]

    def test_list_properties(self, call_tool, backend):
        bibo = backend.search("vocabularies", {"vocabulary_prefix": "bibo"}).items[0]
        result = call_tool("list-properties", {"vocabulary_id": bibo["o:id"]})
        assert [p["o:local_name"] for p in result["items"]] == ["edition", "isbn", "numPages"]


# =============================================================================
# GATEWAY FAILURES
# =============================================================================

class TestGatewayFailures:

    def test_rejected_token_becomes_error_result(self, call_tool, log_dir):
        result = call_tool("list-sites", {}, gateway_config=GatewayConfig(csrf_token="stale", log_dir=log_dir))
        assert result == {"error": True, "message": "Invalid CSRF token."}


class TestSearchItemsPropertyFilter:

    def test_property_filter_narrows_results(self, call_tool, backend):
        seed_item(backend, "Notes", **{"dcterms:creator": [{"property_id": "auto", "@value": "Ada"}]})
        seed_item(backend, "Letters", **{"dcterms:creator": [{"property_id": "auto", "@value": "Bob"}]})

        result = call_tool("search-items", {
            "property": [{"property": "dcterms:creator", "type": "eq", "text": "Ada"}],
        })

        assert result["totalResults"] == 1
        assert result["items"][0]["o:title"] == "Notes"

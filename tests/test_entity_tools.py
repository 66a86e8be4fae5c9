"""Tests for collection entity tools, including the testimonials aggregate."""

from __future__ import annotations

import pytest

from cms_agent.infra.errors import (
    DocumentNotFoundError,
    ResolutionError,
    ToolArgumentError,
    ToolError,
)
from cms_agent.tools.builtins.entities import entity_path

TESTIMONIALS = [
    {"id": "t1", "quote": "Great service"},
    {"slug": "happy-buyer", "quote": "Fast close"},
    {"quote": "No identifier"},
]


class TestEntityPath:
    def test_normalized(self) -> None:
        assert entity_path("agents", "Jane-Doe") == "agents/jane-doe.json"
        assert entity_path("events", "gala.json") == "events/gala.json"

    def test_rejects_nested(self) -> None:
        with pytest.raises(ToolArgumentError):
            entity_path("agents", "../jane")


class TestPerDocumentEntities:
    @pytest.mark.asyncio
    async def test_list(self, tool_registry, ctx, seed) -> None:
        seed("agents/jane-doe.json", {"id": "a1", "name": "Jane Doe"})
        seed("agents/bob.json", {"title": "Bob"})
        result = await tool_registry.execute(ctx, "list_entities", {"entity_type": "agents"})
        assert result.data["items"] == [
            {"id": "bob", "slug": "bob", "title": "Bob"},
            {"id": "a1", "slug": "jane-doe", "title": "Jane Doe"},
        ]
        assert result.summary == "Found 2 agents"

    @pytest.mark.asyncio
    async def test_read(self, tool_registry, ctx, seed) -> None:
        seed("agents/jane-doe.json", {"name": "Jane Doe"})
        result = await tool_registry.execute(
            ctx, "read_entity", {"entity_type": "agents", "entity_id": "Jane-Doe"}
        )
        assert result.data == {"name": "Jane Doe"}

    @pytest.mark.asyncio
    async def test_update_field_with_alias(self, tool_registry, ctx, seed, mirror) -> None:
        seed("agents/jane-doe.json", {"name": "Jane Doe", "image": "/old.jpg"})
        result = await tool_registry.execute(
            ctx,
            "update_entity_field",
            {
                "entity_type": "agents",
                "entity_id": "jane-doe",
                "field_path": "photo",
                "new_value": "/uploads/jane.jpg",
            },
        )
        stored = mirror("agents/jane-doe.json")
        assert stored["image"] == "/uploads/jane.jpg"
        assert stored["slug"] == "jane-doe"
        assert stored["id"] == "jane-doe"
        assert result.preview["field_path"] == "image"
        assert result.preview["before"] == "/old.jpg"
        assert result.preview["after"] == "/uploads/jane.jpg"
        assert result.changed_paths == ["agents/jane-doe.json"]

    @pytest.mark.asyncio
    async def test_update_missing_entity(self, tool_registry, ctx) -> None:
        with pytest.raises(DocumentNotFoundError):
            await tool_registry.execute(
                ctx,
                "update_entity_field",
                {
                    "entity_type": "events",
                    "entity_id": "nope",
                    "field_path": "title",
                    "new_value": "x",
                },
            )

    @pytest.mark.asyncio
    async def test_add(self, tool_registry, ctx, mirror) -> None:
        result = await tool_registry.execute(
            ctx, "add_entity", {"entity_type": "agents", "data": {"name": "Sam Lee"}}
        )
        assert mirror("agents/sam-lee.json") == {
            "name": "Sam Lee",
            "slug": "sam-lee",
            "id": "sam-lee",
        }
        assert result.data == {"slug": "sam-lee"}
        assert result.preview["action"] == "create"
        assert result.changed_paths == ["agents/sam-lee.json"]

    @pytest.mark.asyncio
    async def test_add_does_not_overwrite(self, tool_registry, ctx, seed, mirror) -> None:
        seed("agents/sam-lee.json", {"name": "Sam Lee", "phone": "555"})
        with pytest.raises(ToolError, match="already exists"):
            await tool_registry.execute(
                ctx, "add_entity", {"entity_type": "agents", "data": {"name": "Sam Lee"}}
            )
        assert mirror("agents/sam-lee.json")["phone"] == "555"

    @pytest.mark.asyncio
    async def test_add_dry_run(self, tool_registry, dry_ctx, mirror) -> None:
        result = await tool_registry.execute(
            dry_ctx, "add_entity", {"entity_type": "guides", "data": {"title": "First Home"}}
        )
        assert result.summary == "[dry-run] Created guides/first-home.json"
        assert mirror("guides/first-home.json") is None

    @pytest.mark.asyncio
    async def test_remove_without_confirmation(self, tool_registry, ctx, seed, mirror) -> None:
        seed("agents/jane-doe.json", {"name": "Jane Doe"})
        with pytest.raises(ToolArgumentError, match="confirm=true"):
            await tool_registry.execute(
                ctx,
                "remove_entity",
                {"entity_type": "agents", "entity_id": "jane-doe", "confirm": False},
            )
        assert mirror("agents/jane-doe.json") == {"name": "Jane Doe"}

    @pytest.mark.asyncio
    async def test_remove(self, tool_registry, ctx, seed, mirror) -> None:
        seed("agents/jane-doe.json", {"name": "Jane Doe"})
        result = await tool_registry.execute(
            ctx,
            "remove_entity",
            {"entity_type": "agents", "entity_id": "jane-doe", "confirm": True},
        )
        assert mirror("agents/jane-doe.json") is None
        assert result.preview == {
            "action": "delete",
            "path": "agents/jane-doe.json",
            "before": {"name": "Jane Doe"},
        }

    @pytest.mark.asyncio
    async def test_remove_missing(self, tool_registry, ctx) -> None:
        with pytest.raises(DocumentNotFoundError):
            await tool_registry.execute(
                ctx,
                "remove_entity",
                {"entity_type": "agents", "entity_id": "ghost", "confirm": True},
            )

    @pytest.mark.asyncio
    async def test_remove_dry_run(self, tool_registry, dry_ctx, seed, mirror) -> None:
        seed("agents/jane-doe.json", {"name": "Jane Doe"})
        result = await tool_registry.execute(
            dry_ctx,
            "remove_entity",
            {"entity_type": "agents", "entity_id": "jane-doe", "confirm": True},
        )
        assert result.summary == "[dry-run] Removed agents/jane-doe.json"
        assert mirror("agents/jane-doe.json") == {"name": "Jane Doe"}


class TestTestimonials:
    @pytest.mark.asyncio
    async def test_list(self, tool_registry, ctx, seed) -> None:
        seed("testimonials.json", TESTIMONIALS)
        result = await tool_registry.execute(
            ctx, "list_entities", {"entity_type": "testimonials"}
        )
        assert result.data["items"] == [
            {"id": "t1", "title": "Great service"},
            {"id": "happy-buyer", "title": "Fast close"},
            {"id": "item-3", "title": "No identifier"},
        ]

    @pytest.mark.asyncio
    async def test_list_missing_document(self, tool_registry, ctx) -> None:
        result = await tool_registry.execute(
            ctx, "list_entities", {"entity_type": "testimonials"}
        )
        assert result.data["items"] == []

    @pytest.mark.asyncio
    async def test_read_by_slug(self, tool_registry, ctx, seed) -> None:
        seed("testimonials.json", TESTIMONIALS)
        result = await tool_registry.execute(
            ctx, "read_entity", {"entity_type": "testimonials", "entity_id": "happy-buyer"}
        )
        assert result.data == {"slug": "happy-buyer", "quote": "Fast close"}

    @pytest.mark.asyncio
    async def test_update_one_row(self, tool_registry, ctx, seed, mirror) -> None:
        seed("testimonials.json", TESTIMONIALS)
        result = await tool_registry.execute(
            ctx,
            "update_entity_field",
            {
                "entity_type": "testimonials",
                "entity_id": "t1",
                "field_path": "quote",
                "new_value": "Outstanding service",
            },
        )
        stored = mirror("testimonials.json")
        assert stored[0] == {"id": "t1", "quote": "Outstanding service"}
        assert stored[1:] == TESTIMONIALS[1:]
        assert result.preview["before"] == "Great service"
        assert result.changed_paths == ["testimonials.json"]

    @pytest.mark.asyncio
    async def test_unknown_row(self, tool_registry, ctx, seed) -> None:
        seed("testimonials.json", TESTIMONIALS)
        with pytest.raises(ResolutionError, match="testimonials entity not found: t9"):
            await tool_registry.execute(
                ctx, "read_entity", {"entity_type": "testimonials", "entity_id": "t9"}
            )

    @pytest.mark.asyncio
    async def test_add_creates_document(self, tool_registry, ctx, mirror) -> None:
        await tool_registry.execute(
            ctx,
            "add_entity",
            {"entity_type": "testimonials", "data": {"name": "Ann", "quote": "Lovely"}},
        )
        assert mirror("testimonials.json") == [
            {"name": "Ann", "quote": "Lovely", "id": "ann", "slug": "ann"}
        ]

    @pytest.mark.asyncio
    async def test_add_duplicate(self, tool_registry, ctx, seed) -> None:
        seed("testimonials.json", TESTIMONIALS)
        with pytest.raises(ToolError, match="already exists: t1"):
            await tool_registry.execute(
                ctx, "add_entity", {"entity_type": "testimonials", "data": {"id": "t1"}}
            )

    @pytest.mark.asyncio
    async def test_remove_row(self, tool_registry, ctx, seed, mirror) -> None:
        seed("testimonials.json", TESTIMONIALS)
        result = await tool_registry.execute(
            ctx,
            "remove_entity",
            {"entity_type": "testimonials", "entity_id": "t1", "confirm": True},
        )
        assert mirror("testimonials.json") == TESTIMONIALS[1:]
        assert result.preview["before"] == TESTIMONIALS[0]

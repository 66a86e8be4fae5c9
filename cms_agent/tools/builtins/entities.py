"""Collection entity tools.

Most entity types live one document per entity (``agents/<slug>.json``).
Testimonials are an aggregate: a single ``testimonials.json`` list whose
elements are addressed by ``id`` or ``slug``.
"""

from __future__ import annotations

import time
from typing import TYPE_CHECKING, Any

from cms_agent.content.aliases import resolve_friendly_field_path
from cms_agent.content.paths import get_value, set_value, slugify
from cms_agent.infra.errors import DocumentNotFoundError, ResolutionError, ToolArgumentError, ToolError
from cms_agent.tools.base import (
    BaseTool,
    ToolFamily,
    ToolResult,
    dry_run_prefix,
    field_path_preview,
    resolution_note,
)

if TYPE_CHECKING:
    from cms_agent.content.store import ContentStore
    from cms_agent.tools.context import ToolContext

ENTITY_TYPES: tuple[str, ...] = (
    "agents",
    "properties",
    "neighborhoods",
    "testimonials",
    "events",
    "guides",
    "new-construction",
    "knowledge-center",
    "market-reports",
)

# entity type -> single list document
AGGREGATE_DOCUMENTS: dict[str, str] = {"testimonials": "testimonials.json"}

_ENTITY_TYPE_SCHEMA = {"type": "string", "enum": list(ENTITY_TYPES)}


def entity_path(entity_type: str, entity_id: str) -> str:
    slug = entity_id.strip().lower()
    if slug.endswith(".json"):
        slug = slug[: -len(".json")]
    if not slug or "/" in slug:
        raise ToolArgumentError(f"Invalid entity id: {entity_id}")
    return f"{entity_type}/{slug}.json"


def _row_matches(row: Any, entity_id: str) -> bool:
    if not isinstance(row, dict):
        return False
    return entity_id in (str(row.get("id") or ""), str(row.get("slug") or ""))


def _display_title(record: Any, fallback: str) -> str:
    if isinstance(record, dict):
        return str(record.get("title") or record.get("name") or record.get("quote") or fallback)
    return fallback


class _EntityTool(BaseTool):
    def __init__(self, content_store: ContentStore) -> None:
        self._store = content_store

    @property
    def family(self) -> ToolFamily:
        return ToolFamily.entities

    async def _read_aggregate(self, context: ToolContext, entity_type: str) -> list:
        try:
            rows = await self._store.read(context, AGGREGATE_DOCUMENTS[entity_type])
        except DocumentNotFoundError:
            return []
        return list(rows) if isinstance(rows, list) else []

    @staticmethod
    def _find_row(rows: list, entity_type: str, entity_id: str) -> int:
        for index, row in enumerate(rows):
            if _row_matches(row, entity_id):
                return index
        raise ResolutionError(f"{entity_type} entity not found: {entity_id}")


class ListEntitiesTool(_EntityTool):
    @property
    def name(self) -> str:
        return "list_entities"

    @property
    def description(self) -> str:
        return "List entities for a collection type."

    @property
    def parameters(self) -> dict:
        return {
            "type": "object",
            "properties": {"entity_type": _ENTITY_TYPE_SCHEMA},
            "required": ["entity_type"],
        }

    async def execute(self, arguments: dict, context: ToolContext) -> ToolResult:
        entity_type = arguments["entity_type"]
        if entity_type in AGGREGATE_DOCUMENTS:
            rows = await self._read_aggregate(context, entity_type)
            items = []
            for index, row in enumerate(rows):
                record = row if isinstance(row, dict) else {}
                item_id = str(record.get("id") or record.get("slug") or f"item-{index + 1}")
                items.append({"id": item_id, "title": _display_title(record, item_id)})
        else:
            entries = await self._store.list_by_prefix(context, f"{entity_type}/")
            items = []
            for entry in entries:
                slug = entry.path.rsplit("/", 1)[-1][: -len(".json")]
                record = entry.content if isinstance(entry.content, dict) else {}
                items.append({
                    "id": str(record.get("id") or slug),
                    "slug": slug,
                    "title": _display_title(record, slug),
                })
        return ToolResult(
            ok=True,
            tool=self.name,
            summary=f"Found {len(items)} {entity_type}",
            data={"items": items},
        )


class ReadEntityTool(_EntityTool):
    @property
    def name(self) -> str:
        return "read_entity"

    @property
    def description(self) -> str:
        return "Read one entity by ID or slug for a collection type."

    @property
    def parameters(self) -> dict:
        return {
            "type": "object",
            "properties": {
                "entity_type": _ENTITY_TYPE_SCHEMA,
                "entity_id": {"type": "string", "minLength": 1},
            },
            "required": ["entity_type", "entity_id"],
        }

    async def execute(self, arguments: dict, context: ToolContext) -> ToolResult:
        entity_type = arguments["entity_type"]
        entity_id = arguments["entity_id"].strip()
        if entity_type in AGGREGATE_DOCUMENTS:
            rows = await self._read_aggregate(context, entity_type)
            row = rows[self._find_row(rows, entity_type, entity_id)]
            return ToolResult(
                ok=True,
                tool=self.name,
                summary=f"Loaded {entity_type} entry {entity_id}",
                data=row,
            )

        file_path = entity_path(entity_type, entity_id)
        content = await self._store.read(context, file_path)
        return ToolResult(ok=True, tool=self.name, summary=f"Loaded {file_path}", data=content)


class UpdateEntityFieldTool(_EntityTool):
    @property
    def name(self) -> str:
        return "update_entity_field"

    @property
    def description(self) -> str:
        return "Update one field on an entity by ID or slug."

    @property
    def mutates(self) -> bool:
        return True

    @property
    def parameters(self) -> dict:
        return {
            "type": "object",
            "properties": {
                "entity_type": _ENTITY_TYPE_SCHEMA,
                "entity_id": {"type": "string", "minLength": 1},
                "field_path": {"type": "string", "minLength": 1},
                "new_value": {},
            },
            "required": ["entity_type", "entity_id", "field_path", "new_value"],
        }

    async def execute(self, arguments: dict, context: ToolContext) -> ToolResult:
        entity_type = arguments["entity_type"]
        entity_id = arguments["entity_id"].strip()
        raw_path = arguments["field_path"]
        new_value = arguments["new_value"]

        if entity_type in AGGREGATE_DOCUMENTS:
            file_path = AGGREGATE_DOCUMENTS[entity_type]
            rows = await self._read_aggregate(context, entity_type)
            index = self._find_row(rows, entity_type, entity_id)
            target = rows[index]
        else:
            file_path = entity_path(entity_type, entity_id)
            target = await self._store.read(context, file_path)

        actual = resolve_friendly_field_path(target, raw_path)
        if not actual:
            raise ToolArgumentError("field_path is required")
        before = get_value(target, actual)
        updated = set_value(target, actual, new_value)

        if entity_type in AGGREGATE_DOCUMENTS:
            rows[index] = updated
            stored = await self._store.write(context, file_path, rows)
            after = get_value(stored[index], actual)
            label = f"{entity_type} entry {entity_id}"
        else:
            stored = await self._store.write(context, file_path, updated)
            after = get_value(stored, actual)
            label = file_path

        preview = {
            "path": file_path,
            "entity_id": entity_id,
            **field_path_preview(raw_path, actual),
            "before": before,
            "after": after,
        }
        return ToolResult(
            ok=True,
            tool=self.name,
            summary=(
                f"{dry_run_prefix(context)}Updated {label}:{actual}"
                f"{resolution_note(raw_path, actual)}"
            ),
            changed_paths=[file_path],
            preview=preview,
        )


class AddEntityTool(_EntityTool):
    @property
    def name(self) -> str:
        return "add_entity"

    @property
    def description(self) -> str:
        return "Add a new entity to a collection. Provide the full data object."

    @property
    def mutates(self) -> bool:
        return True

    @property
    def parameters(self) -> dict:
        return {
            "type": "object",
            "properties": {
                "entity_type": _ENTITY_TYPE_SCHEMA,
                "data": {"type": "object"},
            },
            "required": ["entity_type", "data"],
        }

    async def execute(self, arguments: dict, context: ToolContext) -> ToolResult:
        entity_type = arguments["entity_type"]
        data: dict = arguments["data"]
        source = data.get("slug") or data.get("id") or data.get("name") or data.get("title")
        slug = slugify(str(source or "")) or f"{entity_type}-{int(time.time())}"
        prefix = dry_run_prefix(context)

        if entity_type in AGGREGATE_DOCUMENTS:
            file_path = AGGREGATE_DOCUMENTS[entity_type]
            rows = await self._read_aggregate(context, entity_type)
            if any(_row_matches(row, slug) for row in rows):
                raise ToolError(f"{entity_type} entry already exists: {slug}")
            row = {**data, "id": slug, "slug": str(data.get("slug") or slug)}
            await self._store.write(context, file_path, [*rows, row])
            return ToolResult(
                ok=True,
                tool=self.name,
                summary=f"{prefix}Created {entity_type} entry {slug}",
                data=row,
                changed_paths=[file_path],
                preview={"action": "create", "path": file_path, "id": slug, "after": row},
            )

        file_path = entity_path(entity_type, slug)
        try:
            await self._store.read(context, file_path)
        except DocumentNotFoundError:
            pass
        else:
            raise ToolError(
                f"{file_path} already exists; use update_entity_field to change it"
            )

        stored = await self._store.write(context, file_path, dict(data))
        return ToolResult(
            ok=True,
            tool=self.name,
            summary=f"{prefix}Created {file_path}",
            data={"slug": slug},
            changed_paths=[file_path],
            preview={"action": "create", "path": file_path, "slug": slug, "after": stored},
        )


class RemoveEntityTool(_EntityTool):
    @property
    def name(self) -> str:
        return "remove_entity"

    @property
    def description(self) -> str:
        return "Remove an entity by ID or slug. Requires confirm=true."

    @property
    def mutates(self) -> bool:
        return True

    @property
    def parameters(self) -> dict:
        return {
            "type": "object",
            "properties": {
                "entity_type": _ENTITY_TYPE_SCHEMA,
                "entity_id": {"type": "string", "minLength": 1},
                "confirm": {
                    "type": "boolean",
                    "description": "Must be true to execute destructive delete",
                },
            },
            "required": ["entity_type", "entity_id", "confirm"],
        }

    async def execute(self, arguments: dict, context: ToolContext) -> ToolResult:
        if arguments.get("confirm") is not True:
            raise ToolArgumentError("Deletion requires confirm=true")

        entity_type = arguments["entity_type"]
        entity_id = arguments["entity_id"].strip()
        prefix = dry_run_prefix(context)

        if entity_type in AGGREGATE_DOCUMENTS:
            file_path = AGGREGATE_DOCUMENTS[entity_type]
            rows = await self._read_aggregate(context, entity_type)
            index = self._find_row(rows, entity_type, entity_id)
            removed = rows[index]
            await self._store.write(context, file_path, rows[:index] + rows[index + 1:])
            return ToolResult(
                ok=True,
                tool=self.name,
                summary=f"{prefix}Removed {entity_type} entry {entity_id}",
                changed_paths=[file_path],
                preview={
                    "action": "delete",
                    "path": file_path,
                    "entity_id": entity_id,
                    "before": removed,
                },
            )

        file_path = entity_path(entity_type, entity_id)
        existing = await self._store.read(context, file_path)
        await self._store.remove(context, file_path)
        return ToolResult(
            ok=True,
            tool=self.name,
            summary=f"{prefix}Removed {file_path}",
            changed_paths=[file_path],
            preview={"action": "delete", "path": file_path, "before": existing},
        )

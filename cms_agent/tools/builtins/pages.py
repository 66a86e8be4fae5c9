"""Page tools: list, read and update fields of ``pages/<slug>.json`` documents."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from cms_agent.content.aliases import resolve_friendly_field_path
from cms_agent.content.paths import get_value, set_value
from cms_agent.infra.errors import InvalidVariantError, ToolArgumentError
from cms_agent.tools.base import (
    BaseTool,
    ToolFamily,
    ToolResult,
    dry_run_prefix,
    field_path_preview,
    resolution_note,
)
from cms_agent.tools.builtins.variants import (
    get_variant_options,
    is_known_section,
    is_known_variant,
)

if TYPE_CHECKING:
    from cms_agent.content.store import ContentStore
    from cms_agent.tools.context import ToolContext

PAGES_PREFIX = "pages/"


def page_path(page: str) -> str:
    """``home`` / ``pages/home.json`` / ``Home`` -> ``pages/home.json``."""
    slug = page.strip()
    if slug.startswith(PAGES_PREFIX):
        slug = slug[len(PAGES_PREFIX):]
    if slug.lower().endswith(".json"):
        slug = slug[: -len(".json")]
    slug = slug.strip().lower()
    if not slug:
        raise ToolArgumentError("Invalid page slug")
    return f"{PAGES_PREFIX}{slug}.json"


class _PageTool(BaseTool):
    def __init__(self, content_store: ContentStore) -> None:
        self._store = content_store

    @property
    def family(self) -> ToolFamily:
        return ToolFamily.pages

    async def _apply_updates(
        self,
        context: ToolContext,
        page: str,
        updates: list[tuple[str, Any]],
    ) -> tuple[str, list[dict]]:
        """Apply (raw_field_path, value) pairs in order and write the page once.

        Returns the document path and one preview entry per update. ``after``
        is read back from the normalized document the store returned.
        """
        file_path = page_path(page)
        current = await self._store.read(context, file_path)

        applied: list[tuple[str, dict]] = []
        next_doc = current
        for raw_path, value in updates:
            actual = resolve_friendly_field_path(next_doc, raw_path)
            if not actual:
                raise ToolArgumentError("field_path is required")
            entry = field_path_preview(raw_path, actual)
            entry["before"] = get_value(next_doc, actual)
            next_doc = set_value(next_doc, actual, value)
            applied.append((actual, entry))

        stored = await self._store.write(context, file_path, next_doc)
        previews = []
        for actual, entry in applied:
            entry["after"] = get_value(stored, actual)
            previews.append(entry)
        return file_path, previews


class ListPagesTool(_PageTool):
    @property
    def name(self) -> str:
        return "list_pages"

    @property
    def description(self) -> str:
        return "List all editable page JSON files for the current site and locale."

    @property
    def parameters(self) -> dict:
        return {"type": "object", "properties": {}, "required": []}

    async def execute(self, arguments: dict, context: ToolContext) -> ToolResult:
        entries = await self._store.list_by_prefix(context, PAGES_PREFIX)
        pages = sorted(
            e.path[len(PAGES_PREFIX): -len(".json")]
            for e in entries
            if e.path.endswith(".json")
        )
        details = ", ".join(pages) if pages else "none"
        return ToolResult(
            ok=True,
            tool=self.name,
            summary=f"Found {len(pages)} pages: {details}",
            data={"pages": pages},
        )


class ReadPageTool(_PageTool):
    @property
    def name(self) -> str:
        return "read_page"

    @property
    def description(self) -> str:
        return "Read full JSON content for a page by slug (e.g. home, about)."

    @property
    def parameters(self) -> dict:
        return {
            "type": "object",
            "properties": {
                "page": {"type": "string", "description": "Page slug without extension"},
            },
            "required": ["page"],
        }

    async def execute(self, arguments: dict, context: ToolContext) -> ToolResult:
        file_path = page_path(arguments["page"])
        content = await self._store.read(context, file_path)
        return ToolResult(
            ok=True,
            tool=self.name,
            summary=f"Loaded {file_path}",
            data={"page": arguments["page"], "content": content},
        )


class ListVariantOptionsTool(_PageTool):
    @property
    def name(self) -> str:
        return "list_variant_options"

    @property
    def description(self) -> str:
        return (
            "List the layout variants available for page sections "
            "(hero, cta, testimonials, services) or 'all'."
        )

    @property
    def parameters(self) -> dict:
        return {
            "type": "object",
            "properties": {"section": {"type": "string"}},
            "required": [],
        }

    async def execute(self, arguments: dict, context: ToolContext) -> ToolResult:
        section = arguments.get("section") or "all"
        options = get_variant_options(section)
        count = sum(len(v) for v in options.values())
        return ToolResult(
            ok=True,
            tool=self.name,
            summary=f"Loaded {count} variant options for {section}",
            data={"options": options},
        )


class UpdatePageFieldTool(_PageTool):
    @property
    def name(self) -> str:
        return "update_page_field"

    @property
    def description(self) -> str:
        return "Update one field in a page JSON using dot-path notation."

    @property
    def mutates(self) -> bool:
        return True

    @property
    def parameters(self) -> dict:
        return {
            "type": "object",
            "properties": {
                "page": {"type": "string"},
                "field_path": {
                    "type": "string",
                    "minLength": 1,
                    "description": "Dot path, supports array index like hero.slides[0].alt",
                },
                "new_value": {
                    "description": "New value (string/object/number/boolean/array)",
                },
            },
            "required": ["page", "field_path", "new_value"],
        }

    async def execute(self, arguments: dict, context: ToolContext) -> ToolResult:
        raw_path = arguments["field_path"]
        file_path, previews = await self._apply_updates(
            context, arguments["page"], [(raw_path, arguments["new_value"])]
        )
        preview = {"path": file_path, **previews[0]}
        actual = preview["field_path"]
        return ToolResult(
            ok=True,
            tool=self.name,
            summary=(
                f"{dry_run_prefix(context)}Updated {file_path}:{actual}"
                f"{resolution_note(raw_path, actual)}"
            ),
            changed_paths=[file_path],
            preview=preview,
        )


class UpdatePageFieldsBatchTool(_PageTool):
    @property
    def name(self) -> str:
        return "update_page_fields_batch"

    @property
    def description(self) -> str:
        return "Update multiple page fields in one call."

    @property
    def mutates(self) -> bool:
        return True

    @property
    def parameters(self) -> dict:
        return {
            "type": "object",
            "properties": {
                "page": {"type": "string"},
                "updates": {
                    "type": "array",
                    "minItems": 1,
                    "items": {
                        "type": "object",
                        "properties": {
                            "field_path": {"type": "string", "minLength": 1},
                            "new_value": {},
                        },
                        "required": ["field_path", "new_value"],
                    },
                },
            },
            "required": ["page", "updates"],
        }

    async def execute(self, arguments: dict, context: ToolContext) -> ToolResult:
        updates = [(u["field_path"], u["new_value"]) for u in arguments["updates"]]
        file_path, previews = await self._apply_updates(context, arguments["page"], updates)
        notes = "".join(
            resolution_note(p["field_path_raw"], p["field_path"])
            for p in previews
            if "field_path_raw" in p
        )
        return ToolResult(
            ok=True,
            tool=self.name,
            summary=(
                f"{dry_run_prefix(context)}Updated {len(previews)} fields in {file_path}{notes}"
            ),
            changed_paths=[file_path],
            preview={"path": file_path, "updates": previews},
        )


class UpdateSectionVariantTool(_PageTool):
    @property
    def name(self) -> str:
        return "update_section_variant"

    @property
    def description(self) -> str:
        return (
            "Set a section variant value in page JSON, usually <section>.variant. "
            "Use list_variant_options to see valid values."
        )

    @property
    def mutates(self) -> bool:
        return True

    @property
    def parameters(self) -> dict:
        return {
            "type": "object",
            "properties": {
                "page": {"type": "string"},
                "section": {"type": "string", "minLength": 1},
                "variant": {"type": "string", "minLength": 1},
            },
            "required": ["page", "section", "variant"],
        }

    async def execute(self, arguments: dict, context: ToolContext) -> ToolResult:
        section = arguments["section"].strip()
        variant = arguments["variant"].strip()
        if is_known_section(section) and not is_known_variant(section, variant):
            valid = ", ".join(o["id"] for o in get_variant_options(section)[section])
            raise InvalidVariantError(
                f"Unknown {section} variant '{variant}'. Valid variants: {valid}"
            )

        raw_path = f"{section}.variant"
        file_path, previews = await self._apply_updates(
            context, arguments["page"], [(raw_path, variant)]
        )
        preview = {"path": file_path, "section": section, "variant": variant, **previews[0]}
        return ToolResult(
            ok=True,
            tool=self.name,
            summary=(
                f"{dry_run_prefix(context)}Set {section} variant to {variant} in {file_path}"
            ),
            changed_paths=[file_path],
            preview=preview,
        )

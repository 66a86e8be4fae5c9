"""Site-wide settings tools over the singleton documents (site/header/footer/seo/theme)."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from cms_agent.content.aliases import resolve_friendly_field_path
from cms_agent.content.paths import get_value, set_value
from cms_agent.infra.errors import DocumentNotFoundError, ToolArgumentError
from cms_agent.tools.base import (
    BaseTool,
    ToolFamily,
    ToolResult,
    dry_run_prefix,
    field_path_preview,
    resolution_note,
)
from cms_agent.tools.builtins.pages import page_path

if TYPE_CHECKING:
    from cms_agent.content.store import ContentStore
    from cms_agent.tools.context import ToolContext

SITE_DOCUMENT = "site.json"
SEO_DOCUMENT = "seo.json"
SETTINGS_DOCUMENTS: dict[str, str] = {
    "site": SITE_DOCUMENT,
    "header": "header.json",
    "footer": "footer.json",
    "seo": SEO_DOCUMENT,
    "theme": "theme.json",
}

ADDRESS_KEYS = frozenset({
    "street", "city", "state", "zip", "full", "lat", "lng", "mapsUrl", "mapsEmbedUrl",
})
HOURS_KEYS = ("weekdays", "saturday", "sunday")
SOCIAL_PLATFORMS = ("facebook", "instagram", "twitter", "linkedin", "youtube", "tiktok")

# update_seo argument -> key in seo.json / key under a page's seo object
_GLOBAL_SEO_FIELDS = {"title": "defaultTitle", "description": "defaultDescription", "keywords": "keywords"}
_PAGE_SEO_FIELDS = {"title": "seo.title", "description": "seo.description", "keywords": "seo.keywords"}


class _SettingsTool(BaseTool):
    def __init__(self, content_store: ContentStore) -> None:
        self._store = content_store

    @property
    def family(self) -> ToolFamily:
        return ToolFamily.settings

    async def _read_or_empty(self, context: ToolContext, path: str) -> Any:
        try:
            return await self._store.read(context, path)
        except DocumentNotFoundError:
            return {}

    async def _update(
        self, context: ToolContext, path: str, changes: list[tuple[str, Any]]
    ) -> list[dict]:
        """Apply (raw_field_path, value) pairs to one document and write it once."""
        current = await self._read_or_empty(context, path)
        next_doc = current
        previews = []
        for raw_path, value in changes:
            field_path = resolve_friendly_field_path(next_doc, raw_path)
            if not field_path:
                raise ToolArgumentError("field is required")
            entry = field_path_preview(raw_path, field_path)
            entry["before"] = get_value(next_doc, field_path)
            previews.append(entry)
            next_doc = set_value(next_doc, field_path, value)
        stored = await self._store.write(context, path, next_doc)
        for entry in previews:
            entry["after"] = get_value(stored, entry["field_path"])
        return previews


class GetSiteSettingsTool(_SettingsTool):
    @property
    def name(self) -> str:
        return "get_site_settings"

    @property
    def description(self) -> str:
        return "Read current site/header/footer/seo/theme settings for this site and locale."

    @property
    def parameters(self) -> dict:
        return {"type": "object", "properties": {}, "required": []}

    async def execute(self, arguments: dict, context: ToolContext) -> ToolResult:
        bundle: dict[str, Any] = {}
        missing = []
        for key, path in SETTINGS_DOCUMENTS.items():
            try:
                bundle[key] = await self._store.read(context, path)
            except DocumentNotFoundError:
                bundle[key] = None
                missing.append(path)
        summary = "Loaded settings"
        if missing:
            summary += f" (missing: {', '.join(missing)})"
        return ToolResult(ok=True, tool=self.name, summary=summary, data=bundle)


class UpdateBusinessInfoTool(_SettingsTool):
    @property
    def name(self) -> str:
        return "update_business_info"

    @property
    def description(self) -> str:
        return (
            "Update a site.json business info field. Address parts "
            "(street, city, state, zip, ...) are stored under address."
        )

    @property
    def mutates(self) -> bool:
        return True

    @property
    def parameters(self) -> dict:
        return {
            "type": "object",
            "properties": {
                "field": {"type": "string", "description": "Top-level field or address.* path"},
                "value": {},
            },
            "required": ["field", "value"],
        }

    async def execute(self, arguments: dict, context: ToolContext) -> ToolResult:
        key = arguments["field"].strip()
        if not key:
            raise ToolArgumentError("field is required")
        target = key if "." in key or key not in ADDRESS_KEYS else f"address.{key}"
        previews = await self._update(context, SITE_DOCUMENT, [(target, arguments["value"])])
        actual = previews[0]["field_path"]
        return ToolResult(
            ok=True,
            tool=self.name,
            summary=(
                f"{dry_run_prefix(context)}Updated {SITE_DOCUMENT}:{actual}"
                f"{resolution_note(target, actual)}"
            ),
            changed_paths=[SITE_DOCUMENT],
            preview={"path": SITE_DOCUMENT, **previews[0]},
        )


class UpdateBusinessHoursTool(_SettingsTool):
    @property
    def name(self) -> str:
        return "update_business_hours"

    @property
    def description(self) -> str:
        return "Update office hours values in site.json.officeHours."

    @property
    def mutates(self) -> bool:
        return True

    @property
    def parameters(self) -> dict:
        return {
            "type": "object",
            "properties": {
                "hours": {
                    "type": "array",
                    "minItems": 1,
                    "items": {
                        "type": "object",
                        "properties": {
                            "key": {"type": "string", "enum": list(HOURS_KEYS)},
                            "value": {"type": "string"},
                        },
                        "required": ["key", "value"],
                    },
                },
            },
            "required": ["hours"],
        }

    async def execute(self, arguments: dict, context: ToolContext) -> ToolResult:
        hours = arguments["hours"]
        changes = [(f"officeHours.{row['key']}", row["value"]) for row in hours]
        previews = await self._update(context, SITE_DOCUMENT, changes)
        return ToolResult(
            ok=True,
            tool=self.name,
            summary=f"{dry_run_prefix(context)}Updated {len(hours)} business hours",
            changed_paths=[SITE_DOCUMENT],
            preview={"path": SITE_DOCUMENT, "updates": previews},
        )


class UpdateSeoTool(_SettingsTool):
    @property
    def name(self) -> str:
        return "update_seo"

    @property
    def description(self) -> str:
        return "Update global seo.json or the seo object of one page."

    @property
    def mutates(self) -> bool:
        return True

    @property
    def parameters(self) -> dict:
        return {
            "type": "object",
            "properties": {
                "page": {"type": "string", "description": "Use 'global' or page slug like 'about'"},
                "title": {"type": "string"},
                "description": {"type": "string"},
                "keywords": {"type": "string"},
            },
            "required": ["page"],
        }

    async def execute(self, arguments: dict, context: ToolContext) -> ToolResult:
        page = arguments["page"].strip()
        is_global = page.lower() == "global"
        fields = _GLOBAL_SEO_FIELDS if is_global else _PAGE_SEO_FIELDS
        changes = [
            (target, arguments[arg])
            for arg, target in fields.items()
            if isinstance(arguments.get(arg), str)
        ]
        if not changes:
            raise ToolArgumentError("Provide at least one of title, description or keywords")

        if is_global:
            path = SEO_DOCUMENT
            previews = await self._update(context, path, changes)
            label = "global SEO"
        else:
            path = page_path(page)
            # a page must already exist; only singleton documents are created on demand
            await self._store.read(context, path)
            previews = await self._update(context, path, changes)
            label = f"page SEO in {path}"

        return ToolResult(
            ok=True,
            tool=self.name,
            summary=f"{dry_run_prefix(context)}Updated {label}",
            changed_paths=[path],
            preview={"path": path, "updates": previews},
        )


class UpdateSocialLinksTool(_SettingsTool):
    @property
    def name(self) -> str:
        return "update_social_links"

    @property
    def description(self) -> str:
        return "Update social platform URL in site.json.social."

    @property
    def mutates(self) -> bool:
        return True

    @property
    def parameters(self) -> dict:
        return {
            "type": "object",
            "properties": {
                "platform": {"type": "string", "enum": list(SOCIAL_PLATFORMS)},
                "url": {"type": "string"},
            },
            "required": ["platform", "url"],
        }

    async def execute(self, arguments: dict, context: ToolContext) -> ToolResult:
        target = f"social.{arguments['platform']}"
        previews = await self._update(context, SITE_DOCUMENT, [(target, arguments["url"])])
        return ToolResult(
            ok=True,
            tool=self.name,
            summary=f"{dry_run_prefix(context)}Updated {target}",
            changed_paths=[SITE_DOCUMENT],
            preview={"path": SITE_DOCUMENT, **previews[0]},
        )

from __future__ import annotations

from typing import TYPE_CHECKING

from cms_agent.infra.errors import ResolutionError, ToolArgumentError
from cms_agent.media.library import is_image_path
from cms_agent.tools.base import BaseTool, ToolFamily, ToolResult

if TYPE_CHECKING:
    from cms_agent.media.library import MediaLibrary
    from cms_agent.tools.context import ToolContext

MAX_MEDIA_ITEMS = 300


class _MediaTool(BaseTool):
    def __init__(self, media_library: MediaLibrary) -> None:
        self._library = media_library

    @property
    def family(self) -> ToolFamily:
        return ToolFamily.media


class ListMediaTool(_MediaTool):
    @property
    def name(self) -> str:
        return "list_media"

    @property
    def description(self) -> str:
        return "List media files known to the site media library."

    @property
    def parameters(self) -> dict:
        return {
            "type": "object",
            "properties": {
                "type": {"type": "string", "enum": ["all", "images", "documents"]},
            },
            "required": [],
        }

    async def execute(self, arguments: dict, context: ToolContext) -> ToolResult:
        kind = arguments.get("type") or "all"
        items = await self._library.list_media(context.site_id)
        if kind == "images":
            items = [i for i in items if is_image_path(i.path)]
        elif kind == "documents":
            items = [i for i in items if not is_image_path(i.path)]
        return ToolResult(
            ok=True,
            tool=self.name,
            summary=f"Found {len(items)} media items",
            data={"items": [i.to_dict() for i in items[:MAX_MEDIA_ITEMS]]},
        )


class GetImageUrlTool(_MediaTool):
    @property
    def name(self) -> str:
        return "get_image_url"

    @property
    def description(self) -> str:
        return "Find a media image by search text and return URL."

    @property
    def parameters(self) -> dict:
        return {
            "type": "object",
            "properties": {"search": {"type": "string"}},
            "required": ["search"],
        }

    async def execute(self, arguments: dict, context: ToolContext) -> ToolResult:
        query = arguments["search"].strip().lower()
        if not query:
            raise ToolArgumentError("search is required")
        for item in await self._library.list_media(context.site_id):
            if query in item.path.lower() or query in item.url.lower():
                return ToolResult(
                    ok=True, tool=self.name, summary=f"Matched {item.path}", data=item.to_dict()
                )
        raise ResolutionError(f'No image found for "{arguments["search"]}"')

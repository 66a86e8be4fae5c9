from __future__ import annotations

from typing import TYPE_CHECKING

from cms_agent.tools.builtins.entities import (
    AddEntityTool,
    ListEntitiesTool,
    ReadEntityTool,
    RemoveEntityTool,
    UpdateEntityFieldTool,
)
from cms_agent.tools.builtins.media import GetImageUrlTool, ListMediaTool
from cms_agent.tools.builtins.pages import (
    ListPagesTool,
    ListVariantOptionsTool,
    ReadPageTool,
    UpdatePageFieldsBatchTool,
    UpdatePageFieldTool,
    UpdateSectionVariantTool,
)
from cms_agent.tools.builtins.preferences import GetPreferencesTool, SetPreferenceTool
from cms_agent.tools.builtins.settings import (
    GetSiteSettingsTool,
    UpdateBusinessHoursTool,
    UpdateBusinessInfoTool,
    UpdateSeoTool,
    UpdateSocialLinksTool,
)
from cms_agent.tools.registry import ToolRegistry

if TYPE_CHECKING:
    from cms_agent.content.store import ContentStore
    from cms_agent.conversation.preferences import PreferenceStore
    from cms_agent.media.library import MediaLibrary


def register_builtins(
    registry: ToolRegistry,
    content_store: ContentStore,
    preference_store: PreferenceStore,
    media_library: MediaLibrary,
) -> None:
    """Register the full content tool catalog with the registry."""
    for tool_cls in (
        ListPagesTool,
        ReadPageTool,
        ListVariantOptionsTool,
        UpdatePageFieldTool,
        UpdatePageFieldsBatchTool,
        UpdateSectionVariantTool,
        ListEntitiesTool,
        ReadEntityTool,
        UpdateEntityFieldTool,
        AddEntityTool,
        RemoveEntityTool,
        GetSiteSettingsTool,
        UpdateBusinessInfoTool,
        UpdateBusinessHoursTool,
        UpdateSeoTool,
        UpdateSocialLinksTool,
    ):
        registry.register(tool_cls(content_store))

    registry.register(ListMediaTool(media_library))
    registry.register(GetImageUrlTool(media_library))
    registry.register(GetPreferencesTool(preference_store))
    registry.register(SetPreferenceTool(preference_store))


def build_tool_registry(
    content_store: ContentStore,
    preference_store: PreferenceStore,
    media_library: MediaLibrary,
) -> ToolRegistry:
    registry = ToolRegistry()
    register_builtins(registry, content_store, preference_store, media_library)
    return registry

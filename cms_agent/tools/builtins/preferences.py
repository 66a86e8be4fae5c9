from __future__ import annotations

from dataclasses import asdict
from typing import TYPE_CHECKING

from cms_agent.infra.errors import ToolArgumentError
from cms_agent.tools.base import BaseTool, ToolFamily, ToolResult, dry_run_prefix

if TYPE_CHECKING:
    from cms_agent.conversation.preferences import PreferenceStore
    from cms_agent.tools.context import ToolContext


class _PreferenceTool(BaseTool):
    def __init__(self, preference_store: PreferenceStore) -> None:
        self._preferences = preference_store

    @property
    def family(self) -> ToolFamily:
        return ToolFamily.preferences


class GetPreferencesTool(_PreferenceTool):
    @property
    def name(self) -> str:
        return "get_preferences"

    @property
    def description(self) -> str:
        return "Read the stored editing preferences for this site and locale."

    @property
    def parameters(self) -> dict:
        return {"type": "object", "properties": {}, "required": []}

    async def execute(self, arguments: dict, context: ToolContext) -> ToolResult:
        rows = await self._preferences.list_preferences(context.site_id, context.locale)
        return ToolResult(
            ok=True,
            tool=self.name,
            summary=f"Loaded {len(rows)} preference{'' if len(rows) == 1 else 's'}",
            data={"preferences": [asdict(r) for r in rows]},
        )


class SetPreferenceTool(_PreferenceTool):
    """Preferences are site memory, not content; they are only saved outside dry-run."""

    @property
    def name(self) -> str:
        return "set_preference"

    @property
    def description(self) -> str:
        return (
            "Remember an editing preference for this site (e.g. tone, "
            "default CTA wording) so later requests follow it."
        )

    @property
    def mutates(self) -> bool:
        return True

    @property
    def parameters(self) -> dict:
        return {
            "type": "object",
            "properties": {
                "key": {"type": "string"},
                "value": {},
            },
            "required": ["key", "value"],
        }

    async def execute(self, arguments: dict, context: ToolContext) -> ToolResult:
        key = arguments["key"].strip()
        if not key:
            raise ToolArgumentError("Preference key is required")
        if not context.dry_run:
            await self._preferences.set_preference(
                context.site_id, context.locale, key, arguments["value"]
            )
        return ToolResult(
            ok=True,
            tool=self.name,
            summary=f"{dry_run_prefix(context)}Set preference {key}",
            preview={"key": key, "value": arguments["value"]},
        )

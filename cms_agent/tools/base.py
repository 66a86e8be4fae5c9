from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import StrEnum
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from cms_agent.tools.context import ToolContext


class ToolFamily(StrEnum):
    pages = "pages"
    entities = "entities"
    settings = "settings"
    media = "media"
    preferences = "preferences"


@dataclass
class ToolResult:
    """Outcome of one tool call, fed back to the model as a tool-role message.

    changed_paths lists every document address the call mutated (or would
    have mutated under dry-run). preview carries old/new values and the
    resolved field path for mutating tools.
    """

    ok: bool
    tool: str
    summary: str
    data: Any = None
    changed_paths: list[str] = field(default_factory=list)
    preview: Any = None

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"ok": self.ok, "tool": self.tool, "summary": self.summary}
        if self.data is not None:
            payload["data"] = self.data
        if self.changed_paths:
            payload["changed_paths"] = list(self.changed_paths)
        if self.preview is not None:
            payload["preview"] = self.preview
        return payload


def dry_run_prefix(context: ToolContext) -> str:
    return "[dry-run] " if context.dry_run else ""


def field_path_preview(raw_path: str, actual_path: str) -> dict[str, str]:
    """Preview fragment naming the resolved path, plus the raw one when they differ."""
    preview = {"field_path": actual_path}
    raw = raw_path.strip()
    if raw != actual_path:
        preview["field_path_raw"] = raw
    return preview


def resolution_note(raw_path: str, actual_path: str) -> str:
    raw = raw_path.strip()
    return f" | resolved path: {raw} -> {actual_path}" if raw != actual_path else ""


class BaseTool(ABC):
    """Abstract base class for content tools."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Unique tool name used in function calling."""
        ...

    @property
    @abstractmethod
    def description(self) -> str:
        """Human-readable description of what the tool does."""
        ...

    @property
    @abstractmethod
    def parameters(self) -> dict:
        """JSON Schema describing the tool's input parameters."""
        ...

    @property
    @abstractmethod
    def family(self) -> ToolFamily:
        ...

    @property
    def mutates(self) -> bool:
        """Whether a successful call changes stored content. Default: read-only."""
        return False

    @abstractmethod
    async def execute(self, arguments: dict, context: ToolContext) -> ToolResult:
        """Execute the tool. Arguments are already validated against ``parameters``."""
        ...

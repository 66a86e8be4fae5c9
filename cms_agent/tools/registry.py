from __future__ import annotations

from typing import TYPE_CHECKING

import structlog
from jsonschema import Draft7Validator

from cms_agent.infra.errors import ToolArgumentError, UnknownToolError

if TYPE_CHECKING:
    from cms_agent.tools.base import BaseTool, ToolFamily, ToolResult
    from cms_agent.tools.context import ToolContext

logger = structlog.get_logger()


def _format_error_path(error) -> str:
    parts = [str(p) for p in error.absolute_path]
    return ".".join(parts) if parts else "(root)"


class ToolRegistry:
    """Name -> tool map and the single dispatch point for tool calls."""

    def __init__(self) -> None:
        self._tools: dict[str, BaseTool] = {}
        self._validators: dict[str, Draft7Validator] = {}

    def register(self, tool: BaseTool) -> None:
        """Register a tool. Raises ValueError if name already registered."""
        if tool.name in self._tools:
            raise ValueError(f"Tool already registered: {tool.name}")
        Draft7Validator.check_schema(tool.parameters)
        self._tools[tool.name] = tool
        self._validators[tool.name] = Draft7Validator(tool.parameters)
        logger.debug("tool_registered", tool_name=tool.name, family=str(tool.family))

    def get(self, name: str) -> BaseTool | None:
        """Get a tool by name. Returns None if not found."""
        return self._tools.get(name)

    def list_tools(self, family: ToolFamily | None = None) -> list[BaseTool]:
        return [
            tool for tool in self._tools.values()
            if family is None or tool.family == family
        ]

    def get_tools_schema(self) -> list[dict]:
        """Return vendor-neutral tool schemas.

        Output format:
        [{"name": ..., "description": ..., "input_schema": {...}}]
        """
        return [
            {
                "name": tool.name,
                "description": tool.description,
                "input_schema": tool.parameters,
            }
            for tool in self._tools.values()
        ]

    def validate_arguments(self, name: str, arguments: dict) -> None:
        validator = self._validators.get(name)
        if validator is None:
            raise UnknownToolError(name)
        errors = sorted(validator.iter_errors(arguments), key=lambda e: list(e.absolute_path))
        if errors:
            details = "; ".join(f"{_format_error_path(e)}: {e.message}" for e in errors)
            raise ToolArgumentError(f"Invalid arguments for {name}: {details}")

    async def execute(self, ctx: ToolContext, name: str, arguments: dict) -> ToolResult:
        """Validate and run one tool call. Tool errors propagate to the caller."""
        tool = self._tools.get(name)
        if tool is None:
            raise UnknownToolError(name)
        if not isinstance(arguments, dict):
            raise ToolArgumentError(f"Arguments for {name} must be an object")
        self.validate_arguments(name, arguments)

        result = await tool.execute(arguments, ctx)
        logger.info(
            "tool_executed",
            tool_name=name,
            site_id=ctx.site_id,
            locale=ctx.locale,
            dry_run=ctx.dry_run,
            changed_paths=result.changed_paths,
        )
        return result

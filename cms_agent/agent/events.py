from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Literal

FailureTag = Literal["invalid_variant", "field_path_error", "auth_error", "tool_error"]


@dataclass
class ToolRun:
    """Record of one executed tool call within a chat turn."""

    name: str
    ok: bool
    summary: str
    preview: Any = None
    changed_paths: list[str] = field(default_factory=list)
    mutated: bool = False
    failure: FailureTag | None = None
    raw_path: str | None = None
    resolved_path: str | None = None


@dataclass
class ChatTurnOutcome:
    conversation_id: str
    answer: str
    tool_runs: list[ToolRun]
    model: str
    dry_run: bool


@dataclass
class StatusEvent:
    """Progress notice (model started, turn n, or an error at the boundary)."""

    message: str
    type: str = "status"


@dataclass
class ToolStartEvent:
    name: str
    args: dict
    type: str = "tool_start"


@dataclass
class ToolResultEvent:
    run: ToolRun
    type: str = "tool_result"


@dataclass
class AssistantEvent:
    text: str
    type: str = "assistant"


@dataclass
class DoneEvent:
    outcome: ChatTurnOutcome
    type: str = "done"


ChatEvent = StatusEvent | ToolStartEvent | ToolResultEvent | AssistantEvent | DoneEvent

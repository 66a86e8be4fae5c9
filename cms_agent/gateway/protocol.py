"""HTTP payload models. Wire format is camelCase; Python attributes stay snake_case."""

from __future__ import annotations

import json
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from cms_agent.agent.events import ChatEvent, ChatTurnOutcome, DoneEvent, ToolResultEvent, ToolRun


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ChatRequest(_CamelModel):
    site_id: str = Field(min_length=1)
    locale: str = "en"
    message: str
    conversation_id: str | None = None
    stream: bool = False
    dry_run: bool = False

    @field_validator("message")
    @classmethod
    def _require_message(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("message is required")
        return v

    @field_validator("locale", mode="before")
    @classmethod
    def _default_locale(cls, v: Any) -> str:
        return str(v or "").strip() or "en"


class ToolRunData(_CamelModel):
    name: str
    ok: bool
    summary: str
    preview: Any = None
    changed_paths: list[str] = Field(default_factory=list)
    failure: str | None = None

    @classmethod
    def from_run(cls, run: ToolRun) -> ToolRunData:
        return cls(
            name=run.name,
            ok=run.ok,
            summary=run.summary,
            preview=run.preview,
            changed_paths=run.changed_paths,
            failure=run.failure,
        )


class ChatResponse(_CamelModel):
    success: bool = True
    conversation_id: str
    answer: str
    tool_runs: list[ToolRunData]
    model: str
    dry_run: bool

    @classmethod
    def from_outcome(cls, outcome: ChatTurnOutcome) -> ChatResponse:
        return cls(
            conversation_id=outcome.conversation_id,
            answer=outcome.answer,
            tool_runs=[ToolRunData.from_run(r) for r in outcome.tool_runs],
            model=outcome.model,
            dry_run=outcome.dry_run,
        )


class PreferenceUpsert(_CamelModel):
    site_id: str = Field(min_length=1)
    locale: str = "en"
    key: str
    value: Any = None

    @field_validator("key")
    @classmethod
    def _require_key(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("key is required")
        return v


class ErrorResponse(BaseModel):
    message: str
    code: str = "INTERNAL_ERROR"


def event_payload(event: ChatEvent) -> dict[str, Any]:
    """Camel-cased SSE payload for one engine event."""
    if isinstance(event, ToolResultEvent):
        return {"type": event.type, **ToolRunData.from_run(event.run).model_dump(by_alias=True)}
    if isinstance(event, DoneEvent):
        return {
            "type": event.type,
            **ChatResponse.from_outcome(event.outcome).model_dump(by_alias=True),
        }
    payload = {"type": event.type}
    for key, value in vars(event).items():
        if key != "type":
            payload[to_camel(key)] = value
    return payload


def encode_sse_event(payload: dict[str, Any]) -> str:
    return f"data: {json.dumps(payload, ensure_ascii=False, default=str)}\n\n"

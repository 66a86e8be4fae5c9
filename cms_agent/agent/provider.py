"""Vendor-neutral chat provider interface.

The engine only ever calls ``run_turn``: one request in, one assistant turn
(text and/or tool calls) out. Vendors are adapted in ``cms_agent.agent.providers``.
"""

from __future__ import annotations

import asyncio
import json
import random
from abc import ABC, abstractmethod
from collections.abc import Callable, Coroutine
from dataclasses import dataclass, field
from typing import Any, Literal, TypeVar

import structlog

from cms_agent.infra.errors import ProviderError

logger = structlog.get_logger()

T = TypeVar("T")

FinishReason = Literal["stop", "tool_use", "length"]


@dataclass
class ProviderMessage:
    role: Literal["user", "assistant", "tool"]
    content: str
    tool_name: str | None = None


@dataclass
class ToolCall:
    """A tool invocation requested by the model.

    parse_error is set when the vendor returned arguments that were not a
    JSON object; args is then empty and the call must be reported as failed.
    """

    id: str
    name: str
    args: dict[str, Any] = field(default_factory=dict)
    parse_error: str | None = None


@dataclass
class ProviderRequest:
    model: str
    system_prompt: str
    tools: list[dict]
    messages: list[ProviderMessage]


@dataclass
class ChatTurnResult:
    assistant_text: str
    tool_calls: list[ToolCall]
    finish_reason: FinishReason
    model: str


class ChatProvider(ABC):
    """One polymorphic entry point per vendor."""

    @property
    @abstractmethod
    def name(self) -> str:
        ...

    @abstractmethod
    async def run_turn(self, request: ProviderRequest) -> ChatTurnResult:
        ...


def fold_messages(messages: list[ProviderMessage]) -> list[dict[str, str]]:
    """Render history as plain user/assistant turns.

    Tool results are folded into a user turn so every vendor sees the same
    transcript regardless of its native tool-result format.
    """
    folded = []
    for msg in messages:
        if msg.role == "tool":
            folded.append({
                "role": "user",
                "content": f"Tool {msg.tool_name or 'unknown'} result:\n{msg.content}",
            })
        else:
            folded.append({"role": msg.role, "content": msg.content})
    return folded


def parse_tool_arguments(raw: Any) -> tuple[dict[str, Any], str | None]:
    """Decode vendor tool-call arguments. Returns (args, parse_error)."""
    if isinstance(raw, dict):
        return raw, None
    if raw is None or raw == "":
        return {}, None
    try:
        parsed = json.loads(raw) if isinstance(raw, str) else raw
    except json.JSONDecodeError as e:
        return {}, f"Malformed tool arguments: {e.msg}"
    if not isinstance(parsed, dict):
        return {}, "Tool arguments must be a JSON object"
    return parsed, None


async def call_with_retry(
    coro_factory: Callable[[], Coroutine[Any, Any, T]],
    *,
    retryable: tuple[type[Exception], ...],
    status_error: type[Exception],
    max_retries: int = 3,
    base_delay: float = 1.0,
    context: str = "",
) -> T:
    """Execute an async vendor call with exponential backoff retry.

    Retries on the vendor's transient errors. Non-retryable API errors are
    wrapped in ProviderError.
    """
    for attempt in range(max_retries + 1):
        try:
            return await coro_factory()
        except retryable as e:
            if attempt == max_retries:
                raise ProviderError(
                    f"Provider call failed after {max_retries + 1} attempts: {e}"
                ) from e
            delay = base_delay * (2**attempt) + random.uniform(0, 0.5)
            logger.warning(
                "provider_retry",
                attempt=attempt + 1,
                max_retries=max_retries,
                delay=round(delay, 2),
                error=str(e),
                context=context,
            )
            await asyncio.sleep(delay)
        except status_error as e:
            raise ProviderError(f"Provider API error: {e}") from e
    raise ProviderError("Retry loop exhausted")  # pragma: no cover

from __future__ import annotations

import structlog
from anthropic import (
    APIConnectionError,
    APIStatusError,
    APITimeoutError,
    AsyncAnthropic,
    InternalServerError,
    RateLimitError,
)

from cms_agent.agent.provider import (
    ChatProvider,
    ChatTurnResult,
    ProviderMessage,
    ProviderRequest,
    ToolCall,
    call_with_retry,
    fold_messages,
    parse_tool_arguments,
)
from cms_agent.infra.errors import ProviderError

logger = structlog.get_logger()

_RETRYABLE = (APIConnectionError, APITimeoutError, RateLimitError, InternalServerError)


def to_anthropic_messages(messages: list[ProviderMessage]) -> list[dict[str, str]]:
    """Fold tool results into user turns and merge consecutive same-role turns.

    The messages API requires roles to alternate starting with a user turn, so
    assistant turns left at the head of a truncated history window are dropped.
    """
    merged: list[dict[str, str]] = []
    for msg in fold_messages(messages):
        if not merged and msg["role"] != "user":
            continue
        if merged and merged[-1]["role"] == msg["role"]:
            merged[-1] = {
                "role": msg["role"],
                "content": f"{merged[-1]['content']}\n\n{msg['content']}",
            }
        else:
            merged.append(msg)
    return merged


class AnthropicChatProvider(ChatProvider):
    def __init__(
        self,
        api_key: str,
        max_tokens: int,
        base_url: str | None = None,
        *,
        client: AsyncAnthropic | None = None,
        max_retries: int = 3,
        base_delay: float = 1.0,
    ) -> None:
        self._client = client or AsyncAnthropic(api_key=api_key, base_url=base_url)
        self._max_tokens = max_tokens
        self._max_retries = max_retries
        self._base_delay = base_delay

    @property
    def name(self) -> str:
        return "anthropic"

    async def run_turn(self, request: ProviderRequest) -> ChatTurnResult:
        messages = to_anthropic_messages(request.messages)
        logger.debug(
            "provider_request",
            provider=self.name,
            model=request.model,
            message_count=len(messages),
            tool_count=len(request.tools),
        )
        response = await call_with_retry(
            lambda: self._client.messages.create(
                model=request.model,
                max_tokens=self._max_tokens,
                system=request.system_prompt,
                messages=messages,
                **(
                    {"tools": request.tools, "tool_choice": {"type": "auto"}}
                    if request.tools
                    else {}
                ),
            ),
            retryable=_RETRYABLE,
            status_error=APIStatusError,
            max_retries=self._max_retries,
            base_delay=self._base_delay,
            context="anthropic_run_turn",
        )
        if not response.content:
            raise ProviderError("Empty content from provider (anthropic)")

        text_parts: list[str] = []
        tool_calls: list[ToolCall] = []
        for block in response.content:
            if block.type == "text":
                text_parts.append(block.text or "")
            elif block.type == "tool_use":
                args, parse_error = parse_tool_arguments(block.input)
                if parse_error:
                    logger.warning("tool_call_args_malformed", tool_name=block.name)
                tool_calls.append(
                    ToolCall(id=block.id, name=block.name, args=args, parse_error=parse_error)
                )

        if response.stop_reason == "tool_use":
            finish_reason = "tool_use"
        elif response.stop_reason == "max_tokens":
            finish_reason = "length"
        else:
            finish_reason = "stop"

        return ChatTurnResult(
            assistant_text="\n".join(text_parts).strip(),
            tool_calls=tool_calls,
            finish_reason=finish_reason,
            model=response.model or request.model,
        )

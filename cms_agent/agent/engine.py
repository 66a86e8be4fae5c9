"""ChatEngine: the bounded, deduplicated tool-calling loop for one chat request.

One request is one sequential execution. Every provider turn may request
tool calls; each novel call runs through the ToolRegistry in the order the
provider listed it, and its result is fed back as a tool-role message. The
loop stops when the provider requests no tools, when every requested call
repeats an earlier one, or when the turn cap is reached.
"""

from __future__ import annotations

import json
from collections.abc import AsyncIterator
from typing import TYPE_CHECKING

import structlog

from cms_agent.agent.context_hints import build_context_block, is_write_intent
from cms_agent.agent.events import (
    AssistantEvent,
    ChatEvent,
    ChatTurnOutcome,
    DoneEvent,
    FailureTag,
    StatusEvent,
    ToolResultEvent,
    ToolRun,
    ToolStartEvent,
)
from cms_agent.agent.prompt import build_system_prompt
from cms_agent.agent.provider import ProviderMessage, ProviderRequest, ToolCall
from cms_agent.infra.errors import (
    AuthorizationError,
    CMSAgentError,
    FieldPathError,
    InvalidVariantError,
    ToolArgumentError,
)
from cms_agent.tools.context import build_tool_context

if TYPE_CHECKING:
    from cms_agent.agent.provider import ChatProvider
    from cms_agent.config.settings import AIChatSettings
    from cms_agent.content.store import ContentStore
    from cms_agent.conversation.preferences import PreferenceStore
    from cms_agent.conversation.store import ConversationStore
    from cms_agent.tools.context import ToolContext
    from cms_agent.tools.registry import ToolRegistry

logger = structlog.get_logger()

NO_CHANGES_ANSWER = "No changes were needed."


def call_signature(call: ToolCall) -> str:
    """Identity of a tool call for deduplication: name plus canonical JSON args."""
    args = json.dumps(call.args or {}, sort_keys=True, separators=(",", ":"), default=str)
    return f"{call.name}:{args}"


def classify_failure(exc: Exception, args: dict | None = None) -> FailureTag:
    """Informational tag for a failed call, from the error type, its text and the args."""
    if isinstance(exc, InvalidVariantError):
        return "invalid_variant"
    if isinstance(exc, FieldPathError):
        return "field_path_error"
    if isinstance(exc, AuthorizationError):
        return "auth_error"

    text = str(exc).lower()
    if "variant" in text:
        return "invalid_variant"
    if "path" in text or "field_path" in (args or {}):
        return "field_path_error"
    if "forbidden" in text or "not authenticated" in text:
        return "auth_error"
    return "tool_error"


def select_answer(message: str, assistant_text: str, tool_runs: list[ToolRun]) -> str:
    """Pick the final answer. Never reports success that no tool result confirms."""
    if is_write_intent(message) and not any(r.ok and r.mutated for r in tool_runs):
        failures = [r for r in tool_runs if not r.ok]
        lines = ["No change was applied."]
        if failures:
            lines.append("Failed tool calls:")
            lines.extend(f"- {r.name}: {r.summary}" for r in failures)
        else:
            lines.append("No tool call changed any content for this request.")
        if assistant_text:
            lines.append("")
            lines.append(assistant_text)
        return "\n".join(lines)

    if assistant_text:
        return assistant_text

    summaries = list(dict.fromkeys(r.summary for r in tool_runs))
    if summaries:
        return "Tool results:\n" + "\n".join(f"- {s}" for s in summaries)
    return NO_CHANGES_ANSWER


class ChatEngine:
    """Drives one chat request end to end.

    Dry-run requests still call the provider and run every tool (so previews
    are real) but persist nothing: no content, no chat messages, no preferences.
    """

    def __init__(
        self,
        provider: ChatProvider,
        tool_registry: ToolRegistry,
        conversation_store: ConversationStore,
        preference_store: PreferenceStore,
        content_store: ContentStore,
        settings: AIChatSettings,
    ) -> None:
        self._provider = provider
        self._tools = tool_registry
        self._conversations = conversation_store
        self._preferences = preference_store
        self._content = content_store
        self._settings = settings

    async def run_turn(
        self,
        *,
        site_id: str,
        locale: str,
        actor_email: str,
        message: str,
        conversation_id: str | None = None,
        dry_run: bool = False,
    ) -> ChatTurnOutcome:
        """Run a request to completion and return its outcome."""
        outcome: ChatTurnOutcome | None = None
        async for event in self.stream_turn(
            site_id=site_id,
            locale=locale,
            actor_email=actor_email,
            message=message,
            conversation_id=conversation_id,
            dry_run=dry_run,
        ):
            if isinstance(event, DoneEvent):
                outcome = event.outcome
        assert outcome is not None
        return outcome

    async def stream_turn(
        self,
        *,
        site_id: str,
        locale: str,
        actor_email: str,
        message: str,
        conversation_id: str | None = None,
        dry_run: bool = False,
    ) -> AsyncIterator[ChatEvent]:
        """Run a request and yield progress events, ending with a DoneEvent.

        ProviderError and PersistenceError propagate to the caller.
        """
        ctx = build_tool_context(
            site_id=site_id, locale=locale, actor_email=actor_email, dry_run=dry_run
        )
        conversation_id = conversation_id or self._conversations.create_conversation_id()
        model = self._settings.model

        history = await self._conversations.load_conversation(
            ctx.site_id, ctx.locale, conversation_id, limit=self._settings.history_limit
        )
        messages = [
            ProviderMessage(role=m.role, content=m.content, tool_name=m.tool_name)
            for m in history
        ]
        context_block = await build_context_block(
            self._content, self._preferences, ctx, message
        )
        messages.append(ProviderMessage(role="user", content=_with_context(message, context_block)))

        yield StatusEvent(
            message=f"Running model {model}{' in dry-run mode' if ctx.dry_run else ''}"
        )
        await self._persist(ctx, conversation_id, "user", message)

        system_prompt = build_system_prompt(ctx.site_id, ctx.locale)
        tools_schema = self._tools.get_tools_schema()
        assistant_text = ""
        tool_runs: list[ToolRun] = []
        seen: set[str] = set()

        for turn_index in range(self._settings.max_turns):
            yield StatusEvent(message=f"Assistant turn {turn_index + 1}")
            turn = await self._provider.run_turn(
                ProviderRequest(
                    model=self._settings.model,
                    system_prompt=system_prompt,
                    tools=tools_schema,
                    messages=list(messages),
                )
            )
            if turn.model:
                model = turn.model

            if turn.assistant_text:
                assistant_text = turn.assistant_text
                messages.append(ProviderMessage(role="assistant", content=turn.assistant_text))
                yield AssistantEvent(text=turn.assistant_text)

            if not turn.tool_calls:
                break

            executed_any = False
            for call in turn.tool_calls:
                signature = call_signature(call)
                if signature in seen:
                    logger.info("tool_call_deduplicated", tool_name=call.name)
                    continue
                seen.add(signature)
                executed_any = True

                yield ToolStartEvent(name=call.name, args=call.args)
                run, payload = await self._execute(ctx, call)
                tool_runs.append(run)
                yield ToolResultEvent(run=run)

                content = json.dumps(payload, ensure_ascii=False, default=str)
                messages.append(ProviderMessage(role="tool", content=content, tool_name=call.name))
                await self._persist(ctx, conversation_id, "tool", content, tool_name=call.name)

            logger.info(
                "tool_call_iteration",
                iteration=turn_index + 1,
                tools_requested=len(turn.tool_calls),
                conversation_id=conversation_id,
            )
            if not executed_any:
                break
        else:
            logger.warning(
                "max_turns_reached",
                max_turns=self._settings.max_turns,
                conversation_id=conversation_id,
            )

        answer = select_answer(message, assistant_text, tool_runs)
        await self._persist(ctx, conversation_id, "assistant", answer)
        logger.info(
            "chat_turn_complete",
            conversation_id=conversation_id,
            site_id=ctx.site_id,
            tool_runs=len(tool_runs),
            failed=sum(1 for r in tool_runs if not r.ok),
            dry_run=ctx.dry_run,
        )
        yield DoneEvent(
            outcome=ChatTurnOutcome(
                conversation_id=conversation_id,
                answer=answer,
                tool_runs=tool_runs,
                model=model,
                dry_run=ctx.dry_run,
            )
        )

    async def _execute(self, ctx: ToolContext, call: ToolCall) -> tuple[ToolRun, dict]:
        """Run one call. Tool failures become failed runs; the loop continues."""
        try:
            if call.parse_error:
                raise ToolArgumentError(call.parse_error)
            result = await self._tools.execute(ctx, call.name, call.args)
        except Exception as e:
            failure = classify_failure(e, call.args)
            if isinstance(e, CMSAgentError):
                logger.warning(
                    "tool_call_failed", tool_name=call.name, failure=failure, error=str(e)
                )
            else:
                logger.exception("tool_execution_failed", tool_name=call.name)
            summary = str(e) or "Tool execution failed"
            run = ToolRun(
                name=call.name,
                ok=False,
                summary=summary,
                failure=failure,
                raw_path=_raw_path(call.args),
            )
            return run, {"ok": False, "tool": call.name, "error": summary, "failure": failure}

        tool = self._tools.get(call.name)
        run = ToolRun(
            name=call.name,
            ok=result.ok,
            summary=result.summary,
            preview=result.preview,
            changed_paths=list(result.changed_paths),
            mutated=result.ok and tool is not None and tool.mutates,
            raw_path=_raw_path(call.args),
            resolved_path=_resolved_path(result.preview),
        )
        return run, result.to_dict()

    async def _persist(
        self,
        ctx: ToolContext,
        conversation_id: str,
        role: str,
        content: str,
        tool_name: str | None = None,
    ) -> None:
        if ctx.dry_run:
            return
        await self._conversations.save_message(
            ctx.site_id, ctx.locale, conversation_id, role, content, tool_name=tool_name
        )


def _with_context(message: str, context_block: str) -> str:
    if not context_block:
        return message
    return f"{message}\n\n[Context]\n{context_block}"


def _raw_path(args: dict | None) -> str | None:
    for key in ("field_path", "field"):
        value = (args or {}).get(key)
        if isinstance(value, str):
            return value
    return None


def _resolved_path(preview: object) -> str | None:
    if isinstance(preview, dict) and isinstance(preview.get("field_path"), str):
        return preview["field_path"]
    return None

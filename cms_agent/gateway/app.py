from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING, Any

import structlog
from fastapi import Depends, FastAPI, Header, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, StreamingResponse

from cms_agent.agent.engine import ChatEngine
from cms_agent.agent.events import ChatTurnOutcome, DoneEvent, StatusEvent
from cms_agent.agent.provider_registry import build_provider_registry, create_provider
from cms_agent.config.settings import get_settings
from cms_agent.content.aliases import resolve_friendly_field_path
from cms_agent.content.paths import get_value, set_value
from cms_agent.content.store import ContentStore
from cms_agent.conversation.audit import (
    REPORT_DAYS_DEFAULT,
    REPORT_LIMIT_DEFAULT,
    AuditLog,
    build_turn_report,
    clamp_report_window,
    turn_details,
)
from cms_agent.conversation.preferences import PreferenceStore
from cms_agent.conversation.store import ConversationStore
from cms_agent.db.database import create_db_engine, ensure_schema, make_session_factory
from cms_agent.gateway.protocol import (
    ChatRequest,
    ChatResponse,
    ErrorResponse,
    PreferenceUpsert,
    encode_sse_event,
    event_payload,
)
from cms_agent.infra.errors import (
    AuthenticationError,
    AuthorizationError,
    CMSAgentError,
    GatewayError,
    ProviderError,
)
from cms_agent.infra.logging import setup_logging
from cms_agent.media.library import MediaLibrary
from cms_agent.tools.builtins import build_tool_registry
from cms_agent.tools.context import build_tool_context

if TYPE_CHECKING:
    from cms_agent.config.settings import Settings

logger = structlog.get_logger()

SSE_HEADERS = {
    "Cache-Control": "no-cache, no-transform",
    "Connection": "keep-alive",
}

SELF_TEST_STEPS: tuple[tuple[str, dict], ...] = (
    ("list_pages", {}),
    ("get_site_settings", {}),
    ("list_entities", {"entity_type": "agents"}),
    ("list_entities", {"entity_type": "events"}),
    ("list_entities", {"entity_type": "guides"}),
    ("list_media", {"type": "all"}),
)


def create_app(settings: Settings | None = None) -> FastAPI:
    """Build the gateway app. ``settings`` defaults to the environment."""

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        """Application lifespan: initialize shared state on startup."""
        resolved = settings or get_settings()
        setup_logging(json_output=resolved.gateway.json_logs)

        db_engine = None
        session_factory = None
        if resolved.database.enabled:
            db_engine = await create_db_engine(resolved.database)
            await ensure_schema(db_engine, resolved.database.schema_)
            session_factory = make_session_factory(db_engine)
            logger.info("db_connected")
        else:
            logger.warning("db_disabled", msg="DATABASE_HOST not set; using file mirror only")

        content_store = ContentStore(session_factory, resolved.content)
        conversation_store = ConversationStore(session_factory)
        preference_store = PreferenceStore(session_factory)
        media_library = MediaLibrary(session_factory, resolved.content.media_public_base_url)
        tool_registry = build_tool_registry(content_store, preference_store, media_library)
        audit_log = AuditLog(session_factory, resolved.content.content_dir)
        provider_registry = build_provider_registry(resolved)

        chat_engine = None
        if resolved.ai_chat.enabled:
            try:
                provider = create_provider(provider_registry)
            except ProviderError as e:
                logger.warning("chat_provider_unavailable", error=str(e))
            else:
                chat_engine = ChatEngine(
                    provider=provider,
                    tool_registry=tool_registry,
                    conversation_store=conversation_store,
                    preference_store=preference_store,
                    content_store=content_store,
                    settings=resolved.ai_chat,
                )

        app.state.settings = resolved
        app.state.tool_registry = tool_registry
        app.state.provider_registry = provider_registry
        app.state.preference_store = preference_store
        app.state.audit_log = audit_log
        app.state.chat_engine = chat_engine
        logger.info(
            "gateway_started",
            host=resolved.gateway.host,
            port=resolved.gateway.port,
            chat_enabled=resolved.ai_chat.enabled,
            provider=resolved.ai_chat.provider,
            providers=provider_registry.available_providers(),
        )

        yield

        if db_engine is not None:
            await db_engine.dispose()
            logger.info("db_engine_disposed")

    app = FastAPI(title="cms-agent Gateway", version="0.1.0", lifespan=lifespan)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )
    _register_error_handlers(app)
    _register_routes(app)
    return app


def _error(status_code: int, message: str, code: str = "GATEWAY_ERROR") -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=ErrorResponse(message=message, code=code).model_dump(),
    )


def _status_for(exc: CMSAgentError) -> int:
    if isinstance(exc, AuthenticationError):
        return 401
    if isinstance(exc, AuthorizationError):
        return 403
    if isinstance(exc, ProviderError):
        return 502
    if isinstance(exc, GatewayError):
        return 400
    return 500


def _register_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(RequestValidationError)
    async def _invalid_request(request: Request, exc: RequestValidationError) -> JSONResponse:
        details = "; ".join(
            f"{'.'.join(str(p) for p in err['loc'][1:]) or 'body'}: {err['msg']}"
            for err in exc.errors()
        )
        return _error(400, f"Invalid request body: {details}", code="INVALID_REQUEST")

    @app.exception_handler(CMSAgentError)
    async def _agent_error(request: Request, exc: CMSAgentError) -> JSONResponse:
        status = _status_for(exc)
        if status >= 500:
            logger.error("request_failed", path=request.url.path, code=exc.code, error=str(exc))
        return _error(status, str(exc), code=exc.code)


async def require_actor(x_actor_email: str | None = Header(default=None)) -> str:
    """Every admin route acts on behalf of the editor named by X-Actor-Email."""
    actor = (x_actor_email or "").strip()
    if not actor:
        raise AuthenticationError()
    return actor


def _register_routes(app: FastAPI) -> None:
    @app.get("/health")
    async def health() -> dict[str, str]:
        return {"status": "ok"}

    @app.post("/api/admin/ai-chat", response_model=None)
    async def chat(
        payload: ChatRequest,
        request: Request,
        actor: str = Depends(require_actor),
    ) -> Any:
        state = request.app.state
        if not state.settings.ai_chat.enabled:
            return _error(404, "AI chat is disabled", code="DISABLED")
        engine: ChatEngine | None = state.chat_engine
        if engine is None:
            env = "OPENAI_API_KEY" if state.settings.ai_chat.provider == "openai" else "ANTHROPIC_API_KEY"
            return _error(503, f"{env} is missing", code="PROVIDER_UNAVAILABLE")

        turn_args = {
            "site_id": payload.site_id,
            "locale": payload.locale,
            "actor_email": actor,
            "message": payload.message,
            "conversation_id": payload.conversation_id,
            "dry_run": payload.dry_run,
        }

        if payload.stream:
            return StreamingResponse(
                _stream_events(engine, state.audit_log, turn_args),
                media_type="text/event-stream",
                headers=SSE_HEADERS,
            )

        outcome = await engine.run_turn(**turn_args)
        await _record_turn(state.audit_log, turn_args, outcome)
        return ChatResponse.from_outcome(outcome).model_dump(by_alias=True)

    @app.get("/api/admin/ai-chat/status", dependencies=[Depends(require_actor)])
    async def status(request: Request) -> dict[str, Any]:
        settings: Settings = request.app.state.settings
        chat = settings.ai_chat
        return {
            "success": True,
            "enabled": chat.enabled,
            "provider": chat.provider,
            "model": chat.model if chat.model_configured else None,
            "modelConfigured": chat.model_configured,
            "providerKeyDetected": settings.provider_key_detected(),
            "keysDetected": {
                "anthropic": settings.provider_key_detected("anthropic"),
                "openai": settings.provider_key_detected("openai"),
            },
            "availableProviders": request.app.state.provider_registry.available_providers(),
        }

    @app.get("/api/admin/ai-chat/preferences", dependencies=[Depends(require_actor)])
    async def list_preferences(
        request: Request,
        site_id: str | None = Query(default=None, alias="siteId"),
        locale: str = Query(default="en"),
    ) -> Any:
        if not site_id:
            return _error(400, "siteId is required", code="INVALID_REQUEST")
        store: PreferenceStore = request.app.state.preference_store
        preferences = await store.list_preferences(site_id, locale)
        return {
            "success": True,
            "siteId": site_id,
            "locale": locale,
            "preferences": [{"key": p.key, "value": p.value} for p in preferences],
        }

    @app.post("/api/admin/ai-chat/preferences")
    async def save_preference(
        payload: PreferenceUpsert,
        request: Request,
        actor: str = Depends(require_actor),
    ) -> dict[str, Any]:
        store: PreferenceStore = request.app.state.preference_store
        await store.set_preference(payload.site_id, payload.locale, payload.key, payload.value)
        logger.info("preference_updated", actor=actor, site_id=payload.site_id, key=payload.key)
        preferences = await store.list_preferences(payload.site_id, payload.locale)
        return {
            "success": True,
            "siteId": payload.site_id,
            "locale": payload.locale,
            "preferences": [{"key": p.key, "value": p.value} for p in preferences],
        }

    @app.get(
        "/api/admin/ai-chat/report", response_model=None, dependencies=[Depends(require_actor)]
    )
    async def report(
        request: Request,
        site_id: str | None = Query(default=None, alias="siteId"),
        days: int = Query(default=REPORT_DAYS_DEFAULT),
        limit: int = Query(default=REPORT_LIMIT_DEFAULT),
    ) -> Any:
        if not site_id:
            return _error(400, "siteId is required", code="INVALID_REQUEST")
        days, limit = clamp_report_window(days, limit)
        audit_log: AuditLog = request.app.state.audit_log
        entries = await audit_log.recent_turns(site_id, days=days, limit=limit)
        return {"success": True, "siteId": site_id, "days": days, **build_turn_report(entries)}

    @app.get("/api/admin/ai-chat/self-test", response_model=None)
    async def self_test(
        request: Request,
        site_id: str | None = Query(default=None, alias="siteId"),
        locale: str = Query(default="en"),
        actor: str = Depends(require_actor),
    ) -> Any:
        settings: Settings = request.app.state.settings
        if not settings.ai_chat.enabled:
            return _error(404, "AI chat is disabled", code="DISABLED")

        site_id = site_id or settings.gateway.default_site_id
        ctx = build_tool_context(site_id=site_id, locale=locale, actor_email=actor, dry_run=True)
        checks: list[dict[str, Any]] = [_path_round_trip_check(), _alias_resolution_check()]

        registry = request.app.state.tool_registry
        for tool_name, args in SELF_TEST_STEPS:
            try:
                result = await registry.execute(ctx, tool_name, args)
                checks.append({"check": tool_name, "pass": result.ok, "detail": result.summary})
            except Exception as e:
                checks.append({"check": tool_name, "pass": False, "detail": str(e)})

        passed = sum(1 for c in checks if c["pass"])
        return {
            "success": True,
            "siteId": site_id,
            "locale": locale,
            "total": len(checks),
            "passed": passed,
            "failed": len(checks) - passed,
            "checks": checks,
        }


async def _record_turn(
    audit_log: AuditLog, turn_args: dict[str, Any], outcome: ChatTurnOutcome
) -> None:
    logger.info(
        "ai_chat_turn",
        actor=turn_args["actor_email"],
        site_id=turn_args["site_id"],
        conversation_id=outcome.conversation_id,
        dry_run=outcome.dry_run,
        tool_runs=[{"name": r.name, "ok": r.ok} for r in outcome.tool_runs],
    )
    details = turn_details(outcome, locale=turn_args["locale"], prompt=turn_args["message"])
    await audit_log.record_turn(turn_args["site_id"], turn_args["actor_email"], details)


async def _stream_events(
    engine: ChatEngine, audit_log: AuditLog, turn_args: dict[str, Any]
) -> AsyncIterator[str]:
    """Encode engine events as SSE frames; failures end the stream with a status event."""
    try:
        async for event in engine.stream_turn(**turn_args):
            if isinstance(event, DoneEvent):
                await _record_turn(audit_log, turn_args, event.outcome)
            yield encode_sse_event(event_payload(event))
    except Exception as e:
        logger.exception("ai_chat_stream_failed", site_id=turn_args["site_id"])
        message = str(e) if isinstance(e, CMSAgentError) else "AI chat failed"
        yield encode_sse_event(event_payload(StatusEvent(message=f"Error: {message}")))


def _path_round_trip_check() -> dict[str, Any]:
    try:
        doc = set_value({"a": {"b": 1}}, "a.b", 2)
        passed = get_value(doc, "a.b") == 2
        return {"check": "paths.set/get", "pass": passed}
    except Exception as e:
        return {"check": "paths.set/get", "pass": False, "detail": str(e)}


def _alias_resolution_check() -> dict[str, Any]:
    try:
        resolved = resolve_friendly_field_path({"hero": {"headline": ""}}, "hero.title")
        return {"check": "aliases.resolve", "pass": resolved == "hero.headline", "detail": resolved}
    except Exception as e:
        return {"check": "aliases.resolve", "pass": False, "detail": str(e)}


app = create_app()

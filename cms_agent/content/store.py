"""Dual-backend JSON content store.

The database (content_entries) is authoritative when configured. The file
mirror under ``ContentSettings.content_dir`` is written through as a
best-effort secondary copy, and is the only store when no database is
configured. Collection kinds with query needs are additionally copied into
dedicated tables. None of these writes are transactional with each other.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from datetime import date
from pathlib import Path, PurePosixPath
from typing import TYPE_CHECKING, Any

import structlog
from sqlalchemy import delete, select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.sql import func

from cms_agent.content.media import normalize_media_urls
from cms_agent.db.models import DEDICATED_TABLES, ContentEntryRecord, EventRecord
from cms_agent.infra.errors import ContentPathError, DocumentNotFoundError, PersistenceError

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import async_sessionmaker

    from cms_agent.config.settings import ContentSettings
    from cms_agent.tools.context import ToolContext

logger = structlog.get_logger()

# Directories whose documents are addressed as <dir>/<slug>.json
COLLECTION_DIRS = frozenset({
    "agents",
    "properties",
    "neighborhoods",
    "events",
    "guides",
    "new-construction",
    "knowledge-center",
    "market-reports",
})

# Stored once per site rather than per locale in the file mirror.
SITE_LEVEL_FILES = frozenset({"theme.json"})

_EVENT_DATE_KEYS = ("eventDate", "startDate", "date")


@dataclass(frozen=True)
class ContentEntry:
    path: str
    content: Any


def validate_content_path(path: str) -> str:
    """Return the normalized logical path or raise ContentPathError."""
    value = (path or "").strip()
    if not value:
        raise ContentPathError("Content path is required")
    if value.startswith("/") or "\\" in value:
        raise ContentPathError(f"Invalid content path: {path}")
    if any(part in ("", ".", "..") for part in value.split("/")):
        raise ContentPathError(f"Invalid content path: {path}")
    if not value.lower().endswith(".json"):
        raise ContentPathError(f"Content path must be a .json document: {path}")
    return value


def collection_of(path: str) -> str | None:
    head, sep, _ = path.partition("/")
    if sep and head in COLLECTION_DIRS:
        return head
    return None


def slug_of(path: str) -> str:
    return PurePosixPath(path).name[: -len(".json")].lower()


def stamp_collection_identity(path: str, doc: Any) -> Any:
    """Collection documents always carry the slug of their address and an id."""
    if collection_of(path) is None or not isinstance(doc, dict):
        return doc
    slug = slug_of(path)
    return {**doc, "slug": slug, "id": str(doc.get("id") or slug)}


def parse_event_date(data: dict) -> date | None:
    for key in _EVENT_DATE_KEYS:
        raw = data.get(key)
        if isinstance(raw, str):
            try:
                return date.fromisoformat(raw[:10])
            except ValueError:
                return None
    return None


class ContentStore:
    """read/write/remove/list_by_prefix over (site_id, locale, path)."""

    def __init__(
        self,
        session_factory: async_sessionmaker | None,
        settings: ContentSettings,
    ) -> None:
        self._db = session_factory
        self._settings = settings

    @property
    def db_enabled(self) -> bool:
        return self._db is not None

    def mirror_path(self, site_id: str, locale: str, path: str) -> Path:
        root = self._settings.content_dir / site_id
        if path in SITE_LEVEL_FILES:
            return root / path
        return root / locale / path

    # ------------------------------------------------------------------
    # Public contract
    # ------------------------------------------------------------------

    async def read(self, ctx: ToolContext, path: str) -> Any:
        path = validate_content_path(path)
        if self._db is not None:
            try:
                content = await self._fetch_entry(ctx, path)
            except Exception:
                logger.exception(
                    "content_db_read_failed",
                    site_id=ctx.site_id,
                    locale=ctx.locale,
                    path=path,
                )
            else:
                if content is not None:
                    return content

        target = self.mirror_path(ctx.site_id, ctx.locale, path)
        try:
            return json.loads(target.read_text(encoding="utf-8"))
        except FileNotFoundError:
            raise DocumentNotFoundError(path) from None

    async def write(self, ctx: ToolContext, path: str, doc: Any) -> Any:
        """Persist ``doc`` and return the normalized document that was (or would be) stored."""
        path = validate_content_path(path)
        normalized = normalize_media_urls(doc, self._settings.media_public_base_url)
        normalized = stamp_collection_identity(path, normalized)

        if ctx.dry_run:
            logger.info("content_write_skipped", reason="dry_run", path=path)
            return normalized

        if self._db is not None:
            try:
                await self._upsert_entry(ctx, path, normalized)
            except Exception as e:
                raise PersistenceError(f"Failed to write {path}: {e}") from e

        if self._db is None or self._settings.should_write_through_file:
            target = self.mirror_path(ctx.site_id, ctx.locale, path)
            try:
                target.parent.mkdir(parents=True, exist_ok=True)
                target.write_text(
                    json.dumps(normalized, indent=2, ensure_ascii=False), encoding="utf-8"
                )
            except OSError as e:
                if self._db is None:
                    raise PersistenceError(f"Failed to write {path}: {e}") from e
                logger.exception("content_file_mirror_failed", path=path, site_id=ctx.site_id)

        if self._db is not None:
            await self._sync_dedicated_table(ctx, path, normalized)

        logger.info(
            "content_written",
            site_id=ctx.site_id,
            locale=ctx.locale,
            path=path,
            actor=ctx.actor_email,
        )
        return normalized

    async def remove(self, ctx: ToolContext, path: str) -> None:
        path = validate_content_path(path)
        if ctx.dry_run:
            logger.info("content_remove_skipped", reason="dry_run", path=path)
            return

        if self._db is not None:
            try:
                await self._delete_entry(ctx, path)
            except Exception as e:
                raise PersistenceError(f"Failed to delete {path}: {e}") from e
            await self._delete_dedicated_row(ctx, path)

        target = self.mirror_path(ctx.site_id, ctx.locale, path)
        try:
            target.unlink()
        except FileNotFoundError:
            pass
        except OSError as e:
            if self._db is None:
                raise PersistenceError(f"Failed to delete {path}: {e}") from e
            logger.exception("content_file_mirror_delete_failed", path=path)

        logger.info("content_removed", site_id=ctx.site_id, locale=ctx.locale, path=path)

    async def list_by_prefix(self, ctx: ToolContext, prefix: str) -> list[ContentEntry]:
        if self._db is not None:
            try:
                return await self._list_entries(ctx, prefix)
            except Exception:
                logger.exception("content_db_list_failed", prefix=prefix, site_id=ctx.site_id)
        return self._list_files(ctx, prefix)

    # ------------------------------------------------------------------
    # Database
    # ------------------------------------------------------------------

    async def _fetch_entry(self, ctx: ToolContext, path: str) -> Any:
        async with self._db() as db_session:
            stmt = select(ContentEntryRecord.content).where(
                ContentEntryRecord.site_id == ctx.site_id,
                ContentEntryRecord.locale == ctx.locale,
                ContentEntryRecord.path == path,
            )
            result = await db_session.execute(stmt)
            return result.scalar_one_or_none()

    async def _upsert_entry(self, ctx: ToolContext, path: str, content: Any) -> None:
        async with self._db() as db_session:
            stmt = pg_insert(ContentEntryRecord).values(
                site_id=ctx.site_id,
                locale=ctx.locale,
                path=path,
                content=content,
                updated_by=ctx.actor_email or None,
            )
            stmt = stmt.on_conflict_do_update(
                index_elements=["site_id", "locale", "path"],
                set_={
                    "content": stmt.excluded.content,
                    "updated_by": stmt.excluded.updated_by,
                    "updated_at": func.now(),
                },
            )
            await db_session.execute(stmt)
            await db_session.commit()

    async def _delete_entry(self, ctx: ToolContext, path: str) -> None:
        async with self._db() as db_session:
            await db_session.execute(
                delete(ContentEntryRecord).where(
                    ContentEntryRecord.site_id == ctx.site_id,
                    ContentEntryRecord.locale == ctx.locale,
                    ContentEntryRecord.path == path,
                )
            )
            await db_session.commit()

    async def _list_entries(self, ctx: ToolContext, prefix: str) -> list[ContentEntry]:
        async with self._db() as db_session:
            stmt = (
                select(ContentEntryRecord.path, ContentEntryRecord.content)
                .where(
                    ContentEntryRecord.site_id == ctx.site_id,
                    ContentEntryRecord.locale == ctx.locale,
                    ContentEntryRecord.path.startswith(prefix, autoescape=True),
                )
                .order_by(ContentEntryRecord.path)
            )
            result = await db_session.execute(stmt)
            return [ContentEntry(path=row[0], content=row[1]) for row in result.all()]

    async def _sync_dedicated_table(self, ctx: ToolContext, path: str, data: Any) -> None:
        """Best-effort copy into the dedicated table; failures are logged only."""
        model = DEDICATED_TABLES.get(collection_of(path) or "")
        if model is None or not isinstance(data, dict):
            return
        values: dict[str, Any] = {"site_id": ctx.site_id, "slug": slug_of(path), "data": data}
        if model is EventRecord:
            values["event_date"] = parse_event_date(data)
        try:
            async with self._db() as db_session:
                stmt = pg_insert(model).values(**values)
                stmt = stmt.on_conflict_do_update(
                    index_elements=["site_id", "slug"],
                    set_={
                        **{k: stmt.excluded[k] for k in values if k not in ("site_id", "slug")},
                        "updated_at": func.now(),
                    },
                )
                await db_session.execute(stmt)
                await db_session.commit()
        except Exception:
            logger.exception(
                "dedicated_table_sync_failed",
                table=model.__tablename__,
                site_id=ctx.site_id,
                path=path,
            )

    async def _delete_dedicated_row(self, ctx: ToolContext, path: str) -> None:
        model = DEDICATED_TABLES.get(collection_of(path) or "")
        if model is None:
            return
        try:
            async with self._db() as db_session:
                await db_session.execute(
                    delete(model).where(
                        model.site_id == ctx.site_id,
                        model.slug == slug_of(path),
                    )
                )
                await db_session.commit()
        except Exception:
            logger.exception(
                "dedicated_table_delete_failed",
                table=model.__tablename__,
                site_id=ctx.site_id,
                path=path,
            )

    # ------------------------------------------------------------------
    # File mirror
    # ------------------------------------------------------------------

    def _list_files(self, ctx: ToolContext, prefix: str) -> list[ContentEntry]:
        entries: list[ContentEntry] = []
        locale_root = self._settings.content_dir / ctx.site_id / ctx.locale
        if locale_root.is_dir():
            for file in locale_root.rglob("*.json"):
                rel = file.relative_to(locale_root).as_posix()
                if rel.startswith(prefix):
                    entries.append(ContentEntry(path=rel, content=self._load_file(file)))
        for name in SITE_LEVEL_FILES:
            site_file = self._settings.content_dir / ctx.site_id / name
            if name.startswith(prefix) and site_file.is_file():
                entries.append(ContentEntry(path=name, content=self._load_file(site_file)))
        return sorted(entries, key=lambda e: e.path)

    @staticmethod
    def _load_file(file: Path) -> Any:
        try:
            return json.loads(file.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError):
            logger.warning("content_file_unreadable", file=str(file))
            return None

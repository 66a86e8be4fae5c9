from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any

import structlog
from sqlalchemy import select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.ext.asyncio import async_sessionmaker
from sqlalchemy.sql import func

from cms_agent.db.models import ChatPreferenceRecord
from cms_agent.infra.errors import PersistenceError

logger = structlog.get_logger()

PROMPT_PREFERENCE_LIMIT = 30


@dataclass(frozen=True)
class Preference:
    key: str
    value: Any


def _render_value(value: Any) -> str:
    if isinstance(value, str):
        return value
    return json.dumps(value, ensure_ascii=False)


class PreferenceStore:
    """Per-site editing preferences surfaced to the model as prompt context."""

    def __init__(self, db_session_factory: async_sessionmaker | None) -> None:
        self._db = db_session_factory

    async def list_preferences(self, site_id: str, locale: str) -> list[Preference]:
        if self._db is None:
            return []
        async with self._db() as db_session:
            stmt = (
                select(ChatPreferenceRecord.preference_key, ChatPreferenceRecord.preference_value)
                .where(
                    ChatPreferenceRecord.site_id == site_id,
                    ChatPreferenceRecord.locale == locale,
                )
                .order_by(ChatPreferenceRecord.preference_key)
            )
            result = await db_session.execute(stmt)
            return [Preference(key=row[0], value=row[1]) for row in result.all()]

    async def set_preference(
        self, site_id: str, locale: str, key: str, value: Any
    ) -> Preference:
        key = key.strip()
        if not key:
            raise ValueError("Preference key is required")
        if self._db is None:
            logger.warning("preference_not_persisted", key=key, reason="no_database")
            return Preference(key=key, value=value)

        try:
            async with self._db() as db_session:
                stmt = pg_insert(ChatPreferenceRecord).values(
                    site_id=site_id,
                    locale=locale,
                    preference_key=key,
                    preference_value=value,
                )
                stmt = stmt.on_conflict_do_update(
                    index_elements=["site_id", "locale", "preference_key"],
                    set_={
                        "preference_value": stmt.excluded.preference_value,
                        "updated_at": func.now(),
                    },
                )
                await db_session.execute(stmt)
                await db_session.commit()
        except Exception as e:
            raise PersistenceError(f"Failed to save preference {key}: {e}") from e

        logger.info("preference_saved", site_id=site_id, locale=locale, key=key)
        return Preference(key=key, value=value)

    async def prompt_block(self, site_id: str, locale: str) -> str:
        """Render stored preferences as a prompt section, or "" when there are none."""
        preferences = await self.list_preferences(site_id, locale)
        if not preferences:
            return ""
        lines = [
            f"- {p.key}: {_render_value(p.value)}"
            for p in preferences[:PROMPT_PREFERENCE_LIMIT]
        ]
        return "Site preferences:\n" + "\n".join(lines)

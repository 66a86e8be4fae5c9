"""Read-only view over the media assets registered for a site.

Uploading and storing media is owned by the surrounding platform; the agent
only needs to look assets up so it can reference them in content.
"""

from __future__ import annotations

import re
from dataclasses import asdict, dataclass

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import async_sessionmaker

from cms_agent.content.media import resolve_media_url
from cms_agent.db.models import MediaAssetRecord

logger = structlog.get_logger()

_IMAGE_EXT = re.compile(r"\.(png|jpe?g|gif|webp|svg)$", re.IGNORECASE)


def is_image_path(path: str) -> bool:
    return bool(_IMAGE_EXT.search(path))


@dataclass(frozen=True)
class MediaItem:
    id: str
    path: str
    url: str

    def to_dict(self) -> dict:
        return asdict(self)


class MediaLibrary:
    def __init__(
        self,
        db_session_factory: async_sessionmaker | None,
        public_base_url: str = "",
    ) -> None:
        self._db = db_session_factory
        self._public_base_url = public_base_url

    async def list_media(self, site_id: str) -> list[MediaItem]:
        if self._db is None:
            logger.debug("media_library_unavailable", site_id=site_id, reason="no_database")
            return []
        async with self._db() as db_session:
            stmt = (
                select(MediaAssetRecord)
                .where(MediaAssetRecord.site_id == site_id)
                .order_by(MediaAssetRecord.created_at.desc())
            )
            result = await db_session.execute(stmt)
            return [
                MediaItem(
                    id=r.id,
                    path=r.path,
                    url=resolve_media_url(r.url, self._public_base_url),
                )
                for r in result.scalars().all()
            ]

"""Shared pytest fixtures for cms-agent tests.

Unit tests run the content store in file-mirror mode under tmp_path.

Integration tests get containerized PostgreSQL via two modes:
1. TEST_DATABASE_* env vars present → connect to external PG (CI scenario)
2. Otherwise → testcontainers auto-starts a temporary PG container (local dev)

Safety: refuses to run against any database whose name doesn't contain '_test'.
"""

from __future__ import annotations

import asyncio
import json
import os
from collections.abc import Callable
from pathlib import Path
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest
import pytest_asyncio
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from cms_agent.config.settings import ContentSettings
from cms_agent.constants import DB_SCHEMA
from cms_agent.content.store import ContentStore
from cms_agent.conversation.preferences import Preference
from cms_agent.db.models import Base
from cms_agent.media.library import MediaItem
from cms_agent.tools.builtins import build_tool_registry
from cms_agent.tools.context import ToolContext
from cms_agent.tools.registry import ToolRegistry

SITE_ID = "site-a"


def _validate_test_db_name(name: str) -> None:
    """Safety: refuse to truncate a database whose name doesn't contain '_test'."""
    if "_test" not in name.lower():
        raise RuntimeError(
            f"Refusing to run tests against database '{name}': "
            "name must contain '_test' to prevent accidental data loss. "
            "Set TEST_DATABASE_NAME to a test-specific database."
        )


def _build_pg_url_from_env() -> str | None:
    """Build async PG URL from TEST_DATABASE_* env vars, or return None."""
    host = os.getenv("TEST_DATABASE_HOST")
    if host is None:
        return None
    port = os.getenv("TEST_DATABASE_PORT", "5432")
    user = os.getenv("TEST_DATABASE_USER", "postgres")
    password = os.getenv("TEST_DATABASE_PASSWORD", "")
    name = os.getenv("TEST_DATABASE_NAME", "cms_test")
    _validate_test_db_name(name)
    return f"postgresql+asyncpg://{user}:{password}@{host}:{port}/{name}"


# ----------------------------------------------------------------------
# File-mirror content fixtures
# ----------------------------------------------------------------------


@pytest.fixture
def content_settings(tmp_path: Path) -> ContentSettings:
    return ContentSettings(
        content_dir=tmp_path,
        environment="development",
        write_through_file=None,
        media_public_base_url="",
    )


@pytest.fixture
def content_store(content_settings: ContentSettings) -> ContentStore:
    """ContentStore without a database: the file mirror is the only backend."""
    return ContentStore(None, content_settings)


@pytest.fixture
def ctx() -> ToolContext:
    return ToolContext(site_id=SITE_ID, locale="en", actor_email="editor@example.com")


@pytest.fixture
def dry_ctx() -> ToolContext:
    return ToolContext(
        site_id=SITE_ID, locale="en", actor_email="editor@example.com", dry_run=True
    )


@pytest.fixture
def seed(tmp_path: Path) -> Callable[..., Path]:
    """Write a JSON document straight into the file mirror, bypassing the store."""

    def _seed(path: str, doc: Any, *, site_id: str = SITE_ID, locale: str = "en") -> Path:
        target = tmp_path / site_id / locale / path
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(json.dumps(doc), encoding="utf-8")
        return target

    return _seed


@pytest.fixture
def mirror(tmp_path: Path) -> Callable[..., Any]:
    """Read a document from the file mirror, or None when absent."""

    def _read(path: str, *, site_id: str = SITE_ID, locale: str = "en") -> Any:
        target = tmp_path / site_id / locale / path
        if not target.exists():
            return None
        return json.loads(target.read_text(encoding="utf-8"))

    return _read


@pytest.fixture
def preference_store() -> MagicMock:
    store = MagicMock(name="PreferenceStore")
    store.list_preferences = AsyncMock(return_value=[Preference("tone", "friendly")])
    store.set_preference = AsyncMock(
        side_effect=lambda site_id, locale, key, value: Preference(key, value)
    )
    store.prompt_block = AsyncMock(return_value="Site preferences:\n- tone: friendly")
    return store


@pytest.fixture
def media_library() -> MagicMock:
    library = MagicMock(name="MediaLibrary")
    library.list_media = AsyncMock(return_value=[
        MediaItem(id="m1", path="team/jane-doe.jpg", url="https://cdn.test/team/jane-doe.jpg"),
        MediaItem(id="m2", path="hero/skyline.webp", url="https://cdn.test/hero/skyline.webp"),
        MediaItem(id="m3", path="docs/buyer-guide.pdf", url="https://cdn.test/docs/buyer-guide.pdf"),
    ])
    return library


@pytest.fixture
def tool_registry(content_store, preference_store, media_library) -> ToolRegistry:
    return build_tool_registry(content_store, preference_store, media_library)


# ----------------------------------------------------------------------
# PostgreSQL fixtures
# ----------------------------------------------------------------------


@pytest.fixture(scope="session")
def _pg_container():
    """Manage testcontainers PostgreSQL lifecycle.

    Yields (url, container) where container is None if using external PG.
    """
    url = _build_pg_url_from_env()
    if url is not None:
        yield url, None
        return

    from testcontainers.postgres import PostgresContainer

    container = PostgresContainer("postgres:16", dbname="cms_test")
    container.start()

    host = container.get_container_host_ip()
    port = container.get_exposed_port(5432)
    user = container.username
    password = container.password
    dbname = container.dbname
    _validate_test_db_name(dbname)

    url = f"postgresql+asyncpg://{user}:{password}@{host}:{port}/{dbname}"

    yield url, container

    container.stop()


@pytest.fixture(scope="session")
def pg_url(_pg_container) -> str:
    """Provide an async PostgreSQL URL for integration tests."""
    url, _ = _pg_container
    return url


@pytest_asyncio.fixture(scope="session", loop_scope="session")
async def db_engine(pg_url: str):
    """Create async engine, set up schema + tables. Tear down after session."""
    engine = create_async_engine(pg_url, echo=False)

    async with engine.begin() as conn:
        await conn.execute(text(f"CREATE SCHEMA IF NOT EXISTS {DB_SCHEMA}"))
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.execute(text(f"DROP SCHEMA IF EXISTS {DB_SCHEMA} CASCADE"))

    await engine.dispose()


@pytest_asyncio.fixture(scope="session", loop_scope="session")
async def db_session_factory(db_engine) -> async_sessionmaker[AsyncSession]:
    """Provide an async session factory bound to the test engine."""
    return async_sessionmaker(db_engine, expire_on_commit=False)


@pytest_asyncio.fixture(autouse=True)
async def _integration_cleanup(request):
    """Truncate all tables after each integration test for isolation.

    Uses request.getfixturevalue() for lazy resolution, so non-integration
    tests never trigger the db_session_factory → db_engine → _pg_container
    fixture chain.
    """
    yield

    if not any(m.name == "integration" for m in request.node.iter_markers()):
        return

    if not asyncio.iscoroutinefunction(request.node.obj):
        return

    try:
        factory = request.getfixturevalue("db_session_factory")
    except Exception:
        return  # This test doesn't use the shared db fixture

    async with factory() as db_session:
        qualified = ", ".join(f"{DB_SCHEMA}.{t.name}" for t in Base.metadata.sorted_tables)
        await db_session.execute(text(f"TRUNCATE {qualified} CASCADE"))
        await db_session.commit()

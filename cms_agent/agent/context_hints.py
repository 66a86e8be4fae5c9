"""Advisory context appended to the user's message before it reaches the model.

Nothing here is authoritative: tools re-read and re-resolve everything. A hint
that cannot be built is logged and left out.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

import structlog

from cms_agent.content.aliases import alias_hint_line
from cms_agent.tools.builtins.pages import PAGES_PREFIX, page_path

if TYPE_CHECKING:
    from cms_agent.content.store import ContentStore
    from cms_agent.conversation.preferences import PreferenceStore
    from cms_agent.tools.context import ToolContext

logger = structlog.get_logger()

TOP_LEVEL_KEY_LIMIT = 25
SECTION_KEY_LIMIT = 20

_WRITE_INTENT = re.compile(
    r"\b(update|change|set|replace|edit|modify|add|remove|delete|create|rename)\b",
    re.IGNORECASE,
)
_EXPLICIT_PAGE_FILE = re.compile(r"pages/([a-z0-9-]+)\.json", re.IGNORECASE)
_PAGE_NAMED = re.compile(r"\bpage\s+([a-z0-9-]+)\b", re.IGNORECASE)
_NAMED_PAGE = re.compile(r"\b([a-z0-9-]+)\s+page\b", re.IGNORECASE)


@dataclass
class PageHint:
    slug: str
    top_level_keys: list[str] = field(default_factory=list)
    hero_keys: list[str] = field(default_factory=list)
    seo_keys: list[str] = field(default_factory=list)


def is_write_intent(message: str) -> bool:
    return bool(_WRITE_INTENT.search(message))


def extract_explicit_page_slug(message: str) -> str | None:
    for pattern in (_EXPLICIT_PAGE_FILE, _PAGE_NAMED, _NAMED_PAGE):
        match = pattern.search(message)
        if match:
            return match.group(1).lower()
    return None


def keyword_match(slug: str, message: str) -> bool:
    text = message.lower()
    spaced = slug.lower().replace("-", " ")
    candidates = {slug.lower(), spaced}
    return any(f"page {c}" in text or f"{c} page" in text for c in candidates)


def _keys(node: object, limit: int) -> list[str]:
    return list(node)[:limit] if isinstance(node, dict) else []


async def detect_page_hint(
    content_store: ContentStore, ctx: ToolContext, message: str
) -> PageHint | None:
    entries = await content_store.list_by_prefix(ctx, PAGES_PREFIX)
    slugs = [
        e.path[len(PAGES_PREFIX): -len(".json")]
        for e in entries
        if e.path.endswith(".json")
    ]
    if not slugs:
        return None

    explicit = extract_explicit_page_slug(message)
    slug = explicit if explicit in slugs else None
    if slug is None:
        slug = next((s for s in slugs if keyword_match(s, message)), None)
    if slug is None:
        return None

    page = await content_store.read(ctx, page_path(slug))
    if not isinstance(page, dict):
        return PageHint(slug=slug)
    return PageHint(
        slug=slug,
        top_level_keys=_keys(page, TOP_LEVEL_KEY_LIMIT),
        hero_keys=_keys(page.get("hero"), SECTION_KEY_LIMIT),
        seo_keys=_keys(page.get("seo"), SECTION_KEY_LIMIT),
    )


async def build_context_block(
    content_store: ContentStore,
    preference_store: PreferenceStore,
    ctx: ToolContext,
    message: str,
) -> str:
    lines: list[str] = []
    try:
        hint = await detect_page_hint(content_store, ctx, message)
    except Exception:
        logger.exception("context_page_hint_failed", site_id=ctx.site_id)
        hint = None

    if hint is not None:
        lines.append(f"Detected target page: {hint.slug}")
        lines.append(f"Top-level keys: {', '.join(hint.top_level_keys) or '(none)'}")
        if hint.hero_keys:
            lines.append(f"hero keys: {', '.join(hint.hero_keys)}")
        if hint.seo_keys:
            lines.append(f"seo keys: {', '.join(hint.seo_keys)}")

    lines.append(alias_hint_line())
    lines.append("Use exact existing keys when available; do not invent new nested wrappers.")

    try:
        preferences = await preference_store.prompt_block(ctx.site_id, ctx.locale)
    except Exception:
        logger.exception("context_preferences_failed", site_id=ctx.site_id)
        preferences = ""
    if preferences:
        lines.append(preferences)

    return "\n".join(lines)

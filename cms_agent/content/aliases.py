"""Friendly field path resolution.

The model (or a user) often names a field by a common synonym ("title") when
the document's real key is something else ("headline"). Resolution walks the
target document one segment at a time: an exact key always wins, then the
synonym table is consulted against the keys actually present, and anything
still unresolved passes through unchanged.
"""

from __future__ import annotations

import re
from typing import Any

from cms_agent.content.paths import PathPart, format_path, parse_path

# lower-cased synonym -> canonical key
FIELD_SYNONYMS: dict[str, str] = {
    "title": "headline",
    "heading": "headline",
    "header": "headline",
    "subtitle": "subline",
    "subheadline": "subline",
    "subheading": "subline",
    "desc": "description",
    "blurb": "description",
    "copy": "description",
    "imageurl": "image",
    "photo": "image",
    "picture": "image",
    "photo_url": "image",
    "image_url": "image",
    "alt": "imageAlt",
    "alttext": "imageAlt",
    "alt_text": "imageAlt",
    "buttontext": "ctaLabel",
    "ctatext": "ctaLabel",
    "button_label": "ctaLabel",
    "buttonlink": "ctaHref",
    "ctalink": "ctaHref",
    "button_href": "ctaHref",
}

# Under these parents the synonym is the real field name (seo.title stays title).
_PRESERVED_UNDER: dict[str, frozenset[str]] = {
    "seo": frozenset({"title", "heading", "header"}),
}

_SEPARATORS = re.compile(r"\s*>\s*|\s+")
_REPEATED_DOTS = re.compile(r"\.{2,}")


def normalize_path_input(raw_path: str) -> str:
    path = _SEPARATORS.sub(".", raw_path.strip())
    path = _REPEATED_DOTS.sub(".", path)
    return path.strip(".")


def canonical_key(segment: str, parent: str | None) -> str | None:
    lower = segment.strip().lower()
    if parent is not None and lower in _PRESERVED_UNDER.get(parent.lower(), frozenset()):
        return None
    return FIELD_SYNONYMS.get(lower)


def resolve_friendly_field_path(doc: Any, raw_path: str) -> str:
    """Map a user/LLM supplied field path onto the keys present in ``doc``."""
    path = normalize_path_input(raw_path)
    if not path:
        return path

    if path.startswith("content.") and not (isinstance(doc, dict) and "content" in doc):
        path = path[len("content."):]

    parts = parse_path(path)
    resolved: list[PathPart] = []
    node: Any = doc
    parent: str | None = None
    changed = False

    for part in parts:
        if isinstance(part, int):
            resolved.append(part)
            node = node[part] if isinstance(node, list) and part < len(node) else None
            continue

        actual = part
        if isinstance(node, dict) and part not in node:
            candidate = canonical_key(part, parent)
            if candidate is not None and candidate in node:
                actual = candidate
                changed = True

        resolved.append(actual)
        node = node.get(actual) if isinstance(node, dict) else None
        parent = actual

    if not changed:
        return path
    return format_path(resolved)


def alias_hint_line() -> str:
    return (
        "Alias hints: title/heading/header -> headline (except seo.title), "
        "subtitle/subheadline/subheading -> subline."
    )

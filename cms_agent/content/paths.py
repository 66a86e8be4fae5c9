"""Read and copy-on-write update of values inside nested JSON documents.

Path syntax: dotted keys with optional bracketed indices, e.g.
``hero.slides[0].alt``. A bare numeric segment (``slides.0``) is an index too.
"""

from __future__ import annotations

import re
from typing import Any

from cms_agent.infra.errors import FieldPathError

PathPart = str | int

_BRACKET_INDEX = re.compile(r"\[(\d+)\]")
_SLUG_INVALID = re.compile(r"[^a-z0-9]+")


class _Missing:
    def __repr__(self) -> str:
        return "MISSING"

    def __bool__(self) -> bool:
        return False


MISSING: Any = _Missing()


def parse_path(path: str) -> list[PathPart]:
    normalized = _BRACKET_INDEX.sub(r".\1", path)
    parts: list[PathPart] = []
    for raw in normalized.split("."):
        part = raw.strip()
        if not part:
            continue
        parts.append(int(part) if part.isdigit() else part)
    return parts


def format_path(parts: list[PathPart]) -> str:
    """Render parts back to ``a.b[0].c`` form."""
    out = ""
    for part in parts:
        if isinstance(part, int):
            out += f"[{part}]"
        else:
            out += f".{part}" if out else part
    return out


def get_value(doc: Any, path: str, default: Any = None) -> Any:
    """Return the value at ``path`` or ``default``. Never raises."""
    current = doc
    for part in parse_path(path):
        if isinstance(part, int):
            if not isinstance(current, list) or part >= len(current):
                return default
            current = current[part]
        else:
            if not isinstance(current, dict) or part not in current:
                return default
            current = current[part]
    return current


def has_path(doc: Any, path: str) -> bool:
    return get_value(doc, path, MISSING) is not MISSING


def _shallow_copy(node: Any) -> Any:
    if isinstance(node, dict):
        return dict(node)
    if isinstance(node, list):
        return list(node)
    return node


def _container_for(next_part: PathPart) -> list | dict:
    return [] if isinstance(next_part, int) else {}


def set_value(doc: Any, path: str, value: Any) -> Any:
    """Return a copy of ``doc`` with ``value`` stored at ``path``.

    Only the containers along the path are copied; everything else is shared
    with the input, which is never mutated. Missing intermediates are created
    as dicts, or lists when the following segment is an index.
    """
    parts = parse_path(path)
    if not parts:
        return doc

    if isinstance(doc, (dict, list)):
        root = _shallow_copy(doc)
    else:
        root = _container_for(parts[0])

    current = root
    for index, part in enumerate(parts):
        is_last = index == len(parts) - 1
        if isinstance(part, int):
            if not isinstance(current, list):
                raise FieldPathError(
                    f"Invalid array path segment [{part}] in '{path}': target is not a list"
                )
            if part >= len(current):
                current.extend([None] * (part + 1 - len(current)))
        elif not isinstance(current, dict):
            raise FieldPathError(
                f"Invalid object path segment '{part}' in '{path}': target is not an object"
            )

        if is_last:
            current[part] = value
            break

        existing = current[part] if isinstance(part, int) else current.get(part)
        if isinstance(existing, (dict, list)):
            child = _shallow_copy(existing)
        else:
            child = _container_for(parts[index + 1])
        current[part] = child
        current = child

    return root


def slugify(raw: str) -> str:
    return _SLUG_INVALID.sub("-", raw.lower().strip()).strip("-")[:80]

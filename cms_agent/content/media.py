"""Media URL normalization applied to every content write."""

from __future__ import annotations

import re
from typing import Any

UPLOADS_PREFIX = "/uploads/"

_ABSOLUTE_URL = re.compile(r"^https?://", re.IGNORECASE)


def resolve_media_url(src: str | None, public_base_url: str = "") -> str:
    """Rewrite a local ``/uploads/...`` reference onto the public media base.

    Absolute URLs and non-upload paths are returned unchanged, as is
    everything when no public base is configured.
    """
    if not src:
        return ""
    if _ABSOLUTE_URL.match(src) or not src.startswith(UPLOADS_PREFIX):
        return src
    base = public_base_url.rstrip("/")
    if not base:
        return src
    return f"{base}/{src[len(UPLOADS_PREFIX):]}"


def normalize_media_urls(data: Any, public_base_url: str = "") -> Any:
    """Return a copy of ``data`` with every upload reference resolved."""
    if isinstance(data, str):
        return resolve_media_url(data, public_base_url) if data else data
    if isinstance(data, dict):
        return {k: normalize_media_urls(v, public_base_url) for k, v in data.items()}
    if isinstance(data, list):
        return [normalize_media_urls(v, public_base_url) for v in data]
    return data

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class ToolContext:
    """Request-scoped context threaded through every tool and store call.

    site_id/locale: address every document read or written.
    actor_email: recorded as updated_by on primary writes (audit).
    dry_run: persistence calls no-op but still return the would-be value.
    """

    site_id: str
    locale: str = "en"
    actor_email: str = ""
    dry_run: bool = False


def build_tool_context(
    *, site_id: str, locale: str | None, actor_email: str, dry_run: bool = False
) -> ToolContext:
    return ToolContext(
        site_id=site_id,
        locale=locale or "en",
        actor_email=actor_email,
        dry_run=bool(dry_run),
    )

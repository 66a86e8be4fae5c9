"""Audit trail of chat requests and the per-site turn report built from it.

Every completed chat request leaves one ``ai_chat_turn`` record. Records go to
the ``ai_chat_audit`` table; without a database (or when the insert fails)
they are appended to ``<content_dir>/_admin/audit.log.jsonl`` instead. Audit
writes never fail the request that produced them.
"""

from __future__ import annotations

import json
from collections import Counter
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import TYPE_CHECKING, Any

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import async_sessionmaker

from cms_agent.db.models import ChatAuditRecord

if TYPE_CHECKING:
    from cms_agent.agent.events import ChatTurnOutcome

logger = structlog.get_logger()

AUDIT_ACTION = "ai_chat_turn"
AUDIT_FILE = Path("_admin") / "audit.log.jsonl"

REPORT_DAYS_DEFAULT = 7
REPORT_LIMIT_DEFAULT = 300
RECENT_TRACE_LIMIT = 80
TOP_PATTERNS_LIMIT = 20
TOP_TAGS_LIMIT = 10


@dataclass(frozen=True)
class AuditEntry:
    created_at: datetime
    details: dict


def turn_details(outcome: ChatTurnOutcome, *, locale: str, prompt: str) -> dict[str, Any]:
    """Audit payload for one finished request."""
    return {
        "locale": locale,
        "conversationId": outcome.conversation_id,
        "model": outcome.model,
        "dryRun": outcome.dry_run,
        "prompt": prompt,
        "toolRuns": [
            {
                "name": run.name,
                "ok": run.ok,
                "summary": run.summary,
                "rawPath": run.raw_path,
                "resolvedPath": run.resolved_path,
                "errorMessage": None if run.ok else run.summary,
                "failureTag": run.failure,
            }
            for run in outcome.tool_runs
        ],
    }


def clamp_report_window(days: int | None, limit: int | None) -> tuple[int, int]:
    days = REPORT_DAYS_DEFAULT if not days else days
    limit = REPORT_LIMIT_DEFAULT if not limit else limit
    return max(1, min(days, 90)), max(20, min(limit, 2000))


class AuditLog:
    def __init__(self, db_session_factory: async_sessionmaker | None, content_dir: Path) -> None:
        self._db = db_session_factory
        self._file = content_dir / AUDIT_FILE

    async def record_turn(self, site_id: str, actor_email: str, details: dict) -> None:
        if self._db is not None:
            try:
                async with self._db() as db_session:
                    db_session.add(
                        ChatAuditRecord(
                            site_id=site_id,
                            actor_email=actor_email or None,
                            action=AUDIT_ACTION,
                            details=details,
                        )
                    )
                    await db_session.commit()
                return
            except Exception:
                logger.exception("audit_db_insert_failed", site_id=site_id)

        line = {
            "action": AUDIT_ACTION,
            "site_id": site_id,
            "actor_email": actor_email or None,
            "details": details,
            "created_at": datetime.now(UTC).isoformat(),
        }
        try:
            self._file.parent.mkdir(parents=True, exist_ok=True)
            with self._file.open("a", encoding="utf-8") as fh:
                fh.write(json.dumps(line, ensure_ascii=False, default=str) + "\n")
        except OSError:
            logger.exception("audit_file_append_failed", file=str(self._file))

    async def recent_turns(self, site_id: str, *, days: int, limit: int) -> list[AuditEntry]:
        """Newest first, at most ``limit`` records from the last ``days`` days."""
        since = datetime.now(UTC) - timedelta(days=days)
        if self._db is not None:
            async with self._db() as db_session:
                stmt = (
                    select(ChatAuditRecord.created_at, ChatAuditRecord.details)
                    .where(
                        ChatAuditRecord.action == AUDIT_ACTION,
                        ChatAuditRecord.site_id == site_id,
                        ChatAuditRecord.created_at >= since,
                    )
                    .order_by(ChatAuditRecord.created_at.desc())
                    .limit(limit)
                )
                result = await db_session.execute(stmt)
                return [AuditEntry(created_at=row[0], details=row[1] or {}) for row in result.all()]

        entries = [
            entry
            for entry in self._read_file(site_id)
            if entry.created_at >= since
        ]
        entries.sort(key=lambda e: e.created_at, reverse=True)
        return entries[:limit]

    def _read_file(self, site_id: str) -> list[AuditEntry]:
        try:
            lines = self._file.read_text(encoding="utf-8").splitlines()
        except FileNotFoundError:
            return []
        entries = []
        for line in lines:
            try:
                row = json.loads(line)
                if row.get("action") != AUDIT_ACTION or row.get("site_id") != site_id:
                    continue
                created_at = datetime.fromisoformat(row["created_at"])
            except (ValueError, KeyError, TypeError, AttributeError):
                logger.warning("audit_line_unreadable", file=str(self._file))
                continue
            entries.append(AuditEntry(created_at=created_at, details=row.get("details") or {}))
        return entries


def build_turn_report(entries: list[AuditEntry]) -> dict[str, Any]:
    """Aggregate tool outcomes across audit entries (expected newest first)."""
    tools_scanned = 0
    failures = 0
    tag_counts: Counter[str] = Counter()
    pattern_counts: Counter[str] = Counter()
    per_tool: dict[str, dict[str, int]] = {}
    recent_trace: list[dict[str, Any]] = []

    for entry in entries:
        prompt = entry.details.get("prompt") if isinstance(entry.details.get("prompt"), str) else ""
        runs = entry.details.get("toolRuns")
        for run in runs if isinstance(runs, list) else []:
            if not isinstance(run, dict):
                continue
            name = run.get("name") if isinstance(run.get("name"), str) else "unknown"
            ok = run.get("ok") is True
            raw_path = _str_or_none(run.get("rawPath"))
            resolved_path = _str_or_none(run.get("resolvedPath"))
            error_message = _str_or_none(run.get("errorMessage"))

            tools_scanned += 1
            stats = per_tool.setdefault(name, {"total": 0, "success": 0, "failure": 0})
            stats["total"] += 1
            stats["success" if ok else "failure"] += 1

            if len(recent_trace) < RECENT_TRACE_LIMIT:
                recent_trace.append({
                    "createdAt": entry.created_at.isoformat(),
                    "prompt": prompt,
                    "tool": name,
                    "ok": ok,
                    "rawPath": raw_path,
                    "resolvedPath": resolved_path,
                    "summary": run.get("summary") if isinstance(run.get("summary"), str) else "",
                    "errorMessage": error_message,
                })

            if not ok:
                failures += 1
                path_part = resolved_path or raw_path or "no-path"
                pattern_counts[f"{name} | {path_part} | {error_message or 'unknown-error'}"] += 1
                tag = _str_or_none(run.get("failureTag"))
                if tag:
                    tag_counts[tag] += 1

    return {
        "turnsScanned": len(entries),
        "toolsScanned": tools_scanned,
        "failures": failures,
        "topFailureTags": [
            {"tag": tag, "count": count} for tag, count in tag_counts.most_common(TOP_TAGS_LIMIT)
        ],
        "topFailurePatterns": [
            {"pattern": pattern, "count": count}
            for pattern, count in pattern_counts.most_common(TOP_PATTERNS_LIMIT)
        ],
        "perTool": sorted(
            (
                {
                    "name": name,
                    **stats,
                    "failureRate": round(stats["failure"] / stats["total"], 3),
                }
                for name, stats in per_tool.items()
            ),
            key=lambda row: row["failure"],
            reverse=True,
        ),
        "recentTrace": recent_trace,
    }


def _str_or_none(value: Any) -> str | None:
    return value if isinstance(value, str) else None

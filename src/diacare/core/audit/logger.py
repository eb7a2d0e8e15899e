"""PHI-free audit trail for account activity and assistant disclosures.

Every row in ``audit_log`` answers "what happened and how did it go", never
"to whom": there is no user id, email or glucose value in the table, so rows
can outlive the account they describe. Tool arguments are reduced to a
SHA-256 fingerprint, and handing a context snapshot to the chat assistant is
flagged with ``llm_disclosed`` plus the privacy mode that filtered it.
"""

from __future__ import annotations

import hashlib
import json
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from diacare.core.storage.database import HealthDatabase

logger = logging.getLogger(__name__)

_COLUMNS = (
    "id",
    "timestamp",
    "action",
    "tool_name",
    "tool_input_hash",
    "privacy_mode",
    "llm_disclosed",
    "duration_ms",
    "status",
    "error_type",
    "metadata_json",
)

_INSERT_SQL = "INSERT INTO audit_log ({}) VALUES ({})".format(
    ", ".join(_COLUMNS), ", ".join("?" for _ in _COLUMNS)
)


def _hash_input(data: Any) -> str:
    """Fingerprint tool arguments; ``""`` when they cannot be serialized."""
    try:
        payload = json.dumps(data, sort_keys=True, separators=(",", ":"))
    except (TypeError, ValueError):
        return ""
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()


def _where(**filters: Any) -> tuple[str, list[Any]]:
    """Build a WHERE clause from non-empty filters. ``since`` compares timestamps."""
    clauses: list[str] = []
    params: list[Any] = []
    for column, value in filters.items():
        if value is None or value == "":
            continue
        if column == "since":
            clauses.append("timestamp >= ?")
        else:
            clauses.append(f"{column} = ?")
        params.append(value)
    if not clauses:
        return "", params
    return " WHERE " + " AND ".join(clauses), params


@dataclass
class AuditEvent:
    """One row of the audit trail before it is written."""

    action: str
    tool_name: str = ""
    tool_input_hash: str = ""
    privacy_mode: str | None = None
    llm_disclosed: bool = False
    duration_ms: float | None = None
    status: str = "success"
    error_type: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    def to_row(self, event_id: str, timestamp: str) -> tuple[Any, ...]:
        # Empty strings and empty metadata are stored as NULL.
        metadata_json = json.dumps(self.metadata, separators=(",", ":")) if self.metadata else None
        return (
            event_id,
            timestamp,
            self.action,
            self.tool_name or None,
            self.tool_input_hash or None,
            self.privacy_mode,
            int(self.llm_disclosed),
            self.duration_ms,
            self.status,
            self.error_type,
            metadata_json,
        )


class AuditLogger:
    """Append-only writer and reader for ``audit_log``.

    Auditing is best effort: a failed insert is logged and reported as an
    empty event id, and the audited operation carries on.

    Usage::

        audit = AuditLogger(health_db)
        audit.log_account_event("login_failure", status="failure")
        audit.log_disclosure(privacy_mode="standard", fields=["profile"])
        audit.count_disclosures(since="2026-10-01T00:00:00+00:00")
    """

    def __init__(self, database: HealthDatabase) -> None:
        self._db = database

    def log_event(self, event: AuditEvent) -> str:
        event_id = str(uuid.uuid4())
        stamp = datetime.now(timezone.utc).isoformat()
        try:
            self._db.connection.execute(_INSERT_SQL, event.to_row(event_id, stamp))
        except Exception:
            logger.exception("Audit write failed for action %s", event.action)
            return ""
        return event_id

    def log_account_event(
        self,
        action: str,
        *,
        status: str = "success",
        error_type: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> str:
        """Registration, login, logout or password change. Never carries the email."""
        event = AuditEvent(action, status=status, error_type=error_type, metadata=metadata or {})
        return self.log_event(event)

    def log_tool_call(
        self,
        tool_name: str,
        tool_input: Any = None,
        *,
        duration_ms: float | None = None,
        status: str = "success",
        error_type: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> str:
        """Record one MCP tool invocation; ``tool_input`` is only ever fingerprinted."""
        return self.log_event(
            AuditEvent(
                "tool_invocation",
                tool_name=tool_name,
                tool_input_hash=_hash_input(tool_input) if tool_input else "",
                duration_ms=duration_ms,
                status=status,
                error_type=error_type,
                metadata=metadata or {},
            )
        )

    def log_data_delete(
        self,
        *,
        action: str = "data_delete",
        tool_name: str = "",
        counts: dict[str, int] | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> str:
        tables = dict(counts or {})
        details = dict(metadata or {})
        details["records_deleted"] = sum(tables.values())
        details["tables"] = tables
        return self.log_event(AuditEvent(action, tool_name=tool_name, metadata=details))

    def log_disclosure(self, *, privacy_mode: str, fields: list[str], tool_name: str = "") -> str:
        """Mark that the listed context sections were handed to the chat assistant."""
        return self.log_event(
            AuditEvent(
                "assistant_context",
                tool_name=tool_name,
                privacy_mode=privacy_mode,
                llm_disclosed=True,
                metadata={"fields": sorted(fields)},
            )
        )

    def get_events(
        self,
        *,
        action: str | None = None,
        tool_name: str | None = None,
        since: str | None = None,
        limit: int = 50,
    ) -> list[dict[str, Any]]:
        """Newest events first, narrowed by whichever filters are given."""
        clause, params = _where(action=action, tool_name=tool_name, since=since)
        rows = self._db.query(
            f"SELECT * FROM audit_log{clause} ORDER BY timestamp DESC LIMIT ?",
            [*params, limit],
        )
        return [dict(row) for row in rows]

    def count_events(self, *, action: str | None = None, since: str | None = None) -> int:
        clause, params = _where(action=action, since=since)
        return self._count(clause, params)

    def count_disclosures(self, *, since: str | None = None) -> int:
        clause, params = _where(llm_disclosed=1, since=since)
        return self._count(clause, params)

    def _count(self, clause: str, params: list[Any]) -> int:
        row = self._db.query_one(f"SELECT COUNT(*) FROM audit_log{clause}", params)
        return row[0] if row else 0

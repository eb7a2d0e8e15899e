"""MCP tools for viewing the audit trail.

The audit log holds no health data and no account identifiers: only which
tools ran, when, and whether a context snapshot went to the chat assistant.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING

from fastmcp import FastMCP

if TYPE_CHECKING:
    from diacare.core.audit.logger import AuditLogger

logger = logging.getLogger(__name__)


def register_audit_tools(mcp: FastMCP, audit_logger: AuditLogger) -> None:
    """Register audit trail tools on the MCP server."""

    @mcp.tool
    async def audit_summary(days: int = 30) -> str:
        """View recent events and how often data was shared with the assistant.

        Args:
            days: Number of days to look back (default: 30).
        """
        if days < 1:
            return json.dumps({
                "status": "error",
                "error_type": "ValidationError",
                "message": "days must be at least 1",
                "field": "days",
            })
        since = (datetime.now(timezone.utc) - timedelta(days=days)).isoformat()

        recent_events = [
            {
                "timestamp": event.get("timestamp"),
                "action": event.get("action"),
                "tool_name": event.get("tool_name"),
                "privacy_mode": event.get("privacy_mode"),
                "llm_disclosed": bool(event.get("llm_disclosed")),
                "status": event.get("status"),
                "duration_ms": event.get("duration_ms"),
            }
            for event in audit_logger.get_events(since=since, limit=20)
        ]

        return json.dumps({
            "status": "ok",
            "period_days": days,
            "total_events": audit_logger.count_events(since=since),
            "failed_logins": audit_logger.count_events(action="login_failure", since=since),
            "assistant_disclosures": audit_logger.count_disclosures(since=since),
            "recent_events": recent_events,
            "note": "This audit trail contains no health data and no account details.",
        }, indent=2)

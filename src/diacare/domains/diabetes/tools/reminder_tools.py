"""MCP tools for reminders."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from fastmcp import FastMCP

from diacare.domains.diabetes.tools.responses import ok, run_tool

if TYPE_CHECKING:
    from diacare.domains.diabetes.service import DiaCareService


def register_reminder_tools(mcp: FastMCP, service: DiaCareService) -> None:
    """Register reminder tools on the MCP server."""
    audit = service.audit

    @mcp.tool
    async def add_reminder(
        title: str,
        reminder_type: str,
        scheduled_time: str,
        recurrence: str | list[int] = "daily",
        description: str | None = None,
        is_enabled: bool = True,
    ) -> str:
        """Create a reminder.

        Args:
            title: Short label shown in the list.
            reminder_type: glucose, water, pills, activity, meal or custom.
            scheduled_time: Time of day, HH:MM.
            recurrence: 'daily' or ISO weekday numbers (1 = Monday ... 7 = Sunday).
        """
        def _call() -> str:
            reminder = service.add_reminder(
                title,
                reminder_type,
                scheduled_time,
                recurrence,
                description=description,
                is_enabled=is_enabled,
            )
            return ok(reminder=reminder.to_dict())
        return run_tool(
            "add_reminder", audit, _call, tool_input={"reminder_type": reminder_type}
        )

    @mcp.tool
    async def get_reminders(enabled: bool | None = None) -> str:
        """List reminders with today's status, lateness and countdown.

        Enabled reminders come first, then by time of day.
        """
        def _call() -> str:
            views = service.get_reminders(enabled=enabled)
            return ok(count=len(views), reminders=[v.to_dict() for v in views])
        return run_tool("get_reminders", audit, _call)

    @mcp.tool
    async def update_reminder_status(reminder_id: str, status: str) -> str:
        """Mark today's occurrence as done, not_done or postponed."""
        return run_tool(
            "update_reminder_status",
            audit,
            lambda: ok(reminder=service.update_reminder_status(reminder_id, status).to_dict()),
            tool_input={"reminder_id": reminder_id, "status": status},
        )

    @mcp.tool
    async def set_reminder_enabled(reminder_id: str, enabled: bool) -> str:
        """Turn a reminder on or off. Disabled reminders are never counted as late."""
        return run_tool(
            "set_reminder_enabled",
            audit,
            lambda: ok(reminder=service.set_reminder_enabled(reminder_id, enabled).to_dict()),
            tool_input={"reminder_id": reminder_id},
        )

    @mcp.tool
    async def update_reminder(
        reminder_id: str,
        title: str | None = None,
        description: str | None = None,
        reminder_type: str | None = None,
        scheduled_time: str | None = None,
        recurrence: str | list[int] | None = None,
        is_enabled: bool | None = None,
    ) -> str:
        """Edit a reminder. Only the arguments given are changed."""
        patch: dict[str, Any] = {
            key: value
            for key, value in {
                "title": title,
                "description": description,
                "reminder_type": reminder_type,
                "scheduled_time": scheduled_time,
                "recurrence": recurrence,
                "is_enabled": is_enabled,
            }.items()
            if value is not None
        }
        return run_tool(
            "update_reminder",
            audit,
            lambda: ok(reminder=service.update_reminder(reminder_id, patch).to_dict()),
            tool_input={"reminder_id": reminder_id, "fields": sorted(patch)},
        )

    @mcp.tool
    async def delete_reminder(reminder_id: str) -> str:
        """Delete one reminder."""
        def _call() -> str:
            service.delete_reminder(reminder_id)
            return ok(deleted=reminder_id)
        return run_tool("delete_reminder", audit, _call, tool_input={"reminder_id": reminder_id})

    @mcp.tool
    async def delete_reminders(reminder_ids: list[str]) -> str:
        """Delete several reminders at once. Unknown ids are skipped."""
        return run_tool(
            "delete_reminders",
            audit,
            lambda: ok(deleted=service.delete_reminders(reminder_ids)),
            tool_input={"count": len(reminder_ids)},
        )

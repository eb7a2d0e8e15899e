"""MCP tools for the dashboard, insights, assistant context and demo data."""

from __future__ import annotations

from typing import TYPE_CHECKING

from fastmcp import FastMCP

from diacare.domains.diabetes.tools.responses import ok, run_tool

if TYPE_CHECKING:
    from diacare.domains.diabetes.service import DiaCareService


def register_dashboard_tools(mcp: FastMCP, service: DiaCareService) -> None:
    """Register aggregate tools on the MCP server."""
    audit = service.audit

    @mcp.tool
    async def get_dashboard_data() -> str:
        """Return the home screen: greeting, latest reading, next reminder, cards and 7-day chart."""
        return run_tool(
            "get_dashboard_data",
            audit,
            lambda: ok(dashboard=service.get_dashboard_data().to_dict()),
        )

    @mcp.tool
    async def get_insights(start: str | None = None, end: str | None = None) -> str:
        """Return day-bucketed glucose, carbs and activity.

        Args:
            start: First day, YYYY-MM-DD. Defaults to this week's Monday.
            end: Last day, YYYY-MM-DD (inclusive). Defaults to six days after ``start``.
        """
        return run_tool(
            "get_insights",
            audit,
            lambda: ok(insights=service.get_insights(start, end).to_dict()),
            tool_input={"start": start, "end": end},
        )

    @mcp.tool
    async def get_assistant_context(privacy_mode: str | None = None) -> str:
        """Return the read-only snapshot given to the chat assistant.

        Args:
            privacy_mode: strict, standard or explicit.
        """
        return run_tool(
            "get_assistant_context",
            audit,
            lambda: ok(context=service.get_assistant_context(privacy_mode)),
            tool_input={"privacy_mode": privacy_mode},
        )

    @mcp.tool
    async def seed_demo_data() -> str:
        """Fill the logged-in account with a week of sample data."""
        return run_tool("seed_demo_data", audit, lambda: ok(seeded=service.seed_demo_data()))

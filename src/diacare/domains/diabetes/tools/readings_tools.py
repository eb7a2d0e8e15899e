"""MCP tools for glucose readings and health cards."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from fastmcp import FastMCP

from diacare.core.storage.models import GlucoseReading, GlucoseUnit
from diacare.domains.diabetes.domain_logic.units import format_glucose
from diacare.domains.diabetes.tools.responses import ok, run_tool

if TYPE_CHECKING:
    from diacare.domains.diabetes.service import DiaCareService


def _reading_payload(reading: GlucoseReading, unit: GlucoseUnit) -> dict[str, Any]:
    return {**reading.to_dict(), "display": format_glucose(reading.value, unit)}


def register_readings_tools(mcp: FastMCP, service: DiaCareService) -> None:
    """Register glucose and health-card tools on the MCP server."""
    audit = service.audit

    @mcp.tool
    async def add_glucose_reading(
        value: float,
        unit: str | None = None,
        reading_type: str = "before_meal",
        notes: str | None = None,
        recorded_at: str | None = None,
    ) -> str:
        """Log a glucose reading.

        Args:
            value: The measured value in ``unit``.
            unit: mg/dL or mmol/L; defaults to the display unit in settings.
            reading_type: before_meal or after_meal.
            notes: Optional free text, stored encrypted.
            recorded_at: ISO 8601 time of measurement; defaults to now.
        """
        def _call() -> str:
            reading = service.add_glucose_reading(
                value, unit, reading_type, notes=notes, recorded_at=recorded_at
            )
            return ok(reading=_reading_payload(reading, service.get_settings().units))
        return run_tool(
            "add_glucose_reading",
            audit,
            _call,
            tool_input={"reading_type": reading_type, "unit": unit},
        )

    @mcp.tool
    async def get_latest_glucose_reading() -> str:
        """Return the most recent glucose reading, or null if none exists."""
        def _call() -> str:
            reading = service.get_latest_glucose_reading()
            if reading is None:
                return ok(reading=None)
            return ok(reading=_reading_payload(reading, service.get_settings().units))
        return run_tool("get_latest_glucose_reading", audit, _call)

    @mcp.tool
    async def get_glucose_readings(limit: int = 20) -> str:
        """Return the most recent glucose readings, newest first.

        Args:
            limit: Number of readings (1-500).
        """
        def _call() -> str:
            readings = service.get_glucose_readings(limit)
            unit = service.get_settings().units
            return ok(
                count=len(readings),
                readings=[_reading_payload(r, unit) for r in readings],
            )
        return run_tool("get_glucose_readings", audit, _call, tool_input={"limit": limit})

    @mcp.tool
    async def update_health_card(card_type: str, value: float, unit: str | None = None) -> str:
        """Record a new value on a health card.

        Args:
            card_type: water (L), pills (taken), activity (steps), carbs (g) or insulin (units).
            value: Non-negative value in the card's unit.
            unit: Optional; must match the card's unit when given.
        """
        return run_tool(
            "update_health_card",
            audit,
            lambda: ok(metric=service.update_health_card(card_type, value, unit).to_dict()),
            tool_input={"card_type": card_type},
        )

    @mcp.tool
    async def get_health_cards() -> str:
        """Return today's value for every health card."""
        return run_tool("get_health_cards", audit, lambda: ok(cards=service.get_health_cards()))

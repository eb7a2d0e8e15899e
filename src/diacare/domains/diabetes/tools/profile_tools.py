"""MCP tools for the diabetic profile and app settings."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from fastmcp import FastMCP

from diacare.domains.diabetes.tools.responses import ok, run_tool

if TYPE_CHECKING:
    from diacare.domains.diabetes.service import DiaCareService


def _given(**values: Any) -> dict[str, Any]:
    return {k: v for k, v in values.items() if v is not None}


def register_profile_tools(mcp: FastMCP, service: DiaCareService) -> None:
    """Register profile and settings tools on the MCP server."""
    audit = service.audit

    @mcp.tool
    async def get_profile() -> str:
        """Return the diabetic profile (thresholds in mg/dL)."""
        return run_tool("get_profile", audit, lambda: ok(profile=service.get_profile().to_dict()))

    @mcp.tool
    async def update_profile(
        diabetic_type: str | None = None,
        treatment_type: str | None = None,
        min_glucose: float | None = None,
        max_glucose: float | None = None,
        diagnosis_date: str | None = None,
        unit: str | None = None,
    ) -> str:
        """Create or edit the diabetic profile.

        Args:
            diabetic_type: type1, type2, gestational, monogenic or secondary.
            treatment_type: diet, oral_medication or insulin.
            min_glucose: Lower target bound, in ``unit``.
            max_glucose: Upper target bound, in ``unit``.
            diagnosis_date: YYYY-MM-DD.
            unit: mg/dL or mmol/L; defaults to the display unit in settings.
        """
        patch = _given(
            diabetic_type=diabetic_type,
            treatment_type=treatment_type,
            min_glucose=min_glucose,
            max_glucose=max_glucose,
            diagnosis_date=diagnosis_date,
        )
        return run_tool(
            "update_profile",
            audit,
            lambda: ok(profile=service.update_profile(patch, unit).to_dict()),
            tool_input=sorted(patch),
        )

    @mcp.tool
    async def get_settings() -> str:
        """Return theme, units, notification, locale and onboarding settings."""
        return run_tool(
            "get_settings", audit, lambda: ok(settings=service.get_settings().to_dict())
        )

    @mcp.tool
    async def update_settings(
        theme_mode: str | None = None,
        units: str | None = None,
        notifications_enabled: bool | None = None,
        locale: str | None = None,
        onboarding_complete: bool | None = None,
    ) -> str:
        """Change any subset of settings. Switching units never rewrites stored values."""
        patch = _given(
            theme_mode=theme_mode,
            units=units,
            notifications_enabled=notifications_enabled,
            locale=locale,
            onboarding_complete=onboarding_complete,
        )
        return run_tool(
            "update_settings",
            audit,
            lambda: ok(settings=service.update_settings(patch).to_dict()),
            tool_input=patch,
        )

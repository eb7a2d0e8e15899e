"""Glucose unit conversion between canonical storage (mg/dL) and display units."""

from __future__ import annotations

from diacare.core.storage.models import GlucoseUnit

# mg/dL per mmol/L, the approximation used across the app
MGDL_PER_MMOL = 18.0


def to_display(mgdl_value: float, unit: GlucoseUnit | str) -> float:
    """Convert a canonical mg/dL value into ``unit``."""
    unit = GlucoseUnit.parse(unit)
    if unit is GlucoseUnit.MMOL_L:
        return mgdl_value / MGDL_PER_MMOL
    return float(mgdl_value)


def to_canonical(display_value: float, unit: GlucoseUnit | str) -> float:
    """Convert a value entered in ``unit`` back to canonical mg/dL."""
    unit = GlucoseUnit.parse(unit)
    if unit is GlucoseUnit.MMOL_L:
        return display_value * MGDL_PER_MMOL
    return float(display_value)


def format_glucose_value(mgdl_value: float, unit: GlucoseUnit | str, *, decimals: int = 1) -> str:
    """Display string for the number alone: ``"120"`` or ``"6.7"``."""
    unit = GlucoseUnit.parse(unit)
    if unit is GlucoseUnit.MMOL_L:
        return f"{to_display(mgdl_value, unit):.{decimals}f}"
    return f"{mgdl_value:.0f}"


def format_glucose(mgdl_value: float, unit: GlucoseUnit | str, *, decimals: int = 1) -> str:
    """Display string with unit label: ``"120 mg/dL"`` or ``"6.7 mmol/L"``."""
    unit = GlucoseUnit.parse(unit)
    return f"{format_glucose_value(mgdl_value, unit, decimals=decimals)} {unit.value}"

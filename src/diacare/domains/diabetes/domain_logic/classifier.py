"""Classify glucose values against a profile's target range."""

from __future__ import annotations

from diacare.core.storage.models import DiabeticProfile, GlucoseRange

# Used whenever a user's own profile cannot be read.
DEFAULT_MIN_GLUCOSE = 70
DEFAULT_MAX_GLUCOSE = 180

# Single canonical physiological bound for any stored glucose value or threshold.
GLUCOSE_FLOOR_MGDL = 20
GLUCOSE_CEILING_MGDL = 600

_STATUS_MESSAGES = {
    GlucoseRange.LOW: "Low - Please eat something",
    GlucoseRange.NORMAL: "You are fine",
    GlucoseRange.HIGH: "High - Monitor closely",
}


def classify(mgdl_value: float, profile: DiabeticProfile) -> GlucoseRange:
    """Bounds are inclusive: values equal to min or max are normal."""
    if mgdl_value < profile.min_glucose:
        return GlucoseRange.LOW
    if mgdl_value > profile.max_glucose:
        return GlucoseRange.HIGH
    return GlucoseRange.NORMAL


def status_message(glucose_range: GlucoseRange | None) -> str:
    if glucose_range is None:
        return "No readings"
    return _STATUS_MESSAGES[glucose_range]


def within_physiological_bounds(mgdl_value: float) -> bool:
    return GLUCOSE_FLOOR_MGDL <= mgdl_value <= GLUCOSE_CEILING_MGDL

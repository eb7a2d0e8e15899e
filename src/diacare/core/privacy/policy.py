"""Privacy policy for the read-only context handed to the chat assistant.

The assistant should generally operate on:
- the diabetic profile and target range
- classifications of recent readings (low / normal / high)
- a small set of rounded, user-friendly values

Free-text reading notes and exact timestamps stay on the device unless the
user explicitly opts in.
"""

from __future__ import annotations

from typing import Any, Literal, get_args

from diacare.core.errors import ValidationError

PrivacyMode = Literal["strict", "standard", "explicit"]
PRIVACY_MODES: tuple[str, ...] = get_args(PrivacyMode)


def parse_privacy_mode(value: str | None, default: str = "standard") -> PrivacyMode:
    mode = (value or default).strip().lower()
    if mode not in PRIVACY_MODES:
        raise ValidationError(
            f"Invalid privacy_mode: {value!r}. Allowed: {', '.join(PRIVACY_MODES)}",
            field="privacy_mode",
        )
    return mode  # type: ignore[return-value]


def _round_floats(obj: Any, ndigits: int = 1) -> Any:
    if isinstance(obj, float):
        return round(obj, ndigits)
    if isinstance(obj, dict):
        return {k: _round_floats(v, ndigits=ndigits) for k, v in obj.items()}
    if isinstance(obj, list):
        return [_round_floats(v, ndigits=ndigits) for v in obj]
    return obj


def _without(entry: dict[str, Any] | None, *keys: str) -> dict[str, Any] | None:
    if entry is None:
        return None
    return {k: v for k, v in entry.items() if k not in keys}


def build_assistant_context(
    *,
    full_context: dict[str, Any],
    privacy_mode: PrivacyMode,
) -> dict[str, Any]:
    """Minimize a full context snapshot according to ``privacy_mode``.

    ``full_context`` is the flat snapshot assembled by the aggregation
    service: ``name``, ``units``, ``profile``, ``latest_reading``,
    ``recent_readings``, ``health_cards``, ``reminders``.
    """
    profile = full_context.get("profile") or {}
    base: dict[str, Any] = {
        "privacy_mode": privacy_mode,
        "units": full_context.get("units"),
        "profile": {
            "diabetic_type": profile.get("diabetic_type"),
            "treatment_type": profile.get("treatment_type"),
            "min_glucose": profile.get("min_glucose"),
            "max_glucose": profile.get("max_glucose"),
        },
    }

    latest = full_context.get("latest_reading")
    recent = full_context.get("recent_readings") or []

    if privacy_mode == "strict":
        # Classifications only; no values, names or timestamps.
        base["latest_reading"] = (
            {
                "classification": latest.get("classification"),
                "status_message": latest.get("status_message"),
            }
            if latest
            else None
        )
        base["recent_classifications"] = [r.get("classification") for r in recent]
        return base

    if privacy_mode == "standard":
        base.update(
            {
                "name": full_context.get("name"),
                "latest_reading": _without(latest, "notes", "recorded_at", "id"),
                "recent_readings": [_without(r, "notes", "recorded_at", "id") for r in recent],
                "health_cards": full_context.get("health_cards") or {},
                "reminders": full_context.get("reminders") or {},
            }
        )
        return _round_floats(base, ndigits=1)

    # explicit
    explicit_ctx = dict(full_context)
    explicit_ctx["privacy_mode"] = privacy_mode
    return explicit_ctx

"""Demo data seeding: loads ``seed/demo_data.yaml`` into one user's account."""

from __future__ import annotations

import logging
from datetime import datetime, time, timedelta
from pathlib import Path
from typing import Any

import yaml

from diacare.core.errors import ValidationError
from diacare.core.storage.models import CardType
from diacare.domains.diabetes.stores.profiles import ProfileStore
from diacare.domains.diabetes.stores.readings import ReadingsStore
from diacare.domains.diabetes.stores.reminders import ReminderStore

logger = logging.getLogger(__name__)

DEFAULT_SEED_PATH = Path(__file__).resolve().parent.parent / "seed" / "demo_data.yaml"


def load_seed_file(path: str | Path = DEFAULT_SEED_PATH) -> dict[str, Any]:
    """Parse a seed YAML file."""
    with open(path, encoding="utf-8") as f:
        data = yaml.safe_load(f)
    if not isinstance(data, dict):
        raise ValidationError(f"Seed file {path} must contain a mapping", field="path")
    return data


def seed_demo_data(
    user_id: str,
    *,
    profiles: ProfileStore,
    readings: ReadingsStore,
    reminders: ReminderStore,
    now: datetime,
    data: dict[str, Any] | None = None,
) -> dict[str, int]:
    """Write the demo profile, readings, cards and reminders for ``user_id``.

    Every value goes through the normal store validation, and everything is
    written in one transaction: a bad entry leaves the account untouched.
    Returns the number of records written per kind.
    """
    data = data if data is not None else load_seed_file()
    with profiles.database.transaction():
        counts = _write_seed(user_id, data, profiles, readings, reminders, now)
    logger.info("Seeded demo data for user %s: %s", user_id, counts)
    return counts


def _write_seed(
    user_id: str,
    data: dict[str, Any],
    profiles: ProfileStore,
    readings: ReadingsStore,
    reminders: ReminderStore,
    now: datetime,
) -> dict[str, int]:
    counts = {"profile": 0, "glucose_readings": 0, "health_card_metrics": 0, "reminders": 0}

    if data.get("profile"):
        profiles.update_profile(user_id, data["profile"])
        counts["profile"] = 1

    for entry in data.get("glucose_readings", []):
        readings.add_glucose_reading(
            user_id,
            entry["value"],
            entry.get("unit", "mg/dL"),
            entry["reading_type"],
            recorded_at=now - timedelta(hours=entry.get("hours_ago", 0)),
        )
        counts["glucose_readings"] += 1

    for card, values in (data.get("daily_series") or {}).items():
        card_type = CardType.parse(card, "card_type")
        for offset, value in enumerate(reversed(values)):
            day = (now - timedelta(days=offset)).date()
            # Midday for past days; the current moment for today
            recorded = now if offset == 0 else datetime.combine(day, time(12, 0), tzinfo=now.tzinfo)
            readings.add_health_metric(user_id, card_type, value, recorded_at=recorded)
            counts["health_card_metrics"] += 1

    for card, value in (data.get("health_cards") or {}).items():
        readings.add_health_metric(user_id, card, value, recorded_at=now)
        counts["health_card_metrics"] += 1

    for entry in data.get("reminders", []):
        reminders.add_reminder(
            user_id,
            entry["title"],
            entry["reminder_type"],
            entry["scheduled_time"],
            entry.get("recurrence", "daily"),
            description=entry.get("description"),
        )
        counts["reminders"] += 1

    return counts

"""Readings store: append-only glucose readings and health-card metrics.

Glucose values arrive in the user's display unit and are stored as mg/dL.
Free-text notes are Fernet-encrypted before they touch SQLite; values stay
plain so range queries and averages work in SQL.

All timestamps come from the store clock, so ISO strings of one device
order correctly as text.
"""

from __future__ import annotations

import logging
from datetime import date, datetime, time, timedelta
from typing import Any

from diacare.core.errors import ValidationError
from diacare.core.storage.database import HealthDatabase
from diacare.core.storage.encryption import FieldEncryptor
from diacare.core.storage.models import (
    CardType,
    GlucoseReading,
    GlucoseUnit,
    HealthCardMetric,
    ReadingType,
)
from diacare.domains.diabetes.domain_logic.classifier import (
    GLUCOSE_CEILING_MGDL,
    GLUCOSE_FLOOR_MGDL,
    within_physiological_bounds,
)
from diacare.domains.diabetes.domain_logic.units import to_canonical
from diacare.domains.diabetes.stores.base import BaseStore, Clock

logger = logging.getLogger(__name__)

MAX_RECENT_LIMIT = 500


def _as_number(value: Any, field: str) -> float:
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be a number", field=field)
    try:
        return float(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{field} must be a number", field=field) from None


def _as_timestamp(value: datetime | str | None, clock: Clock) -> datetime:
    if value is None:
        return clock()
    if isinstance(value, str):
        try:
            value = datetime.fromisoformat(value)
        except ValueError:
            raise ValidationError(
                "recorded_at must be an ISO 8601 timestamp", field="recorded_at"
            ) from None
    tz = clock().tzinfo
    if value.tzinfo is None:
        return value.replace(tzinfo=tz)
    # Stored strings are compared as text, so every row shares the device offset.
    return value.astimezone(tz)


def day_bounds(day: date, tz: Any) -> tuple[str, str]:
    """ISO start (inclusive) and end (exclusive) of ``day`` in ``tz``."""
    start = datetime.combine(day, time.min, tzinfo=tz)
    return start.isoformat(), (start + timedelta(days=1)).isoformat()


class ReadingsStore(BaseStore):
    """Glucose readings and health-card metrics for one device.

    Usage::

        readings = ReadingsStore(db, encryptor)
        readings.add_glucose_reading(user_id, 6.5, "mmol/L", "before_meal")
        latest = readings.get_latest_glucose_reading(user_id)
        cards = readings.get_latest_metrics(user_id, date.today())
    """

    def __init__(
        self,
        database: HealthDatabase,
        encryptor: FieldEncryptor,
        *,
        clock: Clock | None = None,
    ) -> None:
        super().__init__(database, clock=clock)
        self._enc = encryptor

    # ------------------------------------------------------------------
    # Glucose
    # ------------------------------------------------------------------

    def add_glucose_reading(
        self,
        user_id: str,
        value: Any,
        unit: GlucoseUnit | str = GlucoseUnit.MG_DL,
        reading_type: ReadingType | str = ReadingType.BEFORE_MEAL,
        *,
        notes: str | None = None,
        recorded_at: datetime | str | None = None,
    ) -> GlucoseReading:
        """Append a glucose reading.

        Args:
            value: The number as the user entered it, in ``unit``.
            unit: ``mg/dL`` or ``mmol/L``; converted to mg/dL before storing.
            reading_type: ``before_meal`` or ``after_meal``.
            notes: Optional free text, encrypted at rest.
            recorded_at: Measurement time; defaults to now.

        Raises:
            ValidationError: Non-numeric value, unknown unit or type, or a
                value outside 20-600 mg/dL after conversion.
        """
        unit = GlucoseUnit.parse(unit)
        reading_type = ReadingType.parse(reading_type, "reading_type")
        mgdl = round(to_canonical(_as_number(value, "value"), unit), 2)
        if not within_physiological_bounds(mgdl):
            raise ValidationError(
                f"Glucose must be between {GLUCOSE_FLOOR_MGDL} and "
                f"{GLUCOSE_CEILING_MGDL} mg/dL",
                field="value",
            )
        notes = (notes or "").strip() or None
        timestamp = _as_timestamp(recorded_at, self._clock)

        reading = GlucoseReading(
            id=self._new_id(),
            user_id=user_id,
            value=mgdl,
            reading_type=reading_type,
            recorded_at=timestamp.isoformat(),
            notes=notes,
            created_at=self._now_iso(),
        )
        with self._db.transaction() as conn:
            conn.execute(
                """INSERT INTO glucose_readings
                   (id, user_id, value, reading_type, notes_enc, recorded_at, created_at)
                   VALUES (?, ?, ?, ?, ?, ?, ?)""",
                (
                    reading.id,
                    user_id,
                    reading.value,
                    reading_type.value,
                    self._enc.encrypt(notes) or None,
                    reading.recorded_at,
                    reading.created_at,
                ),
            )
        logger.info("Saved glucose reading %s for user %s", reading.id, user_id)
        return reading

    def get_latest_glucose_reading(self, user_id: str) -> GlucoseReading | None:
        row = self._db.query_one(
            """SELECT * FROM glucose_readings WHERE user_id = ?
               ORDER BY recorded_at DESC, created_at DESC LIMIT 1""",
            (user_id,),
        )
        return self._row_to_reading(row) if row else None

    def get_glucose_readings(self, user_id: str, limit: int = 20) -> list[GlucoseReading]:
        """Most recent readings first."""
        if not 1 <= limit <= MAX_RECENT_LIMIT:
            raise ValidationError(f"limit must be between 1 and {MAX_RECENT_LIMIT}", field="limit")
        rows = self._db.query(
            """SELECT * FROM glucose_readings WHERE user_id = ?
               ORDER BY recorded_at DESC, created_at DESC LIMIT ?""",
            (user_id, limit),
        )
        return [self._row_to_reading(r) for r in rows]

    def get_glucose_readings_between(
        self, user_id: str, start: datetime, end: datetime
    ) -> list[GlucoseReading]:
        """Readings with ``start <= recorded_at < end``, oldest first."""
        rows = self._db.query(
            """SELECT * FROM glucose_readings
               WHERE user_id = ? AND recorded_at >= ? AND recorded_at < ?
               ORDER BY recorded_at ASC""",
            (user_id, self._bound(start), self._bound(end)),
        )
        return [self._row_to_reading(r) for r in rows]

    def count_glucose_readings(self, user_id: str) -> int:
        row = self._db.query_one(
            "SELECT COUNT(*) FROM glucose_readings WHERE user_id = ?", (user_id,)
        )
        return row[0]

    # ------------------------------------------------------------------
    # Health cards
    # ------------------------------------------------------------------

    def add_health_metric(
        self,
        user_id: str,
        card_type: CardType | str,
        value: Any,
        unit: str | None = None,
        *,
        recorded_at: datetime | str | None = None,
    ) -> HealthCardMetric:
        """Append a health-card value. ``unit`` must match the card's fixed unit."""
        card_type = CardType.parse(card_type, "card_type")
        number = _as_number(value, "value")
        if number < 0:
            raise ValidationError("value must not be negative", field="value")
        if unit is not None and unit.strip().lower() != card_type.unit.lower():
            raise ValidationError(
                f"{card_type.label} is recorded in {card_type.unit}, not {unit!r}", field="unit"
            )
        timestamp = _as_timestamp(recorded_at, self._clock)

        metric = HealthCardMetric(
            id=self._new_id(),
            user_id=user_id,
            card_type=card_type,
            value=number,
            unit=card_type.unit,
            recorded_at=timestamp.isoformat(),
            created_at=self._now_iso(),
        )
        with self._db.transaction() as conn:
            conn.execute(
                """INSERT INTO health_card_metrics
                   (id, user_id, card_type, value, unit, recorded_at, created_at)
                   VALUES (?, ?, ?, ?, ?, ?, ?)""",
                (
                    metric.id,
                    user_id,
                    card_type.value,
                    metric.value,
                    metric.unit,
                    metric.recorded_at,
                    metric.created_at,
                ),
            )
        logger.info("Saved %s metric %s for user %s", card_type.value, metric.id, user_id)
        return metric

    def get_latest_metrics(
        self, user_id: str, day: date
    ) -> dict[CardType, HealthCardMetric | None]:
        """Most recent entry per card type recorded on ``day``; every type is a key."""
        start, end = day_bounds(day, self._now().tzinfo)
        rows = self._db.query(
            """SELECT * FROM health_card_metrics
               WHERE user_id = ? AND recorded_at >= ? AND recorded_at < ?
               ORDER BY recorded_at ASC, created_at ASC""",
            (user_id, start, end),
        )
        latest: dict[CardType, HealthCardMetric | None] = {ct: None for ct in CardType}
        for row in rows:
            metric = self._row_to_metric(row)
            latest[metric.card_type] = metric
        return latest

    def get_metrics_between(
        self,
        user_id: str,
        card_type: CardType | str,
        start: datetime,
        end: datetime,
    ) -> list[HealthCardMetric]:
        """Entries of one card type with ``start <= recorded_at < end``, oldest first."""
        card_type = CardType.parse(card_type, "card_type")
        rows = self._db.query(
            """SELECT * FROM health_card_metrics
               WHERE user_id = ? AND card_type = ? AND recorded_at >= ? AND recorded_at < ?
               ORDER BY recorded_at ASC, created_at ASC""",
            (user_id, card_type.value, self._bound(start), self._bound(end)),
        )
        return [self._row_to_metric(r) for r in rows]

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _bound(self, moment: datetime) -> str:
        return _as_timestamp(moment, self._clock).isoformat()

    def _row_to_reading(self, row: Any) -> GlucoseReading:
        return GlucoseReading(
            id=row["id"],
            user_id=row["user_id"],
            value=row["value"],
            reading_type=ReadingType(row["reading_type"]),
            recorded_at=row["recorded_at"],
            notes=self._enc.decrypt(row["notes_enc"]) if row["notes_enc"] else None,
            created_at=row["created_at"],
        )

    @staticmethod
    def _row_to_metric(row: Any) -> HealthCardMetric:
        return HealthCardMetric(
            id=row["id"],
            user_id=row["user_id"],
            card_type=CardType(row["card_type"]),
            value=row["value"],
            unit=row["unit"],
            recorded_at=row["recorded_at"],
            created_at=row["created_at"],
        )

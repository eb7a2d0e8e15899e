"""Data models for the DiaCare persistence layer.

Every "kind" column (diabetic type, reminder type, card type, ...) is a closed
``str`` enum so rows round-trip through SQLite as plain text while callers get
exhaustive matching.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import date, datetime, time
from enum import Enum
from typing import Any, Union

from diacare.core.errors import ValidationError


class _TextEnum(str, Enum):
    """String enum with validating lookup."""

    @classmethod
    def parse(cls, value: Any, field_name: str):
        """Coerce ``value`` to a member or raise ValidationError naming ``field_name``."""
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower() if cls._lowercase() else str(value).strip())
        except ValueError:
            allowed = ", ".join(m.value for m in cls)
            raise ValidationError(
                f"Invalid {field_name}: {value!r}. Allowed: {allowed}", field=field_name
            ) from None

    @classmethod
    def _lowercase(cls) -> bool:
        return True


class DiabeticType(_TextEnum):
    TYPE1 = "type1"
    TYPE2 = "type2"
    GESTATIONAL = "gestational"
    MONOGENIC = "monogenic"
    SECONDARY = "secondary"


class TreatmentType(_TextEnum):
    DIET = "diet"
    ORAL_MEDICATION = "oral_medication"
    INSULIN = "insulin"


class ThemeMode(_TextEnum):
    LIGHT = "light"
    DARK = "dark"
    SYSTEM = "system"


class GlucoseUnit(_TextEnum):
    MG_DL = "mg/dL"
    MMOL_L = "mmol/L"

    @classmethod
    def _lowercase(cls) -> bool:
        return False

    @classmethod
    def parse(cls, value: Any, field_name: str = "unit") -> GlucoseUnit:
        if isinstance(value, str):
            normalized = value.strip().lower().replace(" ", "")
            for member in cls:
                if member.value.lower() == normalized:
                    return member
        return super().parse(value, field_name)


class Locale(_TextEnum):
    EN = "en"
    FR = "fr"
    AR = "ar"


class Gender(_TextEnum):
    MALE = "male"
    FEMALE = "female"
    OTHER = "other"


class ReminderType(_TextEnum):
    GLUCOSE = "glucose"
    WATER = "water"
    PILLS = "pills"
    ACTIVITY = "activity"
    MEAL = "meal"
    CUSTOM = "custom"


class ReminderStatus(_TextEnum):
    PENDING = "pending"
    DONE = "done"
    NOT_DONE = "not_done"
    POSTPONED = "postponed"


class ReadingType(_TextEnum):
    BEFORE_MEAL = "before_meal"
    AFTER_MEAL = "after_meal"


class CardType(_TextEnum):
    WATER = "water"
    PILLS = "pills"
    ACTIVITY = "activity"
    CARBS = "carbs"
    INSULIN = "insulin"

    @property
    def unit(self) -> str:
        """The one unit a metric of this type is recorded in."""
        return CARD_UNITS[self]

    @property
    def label(self) -> str:
        return self.value.capitalize()


CARD_UNITS: dict[CardType, str] = {
    CardType.WATER: "L",
    CardType.PILLS: "taken",
    CardType.ACTIVITY: "steps",
    CardType.CARBS: "g",
    CardType.INSULIN: "units",
}


class GlucoseRange(_TextEnum):
    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"


# "daily" or an explicit set of ISO weekdays (Monday = 1 ... Sunday = 7)
Recurrence = Union[str, frozenset[int]]


# ---------------------------------------------------------------------------
# Entities
# ---------------------------------------------------------------------------

@dataclass
class User:
    """A registered account. The password hash never leaves the store."""

    id: str
    email: str
    username: str
    full_name: str = ""
    profile_image_url: str | None = None
    date_of_birth: str | None = None
    gender: Gender | None = None
    height_cm: float | None = None
    weight_kg: float | None = None
    created_at: str = ""
    updated_at: str = ""

    @property
    def display_name(self) -> str:
        return self.full_name.strip() or self.username

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["gender"] = self.gender.value if self.gender else None
        return data


@dataclass
class Session:
    """An issued login session.

    ``token`` is only populated on the object returned by ``login``; stored
    sessions keep nothing but the token's hash.
    """

    id: str
    user_id: str
    issued_at: str
    expires_at: str
    token: str = field(default="", repr=False)


@dataclass
class DiabeticProfile:
    """Diabetes configuration. Thresholds are always mg/dL."""

    user_id: str
    diabetic_type: DiabeticType = DiabeticType.TYPE1
    treatment_type: TreatmentType = TreatmentType.INSULIN
    min_glucose: int = 70
    max_glucose: int = 180
    diagnosis_date: str | None = None
    created_at: str = ""
    updated_at: str = ""

    @property
    def is_insulin_dependent(self) -> bool:
        return self.treatment_type is TreatmentType.INSULIN

    @property
    def range_width(self) -> int:
        return self.max_glucose - self.min_glucose

    def to_dict(self) -> dict[str, Any]:
        return {
            "diabetic_type": self.diabetic_type.value,
            "treatment_type": self.treatment_type.value,
            "min_glucose": self.min_glucose,
            "max_glucose": self.max_glucose,
            "diagnosis_date": self.diagnosis_date,
        }


@dataclass
class UserSettings:
    """General preferences. Changing ``units`` only affects display."""

    user_id: str
    theme_mode: ThemeMode = ThemeMode.LIGHT
    units: GlucoseUnit = GlucoseUnit.MG_DL
    notifications_enabled: bool = True
    locale: Locale = Locale.EN
    onboarding_complete: bool = False
    updated_at: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "theme_mode": self.theme_mode.value,
            "units": self.units.value,
            "notifications_enabled": self.notifications_enabled,
            "locale": self.locale.value,
            "onboarding_complete": self.onboarding_complete,
        }


@dataclass
class Reminder:
    """A recurring reminder; ``status`` is the effective status for today."""

    id: str
    user_id: str
    title: str
    reminder_type: ReminderType
    scheduled_time: time
    recurrence: Recurrence
    is_enabled: bool = True
    status: ReminderStatus = ReminderStatus.PENDING
    status_date: date | None = None
    description: str | None = None
    completed_at: str | None = None
    created_at: str = ""
    updated_at: str = ""

    def to_dict(self) -> dict[str, Any]:
        recurrence = (
            self.recurrence if isinstance(self.recurrence, str) else sorted(self.recurrence)
        )
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "reminder_type": self.reminder_type.value,
            "scheduled_time": self.scheduled_time.strftime("%H:%M"),
            "recurrence": recurrence,
            "is_enabled": self.is_enabled,
            "status": self.status.value,
            "completed_at": self.completed_at,
        }


@dataclass
class GlucoseReading:
    """A single glucose measurement, value in mg/dL."""

    id: str
    user_id: str
    value: float
    reading_type: ReadingType
    recorded_at: str  # ISO 8601
    notes: str | None = None
    created_at: str = ""

    @property
    def recorded_datetime(self) -> datetime:
        return datetime.fromisoformat(self.recorded_at)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "value": self.value,
            "unit": GlucoseUnit.MG_DL.value,
            "reading_type": self.reading_type.value,
            "recorded_at": self.recorded_at,
            "notes": self.notes,
        }


@dataclass
class HealthCardMetric:
    """One entry on a health card time series."""

    id: str
    user_id: str
    card_type: CardType
    value: float
    unit: str
    recorded_at: str  # ISO 8601
    created_at: str = ""

    @property
    def recorded_datetime(self) -> datetime:
        return datetime.fromisoformat(self.recorded_at)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "card_type": self.card_type.value,
            "title": self.card_type.label,
            "value": self.value,
            "unit": self.unit,
            "recorded_at": self.recorded_at,
        }

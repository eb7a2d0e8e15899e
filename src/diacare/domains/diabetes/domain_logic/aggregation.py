"""Dashboard, insights and assistant-context composition.

Every view here is computed on demand from the stores and never persisted.
A failing sub-store never fails the view: the affected part falls back to
its default, is named in ``degraded`` and logged at WARNING.
"""

from __future__ import annotations

import logging
import statistics
from collections.abc import Callable
from dataclasses import asdict, dataclass, field
from datetime import date, datetime, time, timedelta
from typing import Any, TypeVar

from diacare.core.audit.logger import AuditLogger
from diacare.core.errors import DiaCareError, ValidationError
from diacare.core.privacy.policy import build_assistant_context, parse_privacy_mode
from diacare.core.storage.models import (
    CardType,
    DiabeticProfile,
    GlucoseReading,
    GlucoseUnit,
    ReadingType,
    UserSettings,
)
from diacare.domains.diabetes.domain_logic.classifier import classify, status_message
from diacare.domains.diabetes.domain_logic.scheduler import WEEKDAY_NAMES
from diacare.domains.diabetes.domain_logic.units import to_display
from diacare.domains.diabetes.stores.accounts import AccountStore
from diacare.domains.diabetes.stores.base import Clock, local_now
from diacare.domains.diabetes.stores.profiles import ProfileStore
from diacare.domains.diabetes.stores.readings import ReadingsStore
from diacare.domains.diabetes.stores.reminders import ReminderScheduler

logger = logging.getLogger(__name__)

T = TypeVar("T")

NO_UPCOMING_REMINDERS = "No upcoming reminders"
DEFAULT_GREETING = "Welcome"
STEPS_PER_KM = 1312
MAX_RANGE_DAYS = 366
RECENT_READINGS_FOR_ASSISTANT = 5
DASHBOARD_SERIES_DAYS = 7


@dataclass(frozen=True)
class DateRange:
    """Inclusive range of calendar days."""

    start: date
    end: date

    def __post_init__(self) -> None:
        if self.end < self.start:
            raise ValidationError("Range end must not be before its start", field="end")
        if self.days > MAX_RANGE_DAYS:
            raise ValidationError(
                f"Range must cover at most {MAX_RANGE_DAYS} days", field="end"
            )

    @property
    def days(self) -> int:
        return (self.end - self.start).days + 1

    def each_day(self) -> list[date]:
        return [self.start + timedelta(days=i) for i in range(self.days)]

    @classmethod
    def current_week(cls, today: date) -> DateRange:
        """Monday through Sunday of the ISO week containing ``today``."""
        monday = today - timedelta(days=today.isoweekday() - 1)
        return cls(monday, monday + timedelta(days=6))

    @classmethod
    def parse(cls, start: str | date | None, end: str | date | None, today: date) -> DateRange:
        if start is None and end is None:
            return cls.current_week(today)
        try:
            start_day = start if isinstance(start, date) else date.fromisoformat(str(start))
        except ValueError:
            raise ValidationError("start must be YYYY-MM-DD", field="start") from None
        if end is None:
            end_day = start_day + timedelta(days=6)
        else:
            try:
                end_day = end if isinstance(end, date) else date.fromisoformat(str(end))
            except ValueError:
                raise ValidationError("end must be YYYY-MM-DD", field="end") from None
        return cls(start_day, end_day)


@dataclass
class GlucoseDay:
    """Per-day glucose averages in the display unit; ``None`` where nothing was logged."""

    date: str
    label: str
    before_meal: float | None = None
    after_meal: float | None = None


@dataclass
class DashboardView:
    greeting: str
    units: str
    glucose_range: dict[str, float]
    latest_reading: dict[str, Any] | None
    status_message: str
    next_reminder: dict[str, Any] | None
    next_reminder_label: str
    late_count: int
    health_cards: list[dict[str, Any]]
    glucose_series: list[GlucoseDay]
    degraded: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class InsightsView:
    start: str
    end: str
    units: str
    glucose: list[GlucoseDay]
    carbs: list[dict[str, Any]]
    activity: list[dict[str, Any]]
    degraded: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def _avg(values: list[float]) -> float | None:
    if not values:
        return None
    return round(statistics.mean(values), 1)


class AggregationService:
    """Read-only compositions over the stores.

    Usage::

        aggregation = AggregationService(accounts, profiles, readings, scheduler)
        dashboard = aggregation.get_dashboard(user_id)
        week = aggregation.get_insights(user_id)
    """

    def __init__(
        self,
        accounts: AccountStore,
        profiles: ProfileStore,
        readings: ReadingsStore,
        scheduler: ReminderScheduler,
        *,
        audit: AuditLogger | None = None,
        clock: Clock | None = None,
        default_privacy_mode: str = "standard",
    ) -> None:
        self._accounts = accounts
        self._profiles = profiles
        self._readings = readings
        self._scheduler = scheduler
        self._audit = audit
        self._clock = clock or local_now
        self._default_privacy_mode = default_privacy_mode

    # ------------------------------------------------------------------
    # Degradation helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _safe(part: str, degraded: list[str], fn: Callable[[], T], default: T) -> T:
        try:
            return fn()
        except DiaCareError as exc:
            logger.warning("Aggregation part %r unavailable (%s); using default", part, type(exc).__name__)
            degraded.append(part)
            return default

    def _profile(self, user_id: str, degraded: list[str]) -> DiabeticProfile:
        return self._safe(
            "profile", degraded,
            lambda: self._profiles.get_profile(user_id),
            DiabeticProfile(user_id=user_id),
        )

    def _settings(self, user_id: str, degraded: list[str]) -> UserSettings:
        return self._safe(
            "settings", degraded,
            lambda: self._profiles.get_settings(user_id),
            UserSettings(user_id=user_id),
        )

    def _reading_entry(
        self, reading: GlucoseReading, profile: DiabeticProfile, unit: GlucoseUnit
    ) -> dict[str, Any]:
        glucose_range = classify(reading.value, profile)
        return {
            "id": reading.id,
            "value": round(to_display(reading.value, unit), 1),
            "unit": unit.value,
            "reading_type": reading.reading_type.value,
            "classification": glucose_range.value,
            "status_message": status_message(glucose_range),
            "recorded_at": reading.recorded_at,
            "notes": reading.notes,
        }

    def _day_bounds(self, first: date, last: date, now: datetime) -> tuple[datetime, datetime]:
        start = datetime.combine(first, time.min, tzinfo=now.tzinfo)
        end = datetime.combine(last + timedelta(days=1), time.min, tzinfo=now.tzinfo)
        return start, end

    def _glucose_days(
        self, user_id: str, days: list[date], unit: GlucoseUnit, now: datetime
    ) -> list[GlucoseDay]:
        start, end = self._day_bounds(days[0], days[-1], now)
        buckets: dict[tuple[date, ReadingType], list[float]] = {}
        for reading in self._readings.get_glucose_readings_between(user_id, start, end):
            key = (reading.recorded_datetime.astimezone(now.tzinfo).date(), reading.reading_type)
            buckets.setdefault(key, []).append(to_display(reading.value, unit))
        return [
            GlucoseDay(
                date=day.isoformat(),
                label=WEEKDAY_NAMES[day.isoweekday()],
                before_meal=_avg(buckets.get((day, ReadingType.BEFORE_MEAL), [])),
                after_meal=_avg(buckets.get((day, ReadingType.AFTER_MEAL), [])),
            )
            for day in days
        ]

    def _latest_per_day(
        self, user_id: str, card_type: CardType, days: list[date], now: datetime
    ) -> dict[date, float]:
        start, end = self._day_bounds(days[0], days[-1], now)
        latest: dict[date, float] = {}
        # Oldest first, so the last write per day wins
        for metric in self._readings.get_metrics_between(user_id, card_type, start, end):
            latest[metric.recorded_datetime.astimezone(now.tzinfo).date()] = metric.value
        return latest

    # ------------------------------------------------------------------
    # Dashboard
    # ------------------------------------------------------------------

    def get_dashboard(self, user_id: str) -> DashboardView:
        """Everything the home screen shows, for one user."""
        now = self._clock()
        degraded: list[str] = []

        user = self._safe("user", degraded, lambda: self._accounts.get_user(user_id), None)
        greeting = f"Hi, {user.display_name}" if user is not None else DEFAULT_GREETING
        profile = self._profile(user_id, degraded)
        unit = self._settings(user_id, degraded).units

        latest = self._safe(
            "latest_reading", degraded,
            lambda: self._readings.get_latest_glucose_reading(user_id),
            None,
        )
        latest_entry = self._reading_entry(latest, profile, unit) if latest else None
        if latest_entry is not None:
            latest_entry.pop("notes")

        upcoming = self._safe(
            "reminders", degraded, lambda: self._scheduler.next_upcoming(user_id), None
        )
        late_count = self._safe(
            "late_count", degraded, lambda: self._scheduler.late_count(user_id), 0
        )

        metrics = self._safe(
            "health_cards", degraded,
            lambda: self._readings.get_latest_metrics(user_id, now.date()),
            {ct: None for ct in CardType},
        )
        cards = [
            {
                "card_type": ct.value,
                "title": ct.label,
                "value": metrics[ct].value if metrics.get(ct) else 0,
                "unit": ct.unit,
            }
            for ct in CardType
        ]

        days = [now.date() - timedelta(days=offset) for offset in range(DASHBOARD_SERIES_DAYS - 1, -1, -1)]
        series = self._safe(
            "glucose_series", degraded,
            lambda: self._glucose_days(user_id, days, unit, now),
            [GlucoseDay(date=d.isoformat(), label=WEEKDAY_NAMES[d.isoweekday()]) for d in days],
        )

        return DashboardView(
            greeting=greeting,
            units=unit.value,
            glucose_range={
                "min": round(to_display(profile.min_glucose, unit), 1),
                "max": round(to_display(profile.max_glucose, unit), 1),
            },
            latest_reading=latest_entry,
            status_message=latest_entry["status_message"] if latest_entry else status_message(None),
            next_reminder=upcoming.to_dict() if upcoming else None,
            next_reminder_label=upcoming.reminder.title if upcoming else NO_UPCOMING_REMINDERS,
            late_count=late_count,
            health_cards=cards,
            glucose_series=series,
            degraded=degraded,
        )

    # ------------------------------------------------------------------
    # Insights
    # ------------------------------------------------------------------

    def get_insights(self, user_id: str, date_range: DateRange | None = None) -> InsightsView:
        """Day-bucketed glucose, carbs and activity over ``date_range`` (default: this week).

        Raises:
            ValidationError: Only from building an invalid ``DateRange``.
        """
        now = self._clock()
        date_range = date_range or DateRange.current_week(now.date())
        days = date_range.each_day()
        degraded: list[str] = []
        unit = self._settings(user_id, degraded).units

        glucose = self._safe(
            "glucose", degraded,
            lambda: self._glucose_days(user_id, days, unit, now),
            [GlucoseDay(date=d.isoformat(), label=WEEKDAY_NAMES[d.isoweekday()]) for d in days],
        )
        carbs_by_day = self._safe(
            "carbs", degraded,
            lambda: self._latest_per_day(user_id, CardType.CARBS, days, now),
            {},
        )
        steps_by_day = self._safe(
            "activity", degraded,
            lambda: self._latest_per_day(user_id, CardType.ACTIVITY, days, now),
            {},
        )

        carbs = [
            {
                "date": d.isoformat(),
                "label": WEEKDAY_NAMES[d.isoweekday()],
                "grams": carbs_by_day.get(d, 0),
            }
            for d in days
        ]
        activity = []
        for d in days:
            steps = steps_by_day.get(d, 0)
            activity.append({
                "date": d.isoformat(),
                "label": WEEKDAY_NAMES[d.isoweekday()],
                "steps": steps,
                "km": round(steps / STEPS_PER_KM, 2),
            })

        return InsightsView(
            start=date_range.start.isoformat(),
            end=date_range.end.isoformat(),
            units=unit.value,
            glucose=glucose,
            carbs=carbs,
            activity=activity,
            degraded=degraded,
        )

    # ------------------------------------------------------------------
    # Assistant context
    # ------------------------------------------------------------------

    def get_assistant_context(
        self, user_id: str, privacy_mode: str | None = None
    ) -> dict[str, Any]:
        """Flat, read-only snapshot for the chat assistant, minimized per ``privacy_mode``.

        Every call is recorded as a disclosure in the audit log.
        """
        mode = parse_privacy_mode(privacy_mode, default=self._default_privacy_mode)
        now = self._clock()
        degraded: list[str] = []

        user = self._safe("user", degraded, lambda: self._accounts.get_user(user_id), None)
        profile = self._profile(user_id, degraded)
        unit = self._settings(user_id, degraded).units
        recent = self._safe(
            "recent_readings", degraded,
            lambda: self._readings.get_glucose_readings(user_id, RECENT_READINGS_FOR_ASSISTANT),
            [],
        )
        metrics = self._safe(
            "health_cards", degraded,
            lambda: self._readings.get_latest_metrics(user_id, now.date()),
            {ct: None for ct in CardType},
        )
        late_count = self._safe(
            "late_count", degraded, lambda: self._scheduler.late_count(user_id), 0
        )
        upcoming = self._safe(
            "reminders", degraded, lambda: self._scheduler.next_upcoming(user_id), None
        )

        recent_entries = [self._reading_entry(r, profile, unit) for r in recent]
        full_context = {
            "name": user.display_name if user is not None else None,
            "units": unit.value,
            "profile": profile.to_dict(),
            "latest_reading": recent_entries[0] if recent_entries else None,
            "recent_readings": recent_entries,
            "health_cards": {
                ct.value: {"value": metrics[ct].value if metrics.get(ct) else 0, "unit": ct.unit}
                for ct in CardType
            },
            "reminders": {
                "late_count": late_count,
                "next_upcoming": upcoming.reminder.title if upcoming else NO_UPCOMING_REMINDERS,
            },
            "degraded": degraded,
        }
        context = build_assistant_context(full_context=full_context, privacy_mode=mode)
        if self._audit is not None:
            self._audit.log_disclosure(
                privacy_mode=mode,
                fields=[k for k in context if k != "privacy_mode"],
            )
        return context

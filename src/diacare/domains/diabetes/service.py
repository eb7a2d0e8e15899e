"""DiaCare service facade: the operations the app UI calls.

The facade holds the device's current session and resolves it to a user id
for every call, so UI code never passes user ids around. Stores are
injected; nothing here is a process-wide singleton.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from typing import Any

from diacare.core.audit.logger import AuditLogger
from diacare.core.errors import AuthenticationError
from diacare.core.storage.models import (
    CardType,
    DiabeticProfile,
    GlucoseReading,
    GlucoseUnit,
    HealthCardMetric,
    Reminder,
    Session,
    User,
    UserSettings,
)
from diacare.domains.diabetes.domain_logic.aggregation import (
    AggregationService,
    DashboardView,
    DateRange,
    InsightsView,
)
from diacare.domains.diabetes.domain_logic.demo_seed import seed_demo_data
from diacare.domains.diabetes.stores.accounts import AccountStore
from diacare.domains.diabetes.stores.base import Clock, local_now
from diacare.domains.diabetes.stores.profiles import ProfileStore
from diacare.domains.diabetes.stores.readings import ReadingsStore
from diacare.domains.diabetes.stores.reminders import ReminderScheduler, ReminderView

logger = logging.getLogger(__name__)


class DiaCareService:
    """Session-aware entry point over the stores and the aggregation service.

    Usage::

        service = DiaCareService(accounts, profiles, readings, scheduler, aggregation)
        service.register("ana@example.com", "s3cret!", "ana")
        service.login("ana@example.com", "s3cret!")
        service.add_glucose_reading(6.4, "mmol/L", "before_meal")
        dashboard = service.get_dashboard_data()
    """

    def __init__(
        self,
        accounts: AccountStore,
        profiles: ProfileStore,
        readings: ReadingsStore,
        scheduler: ReminderScheduler,
        aggregation: AggregationService,
        *,
        audit: AuditLogger | None = None,
        clock: Clock | None = None,
    ) -> None:
        self._accounts = accounts
        self._profiles = profiles
        self._readings = readings
        self._scheduler = scheduler
        self._reminders = scheduler.store
        self._aggregation = aggregation
        self._audit = audit
        self._clock = clock or local_now
        self._token: str | None = None

    # ------------------------------------------------------------------
    # Session handling
    # ------------------------------------------------------------------

    @property
    def audit(self) -> AuditLogger | None:
        return self._audit

    @property
    def is_authenticated(self) -> bool:
        return self._token is not None and self._accounts.get_session(self._token) is not None

    def _require_user(self) -> str:
        if self._token is None:
            raise AuthenticationError("Please log in first")
        session = self._accounts.get_session(self._token)
        if session is None:
            self._token = None
            raise AuthenticationError("Your session has expired. Please log in again")
        return session.user_id

    def _display_unit(self, user_id: str) -> GlucoseUnit:
        return self._profiles.get_settings(user_id).units

    # ------------------------------------------------------------------
    # Auth
    # ------------------------------------------------------------------

    def register(self, email: str, password: str, username: str, **fields: Any) -> User:
        return self._accounts.register(email, password, username, **fields)

    def login(self, email: str, password: str) -> Session | None:
        """Log in and make the new session current. ``None`` on any failure."""
        session = self._accounts.login(email, password)
        if session is not None:
            self._token = session.token
        return session

    def resume_session(self, token: str) -> Session | None:
        """Adopt a previously issued token if it is still valid."""
        session = self._accounts.get_session(token)
        self._token = token if session is not None else None
        if session is None:
            logger.info("Stored session token rejected")
        return session

    def email_exists(self, email: str) -> bool:
        return self._accounts.email_exists(email)

    def logout(self) -> bool:
        if self._token is None:
            return False
        token, self._token = self._token, None
        return self._accounts.logout(token)

    def get_current_user(self) -> User:
        return self._accounts.get_user(self._require_user())

    def update_user(self, patch: dict[str, Any]) -> User:
        return self._accounts.update_user(self._require_user(), patch)

    def change_password(self, current_password: str, new_password: str) -> None:
        self._accounts.change_password(self._require_user(), current_password, new_password)

    def delete_account(self, user_id: str | None = None) -> dict[str, int]:
        """Delete the logged-in account and everything it owns, then sign out."""
        current = self._require_user()
        if user_id is not None and user_id != current:
            raise AuthenticationError("Only the logged-in account can be deleted")
        counts = self._accounts.delete_account(current)
        self._token = None
        logger.info("Session cleared after account deletion")
        return counts

    # ------------------------------------------------------------------
    # Profile / settings
    # ------------------------------------------------------------------

    def get_profile(self) -> DiabeticProfile:
        return self._profiles.get_profile(self._require_user())

    def update_profile(
        self, patch: dict[str, Any], unit: GlucoseUnit | str | None = None
    ) -> DiabeticProfile:
        """Thresholds in ``patch`` are read in ``unit``, defaulting to the display unit."""
        user_id = self._require_user()
        unit = GlucoseUnit.parse(unit) if unit else self._display_unit(user_id)
        return self._profiles.update_profile(user_id, patch, unit=unit)

    def get_settings(self) -> UserSettings:
        return self._profiles.get_settings(self._require_user())

    def update_settings(self, patch: dict[str, Any]) -> UserSettings:
        return self._profiles.update_settings(self._require_user(), patch)

    # ------------------------------------------------------------------
    # Readings
    # ------------------------------------------------------------------

    def add_glucose_reading(
        self,
        value: Any,
        unit: GlucoseUnit | str | None = None,
        reading_type: str = "before_meal",
        *,
        notes: str | None = None,
        recorded_at: str | None = None,
    ) -> GlucoseReading:
        user_id = self._require_user()
        unit = GlucoseUnit.parse(unit) if unit else self._display_unit(user_id)
        return self._readings.add_glucose_reading(
            user_id, value, unit, reading_type, notes=notes, recorded_at=recorded_at
        )

    def get_latest_glucose_reading(self) -> GlucoseReading | None:
        return self._readings.get_latest_glucose_reading(self._require_user())

    def get_glucose_readings(self, limit: int = 20) -> list[GlucoseReading]:
        return self._readings.get_glucose_readings(self._require_user(), limit)

    def update_health_card(
        self, card_type: CardType | str, value: Any, unit: str | None = None
    ) -> HealthCardMetric:
        return self._readings.add_health_metric(self._require_user(), card_type, value, unit)

    def get_health_cards(self) -> list[dict[str, Any]]:
        """Today's value for every card type (0 where nothing was logged)."""
        latest = self._readings.get_latest_metrics(self._require_user(), self._clock().date())
        return [
            {
                "card_type": ct.value,
                "title": ct.label,
                "value": latest[ct].value if latest[ct] else 0,
                "unit": ct.unit,
                "recorded_at": latest[ct].recorded_at if latest[ct] else None,
            }
            for ct in CardType
        ]

    # ------------------------------------------------------------------
    # Reminders
    # ------------------------------------------------------------------

    def add_reminder(
        self,
        title: str,
        reminder_type: str,
        scheduled_time: str,
        recurrence: Any = "daily",
        *,
        description: str | None = None,
        is_enabled: bool = True,
    ) -> Reminder:
        return self._reminders.add_reminder(
            self._require_user(),
            title,
            reminder_type,
            scheduled_time,
            recurrence,
            description=description,
            is_enabled=is_enabled,
        )

    def get_reminders(self, *, enabled: bool | None = None) -> list[ReminderView]:
        return self._scheduler.views(self._require_user(), enabled=enabled)

    def update_reminder_status(self, reminder_id: str, status: str) -> ReminderView:
        reminder = self._reminders.set_status(self._require_user(), reminder_id, status)
        return self._scheduler.view(reminder)

    def set_reminder_enabled(self, reminder_id: str, enabled: bool) -> ReminderView:
        reminder = self._reminders.set_enabled(self._require_user(), reminder_id, enabled)
        return self._scheduler.view(reminder)

    def update_reminder(self, reminder_id: str, patch: dict[str, Any]) -> ReminderView:
        reminder = self._reminders.update_reminder(self._require_user(), reminder_id, patch)
        return self._scheduler.view(reminder)

    def delete_reminder(self, reminder_id: str) -> None:
        self._reminders.delete_reminder(self._require_user(), reminder_id)

    def delete_reminders(self, reminder_ids: Iterable[str]) -> int:
        return self._reminders.delete_reminders(self._require_user(), reminder_ids)

    # ------------------------------------------------------------------
    # Aggregates
    # ------------------------------------------------------------------

    def get_dashboard_data(self) -> DashboardView:
        return self._aggregation.get_dashboard(self._require_user())

    def get_insights(self, start: str | None = None, end: str | None = None) -> InsightsView:
        date_range = DateRange.parse(start, end, self._clock().date())
        return self._aggregation.get_insights(self._require_user(), date_range)

    def get_assistant_context(self, privacy_mode: str | None = None) -> dict[str, Any]:
        return self._aggregation.get_assistant_context(self._require_user(), privacy_mode)

    # ------------------------------------------------------------------
    # Demo data
    # ------------------------------------------------------------------

    def seed_demo_data(self) -> dict[str, int]:
        return seed_demo_data(
            self._require_user(),
            profiles=self._profiles,
            readings=self._readings,
            reminders=self._reminders,
            now=self._clock(),
        )

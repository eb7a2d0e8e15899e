"""Reminder persistence and the scheduler view built on top of it.

``ReminderStore`` owns the rows; every read applies today's effective
status so callers never see yesterday's ``done``. ``ReminderScheduler``
adds the time-dependent projections (lateness, countdown, next occurrence)
which are recomputed on every call and never stored.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any

from diacare.core.audit.logger import AuditLogger
from diacare.core.errors import NotFoundError, ValidationError
from diacare.core.storage.database import HealthDatabase
from diacare.core.storage.models import Reminder, ReminderStatus, ReminderType
from diacare.domains.diabetes.domain_logic import scheduler as rules
from diacare.domains.diabetes.stores.base import BaseStore, Clock, local_now

logger = logging.getLogger(__name__)

MAX_TITLE_LENGTH = 120

_EDITABLE_FIELDS = {
    "title",
    "description",
    "reminder_type",
    "scheduled_time",
    "recurrence",
    "is_enabled",
}


def _validate_title(title: Any) -> str:
    cleaned = str(title or "").strip()
    if not cleaned:
        raise ValidationError("Title is required", field="title")
    if len(cleaned) > MAX_TITLE_LENGTH:
        raise ValidationError(
            f"Title must be at most {MAX_TITLE_LENGTH} characters", field="title"
        )
    return cleaned


def _validate_enabled(value: Any) -> bool:
    if not isinstance(value, bool):
        raise ValidationError("is_enabled must be true or false", field="is_enabled")
    return value


class ReminderStore(BaseStore):
    """Owner-scoped CRUD for ``reminders``.

    A reminder id that belongs to another user is indistinguishable from
    one that does not exist.
    """

    def __init__(
        self,
        database: HealthDatabase,
        *,
        audit: AuditLogger | None = None,
        clock: Clock | None = None,
    ) -> None:
        super().__init__(database, clock=clock)
        self._audit = audit

    def add_reminder(
        self,
        user_id: str,
        title: str,
        reminder_type: ReminderType | str,
        scheduled_time: str | Any,
        recurrence: Any = rules.DAILY,
        *,
        description: str | None = None,
        is_enabled: bool = True,
    ) -> Reminder:
        now = self._now_iso()
        reminder = Reminder(
            id=self._new_id(),
            user_id=user_id,
            title=_validate_title(title),
            reminder_type=ReminderType.parse(reminder_type, "reminder_type"),
            scheduled_time=rules.parse_time(scheduled_time),
            recurrence=rules.parse_recurrence(recurrence),
            is_enabled=_validate_enabled(is_enabled),
            description=(description or "").strip() or None,
            created_at=now,
            updated_at=now,
        )
        with self._db.transaction() as conn:
            conn.execute(
                """INSERT INTO reminders (
                    id, user_id, title, description, reminder_type, scheduled_time,
                    recurrence, is_enabled, status, status_date, completed_at,
                    created_at, updated_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, NULL, NULL, ?, ?)""",
                (
                    reminder.id,
                    user_id,
                    reminder.title,
                    reminder.description,
                    reminder.reminder_type.value,
                    reminder.scheduled_time.strftime("%H:%M"),
                    rules.format_recurrence(reminder.recurrence),
                    int(reminder.is_enabled),
                    ReminderStatus.PENDING.value,
                    now,
                    now,
                ),
            )
        logger.info("Added reminder %s for user %s", reminder.id, user_id)
        return reminder

    def get_reminder(self, user_id: str, reminder_id: str) -> Reminder:
        row = self._db.query_one(
            "SELECT * FROM reminders WHERE id = ? AND user_id = ?", (reminder_id, user_id)
        )
        if row is None:
            raise NotFoundError(f"Reminder {reminder_id} not found")
        return self._row_to_reminder(row, self._now().date())

    def get_reminders(self, user_id: str, *, enabled: bool | None = None) -> list[Reminder]:
        """All of the user's reminders in display order."""
        if enabled is None:
            rows = self._db.query("SELECT * FROM reminders WHERE user_id = ?", (user_id,))
        else:
            rows = self._db.query(
                "SELECT * FROM reminders WHERE user_id = ? AND is_enabled = ?",
                (user_id, int(enabled)),
            )
        today = self._now().date()
        return rules.sort_for_display(self._row_to_reminder(r, today) for r in rows)

    def set_status(
        self, user_id: str, reminder_id: str, status: ReminderStatus | str
    ) -> Reminder:
        """Record today's outcome. Scheduled time and recurrence are untouched.

        Raises:
            InvalidTransitionError: Today's status is already terminal and differs.
        """
        status = ReminderStatus.parse(status, "status")
        reminder = self.get_reminder(user_id, reminder_id)
        if not rules.check_transition(reminder.status, status):
            return reminder

        now = self._now()
        completed_at = now.isoformat() if status is ReminderStatus.DONE else None
        with self._db.transaction() as conn:
            conn.execute(
                """UPDATE reminders SET status = ?, status_date = ?, completed_at = ?,
                   updated_at = ? WHERE id = ? AND user_id = ?""",
                (
                    status.value,
                    now.date().isoformat(),
                    completed_at,
                    now.isoformat(),
                    reminder_id,
                    user_id,
                ),
            )
        logger.info("Reminder %s marked %s", reminder_id, status.value)
        reminder.status = status
        reminder.status_date = now.date()
        reminder.completed_at = completed_at
        reminder.updated_at = now.isoformat()
        return reminder

    def set_enabled(self, user_id: str, reminder_id: str, enabled: bool) -> Reminder:
        return self.update_reminder(user_id, reminder_id, {"is_enabled": enabled})

    def update_reminder(self, user_id: str, reminder_id: str, patch: dict[str, Any]) -> Reminder:
        """Edit reminder fields. Status is changed only through :meth:`set_status`."""
        unknown = sorted(set(patch) - _EDITABLE_FIELDS)
        if unknown:
            raise ValidationError(f"Unknown reminder fields: {', '.join(unknown)}", field=unknown[0])
        reminder = self.get_reminder(user_id, reminder_id)

        if "title" in patch:
            reminder.title = _validate_title(patch["title"])
        if "description" in patch:
            reminder.description = (patch["description"] or "").strip() or None
        if "reminder_type" in patch:
            reminder.reminder_type = ReminderType.parse(patch["reminder_type"], "reminder_type")
        if "scheduled_time" in patch:
            reminder.scheduled_time = rules.parse_time(patch["scheduled_time"])
        if "recurrence" in patch:
            reminder.recurrence = rules.parse_recurrence(patch["recurrence"])
        if "is_enabled" in patch:
            reminder.is_enabled = _validate_enabled(patch["is_enabled"])

        if not patch:
            return reminder

        reminder.updated_at = self._now_iso()
        with self._db.transaction() as conn:
            conn.execute(
                """UPDATE reminders SET title = ?, description = ?, reminder_type = ?,
                   scheduled_time = ?, recurrence = ?, is_enabled = ?, updated_at = ?
                   WHERE id = ? AND user_id = ?""",
                (
                    reminder.title,
                    reminder.description,
                    reminder.reminder_type.value,
                    reminder.scheduled_time.strftime("%H:%M"),
                    rules.format_recurrence(reminder.recurrence),
                    int(reminder.is_enabled),
                    reminder.updated_at,
                    reminder_id,
                    user_id,
                ),
            )
        logger.info("Updated reminder %s (%s)", reminder_id, ", ".join(sorted(patch)))
        return reminder

    def delete_reminder(self, user_id: str, reminder_id: str) -> None:
        with self._db.transaction() as conn:
            cursor = conn.execute(
                "DELETE FROM reminders WHERE id = ? AND user_id = ?", (reminder_id, user_id)
            )
        if cursor.rowcount == 0:
            raise NotFoundError(f"Reminder {reminder_id} not found")
        logger.info("Deleted reminder %s", reminder_id)

    def delete_reminders(self, user_id: str, reminder_ids: Iterable[str]) -> int:
        """Delete several reminders in one transaction.

        Ids the user does not own are skipped. Returns the number removed.
        """
        ids = list(dict.fromkeys(reminder_ids))
        if not ids:
            return 0
        deleted = 0
        with self._db.transaction() as conn:
            for reminder_id in ids:
                cursor = conn.execute(
                    "DELETE FROM reminders WHERE id = ? AND user_id = ?", (reminder_id, user_id)
                )
                deleted += cursor.rowcount
        logger.info("Deleted %d of %d reminders for user %s", deleted, len(ids), user_id)
        if self._audit is not None:
            self._audit.log_data_delete(
                tool_name="delete_reminders", counts={"reminders": deleted}
            )
        return deleted

    @staticmethod
    def _row_to_reminder(row: Any, today: date) -> Reminder:
        stored = ReminderStatus(row["status"])
        status_date = date.fromisoformat(row["status_date"]) if row["status_date"] else None
        status = rules.effective_status(stored, status_date, today)
        return Reminder(
            id=row["id"],
            user_id=row["user_id"],
            title=row["title"],
            description=row["description"],
            reminder_type=ReminderType(row["reminder_type"]),
            scheduled_time=rules.parse_time(row["scheduled_time"]),
            recurrence=rules.parse_recurrence(row["recurrence"]),
            is_enabled=bool(row["is_enabled"]),
            status=status,
            status_date=status_date,
            completed_at=row["completed_at"] if status is ReminderStatus.DONE else None,
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )


@dataclass
class ReminderView:
    """A reminder plus its time-dependent projections at one instant."""

    reminder: Reminder
    occurs_today: bool
    is_late: bool
    time_remaining: str
    next_occurrence: datetime | None

    def to_dict(self) -> dict[str, Any]:
        return {
            **self.reminder.to_dict(),
            "occurs_today": self.occurs_today,
            "is_late": self.is_late,
            "time_remaining": self.time_remaining,
            "next_occurrence": self.next_occurrence.isoformat() if self.next_occurrence else None,
        }


class ReminderScheduler:
    """Time-aware queries over a :class:`ReminderStore`.

    Usage::

        scheduler = ReminderScheduler(store)
        upcoming = scheduler.next_upcoming(user_id)
        late = scheduler.late_count(user_id)
    """

    def __init__(self, store: ReminderStore, *, clock: Clock | None = None) -> None:
        self._store = store
        self._clock = clock or local_now

    @property
    def store(self) -> ReminderStore:
        return self._store

    def view(self, reminder: Reminder, now: datetime | None = None) -> ReminderView:
        now = now or self._clock()
        occurs_today = rules.occurs_on(reminder.recurrence, now.isoweekday())
        return ReminderView(
            reminder=reminder,
            occurs_today=occurs_today,
            is_late=occurs_today and rules.is_late(reminder.scheduled_time, reminder.status, now),
            time_remaining=rules.time_remaining(
                reminder.scheduled_time, reminder.status, now, reminder.recurrence
            ),
            next_occurrence=(
                rules.next_occurrence(
                    reminder.scheduled_time, reminder.recurrence, now, reminder.status
                )
                if reminder.is_enabled
                else None
            ),
        )

    def views(self, user_id: str, *, enabled: bool | None = None) -> list[ReminderView]:
        now = self._clock()
        return [self.view(r, now) for r in self._store.get_reminders(user_id, enabled=enabled)]

    def late_count(self, user_id: str) -> int:
        """Enabled reminders occurring today whose time has passed without ``done``."""
        return sum(1 for v in self.views(user_id, enabled=True) if v.is_late)

    def next_upcoming(self, user_id: str) -> ReminderView | None:
        """Earliest enabled, not-done reminder still ahead today."""
        now = self._clock()
        candidates = [
            v
            for v in self.views(user_id, enabled=True)
            if v.occurs_today
            and v.reminder.status is not ReminderStatus.DONE
            and not v.is_late
            and v.next_occurrence is not None
            and v.next_occurrence.date() == now.date()
        ]
        if not candidates:
            return None
        return min(candidates, key=lambda v: (v.reminder.scheduled_time, v.reminder.title))

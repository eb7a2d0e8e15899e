"""Reminder scheduling rules: lateness, countdowns, recurrence and the daily status cycle.

Everything here is pure: the current time is always passed in. A reminder's
stored status only applies to the day recorded next to it (``status_date``);
on any other day its effective status is ``pending``. That is the whole
"reset at day start" mechanism; nothing rewrites rows at midnight.

Status cycle for one occurrence::

    pending ──► done
            ├─► not_done
            └─► postponed

A terminal status can only be left by the next day's implicit reset.
"""

from __future__ import annotations

from collections.abc import Iterable
from datetime import date, datetime, time, timedelta
from typing import Any

from diacare.core.errors import InvalidTransitionError, ValidationError
from diacare.core.storage.models import Recurrence, Reminder, ReminderStatus

DAILY = "daily"
ALL_WEEKDAYS = frozenset(range(1, 8))
WEEKDAY_NAMES = {1: "Mon", 2: "Tue", 3: "Wed", 4: "Thu", 5: "Fri", 6: "Sat", 7: "Sun"}

_ALLOWED_TRANSITIONS = {
    ReminderStatus.PENDING: {
        ReminderStatus.DONE,
        ReminderStatus.NOT_DONE,
        ReminderStatus.POSTPONED,
    },
    ReminderStatus.DONE: set(),
    ReminderStatus.NOT_DONE: set(),
    ReminderStatus.POSTPONED: set(),
}


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------

def parse_time(value: str | time) -> time:
    """Parse ``HH:MM`` (seconds tolerated and dropped) into a time of day."""
    if isinstance(value, time):
        return value.replace(second=0, microsecond=0, tzinfo=None)
    text = str(value).strip()
    for fmt in ("%H:%M", "%H:%M:%S"):
        try:
            return datetime.strptime(text, fmt).time().replace(second=0)
        except ValueError:
            continue
    raise ValidationError(f"Invalid time {value!r}; expected HH:MM", field="scheduled_time")


def parse_recurrence(value: Any) -> Recurrence:
    """Normalize a recurrence to ``"daily"`` or a frozenset of ISO weekdays.

    Accepts ``"daily"``, a comma-separated string (``"2,4"``) or an iterable
    of ints. A set covering all seven days collapses to ``"daily"``.
    """
    if isinstance(value, str):
        text = value.strip().lower()
        if text == DAILY:
            return DAILY
        if not text:
            raise ValidationError("Recurrence must not be empty", field="recurrence")
        try:
            days = {int(part) for part in text.split(",") if part.strip()}
        except ValueError:
            raise ValidationError(
                f"Invalid recurrence {value!r}; use 'daily' or weekday numbers 1-7",
                field="recurrence",
            ) from None
    elif isinstance(value, Iterable):
        try:
            days = {int(d) for d in value}
        except (TypeError, ValueError):
            raise ValidationError(
                f"Invalid recurrence {value!r}; weekdays must be integers 1-7",
                field="recurrence",
            ) from None
    else:
        raise ValidationError(f"Invalid recurrence {value!r}", field="recurrence")

    if not days:
        raise ValidationError("Recurrence needs at least one weekday", field="recurrence")
    if not days <= ALL_WEEKDAYS:
        raise ValidationError("Weekdays must be between 1 (Mon) and 7 (Sun)", field="recurrence")
    if days == ALL_WEEKDAYS:
        return DAILY
    return frozenset(days)


def format_recurrence(recurrence: Recurrence) -> str:
    """Storage form: ``"daily"`` or ascending ``"1,3,5"``."""
    if recurrence == DAILY:
        return DAILY
    return ",".join(str(d) for d in sorted(recurrence))


# ---------------------------------------------------------------------------
# Recurrence and status
# ---------------------------------------------------------------------------

def occurs_on(recurrence: Recurrence, weekday: int) -> bool:
    """Whether a reminder with ``recurrence`` fires on ISO ``weekday`` (1 = Monday)."""
    if weekday not in ALL_WEEKDAYS:
        raise ValidationError(f"Weekday must be 1-7, got {weekday}", field="weekday")
    if recurrence == DAILY:
        return True
    return weekday in recurrence


def effective_status(
    stored: ReminderStatus,
    status_date: date | None,
    today: date,
) -> ReminderStatus:
    """Stored status applies only to the day it was set on."""
    if status_date is None or status_date != today:
        return ReminderStatus.PENDING
    return stored


def check_transition(current: ReminderStatus, new: ReminderStatus) -> bool:
    """Validate a status change for today's occurrence.

    Returns ``False`` when ``new`` equals ``current`` (nothing to write),
    ``True`` when the change is allowed.

    Raises:
        InvalidTransitionError: For any other change.
    """
    if new is current:
        return False
    if new not in _ALLOWED_TRANSITIONS[current]:
        raise InvalidTransitionError(
            f"Cannot change today's reminder status from {current.value} to {new.value}",
            field="status",
        )
    return True


# ---------------------------------------------------------------------------
# Lateness and countdown
# ---------------------------------------------------------------------------

def _scheduled_today(scheduled_time: time, now: datetime) -> datetime:
    return now.replace(
        hour=scheduled_time.hour,
        minute=scheduled_time.minute,
        second=0,
        microsecond=0,
    )


def is_late(scheduled_time: time, status: ReminderStatus, now: datetime) -> bool:
    """Late means: not done and the wall clock has passed today's scheduled time."""
    if status is ReminderStatus.DONE:
        return False
    return now > _scheduled_today(scheduled_time, now)


def _hours_minutes(delta: timedelta) -> str:
    total_minutes = int(abs(delta).total_seconds()) // 60
    hours, minutes = divmod(total_minutes, 60)
    if hours >= 24:
        return f"{hours // 24}d {hours % 24}h"
    if hours:
        return f"{hours}h {minutes}m"
    return f"{minutes}m"


def time_remaining(
    scheduled_time: time,
    status: ReminderStatus,
    now: datetime,
    recurrence: Recurrence | None = None,
) -> str:
    """Human-readable countdown: ``"in 2h 5m"``, ``"45m late"`` or ``"Done"``.

    When ``recurrence`` skips today the countdown runs to the next day it
    fires, so an off-day reminder is never reported late.
    """
    if status is ReminderStatus.DONE:
        return "Done"
    if recurrence is not None and not occurs_on(recurrence, now.isoweekday()):
        return f"in {_hours_minutes(next_occurrence(scheduled_time, recurrence, now) - now)}"
    diff = _scheduled_today(scheduled_time, now) - now
    if diff < timedelta(0):
        return f"{_hours_minutes(diff)} late"
    return f"in {_hours_minutes(diff)}"


def next_occurrence(
    scheduled_time: time,
    recurrence: Recurrence,
    now: datetime,
    status: ReminderStatus = ReminderStatus.PENDING,
) -> datetime:
    """The next scheduled datetime at or after ``now``.

    Today's occurrence counts while it is still ahead and not done;
    otherwise the search continues on following days.
    """
    today_slot = _scheduled_today(scheduled_time, now)
    if (
        occurs_on(recurrence, now.isoweekday())
        and today_slot >= now
        and status is not ReminderStatus.DONE
    ):
        return today_slot
    for offset in range(1, 8):
        candidate = today_slot + timedelta(days=offset)
        if occurs_on(recurrence, candidate.isoweekday()):
            return candidate
    # parse_recurrence never yields an empty weekday set
    raise ValidationError("Recurrence has no weekdays", field="recurrence")


def sort_for_display(reminders: Iterable[Reminder]) -> list[Reminder]:
    """Enabled reminders first, then ascending by scheduled time."""
    return sorted(reminders, key=lambda r: (not r.is_enabled, r.scheduled_time, r.title))

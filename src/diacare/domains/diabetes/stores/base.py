"""Shared plumbing for the owner-scoped stores."""

from __future__ import annotations

import uuid
from collections.abc import Callable
from datetime import datetime

from diacare.core.storage.database import HealthDatabase

Clock = Callable[[], datetime]


def local_now() -> datetime:
    """Timezone-aware wall-clock time of the device."""
    return datetime.now().astimezone()


class BaseStore:
    """Holds the database handle and the clock every store timestamps with."""

    def __init__(self, database: HealthDatabase, *, clock: Clock | None = None) -> None:
        self._db = database
        self._clock = clock or local_now

    @property
    def database(self) -> HealthDatabase:
        return self._db

    @staticmethod
    def _new_id() -> str:
        return str(uuid.uuid4())

    def _now(self) -> datetime:
        return self._clock()

    def _now_iso(self) -> str:
        return self._clock().isoformat()

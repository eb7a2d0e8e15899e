"""SQLite persistence for DiaCare: schema DDL, versioned migrations and the
connection wrapper every store shares.
"""

from __future__ import annotations

import logging
import sqlite3
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

from diacare.core.errors import StorageError

logger = logging.getLogger(__name__)

# Bumped together with a new _MIGRATIONS entry.
SCHEMA_VERSION = 2

# Tables owned by a user, in child-first deletion order.
OWNED_TABLES = (
    "sessions",
    "diabetic_profiles",
    "settings",
    "reminders",
    "glucose_readings",
    "health_card_metrics",
)

# ---------------------------------------------------------------------------
# Schema DDL
# ---------------------------------------------------------------------------

_SCHEMA_V1 = """
CREATE TABLE IF NOT EXISTS users (
    id                TEXT PRIMARY KEY,
    email             TEXT NOT NULL UNIQUE,   -- trimmed + lowercased
    username          TEXT NOT NULL,
    password_hash     TEXT NOT NULL,          -- bcrypt, salt embedded
    full_name         TEXT NOT NULL DEFAULT '',
    profile_image_url TEXT,
    date_of_birth     TEXT,
    gender            TEXT,
    height_cm         REAL,
    weight_kg         REAL,
    created_at        TEXT NOT NULL,
    updated_at        TEXT NOT NULL
);

-- One row per login; only the SHA-256 of the token is kept
CREATE TABLE IF NOT EXISTS sessions (
    id         TEXT PRIMARY KEY,
    user_id    TEXT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
    token_hash TEXT NOT NULL UNIQUE,
    issued_at  TEXT NOT NULL,
    expires_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS diabetic_profiles (
    user_id        TEXT PRIMARY KEY REFERENCES users(id) ON DELETE CASCADE,
    diabetic_type  TEXT NOT NULL,
    treatment_type TEXT NOT NULL,
    min_glucose    INTEGER NOT NULL,          -- mg/dL
    max_glucose    INTEGER NOT NULL,          -- mg/dL
    diagnosis_date TEXT,
    created_at     TEXT NOT NULL,
    updated_at     TEXT NOT NULL,
    CHECK (min_glucose < max_glucose)
);

CREATE TABLE IF NOT EXISTS settings (
    user_id               TEXT PRIMARY KEY REFERENCES users(id) ON DELETE CASCADE,
    theme_mode            TEXT NOT NULL DEFAULT 'light',
    units                 TEXT NOT NULL DEFAULT 'mg/dL',
    notifications_enabled INTEGER NOT NULL DEFAULT 1,
    locale                TEXT NOT NULL DEFAULT 'en',
    onboarding_complete   INTEGER NOT NULL DEFAULT 0,
    updated_at            TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS reminders (
    id             TEXT PRIMARY KEY,
    user_id        TEXT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
    title          TEXT NOT NULL,
    description    TEXT,
    reminder_type  TEXT NOT NULL,
    scheduled_time TEXT NOT NULL,             -- HH:MM
    recurrence     TEXT NOT NULL,             -- 'daily' or '1,3,5'
    is_enabled     INTEGER NOT NULL DEFAULT 1,
    status         TEXT NOT NULL DEFAULT 'pending',
    status_date    TEXT,                      -- occurrence day the status refers to
    completed_at   TEXT,
    created_at     TEXT NOT NULL,
    updated_at     TEXT NOT NULL
);

-- Append-only; value is always mg/dL
CREATE TABLE IF NOT EXISTS glucose_readings (
    id           TEXT PRIMARY KEY,
    user_id      TEXT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
    value        REAL NOT NULL,
    reading_type TEXT NOT NULL,
    notes_enc    TEXT,                        -- Fernet token
    recorded_at  TEXT NOT NULL,
    created_at   TEXT NOT NULL
);

-- Append-only; the dashboard shows the most recent entry per type per day
CREATE TABLE IF NOT EXISTS health_card_metrics (
    id          TEXT PRIMARY KEY,
    user_id     TEXT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
    card_type   TEXT NOT NULL,
    value       REAL NOT NULL,
    unit        TEXT NOT NULL,
    recorded_at TEXT NOT NULL,
    created_at  TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS schema_version (
    version    INTEGER NOT NULL,
    applied_at TEXT NOT NULL DEFAULT (datetime('now'))
);

-- Indexes for common query patterns
CREATE INDEX IF NOT EXISTS idx_sessions_user        ON sessions(user_id);
CREATE INDEX IF NOT EXISTS idx_reminders_user_time  ON reminders(user_id, scheduled_time);
CREATE INDEX IF NOT EXISTS idx_glucose_user_ts      ON glucose_readings(user_id, recorded_at);
CREATE INDEX IF NOT EXISTS idx_cards_user_type_ts   ON health_card_metrics(user_id, card_type, recorded_at);
"""

# ---------------------------------------------------------------------------
# V2: Audit log table (PHI-free access and disclosure trail)
# ---------------------------------------------------------------------------

_SCHEMA_V2 = """
CREATE TABLE IF NOT EXISTS audit_log (
    id              TEXT PRIMARY KEY,
    timestamp       TEXT NOT NULL DEFAULT (datetime('now')),
    action          TEXT NOT NULL,
    tool_name       TEXT,
    tool_input_hash TEXT,
    privacy_mode    TEXT,
    llm_disclosed   INTEGER DEFAULT 0,
    duration_ms     REAL,
    status          TEXT NOT NULL DEFAULT 'success',
    error_type      TEXT,
    metadata_json   TEXT
);

CREATE INDEX IF NOT EXISTS idx_audit_timestamp ON audit_log(timestamp);
CREATE INDEX IF NOT EXISTS idx_audit_action    ON audit_log(action);
CREATE INDEX IF NOT EXISTS idx_audit_tool      ON audit_log(tool_name);
"""


# Statements applied on top of V1, keyed by the version they bring the file to.
_MIGRATIONS: dict[int, str] = {
    2: _SCHEMA_V2,
}


class HealthDatabase:
    """Owns the single SQLite connection behind every DiaCare store.

    ``":memory:"`` gives a throwaway store for tests; any other path is a file
    whose parent folder is created on first open. Statements run in autocommit
    mode, and multi-statement writes are grouped with :meth:`transaction`.

    Usage::

        with HealthDatabase("~/.diacare/diacare.db") as db:
            with db.transaction() as conn:
                conn.execute(...)
                conn.execute(...)
            rows = db.query("SELECT * FROM reminders WHERE user_id = ?", (user_id,))
    """

    def __init__(self, db_path: str = ":memory:", *, timeout: float = 5.0) -> None:
        self._db_path = db_path
        self._timeout = timeout  # seconds to wait on a locked file
        self._conn: sqlite3.Connection | None = None

    @property
    def connection(self) -> sqlite3.Connection:
        if self._conn is None:
            raise StorageError("Database not initialized. Call initialize() first.")
        return self._conn

    def _target(self) -> str:
        if self._db_path == ":memory:":
            return self._db_path
        db_file = Path(self._db_path).expanduser()
        db_file.parent.mkdir(parents=True, exist_ok=True)
        return str(db_file)

    def initialize(self) -> None:
        """Open the connection and bring the schema up to date. A second call does nothing."""
        if self._conn is not None:
            return

        try:
            conn = sqlite3.connect(self._target(), timeout=self._timeout, isolation_level=None)
            self._conn = conn
            conn.row_factory = sqlite3.Row
            for pragma in (
                "journal_mode=WAL",
                "foreign_keys=ON",
                f"busy_timeout={int(self._timeout * 1000)}",
            ):
                conn.execute(f"PRAGMA {pragma}")
            self._migrate()
        except sqlite3.Error as exc:
            self.close()
            raise StorageError(f"Failed to open database {self._db_path}: {exc}") from exc
        logger.info("Opened DiaCare store at %s", self._db_path)

    def _migrate(self) -> None:
        conn = self.connection
        # V1 is all CREATE ... IF NOT EXISTS, so it is safe on every open.
        conn.executescript(_SCHEMA_V1)

        found = self.get_schema_version()
        if found >= SCHEMA_VERSION:
            return
        for version in sorted(_MIGRATIONS):
            if version > found:
                conn.executescript(_MIGRATIONS[version])
                logger.info("Applied schema migration to v%d", version)
        conn.execute("INSERT INTO schema_version (version) VALUES (?)", (SCHEMA_VERSION,))
        logger.info("Schema moved from v%d to v%d", found, SCHEMA_VERSION)

    def get_schema_version(self) -> int:
        row = self.connection.execute("SELECT MAX(version) FROM schema_version").fetchone()
        return row[0] or 0

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        """Run a block of statements atomically.

        Opens ``BEGIN IMMEDIATE`` so the write lock is taken up front; commits
        on success and rolls back on any exception. ``sqlite3.Error`` is
        re-raised as :class:`StorageError`; other exceptions propagate as-is.
        A nested call joins the enclosing transaction.
        """
        conn = self.connection
        if conn.in_transaction:
            yield conn
            return

        try:
            conn.execute("BEGIN IMMEDIATE")
        except sqlite3.Error as exc:
            raise StorageError(f"Could not start transaction: {exc}") from exc

        try:
            yield conn
        except sqlite3.Error as exc:
            conn.rollback()
            raise StorageError(f"Transaction rolled back: {exc}") from exc
        except BaseException:
            conn.rollback()
            raise
        else:
            try:
                conn.commit()
            except sqlite3.Error as exc:
                conn.rollback()
                raise StorageError(f"Commit failed: {exc}") from exc

    def query(self, sql: str, params: tuple | list = ()) -> list[sqlite3.Row]:
        """Run a read query and return all rows, wrapping driver errors."""
        try:
            return self.connection.execute(sql, params).fetchall()
        except sqlite3.Error as exc:
            raise StorageError(f"Query failed: {exc}") from exc

    def query_one(self, sql: str, params: tuple | list = ()) -> sqlite3.Row | None:
        """Run a read query and return the first row (or None)."""
        try:
            return self.connection.execute(sql, params).fetchone()
        except sqlite3.Error as exc:
            raise StorageError(f"Query failed: {exc}") from exc

    def close(self) -> None:
        """Release the connection; later calls raise until :meth:`initialize` runs again."""
        if self._conn is not None:
            self._conn.close()
            self._conn = None
            logger.info("Closed DiaCare store at %s", self._db_path)

    def __enter__(self) -> HealthDatabase:
        self.initialize()
        return self

    def __exit__(self, *args) -> None:
        self.close()

"""Account store: registration, credential checks, sessions and account deletion.

Emails are compared case-insensitively by storing them trimmed and
lowercased; the ``users.email`` UNIQUE constraint is the final word on
duplicates, so two racing registrations cannot both succeed.

``login`` never says *why* it failed. Unknown emails still pay for a bcrypt
check so response time does not reveal which addresses are registered.
"""

from __future__ import annotations

import logging
import re
import sqlite3
from datetime import date, datetime, timedelta
from typing import Any

from diacare.core.audit.logger import AuditLogger
from diacare.core.auth.passwords import (
    dummy_hash,
    hash_password,
    hash_token,
    new_session_token,
    verify_password,
)
from diacare.core.errors import DuplicateEmailError, NotFoundError, ValidationError
from diacare.core.storage.database import OWNED_TABLES, HealthDatabase
from diacare.core.storage.models import Gender, Session, User
from diacare.domains.diabetes.stores.base import BaseStore, Clock

logger = logging.getLogger(__name__)

MIN_USERNAME_LENGTH = 3
MIN_PASSWORD_LENGTH = 6

_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")

_EDITABLE_USER_FIELDS = {
    "email",
    "username",
    "full_name",
    "profile_image_url",
    "date_of_birth",
    "gender",
    "height_cm",
    "weight_kg",
}


def normalize_email(email: str) -> str:
    return (email or "").strip().lower()


def validate_email(email: str) -> str:
    normalized = normalize_email(email)
    if not normalized:
        raise ValidationError("Email is required", field="email")
    if not _EMAIL_RE.match(normalized):
        raise ValidationError("Please enter a valid email", field="email")
    return normalized


def validate_username(username: str) -> str:
    cleaned = (username or "").strip()
    if len(cleaned) < MIN_USERNAME_LENGTH:
        raise ValidationError(
            f"Username must be at least {MIN_USERNAME_LENGTH} characters", field="username"
        )
    return cleaned


def validate_password(password: str, field: str = "password") -> str:
    if not password or len(password) < MIN_PASSWORD_LENGTH:
        raise ValidationError(
            f"Password must be at least {MIN_PASSWORD_LENGTH} characters", field=field
        )
    return password


def _validate_body_measure(value: Any, field: str) -> float | None:
    if value is None:
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{field} must be a number", field=field) from None
    # Column precision in the original schema tops out at 999.99
    if not 0 < number < 1000:
        raise ValidationError(f"{field} must be between 0 and 1000", field=field)
    return number


def _validate_birth_date(value: Any, today: date) -> str | None:
    if value in (None, ""):
        return None
    try:
        parsed = date.fromisoformat(str(value))
    except ValueError:
        raise ValidationError("Date of birth must be YYYY-MM-DD", field="date_of_birth") from None
    if parsed > today:
        raise ValidationError("Date of birth cannot be in the future", field="date_of_birth")
    return parsed.isoformat()


class AccountStore(BaseStore):
    """User accounts and login sessions.

    Usage::

        accounts = AccountStore(db, audit=audit_logger)
        user = accounts.register("Ana@Example.com", "s3cret!", "ana")
        session = accounts.login("ana@example.com", "s3cret!")
        accounts.delete_account(user.id)
    """

    def __init__(
        self,
        database: HealthDatabase,
        *,
        audit: AuditLogger | None = None,
        clock: Clock | None = None,
        bcrypt_rounds: int = 12,
        session_ttl: timedelta = timedelta(days=30),
    ) -> None:
        super().__init__(database, clock=clock)
        self._audit = audit
        self._rounds = bcrypt_rounds
        self._session_ttl = session_ttl
        # Precomputed so every unknown-email login costs exactly one bcrypt check
        self._dummy_hash = dummy_hash(rounds=bcrypt_rounds)

    # ------------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------------

    def register(
        self,
        email: str,
        password: str,
        username: str,
        *,
        full_name: str = "",
        profile_image_url: str | None = None,
        date_of_birth: str | None = None,
        gender: Gender | str | None = None,
        height_cm: float | None = None,
        weight_kg: float | None = None,
    ) -> User:
        """Create a user and their default settings row in one transaction.

        Raises:
            ValidationError: Malformed email, username under 3 chars, password under 6.
            DuplicateEmailError: The normalized email is already registered.
        """
        normalized = validate_email(email)
        username = validate_username(username)
        validate_password(password)
        now = self._now()
        user = User(
            id=self._new_id(),
            email=normalized,
            username=username,
            full_name=(full_name or "").strip(),
            profile_image_url=profile_image_url,
            date_of_birth=_validate_birth_date(date_of_birth, now.date()),
            gender=Gender.parse(gender, "gender") if gender else None,
            height_cm=_validate_body_measure(height_cm, "height_cm"),
            weight_kg=_validate_body_measure(weight_kg, "weight_kg"),
            created_at=now.isoformat(),
            updated_at=now.isoformat(),
        )
        password_hash = hash_password(password, rounds=self._rounds)

        with self._db.transaction() as conn:
            existing = conn.execute(
                "SELECT 1 FROM users WHERE email = ?", (normalized,)
            ).fetchone()
            if existing is not None:
                raise DuplicateEmailError("An account with this email already exists")
            try:
                conn.execute(
                    """INSERT INTO users (
                        id, email, username, password_hash, full_name, profile_image_url,
                        date_of_birth, gender, height_cm, weight_kg, created_at, updated_at
                    ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
                    (
                        user.id,
                        user.email,
                        user.username,
                        password_hash,
                        user.full_name,
                        user.profile_image_url,
                        user.date_of_birth,
                        user.gender.value if user.gender else None,
                        user.height_cm,
                        user.weight_kg,
                        user.created_at,
                        user.updated_at,
                    ),
                )
            except sqlite3.IntegrityError:
                raise DuplicateEmailError("An account with this email already exists") from None
            conn.execute(
                "INSERT INTO settings (user_id, updated_at) VALUES (?, ?)",
                (user.id, user.created_at),
            )

        logger.info("Registered user %s", user.id)
        if self._audit is not None:
            self._audit.log_account_event("account_register")
        return user

    def email_exists(self, email: str) -> bool:
        row = self._db.query_one(
            "SELECT 1 FROM users WHERE email = ?", (normalize_email(email),)
        )
        return row is not None

    # ------------------------------------------------------------------
    # Login / sessions
    # ------------------------------------------------------------------

    def login(self, email: str, password: str) -> Session | None:
        """Verify credentials and issue a session.

        Returns ``None`` for an unknown email and for a wrong password alike.
        Previous sessions of the same user are replaced.
        """
        row = self._db.query_one(
            "SELECT id, password_hash FROM users WHERE email = ?",
            (normalize_email(email),),
        )
        if row is None:
            verify_password(password or "", self._dummy_hash)
            return self._login_failed()
        if not verify_password(password or "", row["password_hash"]):
            return self._login_failed()

        user_id = row["id"]
        token = new_session_token()
        issued = self._now()
        session = Session(
            id=self._new_id(),
            user_id=user_id,
            issued_at=issued.isoformat(),
            expires_at=(issued + self._session_ttl).isoformat(),
            token=token,
        )
        with self._db.transaction() as conn:
            conn.execute("DELETE FROM sessions WHERE user_id = ?", (user_id,))
            conn.execute(
                """INSERT INTO sessions (id, user_id, token_hash, issued_at, expires_at)
                   VALUES (?, ?, ?, ?, ?)""",
                (session.id, user_id, hash_token(token), session.issued_at, session.expires_at),
            )
        logger.info("Session %s issued for user %s", session.id, user_id)
        if self._audit is not None:
            self._audit.log_account_event("login_success")
        return session

    def _login_failed(self) -> None:
        logger.warning("Login attempt rejected")
        if self._audit is not None:
            self._audit.log_account_event("login_failure", status="failure")
        return None

    def get_session(self, token: str) -> Session | None:
        """Resolve a raw token to its live session. Expired sessions are removed."""
        if not token:
            return None
        row = self._db.query_one(
            "SELECT * FROM sessions WHERE token_hash = ?", (hash_token(token),)
        )
        if row is None:
            return None
        if datetime.fromisoformat(row["expires_at"]) <= self._now():
            with self._db.transaction() as conn:
                conn.execute("DELETE FROM sessions WHERE id = ?", (row["id"],))
            logger.info("Session %s expired", row["id"])
            return None
        return Session(
            id=row["id"],
            user_id=row["user_id"],
            issued_at=row["issued_at"],
            expires_at=row["expires_at"],
        )

    def logout(self, token: str) -> bool:
        """Invalidate a session. Returns False if it was already gone."""
        with self._db.transaction() as conn:
            cursor = conn.execute(
                "DELETE FROM sessions WHERE token_hash = ?", (hash_token(token or ""),)
            )
        removed = cursor.rowcount > 0
        if removed and self._audit is not None:
            self._audit.log_account_event("logout")
        return removed

    # ------------------------------------------------------------------
    # User profile
    # ------------------------------------------------------------------

    def get_user(self, user_id: str) -> User:
        row = self._db.query_one("SELECT * FROM users WHERE id = ?", (user_id,))
        if row is None:
            raise NotFoundError(f"User {user_id} not found")
        return self._row_to_user(row)

    def update_user(self, user_id: str, patch: dict[str, Any]) -> User:
        """Edit account details. Changing the email re-checks for duplicates."""
        unknown = set(patch) - _EDITABLE_USER_FIELDS
        if unknown:
            raise ValidationError(
                f"Unknown user fields: {', '.join(sorted(unknown))}", field=sorted(unknown)[0]
            )
        self.get_user(user_id)

        updates: dict[str, Any] = {}
        if "email" in patch:
            updates["email"] = validate_email(patch["email"])
        if "username" in patch:
            updates["username"] = validate_username(patch["username"])
        if "full_name" in patch:
            updates["full_name"] = (patch["full_name"] or "").strip()
        if "profile_image_url" in patch:
            updates["profile_image_url"] = patch["profile_image_url"] or None
        if "date_of_birth" in patch:
            updates["date_of_birth"] = _validate_birth_date(patch["date_of_birth"], self._now().date())
        if "gender" in patch:
            gender = patch["gender"]
            updates["gender"] = Gender.parse(gender, "gender").value if gender else None
        for measure in ("height_cm", "weight_kg"):
            if measure in patch:
                updates[measure] = _validate_body_measure(patch[measure], measure)

        if not updates:
            return self.get_user(user_id)

        updates["updated_at"] = self._now_iso()
        assignments = ", ".join(f"{column} = ?" for column in updates)
        with self._db.transaction() as conn:
            if "email" in updates:
                clash = conn.execute(
                    "SELECT 1 FROM users WHERE email = ? AND id != ?",
                    (updates["email"], user_id),
                ).fetchone()
                if clash is not None:
                    raise DuplicateEmailError("An account with this email already exists")
            try:
                # Column names come from the fixed _EDITABLE_USER_FIELDS set
                conn.execute(
                    f"UPDATE users SET {assignments} WHERE id = ?",
                    (*updates.values(), user_id),
                )
            except sqlite3.IntegrityError:
                raise DuplicateEmailError("An account with this email already exists") from None
        logger.info("Updated user %s (%s)", user_id, ", ".join(sorted(updates)))
        return self.get_user(user_id)

    def change_password(self, user_id: str, current_password: str, new_password: str) -> None:
        row = self._db.query_one("SELECT password_hash FROM users WHERE id = ?", (user_id,))
        if row is None:
            raise NotFoundError(f"User {user_id} not found")
        if not verify_password(current_password or "", row["password_hash"]):
            raise ValidationError("Current password is incorrect", field="current_password")
        validate_password(new_password, field="new_password")
        with self._db.transaction() as conn:
            conn.execute(
                "UPDATE users SET password_hash = ?, updated_at = ? WHERE id = ?",
                (hash_password(new_password, rounds=self._rounds), self._now_iso(), user_id),
            )
        logger.info("Password changed for user %s", user_id)
        if self._audit is not None:
            self._audit.log_account_event("password_change")

    # ------------------------------------------------------------------
    # Deletion
    # ------------------------------------------------------------------

    def delete_account(self, user_id: str) -> dict[str, int]:
        """Delete a user and everything they own, atomically.

        Returns:
            Rows removed per table, including ``users``.
        """
        counts: dict[str, int] = {}
        with self._db.transaction() as conn:
            exists = conn.execute("SELECT 1 FROM users WHERE id = ?", (user_id,)).fetchone()
            if exists is None:
                raise NotFoundError(f"User {user_id} not found")
            for table in OWNED_TABLES:
                # Table names come from the fixed OWNED_TABLES tuple
                cursor = conn.execute(f"DELETE FROM {table} WHERE user_id = ?", (user_id,))
                counts[table] = cursor.rowcount
            cursor = conn.execute("DELETE FROM users WHERE id = ?", (user_id,))
            counts["users"] = cursor.rowcount

        logger.warning("Deleted account %s: %d rows removed", user_id, sum(counts.values()))
        if self._audit is not None:
            self._audit.log_data_delete(action="account_delete", counts=counts)
        return counts

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _row_to_user(row: Any) -> User:
        return User(
            id=row["id"],
            email=row["email"],
            username=row["username"],
            full_name=row["full_name"] or "",
            profile_image_url=row["profile_image_url"],
            date_of_birth=row["date_of_birth"],
            gender=Gender(row["gender"]) if row["gender"] else None,
            height_cm=row["height_cm"],
            weight_kg=row["weight_kg"],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )

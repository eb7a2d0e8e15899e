"""Tests for AccountStore: registration, login, sessions and account deletion."""

from __future__ import annotations

from datetime import timedelta

import pytest

from diacare.core.errors import DuplicateEmailError, NotFoundError, StorageError, ValidationError
from diacare.core.storage.database import OWNED_TABLES

PASSWORD = "s3cret-pass"


class TestRegister:
    def test_creates_user_and_default_settings(self, account_store, health_db):
        user = account_store.register("  Ana@Example.COM ", PASSWORD, "ana", full_name="Ana Silva")
        assert user.email == "ana@example.com"
        assert user.display_name == "Ana Silva"
        settings = health_db.query_one("SELECT * FROM settings WHERE user_id = ?", (user.id,))
        assert settings["theme_mode"] == "light"
        assert settings["units"] == "mg/dL"
        assert settings["notifications_enabled"] == 1
        assert settings["locale"] == "en"

    def test_no_profile_created(self, account_store, health_db):
        user = account_store.register("ana@example.com", PASSWORD, "ana")
        row = health_db.query_one("SELECT 1 FROM diabetic_profiles WHERE user_id = ?", (user.id,))
        assert row is None

    def test_password_stored_hashed(self, account_store, health_db):
        user = account_store.register("ana@example.com", PASSWORD, "ana")
        row = health_db.query_one("SELECT password_hash FROM users WHERE id = ?", (user.id,))
        assert row["password_hash"] != PASSWORD
        assert row["password_hash"].startswith("$2")

    def test_settings_failure_leaves_no_user(self, account_store, health_db):
        health_db.connection.execute(
            """CREATE TEMP TRIGGER block_settings BEFORE INSERT ON settings
               BEGIN SELECT RAISE(ABORT, 'settings insert blocked'); END"""
        )
        with pytest.raises(StorageError):
            account_store.register("ana@example.com", PASSWORD, "ana")
        assert health_db.query_one("SELECT COUNT(*) FROM users")[0] == 0
        assert not account_store.email_exists("ana@example.com")

    def test_duplicate_email_any_case(self, account_store, health_db):
        account_store.register("ana@example.com", PASSWORD, "ana")
        with pytest.raises(DuplicateEmailError):
            account_store.register("ANA@example.com", "other-pass", "ana2")
        assert health_db.query_one("SELECT COUNT(*) FROM users")[0] == 1
        assert health_db.query_one("SELECT COUNT(*) FROM settings")[0] == 1

    @pytest.mark.parametrize(
        "email, password, username, field",
        [
            ("not-an-email", PASSWORD, "ana", "email"),
            ("", PASSWORD, "ana", "email"),
            ("ana@example.com", PASSWORD, " ab ", "username"),
            ("ana@example.com", "12345", "ana", "password"),
        ],
    )
    def test_validation(self, account_store, health_db, email, password, username, field):
        with pytest.raises(ValidationError) as exc_info:
            account_store.register(email, password, username)
        assert exc_info.value.field == field
        assert health_db.query_one("SELECT COUNT(*) FROM users")[0] == 0

    def test_optional_profile_fields(self, account_store):
        user = account_store.register(
            "ana@example.com", PASSWORD, "ana",
            date_of_birth="1995-06-15", gender="Female", height_cm=165, weight_kg=58.5,
        )
        assert user.gender.value == "female"
        assert user.height_cm == 165.0

    def test_future_birth_date_rejected(self, account_store):
        with pytest.raises(ValidationError) as exc_info:
            account_store.register("ana@example.com", PASSWORD, "ana", date_of_birth="2099-01-01")
        assert exc_info.value.field == "date_of_birth"

    def test_register_audited(self, account_store, audit_logger):
        account_store.register("ana@example.com", PASSWORD, "ana")
        assert audit_logger.count_events(action="account_register") == 1

    def test_email_exists_uses_same_normalization(self, account_store):
        account_store.register("ana@example.com", PASSWORD, "ana")
        assert account_store.email_exists(" ANA@Example.com ")
        assert not account_store.email_exists("bruno@example.com")


class TestLogin:
    def test_correct_credentials_issue_session(self, account_store, user):
        session = account_store.login("ANA@example.com", PASSWORD)
        assert session is not None
        assert session.user_id == user.id
        assert session.token

    def test_wrong_password_and_unknown_email_both_none(self, account_store, user):
        assert account_store.login("ana@example.com", "wrong-pass") is None
        assert account_store.login("nobody@example.com", PASSWORD) is None

    def test_failures_audited_without_identity(self, account_store, user, audit_logger):
        account_store.login("ana@example.com", "wrong-pass")
        account_store.login("nobody@example.com", PASSWORD)
        events = audit_logger.get_events(action="login_failure")
        assert len(events) == 2
        assert all(e["metadata_json"] is None for e in events)

    def test_unknown_email_costs_one_bcrypt_check(self, account_store, user, monkeypatch):
        def _rehash(**kwargs):
            raise AssertionError("dummy hash rebuilt during login")

        monkeypatch.setattr("diacare.domains.diabetes.stores.accounts.dummy_hash", _rehash)
        assert account_store.login("nobody@example.com", PASSWORD) is None

    def test_raw_token_not_stored(self, account_store, user, health_db):
        session = account_store.login("ana@example.com", PASSWORD)
        row = health_db.query_one("SELECT token_hash FROM sessions")
        assert row["token_hash"] != session.token

    def test_new_login_replaces_previous_session(self, account_store, user):
        first = account_store.login("ana@example.com", PASSWORD)
        second = account_store.login("ana@example.com", PASSWORD)
        assert account_store.get_session(first.token) is None
        assert account_store.get_session(second.token).user_id == user.id


class TestSessions:
    def test_expired_session_removed(self, account_store, user, clock, health_db):
        session = account_store.login("ana@example.com", PASSWORD)
        clock.advance(days=31)
        assert account_store.get_session(session.token) is None
        assert health_db.query_one("SELECT COUNT(*) FROM sessions")[0] == 0

    def test_session_valid_before_expiry(self, account_store, user, clock):
        session = account_store.login("ana@example.com", PASSWORD)
        clock.advance(days=29, hours=23)
        assert account_store.get_session(session.token) is not None

    def test_logout_is_idempotent(self, account_store, user):
        session = account_store.login("ana@example.com", PASSWORD)
        assert account_store.logout(session.token) is True
        assert account_store.logout(session.token) is False
        assert account_store.get_session(session.token) is None

    def test_unknown_token(self, account_store):
        assert account_store.get_session("") is None
        assert account_store.get_session("nope") is None


class TestUpdateUser:
    def test_edit_fields(self, account_store, user):
        updated = account_store.update_user(user.id, {"full_name": "Ana S.", "weight_kg": 60})
        assert updated.full_name == "Ana S."
        assert updated.weight_kg == 60.0

    def test_email_change_checks_duplicates(self, account_store, user, other_user):
        with pytest.raises(DuplicateEmailError):
            account_store.update_user(user.id, {"email": "BRUNO@example.com"})

    def test_unknown_field(self, account_store, user):
        with pytest.raises(ValidationError):
            account_store.update_user(user.id, {"password_hash": "x"})

    def test_bad_measure(self, account_store, user):
        with pytest.raises(ValidationError) as exc_info:
            account_store.update_user(user.id, {"height_cm": -3})
        assert exc_info.value.field == "height_cm"

    def test_unknown_user(self, account_store):
        with pytest.raises(NotFoundError):
            account_store.update_user("missing", {"full_name": "x"})


class TestChangePassword:
    def test_change_then_login_with_new(self, account_store, user):
        account_store.change_password(user.id, PASSWORD, "brand-new-pass")
        assert account_store.login("ana@example.com", PASSWORD) is None
        assert account_store.login("ana@example.com", "brand-new-pass") is not None

    def test_wrong_current_password(self, account_store, user):
        with pytest.raises(ValidationError) as exc_info:
            account_store.change_password(user.id, "wrong", "brand-new-pass")
        assert exc_info.value.field == "current_password"

    def test_weak_new_password(self, account_store, user):
        with pytest.raises(ValidationError) as exc_info:
            account_store.change_password(user.id, PASSWORD, "123")
        assert exc_info.value.field == "new_password"


class TestDeleteAccount:
    def _populate(self, health_db, user_id: str, prefix: str) -> None:
        conn = health_db.connection
        conn.execute(
            """INSERT INTO diabetic_profiles VALUES (?, 'type1', 'insulin', 70, 180, NULL, 'x', 'x')""",
            (user_id,),
        )
        conn.execute(
            """INSERT INTO reminders (id, user_id, title, reminder_type, scheduled_time,
               recurrence, created_at, updated_at)
               VALUES (?, ?, 'Check', 'glucose', '08:00', 'daily', 'x', 'x')""",
            (f"{prefix}-rem", user_id),
        )
        conn.execute(
            """INSERT INTO glucose_readings (id, user_id, value, reading_type, recorded_at, created_at)
               VALUES (?, ?, 110, 'before_meal', 'x', 'x')""",
            (f"{prefix}-glu", user_id),
        )
        conn.execute(
            """INSERT INTO health_card_metrics (id, user_id, card_type, value, unit, recorded_at, created_at)
               VALUES (?, ?, 'water', 1.5, 'L', 'x', 'x')""",
            (f"{prefix}-card", user_id),
        )

    def test_removes_all_owned_rows_for_that_user_only(
        self, account_store, health_db, user, other_user
    ):
        self._populate(health_db, user.id, "a")
        self._populate(health_db, other_user.id, "b")
        account_store.login("ana@example.com", PASSWORD)

        counts = account_store.delete_account(user.id)

        assert counts["users"] == 1
        assert counts["reminders"] == 1
        assert counts["settings"] == 1
        assert counts["sessions"] == 1
        for table in OWNED_TABLES:
            mine = health_db.query_one(f"SELECT COUNT(*) FROM {table} WHERE user_id = ?", (user.id,))
            assert mine[0] == 0, table
        for table in ("diabetic_profiles", "settings", "reminders", "glucose_readings", "health_card_metrics"):
            theirs = health_db.query_one(
                f"SELECT COUNT(*) FROM {table} WHERE user_id = ?", (other_user.id,)
            )
            assert theirs[0] == 1, table

    def test_failure_midway_removes_nothing(self, account_store, health_db, user):
        self._populate(health_db, user.id, "a")
        health_db.connection.execute(
            """CREATE TEMP TRIGGER block_user_delete BEFORE DELETE ON users
               BEGIN SELECT RAISE(ABORT, 'users delete blocked'); END"""
        )
        before = {
            table: health_db.query_one(f"SELECT COUNT(*) FROM {table}")[0]
            for table in (*OWNED_TABLES, "users")
        }

        with pytest.raises(StorageError):
            account_store.delete_account(user.id)

        after = {table: health_db.query_one(f"SELECT COUNT(*) FROM {table}")[0] for table in before}
        assert after == before

    def test_deleted_user_cannot_log_in(self, account_store, user):
        account_store.delete_account(user.id)
        assert account_store.login("ana@example.com", PASSWORD) is None
        assert not account_store.email_exists("ana@example.com")

    def test_unknown_user(self, account_store):
        with pytest.raises(NotFoundError):
            account_store.delete_account("missing")

    def test_deletion_audited_with_counts(self, account_store, user, audit_logger):
        account_store.delete_account(user.id)
        events = audit_logger.get_events(action="account_delete")
        assert len(events) == 1


def test_session_ttl_configurable(health_db, clock):
    from diacare.domains.diabetes.stores.accounts import AccountStore

    store = AccountStore(health_db, clock=clock, bcrypt_rounds=4, session_ttl=timedelta(hours=1))
    store.register("ana@example.com", PASSWORD, "ana")
    session = store.login("ana@example.com", PASSWORD)
    clock.advance(hours=2)
    assert store.get_session(session.token) is None

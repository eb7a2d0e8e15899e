"""Shared test fixtures for DiaCare tests."""

from __future__ import annotations

import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

# Allow running tests without `pip install -e .` by making `src/` importable.
_PROJECT_ROOT = Path(__file__).resolve().parent.parent
_SRC_DIR = _PROJECT_ROOT / "src"
if str(_SRC_DIR) not in sys.path:
    sys.path.insert(0, str(_SRC_DIR))

from diacare.core.audit.logger import AuditLogger  # noqa: E402
from diacare.core.config.settings import Settings  # noqa: E402
from diacare.core.storage.database import HealthDatabase  # noqa: E402
from diacare.core.storage.encryption import FieldEncryptor  # noqa: E402
from diacare.domains.diabetes.domain_logic.aggregation import AggregationService  # noqa: E402
from diacare.domains.diabetes.service import DiaCareService  # noqa: E402
from diacare.domains.diabetes.stores.accounts import AccountStore  # noqa: E402
from diacare.domains.diabetes.stores.profiles import ProfileStore  # noqa: E402
from diacare.domains.diabetes.stores.readings import ReadingsStore  # noqa: E402
from diacare.domains.diabetes.stores.reminders import (  # noqa: E402
    ReminderScheduler,
    ReminderStore,
)

# Wednesday 14 October 2026, 10:00 UTC
FIXED_NOW = datetime(2026, 10, 14, 10, 0, tzinfo=timezone.utc)

# Minimum bcrypt cost keeps the suite fast
TEST_BCRYPT_ROUNDS = 4

TEST_EMAIL = "ana@example.com"
TEST_PASSWORD = "s3cret-pass"


class FakeClock:
    """Callable clock frozen at ``now`` until moved."""

    def __init__(self, now: datetime = FIXED_NOW) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now = self.now + timedelta(**kwargs)

    def set(self, hour: int, minute: int = 0) -> None:
        self.now = self.now.replace(hour=hour, minute=minute, second=0, microsecond=0)


# ---------------------------------------------------------------------------
# Test hermeticity
# ---------------------------------------------------------------------------

@pytest.fixture(autouse=True)
def _force_hermetic_test_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.setenv("DIACARE_DB_PATH", str(tmp_path / "diacare.db"))
    monkeypatch.setenv("DIACARE_KEY_PATH", str(tmp_path / "fernet.key"))
    monkeypatch.setenv("DIACARE_ENCRYPTION_KEY", "")
    monkeypatch.setenv("DIACARE_BCRYPT_ROUNDS", str(TEST_BCRYPT_ROUNDS))


# ---------------------------------------------------------------------------
# In-memory storage fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def health_db():
    """Create an in-memory HealthDatabase for testing."""
    db = HealthDatabase(":memory:")
    db.initialize()
    yield db
    db.close()


@pytest.fixture
def field_encryptor():
    """Create a FieldEncryptor with a test key."""
    return FieldEncryptor(FieldEncryptor.generate_key())


@pytest.fixture
def audit_logger(health_db):
    """Create an AuditLogger backed by in-memory SQLite."""
    return AuditLogger(health_db)


@pytest.fixture
def account_store(health_db, audit_logger, clock):
    return AccountStore(
        health_db,
        audit=audit_logger,
        clock=clock,
        bcrypt_rounds=TEST_BCRYPT_ROUNDS,
        session_ttl=timedelta(days=30),
    )


@pytest.fixture
def profile_store(health_db, clock):
    return ProfileStore(health_db, clock=clock)


@pytest.fixture
def readings_store(health_db, field_encryptor, clock):
    return ReadingsStore(health_db, field_encryptor, clock=clock)


@pytest.fixture
def reminder_store(health_db, audit_logger, clock):
    return ReminderStore(health_db, audit=audit_logger, clock=clock)


@pytest.fixture
def scheduler(reminder_store, clock):
    return ReminderScheduler(reminder_store, clock=clock)


@pytest.fixture
def aggregation(account_store, profile_store, readings_store, scheduler, audit_logger, clock):
    return AggregationService(
        account_store,
        profile_store,
        readings_store,
        scheduler,
        audit=audit_logger,
        clock=clock,
    )


@pytest.fixture
def user(account_store):
    """A registered user with default settings and no profile yet."""
    return account_store.register(TEST_EMAIL, TEST_PASSWORD, "ana", full_name="Ana Silva")


@pytest.fixture
def other_user(account_store):
    return account_store.register("bruno@example.com", "another-pass", "bruno")


@pytest.fixture
def service(account_store, profile_store, readings_store, scheduler, aggregation, audit_logger, clock):
    return DiaCareService(
        account_store,
        profile_store,
        readings_store,
        scheduler,
        aggregation,
        audit=audit_logger,
        clock=clock,
    )


@pytest.fixture
def logged_in_service(service, user):
    """Service with ``user`` logged in."""
    assert service.login(TEST_EMAIL, TEST_PASSWORD) is not None
    return service


@pytest.fixture
def test_settings(tmp_path) -> Settings:
    return Settings(
        db_path=str(tmp_path / "diacare.db"),
        key_path=str(tmp_path / "fernet.key"),
        bcrypt_rounds=TEST_BCRYPT_ROUNDS,
    )

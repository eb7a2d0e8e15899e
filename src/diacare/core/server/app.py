"""DiaCare MCP server assembly.

``build_service`` wires the database, note encryption, stores and aggregation
from settings; ``create_app`` wraps a service in a FastMCP server, so tests can
hand in their own in-memory service. ``mcp`` is resolved lazily for FastMCP
discovery.
"""

from __future__ import annotations

import logging
from datetime import timedelta

from fastmcp import FastMCP

from diacare.core.audit.logger import AuditLogger
from diacare.core.config.settings import Settings, get_settings
from diacare.core.storage.database import HealthDatabase
from diacare.core.storage.encryption import FieldEncryptor, load_or_create_key
from diacare.domains.diabetes.domain_logic.aggregation import AggregationService
from diacare.domains.diabetes.resources.assistant import register_assistant_resources
from diacare.domains.diabetes.service import DiaCareService
from diacare.domains.diabetes.stores.accounts import AccountStore
from diacare.domains.diabetes.stores.base import Clock
from diacare.domains.diabetes.stores.profiles import ProfileStore
from diacare.domains.diabetes.stores.readings import ReadingsStore
from diacare.domains.diabetes.stores.reminders import ReminderScheduler, ReminderStore
from diacare.domains.diabetes.tools.account_tools import register_account_tools
from diacare.domains.diabetes.tools.audit_tools import register_audit_tools
from diacare.domains.diabetes.tools.dashboard_tools import register_dashboard_tools
from diacare.domains.diabetes.tools.profile_tools import register_profile_tools
from diacare.domains.diabetes.tools.readings_tools import register_readings_tools
from diacare.domains.diabetes.tools.reminder_tools import register_reminder_tools

logger = logging.getLogger(__name__)

SERVER_NAME = "DiaCare Health"
SERVER_VERSION = "0.1.0"


def build_service(
    settings: Settings,
    *,
    database: HealthDatabase | None = None,
    encryptor: FieldEncryptor | None = None,
    clock: Clock | None = None,
) -> DiaCareService:
    """Construct the store set and the service facade over one database.

    Opens (and migrates) the database unless one is passed in. Without a
    configured ``encryption_key`` the key is read from, or created at,
    ``settings.key_path``.
    """
    if database is None:
        database = HealthDatabase(settings.db_path, timeout=settings.db_timeout_seconds)
    database.initialize()
    if encryptor is None:
        encryptor = FieldEncryptor(settings.encryption_key or load_or_create_key(settings.key_path))

    audit = AuditLogger(database)
    accounts = AccountStore(
        database,
        audit=audit,
        clock=clock,
        bcrypt_rounds=settings.bcrypt_rounds,
        session_ttl=timedelta(days=settings.session_ttl_days),
    )
    profiles = ProfileStore(database, clock=clock)
    readings = ReadingsStore(database, encryptor, clock=clock)
    scheduler = ReminderScheduler(ReminderStore(database, audit=audit, clock=clock), clock=clock)
    aggregation = AggregationService(
        accounts,
        profiles,
        readings,
        scheduler,
        audit=audit,
        clock=clock,
        default_privacy_mode=settings.default_privacy_mode,
    )
    logger.info("DiaCare data store ready (schema v%d)", database.get_schema_version())
    return DiaCareService(accounts, profiles, readings, scheduler, aggregation, audit=audit, clock=clock)


def create_app(*, service_override: DiaCareService | None = None) -> FastMCP:
    """Return a FastMCP server exposing every DiaCare tool and the assistant resource.

    Without ``service_override`` the service is built from the environment
    settings.
    """
    service = service_override or build_service(get_settings())

    server = FastMCP(
        SERVER_NAME,
        instructions=(
            "Local health-data service for a diabetes self-management app. "
            "Provides accounts, a diabetic profile, reminders, glucose readings, "
            "health cards, and the dashboard and insights views built from them."
        ),
    )

    @server.tool
    def health_check() -> dict:
        """Check server health and return basic status information."""
        return {
            "status": "ok",
            "server": SERVER_NAME,
            "version": SERVER_VERSION,
            "authenticated": service.is_authenticated,
        }

    register_account_tools(server, service)
    register_profile_tools(server, service)
    register_readings_tools(server, service)
    register_reminder_tools(server, service)
    register_dashboard_tools(server, service)
    if service.audit is not None:
        register_audit_tools(server, service.audit)
    logger.info("DiaCare tools registered")

    register_assistant_resources(server, service)

    return server


# Module-level instance for FastMCP discovery.
# Lazy: only created when this module is loaded directly (not when tests import create_app).
def __getattr__(name: str):
    if name == "mcp":
        global mcp  # noqa: PLW0603
        mcp = create_app()
        return mcp
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")

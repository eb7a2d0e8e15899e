"""Integration tests for the DiaCare MCP server."""

from __future__ import annotations

import asyncio
import json

import pytest
from fastmcp import Client

from diacare.core.server.app import build_service, create_app


def _run(coro):
    """Run an async coroutine synchronously (no pytest-asyncio required)."""
    loop = asyncio.new_event_loop()
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


def _payload(result) -> dict:
    return json.loads(result.content[0].text)


ALL_EXPECTED_TOOLS = [
    "health_check",
    "register",
    "login",
    "resume_session",
    "email_exists",
    "logout",
    "get_current_user",
    "update_user",
    "change_password",
    "delete_account",
    "get_profile",
    "update_profile",
    "get_settings",
    "update_settings",
    "add_glucose_reading",
    "get_latest_glucose_reading",
    "get_glucose_readings",
    "update_health_card",
    "get_health_cards",
    "add_reminder",
    "get_reminders",
    "update_reminder_status",
    "set_reminder_enabled",
    "update_reminder",
    "delete_reminder",
    "delete_reminders",
    "get_dashboard_data",
    "get_insights",
    "get_assistant_context",
    "seed_demo_data",
    "audit_summary",
]


@pytest.fixture
def client(service):
    """MCP client over a server wired to the in-memory test service."""
    return Client(create_app(service_override=service))


async def _register_and_login(client) -> None:
    await client.call_tool("register", {
        "email": "ana@example.com",
        "password": "s3cret-pass",
        "username": "ana",
        "full_name": "Ana Silva",
    })
    await client.call_tool("login", {"email": "ana@example.com", "password": "s3cret-pass"})


def test_server_starts_and_lists_tools(client):
    """Server should start and expose all registered tools."""
    async def _check():
        async with client:
            tools = await client.list_tools()
            tool_names = [t.name for t in tools]
            for expected in ALL_EXPECTED_TOOLS:
                assert expected in tool_names, f"Missing tool: {expected}"
    _run(_check())


def test_health_check_returns_ok(client):
    async def _check():
        async with client:
            result = await client.call_tool("health_check", {})
            assert "ok" in str(result)
            assert "DiaCare Health" in str(result)
    _run(_check())


def test_operations_before_login_return_error_envelope(client):
    async def _check():
        async with client:
            payload = _payload(await client.call_tool("get_dashboard_data", {}))
            assert payload["status"] == "error"
            assert payload["error_type"] == "AuthenticationError"
    _run(_check())


def test_login_failure_is_uniform(client):
    async def _check():
        async with client:
            await _register_and_login(client)
            wrong = _payload(await client.call_tool(
                "login", {"email": "ana@example.com", "password": "nope-nope"}
            ))
            unknown = _payload(await client.call_tool(
                "login", {"email": "who@example.com", "password": "s3cret-pass"}
            ))
            assert wrong == unknown == {
                "status": "invalid_credentials",
                "message": "Invalid email or password",
            }
    _run(_check())


def test_duplicate_registration(client):
    async def _check():
        async with client:
            await _register_and_login(client)
            payload = _payload(await client.call_tool("register", {
                "email": "ANA@example.com", "password": "another-pass", "username": "ana2",
            }))
            assert payload["status"] == "error"
            assert payload["error_type"] == "DuplicateEmailError"
    _run(_check())


def test_validation_error_names_field(client):
    async def _check():
        async with client:
            await _register_and_login(client)
            payload = _payload(await client.call_tool(
                "add_glucose_reading", {"value": 900, "unit": "mg/dL"}
            ))
            assert payload["error_type"] == "ValidationError"
            assert payload["field"] == "value"
    _run(_check())


def test_reading_round_trip_and_dashboard(client):
    async def _check():
        async with client:
            await _register_and_login(client)
            added = _payload(await client.call_tool(
                "add_glucose_reading",
                {"value": 250, "unit": "mg/dL", "reading_type": "after_meal"},
            ))
            assert added["status"] == "ok"
            assert added["reading"]["display"] == "250 mg/dL"

            await client.call_tool("add_reminder", {
                "title": "Check Blood Sugar",
                "reminder_type": "glucose",
                "scheduled_time": "12:00",
            })
            dashboard = _payload(await client.call_tool("get_dashboard_data", {}))["dashboard"]
            assert dashboard["greeting"] == "Hi, Ana Silva"
            assert dashboard["status_message"] == "High - Monitor closely"
            assert dashboard["next_reminder_label"] == "Check Blood Sugar"
    _run(_check())


def test_reminder_status_flow(client):
    async def _check():
        async with client:
            await _register_and_login(client)
            created = _payload(await client.call_tool("add_reminder", {
                "title": "Take Medication",
                "reminder_type": "pills",
                "scheduled_time": "08:00",
            }))
            reminder_id = created["reminder"]["id"]
            done = _payload(await client.call_tool(
                "update_reminder_status", {"reminder_id": reminder_id, "status": "done"}
            ))
            assert done["reminder"]["status"] == "done"
            refused = _payload(await client.call_tool(
                "update_reminder_status", {"reminder_id": reminder_id, "status": "not_done"}
            ))
            assert refused["error_type"] == "InvalidTransitionError"
    _run(_check())


def test_delete_account_requires_confirmation(client):
    async def _check():
        async with client:
            await _register_and_login(client)
            gated = _payload(await client.call_tool("delete_account", {}))
            assert gated["status"] == "confirmation_required"
            deleted = _payload(await client.call_tool("delete_account", {"confirm": "DELETE_ACCOUNT"}))
            assert deleted["status"] == "ok"
            assert deleted["deleted"]["users"] == 1
            exists = _payload(await client.call_tool("email_exists", {"email": "ana@example.com"}))
            assert exists["exists"] is False
    _run(_check())


def test_assistant_context_resource_and_audit(client):
    async def _check():
        async with client:
            await _register_and_login(client)
            await client.call_tool("seed_demo_data", {})
            contents = await client.read_resource("diacare://assistant/context")
            context = json.loads(contents[0].text)
            assert context["privacy_mode"] == "standard"
            assert context["name"] == "Ana Silva"

            summary = _payload(await client.call_tool("audit_summary", {}))
            assert summary["assistant_disclosures"] == 1
            # credentials never reach the audit trail
            assert "s3cret-pass" not in json.dumps(summary)
    _run(_check())


def test_build_service_from_settings(test_settings):
    service = build_service(test_settings)
    service.register("ana@example.com", "s3cret-pass", "ana")
    assert service.login("ana@example.com", "s3cret-pass") is not None
    assert service.is_authenticated

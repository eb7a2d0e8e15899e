"""Tests for the shared tool envelopes and auditing wrapper."""

from __future__ import annotations

import json

from diacare.core.errors import (
    AuthenticationError,
    EncryptionError,
    NotFoundError,
    StorageError,
    ValidationError,
)
from diacare.domains.diabetes.tools.responses import (
    GENERIC_FAILURE_MESSAGE,
    error_response,
    ok,
    run_tool,
)


def test_ok_envelope():
    assert json.loads(ok(count=2)) == {"status": "ok", "count": 2}


def test_validation_error_carries_field():
    payload = json.loads(error_response(ValidationError("Title is required", field="title")))
    assert payload == {
        "status": "error",
        "error_type": "ValidationError",
        "message": "Title is required",
        "field": "title",
    }


def test_other_errors_have_no_field():
    payload = json.loads(error_response(NotFoundError("Reminder r1 not found")))
    assert payload["error_type"] == "NotFoundError"
    assert payload["field"] is None


def test_storage_errors_are_generic():
    for exc in (StorageError("no such table: users"), EncryptionError("bad key")):
        payload = json.loads(error_response(exc))
        assert payload["message"] == GENERIC_FAILURE_MESSAGE
        assert "users" not in payload["message"]


class TestRunTool:
    def test_success_is_audited(self, audit_logger):
        result = run_tool("get_profile", audit_logger, lambda: ok(done=True))
        assert json.loads(result)["done"] is True
        event = audit_logger.get_events(tool_name="get_profile")[0]
        assert event["status"] == "success"
        assert event["tool_input_hash"] is None

    def test_failure_becomes_envelope(self, audit_logger):
        def _fail() -> str:
            raise AuthenticationError("Please log in first")

        payload = json.loads(run_tool("get_profile", audit_logger, _fail, tool_input={"x": 1}))
        assert payload["status"] == "error"
        assert payload["message"] == "Please log in first"
        event = audit_logger.get_events(tool_name="get_profile")[0]
        assert event["status"] == "failure"
        assert event["error_type"] == "AuthenticationError"
        assert len(event["tool_input_hash"]) == 64

    def test_without_audit_logger(self):
        assert json.loads(run_tool("x", None, lambda: ok()))["status"] == "ok"

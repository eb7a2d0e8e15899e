"""JSON envelopes shared by every DiaCare tool.

Successful calls return ``{"status": "ok", ...}``. Service errors become
``{"status": "error", "error_type", "message", "field"}``; storage failures
carry a generic message so nothing about the database leaks to the UI.
"""

from __future__ import annotations

import json
import logging
import time
from collections.abc import Callable
from typing import Any

from diacare.core.audit.logger import AuditLogger
from diacare.core.errors import DiaCareError, StorageError, ValidationError

logger = logging.getLogger(__name__)

GENERIC_FAILURE_MESSAGE = "Something went wrong. Please try again."


def ok(**payload: Any) -> str:
    return json.dumps({"status": "ok", **payload}, default=str)


def error_response(exc: DiaCareError) -> str:
    if isinstance(exc, StorageError):
        message = GENERIC_FAILURE_MESSAGE
    else:
        message = getattr(exc, "message", None) or str(exc)
    return json.dumps({
        "status": "error",
        "error_type": type(exc).__name__,
        "message": message,
        "field": exc.field if isinstance(exc, ValidationError) else None,
    })


def run_tool(
    tool_name: str,
    audit: AuditLogger | None,
    fn: Callable[[], str],
    *,
    tool_input: Any = None,
) -> str:
    """Execute ``fn``, mapping service errors to the error envelope and auditing the call.

    ``tool_input`` is hashed by the audit logger; pass ``None`` for anything
    carrying credentials.
    """
    start_time = time.monotonic()
    try:
        result = fn()
    except DiaCareError as exc:
        elapsed_ms = (time.monotonic() - start_time) * 1000
        if isinstance(exc, StorageError):
            logger.error("%s failed: %s", tool_name, exc)
        else:
            logger.info("%s rejected: %s", tool_name, type(exc).__name__)
        if audit is not None:
            audit.log_tool_call(
                tool_name,
                tool_input,
                duration_ms=round(elapsed_ms, 1),
                status="failure",
                error_type=type(exc).__name__,
            )
        return error_response(exc)

    if audit is not None:
        audit.log_tool_call(
            tool_name,
            tool_input,
            duration_ms=round((time.monotonic() - start_time) * 1000, 1),
        )
    return result

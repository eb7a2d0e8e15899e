"""MCP resources for the chat assistant. Read-only by construction."""

from __future__ import annotations

import json
from typing import TYPE_CHECKING

from fastmcp import FastMCP

from diacare.core.errors import DiaCareError
from diacare.domains.diabetes.tools.responses import error_response

if TYPE_CHECKING:
    from diacare.domains.diabetes.service import DiaCareService


def register_assistant_resources(mcp: FastMCP, service: DiaCareService) -> None:
    """Register the assistant context resource on the MCP server."""

    @mcp.resource("diacare://assistant/context")
    def assistant_context_resource() -> str:
        """Profile, recent readings and today's cards, filtered by the default privacy mode."""
        try:
            context = service.get_assistant_context()
        except DiaCareError as exc:
            return error_response(exc)
        return json.dumps(context, indent=2, default=str)

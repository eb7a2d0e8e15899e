"""MCP tools for accounts: registration, login, logout, profile edits and deletion.

Credentials are never passed to the audit logger, not even hashed.
"""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING

from fastmcp import FastMCP

from diacare.domains.diabetes.tools.responses import ok, run_tool

if TYPE_CHECKING:
    from diacare.domains.diabetes.service import DiaCareService

logger = logging.getLogger(__name__)

DELETE_CONFIRMATION = "DELETE_ACCOUNT"


def register_account_tools(mcp: FastMCP, service: DiaCareService) -> None:
    """Register account tools on the MCP server."""
    audit = service.audit

    @mcp.tool
    async def register(
        email: str,
        password: str,
        username: str,
        full_name: str = "",
        date_of_birth: str | None = None,
        gender: str | None = None,
        height_cm: float | None = None,
        weight_kg: float | None = None,
    ) -> str:
        """Create an account. Default settings are created with it.

        Args:
            email: Login email; compared case-insensitively.
            password: At least 6 characters.
            username: At least 3 characters.
            full_name: Shown in the dashboard greeting.
        """
        def _call() -> str:
            user = service.register(
                email,
                password,
                username,
                full_name=full_name,
                date_of_birth=date_of_birth,
                gender=gender,
                height_cm=height_cm,
                weight_kg=weight_kg,
            )
            return ok(user=user.to_dict())
        return run_tool("register", audit, _call)

    @mcp.tool
    async def login(email: str, password: str) -> str:
        """Log in and make the session current on this device.

        A wrong password and an unknown email give the same answer.
        """
        def _call() -> str:
            session = service.login(email, password)
            if session is None:
                return json.dumps({
                    "status": "invalid_credentials",
                    "message": "Invalid email or password",
                })
            return ok(
                session={
                    "token": session.token,
                    "user_id": session.user_id,
                    "expires_at": session.expires_at,
                }
            )
        return run_tool("login", audit, _call)

    @mcp.tool
    async def resume_session(token: str) -> str:
        """Restore a session from a token returned by an earlier login."""
        def _call() -> str:
            session = service.resume_session(token)
            return ok(authenticated=session is not None)
        return run_tool("resume_session", audit, _call)

    @mcp.tool
    async def email_exists(email: str) -> str:
        """Check whether an email is already registered."""
        return run_tool(
            "email_exists", audit, lambda: ok(exists=service.email_exists(email))
        )

    @mcp.tool
    async def logout() -> str:
        """End the current session."""
        return run_tool("logout", audit, lambda: ok(logged_out=service.logout()))

    @mcp.tool
    async def get_current_user() -> str:
        """Return the logged-in user's account details."""
        return run_tool(
            "get_current_user", audit, lambda: ok(user=service.get_current_user().to_dict())
        )

    @mcp.tool
    async def update_user(
        email: str | None = None,
        username: str | None = None,
        full_name: str | None = None,
        profile_image_url: str | None = None,
        date_of_birth: str | None = None,
        gender: str | None = None,
        height_cm: float | None = None,
        weight_kg: float | None = None,
    ) -> str:
        """Edit account details. Only the arguments given are changed."""
        patch = {
            key: value
            for key, value in {
                "email": email,
                "username": username,
                "full_name": full_name,
                "profile_image_url": profile_image_url,
                "date_of_birth": date_of_birth,
                "gender": gender,
                "height_cm": height_cm,
                "weight_kg": weight_kg,
            }.items()
            if value is not None
        }
        return run_tool(
            "update_user",
            audit,
            lambda: ok(user=service.update_user(patch).to_dict()),
            tool_input=sorted(patch),
        )

    @mcp.tool
    async def change_password(current_password: str, new_password: str) -> str:
        """Change the logged-in user's password."""
        def _call() -> str:
            service.change_password(current_password, new_password)
            return ok(changed=True)
        return run_tool("change_password", audit, _call)

    @mcp.tool
    async def delete_account(confirm: str = "") -> str:
        """Permanently delete the logged-in account and all of its data.

        Removes the profile, settings, reminders, glucose readings and health
        card entries. It cannot be undone.

        Args:
            confirm: Must be exactly 'DELETE_ACCOUNT' to proceed. Safety gate.
        """
        if confirm != DELETE_CONFIRMATION:
            return json.dumps({
                "status": "confirmation_required",
                "message": (
                    "This will permanently delete your account and all health data. "
                    f"Call again with confirm='{DELETE_CONFIRMATION}' to proceed."
                ),
            })

        def _call() -> str:
            counts = service.delete_account()
            logger.warning("Account deleted via tool")
            return ok(deleted=counts, records_deleted=sum(counts.values()))
        return run_tool("delete_account", audit, _call)

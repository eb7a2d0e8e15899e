"""DiaCare server entry point: ``python -m diacare.core.server.main``."""

from __future__ import annotations

import logging
from ipaddress import ip_address

from diacare.core.config.settings import Settings, get_settings
from diacare.core.server.app import create_app

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def is_local_host(host: str) -> bool:
    """True for ``localhost`` and any loopback address (IPv4 or IPv6)."""
    if host == "localhost":
        return True
    try:
        return ip_address(host).is_loopback
    except ValueError:
        return False


def ensure_safe_bind(settings: Settings) -> None:
    """Refuse a non-loopback bind unless ``DIACARE_ALLOW_INSECURE_BIND`` is set.

    The server holds one person's health records and has no transport auth.
    """
    if is_local_host(settings.host):
        return
    if settings.allow_insecure_bind:
        logger.warning("Serving health data on non-loopback host %s", settings.host)
        return
    raise RuntimeError(
        f"Refusing to bind DiaCare to {settings.host}. "
        "Set DIACARE_ALLOW_INSECURE_BIND=true to override (unsafe)."
    )


def run() -> None:
    settings = get_settings()
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format=LOG_FORMAT,
    )
    ensure_safe_bind(settings)

    logger.info("DiaCare listening on http://%s:%d", settings.host, settings.port)
    create_app().run(transport="streamable-http", host=settings.host, port=settings.port)


if __name__ == "__main__":
    run()

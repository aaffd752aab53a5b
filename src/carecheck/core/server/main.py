"""CareCheck server entry point (``carecheck`` or ``python -m carecheck.core.server.main``)."""

from __future__ import annotations

import logging
from ipaddress import ip_address

from carecheck.core.config.settings import Settings, get_settings
from carecheck.core.server.app import create_app

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"

logger = logging.getLogger(__name__)


def is_loopback_host(host: str) -> bool:
    """True for ``localhost`` and loopback IPv4/IPv6 literals."""
    if host.lower() == "localhost":
        return True
    try:
        return ip_address(host.strip("[]")).is_loopback
    except ValueError:
        return False


def check_bind(settings: Settings) -> None:
    """Refuse a non-loopback bind unless explicitly allowed.

    Check-ins and their audit trail carry medication and calendar details and
    the server has no auth layer.

    Raises:
        RuntimeError: If the host is not loopback and the override is unset.
    """
    if is_loopback_host(settings.carecheck_host):
        return
    if not settings.carecheck_allow_insecure_bind:
        raise RuntimeError(
            f"Refusing to bind CareCheck to non-loopback host {settings.carecheck_host!r}: "
            "there is no auth layer. Set CARECHECK_ALLOW_INSECURE_BIND=true to override."
        )
    logger.warning(
        "Binding to %s without authentication; check-in data is reachable from the network",
        settings.carecheck_host,
    )


def log_startup_summary(settings: Settings) -> None:
    logger.info(
        "CareCheck on %s:%d (llm=%s, privacy=%s, state %s, tick every %d min)",
        settings.carecheck_host,
        settings.carecheck_port,
        settings.llm_provider,
        settings.privacy_mode,
        "encrypted" if settings.encryption_key else "unencrypted",
        settings.check_interval_minutes,
    )
    if settings.privacy_mode == "standard" and settings.llm_provider != "mock":
        logger.warning(
            "PRIVACY_MODE=standard: medication names and event titles are sent to %s",
            settings.llm_provider,
        )


def run() -> None:
    """Start the CareCheck MCP server with Streamable HTTP transport."""
    settings = get_settings()
    logging.basicConfig(
        level=getattr(logging, settings.carecheck_log_level.upper(), logging.INFO),
        format=LOG_FORMAT,
    )

    check_bind(settings)
    log_startup_summary(settings)

    mcp = create_app(settings_override=settings)
    mcp.run(
        transport="streamable-http",
        host=settings.carecheck_host,
        port=settings.carecheck_port,
    )


if __name__ == "__main__":
    run()

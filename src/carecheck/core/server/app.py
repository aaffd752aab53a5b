"""CareCheck MCP Server — application factory.

This module provides:
- create_app() for testability (integration tests create fresh server instances)
- Module-level `mcp` variable for FastMCP discovery
"""

from __future__ import annotations

import logging
from dataclasses import asdict
from datetime import datetime
from typing import Callable

from fastmcp import FastMCP

from carecheck.core.audit.logger import AuditLogger
from carecheck.core.config.settings import Settings, get_settings
from carecheck.core.llm.provider import LLMProvider, create_provider
from carecheck.core.notify.background import InProcessBackgroundRegistrar
from carecheck.core.notify.caregiver import AuditCaregiverNotifier
from carecheck.core.notify.dispatch import NotificationDispatcher, OutboxNotificationDispatcher
from carecheck.core.storage.database import CheckInDatabase
from carecheck.core.storage.encryption import EncryptionError, ValueEncryptor
from carecheck.core.storage.store import KeyValueStore, SqliteKeyValueStore
from carecheck.domains.checkin.connectors import SignalSource
from carecheck.domains.checkin.connectors.collector import SignalCollector
from carecheck.domains.checkin.connectors.providers import mock_signal_providers
from carecheck.domains.checkin.messaging.crafter import MessageCrafter
from carecheck.domains.checkin.orchestrator import CheckInOrchestrator
from carecheck.domains.checkin.rules.loader import load_rule_catalog
from carecheck.domains.checkin.tools.audit_tools import register_audit_tools
from carecheck.domains.checkin.tools.checkin_tools import register_checkin_tools

logger = logging.getLogger(__name__)


def _resolve_provider(settings: Settings) -> LLMProvider:
    if settings.llm_provider == "mock":
        provider_name = "mock"
        api_key = ""
        model = ""
    elif settings.llm_provider == "anthropic":
        api_key = settings.anthropic_api_key
        model = settings.anthropic_model
        provider_name = "anthropic" if api_key else "mock"
    elif settings.llm_provider == "openai":
        api_key = settings.openai_api_key
        model = settings.openai_model
        provider_name = "openai" if api_key else "mock"
    else:  # pragma: no cover
        raise ValueError(f"Unknown LLM provider: {settings.llm_provider!r}")

    if provider_name == "mock" and settings.llm_provider != "mock":
        logger.warning(
            "No API key configured for provider '%s'; falling back to mock provider",
            settings.llm_provider,
        )

    return create_provider(provider_name=provider_name, api_key=api_key, model=model)


def _open_database(db_path: str) -> CheckInDatabase:
    database = CheckInDatabase(db_path)
    database.initialize()
    return database


def create_app(
    *,
    settings_override: Settings | None = None,
    provider_override: LLMProvider | None = None,
    signal_source_override: SignalSource | None = None,
    database_override: CheckInDatabase | None = None,
    store_override: KeyValueStore | None = None,
    dispatcher_override: NotificationDispatcher | None = None,
    clock_override: Callable[[], datetime] | None = None,
) -> FastMCP:
    """Create and configure the CareCheck MCP server.

    This is the main application factory. It:
    1. Creates the FastMCP server instance
    2. Loads the rule catalog
    3. Creates the message crafter over the configured LLM provider
    4. Opens the SQLite state store (Fernet-encrypted when a key is set)
    5. Wires the check-in orchestrator to signals, notifications and audit
    6. Registers all tools
    """
    settings = settings_override or get_settings()

    # --- Server instance ---
    server = FastMCP(
        "CareCheck",
        instructions=(
            "Proactive check-in engine. Decides when to gently check in on a "
            "user from activity, weather, medication and calendar signals, "
            "and tracks each check-in through its response lifecycle."
        ),
    )

    # --- Rule catalog ---
    catalog = load_rule_catalog(settings.rules_path or None)
    logger.info("Loaded %d check-in rules", len(catalog))

    # --- Message generation ---
    provider = provider_override or _resolve_provider(settings)
    crafter = MessageCrafter(
        provider,
        timeout_seconds=settings.generation_timeout_seconds,
        privacy_mode=settings.privacy_mode,
    )

    # --- Storage ---
    database = database_override or _open_database(settings.db_path)
    if store_override is not None:
        store = store_override
    else:
        encryptor: ValueEncryptor | None = None
        if settings.encryption_key:
            try:
                encryptor = ValueEncryptor(settings.encryption_key)
            except EncryptionError as exc:
                logger.error("Invalid ENCRYPTION_KEY: %s", exc)
                logger.warning("Continuing with unencrypted state storage")
        else:
            logger.info("No ENCRYPTION_KEY configured; engine state is stored unencrypted")
        store = SqliteKeyValueStore(database, encryptor)
    audit = AuditLogger(database)

    # --- Collaborators ---
    clock = clock_override or datetime.now
    if signal_source_override is not None:
        signal_source = signal_source_override
    else:
        signal_source = SignalCollector(mock_signal_providers(), clock=clock)
        logger.info("Using simulated signal providers")
    dispatcher = dispatcher_override or OutboxNotificationDispatcher()
    registrar = InProcessBackgroundRegistrar()

    orchestrator = CheckInOrchestrator(
        signal_source=signal_source,
        catalog=catalog,
        crafter=crafter,
        store=store,
        dispatcher=dispatcher,
        audit=audit,
        caregiver=AuditCaregiverNotifier(audit, dispatcher),
        registrar=registrar,
        clock=clock,
        check_interval_minutes=settings.check_interval_minutes,
        global_max_nudges_per_day=settings.global_max_nudges_per_day,
        check_in_ttl_minutes=settings.check_in_ttl_minutes,
        enhancement_threshold=settings.enhancement_confidence_threshold,
        concern_alert_cooldown_minutes=settings.concern_alert_cooldown_minutes,
        user_name=settings.user_name,
    )

    # --- Register tools ---
    @server.tool
    def health_check() -> dict:
        """Check server health and return basic status information."""
        return {
            "status": "ok",
            "server": "CareCheck",
            "version": "0.1.0",
            "rules_loaded": len(catalog),
            "llm_provider": settings.llm_provider,
            "encrypted_storage": store_override is None and bool(settings.encryption_key),
            "engine_running": orchestrator.is_running,
        }

    if isinstance(dispatcher, OutboxNotificationDispatcher):
        outbox = dispatcher

        @server.tool
        def recent_notifications(limit: int = 20) -> dict:
            """List notifications delivered to the in-process outbox, newest first."""
            return {
                "count": len(outbox.outbox),
                "notifications": [asdict(n) for n in outbox.recent(limit)],
            }

    register_checkin_tools(server, orchestrator)
    register_audit_tools(server, audit)
    logger.info("Check-in and audit tools registered")

    return server


# Module-level instance for FastMCP discovery.
# Lazy: only created when this module is loaded directly (not when tests import create_app).
def __getattr__(name: str):
    if name == "mcp":
        global mcp  # noqa: PLW0603
        mcp = create_app()
        return mcp
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")

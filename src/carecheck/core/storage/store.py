"""Key-value store for engine state.

The orchestrator keeps each piece of state (preferences, check-ins, rule
trigger history, daily count, engine snapshot) under a fixed key as a JSON
document. ``SqliteKeyValueStore`` is the on-device implementation; values are
Fernet-encrypted when a ``ValueEncryptor`` is supplied.
"""

from __future__ import annotations

import json
import logging
import sqlite3
from datetime import datetime, timezone
from typing import Any, Protocol, runtime_checkable

from carecheck.core.storage.database import CheckInDatabase
from carecheck.core.storage.encryption import EncryptionError, ValueEncryptor

logger = logging.getLogger(__name__)


class StoreError(Exception):
    """Raised when a value cannot be read from or written to the store."""


@runtime_checkable
class KeyValueStore(Protocol):
    """Abstract JSON document store keyed by string."""

    def get(self, key: str) -> Any | None: ...

    def set(self, key: str, value: Any) -> None: ...

    def remove(self, key: str) -> None: ...


class SqliteKeyValueStore:
    """``KeyValueStore`` backed by the ``kv_store`` table.

    Usage::

        db = CheckInDatabase(":memory:")
        db.initialize()
        store = SqliteKeyValueStore(db)
        store.set("carecheck.daily_count", {"date": "2026-10-18", "count": 1})
    """

    def __init__(
        self,
        database: CheckInDatabase,
        encryptor: ValueEncryptor | None = None,
    ) -> None:
        self._db = database
        self._enc = encryptor

    def get(self, key: str) -> Any | None:
        """Return the decoded value for ``key``, or None when absent."""
        try:
            row = self._db.connection.execute(
                "SELECT value, encrypted FROM kv_store WHERE key = ?", (key,)
            ).fetchone()
        except sqlite3.Error as exc:
            raise StoreError(f"Failed to read {key!r}: {exc}") from exc

        if row is None:
            return None

        if row["encrypted"]:
            if self._enc is None:
                raise StoreError(f"Value for {key!r} is encrypted but no key is configured")
            try:
                return self._enc.decrypt(row["value"])
            except EncryptionError as exc:
                raise StoreError(f"Failed to decrypt {key!r}: {exc}") from exc

        try:
            return json.loads(row["value"])
        except ValueError as exc:
            raise StoreError(f"Corrupt JSON stored under {key!r}") from exc

    def set(self, key: str, value: Any) -> None:
        """Insert or replace the value for ``key``."""
        try:
            if self._enc is not None:
                payload, encrypted = self._enc.encrypt(value), 1
            else:
                payload, encrypted = json.dumps(value, separators=(",", ":")), 0
        except (EncryptionError, TypeError, ValueError) as exc:
            raise StoreError(f"Failed to encode {key!r}: {exc}") from exc

        try:
            conn = self._db.connection
            conn.execute(
                """INSERT INTO kv_store (key, value, encrypted, updated_at)
                   VALUES (?, ?, ?, ?)
                   ON CONFLICT(key) DO UPDATE SET
                       value = excluded.value,
                       encrypted = excluded.encrypted,
                       updated_at = excluded.updated_at""",
                (key, payload, encrypted, datetime.now(timezone.utc).isoformat()),
            )
            conn.commit()
        except sqlite3.Error as exc:
            raise StoreError(f"Failed to write {key!r}: {exc}") from exc

        logger.debug("Stored %s (encrypted=%s)", key, bool(encrypted))

    def remove(self, key: str) -> None:
        """Delete ``key``; missing keys are ignored."""
        try:
            conn = self._db.connection
            conn.execute("DELETE FROM kv_store WHERE key = ?", (key,))
            conn.commit()
        except sqlite3.Error as exc:
            raise StoreError(f"Failed to remove {key!r}: {exc}") from exc

    def keys(self) -> list[str]:
        rows = self._db.connection.execute("SELECT key FROM kv_store ORDER BY key").fetchall()
        return [row["key"] for row in rows]

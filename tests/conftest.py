"""Shared test fixtures for CareCheck tests."""

from __future__ import annotations

import sys
from datetime import datetime
from pathlib import Path

import pytest

# ---------------------------------------------------------------------------
# Test hermeticity
# ---------------------------------------------------------------------------

@pytest.fixture(autouse=True)
def _force_hermetic_test_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("LLM_PROVIDER", "mock")
    monkeypatch.setenv("ANTHROPIC_API_KEY", "")
    monkeypatch.setenv("OPENAI_API_KEY", "")
    monkeypatch.setenv("DB_PATH", ":memory:")
    monkeypatch.setenv("ENCRYPTION_KEY", "")
    monkeypatch.setenv("RULES_PATH", "")

# Allow running tests without `pip install -e .` by making `src/` importable.
_PROJECT_ROOT = Path(__file__).resolve().parent.parent
_SRC_DIR = _PROJECT_ROOT / "src"
if str(_SRC_DIR) not in sys.path:
    sys.path.insert(0, str(_SRC_DIR))

from carecheck.core.audit.logger import AuditLogger  # noqa: E402
from carecheck.core.storage.database import CheckInDatabase  # noqa: E402
from carecheck.core.storage.store import SqliteKeyValueStore  # noqa: E402
from carecheck.domains.checkin.domain_logic.concern import ConcernAssessment  # noqa: E402
from carecheck.domains.checkin.domain_logic.signal_models import Signal  # noqa: E402


# ---------------------------------------------------------------------------
# Clock
# ---------------------------------------------------------------------------

class FakeClock:
    """Settable wall clock; call it like ``datetime.now``."""

    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        from datetime import timedelta

        self.now = self.now + timedelta(**kwargs)


@pytest.fixture
def clock() -> FakeClock:
    """2026-03-10 15:00 local, a Tuesday afternoon."""
    return FakeClock(datetime(2026, 3, 10, 15, 0))


# ---------------------------------------------------------------------------
# Signal source
# ---------------------------------------------------------------------------

class StubSignalSource:
    """SignalSource returning whatever signals and concern the test sets."""

    def __init__(
        self,
        signals: list[Signal] | None = None,
        concern: ConcernAssessment | None = None,
        time_of_day: str = "afternoon",
    ) -> None:
        self.signals = list(signals or [])
        self.concern = concern or ConcernAssessment(is_concerning=False)
        self.time_of_day = time_of_day
        self.activity_count = 0
        self.fetch_count = 0
        self.error: Exception | None = None

    async def get_all_signals(self) -> list[Signal]:
        self.fetch_count += 1
        if self.error is not None:
            raise self.error
        return list(self.signals)

    def record_activity(self) -> None:
        self.activity_count += 1

    def get_time_of_day_context(self) -> str:
        return self.time_of_day

    async def check_concerning_patterns(self) -> ConcernAssessment:
        return self.concern


@pytest.fixture
def signal_source() -> StubSignalSource:
    return StubSignalSource()


# ---------------------------------------------------------------------------
# Notifications
# ---------------------------------------------------------------------------

class RecordingDispatcher:
    """NotificationDispatcher that records calls instead of delivering."""

    def __init__(self, fail: bool = False) -> None:
        self.sent: list[tuple[str, str, dict]] = []
        self.scheduled: list[tuple[float, str, str, dict]] = []
        self.cancelled = 0
        self.fail = fail

    async def send_now(self, title, body, data):
        if self.fail:
            raise RuntimeError("push service unavailable")
        self.sent.append((title, body, data))

    async def schedule_after(self, seconds, title, body, data):
        if self.fail:
            raise RuntimeError("push service unavailable")
        self.scheduled.append((seconds, title, body, data))

    async def cancel_all(self):
        self.cancelled += 1


@pytest.fixture
def dispatcher() -> RecordingDispatcher:
    return RecordingDispatcher()


# ---------------------------------------------------------------------------
# In-memory storage fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def checkin_db():
    """Create an in-memory CheckInDatabase for testing."""
    db = CheckInDatabase(":memory:")
    db.initialize()
    yield db
    db.close()


@pytest.fixture
def value_encryptor():
    """Create a ValueEncryptor with a test key."""
    from cryptography.fernet import Fernet

    from carecheck.core.storage.encryption import ValueEncryptor

    return ValueEncryptor(Fernet.generate_key().decode())


@pytest.fixture
def kv_store(checkin_db) -> SqliteKeyValueStore:
    return SqliteKeyValueStore(checkin_db)


@pytest.fixture
def audit_logger(checkin_db) -> AuditLogger:
    """Create an AuditLogger backed by in-memory SQLite."""
    return AuditLogger(checkin_db)

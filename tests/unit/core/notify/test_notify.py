"""Tests for notification dispatch, caregiver escalation and background wake."""

from __future__ import annotations

import asyncio

from carecheck.core.notify.background import BackgroundTaskRegistrar, InProcessBackgroundRegistrar
from carecheck.core.notify.caregiver import AuditCaregiverNotifier, CaregiverNotifier
from carecheck.core.notify.dispatch import NotificationDispatcher, OutboxNotificationDispatcher
from carecheck.domains.checkin.models import CheckIn, CheckInAction


def _run(coro):
    """Run an async coroutine synchronously (no pytest-asyncio required)."""
    loop = asyncio.new_event_loop()
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


class TestOutboxDispatcher:
    def test_satisfies_protocol(self):
        assert isinstance(OutboxNotificationDispatcher(), NotificationDispatcher)

    def test_send_now_delivers(self):
        dispatcher = OutboxNotificationDispatcher()
        _run(dispatcher.send_now("👟 Time to Move!", "A short walk?", {"check_in_id": "c1"}))
        [note] = dispatcher.recent()
        assert note.title == "👟 Time to Move!"
        assert note.data == {"check_in_id": "c1"}
        assert note.delivered_at

    def test_schedule_after_delivers_later(self):
        dispatcher = OutboxNotificationDispatcher()

        async def _scenario():
            await dispatcher.schedule_after(0.01, "👟 Reminder", "body", {})
            assert len(dispatcher.outbox) == 0
            await asyncio.sleep(0.05)

        _run(_scenario())
        assert [n.title for n in dispatcher.outbox] == ["👟 Reminder"]

    def test_cancel_all_drops_scheduled(self):
        dispatcher = OutboxNotificationDispatcher()

        async def _scenario():
            await dispatcher.schedule_after(0.01, "👟 Reminder", "body", {})
            await dispatcher.cancel_all()
            await asyncio.sleep(0.05)

        _run(_scenario())
        assert len(dispatcher.outbox) == 0

    def test_outbox_is_bounded(self):
        dispatcher = OutboxNotificationDispatcher(max_entries=2)
        for i in range(3):
            _run(dispatcher.send_now(f"n{i}", "", {}))
        assert [n.title for n in dispatcher.recent()] == ["n2", "n1"]


class TestCaregiverNotifier:
    def _check_in(self) -> CheckIn:
        return CheckIn(
            id="concern_1",
            type="inactivity_check",
            priority="urgent",
            title="Checking In",
            message="Is everything okay?",
            created_at="2026-03-10T15:00:00",
        )

    def test_records_audit_and_notifies(self, audit_logger):
        dispatcher = OutboxNotificationDispatcher()
        notifier = AuditCaregiverNotifier(audit_logger, dispatcher)
        assert isinstance(notifier, CaregiverNotifier)

        action = CheckInAction(id="call", label="Call my caregiver", type="call_caregiver")
        _run(notifier.notify(self._check_in(), action))

        [event] = audit_logger.get_events(action="caregiver_alert_requested")
        assert event["category"] == "care_circle"
        assert event["metadata"]["check_in_id"] == "concern_1"
        assert dispatcher.recent()[0].data["type"] == "caregiver_alert"

    def test_works_without_dispatcher(self, audit_logger):
        notifier = AuditCaregiverNotifier(audit_logger)
        action = CheckInAction(id="call", label="Call my caregiver", type="call_caregiver")
        _run(notifier.notify(self._check_in(), action))
        assert audit_logger.count_events(action="caregiver_alert_requested") == 1


class TestBackgroundRegistrar:
    def test_register_and_wake(self):
        registrar = InProcessBackgroundRegistrar()
        assert isinstance(registrar, BackgroundTaskRegistrar)
        calls = []

        async def _wake():
            calls.append("woke")

        registrar.register("PROACTIVE_CHECK", 900, _wake)
        assert registrar.tasks["PROACTIVE_CHECK"].min_interval_seconds == 900
        assert _run(registrar.wake("PROACTIVE_CHECK")) is True
        assert calls == ["woke"]

    def test_wake_unknown_task(self):
        assert _run(InProcessBackgroundRegistrar().wake("nope")) is False

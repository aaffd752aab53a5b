"""Tests for the check-in orchestrator: ticks, caps, lifecycle and persistence."""

from __future__ import annotations

import asyncio
import random
from datetime import datetime

import pytest

from carecheck.core.llm.providers.mock import MockProvider
from carecheck.core.notify.background import InProcessBackgroundRegistrar
from carecheck.core.notify.caregiver import AuditCaregiverNotifier
from carecheck.core.storage.store import StoreError
from carecheck.domains.checkin.domain_logic.concern import ConcernAssessment
from carecheck.domains.checkin.domain_logic.signal_models import (
    InactivitySignal,
    MedicationSignal,
    StepsSignal,
    WeatherSignal,
)
from carecheck.domains.checkin.messaging.crafter import MessageCrafter
from carecheck.domains.checkin.messaging.fallbacks import FOLLOW_UP_MESSAGES
from carecheck.domains.checkin.models import CheckInAction, PreferencesError, Rule
from carecheck.domains.checkin.orchestrator import (
    BACKGROUND_TASK_NAME,
    CONCERN_MESSAGE,
    CONCERN_SUGGESTION,
    KEY_CHECK_INS,
    KEY_DAILY_COUNT,
    KEY_PREFERENCES,
    KEY_RULE_TRIGGERS,
    CheckInOrchestrator,
)
from carecheck.domains.checkin.rules.catalog import RuleCatalog
from carecheck.domains.checkin.rules.loader import load_rule_catalog
from carecheck.domains.checkin.scheduler import TriggerSource

GOOD_MESSAGE = "A gentle stroll around the block could feel wonderful right now!"


def _run(coro):
    """Run an async coroutine synchronously (no pytest-asyncio required)."""
    loop = asyncio.new_event_loop()
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


def _set_preferences(engine: CheckInOrchestrator, **updates) -> None:
    """Apply preferences in memory without starting the periodic ticker."""
    engine._preferences = engine.get_preferences().merged(updates)


class FailingStore:
    def get(self, key):
        raise StoreError("disk unavailable")

    def set(self, key, value):
        raise StoreError("disk unavailable")

    def remove(self, key):
        raise StoreError("disk unavailable")


class FailingDispatcher:
    async def send_now(self, title, body, data):
        raise RuntimeError("push service unavailable")

    async def schedule_after(self, seconds, title, body, data):
        raise RuntimeError("push service unavailable")

    async def cancel_all(self):
        pass


@pytest.fixture
def make_engine(signal_source, dispatcher, kv_store, audit_logger, clock):
    """Factory for orchestrators sharing the test's store, clock and collaborators."""

    def _make(**overrides) -> CheckInOrchestrator:
        provider = overrides.pop("provider", MockProvider(error=ConnectionError("offline")))
        kwargs = dict(
            signal_source=signal_source,
            catalog=load_rule_catalog(),
            crafter=MessageCrafter(provider, rng=random.Random(0)),
            store=kv_store,
            dispatcher=dispatcher,
            audit=audit_logger,
            caregiver=AuditCaregiverNotifier(audit_logger),
            clock=clock,
        )
        kwargs.update(overrides)
        return CheckInOrchestrator(**kwargs)

    return _make


def _low_steps(current: int = 1200) -> StepsSignal:
    return StepsSignal(current=current, goal=6000, percentage=20)


def _always_rule(rule_id: str) -> Rule:
    return Rule(
        id=rule_id,
        name=rule_id,
        type="wellbeing_check",
        priority="medium",
        message_template="Hi there! How is your day going so far?",
        cooldown_minutes=0,
        max_per_day=5,
        actions=[CheckInAction(id="ok", label="OK", type="positive")],
    )


def _concern(score: int = 5) -> ConcernAssessment:
    return ConcernAssessment(
        is_concerning=True,
        reasons=["Extended period of inactivity", "Multiple missed medication doses"],
        suggest_caregiver_call=score >= 4,
        score=score,
    )


class TestRunCheck:
    def test_step_nudge_end_to_end(self, make_engine, signal_source, dispatcher, kv_store, audit_logger):
        signal_source.signals = [_low_steps(1200)]
        engine = make_engine()

        [check_in] = _run(engine.run_check())

        assert check_in.type == "step_nudge"
        assert check_in.message == "You've taken 1200 steps today. A short walk could feel great!"
        assert check_in.id.startswith("checkin_")
        assert check_in.expires_at == "2026-03-10T16:00:00"
        assert check_in.trigger_signals == ["steps"]
        assert [a.id for a in check_in.actions] == ["yes", "later", "no"]
        assert engine.get_state().today_check_in_count == 1
        assert kv_store.get(KEY_DAILY_COUNT) == {"date": "2026-03-10", "count": 1}
        assert kv_store.get(KEY_CHECK_INS)[0]["id"] == check_in.id
        assert "step_nudge_afternoon" in kv_store.get(KEY_RULE_TRIGGERS)["last_fired"]

        [(title, body, data)] = dispatcher.sent
        assert title == "👟 Time to Move!"
        assert body == check_in.message
        assert data == {"check_in_id": check_in.id, "type": "proactive_checkin"}
        [event] = audit_logger.get_events(action="proactive_checkin")
        assert event["description"] == "Proactive check-in: step_nudge"
        assert event["metadata"]["rule_id"] == "step_nudge_afternoon"

    def test_cooldown_prevents_second_check_in(self, make_engine, signal_source, clock):
        signal_source.signals = [_low_steps()]
        engine = make_engine()
        assert len(_run(engine.run_check())) == 1
        clock.advance(minutes=30)
        assert _run(engine.run_check()) == []

    def test_confident_generation_replaces_template(self, make_engine, signal_source):
        signal_source.signals = [_low_steps()]
        engine = make_engine(provider=MockProvider(GOOD_MESSAGE))
        [check_in] = _run(engine.run_check())
        assert check_in.message == GOOD_MESSAGE

    def test_fallback_never_replaces_template(self, make_engine, signal_source):
        signal_source.signals = [_low_steps(900)]
        engine = make_engine(provider=MockProvider("you should take your medicine now or else"))
        [check_in] = _run(engine.run_check())
        assert check_in.message.startswith("You've taken 900 steps today.")

    def test_daily_cap_across_ticks(self, make_engine, clock):
        catalog = RuleCatalog([_always_rule(f"r{i}") for i in range(6)])
        engine = make_engine(catalog=catalog)
        _set_preferences(engine, max_nudges_per_day=2)

        created = _run(engine.run_check())
        clock.advance(minutes=20)
        created += _run(engine.run_check())

        assert len(created) == 2
        assert engine.get_state().today_check_in_count == 2

    def test_global_cap_below_preference(self, make_engine):
        catalog = RuleCatalog([_always_rule(f"r{i}") for i in range(6)])
        engine = make_engine(catalog=catalog, global_max_nudges_per_day=1)
        assert engine.daily_cap == 1
        assert len(_run(engine.run_check())) == 1

    def test_daily_count_resets_on_new_day(self, make_engine, clock):
        engine = make_engine(catalog=RuleCatalog([_always_rule("r0")]), global_max_nudges_per_day=1)
        assert len(_run(engine.run_check())) == 1
        assert _run(engine.run_check()) == []
        clock.advance(days=1)
        assert len(_run(engine.run_check())) == 1

    @pytest.mark.parametrize("hour,expected", [(23, 0), (3, 0), (10, 1)])
    def test_quiet_hours(self, make_engine, clock, hour, expected):
        clock.now = datetime(2026, 3, 10, hour, 0)
        engine = make_engine(catalog=RuleCatalog([_always_rule("r0")]))
        assert len(_run(engine.run_check())) == expected

    def test_quiet_hours_can_be_switched_off(self, make_engine, clock):
        clock.now = datetime(2026, 3, 10, 23, 0)
        engine = make_engine(catalog=RuleCatalog([_always_rule("r0")]))
        _set_preferences(engine, quiet_hours={"enabled": False})
        assert len(_run(engine.run_check())) == 1

    def test_disabled_engine_does_nothing(self, make_engine, signal_source):
        signal_source.signals = [_low_steps()]
        engine = make_engine()
        _set_preferences(engine, enabled=False)
        assert _run(engine.run_check()) == []
        assert signal_source.fetch_count == 0

    def test_disabled_category_filters_rule(self, make_engine, signal_source):
        signal_source.signals = [_low_steps(), WeatherSignal(temperature=85, condition="clear")]
        engine = make_engine()
        _set_preferences(engine, categories={"steps": False})
        types = [c.type for c in _run(engine.run_check())]
        assert "step_nudge" not in types
        assert "hydration_reminder" in types

    def test_signal_failure_skips_tick(self, make_engine, signal_source):
        signal_source.error = ConnectionError("sensor hub offline")
        assert _run(make_engine().run_check()) == []

    def test_notification_failure_keeps_check_in(self, make_engine, signal_source, kv_store):
        signal_source.signals = [_low_steps()]
        engine = make_engine(dispatcher=FailingDispatcher())
        [check_in] = _run(engine.run_check())
        assert engine.get_pending_check_ins() == [check_in]
        assert kv_store.get(KEY_CHECK_INS)[0]["id"] == check_in.id

    def test_persistence_failure_keeps_memory_state(self, make_engine, signal_source):
        signal_source.signals = [_low_steps()]
        engine = make_engine(store=FailingStore())

        async def _scenario():
            await engine.initialize()
            pending = engine.get_pending_check_ins()
            count = engine.get_state().today_check_in_count
            await engine.stop()
            return pending, count

        pending, count = _run(_scenario())
        assert len(pending) == 1
        assert count == 1

    def test_concurrent_ticks_are_serialized(self, make_engine, signal_source):
        signal_source.signals = [_low_steps()]
        engine = make_engine(provider=MockProvider(GOOD_MESSAGE, delay_seconds=0.02))

        async def _both():
            return await asyncio.gather(engine.run_check(), engine.run_check())

        first, second = _run(_both())
        assert len(first) + len(second) == 1
        assert engine.get_state().today_check_in_count == 1


class TestConcerningPatterns:
    def test_urgent_check_in_created(self, make_engine, signal_source, dispatcher, audit_logger):
        signal_source.concern = _concern()
        engine = make_engine()
        _run(engine.run_check())

        [check_in] = engine.get_pending_check_ins()
        assert check_in.id.startswith("concern_")
        assert check_in.priority == "urgent"
        assert check_in.type == "inactivity_check"
        assert check_in.message == CONCERN_MESSAGE
        assert check_in.suggestion == CONCERN_SUGGESTION
        assert [a.type for a in check_in.actions] == ["positive", "negative", "call_caregiver"]
        assert check_in.expires_at is None
        assert engine.get_state().today_check_in_count == 0
        assert dispatcher.sent[-1][0] == "🏃 Checking In"
        [event] = audit_logger.get_events(action="concerning_pattern_alert")
        assert event["metadata"]["reasons"] == _concern().reasons

    def test_no_suggestion_below_threshold(self, make_engine, signal_source):
        signal_source.concern = _concern(score=2)
        engine = make_engine()
        _run(engine.run_check())
        assert engine.get_pending_check_ins()[0].suggestion is None

    def test_lower_threshold_preference_adds_suggestion(self, make_engine, signal_source):
        signal_source.concern = _concern(score=2)
        engine = make_engine()
        _set_preferences(engine, caregiver_alert_threshold="low")
        _run(engine.run_check())
        assert engine.get_pending_check_ins()[0].suggestion == CONCERN_SUGGESTION

    def test_never_threshold_suppresses_suggestion(self, make_engine, signal_source):
        signal_source.concern = _concern(score=6)
        engine = make_engine()
        _set_preferences(engine, caregiver_alert_threshold="never")
        _run(engine.run_check())
        assert engine.get_pending_check_ins()[0].suggestion is None

    def test_alert_throttled(self, make_engine, signal_source, clock):
        signal_source.concern = _concern()
        engine = make_engine(concern_alert_cooldown_minutes=240)
        _run(engine.run_check())
        clock.advance(minutes=60)
        _run(engine.run_check())
        assert len(engine.get_pending_check_ins()) == 1
        clock.advance(minutes=181)
        _run(engine.run_check())
        assert len(engine.get_pending_check_ins()) == 2

    def test_preference_off(self, make_engine, signal_source):
        signal_source.concern = _concern()
        engine = make_engine()
        _set_preferences(engine, concerning_pattern_alert=False)
        _run(engine.run_check())
        assert engine.get_pending_check_ins() == []


class TestRespond:
    @pytest.fixture
    def engine_with_check_in(self, make_engine, signal_source):
        signal_source.signals = [_low_steps()]
        engine = make_engine()
        [check_in] = _run(engine.run_check())
        return engine, check_in

    def test_positive_response(self, engine_with_check_in, signal_source, audit_logger):
        engine, check_in = engine_with_check_in
        result = _run(engine.respond_to_check_in(check_in.id, "yes"))

        assert result.success
        assert result.follow_up in FOLLOW_UP_MESSAGES["positive"]["step_nudge"]
        assert check_in.dismissed
        assert check_in.response.action_id == "yes"
        assert check_in.response.follow_up == result.follow_up
        assert engine.get_pending_check_ins() == []
        assert signal_source.activity_count == 1
        [event] = audit_logger.get_events(action="proactive_checkin_response")
        assert event["description"] == "Check-in response: I'll go for a walk"

    def test_second_response_rejected(self, engine_with_check_in):
        engine, check_in = engine_with_check_in
        assert _run(engine.respond_to_check_in(check_in.id, "yes")).success
        second = _run(engine.respond_to_check_in(check_in.id, "no"))
        assert not second.success
        assert second.follow_up is None
        assert check_in.response.action_id == "yes"

    def test_unknown_ids(self, engine_with_check_in):
        engine, check_in = engine_with_check_in
        assert not _run(engine.respond_to_check_in("checkin_missing", "yes")).success
        assert not _run(engine.respond_to_check_in(check_in.id, "maybe")).success
        assert check_in.response is None
        assert not check_in.dismissed

    def test_neutral_response(self, engine_with_check_in):
        engine, check_in = engine_with_check_in
        result = _run(engine.respond_to_check_in(check_in.id, "later"))
        assert result.follow_up in FOLLOW_UP_MESSAGES["neutral"]["default"]

    def test_expired_check_in_rejected(self, engine_with_check_in, clock):
        engine, check_in = engine_with_check_in
        clock.advance(minutes=61)
        assert not _run(engine.respond_to_check_in(check_in.id, "yes")).success

    def test_call_caregiver_notifies(self, make_engine, signal_source, audit_logger):
        signal_source.concern = _concern(score=4)
        engine = make_engine()
        _run(engine.run_check())
        [check_in] = engine.get_pending_check_ins()

        result = _run(engine.respond_to_check_in(check_in.id, "call"))

        assert result.success
        assert result.follow_up in FOLLOW_UP_MESSAGES["neutral"]["default"]
        [event] = audit_logger.get_events(action="caregiver_alert_requested")
        assert event["metadata"]["check_in_id"] == check_in.id
        assert event["metadata"]["action_id"] == "call"


class TestDismissAndSnooze:
    def test_dismiss(self, make_engine, signal_source, clock, audit_logger):
        signal_source.signals = [_low_steps()]
        engine = make_engine()
        [check_in] = _run(engine.run_check())

        assert _run(engine.dismiss_check_in(check_in.id))

        assert check_in.dismissed_at == clock.now.isoformat()
        assert engine.get_pending_check_ins() == []
        assert len(audit_logger.get_events(action="proactive_checkin_dismissed")) == 1
        assert not _run(engine.dismiss_check_in(check_in.id))
        assert not _run(engine.respond_to_check_in(check_in.id, "yes")).success

    def test_snooze_extends_expiry_and_schedules_reminder(
        self, make_engine, signal_source, dispatcher, clock
    ):
        signal_source.signals = [_low_steps()]
        engine = make_engine()
        [check_in] = _run(engine.run_check())

        assert _run(engine.snooze_check_in(check_in.id, 45))

        assert check_in.expires_at == "2026-03-10T16:45:00"
        [(seconds, title, body, data)] = dispatcher.scheduled
        assert seconds == 45 * 60
        assert title == "👟 Reminder"
        assert data["check_in_id"] == check_in.id
        clock.advance(minutes=100)
        assert engine.get_pending_check_ins() == [check_in]

    def test_snooze_rejects_unknown_and_non_positive(self, make_engine, signal_source):
        signal_source.signals = [_low_steps()]
        engine = make_engine()
        [check_in] = _run(engine.run_check())
        assert not _run(engine.snooze_check_in("missing"))
        assert not _run(engine.snooze_check_in(check_in.id, 0))
        assert check_in.expires_at == "2026-03-10T16:00:00"


class TestListeners:
    def test_listener_receives_pending_and_unsubscribes(self, make_engine, signal_source):
        signal_source.signals = [_low_steps()]
        engine = make_engine()
        received = []
        unsubscribe = engine.add_listener(received.append)

        [check_in] = _run(engine.run_check())
        assert received == [[check_in]]

        unsubscribe()
        _run(engine.dismiss_check_in(check_in.id))
        assert len(received) == 1

    def test_failing_listener_does_not_break_tick(self, make_engine, signal_source):
        signal_source.signals = [_low_steps()]
        engine = make_engine()

        def _broken(pending):
            raise RuntimeError("ui crashed")

        engine.add_listener(_broken)
        assert len(_run(engine.run_check())) == 1


class TestLifecycle:
    def test_initialize_restores_state(self, make_engine, signal_source, clock, kv_store):
        signal_source.signals = [_low_steps()]
        first = make_engine()
        [check_in] = _run(first.run_check())
        _run(first.update_preferences({"enabled": False}))

        second = make_engine()
        _run(second.initialize())

        assert [c.id for c in second.get_pending_check_ins()] == [check_in.id]
        assert second.get_state().today_check_in_count == 1
        assert not second.get_preferences().enabled
        assert not second.is_running
        assert second.get_state().last_rule_triggers["step_nudge_afternoon"] == clock.now.isoformat()

    def test_initialize_drops_expired(self, make_engine, signal_source, clock, kv_store):
        signal_source.signals = [_low_steps()]
        _run(make_engine().run_check())

        clock.advance(hours=2)
        kv_store.set(KEY_PREFERENCES, {"enabled": False})
        engine = make_engine()
        _run(engine.initialize())

        assert engine.get_pending_check_ins() == []
        assert kv_store.get(KEY_CHECK_INS) == []

    def test_initialize_resets_stale_daily_count(self, make_engine, kv_store):
        kv_store.set(KEY_DAILY_COUNT, {"date": "2026-03-09", "count": 5})
        kv_store.set(KEY_PREFERENCES, {"enabled": False})
        engine = make_engine()
        _run(engine.initialize())
        assert engine.get_state().today_check_in_count == 0
        assert kv_store.get(KEY_DAILY_COUNT) == {"date": "2026-03-10", "count": 0}

    def test_initialize_reads_flat_trigger_history(self, make_engine, signal_source, kv_store):
        signal_source.signals = [_low_steps()]
        kv_store.set(KEY_RULE_TRIGGERS, {"step_nudge_afternoon": "2026-03-10T14:30:00"})
        kv_store.set(KEY_PREFERENCES, {"enabled": False})
        engine = make_engine()
        _run(engine.initialize())
        _set_preferences(engine, enabled=True)
        assert _run(engine.run_check()) == []

    def test_initialize_with_invalid_preferences_uses_defaults(self, make_engine, kv_store):
        kv_store.set(KEY_PREFERENCES, {"max_nudges_per_day": 99, "enabled": False})
        engine = make_engine(catalog=RuleCatalog())

        async def _scenario():
            await engine.initialize()
            running = engine.is_running
            await engine.stop()
            return running

        assert _run(_scenario())
        assert engine.get_preferences().max_nudges_per_day == 3

    def test_start_ticks_and_registers_background(self, make_engine, signal_source):
        signal_source.signals = [_low_steps()]
        registrar = InProcessBackgroundRegistrar()
        engine = make_engine(registrar=registrar)

        async def _scenario():
            await engine.initialize()
            assert engine.is_running
            assert len(engine.get_pending_check_ins()) == 1
            assert await registrar.wake(BACKGROUND_TASK_NAME)
            await engine.stop()

        _run(_scenario())
        assert not engine.is_running
        assert registrar.tasks[BACKGROUND_TASK_NAME].min_interval_seconds == 900
        assert signal_source.fetch_count == 2

    def test_update_preferences_toggles_running(self, make_engine, kv_store, dispatcher):
        engine = make_engine(catalog=RuleCatalog())

        async def _scenario():
            await engine.update_preferences({"enabled": False})
            assert not engine.is_running
            await engine.update_preferences({"enabled": True})
            assert engine.is_running
            await engine.update_preferences({"enabled": False})

        _run(_scenario())
        assert not engine.is_running
        assert kv_store.get(KEY_PREFERENCES)["enabled"] is False
        assert dispatcher.cancelled == 1

    def test_stop_waits_for_in_flight_tick(self, make_engine, kv_store):
        engine = make_engine(
            catalog=RuleCatalog([_always_rule("r0")]),
            provider=MockProvider(GOOD_MESSAGE, delay_seconds=0.3),
            check_interval_minutes=0.1 / 60,
        )

        async def _scenario():
            await engine.initialize()
            # The first interval tick is now generating its message.
            await asyncio.sleep(0.2)
            await engine.update_preferences({"enabled": False})

        _run(_scenario())
        fired = kv_store.get(KEY_RULE_TRIGGERS)["fired_on"]["r0"]["count"]
        assert fired == 2
        assert len(engine.get_pending_check_ins()) == fired
        assert engine.get_state().today_check_in_count == fired

    def test_invalid_preferences_raise(self, make_engine, kv_store):
        engine = make_engine()
        with pytest.raises(PreferencesError):
            _run(engine.update_preferences({"max_nudges_per_day": 10}))
        with pytest.raises(PreferencesError):
            _run(engine.update_preferences({"volume": "loud"}))
        assert kv_store.get(KEY_PREFERENCES) is None
        assert engine.get_preferences().max_nudges_per_day == 3

    def test_handle_foreground_records_activity(self, make_engine, signal_source):
        engine = make_engine(catalog=RuleCatalog())
        _run(engine.handle_foreground())
        assert signal_source.activity_count == 1
        assert signal_source.fetch_count == 1

    def test_handle_foreground_when_disabled(self, make_engine, signal_source):
        engine = make_engine(catalog=RuleCatalog())
        _set_preferences(engine, enabled=False)
        assert _run(engine.handle_foreground()) == []
        assert signal_source.activity_count == 0


class TestRuleControls:
    def test_disabled_rule_persists_across_restart(self, make_engine, signal_source, kv_store):
        signal_source.signals = [_low_steps()]
        first = make_engine()
        assert first.set_rule_enabled("step_nudge_afternoon", False)
        assert not first.set_rule_enabled("no_such_rule", False)
        assert _run(first.run_check()) == []

        kv_store.set(KEY_PREFERENCES, {"enabled": False})
        second = make_engine()
        _run(second.initialize())
        assert not second.catalog.get("step_nudge_afternoon").enabled

    def test_reset_triggers_clears_cooldowns(self, make_engine, signal_source, clock):
        signal_source.signals = [_low_steps()]
        engine = make_engine()
        assert _run(engine.run_check())
        clock.advance(minutes=5)
        assert _run(engine.run_check()) == []
        engine.reset_triggers()
        assert _run(engine.run_check(TriggerSource.MANUAL))


def test_state_snapshot_serializes(make_engine, signal_source):
    signal_source.signals = [
        _low_steps(),
        InactivitySignal(minutes_since_activity=10),
        MedicationSignal(missed_doses=0),
    ]
    engine = make_engine()
    _run(engine.run_check())
    state = engine.get_state().to_dict()
    assert [s["kind"] for s in state["recent_signals"]] == ["steps", "inactivity", "medication"]
    assert state["last_check_time"] == "2026-03-10T15:00:00"

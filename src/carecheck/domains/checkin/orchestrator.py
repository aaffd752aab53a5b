"""Check-in orchestrator — the single writer of check-in engine state.

Owns preferences, the check-in list, rule trigger history and the daily count.
Every tick source (interval timer, foreground, background wake, manual) ends
in :meth:`CheckInOrchestrator.run_check`, which is serialized by a lock so two
ticks never interleave their read-evaluate-persist sequence.

Nothing here raises into the host: collaborator failures (signal source,
store, dispatcher, caregiver notifier) are logged and the tick degrades.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from dataclasses import dataclass, replace
from datetime import date, datetime, timedelta
from typing import Any, Callable

from carecheck.core.audit.logger import AuditLogger
from carecheck.core.notify.background import BackgroundTaskRegistrar
from carecheck.core.notify.caregiver import CaregiverNotifier
from carecheck.core.notify.dispatch import NotificationDispatcher
from carecheck.core.storage.store import KeyValueStore, StoreError
from carecheck.domains.checkin.connectors import SignalSource
from carecheck.domains.checkin.domain_logic.concern import ConcernAssessment
from carecheck.domains.checkin.domain_logic.rule_evaluator import evaluate_rules
from carecheck.domains.checkin.domain_logic.signal_models import Signal
from carecheck.domains.checkin.messaging.crafter import MessageCrafter, MessageRequest, UserContext
from carecheck.domains.checkin.models import (
    CHECK_IN_TYPE_INFO,
    CheckIn,
    CheckInAction,
    CheckInDraft,
    CheckInResponse,
    DailyCheckInCount,
    EngineState,
    Preferences,
    RuleTriggerHistory,
)
from carecheck.domains.checkin.rules.catalog import RuleCatalog
from carecheck.domains.checkin.scheduler import PeriodicTicker, TriggerSource

logger = logging.getLogger(__name__)

KEY_PREFERENCES = "carecheck.preferences"
KEY_CHECK_INS = "carecheck.pending_checkins"
KEY_RULE_TRIGGERS = "carecheck.rule_triggers"
KEY_DAILY_COUNT = "carecheck.daily_count"
KEY_ENGINE_STATE = "carecheck.engine_state"
KEY_RULE_OVERRIDES = "carecheck.rule_overrides"

BACKGROUND_TASK_NAME = "PROACTIVE_CHECK"
DEFAULT_ICON = "💬"
SNOOZE_GRACE = timedelta(hours=1)

CONCERN_TITLE = "Checking In"
CONCERN_MESSAGE = "I noticed a few things that made me want to check on you. Is everything okay?"
CONCERN_SUGGESTION = "Would you like me to reach out to your caregiver?"
CONCERN_ACTIONS = (
    CheckInAction(id="fine", label="I'm doing fine", type="positive", icon="👍"),
    CheckInAction(id="help", label="I need some help", type="negative", icon="🆘"),
    CheckInAction(id="call", label="Call my caregiver", type="call_caregiver", icon="📞"),
)

# Minimum concern score at which the caregiver suggestion is shown.
CAREGIVER_SCORE_BY_THRESHOLD = {"high": 4, "moderate": 3, "low": 2}

Listener = Callable[[list[CheckIn]], None]


@dataclass
class RespondResult:
    success: bool
    follow_up: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {"success": self.success, "follow_up": self.follow_up}


def _new_id(prefix: str) -> str:
    return f"{prefix}_{uuid.uuid4().hex}"


def _icon_for(check_in_type: str) -> str:
    info = CHECK_IN_TYPE_INFO.get(check_in_type)
    return info.icon if info else DEFAULT_ICON


class CheckInOrchestrator:
    """Runs check ticks and manages the check-in response lifecycle.

    Usage::

        engine = CheckInOrchestrator(
            signal_source=collector,
            catalog=load_rule_catalog(),
            crafter=MessageCrafter(provider),
            store=SqliteKeyValueStore(db),
            dispatcher=OutboxNotificationDispatcher(),
        )
        await engine.initialize()
        created = await engine.run_check()
    """

    def __init__(
        self,
        *,
        signal_source: SignalSource,
        catalog: RuleCatalog,
        crafter: MessageCrafter,
        store: KeyValueStore,
        dispatcher: NotificationDispatcher,
        audit: AuditLogger | None = None,
        caregiver: CaregiverNotifier | None = None,
        registrar: BackgroundTaskRegistrar | None = None,
        clock: Callable[[], datetime] = datetime.now,
        check_interval_minutes: float = 15,
        global_max_nudges_per_day: int = 5,
        check_in_ttl_minutes: int = 60,
        enhancement_threshold: float = 0.8,
        concern_alert_cooldown_minutes: int = 240,
        user_name: str = "",
    ) -> None:
        self.signal_source = signal_source
        self.catalog = catalog
        self.crafter = crafter
        self._store = store
        self._dispatcher = dispatcher
        self._audit = audit
        self._caregiver = caregiver
        self._registrar = registrar
        self._clock = clock

        self.check_interval = timedelta(minutes=check_interval_minutes)
        self.global_max_nudges_per_day = global_max_nudges_per_day
        self.check_in_ttl = timedelta(minutes=check_in_ttl_minutes)
        self.enhancement_threshold = enhancement_threshold
        self.concern_alert_cooldown = timedelta(minutes=concern_alert_cooldown_minutes)
        self.user_name = user_name

        self._preferences = Preferences()
        self._check_ins: list[CheckIn] = []
        self._history = RuleTriggerHistory()
        self._daily = DailyCheckInCount()
        self._rule_overrides: dict[str, bool] = {}
        self._state = EngineState()
        self._listeners: list[Listener] = []
        self._lock = asyncio.Lock()
        self._ticker: PeriodicTicker | None = None
        self._initialized = False

    # ---------------------------------------------------------------
    # Persistence helpers
    # ---------------------------------------------------------------

    def _load(self, key: str) -> Any | None:
        try:
            return self._store.get(key)
        except StoreError:
            logger.exception("Failed to load %s; using defaults", key)
            return None

    def _save(self, key: str, value: Any) -> None:
        try:
            self._store.set(key, value)
        except StoreError:
            logger.exception("Failed to persist %s; keeping in-memory state", key)

    def _save_check_ins(self) -> None:
        self._save(KEY_CHECK_INS, [c.to_dict() for c in self._check_ins])

    def _save_state(self) -> None:
        self._save(KEY_ENGINE_STATE, self.get_state().to_dict())

    # ---------------------------------------------------------------
    # Lifecycle
    # ---------------------------------------------------------------

    async def initialize(self) -> None:
        """Load persisted state, register the background hook, start if enabled."""
        if self._initialized:
            return
        now = self._clock()

        data = self._load(KEY_PREFERENCES)
        if data:
            try:
                self._preferences = Preferences.from_dict(data)
            except (ValueError, TypeError):
                logger.exception("Stored preferences are invalid; using defaults")

        data = self._load(KEY_CHECK_INS)
        if data:
            try:
                loaded = [CheckIn.from_dict(item) for item in data]
            except (KeyError, TypeError, ValueError):
                logger.exception("Stored check-ins are unreadable; starting empty")
                loaded = []
            self._check_ins = [c for c in loaded if c.is_pending(now)]
            dropped = len(loaded) - len(self._check_ins)
            if dropped:
                logger.info("Dropped %d expired or dismissed check-ins", dropped)
                self._save_check_ins()

        data = self._load(KEY_RULE_TRIGGERS)
        if data:
            try:
                self._history = RuleTriggerHistory.from_dict(data)
            except (TypeError, ValueError):
                logger.exception("Stored rule trigger history is unreadable; starting empty")

        data = self._load(KEY_DAILY_COUNT)
        if data:
            try:
                self._daily = DailyCheckInCount.from_dict(data)
            except (TypeError, ValueError):
                logger.exception("Stored daily count is unreadable; starting at zero")
        self._roll_daily(now.date())

        data = self._load(KEY_RULE_OVERRIDES)
        if data:
            for rule_id, enabled in data.items():
                if self.catalog.set_enabled(rule_id, bool(enabled)):
                    self._rule_overrides[rule_id] = bool(enabled)
                else:
                    logger.warning("Ignoring override for unknown rule %s", rule_id)

        data = self._load(KEY_ENGINE_STATE)
        if data:
            try:
                self._state = EngineState.from_dict(data)
            except (KeyError, TypeError, ValueError):
                logger.exception("Stored engine state is unreadable; starting fresh")
        # No ticker is armed in this process yet, whatever was persisted.
        self._state.is_running = False

        if self._registrar is not None:
            self._registrar.register(
                BACKGROUND_TASK_NAME,
                self.check_interval.total_seconds(),
                self._background_wake,
            )

        self._initialized = True
        logger.info(
            "Check-in engine initialized: %d rules, %d pending check-ins",
            len(self.catalog),
            len(self._check_ins),
        )

        if self._preferences.enabled:
            await self.start()

    async def start(self) -> None:
        """Mark running, tick once, and arm the periodic ticker."""
        if self._state.is_running:
            return
        self._state.is_running = True
        self._save_state()

        await self.run_check(TriggerSource.START)

        self._ticker = PeriodicTicker(
            self.check_interval.total_seconds(),
            self._interval_tick,
            name="carecheck-ticker",
        )
        self._ticker.start()
        logger.info("Check-in engine started")

    async def stop(self) -> None:
        """Disarm the ticker and cancel any snooze reminders still scheduled.

        An in-flight tick is allowed to finish first, so a rule recorded as
        fired always has its check-in.
        """
        async with self._lock:
            self._state.is_running = False
            self._save_state()
            if self._ticker is not None:
                await self._ticker.stop()
                self._ticker = None
        try:
            await self._dispatcher.cancel_all()
        except Exception:
            logger.exception("Cancelling scheduled notifications failed")
        logger.info("Check-in engine stopped")

    @property
    def is_running(self) -> bool:
        return self._state.is_running

    async def _interval_tick(self) -> None:
        await self.run_check(TriggerSource.INTERVAL)

    async def _background_wake(self) -> None:
        await self.handle_background_wake()

    async def handle_foreground(self) -> list[CheckIn]:
        """Host came to the foreground: count it as activity and tick."""
        if not self._preferences.enabled:
            return []
        self.signal_source.record_activity()
        return await self.run_check(TriggerSource.FOREGROUND)

    async def handle_background_wake(self) -> list[CheckIn]:
        return await self.run_check(TriggerSource.BACKGROUND)

    # ---------------------------------------------------------------
    # Tick
    # ---------------------------------------------------------------

    @property
    def daily_cap(self) -> int:
        return min(self.global_max_nudges_per_day, self._preferences.max_nudges_per_day)

    def _roll_daily(self, today: date) -> None:
        if self._daily.date != today.isoformat():
            self._daily = DailyCheckInCount(date=today.isoformat(), count=0)
            self._save(KEY_DAILY_COUNT, self._daily.to_dict())

    def _in_quiet_hours(self, now: datetime) -> bool:
        return self._preferences.quiet_hours.contains(now.hour)

    def _user_context(self) -> UserContext:
        return UserContext(
            time_of_day=self.signal_source.get_time_of_day_context(),
            name=self.user_name,
        )

    async def run_check(self, source: TriggerSource = TriggerSource.MANUAL) -> list[CheckIn]:
        """Run one evaluation tick and return the check-ins it created."""
        async with self._lock:
            return await self._run_check(source)

    async def _run_check(self, source: TriggerSource) -> list[CheckIn]:
        now = self._clock()
        if not self._preferences.enabled:
            logger.debug("Check (%s) skipped: engine disabled", source.value)
            return []
        if self._in_quiet_hours(now):
            logger.debug("Check (%s) skipped: quiet hours", source.value)
            return []

        try:
            signals = await self.signal_source.get_all_signals()
        except Exception:
            logger.exception("Signal collection failed; skipping check")
            return []
        self._state.recent_signals = list(signals)

        today = now.date()
        self._roll_daily(today)
        cap = self.daily_cap

        drafts = evaluate_rules(
            signals,
            self.catalog.for_preferences(self._preferences),
            self._history,
            self._daily.count_for(today),
            cap,
            now,
        )
        if drafts:
            self._save(KEY_RULE_TRIGGERS, self._history.to_dict())

        drafts = [
            d for d in drafts
            if self._preferences.category_enabled(
                CHECK_IN_TYPE_INFO[d.type].category if d.type in CHECK_IN_TYPE_INFO else None
            )
        ]

        created: list[CheckIn] = []
        user_context = self._user_context()
        for draft in drafts:
            if self._daily.count_for(today) >= cap:
                logger.info("Daily cap %d reached; %s not created", cap, draft.rule_id)
                break
            message = await self._enhance(draft, signals, user_context)
            check_in = CheckIn(
                id=_new_id("checkin"),
                type=draft.type,
                priority=draft.priority,
                title=draft.title,
                message=message,
                created_at=now.isoformat(),
                expires_at=(now + self.check_in_ttl).isoformat(),
                trigger_signals=list(draft.trigger_signals),
                actions=list(draft.actions),
            )
            self._check_ins.append(check_in)
            self._daily.increment(today)
            self._save_check_ins()
            self._save(KEY_DAILY_COUNT, self._daily.to_dict())

            await self._send_notification(check_in)
            self._audit_log(
                "proactive_checkin",
                "system",
                f"Proactive check-in: {check_in.type}",
                {"check_in_id": check_in.id, "type": check_in.type, "rule_id": draft.rule_id},
            )
            created.append(check_in)

        if created:
            self._publish()

        self._state.last_check_time = now.isoformat()
        self._save_state()
        logger.info(
            "Check (%s) complete: %d signals, %d check-ins created (%d/%d today)",
            source.value,
            len(signals),
            len(created),
            self._daily.count_for(today),
            cap,
        )

        await self._check_concerning_patterns(now)
        return created

    async def _enhance(
        self,
        draft: CheckInDraft,
        signals: list[Signal],
        user_context: UserContext,
    ) -> str:
        """Prefer generated copy, but never let a fallback replace the rule's template."""
        template = self.crafter.personalize(draft.message, user_context)
        crafted = await self.crafter.craft(MessageRequest(
            check_in_type=draft.type,
            signals=signals,
            user_context=user_context,
        ))
        if crafted.confidence > self.enhancement_threshold:
            return crafted.message
        logger.debug("Keeping template for %s (%s)", draft.rule_id, crafted.reason or crafted.source)
        return template

    async def _check_concerning_patterns(self, now: datetime) -> None:
        if not self._preferences.concerning_pattern_alert:
            return
        try:
            assessment = await self.signal_source.check_concerning_patterns()
        except Exception:
            logger.exception("Concerning-pattern check failed")
            return
        if not assessment.is_concerning:
            return

        last = self._state.last_concern_alert
        if (
            last
            and self.concern_alert_cooldown
            and now - datetime.fromisoformat(last) < self.concern_alert_cooldown
        ):
            logger.debug("Concerning pattern seen but alert throttled: %s", assessment.reasons)
            return

        check_in = CheckIn(
            id=_new_id("concern"),
            type="inactivity_check",
            priority="urgent",
            title=CONCERN_TITLE,
            message=CONCERN_MESSAGE,
            suggestion=CONCERN_SUGGESTION if self._suggest_caregiver(assessment) else None,
            created_at=now.isoformat(),
            actions=list(CONCERN_ACTIONS),
        )
        self._check_ins.append(check_in)
        self._save_check_ins()
        self._state.last_concern_alert = now.isoformat()
        self._save_state()

        await self._send_notification(check_in)
        self._audit_log(
            "concerning_pattern_alert",
            "system",
            "Concerning pattern detected",
            {"check_in_id": check_in.id, "reasons": list(assessment.reasons)},
        )
        logger.warning("Concerning pattern alert raised: %s", assessment.reasons)
        self._publish()

    def _suggest_caregiver(self, assessment: ConcernAssessment) -> bool:
        threshold = self._preferences.caregiver_alert_threshold
        if threshold == "never":
            return False
        return assessment.suggest_caregiver_call or (
            assessment.score >= CAREGIVER_SCORE_BY_THRESHOLD[threshold]
        )

    # ---------------------------------------------------------------
    # Collaborators
    # ---------------------------------------------------------------

    async def _send_notification(self, check_in: CheckIn) -> None:
        try:
            await self._dispatcher.send_now(
                f"{_icon_for(check_in.type)} {check_in.title}",
                check_in.message,
                {"check_in_id": check_in.id, "type": "proactive_checkin"},
            )
        except Exception:
            logger.exception("Notification for check-in %s failed", check_in.id)

    def _audit_log(
        self,
        action: str,
        category: str,
        description: str,
        metadata: dict[str, Any],
    ) -> None:
        if self._audit is not None:
            self._audit.log(action, category, description, metadata)

    def add_listener(self, callback: Listener) -> Callable[[], None]:
        """Subscribe to pending check-in updates; returns the unsubscribe function."""
        self._listeners.append(callback)

        def unsubscribe() -> None:
            if callback in self._listeners:
                self._listeners.remove(callback)

        return unsubscribe

    def _publish(self) -> None:
        pending = self.get_pending_check_ins()
        for callback in list(self._listeners):
            try:
                callback(pending)
            except Exception:
                logger.exception("Check-in listener failed")

    # ---------------------------------------------------------------
    # Response lifecycle
    # ---------------------------------------------------------------

    def _find(self, check_in_id: str) -> CheckIn | None:
        for check_in in self._check_ins:
            if check_in.id == check_in_id:
                return check_in
        return None

    async def respond_to_check_in(self, check_in_id: str, action_id: str) -> RespondResult:
        """Record the user's answer; a check-in can be answered once."""
        now = self._clock()
        check_in = self._find(check_in_id)
        if check_in is None or check_in.response is not None or not check_in.is_pending(now):
            return RespondResult(success=False)
        action = check_in.find_action(action_id)
        if action is None:
            return RespondResult(success=False)

        follow_up = self.crafter.follow_up(check_in.type, action.sentiment, self._user_context())
        check_in.response = CheckInResponse(
            action_id=action.id,
            timestamp=now.isoformat(),
            follow_up=follow_up,
        )
        check_in.dismissed = True
        check_in.dismissed_at = now.isoformat()
        self._save_check_ins()
        self.signal_source.record_activity()
        self._publish()

        self._audit_log(
            "proactive_checkin_response",
            "system",
            f"Check-in response: {action.label}",
            {"check_in_id": check_in.id, "action_id": action.id, "type": check_in.type},
        )

        if action.type == "call_caregiver":
            await self._notify_caregiver(check_in, action)

        return RespondResult(success=True, follow_up=follow_up)

    async def _notify_caregiver(self, check_in: CheckIn, action: CheckInAction) -> None:
        if self._caregiver is None:
            logger.warning("Caregiver contact requested but no notifier is configured")
            return
        try:
            await self._caregiver.notify(check_in, action)
        except Exception:
            logger.exception("Caregiver notification for %s failed", check_in.id)

    async def dismiss_check_in(self, check_in_id: str) -> bool:
        now = self._clock()
        check_in = self._find(check_in_id)
        if check_in is None or check_in.dismissed:
            return False
        check_in.dismissed = True
        check_in.dismissed_at = now.isoformat()
        self._save_check_ins()
        self._publish()
        self._audit_log(
            "proactive_checkin_dismissed",
            "system",
            f"Check-in dismissed: {check_in.type}",
            {"check_in_id": check_in.id, "type": check_in.type},
        )
        return True

    async def snooze_check_in(self, check_in_id: str, minutes: int = 30) -> bool:
        """Push the expiry out and schedule a reminder after ``minutes``."""
        now = self._clock()
        check_in = self._find(check_in_id)
        if check_in is None or minutes <= 0 or not check_in.is_pending(now):
            return False

        check_in.expires_at = (now + timedelta(minutes=minutes) + SNOOZE_GRACE).isoformat()
        try:
            await self._dispatcher.schedule_after(
                minutes * 60,
                f"{_icon_for(check_in.type)} Reminder",
                check_in.message,
                {"check_in_id": check_in.id, "type": "proactive_checkin"},
            )
        except Exception:
            logger.exception("Scheduling reminder for %s failed", check_in.id)

        self._save_check_ins()
        self._publish()
        return True

    # ---------------------------------------------------------------
    # Queries and configuration
    # ---------------------------------------------------------------

    def get_pending_check_ins(self) -> list[CheckIn]:
        now = self._clock()
        return [c for c in self._check_ins if c.is_pending(now)]

    def get_preferences(self) -> Preferences:
        return self._preferences

    async def update_preferences(self, updates: dict[str, Any]) -> Preferences:
        """Merge and persist ``updates``; toggling ``enabled`` starts or stops the engine.

        Raises:
            PreferencesError: If the merged preferences are invalid.
        """
        self._preferences = self._preferences.merged(updates)
        self._save(KEY_PREFERENCES, self._preferences.to_dict())

        if self._preferences.enabled and not self._state.is_running:
            await self.start()
        elif not self._preferences.enabled and self._state.is_running:
            await self.stop()
        return self._preferences

    def get_state(self) -> EngineState:
        """Snapshot of the engine; counts reflect today's date."""
        return replace(
            self._state,
            today_check_in_count=self._daily.count_for(self._clock().date()),
            recent_signals=list(self._state.recent_signals),
            last_rule_triggers=dict(self._history.last_fired),
        )

    def set_rule_enabled(self, rule_id: str, enabled: bool) -> bool:
        """Enable or disable a catalog rule; persists across restarts."""
        if not self.catalog.set_enabled(rule_id, enabled):
            return False
        self._rule_overrides[rule_id] = enabled
        self._save(KEY_RULE_OVERRIDES, dict(self._rule_overrides))
        return True

    def reset_triggers(self) -> None:
        """Forget all rule firings so cooldowns and per-rule limits start over."""
        self._history.clear()
        self._save(KEY_RULE_TRIGGERS, self._history.to_dict())
        logger.info("Rule trigger history cleared")

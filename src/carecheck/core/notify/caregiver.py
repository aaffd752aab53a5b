"""Caregiver escalation for check-ins answered with "call my caregiver"."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Protocol, runtime_checkable

from carecheck.core.audit.logger import AuditLogger
from carecheck.core.notify.dispatch import NotificationDispatcher

if TYPE_CHECKING:
    from carecheck.domains.checkin.models import CheckIn, CheckInAction

logger = logging.getLogger(__name__)

CAREGIVER_ALERT_ACTION = "caregiver_alert_requested"


@runtime_checkable
class CaregiverNotifier(Protocol):
    """Invoked when the user picks a ``call_caregiver`` action."""

    async def notify(self, check_in: CheckIn, action: CheckInAction) -> None: ...


class AuditCaregiverNotifier:
    """Records the request in the care-circle audit trail and raises a notification.

    Actual caregiver contact (call, SMS, portal alert) is performed by whoever
    consumes the audit trail or the outbox.
    """

    def __init__(
        self,
        audit: AuditLogger,
        dispatcher: NotificationDispatcher | None = None,
    ) -> None:
        self._audit = audit
        self._dispatcher = dispatcher

    async def notify(self, check_in: CheckIn, action: CheckInAction) -> None:
        self._audit.log(
            CAREGIVER_ALERT_ACTION,
            "care_circle",
            f"Caregiver contact requested from check-in: {check_in.type}",
            {
                "check_in_id": check_in.id,
                "action_id": action.id,
                "priority": check_in.priority,
            },
        )
        logger.info("Caregiver contact requested (check-in %s)", check_in.id)

        if self._dispatcher is not None:
            await self._dispatcher.send_now(
                "📞 Contacting your caregiver",
                "We've let your caregiver know you'd like to talk.",
                {"check_in_id": check_in.id, "type": "caregiver_alert"},
            )

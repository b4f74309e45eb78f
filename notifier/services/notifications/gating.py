import enum
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from notifier.db.models import MessageSource, NotificationSettings
from notifier.utils.datetime_utils import is_in_quiet_hours
from notifier.utils.errors import ValidationFailure
from .dedup import AlertKind, SourceReference


class DeliveryMode(enum.Enum):
    # Stored message picked up by the dispatcher
    QUEUED = "queued"
    # Generated and sent in the same invocation (digests)
    DIRECT = "direct"


class GateVerdict(enum.Enum):
    ALLOW = "allow"
    DEFER = "defer"
    CANCEL = "cancel"


@dataclass(frozen=True)
class GateDecision:
    verdict: GateVerdict
    reason: Optional[str] = None

    @property
    def allowed(self) -> bool:
        return self.verdict is GateVerdict.ALLOW


ALLOW = GateDecision(GateVerdict.ALLOW)

MISSING_ADDRESS_REASON = "Missing target address"
REMINDERS_DISABLED_REASON = "Reminders disabled by user"
QUIET_HOURS_REASON = "Quiet hours"

_ALERT_FLAGS = {
    AlertKind.URGENT: "urgent_alerts_enabled",
    AlertKind.DEADLINE_TODAY: "deadline_alerts_enabled",
    AlertKind.DEADLINE_TOMORROW: "deadline_alerts_enabled",
    AlertKind.ASSIGNMENT: "assignment_alerts_enabled",
}

_SOURCE_FLAGS = {
    MessageSource.CALENDAR_REMINDER: "calendar_reminders_enabled",
    MessageSource.DAILY_DIGEST: "daily_summary_enabled",
    MessageSource.WEEKLY_SUMMARY: "weekly_summary_enabled",
    MessageSource.MONTHLY_SUMMARY: "monthly_summary_enabled",
}


@dataclass
class NotificationRequest:
    """A prospective send, from either the queue or a direct digest run."""

    source: MessageSource
    delivery_mode: DeliveryMode
    address: Optional[str]
    settings: Optional[NotificationSettings] = None
    target_user_id: Optional[str] = None
    source_reference: Optional[str] = None

    @property
    def alert_kind(self) -> Optional[AlertKind]:
        if self.source != MessageSource.REALTIME_ALERT or not self.source_reference:
            return None
        try:
            return SourceReference.parse(self.source_reference).alert_kind
        except (ValidationFailure, ValueError):
            return None


class NotificationGate:
    """Preference and quiet-hours checks shared by the queued and direct paths."""

    def evaluate(self, request: NotificationRequest, now: datetime) -> GateDecision:
        if not request.address:
            return GateDecision(GateVerdict.CANCEL, MISSING_ADDRESS_REASON)

        settings = request.settings
        if settings is None:
            return ALLOW

        if request.delivery_mode is DeliveryMode.QUEUED and settings.reminders_enabled is False:
            return GateDecision(GateVerdict.CANCEL, REMINDERS_DISABLED_REASON)

        flag = self._preference_flag(request)
        if flag and getattr(settings, flag) is False:
            return GateDecision(GateVerdict.CANCEL, f"Disabled by user ({flag})")

        if settings.quiet_hours_enabled and is_in_quiet_hours(
            settings.quiet_hours_start, settings.quiet_hours_end, now
        ):
            return GateDecision(GateVerdict.DEFER, QUIET_HOURS_REASON)

        return ALLOW

    @staticmethod
    def _preference_flag(request: NotificationRequest) -> Optional[str]:
        kind = request.alert_kind
        if kind is not None:
            return _ALERT_FLAGS[kind]
        return _SOURCE_FLAGS.get(request.source)

from datetime import datetime, timezone

from notifier.db.models import MessageSource, NotificationSettings
from notifier.services.notifications.gating import (
    MISSING_ADDRESS_REASON,
    QUIET_HOURS_REASON,
    REMINDERS_DISABLED_REASON,
    DeliveryMode,
    GateVerdict,
    NotificationGate,
    NotificationRequest,
)

# 14:00 local, outside the 22:00-07:00 quiet window
DAYTIME = datetime(2026, 2, 9, 17, 0, tzinfo=timezone.utc)
# 23:30 local
NIGHT = datetime(2026, 2, 10, 2, 30, tzinfo=timezone.utc)


def make_settings(**overrides) -> NotificationSettings:
    values = dict(
        calendar_reminders_enabled=True,
        daily_summary_enabled=True,
        weekly_summary_enabled=True,
        monthly_summary_enabled=True,
        urgent_alerts_enabled=True,
        deadline_alerts_enabled=True,
        assignment_alerts_enabled=True,
        reminders_enabled=True,
        quiet_hours_enabled=True,
        quiet_hours_start="22:00",
        quiet_hours_end="07:00",
    )
    values.update(overrides)
    return NotificationSettings(**values)


def queued(source=MessageSource.DASHBOARD, address="5511999990000", **kwargs):
    return NotificationRequest(
        source=source, delivery_mode=DeliveryMode.QUEUED, address=address, **kwargs
    )


class TestNotificationGate:
    """Test preference and quiet-hours decisions."""

    def setup_method(self):
        self.gate = NotificationGate()

    def test_missing_address_cancels(self):
        decision = self.gate.evaluate(queued(address=None, settings=make_settings()), DAYTIME)

        assert decision.verdict is GateVerdict.CANCEL
        assert decision.reason == MISSING_ADDRESS_REASON

    def test_no_settings_allows(self):
        decision = self.gate.evaluate(queued(), NIGHT)
        assert decision.allowed

    def test_daytime_send_allowed(self):
        decision = self.gate.evaluate(queued(settings=make_settings()), DAYTIME)
        assert decision.allowed

    def test_reminders_disabled_cancels_queued_message(self):
        decision = self.gate.evaluate(
            queued(settings=make_settings(reminders_enabled=False)), DAYTIME
        )

        assert decision.verdict is GateVerdict.CANCEL
        assert decision.reason == REMINDERS_DISABLED_REASON

    def test_reminders_flag_does_not_gate_direct_digests(self):
        request = NotificationRequest(
            source=MessageSource.WEEKLY_SUMMARY,
            delivery_mode=DeliveryMode.DIRECT,
            address="5511999990000",
            settings=make_settings(reminders_enabled=False),
        )
        assert self.gate.evaluate(request, DAYTIME).allowed

    def test_alert_kind_selects_flag(self):
        request = queued(
            source=MessageSource.REALTIME_ALERT,
            settings=make_settings(deadline_alerts_enabled=False),
            source_reference="alert:deadline-d1:card-9:2026-02-09",
        )

        decision = self.gate.evaluate(request, DAYTIME)

        assert decision.verdict is GateVerdict.CANCEL
        assert decision.reason == "Disabled by user (deadline_alerts_enabled)"

    def test_other_alert_kinds_unaffected(self):
        request = queued(
            source=MessageSource.REALTIME_ALERT,
            settings=make_settings(deadline_alerts_enabled=False),
            source_reference="alert:urgent:card-9:2026-02-09",
        )
        assert self.gate.evaluate(request, DAYTIME).allowed

    def test_calendar_reminders_disabled(self):
        request = queued(
            source=MessageSource.CALENDAR_REMINDER,
            settings=make_settings(calendar_reminders_enabled=False),
        )

        decision = self.gate.evaluate(request, DAYTIME)

        assert decision.verdict is GateVerdict.CANCEL
        assert decision.reason == "Disabled by user (calendar_reminders_enabled)"

    def test_quiet_hours_defer(self):
        decision = self.gate.evaluate(queued(settings=make_settings()), NIGHT)

        assert decision.verdict is GateVerdict.DEFER
        assert decision.reason == QUIET_HOURS_REASON

    def test_quiet_hours_off(self):
        decision = self.gate.evaluate(
            queued(settings=make_settings(quiet_hours_enabled=False)), NIGHT
        )
        assert decision.allowed

    def test_disabled_wins_over_quiet_hours(self):
        """A message the user turned off is cancelled, not held until morning."""
        request = queued(
            source=MessageSource.CALENDAR_REMINDER,
            settings=make_settings(calendar_reminders_enabled=False),
        )
        assert self.gate.evaluate(request, NIGHT).verdict is GateVerdict.CANCEL

    def test_malformed_alert_reference_falls_back_to_source(self):
        request = queued(
            source=MessageSource.REALTIME_ALERT,
            settings=make_settings(urgent_alerts_enabled=False),
            source_reference="alert:broken",
        )
        assert self.gate.evaluate(request, DAYTIME).allowed

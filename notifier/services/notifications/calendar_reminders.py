from datetime import datetime
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from notifier.config.settings import settings
from notifier.db.models import MessageSource, ScheduledMessage, TargetType
from notifier.providers.business_data_provider import BusinessDataProvider, Subscriber
from notifier.utils.datetime_utils import to_utc, utc_now
from notifier.utils.errors import StoreFailure
from notifier.utils.logging import get_logger
from .content.calendar_reminder import (
    ReminderCandidate,
    plan_calendar_reminders,
    reminder_lookahead,
    resolve_reminder_days,
)
from .dedup import CreateOutcome, DedupGuard
from .report import RunReport

logger = get_logger()


class CalendarReminderProcessor:
    """Queues reminders ahead of upcoming calendar events for each subscriber."""

    def __init__(
        self,
        db_session: AsyncSession,
        provider: Optional[BusinessDataProvider] = None,
        guard: Optional[DedupGuard] = None,
    ):
        self.db = db_session
        self.provider = provider or BusinessDataProvider(db_session)
        self.guard = guard or DedupGuard(db_session)

    async def run(self, now: Optional[datetime] = None) -> RunReport:
        now = to_utc(now or utc_now())
        report = RunReport()

        subscribers = await self.provider.get_subscribers("calendar_reminders_enabled")
        if not subscribers:
            logger.info("No calendar reminder subscribers")
            return report

        logger.info("Processing calendar reminders", subscribers=len(subscribers))

        for subscriber in subscribers:
            profile_id = subscriber.profile_id
            try:
                report.merge(await self._process_subscriber(subscriber, now))
            except Exception as e:
                logger.opt(exception=e).error(
                    f"Calendar reminders failed for user {profile_id}"
                )
                report.errors += 1

        return report

    async def _process_subscriber(self, subscriber: Subscriber, now: datetime) -> RunReport:
        report = RunReport()
        profile_id = subscriber.profile_id

        phone = await self.provider.get_phone(profile_id)
        if not phone:
            logger.debug(f"No phone for user {profile_id}, skipping calendar reminders")
            return report

        reminder_days = resolve_reminder_days(subscriber.settings.calendar_reminder_days)
        if not reminder_days:
            logger.debug(f"No lead days set for user {profile_id}, skipping calendar reminders")
            return report

        events = await self.provider.get_events_between(
            now,
            now + reminder_lookahead(reminder_days),
            limit=settings.CALENDAR_EVENTS_LIMIT,
        )
        candidates = plan_calendar_reminders(
            events, reminder_days, subscriber.settings.calendar_reminder_time, now
        )

        for candidate in candidates:
            if candidate.is_past:
                report.skipped += 1
                continue
            try:
                outcome = await self.guard.create_if_new(
                    self._build_message(profile_id, phone, candidate)
                )
            except StoreFailure as e:
                logger.error(f"Calendar reminder insert failed: {e.message}")
                report.errors += 1
                continue

            if outcome is CreateOutcome.CREATED:
                report.processed += 1
                logger.info(
                    "Calendar reminder created",
                    source_reference=str(candidate.reference),
                    user_id=profile_id,
                )
            else:
                report.skipped += 1

        return report

    @staticmethod
    def _build_message(
        profile_id: str, phone: str, candidate: ReminderCandidate
    ) -> ScheduledMessage:
        message = ScheduledMessage(
            target_type=TargetType.USER,
            target_user_id=profile_id,
            target_phone=phone,
            message_type="text",
            content=candidate.content,
            scheduled_for=candidate.scheduled_for,
            source=MessageSource.CALENDAR_REMINDER,
            source_id=candidate.event_id,
            max_retries=settings.DEFAULT_MAX_RETRIES,
            message_metadata=dict(candidate.metadata),
        )
        message.set_source_reference(candidate.reference)
        return message

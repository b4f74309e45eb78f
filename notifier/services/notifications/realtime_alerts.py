from datetime import date, datetime, timedelta
from typing import List, Optional, Sequence, Tuple

from sqlalchemy.ext.asyncio import AsyncSession

from notifier.config.settings import settings
from notifier.db.models import KanbanCard, MessageSource, ScheduledMessage, TargetType
from notifier.providers.business_data_provider import BusinessDataProvider, Subscriber
from notifier.utils.datetime_utils import (
    business_now,
    get_date_range_for_period,
    local_to_utc,
    to_utc,
    utc_now,
)
from notifier.utils.errors import StoreFailure
from notifier.utils.logging import get_logger
from .content.realtime_alert import render_alert
from .dedup import AlertKind, CreateOutcome, DedupGuard, SourceReference
from .report import RunReport

logger = get_logger()

URGENT_LOOKBACK = timedelta(hours=24)
ASSIGNMENT_LOOKBACK = timedelta(hours=2)

AlertBatch = List[Tuple[AlertKind, KanbanCard]]


class RealtimeAlertProcessor:
    """
    Queues immediate alerts for urgent cards, deadlines due today or tomorrow
    and fresh assignments. Alerts dedup per card and business-local day.
    """

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

        subscribers = await self.provider.get_subscribers(
            "urgent_alerts_enabled",
            "deadline_alerts_enabled",
            "assignment_alerts_enabled",
        )
        if not subscribers:
            logger.info("No alert subscribers")
            return report

        logger.info("Processing realtime alerts", subscribers=len(subscribers))
        finished_ids = await self.provider.get_finished_column_ids()
        today = business_now(now).date()

        for subscriber in subscribers:
            profile_id = subscriber.profile_id
            try:
                report.merge(
                    await self._process_subscriber(subscriber, finished_ids, today, now)
                )
            except Exception as e:
                logger.opt(exception=e).error(f"Realtime alerts failed for user {profile_id}")
                report.errors += 1

        return report

    async def collect_alerts(
        self,
        subscriber: Subscriber,
        finished_ids: Sequence[str],
        today: date,
        now: datetime,
    ) -> AlertBatch:
        """Cards to alert the subscriber about, per enabled alert kind."""
        limit = settings.ALERT_CARDS_LIMIT
        user_settings = subscriber.settings
        alerts: AlertBatch = []

        if user_settings.urgent_alerts_enabled:
            cards = await self.provider.get_urgent_cards(
                finished_ids, updated_since=now - URGENT_LOOKBACK, limit=limit
            )
            alerts.extend((AlertKind.URGENT, card) for card in cards)

        if user_settings.deadline_alerts_enabled:
            today_range = get_date_range_for_period("today", now)
            tomorrow_end = local_to_utc(today + timedelta(days=2), datetime.min.time())
            due_today = await self.provider.get_cards_due_between(
                today_range.start, today_range.end, finished_ids, limit
            )
            due_tomorrow = await self.provider.get_cards_due_between(
                today_range.end, tomorrow_end, finished_ids, limit
            )
            alerts.extend((AlertKind.DEADLINE_TODAY, card) for card in due_today)
            alerts.extend((AlertKind.DEADLINE_TOMORROW, card) for card in due_tomorrow)

        if user_settings.assignment_alerts_enabled:
            cards = await self.provider.get_cards_assigned_to(
                subscriber.profile.user_id,
                updated_since=now - ASSIGNMENT_LOOKBACK,
                exclude_column_ids=finished_ids,
                limit=limit,
            )
            alerts.extend((AlertKind.ASSIGNMENT, card) for card in cards)

        return alerts

    async def _process_subscriber(
        self,
        subscriber: Subscriber,
        finished_ids: Sequence[str],
        today: date,
        now: datetime,
    ) -> RunReport:
        report = RunReport()
        profile_id = subscriber.profile_id

        phone = await self.provider.get_phone(profile_id)
        if not phone:
            return report

        alerts = await self.collect_alerts(subscriber, finished_ids, today, now)
        messages = [
            self._build_message(profile_id, phone, kind, card, today, now)
            for kind, card in alerts
        ]

        for message in messages:
            try:
                outcome = await self.guard.create_if_new(message)
            except StoreFailure as e:
                logger.error(f"Alert insert failed: {e.message}")
                report.errors += 1
                continue

            if outcome is CreateOutcome.CREATED:
                report.processed += 1
                logger.info(
                    "Alert created",
                    source_reference=message.source_reference,
                    user_id=profile_id,
                )
            else:
                report.skipped += 1

        return report

    @staticmethod
    def _build_message(
        profile_id: str,
        phone: str,
        kind: AlertKind,
        card: KanbanCard,
        today: date,
        now: datetime,
    ) -> ScheduledMessage:
        message = ScheduledMessage(
            target_type=TargetType.USER,
            target_user_id=profile_id,
            target_phone=phone,
            message_type="text",
            content=render_alert(card, kind),
            scheduled_for=now,
            source=MessageSource.REALTIME_ALERT,
            source_id=card.id,
            max_retries=settings.DEFAULT_MAX_RETRIES,
            message_metadata={
                "alert_type": kind.value,
                "card_title": card.title,
                "created_via": "realtime_alerts_processor",
            },
        )
        message.set_source_reference(SourceReference.alert(kind, card.id, today))
        return message

import asyncio
import calendar
from dataclasses import dataclass
from datetime import datetime
from typing import Awaitable, Callable, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from notifier.config.settings import settings
from notifier.db.models import MessageSource, NotificationSettings, UserProfile
from notifier.providers.business_data_provider import BusinessDataProvider, Subscriber
from notifier.services.channels.base import OutboundChannel
from notifier.services.memory_service import MemoryService
from notifier.utils.datetime_utils import (
    business_now,
    is_within_scheduled_time,
    sunday_based_weekday,
    to_utc,
    utc_now,
)
from notifier.utils.errors import NotifierError
from notifier.utils.logging import get_logger
from .content import (
    generate_daily_digest,
    generate_monthly_summary,
    generate_weekly_summary,
)
from .gating import DeliveryMode, GateVerdict, NotificationGate, NotificationRequest
from .report import RunReport

logger = get_logger()

Generator = Callable[[BusinessDataProvider, UserProfile, datetime], Awaitable[str]]

DEFAULT_WEEKLY_DAY = 1  # Monday
DEFAULT_MONTHLY_DAY = 1


@dataclass(frozen=True)
class DigestCadence:
    source: MessageSource
    enabled_field: str
    time_field: str
    default_time: str
    importance: float
    summary_label: str
    generate: Generator


DAILY_DIGEST = DigestCadence(
    source=MessageSource.DAILY_DIGEST,
    enabled_field="daily_summary_enabled",
    time_field="daily_summary_time",
    default_time="08:00",
    importance=0.2,
    summary_label="resumo diário",
    generate=generate_daily_digest,
)

WEEKLY_SUMMARY = DigestCadence(
    source=MessageSource.WEEKLY_SUMMARY,
    enabled_field="weekly_summary_enabled",
    time_field="weekly_summary_time",
    default_time="09:00",
    importance=0.3,
    summary_label="resumo semanal",
    generate=generate_weekly_summary,
)

MONTHLY_SUMMARY = DigestCadence(
    source=MessageSource.MONTHLY_SUMMARY,
    enabled_field="monthly_summary_enabled",
    time_field="monthly_summary_time",
    default_time="10:00",
    importance=0.4,
    summary_label="resumo mensal",
    generate=generate_monthly_summary,
)


def is_digest_day(
    cadence: DigestCadence, user_settings: NotificationSettings, now: datetime
) -> bool:
    """Weekly digests match the configured weekday, monthly ones the day of month."""
    today = business_now(now).date()

    if cadence.source == MessageSource.WEEKLY_SUMMARY:
        target = user_settings.weekly_summary_day
        if target is None:
            target = DEFAULT_WEEKLY_DAY
        return sunday_based_weekday(today) == target

    if cadence.source == MessageSource.MONTHLY_SUMMARY:
        target = user_settings.monthly_summary_day or DEFAULT_MONTHLY_DAY
        # Days past the end of a short month fire on its last day
        last_day = calendar.monthrange(today.year, today.month)[1]
        return today.day == min(target, last_day)

    return True


class DigestScheduler:
    """
    Direct-send path: digests are generated and delivered in the invocation that
    finds them due, without a queue row. The schedule tolerance must not exceed
    the invocation interval, or a subscriber can match twice.
    """

    def __init__(
        self,
        db_session: AsyncSession,
        channel: OutboundChannel,
        gate: Optional[NotificationGate] = None,
        memory: Optional[MemoryService] = None,
        provider: Optional[BusinessDataProvider] = None,
        tolerance_minutes: Optional[int] = None,
        send_delay: Optional[float] = None,
    ):
        self.db = db_session
        self.channel = channel
        self.gate = gate or NotificationGate()
        self.memory = memory or MemoryService(db_session)
        self.provider = provider or BusinessDataProvider(db_session)
        self.tolerance_minutes = tolerance_minutes
        self.send_delay = (
            settings.DIGEST_SEND_DELAY_SECONDS if send_delay is None else send_delay
        )

    def is_due(
        self, cadence: DigestCadence, user_settings: NotificationSettings, now: datetime
    ) -> bool:
        configured = getattr(user_settings, cadence.time_field) or cadence.default_time
        return is_within_scheduled_time(
            configured, now, self.tolerance_minutes
        ) and is_digest_day(cadence, user_settings, now)

    async def run(self, cadence: DigestCadence, now: Optional[datetime] = None) -> RunReport:
        now = to_utc(now or utc_now())
        report = RunReport()

        subscribers = await self.provider.get_subscribers(cadence.enabled_field)
        if not subscribers:
            logger.info("No digest subscribers", digest=cadence.source.value)
            return report

        for subscriber in subscribers:
            profile_id = subscriber.profile_id
            try:
                await self._process_subscriber(cadence, subscriber, now, report)
            except Exception as e:
                logger.opt(exception=e).error(
                    f"{cadence.source.value} failed for user {profile_id}"
                )
                report.errors += 1

        logger.info(
            "Digest run finished",
            digest=cadence.source.value,
            sent=report.processed,
            errors=report.errors,
        )
        return report

    async def _process_subscriber(
        self,
        cadence: DigestCadence,
        subscriber: Subscriber,
        now: datetime,
        report: RunReport,
    ) -> None:
        profile = subscriber.profile
        profile_id = subscriber.profile_id
        full_name = profile.full_name

        if not self.is_due(cadence, subscriber.settings, now):
            return

        phone = await self.provider.get_phone(profile_id)
        if not phone:
            logger.debug(f"No phone for user {profile_id}, skipping {cadence.source.value}")
            return

        decision = self.gate.evaluate(
            NotificationRequest(
                source=cadence.source,
                delivery_mode=DeliveryMode.DIRECT,
                address=phone,
                settings=subscriber.settings,
                target_user_id=profile_id,
            ),
            now,
        )
        if decision.verdict is not GateVerdict.ALLOW:
            logger.debug(f"Skipping {cadence.source.value} for {profile_id}: {decision.reason}")
            report.skipped += 1
            return

        content = await cadence.generate(self.provider, profile, now)
        result = await self.channel.send(phone, content)

        try:
            if not result.success:
                logger.error(
                    f"{cadence.source.value} send failed for {profile_id}: {result.error}"
                )
                report.errors += 1
                return

            report.processed += 1
            logger.info("Digest sent", digest=cadence.source.value, user_id=profile_id)
            await self._record_episode(cadence, profile_id, full_name, now)
        finally:
            if self.send_delay > 0:
                await asyncio.sleep(self.send_delay)

    async def _record_episode(
        self, cadence: DigestCadence, profile_id: str, full_name: str, now: datetime
    ) -> None:
        try:
            await self.memory.save_episode(
                user_id=profile_id,
                summary=f"Enviei {cadence.summary_label} para {full_name}.",
                entities={"report_type": cadence.source.value},
                outcome="info_provided",
                importance=cadence.importance,
                source="whatsapp",
                now=now,
            )
        except NotifierError as e:
            logger.warning(f"Could not record digest episode for {profile_id}: {e.message}")

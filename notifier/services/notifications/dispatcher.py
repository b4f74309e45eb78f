import asyncio
from datetime import datetime
from typing import Dict, List, Optional

from sqlalchemy import and_, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from notifier.config.settings import settings
from notifier.db.models import MessageStatus, NotificationSettings, ScheduledMessage
from notifier.providers.business_data_provider import BusinessDataProvider
from notifier.services.channels.base import OutboundChannel, SendResult
from notifier.utils.datetime_utils import to_utc, utc_now
from notifier.utils.errors import StoreFailure
from notifier.utils.logging import get_logger
from .gating import DeliveryMode, GateVerdict, NotificationGate, NotificationRequest
from .recurrence import RecurrenceExpander, is_recurring
from .report import RunReport

logger = get_logger()


class DeliveryDispatcher:
    """
    Sends due messages from the queue.

    Every status change is a conditional update on ``status = 'pending'``, so a
    row picked up by two overlapping runs is only ever transitioned once.
    """

    def __init__(
        self,
        db_session: AsyncSession,
        channel: OutboundChannel,
        gate: Optional[NotificationGate] = None,
        expander: Optional[RecurrenceExpander] = None,
        provider: Optional[BusinessDataProvider] = None,
        batch_size: Optional[int] = None,
        send_delay: Optional[float] = None,
    ):
        self.db = db_session
        self.channel = channel
        self.gate = gate or NotificationGate()
        self.expander = expander or RecurrenceExpander(db_session)
        self.provider = provider or BusinessDataProvider(db_session)
        self.batch_size = batch_size or settings.DISPATCH_BATCH_SIZE
        self.send_delay = settings.SEND_DELAY_SECONDS if send_delay is None else send_delay
        self._settings_cache: Dict[str, Optional[NotificationSettings]] = {}

    async def run(self, now: Optional[datetime] = None) -> RunReport:
        now = to_utc(now or utc_now())
        report = RunReport()
        self._settings_cache = {}

        try:
            messages = await self._fetch_due(now)
        except StoreFailure as e:
            logger.error(f"Failed to load due messages: {e.message}")
            report.errors += 1
            report.details["error"] = e.message
            return report

        if not messages:
            logger.info("No due messages")
            return report

        logger.info("Dispatching due messages", count=len(messages))

        for message in messages:
            message_id = message.id
            try:
                # Reload so rows handled by an overlapping run, or expired by a rollback, are current
                await self.db.refresh(message)
                if message.status != MessageStatus.PENDING:
                    report.bump("already_handled")
                    continue
                await self._dispatch_one(message, now, report)
            except StoreFailure as e:
                logger.error(f"Store failure on message {message_id}: {e.message}")
                report.errors += 1
            except Exception as e:
                logger.opt(exception=e).error(
                    f"Unexpected error dispatching message {message_id}"
                )
                report.errors += 1

        logger.info(
            "Dispatch run finished",
            sent=report.processed,
            errors=report.errors,
            cancelled=report.skipped,
            deferred=report.details.get("deferred", 0),
        )
        return report

    async def _fetch_due(self, now: datetime) -> List[ScheduledMessage]:
        try:
            result = await self.db.execute(
                select(ScheduledMessage)
                .where(
                    and_(
                        ScheduledMessage.status == MessageStatus.PENDING,
                        ScheduledMessage.scheduled_for <= now,
                    )
                )
                .order_by(ScheduledMessage.scheduled_for)
                .limit(self.batch_size)
            )
        except SQLAlchemyError as e:
            raise StoreFailure(f"Due message query failed: {e}")
        return list(result.scalars().all())

    async def _settings_for(self, profile_id: Optional[str]) -> Optional[NotificationSettings]:
        if not profile_id:
            return None
        if profile_id not in self._settings_cache:
            self._settings_cache[profile_id] = await self.provider.get_settings_for(
                profile_id
            )
        return self._settings_cache[profile_id]

    async def _dispatch_one(
        self, message: ScheduledMessage, now: datetime, report: RunReport
    ) -> None:
        request = NotificationRequest(
            source=message.source,
            delivery_mode=DeliveryMode.QUEUED,
            address=message.address,
            settings=await self._settings_for(message.target_user_id),
            target_user_id=message.target_user_id,
            source_reference=message.source_reference,
        )
        decision = self.gate.evaluate(request, now)

        if decision.verdict is GateVerdict.DEFER:
            logger.debug(f"Deferring message {message.id}: {decision.reason}")
            report.bump("deferred")
            return

        if decision.verdict is GateVerdict.CANCEL:
            if await self._transition(
                message.id, status=MessageStatus.CANCELLED, error_message=decision.reason
            ):
                logger.info(f"Cancelled message {message.id}: {decision.reason}")
                report.skipped += 1
            return

        result = await self._send(message)
        try:
            if result.success:
                await self._mark_sent(message, now, report)
            else:
                await self._mark_failed_attempt(message, result.error, report)
        finally:
            if self.send_delay > 0:
                await asyncio.sleep(self.send_delay)

    async def _send(self, message: ScheduledMessage) -> SendResult:
        """A raising channel still counts as a failed attempt against max_retries."""
        try:
            return await self.channel.send(message.address, message.content)
        except Exception as e:
            logger.opt(exception=e).error("Channel raised on send", message_id=message.id)
            return SendResult(success=False, error=str(e) or e.__class__.__name__)

    async def _mark_sent(
        self, message: ScheduledMessage, now: datetime, report: RunReport
    ) -> None:
        if not await self._transition(
            message.id, status=MessageStatus.SENT, sent_at=now, error_message=None
        ):
            logger.warning(f"Message {message.id} was handled by another run after send")
            return

        report.processed += 1
        logger.info("Message sent", message_id=message.id, source=message.source.value)

        if is_recurring(message.recurrence):
            outcome = await self.expander.expand(message, now)
            if outcome is not None:
                report.bump(f"recurrence_{outcome.value}")

    async def _mark_failed_attempt(
        self, message: ScheduledMessage, error: Optional[str], report: RunReport
    ) -> None:
        retry_count = (message.retry_count or 0) + 1
        max_retries = message.max_retries or settings.DEFAULT_MAX_RETRIES
        exhausted = retry_count >= max_retries
        status = MessageStatus.FAILED if exhausted else MessageStatus.PENDING

        report.errors += 1
        if not await self._transition(
            message.id, status=status, retry_count=retry_count, error_message=error
        ):
            return

        if exhausted:
            report.bump("failed")
            logger.error(
                f"Message {message.id} failed permanently after {retry_count} attempts: {error}"
            )
        else:
            logger.warning(
                f"Message {message.id} send failed (attempt {retry_count}/{max_retries}): {error}"
            )

    async def _transition(self, message_id: str, **values) -> bool:
        """Apply values only while the row is still pending; True when it was."""
        try:
            result = await self.db.execute(
                update(ScheduledMessage)
                .where(
                    and_(
                        ScheduledMessage.id == message_id,
                        ScheduledMessage.status == MessageStatus.PENDING,
                    )
                )
                .values(updated_at=utc_now(), **values)
            )
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            raise StoreFailure(f"Status update failed for message {message_id}: {e}")
        return result.rowcount == 1

from datetime import datetime
from typing import Optional
from uuid import uuid4

from fastapi import Depends
from sqlalchemy import and_, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from notifier.config.settings import settings
from notifier.db.models import (
    MessageSource,
    MessageStatus,
    Recurrence,
    ScheduledMessage,
    TargetType,
)
from notifier.db.session import get_async_session
from notifier.services.notifications.dedup import (
    CreateOutcome,
    DedupGuard,
    SourceReference,
)
from notifier.utils.datetime_utils import to_business, to_utc, utc_now
from notifier.utils.errors import DeduplicationHit, StoreFailure, ValidationFailure
from notifier.utils.logging import get_logger

logger = get_logger()

REMINDER_HEADER = "⏰ *Lembrete*"
USER_CANCEL_REASON = "Cancelled by user"
USER_SOURCES = (MessageSource.DASHBOARD, MessageSource.MANUAL)


def format_reminder_content(text: str) -> str:
    return f"{REMINDER_HEADER}\n\n{text.strip()}"


class ScheduledMessageService:
    """Creates and cancels user-authored reminders in the queue."""

    def __init__(self, db_session: AsyncSession, guard: Optional[DedupGuard] = None):
        self.db = db_session
        self.guard = guard or DedupGuard(db_session)

    async def create_reminder(
        self,
        text: str,
        scheduled_for: datetime,
        target_user_id: Optional[str] = None,
        target_phone: Optional[str] = None,
        target_group_id: Optional[str] = None,
        recurrence: Recurrence = Recurrence.NONE,
        source: MessageSource = MessageSource.DASHBOARD,
        now: Optional[datetime] = None,
    ) -> ScheduledMessage:
        """
        Queue a reminder written by a user.

        Args:
            text: Reminder body; the reminder header is prepended
            scheduled_for: Send instant (naive values are taken as UTC)
            target_user_id: Profile id of the recipient
            target_phone: Recipient phone, required for user targets
            target_group_id: Chat group id; makes this a group reminder
            recurrence: Repeat cadence, none by default
            source: dashboard or manual

        Raises:
            ValidationFailure: Non-user source, empty text, a past send time or no address
        """
        if source not in USER_SOURCES:
            raise ValidationFailure(f"Reminders cannot be created with source {source.value}")
        if not text or not text.strip():
            raise ValidationFailure("Reminder text is required")

        scheduled_for = to_utc(scheduled_for)
        if scheduled_for <= to_utc(now or utc_now()):
            raise ValidationFailure("Reminder time must be in the future")

        target_type = TargetType.GROUP if target_group_id else TargetType.USER
        if target_type == TargetType.USER and not target_phone:
            raise ValidationFailure("Reminder target has no phone number")

        message = ScheduledMessage(
            target_type=target_type,
            target_user_id=target_user_id,
            target_phone=target_phone,
            target_group_id=target_group_id,
            content=format_reminder_content(text),
            scheduled_for=scheduled_for,
            source=source,
            recurrence=recurrence,
            max_retries=settings.DEFAULT_MAX_RETRIES,
            message_metadata={"created_via": "reminder_service"},
        )
        if recurrence is Recurrence.MONTHLY:
            message.message_metadata["recurrence_anchor_day"] = to_business(
                scheduled_for
            ).day
        message.set_source_reference(SourceReference.dashboard(uuid4().hex))

        # The token is fresh, so a skip here means the index rejected the row
        if await self.guard.create_if_new(message) is CreateOutcome.SKIPPED:
            raise DeduplicationHit(f"Reminder {message.source_reference} already queued")

        logger.info(
            "Reminder created",
            message_id=message.id,
            recurrence=recurrence.value,
            scheduled_for=scheduled_for.isoformat(),
        )
        return message

    async def cancel(self, message_id: str, reason: Optional[str] = None) -> bool:
        """Cancel a pending message. Returns False when it is missing or already terminal."""
        try:
            result = await self.db.execute(
                update(ScheduledMessage)
                .where(
                    and_(
                        ScheduledMessage.id == message_id,
                        ScheduledMessage.status == MessageStatus.PENDING,
                    )
                )
                .values(
                    status=MessageStatus.CANCELLED,
                    error_message=reason or USER_CANCEL_REASON,
                    updated_at=utc_now(),
                )
            )
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            raise StoreFailure(f"Failed to cancel message {message_id}: {e}")

        cancelled = result.rowcount == 1
        if cancelled:
            logger.info("Message cancelled", message_id=message_id)
        return cancelled

    async def get_message(self, message_id: str) -> Optional[ScheduledMessage]:
        try:
            return await self.db.get(ScheduledMessage, message_id)
        except SQLAlchemyError as e:
            raise StoreFailure(f"Failed to load message {message_id}: {e}")


def get_scheduled_message_service(
    db_session: AsyncSession = Depends(get_async_session),
) -> ScheduledMessageService:
    return ScheduledMessageService(db_session)

import enum
from dataclasses import dataclass
from datetime import date
from typing import Tuple

from sqlalchemy import and_, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from notifier.db.models import (
    DEDUP_ACTIVE_STATUSES,
    MessageSource,
    MessageStatus,
    ScheduledMessage,
)
from notifier.utils.errors import DeduplicationHit, StoreFailure, ValidationFailure
from notifier.utils.logging import get_logger

logger = get_logger()

SEPARATOR = ":"


class SourceTag(enum.Enum):
    CALENDAR = "cal"
    ALERT = "alert"
    RECURRENCE = "recur"
    DASHBOARD = "dash"


class AlertKind(enum.Enum):
    URGENT = "urgent"
    DEADLINE_TODAY = "deadline-d0"
    DEADLINE_TOMORROW = "deadline-d1"
    ASSIGNMENT = "assign"


# Number of components after the tag
_ARITY = {
    SourceTag.CALENDAR: 2,
    SourceTag.ALERT: 3,
    SourceTag.RECURRENCE: 1,
    SourceTag.DASHBOARD: 1,
}


@dataclass(frozen=True)
class SourceReference:
    """
    Deterministic dedup key for a generated message.

    Grammar (colon separated, no component may contain a colon):
        cal:{event_id}:d-{days}
        alert:{kind}:{card_id}:{YYYY-MM-DD}
        recur:{parent_message_id}
        dash:{token}
    """

    tag: SourceTag
    parts: Tuple[str, ...]

    def __post_init__(self):
        if len(self.parts) != _ARITY[self.tag]:
            raise ValueError(
                f"{self.tag.value} reference takes {_ARITY[self.tag]} component(s), "
                f"got {len(self.parts)}"
            )
        for part in self.parts:
            if not part or SEPARATOR in part:
                raise ValueError(f"Invalid reference component: {part!r}")

    def __str__(self) -> str:
        return SEPARATOR.join((self.tag.value,) + self.parts)

    @classmethod
    def calendar(cls, event_id: str, days_before: int) -> "SourceReference":
        return cls(SourceTag.CALENDAR, (str(event_id), f"d-{days_before}"))

    @classmethod
    def alert(cls, kind: AlertKind, card_id: str, local_date: date) -> "SourceReference":
        return cls(SourceTag.ALERT, (kind.value, str(card_id), local_date.isoformat()))

    @classmethod
    def recurrence(cls, parent_id: str) -> "SourceReference":
        return cls(SourceTag.RECURRENCE, (str(parent_id),))

    @classmethod
    def dashboard(cls, token: str) -> "SourceReference":
        return cls(SourceTag.DASHBOARD, (token,))

    @classmethod
    def parse(cls, value: str) -> "SourceReference":
        """Parse a rendered reference, raising ValidationFailure when malformed."""
        tag_value, _, rest = (value or "").partition(SEPARATOR)
        try:
            tag = SourceTag(tag_value)
            reference = cls(tag, tuple(rest.split(SEPARATOR)) if rest else ())
            if tag is SourceTag.ALERT:
                AlertKind(reference.parts[0])
            return reference
        except ValueError as e:
            raise ValidationFailure(f"Invalid source reference {value!r}: {e}")

    @property
    def alert_kind(self) -> AlertKind:
        if self.tag is not SourceTag.ALERT:
            raise ValueError(f"{self} is not an alert reference")
        return AlertKind(self.parts[0])


class CreateOutcome(enum.Enum):
    CREATED = "created"
    SKIPPED = "skipped"


class DedupGuard:
    """Check-then-insert guard; the partial unique index closes the race between runs."""

    def __init__(self, db_session: AsyncSession):
        self.db = db_session

    async def should_create(
        self,
        source: MessageSource,
        reference,
        target_user_id: str,
    ) -> bool:
        try:
            result = await self.db.execute(
                select(ScheduledMessage.id)
                .where(
                    and_(
                        ScheduledMessage.target_user_id == target_user_id,
                        ScheduledMessage.source == source,
                        ScheduledMessage.source_reference == str(reference),
                        ScheduledMessage.status.in_(DEDUP_ACTIVE_STATUSES),
                    )
                )
                .limit(1)
            )
        except SQLAlchemyError as e:
            raise StoreFailure(f"Dedup lookup failed for {reference}: {e}")
        return result.scalar_one_or_none() is None

    async def create_if_new(self, message: ScheduledMessage) -> CreateOutcome:
        """
        Insert a pending message unless its dedup key is already active.

        Args:
            message: Unsaved message with target_user_id, source and source_reference set

        Returns:
            CreateOutcome: CREATED when the row was committed, SKIPPED on a dedup hit

        Raises:
            StoreFailure: Any store error other than the dedup index rejecting the row
        """
        if not message.source_reference:
            raise ValidationFailure("Message has no source reference")

        if not await self.should_create(
            message.source, message.source_reference, message.target_user_id
        ):
            logger.debug(
                "Dedup hit on pre-check", source_reference=message.source_reference
            )
            return CreateOutcome.SKIPPED

        message.status = MessageStatus.PENDING
        try:
            await self._insert(message)
        except DeduplicationHit:
            logger.info(
                "Dedup index rejected insert",
                source_reference=message.source_reference,
            )
            return CreateOutcome.SKIPPED
        return CreateOutcome.CREATED

    async def _insert(self, message: ScheduledMessage) -> None:
        reference = message.source_reference
        try:
            # A rejected row only rolls back its savepoint; objects already loaded stay usable
            async with self.db.begin_nested():
                self.db.add(message)
        except IntegrityError:
            raise DeduplicationHit(f"Dedup index rejected {reference}")
        except SQLAlchemyError as e:
            await self.db.rollback()
            raise StoreFailure(f"Insert failed for {reference}: {e}")

        try:
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            raise StoreFailure(f"Commit failed for {reference}: {e}")

from datetime import datetime, timedelta
from typing import Callable, Dict, Optional

from dateutil.relativedelta import relativedelta
from sqlalchemy.ext.asyncio import AsyncSession

from notifier.db.models import MessageStatus, Recurrence, ScheduledMessage
from notifier.utils.datetime_utils import business_timezone, to_business, to_utc, utc_now
from notifier.utils.logging import get_logger
from .dedup import CreateOutcome, DedupGuard, SourceReference

logger = get_logger()

SATURDAY = 5
SUNDAY = 6

Strategy = Callable[[datetime, int], datetime]


def _next_daily(local: datetime, anchor_day: int) -> datetime:
    return local + timedelta(days=1)


def _next_weekday(local: datetime, anchor_day: int) -> datetime:
    following = local + timedelta(days=1)
    if following.weekday() == SATURDAY:
        return following + timedelta(days=2)
    if following.weekday() == SUNDAY:
        return following + timedelta(days=1)
    return following


def _next_weekly(local: datetime, anchor_day: int) -> datetime:
    return local + timedelta(days=7)


def _next_monthly(local: datetime, anchor_day: int) -> datetime:
    # relativedelta clamps day to the last valid day of the target month
    return local + relativedelta(months=1, day=anchor_day)


_STRATEGIES: Dict[Recurrence, Strategy] = {
    Recurrence.DAILY: _next_daily,
    Recurrence.WEEKDAYS: _next_weekday,
    Recurrence.WEEKLY: _next_weekly,
    Recurrence.MONTHLY: _next_monthly,
}

_missing = [r for r in Recurrence if r is not Recurrence.NONE and r not in _STRATEGIES]
if _missing:
    raise RuntimeError(f"No recurrence strategy for: {', '.join(r.value for r in _missing)}")


def is_recurring(recurrence: Recurrence) -> bool:
    return recurrence is not Recurrence.NONE


def next_occurrence(
    recurrence: Recurrence,
    scheduled_for: datetime,
    now: Optional[datetime] = None,
    anchor_day: Optional[int] = None,
) -> Optional[datetime]:
    """
    Next send instant of a recurring message.

    Steps are taken on the business-local wall clock so a 09:00 reminder stays at
    09:00 across offset changes. Results at or before ``now`` are rolled forward by
    whole steps, so a successor never lands in the past.

    Returns:
        Optional[datetime]: UTC instant, or None for non-recurring messages
    """
    if not is_recurring(recurrence):
        return None

    strategy = _STRATEGIES[recurrence]
    tz = business_timezone()
    now = to_utc(now or utc_now())
    local = to_business(scheduled_for).replace(tzinfo=None)
    anchor = anchor_day or local.day

    while True:
        local = strategy(local, anchor)
        candidate = to_utc(local.replace(tzinfo=tz))
        if candidate > now:
            return candidate


class RecurrenceExpander:
    """Creates the next link of a recurrence chain after a confirmed send."""

    def __init__(self, db_session: AsyncSession, guard: Optional[DedupGuard] = None):
        self.db = db_session
        self.guard = guard or DedupGuard(db_session)

    def build_successor(
        self, parent: ScheduledMessage, now: Optional[datetime] = None
    ) -> Optional[ScheduledMessage]:
        metadata = dict(parent.message_metadata or {})
        anchor_day = metadata.get("recurrence_anchor_day")
        if not anchor_day:
            anchor_day = to_business(parent.scheduled_for).day

        next_at = next_occurrence(parent.recurrence, parent.scheduled_for, now, anchor_day)
        if next_at is None:
            return None

        metadata.update(
            {
                "recurrence_anchor_day": anchor_day,
                "created_via": "recurrence_expander",
            }
        )
        successor = ScheduledMessage(
            target_type=parent.target_type,
            target_user_id=parent.target_user_id,
            target_phone=parent.target_phone,
            target_group_id=parent.target_group_id,
            message_type=parent.message_type,
            content=parent.content,
            scheduled_for=next_at,
            status=MessageStatus.PENDING,
            source=parent.source,
            source_id=parent.source_id,
            recurrence=parent.recurrence,
            recurrence_parent_id=parent.id,
            retry_count=0,
            max_retries=parent.max_retries,
            message_metadata=metadata,
        )
        successor.set_source_reference(SourceReference.recurrence(parent.id))
        return successor

    async def expand(
        self, parent: ScheduledMessage, now: Optional[datetime] = None
    ) -> Optional[CreateOutcome]:
        """
        Queue the successor of a message that was just sent.

        Returns:
            Optional[CreateOutcome]: None when the message does not recur
        """
        successor = self.build_successor(parent, now)
        if successor is None:
            return None

        log_context = {
            "parent_id": parent.id,
            "recurrence": parent.recurrence.value,
            "scheduled_for": successor.scheduled_for.isoformat(),
        }
        outcome = await self.guard.create_if_new(successor)
        logger.info("Recurrence successor queued", outcome=outcome.value, **log_context)
        return outcome

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional, Sequence

from notifier.db.models import CalendarItem
from notifier.services.notifications.dedup import SourceReference
from notifier.utils.datetime_utils import local_to_utc, parse_clock, to_business
from .formatting import calendar_type_emoji, format_date_time, relative_days_label

DEFAULT_REMINDER_DAYS = [3, 1]
DEFAULT_REMINDER_TIME = "09:00"


@dataclass
class ReminderCandidate:
    event_id: str
    days_before: int
    reference: SourceReference
    scheduled_for: datetime
    content: str
    metadata: Dict[str, Any] = field(default_factory=dict)
    is_past: bool = False


def resolve_reminder_days(reminder_days: Optional[Sequence[int]]) -> List[int]:
    """Lead days from settings. Only an unset value gets the defaults; an empty list means none."""
    if reminder_days is None:
        return list(DEFAULT_REMINDER_DAYS)
    return list(reminder_days)


def reminder_lookahead(reminder_days: Optional[Sequence[int]]) -> timedelta:
    """Window of upcoming events worth reminding about: largest lead time plus one day."""
    return timedelta(days=max(resolve_reminder_days(reminder_days), default=0) + 1)


def render_calendar_reminder(event: CalendarItem, days_before: int) -> str:
    location = f"\n📍 {event.location}" if event.location else ""
    if days_before == 0:
        closing = "📌 Este evento é *hoje*!"
    else:
        closing = f"⏰ Este evento é {relative_days_label(days_before)}!"

    return "\n".join(
        [
            "📅 *Lembrete de evento*",
            "",
            f"{calendar_type_emoji(event.type)} *{event.title}*",
            f"🗓️ {format_date_time(event.start_time)}{location}",
            "",
            closing,
        ]
    )


def plan_calendar_reminders(
    events: Sequence[CalendarItem],
    reminder_days: Optional[Sequence[int]],
    reminder_time: Optional[str],
    now: datetime,
) -> List[ReminderCandidate]:
    """
    Expand upcoming events into one reminder per (event, lead day).

    The send time is the reminder time of day on (event local date - lead days),
    in the business timezone. Candidates whose send time has already passed are
    flagged ``is_past`` so the caller can discard them without queueing.
    """
    days = resolve_reminder_days(reminder_days)
    at = parse_clock(reminder_time, default=DEFAULT_REMINDER_TIME)

    candidates = []
    for event in events:
        event_day = to_business(event.start_time).date()
        for days_before in days:
            scheduled_for = local_to_utc(event_day - timedelta(days=days_before), at)
            reference = SourceReference.calendar(event.id, days_before)
            candidates.append(
                ReminderCandidate(
                    event_id=event.id,
                    days_before=days_before,
                    reference=reference,
                    scheduled_for=scheduled_for,
                    content=render_calendar_reminder(event, days_before),
                    metadata={
                        "event_title": event.title,
                        "event_type": event.type,
                        "event_start_time": event.start_time.isoformat(),
                        "days_before": days_before,
                        "created_via": "calendar_reminder_processor",
                    },
                    is_past=scheduled_for < now,
                )
            )
    return candidates

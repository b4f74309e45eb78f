from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field

from notifier.db.models import MessageSource, MessageStatus, Recurrence
from notifier.schemas.camel_base_model import CamelCaseBaseModel


class ScheduledAction(str, Enum):
    """Discriminator accepted by the scheduled task trigger"""

    SEND_REMINDERS = "send-reminders"
    DAILY_DIGEST = "daily-digest"
    WEEKLY_SUMMARY = "weekly-summary"
    MONTHLY_SUMMARY = "monthly-summary"
    CALENDAR_REMINDERS = "calendar-reminders"
    REALTIME_ALERTS = "realtime-alerts"
    MEMORY_MAINTENANCE = "memory-maintenance"


class TaskResult(BaseModel):
    """Outcome of one scheduled action invocation"""

    success: bool = Field(True, description="Whether the action ran to completion")
    action: ScheduledAction = Field(..., description="Action that was run")
    processed: int = Field(0, description="Items handled successfully")
    errors: int = Field(0, description="Items that failed")
    skipped: Optional[int] = Field(None, description="Items intentionally not handled")
    details: Optional[Dict[str, Any]] = Field(None, description="Action specific counters")
    elapsed_ms: int = Field(0, description="Wall time of the run in milliseconds")


class ReminderCreateRequest(CamelCaseBaseModel):
    """Reminder created from the dashboard"""

    text: str = Field(..., min_length=1, description="Reminder text")
    scheduled_for: datetime = Field(..., description="Send time; naive values are UTC")
    target_user_id: Optional[str] = Field(None, description="Recipient profile ID")
    target_phone: Optional[str] = Field(None, description="Recipient phone number")
    target_group_id: Optional[str] = Field(None, description="Recipient chat group ID")
    recurrence: Recurrence = Field(Recurrence.NONE, description="Repeat cadence")
    source: MessageSource = Field(MessageSource.DASHBOARD, description="Reminder origin")


class ReminderResponse(CamelCaseBaseModel):
    id: str = Field(..., description="Scheduled message ID")
    status: MessageStatus = Field(..., description="Message status")
    scheduled_for: datetime = Field(..., description="Send time (UTC)")
    recurrence: Recurrence = Field(..., description="Repeat cadence")
    source_reference: Optional[str] = Field(None, description="Dedup key")


class ReminderCancelRequest(CamelCaseBaseModel):
    reason: Optional[str] = Field(None, description="Why the reminder was cancelled")

from dataclasses import dataclass
from datetime import datetime
from typing import Awaitable, Callable, Dict, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from notifier.schemas.task_schemas import ScheduledAction
from notifier.services.channels.base import OutboundChannel
from notifier.services.memory_service import MemoryService
from notifier.services.notifications.calendar_reminders import CalendarReminderProcessor
from notifier.services.notifications.digest_scheduler import (
    DAILY_DIGEST,
    MONTHLY_SUMMARY,
    WEEKLY_SUMMARY,
    DigestCadence,
    DigestScheduler,
)
from notifier.services.notifications.dispatcher import DeliveryDispatcher
from notifier.services.notifications.realtime_alerts import RealtimeAlertProcessor
from notifier.services.notifications.report import RunReport
from notifier.utils.logging import get_logger

logger = get_logger()


@dataclass
class TaskContext:
    """Collaborators for one scheduled action run."""

    db_session: AsyncSession
    channel: OutboundChannel
    now: datetime
    send_delay: Optional[float] = None


ActionHandler = Callable[[TaskContext], Awaitable[RunReport]]


async def _send_reminders(ctx: TaskContext) -> RunReport:
    dispatcher = DeliveryDispatcher(ctx.db_session, ctx.channel, send_delay=ctx.send_delay)
    return await dispatcher.run(ctx.now)


def _digest(cadence: DigestCadence) -> ActionHandler:
    async def handler(ctx: TaskContext) -> RunReport:
        scheduler = DigestScheduler(ctx.db_session, ctx.channel, send_delay=ctx.send_delay)
        return await scheduler.run(cadence, ctx.now)

    return handler


async def _calendar_reminders(ctx: TaskContext) -> RunReport:
    return await CalendarReminderProcessor(ctx.db_session).run(ctx.now)


async def _realtime_alerts(ctx: TaskContext) -> RunReport:
    return await RealtimeAlertProcessor(ctx.db_session).run(ctx.now)


async def _memory_maintenance(ctx: TaskContext) -> RunReport:
    return await MemoryService(ctx.db_session).run_maintenance(ctx.now)


class ScheduledActionRegistry:
    """Registry mapping trigger discriminators to action handlers"""

    _handlers: Dict[ScheduledAction, ActionHandler] = {
        ScheduledAction.SEND_REMINDERS: _send_reminders,
        ScheduledAction.DAILY_DIGEST: _digest(DAILY_DIGEST),
        ScheduledAction.WEEKLY_SUMMARY: _digest(WEEKLY_SUMMARY),
        ScheduledAction.MONTHLY_SUMMARY: _digest(MONTHLY_SUMMARY),
        ScheduledAction.CALENDAR_REMINDERS: _calendar_reminders,
        ScheduledAction.REALTIME_ALERTS: _realtime_alerts,
        ScheduledAction.MEMORY_MAINTENANCE: _memory_maintenance,
    }

    @classmethod
    def get_handler(cls, action: ScheduledAction) -> Optional[ActionHandler]:
        """Get the handler for an action"""
        handler = cls._handlers.get(action)
        if handler is None:
            logger.warning(f"No handler registered for action: {action.value}")
        return handler

    @classmethod
    def list_registered_actions(cls) -> list:
        """List all registered actions"""
        return [action.value for action in cls._handlers]

    @classmethod
    def is_registered(cls, action: ScheduledAction) -> bool:
        """Check if an action has a handler"""
        return action in cls._handlers

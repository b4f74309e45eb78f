import time
from datetime import datetime
from typing import Any, Dict, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from notifier.db.session import AsyncSessionLocal
from notifier.schemas.task_schemas import ScheduledAction, TaskResult
from notifier.services.channels import OutboundChannel, get_outbound_channel
from notifier.utils.datetime_utils import to_utc, utc_now
from notifier.utils.errors import InvalidTriggerError
from notifier.utils.logging import get_logger
from .registry import ScheduledActionRegistry, TaskContext

logger = get_logger()


def parse_action(payload: Any) -> ScheduledAction:
    """Validate the trigger payload and return its discriminator."""
    if not isinstance(payload, dict):
        raise InvalidTriggerError("Trigger body must be a JSON object")

    action = payload.get("action")
    if not action:
        raise InvalidTriggerError('Missing "action" in body')

    try:
        return ScheduledAction(action)
    except ValueError:
        raise InvalidTriggerError(f"Unknown action: {action}")


async def process_scheduled_task(
    payload: Dict[str, Any],
    db_session: Optional[AsyncSession] = None,
    channel: Optional[OutboundChannel] = None,
    now: Optional[datetime] = None,
    send_delay: Optional[float] = None,
) -> Dict[str, Any]:
    """
    Run one scheduled action selected by ``payload["action"]``.

    Args:
        payload: Trigger body, e.g. {"action": "send-reminders"}
        db_session: Session to run in; a new one is opened when omitted
        channel: Outbound channel; the configured one is built when omitted
        now: Instant to evaluate schedules against (defaults to the current clock)
        send_delay: Override for the pause between sends

    Returns:
        Dict: {success, action, processed, errors, skipped?, details?, elapsed_ms}

    Raises:
        InvalidTriggerError: Missing or unknown action
    """
    action = parse_action(payload)
    handler = ScheduledActionRegistry.get_handler(action)
    if handler is None:
        raise InvalidTriggerError(f"Unknown action: {action.value}")

    started = time.monotonic()
    logger.info("Scheduled action started", action=action.value)

    owns_channel = channel is None
    channel = channel or get_outbound_channel()
    try:
        ctx_now = to_utc(now or utc_now())
        if db_session is not None:
            report = await handler(TaskContext(db_session, channel, ctx_now, send_delay))
        else:
            async with AsyncSessionLocal() as session:
                report = await handler(TaskContext(session, channel, ctx_now, send_delay))
    finally:
        if owns_channel:
            await channel.aclose()

    elapsed_ms = int((time.monotonic() - started) * 1000)
    logger.info(
        "Scheduled action completed",
        action=action.value,
        processed=report.processed,
        errors=report.errors,
        skipped=report.skipped,
        elapsed_ms=elapsed_ms,
    )

    result = TaskResult(
        success=True,
        action=action,
        processed=report.processed,
        errors=report.errors,
        skipped=report.skipped,
        details=report.details or None,
        elapsed_ms=elapsed_ms,
    )
    return result.model_dump(mode="json", exclude_none=True)

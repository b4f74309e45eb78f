import asyncio

from notifier.celery import celery
from notifier.tasks.runner import process_scheduled_task
from notifier.utils.context import set_request_id
from notifier.utils.errors import InvalidTriggerError
from notifier.utils.logging import get_logger


@celery.task
def scheduled_action_task(action: str, request_id: str):
    """
    Celery beat entry point for every scheduled action.

    Each beat entry passes its discriminator, e.g. "send-reminders", and a
    request id used to correlate the run's log lines. Failures are reported in
    the result, not retried; the next beat tick picks up what is still pending.

    Args:
        action: Scheduled action discriminator
        request_id: The request ID for tracking purposes (provided by Celery Beat configuration)
    """
    return asyncio.run(_async_scheduled_action(action, request_id))


async def _async_scheduled_action(action: str, request_id: str):
    logger = get_logger().bind(request_id=request_id)
    set_request_id(request_id)

    try:
        result = await process_scheduled_task({"action": action})
        return {**result, "request_id": request_id}

    except InvalidTriggerError as e:
        logger.error("Invalid scheduled action", action=action, error=e.message)
        return {
            "success": False,
            "action": action,
            "error": e.message,
            "request_id": request_id,
        }

    except Exception as e:
        logger.opt(exception=e).error("Scheduled action failed", action=action)
        return {
            "success": False,
            "action": action,
            "error": str(e),
            "request_id": request_id,
        }

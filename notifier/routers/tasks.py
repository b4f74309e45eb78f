from typing import Annotated

from fastapi import APIRouter, Depends, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from notifier.db.session import get_async_session
from notifier.middlewares.trigger_auth import verify_trigger_secret
from notifier.tasks.runner import process_scheduled_task
from notifier.utils.errors import InvalidTriggerError
from notifier.utils.responses import ResponseBuilder

tasks_router = APIRouter(dependencies=[Depends(verify_trigger_secret)])


@tasks_router.post(
    "/process-scheduled",
    response_model=None,
    status_code=status.HTTP_200_OK,
    summary="Run one scheduled action",
    description='Runs the action named by the body, e.g. {"action": "send-reminders"}. Used by external cron services in place of Celery beat.',
)
async def process_scheduled(
    request: Request,
    db_session: Annotated[AsyncSession, Depends(get_async_session)],
):
    """Trigger a scheduled action on demand"""
    try:
        payload = await request.json()
    except ValueError:
        raise InvalidTriggerError("Trigger body must be valid JSON")

    result = await process_scheduled_task(payload, db_session=db_session)

    return ResponseBuilder.success(
        request=request,
        data=result,
        message=f"Action {result['action']} completed",
    )

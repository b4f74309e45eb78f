from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Path, Request, status

from notifier.db.models import MessageStatus, ScheduledMessage
from notifier.schemas.task_schemas import (
    ReminderCancelRequest,
    ReminderCreateRequest,
    ReminderResponse,
)
from notifier.services.scheduled_message_service import (
    ScheduledMessageService,
    get_scheduled_message_service,
)
from notifier.utils.errors import ValidationFailure
from notifier.utils.responses import ResponseBuilder

reminders_router = APIRouter()


def _to_response(message: ScheduledMessage) -> ReminderResponse:
    return ReminderResponse(
        id=message.id,
        status=message.status,
        scheduled_for=message.scheduled_for,
        recurrence=message.recurrence,
        source_reference=message.source_reference,
    )


@reminders_router.post(
    "/",
    response_model=None,
    status_code=status.HTTP_201_CREATED,
    summary="Create a reminder",
    description="Queue a one-off or recurring reminder for a user or a group",
)
async def create_reminder(
    request: Request,
    reminder_data: ReminderCreateRequest,
    service: ScheduledMessageService = Depends(get_scheduled_message_service),
):
    message = await service.create_reminder(
        text=reminder_data.text,
        scheduled_for=reminder_data.scheduled_for,
        target_user_id=reminder_data.target_user_id,
        target_phone=reminder_data.target_phone,
        target_group_id=reminder_data.target_group_id,
        recurrence=reminder_data.recurrence,
        source=reminder_data.source,
    )

    return ResponseBuilder.success(
        request=request,
        data=_to_response(message).model_dump(mode="json", by_alias=True),
        message="Reminder scheduled successfully",
        status_code=status.HTTP_201_CREATED,
    )


@reminders_router.post(
    "/{message_id}/cancel",
    response_model=None,
    status_code=status.HTTP_200_OK,
    summary="Cancel a pending reminder",
)
async def cancel_reminder(
    request: Request,
    message_id: str = Path(..., description="Scheduled message ID"),
    cancel_data: Optional[ReminderCancelRequest] = None,
    service: ScheduledMessageService = Depends(get_scheduled_message_service),
):
    reason = cancel_data.reason if cancel_data else None
    if not await service.cancel(message_id, reason):
        message = await service.get_message(message_id)
        if message is None:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail=f"Reminder {message_id} not found",
            )
        raise ValidationFailure(
            f"Reminder {message_id} is {message.status.value} and can no longer be cancelled"
        )

    return ResponseBuilder.success(
        request=request,
        data={"id": message_id, "status": MessageStatus.CANCELLED.value},
        message="Reminder cancelled successfully",
    )

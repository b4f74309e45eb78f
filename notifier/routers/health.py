from fastapi import APIRouter, Request

from notifier.config.settings import settings
from notifier.tasks.registry import ScheduledActionRegistry
from notifier.utils.responses import ResponseBuilder

health_router = APIRouter()


@health_router.get("/")
async def health_check(request: Request):
    """
    Basic health check endpoint

    Returns application status and the scheduled actions this instance can run
    """
    return ResponseBuilder.success(
        request=request,
        data={
            "status": "healthy",
            "service": settings.NAME,
            "version": settings.VERSION,
            "actions": ScheduledActionRegistry.list_registered_actions(),
        },
        message="Service is running",
    )

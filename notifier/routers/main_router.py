from fastapi import APIRouter

from notifier.routers.health import health_router
from notifier.routers.reminders import reminders_router
from notifier.routers.tasks import tasks_router

main_router = APIRouter()
main_router.include_router(health_router, prefix="/health", tags=["health"])
main_router.include_router(tasks_router, prefix="/tasks", tags=["tasks"])
main_router.include_router(reminders_router, prefix="/reminders", tags=["reminders"])

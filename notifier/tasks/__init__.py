from .cron import *

__all__ = [
    # Scheduled/Cron Tasks
    "scheduled_action_task",
]

from .scheduled_actions import scheduled_action_task

__all__ = [
    "scheduled_action_task",
]

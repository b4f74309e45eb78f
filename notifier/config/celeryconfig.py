from celery.schedules import crontab
from .settings import settings

# Basic Celery Configuration
broker_url = f"redis://:{settings.REDIS_PASSWORD}@{settings.REDIS_HOST}:{settings.REDIS_PORT}/{settings.REDIS_DB}"
result_backend = f"redis://:{settings.REDIS_PASSWORD}@{settings.REDIS_HOST}:{settings.REDIS_PORT}/{settings.REDIS_DB}"

# Task Discovery
include = ["notifier.tasks"]

# Timezone Configuration
timezone = settings.BUSINESS_TIMEZONE
enable_utc = True

# Task Result Configuration
result_expires = 3600

# Task Serialization
task_serializer = "json"
accept_content = ["json"]
result_serializer = "json"

# Task Execution Configuration
task_track_started = True
task_time_limit = 10 * 60  # 10 minutes
task_soft_time_limit = 8 * 60  # 8 minutes

# Worker Configuration
worker_prefetch_multiplier = 1
worker_max_tasks_per_child = 1000

# Runs are idempotent, so a lost worker simply leaves rows pending for the next beat
task_acks_late = True
task_reject_on_worker_lost = True

_TASK = "notifier.tasks.cron.scheduled_actions.scheduled_action_task"

# All scheduled tasks use the business timezone
beat_schedule = {
    # Queue delivery - every 5 minutes
    "send-reminders": {
        "task": _TASK,
        "schedule": crontab(minute="*/5"),
        "args": ("send-reminders", "send_reminders_cron"),
    },
    # Card alerts - every 15 minutes
    "realtime-alerts": {
        "task": _TASK,
        "schedule": crontab(minute="*/15"),
        "args": ("realtime-alerts", "realtime_alerts_cron"),
    },
    # Calendar reminder generation - hourly
    "calendar-reminders": {
        "task": _TASK,
        "schedule": crontab(minute=0),
        "args": ("calendar-reminders", "calendar_reminders_cron"),
    },
    # Digests self-gate on each subscriber's configured time - hourly on the hour
    "daily-digest": {
        "task": _TASK,
        "schedule": crontab(minute=0),
        "args": ("daily-digest", "daily_digest_cron"),
    },
    "weekly-summary": {
        "task": _TASK,
        "schedule": crontab(minute=0),
        "args": ("weekly-summary", "weekly_summary_cron"),
    },
    "monthly-summary": {
        "task": _TASK,
        "schedule": crontab(minute=0),
        "args": ("monthly-summary", "monthly_summary_cron"),
    },
    # Agent memory upkeep - daily at 3:00 AM
    "memory-maintenance": {
        "task": _TASK,
        "schedule": crontab(hour=3, minute=0),
        "args": ("memory-maintenance", "memory_maintenance_cron"),
    },
}

# Default Queue
task_default_queue = "notifier"

# Beat Scheduler Configuration
beat_schedule_filename = "tmp/celerybeat-schedule"

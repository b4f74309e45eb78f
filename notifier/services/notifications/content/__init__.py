from .calendar_reminder import plan_calendar_reminders, render_calendar_reminder
from .daily_digest import generate_daily_digest
from .monthly_summary import generate_monthly_summary
from .realtime_alert import render_alert
from .weekly_summary import generate_weekly_summary

__all__ = [
    "plan_calendar_reminders",
    "render_calendar_reminder",
    "generate_daily_digest",
    "generate_weekly_summary",
    "generate_monthly_summary",
    "render_alert",
]

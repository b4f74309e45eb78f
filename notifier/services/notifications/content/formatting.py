"""Text helpers shared by the message renderers. Output is in Brazilian Portuguese."""

import math
from datetime import datetime

from notifier.utils.datetime_utils import to_business

# Indexed by date.weekday(), Monday first
WEEKDAY_ABBREVIATIONS = ["Seg", "Ter", "Qua", "Qui", "Sex", "Sáb", "Dom"]

MONTH_NAMES = [
    "Janeiro",
    "Fevereiro",
    "Março",
    "Abril",
    "Maio",
    "Junho",
    "Julho",
    "Agosto",
    "Setembro",
    "Outubro",
    "Novembro",
    "Dezembro",
]

PRIORITY_EMOJI = {"urgent": "🔴", "high": "🟠", "medium": "🟡", "low": "⚪"}

CALENDAR_TYPE_EMOJI = {
    "event": "🎉",
    "delivery": "📦",
    "creation": "🎨",
    "task": "✅",
    "meeting": "🤝",
}


def priority_emoji(priority: str) -> str:
    return PRIORITY_EMOJI.get(priority, "🟡")


def calendar_type_emoji(item_type: str) -> str:
    return CALENDAR_TYPE_EMOJI.get(item_type, "📅")


def format_day_month(dt: datetime) -> str:
    """dd/mm in the business timezone."""
    local = to_business(dt)
    return f"{local.day:02d}/{local.month:02d}"


def format_clock(dt: datetime) -> str:
    local = to_business(dt)
    return f"{local.hour:02d}:{local.minute:02d}"


def format_date_time(dt: datetime) -> str:
    """e.g. "Ter 10/02 17:00" in the business timezone."""
    local = to_business(dt)
    return f"{WEEKDAY_ABBREVIATIONS[local.weekday()]} {format_day_month(dt)} {format_clock(dt)}"


def percentage(part: int, whole: int) -> int:
    """Whole percentage rounded half up; 0 when there is nothing to divide."""
    if whole <= 0:
        return 0
    return math.floor(part * 100 / whole + 0.5)


def bar(count: int, cap: int) -> str:
    return "█" * min(count, cap)


def compare_arrow(current: int, previous: int) -> str:
    """Change against the previous period, e.g. "(↑25%)", "(↓10%)" or "(=)"."""
    if previous == 0:
        return ""
    diff = current - previous
    pct = percentage(abs(diff), previous)
    if diff > 0:
        return f"(↑{pct}%)"
    if diff < 0:
        return f"(↓{pct}%)"
    return "(=)"


def relative_days_label(days: int) -> str:
    if days == 0:
        return "hoje"
    if days == 1:
        return "amanhã"
    return f"em {days} dias"

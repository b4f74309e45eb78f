from notifier.db.models import KanbanCard
from notifier.services.notifications.dedup import AlertKind
from .formatting import format_day_month, priority_emoji


def render_urgent_alert(card: KanbanCard) -> str:
    due = f"\n📅 Prazo: {format_day_month(card.due_date)}" if card.due_date else ""
    return "\n".join(
        [
            "🔴 *Card urgente*",
            "",
            f"*{card.title}*",
            f"📋 {card.column_name}{due}",
            "",
            "Atenção necessária!",
        ]
    )


def render_deadline_alert(card: KanbanCard, kind: AlertKind) -> str:
    if kind is AlertKind.DEADLINE_TODAY:
        header, due_label = "⚠️ *Prazo hoje!*", "Vence hoje"
    elif kind is AlertKind.DEADLINE_TOMORROW:
        header, due_label = "⏰ *Prazo amanhã*", "Vence amanhã"
    else:
        raise ValueError(f"Not a deadline alert: {kind}")

    return "\n".join(
        [
            header,
            "",
            f"*{card.title}*",
            f"📋 {card.column_name}",
            f"📅 {due_label} ({format_day_month(card.due_date)})",
        ]
    )


def render_assignment_alert(card: KanbanCard) -> str:
    return "\n".join(
        [
            "👤 *Nova atribuição*",
            "",
            f"{priority_emoji(card.priority)} *{card.title}*",
            f"📋 {card.column_name}",
            "",
            "Este card foi atribuído a você.",
        ]
    )


def render_alert(card: KanbanCard, kind: AlertKind) -> str:
    if kind is AlertKind.URGENT:
        return render_urgent_alert(card)
    if kind is AlertKind.ASSIGNMENT:
        return render_assignment_alert(card)
    return render_deadline_alert(card, kind)

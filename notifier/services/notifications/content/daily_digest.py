from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Dict, List, Optional

from notifier.db.models import CalendarItem, KanbanCard, UserProfile
from notifier.providers.business_data_provider import BusinessDataProvider, count_by
from notifier.utils.datetime_utils import business_now, get_date_range_for_period
from .formatting import calendar_type_emoji, format_clock, format_day_month

STUCK_AFTER = timedelta(days=3)
STUCK_CARDS_THRESHOLD = 3
AGENDA_LIMIT = 15
URGENT_LIMIT = 5


@dataclass
class DailyDigestData:
    events: List[CalendarItem] = field(default_factory=list)
    responsible_names: Dict[str, str] = field(default_factory=dict)
    urgent_cards: List[KanbanCard] = field(default_factory=list)
    overdue_count: int = 0
    insight: Optional[str] = None


async def gather_daily_digest(
    provider: BusinessDataProvider, profile: UserProfile, now: datetime
) -> DailyDigestData:
    today = get_date_range_for_period("today", now)
    finished_ids = await provider.get_finished_column_ids()

    events = await provider.get_events_between(today.start, today.end, limit=AGENDA_LIMIT)
    names = await provider.resolve_user_names(e.responsible_user_id for e in events)

    return DailyDigestData(
        events=events,
        responsible_names=names,
        urgent_cards=await provider.get_urgent_cards(finished_ids, limit=URGENT_LIMIT),
        overdue_count=await provider.count_overdue_cards(now, finished_ids),
        insight=await _pick_insight(provider, profile, now),
    )


async def _pick_insight(
    provider: BusinessDataProvider, profile: UserProfile, now: datetime
) -> Optional[str]:
    """Stuck cards first, then today's dominant content type, then a remembered pattern."""
    stuck = await provider.get_stuck_cards(moved_before=now - STUCK_AFTER)
    if len(stuck) > STUCK_CARDS_THRESHOLD:
        column_name, count = count_by(card.column_name for card in stuck)[0]
        return (
            f"Você tem {len(stuck)} cards parados há mais de 3 dias. "
            f'"{column_name}" tem {count} — vale revisar!'
        )

    today = get_date_range_for_period("today", now)
    created = await provider.get_cards_created_between(today.start, today.end)
    ranking = count_by(card.content_type for card in created)
    if ranking:
        content_type, count = ranking[0]
        return f'Hoje, {count}/{len(created)} cards criados são do tipo "{content_type}".'

    for fact in await provider.get_active_facts(profile.id):
        if fact.category == "pattern":
            return f"Padrão observado: {fact.fact}"
    return None


def _greeting(now: datetime) -> str:
    hour = business_now(now).hour
    if hour < 12:
        return "☀️ Bom dia"
    if hour < 18:
        return "🌤️ Boa tarde"
    return "🌙 Boa noite"


def render_daily_digest(profile: UserProfile, data: DailyDigestData, now: datetime) -> str:
    sections = [f"{_greeting(now)}, {profile.first_name}! Aqui está seu resumo de hoje:\n"]

    if data.events:
        lines = []
        for index, item in enumerate(data.events, start=1):
            when = "Dia inteiro" if item.all_day else format_clock(item.start_time)
            responsible = data.responsible_names.get(item.responsible_user_id or "")
            suffix = f" → {responsible}" if responsible else ""
            lines.append(
                f"  {index}. {calendar_type_emoji(item.type)} *{item.title}* — {when}{suffix}"
            )
        sections.append(f"📅 *Agenda de hoje* ({len(data.events)}):\n" + "\n".join(lines))
    else:
        sections.append("📅 Agenda limpa hoje — bom dia para focar em produção! 🎯")

    if data.urgent_cards:
        lines = []
        for card in data.urgent_cards:
            due = f" 📅 {format_day_month(card.due_date)}" if card.due_date else ""
            lines.append(f"  🔴 *{card.title}* — {card.column_name}{due}")
        sections.append(
            f"\n⚡ *Cards urgentes* ({len(data.urgent_cards)}):\n" + "\n".join(lines)
        )

    if data.overdue_count > 0:
        sections.append(
            f"⚠️ *{data.overdue_count} card(s) com prazo vencido* — "
            '"quais cards vencidos?" para ver detalhes'
        )

    if data.insight:
        sections.append(f"\n💡 {data.insight}")

    sections.append("\nBom trabalho hoje! 🎵")
    return "\n".join(sections)


async def generate_daily_digest(
    provider: BusinessDataProvider, profile: UserProfile, now: datetime
) -> str:
    data = await gather_daily_digest(provider, profile, now)
    return render_daily_digest(profile, data, now)

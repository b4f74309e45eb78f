from dataclasses import dataclass
from datetime import datetime

from notifier.db.models import UserProfile
from notifier.providers.business_data_provider import BusinessDataProvider, count_by
from notifier.utils.datetime_utils import DateRange, get_date_range_for_period
from .formatting import percentage
from .metrics import (
    BoardSnapshot,
    EventMetrics,
    ProductionMetrics,
    collect_board,
    collect_events,
    collect_production,
    render_alert_lines,
    render_board_lines,
)

WEEKLY_BAR_CAP = 8
INSIGHT_MIN_CARDS = 5


@dataclass
class WeeklySummaryData:
    period: DateRange
    production: ProductionMetrics
    events: EventMetrics
    board: BoardSnapshot


async def gather_weekly_summary(
    provider: BusinessDataProvider, now: datetime
) -> WeeklySummaryData:
    period = get_date_range_for_period("last_week", now)
    return WeeklySummaryData(
        period=period,
        production=await collect_production(provider, period),
        events=await collect_events(provider, period),
        board=await collect_board(provider, now),
    )


def render_weekly_summary(profile: UserProfile, data: WeeklySummaryData) -> str:
    first_day = data.period.first_day
    last_day = data.period.last_day
    production = data.production
    events = data.events

    sections = [
        f"📊 *Resumo Semanal* — {first_day:%d/%m} a {last_day:%d/%m}\n",
        f"Olá, {profile.first_name}! Aqui vai o balanço da semana:\n",
        "📋 *Produção:*",
        f"  Cards criados: {production.cards_created}",
        f"  Cards publicados: {production.cards_published}",
        "  Taxa de publicação: "
        f"{percentage(production.cards_published, production.cards_created)}%",
        "\n📅 *Eventos:*",
        f"  Total: {events.total}",
        f"  Concluídos: {events.completed} ({percentage(events.completed, events.total)}%)",
    ]

    board_lines = render_board_lines(data.board, WEEKLY_BAR_CAP)
    if board_lines:
        sections.append("\n📊 *Kanban:*")
        sections.append("\n".join(board_lines))

    alert_lines = render_alert_lines(data.board)
    if alert_lines:
        sections.append("\n🚨 *Atenção:*")
        sections.append("\n".join(alert_lines))

    if production.cards_created > INSIGHT_MIN_CARDS:
        ranking = count_by(production.content_types)
        if ranking:
            content_type, count = ranking[0]
            sections.append(
                f"\n💡 *Insight:* Esta semana, {count}/{production.cards_created} "
                f'cards são de tipo "{content_type}".'
            )

    sections.append("\nBoa semana! 🎵")
    return "\n".join(sections)


async def generate_weekly_summary(
    provider: BusinessDataProvider, profile: UserProfile, now: datetime
) -> str:
    data = await gather_weekly_summary(provider, now)
    return render_weekly_summary(profile, data)

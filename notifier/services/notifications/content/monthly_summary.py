from dataclasses import dataclass
from datetime import datetime
from typing import List

from notifier.db.models import UserProfile
from notifier.providers.business_data_provider import BusinessDataProvider, count_by
from notifier.utils.datetime_utils import DateRange, get_date_range_for_period
from .formatting import MONTH_NAMES, compare_arrow, percentage
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

MONTHLY_BAR_CAP = 10
TOP_CONTENT_TYPES = 3
UNTYPED_CONTENT = "outro"


@dataclass
class MonthlySummaryData:
    period: DateRange
    production: ProductionMetrics
    previous: ProductionMetrics
    events: EventMetrics
    board: BoardSnapshot


async def gather_monthly_summary(
    provider: BusinessDataProvider, now: datetime
) -> MonthlySummaryData:
    period = get_date_range_for_period("last_month", now)
    previous_period = get_date_range_for_period("month_before_last", now)
    return MonthlySummaryData(
        period=period,
        production=await collect_production(provider, period),
        previous=await collect_production(provider, previous_period),
        events=await collect_events(provider, period, include_cancelled=True),
        board=await collect_board(provider, now),
    )


def _with_arrow(label: str, current: int, previous: int) -> str:
    arrow = compare_arrow(current, previous)
    return f"  {label}: {current} {arrow}" if arrow else f"  {label}: {current}"


def _top_content_lines(production: ProductionMetrics) -> List[str]:
    ranking = count_by(ct or UNTYPED_CONTENT for ct in production.content_types)
    return [
        f"  • {content_type}: {count} ({percentage(count, production.cards_created)}%)"
        for content_type, count in ranking[:TOP_CONTENT_TYPES]
    ]


def render_monthly_summary(profile: UserProfile, data: MonthlySummaryData) -> str:
    month = data.period.first_day
    production = data.production
    previous = data.previous
    events = data.events

    sections = [
        f"📊 *Relatório Mensal — {MONTH_NAMES[month.month - 1]} {month.year}*\n",
        f"Olá, {profile.first_name}! Aqui vai o balanço completo do mês:\n",
        "📋 *Produção:*",
        _with_arrow("Cards criados", production.cards_created, previous.cards_created),
        _with_arrow(
            "Cards publicados", production.cards_published, previous.cards_published
        ),
        "  Taxa de publicação: "
        f"{percentage(production.cards_published, production.cards_created)}%",
    ]

    top_lines = _top_content_lines(production)
    if top_lines:
        sections.append("\n🎬 *Top conteúdos:*")
        sections.append("\n".join(top_lines))

    sections.extend(
        [
            "\n📅 *Eventos:*",
            f"  Total: {events.total}",
            f"  Concluídos: {events.completed} "
            f"({percentage(events.completed, events.total)}%)",
        ]
    )
    if events.cancelled > 0:
        sections.append(f"  Cancelados: {events.cancelled}")

    board_lines = render_board_lines(data.board, MONTHLY_BAR_CAP)
    if board_lines:
        sections.append("\n📊 *Kanban (snapshot atual):*")
        sections.append("\n".join(board_lines))

    alert_lines = render_alert_lines(data.board, urgent_suffix=" ativo(s)")
    if alert_lines:
        sections.append("\n🚨 *Atenção:*")
        sections.append("\n".join(alert_lines))

    ranking = count_by(production.content_types)
    if ranking:
        content_type, count = ranking[0]
        sections.append(
            f'\n💡 *Insight:* Este mês, "{content_type}" liderou a produção com '
            f"{count}/{production.cards_created} cards."
        )

    sections.append("\nBom mês! 🎵")
    return "\n".join(sections)


async def generate_monthly_summary(
    provider: BusinessDataProvider, profile: UserProfile, now: datetime
) -> str:
    data = await gather_monthly_summary(provider, now)
    return render_monthly_summary(profile, data)

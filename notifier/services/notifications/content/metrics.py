from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional

from notifier.providers.business_data_provider import (
    BusinessDataProvider,
    ColumnCount,
)
from notifier.utils.datetime_utils import DateRange
from .formatting import bar


@dataclass
class ProductionMetrics:
    cards_created: int = 0
    cards_published: int = 0
    content_types: List[Optional[str]] = field(default_factory=list)


@dataclass
class EventMetrics:
    total: int = 0
    completed: int = 0
    cancelled: int = 0


@dataclass
class BoardSnapshot:
    columns: List[ColumnCount] = field(default_factory=list)
    urgent_count: int = 0
    overdue_count: int = 0


async def collect_production(
    provider: BusinessDataProvider, period: DateRange
) -> ProductionMetrics:
    created = await provider.get_cards_created_between(period.start, period.end)
    published = await provider.count_cards_published_between(period.start, period.end)
    return ProductionMetrics(
        cards_created=len(created),
        cards_published=published,
        content_types=[card.content_type for card in created],
    )


async def collect_events(
    provider: BusinessDataProvider, period: DateRange, include_cancelled: bool = False
) -> EventMetrics:
    events = await provider.get_events_between(
        period.start, period.end, include_cancelled=include_cancelled
    )
    return EventMetrics(
        total=len(events),
        completed=sum(1 for event in events if event.status == "completed"),
        cancelled=sum(1 for event in events if event.status == "cancelled"),
    )


async def collect_board(provider: BusinessDataProvider, now: datetime) -> BoardSnapshot:
    finished_ids = await provider.get_finished_column_ids()
    return BoardSnapshot(
        columns=await provider.get_column_snapshot(),
        urgent_count=await provider.count_urgent_cards(finished_ids),
        overdue_count=await provider.count_overdue_cards(now, finished_ids),
    )


def render_board_lines(board: BoardSnapshot, bar_cap: int) -> List[str]:
    return [
        f"  {column.name}: {column.count} {bar(column.count, bar_cap)}"
        for column in board.columns
    ]


def render_alert_lines(board: BoardSnapshot, urgent_suffix: str = "") -> List[str]:
    lines = []
    if board.urgent_count > 0:
        lines.append(f"  🔴 {board.urgent_count} card(s) urgente(s){urgent_suffix}")
    if board.overdue_count > 0:
        lines.append(f"  ⚠️ {board.overdue_count} card(s) com prazo vencido")
    return lines

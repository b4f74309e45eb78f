from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from sqlalchemy import and_, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from notifier.db.models import (
    CalendarItem,
    Contact,
    KanbanCard,
    KanbanColumn,
    MemoryFact,
    NotificationSettings,
    UserProfile,
)

FINISHED_COLUMN_SLUGS = ("published", "archived")
# Columns where a card sitting still is expected, so it never counts as stuck
IDLE_COLUMN_SLUGS = FINISHED_COLUMN_SLUGS + ("brainstorming",)
PUBLISHED_COLUMN_SLUG = "published"


@dataclass
class Subscriber:
    """
    A profile and its notification settings, held as detached copies.

    A failed write later in the run rolls back the session and expires every
    loaded object; these copies stay readable for the remaining subscribers.
    """

    profile: UserProfile
    settings: NotificationSettings
    profile_id: str = field(init=False)

    def __post_init__(self):
        self.profile_id = self.profile.id


@dataclass
class ColumnCount:
    name: str
    slug: str
    count: int


class BusinessDataProvider:
    """Read-only queries over the externally owned business tables."""

    def __init__(self, db_session: AsyncSession):
        self.db = db_session
        self._columns: Optional[List[KanbanColumn]] = None

    # Subscribers and contacts

    async def get_subscribers(self, *flag_names: str) -> List[Subscriber]:
        """Profiles whose notification settings enable any of the given flags."""
        flags = [getattr(NotificationSettings, name).is_(True) for name in flag_names]
        stmt = (
            select(NotificationSettings, UserProfile)
            .join(UserProfile, UserProfile.id == NotificationSettings.user_id)
            .where(or_(*flags))
            .order_by(UserProfile.id)
        )
        result = await self.db.execute(stmt)
        return [
            Subscriber(profile=profile.detached_copy(), settings=settings.detached_copy())
            for settings, profile in result.all()
            if profile.full_name
        ]

    async def get_settings_for(self, profile_id: str) -> Optional[NotificationSettings]:
        result = await self.db.execute(
            select(NotificationSettings).where(NotificationSettings.user_id == profile_id)
        )
        user_settings = result.scalar_one_or_none()
        return user_settings.detached_copy() if user_settings else None

    async def get_phone(self, profile_id: str) -> Optional[str]:
        """Contact phone for a profile; contacts are the single source of truth."""
        result = await self.db.execute(
            select(Contact.phone)
            .where(
                and_(
                    Contact.user_profile_id == profile_id,
                    Contact.deleted_at.is_(None),
                )
            )
            .order_by(Contact.created_at)
            .limit(1)
        )
        return result.scalar_one_or_none() or None

    async def resolve_user_names(self, auth_user_ids: Iterable[str]) -> Dict[str, str]:
        """Map auth user ids to profile full names."""
        unique_ids = {user_id for user_id in auth_user_ids if user_id}
        if not unique_ids:
            return {}
        result = await self.db.execute(
            select(UserProfile.user_id, UserProfile.full_name).where(
                UserProfile.user_id.in_(unique_ids)
            )
        )
        return {user_id: name for user_id, name in result.all() if name}

    # Kanban columns

    async def get_columns(self) -> List[KanbanColumn]:
        if self._columns is None:
            result = await self.db.execute(
                select(KanbanColumn).order_by(KanbanColumn.position)
            )
            self._columns = [column.detached_copy() for column in result.scalars().all()]
        return self._columns

    async def get_column_ids(self, slugs: Sequence[str]) -> List[str]:
        return [column.id for column in await self.get_columns() if column.slug in slugs]

    async def get_finished_column_ids(self) -> List[str]:
        return await self.get_column_ids(FINISHED_COLUMN_SLUGS)

    async def get_published_column_id(self) -> Optional[str]:
        ids = await self.get_column_ids((PUBLISHED_COLUMN_SLUG,))
        return ids[0] if ids else None

    async def get_column_snapshot(self) -> List[ColumnCount]:
        """Live card count per column, in board order, without archived or empty columns."""
        result = await self.db.execute(
            select(KanbanCard.column_id, func.count(KanbanCard.id))
            .where(KanbanCard.deleted_at.is_(None))
            .group_by(KanbanCard.column_id)
        )
        counts = dict(result.all())
        return [
            ColumnCount(name=column.name, slug=column.slug, count=counts[column.id])
            for column in await self.get_columns()
            if column.slug != "archived" and counts.get(column.id, 0) > 0
        ]

    # Cards

    @staticmethod
    def _live_card_criteria(exclude_column_ids: Sequence[str] = ()) -> list:
        criteria = [KanbanCard.deleted_at.is_(None)]
        if exclude_column_ids:
            criteria.append(
                or_(
                    KanbanCard.column_id.is_(None),
                    KanbanCard.column_id.not_in(exclude_column_ids),
                )
            )
        return criteria

    def _live_cards(self, exclude_column_ids: Sequence[str] = ()):
        return (
            select(KanbanCard)
            .options(selectinload(KanbanCard.column))
            .where(*self._live_card_criteria(exclude_column_ids))
        )

    async def _count(self, *criteria) -> int:
        result = await self.db.execute(
            select(func.count(KanbanCard.id)).where(*criteria)
        )
        return int(result.scalar_one())

    async def get_urgent_cards(
        self,
        exclude_column_ids: Sequence[str] = (),
        updated_since: Optional[datetime] = None,
        limit: int = 10,
    ) -> List[KanbanCard]:
        stmt = self._live_cards(exclude_column_ids).where(KanbanCard.priority == "urgent")
        if updated_since is not None:
            stmt = stmt.where(KanbanCard.updated_at >= updated_since)
        stmt = stmt.order_by(KanbanCard.due_date.is_(None), KanbanCard.due_date).limit(
            limit
        )
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def get_cards_due_between(
        self,
        start: datetime,
        end: datetime,
        exclude_column_ids: Sequence[str] = (),
        limit: int = 10,
    ) -> List[KanbanCard]:
        stmt = (
            self._live_cards(exclude_column_ids)
            .where(and_(KanbanCard.due_date >= start, KanbanCard.due_date < end))
            .order_by(KanbanCard.due_date)
            .limit(limit)
        )
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def get_cards_assigned_to(
        self,
        auth_user_id: str,
        updated_since: datetime,
        exclude_column_ids: Sequence[str] = (),
        limit: int = 10,
    ) -> List[KanbanCard]:
        stmt = (
            self._live_cards(exclude_column_ids)
            .where(
                and_(
                    KanbanCard.responsible_user_id == auth_user_id,
                    KanbanCard.updated_at >= updated_since,
                )
            )
            .order_by(KanbanCard.updated_at.desc())
            .limit(limit)
        )
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def get_stuck_cards(self, moved_before: datetime) -> List[KanbanCard]:
        idle_ids = await self.get_column_ids(IDLE_COLUMN_SLUGS)
        stmt = self._live_cards(idle_ids).where(
            and_(
                KanbanCard.column_id.is_not(None),
                KanbanCard.moved_to_column_at < moved_before,
            )
        )
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def get_cards_created_between(
        self, start: datetime, end: datetime
    ) -> List[KanbanCard]:
        stmt = self._live_cards().where(
            and_(KanbanCard.created_at >= start, KanbanCard.created_at < end)
        )
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def count_cards_published_between(self, start: datetime, end: datetime) -> int:
        published_id = await self.get_published_column_id()
        if not published_id:
            return 0
        return await self._count(
            KanbanCard.deleted_at.is_(None),
            KanbanCard.column_id == published_id,
            KanbanCard.moved_to_column_at >= start,
            KanbanCard.moved_to_column_at < end,
        )

    async def count_urgent_cards(self, exclude_column_ids: Sequence[str] = ()) -> int:
        return await self._count(
            *self._live_card_criteria(exclude_column_ids),
            KanbanCard.priority == "urgent",
        )

    async def count_overdue_cards(
        self, now: datetime, exclude_column_ids: Sequence[str] = ()
    ) -> int:
        return await self._count(
            *self._live_card_criteria(exclude_column_ids),
            KanbanCard.due_date < now,
        )

    # Calendar

    async def get_events_between(
        self,
        start: datetime,
        end: datetime,
        include_cancelled: bool = False,
        limit: Optional[int] = None,
    ) -> List[CalendarItem]:
        stmt = (
            select(CalendarItem)
            .where(
                and_(
                    CalendarItem.deleted_at.is_(None),
                    CalendarItem.start_time >= start,
                    CalendarItem.start_time < end,
                )
            )
            .order_by(CalendarItem.start_time)
        )
        if not include_cancelled:
            stmt = stmt.where(CalendarItem.status != "cancelled")
        if limit:
            stmt = stmt.limit(limit)
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    # Memory

    async def get_active_facts(self, profile_id: str, limit: int = 5) -> List[MemoryFact]:
        result = await self.db.execute(
            select(MemoryFact)
            .where(and_(MemoryFact.user_id == profile_id, MemoryFact.is_active.is_(True)))
            .order_by(MemoryFact.confidence.desc())
            .limit(limit)
        )
        return list(result.scalars().all())


def count_by(values: Iterable[Optional[str]]) -> List[Tuple[str, int]]:
    """Frequency table sorted by count descending, first occurrence winning ties."""
    counts: Dict[str, int] = {}
    for value in values:
        if value:
            counts[value] = counts.get(value, 0) + 1
    return sorted(counts.items(), key=lambda item: item[1], reverse=True)

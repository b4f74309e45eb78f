from datetime import datetime, timedelta
from typing import Any, Dict, Optional

from sqlalchemy import and_, delete, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from notifier.config.settings import settings
from notifier.db.models import MemoryEpisode, MemoryFact
from notifier.services.notifications.report import RunReport
from notifier.utils.datetime_utils import to_utc, utc_now
from notifier.utils.errors import StoreFailure
from notifier.utils.logging import get_logger

logger = get_logger()


class MemoryService:
    """Writes digest audit episodes and keeps the agent memory tables trimmed."""

    def __init__(self, db_session: AsyncSession):
        self.db = db_session

    async def save_episode(
        self,
        user_id: str,
        summary: str,
        entities: Optional[Dict[str, Any]] = None,
        outcome: str = "info_provided",
        importance: float = 0.5,
        source: str = "whatsapp",
        now: Optional[datetime] = None,
    ) -> MemoryEpisode:
        episode = MemoryEpisode(
            user_id=user_id,
            summary=summary,
            entities=entities or {},
            outcome=outcome,
            importance=importance,
            source=source,
            created_at=to_utc(now or utc_now()),
        )
        try:
            self.db.add(episode)
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            raise StoreFailure(f"Failed to save memory episode: {e}")
        return episode

    async def cleanup_old_episodes(self, now: Optional[datetime] = None) -> int:
        """Delete old, low-importance episodes. Returns the number deleted."""
        cutoff = to_utc(now or utc_now()) - timedelta(
            days=settings.MEMORY_EPISODE_RETENTION_DAYS
        )
        result = await self._execute(
            delete(MemoryEpisode).where(
                and_(
                    MemoryEpisode.created_at < cutoff,
                    MemoryEpisode.importance < settings.MEMORY_EPISODE_KEEP_IMPORTANCE,
                )
            )
        )
        return result.rowcount or 0

    async def decay_stale_facts(self, now: Optional[datetime] = None) -> int:
        """
        Lower the confidence of active facts not refreshed recently.

        Facts that fall below MEMORY_FACT_MIN_CONFIDENCE are deactivated. updated_at
        is left alone so a stale fact keeps decaying on every run until it is
        refreshed or deactivated.

        Returns:
            int: Number of facts decayed
        """
        cutoff = to_utc(now or utc_now()) - timedelta(days=settings.MEMORY_FACT_STALE_DAYS)
        stale = and_(MemoryFact.is_active.is_(True), MemoryFact.updated_at < cutoff)

        decayed = await self._execute(
            update(MemoryFact)
            .where(stale)
            .values(confidence=MemoryFact.confidence * settings.MEMORY_FACT_DECAY)
            .execution_options(synchronize_session=False)
        )
        deactivated = await self._execute(
            update(MemoryFact)
            .where(
                and_(
                    stale,
                    MemoryFact.confidence < settings.MEMORY_FACT_MIN_CONFIDENCE,
                )
            )
            .values(is_active=False)
            .execution_options(synchronize_session=False)
        )

        if deactivated.rowcount:
            logger.info("Deactivated low-confidence facts", count=deactivated.rowcount)
        return decayed.rowcount or 0

    async def run_maintenance(self, now: Optional[datetime] = None) -> RunReport:
        episodes_deleted = await self.cleanup_old_episodes(now)
        facts_decayed = await self.decay_stale_facts(now)

        logger.info(
            "Memory maintenance finished",
            episodes_deleted=episodes_deleted,
            facts_decayed=facts_decayed,
        )
        return RunReport(
            processed=episodes_deleted + facts_decayed,
            details={"episodes": episodes_deleted, "facts": facts_decayed},
        )

    async def _execute(self, statement):
        try:
            result = await self.db.execute(statement)
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            raise StoreFailure(f"Memory maintenance failed: {e}")
        return result

from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from notifier.db.models import MemoryEpisode, MemoryFact
from notifier.services.memory_service import MemoryService
from factories import create_user

NOW = datetime(2026, 2, 9, 12, 0, tzinfo=timezone.utc)


async def add_episode(db_session, user_id, age_days, importance):
    episode = MemoryEpisode(
        user_id=user_id,
        summary=f"Episódio de {age_days} dias",
        importance=importance,
        created_at=NOW - timedelta(days=age_days),
    )
    db_session.add(episode)
    await db_session.commit()
    return episode


async def add_fact(db_session, user_id, age_days, confidence):
    fact = MemoryFact(
        user_id=user_id,
        category="pattern",
        fact="Prefere reels às sextas",
        confidence=confidence,
        created_at=NOW - timedelta(days=age_days),
        updated_at=NOW - timedelta(days=age_days),
    )
    db_session.add(fact)
    await db_session.commit()
    return fact


class TestEpisodes:
    """Test episode writes and retention."""

    @pytest.mark.asyncio
    async def test_save_episode(self, db_session: AsyncSession):
        profile = await create_user(db_session)

        episode = await MemoryService(db_session).save_episode(
            user_id=profile.id,
            summary="Enviei resumo semanal para Ana Souza.",
            entities={"report_type": "weekly_summary"},
            importance=0.3,
            now=NOW,
        )

        assert episode.id is not None
        assert episode.created_at == NOW
        assert episode.source == "whatsapp"
        assert episode.outcome == "info_provided"

    @pytest.mark.asyncio
    async def test_cleanup_keeps_recent_and_important(self, db_session: AsyncSession):
        profile = await create_user(db_session)
        old_minor = await add_episode(db_session, profile.id, age_days=120, importance=0.2)
        old_major = await add_episode(db_session, profile.id, age_days=120, importance=0.9)
        recent = await add_episode(db_session, profile.id, age_days=10, importance=0.1)

        deleted = await MemoryService(db_session).cleanup_old_episodes(NOW)

        result = await db_session.execute(select(MemoryEpisode.id))
        remaining = set(result.scalars().all())
        assert deleted == 1
        assert old_minor.id not in remaining
        assert remaining == {old_major.id, recent.id}


class TestFactDecay:
    """Test confidence decay of stale facts."""

    @pytest.mark.asyncio
    async def test_stale_fact_decays(self, db_session: AsyncSession):
        profile = await create_user(db_session)
        stale = await add_fact(db_session, profile.id, age_days=40, confidence=1.0)
        fresh = await add_fact(db_session, profile.id, age_days=5, confidence=1.0)

        decayed = await MemoryService(db_session).decay_stale_facts(NOW)

        await db_session.refresh(stale)
        await db_session.refresh(fresh)
        assert decayed == 1
        assert stale.confidence == pytest.approx(0.9)
        assert stale.is_active is True
        assert fresh.confidence == pytest.approx(1.0)

    @pytest.mark.asyncio
    async def test_low_confidence_fact_deactivated(self, db_session: AsyncSession):
        profile = await create_user(db_session)
        weak = await add_fact(db_session, profile.id, age_days=40, confidence=0.21)

        await MemoryService(db_session).decay_stale_facts(NOW)

        await db_session.refresh(weak)
        assert weak.confidence == pytest.approx(0.189)
        assert weak.is_active is False

    @pytest.mark.asyncio
    async def test_inactive_facts_untouched(self, db_session: AsyncSession):
        profile = await create_user(db_session)
        inactive = await add_fact(db_session, profile.id, age_days=40, confidence=0.5)
        inactive.is_active = False
        await db_session.commit()

        decayed = await MemoryService(db_session).decay_stale_facts(NOW)

        await db_session.refresh(inactive)
        assert decayed == 0
        assert inactive.confidence == pytest.approx(0.5)


class TestMaintenanceRun:
    @pytest.mark.asyncio
    async def test_report_counts(self, db_session: AsyncSession):
        profile = await create_user(db_session)
        await add_episode(db_session, profile.id, age_days=100, importance=0.1)
        await add_episode(db_session, profile.id, age_days=100, importance=0.3)
        await add_fact(db_session, profile.id, age_days=31, confidence=0.8)

        report = await MemoryService(db_session).run_maintenance(NOW)

        assert report.processed == 3
        assert report.errors == 0
        assert report.details == {"episodes": 2, "facts": 1}

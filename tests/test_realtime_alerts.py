from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from notifier.db.models import MessageSource, ScheduledMessage
from notifier.services.notifications.realtime_alerts import RealtimeAlertProcessor
from factories import FlakyGuard, create_card, create_columns, create_user

# 12:00 local on Monday 2026-02-09
NOW = datetime(2026, 2, 9, 15, 0, tzinfo=timezone.utc)


async def queued_alerts(db_session: AsyncSession):
    result = await db_session.execute(
        select(ScheduledMessage)
        .where(ScheduledMessage.source == MessageSource.REALTIME_ALERT)
        .order_by(ScheduledMessage.created_at)
    )
    return result.scalars().all()


async def seed_board(db_session: AsyncSession, assignee_auth_id: str) -> dict:
    columns = await create_columns(db_session)
    cards = {
        "urgent": await create_card(
            db_session,
            columns["producing"],
            title="Mix final",
            priority="urgent",
            updated_at=NOW - timedelta(hours=1),
        ),
        "due_today": await create_card(
            db_session,
            columns["review"],
            title="Thumbnail",
            due_date=datetime(2026, 2, 9, 20, 0, tzinfo=timezone.utc),
            updated_at=NOW - timedelta(days=3),
        ),
        "due_tomorrow": await create_card(
            db_session,
            columns["producing"],
            title="Legenda",
            due_date=datetime(2026, 2, 10, 15, 0, tzinfo=timezone.utc),
            updated_at=NOW - timedelta(days=3),
        ),
        "assigned": await create_card(
            db_session,
            columns["brainstorming"],
            title="Roteiro",
            priority="high",
            responsible_user_id=assignee_auth_id,
            updated_at=NOW - timedelta(minutes=30),
        ),
    }
    # Never alerted: finished, stale or far off
    await create_card(
        db_session,
        columns["published"],
        title="Publicado urgente",
        priority="urgent",
        updated_at=NOW - timedelta(hours=1),
    )
    await create_card(
        db_session,
        columns["producing"],
        title="Urgente antigo",
        priority="urgent",
        updated_at=NOW - timedelta(days=2),
    )
    await create_card(
        db_session,
        columns["producing"],
        title="Prazo distante",
        due_date=datetime(2026, 2, 20, 15, 0, tzinfo=timezone.utc),
        updated_at=NOW - timedelta(days=3),
    )
    return cards


class TestRealtimeAlertProcessor:
    """Test alert detection and per-day dedup."""

    @pytest.mark.asyncio
    async def test_creates_alert_per_kind(self, db_session: AsyncSession):
        profile = await create_user(db_session)
        cards = await seed_board(db_session, profile.user_id)

        report = await RealtimeAlertProcessor(db_session).run(NOW)

        alerts = await queued_alerts(db_session)
        references = {m.source_reference for m in alerts}
        assert report.processed == 4
        assert references == {
            f"alert:urgent:{cards['urgent'].id}:2026-02-09",
            f"alert:deadline-d0:{cards['due_today'].id}:2026-02-09",
            f"alert:deadline-d1:{cards['due_tomorrow'].id}:2026-02-09",
            f"alert:assign:{cards['assigned'].id}:2026-02-09",
        }
        assert all(m.scheduled_for == NOW for m in alerts)
        assert all(m.target_user_id == profile.id for m in alerts)

    @pytest.mark.asyncio
    async def test_alert_content(self, db_session: AsyncSession):
        profile = await create_user(db_session)
        cards = await seed_board(db_session, profile.user_id)

        await RealtimeAlertProcessor(db_session).run(NOW)

        by_card = {m.source_id: m for m in await queued_alerts(db_session)}
        urgent = by_card[cards["urgent"].id]
        assert urgent.content.startswith("🔴 *Card urgente*")
        assert "📋 Produzindo" in urgent.content
        assert urgent.message_metadata["alert_type"] == "urgent"

        due_today = by_card[cards["due_today"].id].content
        assert due_today.startswith("⚠️ *Prazo hoje!*")
        assert "📅 Vence hoje (09/02)" in due_today

        assigned = by_card[cards["assigned"].id].content
        assert assigned.startswith("👤 *Nova atribuição*")
        assert "🟠 *Roteiro*" in assigned

    @pytest.mark.asyncio
    async def test_same_day_rerun_creates_nothing(self, db_session: AsyncSession):
        profile = await create_user(db_session)
        await seed_board(db_session, profile.user_id)
        processor = RealtimeAlertProcessor(db_session)

        await processor.run(NOW)
        report = await processor.run(NOW + timedelta(minutes=15))

        assert report.processed == 0
        assert report.skipped == 4
        assert len(await queued_alerts(db_session)) == 4

    @pytest.mark.asyncio
    async def test_next_day_uses_new_keys(self, db_session: AsyncSession):
        """Tomorrow's deadline becomes today's deadline with a fresh key."""
        profile = await create_user(db_session)
        cards = await seed_board(db_session, profile.user_id)
        processor = RealtimeAlertProcessor(db_session)

        await processor.run(NOW)
        report = await processor.run(NOW + timedelta(days=1))

        assert report.processed == 1
        references = {m.source_reference for m in await queued_alerts(db_session)}
        assert f"alert:deadline-d0:{cards['due_tomorrow'].id}:2026-02-10" in references

    @pytest.mark.asyncio
    async def test_disabled_kind_not_collected(self, db_session: AsyncSession):
        profile = await create_user(db_session, deadline_alerts_enabled=False)
        await seed_board(db_session, profile.user_id)

        report = await RealtimeAlertProcessor(db_session).run(NOW)

        kinds = {m.message_metadata["alert_type"] for m in await queued_alerts(db_session)}
        assert report.processed == 2
        assert kinds == {"urgent", "assign"}

    @pytest.mark.asyncio
    async def test_assignments_only_for_assignee(self, db_session: AsyncSession):
        assignee = await create_user(db_session, full_name="Ana Souza", phone="5511000000001")
        other = await create_user(db_session, full_name="Bruno Lima", phone="5511000000002")
        await seed_board(db_session, assignee.user_id)

        await RealtimeAlertProcessor(db_session).run(NOW)

        assign_targets = [
            m.target_user_id
            for m in await queued_alerts(db_session)
            if m.message_metadata["alert_type"] == "assign"
        ]
        assert assign_targets == [assignee.id]
        assert other.id not in assign_targets

    @pytest.mark.asyncio
    async def test_no_subscribers(self, db_session: AsyncSession):
        await create_user(
            db_session,
            urgent_alerts_enabled=False,
            deadline_alerts_enabled=False,
            assignment_alerts_enabled=False,
        )

        report = await RealtimeAlertProcessor(db_session).run(NOW)

        assert report.processed == 0
        assert report.errors == 0

    @pytest.mark.asyncio
    async def test_store_failure_does_not_stop_other_subscribers(
        self, db_session: AsyncSession
    ):
        """The failed insert rolls back the session; the next subscriber reloads the card."""
        await create_user(db_session, full_name="Ana Souza", phone="5511000000001")
        await create_user(db_session, full_name="Bruno Lima", phone="5511000000002")
        columns = await create_columns(db_session)
        card = await create_card(
            db_session,
            columns["producing"],
            title="Mix final",
            priority="urgent",
            updated_at=NOW - timedelta(hours=1),
        )
        reference = f"alert:urgent:{card.id}:2026-02-09"
        processor = RealtimeAlertProcessor(db_session, guard=FlakyGuard(db_session))

        report = await processor.run(NOW)

        alerts = await queued_alerts(db_session)
        assert report.errors == 1
        assert report.processed == 1
        assert [m.source_reference for m in alerts] == [reference]
        assert alerts[0].content.startswith("🔴 *Card urgente*")
        assert "📋 Produzindo" in alerts[0].content

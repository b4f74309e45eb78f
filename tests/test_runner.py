from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from notifier.db.models import MessageStatus
from notifier.schemas.task_schemas import ScheduledAction
from notifier.tasks.cron import scheduled_actions
from notifier.tasks.registry import ScheduledActionRegistry
from notifier.tasks.runner import parse_action, process_scheduled_task
from notifier.utils.errors import InvalidTriggerError
from factories import FakeChannel, create_message, create_user

NOW = datetime(2026, 2, 9, 12, 5, tzinfo=timezone.utc)


class TestParseAction:
    """Test trigger payload validation."""

    def test_known_action(self):
        assert parse_action({"action": "daily-digest"}) is ScheduledAction.DAILY_DIGEST

    def test_missing_action(self):
        with pytest.raises(InvalidTriggerError) as exc_info:
            parse_action({})
        assert exc_info.value.message == 'Missing "action" in body'

    def test_unknown_action(self):
        with pytest.raises(InvalidTriggerError) as exc_info:
            parse_action({"action": "launch-rockets"})
        assert exc_info.value.message == "Unknown action: launch-rockets"

    def test_body_must_be_object(self):
        with pytest.raises(InvalidTriggerError):
            parse_action(["send-reminders"])


class TestRegistry:
    def test_every_action_has_handler(self):
        for action in ScheduledAction:
            assert ScheduledActionRegistry.is_registered(action)

    def test_list_registered_actions(self):
        assert set(ScheduledActionRegistry.list_registered_actions()) == {
            action.value for action in ScheduledAction
        }


class TestProcessScheduledTask:
    """Test running actions through the shared entry point."""

    @pytest.mark.asyncio
    async def test_send_reminders(self, db_session: AsyncSession, channel: FakeChannel):
        profile = await create_user(db_session)
        message = await create_message(
            db_session, scheduled_for=NOW - timedelta(minutes=1), target_user_id=profile.id
        )

        result = await process_scheduled_task(
            {"action": "send-reminders"},
            db_session=db_session,
            channel=channel,
            now=NOW,
            send_delay=0,
        )

        await db_session.refresh(message)
        assert result["success"] is True
        assert result["action"] == "send-reminders"
        assert result["processed"] == 1
        assert result["errors"] == 0
        assert result["skipped"] == 0
        assert "details" not in result
        assert isinstance(result["elapsed_ms"], int)
        assert message.status == MessageStatus.SENT

    @pytest.mark.asyncio
    async def test_calendar_reminders_without_events(self, db_session, channel):
        await create_user(db_session)

        result = await process_scheduled_task(
            {"action": "calendar-reminders"}, db_session=db_session, channel=channel, now=NOW
        )

        assert result["processed"] == 0
        assert channel.sent == []

    @pytest.mark.asyncio
    async def test_memory_maintenance_details(self, db_session, channel):
        result = await process_scheduled_task(
            {"action": "memory-maintenance"}, db_session=db_session, channel=channel, now=NOW
        )

        assert result["details"] == {"episodes": 0, "facts": 0}

    @pytest.mark.asyncio
    async def test_unknown_action_raises(self, db_session, channel):
        with pytest.raises(InvalidTriggerError):
            await process_scheduled_task(
                {"action": "nope"}, db_session=db_session, channel=channel
            )


class TestScheduledActionTask:
    """Test the Celery beat entry point."""

    @pytest.mark.asyncio
    async def test_invalid_action_reported(self):
        result = await scheduled_actions._async_scheduled_action("nope", "weekly_cron")

        assert result == {
            "success": False,
            "action": "nope",
            "error": "Unknown action: nope",
            "request_id": "weekly_cron",
        }

    @pytest.mark.asyncio
    async def test_result_tagged_with_request_id(self, monkeypatch):
        calls = []

        async def fake_process(payload):
            calls.append(payload)
            return {"success": True, "action": payload["action"], "processed": 2}

        monkeypatch.setattr(scheduled_actions, "process_scheduled_task", fake_process)

        result = await scheduled_actions._async_scheduled_action(
            "send-reminders", "send_reminders_cron"
        )

        assert calls == [{"action": "send-reminders"}]
        assert result["processed"] == 2
        assert result["request_id"] == "send_reminders_cron"

    @pytest.mark.asyncio
    async def test_unexpected_error_reported(self, monkeypatch):
        async def failing_process(payload):
            raise RuntimeError("database unavailable")

        monkeypatch.setattr(scheduled_actions, "process_scheduled_task", failing_process)

        result = await scheduled_actions._async_scheduled_action(
            "daily-digest", "daily_digest_cron"
        )

        assert result["success"] is False
        assert result["error"] == "database unavailable"

    def test_task_body_runs_without_binding(self):
        """Beat passes only the action and request id; failures come back in the result."""
        result = scheduled_actions.scheduled_action_task.run("nope", "weekly_cron")

        assert result["success"] is False
        assert result["error"] == "Unknown action: nope"

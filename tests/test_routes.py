from datetime import datetime, timedelta, timezone

import httpx
import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession

from notifier.config.settings import settings
from notifier.db.models import MessageStatus, Recurrence, ScheduledMessage
from notifier.db.session import get_async_session
from notifier.main import create_application
from factories import create_user

API = settings.API_PREFIX


@pytest_asyncio.fixture
async def client(db_session: AsyncSession):
    """HTTP client bound to the app, with the test session injected."""
    application = create_application()

    async def override_session():
        yield db_session

    application.dependency_overrides[get_async_session] = override_session
    transport = httpx.ASGITransport(app=application)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as http:
        yield http


def future(hours: int = 24) -> str:
    return (datetime.now(timezone.utc) + timedelta(hours=hours)).isoformat()


class TestHealth:
    @pytest.mark.asyncio
    async def test_health(self, client: httpx.AsyncClient):
        response = await client.get(f"{API}/health/")

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["data"]["status"] == "healthy"
        assert "send-reminders" in body["data"]["actions"]
        assert response.headers["X-Request-ID"] == body["request_id"]

    @pytest.mark.asyncio
    async def test_request_id_propagated(self, client: httpx.AsyncClient):
        request_id = "2f1c7a52-6a0e-4a4e-9a55-1f3f7e5e9b10"

        response = await client.get(f"{API}/health/", headers={"X-Request-ID": request_id})

        assert response.headers["X-Request-ID"] == request_id


class TestTriggerRoute:
    """Test the external cron trigger."""

    @pytest.mark.asyncio
    async def test_runs_action(self, client: httpx.AsyncClient, monkeypatch):
        monkeypatch.setattr(settings, "TRIGGER_SECRET", "")

        response = await client.post(
            f"{API}/tasks/process-scheduled", json={"action": "memory-maintenance"}
        )

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["success"] is True
        assert data["action"] == "memory-maintenance"
        assert data["processed"] == 0

    @pytest.mark.asyncio
    async def test_unknown_action(self, client: httpx.AsyncClient, monkeypatch):
        monkeypatch.setattr(settings, "TRIGGER_SECRET", "")

        response = await client.post(
            f"{API}/tasks/process-scheduled", json={"action": "launch-rockets"}
        )

        assert response.status_code == 400
        body = response.json()
        assert body["success"] is False
        assert body["message"] == "Unknown action: launch-rockets"
        assert body["meta"]["error_code"] == "INVALID_TRIGGER"

    @pytest.mark.asyncio
    async def test_missing_action(self, client: httpx.AsyncClient, monkeypatch):
        monkeypatch.setattr(settings, "TRIGGER_SECRET", "")

        response = await client.post(f"{API}/tasks/process-scheduled", json={})

        assert response.status_code == 400
        assert response.json()["message"] == 'Missing "action" in body'

    @pytest.mark.asyncio
    async def test_malformed_json(self, client: httpx.AsyncClient, monkeypatch):
        monkeypatch.setattr(settings, "TRIGGER_SECRET", "")

        response = await client.post(
            f"{API}/tasks/process-scheduled",
            content=b"{not json",
            headers={"Content-Type": "application/json"},
        )

        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_secret_required_when_configured(
        self, client: httpx.AsyncClient, monkeypatch
    ):
        monkeypatch.setattr(settings, "TRIGGER_SECRET", "cron-secret")
        url = f"{API}/tasks/process-scheduled"
        body = {"action": "memory-maintenance"}

        missing = await client.post(url, json=body)
        wrong = await client.post(url, json=body, headers={"Authorization": "Bearer nope"})
        right = await client.post(
            url, json=body, headers={"Authorization": "Bearer cron-secret"}
        )

        assert missing.status_code == 401
        assert missing.json()["meta"]["error_code"] == "UNAUTHORIZED"
        assert wrong.status_code == 401
        assert right.status_code == 200


class TestReminderRoutes:
    """Test reminder creation and cancellation from the dashboard."""

    @pytest.mark.asyncio
    async def test_create_reminder(self, client: httpx.AsyncClient, db_session: AsyncSession):
        profile = await create_user(db_session)

        response = await client.post(
            f"{API}/reminders/",
            json={
                "text": "Pagar o estúdio",
                "scheduledFor": future(),
                "targetUserId": profile.id,
                "targetPhone": "5511999990000",
                "recurrence": "weekly",
            },
        )

        assert response.status_code == 201
        data = response.json()["data"]
        assert data["status"] == "pending"
        assert data["recurrence"] == "weekly"
        assert data["sourceReference"].startswith("dash:")

        message = await db_session.get(ScheduledMessage, data["id"])
        assert message.content == "⏰ *Lembrete*\n\nPagar o estúdio"
        assert message.recurrence == Recurrence.WEEKLY

    @pytest.mark.asyncio
    async def test_past_time_rejected(self, client: httpx.AsyncClient):
        response = await client.post(
            f"{API}/reminders/",
            json={
                "text": "Tarde demais",
                "scheduledFor": future(hours=-1),
                "targetPhone": "5511999990000",
            },
        )

        assert response.status_code == 400
        assert response.json()["meta"]["error_code"] == "VALIDATION_FAILED"

    @pytest.mark.asyncio
    async def test_generated_source_rejected(self, client: httpx.AsyncClient):
        response = await client.post(
            f"{API}/reminders/",
            json={
                "text": "Forjado",
                "scheduledFor": future(),
                "targetPhone": "5511999990000",
                "source": "realtime_alert",
            },
        )

        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_cancel_reminder(self, client: httpx.AsyncClient, db_session: AsyncSession):
        created = await client.post(
            f"{API}/reminders/",
            json={"text": "Ligar pro produtor", "scheduledFor": future(), "targetPhone": "5511999990000"},
        )
        message_id = created.json()["data"]["id"]

        response = await client.post(
            f"{API}/reminders/{message_id}/cancel", json={"reason": "Mudou de ideia"}
        )
        again = await client.post(f"{API}/reminders/{message_id}/cancel")

        assert response.status_code == 200
        assert response.json()["data"]["status"] == "cancelled"
        message = await db_session.get(ScheduledMessage, message_id)
        await db_session.refresh(message)
        assert message.status == MessageStatus.CANCELLED
        assert message.error_message == "Mudou de ideia"
        assert again.status_code == 400

    @pytest.mark.asyncio
    async def test_cancel_unknown_reminder(self, client: httpx.AsyncClient):
        response = await client.post(f"{API}/reminders/does-not-exist/cancel")

        assert response.status_code == 404

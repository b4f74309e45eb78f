import json

import httpx
import pytest
from linebot.v3.messaging.exceptions import ApiException

from notifier.config.settings import settings
from notifier.services.channels import (
    LineChannel,
    WhatsAppGatewayChannel,
    get_outbound_channel,
)
from notifier.services.channels import line_channel

GATEWAY_URL = "https://gateway.test"


def gateway(handler) -> WhatsAppGatewayChannel:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return WhatsAppGatewayChannel(base_url=GATEWAY_URL, token="secret-token", client=client)


class TestWhatsAppGatewayChannel:
    """Test the HTTP gateway adapter."""

    @pytest.mark.asyncio
    async def test_send_success(self):
        requests = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            return httpx.Response(200, json={"status": "sent"})

        result = await gateway(handler).send("5511999990000", "Olá!")

        assert result.success is True
        assert result.error is None
        request = requests[0]
        assert str(request.url) == f"{GATEWAY_URL}/send/text"
        assert request.headers["token"] == "secret-token"
        body = json.loads(request.content)
        assert body["number"] == "5511999990000"
        assert body["text"] == "Olá!"

    @pytest.mark.asyncio
    async def test_http_error_status(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(500, text="boom")

        result = await gateway(handler).send("5511999990000", "Olá!")

        assert result.success is False
        assert result.error == "HTTP 500: boom"

    @pytest.mark.asyncio
    async def test_network_error_is_returned_not_raised(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        result = await gateway(handler).send("5511999990000", "Olá!")

        assert result.success is False
        assert result.error == "connection refused"

    @pytest.mark.asyncio
    async def test_unconfigured_dry_run_in_development(self, monkeypatch):
        monkeypatch.setattr(settings, "ENVIRONMENT", "development")
        monkeypatch.setattr(settings, "WHATSAPP_GATEWAY_URL", "")

        result = await WhatsAppGatewayChannel(token="").send("5511999990000", "Olá!")

        assert result.success is True

    @pytest.mark.asyncio
    async def test_unconfigured_fails_outside_development(self, monkeypatch):
        monkeypatch.setattr(settings, "ENVIRONMENT", "production")
        monkeypatch.setattr(settings, "WHATSAPP_GATEWAY_URL", "")

        result = await WhatsAppGatewayChannel(token="").send("5511999990000", "Olá!")

        assert result.success is False
        assert result.error == "WhatsApp gateway not configured"

    @pytest.mark.asyncio
    async def test_injected_client_left_open(self):
        client = httpx.AsyncClient(
            transport=httpx.MockTransport(lambda request: httpx.Response(200))
        )
        channel = WhatsAppGatewayChannel(base_url=GATEWAY_URL, token="t", client=client)

        await channel.aclose()

        assert client.is_closed is False
        await client.aclose()


class FakeApiClient:
    def __init__(self, configuration=None):
        self.configuration = configuration

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info):
        return False


class TestLineChannel:
    """Test the LINE push adapter with the SDK client replaced."""

    @pytest.fixture(autouse=True)
    def fake_client(self, monkeypatch):
        monkeypatch.setattr(line_channel, "AsyncApiClient", FakeApiClient)

    @pytest.mark.asyncio
    async def test_push_success(self, monkeypatch):
        pushed = []

        class FakeMessagingApi:
            def __init__(self, api_client):
                pass

            async def push_message(self, request, **kwargs):
                pushed.append(request)

        monkeypatch.setattr(line_channel, "AsyncMessagingApi", FakeMessagingApi)

        result = await LineChannel(access_token="line-token").send("U123", "Olá!")

        assert result.success is True
        assert pushed[0].to == "U123"
        assert pushed[0].messages[0].text == "Olá!"

    @pytest.mark.asyncio
    async def test_api_error_is_returned(self, monkeypatch):
        class RejectingMessagingApi:
            def __init__(self, api_client):
                pass

            async def push_message(self, request, **kwargs):
                raise ApiException(status=400, reason="Bad Request")

        monkeypatch.setattr(line_channel, "AsyncMessagingApi", RejectingMessagingApi)

        result = await LineChannel(access_token="line-token").send("U123", "Olá!")

        assert result.success is False
        assert result.error == "HTTP 400: Bad Request"

    @pytest.mark.asyncio
    async def test_missing_token(self, monkeypatch):
        monkeypatch.setattr(settings, "LINE_CHANNEL_ACCESS_TOKEN", "")

        result = await LineChannel().send("U123", "Olá!")

        assert result.success is False


class TestChannelFactory:
    def test_known_channels(self):
        assert isinstance(get_outbound_channel("whatsapp"), WhatsAppGatewayChannel)
        assert isinstance(get_outbound_channel("line"), LineChannel)

    def test_unknown_channel(self):
        with pytest.raises(ValueError):
            get_outbound_channel("sms")

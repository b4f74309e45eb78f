from typing import Optional

import httpx

from notifier.config.settings import settings
from notifier.utils.logging import get_logger
from .base import OutboundChannel, SendResult

logger = get_logger()

# Typing indicator shown by the gateway before delivering, in milliseconds
TYPING_DELAY_MS = 1000


class WhatsAppGatewayChannel(OutboundChannel):
    """Sends text messages through the WhatsApp HTTP gateway."""

    name = "whatsapp"

    def __init__(
        self,
        base_url: Optional[str] = None,
        token: Optional[str] = None,
        client: Optional[httpx.AsyncClient] = None,
        timeout: Optional[float] = None,
    ):
        self.base_url = (base_url or settings.WHATSAPP_GATEWAY_URL).rstrip("/")
        self.token = token or settings.WHATSAPP_GATEWAY_TOKEN
        self.timeout = timeout or settings.GATEWAY_TIMEOUT_SECONDS
        self._client = client
        self._owns_client = client is None

    @property
    def is_configured(self) -> bool:
        return bool(self.base_url and self.token)

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout)
        return self._client

    async def send(self, address: str, text: str) -> SendResult:
        if not self.is_configured:
            if settings.ENVIRONMENT == "development":
                logger.info(
                    "WhatsApp gateway not configured, dry run send",
                    address=address,
                    length=len(text),
                )
                return SendResult(success=True)
            return SendResult(success=False, error="WhatsApp gateway not configured")

        try:
            response = await self._get_client().post(
                f"{self.base_url}/send/text",
                headers={"Content-Type": "application/json", "token": self.token},
                json={
                    "number": address,
                    "text": text,
                    "delay": TYPING_DELAY_MS,
                    "linkPreview": False,
                },
                timeout=self.timeout,
            )
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            logger.warning("WhatsApp gateway request failed", address=address, error=str(e))
            return SendResult(success=False, error=str(e) or e.__class__.__name__)

        if not response.is_success:
            error = f"HTTP {response.status_code}: {response.text}"
            logger.warning(
                "WhatsApp gateway rejected message",
                address=address,
                status_code=response.status_code,
            )
            return SendResult(success=False, error=error)

        return SendResult(success=True)

    async def aclose(self) -> None:
        if self._owns_client and self._client is not None:
            await self._client.aclose()
            self._client = None

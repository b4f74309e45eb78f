import asyncio
from typing import Optional
from uuid import uuid4

import aiohttp
from linebot.v3.messaging import (
    AsyncApiClient,
    AsyncMessagingApi,
    Configuration,
    PushMessageRequest,
    TextMessage,
)
from linebot.v3.messaging.exceptions import ApiException

from notifier.config.settings import settings
from notifier.utils.logging import get_logger
from .base import OutboundChannel, SendResult

logger = get_logger()


class LineChannel(OutboundChannel):
    """Push messages to LINE users; the address is the LINE user id."""

    name = "line"

    def __init__(self, access_token: Optional[str] = None):
        self.access_token = access_token or settings.LINE_CHANNEL_ACCESS_TOKEN

    async def send(self, address: str, text: str) -> SendResult:
        if not self.access_token:
            return SendResult(success=False, error="LINE channel access token not configured")

        configuration = Configuration(access_token=self.access_token)
        try:
            async with AsyncApiClient(configuration=configuration) as api_client:
                line_bot_api = AsyncMessagingApi(api_client)
                await line_bot_api.push_message(
                    PushMessageRequest(
                        to=address,
                        messages=[TextMessage(text=text, quickReply=None, quoteToken=None)],
                        notificationDisabled=False,
                        customAggregationUnits=None,
                    ),
                    x_line_retry_key=str(uuid4()),
                )
        except ApiException as e:
            logger.warning("LINE push failed", address=address, status=e.status)
            return SendResult(success=False, error=f"HTTP {e.status}: {e.body or e.reason}")
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.warning("LINE push request failed", address=address, error=str(e))
            return SendResult(success=False, error=str(e) or e.__class__.__name__)

        return SendResult(success=True)

from typing import Optional

from notifier.config.settings import settings
from .base import OutboundChannel, SendResult
from .line_channel import LineChannel
from .whatsapp_gateway import WhatsAppGatewayChannel

_CHANNELS = {
    WhatsAppGatewayChannel.name: WhatsAppGatewayChannel,
    LineChannel.name: LineChannel,
}


def get_outbound_channel(name: Optional[str] = None) -> OutboundChannel:
    """Build the configured outbound channel (OUTBOUND_CHANNEL by default)."""
    channel_name = name or settings.OUTBOUND_CHANNEL
    channel_cls = _CHANNELS.get(channel_name)
    if channel_cls is None:
        raise ValueError(f"Unknown outbound channel: {channel_name}")
    return channel_cls()


__all__ = [
    "OutboundChannel",
    "SendResult",
    "LineChannel",
    "WhatsAppGatewayChannel",
    "get_outbound_channel",
]

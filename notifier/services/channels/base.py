from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class SendResult:
    success: bool
    error: Optional[str] = None


class OutboundChannel(ABC):
    """Chat delivery port. Implementations report failures in the result, never raise."""

    name: str = "channel"

    @abstractmethod
    async def send(self, address: str, text: str) -> SendResult:
        """Deliver a text message to a channel address (phone number, group or user id)."""
        pass

    async def aclose(self) -> None:
        """Release any held connections."""
        return None

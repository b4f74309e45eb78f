from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional, List

from pydantic import BaseModel, Field

from notifier.config.settings import settings


class ResponseStatus(str, Enum):
    SUCCESS = "success"
    ERROR = "error"


class ErrorDetail(BaseModel):
    """One field-level problem, as reported by request validation"""

    field: str = Field(..., description="Dotted path of the offending field")
    message: str = Field(..., description="What is wrong with it")
    type: Optional[str] = Field(default=None, description="Validator error type")


class ApiResponse(BaseModel):
    """Envelope shared by every HTTP response of the notifier"""

    success: bool
    status: ResponseStatus
    message: str = Field(..., description="Human-readable outcome")
    data: Optional[Any] = Field(default=None, description="Payload, e.g. a task result")
    meta: Optional[Dict[str, Any]] = Field(
        default=None, description="error_code and handler specific extras"
    )
    errors: Optional[List[ErrorDetail]] = None
    timestamp: str = Field(
        default_factory=lambda: datetime.now(timezone.utc).isoformat()
    )
    request_id: Optional[str] = Field(
        default=None, description="Same value as the X-Request-ID header"
    )
    path: Optional[str] = None
    version: str = Field(default_factory=lambda: settings.VERSION)

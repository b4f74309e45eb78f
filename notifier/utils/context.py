import uuid
from contextvars import ContextVar
from typing import Optional

request_id_context: ContextVar[Optional[str]] = ContextVar("request_id", default=None)


def get_request_id() -> Optional[str]:
    """Get the current request ID from context."""
    return request_id_context.get()


def set_request_id(request_id: str) -> None:
    """Set the request ID in context."""
    request_id_context.set(request_id)


def ensure_request_id() -> str:
    """Return the current request ID, generating one for runs started outside a request."""
    request_id = get_request_id()
    if not request_id:
        request_id = str(uuid.uuid4())
        set_request_id(request_id)
    return request_id

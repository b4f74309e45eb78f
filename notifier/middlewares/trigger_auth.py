import hmac
from typing import Optional

from fastapi import Request

from notifier.config.settings import settings
from notifier.utils.errors import AuthenticationError

__all__ = ["extract_bearer_token", "verify_trigger_secret"]


def extract_bearer_token(authorization: Optional[str]) -> Optional[str]:
    """Return the token of an "Authorization: Bearer <token>" header value."""
    if not authorization:
        return None
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


def verify_trigger_secret(request: Request) -> None:
    """
    Dependency guarding the scheduled task trigger.

    When TRIGGER_SECRET is empty the route is open, which is how local
    development runs it. Otherwise the bearer token must match exactly.
    """
    secret = settings.TRIGGER_SECRET
    if not secret:
        return

    token = extract_bearer_token(request.headers.get("authorization"))
    if token is None:
        raise AuthenticationError("No bearer token found")
    if not hmac.compare_digest(token.encode(), secret.encode()):
        raise AuthenticationError("Invalid trigger secret")

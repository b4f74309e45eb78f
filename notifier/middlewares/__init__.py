from .request_id_middleware import *
from .trigger_auth import *

__all__ = [
    "RequestIDMiddleware",
    "REQUEST_ID_HEADER",
    "extract_bearer_token",
    "verify_trigger_secret",
]

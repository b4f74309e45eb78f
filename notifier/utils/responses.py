from typing import Any, Dict, List, Optional
from fastapi import status, Request
from fastapi.responses import JSONResponse
from notifier.schemas.response_schemas import ApiResponse, ResponseStatus


def _render(request: Request, status_code: int, **fields) -> JSONResponse:
    envelope = ApiResponse(
        request_id=getattr(request.state, "request_id", None),
        path=request.url.path,
        **fields,
    )
    return JSONResponse(
        status_code=status_code,
        content=envelope.model_dump(mode="json", exclude_none=True),
    )


class ResponseBuilder:
    """Wraps route payloads and failures in the shared ApiResponse envelope"""

    @staticmethod
    def success(
        request: Request,
        data: Any = None,
        message: str = "Request successful",
        meta: Optional[Dict[str, Any]] = None,
        status_code: int = status.HTTP_200_OK,
    ) -> JSONResponse:
        return _render(
            request,
            status_code,
            success=True,
            status=ResponseStatus.SUCCESS,
            message=message,
            data=data,
            meta=meta,
        )

    @staticmethod
    def error(
        request: Request,
        message: str = "An error occurred",
        errors: Optional[List[Dict[str, Any]]] = None,
        error_code: Optional[str] = None,
        status_code: int = status.HTTP_400_BAD_REQUEST,
        data: Any = None,
        meta: Optional[Dict[str, Any]] = None,
    ) -> JSONResponse:
        """The error_code, when given, is reported under meta."""
        meta = dict(meta or {})
        if error_code:
            meta["error_code"] = error_code

        return _render(
            request,
            status_code,
            success=False,
            status=ResponseStatus.ERROR,
            message=message,
            data=data,
            meta=meta or None,
            errors=errors,
        )

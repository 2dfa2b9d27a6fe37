import logging
import traceback
from typing import Any, Dict, Optional

from fastapi import Request
from fastapi.responses import JSONResponse

from .exceptions import BaseAPIException, InternalServerError

logger = logging.getLogger("softpoints")


def _describe(request: Request) -> str:
    client = request.client.host if request.client else "-"
    request_id = getattr(request.state, "request_id", "-")
    return f"{request.method} {request.url.path} from {client} [{request_id}]"


def _log(request: Request, kind: str, status_code: int, message: Any) -> None:
    line = f"[{kind}] {_describe(request)} -> {status_code}: {message}"
    if status_code >= 500:
        logger.error(line)
    else:
        logger.warning(line)


def _error_response(
    status_code: int,
    code: str,
    message: str,
    details: Optional[Dict[str, Any]] = None,
    headers: Optional[Dict[str, str]] = None,
) -> JSONResponse:
    content = {
        "success": False,
        "error": {"code": code, "message": message, "details": details or {}},
    }
    return JSONResponse(status_code=status_code, content=content, headers=headers)


async def handle_base_api_exception(request: Request, exc: BaseAPIException):
    _log(request, exc.error_code, exc.status_code, exc.message)
    return _error_response(exc.status_code, exc.error_code, exc.message, exc.details)


async def handle_http_exception(request: Request, exc):
    """auth 의존성 등에서 올라오는 일반 HTTPException"""
    _log(request, "HTTPException", exc.status_code, exc.detail)
    if isinstance(exc.detail, dict) and "error" in exc.detail:
        return JSONResponse(status_code=exc.status_code, content=exc.detail)
    return _error_response(
        exc.status_code,
        "SP_HTTP",
        str(exc.detail),
        headers=getattr(exc, "headers", None),
    )


async def handle_validation_error(request: Request, exc):
    errors = exc.errors()
    _log(request, "RequestValidation", 422, errors)
    return _error_response(
        422,
        "SP_VALIDATION",
        "Validation failed",
        {"errors": [str(err) for err in errors]},
    )


async def handle_unexpected_error(request: Request, exc: Exception):
    tb_str = "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
    logger.error(
        f"[Unhandled] {_describe(request)}: {type(exc).__name__}: {exc}\n{tb_str}"
    )
    internal = InternalServerError()
    return _error_response(internal.status_code, internal.error_code, internal.message)

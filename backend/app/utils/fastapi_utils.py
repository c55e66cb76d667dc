from __future__ import annotations

from typing import Any

from fastapi import FastAPI, Request, Response
from fastapi.exception_handlers import http_exception_handler, request_validation_exception_handler
from fastapi.exceptions import HTTPException, RequestValidationError
from fastapi.responses import JSONResponse

from app.schemas.store import ErrorResponse
from common.core.app_error import AppException, Errors
from common.utils.msgspec import SerializationError, decode_json
from common.utils.utils import get_logger

logger = get_logger()


def error_response(exc: AppException) -> JSONResponse:
    """``{status: ERROR, code, message}`` with the error's HTTP status.

    Server-side failures only ever show the generic message; their details stay in the logs.
    """
    status_code = exc.http_status or 500
    message = exc.message if status_code < 500 else Errors.Generic.INTERNAL_ERROR.default_message
    body = ErrorResponse(code=exc.code, message=message)
    return JSONResponse(status_code=status_code, content=body.to_dict(mode="json"))


def install_exception_handlers(app: FastAPI) -> None:
    async def on_validation_error(request: Request, exc: RequestValidationError) -> Response:
        logger.warning("Rejected request body", path=request.url.path, body=await _read_json_body(request), errors=exc.errors())
        return await request_validation_exception_handler(request, exc)

    async def on_http_error(request: Request, exc: HTTPException) -> Response:
        log = logger.exception if exc.status_code >= 500 else logger.warning
        log("HTTP error", path=request.url.path, status_code=exc.status_code, detail=exc.detail)
        return await http_exception_handler(request, exc)

    async def on_app_error(request: Request, exc: Exception) -> Response:
        if not isinstance(exc, AppException):
            logger.exception("Unhandled exception", path=request.url.path, exc_info=exc)
            exc = Errors.Generic.INTERNAL_ERROR.create(cause=exc)
        elif (exc.http_status or 500) >= 500:
            logger.error("Request failed", path=request.url.path, code=exc.code, error=exc.details.details, exc_info=exc)
        else:
            logger.warning("Request rejected", path=request.url.path, code=exc.code, error=exc.details.details, status_code=exc.http_status)
        return error_response(exc)

    app.add_exception_handler(RequestValidationError, on_validation_error)  # pyright: ignore[reportArgumentType]
    app.add_exception_handler(HTTPException, on_http_error)  # pyright: ignore[reportArgumentType]
    app.add_exception_handler(AppException, on_app_error)
    app.add_exception_handler(Exception, on_app_error)


async def _read_json_body(request: Request) -> Any:
    body = await request.body()
    if not body:
        return None
    try:
        return decode_json(body)
    except SerializationError:
        return None

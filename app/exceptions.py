# =============================================================================
# app/exceptions.py - Error Types and Exception Handlers
# =============================================================================
# Centralized exception handling for the API.
#
# Every in-request failure ends in error_handler, the terminal handler, which
# renders the one external error shape:
#
#   {"error": {"message": "...", "statusCode": 404, "stack": "..."}}
#
# "stack" is only included outside production. No other component formats
# error responses; they raise HttpError (or anything else) and let it
# propagate here.
# =============================================================================

import logging
import traceback
from typing import Any

from fastapi import Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.types import Receive, Scope, Send
from starlette.websockets import WebSocketClose

logger = logging.getLogger(__name__)

DEFAULT_STATUS_CODE = 500
DEFAULT_MESSAGE = "Internal Server Error"


class HttpError(Exception):
    """
    Error carrying an HTTP status code.

    Raise it from a route or dependency to answer with that status:

        raise HttpError(403, "Bookmark belongs to another user")
    """

    def __init__(self, status_code: int, message: str):
        super().__init__(message)
        self.status_code = status_code
        self.message = message


class RouteNotFoundError(HttpError):
    """Raised when no route matched the request."""

    def __init__(self, method: str, path: str):
        super().__init__(404, f"Route {method} {path} not found")
        self.method = method
        self.path = path


# =============================================================================
# Helpers
# =============================================================================

def status_code_for(exc: BaseException) -> int:
    """Status carried by the error, or 500 when it carries none."""
    status_code = getattr(exc, "status_code", None)
    if isinstance(status_code, int) and status_code:
        return status_code
    return DEFAULT_STATUS_CODE


def message_for(exc: BaseException) -> str:
    if isinstance(exc, HttpError):
        message = exc.message
    elif isinstance(exc, StarletteHTTPException):
        message = exc.detail
    else:
        message = str(exc)
    return str(message) if message else DEFAULT_MESSAGE


def format_stack(exc: BaseException) -> str:
    return "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))


def _is_production(request: Request) -> bool:
    settings = getattr(request.app.state, "settings", None)
    # Without settings, fail closed and hide stack traces
    return settings is None or settings.is_production


# =============================================================================
# Exception Handlers
# =============================================================================

async def error_handler(request: Request, exc: Exception) -> JSONResponse:
    """
    Terminal error handler.

    Converts any error into the JSON error envelope:
    - message: The error message
    - statusCode: The error's status code, 500 if it has none
    - stack: Formatted traceback (omitted in production)
    """
    status_code = status_code_for(exc)
    message = message_for(exc)
    expose_stack = not _is_production(request)

    log = logger.error if status_code >= 500 else logger.warning
    if expose_stack:
        log(f"Error {status_code}: {message}\n{format_stack(exc)}")
    else:
        log(f"Error {status_code}: {message}")

    body: dict[str, Any] = {
        "message": message,
        "statusCode": status_code,
    }
    if expose_stack:
        body["stack"] = format_stack(exc)

    return JSONResponse(status_code=status_code, content={"error": body})


async def not_found_handler(scope: Scope, receive: Receive, send: Send) -> None:
    """
    Fallback for requests no route matched.

    Installed as the router's default, so it only runs on a genuine miss.
    Raises RouteNotFoundError naming the method and path, which the
    exception handlers forward to the terminal handler.
    """
    if scope["type"] == "websocket":
        await WebSocketClose()(scope, receive, send)
        return
    raise RouteNotFoundError(scope["method"], scope["path"])


async def http_exception_handler(
    request: Request,
    exc: StarletteHTTPException
) -> JSONResponse:
    """
    Forward framework HTTP errors (405, 413, a route's own 404, ...).

    Status and detail are kept as raised.
    """
    error = HttpError(exc.status_code, str(exc.detail))
    error.__cause__ = exc
    return await error_handler(request, error)


async def validation_error_handler(
    request: Request,
    exc: RequestValidationError
) -> JSONResponse:
    """Forward request validation failures as 422 errors."""
    error = HttpError(422, "Validation error")
    error.__cause__ = exc
    return await error_handler(request, error)


def build_exception_handlers() -> dict[Any, Any]:
    """
    Exception handlers for the FastAPI constructor.

    Passing them at construction time keeps them behind every route no
    matter how routes are registered later.
    """
    return {
        StarletteHTTPException: http_exception_handler,
        RequestValidationError: validation_error_handler,
        HttpError: error_handler,
        # Only reached by errors raised outside ErrorHandlingMiddleware
        Exception: error_handler,
    }

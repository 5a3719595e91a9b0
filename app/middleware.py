# =============================================================================
# app/middleware.py - Request Pipeline Middleware
# =============================================================================
# The middleware stages that run in front of every route, in this order:
#
#   1. CORS              - cross-origin policy from Settings.cors_origins
#   2. Error handling    - unhandled errors to the JSON envelope, inside CORS
#   3. Body size limit   - JSON / URL-encoded bodies capped at 10MB
#   4. Request logging   - one line per request: timestamp, method, path
#
# build_middleware() returns them as one ordered list handed to the FastAPI
# constructor; the first entry is the outermost layer.
# =============================================================================

import logging
from datetime import datetime, timezone

from starlette.datastructures import Headers
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware import Middleware
from starlette.middleware.cors import CORSMiddleware
from starlette.requests import Request
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from app.config import Settings
from app.exceptions import error_handler

logger = logging.getLogger(__name__)

MAX_BODY_BYTES = 10 * 1024 * 1024

LIMITED_CONTENT_TYPES = (
    "application/json",
    "application/x-www-form-urlencoded",
)

CORS_METHODS = ["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"]
CORS_HEADERS = ["Content-Type", "Authorization"]
CORS_MAX_AGE = 86400  # 24 hours


class ErrorHandlingMiddleware:
    """
    Turn unhandled errors into the JSON error envelope.

    Sits inside CORS, so 500 responses carry the same CORS headers as any
    other response. Errors after the response has started cannot be
    answered and are re-raised for the server to log.
    """

    def __init__(self, app: ASGIApp):
        self.app = app

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        response_started = False

        async def tracking_send(message: Message) -> None:
            nonlocal response_started
            if message["type"] == "http.response.start":
                response_started = True
            await send(message)

        try:
            await self.app(scope, receive, tracking_send)
        except Exception as exc:
            if response_started:
                raise
            response = await error_handler(Request(scope), exc)
            await response(scope, receive, send)


class BodySizeLimitMiddleware:
    """
    Cap JSON and URL-encoded request bodies.

    The check happens while the body is read, inside the route, so the
    resulting 413 goes through the regular exception handlers and comes out
    as the standard error envelope. Bodies that are never read cost nothing.
    """

    def __init__(
        self,
        app: ASGIApp,
        max_body_bytes: int = MAX_BODY_BYTES,
        content_types: tuple[str, ...] = LIMITED_CONTENT_TYPES,
    ):
        self.app = app
        self.max_body_bytes = max_body_bytes
        self.content_types = content_types

    def _too_large(self) -> StarletteHTTPException:
        limit_mb = self.max_body_bytes / (1024 * 1024)
        return StarletteHTTPException(
            status_code=413,
            detail=f"Request body exceeds the {limit_mb:g}MB limit",
        )

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        headers = Headers(scope=scope)
        content_type = headers.get("content-type", "").split(";")[0].strip().lower()
        if content_type not in self.content_types:
            await self.app(scope, receive, send)
            return

        declared = headers.get("content-length", "")
        declared_too_large = declared.isdigit() and int(declared) > self.max_body_bytes
        received = 0

        async def limited_receive() -> Message:
            nonlocal received
            if declared_too_large:
                raise self._too_large()
            message = await receive()
            if message["type"] == "http.request":
                received += len(message.get("body", b""))
                if received > self.max_body_bytes:
                    raise self._too_large()
            return message

        await self.app(scope, limited_receive, send)


class RequestLoggingMiddleware:
    """Log "[timestamp] METHOD path" for every inbound request."""

    def __init__(self, app: ASGIApp):
        self.app = app

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] == "http":
            timestamp = datetime.now(timezone.utc).isoformat()
            logger.info(f"[{timestamp}] {scope['method']} {scope['path']}")
        await self.app(scope, receive, send)


def build_middleware(settings: Settings) -> list[Middleware]:
    """
    Ordered middleware stack for the application.

    Args:
        settings: Decides which origins CORS accepts

    Returns:
        Middleware list, outermost first
    """
    return [
        Middleware(
            CORSMiddleware,
            allow_origins=settings.cors_origins,
            allow_methods=CORS_METHODS,
            allow_headers=CORS_HEADERS,
            allow_credentials=True,
            max_age=CORS_MAX_AGE,
        ),
        Middleware(ErrorHandlingMiddleware),
        Middleware(BodySizeLimitMiddleware, max_body_bytes=MAX_BODY_BYTES),
        Middleware(RequestLoggingMiddleware),
    ]

# =============================================================================
# app/main.py - FastAPI Application Assembly
# =============================================================================
# Builds the FastAPI application: middleware, routes and error handlers,
# wired to an explicitly owned Settings snapshot and DatabaseClient.
#
# The pipeline order is fixed by construction:
#   CORS -> error handling -> body size limit -> request logging -> routes
#        -> not-found fallback
#
# Usage:
#   app = create_app(settings, DatabaseClient(settings))
#
# The process entry point (connect, listen, graceful shutdown) lives in
# app/server.py; run it with `python -m app`.
# =============================================================================

import logging
from typing import Callable

from fastapi import FastAPI

from app.config import Settings
from app.exceptions import build_exception_handlers, not_found_handler
from app.middleware import build_middleware
from app.routers import register_routes as default_routes
from lib.database import DatabaseClient

RouteRegistrar = Callable[[FastAPI], None]

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def configure_logging(settings: Settings) -> None:
    """Configure root logging once for the whole process."""
    logging.basicConfig(
        level=settings.LOG_LEVEL,
        format=LOG_FORMAT,
    )


def create_app(
    settings: Settings,
    database: DatabaseClient,
    register_routes: RouteRegistrar = default_routes,
) -> FastAPI:
    """
    Create the FastAPI application.

    Middleware and exception handlers go to the constructor, so the error
    handlers always run after whatever routes register_routes attaches.

    Args:
        settings: Configuration snapshot (CORS policy, stack trace exposure)
        database: Client shared by every request
        register_routes: Route table, a function that attaches handlers

    Returns:
        FastAPI: The configured application
    """
    app = FastAPI(
        title="Service Scaffold API",
        version="1.0.0",
        # No interactive docs in production
        docs_url=None if settings.is_production else "/docs",
        redoc_url=None if settings.is_production else "/redoc",
        openapi_url=None if settings.is_production else "/openapi.json",
        middleware=build_middleware(settings),
        exception_handlers=build_exception_handlers(),
    )

    app.state.settings = settings
    app.state.database = database

    register_routes(app)
    # Requests no route matched end here instead of a bare 404
    app.router.default = not_found_handler

    return app

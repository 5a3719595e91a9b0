# =============================================================================
# app/routers/ - API Route Definitions
# =============================================================================
# This package contains FastAPI routers organized by feature:
# - health.py: Health, liveness and readiness endpoints
#
# register_routes() is the route table handed to create_app(). Feature
# routers are mounted here with their URL prefix.
# =============================================================================

from fastapi import FastAPI

from . import health


def register_routes(app: FastAPI) -> None:
    """Attach every router to the application."""
    app.include_router(health.router, tags=["Health"])


__all__ = [
    "health",
    "register_routes",
]

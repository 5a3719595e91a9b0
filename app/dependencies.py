# =============================================================================
# app/dependencies.py - Shared Dependencies
# =============================================================================
# FastAPI dependency injection for shared resources.
# These are injected into route handlers using Depends().
#
# The client lives on app.state, placed there by create_app(), so tests
# can swap in fakes by building the app with a different instance.
# =============================================================================

from typing import Annotated

from fastapi import Depends, Request

from lib.database import DatabaseClient


def get_database(request: Request) -> DatabaseClient:
    """
    Get the application's database client.

    Returns the single instance owned by the running application.
    """
    return request.app.state.database


# Type alias for dependency injection
DatabaseDep = Annotated[DatabaseClient, Depends(get_database)]

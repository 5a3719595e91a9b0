# =============================================================================
# tests/conftest.py - Pytest Configuration
# =============================================================================
# This module provides pytest fixtures and configuration for all tests.
#
# Key features:
# - Sets up safe environment variables before any imports
# - Builds Settings snapshots without reading a .env file
# - Provides a fake database client and a TestClient for the app
# =============================================================================

import asyncio
import os

# =============================================================================
# Set up test environment BEFORE any imports
# =============================================================================

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("NODE_ENV", "test")

import pytest
from fastapi import FastAPI, HTTPException, Request
from fastapi.testclient import TestClient

from app.config import Settings, load_settings
from app.exceptions import HttpError
from app.main import create_app
from app.routers import register_routes


# =============================================================================
# Fakes
# =============================================================================

class FakeDatabase:
    """
    Stand-in for DatabaseClient.

    Records calls into a shared event list so tests can assert ordering.
    """

    def __init__(self, events=None, healthy=True, connect_error=None, disconnect_delay=0.0):
        self.events = events if events is not None else []
        self.healthy = healthy
        self.connect_error = connect_error
        self.disconnect_delay = disconnect_delay
        self.connected = False
        self.disconnect_calls = 0

    async def connect(self):
        self.events.append("database.connect")
        if self.connect_error is not None:
            raise self.connect_error
        self.connected = True

    async def disconnect(self):
        self.events.append("database.disconnect")
        self.disconnect_calls += 1
        if self.disconnect_delay:
            await asyncio.sleep(self.disconnect_delay)
        self.connected = False

    async def health_check(self):
        return self.healthy


class FakeServer:
    """Stand-in for UvicornServer."""

    def __init__(self, events=None, start_error=None, stop_error=None):
        self.events = events if events is not None else []
        self.start_error = start_error
        self.stop_error = stop_error
        self.running = False
        self.stop_calls = 0

    async def start(self):
        self.events.append("server.start")
        if self.start_error is not None:
            raise self.start_error
        self.running = True

    async def stop(self):
        self.events.append("server.stop")
        self.stop_calls += 1
        self.running = False
        if self.stop_error is not None:
            raise self.stop_error


# =============================================================================
# Fixtures
# =============================================================================

@pytest.fixture
def make_settings():
    """Factory for Settings snapshots that ignore any local .env file."""

    def _make(**overrides) -> Settings:
        values = {"DATABASE_URL": "sqlite://", "NODE_ENV": "development"}
        values.update(overrides)
        return load_settings(_env_file=None, **values)

    return _make


@pytest.fixture
def settings(make_settings):
    """Development-mode settings."""
    return make_settings()


@pytest.fixture
def production_settings(make_settings):
    """Production-mode settings."""
    return make_settings(NODE_ENV="production")


@pytest.fixture
def fake_database():
    return FakeDatabase()


def register_test_routes(app: FastAPI) -> None:
    """The real route table plus routes that fail in known ways."""
    register_routes(app)

    @app.get("/forbidden")
    async def forbidden():
        raise HttpError(403, "You do not have access to this resource")

    @app.get("/explode")
    async def explode():
        raise RuntimeError("Something broke")

    @app.get("/archived")
    async def archived():
        raise HTTPException(status_code=404)

    @app.get("/items/{item_id}")
    async def get_item(item_id: int):
        return {"id": item_id}

    @app.post("/echo")
    async def echo(payload: dict):
        return payload

    @app.post("/raw")
    async def raw(request: Request):
        body = await request.body()
        return {"size": len(body)}


@pytest.fixture
def build_client(fake_database):
    """Factory for a TestClient around an app built from given settings."""

    def _build(app_settings: Settings, database=None) -> TestClient:
        app = create_app(
            app_settings,
            database if database is not None else fake_database,
            register_routes=register_test_routes,
        )
        # Unhandled errors still get the envelope; don't re-raise them in tests
        return TestClient(app, raise_server_exceptions=False)

    return _build


@pytest.fixture
def client(build_client, settings):
    """TestClient for a development-mode app."""
    return build_client(settings)


@pytest.fixture
def production_client(build_client, production_settings):
    """TestClient for a production-mode app."""
    return build_client(production_settings)

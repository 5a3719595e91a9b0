# =============================================================================
# tests/test_database.py - Database Client Tests
# =============================================================================
# Tests for the DatabaseClient lifecycle against in-memory SQLite:
# - Lazy, idempotent engine creation
# - connect / disconnect / health_check
# - Failure surfacing on connect, silence on health_check
# =============================================================================

import asyncio
import logging

import pytest

from lib.database import DatabaseClient, DatabaseClientError, normalize_database_url

UNREACHABLE_SQLITE_URL = "sqlite:////nonexistent-directory/for/tests/app.db"


class TestNormalizeDatabaseUrl:

    def test_postgres_scheme_is_rewritten(self):
        assert (
            normalize_database_url("postgres://u:p@db:5432/app")
            == "postgresql://u:p@db:5432/app"
        )

    def test_other_urls_unchanged(self):
        assert normalize_database_url("sqlite://") == "sqlite://"
        assert normalize_database_url("postgresql://db/app") == "postgresql://db/app"


class TestGetEngine:

    def test_engine_is_created_lazily(self, settings):
        database = DatabaseClient(settings)

        assert database.is_initialized is False
        database.get_engine()
        assert database.is_initialized is True

    def test_engine_is_reused(self, settings):
        database = DatabaseClient(settings)

        assert database.get_engine() is database.get_engine()

    def test_malformed_url_raises(self, make_settings):
        database = DatabaseClient(make_settings(DATABASE_URL="definitely not a url"))

        with pytest.raises(DatabaseClientError) as exc_info:
            database.get_engine()

        assert exc_info.value.code == "CLIENT_INIT_FAILED"
        assert "DATABASE_URL" in exc_info.value.suggestion

    def test_query_logging_verbose_outside_production(self, make_settings):
        DatabaseClient(make_settings(NODE_ENV="development")).get_engine()

        assert logging.getLogger("sqlalchemy.engine").level == logging.INFO

    def test_query_logging_quiet_in_production(self, make_settings):
        DatabaseClient(make_settings(NODE_ENV="production")).get_engine()

        assert logging.getLogger("sqlalchemy.engine").level == logging.WARNING


class TestConnect:

    def test_connect_and_disconnect(self, settings):
        database = DatabaseClient(settings)

        async def scenario():
            await database.connect()
            assert database.is_initialized
            await database.disconnect()

        asyncio.run(scenario())

        assert database.is_initialized is False

    def test_connect_failure_propagates(self, make_settings):
        database = DatabaseClient(make_settings(DATABASE_URL=UNREACHABLE_SQLITE_URL))

        with pytest.raises(DatabaseClientError) as exc_info:
            asyncio.run(database.connect())

        assert exc_info.value.code == "CONNECTION_FAILED"
        assert exc_info.value.__cause__ is not None

    def test_connect_failure_is_logged(self, make_settings, caplog):
        database = DatabaseClient(make_settings(DATABASE_URL=UNREACHABLE_SQLITE_URL))

        with caplog.at_level(logging.ERROR, logger="lib.database"):
            with pytest.raises(DatabaseClientError):
                asyncio.run(database.connect())

        assert "Database connection failed" in caplog.text


class TestDisconnect:

    def test_disconnect_without_engine_is_noop(self, settings):
        database = DatabaseClient(settings)

        asyncio.run(database.disconnect())

        assert database.is_initialized is False

    def test_disconnect_twice_is_safe(self, settings):
        database = DatabaseClient(settings)

        async def scenario():
            await database.connect()
            await database.disconnect()
            await database.disconnect()

        asyncio.run(scenario())

        assert database.is_initialized is False


class TestHealthCheck:

    def test_healthy(self, settings):
        database = DatabaseClient(settings)

        assert asyncio.run(database.health_check()) is True

    def test_unhealthy_returns_false(self, make_settings):
        database = DatabaseClient(make_settings(DATABASE_URL=UNREACHABLE_SQLITE_URL))

        assert asyncio.run(database.health_check()) is False

    def test_malformed_url_returns_false(self, make_settings):
        database = DatabaseClient(make_settings(DATABASE_URL="definitely not a url"))

        assert asyncio.run(database.health_check()) is False

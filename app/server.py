# =============================================================================
# app/server.py - Process Entry Point and Lifecycle
# =============================================================================
# Brings the service up and down in a fixed order.
#
# Startup:
#   validate settings -> connect database -> listen on PORT
#     -> install SIGINT/SIGTERM handlers
#
# Shutdown (first SIGINT or SIGTERM):
#   stop accepting connections -> drain in-flight requests
#     -> disconnect database -> exit 0
#   raced against SHUTDOWN_TIMEOUT_SECONDS; if the timer wins, exit 1.
#
# Lifecycle never exits the process itself. startup() returns a
# StartupResult and shutdown() returns an exit code; main() is the only
# place that calls sys.exit().
#
# Usage:
#   python -m app
# =============================================================================

from __future__ import annotations

import asyncio
import logging
import os
import signal
import sys
from dataclasses import dataclass
from typing import Protocol

import uvicorn
from fastapi import FastAPI

from app.config import ConfigurationError, Settings, load_settings, log_summary
from app.main import LOG_FORMAT, configure_logging, create_app
from lib.database import DatabaseClient
from lib.utils import ApplicationError

logger = logging.getLogger(__name__)

EXIT_SUCCESS = 0
EXIT_FAILURE = 1

SHUTDOWN_SIGNALS: tuple[signal.Signals, ...] = (signal.SIGINT, signal.SIGTERM)


class StartupError(ApplicationError):
    """Raised when the HTTP server cannot begin listening."""

    def __init__(self, message: str, **kwargs):
        super().__init__(message, code="STARTUP_FAILED", **kwargs)


class HttpServer(Protocol):
    """What Lifecycle needs from the HTTP server."""

    async def start(self) -> None: ...

    async def stop(self) -> None: ...


@dataclass(frozen=True)
class StartupResult:
    """Outcome of Lifecycle.startup()."""

    ok: bool
    error: Exception | None = None


# =============================================================================
# HTTP Server
# =============================================================================

class UvicornServer:
    """
    uvicorn.Server driven step by step.

    uvicorn's serve() would install its own signal handlers and run its own
    shutdown. Calling startup(), main_loop() and shutdown() directly leaves
    signals and ordering to Lifecycle.
    """

    def __init__(self, app: FastAPI, settings: Settings):
        self.config = uvicorn.Config(
            app,
            host=settings.HOST,
            port=settings.PORT,
            # Database lifecycle is owned by Lifecycle, not ASGI lifespan
            lifespan="off",
            # Route uvicorn's records through our root logging config
            log_config=None,
            # RequestLoggingMiddleware already logs each request
            access_log=False,
        )
        self.server = uvicorn.Server(self.config)
        self._main_loop: asyncio.Task | None = None

    async def start(self) -> None:
        """
        Bind the socket and begin accepting connections.

        Raises:
            StartupError: If the address cannot be bound
        """
        if not self.config.loaded:
            self.config.load()
        self.server.lifespan = self.config.lifespan_class(self.config)

        address = f"{self.config.host}:{self.config.port}"
        try:
            await self.server.startup()
        except SystemExit as e:
            # uvicorn exits the process when bind() fails
            raise StartupError(
                f"Could not listen on {address}",
                suggestion="Check that PORT is free and HOST is a local address",
            ) from e
        if not self.server.started:
            raise StartupError(f"HTTP server did not start on {address}")

        # Keeps uvicorn's per-second housekeeping (Date header, limits) running
        self._main_loop = asyncio.create_task(self.server.main_loop())

    async def stop(self) -> None:
        """Stop accepting connections and wait for in-flight requests."""
        self.server.should_exit = True
        if self._main_loop is not None:
            await self._main_loop
            self._main_loop = None
        await self.server.shutdown()


# =============================================================================
# Lifecycle
# =============================================================================

class Lifecycle:
    """
    Ordered startup and bounded graceful shutdown.

    Owns nothing it did not receive: the database client and HTTP server are
    injected, so tests can pass fakes and observe the ordering.
    """

    def __init__(
        self,
        settings: Settings,
        database: DatabaseClient,
        server: HttpServer,
        signals: tuple[signal.Signals, ...] = SHUTDOWN_SIGNALS,
    ):
        self.settings = settings
        self.database = database
        self.server = server
        self.signals = signals
        self.timed_out = False
        self._shutdown_requested = asyncio.Event()
        self._shutdown_task: asyncio.Task[int] | None = None
        self._installed_signals: list[signal.Signals] = []

    # -------------------------------------------------------------------------
    # Startup
    # -------------------------------------------------------------------------

    async def startup(self) -> StartupResult:
        """
        Connect the database, start listening, then install signal handlers.

        Any failure stops the sequence; nothing is left half-started.
        """
        try:
            await self.database.connect()
        except Exception as e:
            logger.error(f"Startup aborted, database unavailable: {e}")
            return StartupResult(ok=False, error=e)

        try:
            await self.server.start()
        except Exception as e:
            logger.error(f"Startup aborted, server failed to start: {e}")
            await self._release_database()
            return StartupResult(ok=False, error=e)

        self._install_signal_handlers()
        logger.info(f"Server is running on port {self.settings.PORT}")
        return StartupResult(ok=True)

    async def _release_database(self) -> None:
        try:
            await self.database.disconnect()
        except Exception as e:
            logger.error(f"Failed to disconnect database after aborted startup: {e}")

    # -------------------------------------------------------------------------
    # Signals
    # -------------------------------------------------------------------------

    def _install_signal_handlers(self) -> None:
        loop = asyncio.get_running_loop()
        for sig in self.signals:
            try:
                loop.add_signal_handler(sig, self.request_shutdown, sig.name)
            except NotImplementedError:
                # Windows event loops lack add_signal_handler
                signal.signal(
                    sig,
                    lambda signum, frame: loop.call_soon_threadsafe(
                        self.request_shutdown, signal.Signals(signum).name
                    ),
                )
            self._installed_signals.append(sig)

    def _remove_signal_handlers(self) -> None:
        loop = asyncio.get_running_loop()
        for sig in self._installed_signals:
            try:
                loop.remove_signal_handler(sig)
            except NotImplementedError:
                signal.signal(sig, signal.SIG_DFL)
        self._installed_signals.clear()

    def request_shutdown(self, reason: str = "shutdown request") -> None:
        """Begin graceful shutdown. Later requests are ignored."""
        if self._shutdown_requested.is_set():
            logger.warning(f"Received {reason} while already shutting down")
            return
        logger.info(f"Received {reason}, shutting down gracefully...")
        self._shutdown_requested.set()

    # -------------------------------------------------------------------------
    # Shutdown
    # -------------------------------------------------------------------------

    async def wait_for_shutdown(self) -> int:
        """Block until a shutdown is requested, then run it."""
        await self._shutdown_requested.wait()
        return await self.shutdown()

    async def shutdown(self) -> int:
        """
        Run graceful shutdown once.

        Every caller awaits the same task and gets the same exit code.

        Returns:
            int: 0 when drained and disconnected in time, 1 on error or timeout
        """
        self._shutdown_requested.set()
        if self._shutdown_task is None:
            self._shutdown_task = asyncio.create_task(self._shutdown())
        return await self._shutdown_task

    async def _drain(self) -> None:
        try:
            await self.server.stop()
            logger.info("HTTP server closed")
        finally:
            await self.database.disconnect()

    async def _shutdown(self) -> int:
        timeout = self.settings.SHUTDOWN_TIMEOUT_SECONDS
        drain = asyncio.create_task(self._drain())
        try:
            # The deadline is held outside the drain: cleanup inside it
            # cannot extend the wait.
            done, _ = await asyncio.wait({drain}, timeout=timeout)
        finally:
            self._remove_signal_handlers()

        if not done:
            self.timed_out = True
            drain.cancel()
            drain.add_done_callback(_discard_result)
            logger.error(f"Could not close connections in time ({timeout:g}s), forcefully shutting down")
            return EXIT_FAILURE

        error = drain.exception()
        if error is not None:
            logger.error(f"Error during shutdown: {error}", exc_info=error)
            return EXIT_FAILURE

        logger.info("Graceful shutdown complete")
        return EXIT_SUCCESS


def _discard_result(task: asyncio.Task) -> None:
    # An abandoned drain may still fail; its outcome no longer matters
    if not task.cancelled():
        task.exception()


# =============================================================================
# Entry Point
# =============================================================================

async def run() -> int:
    """
    Start the service and serve until shutdown.

    Returns:
        int: Process exit code
    """
    try:
        settings = load_settings()
    except ConfigurationError as e:
        logging.basicConfig(format=LOG_FORMAT)
        logger.error(f"Environment configuration failed:\n{e.message}")
        logger.error("The application cannot start without proper configuration.")
        logger.debug(f"Configuration error details: {e.to_dict()}")
        return EXIT_FAILURE

    configure_logging(settings)
    log_summary(settings)

    database = DatabaseClient(settings)
    app = create_app(settings, database)
    lifecycle = Lifecycle(settings, database, UvicornServer(app, settings))

    result = await lifecycle.startup()
    if not result.ok:
        if isinstance(result.error, ApplicationError):
            logger.error(f"Startup failed: {result.error.to_dict()}")
        return EXIT_FAILURE

    exit_code = await lifecycle.wait_for_shutdown()
    if lifecycle.timed_out:
        # Threads stuck in the database driver would block a normal exit
        logging.shutdown()
        os._exit(exit_code)
    return exit_code


def main() -> None:
    """Console entry point."""
    sys.exit(asyncio.run(run()))


if __name__ == "__main__":
    main()

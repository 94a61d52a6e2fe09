"""Main application entry point for the Slice Arena event indexer"""

import argparse
import asyncio
import signal
import sys
from typing import Optional

import structlog
import uvicorn
from dotenv import load_dotenv

from arena_indexer.api.app import create_app
from arena_indexer.api.websocket import LiveUpdateManager
from arena_indexer.cache.manager import CacheManager
from arena_indexer.chains.reader import ChainReader
from arena_indexer.config.models import Settings
from arena_indexer.database.manager import DatabaseManager
from arena_indexer.indexer.core import EventIndexer
from arena_indexer.indexer.scheduler import IndexerScheduler
from arena_indexer.monitoring.metrics import start_metrics_server
from arena_indexer.utils.logging import setup_logging

# Load environment variables
load_dotenv()

logger = structlog.get_logger()


class Application:
    """Main application orchestrator"""

    def __init__(self):
        """Initialize application components"""
        self.settings: Optional[Settings] = None
        self.db_manager: Optional[DatabaseManager] = None
        self.cache_manager: Optional[CacheManager] = None
        self.chain_reader: Optional[ChainReader] = None
        self.indexer: Optional[EventIndexer] = None
        self.scheduler: Optional[IndexerScheduler] = None
        self.live_updates: Optional[LiveUpdateManager] = None

        # FastAPI app
        self.app = None

        # Shutdown flag
        self._shutdown_event = asyncio.Event()

        self._logger = logger.bind(component="application")

    async def initialize(self) -> None:
        """Initialize all application components"""
        try:
            # Load settings from environment variables
            self.settings = Settings()
            setup_logging(self.settings.log_level)

            self._logger.info(
                "settings_loaded",
                log_level=self.settings.log_level.upper(),
                database_url=self.settings.database_url.split("@")[-1] if "@" in self.settings.database_url else "***",
                node_url=self.settings.aptos_node_url,
                contract_address=self.settings.contract_address,
            )

            # Initialize database manager
            self._logger.info("initializing_database")
            self.db_manager = DatabaseManager(
                self.settings.database_url,
                min_pool_size=self.settings.database_min_pool_size,
                max_pool_size=self.settings.database_max_pool_size,
            )
            await self.db_manager.connect()
            await self.db_manager.initialize_schema()
            self._logger.info("database_initialized")

            # Initialize cache manager (optional)
            if self.settings.redis_url:
                try:
                    self._logger.info("initializing_cache")
                    self.cache_manager = CacheManager(self.settings.redis_url)
                    await self.cache_manager.connect()
                    self._logger.info("cache_initialized")
                except Exception as e:
                    self._logger.warning(
                        "cache_initialization_failed",
                        error=str(e),
                        message="Continuing without cache",
                    )
                    self.cache_manager = None

            # Initialize chain reader and indexer
            self._logger.info("initializing_indexer")
            self.live_updates = LiveUpdateManager(
                max_connections=self.settings.websocket_max_connections,
            )
            node_config = self.settings.get_node_config()
            self.chain_reader = ChainReader(node_config)
            await self.chain_reader.connect()

            self.indexer = EventIndexer(
                chain_reader=self.chain_reader,
                database_manager=self.db_manager,
                cache_manager=self.cache_manager,
                page_size=node_config.page_size,
                live_updates=self.live_updates,
            )
            self.scheduler = IndexerScheduler(
                indexer=self.indexer,
                interval_seconds=self.settings.indexer_interval_seconds,
            )

            # Create FastAPI application
            self._logger.info("creating_fastapi_app")
            self.app = create_app(
                settings=self.settings,
                db_manager=self.db_manager,
                scheduler=self.scheduler,
                cache_manager=self.cache_manager,
                live_updates=self.live_updates,
            )

            self._logger.info("application_initialized")

        except Exception as e:
            self._logger.error(
                "application_initialization_failed",
                error=str(e),
                error_type=type(e).__name__,
            )
            raise

    async def start(self) -> None:
        """Start the indexing loop and the metrics server"""
        self._logger.info("application_starting")

        try:
            self._logger.info("starting_websocket_background_tasks")
            await self.live_updates.start_background_tasks()

            await self.scheduler.start()

            self._logger.info("starting_metrics_server", port=self.settings.prometheus_port)
            start_metrics_server(port=self.settings.prometheus_port)

            self._logger.info("application_started")

        except Exception as e:
            self._logger.error(
                "application_start_failed",
                error=str(e),
                error_type=type(e).__name__,
            )
            raise

    async def run_once(self) -> int:
        """Run a single indexing cycle; returns the process exit code"""
        try:
            result = await self.scheduler.run_cycle()
        except Exception as e:
            self._logger.error(
                "single_cycle_failed",
                error=str(e),
                error_type=type(e).__name__,
            )
            return 1

        self._logger.info("single_cycle_completed", **result.to_response())
        return 0

    async def stop(self) -> None:
        """Stop all application components gracefully"""
        self._logger.info("application_stopping")

        try:
            if self.scheduler:
                self._logger.info("stopping_indexer_scheduler")
                await self.scheduler.stop()

            if self.live_updates:
                self._logger.info("stopping_websocket_background_tasks")
                await self.live_updates.stop_background_tasks()

            if self.chain_reader:
                self._logger.info("closing_chain_reader")
                await self.chain_reader.close()

            if self.cache_manager:
                self._logger.info("closing_cache_connection")
                await self.cache_manager.disconnect()

            if self.db_manager:
                self._logger.info("closing_database_connection")
                await self.db_manager.disconnect()

            self._logger.info("application_stopped")

        except Exception as e:
            self._logger.error(
                "application_stop_error",
                error=str(e),
                error_type=type(e).__name__,
            )

    def setup_signal_handlers(self) -> None:
        """Setup signal handlers for graceful shutdown"""
        def signal_handler(signum, frame):
            """Handle shutdown signals"""
            signal_name = signal.Signals(signum).name
            self._logger.info(
                "shutdown_signal_received",
                signal=signal_name,
            )
            self._shutdown_event.set()

        signal.signal(signal.SIGTERM, signal_handler)
        signal.signal(signal.SIGINT, signal_handler)

        self._logger.info("signal_handlers_registered")

    async def wait_for_shutdown(self) -> None:
        """Wait for shutdown signal"""
        await self._shutdown_event.wait()


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Slice Arena on-chain event indexer")
    parser.add_argument(
        "--once",
        action="store_true",
        help="Run a single indexing cycle and exit (for cron-style deployments)",
    )
    return parser.parse_args(argv)


async def main(argv=None) -> int:
    """Main application entry point"""
    args = parse_args(argv)
    app = Application()

    try:
        await app.initialize()

        if args.once:
            exit_code = await app.run_once()
            await app.stop()
            return exit_code

        app.setup_signal_handlers()
        await app.start()

        # Start uvicorn server in background
        config = uvicorn.Config(
            app.app,
            host=app.settings.api_host,
            port=app.settings.api_port,
            log_level=app.settings.log_level.lower(),
            access_log=True,
        )
        server = uvicorn.Server(config)
        server_task = asyncio.create_task(server.serve())

        logger.info(
            "uvicorn_server_started",
            host=app.settings.api_host,
            port=app.settings.api_port,
        )

        await app.wait_for_shutdown()

        logger.info("shutting_down_uvicorn_server")
        server.should_exit = True
        await server_task

        await app.stop()

        logger.info("application_shutdown_complete")
        return 0

    except KeyboardInterrupt:
        logger.info("keyboard_interrupt_received")
        await app.stop()
        return 0
    except Exception as e:
        logger.error(
            "application_error",
            error=str(e),
            error_type=type(e).__name__,
        )
        await app.stop()
        return 1


if __name__ == "__main__":
    try:
        sys.exit(asyncio.run(main()))
    except KeyboardInterrupt:
        logger.info("application_terminated")

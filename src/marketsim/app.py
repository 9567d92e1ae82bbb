"""MarketSim Main Application."""

from __future__ import annotations

import asyncio
import logging
import signal
from pathlib import Path

from marketsim.commands import CommandRouter
from marketsim.config_loader import AppConfig, load_config_with_overrides
from marketsim.constants import LOG_FORMAT
from marketsim.notify import Notifier
from marketsim.persistence.store import LedgerStore
from marketsim.service import MarketService

logger = logging.getLogger(__name__)


class MarketSimApp:
    """Main application orchestrator: owns the service and its clock drivers."""

    def __init__(
        self,
        config_path: str = "config/config.yaml",
        log_level: str | None = None,
        database_path: str | None = None,
        tick_interval: float | None = None,
        config: AppConfig | None = None,
    ):
        self.config_path = Path(config_path)
        self.config: AppConfig | None = config
        self._log_level_override = log_level
        self._database_path_override = database_path
        self._tick_interval_override = tick_interval

        # Components
        self.notifier = Notifier()
        self.store: LedgerStore | None = None
        self.service: MarketService | None = None
        self.router: CommandRouter | None = None

        self.ticks = 0
        self._running = False
        self._shutdown_event = asyncio.Event()

    def _setup_logging(self) -> None:
        level = self.config.environment.log_level.value if self.config else "INFO"
        logging.basicConfig(level=getattr(logging, level), format=LOG_FORMAT)

    async def initialize(self) -> None:
        """Load config and initialize components."""
        if self.config is None:
            self.config = load_config_with_overrides(
                self.config_path.absolute(),
                log_level=self._log_level_override,
                database_path=self._database_path_override,
                tick_interval=self._tick_interval_override,
            )
        self._setup_logging()
        logger.info("Initializing MarketSim...")

        if self.config.storage.enabled:
            self.store = LedgerStore(self.config.storage.database_path)
            logger.info(f"Ledger store: {self.config.storage.database_path}")
        else:
            logger.warning("Ledger store disabled, state lives in memory only")

        self.service = MarketService(self.config, store=self.store, notifier=self.notifier)
        await self.service.start()
        self.router = CommandRouter(self.service)

        logger.info(
            f"Markets: {', '.join(self.config.symbol_codes)} | "
            f"tick {self.config.clock.tick_interval_seconds}s, "
            f"candle {self.config.candles.bucket_seconds}s"
        )

    async def _tick_loop(self, max_ticks: int | None = None) -> None:
        interval = self.config.clock.tick_interval_seconds
        while not self._shutdown_event.is_set():
            try:
                await self.service.tick()
            except Exception as e:
                logger.error(f"Error in tick processing: {e}", exc_info=True)
            self.ticks += 1

            if max_ticks is not None and self.ticks >= max_ticks:
                logger.info(f"Reached {max_ticks} ticks, stopping")
                self._shutdown_event.set()
                return

            try:
                await asyncio.wait_for(self._shutdown_event.wait(), timeout=interval)
            except asyncio.TimeoutError:
                pass

    async def _leaderboard_loop(self) -> None:
        interval = self.config.clock.leaderboard_interval_seconds
        while not self._shutdown_event.is_set():
            try:
                await asyncio.wait_for(self._shutdown_event.wait(), timeout=interval)
                return
            except asyncio.TimeoutError:
                pass
            try:
                await self.service.refresh_leaderboards()
            except Exception as e:
                logger.error(f"Error refreshing leaderboards: {e}", exc_info=True)

    async def run(self, max_ticks: int | None = None) -> None:
        """Run the application loop."""
        if self.service is None:
            await self.initialize()

        logger.info("Starting run loop...")

        # Trap signals
        loop = asyncio.get_running_loop()
        try:
            for sig in (signal.SIGINT, signal.SIGTERM):
                loop.add_signal_handler(sig, lambda: self._handle_signal())
        except NotImplementedError:
            logger.warning(
                "Signal handlers not supported in this environment. Use Ctrl+C to stop."
            )

        self._running = True
        tasks = [
            asyncio.create_task(self._tick_loop(max_ticks)),
            asyncio.create_task(self._leaderboard_loop()),
        ]

        try:
            await self._shutdown_event.wait()
        except asyncio.CancelledError:
            pass
        finally:
            logger.info("Shutting down...")
            self._shutdown_event.set()
            await asyncio.gather(*tasks, return_exceptions=True)
            self._running = False
            await self.service.close()
            logger.info("Shutdown complete.")

    def stop(self) -> None:
        self._shutdown_event.set()

    def _handle_signal(self) -> None:
        logger.info("Signal received, initiating shutdown...")
        self._shutdown_event.set()

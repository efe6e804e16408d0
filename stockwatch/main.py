"""Stockwatch — Main Orchestrator.

Ties all components together: config, database, Telegram gateway,
alert pipeline and bot commands.

Runs on a schedule with APScheduler:
  - Daily inventory alert run (cron, in the configured timezone)
  - Telegram command polling alongside, when enabled

Usage:
    python -m stockwatch.main           # scheduler + bot commands
    python -m stockwatch.main --once    # single alert run, then exit
    python -m stockwatch.main --test-alert STORE_ID --token TOKEN
    python -m stockwatch.main --issue-token STORE_ID
    python scripts/run.py
"""

from __future__ import annotations

import argparse
import asyncio
import signal
import sys
import time
import traceback
from datetime import datetime
from typing import Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from telegram.ext import Application

from stockwatch.alerts.pipeline import AlertPipeline
from stockwatch.auth import IdTokenVerifier, create_id_token
from stockwatch.config import AppConfig, load_config
from stockwatch.database.db import Database
from stockwatch.database.models import RunSummary
from stockwatch.errors import AlertRequestError
from stockwatch.notifier.commands import CommandHandler
from stockwatch.notifier.dispatcher import AlertDispatcher
from stockwatch.notifier.telegram_bot import TelegramGateway
from stockwatch.utils.logger import get_logger, set_console_level

logger = get_logger(__name__)


def schedule_text(config: AppConfig) -> str:
    """Human-readable alert time, e.g. 'Daily at 08:00 (Asia/Kolkata)'."""
    s = config.schedule
    return f"Daily at {s.hour:02d}:{s.minute:02d} ({s.timezone})"


class StockwatchApp:
    """Main application orchestrator.

    Owns the database handle, the Telegram gateway and the scheduler,
    and fires the alert pipeline once a day.

    Attributes:
        config: Full application configuration.
        db: Active database instance.
    """

    def __init__(self, config: Optional[AppConfig] = None) -> None:
        """Initialize with default state. Call start() or run_once() to run."""
        self.config = config
        self.db: Optional[Database] = None
        self._gateway: Optional[TelegramGateway] = None
        self._tg_app: Optional[Application] = None
        self._dispatcher: Optional[AlertDispatcher] = None
        self._pipeline: Optional[AlertPipeline] = None
        self._scheduler: Optional[AsyncIOScheduler] = None

        self._running = False
        self._run_count = 0
        self._start_time: float = 0.0
        self._last_run_time: Optional[str] = None
        self._last_summary: Optional[RunSummary] = None

    async def _setup(self) -> None:
        """Load config, open the database and build the pipeline."""
        if self.config is None:
            logger.info("═══ Loading configuration ═══")
            self.config = load_config()
        set_console_level(self.config.log_level)

        logger.info("═══ Initializing database ═══")
        self.db = Database(self.config.database_path)
        await self.db.initialize()
        logger.info("Database ready: %s", self.config.database_path)

        logger.info("═══ Initializing components ═══")
        if self.config.telegram.enable_commands:
            self._tg_app = Application.builder().token(self.config.telegram.bot_token).build()
            await self._tg_app.initialize()
            self._gateway = TelegramGateway(self.config.telegram, bot=self._tg_app.bot)
        else:
            self._gateway = TelegramGateway(self.config.telegram)

        connected = await self._gateway.initialize()
        if not connected:
            logger.error("Telegram bot connection failed! Continuing anyway...")

        verifier = None
        if self.config.auth is not None:
            verifier = IdTokenVerifier(self.config.auth.jwt_secret, self.config.auth.algorithm)
        else:
            logger.info("No auth section configured, test alerts are disabled")

        self._dispatcher = AlertDispatcher(
            self.db,
            self._gateway,
            subscriber_interval_seconds=self.config.rate_limits.subscriber_interval_seconds,
            token_verifier=verifier,
            dashboard_url=self.config.dashboard_url,
        )
        self._pipeline = AlertPipeline(
            self.db,
            self._dispatcher,
            store_interval_seconds=self.config.rate_limits.store_interval_seconds,
            timezone_name=self.config.schedule.timezone,
            dashboard_url=self.config.dashboard_url,
        )

    async def run_once(self) -> RunSummary:
        """Set up, run a single alert batch and shut down.

        Returns:
            The run's summary.

        Raises:
            Exception: If the run is fatal (e.g. stores cannot be listed).
        """
        self._start_time = time.monotonic()
        try:
            await self._setup()
            return await self.run_daily_alerts()
        finally:
            await self.shutdown()

    async def run_test_alert(self, store_id: str, id_token: Optional[str]) -> int:
        """Set up, send one on-demand test alert and shut down.

        Args:
            store_id: Store whose subscribers receive the test.
            id_token: Identity token of the store owner.

        Returns:
            Number of subscribers the test reached.

        Raises:
            AlertRequestError: If the request is rejected.
        """
        try:
            await self._setup()
            return await self._dispatcher.send_test_alert(store_id, id_token)
        finally:
            await self.shutdown()

    async def start(self) -> None:
        """Full application startup sequence.

        1. Load config, database and Telegram components
        2. Register the daily cron job
        3. Start command polling (if enabled)
        4. Enter keep-alive loop
        """
        self._start_time = time.monotonic()
        self._running = True

        try:
            await self._setup()

            logger.info("═══ Setting up scheduler ═══")
            sched = self.config.schedule
            self._scheduler = AsyncIOScheduler(timezone=sched.timezone)
            self._scheduler.add_job(
                self.run_daily_alerts,
                CronTrigger(hour=sched.hour, minute=sched.minute, timezone=sched.timezone),
                id="daily_alerts",
                max_instances=1,
                coalesce=True,
                misfire_grace_time=3600,
                name=f"Daily inventory alerts ({sched.hour:02d}:{sched.minute:02d})",
            )
            self._scheduler.start()
            logger.info("Scheduler started: %s", schedule_text(self.config))

            if self._tg_app is not None:
                CommandHandler(
                    self.db,
                    schedule_text(self.config),
                    self.config.dashboard_url,
                    timezone_name=self.config.schedule.timezone,
                ).register(self._tg_app)
                await self._tg_app.start()
                await self._tg_app.updater.start_polling()
                logger.info("Telegram command polling started")

            logger.info("═══ Entering main loop ═══")
            while self._running:
                await asyncio.sleep(1)

        except Exception as e:
            logger.error("Fatal error: %s", e)
            logger.error(traceback.format_exc())
        finally:
            await self.shutdown()

    async def run_daily_alerts(self) -> RunSummary:
        """Run one alert batch.

        Re-raises fatal errors so APScheduler records a failed
        invocation; there is no automatic retry.
        """
        self._run_count += 1
        self._last_run_time = datetime.now().strftime("%Y-%m-%d %H:%M:%S")

        logger.info("╔══════════════════════════════════════════╗")
        logger.info("║  Alert Run #%d — %s  ║", self._run_count, self._last_run_time)
        logger.info("╚══════════════════════════════════════════╝")

        try:
            summary = await self._pipeline.run()
        except Exception as e:
            logger.error("Daily alert run aborted: %s", e)
            logger.error(traceback.format_exc())
            raise

        self._last_summary = summary
        return summary

    async def shutdown(self) -> None:
        """Graceful shutdown: stop scheduler and polling, close connections."""
        logger.info("═══ Shutting down ═══")
        self._running = False

        if self._scheduler and self._scheduler.running:
            self._scheduler.shutdown(wait=False)
            logger.info("Scheduler stopped")

        if self._tg_app is not None:
            try:
                if self._tg_app.updater and self._tg_app.updater.running:
                    await self._tg_app.updater.stop()
                if self._tg_app.running:
                    await self._tg_app.stop()
                await self._tg_app.shutdown()
            except Exception as e:
                logger.warning("Error stopping Telegram application: %s", e)
            self._tg_app = None
        elif self._gateway is not None:
            await self._gateway.shutdown()

        if self.db:
            try:
                await self.db.close()
            except Exception as e:
                logger.warning("Error closing database: %s", e)

        logger.info("Shutdown complete")

    # ── Public state accessors ───────────────────────────

    @property
    def run_count(self) -> int:
        """Alert runs started since launch."""
        return self._run_count

    @property
    def last_summary(self) -> Optional[RunSummary]:
        """Summary of the last completed run."""
        return self._last_summary

    def stop(self) -> None:
        """Ask the keep-alive loop to exit."""
        self._running = False


def main(argv: Optional[list[str]] = None) -> int:
    """Application entry point.

    Returns:
        Process exit status.
    """
    parser = argparse.ArgumentParser(description="Daily inventory alerts over Telegram")
    parser.add_argument(
        "--once", action="store_true",
        help="run a single alert batch now and exit",
    )
    parser.add_argument(
        "--test-alert", metavar="STORE_ID",
        help="send a test alert to every subscriber of STORE_ID and exit",
    )
    parser.add_argument(
        "--token",
        help="store owner's identity token (required with --test-alert)",
    )
    parser.add_argument(
        "--issue-token", metavar="STORE_ID",
        help="print an identity token for the owner of STORE_ID and exit",
    )
    args = parser.parse_args(argv)

    if args.token and not args.test_alert:
        parser.error("--token is only used with --test-alert")

    if args.issue_token:
        config = load_config()
        if config.auth is None:
            logger.error("Cannot issue tokens: no auth section in settings")
            return 1
        print(create_id_token(args.issue_token, config.auth.jwt_secret, config.auth.algorithm))
        return 0

    app = StockwatchApp()

    if args.test_alert:
        try:
            sent = asyncio.run(app.run_test_alert(args.test_alert, args.token))
        except AlertRequestError as e:
            logger.error("Test alert rejected (%d): %s", e.status_code, e.message)
            return 1
        except Exception as e:
            logger.error("Test alert failed: %s", e)
            return 1
        logger.info("Test alert sent to %d subscriber(s)", sent)
        return 0

    if args.once:
        try:
            summary = asyncio.run(app.run_once())
        except Exception as e:
            logger.error("Alert run failed: %s", e)
            return 1
        logger.info("Run summary: %s", summary.to_dict())
        return 0

    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)

    def _signal_handler(sig, frame):
        logger.info("Signal %s received, shutting down...", sig)
        app.stop()

    signal.signal(signal.SIGINT, _signal_handler)
    signal.signal(signal.SIGTERM, _signal_handler)

    try:
        loop.run_until_complete(app.start())
    except KeyboardInterrupt:
        pass
    finally:
        loop.close()
    return 0


if __name__ == "__main__":
    sys.exit(main())

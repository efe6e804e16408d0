"""Stockwatch — Daily Alert Pipeline.

Runs one complete alert batch over every store:

  list stores → for each store, in turn:
      settings → subscribers → inventory → classify → compose → dispatch
  → run summary

Stores are processed strictly one after another. The pause between
stores counts from the end of one store to the start of the next, so it
comes on top of the pauses between subscriber sends. A failure inside
one store is logged and counted; only a failure to list the stores
aborts the run.
"""

from __future__ import annotations

import time
import traceback
from datetime import date
from typing import Optional

from stockwatch.alerts.classifier import (
    DEFAULT_TIMEZONE,
    apply_toggles,
    classify_inventory,
    reference_today,
)
from stockwatch.alerts.settings import resolve_settings
from stockwatch.database import queries
from stockwatch.database.db import Database
from stockwatch.database.models import RunSummary, Store
from stockwatch.notifier.dispatcher import AlertDispatcher
from stockwatch.notifier.formatters import DEFAULT_DASHBOARD_URL, format_inventory_digest
from stockwatch.utils.logger import get_logger
from stockwatch.utils.rate_limiter import IntervalThrottle

logger = get_logger(__name__)


class AlertPipeline:
    """Sequential, failure-isolated daily alert run.

    Attributes:
        db: Active database instance.
        dispatcher: Delivers digests to subscribers.
        throttle: Pause between the end of one store and the start of the next.
    """

    def __init__(
        self,
        db: Database,
        dispatcher: AlertDispatcher,
        store_interval_seconds: float = 1.0,
        timezone_name: str = DEFAULT_TIMEZONE,
        dashboard_url: str = DEFAULT_DASHBOARD_URL,
    ) -> None:
        """Initialize the pipeline.

        Args:
            db: Active Database instance with initialized schema.
            dispatcher: AlertDispatcher bound to the same database.
            store_interval_seconds: Seconds to pause after each store before the next.
            timezone_name: Timezone that defines "today".
            dashboard_url: Link placed in every digest footer.
        """
        self.db = db
        self.dispatcher = dispatcher
        self.throttle = IntervalThrottle(store_interval_seconds, name="store")
        self.timezone_name = timezone_name
        self.dashboard_url = dashboard_url

    async def run(self, today: Optional[date] = None) -> RunSummary:
        """Run the alert batch for every store.

        Args:
            today: Reference day override; defaults to today in the
                configured timezone.

        Returns:
            RunSummary for the run.

        Raises:
            Exception: Whatever list_stores raised; the run is aborted.
        """
        start_time = time.monotonic()
        today = today or reference_today(self.timezone_name)
        summary = RunSummary()

        logger.info("═══ Daily Alert Run Starting (%s) ═══", today.isoformat())

        stores = await queries.list_stores(self.db)
        logger.info("Processing %d stores", len(stores))

        self.throttle.reset()
        for i, store in enumerate(stores, 1):
            await self.throttle.acquire()
            summary.stores_processed += 1
            logger.info("  [%d/%d] Store %s (%s)", i, len(stores), store.id, store.name)

            try:
                sent, removed = await self.process_store(store, today)
            except Exception as e:
                summary.stores_failed += 1
                logger.error("Error processing store %s: %s", store.id, e)
                logger.debug(traceback.format_exc())
                continue
            finally:
                # the store pause counts from the end of this store's sends
                self.throttle.mark()

            summary.alerts_sent += sent
            summary.subscribers_removed += removed
            if sent > 0:
                summary.stores_alerted += 1

        summary.duration_seconds = round(time.monotonic() - start_time, 1)

        logger.info("═══ Daily Alert Run Complete ═══")
        logger.info(
            "  Stores: %d | Alerted: %d | Failed: %d | Alerts: %d | "
            "Removed: %d | Time: %.1fs",
            summary.stores_processed, summary.stores_alerted,
            summary.stores_failed, summary.alerts_sent,
            summary.subscribers_removed, summary.duration_seconds,
        )
        return summary

    async def process_store(self, store: Store, today: date) -> tuple[int, int]:
        """Classify, compose and deliver one store's digest.

        Args:
            store: Store to process.
            today: The run's reference day.

        Returns:
            (alerts sent, subscribers removed). (0, 0) when the store is
            skipped: no subscribers, no inventory, or nothing to report.
        """
        settings = await resolve_settings(self.db, store.id)

        subscribers = await queries.list_subscribers(self.db, store.id)
        if not subscribers:
            logger.info("Store %s: no subscribers, skipping", store.id)
            return 0, 0

        inventory = await queries.list_inventory(self.db, store.id)
        if not inventory:
            logger.info("Store %s: no inventory, skipping", store.id)
            return 0, 0

        result = classify_inventory(
            inventory,
            expiry_warning_days=settings.expiry_warning_days,
            low_stock_threshold=settings.low_stock_threshold,
            today=today,
            timezone_name=self.timezone_name,
        )
        result = apply_toggles(result, settings)

        text = format_inventory_digest(store.name, today, result, self.dashboard_url)
        if text is None:
            logger.info("Store %s: no alerts needed", store.id)
            return 0, 0

        logger.info(
            "Store %s: %d expired, %d expiring, %d low stock → %d subscribers",
            store.id, len(result.expired), len(result.near_expiry),
            len(result.low_stock), len(subscribers),
        )
        outcome = await self.dispatcher.dispatch(store.id, text, subscribers)
        return outcome.sent, outcome.removed

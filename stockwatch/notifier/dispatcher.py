"""Stockwatch — Alert Dispatcher.

Delivers one composed message to every subscriber of a store, one at a
time, and keeps the subscriber table in step with what the gateway
reports:

  - delivered          → last_alert_sent is stamped
  - chat unreachable   → the subscriber row is deleted
  - any other failure  → the row is left untouched

Also serves the on-demand test alert, which goes through the same
delivery path.
"""

from __future__ import annotations

import inspect
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Optional, Union

from stockwatch.database import queries
from stockwatch.database.db import Database
from stockwatch.database.models import DispatchOutcome, Subscriber
from stockwatch.errors import (
    AuthenticationError,
    InvalidRequestError,
    NoSubscribersError,
    PermissionDeniedError,
)
from stockwatch.notifier.formatters import DEFAULT_DASHBOARD_URL, format_test_alert
from stockwatch.notifier.telegram_bot import MessageGateway
from stockwatch.utils.logger import get_logger
from stockwatch.utils.rate_limiter import IntervalThrottle

logger = get_logger(__name__)

# Maps an identity token to the uid it was issued for; raises if invalid.
TokenVerifier = Callable[[str], Union[str, Awaitable[str]]]

SENT = "sent"
REMOVED = "removed"
FAILED = "failed"


class AlertDispatcher:
    """Sends messages to a store's subscribers and updates their records.

    Attributes:
        db: Active database instance.
        gateway: Message gateway used for every send.
        throttle: Pause between the end of one send and the start of the next.
    """

    def __init__(
        self,
        db: Database,
        gateway: MessageGateway,
        subscriber_interval_seconds: float = 0.1,
        token_verifier: Optional[TokenVerifier] = None,
        dashboard_url: str = DEFAULT_DASHBOARD_URL,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        """Initialize the dispatcher.

        Args:
            db: Active database instance.
            gateway: Connected MessageGateway.
            subscriber_interval_seconds: Seconds to pause after each send before the next.
            token_verifier: Verifies identity tokens for test alerts.
            dashboard_url: Link used in the test alert.
            clock: Source of the delivery timestamp (UTC now by default).
        """
        self.db = db
        self.gateway = gateway
        self.throttle = IntervalThrottle(subscriber_interval_seconds, name="subscriber")
        self.dashboard_url = dashboard_url
        self._token_verifier = token_verifier
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    async def deliver(
        self, subscriber: Subscriber, text: str, record_delivery: bool = True,
    ) -> str:
        """Send ``text`` to one subscriber and apply the outcome.

        Never raises: gateway and bookkeeping errors are logged and
        reported as FAILED.

        Args:
            subscriber: Target subscriber.
            text: Message text.
            record_delivery: Stamp last_alert_sent on success.

        Returns:
            SENT, REMOVED or FAILED.
        """
        await self.throttle.acquire()

        try:
            result = await self.gateway.send_message(subscriber.chat_id, text)
        except Exception as e:
            logger.error(
                "Gateway error sending to subscriber %s (chat %s): %s",
                subscriber.id, subscriber.chat_id, e,
            )
            return FAILED
        finally:
            self.throttle.mark()

        try:
            if result.success:
                if record_delivery:
                    await queries.mark_alert_sent(self.db, subscriber.id, self._clock())
                return SENT

            if result.permanent_failure:
                await queries.delete_subscriber(self.db, subscriber.id)
                logger.info(
                    "Removed subscriber %s (user %s) from store %s: %s",
                    subscriber.id, subscriber.telegram_user_id,
                    subscriber.store_id, result.error,
                )
                return REMOVED
        except Exception as e:
            logger.error(
                "Error updating subscriber %s after delivery: %s", subscriber.id, e,
            )
            return FAILED

        logger.warning(
            "Failed to send to chat %s (subscriber %s): %s",
            subscriber.chat_id, subscriber.id, result.error,
        )
        return FAILED

    async def dispatch(
        self,
        store_id: str,
        text: str,
        subscribers: Optional[list[Subscriber]] = None,
    ) -> DispatchOutcome:
        """Deliver one message to every subscriber of a store.

        Subscribers are handled sequentially and independently; no send
        is retried.

        Args:
            store_id: Store the message belongs to.
            text: Composed message.
            subscribers: Pre-loaded subscribers, or None to read them.

        Returns:
            DispatchOutcome with sent / removed / failed counts.
        """
        if subscribers is None:
            subscribers = await queries.list_subscribers(self.db, store_id)

        outcome = DispatchOutcome()
        for subscriber in subscribers:
            status = await self.deliver(subscriber, text)
            if status == SENT:
                outcome.sent += 1
            elif status == REMOVED:
                outcome.removed += 1
            else:
                outcome.failed += 1

        logger.info(
            "Store %s: sent %d/%d (removed %d, failed %d)",
            store_id, outcome.sent, len(subscribers), outcome.removed, outcome.failed,
        )
        return outcome

    async def _verify_token(self, id_token: Optional[str]) -> str:
        if not id_token:
            raise AuthenticationError("Unauthorized")
        if self._token_verifier is None:
            raise AuthenticationError("Token verification is not configured")
        try:
            uid: Any = self._token_verifier(id_token)
            if inspect.isawaitable(uid):
                uid = await uid
        except Exception as e:
            logger.warning("Identity token rejected: %s", e)
            raise AuthenticationError("Unauthorized") from e
        return str(uid)

    async def send_test_alert(
        self, store_id: Optional[str], id_token: Optional[str],
    ) -> int:
        """Send a test message to every subscriber of a store.

        The caller must present an identity token issued for the store's
        owner (uid == store id). Test sends do not stamp last_alert_sent,
        but an unreachable chat is still removed.

        Args:
            store_id: Store to test.
            id_token: Identity token of the requester.

        Returns:
            Number of subscribers the test reached.

        Raises:
            InvalidRequestError: If store_id is missing.
            AuthenticationError: If the token is missing or invalid.
            PermissionDeniedError: If the token belongs to another store.
            NoSubscribersError: If the store has no subscribers.
        """
        if not store_id:
            raise InvalidRequestError("Missing storeId")

        uid = await self._verify_token(id_token)
        if uid != store_id:
            logger.warning("Test alert for %s denied to uid %s", store_id, uid)
            raise PermissionDeniedError("Forbidden")

        subscribers = await queries.list_subscribers(self.db, store_id)
        if not subscribers:
            raise NoSubscribersError("No subscribers found")

        store = await queries.get_store(self.db, store_id)
        text = format_test_alert(
            store.name if store else store_id, self.dashboard_url,
        )

        sent = 0
        for subscriber in subscribers:
            if await self.deliver(subscriber, text, record_delivery=False) == SENT:
                sent += 1

        logger.info(
            "Test alert for store %s sent to %d/%d subscriber(s)",
            store_id, sent, len(subscribers),
        )
        return sent

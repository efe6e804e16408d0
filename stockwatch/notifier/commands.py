"""Stockwatch — Telegram Command Handlers.

Interactive commands via the Telegram bot:
  /start store_<id> — subscribe this chat to a store's daily alerts
  /help — command list and alert schedule
  /status — subscription and settings for this user
  /test — send a test alert to this chat
  anything else — "unknown command"

Uses python-telegram-bot v22+ Application with polling.
"""

from __future__ import annotations

from telegram import Update
from telegram.constants import ParseMode
from telegram.ext import (
    Application,
    CommandHandler as TgCmdHandler,
    ContextTypes,
    MessageHandler,
    filters,
)

from stockwatch.alerts.classifier import DEFAULT_TIMEZONE
from stockwatch.alerts.settings import resolve_settings
from stockwatch.database import queries
from stockwatch.database.db import Database
from stockwatch.database.models import Store, Subscriber
from stockwatch.notifier.formatters import (
    DEFAULT_DASHBOARD_URL,
    format_error,
    format_help,
    format_not_connected,
    format_subscribed,
    format_subscriber_status,
    format_test_alert,
    format_unknown_command,
    format_welcome,
)
from stockwatch.utils.logger import get_logger

logger = get_logger(__name__)

STORE_LINK_PREFIX = "store_"
NEW_STORE_NAME = "My Store"


def parse_store_link(args: list[str] | None) -> str | None:
    """Extract the store id from /start deep-link arguments.

    Args:
        args: Words after the command, e.g. ['store_abc123'].

    Returns:
        The store id, or None if the argument is missing or malformed.
    """
    if not args:
        return None
    token = args[0].strip()
    if not token.startswith(STORE_LINK_PREFIX):
        return None
    store_id = token[len(STORE_LINK_PREFIX):]
    return store_id or None


class CommandHandler:
    """Telegram bot command handlers.

    Registers /commands with the Telegram bot Application. Subscriber
    records are created here; the daily pipeline only updates or
    removes them.

    Attributes:
        db: Active database instance.
        schedule_text: Human-readable daily run time (e.g. "Daily at 08:00 Asia/Kolkata").
        dashboard_url: Management interface link.
        timezone_name: Zone used to show the last alert time.
    """

    def __init__(
        self,
        db: Database,
        schedule_text: str,
        dashboard_url: str = DEFAULT_DASHBOARD_URL,
        timezone_name: str = DEFAULT_TIMEZONE,
    ) -> None:
        self.db = db
        self.schedule_text = schedule_text
        self.dashboard_url = dashboard_url
        self.timezone_name = timezone_name

    def register(self, tg_app: Application) -> None:
        """Register all command handlers with the Telegram Application.

        Args:
            tg_app: python-telegram-bot Application instance.
        """
        tg_app.add_handler(TgCmdHandler("start", self._cmd_start))
        tg_app.add_handler(TgCmdHandler("help", self._cmd_help))
        tg_app.add_handler(TgCmdHandler("status", self._cmd_status))
        tg_app.add_handler(TgCmdHandler("test", self._cmd_test))
        tg_app.add_handler(MessageHandler(filters.COMMAND, self._cmd_unknown))
        logger.info("Registered 4 Telegram commands")

    async def _reply(self, update: Update, text: str) -> None:
        await update.effective_message.reply_text(
            text, parse_mode=ParseMode.HTML, disable_web_page_preview=True,
        )

    async def _cmd_start(
        self, update: Update, context: ContextTypes.DEFAULT_TYPE,
    ) -> None:
        """Handle /start — subscribe via the dashboard deep link."""
        store_id = parse_store_link(context.args)
        if store_id is None:
            await self._reply(update, format_welcome(self.dashboard_url))
            return

        user = update.effective_user
        chat = update.effective_chat
        try:
            store = await queries.get_store(self.db, store_id)
            if store is None:
                store = Store(id=store_id, name=NEW_STORE_NAME)
                await queries.create_store(self.db, store)
                logger.info("Created new store record for %s", store_id)

            await queries.upsert_subscriber(self.db, Subscriber(
                id=None,
                store_id=store_id,
                telegram_user_id=str(user.id),
                chat_id=str(chat.id),
                username=user.username,
                first_name=user.first_name or "User",
            ))
            settings = await resolve_settings(self.db, store_id)

            await self._reply(update, format_subscribed(
                store.name, settings, self.schedule_text, self.dashboard_url,
            ))
            logger.info("User %s subscribed to store %s", user.id, store_id)
        except Exception as e:
            logger.error("Error handling /start for store %s: %s", store_id, e)
            await self._reply(update, format_error(
                "Connection Error",
                "Something went wrong. Please try again or contact support.",
            ))

    async def _cmd_help(
        self, update: Update, context: ContextTypes.DEFAULT_TYPE,
    ) -> None:
        """Handle /help."""
        await self._reply(update, format_help(self.schedule_text, self.dashboard_url))

    async def _cmd_status(
        self, update: Update, context: ContextTypes.DEFAULT_TYPE,
    ) -> None:
        """Handle /status — show the user's first subscription and its settings."""
        try:
            subscriptions = await queries.find_subscriptions(
                self.db, str(update.effective_user.id),
            )
            if not subscriptions:
                await self._reply(update, format_not_connected())
                return

            store, subscriber = subscriptions[0]
            settings = await resolve_settings(self.db, store.id)
            await self._reply(update, format_subscriber_status(
                store.name,
                settings,
                subscriber.last_alert_sent,
                self.schedule_text,
                self.timezone_name,
                store_count=len(subscriptions),
                dashboard_url=self.dashboard_url,
            ))
        except Exception as e:
            logger.error("Error handling /status: %s", e)
            await self._reply(update, format_error(
                "Error", "Could not fetch status. Please try again.",
            ))

    async def _cmd_test(
        self, update: Update, context: ContextTypes.DEFAULT_TYPE,
    ) -> None:
        """Handle /test — send a test alert to this chat."""
        try:
            subscriptions = await queries.find_subscriptions(
                self.db, str(update.effective_user.id),
            )
            store_name = subscriptions[0][0].name if subscriptions else "your store"
            await self._reply(update, format_test_alert(store_name, self.dashboard_url))
            logger.info("Test alert sent to chat %s", update.effective_chat.id)
        except Exception as e:
            logger.error("Error handling /test: %s", e)
            await self._reply(update, format_error(
                "Test Failed", "Could not send test alert. Please try again.",
            ))

    async def _cmd_unknown(
        self, update: Update, context: ContextTypes.DEFAULT_TYPE,
    ) -> None:
        """Reply to any unrecognized /command."""
        await self._reply(update, format_unknown_command())

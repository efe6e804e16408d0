"""Stockwatch — Telegram Gateway.

Async Telegram client using python-telegram-bot v22+. Sends one message
to one chat and reports the outcome as a DeliveryResult instead of
raising, so callers can tell an unreachable chat (remove the subscriber)
from a passing failure (leave it alone).

No send is retried here: a failed alert waits for the next daily run.
"""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod

from telegram import Bot
from telegram.constants import ParseMode
from telegram.error import (
    BadRequest,
    Forbidden,
    NetworkError,
    RetryAfter,
    TelegramError,
    TimedOut,
)

from stockwatch.config import TelegramConfig
from stockwatch.database.models import DeliveryResult
from stockwatch.utils.logger import get_logger

logger = get_logger(__name__)

_MAX_MESSAGE_LEN = 4096
_SAFE_LEN = 4000  # leave headroom

# BadRequest texts that mean the chat itself is gone
_PERMANENT_BAD_REQUESTS = (
    "chat not found",
    "user not found",
    "peer_id_invalid",
    "chat_id is empty",
)


class MessageGateway(ABC):
    """Anything that can deliver a text message to a chat endpoint."""

    @abstractmethod
    async def send_message(self, chat_id: str, text: str) -> DeliveryResult:
        """Deliver ``text`` to ``chat_id``.

        Implementations must report failures through the result rather
        than raising.
        """


def _hard_cut(text: str, max_len: int) -> int:
    """Pick a cut point at or before max_len that is outside any tag or entity."""
    window = text[:max_len]
    cut_point = max_len
    tag_start = window.rfind("<")
    if tag_start > window.rfind(">"):
        cut_point = tag_start
    entity_start = window.rfind("&")
    if entity_start > window.rfind(";"):
        cut_point = min(cut_point, entity_start)
    return cut_point if cut_point > 0 else max_len


def split_message(text: str, max_len: int = _SAFE_LEN) -> list[str]:
    """Split long text at paragraph or line boundaries.

    Tries double newlines first, then single newlines, then a hard cut
    that never lands inside an HTML tag or entity.
    Each chunk will be at most max_len characters.

    Args:
        text: Full message text.
        max_len: Maximum characters per chunk.

    Returns:
        List of text chunks.
    """
    if len(text) <= max_len:
        return [text]

    chunks: list[str] = []
    remaining = text

    while len(remaining) > max_len:
        cut_point = remaining.rfind("\n\n", 0, max_len)
        if cut_point <= 0:
            cut_point = remaining.rfind("\n", 0, max_len)
        if cut_point <= 0:
            cut_point = _hard_cut(remaining, max_len)

        chunks.append(remaining[:cut_point].rstrip())
        remaining = remaining[cut_point:].lstrip("\n")

    if remaining.strip():
        chunks.append(remaining.strip())

    return chunks


def classify_telegram_error(error: Exception) -> DeliveryResult:
    """Map a Telegram exception to a delivery outcome.

    Forbidden (bot blocked, user deactivated, kicked from group) and the
    "chat not found" family of BadRequest mean the endpoint is permanently
    unreachable. Everything else is a passing failure.

    Args:
        error: Exception raised by the Telegram client.

    Returns:
        A failed DeliveryResult.
    """
    message = str(error)
    if isinstance(error, Forbidden):
        return DeliveryResult.failed(message, permanent=True)
    if isinstance(error, BadRequest) and any(
        marker in message.lower() for marker in _PERMANENT_BAD_REQUESTS
    ):
        return DeliveryResult.failed(message, permanent=True)
    return DeliveryResult.failed(message)


class TelegramGateway(MessageGateway):
    """Telegram Bot API implementation of MessageGateway.

    Attributes:
        config: TelegramConfig with the bot token and parse mode.
    """

    def __init__(self, config: TelegramConfig, bot: Bot | None = None) -> None:
        """Initialize the gateway.

        Args:
            config: TelegramConfig from the app configuration.
            bot: Pre-built Bot (shared with the command Application), if any.
        """
        self.config = config
        self._bot = bot or Bot(token=config.bot_token)
        self._owns_bot = bot is None

    async def initialize(self) -> bool:
        """Initialize the bot and verify the token with getMe.

        Returns:
            True if connected successfully, False otherwise.
        """
        try:
            if self._owns_bot:
                await self._bot.initialize()
            me = await self._bot.get_me()
            logger.info("Telegram bot connected: @%s", me.username)
            return True
        except Exception as e:
            logger.error("Telegram bot connection failed: %s", e)
            return False

    async def shutdown(self) -> None:
        """Release the bot's HTTP resources if this gateway created it."""
        if self._owns_bot:
            try:
                await self._bot.shutdown()
            except Exception as e:
                logger.warning("Error shutting down Telegram bot: %s", e)

    async def send_message(self, chat_id: str, text: str) -> DeliveryResult:
        """Send a message, splitting it if it exceeds the Telegram limit.

        The delivery counts as successful only if every chunk was sent.

        Args:
            chat_id: Destination chat.
            text: Message content in the configured parse mode.

        Returns:
            DeliveryResult describing the outcome.
        """
        if not text:
            return DeliveryResult.failed("empty message")

        chunks = split_message(text, _SAFE_LEN)
        for i, chunk in enumerate(chunks):
            result = await self._send_single(chat_id, chunk)
            if not result.success:
                return result
            if i < len(chunks) - 1:
                await asyncio.sleep(0.5)

        return DeliveryResult.ok()

    async def _send_single(self, chat_id: str, text: str) -> DeliveryResult:
        """Send one chunk and translate any error into a DeliveryResult."""
        try:
            await self._bot.send_message(
                chat_id=chat_id,
                text=text,
                parse_mode=self.config.parse_mode or ParseMode.HTML,
                disable_web_page_preview=True,
            )
            return DeliveryResult.ok()

        # BadRequest and TimedOut subclass NetworkError, so order matters
        except (Forbidden, BadRequest) as e:
            result = classify_telegram_error(e)
            if result.permanent_failure:
                logger.info("Chat %s is unreachable: %s", chat_id, e)
            else:
                logger.error("Telegram rejected message to %s: %s", chat_id, e)
            return result

        except RetryAfter as e:
            logger.warning("Telegram rate limited sending to %s: %s", chat_id, e)
            return DeliveryResult.failed(f"rate limited: {e}")

        except TimedOut as e:
            logger.warning("Telegram timeout sending to %s", chat_id)
            return DeliveryResult.failed(f"timed out: {e}")

        except NetworkError as e:
            logger.warning("Telegram network error sending to %s: %s", chat_id, e)
            return DeliveryResult.failed(f"network error: {e}")

        except TelegramError as e:
            logger.error("Telegram error sending to %s: %s", chat_id, e)
            return DeliveryResult.failed(str(e))

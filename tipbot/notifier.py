# tipbot/notifier.py
from __future__ import annotations

import logging

from telegram import Bot
from telegram.error import TelegramError

logger = logging.getLogger(__name__)


class Notifier:
    """Best-effort direct messages; a failed delivery is logged, never retried."""

    def __init__(self, bot: Bot | None):
        self._bot = bot

    async def send_direct_message(self, platform_id: str, text: str) -> None:
        if self._bot is None:
            logger.warning("Notifier has no bot, dropping DM to %s", platform_id)
            return
        try:
            # private chat id == telegram user id
            await self._bot.send_message(chat_id=platform_id, text=text)
        except TelegramError as e:
            logger.warning("DM to %s failed: %s", platform_id, e)

"""
Telegram delivery built with aiogram 3.

Отправка отчёта каждому получателю отдельно: ошибка одного чата
не мешает остальным.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from aiogram import Bot
from aiogram.client.default import DefaultBotProperties
from aiogram.enums import ParseMode
from aiogram.exceptions import TelegramNetworkError
from aiogram.types import LinkPreviewOptions

from .config import BotConfig
from .errors import NotificationDeliveryError
from .utils import async_retry

logger = logging.getLogger(__name__)


class TelegramNotifier:
    def __init__(self, bot_cfg: BotConfig, bot: Optional[Any] = None) -> None:
        self.recipients = list(bot_cfg.chat_ids)
        self._owns_bot = bot is None
        if bot is None and bot_cfg.token:
            bot = Bot(
                bot_cfg.token,
                default=DefaultBotProperties(parse_mode=ParseMode.HTML),
            )
        self.bot = bot

    @property
    def enabled(self) -> bool:
        return self.bot is not None and bool(self.recipients)

    @async_retry(attempts=2, base_delay=2, max_delay=10, exceptions=(TelegramNetworkError,))
    async def _send_raw(self, chat_id: str, text: str) -> None:
        await self.bot.send_message(
            chat_id=chat_id,
            text=text,
            link_preview_options=LinkPreviewOptions(is_disabled=True),
        )

    async def send(self, chat_id: str, text: str) -> None:
        """Deliver to one chat or raise NotificationDeliveryError."""
        try:
            await self._send_raw(chat_id, text)
        except Exception as e:  # noqa: BLE001
            raise NotificationDeliveryError(chat_id, str(e) or type(e).__name__) from e

    async def broadcast(self, text: str) -> Dict[str, bool]:
        """Send ``text`` to every recipient; returns per-recipient success."""
        if not self.enabled:
            logger.warning("Telegram token or chat ids missing; skip notification")
            return {}
        results: Dict[str, bool] = {}
        for chat_id in self.recipients:
            try:
                await self.send(chat_id, text)
            except NotificationDeliveryError as e:
                logger.warning("%s", e)
                results[chat_id] = False
            else:
                results[chat_id] = True
        logger.info("Notification delivered to %s/%s recipients", sum(results.values()), len(results))
        return results

    async def close(self) -> None:
        if self._owns_bot and self.bot is not None:
            await self.bot.session.close()


__all__ = ["TelegramNotifier"]

from __future__ import annotations

import time
from typing import Awaitable, Callable

import anyio

from .logging import get_logger
from .telegram.client import BotClient
from .transports import ChatRateLimiter

logger = get_logger(__name__)


def is_group_chat_id(chat_id: int) -> bool:
    return chat_id < 0


class Notifier:
    """Sends chat messages spaced per chat, retrying on ``retry_after``."""

    def __init__(
        self,
        bot: BotClient,
        *,
        private_chat_rps: float = 1.0,
        group_chat_rps: float = 20.0 / 60.0,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = anyio.sleep,
    ) -> None:
        self._bot = bot
        self._private_interval = (
            0.0 if private_chat_rps <= 0 else 1.0 / private_chat_rps
        )
        self._group_interval = 0.0 if group_chat_rps <= 0 else 1.0 / group_chat_rps
        self._limiter: ChatRateLimiter[int] = ChatRateLimiter(
            interval_for_key=self._interval_for_chat,
            clock=clock,
            sleep=sleep,
        )

    def _interval_for_chat(self, chat_id: int) -> float:
        if is_group_chat_id(chat_id):
            return self._group_interval
        return self._private_interval

    async def send(
        self,
        chat_id: int,
        text: str,
        *,
        parse_mode: str | None = None,
        reply_to_message_id: int | None = None,
    ) -> bool:
        async def execute() -> dict | None:
            return await self._bot.send_message(
                chat_id=chat_id,
                text=text,
                reply_to_message_id=reply_to_message_id,
                parse_mode=parse_mode,
                disable_web_page_preview=True,
            )

        result = await self._limiter.call(chat_id, execute)
        if result is None:
            logger.warning("notifier.send_failed", chat_id=chat_id)
            return False
        return True

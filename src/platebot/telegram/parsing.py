from __future__ import annotations

from collections.abc import AsyncIterator, Awaitable, Callable
from typing import Any

import anyio
import msgspec

from ..logging import get_logger
from .api_models import Message, PhotoSize, Update
from .client import BotClient
from .types import TelegramChat, TelegramIncomingMessage, TelegramPhoto

logger = get_logger(__name__)

ALLOWED_UPDATES = ["message"]


def parse_incoming_update(
    update: Update | dict[str, Any],
) -> TelegramIncomingMessage | None:
    if isinstance(update, dict):
        try:
            update = msgspec.convert(update, type=Update)
        except msgspec.ValidationError:
            return None
    if update.message is None:
        return None
    return _parse_incoming_message(update.message)


def _parse_incoming_message(msg: Message) -> TelegramIncomingMessage | None:
    text = msg.text if msg.text is not None else msg.caption
    photo = _best_photo(msg.photo)
    if text is None and photo is None:
        return None
    return TelegramIncomingMessage(
        chat=TelegramChat(id=msg.chat.id, type=msg.chat.type),
        message_id=msg.message_id,
        text=text or "",
        sender_id=msg.from_.id if msg.from_ is not None else None,
        photo=photo,
    )


def _best_photo(photos: list[PhotoSize] | None) -> TelegramPhoto | None:
    if not photos:
        return None
    best = None
    best_score = -1
    for item in photos:
        size = item.file_size
        score = size if size is not None else item.width * item.height
        if score > best_score:
            best_score = score
            best = item
    assert best is not None
    return TelegramPhoto(
        file_id=best.file_id,
        width=best.width,
        height=best.height,
        file_size=best.file_size,
    )


async def drain_backlog(bot: BotClient, offset: int | None = None) -> int | None:
    drained = 0
    while True:
        updates = await bot.get_updates(
            offset=offset, timeout_s=0, allowed_updates=ALLOWED_UPDATES
        )
        if updates is None:
            logger.info("startup.backlog.failed")
            return offset
        if not updates:
            if drained:
                logger.info("startup.backlog.drained", count=drained)
            return offset
        offset = updates[-1].update_id + 1
        drained += len(updates)


async def poll_incoming(
    bot: BotClient,
    *,
    offset: int | None = None,
    timeout_s: int = 50,
    retry_delay_s: float = 2.0,
    sleep: Callable[[float], Awaitable[None]] = anyio.sleep,
) -> AsyncIterator[TelegramIncomingMessage]:
    while True:
        updates = await bot.get_updates(
            offset=offset,
            timeout_s=timeout_s,
            allowed_updates=ALLOWED_UPDATES,
        )
        if updates is None:
            logger.info("loop.get_updates.failed")
            await sleep(retry_delay_s)
            continue
        logger.debug("loop.updates", count=len(updates))
        for upd in updates:
            offset = upd.update_id + 1
            msg = parse_incoming_update(upd)
            if msg is not None:
                yield msg

from __future__ import annotations

from collections.abc import AsyncIterable
from pathlib import Path

import anyio

from .config import BotSettings
from .handlers import BotHandlers
from .logging import get_logger
from .notifier import Notifier
from .router import Router
from .services import Recognizer, Storage
from .subscription import Subscriptions
from .telegram.client import BotClient, TelegramClient
from .telegram.parsing import drain_backlog, poll_incoming
from .telegram.types import TelegramIncomingMessage

logger = get_logger(__name__)


class Bot:
    def __init__(
        self,
        *,
        client: BotClient,
        recognizer: Recognizer,
        storage: Storage,
        poll_interval_s: float,
        files_dir: Path | None = None,
        notifier: Notifier | None = None,
    ) -> None:
        self.client = client
        self.recognizer = recognizer
        self.storage = storage
        self.poll_interval_s = poll_interval_s
        self.files_dir = files_dir
        self.notifier = notifier or Notifier(client)
        self.router = Router()
        self.subscriptions: Subscriptions | None = None

    @classmethod
    def from_settings(cls, settings: BotSettings) -> Bot:
        return cls(
            client=TelegramClient(settings.bot_token),
            recognizer=Recognizer(settings.recognizer_url),
            storage=Storage(settings.storage_url),
            poll_interval_s=settings.poll_interval_s,
            files_dir=settings.files_dir,
        )

    async def close(self) -> None:
        await self.recognizer.close()
        await self.storage.close()
        await self.client.close()

    async def _dispatch(self, msg: TelegramIncomingMessage) -> None:
        try:
            await self.router.dispatch(msg)
        except Exception as exc:
            logger.exception(
                "bot.handler_failed",
                chat_id=msg.chat_id,
                message_id=msg.message_id,
                error=str(exc),
                error_type=exc.__class__.__name__,
            )

    async def run(
        self,
        updates: AsyncIterable[TelegramIncomingMessage] | None = None,
        *,
        skip_backlog: bool = True,
    ) -> None:
        """Serve updates until the source is exhausted or the task is cancelled.

        Without an explicit ``updates`` source the Bot API is long-polled.
        On exit every subscription is stopped and the loops are awaited.
        """
        async with anyio.create_task_group() as tg:
            subscriptions = Subscriptions(tg)
            self.subscriptions = subscriptions
            self.router = Router()
            BotHandlers(
                bot=self.client,
                notifier=self.notifier,
                recognizer=self.recognizer,
                storage=self.storage,
                subscriptions=subscriptions,
                poll_interval_s=self.poll_interval_s,
                files_dir=self.files_dir,
            ).register(self.router)

            try:
                if updates is None:
                    me = await self.client.get_me()
                    logger.info(
                        "bot.authorized",
                        username=me.get("username") if me is not None else None,
                    )
                    offset = await drain_backlog(self.client) if skip_backlog else None
                    updates = poll_incoming(self.client, offset=offset)
                async for msg in updates:
                    logger.debug(
                        "bot.incoming",
                        chat_id=msg.chat_id,
                        message_id=msg.message_id,
                        sender_id=msg.sender_id,
                    )
                    tg.start_soon(self._dispatch, msg)
            finally:
                with anyio.CancelScope(shield=True):
                    await subscriptions.stop_all()
                # in-flight handlers could otherwise start new subscriptions
                tg.cancel_scope.cancel()
        logger.info("bot.stopped")

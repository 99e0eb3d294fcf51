from __future__ import annotations

import re
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from .logging import get_logger
from .telegram.types import TelegramIncomingMessage

logger = get_logger(__name__)

Handler = Callable[[TelegramIncomingMessage], Awaitable[None]]


@dataclass(frozen=True, slots=True)
class Route:
    name: str
    match: Callable[[TelegramIncomingMessage], bool]
    handler: Handler


class Router:
    """Ordered routing table; every matching route handles the message."""

    def __init__(self) -> None:
        self._routes: list[Route] = []

    def handle(self, prefix: str, handler: Handler) -> None:
        self._routes.append(
            Route(
                name=prefix,
                match=lambda msg: msg.text.startswith(prefix),
                handler=handler,
            )
        )

    def handle_regexp(self, pattern: str | re.Pattern[str], handler: Handler) -> None:
        compiled = re.compile(pattern) if isinstance(pattern, str) else pattern
        self._routes.append(
            Route(
                name=compiled.pattern,
                match=lambda msg: compiled.search(msg.text) is not None,
                handler=handler,
            )
        )

    def handle_photo(self, handler: Handler) -> None:
        self._routes.append(
            Route(
                name="<photo>",
                match=lambda msg: msg.photo is not None,
                handler=handler,
            )
        )

    def matching(self, msg: TelegramIncomingMessage) -> list[Route]:
        return [route for route in self._routes if route.match(msg)]

    async def dispatch(self, msg: TelegramIncomingMessage) -> int:
        routes = self.matching(msg)
        if not routes:
            logger.debug("router.unhandled", chat_id=msg.chat_id, text=msg.text)
            return 0
        for route in routes:
            logger.debug("router.dispatch", chat_id=msg.chat_id, route=route.name)
            await route.handler(msg)
        return len(routes)

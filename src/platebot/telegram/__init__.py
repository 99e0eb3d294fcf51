"""Telegram-specific clients and adapters."""

from .client import BotClient, TelegramClient, TelegramRetryAfter
from .parsing import parse_incoming_update, poll_incoming
from .types import TelegramChat, TelegramIncomingMessage, TelegramPhoto

__all__ = [
    "BotClient",
    "TelegramChat",
    "TelegramClient",
    "TelegramIncomingMessage",
    "TelegramPhoto",
    "TelegramRetryAfter",
    "parse_incoming_update",
    "poll_incoming",
]

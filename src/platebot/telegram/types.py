from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class TelegramChat:
    id: int
    type: str = "private"


@dataclass(frozen=True, slots=True)
class TelegramPhoto:
    file_id: str
    width: int
    height: int
    file_size: int | None = None


@dataclass(frozen=True, slots=True)
class TelegramIncomingMessage:
    chat: TelegramChat
    message_id: int
    text: str
    sender_id: int | None = None
    photo: TelegramPhoto | None = None

    @property
    def chat_id(self) -> int:
        return self.chat.id

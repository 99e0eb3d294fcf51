from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

import anyio

from platebot.errors import ServiceError
from platebot.services import Plate, Transport
from platebot.telegram.api_models import File, Update
from platebot.telegram.types import (
    TelegramChat,
    TelegramIncomingMessage,
    TelegramPhoto,
)


@dataclass
class SentMessage:
    chat_id: int
    text: str
    reply_to_message_id: int | None = None
    parse_mode: str | None = None


@dataclass
class FakeBot:
    sent: list[SentMessage] = field(default_factory=list)
    updates: list[list[Update] | None] = field(default_factory=list)
    files: dict[str, File] = field(default_factory=dict)
    blobs: dict[str, bytes] = field(default_factory=dict)
    me: dict[str, Any] | None = field(
        default_factory=lambda: {"id": 1, "username": "platebot"}
    )
    closed: bool = False

    async def close(self) -> None:
        self.closed = True

    async def get_updates(
        self,
        offset: int | None,
        timeout_s: int = 50,
        allowed_updates: list[str] | None = None,
    ) -> list[Update] | None:
        if not self.updates:
            # stands in for a long poll that timed out
            await anyio.sleep(0.005)
            return []
        return self.updates.pop(0)

    async def send_message(
        self,
        chat_id: int,
        text: str,
        reply_to_message_id: int | None = None,
        parse_mode: str | None = None,
        disable_web_page_preview: bool | None = None,
    ) -> dict | None:
        self.sent.append(
            SentMessage(
                chat_id=chat_id,
                text=text,
                reply_to_message_id=reply_to_message_id,
                parse_mode=parse_mode,
            )
        )
        return {"message_id": len(self.sent)}

    async def get_me(self) -> dict | None:
        return self.me

    async def get_file(self, file_id: str) -> File | None:
        return self.files.get(file_id)

    async def download_file(self, file_path: str) -> bytes | None:
        return self.blobs.get(file_path)

    async def wait_for_sent(self, count: int) -> None:
        while len(self.sent) < count:
            await anyio.sleep(0.001)


@dataclass
class FakeStorage:
    by_number: dict[str, list[Transport]] = field(default_factory=dict)
    search_results: list[list[Transport] | ServiceError] = field(
        default_factory=list
    )
    searches: list[dict[str, str]] = field(default_factory=list)
    closed: bool = False

    async def close(self) -> None:
        self.closed = True

    async def find_by_number(self, number: str, *, limit: int = 5) -> list[Transport]:
        return self.by_number.get(number, [])

    async def search(self, params: Mapping[str, str]) -> list[Transport]:
        self.searches.append(dict(params))
        if not self.search_results:
            return []
        result = self.search_results[0]
        if len(self.search_results) > 1:
            self.search_results.pop(0)
        if isinstance(result, ServiceError):
            raise result
        return result


@dataclass
class FakeRecognizer:
    plates: list[Plate] | ServiceError = field(default_factory=list)
    images: list[bytes] = field(default_factory=list)
    closed: bool = False

    async def close(self) -> None:
        self.closed = True

    async def recognize(self, image: bytes, *, filename: str = "image.jpg") -> list[Plate]:
        self.images.append(image)
        if isinstance(self.plates, ServiceError):
            raise self.plates
        return self.plates


def make_transport(id: str, number: str = "AA1234BB", **kwargs: Any) -> Transport:
    return Transport(id=id, number=number, **kwargs)


def make_message(
    text: str,
    *,
    chat_id: int = 123,
    message_id: int = 1,
    photo: TelegramPhoto | None = None,
) -> TelegramIncomingMessage:
    return TelegramIncomingMessage(
        chat=TelegramChat(id=chat_id),
        message_id=message_id,
        text=text,
        sender_id=42,
        photo=photo,
    )

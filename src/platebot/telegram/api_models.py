from __future__ import annotations

from typing import Any

import msgspec

__all__ = [
    "ApiResponse",
    "Chat",
    "File",
    "Message",
    "PhotoSize",
    "ResponseParameters",
    "Update",
    "User",
]


class User(msgspec.Struct, forbid_unknown_fields=False):
    id: int
    is_bot: bool | None = None
    username: str | None = None
    first_name: str | None = None
    last_name: str | None = None


class Chat(msgspec.Struct, forbid_unknown_fields=False):
    id: int
    type: str
    title: str | None = None
    username: str | None = None


class PhotoSize(msgspec.Struct, forbid_unknown_fields=False):
    file_id: str
    width: int
    height: int
    file_unique_id: str | None = None
    file_size: int | None = None


class Message(msgspec.Struct, forbid_unknown_fields=False):
    message_id: int
    chat: Chat
    from_: User | None = msgspec.field(default=None, name="from")
    date: int | None = None
    text: str | None = None
    caption: str | None = None
    photo: list[PhotoSize] | None = None


class Update(msgspec.Struct, forbid_unknown_fields=False):
    update_id: int
    message: Message | None = None


class File(msgspec.Struct, forbid_unknown_fields=False):
    file_id: str
    file_path: str | None = None
    file_size: int | None = None


class ResponseParameters(msgspec.Struct, forbid_unknown_fields=False):
    retry_after: float | None = None


class ApiResponse(msgspec.Struct, forbid_unknown_fields=False):
    ok: bool
    result: Any = None
    description: str | None = None
    error_code: int | None = None
    parameters: ResponseParameters | None = None


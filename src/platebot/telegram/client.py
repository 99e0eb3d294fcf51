from __future__ import annotations

import re
from typing import Any, Protocol

import httpx
import msgspec

from ..logging import get_logger
from ..transports import RetryAfter
from .api_models import ApiResponse, File, Update

logger = get_logger(__name__)

PARSE_MODE_HTML = "HTML"


class TelegramRetryAfter(RetryAfter):
    pass


class BotClient(Protocol):
    async def close(self) -> None: ...

    async def get_updates(
        self,
        offset: int | None,
        timeout_s: int = 50,
        allowed_updates: list[str] | None = None,
    ) -> list[Update] | None: ...

    async def send_message(
        self,
        chat_id: int,
        text: str,
        reply_to_message_id: int | None = None,
        parse_mode: str | None = None,
        disable_web_page_preview: bool | None = None,
    ) -> dict | None: ...

    async def get_me(self) -> dict | None: ...

    async def get_file(self, file_id: str) -> File | None: ...

    async def download_file(self, file_path: str) -> bytes | None: ...


_RETRY_AFTER_RE = re.compile(r"retry after (\d+)", re.IGNORECASE)


def _retry_after(reply: ApiResponse | None, body: str) -> float | None:
    """Flood-control delay from a failed reply, falling back to its text."""
    if reply is not None:
        if reply.parameters is not None and reply.parameters.retry_after is not None:
            return reply.parameters.retry_after
        if reply.description is not None:
            body = reply.description
    match = _RETRY_AFTER_RE.search(body)
    return float(match.group(1)) if match else None


class TelegramClient:
    def __init__(
        self,
        token: str,
        timeout_s: float = 120,
        client: httpx.AsyncClient | None = None,
        base_url: str = "https://api.telegram.org",
    ) -> None:
        if not token:
            raise ValueError("Telegram token is empty")
        base_url = base_url.rstrip("/")
        self._base = f"{base_url}/bot{token}"
        self._file_base = f"{base_url}/file/bot{token}"
        self._client = client or httpx.AsyncClient(timeout=timeout_s)
        self._owns_client = client is None

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def _post(self, method: str, json_data: dict[str, Any]) -> Any | None:
        """Call a Bot API method and return its ``result``.

        Failures are logged and yield ``None``; flood control raises
        :class:`TelegramRetryAfter` so the caller's limiter can back off.
        """
        logger.debug("telegram.request", method=method, payload=json_data)
        try:
            resp = await self._client.post(f"{self._base}/{method}", json=json_data)
        except httpx.HTTPError as e:
            logger.error(
                "telegram.network_error",
                method=method,
                error=str(e),
                error_type=e.__class__.__name__,
            )
            return None

        try:
            reply: ApiResponse | None = msgspec.json.decode(
                resp.content, type=ApiResponse
            )
        except msgspec.DecodeError:
            reply = None

        if resp.is_success and reply is not None and reply.ok:
            return reply.result

        if resp.status_code == 429 or (reply is not None and not reply.ok):
            retry_after = _retry_after(reply, resp.text)
            if retry_after is not None:
                logger.info(
                    "telegram.rate_limited",
                    method=method,
                    status=resp.status_code,
                    retry_after=retry_after,
                )
                raise TelegramRetryAfter(
                    retry_after, reply.description if reply is not None else None
                )

        logger.error(
            "telegram.request_failed",
            method=method,
            status=resp.status_code,
            description=reply.description if reply is not None else None,
            body=None if reply is not None else resp.text,
        )
        return None

    async def get_updates(
        self,
        offset: int | None,
        timeout_s: int = 50,
        allowed_updates: list[str] | None = None,
    ) -> list[Update] | None:
        params: dict[str, Any] = {"timeout": timeout_s}
        if offset is not None:
            params["offset"] = offset
        if allowed_updates is not None:
            params["allowed_updates"] = allowed_updates
        result = await self._post("getUpdates", params)
        if not isinstance(result, list):
            return None
        updates: list[Update] = []
        for item in result:
            try:
                updates.append(msgspec.convert(item, type=Update))
            except msgspec.ValidationError as e:
                logger.warning("telegram.bad_update", error=str(e), update=item)
        return updates

    async def send_message(
        self,
        chat_id: int,
        text: str,
        reply_to_message_id: int | None = None,
        parse_mode: str | None = None,
        disable_web_page_preview: bool | None = None,
    ) -> dict | None:
        params: dict[str, Any] = {
            "chat_id": chat_id,
            "text": text,
        }
        if reply_to_message_id is not None:
            params["reply_to_message_id"] = reply_to_message_id
        if parse_mode is not None:
            params["parse_mode"] = parse_mode
        if disable_web_page_preview is not None:
            params["disable_web_page_preview"] = disable_web_page_preview
        return await self._post("sendMessage", params)  # type: ignore[return-value]

    async def get_me(self) -> dict | None:
        res = await self._post("getMe", {})
        return res if isinstance(res, dict) else None

    async def get_file(self, file_id: str) -> File | None:
        res = await self._post("getFile", {"file_id": file_id})
        if not isinstance(res, dict):
            return None
        try:
            return msgspec.convert(res, type=File)
        except msgspec.ValidationError as e:
            logger.error("telegram.bad_file", file_id=file_id, error=str(e))
            return None

    async def download_file(self, file_path: str) -> bytes | None:
        try:
            resp = await self._client.get(f"{self._file_base}/{file_path}")
            resp.raise_for_status()
        except httpx.HTTPError as e:
            logger.error(
                "telegram.file_download_failed",
                file_path=file_path,
                error=str(e),
                error_type=e.__class__.__name__,
            )
            return None
        return resp.content

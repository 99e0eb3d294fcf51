from __future__ import annotations

from collections.abc import Mapping

import httpx
import msgspec

from ..errors import ServiceError
from ..logging import get_logger

logger = get_logger(__name__)

SERVICE = "opencars"


class Transport(msgspec.Struct, forbid_unknown_fields=False):
    id: str
    number: str
    brand: str | None = None
    model: str | None = None
    year: int | None = None
    color: str | None = None
    kind: str | None = None
    date: str | None = None
    registration: str | None = None

    @property
    def title(self) -> str:
        parts = [part for part in (self.brand, self.model) if part]
        return " ".join(parts) or "unknown vehicle"


class Storage:
    """Client for an OpenCars-compatible registration storage API."""

    def __init__(
        self,
        url: str,
        *,
        timeout_s: float = 30,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        if not url:
            raise ValueError("Storage URL is empty")
        self._url = url.rstrip("/")
        self._client = client or httpx.AsyncClient(timeout=timeout_s)
        self._owns_client = client is None

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def _get_transports(self, params: Mapping[str, str]) -> list[Transport]:
        try:
            resp = await self._client.get(f"{self._url}/transport", params=dict(params))
            resp.raise_for_status()
        except httpx.HTTPError as e:
            logger.error(
                "opencars.request_failed",
                params=dict(params),
                error=str(e),
                error_type=e.__class__.__name__,
            )
            raise ServiceError(SERVICE, f"request failed: {e}") from e

        try:
            return msgspec.json.decode(resp.content, type=list[Transport])
        except msgspec.DecodeError as e:
            logger.error("opencars.bad_response", error=str(e), body=resp.text)
            raise ServiceError(SERVICE, f"malformed response: {e}") from e

    async def find_by_number(self, number: str, *, limit: int = 5) -> list[Transport]:
        return await self._get_transports(
            {"number": number.strip().upper(), "limit": str(limit)}
        )

    async def search(self, params: Mapping[str, str]) -> list[Transport]:
        """Return the latest registrations matching ``params``, newest first."""
        return await self._get_transports(params)

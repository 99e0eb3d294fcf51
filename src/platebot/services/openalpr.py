from __future__ import annotations

import httpx
import msgspec

from ..errors import ServiceError
from ..logging import get_logger

logger = get_logger(__name__)

SERVICE = "openalpr"


class PlateCandidate(msgspec.Struct, forbid_unknown_fields=False):
    plate: str
    confidence: float = 0.0


class Plate(msgspec.Struct, forbid_unknown_fields=False):
    plate: str
    confidence: float = 0.0
    region: str | None = None
    candidates: list[PlateCandidate] = []


class RecognitionResponse(msgspec.Struct, forbid_unknown_fields=False):
    results: list[Plate] = []
    processing_time_ms: float | None = None


class Recognizer:
    """Client for an OpenALPR-compatible recognition endpoint."""

    def __init__(
        self,
        url: str,
        *,
        timeout_s: float = 30,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        if not url:
            raise ValueError("Recognizer URL is empty")
        self._url = url.rstrip("/")
        self._client = client or httpx.AsyncClient(timeout=timeout_s)
        self._owns_client = client is None

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def recognize(
        self, image: bytes, *, filename: str = "image.jpg"
    ) -> list[Plate]:
        """Return recognized plates, most confident first."""
        try:
            resp = await self._client.post(
                f"{self._url}/recognize",
                files={"image": (filename, image, "image/jpeg")},
            )
            resp.raise_for_status()
        except httpx.HTTPError as e:
            logger.error(
                "openalpr.request_failed",
                error=str(e),
                error_type=e.__class__.__name__,
            )
            raise ServiceError(SERVICE, f"request failed: {e}") from e

        try:
            payload = msgspec.json.decode(resp.content, type=RecognitionResponse)
        except msgspec.DecodeError as e:
            logger.error("openalpr.bad_response", error=str(e), body=resp.text)
            raise ServiceError(SERVICE, f"malformed response: {e}") from e

        plates = sorted(payload.results, key=lambda p: p.confidence, reverse=True)
        logger.debug(
            "openalpr.recognized",
            plates=[p.plate for p in plates],
            processing_time_ms=payload.processing_time_ms,
        )
        return plates

import httpx
import pytest

from platebot.errors import ServiceError
from platebot.services import Recognizer, Storage, Transport


def _storage(handler) -> tuple[Storage, httpx.AsyncClient]:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return Storage("http://cars.local/api/", client=client), client


def _recognizer(handler) -> tuple[Recognizer, httpx.AsyncClient]:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return Recognizer("http://alpr.local", client=client), client


class TestStorage:
    @pytest.mark.anyio
    async def test_find_by_number(self) -> None:
        seen: list[httpx.URL] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request.url)
            return httpx.Response(
                200,
                json=[
                    {
                        "id": "7",
                        "number": "AA1234BB",
                        "brand": "BMW",
                        "model": "X5",
                        "year": 2015,
                        "owner_hint": "ignored",
                    }
                ],
                request=request,
            )

        storage, client = _storage(handler)
        async with client:
            items = await storage.find_by_number(" aa1234bb ")

        assert items == [
            Transport(id="7", number="AA1234BB", brand="BMW", model="X5", year=2015)
        ]
        assert items[0].title == "BMW X5"
        assert seen[0].path == "/api/transport"
        assert seen[0].params["number"] == "AA1234BB"
        assert seen[0].params["limit"] == "5"

    @pytest.mark.anyio
    async def test_search_passes_params(self) -> None:
        seen: list[httpx.URL] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request.url)
            return httpx.Response(200, json=[], request=request)

        storage, client = _storage(handler)
        async with client:
            assert await storage.search({"brand": "Audi", "year": "2020"}) == []

        assert dict(seen[0].params) == {"brand": "Audi", "year": "2020"}

    @pytest.mark.anyio
    async def test_http_error_raises_service_error(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(503, request=request)

        storage, client = _storage(handler)
        async with client:
            with pytest.raises(ServiceError) as exc_info:
                await storage.search({"brand": "Audi"})

        assert exc_info.value.service == "opencars"

    @pytest.mark.anyio
    async def test_malformed_body_raises_service_error(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"not": "a list"}, request=request)

        storage, client = _storage(handler)
        async with client:
            with pytest.raises(ServiceError, match="malformed"):
                await storage.find_by_number("AA1234BB")

    def test_unknown_title(self) -> None:
        assert Transport(id="1", number="X").title == "unknown vehicle"

    def test_empty_url_raises(self) -> None:
        with pytest.raises(ValueError, match="empty"):
            Storage("")


class TestRecognizer:
    @pytest.mark.anyio
    async def test_recognize_sorts_by_confidence(self) -> None:
        captured: dict = {}

        def handler(request: httpx.Request) -> httpx.Response:
            captured["path"] = request.url.path
            captured["content_type"] = request.headers["content-type"]
            captured["body"] = request.content
            return httpx.Response(
                200,
                json={
                    "processing_time_ms": 12.5,
                    "results": [
                        {"plate": "AA1234BC", "confidence": 70.0},
                        {
                            "plate": "AA1234BB",
                            "confidence": 91.2,
                            "region": "ua",
                            "candidates": [{"plate": "AA1234BB", "confidence": 91.2}],
                        },
                    ],
                },
                request=request,
            )

        recognizer, client = _recognizer(handler)
        async with client:
            plates = await recognizer.recognize(b"image-bytes", filename="car.jpg")

        assert [p.plate for p in plates] == ["AA1234BB", "AA1234BC"]
        assert plates[0].region == "ua"
        assert plates[0].candidates[0].confidence == 91.2
        assert captured["path"] == "/recognize"
        assert captured["content_type"].startswith("multipart/form-data")
        assert b"image-bytes" in captured["body"]
        assert b"car.jpg" in captured["body"]

    @pytest.mark.anyio
    async def test_no_results(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"results": []}, request=request)

        recognizer, client = _recognizer(handler)
        async with client:
            assert await recognizer.recognize(b"x") == []

    @pytest.mark.anyio
    async def test_network_error_raises_service_error(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        recognizer, client = _recognizer(handler)
        async with client:
            with pytest.raises(ServiceError) as exc_info:
                await recognizer.recognize(b"x")

        assert exc_info.value.service == "openalpr"
        assert "refused" in str(exc_info.value)

    @pytest.mark.anyio
    async def test_close_owned_client(self) -> None:
        recognizer = Recognizer("http://alpr.local")
        await recognizer.close()

"""
Tests for transport.py
Logic testing: header building, status handling, error wrapping
"""
import httpx
import pytest

from tagged_api.errors import TransportError
from tagged_api.transport import (
    CLIENT_ID_HEADER,
    CLIENT_SECRET_HEADER,
    CLIENT_URL_HEADER,
    CONTENT_TYPE,
    HttpxTransport,
    build_headers,
)
from tagged_api.types import TransportRequest


class MockAsyncTransport(httpx.AsyncBaseTransport):
    """Mock httpx transport recording requests."""

    def __init__(
        self,
        response_status: int = 200,
        response_content: bytes = b'["{\\"stat\\": \\"ok\\"}"]',
    ) -> None:
        self.response_status = response_status
        self.response_content = response_content
        self.requests: list[httpx.Request] = []

    async def handle_async_request(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return httpx.Response(
            status_code=self.response_status,
            headers={"content-type": "application/json"},
            content=self.response_content,
        )


class ErrorMockAsyncTransport(httpx.AsyncBaseTransport):
    """Mock httpx transport that raises errors."""

    def __init__(self, error: Exception) -> None:
        self.error = error

    async def handle_async_request(self, request: httpx.Request) -> httpx.Response:
        raise self.error


@pytest.fixture
def transport_request() -> TransportRequest:
    return TransportRequest(
        url="https://api.example.com/api/?application_id=user&format=JSON",
        body="\nmethod=user.get&id=1\n",
        headers={"X-Forwarded-For": "10.0.0.1"},
        cookies="sid=abc; lang=en",
        client_id="client-1",
        secret="s3cr3t",
        timeout_ms=2500,
    )


class TestBuildHeaders:
    """Tests for build_headers()."""

    def test_all_headers(self, transport_request):
        headers = build_headers(transport_request, client_url="https://app.example.com/page")

        assert headers["Content-Type"] == CONTENT_TYPE
        assert headers["X-Requested-With"] == "XMLHttpRequest"
        assert headers[CLIENT_ID_HEADER] == "client-1"
        assert headers[CLIENT_SECRET_HEADER] == "s3cr3t"
        assert headers[CLIENT_URL_HEADER] == "https://app.example.com/page"
        assert headers["Cookie"] == "sid=abc; lang=en"
        assert headers["X-Forwarded-For"] == "10.0.0.1"

    def test_optional_headers_omitted(self):
        headers = build_headers(TransportRequest(url="/api/?", body="\n\n"))

        assert CLIENT_ID_HEADER not in headers
        assert CLIENT_SECRET_HEADER not in headers
        assert CLIENT_URL_HEADER not in headers
        assert "Cookie" not in headers

    def test_caller_headers_override(self):
        request = TransportRequest(
            url="/api/?",
            body="\n\n",
            headers={"X-Requested-With": "tagged-api"},
        )

        assert build_headers(request)["X-Requested-With"] == "tagged-api"


class TestHttpxTransport:
    """Tests for HttpxTransport."""

    async def test_post_success(self, transport_request):
        mock = MockAsyncTransport()
        async with httpx.AsyncClient(transport=mock) as client:
            transport = HttpxTransport(client)
            response = await transport.post(transport_request)

        assert response.status_code == 200
        assert response.body == '["{\\"stat\\": \\"ok\\"}"]'

        sent = mock.requests[0]
        assert sent.method == "POST"
        assert str(sent.url) == "https://api.example.com/api/?application_id=user&format=JSON"
        assert sent.content == b"\nmethod=user.get&id=1\n"
        assert sent.headers[CLIENT_ID_HEADER] == "client-1"
        assert sent.headers["cookie"] == "sid=abc; lang=en"

    async def test_timeout_is_passed_in_seconds(self, transport_request):
        mock = MockAsyncTransport()
        async with httpx.AsyncClient(transport=mock) as client:
            await HttpxTransport(client).post(transport_request)

        assert mock.requests[0].extensions["timeout"]["read"] == 2.5

    @pytest.mark.parametrize("status", [400, 404, 500, 503])
    async def test_non_2xx_raises(self, transport_request, status):
        mock = MockAsyncTransport(response_status=status, response_content=b"error")
        async with httpx.AsyncClient(transport=mock) as client:
            with pytest.raises(TransportError) as exc_info:
                await HttpxTransport(client).post(transport_request)

        assert exc_info.value.status_code == status
        assert str(status) in str(exc_info.value)

    async def test_timeout_wrapped(self, transport_request):
        mock = ErrorMockAsyncTransport(httpx.ReadTimeout("timed out"))
        async with httpx.AsyncClient(transport=mock) as client:
            with pytest.raises(TransportError, match="timed out after 2500ms") as exc_info:
                await HttpxTransport(client).post(transport_request)

        assert isinstance(exc_info.value.__cause__, httpx.ReadTimeout)

    async def test_connection_error_wrapped(self, transport_request):
        mock = ErrorMockAsyncTransport(httpx.ConnectError("refused"))
        async with httpx.AsyncClient(transport=mock) as client:
            with pytest.raises(TransportError, match="refused"):
                await HttpxTransport(client).post(transport_request)

    async def test_shared_client_left_open(self):
        client = httpx.AsyncClient(transport=MockAsyncTransport())
        transport = HttpxTransport(client)

        await transport.aclose()

        assert client.is_closed is False
        await client.aclose()

    async def test_owned_client_closed(self):
        transport = HttpxTransport()

        await transport.aclose()

        assert transport._client.is_closed is True

    async def test_post_after_close(self, transport_request):
        transport = HttpxTransport(httpx.AsyncClient(transport=MockAsyncTransport()))
        await transport.aclose()

        with pytest.raises(RuntimeError, match="closed"):
            await transport.post(transport_request)

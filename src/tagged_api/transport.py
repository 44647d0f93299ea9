"""
HTTP transport for batch exchanges, using httpx.
"""
import logging
from typing import Dict, Optional

import httpx

from .errors import TransportError
from .types import Transport, TransportRequest, TransportResponse

logger = logging.getLogger("tagged_api.transport")

CONTENT_TYPE = "application/x-www-form-urlencoded; charset=UTF-8"
CLIENT_ID_HEADER = "x-tagged-client-id"
CLIENT_SECRET_HEADER = "x-tagged-client-secret"
CLIENT_URL_HEADER = "x-tagged-client-url"


def _mask_headers_for_logging(headers: Dict[str, str]) -> Dict[str, str]:
    """Mask secrets and cookies for safe logging."""
    masked = dict(headers)
    for key in masked:
        if key.lower() in (CLIENT_SECRET_HEADER, "cookie", "authorization"):
            masked[key] = "****"
    return masked


def build_headers(
    request: TransportRequest,
    client_url: Optional[str] = None,
) -> Dict[str, str]:
    """Build the HTTP headers for a batch request. Caller headers win."""
    headers: Dict[str, str] = {
        "Content-Type": CONTENT_TYPE,
        "X-Requested-With": "XMLHttpRequest",
    }
    if request.client_id is not None:
        headers[CLIENT_ID_HEADER] = request.client_id
    if request.secret is not None:
        headers[CLIENT_SECRET_HEADER] = request.secret
    if client_url is not None:
        headers[CLIENT_URL_HEADER] = client_url
    if request.cookies:
        headers["Cookie"] = request.cookies

    headers.update(request.headers)
    return headers


class HttpxTransport(Transport):
    """
    Posts batch bodies with an ``httpx.AsyncClient``.

    A client passed in is shared and left open on ``aclose()``; a client
    created here is closed with the transport.

    Example:
        async with httpx.AsyncClient() as http:
            api = TaggedApi(ApiConfig(endpoint="https://example.com/api/"), HttpxTransport(http))
    """

    def __init__(
        self,
        httpx_client: Optional[httpx.AsyncClient] = None,
        client_url: Optional[str] = None,
    ) -> None:
        self._owns_client = httpx_client is None
        self._client = httpx_client if httpx_client is not None else httpx.AsyncClient()
        self._client_url = client_url
        self._closed = False

    async def post(self, request: TransportRequest) -> TransportResponse:
        """Post a batch body and return the raw response text."""
        if self._closed:
            raise RuntimeError("Transport has been closed")

        headers = build_headers(request, self._client_url)
        timeout = request.timeout_ms / 1000

        logger.debug(f"HttpxTransport.post: url={request.url}, timeout={timeout}s")
        logger.debug(f"HttpxTransport.post: headers={_mask_headers_for_logging(headers)}")

        try:
            response = await self._client.post(
                request.url,
                content=request.body,
                headers=headers,
                timeout=timeout,
            )
        except httpx.TimeoutException as e:
            raise TransportError(f"Request timed out after {request.timeout_ms}ms") from e
        except httpx.HTTPError as e:
            raise TransportError(f"Request failed: {e}") from e

        if not (200 <= response.status_code < 300):
            raise TransportError(
                f"HTTP {response.status_code}: {response.reason_phrase or ''}".rstrip(),
                status_code=response.status_code,
            )

        return TransportResponse(
            body=response.text,
            status_code=response.status_code,
            headers=dict(response.headers),
        )

    async def aclose(self) -> None:
        """Close the transport."""
        self._closed = True
        if self._owns_client:
            await self._client.aclose()

"""
FastAPI integration for tagged_api.

Builds one client per incoming request, so API calls are made on behalf
of the user whose cookies came with that request. The HTTP connection
pool is shared through the app lifespan.
"""
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, Callable, Mapping, Optional, Sequence
import logging

from fastapi import Request

from ..client import TaggedApi
from ..config import ApiConfig, merge_params
from ..transport import HttpxTransport

logger = logging.getLogger(__name__)

DEFAULT_QUERY = {
    "application_id": "user",
    "format": "JSON",
}

DEFAULT_PARAMS = {
    "api_signature": "",
}


def build_request_config(
    endpoint: str,
    headers: Mapping[str, str],
    options: Optional[Mapping[str, Any]] = None,
    pass_headers: Sequence[str] = (),
) -> ApiConfig:
    """
    Build the config of a per-request client.

    Args:
        endpoint: URL to post batches to.
        headers: Headers of the incoming request.
        options: ApiConfig fields overriding the defaults. Nested
            ``query``/``params``/``headers`` mappings are merged.
        pass_headers: Incoming header names to forward to the API.
    """
    forwarded = {}
    for name in pass_headers:
        value = headers.get(name)
        if value is not None:
            forwarded[name] = value

    base = {
        "query": dict(DEFAULT_QUERY),
        "params": dict(DEFAULT_PARAMS),
        "cookies": headers.get("cookie"),
        "headers": forwarded,
    }
    return ApiConfig(endpoint=endpoint, **merge_params(base, options))


def create_lifespan(
    client_url: Optional[str] = None,
) -> Callable[..., Any]:
    """
    Factory to create a FastAPI lifespan sharing one HttpxTransport.

    Example:
        app = FastAPI(lifespan=create_lifespan())

        @app.get("/profile")
        async def profile(api: TaggedApi = Depends(get_api("https://example.com/api/"))):
            return await api.execute("user.get")
    """

    @asynccontextmanager
    async def lifespan(app: Any) -> AsyncGenerator[None, None]:
        transport = HttpxTransport(client_url=client_url)
        app.state.tagged_api_transport = transport
        logger.info("Shared tagged_api transport started")

        yield

        await transport.aclose()
        logger.info("Shared tagged_api transport closed")

    return lifespan


def get_api(
    endpoint: str,
    options: Optional[Mapping[str, Any]] = None,
    pass_headers: Sequence[str] = (),
) -> Callable[..., AsyncGenerator[TaggedApi, None]]:
    """
    FastAPI dependency providing a per-request TaggedApi.

    Uses the transport stored by create_lifespan() when present. Calls
    still queued when the handler returns are sent and awaited before
    the client is discarded.
    """

    async def _get_api(request: Request) -> AsyncGenerator[TaggedApi, None]:
        transport = getattr(request.app.state, "tagged_api_transport", None)
        config = build_request_config(endpoint, request.headers, options, pass_headers)
        api = TaggedApi(config, transport)
        try:
            yield api
        finally:
            await api.close()

    return _get_api

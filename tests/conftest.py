"""Shared fixtures and transport doubles for tagged_api tests."""
import asyncio
import json
from typing import Any, Callable, List, Optional

import pytest

from tagged_api import (
    ApiConfig,
    TaggedApi,
    Transport,
    TransportRequest,
    TransportResponse,
)
from tagged_api.encoder import DecodedCall, decode_batch


def make_body(*results: Any) -> str:
    """Build a batch response body: a JSON array of JSON-encoded results."""
    return json.dumps([None if r is None else json.dumps(r) for r in results])


def echo_responder(request: TransportRequest) -> str:
    """Answer every call with ``{"stat": "ok", "result": <method>}``."""
    calls = decode_batch(request.body)
    return make_body(*[{"stat": "ok", "result": call.method} for call in calls])


class RecordingTransport(Transport):
    """Transport double that records requests and answers with a responder."""

    def __init__(
        self,
        responder: Optional[Callable[[TransportRequest], str]] = None,
    ) -> None:
        self.responder = responder or echo_responder
        self.requests: List[TransportRequest] = []
        self.closed = False

    @property
    def request_count(self) -> int:
        return len(self.requests)

    def batches(self) -> List[List[DecodedCall]]:
        """Every request body, decoded."""
        return [decode_batch(r.body) for r in self.requests]

    async def post(self, request: TransportRequest) -> TransportResponse:
        self.requests.append(request)
        return TransportResponse(body=self.responder(request))

    async def aclose(self) -> None:
        self.closed = True


class FailingTransport(Transport):
    """Transport double that raises the configured error."""

    def __init__(self, error: Exception) -> None:
        self.error = error
        self.requests: List[TransportRequest] = []

    async def post(self, request: TransportRequest) -> TransportResponse:
        self.requests.append(request)
        raise self.error


class GatedTransport(RecordingTransport):
    """Recording transport that holds every exchange until ``release()``."""

    def __init__(
        self,
        responder: Optional[Callable[[TransportRequest], str]] = None,
    ) -> None:
        super().__init__(responder)
        self.gate = asyncio.Event()

    def release(self) -> None:
        self.gate.set()

    async def post(self, request: TransportRequest) -> TransportResponse:
        self.requests.append(request)
        await self.gate.wait()
        return TransportResponse(body=self.responder(request))


class FakeClock:
    """Manually advanced clock."""

    def __init__(self, now: float = 1000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def transport() -> RecordingTransport:
    """Create a recording transport that echoes method names."""
    return RecordingTransport()


@pytest.fixture
def config() -> ApiConfig:
    """Sample client config."""
    return ApiConfig(
        endpoint="https://api.example.com/api/",
        query={"application_id": "user", "format": "JSON"},
        params={"track": "abc123"},
        client_id="client-1",
        secret="s3cr3t",
    )


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
async def api(config: ApiConfig, transport: RecordingTransport):
    """Create a client bound to the recording transport."""
    client = TaggedApi(config, transport)
    yield client
    await client.close()

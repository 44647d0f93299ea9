"""
Sends batches through the transport and routes results back to callers.
"""
import asyncio
import json
import logging
import time
from typing import Any, Callable, List, Optional, Sequence, Set

from .config import ApiConfig, build_endpoint_url
from .encoder import encode_batch
from .errors import ApiCallError, ResponseParseError, TransportError
from .events import EventHub
from .types import (
    SUCCESS_STAT,
    ApiResult,
    CallRecord,
    Transport,
    TransportRequest,
)

logger = logging.getLogger("tagged_api.dispatcher")


def parse_response_body(body: Any) -> List[Optional[Any]]:
    """
    Parse a batch response body.

    The body is a JSON array of strings, each of them a JSON-encoded
    result object. ``null`` entries are kept as ``None``.
    """
    try:
        entries = json.loads(body)
    except (TypeError, ValueError) as e:
        raise ResponseParseError(f"Response body is not valid JSON: {e}") from e

    if not isinstance(entries, list):
        raise ResponseParseError(
            f"Response body must be a JSON array, got {type(entries).__name__}"
        )

    results: List[Optional[Any]] = []
    for index, entry in enumerate(entries):
        if entry is None:
            results.append(None)
            continue
        if not isinstance(entry, str):
            raise ResponseParseError(
                f"Response entry {index} must be a JSON string, got {type(entry).__name__}"
            )
        try:
            results.append(json.loads(entry))
        except ValueError as e:
            raise ResponseParseError(f"Response entry {index} is not valid JSON: {e}") from e
    return results


class Dispatcher:
    """
    Performs batch exchanges.

    Transport failures reject every call of the batch with the same error.
    Otherwise result ``i`` settles call ``i``; missing results count as
    ``{"result": None, "stat": "ok"}``.
    """

    def __init__(
        self,
        config: ApiConfig,
        transport: Transport,
        events: Optional[EventHub] = None,
        clock: Optional[Callable[[], float]] = None,
    ) -> None:
        self._config = config
        self._transport = transport
        self._events = events if events is not None else EventHub()
        self._clock = clock or time.perf_counter
        self._url = build_endpoint_url(config.endpoint, config.query)
        self._tasks: Set[asyncio.Task] = set()

    @property
    def in_flight(self) -> int:
        """Number of exchanges still running."""
        return len(self._tasks)

    def build_request(self, batch: Sequence[CallRecord]) -> TransportRequest:
        """Serialize a batch into a transport request."""
        return TransportRequest(
            url=self._url,
            body=encode_batch(batch),
            headers=dict(self._config.headers),
            cookies=self._config.cookies,
            client_id=self._config.client_id,
            secret=self._config.secret,
            timeout_ms=self._config.timeout_ms,
            started_at=batch[0].enqueued_at if batch else None,
        )

    def dispatch(self, batch: List[CallRecord]) -> "asyncio.Task[None]":
        """Serialize a batch now and run its exchange in a task."""
        request = self.build_request(batch)
        task = asyncio.get_running_loop().create_task(self._exchange(batch, request))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def send(self, batch: List[CallRecord]) -> None:
        """Run the exchange for a batch and settle every call."""
        await self._exchange(batch, self.build_request(batch))

    async def drain(self) -> None:
        """Wait for every running exchange to finish."""
        while True:
            pending = [task for task in self._tasks if not task.done()]
            if not pending:
                return
            await asyncio.gather(*pending, return_exceptions=True)

    async def _exchange(self, batch: List[CallRecord], request: TransportRequest) -> None:
        logger.debug(f"Dispatcher: posting {len(batch)} call(s) to {request.url}")
        try:
            response = await self._transport.post(request)
            results = parse_response_body(response.body)
        except asyncio.CancelledError:
            self.reject_all(batch, TransportError("Batch exchange was cancelled"))
            raise
        except Exception as error:
            logger.warning(f"Dispatcher: batch of {len(batch)} call(s) failed: {error!r}")
            self.reject_all(batch, error)
            return

        if len(results) != len(batch):
            logger.debug(
                f"Dispatcher: got {len(results)} result(s) for {len(batch)} call(s)"
            )
        self.demultiplex(batch, results)

    def demultiplex(self, batch: Sequence[CallRecord], results: Sequence[Any]) -> None:
        """Settle each call with the result at its position."""
        for index, call in enumerate(batch):
            result = results[index] if index < len(results) else None
            # The API omits results it has nothing to say about
            if result is None:
                result = {"result": None, "stat": SUCCESS_STAT}

            stat = result.get("stat") if isinstance(result, dict) else None
            if isinstance(stat, str) and self._events.has(stat):
                self._events.emit(stat, call, result)

            self._settle(call, result, stat)

    def _settle(self, call: CallRecord, result: ApiResult, stat: Any) -> None:
        if call.future.done():
            logger.debug(f"Dispatcher: {call.method} already settled, skipping")
            return

        if stat and stat != SUCCESS_STAT:
            call.future.set_exception(ApiCallError(result, call.method))
        else:
            call.future.set_result(result)

        elapsed_ms = (self._clock() - call.enqueued_at) * 1000
        logger.debug(f"Dispatcher: {call.method} settled with stat={stat!r} after {elapsed_ms:.1f}ms")

    def reject_all(self, batch: Sequence[CallRecord], error: BaseException) -> None:
        """Reject every call of a batch with the same error."""
        for call in batch:
            if not call.future.done():
                call.future.set_exception(error)

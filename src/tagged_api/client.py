"""
Batching API client.
"""
import asyncio
import logging
import time
from typing import Any, Callable, Mapping, Optional

from .batch_queue import BatchQueue, validate_method
from .cache import ResponseCache, caller_handle, generate_signature
from .config import ApiConfig, resolve_config
from .dispatcher import Dispatcher
from .events import EventHub
from .transport import HttpxTransport
from .types import ApiResult, CacheDirective, EventCallback, Transport

logger = logging.getLogger("tagged_api.client")


class TaggedApi:
    """
    Client that batches API calls made during one pass of the event loop
    into a single POST, and hands each caller its own result.

    Each request served on behalf of a user should get its own client so
    that calls carry that user's cookies.

    Example:
        api = TaggedApi(ApiConfig(
            endpoint="https://example.com/api/",
            query={"application_id": "user", "format": "JSON"},
        ))

        profile, friends = await asyncio.gather(
            api.execute("user.get", {"id": 42}),
            api.execute("friends.list", {"id": 42}, cache=60),
        )
    """

    def __init__(
        self,
        config: ApiConfig,
        transport: Optional[Transport] = None,
        *,
        cache: Optional[ResponseCache] = None,
        events: Optional[EventHub] = None,
        clock: Optional[Callable[[], float]] = None,
    ) -> None:
        self._config = resolve_config(config)
        self._owns_transport = transport is None
        self._transport = transport if transport is not None else HttpxTransport()
        self._events = events if events is not None else EventHub()
        self._cache = cache if cache is not None else ResponseCache()
        self._dispatcher = Dispatcher(self._config, self._transport, self._events, clock)
        self._queue = BatchQueue(
            self._dispatcher.dispatch,
            base_params=self._config.params,
            max_queue_size=self._config.max_queue_size,
            batch_delay_seconds=self._config.batch_delay_seconds,
            clock=clock or time.perf_counter,
        )
        self._closed = False

    @property
    def config(self) -> ApiConfig:
        return self._config

    @property
    def cache(self) -> ResponseCache:
        return self._cache

    @property
    def events(self) -> EventHub:
        return self._events

    @property
    def pending(self) -> int:
        """Number of calls waiting for the next flush."""
        return self._queue.pending

    @property
    def in_flight(self) -> int:
        """Number of batch exchanges still running."""
        return self._dispatcher.in_flight

    def set_max_queue_size(self, max_queue_size: Optional[int]) -> None:
        """Flush as soon as this many calls are queued. ``None`` removes the limit."""
        self._queue.max_queue_size = max_queue_size

    def get_max_queue_size(self) -> Optional[int]:
        """Return the max queue size, or None if unlimited."""
        return self._queue.max_queue_size

    def execute(
        self,
        method: str,
        params: Optional[Mapping[str, Any]] = None,
        cache: CacheDirective = None,
    ) -> "asyncio.Future[ApiResult]":
        """
        Queue an API call and return a future for its result.

        The future resolves with the call's result object, or fails with
        ApiCallError when the result has a ``stat`` other than ``ok``, or
        with the transport's error when the whole batch failed.

        Args:
            method: API method name.
            params: Call parameters, merged over the configured params.
            cache: Seconds to reuse the outcome of identical calls, or
                ``True``/``"forever"`` to reuse it for the client's lifetime.
                Each caller gets its own future, so cancelling one leaves
                the shared outcome to the others.

        Raises:
            ApiValidationError: The method, a parameter or the cache
                directive is invalid. Nothing is queued.
        """
        if self._closed:
            raise RuntimeError("Client has been closed")
        validate_method(method)

        if not cache:
            return self._queue.enqueue(method, params)

        signature = generate_signature(method, params)
        outcome = self._cache.lookup_or_create(
            signature,
            cache,
            lambda: self._queue.enqueue(method, params),
        )
        return caller_handle(outcome)

    def on(self, stat: str, callback: EventCallback) -> Callable[[], bool]:
        """Call ``callback(call, result)`` for results carrying ``stat``, before they settle."""
        return self._events.on(stat, callback)

    def off(self, stat: str, callback: EventCallback) -> bool:
        """Remove a callback registered with on()."""
        return self._events.off(stat, callback)

    def flush(self) -> None:
        """Send the queued calls now instead of waiting for the scheduled flush."""
        self._queue.flush()

    async def drain(self) -> None:
        """Wait until every batch sent so far has settled."""
        await self._dispatcher.drain()

    def sweep_cache(self) -> int:
        """Remove expired cache entries. Returns how many were removed."""
        return self._cache.sweep()

    async def close(self) -> None:
        """Send queued calls, wait for them, and release resources."""
        if self._closed:
            return
        self._closed = True
        self._queue.flush()
        await self._dispatcher.drain()
        await self._cache.close()
        if self._owns_transport:
            await self._transport.aclose()
        logger.debug("TaggedApi.close: client closed")

    async def __aenter__(self) -> "TaggedApi":
        """Enter async context manager."""
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        """Exit async context manager."""
        await self.close()


def create_api(
    endpoint: str,
    transport: Optional[Transport] = None,
    **options: Any,
) -> TaggedApi:
    """
    Create a TaggedApi client.

    Args:
        endpoint: URL to post batches to.
        transport: Transport to use (defaults to a new HttpxTransport).
        **options: Any other ApiConfig field.
    """
    return TaggedApi(ApiConfig(endpoint=endpoint, **options), transport)

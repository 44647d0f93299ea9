"""
Per-call-signature response cache.

Identical calls made while an entry is live share one result handle, so
they collapse into a single call on the wire.
"""
import asyncio
import json
import logging
import math
import time
from typing import Any, Callable, Dict, Mapping, Optional

from .errors import ApiValidationError
from .types import ApiResult, CacheDirective, CacheEntry

logger = logging.getLogger("tagged_api.cache")

CACHE_FOREVER = "forever"
"""Cache directive for an entry that never expires."""


def _stringify_keys(value: Any) -> Any:
    if isinstance(value, Mapping):
        return {str(key): _stringify_keys(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_stringify_keys(item) for item in value]
    return value


def generate_signature(method: str, params: Optional[Mapping[str, Any]] = None) -> str:
    """Build the cache key for a call. Keys are compared as strings, as they are sent."""
    return f"{method}:{json.dumps(_stringify_keys(params), sort_keys=True, default=repr)}"


def caller_handle(outcome: "asyncio.Future[ApiResult]") -> "asyncio.Future[ApiResult]":
    """
    Return a future that settles like ``outcome``.

    Cancelling the returned future leaves ``outcome`` untouched, so one
    caller giving up does not cancel the result shared with the others.
    """
    handle = outcome.get_loop().create_future()

    def _relay(source: "asyncio.Future[ApiResult]") -> None:
        if handle.done():
            return
        if source.cancelled():
            handle.cancel()
        elif source.exception() is not None:
            handle.set_exception(source.exception())
        else:
            handle.set_result(source.result())

    if outcome.done():
        _relay(outcome)
    else:
        outcome.add_done_callback(_relay)
    return handle


def compute_expiry(now: float, ttl: CacheDirective) -> float:
    """Turn a cache directive into an expiry instant."""
    if ttl is True or ttl == CACHE_FOREVER:
        return math.inf
    if isinstance(ttl, bool) or not isinstance(ttl, (int, float)):
        raise ApiValidationError(
            f"Cache directive must be a number of seconds, True or {CACHE_FOREVER!r}, got {ttl!r}"
        )
    return now + ttl


class ResponseCache:
    """
    Maps call signatures to shared outcomes with an expiry.

    Entries are checked for staleness on lookup; ``sweep()`` is only a
    memory bound and may be called by the host whenever it likes, or run
    periodically with ``start_cleanup()``.

    Example:
        cache = ResponseCache()
        outcome = cache.lookup_or_create(
            generate_signature("user.get", {"id": 1}),
            60,
            lambda: api_queue.enqueue("user.get", {"id": 1}),
        )
    """

    def __init__(self, clock: Optional[Callable[[], float]] = None) -> None:
        self._clock = clock or time.monotonic
        self._entries: Dict[str, CacheEntry] = {}
        self._cleanup_task: Optional[asyncio.Task] = None
        self._closed = False

    def lookup(self, signature: str) -> Optional["asyncio.Future[ApiResult]"]:
        """Return the live shared outcome for a signature, dropping a stale one."""
        entry = self._entries.get(signature)
        if entry is None:
            return None

        if entry.outcome.cancelled():
            logger.debug(f"ResponseCache.lookup: dropping cancelled entry for {signature}")
        elif entry.expires_at > self._clock():
            logger.debug(f"ResponseCache.lookup: hit for {signature}")
            return entry.outcome
        else:
            logger.debug(f"ResponseCache.lookup: expired entry for {signature}")

        del self._entries[signature]
        return None

    def store(
        self,
        signature: str,
        outcome: "asyncio.Future[ApiResult]",
        ttl: CacheDirective,
    ) -> CacheEntry:
        """Store an outcome under a signature."""
        entry = CacheEntry(expires_at=compute_expiry(self._clock(), ttl), outcome=outcome)
        self._entries[signature] = entry
        return entry

    def lookup_or_create(
        self,
        signature: str,
        ttl: CacheDirective,
        factory: Callable[[], "asyncio.Future[ApiResult]"],
    ) -> "asyncio.Future[ApiResult]":
        """
        Return the live outcome for a signature, or create one with ``factory``.

        The directive is checked before ``factory`` runs so a bad directive
        never leaves a call queued behind it.
        """
        existing = self.lookup(signature)
        if existing is not None:
            return existing

        compute_expiry(self._clock(), ttl)
        outcome = factory()
        self.store(signature, outcome, ttl)
        return outcome

    def has(self, signature: str) -> bool:
        """Check if a live entry exists."""
        return self.lookup(signature) is not None

    def delete(self, signature: str) -> bool:
        """Delete an entry."""
        if signature in self._entries:
            del self._entries[signature]
            return True
        return False

    def clear(self) -> None:
        """Drop every entry."""
        self._entries.clear()

    def sweep(self) -> int:
        """Remove expired entries. Returns how many were removed."""
        now = self._clock()
        expired = [key for key, entry in self._entries.items() if entry.expires_at <= now]
        for key in expired:
            del self._entries[key]
        if expired:
            logger.debug(f"ResponseCache.sweep: removed {len(expired)} expired entries")
        return len(expired)

    def start_cleanup(self, interval_seconds: float = 60.0) -> None:
        """Run sweep() periodically in a background task on the running loop."""
        if self._cleanup_task is None and not self._closed:
            self._cleanup_task = asyncio.get_running_loop().create_task(
                self._cleanup_loop(interval_seconds)
            )

    async def _cleanup_loop(self, interval_seconds: float) -> None:
        """Background cleanup loop."""
        while not self._closed:
            try:
                await asyncio.sleep(interval_seconds)
                self.sweep()
            except asyncio.CancelledError:
                break

    async def close(self) -> None:
        """Stop the cleanup task and drop every entry."""
        self._closed = True
        if self._cleanup_task is not None:
            self._cleanup_task.cancel()
            try:
                await self._cleanup_task
            except asyncio.CancelledError:
                pass
            self._cleanup_task = None
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)

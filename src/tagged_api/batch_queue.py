"""
Queue of calls waiting to be sent in the next batch.
"""
import asyncio
import logging
import time
from typing import Any, Callable, List, Mapping, Optional

from .config import merge_params
from .encoder import classify_params
from .errors import ApiValidationError
from .types import ApiResult, CallRecord

logger = logging.getLogger("tagged_api.batch_queue")


def validate_method(method: Any) -> str:
    """Check that a method name is a non-empty string."""
    if not method or not isinstance(method, str):
        raise ApiValidationError("Method is required to execute API calls")
    return method


class BatchQueue:
    """
    Collects calls made during one pass of the event loop.

    The first enqueue schedules a flush for the next loop iteration (or
    after ``batch_delay_seconds``); calls enqueued before it runs join the
    same batch. Reaching ``max_queue_size`` flushes immediately.

    ``on_flush`` receives the batch after the queue has been reset, so
    calls enqueued while it is in flight start a new batch.
    """

    def __init__(
        self,
        on_flush: Callable[[List[CallRecord]], Any],
        base_params: Optional[Mapping[str, Any]] = None,
        max_queue_size: Optional[int] = None,
        batch_delay_seconds: float = 0.0,
        clock: Optional[Callable[[], float]] = None,
    ) -> None:
        self._on_flush = on_flush
        self._base_params = base_params or {}
        self._max_queue_size = max_queue_size
        self._batch_delay = batch_delay_seconds
        self._clock = clock or time.perf_counter
        self._queue: List[CallRecord] = []
        self._flush_handle: Optional[asyncio.Handle] = None

    @property
    def max_queue_size(self) -> Optional[int]:
        return self._max_queue_size

    @max_queue_size.setter
    def max_queue_size(self, value: Optional[int]) -> None:
        if value is not None and (isinstance(value, bool) or not isinstance(value, int) or value < 1):
            raise ValueError(f"max_queue_size must be a positive integer or None, got {value!r}")
        self._max_queue_size = value

    @property
    def pending(self) -> int:
        """Number of calls waiting for the next flush."""
        return len(self._queue)

    @property
    def is_scheduled(self) -> bool:
        """Whether a flush is scheduled."""
        return self._flush_handle is not None

    def enqueue(
        self,
        method: str,
        params: Optional[Mapping[str, Any]] = None,
    ) -> "asyncio.Future[ApiResult]":
        """
        Queue a call and return its result handle.

        Raises ApiValidationError (or ParamEncodingError) before anything
        is queued when the method or a parameter is invalid.
        """
        validate_method(method)
        merged = merge_params(self._base_params, params)
        fields = classify_params(merged)

        loop = asyncio.get_running_loop()
        record = CallRecord(
            method=method,
            params=merged,
            future=loop.create_future(),
            enqueued_at=self._clock(),
            fields=fields,
        )
        self._queue.append(record)
        logger.debug(f"BatchQueue.enqueue: {method} queued at position {len(self._queue)}")

        if self._max_queue_size and len(self._queue) >= self._max_queue_size:
            logger.debug(f"BatchQueue.enqueue: max queue size {self._max_queue_size} reached, flushing")
            self.flush()
        elif self._flush_handle is None:
            if self._batch_delay > 0:
                self._flush_handle = loop.call_later(self._batch_delay, self.flush)
            else:
                self._flush_handle = loop.call_soon(self.flush)

        return record.future

    def flush(self) -> List[CallRecord]:
        """Hand the queued calls to ``on_flush`` and start a new queue."""
        batch = self._queue
        self.reset()
        if batch:
            logger.debug(f"BatchQueue.flush: flushing {len(batch)} call(s)")
            self._on_flush(batch)
        return batch

    def reset(self) -> None:
        """Cancel the scheduled flush and empty the queue without settling anything."""
        if self._flush_handle is not None:
            self._flush_handle.cancel()
            self._flush_handle = None
        self._queue = []

    def __len__(self) -> int:
        return len(self._queue)

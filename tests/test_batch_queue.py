"""
Tests for batch_queue.py
Logic testing: flush scheduling, size-triggered flush, validation, reset
"""
import asyncio

import pytest

from tagged_api.batch_queue import BatchQueue, validate_method
from tagged_api.errors import ApiValidationError, ParamEncodingError


class FlushRecorder:
    def __init__(self):
        self.batches = []

    def __call__(self, batch):
        self.batches.append(batch)


@pytest.fixture
def flushed() -> FlushRecorder:
    return FlushRecorder()


@pytest.fixture
def queue(flushed) -> BatchQueue:
    return BatchQueue(flushed, base_params={"track": "t1"})


class TestValidateMethod:
    """Tests for validate_method()."""

    @pytest.mark.parametrize("method", ["", None, 42, ["user.get"]])
    def test_invalid(self, method):
        with pytest.raises(ApiValidationError, match="Method is required"):
            validate_method(method)

    def test_valid(self):
        assert validate_method("user.get") == "user.get"


class TestBatchQueue:
    """Tests for BatchQueue."""

    async def test_enqueue_returns_pending_future(self, queue):
        future = queue.enqueue("user.get", {"id": 1})

        assert isinstance(future, asyncio.Future)
        assert not future.done()
        assert queue.pending == 1
        queue.reset()

    async def test_enqueue_merges_base_params(self, queue, flushed):
        queue.enqueue("user.get", {"id": 1})
        queue.flush()

        record = flushed.batches[0][0]
        assert record.params == {"track": "t1", "id": 1}
        assert [key for key, _ in record.fields] == ["track", "id"]

    async def test_call_params_override_base(self, queue, flushed):
        queue.enqueue("user.get", {"track": "mine"})
        queue.flush()

        assert flushed.batches[0][0].params["track"] == "mine"

    async def test_same_tick_calls_share_one_flush(self, queue, flushed):
        queue.enqueue("a")
        queue.enqueue("b")
        queue.enqueue("c")

        assert flushed.batches == []
        await asyncio.sleep(0)

        assert len(flushed.batches) == 1
        assert [r.method for r in flushed.batches[0]] == ["a", "b", "c"]
        assert queue.pending == 0

    async def test_only_one_flush_scheduled(self, queue, flushed):
        queue.enqueue("a")
        handle = queue._flush_handle
        queue.enqueue("b")

        assert queue._flush_handle is handle
        assert queue.is_scheduled is True

        await asyncio.sleep(0)
        await asyncio.sleep(0)

        assert len(flushed.batches) == 1
        assert queue.is_scheduled is False

    async def test_calls_after_flush_start_new_batch(self, queue, flushed):
        queue.enqueue("a")
        await asyncio.sleep(0)
        queue.enqueue("b")
        await asyncio.sleep(0)

        assert [[r.method for r in batch] for batch in flushed.batches] == [["a"], ["b"]]

    async def test_max_queue_size_flushes_synchronously(self, flushed):
        queue = BatchQueue(flushed, max_queue_size=2)

        queue.enqueue("a")
        assert flushed.batches == []

        queue.enqueue("b")

        assert len(flushed.batches) == 1
        assert queue.pending == 0
        assert queue.is_scheduled is False

    async def test_max_queue_size_remainder_flushes_next_tick(self, flushed):
        queue = BatchQueue(flushed, max_queue_size=2)

        for method in ["a", "b", "c"]:
            queue.enqueue(method)

        assert len(flushed.batches) == 1
        await asyncio.sleep(0)

        assert [[r.method for r in batch] for batch in flushed.batches] == [["a", "b"], ["c"]]

    async def test_max_queue_size_setter(self, queue):
        queue.max_queue_size = 5
        assert queue.max_queue_size == 5

        queue.max_queue_size = None
        assert queue.max_queue_size is None

        with pytest.raises(ValueError):
            queue.max_queue_size = 0

    async def test_batch_delay_uses_timer(self, flushed):
        queue = BatchQueue(flushed, batch_delay_seconds=0.02)

        queue.enqueue("a")
        await asyncio.sleep(0)
        assert flushed.batches == []

        await asyncio.sleep(0.05)
        assert len(flushed.batches) == 1

    async def test_invalid_method_never_joins(self, queue):
        with pytest.raises(ApiValidationError):
            queue.enqueue("")

        assert queue.pending == 0
        assert queue.is_scheduled is False

    async def test_unencodable_param_never_joins(self, queue):
        with pytest.raises(ParamEncodingError):
            queue.enqueue("user.get", {"callback": lambda: None})

        assert queue.pending == 0

    async def test_reset_cancels_flush_without_settling(self, queue, flushed):
        future = queue.enqueue("a")

        queue.reset()
        await asyncio.sleep(0)

        assert flushed.batches == []
        assert queue.pending == 0
        assert not future.done()

    async def test_flush_empty_queue_is_noop(self, queue, flushed):
        assert queue.flush() == []
        assert flushed.batches == []

    async def test_enqueued_at_uses_clock(self, flushed):
        queue = BatchQueue(flushed, clock=lambda: 12.5)

        queue.enqueue("a")
        batch = queue.flush()

        assert batch[0].enqueued_at == 12.5

    def test_enqueue_requires_running_loop(self, queue):
        with pytest.raises(RuntimeError):
            queue.enqueue("a")

"""
Tests for the priority request dispatcher.
"""

import asyncio
import time
from unittest.mock import Mock

import pytest

from prompt_battle_mcp.core.dispatcher import MAX_BACKOFF_EXPONENT, RequestDispatcher
from prompt_battle_mcp.core.errors import RateLimitedError


def recorder(log, name, result=None):
    async def operation():
        log.append((name, time.monotonic()))
        return result if result is not None else name

    return operation


class TestPacing:
    """Dispatches never land closer than min_interval"""

    @pytest.mark.asyncio
    async def test_min_interval_between_dispatches(self):
        dispatcher = RequestDispatcher(min_interval=0.05)
        log = []

        await asyncio.gather(*(dispatcher.enqueue(recorder(log, i)) for i in range(3)))

        times = [t for _, t in log]
        gaps = [b - a for a, b in zip(times, times[1:])]
        assert len(gaps) == 2
        assert all(gap >= 0.049 for gap in gaps)

    @pytest.mark.asyncio
    async def test_result_is_returned(self):
        dispatcher = RequestDispatcher(min_interval=0.0)

        async def operation():
            return {"text": "ok"}

        assert await dispatcher.enqueue(operation) == {"text": "ok"}
        assert dispatcher.total_dispatched == 1


class TestOrdering:
    """Priority first, then arrival order"""

    @pytest.mark.asyncio
    async def test_higher_priority_first(self):
        dispatcher = RequestDispatcher(min_interval=0.0)
        log = []

        futures = [
            dispatcher.enqueue(recorder(log, "low"), priority=-10),
            dispatcher.enqueue(recorder(log, "high"), priority=5),
            dispatcher.enqueue(recorder(log, "normal"), priority=0),
        ]
        await asyncio.gather(*futures)

        assert [name for name, _ in log] == ["high", "normal", "low"]

    @pytest.mark.asyncio
    async def test_fifo_within_priority(self):
        dispatcher = RequestDispatcher(min_interval=0.0)
        log = []

        futures = [dispatcher.enqueue(recorder(log, i), priority=1) for i in range(5)]
        await asyncio.gather(*futures)

        assert [name for name, _ in log] == [0, 1, 2, 3, 4]


class TestRateLimiting:
    """Rate-limited items are requeued at the front and the queue backs off"""

    @pytest.mark.asyncio
    async def test_rate_limited_item_is_retried_first(self):
        dispatcher = RequestDispatcher(min_interval=0.01, max_backoff=0.05)
        log = []
        attempts = {"a": 0}

        async def flaky():
            attempts["a"] += 1
            log.append(("a", time.monotonic()))
            if attempts["a"] == 1:
                raise RateLimitedError("429 Too Many Requests")
            return "a"

        first = dispatcher.enqueue(flaky)
        second = dispatcher.enqueue(recorder(log, "b"))

        assert await first == "a"
        assert await second == "b"
        assert [name for name, _ in log] == ["a", "a", "b"]
        # Backoff is min_interval * 2**1
        assert log[1][1] - log[0][1] >= 0.019
        assert dispatcher.consecutive_errors == 0

    @pytest.mark.asyncio
    async def test_untyped_429_counts_as_rate_limit(self):
        dispatcher = RequestDispatcher(min_interval=0.0)
        calls = []

        async def operation():
            calls.append(1)
            if len(calls) == 1:
                raise Exception("HTTP 429: slow down")
            return "done"

        assert await dispatcher.enqueue(operation) == "done"
        assert len(calls) == 2

    @pytest.mark.asyncio
    async def test_backoff_is_capped(self):
        dispatcher = RequestDispatcher(min_interval=1.0, max_backoff=1.5)
        dispatcher.consecutive_errors = 5

        item_future = asyncio.get_running_loop().create_future()
        item_future.cancel()

        class Item:
            future = item_future
            requeues = 0
            sequence = 0
            max_requeues = None

        dispatcher.max_rate_limit_requeues = 0
        dispatcher._handle_failure(Item(), RateLimitedError("again"))

        assert dispatcher.consecutive_errors == 6
        assert dispatcher.get_queue_status()["backoff_remaining"] <= 1.5

    @pytest.mark.asyncio
    async def test_requeue_cap_surfaces_rate_limit(self):
        dispatcher = RequestDispatcher(min_interval=0.0, max_rate_limit_requeues=1)
        calls = []

        async def always_limited():
            calls.append(1)
            raise RateLimitedError("throttled")

        with pytest.raises(RateLimitedError):
            await dispatcher.enqueue(always_limited)
        assert len(calls) == 2

    @pytest.mark.asyncio
    async def test_per_item_requeue_cap(self):
        dispatcher = RequestDispatcher(min_interval=0.0)
        calls = []

        async def always_limited():
            calls.append(1)
            raise RateLimitedError("throttled")

        with pytest.raises(RateLimitedError, match="after 2 requeues"):
            await dispatcher.enqueue(always_limited, priority=-10, max_requeues=2)
        assert len(calls) == 3
        assert dispatcher.max_rate_limit_requeues is None

    @pytest.mark.asyncio
    async def test_long_throttling_streak_still_retries(self):
        dispatcher = RequestDispatcher(min_interval=0.001, max_backoff=0.02)
        dispatcher.consecutive_errors = 5000
        calls = []

        async def limited_once():
            calls.append(1)
            if len(calls) == 1:
                raise RateLimitedError("ThrottlingException")
            return "ok"

        assert await asyncio.wait_for(dispatcher.enqueue(limited_once), 1.0) == "ok"
        assert len(calls) == 2
        assert dispatcher.consecutive_errors == 0

    def test_backoff_exponent_is_bounded(self):
        dispatcher = RequestDispatcher(min_interval=1.0, max_backoff=float("inf"))
        dispatcher.consecutive_errors = 10_000

        assert dispatcher.backoff_delay() == 2.0**MAX_BACKOFF_EXPONENT


class TestFailures:
    """Other errors go straight back to the caller"""

    @pytest.mark.asyncio
    async def test_non_rate_limit_error_propagates(self):
        dispatcher = RequestDispatcher(min_interval=0.0)
        calls = []

        async def broken():
            calls.append(1)
            raise ValueError("bad request")

        with pytest.raises(ValueError, match="bad request"):
            await dispatcher.enqueue(broken)
        assert len(calls) == 1
        assert dispatcher.consecutive_errors == 0

    @pytest.mark.asyncio
    async def test_queue_keeps_draining_after_failure(self):
        dispatcher = RequestDispatcher(min_interval=0.0)
        log = []

        async def broken():
            raise ValueError("bad request")

        failing = dispatcher.enqueue(broken)
        healthy = dispatcher.enqueue(recorder(log, "next"))

        results = await asyncio.gather(failing, healthy, return_exceptions=True)
        assert isinstance(results[0], ValueError)
        assert results[1] == "next"

    @pytest.mark.asyncio
    async def test_worker_survives_bookkeeping_error(self, monkeypatch):
        dispatcher = RequestDispatcher(min_interval=0.0)
        monkeypatch.setattr(
            dispatcher, "_handle_failure", Mock(side_effect=RuntimeError("bookkeeping"))
        )
        log = []

        async def limited():
            raise RateLimitedError("throttled")

        with pytest.raises(RateLimitedError):
            await asyncio.wait_for(dispatcher.enqueue(limited), 1.0)
        assert await asyncio.wait_for(dispatcher.enqueue(recorder(log, "next")), 1.0) == "next"

    @pytest.mark.asyncio
    async def test_abandoned_request_is_skipped(self):
        dispatcher = RequestDispatcher(min_interval=0.0)
        log = []

        kept = dispatcher.enqueue(recorder(log, "kept"))
        abandoned = dispatcher.enqueue(recorder(log, "abandoned"))
        abandoned.cancel()

        await kept
        await asyncio.sleep(0.01)

        assert [name for name, _ in log] == ["kept"]
        assert dispatcher.total_dispatched == 1


class TestQueueStatus:
    """Monitoring snapshot"""

    @pytest.mark.asyncio
    async def test_status_fields(self):
        dispatcher = RequestDispatcher(min_interval=0.5)
        status = dispatcher.get_queue_status()

        assert status == {
            "queue_length": 0,
            "is_processing": False,
            "backoff_remaining": 0.0,
            "consecutive_errors": 0,
            "total_dispatched": 0,
            "min_interval": 0.5,
        }

#!/usr/bin/env python3
# MIT License
#
# Copyright (c) 2025 Recursive Companion Contributors
# Based on work by Hank Besser (https://github.com/hankbesser/recursive-companion)
#
# Permission is hereby granted, free of charge, to any person obtaining a copy
# of this software and associated documentation files (the "Software"), to deal
# in the Software without restriction, including without limitation the rights
# to use, copy, modify, merge, publish, distribute, sublicense, and/or sell
# copies of the Software, and to permit persons to whom the Software is
# furnished to do so, subject to the following conditions:
#
# The above copyright notice and this permission notice shall be included in all
# copies or substantial portions of the Software.
#
# THE SOFTWARE IS PROVIDED "AS IS", WITHOUT WARRANTY OF ANY KIND, EXPRESS OR
# IMPLIED, INCLUDING BUT NOT LIMITED TO THE WARRANTIES OF MERCHANTABILITY,
# FITNESS FOR A PARTICULAR PURPOSE AND NONINFRINGEMENT. IN NO EVENT SHALL THE
# AUTHORS OR COPYRIGHT HOLDERS BE LIABLE FOR ANY CLAIM, DAMAGES OR OTHER
# LIABILITY, WHETHER IN AN ACTION OF CONTRACT, TORT OR OTHERWISE, ARISING FROM,
# OUT OF OR IN CONNECTION WITH THE SOFTWARE OR THE USE OR OTHER DEALINGS IN THE
# SOFTWARE.

"""
Priority request dispatcher for the shared completion endpoint.

A single consumer task drains a priority queue, pacing dispatches at a
minimum interval and backing off globally when the endpoint reports
rate limiting. Rate-limited items are re-queued at the front of their
priority class, so callers only ever observe added latency.
"""

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from heapq import heappop, heappush
from typing import Any, TypeVar

from .errors import RateLimitedError, is_rate_limit_error

logger = logging.getLogger(__name__)

T = TypeVar("T")

# 2**32 * min_interval is far past any sane max_backoff
MAX_BACKOFF_EXPONENT = 32


@dataclass(order=True)
class QueueItem:
    """Wrapper for heap queue ordering."""

    sort_priority: int  # Negated priority, heapq is a min-heap
    sequence: int  # Tie-breaker for FIFO within same priority
    operation: Callable[[], Awaitable[Any]] = field(compare=False)
    future: asyncio.Future = field(compare=False)
    priority: int = field(compare=False, default=0)
    enqueued_at: float = field(compare=False, default_factory=time.monotonic)
    requeues: int = field(compare=False, default=0)
    max_requeues: int | None = field(compare=False, default=None)


class RequestDispatcher:
    """
    Process-wide pacing point for one endpoint.

    Usage:
        dispatcher = RequestDispatcher(min_interval=1.0)
        result = await dispatcher.enqueue(lambda: endpoint.complete(...), priority=5)
    """

    def __init__(
        self,
        min_interval: float = 1.0,
        max_backoff: float = 60.0,
        max_rate_limit_requeues: int | None = None,
    ):
        """
        Initialize dispatcher.

        Args:
            min_interval: Minimum seconds between two dispatches
            max_backoff: Upper bound for rate-limit backoff in seconds
            max_rate_limit_requeues: Requeue cap per item, None for unbounded
        """
        self.min_interval = min_interval
        self.max_backoff = max_backoff
        self.max_rate_limit_requeues = max_rate_limit_requeues

        self._queue: list[QueueItem] = []
        self._sequence = 0
        self._front_sequence = 0
        self._worker: asyncio.Task | None = None

        self.last_dispatch_time: float | None = None
        self.backoff_until = 0.0
        self.consecutive_errors = 0
        self.total_dispatched = 0

    def enqueue(
        self,
        operation: Callable[[], Awaitable[T]],
        priority: int = 0,
        max_requeues: int | None = None,
    ) -> "asyncio.Future[T]":
        """
        Queue an operation for dispatch.

        Args:
            operation: Zero-argument coroutine function performing the call
            priority: Higher values are dispatched first
            max_requeues: Rate-limit requeue cap for this item, overriding
                max_rate_limit_requeues when given

        Returns:
            Future resolved with the operation's result or non-rate-limit error
        """
        loop = asyncio.get_running_loop()
        future: asyncio.Future = loop.create_future()
        self._sequence += 1
        heappush(
            self._queue,
            QueueItem(
                sort_priority=-priority,
                sequence=self._sequence,
                operation=operation,
                future=future,
                priority=priority,
                max_requeues=max_requeues,
            ),
        )
        logger.debug(
            f"Enqueued request (priority={priority}, queue_length={len(self._queue)})"
        )
        self._ensure_worker()
        return future

    def _ensure_worker(self) -> None:
        if self._worker is None or self._worker.done():
            self._worker = asyncio.create_task(self._process_queue())

    def _requeue_front(self, item: QueueItem) -> None:
        """Put a rate-limited item back ahead of everything in its priority class."""
        self._front_sequence -= 1
        item.sequence = self._front_sequence
        item.requeues += 1
        heappush(self._queue, item)

    def _next_allowed_time(self) -> float:
        next_time = self.backoff_until
        if self.last_dispatch_time is not None:
            next_time = max(next_time, self.last_dispatch_time + self.min_interval)
        return next_time

    async def _wait_for_slot(self) -> None:
        # Loop so an early wakeup never lets two dispatches land inside min_interval
        while True:
            remaining = self._next_allowed_time() - time.monotonic()
            if remaining <= 0:
                return
            if remaining > self.min_interval:
                logger.info(f"Dispatcher waiting {remaining:.2f}s before next request")
            await asyncio.sleep(remaining)

    def _pop_live_item(self) -> QueueItem | None:
        while self._queue:
            item = heappop(self._queue)
            if not item.future.done():
                return item
            logger.debug("Skipping request abandoned by its caller")
        return None

    async def _process_queue(self) -> None:
        while self._queue:
            await self._wait_for_slot()

            item = self._pop_live_item()
            if item is None:
                break

            self.last_dispatch_time = time.monotonic()
            self.total_dispatched += 1
            try:
                result = await item.operation()
            except asyncio.CancelledError:
                if not item.future.done():
                    item.future.cancel()
                raise
            except Exception as e:
                try:
                    self._handle_failure(item, e)
                except Exception:
                    # Keep the worker alive and resolve the caller
                    logger.exception("Dispatcher failed while handling a request failure")
                    if not item.future.done():
                        item.future.set_exception(e)
                continue

            self.consecutive_errors = 0
            if not item.future.done():
                item.future.set_result(result)

    def _handle_failure(self, item: QueueItem, error: Exception) -> None:
        if not is_rate_limit_error(error):
            if not item.future.done():
                item.future.set_exception(error)
            return

        self.consecutive_errors += 1
        backoff = self.backoff_delay()
        self.backoff_until = time.monotonic() + backoff
        logger.info(
            f"Rate limit detected, backing off for {backoff:.2f}s "
            f"(consecutive errors: {self.consecutive_errors})"
        )

        cap = item.max_requeues if item.max_requeues is not None else self.max_rate_limit_requeues
        if cap is not None and item.requeues >= cap:
            if not item.future.done():
                item.future.set_exception(
                    RateLimitedError(f"Rate limited after {item.requeues} requeues: {error}")
                )
            return

        self._requeue_front(item)

    def backoff_delay(self) -> float:
        """Seconds to hold dispatch after the current rate-limit streak."""
        exponent = min(self.consecutive_errors, MAX_BACKOFF_EXPONENT)
        return min(self.min_interval * (2**exponent), self.max_backoff)

    def get_queue_status(self) -> dict[str, Any]:
        """Get current queue statistics for monitoring."""
        return {
            "queue_length": len(self._queue),
            "is_processing": self._worker is not None and not self._worker.done(),
            "backoff_remaining": max(0.0, self.backoff_until - time.monotonic()),
            "consecutive_errors": self.consecutive_errors,
            "total_dispatched": self.total_dispatched,
            "min_interval": self.min_interval,
        }

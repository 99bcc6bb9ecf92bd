"""
Circuit breaker implementation for handling completion endpoint failures gracefully.
"""

import asyncio
import logging
import time
from collections import deque
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, TypeVar

from .errors import CircuitBreakerOpenError

logger = logging.getLogger(__name__)

T = TypeVar("T")


class CircuitState(Enum):
    """Circuit breaker states."""

    CLOSED = "closed"  # Normal operation
    OPEN = "open"  # Blocking calls due to failures
    HALF_OPEN = "half_open"  # Testing if service recovered


@dataclass
class CircuitBreakerConfig:
    """Configuration for circuit breaker behavior."""

    failure_threshold: int = 5  # Consecutive failures before opening
    success_threshold: int = 3  # Successes in half-open before closing
    recovery_timeout: float = 30.0  # Seconds before trying half-open
    monitoring_window: float = 300.0  # Seconds of samples kept for metrics

    # Exceptions that should bypass the circuit breaker
    excluded_exceptions: tuple = (
        KeyboardInterrupt,
        SystemExit,
        asyncio.CancelledError,
    )


@dataclass
class RequestSample:
    """One call outcome inside the monitoring window."""

    timestamp: float
    success: bool


@dataclass
class CircuitBreakerStats:
    """Statistics for monitoring circuit breaker behavior."""

    total_calls: int = 0
    successful_calls: int = 0
    failed_calls: int = 0
    rejected_calls: int = 0
    circuit_opens: int = 0
    last_failure_time: float | None = None
    last_success_time: float | None = None
    consecutive_failures: int = 0
    half_open_successes: int = 0
    state_changes: list = field(default_factory=list)


class CircuitBreaker:
    """
    Circuit breaker for protecting against cascading failures.

    The circuit breaker has three states:
    - CLOSED: Normal operation, requests pass through
    - OPEN: Too many failures, requests are blocked
    - HALF_OPEN: Testing recovery, trial requests allowed

    Samples in the monitoring window feed get_health_metrics() only;
    state transitions depend on consecutive counters.
    """

    def __init__(self, name: str, config: CircuitBreakerConfig | None = None):
        """
        Initialize circuit breaker.

        Args:
            name: Identifier for this circuit breaker
            config: Configuration settings
        """
        self.name = name
        self.config = config or CircuitBreakerConfig()
        self.state = CircuitState.CLOSED
        self.stats = CircuitBreakerStats()
        self._samples: deque[RequestSample] = deque()
        self._state_lock = asyncio.Lock()
        self._last_state_change = time.time()

    def _can_attempt_reset(self) -> bool:
        """Check if enough time has passed to attempt reset."""
        if self.stats.last_failure_time is None:
            return True

        time_since_failure = time.time() - self.stats.last_failure_time
        return time_since_failure > self.config.recovery_timeout

    def _time_until_recovery(self) -> float:
        if self.state != CircuitState.OPEN or self.stats.last_failure_time is None:
            return 0.0
        elapsed = time.time() - self.stats.last_failure_time
        return max(0.0, self.config.recovery_timeout - elapsed)

    async def _change_state(self, new_state: CircuitState):
        """Change circuit state and log the transition."""
        async with self._state_lock:
            old_state = self.state
            if old_state == new_state:
                return

            self.state = new_state
            self._last_state_change = time.time()
            self.stats.state_changes.append(
                {
                    "from": old_state.value,
                    "to": new_state.value,
                    "timestamp": self._last_state_change,
                    "consecutive_failures": self.stats.consecutive_failures,
                }
            )

            if new_state == CircuitState.OPEN:
                self.stats.circuit_opens += 1
            if new_state == CircuitState.HALF_OPEN:
                self.stats.half_open_successes = 0

            logger.warning(
                f"Circuit breaker '{self.name}' state change: "
                f"{old_state.value} -> {new_state.value} "
                f"(failures: {self.stats.consecutive_failures})"
            )

    async def call(self, func: Callable[..., T], *args, **kwargs) -> T:
        """
        Execute coroutine function through circuit breaker.

        Args:
            func: Coroutine function to execute
            *args: Positional arguments for func
            **kwargs: Keyword arguments for func

        Returns:
            Result from func

        Raises:
            CircuitBreakerOpenError: If circuit is open and recovery timeout has not elapsed
            Original exception: If func fails
        """
        if self.state == CircuitState.OPEN:
            if self._can_attempt_reset():
                await self._change_state(CircuitState.HALF_OPEN)
            else:
                self.stats.rejected_calls += 1
                raise CircuitBreakerOpenError(
                    f"Circuit breaker '{self.name}' is OPEN. "
                    f"Service unavailable for {self._time_until_recovery():.1f}s"
                )

        try:
            result = await func(*args, **kwargs)
        except self.config.excluded_exceptions:
            # Don't track excluded exceptions
            raise
        except Exception:
            await self._record_failure()
            raise

        await self._record_success()
        return result

    def _record_sample(self, success: bool) -> None:
        now = time.time()
        self._samples.append(RequestSample(timestamp=now, success=success))
        self._prune_samples(now)

    def _prune_samples(self, now: float) -> None:
        cutoff = now - self.config.monitoring_window
        while self._samples and self._samples[0].timestamp < cutoff:
            self._samples.popleft()

    async def _record_success(self):
        """Record successful call and update state if needed."""
        self.stats.total_calls += 1
        self.stats.successful_calls += 1
        self.stats.consecutive_failures = 0
        self.stats.last_success_time = time.time()
        self._record_sample(True)

        if self.state == CircuitState.HALF_OPEN:
            self.stats.half_open_successes += 1
            if self.stats.half_open_successes >= self.config.success_threshold:
                await self._change_state(CircuitState.CLOSED)

    async def _record_failure(self):
        """Record failed call and update state if needed."""
        self.stats.total_calls += 1
        self.stats.failed_calls += 1
        self.stats.consecutive_failures += 1
        self.stats.last_failure_time = time.time()
        self._record_sample(False)

        if self.state == CircuitState.HALF_OPEN:
            # Failed during recovery test, reopen circuit
            await self._change_state(CircuitState.OPEN)
        elif self.stats.consecutive_failures >= self.config.failure_threshold:
            await self._change_state(CircuitState.OPEN)

    def get_health_metrics(self) -> dict[str, Any]:
        """Observability snapshot; never consulted for state decisions."""
        self._prune_samples(time.time())
        recent = list(self._samples)
        success_rate = (
            sum(1 for sample in recent if sample.success) / len(recent) if recent else 1.0
        )
        return {
            "state": self.state.value,
            "failures": self.stats.consecutive_failures,
            "success_rate": success_rate,
            "recent_requests": len(recent),
            "time_until_recovery": self._time_until_recovery(),
        }

    def get_stats(self) -> dict[str, Any]:
        """Get current statistics and state."""
        return {
            "name": self.name,
            "state": self.state.value,
            "metrics": self.get_health_metrics(),
            "stats": {
                "total_calls": self.stats.total_calls,
                "successful_calls": self.stats.successful_calls,
                "failed_calls": self.stats.failed_calls,
                "rejected_calls": self.stats.rejected_calls,
                "circuit_opens": self.stats.circuit_opens,
                "time_since_last_failure": (
                    time.time() - self.stats.last_failure_time
                    if self.stats.last_failure_time
                    else None
                ),
            },
            "config": {
                "failure_threshold": self.config.failure_threshold,
                "success_threshold": self.config.success_threshold,
                "recovery_timeout": self.config.recovery_timeout,
                "monitoring_window": self.config.monitoring_window,
            },
            "state_changes": list(self.stats.state_changes[-10:]),
        }

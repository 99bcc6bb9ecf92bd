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
Model health probes.
Sends a tiny prompt through the resilient client at low priority so probes
queue behind real battle traffic.
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from .errors import (
    CircuitBreakerOpenError,
    CompletionError,
    EndpointTimeoutError,
    InvalidResponseError,
    RateLimitedError,
    classify_error,
)
from .resilient import ResilientCompletionClient

logger = logging.getLogger(__name__)

HEALTHY = "healthy"
DEGRADED = "degraded"
UNAVAILABLE = "unavailable"


@dataclass
class ModelHealthStatus:
    """Result of probing one model"""

    model_id: str
    status: str
    response_time_ms: float
    recommendation: str | None = None
    last_checked: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    last_error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "model_id": self.model_id,
            "status": self.status,
            "response_time_ms": round(self.response_time_ms),
            "recommendation": self.recommendation,
            "last_checked": self.last_checked.isoformat(),
            "last_error": self.last_error,
        }


@dataclass
class HealthCheckResult:
    """Aggregate health across several models"""

    overall_health: str
    healthy_models: list[str] = field(default_factory=list)
    degraded_models: list[str] = field(default_factory=list)
    unavailable_models: list[str] = field(default_factory=list)
    recommendations: list[str] = field(default_factory=list)
    statuses: list[ModelHealthStatus] = field(default_factory=list)


class ModelHealthMonitor:
    """Probes models through the shared resilient client and caches results"""

    def __init__(
        self,
        client: ResilientCompletionClient,
        cache_duration: float = 300.0,
        probe_prompt: str = "Hi",
        probe_priority: int = -10,
        slow_threshold_ms: float = 5000.0,
        probe_max_tokens: int = 10,
        probe_temperature: float = 0.1,
        probe_max_requeues: int | None = 2,
    ):
        self.client = client
        self.cache_duration = cache_duration
        self.probe_prompt = probe_prompt
        self.probe_priority = probe_priority
        self.slow_threshold_ms = slow_threshold_ms
        self.probe_max_tokens = probe_max_tokens
        self.probe_temperature = probe_temperature
        # Probes give up on throttling after this many requeues; battles never do
        self.probe_max_requeues = probe_max_requeues
        self._cache: dict[str, tuple[float, ModelHealthStatus]] = {}

    async def check_health(self, model_id: str) -> ModelHealthStatus:
        """
        Probe a model, reusing a recent result when available.

        Args:
            model_id: Model identifier

        Returns:
            ModelHealthStatus with status healthy, degraded or unavailable
        """
        cached = self._cache.get(model_id)
        if cached and time.monotonic() - cached[0] < self.cache_duration:
            return cached[1]

        start = time.monotonic()
        try:
            await self.client.complete(
                model_id,
                self.probe_prompt,
                max_tokens=self.probe_max_tokens,
                temperature=self.probe_temperature,
                priority=self.probe_priority,
                max_attempts=1,
                max_rate_limit_requeues=self.probe_max_requeues,
            )
        except Exception as e:
            elapsed_ms = (time.monotonic() - start) * 1000
            health = self._status_for_error(model_id, classify_error(e), elapsed_ms)
        else:
            elapsed_ms = (time.monotonic() - start) * 1000
            if elapsed_ms > self.slow_threshold_ms:
                health = ModelHealthStatus(
                    model_id=model_id,
                    status=DEGRADED,
                    response_time_ms=elapsed_ms,
                    recommendation="Slower than usual - battles may take longer",
                )
            else:
                health = ModelHealthStatus(
                    model_id=model_id, status=HEALTHY, response_time_ms=elapsed_ms
                )

        if health.status != HEALTHY:
            logger.warning(f"Model {model_id} is {health.status}: {health.last_error or 'slow'}")
        self._cache[model_id] = (time.monotonic(), health)
        return health

    def _status_for_error(
        self, model_id: str, error: CompletionError, elapsed_ms: float
    ) -> ModelHealthStatus:
        if isinstance(error, RateLimitedError):
            status, recommendation = DEGRADED, "Rate limited - will retry automatically"
        elif isinstance(error, EndpointTimeoutError):
            status, recommendation = DEGRADED, "Timing out - responses may be delayed"
        elif isinstance(error, InvalidResponseError):
            status, recommendation = DEGRADED, "Returning empty replies - fallbacks will be used"
        elif isinstance(error, CircuitBreakerOpenError):
            status, recommendation = UNAVAILABLE, "Endpoint circuit open - wait for recovery"
        elif error.retryable:
            status, recommendation = DEGRADED, "Server issues - retries active"
        else:
            status, recommendation = UNAVAILABLE, "Model unavailable - check access or pick another"

        return ModelHealthStatus(
            model_id=model_id,
            status=status,
            response_time_ms=elapsed_ms,
            recommendation=recommendation,
            last_error=f"{error.kind}: {error}",
        )

    async def check_all_models(self, model_ids: list[str]) -> HealthCheckResult:
        """Probe every model and summarize."""
        statuses = await asyncio.gather(*(self.check_health(m) for m in model_ids))

        healthy = [s.model_id for s in statuses if s.status == HEALTHY]
        degraded = [s.model_id for s in statuses if s.status == DEGRADED]
        unavailable = [s.model_id for s in statuses if s.status == UNAVAILABLE]

        recommendations = []
        if unavailable:
            recommendations.append(
                f"{len(unavailable)} model(s) unavailable - battles involving them will fail over"
            )
        if degraded:
            recommendations.append(f"{len(degraded)} model(s) degraded - expect slower battles")
        if len(healthy) < 2:
            recommendations.append("Fewer than two healthy models - battles may plateau early")

        if len(unavailable) > len(model_ids) / 2:
            overall = "poor"
        elif unavailable:
            overall = "degraded"
        elif degraded:
            overall = "good"
        else:
            overall = "excellent"

        return HealthCheckResult(
            overall_health=overall,
            healthy_models=healthy,
            degraded_models=degraded,
            unavailable_models=unavailable,
            recommendations=recommendations,
            statuses=list(statuses),
        )

    def clear_cache(self) -> None:
        self._cache.clear()

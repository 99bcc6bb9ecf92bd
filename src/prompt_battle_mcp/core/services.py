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
Composition root: builds the one dispatcher, breaker, client, engine and
health monitor shared by every battle in the process.
"""

import logging
from dataclasses import dataclass

from ..config import ServerConfig
from ..engines.iterative import IterativeBattleEngine
from .battle_types import BattleSettings
from .circuit_breaker import CircuitBreaker, CircuitBreakerConfig
from .dispatcher import RequestDispatcher
from .health import ModelHealthMonitor
from .resilient import CompletionEndpoint, ResilientCompletionClient, RetryConfig
from .validation import PromptValidator

logger = logging.getLogger(__name__)


@dataclass
class BattleServices:
    """Process-wide services, created once by build_services()"""

    config: ServerConfig
    endpoint: CompletionEndpoint
    dispatcher: RequestDispatcher
    breaker: CircuitBreaker
    client: ResilientCompletionClient
    engine: IterativeBattleEngine
    health: ModelHealthMonitor

    @property
    def model_ids(self) -> list[str]:
        # Distinct, in catalog order
        return list(dict.fromkeys(self.config.model_catalog.values()))

    def get_resilience_status(self) -> dict:
        return {
            "circuit_breaker": self.breaker.get_stats(),
            "dispatcher": self.dispatcher.get_queue_status(),
            "active_battles": len(self.engine.active_battles),
        }


def build_services(
    config: ServerConfig, endpoint: CompletionEndpoint | None = None
) -> BattleServices:
    """
    Wire the resilience stack.

    Args:
        config: Server configuration
        endpoint: Completion endpoint; a Bedrock client is created when omitted

    Returns:
        BattleServices sharing one dispatcher and one breaker
    """
    if endpoint is None:
        from ..clients.bedrock import BedrockCompletionClient

        endpoint = BedrockCompletionClient(
            region=config.aws_region, executor_max_workers=config.executor_max_workers
        )

    if config.breaker_failure_threshold <= config.max_attempts:
        logger.warning(
            f"Breaker threshold {config.breaker_failure_threshold} does not exceed "
            f"max_attempts {config.max_attempts}: one failing model can open the "
            "circuit for every model"
        )

    dispatcher = RequestDispatcher(
        min_interval=config.min_request_interval, max_backoff=config.max_backoff
    )
    breaker = CircuitBreaker(
        "completion_endpoint",
        CircuitBreakerConfig(
            failure_threshold=config.breaker_failure_threshold,
            success_threshold=config.breaker_success_threshold,
            recovery_timeout=config.breaker_recovery_timeout,
            monitoring_window=config.breaker_monitoring_window,
        ),
    )
    client = ResilientCompletionClient(
        endpoint,
        dispatcher,
        breaker,
        RetryConfig(
            max_attempts=config.max_attempts,
            base_delay=config.retry_base_delay,
            request_timeout=config.request_timeout,
        ),
    )
    engine = IterativeBattleEngine(
        client,
        config=BattleSettings(
            max_rounds=config.max_rounds,
            max_plateau=config.max_plateau,
            improvement_margin=config.improvement_margin,
            consensus_threshold=config.consensus_threshold,
            prompt_preview_length=config.prompt_preview_length,
        ),
        validator=PromptValidator(
            min_length=config.min_prompt_length, max_length=config.max_prompt_length
        ),
        model_catalog=config.model_catalog,
    )
    health = ModelHealthMonitor(
        client,
        cache_duration=config.health_cache_duration,
        slow_threshold_ms=config.health_slow_threshold_ms,
        probe_max_requeues=config.health_probe_max_requeues,
    )

    logger.info(
        f"Battle services ready (min_interval={config.min_request_interval}s, "
        f"breaker_threshold={config.breaker_failure_threshold})"
    )
    return BattleServices(
        config=config,
        endpoint=endpoint,
        dispatcher=dispatcher,
        breaker=breaker,
        client=client,
        engine=engine,
        health=health,
    )

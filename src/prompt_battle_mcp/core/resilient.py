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
Resilient completion calls.
Composes retry with backoff, the circuit breaker, the dispatcher and a
per-attempt timeout into the single complete() operation used by the engine.
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Protocol

from .circuit_breaker import CircuitBreaker
from .dispatcher import RequestDispatcher
from .errors import CompletionError, EndpointTimeoutError, InvalidResponseError, classify_error

logger = logging.getLogger(__name__)


@dataclass
class Completion:
    """Raw reply from the completion endpoint."""

    text: str
    token_count: int = 0
    cost: float = 0.0


@dataclass
class CompletionResult:
    """Completion enriched with call metadata."""

    text: str
    tokens: int
    cost: float
    latency: float  # Seconds spent in the successful endpoint call
    attempts: int
    model: str


class CompletionEndpoint(Protocol):
    """The one external collaborator: forwards a prompt to a model."""

    async def complete(
        self, model: str, prompt: str, max_tokens: int, temperature: float
    ) -> Completion: ...


@dataclass
class RetryConfig:
    """Retry and timeout policy for a single complete() call."""

    max_attempts: int = 3
    base_delay: float = 1.0  # Delay before attempt n+1 is base_delay * 2**(n-1)
    request_timeout: float = 45.0  # Per attempt
    invalid_response_retries: int = 1


class ResilientCompletionClient:
    """Retry -> circuit breaker -> dispatcher -> endpoint, outer to inner."""

    def __init__(
        self,
        endpoint: CompletionEndpoint,
        dispatcher: RequestDispatcher,
        breaker: CircuitBreaker,
        retry_config: RetryConfig | None = None,
    ):
        self.endpoint = endpoint
        self.dispatcher = dispatcher
        self.breaker = breaker
        self.retry_config = retry_config or RetryConfig()

    async def complete(
        self,
        model: str,
        prompt: str,
        max_tokens: int = 500,
        temperature: float = 0.7,
        priority: int = 0,
        max_attempts: int | None = None,
        max_rate_limit_requeues: int | None = None,
    ) -> CompletionResult:
        """
        Complete a prompt with retries, fail-fast and pacing.

        Args:
            model: Model identifier understood by the endpoint
            prompt: Prompt text
            max_tokens: Maximum output tokens
            temperature: Sampling temperature (0.0-1.0)
            priority: Dispatcher priority, higher goes first
            max_attempts: Override for the configured attempt limit
            max_rate_limit_requeues: Dispatcher requeue cap for this call, None
                to use the dispatcher default

        Returns:
            CompletionResult with text, tokens, cost and latency

        Raises:
            CompletionError: One of the classified failure kinds
        """
        attempts_allowed = max_attempts or self.retry_config.max_attempts
        invalid_retries_left = self.retry_config.invalid_response_retries
        attempt = 0

        while True:
            attempt += 1
            try:
                result = await self.breaker.call(
                    self._dispatch,
                    model,
                    prompt,
                    max_tokens,
                    temperature,
                    priority,
                    max_rate_limit_requeues,
                )
            except Exception as e:
                error = classify_error(e)
                if not self._should_retry(error, attempt, attempts_allowed, invalid_retries_left):
                    logger.warning(
                        f"Completion for {model} failed after {attempt} attempt(s): "
                        f"{error.kind}: {error}"
                    )
                    if error is e:
                        raise
                    raise error from e

                if isinstance(error, InvalidResponseError):
                    invalid_retries_left -= 1
                delay = self.retry_config.base_delay * (2 ** (attempt - 1))
                logger.info(
                    f"Retrying {model} in {delay:.1f}s after {error.kind} "
                    f"(attempt {attempt}/{attempts_allowed})"
                )
                if delay > 0:
                    await asyncio.sleep(delay)
                continue

            result.attempts = attempt
            return result

    def _should_retry(
        self,
        error: CompletionError,
        attempt: int,
        attempts_allowed: int,
        invalid_retries_left: int,
    ) -> bool:
        if attempt >= attempts_allowed:
            return False
        if isinstance(error, InvalidResponseError):
            return invalid_retries_left > 0
        return error.retryable

    async def _dispatch(
        self,
        model: str,
        prompt: str,
        max_tokens: int,
        temperature: float,
        priority: int,
        max_requeues: int | None = None,
    ) -> CompletionResult:
        async def operation() -> CompletionResult:
            return await self._timed_call(model, prompt, max_tokens, temperature)

        return await self.dispatcher.enqueue(
            operation, priority=priority, max_requeues=max_requeues
        )

    async def _timed_call(
        self, model: str, prompt: str, max_tokens: int, temperature: float
    ) -> CompletionResult:
        start = time.monotonic()
        try:
            completion = await asyncio.wait_for(
                self.endpoint.complete(model, prompt, max_tokens, temperature),
                timeout=self.retry_config.request_timeout,
            )
        except asyncio.TimeoutError:
            raise EndpointTimeoutError(
                f"{model} took longer than {self.retry_config.request_timeout}s to respond"
            ) from None
        latency = time.monotonic() - start

        text = completion.text if completion is not None else ""
        if not text or not text.strip():
            raise InvalidResponseError(f"Empty response from {model}")

        return CompletionResult(
            text=text,
            tokens=completion.token_count,
            cost=completion.cost,
            latency=latency,
            attempts=1,
            model=model,
        )

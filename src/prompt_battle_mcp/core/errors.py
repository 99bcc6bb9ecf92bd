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
Error taxonomy for calls to the completion endpoint.
Classifies raw endpoint failures and builds AI-assistant-friendly error responses.
"""

import asyncio
import logging
from typing import Any

logger = logging.getLogger(__name__)

RATE_LIMIT_MARKERS = ("rate limit", "429", "too many requests", "throttl")
TIMEOUT_MARKERS = ("timeout", "timed out")
TRANSPORT_MARKERS = ("network", "connection", "fetch", "500", "502", "503", "504")


class CompletionError(Exception):
    """Base class for every classified completion failure."""

    kind = "completion_error"
    retryable = False

    def __init__(self, message: str = "", retryable: bool | None = None):
        super().__init__(message)
        if retryable is not None:
            self.retryable = retryable


class RateLimitedError(CompletionError):
    """Endpoint signalled throttling (HTTP 429 or equivalent)."""

    kind = "rate_limited"
    retryable = True


class EndpointTimeoutError(CompletionError):
    """A single attempt exceeded its deadline."""

    kind = "timeout"
    retryable = True


class CircuitBreakerOpenError(CompletionError):
    """Exception raised when circuit breaker is open."""

    kind = "breaker_open"
    retryable = False


class TransportError(CompletionError):
    """Network or connection failure talking to the endpoint."""

    kind = "transport"
    retryable = True


class InvalidResponseError(CompletionError):
    """Endpoint answered but returned no usable text."""

    kind = "invalid_response"
    retryable = False


class BattleError(Exception):
    """Base class for orchestration failures surfaced to callers."""


class NoRoundsCompletedError(BattleError):
    """Raised when a battle ends without a single recorded round."""


def _message_of(error: BaseException) -> str:
    return str(error).lower()


def is_rate_limit_error(error: BaseException) -> bool:
    """Return True when the error means the endpoint is throttling us."""
    if isinstance(error, RateLimitedError):
        return True
    if isinstance(error, CompletionError):
        return False
    status = getattr(error, "status", None) or getattr(error, "status_code", None)
    if status == 429:
        return True
    message = _message_of(error)
    return any(marker in message for marker in RATE_LIMIT_MARKERS)


def classify_error(error: BaseException) -> CompletionError:
    """
    Map any exception raised by an endpoint call into the taxonomy.

    Already classified errors are returned unchanged.

    Args:
        error: The exception to classify

    Returns:
        A CompletionError subclass instance carrying the original message
    """
    if isinstance(error, CompletionError):
        return error

    if isinstance(error, (asyncio.TimeoutError, TimeoutError)):
        return EndpointTimeoutError(str(error) or "Request timed out")

    if is_rate_limit_error(error):
        return RateLimitedError(str(error))

    message = _message_of(error)
    if any(marker in message for marker in TIMEOUT_MARKERS):
        return EndpointTimeoutError(str(error))

    if isinstance(error, ConnectionError) or any(marker in message for marker in TRANSPORT_MARKERS):
        return TransportError(str(error))

    return TransportError(f"{type(error).__name__}: {error}", retryable=False)


def create_error_response(error: Exception, context: str) -> dict[str, Any]:
    """
    Create error response with AI-actionable hints.

    Args:
        error: The exception that occurred
        context: Context about where the error occurred

    Returns:
        Dict with error details and AI-friendly recovery hints
    """
    error_type = type(error).__name__
    response: dict[str, Any] = {
        "success": False,
        "error": str(error),
        "error_type": error_type,
        "context": context,
    }

    if isinstance(error, NoRoundsCompletedError):
        response.update(
            {
                "_ai_diagnosis": "No refinement round completed",
                "_ai_suggestion": "Run check_all_models to see which models are reachable",
                "_human_action": "Verify AWS credentials and model access, then retry",
            }
        )
    elif isinstance(error, CircuitBreakerOpenError):
        response.update(
            {
                "_ai_diagnosis": "Endpoint judged unhealthy, calls are failing fast",
                "_ai_suggestion": "Wait for the recovery probe (see get_resilience_status)",
                "_human_action": "Retry in about 30 seconds",
            }
        )
    elif isinstance(error, RateLimitedError):
        response.update(
            {
                "_ai_diagnosis": "Endpoint rate limit still active after retries",
                "_ai_suggestion": "Run fewer battles concurrently",
                "_human_action": "Wait a minute before retrying",
            }
        )
    elif isinstance(error, EndpointTimeoutError):
        response.update(
            {
                "_ai_diagnosis": "Operation exceeded timeout",
                "_ai_suggestion": "Raise REQUEST_TIMEOUT for slow models",
                "_human_action": "Try again or pick a faster category pairing",
            }
        )
    elif isinstance(error, CompletionError):
        response.update(
            {
                "_ai_diagnosis": f"Endpoint call failed ({error.kind})",
                "_ai_context": {"retryable": error.retryable},
                "_ai_suggestion": "Check server logs for details",
            }
        )
    else:
        response.update(
            {
                "_ai_diagnosis": f"Unexpected error in {context}",
                "_ai_suggestion": "Check server logs for details",
                "_ai_context": {"error_type": error_type},
            }
        )

    return response

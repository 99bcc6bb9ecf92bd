"""Core resilience and battle modules"""

from .circuit_breaker import CircuitBreaker, CircuitBreakerConfig, CircuitState
from .dispatcher import RequestDispatcher
from .errors import (
    BattleError,
    CircuitBreakerOpenError,
    CompletionError,
    EndpointTimeoutError,
    InvalidResponseError,
    NoRoundsCompletedError,
    RateLimitedError,
    TransportError,
)
from .resilient import Completion, CompletionResult, ResilientCompletionClient, RetryConfig

__all__ = [
    "BattleError",
    "CircuitBreaker",
    "CircuitBreakerConfig",
    "CircuitBreakerOpenError",
    "CircuitState",
    "Completion",
    "CompletionError",
    "CompletionResult",
    "EndpointTimeoutError",
    "InvalidResponseError",
    "NoRoundsCompletedError",
    "RateLimitedError",
    "RequestDispatcher",
    "ResilientCompletionClient",
    "RetryConfig",
    "TransportError",
]

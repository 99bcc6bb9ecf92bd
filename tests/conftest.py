"""
Shared fixtures: a scripted completion endpoint and a fast resilience stack.
"""

import asyncio

import pytest

from prompt_battle_mcp.core.circuit_breaker import CircuitBreaker, CircuitBreakerConfig
from prompt_battle_mcp.core.dispatcher import RequestDispatcher
from prompt_battle_mcp.core.resilient import Completion, ResilientCompletionClient, RetryConfig

TEST_CATALOG = {
    "fast": "model-a",
    "versatile": "model-b",
    "reasoning": "model-c",
    "balanced": "model-d",
}


class FakeEndpoint:
    """
    CompletionEndpoint driven by a responder(model, prompt) callable.

    The responder may return a string, a Completion, raise, or be a coroutine
    function (to simulate slow models).
    """

    def __init__(self, responder):
        self.responder = responder
        self.calls: list[tuple[str, str]] = []

    async def complete(self, model, prompt, max_tokens, temperature):
        self.calls.append((model, prompt))
        reply = self.responder(model, prompt)
        if asyncio.iscoroutine(reply):
            reply = await reply
        if isinstance(reply, Completion):
            return reply
        return Completion(text=reply, token_count=10)

    def calls_for(self, model):
        return [prompt for m, prompt in self.calls if m == model]


def is_review(prompt: str) -> bool:
    return "prompt evaluation judge" in prompt


def improvement_reply(text: str, thinking: str = "Needs more structure") -> str:
    return f"THINKING:\n{thinking}\n\nIMPROVED_PROMPT:\n{text}"


def review_reply(score, feedback: str = "Clearer and more specific") -> str:
    return f"THINKING:\nCompared both versions\n\nSCORE: {score}\nFEEDBACK: {feedback}"


def make_client(
    endpoint,
    failure_threshold: int = 50,
    request_timeout: float = 1.0,
    max_attempts: int = 3,
    max_rate_limit_requeues=None,
) -> ResilientCompletionClient:
    """Resilient client with pacing and retry delays switched off."""
    dispatcher = RequestDispatcher(
        min_interval=0.0, max_backoff=0.0, max_rate_limit_requeues=max_rate_limit_requeues
    )
    breaker = CircuitBreaker(
        "test", CircuitBreakerConfig(failure_threshold=failure_threshold, recovery_timeout=60.0)
    )
    return ResilientCompletionClient(
        endpoint,
        dispatcher,
        breaker,
        RetryConfig(max_attempts=max_attempts, base_delay=0.0, request_timeout=request_timeout),
    )


@pytest.fixture
def fake_endpoint_factory():
    return FakeEndpoint


@pytest.fixture
def client_factory():
    return make_client

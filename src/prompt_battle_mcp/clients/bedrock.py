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
AWS Bedrock completion endpoint.
Forwards prompts through the Converse API and maps botocore failures onto
the completion error taxonomy. Pacing, retries and the circuit breaker live
in the resilient client, not here.
"""

import asyncio
import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Any

import boto3
from botocore.exceptions import (
    ClientError,
    ConnectionClosedError,
    ConnectTimeoutError,
    EndpointConnectionError,
    ReadTimeoutError,
)

from ..core.errors import (
    CompletionError,
    EndpointTimeoutError,
    InvalidResponseError,
    RateLimitedError,
    TransportError,
)
from ..core.resilient import Completion
from ..core.security import CredentialSanitizer

logger = logging.getLogger(__name__)

THROTTLING_CODES = {"ThrottlingException", "TooManyRequestsException", "ServiceQuotaExceededException"}
TIMEOUT_CODES = {"ModelTimeoutException", "RequestTimeout"}
UNAVAILABLE_CODES = {
    "ServiceUnavailableException",
    "InternalServerException",
    "ModelNotReadyException",
}


def classify_boto3_error(error: Exception) -> CompletionError:
    """
    Map a boto3/botocore exception onto the completion error taxonomy.

    Messages are sanitized so no credential material leaves this module.
    """
    details = CredentialSanitizer.sanitize_boto3_error(error)
    message = details["error_message"]

    if isinstance(error, ClientError):
        code = details.get("error_code", "")
        status = details.get("http_status") or 0
        if code in THROTTLING_CODES or status == 429:
            return RateLimitedError(f"{code}: {message}")
        if code in TIMEOUT_CODES or status == 408:
            return EndpointTimeoutError(f"{code}: {message}")
        if code in UNAVAILABLE_CODES or status >= 500:
            return TransportError(f"{code}: {message}")
        # Validation, access and missing-model errors won't fix themselves
        return TransportError(f"{code}: {message}", retryable=False)

    if isinstance(error, (ReadTimeoutError, ConnectTimeoutError)):
        return EndpointTimeoutError(message)
    if isinstance(error, (EndpointConnectionError, ConnectionClosedError)):
        return TransportError(message)

    return TransportError(f"{details['error_type']}: {message}", retryable=False)


class BedrockCompletionClient:
    """CompletionEndpoint backed by the Bedrock Converse API."""

    def __init__(
        self,
        region: str = "us-east-1",
        executor_max_workers: int = 4,
        runtime_client: Any = None,
    ):
        """Initialize without blocking - the boto3 client is created on first use."""
        self.region = region
        self.bedrock_runtime = runtime_client
        self._executor = ThreadPoolExecutor(max_workers=executor_max_workers)
        self._init_lock = asyncio.Lock()

    async def _ensure_initialized(self):
        if self.bedrock_runtime is not None:
            return

        async with self._init_lock:
            if self.bedrock_runtime is not None:
                return
            try:
                self.bedrock_runtime = boto3.client(
                    service_name="bedrock-runtime", region_name=self.region
                )
            except Exception as e:
                error_msg = CredentialSanitizer.sanitize_boto3_error(e)["error_message"]
                logger.error(f"Failed to initialize AWS Bedrock client: {error_msg}")
                raise TransportError(
                    f"AWS Bedrock initialization failed: {error_msg}", retryable=False
                ) from None
            logger.info(f"AWS Bedrock client initialized in region {self.region}")

    def _converse_sync(
        self, model: str, prompt: str, max_tokens: int, temperature: float
    ) -> dict:
        """Synchronous Converse call for the thread pool executor."""
        return self.bedrock_runtime.converse(
            modelId=model,
            messages=[{"role": "user", "content": [{"text": prompt}]}],
            inferenceConfig={"maxTokens": max_tokens, "temperature": temperature},
        )

    async def complete(
        self, model: str, prompt: str, max_tokens: int, temperature: float
    ) -> Completion:
        """
        Send one prompt to one model.

        Args:
            model: Bedrock model id
            prompt: User prompt
            max_tokens: Maximum output tokens
            temperature: Sampling temperature (0.0-1.0)

        Returns:
            Completion with text and total token count

        Raises:
            CompletionError: Classified, sanitized failure
        """
        await self._ensure_initialized()

        loop = asyncio.get_running_loop()
        try:
            response = await loop.run_in_executor(
                self._executor, self._converse_sync, model, prompt, max_tokens, temperature
            )
        except Exception as e:
            error = classify_boto3_error(e)
            logger.warning(f"Bedrock call to {model} failed: {error.kind}: {error}")
            raise error from None

        return self._to_completion(model, response)

    @staticmethod
    def _to_completion(model: str, response: dict) -> Completion:
        try:
            blocks = response["output"]["message"]["content"]
        except (KeyError, TypeError):
            raise InvalidResponseError(f"Malformed Converse response from {model}") from None

        text = "".join(block.get("text", "") for block in blocks if isinstance(block, dict))
        usage = response.get("usage") or {}
        return Completion(
            text=text,
            token_count=int(usage.get("totalTokens", 0)),
            cost=0.0,
        )

    def cleanup(self):
        """Explicit cleanup method for resources."""
        self._executor.shutdown(wait=False, cancel_futures=True)
        logger.info("Thread pool executor shut down")

    async def __aenter__(self):
        await self._ensure_initialized()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        self.cleanup()
        return False

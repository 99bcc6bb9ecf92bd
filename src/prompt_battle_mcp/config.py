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
Configuration module for Prompt Battle MCP Server
Centralizes all configuration values and environment variables
"""

import os
from dataclasses import dataclass, field
from typing import Any

from .core.domains import DEFAULT_MODEL_CATALOG


@dataclass
class ServerConfig:
    """Configuration for the MCP server"""

    # AWS Configuration
    aws_region: str = field(default_factory=lambda: os.getenv("AWS_REGION", "us-east-1"))

    # Model catalog: role name -> Bedrock model id
    model_fast: str = field(
        default_factory=lambda: os.getenv("MODEL_FAST", DEFAULT_MODEL_CATALOG["fast"])
    )
    model_versatile: str = field(
        default_factory=lambda: os.getenv("MODEL_VERSATILE", DEFAULT_MODEL_CATALOG["versatile"])
    )
    model_reasoning: str = field(
        default_factory=lambda: os.getenv("MODEL_REASONING", DEFAULT_MODEL_CATALOG["reasoning"])
    )
    model_balanced: str = field(
        default_factory=lambda: os.getenv("MODEL_BALANCED", DEFAULT_MODEL_CATALOG["balanced"])
    )

    # Dispatcher Configuration
    min_request_interval: float = field(
        default_factory=lambda: float(os.getenv("MIN_REQUEST_INTERVAL", "1.0"))
    )
    max_backoff: float = field(default_factory=lambda: float(os.getenv("MAX_BACKOFF", "60.0")))

    # Circuit Breaker Configuration
    breaker_failure_threshold: int = field(
        default_factory=lambda: int(os.getenv("BREAKER_FAILURE_THRESHOLD", "5"))
    )
    breaker_success_threshold: int = field(
        default_factory=lambda: int(os.getenv("BREAKER_SUCCESS_THRESHOLD", "3"))
    )
    breaker_recovery_timeout: float = field(
        default_factory=lambda: float(os.getenv("BREAKER_RECOVERY_TIMEOUT", "30.0"))
    )
    breaker_monitoring_window: float = 300.0

    # Retry Configuration
    max_attempts: int = field(default_factory=lambda: int(os.getenv("MAX_ATTEMPTS", "3")))
    retry_base_delay: float = field(
        default_factory=lambda: float(os.getenv("RETRY_BASE_DELAY", "1.0"))
    )
    request_timeout: float = field(
        default_factory=lambda: float(os.getenv("REQUEST_TIMEOUT", "45.0"))
    )

    # Battle Configuration
    max_rounds: int = field(default_factory=lambda: int(os.getenv("MAX_ROUNDS", "8")))
    max_plateau: int = field(default_factory=lambda: int(os.getenv("MAX_PLATEAU", "3")))
    improvement_margin: float = field(
        default_factory=lambda: float(os.getenv("IMPROVEMENT_MARGIN", "0.3"))
    )
    consensus_threshold: float = field(
        default_factory=lambda: float(os.getenv("CONSENSUS_THRESHOLD", "9.5"))
    )

    # Health Check Configuration
    health_cache_duration: float = field(
        default_factory=lambda: float(os.getenv("HEALTH_CACHE_DURATION", "300"))
    )
    health_slow_threshold_ms: float = 5000.0
    health_probe_max_requeues: int = field(
        default_factory=lambda: int(os.getenv("HEALTH_PROBE_MAX_REQUEUES", "2"))
    )

    # Thread Pool Configuration
    executor_max_workers: int = 4

    # Display Configuration
    prompt_preview_length: int = field(
        default_factory=lambda: int(os.getenv("PROMPT_PREVIEW_LENGTH", "80"))
    )

    # Prompt Validation
    max_prompt_length: int = field(
        default_factory=lambda: int(os.getenv("MAX_PROMPT_LENGTH", "10000"))
    )
    min_prompt_length: int = field(
        default_factory=lambda: int(os.getenv("MIN_PROMPT_LENGTH", "10"))
    )

    @property
    def model_catalog(self) -> dict[str, str]:
        return {
            "fast": self.model_fast,
            "versatile": self.model_versatile,
            "reasoning": self.model_reasoning,
            "balanced": self.model_balanced,
        }

    def to_dict(self) -> dict[str, Any]:
        """Convert config to dictionary"""
        return {
            "aws_region": self.aws_region,
            "model_catalog": self.model_catalog,
            "min_request_interval": self.min_request_interval,
            "max_backoff": self.max_backoff,
            "breaker_failure_threshold": self.breaker_failure_threshold,
            "breaker_recovery_timeout": self.breaker_recovery_timeout,
            "max_attempts": self.max_attempts,
            "request_timeout": self.request_timeout,
            "max_rounds": self.max_rounds,
            "max_plateau": self.max_plateau,
            "improvement_margin": self.improvement_margin,
            "consensus_threshold": self.consensus_threshold,
        }


# Global configuration instance
config = ServerConfig()

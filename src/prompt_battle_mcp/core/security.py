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
Redaction of AWS credentials from error messages before they are logged or
surfaced to MCP clients.
"""

import re

from botocore.exceptions import ClientError


class CredentialSanitizer:
    """Sanitizer for AWS credentials and other secrets in error text."""

    # Patterns without a capture group are replaced whole
    PATTERNS = {
        "aws_access_key": re.compile(r"(?:AKIA|ASIA)[A-Z0-9]{7,}", re.IGNORECASE),
        "arn": re.compile(r"arn:aws:iam::\d{12}:(?:user|role)/[^\s]+", re.IGNORECASE),
        "aws_secret_key": re.compile(
            r"(?:aws_secret_access_key|secret_key|SecretAccessKey)[\s=:]+[\"\']?([A-Za-z0-9+/]{40})[\"\']?",
            re.IGNORECASE,
        ),
        "aws_session_token": re.compile(
            r"(?:aws_session_token|session_token|SessionToken)[\s=:]+[\"\']?([A-Za-z0-9+/=]{100,})[\"\']?",
            re.IGNORECASE,
        ),
        "authorization_header": re.compile(
            r"(?:Authorization|X-Amz-Security-Token)[\s:]+[\"\']?([^\s\"\']+)[\"\']?",
            re.IGNORECASE,
        ),
    }

    LONG_TOKEN = re.compile(r"(?<![A-Za-z0-9+/])([A-Za-z0-9+/]{35,}={0,2})(?![A-Za-z0-9+/])")

    @classmethod
    def sanitize_string(cls, text: str) -> str:
        if not text:
            return text

        sanitized = text
        for name, pattern in cls.PATTERNS.items():
            marker = f"[REDACTED_{name.upper()}]"
            if pattern.groups == 0:
                sanitized = pattern.sub(marker, sanitized)
            else:
                sanitized = pattern.sub(
                    lambda m, marker=marker: m.group(0).replace(m.group(1), marker), sanitized
                )

        return cls.LONG_TOKEN.sub("[REDACTED_POSSIBLE_CREDENTIAL]", sanitized)

    @classmethod
    def sanitize_error(cls, error: BaseException) -> str:
        """Sanitized "Type: message" string for any exception."""
        return f"{type(error).__name__}: {cls.sanitize_string(str(error))}"

    @classmethod
    def sanitize_boto3_error(cls, error: BaseException) -> dict:
        """
        Extract safe fields from a botocore error.

        Returns:
            Dict with error_type, error_message and, for ClientError,
            error_code and http_status
        """
        details = {
            "error_type": type(error).__name__,
            "error_message": cls.sanitize_string(str(error)),
        }
        if isinstance(error, ClientError):
            response = error.response or {}
            details["error_code"] = response.get("Error", {}).get("Code", "")
            details["error_message"] = cls.sanitize_string(
                response.get("Error", {}).get("Message", "") or str(error)
            )
            details["http_status"] = response.get("ResponseMetadata", {}).get("HTTPStatusCode")
        return details

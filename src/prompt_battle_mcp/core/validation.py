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
Input validation for battle prompts.
"""

import re

DANGEROUS_PATTERNS = [
    r"ignore\s+(all\s+)?previous\s+instructions",
    r"<\s*script",
    r"javascript:",
    r"eval\s*\(",
]


class PromptValidator:
    """Handles prompt length and content checks."""

    def __init__(self, min_length: int = 10, max_length: int = 10000):
        self.min_length = min_length
        self.max_length = max_length

    def validate_prompt(self, prompt: str) -> tuple[bool, str]:
        """
        Validate a prompt before it enters a battle.

        Args:
            prompt: The prompt to validate

        Returns:
            Tuple of (is_valid, validation_message)
        """
        if not isinstance(prompt, str) or len(prompt.strip()) < self.min_length:
            return False, f"Prompt too short (minimum {self.min_length} characters)"

        if len(prompt) > self.max_length:
            return False, f"Prompt too long (maximum {self.max_length} characters)"

        for pattern in DANGEROUS_PATTERNS:
            if re.search(pattern, prompt, re.IGNORECASE):
                return False, "Potentially dangerous content detected"

        return True, "Valid"

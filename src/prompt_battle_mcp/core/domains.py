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
Category-specific configuration for Prompt Battle MCP Server
Consolidates category detection, model pairing and fallback enhancements
"""

import re

from .battle_types import RolePair

CATEGORIES = ("general", "creative", "technical", "analysis", "explanation", "math", "research")

# Role name -> Bedrock model id. Overridable through ServerConfig.
DEFAULT_MODEL_CATALOG: dict[str, str] = {
    "fast": "meta.llama3-1-8b-instruct-v1:0",
    "versatile": "meta.llama3-3-70b-instruct-v1:0",
    "reasoning": "deepseek.r1-v1:0",
    "balanced": "qwen.qwen3-32b-v1:0",
}

MODEL_DISPLAY_NAMES: dict[str, str] = {
    "meta.llama3-1-8b-instruct-v1:0": "Llama 3.1 8B",
    "meta.llama3-3-70b-instruct-v1:0": "Llama 3.3 70B",
    "deepseek.r1-v1:0": "DeepSeek R1",
    "qwen.qwen3-32b-v1:0": "Qwen 3 32B",
}

# Ordered: the first rule whose category or prompt keyword matches wins
PAIR_RULES: list[tuple[str, tuple[str, ...], tuple[str, str]]] = [
    ("technical", ("technical", "code"), ("versatile", "reasoning")),
    ("creative", ("creative", "story"), ("fast", "versatile")),
    ("math", ("math", "calculate"), ("reasoning", "versatile")),
    ("analysis", ("analysis", "research"), ("versatile", "balanced")),
]
DEFAULT_PAIR_ROLES = ("fast", "balanced")

# Category detection keywords, used when the caller asks for "auto"
CATEGORY_KEYWORDS: dict[str, list[str]] = {
    "technical": [
        "code",
        "algorithm",
        "api",
        "debug",
        "architecture",
        "database",
        "function",
        "python",
        "javascript",
        "implement",
        "software",
        "sql",
    ],
    "creative": [
        "story",
        "poem",
        "write about",
        "fiction",
        "character",
        "narrative",
        "creative",
        "lyrics",
        "slogan",
    ],
    "analysis": [
        "analyze",
        "analysis",
        "compare",
        "evaluate",
        "assess",
        "swot",
        "trend",
        "pros and cons",
    ],
    "explanation": [
        "explain",
        "what is",
        "how does",
        "why does",
        "describe",
        "define",
        "teach",
    ],
    "math": [
        "math",
        "calculate",
        "equation",
        "solve",
        "probability",
        "integral",
        "proof",
        "derivative",
    ],
    "research": [
        "research",
        "sources",
        "literature",
        "study",
        "survey",
        "evidence",
        "citation",
    ],
}

ENHANCEMENTS: dict[str, str] = {
    "general": (
        "Please provide a comprehensive response with specific examples, clear structure, "
        "and actionable insights. Format your response with clear headings and bullet points "
        "where appropriate. Ensure completeness and practical value."
    ),
    "creative": (
        "Please create original, engaging content with vivid details, compelling narrative, "
        "and creative flair. Use descriptive language and imaginative elements. "
        "Make it memorable and impactful."
    ),
    "technical": (
        "Please provide step-by-step technical guidance with code examples, best practices, "
        "and troubleshooting tips. Include specific implementation details and common "
        "pitfalls to avoid."
    ),
    "analysis": (
        "Please conduct thorough analysis with data-driven insights, comparative evaluation, "
        "and evidence-based conclusions. Structure your analysis clearly with supporting evidence."
    ),
    "explanation": (
        "Please explain with clear definitions, relevant examples, analogies for better "
        "understanding, and structured breakdown of complex concepts. "
        "Make it accessible and comprehensive."
    ),
    "math": (
        "Please solve with detailed step-by-step calculations, explanations of methods used, "
        "and verification of results. Show all work clearly and explain reasoning."
    ),
    "research": (
        "Please research comprehensively with multiple perspectives, credible sources, and "
        "well-organized findings. Cite specific examples and provide balanced viewpoints."
    ),
}

MAX_ENHANCED_LENGTH = 800


class CategoryDetector:
    """Detects the appropriate category for a given prompt"""

    @staticmethod
    def detect_category(prompt: str) -> str:
        prompt_lower = prompt.lower()
        category_scores = {}

        for category, keywords in CATEGORY_KEYWORDS.items():
            score = 0
            for keyword in keywords:
                # Use word boundaries for single words, exact match for phrases
                if " " in keyword:
                    if keyword in prompt_lower:
                        score += 1
                else:
                    pattern = r"\b" + re.escape(keyword) + r"\b"
                    if re.search(pattern, prompt_lower):
                        score += 1
            if score > 0:
                category_scores[category] = score

        if not category_scores:
            return "general"

        return max(category_scores, key=category_scores.get)


def normalize_category(category: str | None, prompt: str = "") -> str:
    """Resolve "auto" and unknown categories to one of CATEGORIES."""
    value = (category or "general").strip().lower()
    if value == "auto":
        return CategoryDetector.detect_category(prompt)
    return value if value in CATEGORIES else "general"


def select_pair(
    prompt: str, category: str, catalog: dict[str, str] | None = None
) -> RolePair:
    """
    Deterministically pick the two battle models.

    Args:
        prompt: The prompt being refined
        category: Normalized category
        catalog: Role name to model id mapping

    Returns:
        RolePair whose improver is model A and reviewer is model B
    """
    models = {**DEFAULT_MODEL_CATALOG, **(catalog or {})}
    prompt_lower = prompt.lower()

    roles = DEFAULT_PAIR_ROLES
    for rule_category, keywords, rule_roles in PAIR_RULES:
        if category == rule_category or any(k in prompt_lower for k in keywords):
            roles = rule_roles
            break

    return RolePair(improver=models[roles[0]], reviewer=models[roles[1]])


def enhance_prompt(prompt: str, category: str) -> str:
    """Deterministic category template appended to a prompt."""
    enhancement = ENHANCEMENTS.get(category, ENHANCEMENTS["general"])
    base = (prompt or "").strip()
    enhanced = f"{base}\n\n{enhancement}" if base else enhancement

    if len(enhanced) > MAX_ENHANCED_LENGTH:
        focused = enhancement.split(".")[0] + ". Provide detailed, actionable guidance."
        return f"{base}\n\n{focused}" if base else focused

    return enhanced


def get_model_name(model_id: str) -> str:
    return MODEL_DISPLAY_NAMES.get(model_id, model_id)

"""
Tests for category detection, model pairing and prompt enhancement.
"""

import pytest

from prompt_battle_mcp.core.battle_types import RolePair
from prompt_battle_mcp.core.domains import (
    DEFAULT_MODEL_CATALOG,
    ENHANCEMENTS,
    MAX_ENHANCED_LENGTH,
    CategoryDetector,
    enhance_prompt,
    get_model_name,
    normalize_category,
    select_pair,
)

CATALOG = {"fast": "f", "versatile": "v", "reasoning": "r", "balanced": "b"}


class TestCategoryDetection:
    """Keyword-based detection for "auto" categories"""

    @pytest.mark.parametrize(
        "prompt,expected",
        [
            ("Debug this Python function that parses SQL", "technical"),
            ("Write a short story about a lighthouse keeper", "creative"),
            ("Compare and evaluate these two pricing strategies", "analysis"),
            ("Explain how does a transformer attention layer work", "explanation"),
            ("Solve this equation and calculate the derivative", "math"),
            ("Find sources and literature on sleep research", "research"),
            ("Plan a weekend trip", "general"),
        ],
    )
    def test_detect_category(self, prompt, expected):
        assert CategoryDetector.detect_category(prompt) == expected

    def test_word_boundaries(self):
        # "apiary" must not count as "api"
        assert CategoryDetector.detect_category("Describe an apiary") == "explanation"

    def test_normalize(self):
        assert normalize_category("Creative") == "creative"
        assert normalize_category(None) == "general"
        assert normalize_category("poetry") == "general"
        assert normalize_category("auto", "Write a poem about rain") == "creative"


class TestSelectPair:
    """Deterministic pairing rules"""

    @pytest.mark.parametrize(
        "category,prompt,expected",
        [
            ("technical", "Plan a weekend trip", ("v", "r")),
            ("general", "Review this code snippet", ("v", "r")),
            ("creative", "Plan a weekend trip", ("f", "v")),
            ("general", "Tell me a story", ("f", "v")),
            ("math", "Plan a weekend trip", ("r", "v")),
            ("general", "Please calculate my taxes", ("r", "v")),
            ("analysis", "Plan a weekend trip", ("v", "b")),
            ("general", "Summarize this research", ("v", "b")),
            ("general", "Plan a weekend trip", ("f", "b")),
            ("explanation", "Plan a weekend trip", ("f", "b")),
        ],
    )
    def test_rules(self, category, prompt, expected):
        pair = select_pair(prompt, category, CATALOG)
        assert (pair.improver, pair.reviewer) == expected

    def test_first_matching_rule_wins(self):
        # Mentions code and a story: the technical rule comes first
        pair = select_pair("Write a story about code", "creative", CATALOG)
        assert pair == RolePair(improver="v", reviewer="r")

    def test_default_catalog(self):
        pair = select_pair("Plan a weekend trip", "general")
        assert pair.improver == DEFAULT_MODEL_CATALOG["fast"]
        assert pair.reviewer == DEFAULT_MODEL_CATALOG["balanced"]

    def test_deterministic(self):
        first = select_pair("Explain recursion", "explanation", CATALOG)
        assert all(select_pair("Explain recursion", "explanation", CATALOG) == first for _ in range(5))

    def test_roles_swap(self):
        pair = RolePair(improver="a", reviewer="b")
        assert pair.swapped() == RolePair(improver="b", reviewer="a")
        assert pair.swapped().swapped() == pair


class TestEnhancePrompt:
    """Templated fallback improvements"""

    def test_appends_category_template(self):
        enhanced = enhance_prompt("Write a haiku about autumn", "creative")
        assert enhanced == f"Write a haiku about autumn\n\n{ENHANCEMENTS['creative']}"

    def test_unknown_category_uses_general(self):
        enhanced = enhance_prompt("Plan a weekend trip", "unknown")
        assert enhanced.endswith(ENHANCEMENTS["general"])

    def test_long_prompt_gets_focused_template(self):
        prompt = "word " * 170
        enhanced = enhance_prompt(prompt, "technical")

        assert enhanced.endswith(
            "Please provide step-by-step technical guidance with code examples, best practices, "
            "and troubleshooting tips. Provide detailed, actionable guidance."
        )
        assert enhanced.startswith(prompt.strip())

    def test_short_result_unchanged_by_limit(self):
        enhanced = enhance_prompt("Short prompt", "math")
        assert len(enhanced) <= MAX_ENHANCED_LENGTH

    def test_empty_prompt(self):
        assert enhance_prompt("", "research") == ENHANCEMENTS["research"]


class TestModelNames:
    def test_known_and_unknown(self):
        assert get_model_name("deepseek.r1-v1:0") == "DeepSeek R1"
        assert get_model_name("custom-model") == "custom-model"

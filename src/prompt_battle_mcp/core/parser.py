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
Parsing of free-text model replies.

Models are asked to answer with labelled sections (THINKING:, IMPROVED_PROMPT:,
SCORE:, FEEDBACK:) but often don't. ResponseParser runs an ordered chain of
named strategies, each returning a ParsedReply or None; the first usable
reply wins and the last strategy always produces one.
"""

import logging
import re
from collections.abc import Callable
from dataclasses import dataclass

from .domains import enhance_prompt

logger = logging.getLogger(__name__)

DEFAULT_SCORE = 7.0
MIN_SCORE = 1.0
MAX_SCORE = 10.0
MIN_PROSE_BLOCK = 50
MAX_LABEL_HEAD = 40

NUMBER = r"(-?\d+(?:\.\d+)?)"
LOOSE_SCORE_PATTERN = re.compile(
    rf"{NUMBER}\s*/\s*10|{NUMBER}\s*out\s*of\s*10|(?:score|rating)\s*[:=]?\s*{NUMBER}",
    re.IGNORECASE,
)

# Keyword groups for the heuristic line scan, keyed by section label
SECTION_KEYWORDS: dict[str, tuple[str, ...]] = {
    "THINKING": ("thinking", "analysis"),
    "IMPROVED_PROMPT": ("improved prompt", "improved_prompt", "improved version"),
    "SCORE": ("score", "rating"),
    "FEEDBACK": ("feedback", "summary", "assessment"),
}

CLEANUP_PATTERNS = [
    re.compile(r"^[\"'“”]+|[\"'“”]+$"),
    re.compile(r"^\[|\]$"),
    re.compile(r"^\*\*|\*\*$"),
    re.compile(
        r"^(?:here's|here is)\s+(?:the\s+|my\s+|an\s+|a\s+)?(?:improved|refined|enhanced)\s+"
        r"(?:prompt|version)\s*:?\s*",
        re.IGNORECASE,
    ),
    re.compile(r"^(?:the|my)\s+(?:improved|refined)\s+(?:prompt|version)\s*:?\s*", re.IGNORECASE),
    re.compile(r"^improved\s+(?:prompt|version)\s*:\s*", re.IGNORECASE),
    re.compile(r"^(?:here's|here is|prompt|version)\s*:\s*", re.IGNORECASE),
    re.compile(r"^[\"'“”]+|[\"'“”]+$"),
    re.compile(r"^(-\s+|\*\s+|\d+\.\s+)"),
]

REVIEW_FEEDBACK_BANDS = [
    (8.0, "Good improvement with enhanced clarity and structure"),
    (6.0, "Some improvement but could be more specific"),
    (MIN_SCORE, "Minor improvement, needs more work"),
]


@dataclass(frozen=True)
class ReplyFormat:
    """Sections a model was asked to produce, in order."""

    name: str
    labels: tuple[str, ...]
    payload_label: str
    expects_score: bool = False


IMPROVEMENT = ReplyFormat(
    name="improvement",
    labels=("THINKING", "IMPROVED_PROMPT"),
    payload_label="IMPROVED_PROMPT",
)
REVIEW = ReplyFormat(
    name="review",
    labels=("THINKING", "SCORE", "FEEDBACK"),
    payload_label="FEEDBACK",
    expects_score=True,
)


@dataclass
class ParsedReply:
    """Structured view of one model reply. payload is never empty."""

    payload: str
    thinking: str | None = None
    score: float | None = None
    feedback: str | None = None
    strategy: str = ""


@dataclass
class _ParseContext:
    text: str
    reply_format: ReplyFormat
    prior_prompt: str
    category: str


Strategy = Callable[[_ParseContext], "ParsedReply | None"]


def clamp_score(value: float) -> float:
    return max(MIN_SCORE, min(MAX_SCORE, value))


def clean_improved_prompt(text: str) -> str:
    """Strip quoting, lead-ins and list markers models wrap prompts in."""
    cleaned = text.strip()
    for pattern in CLEANUP_PATTERNS:
        cleaned = pattern.sub("", cleaned).strip()
    return cleaned


def find_score(text: str) -> float | None:
    """Find a 1-10 score anywhere in free text."""
    for match in LOOSE_SCORE_PATTERN.finditer(text):
        raw = next(group for group in match.groups() if group is not None)
        try:
            value = float(raw)
        except ValueError:
            continue
        if MIN_SCORE <= value <= MAX_SCORE:
            return value
    return None


def _first_number(text: str) -> float | None:
    match = re.search(NUMBER, text)
    if not match:
        return None
    try:
        return clamp_score(float(match.group(1)))
    except ValueError:
        return None


def feedback_for_score(score: float) -> str:
    for floor, feedback in REVIEW_FEEDBACK_BANDS:
        if score >= floor:
            return feedback
    return REVIEW_FEEDBACK_BANDS[-1][1]


class ResponseParser:
    """Turns one model reply into a ParsedReply. Stateless and total."""

    def __init__(self):
        self.strategies: list[tuple[str, Strategy]] = [
            ("structured", self._structured),
            ("line_scan", self._line_scan),
            ("fallback", self._fallback),
        ]

    def parse(
        self,
        raw_text: str | None,
        reply_format: ReplyFormat,
        prior_prompt: str = "",
        category: str = "general",
    ) -> ParsedReply:
        """
        Parse a reply, degrading through strategies until one is usable.

        Args:
            raw_text: Model reply, possibly empty or None
            reply_format: IMPROVEMENT or REVIEW
            prior_prompt: Prompt the reply was meant to transform
            category: Category used for the templated fallback

        Returns:
            ParsedReply with a non-empty payload, and a score in [1, 10]
            when the format expects one
        """
        context = _ParseContext(
            text=raw_text if isinstance(raw_text, str) else "",
            reply_format=reply_format,
            prior_prompt=prior_prompt or "",
            category=category or "general",
        )

        for name, strategy in self.strategies:
            try:
                reply = strategy(context)
            except Exception as e:
                logger.warning(f"Parse strategy {name} raised {type(e).__name__}: {e}")
                continue
            if reply is not None:
                reply.strategy = name
                logger.debug(f"Parsed {reply_format.name} reply with {name} strategy")
                return reply

        # Only reachable if the fallback itself raised
        return self._template_reply(context)

    # Strategies

    def _structured(self, ctx: _ParseContext) -> ParsedReply | None:
        sections = self._split_on_labels(ctx.text, ctx.reply_format.labels)
        if sections is None:
            return None
        return self._build(ctx, sections)

    def _line_scan(self, ctx: _ParseContext) -> ParsedReply | None:
        sections = self._scan_lines(ctx.text, ctx.reply_format.labels)
        if not sections:
            return None
        return self._build(ctx, sections)

    def _fallback(self, ctx: _ParseContext) -> ParsedReply:
        scanned = self._scan_lines(ctx.text, ctx.reply_format.labels)
        thinking = scanned.get("THINKING") or None

        if ctx.reply_format.expects_score:
            score = self._score_from(ctx.text, scanned.get("SCORE"))
            feedback = feedback_for_score(score)
            return ParsedReply(payload=feedback, thinking=thinking, score=score, feedback=feedback)

        block = self._longest_prose_block(ctx.text)
        if block and self._plausible(block, ctx.prior_prompt):
            return ParsedReply(payload=block, thinking=thinking)

        logger.info(f"No usable improved prompt in reply, using {ctx.category} template")
        return ParsedReply(payload=enhance_prompt(ctx.prior_prompt, ctx.category), thinking=thinking)

    # Helpers

    def _build(self, ctx: _ParseContext, sections: dict[str, str]) -> ParsedReply | None:
        fmt = ctx.reply_format
        thinking = sections.get("THINKING") or None

        if fmt.expects_score:
            feedback = sections.get(fmt.payload_label, "").strip()
            if not feedback:
                return None
            score = self._score_from(ctx.text, sections.get("SCORE"))
            return ParsedReply(payload=feedback, thinking=thinking, score=score, feedback=feedback)

        payload = clean_improved_prompt(sections.get(fmt.payload_label, ""))
        if not self._plausible(payload, ctx.prior_prompt):
            return None
        return ParsedReply(payload=payload, thinking=thinking)

    @staticmethod
    def _plausible(payload: str, prior_prompt: str) -> bool:
        if not payload:
            return False
        return len(payload) >= len(prior_prompt.strip()) / 2

    @staticmethod
    def _score_from(text: str, section: str | None) -> float:
        if section:
            value = _first_number(section)
            if value is not None:
                return value
        value = find_score(text)
        return value if value is not None else DEFAULT_SCORE

    @staticmethod
    def _split_on_labels(text: str, labels: tuple[str, ...]) -> dict[str, str] | None:
        """Cut text at exact LABEL: markers; None unless all appear in order."""
        positions = []
        search_from = 0
        for label in labels:
            pattern = re.compile(
                rf"^[ \t>#*]*{re.escape(label)}[ \t*]*:\**", re.IGNORECASE | re.MULTILINE
            )
            match = pattern.search(text, search_from)
            if match is None:
                return None
            positions.append((label, match.start(), match.end()))
            search_from = match.end()

        sections = {}
        for i, (label, _, content_start) in enumerate(positions):
            content_end = positions[i + 1][1] if i + 1 < len(positions) else len(text)
            sections[label] = text[content_start:content_end].strip()
        return sections

    @staticmethod
    def _label_for_line(line: str, labels: tuple[str, ...]) -> tuple[str, str] | None:
        head, colon, rest = line.partition(":")
        if not colon:
            return None
        head = head.strip(" \t*#>-").lower()
        if not head or len(head) > MAX_LABEL_HEAD:
            return None
        for label in labels:
            if any(keyword in head for keyword in SECTION_KEYWORDS.get(label, ())):
                return label, rest.strip().lstrip("*").strip()
        return None

    def _scan_lines(self, text: str, labels: tuple[str, ...]) -> dict[str, str]:
        """Accumulate lines under the last loosely matched label."""
        buffers: dict[str, list[str]] = {}
        current = None
        for line in text.splitlines():
            stripped = line.strip()
            found = self._label_for_line(stripped, labels)
            if found is not None:
                current, inline = found
                buffers.setdefault(current, [])
                if inline:
                    buffers[current].append(inline)
                continue
            if current is not None and stripped:
                buffers[current].append(stripped)

        return {label: "\n".join(lines).strip() for label, lines in buffers.items()}

    @staticmethod
    def _longest_prose_block(text: str) -> str | None:
        blocks = []
        for block in re.split(r"\n\s*\n", text):
            cleaned = clean_improved_prompt(block)
            lowered = cleaned.lower()
            if (
                len(cleaned) > MIN_PROSE_BLOCK
                and " " in cleaned
                and "thinking" not in lowered
                and "analysis" not in lowered
            ):
                blocks.append(cleaned)
        if not blocks:
            return None
        return max(blocks, key=len)

    def _template_reply(self, ctx: _ParseContext) -> ParsedReply:
        if ctx.reply_format.expects_score:
            feedback = feedback_for_score(DEFAULT_SCORE)
            return ParsedReply(
                payload=feedback, score=DEFAULT_SCORE, feedback=feedback, strategy="fallback"
            )
        return ParsedReply(
            payload=enhance_prompt(ctx.prior_prompt, ctx.category), strategy="fallback"
        )

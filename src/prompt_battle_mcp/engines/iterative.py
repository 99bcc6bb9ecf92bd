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
Iterative prompt battle engine.

Two models take turns: one rewrites the current prompt, the other scores the
rewrite. Roles swap every round. The battle ends on consensus, on a plateau of
non-improving rounds, at the round cap, or when the caller cancels it.
"""

import asyncio
import logging
import time
import uuid
from dataclasses import dataclass, field

from ..core.battle_types import BattleResult, BattleSettings, BattleStatus, RolePair, Round
from ..core.domains import get_model_name, normalize_category, select_pair
from ..core.errors import CompletionError, InvalidResponseError, NoRoundsCompletedError
from ..core.parser import IMPROVEMENT, REVIEW, ParsedReply, ResponseParser
from ..core.progress import ProgressCallback, ProgressReporter
from ..core.resilient import CompletionResult, ResilientCompletionClient
from ..core.validation import PromptValidator

logger = logging.getLogger(__name__)

IMPROVEMENT_TEMPLATE = """You are an expert prompt engineer competing in a prompt refinement battle. Your task is to significantly improve the given prompt.

CURRENT PROMPT TO IMPROVE:
"{prompt}"

CATEGORY: {category}
ROUND: {round}

INSTRUCTIONS:
1. First, analyze what could be improved about the current prompt
2. Then provide your improved version

Use this EXACT format:

THINKING:
[Your analysis of what needs improvement and your strategy]

IMPROVED_PROMPT:
[Your improved prompt - ONLY the prompt text, no explanations or quotes]

The improved prompt should add clarity, structure, useful context and constraints,
and clear output format requirements."""

REVIEW_TEMPLATE = """You are a professional prompt evaluation judge. Compare the original vs improved prompt.

ORIGINAL PROMPT:
"{original}"

IMPROVED PROMPT:
"{improved}"

CATEGORY: {category}

Use this EXACT format:

THINKING:
[Your analysis comparing both prompts]

SCORE: [number from 1-10]
FEEDBACK: [brief summary of your assessment]

Scoring guide:
- 10/10 = Perfect, cannot be improved further
- 8-9/10 = Significant improvement
- 6-7/10 = Some improvement, but could be better
- 4-5/10 = Minor improvement or mixed results
- 1-3/10 = No improvement or worse

Be honest and critical in your evaluation."""


def build_improvement_prompt(prompt: str, category: str, round_index: int) -> str:
    return IMPROVEMENT_TEMPLATE.format(prompt=prompt, category=category, round=round_index)


def build_review_prompt(original: str, improved: str, category: str) -> str:
    return REVIEW_TEMPLATE.format(original=original, improved=improved, category=category)


@dataclass
class ActiveBattle:
    """Bookkeeping for a battle that has not returned yet"""

    battle_id: str
    prompt: str
    category: str
    cancel_event: asyncio.Event
    started_at: float = field(default_factory=time.time)
    current_round: int = 0
    max_rounds: int = 0
    best_score: float = 0.0

    def to_dict(self) -> dict:
        return {
            "battle_id": self.battle_id,
            "prompt_preview": self.prompt[:50] + ("..." if len(self.prompt) > 50 else ""),
            "category": self.category,
            "round": f"{self.current_round}/{self.max_rounds}",
            "best_score": self.best_score,
            "elapsed_seconds": round(time.time() - self.started_at, 1),
            "cancelling": self.cancel_event.is_set(),
        }


@dataclass
class _RoundOutcome:
    round: Round
    tokens: int
    cost: float


class IterativeBattleEngine:
    """Runs iterative two-model prompt battles over a resilient client"""

    def __init__(
        self,
        client: ResilientCompletionClient,
        parser: ResponseParser | None = None,
        config: BattleSettings | None = None,
        validator: PromptValidator | None = None,
        model_catalog: dict[str, str] | None = None,
    ):
        self.client = client
        self.parser = parser or ResponseParser()
        self.config = config or BattleSettings()
        self.validator = validator or PromptValidator()
        self.model_catalog = model_catalog
        self.active_battles: dict[str, ActiveBattle] = {}

    def validate_prompt(self, prompt: str) -> tuple[bool, str]:
        return self.validator.validate_prompt(prompt)

    def abort_battle(self, battle_id: str) -> bool:
        """Ask a running battle to stop before its next round."""
        battle = self.active_battles.get(battle_id)
        if battle is None:
            return False
        battle.cancel_event.set()
        logger.info(f"Abort requested for battle {battle_id}")
        return True

    def list_active_battles(self) -> list[dict]:
        return [battle.to_dict() for battle in self.active_battles.values()]

    async def run_iterative_battle(
        self,
        original_prompt: str,
        category: str = "general",
        progress_callback: ProgressCallback | None = None,
        cancel_event: asyncio.Event | None = None,
        battle_id: str | None = None,
    ) -> BattleResult:
        """
        Run a battle to completion.

        Args:
            original_prompt: Prompt to refine
            category: Category name, or "auto" to detect one
            progress_callback: Optional sync or async callable receiving BattleProgress
            cancel_event: Optional event; once set, no further round starts
            battle_id: Optional id, generated when omitted

        Returns:
            BattleResult for the run

        Raises:
            ValueError: If the prompt fails validation or the id is taken
            NoRoundsCompletedError: If no round could be recorded
        """
        is_valid, message = self.validate_prompt(original_prompt)
        if not is_valid:
            raise ValueError(f"Invalid prompt: {message}")

        category = normalize_category(category, original_prompt)
        battle_id = battle_id or f"battle_{uuid.uuid4().hex[:12]}"
        if battle_id in self.active_battles:
            raise ValueError(f"Battle {battle_id} is already running")

        active = ActiveBattle(
            battle_id=battle_id,
            prompt=original_prompt,
            category=category,
            cancel_event=cancel_event or asyncio.Event(),
            max_rounds=self.config.max_rounds,
        )
        self.active_battles[battle_id] = active
        try:
            return await self._run(active, ProgressReporter(progress_callback))
        finally:
            self.active_battles.pop(battle_id, None)

    async def _run(self, active: ActiveBattle, reporter: ProgressReporter) -> BattleResult:
        settings = self.config
        original_prompt = active.prompt
        category = active.category

        reporter.report(5, "Selecting model pair for iterative refinement...")
        pair = select_pair(original_prompt, category, self.model_catalog)
        model_a, model_b = pair.improver, pair.reviewer
        reporter.report(
            10, f"Starting battle: {get_model_name(model_a)} vs {get_model_name(model_b)}"
        )

        roles = pair
        current_prompt = original_prompt
        best_score = 0.0
        plateau_count = 0
        rounds: list[Round] = []
        attempted = 0
        failed = 0
        total_tokens = 0
        total_cost = 0.0
        termination = BattleStatus.ROUND_LIMIT_REACHED

        for index in range(1, settings.max_rounds + 1):
            if active.cancel_event.is_set():
                logger.info(f"Battle {active.battle_id} cancelled before round {index}")
                termination = BattleStatus.CANCELLED
                break

            attempted += 1
            active.current_round = index
            span = 80 / settings.max_rounds
            base = 10 + (index - 1) * span

            try:
                outcome = await self._play_round(
                    index, roles, current_prompt, best_score, category, reporter, base, span
                )
            except Exception as e:
                failed += 1
                logger.warning(f"Round {index} of battle {active.battle_id} failed: {e}")
                reporter.report(
                    base + span,
                    f"Round {index} encountered issues, continuing...",
                    f"Error: {e}",
                    round=index,
                    max_rounds=settings.max_rounds,
                )
                roles = roles.swapped()
                continue

            round_ = outcome.round
            rounds.append(round_)
            total_tokens += outcome.tokens
            total_cost += outcome.cost

            if round_.consensus:
                current_prompt = round_.prompt_after
                best_score = round_.reviewer_score
                termination = BattleStatus.CONVERGED
                reporter.report(
                    90,
                    f"Excellent {round_.reviewer_score}/10 achieved by "
                    f"{get_model_name(round_.improver_model)}!",
                    round=index,
                    max_rounds=settings.max_rounds,
                )
                break

            if round_.is_improvement:
                current_prompt = round_.prompt_after
                best_score = round_.reviewer_score
                plateau_count = 0
                status = f"Round {index}: Improvement accepted! Score: {round_.reviewer_score}/10"
            else:
                plateau_count += 1
                status = (
                    f"Round {index}: No significant improvement ({round_.reviewer_score}/10), "
                    f"plateau {plateau_count}/{settings.max_plateau}"
                )
            active.best_score = best_score
            reporter.report(base + span, status, round=index, max_rounds=settings.max_rounds)

            if plateau_count >= settings.max_plateau:
                logger.info(f"Battle {active.battle_id} plateaued after {index} rounds")
                termination = BattleStatus.PLATEAUED
                break

            roles = roles.swapped()

        if not rounds:
            raise NoRoundsCompletedError(
                f"No rounds completed ({attempted} attempted) - check model access and credentials"
            )

        reporter.report(95, "Battle complete! Generating final analysis...")
        result = self._finalize(
            active,
            rounds,
            model_a,
            model_b,
            termination,
            attempted=attempted,
            failed=failed,
            total_tokens=total_tokens,
            total_cost=total_cost,
        )
        reporter.report(100, "Battle complete", result.narrative)
        return result

    async def _play_round(
        self,
        index: int,
        roles: RolePair,
        current_prompt: str,
        best_score: float,
        category: str,
        reporter: ProgressReporter,
        base: float,
        span: float,
    ) -> _RoundOutcome:
        settings = self.config

        reporter.report(
            base + span * 0.1,
            f"Round {index}/{settings.max_rounds}: {get_model_name(roles.improver)} "
            "improving prompt...",
            f'Analyzing: "{current_prompt[: settings.prompt_preview_length]}"',
            round=index,
            max_rounds=settings.max_rounds,
        )
        improve_result = await self._complete(
            roles.improver,
            build_improvement_prompt(current_prompt, category, index),
            max_tokens=settings.improve_max_tokens,
            temperature=settings.improve_temperature,
        )
        improvement = self.parser.parse(
            improve_result.text, IMPROVEMENT, prior_prompt=current_prompt, category=category
        )

        reporter.report(
            base + span * 0.5,
            f"Round {index}: {get_model_name(roles.reviewer)} evaluating improvement...",
            round=index,
            max_rounds=settings.max_rounds,
        )
        review_result, reviewer_model = await self._review(
            roles, current_prompt, improvement.payload, category
        )
        review = self.parser.parse(review_result.text, REVIEW, category=category)
        score = review.score

        round_ = Round(
            index=index,
            improver_model=roles.improver,
            reviewer_model=reviewer_model,
            prompt_before=current_prompt,
            prompt_after=improvement.payload,
            reviewer_score=score,
            reviewer_feedback=review.feedback or review.payload,
            improver_thinking=improvement.thinking,
            reviewer_thinking=review.thinking,
            is_improvement=score > best_score + settings.improvement_margin,
            consensus=score >= settings.consensus_threshold,
        )
        self._log_round(round_, improvement, review)

        return _RoundOutcome(
            round=round_,
            tokens=improve_result.tokens + review_result.tokens,
            cost=improve_result.cost + review_result.cost,
        )

    async def _review(
        self, roles: RolePair, original: str, improved: str, category: str
    ) -> tuple[CompletionResult, str]:
        """Review with the assigned reviewer, falling back to the other battle model."""
        prompt = build_review_prompt(original, improved, category)
        settings = self.config
        try:
            result = await self._complete(
                roles.reviewer,
                prompt,
                max_tokens=settings.review_max_tokens,
                temperature=settings.review_temperature,
            )
            return result, roles.reviewer
        except CompletionError as e:
            if roles.improver == roles.reviewer:
                raise
            logger.warning(
                f"Reviewer {roles.reviewer} failed ({e.kind}), asking {roles.improver} to review"
            )

        result = await self._complete(
            roles.improver,
            prompt,
            max_tokens=settings.review_max_tokens,
            temperature=settings.review_temperature,
        )
        return result, roles.improver

    async def _complete(
        self, model: str, prompt: str, max_tokens: int, temperature: float
    ) -> CompletionResult:
        try:
            return await self.client.complete(
                model,
                prompt,
                max_tokens=max_tokens,
                temperature=temperature,
                priority=self.config.priority,
            )
        except InvalidResponseError as e:
            # Still empty after the retry: let the parser's template fallback fill in
            logger.warning(f"{model} returned no usable text ({e}), parsing an empty reply")
            return CompletionResult(
                text="", tokens=0, cost=0.0, latency=0.0, attempts=0, model=model
            )

    def _log_round(self, round_: Round, improvement: ParsedReply, review: ParsedReply) -> None:
        logger.info(
            f"Round {round_.index}: {round_.improver_model} -> {round_.reviewer_model} "
            f"score={round_.reviewer_score} improvement={round_.is_improvement} "
            f"consensus={round_.consensus} "
            f"(parsed via {improvement.strategy}/{review.strategy})"
        )

    def _finalize(
        self,
        active: ActiveBattle,
        rounds: list[Round],
        model_a: str,
        model_b: str,
        termination: BattleStatus,
        attempted: int,
        failed: int,
        total_tokens: int,
        total_cost: float,
    ) -> BattleResult:
        best = rounds[0]
        for round_ in rounds[1:]:
            if round_.reviewer_score > best.reviewer_score:
                best = round_

        consensus = termination == BattleStatus.CONVERGED
        narrative = generate_narrative(
            active.prompt, best.prompt_after, rounds, consensus, best.reviewer_score
        )

        return BattleResult(
            id=active.battle_id,
            original_prompt=active.prompt,
            final_prompt=best.prompt_after,
            rounds=tuple(rounds),
            model_a=model_a,
            model_b=model_b,
            total_rounds=attempted,
            consensus_achieved=consensus,
            final_score=best.reviewer_score,
            winner_model=best.improver_model,
            narrative=narrative,
            termination=termination,
            category=active.category,
            failed_rounds=failed,
            total_tokens=total_tokens,
            total_cost=total_cost,
        )


def generate_narrative(
    original_prompt: str,
    final_prompt: str,
    rounds: list[Round],
    consensus: bool,
    final_score: float,
) -> str:
    """Human-readable summary of how the battle went."""
    count = len(rounds)
    plural = "round" if count == 1 else "rounds"
    improvements = sum(1 for r in rounds if r.is_improvement)

    if consensus:
        ratio = round(len(final_prompt) / max(len(original_prompt), 1) * 100)
        return (
            f"Consensus achieved! After {count} {plural} of iterative refinement the reviewer "
            f"scored the prompt {final_score}/10. The final prompt is {ratio}% of the "
            "original length."
        )
    if improvements > 0:
        return (
            f"Significant improvement achieved! After {count} {plural} the prompt evolved with "
            f"{improvements} accepted improvement(s). Final score: {final_score}/10."
        )
    return (
        f"Your original prompt was already quite good! After {count} {plural} of analysis "
        "the models made only minor refinements."
    )

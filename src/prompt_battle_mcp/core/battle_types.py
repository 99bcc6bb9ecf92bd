"""
Data types for iterative prompt battles
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any


class BattleStatus(Enum):
    """Lifecycle of a battle; the last four are terminal."""

    RUNNING = "running"
    CONVERGED = "converged"
    PLATEAUED = "plateaued"
    ROUND_LIMIT_REACHED = "round_limit_reached"
    CANCELLED = "cancelled"


@dataclass
class BattleSettings:
    """Thresholds driving one battle"""

    max_rounds: int = 8
    max_plateau: int = 3
    improvement_margin: float = 0.3
    consensus_threshold: float = 9.5
    improve_max_tokens: int = 1500
    improve_temperature: float = 0.3
    review_max_tokens: int = 800
    review_temperature: float = 0.1
    priority: int = 0
    prompt_preview_length: int = 80


@dataclass(frozen=True)
class RolePair:
    """Which model improves and which reviews in a round"""

    improver: str
    reviewer: str

    def swapped(self) -> "RolePair":
        return RolePair(improver=self.reviewer, reviewer=self.improver)


@dataclass(frozen=True)
class Round:
    """One improve + review cycle, immutable once recorded"""

    index: int
    improver_model: str
    reviewer_model: str
    prompt_before: str
    prompt_after: str
    reviewer_score: float
    reviewer_feedback: str
    improver_thinking: str | None = None
    reviewer_thinking: str | None = None
    is_improvement: bool = False
    consensus: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "index": self.index,
            "improver_model": self.improver_model,
            "reviewer_model": self.reviewer_model,
            "prompt_before": self.prompt_before,
            "prompt_after": self.prompt_after,
            "reviewer_score": self.reviewer_score,
            "reviewer_feedback": self.reviewer_feedback,
            "improver_thinking": self.improver_thinking,
            "reviewer_thinking": self.reviewer_thinking,
            "is_improvement": self.is_improvement,
            "consensus": self.consensus,
        }


@dataclass(frozen=True)
class BattleResult:
    """The single artifact of a battle run"""

    id: str
    original_prompt: str
    final_prompt: str
    rounds: tuple[Round, ...]
    model_a: str
    model_b: str
    total_rounds: int
    consensus_achieved: bool
    final_score: float
    winner_model: str
    narrative: str
    termination: BattleStatus
    category: str = "general"
    failed_rounds: int = 0
    total_tokens: int = 0
    total_cost: float = 0.0
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def improvement_count(self) -> int:
        return sum(1 for r in self.rounds if r.is_improvement)

    def to_dict(self) -> dict[str, Any]:
        """Convert result to dictionary for JSON serialization"""
        return {
            "id": self.id,
            "original_prompt": self.original_prompt,
            "final_prompt": self.final_prompt,
            "rounds": [r.to_dict() for r in self.rounds],
            "model_a": self.model_a,
            "model_b": self.model_b,
            "total_rounds": self.total_rounds,
            "failed_rounds": self.failed_rounds,
            "consensus_achieved": self.consensus_achieved,
            "final_score": self.final_score,
            "winner_model": self.winner_model,
            "narrative": self.narrative,
            "termination": self.termination.value,
            "category": self.category,
            "total_tokens": self.total_tokens,
            "total_cost": self.total_cost,
            "created_at": self.created_at.isoformat(),
        }

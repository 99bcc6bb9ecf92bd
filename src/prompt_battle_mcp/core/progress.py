"""
Progress reporting for battles.

Notifications are fire-and-forget: the battle never waits on, or fails
because of, a progress callback.
"""

import asyncio
import inspect
import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BattleProgress:
    """One progress notification"""

    percent: float
    status: str
    details: str | None = None
    round: int | None = None
    max_rounds: int | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "percent": round(self.percent),
            "status": self.status,
            "details": self.details,
            "round": f"{self.round}/{self.max_rounds}" if self.round else None,
        }


ProgressCallback = Callable[[BattleProgress], Any]


class ProgressReporter:
    """Wraps an optional callback with monotonic, non-blocking delivery."""

    def __init__(self, callback: ProgressCallback | None = None):
        self.callback = callback
        self.last_percent = 0.0
        self.history: list[BattleProgress] = []
        self._tasks: set[asyncio.Task] = set()

    def report(
        self,
        percent: float,
        status: str,
        details: str | None = None,
        round: int | None = None,
        max_rounds: int | None = None,
    ) -> BattleProgress:
        # Never let the bar move backwards
        percent = max(self.last_percent, min(100.0, float(percent)))
        self.last_percent = percent
        progress = BattleProgress(
            percent=percent, status=status, details=details, round=round, max_rounds=max_rounds
        )
        self.history.append(progress)
        logger.debug(f"Progress {percent:.0f}%: {status}")

        if self.callback is not None:
            asyncio.get_running_loop().call_soon(self._deliver, progress)
        return progress

    def _deliver(self, progress: BattleProgress) -> None:
        try:
            outcome = self.callback(progress)
        except Exception as e:
            logger.warning(f"Progress callback failed: {e}")
            return

        if inspect.isawaitable(outcome):
            task = asyncio.ensure_future(outcome)
            self._tasks.add(task)
            task.add_done_callback(self._on_task_done)

    def _on_task_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.warning(f"Progress callback failed: {error}")

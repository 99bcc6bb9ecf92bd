"""
Battle tools: run, abort and list iterative prompt battles
"""

import logging

from ..core.progress import BattleProgress
from ..core.server import get_services, handle_tool_errors, mcp
from ..formatting import format_abort, format_battle_list, format_battle_result

logger = logging.getLogger(__name__)


def _log_progress(progress: BattleProgress) -> None:
    logger.info(f"[{progress.percent:.0f}%] {progress.status}")


@mcp.tool(
    description=(
        "Run an iterative prompt battle: two models take turns improving and scoring "
        "the prompt until they reach consensus (9.5/10), stop improving, or hit the "
        "round limit. Returns the best prompt found."
    )
)
@handle_tool_errors
async def run_iterative_battle(
    prompt: str,
    category: str = "general",
    show_rounds: bool = True,
) -> str:
    """
    Refine a prompt through an iterative two-model battle.

    Args:
        prompt: The prompt to refine
        category: auto|general|creative|technical|analysis|explanation|math|research
        show_rounds: Include a per-round summary in the output

    Returns:
        Formatted battle result with the final prompt
    """
    services = get_services()
    result = await services.engine.run_iterative_battle(
        prompt, category=category, progress_callback=_log_progress
    )
    return format_battle_result(result, show_rounds=show_rounds)


@mcp.tool(description="Stop a running battle before its next round")
@handle_tool_errors
async def abort_battle(battle_id: str) -> str:
    """
    Request cancellation of a running battle.

    Args:
        battle_id: ID shown by list_active_battles
    """
    aborted = get_services().engine.abort_battle(battle_id)
    return format_abort(battle_id, aborted)


@mcp.tool(description="List battles that are still running")
@handle_tool_errors
async def list_active_battles() -> str:
    return format_battle_list(get_services().engine.list_active_battles())

"""
Output formatting helpers for MCP tool responses
Converts battle results and health data to markdown for LLM consumption
"""

from typing import Any

from .core.battle_types import BattleResult, BattleStatus
from .core.domains import get_model_name
from .core.health import HealthCheckResult, ModelHealthStatus

TERMINATION_LABELS = {
    BattleStatus.CONVERGED: "🎯 Consensus reached",
    BattleStatus.PLATEAUED: "⚠️ Plateaued",
    BattleStatus.ROUND_LIMIT_REACHED: "⏱️ Round limit reached",
    BattleStatus.CANCELLED: "🛑 Cancelled",
}

HEALTH_EMOJIS = {"healthy": "✅", "degraded": "⚠️", "unavailable": "❌"}


def _preview(text: str, length: int = 120) -> str:
    text = " ".join(text.split())
    return text if len(text) <= length else text[:length] + "..."


def format_battle_result(result: BattleResult, show_rounds: bool = True) -> str:
    """Format run_iterative_battle response"""
    output = [
        "✨ **Prompt Battle Complete**",
        "",
        f"**Battle ID:** `{result.id}`",
        f"**Outcome:** {TERMINATION_LABELS.get(result.termination, result.termination.value)}",
        f"**Models:** {get_model_name(result.model_a)} vs {get_model_name(result.model_b)}",
        f"**Winner:** {get_model_name(result.winner_model)}",
        f"**Final Score:** {result.final_score}/10",
        f"**Rounds:** {result.total_rounds} ({result.failed_rounds} failed)",
        "",
        result.narrative,
    ]

    if show_rounds and result.rounds:
        output.append("\n**Rounds:**")
        for r in result.rounds:
            marker = "🎯" if r.consensus else ("✅" if r.is_improvement else "➖")
            output.append(
                f"{marker} Round {r.index}: {get_model_name(r.improver_model)} improved, "
                f"{get_model_name(r.reviewer_model)} scored {r.reviewer_score}/10 - "
                f"{_preview(r.reviewer_feedback, 100)}"
            )

    output.extend(["", "---", "**Final Prompt:**", "", result.final_prompt, "", "---"])
    output.append(f"*Battle ID: {result.id}*")
    return "\n".join(output)


def format_battle_list(battles: list[dict[str, Any]]) -> str:
    """Format list_active_battles response"""
    if not battles:
        return "📋 **No Active Battles**\n\nUse `run_iterative_battle` to start one."

    output = [f"📋 **Active Battles** ({len(battles)})", ""]
    for i, battle in enumerate(battles[:10], 1):
        output.append(
            f"{i}. `{battle['battle_id']}` - round {battle['round']}, "
            f"best {battle['best_score']}/10, {battle['elapsed_seconds']}s "
            f"({battle['category']}): {battle['prompt_preview']}"
        )
    return "\n".join(output)


def format_abort(battle_id: str, aborted: bool) -> str:
    """Format abort_battle response"""
    if not aborted:
        return (
            f"❌ **Error**: No active battle `{battle_id}`\n\n"
            "Use `list_active_battles` to find running battles."
        )
    return (
        f"🛑 **Abort requested** for `{battle_id}`\n\n"
        "The battle stops before its next round and returns its best result so far."
    )


def format_health_status(status: ModelHealthStatus) -> str:
    """Format check_model_health response"""
    emoji = HEALTH_EMOJIS.get(status.status, "❓")
    output = [
        f"{emoji} **{get_model_name(status.model_id)}** (`{status.model_id}`)",
        f"**Status:** {status.status}",
        f"**Response Time:** {status.response_time_ms:.0f} ms",
    ]
    if status.recommendation:
        output.append(f"**Recommendation:** {status.recommendation}")
    if status.last_error:
        output.append(f"**Last Error:** {status.last_error}")
    return "\n".join(output)


def format_health_summary(result: HealthCheckResult) -> str:
    """Format check_all_models response"""
    output = [f"📊 **Model Health: {result.overall_health}**", ""]
    for status in result.statuses:
        emoji = HEALTH_EMOJIS.get(status.status, "❓")
        output.append(
            f"{emoji} {get_model_name(status.model_id)}: {status.status} "
            f"({status.response_time_ms:.0f} ms)"
        )
    if result.recommendations:
        output.append("\n**Recommendations:**")
        output.extend(f"- {r}" for r in result.recommendations)
    return "\n".join(output)


def format_resilience_status(status: dict[str, Any]) -> str:
    """Format get_resilience_status response"""
    breaker = status["circuit_breaker"]
    metrics = breaker["metrics"]
    queue = status["dispatcher"]
    return f"""🛡️ **Resilience Status**

**Circuit Breaker:** {breaker['state']}
- Consecutive failures: {metrics['failures']}
- Success rate (window): {metrics['success_rate']:.0%} over {metrics['recent_requests']} requests
- Next recovery probe in: {metrics['time_until_recovery']:.1f}s
- Rejected calls: {breaker['stats']['rejected_calls']}

**Dispatcher:**
- Queue length: {queue['queue_length']}
- Processing: {queue['is_processing']}
- Backoff remaining: {queue['backoff_remaining']:.1f}s
- Consecutive rate limits: {queue['consecutive_errors']}
- Total dispatched: {queue['total_dispatched']}

**Active battles:** {status['active_battles']}"""


def format_error_response(response: dict[str, Any]) -> str:
    """Render a create_error_response() payload"""
    output = [f"❌ **{response.get('error_type', 'Error')}**: {response.get('error', '')}"]
    if response.get("_ai_diagnosis"):
        output.append(f"\n**Diagnosis:** {response['_ai_diagnosis']}")
    if response.get("_ai_suggestion"):
        output.append(f"**Suggestion:** {response['_ai_suggestion']}")
    if response.get("_human_action"):
        output.append(f"**Action:** {response['_human_action']}")
    return "\n".join(output)

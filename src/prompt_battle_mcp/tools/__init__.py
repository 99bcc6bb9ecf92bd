"""MCP tools for Prompt Battle"""

from .battle import abort_battle, list_active_battles, run_iterative_battle
from .health import check_all_models, check_model_health, get_resilience_status

__all__ = [
    "abort_battle",
    "check_all_models",
    "check_model_health",
    "get_resilience_status",
    "list_active_battles",
    "run_iterative_battle",
]

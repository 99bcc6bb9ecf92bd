"""
Health tools: model probes and resilience status
"""

from ..core.server import get_services, handle_tool_errors, mcp
from ..formatting import format_health_status, format_health_summary, format_resilience_status


@mcp.tool(description="Probe one model with a tiny prompt and report its health")
@handle_tool_errors
async def check_model_health(model_id: str, refresh: bool = False) -> str:
    """
    Check whether a model is healthy, degraded or unavailable.

    Args:
        model_id: Bedrock model id
        refresh: Ignore cached results
    """
    monitor = get_services().health
    if refresh:
        monitor.clear_cache()
    status = await monitor.check_health(model_id)
    return format_health_status(status)


@mcp.tool(description="Probe every configured battle model and summarize overall health")
@handle_tool_errors
async def check_all_models() -> str:
    services = get_services()
    result = await services.health.check_all_models(services.model_ids)
    return format_health_summary(result)


@mcp.tool(description="Show circuit breaker and request dispatcher state")
@handle_tool_errors
async def get_resilience_status() -> str:
    return format_resilience_status(get_services().get_resilience_status())

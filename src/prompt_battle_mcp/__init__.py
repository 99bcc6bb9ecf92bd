"""
Prompt Battle MCP Server
Two models iteratively refine a prompt until they agree it is excellent

CRITICAL: This server uses stdio transport for MCP protocol communication.
- stdout is reserved for MCP JSON-RPC messages
- All logging/debug output must go to stderr or files
"""

import logging
import sys

logging.basicConfig(
    level=logging.WARNING,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    stream=sys.stderr,
)
logger = logging.getLogger(__name__)

__all__ = ["create_server", "main"]


def create_server():
    """Create and return the MCP server instance.

    Returns:
        The configured MCP server instance with all tools registered.
    """
    from .core.server import get_mcp_server

    # Tools register with the mcp instance via decorators when imported
    from .tools import (  # noqa: F401
        abort_battle,
        check_all_models,
        check_model_health,
        get_resilience_status,
        list_active_battles,
        run_iterative_battle,
    )

    return get_mcp_server()


def main() -> None:
    """Run the MCP server with stdio transport"""
    from .config import config

    logger.info("Starting Prompt Battle MCP server (stdio)")
    logger.info(f"Model catalog: {config.model_catalog}")

    try:
        server = create_server()
        server.run()
    except Exception as e:
        logger.error(f"Server error: {e}")
        sys.exit(1)

"""
MCP Server setup and core decorators for Prompt Battle
"""

import logging
import sys
from collections.abc import Callable
from functools import wraps
from typing import Any, TypeVar

from mcp.server.fastmcp import FastMCP

from ..formatting import format_error_response
from .errors import BattleError, CompletionError, create_error_response
from .services import BattleServices, build_services

# Configure logging to stderr only - NEVER stdout in MCP servers
logging.basicConfig(
    level=logging.WARNING,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    stream=sys.stderr,
)
logger = logging.getLogger(__name__)

T = TypeVar("T")

# Create FastMCP instance
mcp = FastMCP("prompt-battle")

# Built on first tool call
_services: BattleServices | None = None


def get_mcp_server() -> FastMCP:
    return mcp


def get_services() -> BattleServices:
    """Lazy initialization of the shared battle services"""
    global _services
    if _services is None:
        from ..config import config

        _services = build_services(config)
    return _services


def set_services(services: BattleServices | None) -> None:
    """Replace the shared services (tests inject fakes here)."""
    global _services
    _services = services


def handle_tool_errors(func: Callable[..., T]) -> Callable[..., T]:
    """
    Decorator to handle standard error patterns for MCP tools.

    Provides consistent error handling and logging across all tool functions.
    """

    @wraps(func)
    async def wrapper(*args: Any, **kwargs: Any) -> Any:
        tool_name = func.__name__
        try:
            return await func(*args, **kwargs)  # type: ignore[misc, return-value]
        except ValueError as e:
            logger.warning(f"Validation error in {tool_name}: {e}")
            return f"❌ **Invalid input**: {str(e)}"
        except KeyError as e:
            logger.error(f"Configuration error in {tool_name}: Missing key {e}")
            return f"❌ **Configuration error**: Missing required field {e}. Check your environment variables."
        except ImportError as e:
            logger.error(f"Import error in {tool_name}: {e}")
            error_msg = f"❌ **Missing dependency**: {str(e)}. "
            if "boto3" in str(e):
                error_msg += "Install with: pip install boto3"
            return error_msg
        except (BattleError, CompletionError) as e:
            logger.warning(f"{tool_name} failed: {type(e).__name__}: {e}")
            return format_error_response(create_error_response(e, tool_name))
        except Exception as e:
            logger.exception(f"Unexpected error in {tool_name}")
            return f"❌ **Unexpected error in {tool_name}**: {type(e).__name__}: {str(e)}"

    return wrapper  # type: ignore[misc, return-value]

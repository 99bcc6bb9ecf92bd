"""
CLI entry point for Prompt Battle MCP server
"""

if __name__ == "__main__":
    from . import main

    main()

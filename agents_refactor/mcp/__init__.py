#!/usr/bin/env python3
"""
Agents Refactor MCP bridge

Exposes the refactor daemon's endpoints as MCP tools. Tools are thin: they
post to the shared HTTP daemon (one tsserver per workspace for all agents)
and render the reply as TOON.
"""

import asyncio
import logging

from ..config import configure_logging
from ._core import HTTP_BASE_URL, cleanup, ensure_daemon_running, format_result, http_get, http_post, mcp

# Tool modules register themselves with @mcp.tool() on import
from . import files, management, navigation, refactoring  # noqa: F401

logger = logging.getLogger(__name__)

__all__ = [
    "mcp",
    "http_post",
    "http_get",
    "format_result",
    "ensure_daemon_running",
    "main",
]


def main():
    """Entry point for the stdio MCP server."""
    configure_logging()
    logger.info("Refactor MCP bridge starting (daemon %s)", HTTP_BASE_URL)
    if not ensure_daemon_running():
        logger.warning("Daemon did not report healthy; tools will return connection errors until it does")

    try:
        mcp.run()
    finally:
        asyncio.run(cleanup())


if __name__ == "__main__":
    main()

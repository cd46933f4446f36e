#!/usr/bin/env python3
"""Management tools: restart_server, daemon_status."""

from ._core import mcp, http_get, http_post, format_result


@mcp.tool()
async def restart_server(workspace: str | None = None) -> str:
    """
    Restart tsserver to force a full re-index.

    Useful after tsconfig.json changes, dependency installs, large file
    system changes, or when results look stale.

    Args:
        workspace: Project root (defaults to the daemon's workspace)
    """
    data = {"workspace": workspace} if workspace else {}
    return format_result(await http_post("restart", data))


@mcp.tool()
async def daemon_status() -> str:
    """Health and per-workspace session statistics of the refactor daemon."""
    health = await http_get("health")
    if "error" in health:
        return format_result(health)
    stats = await http_get("stats")
    return format_result({"health": health, "stats": stats})

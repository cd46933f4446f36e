#!/usr/bin/env python3
"""
Core utilities shared across all Agents Refactor MCP tools.
"""

import logging
import os
import subprocess
import sys
from typing import Optional
from urllib.parse import urlparse

import aiohttp
from mcp.server.fastmcp import FastMCP
from toon import encode as toon_encode

from ..config import DEFAULT_PORT

logger = logging.getLogger(__name__)

HTTP_BASE_URL = os.environ.get("REFACTOR_HTTP_URL", f"http://localhost:{DEFAULT_PORT}")
DAEMON_PORT = urlparse(HTTP_BASE_URL).port or DEFAULT_PORT
# Longer than the daemon's own request timeout so its 504 reaches the caller
HTTP_TIMEOUT = aiohttp.ClientTimeout(total=90)

mcp = FastMCP("agents-refactor")

_http_session: Optional[aiohttp.ClientSession] = None


def ensure_daemon_running() -> bool:
    """Start the shared daemon through the manager unless it already answers."""
    result = subprocess.run(
        [sys.executable, "-m", "agents_refactor.manager", "ensure", "--port", str(DAEMON_PORT)],
        capture_output=True,
        text=True,
    )
    if result.returncode != 0:
        logger.warning("Failed to ensure daemon: %s", (result.stderr or result.stdout).strip())
        return False
    return True


async def get_session() -> aiohttp.ClientSession:
    global _http_session
    if _http_session is None or _http_session.closed:
        _http_session = aiohttp.ClientSession(timeout=HTTP_TIMEOUT)
    return _http_session


async def _call(method: str, endpoint: str, data: dict | None = None) -> dict:
    """One daemon round-trip; transport and HTTP errors come back as {"error": ...}."""
    session = await get_session()
    try:
        async with session.request(method, f"{HTTP_BASE_URL}/{endpoint}", json=data) as resp:
            if resp.status != 200:
                return {"error": f"HTTP {resp.status}: {await resp.text()}"}
            return await resp.json()
    except aiohttp.ClientError as e:
        return {"error": f"Connection error: {e}. Is the refactor daemon running on {HTTP_BASE_URL}?"}


async def http_post(endpoint: str, data: dict) -> dict:
    return await _call("POST", endpoint, data)


async def http_get(endpoint: str) -> dict:
    return await _call("GET", endpoint)


def format_result(result: dict) -> str:
    """TOON for token efficiency; errors as plain text."""
    if "error" in result:
        return f"Error: {result['error']}"
    return toon_encode(result)


def resolve_path(path: str, file_map: dict[str, str] | None) -> str:
    """Expand a short name through file_map, if one was given."""
    if not file_map:
        return path
    return file_map.get(path, path)


def with_preview(data: dict, preview: bool) -> dict:
    if preview:
        data["preview"] = True
    return data


async def cleanup():
    """Close the HTTP session; the daemon keeps running for other clients."""
    global _http_session
    if _http_session is not None and not _http_session.closed:
        await _http_session.close()
    _http_session = None

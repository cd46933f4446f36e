#!/usr/bin/env python3
"""Navigation tools: find_references."""

from ._core import mcp, http_post, format_result
from .refactoring import position


@mcp.tool()
async def find_references(filePath: str, line: int, columnOrText: int | str) -> str:
    """
    Find all references to a symbol, grouped by file.

    Args:
        filePath: Absolute path to the TypeScript/JavaScript file
        line: Line number (1-indexed)
        columnOrText: 1-indexed column, or the exact symbol text on that line
    """
    result = await http_post("find_references", {"filePath": filePath, **position(line, columnOrText)})
    return format_result(result)

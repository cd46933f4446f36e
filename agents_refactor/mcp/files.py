#!/usr/bin/env python3
"""File tools: move_file, rename_file, batch_move_files, refactor_module."""

from ._core import mcp, http_post, format_result, resolve_path, with_preview


@mcp.tool()
async def move_file(sourcePath: str, destinationPath: str, preview: bool = False) -> str:
    """
    Move a file and update every import, require() and mock path pointing at it.

    Args:
        sourcePath: File to move
        destinationPath: New path (parent directories are created)
        preview: Compute edits without moving or writing anything
    """
    result = await http_post("move_file", with_preview({
        "sourcePath": sourcePath,
        "destinationPath": destinationPath,
    }, preview))
    return format_result(result)


@mcp.tool()
async def rename_file(sourcePath: str, name: str, preview: bool = False) -> str:
    """
    Rename a file within its directory, updating imports.

    Args:
        sourcePath: File to rename
        name: New file name (no directory part)
        preview: Compute edits without renaming or writing anything
    """
    result = await http_post("rename_file", with_preview({"sourcePath": sourcePath, "name": name}, preview))
    return format_result(result)


@mcp.tool()
async def batch_move_files(
    files: list[str],
    targetFolder: str,
    preview: bool = False,
    file_map: dict[str, str] | None = None,
) -> str:
    """
    Move several files into one folder, updating imports after each move.

    Args:
        files: Files to move
        targetFolder: Destination folder (created if missing)
        preview: Compute edits without moving or writing anything
        file_map: Optional dict mapping short names to full paths
    """
    result = await http_post("batch_move_files", with_preview({
        "files": [resolve_path(f, file_map) for f in files],
        "targetFolder": targetFolder,
    }, preview))
    return format_result(result)


@mcp.tool()
async def refactor_module(sourcePath: str, destinationPath: str, preview: bool = False) -> str:
    """
    Move a file, then organize imports and apply automatic fixes in every file the move touched.

    Args:
        sourcePath: File to move
        destinationPath: New path (parent directories are created)
        preview: Show the move's edits without moving or writing anything
    """
    result = await http_post("refactor_module", with_preview({
        "sourcePath": sourcePath,
        "destinationPath": destinationPath,
    }, preview))
    return format_result(result)

#!/usr/bin/env python3
"""Refactoring tools: rename, extract_*, inline_variable, infer_return_type, organize_imports, fix_all, remove_unused."""

from ._core import mcp, http_post, format_result, resolve_path, with_preview


def position(line: int, target: int | str) -> dict:
    """A target is either a 1-indexed column or the exact text on the line."""
    if isinstance(target, str):
        return {"line": line, "text": target}
    return {"line": line, "column": target}


@mcp.tool()
async def rename(operations: list[tuple], preview: bool = False, file_map: dict[str, str] | None = None) -> str:
    """
    Rename symbols across all files in batch. Imports and exports follow.

    Args:
        operations: List of tuples (filePath, line, columnOrText, newName).
            columnOrText: 1-indexed column, or the exact symbol text on that line
        preview: Compute edits without writing files
        file_map: Optional dict mapping short names to full paths
    """
    results = []
    for filePath, line, target, newName in operations:
        result = await http_post("rename", with_preview({
            "filePath": resolve_path(filePath, file_map),
            "newName": newName,
            **position(line, target),
        }, preview))
        results.append(result)

    return format_result({"operations": results})


@mcp.tool()
async def extract_constant(
    filePath: str,
    line: int,
    text: str,
    constantName: str | None = None,
    preview: bool = False,
) -> str:
    """
    Extract a magic number or string literal to a named constant.

    Example: line 2 is `const area = 3.14159 * radius * radius;`
        extract_constant(filePath, 2, "3.14159", "PI")
        -> const PI = 3.14159;  and  const area = PI * radius * radius;

    Args:
        filePath: Absolute path to the TypeScript/JavaScript file
        line: Line number (1-indexed)
        text: Exact text to extract (first occurrence on the line)
        constantName: Name for the constant (generated if omitted)
        preview: Compute edits without writing files
    """
    result = await http_post("extract_constant", with_preview({
        "filePath": filePath,
        "line": line,
        "text": text,
        "constantName": constantName,
    }, preview))
    return format_result(result)


@mcp.tool()
async def extract_variable(
    filePath: str,
    line: int,
    text: str,
    variableName: str | None = None,
    preview: bool = False,
) -> str:
    """
    Extract an expression to a local variable.

    Args:
        filePath: Absolute path to the TypeScript/JavaScript file
        line: Line number (1-indexed)
        text: Exact expression text on that line
        variableName: Name for the variable (generated if omitted)
        preview: Compute edits without writing files
    """
    result = await http_post("extract_variable", with_preview({
        "filePath": filePath,
        "line": line,
        "text": text,
        "variableName": variableName,
    }, preview))
    return format_result(result)


@mcp.tool()
async def extract_function(
    filePath: str,
    startLine: int,
    startColumn: int,
    endLine: int,
    endColumn: int,
    functionName: str | None = None,
    preview: bool = False,
) -> str:
    """
    Extract a range of statements into a new function.

    Args:
        filePath: Absolute path to the TypeScript/JavaScript file
        startLine: Start line (1-indexed)
        startColumn: Start column (1-indexed)
        endLine: End line (1-indexed)
        endColumn: End column (1-indexed, exclusive)
        functionName: Name for the function (generated if omitted)
        preview: Compute edits without writing files
    """
    result = await http_post("extract_function", with_preview({
        "filePath": filePath,
        "startLine": startLine,
        "startColumn": startColumn,
        "endLine": endLine,
        "endColumn": endColumn,
        "functionName": functionName,
    }, preview))
    return format_result(result)


@mcp.tool()
async def organize_imports(filePaths: list[str], preview: bool = False, file_map: dict[str, str] | None = None) -> str:
    """
    Sort imports and remove unused ones in each file.

    Args:
        filePaths: Files to organize
        preview: Compute edits without writing files
        file_map: Optional dict mapping short names to full paths
    """
    results = []
    for filePath in filePaths:
        results.append(await http_post("organize_imports", with_preview({
            "filePath": resolve_path(filePath, file_map),
        }, preview)))
    return format_result({"operations": results})


@mcp.tool()
async def inline_variable(filePath: str, line: int, target: int | str, preview: bool = False) -> str:
    """
    Replace every usage of a variable with its value and remove the declaration.

    Example: `const multiplier = 2; return 5 * multiplier;` -> `return 5 * 2;`

    Args:
        filePath: Absolute path to the TypeScript/JavaScript file
        line: Line number (1-indexed) of the declaration or a usage
        target: 1-indexed column, or the exact variable name on that line
        preview: Compute edits without writing files
    """
    result = await http_post("inline_variable", with_preview({
        "filePath": filePath,
        **position(line, target),
    }, preview))
    return format_result(result)


@mcp.tool()
async def infer_return_type(filePath: str, line: int, target: int | str, preview: bool = False) -> str:
    """
    Add the compiler's inferred return type to a function signature.

    Args:
        filePath: Absolute path to the TypeScript file
        line: Line number (1-indexed) of the function
        target: 1-indexed column, or the exact function name on that line
        preview: Compute edits without writing files
    """
    result = await http_post("infer_return_type", with_preview({
        "filePath": filePath,
        **position(line, target),
    }, preview))
    return format_result(result)


@mcp.tool()
async def fix_all(filePaths: list[str], preview: bool = False, file_map: dict[str, str] | None = None) -> str:
    """
    Apply every automatic fix the compiler offers for the errors in each file.

    Args:
        filePaths: Files to fix
        preview: Compute edits without writing files
        file_map: Optional dict mapping short names to full paths
    """
    results = []
    for filePath in filePaths:
        results.append(await http_post("fix_all", with_preview({
            "filePath": resolve_path(filePath, file_map),
        }, preview)))
    return format_result({"operations": results})


@mcp.tool()
async def remove_unused(filePaths: list[str], preview: bool = False, file_map: dict[str, str] | None = None) -> str:
    """
    Delete unused imports, variables and parameters in each file.

    Args:
        filePaths: Files to clean
        preview: Compute edits without writing files
        file_map: Optional dict mapping short names to full paths
    """
    results = []
    for filePath in filePaths:
        results.append(await http_post("remove_unused", with_preview({
            "filePath": resolve_path(filePath, file_map),
        }, preview)))
    return format_result({"operations": results})

#!/usr/bin/env python3
"""File helpers: async UTF-8 I/O and text-to-position lookup."""

import asyncio
import os
import shutil
from dataclasses import dataclass
from pathlib import Path


@dataclass(frozen=True)
class Span:
    """A 1-indexed, half-open [start, end) range in a file, offsets in UTF-16 units."""
    start_line: int
    start_offset: int
    end_line: int
    end_offset: int

    def to_args(self) -> dict:
        return {
            "startLine": self.start_line,
            "startOffset": self.start_offset,
            "endLine": self.end_line,
            "endOffset": self.end_offset,
        }


class PositionError(ValueError):
    """The requested line/text does not resolve to a position."""


def _read(path: str) -> str:
    with open(path, "r", encoding="utf-8", newline="") as f:
        return f.read()


def _write(path: str, content: str) -> None:
    with open(path, "w", encoding="utf-8", newline="") as f:
        f.write(content)


async def read_text(path: str) -> str:
    return await asyncio.to_thread(_read, path)


async def write_text(path: str, content: str) -> None:
    await asyncio.to_thread(_write, path, content)


async def read_lines(path: str) -> list[str]:
    return (await read_text(path)).split("\n")


async def move_file(source: str, destination: str) -> None:
    """Move a file, creating the destination directory first."""
    def _move():
        Path(destination).parent.mkdir(parents=True, exist_ok=True)
        shutil.move(source, destination)

    await asyncio.to_thread(_move)


def resolve_path(path: str, root: str | None = None) -> str:
    """Absolute, normalized path; relative paths resolve against root."""
    if root and not os.path.isabs(path):
        path = os.path.join(root, path)
    return os.path.abspath(path)


def offset_to_index(line: str, offset: int) -> int:
    """0-based string index for a 1-based tsserver offset on one line.

    tsserver counts UTF-16 code units, so a character outside the Basic
    Multilingual Plane spans two offsets but only one Python index.
    Offsets past the end of the line map past the end of the string.
    """
    units = offset - 1
    if line.isascii():
        return max(units, 0)
    index = 0
    while units > 0 and index < len(line):
        units -= 2 if ord(line[index]) > 0xFFFF else 1
        index += 1
    return index + max(units, 0)


def index_to_offset(line: str, index: int) -> int:
    """1-based tsserver (UTF-16) offset for a 0-based string index."""
    return len(line[:index].encode("utf-16-le")) // 2 + 1


def find_text_position(lines: list[str], line: int, text: str) -> Span:
    """Span of the first occurrence of text on a 1-indexed line."""
    index = line - 1
    if index < 0 or index >= len(lines):
        raise PositionError(f"Line {line} is out of range (file has {len(lines)} lines)")

    content = lines[index]
    column = content.find(text)
    if column == -1:
        raise PositionError(
            f'Text "{text}" not found on line {line}\n\n'
            f"Line content: {content}\n\n"
            "Try:\n"
            "  1. Check the text matches exactly (case-sensitive)\n"
            "  2. Ensure you're on the correct line\n"
            "  3. Use explicit start/end columns if the text appears multiple times"
        )
    return Span(line, index_to_offset(content, column), line, index_to_offset(content, column + len(text)))


def identifier_at(lines: list[str], line: int, offset: int) -> str | None:
    """Identifier starting at a 1-indexed line and tsserver offset, if any."""
    if not 1 <= line <= len(lines):
        return None
    content = lines[line - 1]
    if offset < 1:
        return None
    start = offset_to_index(content, offset)
    if start >= len(content):
        return None
    end = start
    while end < len(content) and (content[end].isalnum() or content[end] in "_$"):
        end += 1
    return content[start:end] or None

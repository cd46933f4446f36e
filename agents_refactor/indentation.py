#!/usr/bin/env python3
"""Indentation detection for inserted declarations and format options."""

import re

LEADING_WHITESPACE = re.compile(r"^[ \t]*")


def leading_whitespace(line: str) -> str:
    return LEADING_WHITESPACE.match(line).group(0)


class IndentationDetector:
    def __init__(self, search_window: int = 3, default_unit: str = "  "):
        self.search_window = search_window
        self.default_unit = default_unit

    def extract_indent(self, line: str) -> str | None:
        """Leading whitespace of a non-blank line; None for blank lines."""
        if not line.strip():
            return None
        return leading_whitespace(line)

    def detect(self, lines: list[str], index: int) -> str | None:
        """Indentation of the nearest non-blank line around a 0-indexed line.

        Searches forward from index (inclusive), then backward, each within
        the search window.
        """
        end = min(index + self.search_window, len(lines))
        for i in range(max(index, 0), end):
            indent = self.extract_indent(lines[i])
            if indent is not None:
                return indent

        begin = max(0, index - self.search_window)
        for i in range(min(index, len(lines)) - 1, begin - 1, -1):
            indent = self.extract_indent(lines[i])
            if indent is not None:
                return indent
        return None

    def detect_unit(self, lines: list[str]) -> str:
        """Smallest indent step used by the file (tab or N spaces)."""
        widths = set()
        for line in lines:
            indent = self.extract_indent(line)
            if not indent or line.lstrip().startswith("*"):  # skip doc-comment bodies
                continue
            if indent.startswith("\t"):
                return "\t"
            widths.add(len(indent))
        if not widths:
            return self.default_unit
        return " " * min(widths)

    def format_options(self, lines: list[str]) -> dict:
        """tsserver formatOptions matching the file's indentation."""
        unit = self.detect_unit(lines)
        size = 4 if unit == "\t" else len(unit)
        return {
            "indentSize": size,
            "tabSize": size,
            "convertTabsToSpaces": unit != "\t",
        }

#!/usr/bin/env python3
"""
Agents Refactor - String literal path updates

The compiler rewrites import and export specifiers when a file moves, but
not module paths that only appear as plain string literals: jest.mock(),
vi.mock(), require() and dynamic import() calls. This finds literals that
exactly equal the moved file's old relative specifier and produces edits
pointing them at the new location.
"""

import os
import re
from typing import Iterable

from .edits import TextEdit
from .files import index_to_offset

STRING_LITERAL = re.compile(r"""(['"])(.+?)\1""")
IMPORT_EXPORT_LINE = re.compile(r"^\s*(?:import|export)\s")
TS_EXTENSION = re.compile(r"\.tsx?$")


def relative_specifier(from_file: str, to_file: str) -> str:
    """Module specifier for to_file as written inside from_file."""
    path = os.path.relpath(to_file, os.path.dirname(from_file)).replace("\\", "/")
    if not path.startswith("."):
        path = "./" + path
    return TS_EXTENSION.sub(".js", path)


class StringLiteralPathUpdater:
    def find_updates(self, content: str, file_path: str, old_path: str, new_path: str) -> list[TextEdit]:
        """Edits for every string literal in content equal to old_path's specifier."""
        old_specifier = relative_specifier(file_path, old_path)
        new_specifier = relative_specifier(file_path, new_path)
        if old_specifier == new_specifier:
            return []

        edits = []
        for index, line in enumerate(content.split("\n")):
            if IMPORT_EXPORT_LINE.match(line):
                continue
            for match in STRING_LITERAL.finditer(line):
                if match.group(2) != old_specifier:
                    continue
                # The literal's contents, quotes excluded
                start = index_to_offset(line, match.start(2))
                end = index_to_offset(line, match.end(2))
                edits.append(TextEdit(file_path, index + 1, start, index + 1, end, new_specifier))
        return edits

    def merge(self, compiler_edits: Iterable[TextEdit], updates: Iterable[TextEdit]) -> list[TextEdit]:
        """Compiler edits plus the updates that do not overlap any of them."""
        merged = list(compiler_edits)
        taken = [(e.file, (e.start_line, e.start_offset), (e.end_line, e.end_offset)) for e in merged]
        for update in updates:
            start = (update.start_line, update.start_offset)
            end = (update.end_line, update.end_offset)
            if any(f == update.file and start < t_end and t_start < end for f, t_start, t_end in taken):
                continue
            merged.append(update)
        return merged

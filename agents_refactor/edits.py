#!/usr/bin/env python3
"""
Agents Refactor - Edit application

Applies batches of position-addressed text edits to in-memory file content.
Every edit in a batch is addressed against the file as it was before the
batch, so edits are applied bottom to top, right to left: each mutation
happens strictly after the positions of the edits still waiting.
"""

import os
import re
from dataclasses import dataclass, field
from typing import Iterable

from .errors import EditRangeError
from .files import offset_to_index
from .indentation import IndentationDetector, leading_whitespace

# Declarations whose indentation is normalized after extraction
CONST_DECLARATION = re.compile(r"^\s*(?:export\s+)?(?:const|let|var)\s+[\w$]+")


@dataclass(frozen=True)
class TextEdit:
    """Replace [start, end) of a file with new_text.

    Lines and offsets are 1-indexed; offsets count UTF-16 code units as
    tsserver does.
    """
    file: str
    start_line: int
    start_offset: int
    end_line: int
    end_offset: int
    new_text: str

    @classmethod
    def from_change(cls, file: str, change: dict) -> "TextEdit":
        """Build from a tsserver CodeEdit ({start, end, newText})."""
        return cls.from_location(file, change, change.get("newText", ""))

    @classmethod
    def from_location(cls, file: str, location: dict, new_text: str) -> "TextEdit":
        start, end = location["start"], location["end"]
        text = location.get("prefixText", "") + new_text + location.get("suffixText", "")
        return cls(file, start["line"], start["offset"], end["line"], end["offset"], text)

    @property
    def order_key(self) -> tuple:
        return (self.start_line, self.start_offset, self.end_line, self.end_offset, self.new_text)


@dataclass
class EditRecord:
    line: int
    column: int
    old: str
    new: str

    def to_dict(self) -> dict:
        return {"line": self.line, "column": self.column, "old": self.old, "new": self.new}


@dataclass
class FileChangeReport:
    path: str
    edits: list[EditRecord] = field(default_factory=list)

    @property
    def file(self) -> str:
        return os.path.basename(self.path)

    def to_dict(self) -> dict:
        return {
            "file": self.file,
            "path": self.path,
            "edits": [e.to_dict() for e in self.edits],
        }


@dataclass
class AppliedFile:
    path: str
    original: str
    content: str
    report: FileChangeReport

    @property
    def changed(self) -> bool:
        return self.content != self.original


def file_edits(file_code_edits: Iterable[dict] | None) -> list[TextEdit]:
    """Flatten tsserver FileCodeEdits ([{fileName, textChanges}]) into TextEdits."""
    edits = []
    for entry in file_code_edits or []:
        for change in entry.get("textChanges", []):
            edits.append(TextEdit.from_change(entry["fileName"], change))
    return edits


def overlaps(a: TextEdit, b: TextEdit) -> bool:
    if a.file != b.file:
        return False
    return (a.start_line, a.start_offset) < (b.end_line, b.end_offset) and \
        (b.start_line, b.start_offset) < (a.end_line, a.end_offset)


def without_overlaps(edits: Iterable[TextEdit]) -> list[TextEdit]:
    """Keep the first of any duplicate or overlapping edits.

    Combined fixes for different error codes can touch the same span.
    """
    kept: list[TextEdit] = []
    for edit in edits:
        if any(edit == other or overlaps(edit, other) for other in kept):
            continue
        kept.append(edit)
    return kept


def group_by_file(edits: Iterable[TextEdit]) -> dict[str, list[TextEdit]]:
    """Group edits per file, keeping files in first-seen order."""
    grouped: dict[str, list[TextEdit]] = {}
    for edit in edits:
        grouped.setdefault(edit.file, []).append(edit)
    return grouped


class EditApplicator:
    def __init__(self, indentation: IndentationDetector | None = None):
        self.indentation = indentation or IndentationDetector()

    def sort_edits(self, edits: Iterable[TextEdit]) -> list[TextEdit]:
        """Bottom-to-top, right-to-left. A total order, so any permutation of
        the same batch is applied identically."""
        return sorted(edits, key=lambda e: e.order_key, reverse=True)

    def apply(self, lines: list[str], edits: Iterable[TextEdit]) -> list[str]:
        """Apply edits to a copy of lines and return the new lines."""
        result = list(lines)
        for edit in self.sort_edits(edits):
            self._check_range(result, edit)
            self._splice(result, edit, edit.new_text)
        return result

    def apply_file(
        self,
        path: str,
        content: str,
        edits: Iterable[TextEdit],
        declaration: re.Pattern | None = None,
    ) -> AppliedFile:
        """Apply one file's complete batch and build its change report.

        With a declaration pattern, inserted declaration lines are
        re-indented to match their surroundings.
        """
        lines = content.split("\n")
        records = []

        for edit in self.sort_edits(edits):
            self._check_range(lines, edit)
            new_text = edit.new_text
            if declaration is not None:
                new_text = self.normalize_declaration(lines, edit, declaration)

            records.append(EditRecord(edit.start_line, edit.start_offset, self.capture(lines, edit), new_text))
            self._splice(lines, edit, new_text)

        # Application order is bottom-up; present the report top-down
        records.sort(key=lambda r: (r.line, r.column))
        return AppliedFile(path, content, "\n".join(lines), FileChangeReport(path, records))

    def capture(self, lines: list[str], edit: TextEdit) -> str:
        """Current text of the edit's span."""
        start, end = edit.start_line - 1, edit.end_line - 1
        start_col = offset_to_index(lines[start], edit.start_offset)
        end_col = offset_to_index(lines[end], edit.end_offset)
        if start == end:
            return lines[start][start_col:end_col]

        parts = [lines[start][start_col:]]
        parts.extend(lines[start + 1:end])
        parts.append(lines[end][:end_col])
        return "\n".join(parts)

    def normalize_declaration(self, lines: list[str], edit: TextEdit, declaration: re.Pattern) -> str:
        """Re-indent the declaration line inside edit.new_text to match the
        nearest non-blank line around the insertion point."""
        text_lines = edit.new_text.split("\n")
        index = next((i for i, line in enumerate(text_lines) if declaration.search(line)), None)
        if index is None:
            return edit.new_text

        target = self.indentation.detect(lines, edit.start_line - 1)
        if target is None:
            return edit.new_text

        wanted = target
        if index == 0:
            # The first inserted line continues whatever precedes the insertion point
            line = lines[edit.start_line - 1]
            prefix = line[:offset_to_index(line, edit.start_offset)]
            if prefix.strip() or not target.startswith(prefix):
                return edit.new_text
            wanted = target[len(prefix):]

        inserted = leading_whitespace(text_lines[index])
        if inserted == wanted:
            return edit.new_text

        text_lines[index] = wanted + text_lines[index][len(inserted):]
        return "\n".join(text_lines)

    def _splice(self, lines: list[str], edit: TextEdit, new_text: str) -> None:
        start, end = edit.start_line - 1, edit.end_line - 1
        before = lines[start][:offset_to_index(lines[start], edit.start_offset)]
        after = lines[end][offset_to_index(lines[end], edit.end_offset):]
        # Multi-line spans collapse into one line; embedded newlines stay in
        # the string until the final join
        lines[start:end + 1] = [before + new_text + after]

    def _check_range(self, lines: list[str], edit: TextEdit) -> None:
        for line in (edit.start_line, edit.end_line):
            if line < 1 or line > len(lines):
                raise EditRangeError(edit.file, line, len(lines))
        if (edit.end_line, edit.end_offset) < (edit.start_line, edit.start_offset):
            raise EditRangeError(edit.file, edit.end_line, len(lines))

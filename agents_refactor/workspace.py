#!/usr/bin/env python3
"""
Agents Refactor - Workspace buffer

An in-memory view of the files one operation touches. Each file's complete
edit list resolves to a single buffer before anything is written, and
nothing is written at all in preview mode.
"""

import logging
import re
from typing import Iterable

from . import files
from .edits import EditApplicator, FileChangeReport, TextEdit, group_by_file

logger = logging.getLogger(__name__)


class WorkspaceBuffer:
    def __init__(self, applicator: EditApplicator | None = None, preview: bool = False):
        self.applicator = applicator or EditApplicator()
        self.preview = preview
        self._contents: dict[str, str] = {}
        self._originals: dict[str, str] = {}
        self._dirty: set[str] = set()

    @property
    def paths(self) -> list[str]:
        """Files changed by this operation so far, in first-touched order."""
        return [p for p in self._contents if self._contents[p] != self._originals[p]]

    async def read(self, path: str) -> str:
        """Buffered content, loading it from disk on first access."""
        if path not in self._contents:
            content = await files.read_text(path)
            self._contents[path] = content
            self._originals[path] = content
        return self._contents[path]

    def content(self, path: str) -> str | None:
        return self._contents.get(path)

    async def apply(
        self,
        edits: Iterable[TextEdit],
        declaration: re.Pattern | None = None,
    ) -> list[FileChangeReport]:
        """Apply a batch that may span several files; one report per file."""
        grouped = group_by_file(edits)
        # Load everything first so a missing file fails the batch before any buffer changes
        for path in grouped:
            await self.read(path)

        # Every file's batch must apply before any buffer takes the result
        applied = [
            self.applicator.apply_file(path, self._contents[path], file_edits, declaration)
            for path, file_edits in grouped.items()
        ]
        for result in applied:
            self._contents[result.path] = result.content
            self._dirty.add(result.path)
        return [result.report for result in applied]

    async def flush(self) -> list[str]:
        """Write every modified buffer; returns the written paths."""
        if self.preview:
            return []

        written = []
        for path in list(self._contents):
            if path not in self._dirty:
                continue
            await files.write_text(path, self._contents[path])
            logger.debug("Wrote %s", path)
            written.append(path)
        self._dirty.clear()
        return written

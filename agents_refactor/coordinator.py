#!/usr/bin/env python3
"""
Agents Refactor - Extract-then-rename

The compiler's extraction refactors cannot take a target name: they insert
a declaration with a generated placeholder (newLocal, newFunction) and
leave renaming to the client. RenameCoordinator runs the extraction,
finds the placeholder declaration in the produced text, and renames it
through the compiler so every usage follows.

Both stages work through one WorkspaceBuffer, so preview mode runs the
full pipeline without touching the disk.
"""

import logging
import re
from dataclasses import dataclass, field

from . import protocol
from .edits import FileChangeReport, TextEdit, file_edits
from .errors import RequestFailedError
from .files import Span, identifier_at, index_to_offset
from .workspace import WorkspaceBuffer

logger = logging.getLogger(__name__)

CONSTANT_PATTERN = re.compile(r"\b(?:const|let|var)\s+([\w$]+)\s*(?::[^=]+)?=")
FUNCTION_PATTERN = re.compile(r"\bfunction\s+([\w$]+)\s*[(<]")


@dataclass
class DeclarationSite:
    path: str
    name: str
    line: int
    offset: int


class DeclarationLocator:
    """Finds the declaration an extraction inserted."""

    def __init__(self, pattern: re.Pattern):
        self.pattern = pattern

    @classmethod
    def constant(cls) -> "DeclarationLocator":
        return cls(CONSTANT_PATTERN)

    @classmethod
    def function(cls) -> "DeclarationLocator":
        return cls(FUNCTION_PATTERN)

    def declared_names(self, edits: list[TextEdit]) -> set[str]:
        names = set()
        for edit in edits:
            names.update(m.group(1) for m in self.pattern.finditer(edit.new_text))
        return names

    def locate(self, buffer: WorkspaceBuffer, edits: list[TextEdit], edit_info: dict) -> DeclarationSite | None:
        """Declaration site in buffered content, or None if missing or ambiguous."""
        names = self.declared_names(edits)
        if not names:
            return None

        site = self._from_rename_location(buffer, edit_info, names)
        if site is not None:
            return site

        if len(names) > 1:
            logger.debug("Ambiguous declarations after extraction: %s", sorted(names))
            return None
        name = names.pop()

        matches = []
        for path in {edit.file for edit in edits}:
            content = buffer.content(path) or ""
            for index, line in enumerate(content.split("\n")):
                for match in self.pattern.finditer(line):
                    if match.group(1) == name:
                        matches.append(DeclarationSite(path, name, index + 1, index_to_offset(line, match.start(1))))

        if len(matches) != 1:
            logger.debug("Found %d declaration(s) of %s, expected one", len(matches), name)
            return None
        return matches[0]

    def _from_rename_location(self, buffer, edit_info, names) -> DeclarationSite | None:
        location = edit_info.get("renameLocation")
        path = edit_info.get("renameFilename")
        if not location or not path:
            return None

        content = buffer.content(path)
        if content is None:
            return None
        line, offset = location["line"], location["offset"]
        name = identifier_at(content.split("\n"), line, offset)
        if name not in names:
            return None
        return DeclarationSite(path, name, line, offset)


@dataclass
class ExtractOutcome:
    reports: list[FileChangeReport] = field(default_factory=list)
    site: DeclarationSite | None = None

    @property
    def placeholder(self) -> str | None:
        return self.site.name if self.site else None


class ExtractStage:
    def __init__(self, session, buffer: WorkspaceBuffer, locator: DeclarationLocator, declaration: re.Pattern | None = None):
        self.session = session
        self.buffer = buffer
        self.locator = locator
        self.declaration = declaration

    async def run(self, path: str, span: Span, refactor: str, action: str) -> ExtractOutcome:
        edit_info = await self.session.request(
            protocol.GET_EDITS_FOR_REFACTOR,
            {"file": path, **span.to_args(), "refactor": refactor, "action": action},
        )
        edits = file_edits((edit_info or {}).get("edits"))
        if not edits:
            return ExtractOutcome()

        reports = await self.buffer.apply(edits, self.declaration)
        await self.buffer.flush()
        site = self.locator.locate(self.buffer, edits, edit_info)
        logger.debug("Extraction touched %d file(s), declaration: %s", len(reports), site)
        return ExtractOutcome(reports, site)


class RenameStage:
    def __init__(self, session, buffer: WorkspaceBuffer):
        self.session = session
        self.buffer = buffer

    async def run(self, site: DeclarationSite, new_name: str) -> list[FileChangeReport] | None:
        """Rename the declaration at site; None when the compiler has nothing to rename."""
        # The compiler must see the buffered text, which differs from disk in preview mode
        for path in self.buffer.paths:
            await self.session.open_file(path, content=self.buffer.content(path))

        body = await self.session.request(protocol.RENAME, {
            "file": site.path,
            "line": site.line,
            "offset": site.offset,
            "findInComments": False,
            "findInStrings": False,
        })
        if not body or not body.get("locs"):
            return None

        edits = [
            TextEdit.from_location(group["file"], loc, new_name)
            for group in body["locs"]
            for loc in group.get("locs", [])
        ]
        reports = await self.buffer.apply(edits)
        await self.buffer.flush()
        return reports


class RenameCoordinator:
    def __init__(
        self,
        session,
        buffer: WorkspaceBuffer,
        locator: DeclarationLocator,
        declaration: re.Pattern | None = None,
    ):
        self.session = session
        self.buffer = buffer
        self.extract = ExtractStage(session, buffer, locator, declaration)
        self.rename = RenameStage(session, buffer)

    async def run(
        self,
        path: str,
        span: Span,
        refactor: str,
        action: str,
        new_name: str | None = None,
    ) -> ExtractOutcome:
        outcome = await self.extract.run(path, span, refactor, action)
        if not outcome.reports:
            return outcome

        try:
            if new_name and outcome.site and outcome.placeholder != new_name:
                await self._rename(outcome, new_name)
            elif new_name and not outcome.site:
                logger.info("Could not locate the extracted declaration, keeping generated name")
        finally:
            await self._resync()
        return outcome

    async def _rename(self, outcome: ExtractOutcome, new_name: str) -> None:
        placeholder = outcome.placeholder
        try:
            renamed = await self.rename.run(outcome.site, new_name)
        except RequestFailedError as e:
            logger.warning("Rename of %s failed, keeping generated name: %s", placeholder, e.server_message)
            return
        if renamed is None:
            logger.info("Nothing to rename at %s:%d", outcome.site.path, outcome.site.line)
            return

        rewrite_placeholder(outcome.reports, placeholder, new_name)
        known = {report.path for report in outcome.reports}
        outcome.reports.extend(r for r in renamed if r.path not in known)
        outcome.site.name = new_name

    async def _resync(self) -> None:
        """Point the compiler back at what is on disk for every touched file."""
        if not self.session.is_running():
            return
        for path in self.buffer.paths:
            await self.session.open_file(path, force=True)


def rewrite_placeholder(reports: list[FileChangeReport], placeholder: str, new_name: str) -> None:
    """Replace whole-word occurrences of placeholder in each report's new text."""
    pattern = re.compile(rf"(?<![\w$]){re.escape(placeholder)}(?![\w$])")
    for report in reports:
        for edit in report.edits:
            edit.new = pattern.sub(new_name, edit.new)

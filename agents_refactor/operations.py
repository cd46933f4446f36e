#!/usr/bin/env python3
"""
Agents Refactor - Operations

One method per refactoring. Each one resolves positions, waits (bounded)
for the project to finish indexing, opens related files, asks tsserver for
edits and applies them through a WorkspaceBuffer. Expected failures come
back as RefactorResult(success=False) with guidance, never as exceptions.
"""

import asyncio
import errno
import logging
import os
from typing import Callable

from . import files, protocol
from .config import Settings
from .coordinator import DeclarationLocator, RenameCoordinator
from .discovery import RelatedFileDiscovery
from .edits import CONST_DECLARATION, EditApplicator, FileChangeReport, TextEdit, file_edits, without_overlaps
from .errors import RefactorError
from .files import PositionError, Span
from .gate import ProjectLoadGate
from .paths import StringLiteralPathUpdater
from .results import PreviewInfo, RefactorResult
from .workspace import WorkspaceBuffer

logger = logging.getLogger(__name__)

EXTRACT_CONSTANT_KIND = "refactor.extract.constant"
EXTRACT_FUNCTION_KIND = "refactor.extract.function"
INLINE_KIND = "refactor.inline"
RETURN_TYPE_KIND = "refactor.rewrite.function.returnType"
# unusedIdentifier_delete and unusedIdentifier_deleteImports
UNUSED_FIX_PREFIX = "unusedIdentifier_delete"

RENAME_HINTS = [
    "Check the position is on a valid identifier",
    "Use find_references to verify the symbol exists",
    "Ensure the file is saved and TypeScript can analyze it",
]
EXTRACT_HINTS = [
    "Check that the file is saved and syntactically valid",
    "Ensure TypeScript can parse the selected code",
    "Verify the selection is a complete expression or statement",
]
INLINE_HINTS = [
    "Place the position on a variable name, in its declaration or a usage",
    "Ensure the variable is initialized and never reassigned",
    "Check that the file is saved and syntactically valid",
]
RETURN_TYPE_HINTS = [
    "Place the position on a function name or signature",
    "Ensure the function does not already declare a return type",
    "Verify TypeScript can infer the return type from the body",
]
FIX_HINTS = [
    "Ensure the file exists and is a valid TypeScript file",
    "Check that TypeScript can compile the file",
    "Some errors have no automatic fix",
]
MOVE_HINTS = [
    "Ensure the source file exists and the destination path is valid",
    "Check that the destination directory is writable",
    "Verify no other file exists at the destination path",
]


def _constant_action(action: dict) -> bool:
    description = (action.get("description") or "").lower()
    return action["name"].startswith("constant_scope_") or "constant" in description or "enclosing" in description


def _variable_action(action: dict) -> bool:
    return action["name"].startswith("constant_scope_")


def _function_action(action: dict) -> bool:
    description = action.get("description") or ""
    return "function in module scope" in description or "Extract to function" in description


def _mentions(value: str | None, keywords: tuple[str, ...]) -> bool:
    value = (value or "").lower()
    return any(keyword in value for keyword in keywords)


def _merge_reports(reports: list[FileChangeReport]) -> list[FileChangeReport]:
    """One report per path, edits concatenated in arrival order."""
    merged: dict[str, FileChangeReport] = {}
    for report in reports:
        if report.path in merged:
            merged[report.path].edits.extend(report.edits)
        else:
            merged[report.path] = FileChangeReport(report.path, list(report.edits))
    return list(merged.values())


class RefactorOperations:
    def __init__(
        self,
        session,
        settings: Settings | None = None,
        gate: ProjectLoadGate | None = None,
        discovery: RelatedFileDiscovery | None = None,
        applicator: EditApplicator | None = None,
    ):
        self.session = session
        self.settings = settings or Settings()
        self.gate = gate or ProjectLoadGate.from_settings(session, self.settings)
        self.discovery = discovery or RelatedFileDiscovery.from_settings(session, self.gate, self.settings)
        self.applicator = applicator or EditApplicator()
        self.path_updater = StringLiteralPathUpdater()

    # --- Symbols ---

    async def rename(
        self,
        file_path: str,
        new_name: str,
        line: int,
        column: int | None = None,
        text: str | None = None,
        preview: bool = False,
    ) -> RefactorResult:
        """Rename the symbol at a position across every file that uses it."""
        if not new_name:
            return RefactorResult.failure("New name cannot be empty")

        async def run():
            path = self._resolve(file_path)
            line_, offset = await self._position(path, line, column, text)
            await self._ready()
            status = await self.discovery.discover(path)

            body = await self.session.request(protocol.RENAME, {
                "file": path,
                "line": line_,
                "offset": offset,
                "findInComments": False,
                "findInStrings": False,
            })
            info = (body or {}).get("info") or {}
            if not body or not body.get("locs"):
                reason = info.get("localizedErrorMessage")
                message = f"Cannot rename: No symbol found at {path}:{line_}:{offset}"
                if reason:
                    message += f" ({reason})"
                return RefactorResult.failure(message, RENAME_HINTS)

            edits = [
                TextEdit.from_location(group["file"], loc, new_name)
                for group in body["locs"]
                for loc in group.get("locs", [])
            ]
            buffer = WorkspaceBuffer(self.applicator, preview)
            reports = await buffer.apply(edits)
            await self._commit(buffer)

            warning = self.discovery.build_warning_message(status, "references")
            if preview:
                return RefactorResult(
                    True,
                    f'Preview: Would rename to "{new_name}" in {len(reports)} file(s)',
                    reports,
                    preview=PreviewInfo(len(reports)),
                ).with_warning(warning)
            return RefactorResult(
                True,
                f'Renamed to "{new_name}" in {len(reports)} file(s)',
                reports,
                next_actions=["find_references - Verify the rename reached every usage"],
            ).with_warning(warning)

        return await self._guard("Rename", run, RENAME_HINTS)

    async def find_references(
        self,
        file_path: str,
        line: int,
        column: int | None = None,
        text: str | None = None,
    ) -> RefactorResult:
        """List every reference to the symbol at a position, grouped by file."""
        async def run():
            path = self._resolve(file_path)
            line_, offset = await self._position(path, line, column, text)
            await self._ready()
            status = await self.discovery.discover(path)

            body = await self.session.request(protocol.REFERENCES, {"file": path, "line": line_, "offset": offset})
            refs = (body or {}).get("refs") or []
            warning = self.discovery.build_warning_message(status, "references")
            if not refs:
                return RefactorResult(True, "No references found").with_warning(warning)

            grouped: dict[str, list[dict]] = {}
            for ref in refs:
                grouped.setdefault(ref["file"], []).append(ref)

            lines = [f"Found {len(refs)} reference(s) in {len(grouped)} file(s):"]
            for ref_file, entries in grouped.items():
                lines.append("")
                lines.append(f"{os.path.basename(ref_file)} ({ref_file}):")
                for ref in entries:
                    marker = " [definition]" if ref.get("isDefinition") else ""
                    text_ = (ref.get("lineText") or "").strip()
                    lines.append(f"  Line {ref['start']['line']}: {text_}{marker}")
            return RefactorResult(True, "\n".join(lines)).with_warning(warning)

        return await self._guard("Find references", run)

    # --- Extraction ---

    async def extract_constant(
        self,
        file_path: str,
        constant_name: str | None = None,
        line: int | None = None,
        text: str | None = None,
        start_line: int | None = None,
        start_column: int | None = None,
        end_line: int | None = None,
        end_column: int | None = None,
        preview: bool = False,
    ) -> RefactorResult:
        """Extract a literal or expression into a named constant."""
        async def run():
            path = self._resolve(file_path)
            span = await self._span(path, line, text, start_line, start_column, end_line, end_column)
            return await self._extract(
                "constant", path, span, EXTRACT_CONSTANT_KIND, ("Extract Symbol", "Extract to constant"),
                _constant_action, DeclarationLocator.constant(), constant_name, preview,
            )

        return await self._guard("Extract constant", run, EXTRACT_HINTS)

    async def extract_variable(
        self,
        file_path: str,
        variable_name: str | None = None,
        line: int | None = None,
        text: str | None = None,
        start_line: int | None = None,
        start_column: int | None = None,
        end_line: int | None = None,
        end_column: int | None = None,
        preview: bool = False,
    ) -> RefactorResult:
        """Extract an expression into a local variable."""
        async def run():
            path = self._resolve(file_path)
            span = await self._span(path, line, text, start_line, start_column, end_line, end_column)
            return await self._extract(
                "variable", path, span, EXTRACT_CONSTANT_KIND, ("Extract Symbol", "Extract to constant"),
                _variable_action, DeclarationLocator.constant(), variable_name, preview,
                fallback_to_first=True,
            )

        return await self._guard("Extract variable", run, EXTRACT_HINTS)

    async def extract_function(
        self,
        file_path: str,
        start_line: int,
        start_column: int,
        end_line: int,
        end_column: int,
        function_name: str | None = None,
        preview: bool = False,
    ) -> RefactorResult:
        """Extract a range of statements into a new function."""
        async def run():
            path = self._resolve(file_path)
            span = await self._span(path, None, None, start_line, start_column, end_line, end_column)
            return await self._extract(
                "function", path, span, EXTRACT_FUNCTION_KIND, ("Extract Symbol", "Extract function"),
                _function_action, DeclarationLocator.function(), function_name, preview,
                fallback_to_first=True, declaration=None,
            )

        return await self._guard("Extract function", run, EXTRACT_HINTS)

    async def _extract(
        self,
        label: str,
        path: str,
        span: Span,
        kind: str,
        refactor_names: tuple[str, ...],
        pick_action: Callable[[dict], bool],
        locator: DeclarationLocator,
        new_name: str | None,
        preview: bool,
        fallback_to_first: bool = False,
        declaration=CONST_DECLARATION,
    ) -> RefactorResult:
        advisory = await self._ready()
        await self.session.open_file(path)
        await self._configure_format(path)

        refactors = await self.session.request(protocol.GET_APPLICABLE_REFACTORS, {
            "file": path,
            **span.to_args(),
            "triggerReason": "invoked",
            "kind": kind,
        })
        where = f"{path}:{span.start_line}:{span.start_offset}"
        if not refactors:
            return RefactorResult.failure(f"Cannot extract {label}: nothing extractable at {where}", EXTRACT_HINTS)

        refactor = next((r for r in refactors if r.get("name") in refactor_names), None)
        if refactor is None:
            available = ", ".join(r.get("name", "?") for r in refactors)
            return RefactorResult.failure(
                f"Extract {label} not available at {where}\n\nAvailable refactorings: {available}",
                ["Try a different selection or use one of the available refactorings"],
            )

        actions = refactor.get("actions") or []
        action = next((a for a in actions if pick_action(a)), None)
        if action is None and fallback_to_first and actions:
            action = actions[0]
        if action is None:
            details = ", ".join(f"{a['name']} ({a.get('description', '')})" for a in actions)
            return RefactorResult.failure(
                f"No {label} action available at {where}",
                ["Ensure the selection is eligible for extraction", f"Available actions: {details or 'none'}"],
            )

        logger.debug("Extracting %s with %s / %s", label, refactor["name"], action["name"])
        buffer = WorkspaceBuffer(self.applicator, preview)
        coordinator = RenameCoordinator(self.session, buffer, locator, declaration)
        outcome = await coordinator.run(path, span, refactor["name"], action["name"], new_name)
        if not outcome.reports:
            return RefactorResult.failure(f"No edits generated for extract {label} at {where}", EXTRACT_HINTS)

        named = f' "{outcome.placeholder}"' if outcome.placeholder else ""
        warning = advisory.message if advisory else ""
        if preview:
            return RefactorResult(
                True,
                f"Preview: Would extract {label}{named}",
                outcome.reports,
                preview=PreviewInfo(len(outcome.reports)),
            ).with_warning(warning)
        return RefactorResult(
            True,
            f"Extracted {label}{named}",
            outcome.reports,
            next_actions=["organize_imports - Clean up imports if needed"],
        ).with_warning(warning)

    # --- Rewrites ---

    async def inline_variable(
        self,
        file_path: str,
        line: int,
        column: int | None = None,
        text: str | None = None,
        preview: bool = False,
    ) -> RefactorResult:
        """Replace every usage of a variable with its value and drop the declaration."""
        async def run():
            path = self._resolve(file_path)
            line_, offset = await self._position(path, line, column, text)
            return await self._rewrite(
                "inline variable", path, Span(line_, offset, line_, offset), INLINE_KIND, ("inline",),
                preview, "Inlined variable", INLINE_HINTS,
            )

        return await self._guard("Inline variable", run, INLINE_HINTS)

    async def infer_return_type(
        self,
        file_path: str,
        line: int,
        column: int | None = None,
        text: str | None = None,
        preview: bool = False,
    ) -> RefactorResult:
        """Write the inferred return type onto a function signature."""
        async def run():
            path = self._resolve(file_path)
            line_, offset = await self._position(path, line, column, text)
            return await self._rewrite(
                "infer return type", path, Span(line_, offset, line_, offset), RETURN_TYPE_KIND, ("infer", "return"),
                preview, "Inferred return type", RETURN_TYPE_HINTS,
                next_actions=["organize_imports - Add any missing type imports"],
            )

        return await self._guard("Infer return type", run, RETURN_TYPE_HINTS)

    async def _rewrite(
        self,
        label: str,
        path: str,
        span: Span,
        kind: str,
        keywords: tuple[str, ...],
        preview: bool,
        done: str,
        hints: list[str],
        next_actions: list[str] | None = None,
    ) -> RefactorResult:
        """Run one applicable refactor whose edits need no follow-up rename."""
        advisory = await self._ready()
        await self.session.open_file(path)

        refactors = await self.session.request(protocol.GET_APPLICABLE_REFACTORS, {
            "file": path,
            **span.to_args(),
            "triggerReason": "invoked",
            "kind": kind,
        })
        where = f"{path}:{span.start_line}:{span.start_offset}"
        if not refactors:
            return RefactorResult.failure(f"Cannot {label}: not available at {where}", hints)

        refactor = next((r for r in refactors if _mentions(r.get("name"), keywords)), None)
        if refactor is None:
            available = ", ".join(r.get("name", "?") for r in refactors)
            return RefactorResult.failure(
                f"{label.capitalize()} not available at {where}\n\nAvailable refactorings: {available}",
                ["Try a different location or use one of the available refactorings"],
            )

        actions = refactor.get("actions") or []
        action = next((a for a in actions if _mentions(a.get("description"), keywords)), None)
        if action is None and actions:
            action = actions[0]
        if action is None:
            return RefactorResult.failure(f"No {label} action available at {where}", hints)

        edit_info = await self.session.request(protocol.GET_EDITS_FOR_REFACTOR, {
            "file": path,
            **span.to_args(),
            "refactor": refactor["name"],
            "action": action["name"],
        })
        edits = file_edits((edit_info or {}).get("edits"))
        if not edits:
            return RefactorResult.failure(f"No edits generated for {label} at {where}", hints)

        buffer = WorkspaceBuffer(self.applicator, preview)
        reports = await buffer.apply(edits)
        await self._commit(buffer)

        warning = advisory.message if advisory else ""
        if preview:
            return RefactorResult(
                True, f"Preview: Would {label}", reports, preview=PreviewInfo(len(reports)),
            ).with_warning(warning)
        return RefactorResult(True, done, reports, next_actions=next_actions).with_warning(warning)

    # --- Imports ---

    async def organize_imports(self, file_path: str, preview: bool = False) -> RefactorResult:
        """Sort and remove unused imports in one file."""
        async def run():
            path = self._resolve(file_path)
            advisory = await self._ready()
            await self.session.open_file(path)
            await self._configure_format(path)

            body = await self.session.request(protocol.ORGANIZE_IMPORTS, {
                "scope": {"type": "file", "args": {"file": path}},
            })
            warning = advisory.message if advisory else ""
            edits = file_edits(body)
            if not edits:
                return RefactorResult(True, "No import changes needed").with_warning(warning)

            buffer = WorkspaceBuffer(self.applicator, preview)
            reports = await buffer.apply(edits)
            await self._commit(buffer)
            if preview:
                return RefactorResult(
                    True, "Preview: Would organize imports", reports, preview=PreviewInfo(len(reports)),
                ).with_warning(warning)
            return RefactorResult(True, "Organized imports", reports).with_warning(warning)

        return await self._guard("Organize imports", run, [
            "Ensure the file exists and has valid import statements",
            "Check that all imported modules can be resolved",
            "Verify the TypeScript configuration is correct",
        ])

    # --- Code fixes ---

    async def fix_all(self, file_path: str, preview: bool = False) -> RefactorResult:
        """Apply every automatic fix the compiler offers for a file's errors."""
        return await self._fix(
            "Fix all", file_path, preview, (protocol.SEMANTIC_DIAGNOSTICS_SYNC,),
            lambda fix_id: True, "apply {count} fix edit(s)", "Applied {count} fix edit(s)",
        )

    async def remove_unused(self, file_path: str, preview: bool = False) -> RefactorResult:
        """Delete unused imports, variables and parameters in a file."""
        return await self._fix(
            "Remove unused", file_path, preview,
            (protocol.SEMANTIC_DIAGNOSTICS_SYNC, protocol.SUGGESTION_DIAGNOSTICS_SYNC),
            lambda fix_id: fix_id.startswith(UNUSED_FIX_PREFIX),
            "remove unused code ({count} edit(s))", "Removed unused code ({count} edit(s))",
        )

    async def _fix(
        self,
        label: str,
        file_path: str,
        preview: bool,
        diagnostic_commands: tuple[str, ...],
        accept: Callable[[str], bool],
        would: str,
        done: str,
    ) -> RefactorResult:
        """Collect fix ids for a file's diagnostics and apply each one's combined fix."""
        async def run():
            path = self._resolve(file_path)
            advisory = await self._ready()
            await self.session.open_file(path)
            await self._configure_format(path)
            warning = advisory.message if advisory else ""

            diagnostics = []
            for command in diagnostic_commands:
                body = await self.session.request(command, {"file": path, "includeLinePosition": True})
                diagnostics.extend(body or [])
            if not diagnostics:
                return RefactorResult(True, "No fixes needed").with_warning(warning)

            fix_ids: dict[str, None] = {}
            for diagnostic in diagnostics:
                start = diagnostic.get("startLocation") or {"line": 1, "offset": 1}
                end = diagnostic.get("endLocation") or start
                fixes = await self.session.request(protocol.GET_CODE_FIXES, {
                    "file": path,
                    "startLine": start["line"],
                    "startOffset": start["offset"],
                    "endLine": end["line"],
                    "endOffset": end["offset"],
                    "errorCodes": [diagnostic["code"]],
                })
                for fix in fixes or []:
                    fix_id = fix.get("fixId")
                    if fix_id and accept(fix_id):
                        fix_ids[fix_id] = None
            if not fix_ids:
                return RefactorResult(True, "No automatic fixes available").with_warning(warning)

            edits = []
            for fix_id in fix_ids:
                combined = await self.session.request(protocol.GET_COMBINED_CODE_FIX, {
                    "scope": {"type": "file", "args": {"file": path}},
                    "fixId": fix_id,
                })
                edits.extend(file_edits((combined or {}).get("changes")))
            edits = without_overlaps(edits)
            if not edits:
                return RefactorResult(True, "No fixes applied").with_warning(warning)

            logger.debug("%s: %d edit(s) from fix ids %s", label, len(edits), list(fix_ids))
            buffer = WorkspaceBuffer(self.applicator, preview)
            reports = await buffer.apply(edits)
            await self._commit(buffer)
            if preview:
                return RefactorResult(
                    True,
                    f"Preview: Would {would.format(count=len(edits))}",
                    reports,
                    preview=PreviewInfo(len(reports)),
                ).with_warning(warning)
            return RefactorResult(
                True,
                done.format(count=len(edits)),
                reports,
                next_actions=["organize_imports - Clean up imports after fixes"],
            ).with_warning(warning)

        return await self._guard(label, run, FIX_HINTS)

    # --- Files ---

    async def move_file(self, source_path: str, destination_path: str, preview: bool = False) -> RefactorResult:
        """Move a file and update every import and module path that points at it."""
        return await self._relocate("Move file", source_path, destination_path, preview)

    async def rename_file(self, source_path: str, name: str, preview: bool = False) -> RefactorResult:
        """Rename a file in place, updating imports like move_file."""
        if not name:
            return RefactorResult.failure("Name cannot be empty")
        if os.sep in name:
            return RefactorResult.failure(f"Name must not contain '{os.sep}'; use move_file to change directories")
        source = self._resolve(source_path)
        return await self._relocate("Rename file", source, os.path.join(os.path.dirname(source), name), preview)

    async def _relocate(self, label: str, source_path: str, destination_path: str, preview: bool) -> RefactorResult:
        async def run():
            source = self._resolve(source_path)
            destination = self._resolve(destination_path)
            self._check_move(source, destination)
            await self._ready()
            status = await self.discovery.discover(source)
            reports = await self._move(source, destination, preview, status.opened)
            warning = self.discovery.build_warning_message(status, "import updates")
            return self._move_result("file", reports, preview).with_warning(warning)

        return await self._guard(label, run, MOVE_HINTS)

    async def batch_move_files(self, file_paths: list[str], target_folder: str, preview: bool = False) -> RefactorResult:
        """Move several files into one folder, updating imports after each move."""
        if not file_paths:
            return RefactorResult.failure("At least one file must be provided")
        if not target_folder:
            return RefactorResult.failure("Target folder cannot be empty")

        async def run():
            sources = [self._resolve(p) for p in file_paths]
            target = self._resolve(target_folder)
            await self._ready()
            status = await self.discovery.discover(sources)

            reports: list[FileChangeReport] = []
            claimed: set[str] = set()
            moved = 0
            errors = []
            for index, source in enumerate(sources):
                name = os.path.basename(source)
                try:
                    destination = os.path.join(target, name)
                    # Preview moves nothing, so earlier sources in the batch never occupy the disk
                    if destination in claimed:
                        raise FileExistsError(errno.EEXIST, "Another file in this batch moves to", destination)
                    self._check_move(source, destination)
                    reports.extend(await self._move(source, destination, preview, status.opened))
                    claimed.add(destination)
                    moved += 1
                except (RefactorError, OSError) as e:
                    logger.info("Failed to move %s: %s", source, e)
                    errors.append(f"{name}: {e}")
                    continue

                if not preview and index < len(sources) - 1:
                    # Let tsserver notice the move before asking for the next one
                    await self.gate.wait_for_update()

            if moved == 0:
                return RefactorResult.failure("Failed to move all files:\n" + "\n".join(errors), [
                    "Check that all source files exist",
                    "Ensure the target folder is writable",
                    "Verify no filename conflicts in the destination",
                ])

            reports = _merge_reports(reports)
            warning = self.discovery.build_warning_message(status, "import updates")
            folder = os.path.basename(target)
            if preview:
                return RefactorResult(
                    True,
                    f"Preview: Would move {moved} file(s) to {folder}",
                    reports,
                    preview=PreviewInfo(moved, estimated_time="< 2s"),
                ).with_warning(warning)

            message = f"Moved {moved} file(s) to {folder}"
            if errors:
                message = f"Moved {moved} file(s), {len(errors)} failed:\n" + "\n".join(errors)
            return RefactorResult(
                True,
                message,
                reports,
                next_actions=["organize_imports - Clean up all import statements"],
            ).with_warning(warning)

        return await self._guard("Batch move files", run, MOVE_HINTS)

    async def refactor_module(self, source_path: str, destination_path: str, preview: bool = False) -> RefactorResult:
        """Move a file, then organize imports and apply fixes in every file the move touched."""
        moved = await self.move_file(source_path, destination_path, preview)
        if not moved.success:
            return moved
        if preview:
            moved.message = "Preview: Would refactor module (move, organize imports, fix errors)\n" + moved.message
            return moved

        destination = self._resolve(destination_path)
        affected = dict.fromkeys([destination, *(report.path for report in moved.files_changed)])
        reports = list(moved.files_changed)
        steps = [moved.message]
        for path in affected:
            for label, step in (("Organized imports", self.organize_imports), ("Fixed errors", self.fix_all)):
                result = await step(path)
                if not result.success:
                    logger.info("%s skipped for %s: %s", label, path, result.message)
                elif result.files_changed:
                    steps.append(f"{label} in {os.path.basename(path)}")
                    reports.extend(result.files_changed)

        return RefactorResult(
            True,
            "Refactored module:\n" + "\n".join(steps),
            _merge_reports(reports),
            next_actions=["find_references - Verify no references were missed"],
        )

    async def _move(self, source: str, destination: str, preview: bool, related: list[str]) -> list[FileChangeReport]:
        body = await self.session.request(protocol.GET_EDITS_FOR_FILE_RENAME, {
            "oldFilePath": source,
            "newFilePath": destination,
        })
        edits = file_edits(body)

        buffer = WorkspaceBuffer(self.applicator, preview)
        updates = []
        candidates = {e.file for e in edits} | set(related)
        for path in sorted(candidates):
            if path == source or not os.path.exists(path):
                continue
            content = await buffer.read(path)
            updates.extend(self.path_updater.find_updates(content, path, source, destination))
        if updates:
            logger.debug("%d string literal path update(s) for %s", len(updates), source)

        reports = await buffer.apply(self.path_updater.merge(edits, updates))
        if preview:
            return reports

        await buffer.flush()
        await files.move_file(source, destination)
        logger.info("Moved %s -> %s", source, destination)
        self.session.opened_files.discard(source)
        written = [destination if p == source else p for p in buffer.paths]
        await self._sync(written + [destination])
        return reports

    def _check_move(self, source: str, destination: str) -> None:
        if not os.path.isfile(source):
            raise FileNotFoundError(errno.ENOENT, os.strerror(errno.ENOENT), source)
        if os.path.exists(destination):
            raise FileExistsError(errno.EEXIST, os.strerror(errno.EEXIST), destination)

    def _move_result(self, label: str, reports: list[FileChangeReport], preview: bool) -> RefactorResult:
        if preview:
            if not reports:
                message = f"Preview: Would move {label} (no import updates needed)"
            else:
                message = f"Preview: Would move {label} and update {len(reports)} file(s)"
            return RefactorResult(True, message, reports, preview=PreviewInfo(len(reports) + 1))

        if not reports:
            return RefactorResult(
                True,
                f"Moved {label} (no import updates needed)",
                next_actions=["find_references - Verify no references were missed"],
            )
        return RefactorResult(
            True,
            f"Moved {label} and updated {len(reports)} file(s)",
            reports,
            next_actions=["organize_imports - Clean up import statements"],
        )

    # --- Server ---

    async def restart_server(self) -> RefactorResult:
        """Stop and start tsserver to force a full re-index."""
        async def run():
            logger.info("Restarting compiler server")
            if self.session.is_running():
                await self.session.stop()
            await self.session.start()
            return RefactorResult(True, "TypeScript server restarted successfully")

        return await self._guard("Restart server", run)

    # --- Helpers ---

    def _resolve(self, path: str) -> str:
        return files.resolve_path(path, self.session.root_path)

    async def _guard(self, label: str, run, hints: list[str] | None = None) -> RefactorResult:
        try:
            return await run()
        except PositionError as e:
            return RefactorResult.failure(str(e))
        except (RefactorError, OSError) as e:
            logger.info("%s failed: %s", label, e)
            return RefactorResult.failure(f"{label} failed: {e}", hints)

    async def _ready(self):
        """Wait for indexing; the returned advisory (if any) is non-fatal."""
        return await self.gate.ensure_ready()

    async def _position(self, path: str, line: int, column: int | None, text: str | None) -> tuple[int, int]:
        if text is not None:
            span = files.find_text_position(await files.read_lines(path), line, text)
            return span.start_line, span.start_offset
        if column is None:
            raise PositionError("Provide either column or text to locate the symbol")
        return line, column

    async def _span(self, path, line, text, start_line, start_column, end_line, end_column) -> Span:
        if line is not None and text is not None:
            return files.find_text_position(await files.read_lines(path), line, text)
        if None in (start_line, start_column, end_line, end_column):
            raise PositionError("Must provide either (line + text) or (startLine + startColumn + endLine + endColumn)")
        if (end_line, end_column) < (start_line, start_column):
            raise PositionError("End position must not be before start position")
        return Span(start_line, start_column, end_line, end_column)

    async def _configure_format(self, path: str) -> None:
        lines = await files.read_lines(path)
        await self.session.request(protocol.CONFIGURE, {
            "file": path,
            "formatOptions": self.applicator.indentation.format_options(lines),
        })

    async def _commit(self, buffer: WorkspaceBuffer) -> None:
        written = await buffer.flush()
        await self._sync(written)

    async def _sync(self, paths: list[str]) -> None:
        """Re-open written files so tsserver sees what is on disk."""
        if not self.session.is_running():
            return
        await asyncio.gather(*(self.session.open_file(p, force=True) for p in dict.fromkeys(paths)))

#!/usr/bin/env python3
"""
Agents Refactor - Related file discovery

Some tsserver projects only report references from files they have been
told about. Before a cross-file operation we ask for the files referencing
the target (falling back to a filesystem scan for files the project does
not know yet) and open them all. Discovery is best-effort: it runs under
its own timeout and never fails the operation that asked for it.
"""

import asyncio
import logging
import os
import time
from dataclasses import dataclass, field
from typing import Sequence

from . import protocol
from .errors import RequestFailedError, SessionError

logger = logging.getLogger(__name__)


@dataclass
class DiscoveryStatus:
    project_fully_loaded: bool
    scan_timed_out: bool
    opened: list[str] = field(default_factory=list)


class RelatedFileDiscovery:
    def __init__(
        self,
        session,
        gate,
        timeout: float = 5.0,
        index_attempts: int = 30,
        retry_delay: float = 0.1,
        extensions: Sequence[str] = (".ts", ".tsx", ".js", ".jsx", ".mjs", ".cjs"),
        skipped_directories: Sequence[str] = ("node_modules", "dist"),
    ):
        self.session = session
        self.gate = gate
        self.timeout = timeout
        self.index_attempts = index_attempts
        self.retry_delay = retry_delay
        self.extensions = tuple(extensions)
        self.skipped_directories = set(skipped_directories)

    @classmethod
    def from_settings(cls, session, gate, settings) -> "RelatedFileDiscovery":
        return cls(
            session,
            gate,
            timeout=settings.discovery_timeout,
            index_attempts=settings.file_index_attempts,
            retry_delay=settings.retry_delay,
            extensions=settings.source_extensions,
            skipped_directories=settings.skipped_directories,
        )

    async def discover(self, targets: str | Sequence[str]) -> DiscoveryStatus:
        """Open the targets and every file that may reference them."""
        targets = [targets] if isinstance(targets, str) else list(targets)
        found: set[str] = set()
        timed_out = False

        try:
            for target in targets:
                await self.session.open_file(target)

            deadline = time.monotonic() + self.timeout
            try:
                timed_out = await asyncio.wait_for(
                    self._collect(targets, found, deadline), timeout=self.timeout
                )
            except asyncio.TimeoutError:
                logger.debug("Discovery timed out after %.1fs with %d file(s)", self.timeout, len(found))
                timed_out = True
        except (SessionError, OSError) as e:
            logger.debug("File discovery failed: %s", e)

        opened = await self._open_all(sorted(found))
        return DiscoveryStatus(
            project_fully_loaded=self.gate.is_loaded(),
            scan_timed_out=timed_out,
            opened=opened,
        )

    async def _collect(self, targets: list[str], found: set[str], deadline: float) -> bool:
        """Fill found with related files; returns True if the disk scan ran out of time."""
        timed_out = False
        for target in targets:
            refs = await self._wait_for_file_index(target)
            if refs:
                logger.debug("%d file(s) reference %s", len(refs), target)
                found.update(f for f in refs if f != target)
                continue

            logger.debug("No refs for %s, scanning for undiscovered files", target)
            info = await self.session.request(
                protocol.PROJECT_INFO, {"file": target, "needFileNameList": True}
            )
            if not info or not info.get("configFileName"):
                continue

            root = os.path.dirname(info["configFileName"])
            known = set(info.get("fileNames") or [])
            candidates, scan_timed_out = await asyncio.to_thread(self._scan, root, deadline)
            timed_out = timed_out or scan_timed_out
            found.update(f for f in candidates if f not in known and f not in targets)
        return timed_out

    async def _wait_for_file_index(self, path: str) -> list[str] | None:
        """Poll fileReferences until the server answers for this file."""
        for attempt in range(self.index_attempts):
            try:
                body = await self.session.request(protocol.FILE_REFERENCES, {"file": path})
            except RequestFailedError:
                await asyncio.sleep(self.retry_delay)
                continue
            if body is not None:
                logger.debug("File indexed after %d attempt(s): %s", attempt + 1, path)
                return [ref["file"] for ref in body.get("refs", [])]
            await asyncio.sleep(self.retry_delay)
        return None

    def _scan(self, root: str, deadline: float) -> tuple[list[str], bool]:
        """Walk root for source files until the deadline (runs in a thread)."""
        found = []
        stack = [root]
        while stack:
            if time.monotonic() > deadline:
                logger.debug("Filesystem scan timeout (%d file(s) found)", len(found))
                return found, True

            directory = stack.pop()
            try:
                entries = list(os.scandir(directory))
            except OSError as e:
                logger.debug("Failed to scan %s: %s", directory, e)
                continue

            for entry in entries:
                name = entry.name
                if entry.is_dir(follow_symlinks=False):
                    if name in self.skipped_directories or name.startswith("."):
                        continue
                    stack.append(entry.path)
                elif name.endswith(self.extensions) and not name.endswith(".d.ts"):
                    found.append(entry.path)
        return found, False

    async def _open_all(self, paths: list[str]) -> list[str]:
        if not paths:
            return []

        async def open_quietly(path):
            try:
                await self.session.open_file(path)
                return path
            except (SessionError, OSError) as e:
                logger.debug("Failed to open %s: %s", path, e)
                return None

        logger.debug("Opening %d related file(s)", len(paths))
        results = await asyncio.gather(*(open_quietly(p) for p in paths))
        return [p for p in results if p]

    @staticmethod
    def build_warning_message(status: DiscoveryStatus, context: str) -> str:
        """Advisory text for incomplete indexing or discovery."""
        warning = ""
        if not status.project_fully_loaded:
            warning += f"\n\nWarning: TypeScript is still indexing the project. Some {context} may have been missed."
        if status.scan_timed_out:
            warning += (
                "\n\nWarning: File discovery timed out. Some files may not have been scanned. "
                f"{context[:1].upper()}{context[1:]} might be incomplete."
            )
        if warning:
            warning += " If results seem incomplete, try running the operation again."
        return warning

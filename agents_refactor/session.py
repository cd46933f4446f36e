#!/usr/bin/env python3
"""
Agents Refactor - Compiler server session

Owns one tsserver process per workspace root. A single read task decodes
stdout; responses go to the RequestChannel, events go to subscribers.
"""

import asyncio
import enum
import logging
from pathlib import Path
from typing import Any, Callable

from . import files, protocol
from .channel import RequestChannel
from .config import Settings
from .errors import (
    SessionCrashedError,
    SessionError,
    SessionNotRunningError,
    SessionStartError,
    SessionStoppedError,
)

logger = logging.getLogger(__name__)

# asyncio's default 64 KiB line limit is too small for bare-JSON replies
STREAM_LIMIT = 16 * 1024 * 1024

Listener = Callable[[dict], None]


class SessionState(enum.Enum):
    NOT_STARTED = "not_started"
    STARTING = "starting"
    RUNNING = "running"
    STOPPING = "stopping"
    STOPPED = "stopped"


class ServerSession:
    def __init__(self, root_path: str, settings: Settings | None = None):
        self.root_path = str(Path(root_path).resolve())
        self.settings = settings or Settings()
        self.process: asyncio.subprocess.Process | None = None
        self.channel: RequestChannel | None = None
        self.opened_files: set[str] = set()
        self._state = SessionState.NOT_STARTED
        self._listeners: list[Listener] = []
        self._read_task: asyncio.Task | None = None
        self._stderr_task: asyncio.Task | None = None
        self._lifecycle_lock = asyncio.Lock()

    @property
    def state(self) -> SessionState:
        return self._state

    def is_running(self) -> bool:
        return self._state is SessionState.RUNNING

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register an event listener; returns a function that removes it."""
        self._listeners.append(listener)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    async def start(self, root_path: str | None = None) -> None:
        """Spawn tsserver and configure it. No-op if already running."""
        async with self._lifecycle_lock:
            if self.is_running():
                return

            if root_path:
                self.root_path = str(Path(root_path).resolve())
            command = self.settings.resolve_server_command(self.root_path)
            self._state = SessionState.STARTING
            logger.info("Starting compiler server: %s (root %s)", " ".join(command), self.root_path)

            try:
                self.process = await asyncio.create_subprocess_exec(
                    *command,
                    stdin=asyncio.subprocess.PIPE,
                    stdout=asyncio.subprocess.PIPE,
                    stderr=asyncio.subprocess.PIPE,
                    cwd=self.root_path,
                    limit=STREAM_LIMIT,
                )
            except OSError as e:
                self._state = SessionState.STOPPED
                raise SessionStartError(command, str(e)) from e
            except BaseException:
                self._state = SessionState.STOPPED
                raise

            self.channel = RequestChannel(self._write)
            self.opened_files.clear()
            self._read_task = asyncio.create_task(self._read_loop(self.process, self.channel))
            self._stderr_task = asyncio.create_task(self._drain_stderr(self.process))

            try:
                await self.channel.send(protocol.CONFIGURE, {"preferences": self.settings.preferences})
            except BaseException as e:
                # Includes cancellation by a caller's timeout; the child must not outlive a failed start
                self._send_exit()
                await self._terminate()
                self.channel.reject_all(SessionStoppedError())
                self._state = SessionState.STOPPED
                if isinstance(e, SessionError):
                    raise SessionStartError(command, str(e)) from e
                raise

            self._state = SessionState.RUNNING
            logger.info("Compiler server running (pid %s)", self.process.pid)
            self._publish(protocol.make_event(protocol.SESSION_STARTED))

    async def stop(self) -> None:
        """Shut tsserver down, rejecting every pending request."""
        async with self._lifecycle_lock:
            if self.process is None or self._state in (SessionState.STOPPED, SessionState.NOT_STARTED):
                return

            self._state = SessionState.STOPPING
            logger.info("Stopping compiler server (pid %s)", self.process.pid)
            self._send_exit()
            await self._terminate()
            rejected = self.channel.reject_all(SessionStoppedError())
            if rejected:
                logger.info("Rejected %d pending request(s) on stop", rejected)
            self.opened_files.clear()
            self._state = SessionState.STOPPED
            self._publish(protocol.make_event(protocol.SESSION_STOPPED))

    async def request(self, command: str, arguments: dict | None = None) -> Any:
        """Send a request and wait for its body."""
        if not self.is_running():
            raise SessionNotRunningError(self._state.value)
        return await self.channel.send(command, arguments)

    async def open_file(self, path: str, content: str | None = None, force: bool = False) -> None:
        """Tell tsserver about a file. Already-open files are skipped unless
        force is set or explicit content (a buffered view) is supplied."""
        if not self.is_running():
            raise SessionNotRunningError(self._state.value)
        if path in self.opened_files and not force and content is None:
            return

        if content is None:
            content = await files.read_text(path)
        self.channel.notify(protocol.OPEN, {"file": path, "fileContent": content})
        self.opened_files.add(path)

    def _send_exit(self) -> None:
        try:
            self.channel.notify(protocol.EXIT)
        except SessionError:
            pass  # process already gone; _terminate handles the rest

    def _write(self, data: bytes) -> None:
        process = self.process
        if process is None or process.returncode is not None or process.stdin.is_closing():
            raise SessionNotRunningError(self._state.value)
        process.stdin.write(data)

    def _publish(self, message: dict) -> None:
        for listener in list(self._listeners):
            try:
                listener(message)
            except Exception:
                logger.exception("Event listener failed for %s", message.get("event"))

    async def _read_loop(self, process: asyncio.subprocess.Process, channel: RequestChannel):
        """Decode server output until EOF and route each message."""
        while True:
            try:
                message = await protocol.read_message(process.stdout)
            except asyncio.CancelledError:
                raise
            except (ValueError, asyncio.IncompleteReadError) as e:
                logger.error("Failed to decode compiler server message: %s", e)
                continue

            if message is None:
                break

            if protocol.is_event(message):
                logger.debug("Compiler server event: %s", message.get("event"))
                self._publish(message)
            elif not channel.dispatch(message):
                logger.debug("Unhandled compiler server message: %s", message.get("type"))

        await self._on_transport_closed(process, channel)

    async def _on_transport_closed(self, process, channel):
        returncode = await process.wait()
        if process is not self.process or self._state in (SessionState.STOPPING, SessionState.STOPPED):
            return  # stop() or a restart is handling it

        logger.warning("Compiler server exited unexpectedly (code %s)", returncode)
        channel.reject_all(SessionCrashedError(returncode))
        if self._state is SessionState.STARTING:
            return  # start() sees the rejected configure request and cleans up

        self._state = SessionState.STOPPED
        self.opened_files.clear()
        self._publish(protocol.make_event(protocol.SESSION_STOPPED))

    async def _drain_stderr(self, process: asyncio.subprocess.Process):
        while True:
            line = await process.stderr.readline()
            if not line:
                return
            logger.debug("tsserver stderr: %s", line.decode("utf-8", "replace").rstrip())

    async def _terminate(self):
        process = self.process
        if process.returncode is None:
            try:
                await asyncio.wait_for(process.wait(), timeout=self.settings.stop_grace_period)
            except asyncio.TimeoutError:
                logger.warning("Compiler server ignored exit, killing pid %s", process.pid)
                process.kill()
                await process.wait()

        for task in (self._read_task, self._stderr_task):
            if task and not task.done():
                task.cancel()
                try:
                    await task
                except asyncio.CancelledError:
                    pass
        self._read_task = None
        self._stderr_task = None

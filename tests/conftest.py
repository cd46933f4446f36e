import asyncio
import sys
from pathlib import Path

import pytest

from agents_refactor import files, protocol
from agents_refactor.config import Settings
from agents_refactor.errors import SessionNotRunningError
from agents_refactor.gate import ProjectLoadGate
from agents_refactor.operations import RefactorOperations
from agents_refactor.session import SessionState

FAKE_TSSERVER = Path(__file__).parent / "fake_tsserver.py"


class FakeSession:
    """In-process ServerSession double with scripted request handlers.

    A handler is either a fixed body or a callable taking the request
    arguments (sync or async); a callable may raise to simulate failures.
    """

    def __init__(self, root_path, handlers=None, state=SessionState.RUNNING):
        self.root_path = str(root_path)
        self.state = state
        self.handlers = dict(handlers or {})
        self.requests: list[tuple[str, dict | None]] = []
        self.opened: list[tuple[str, str]] = []
        self.opened_files: set[str] = set()
        self.starts = 0
        self.stops = 0
        self._listeners = []

    def is_running(self):
        return self.state is SessionState.RUNNING

    def subscribe(self, listener):
        self._listeners.append(listener)
        return lambda: self._listeners.remove(listener)

    def emit(self, name, body=None):
        for listener in list(self._listeners):
            listener(protocol.make_event(name, body))

    async def start(self, root_path=None):
        self.starts += 1
        self.state = SessionState.RUNNING
        self.emit(protocol.SESSION_STARTED)

    async def stop(self):
        self.stops += 1
        self.state = SessionState.STOPPED
        self.opened_files.clear()
        self.emit(protocol.SESSION_STOPPED)

    async def request(self, command, arguments=None):
        if not self.is_running():
            raise SessionNotRunningError(self.state.value)
        self.requests.append((command, arguments))
        handler = self.handlers.get(command)
        if callable(handler):
            handler = handler(arguments)
            if asyncio.iscoroutine(handler):
                handler = await handler
        return handler

    async def open_file(self, path, content=None, force=False):
        if not self.is_running():
            raise SessionNotRunningError(self.state.value)
        if path in self.opened_files and not force and content is None:
            return
        if content is None:
            content = await files.read_text(path)
        self.opened.append((path, content))
        self.opened_files.add(path)

    def commands(self):
        return [command for command, _ in self.requests]


@pytest.fixture
def fake_server_settings():
    return Settings(
        server_command=[sys.executable, str(FAKE_TSSERVER)],
        stop_grace_period=1.0,
        assume_loaded_after=None,
    )


@pytest.fixture
def fast_settings():
    return Settings(
        ready_timeout=0.2,
        update_timeout=0.05,
        discovery_timeout=0.5,
        assume_loaded_after=None,
        file_index_attempts=3,
        retry_delay=0.01,
    )


@pytest.fixture
def make_operations(fast_settings):
    """Build RefactorOperations over a FakeSession whose project is already loaded."""
    def build(root, handlers=None, loaded=True):
        session = FakeSession(root, handlers)
        gate = ProjectLoadGate.from_settings(session, fast_settings)
        if loaded:
            session.emit(protocol.PROJECT_LOADING_FINISH)
        return RefactorOperations(session, fast_settings, gate=gate), session

    return build

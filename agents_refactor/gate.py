#!/usr/bin/env python3
"""
Agents Refactor - Project load gate

Lets operations avoid acting on a half-indexed workspace without paying
the indexing latency once per caller: every waiter awaits the same event,
which the compiler's projectLoadingFinish signal sets for all of them.
"""

import asyncio
import logging
from dataclasses import dataclass

from . import protocol
from .errors import SessionNotRunningError
from .session import SessionState

logger = logging.getLogger(__name__)


@dataclass
class LoadAdvisory:
    """Non-fatal: the project was still indexing when the wait ran out."""
    waited: float

    @property
    def message(self) -> str:
        return (
            f"\n\nWarning: TypeScript is still indexing the project (waited {self.waited:g}s). "
            "Results may be incomplete; for large projects indexing can take 10-30 seconds."
        )


class ProjectLoadGate:
    def __init__(
        self,
        session,
        ready_timeout: float = 30.0,
        update_timeout: float = 5.0,
        assume_loaded_after: float | None = 0.5,
    ):
        self.session = session
        self.ready_timeout = ready_timeout
        self.update_timeout = update_timeout
        self.assume_loaded_after = assume_loaded_after
        self._loaded = asyncio.Event()
        self._updated = asyncio.Event()
        self._loading_seen = False
        self._assume_handle: asyncio.TimerHandle | None = None
        self._unsubscribe = session.subscribe(self._on_event)

    @classmethod
    def from_settings(cls, session, settings) -> "ProjectLoadGate":
        return cls(
            session,
            ready_timeout=settings.ready_timeout,
            update_timeout=settings.update_timeout,
            assume_loaded_after=settings.assume_loaded_after,
        )

    def is_loaded(self) -> bool:
        return self._loaded.is_set()

    async def ensure_ready(self, timeout: float | None = None) -> LoadAdvisory | None:
        """Start the session if it never ran, then wait (bounded) for indexing.

        Returns None when the project is loaded, or a LoadAdvisory if the
        wait timed out; callers proceed either way.
        """
        await self._ensure_session()
        if self._loaded.is_set():
            return None

        timeout = self.ready_timeout if timeout is None else timeout
        loop = asyncio.get_running_loop()
        started = loop.time()
        try:
            await asyncio.wait_for(self._loaded.wait(), timeout=timeout)
        except asyncio.TimeoutError:
            logger.info("Project still indexing after %.1fs", timeout)
            return LoadAdvisory(timeout)

        logger.info("Project loaded (waited %.2fs)", loop.time() - started)
        return None

    async def wait_for_update(self, timeout: float | None = None) -> bool:
        """Wait for the next background project update; False on timeout."""
        timeout = self.update_timeout if timeout is None else timeout
        event = self._updated
        try:
            await asyncio.wait_for(event.wait(), timeout=timeout)
        except asyncio.TimeoutError:
            logger.debug("No project update within %.1fs", timeout)
            return False
        return True

    def close(self) -> None:
        self._cancel_assume()
        self._unsubscribe()

    async def _ensure_session(self) -> None:
        state = self.session.state
        if state in (SessionState.NOT_STARTED, SessionState.STARTING):
            await self.session.start()
        elif not self.session.is_running():
            raise SessionNotRunningError(state.value)

    def _on_event(self, message: dict) -> None:
        name = message.get("event")
        if name == protocol.PROJECT_LOADING_START:
            logger.debug("Project loading started")
            self._loading_seen = True
            self._cancel_assume()
        elif name == protocol.PROJECT_LOADING_FINISH:
            logger.debug("Project loading finished")
            self._mark_loaded()
        elif name == protocol.PROJECTS_UPDATED_IN_BACKGROUND:
            logger.debug("Projects updated in background")
            self._mark_loaded()
            # Wake current waiters, then arm a fresh event for the next update
            self._updated.set()
            self._updated = asyncio.Event()
        elif name == protocol.SESSION_STARTED:
            self._reset()
            self._schedule_assume()
        elif name == protocol.SESSION_STOPPED:
            self._reset()

    def _mark_loaded(self) -> None:
        self._cancel_assume()
        self._loaded.set()

    def _reset(self) -> None:
        self._cancel_assume()
        self._loading_seen = False
        self._loaded.clear()

    def _schedule_assume(self) -> None:
        if self.assume_loaded_after is None:
            return
        loop = asyncio.get_running_loop()
        self._assume_handle = loop.call_later(self.assume_loaded_after, self._assume_loaded)

    def _assume_loaded(self) -> None:
        self._assume_handle = None
        if not self._loading_seen and not self._loaded.is_set():
            # Small projects may never announce loading at all
            logger.debug("No project loading event received, assuming small project")
            self._loaded.set()

    def _cancel_assume(self) -> None:
        if self._assume_handle is not None:
            self._assume_handle.cancel()
            self._assume_handle = None

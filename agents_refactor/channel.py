#!/usr/bin/env python3
"""
Agents Refactor - Request channel

Correlates outgoing requests with the responses that answer them. The
channel never reads the transport itself: ServerSession owns the stream and
hands every decoded response to dispatch().
"""

import asyncio
import logging
from typing import Any, Callable

from .errors import RequestFailedError, SessionStoppedError
from .protocol import encode_request, is_response

logger = logging.getLogger(__name__)


class RequestChannel:
    def __init__(self, writer: Callable[[bytes], None]):
        self._write = writer
        self._seq = 0
        self._pending: dict[int, asyncio.Future] = {}
        self._commands: dict[int, str] = {}

    @property
    def last_seq(self) -> int:
        return self._seq

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    async def send(self, command: str, arguments: dict | None = None) -> Any:
        """Send a request and wait for the response carrying its seq.

        No timeout is applied here; callers bound the wait themselves.
        """
        self._seq += 1
        seq = self._seq

        future = asyncio.get_running_loop().create_future()
        self._pending[seq] = future
        self._commands[seq] = command

        try:
            self._write(encode_request(seq, command, arguments))
            return await future
        finally:
            # Covers normal completion, write failures and callers that gave up
            self._pending.pop(seq, None)
            self._commands.pop(seq, None)

    def notify(self, command: str, arguments: dict | None = None) -> None:
        """Send a command whose reply (if any) nobody waits for."""
        self._seq += 1
        self._write(encode_request(self._seq, command, arguments))

    def dispatch(self, message: dict) -> bool:
        """Resolve the pending request answered by message.

        Returns False for events and for responses nobody is waiting on.
        """
        if not is_response(message):
            return False

        seq = message["request_seq"]
        future = self._pending.pop(seq, None)
        command = self._commands.pop(seq, message.get("command", "request"))
        if future is None:
            logger.debug("Dropping response for unknown seq %s (%s)", seq, command)
            return False
        if future.done():
            return True

        if message.get("success"):
            future.set_result(message.get("body"))
        else:
            future.set_exception(RequestFailedError(command, _failure_text(message)))
        return True

    def reject_all(self, error: Exception | None = None) -> int:
        """Fail every in-flight request; returns how many were rejected."""
        rejected = 0
        for seq, future in list(self._pending.items()):
            if not future.done():
                future.set_exception(error or SessionStoppedError(self._commands.get(seq)))
                rejected += 1
        self._pending.clear()
        self._commands.clear()
        return rejected


def _failure_text(message: dict) -> str:
    body = message.get("body")
    if isinstance(body, dict) and body.get("message"):
        return str(body["message"])
    if message.get("message"):
        return str(message["message"])
    if body:
        return str(body)
    return "Request failed"

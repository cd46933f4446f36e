"""Exception hierarchy for the refactoring bridge.

Operations turn every RefactorError into a failure result; nothing here
is meant to escape to an MCP or HTTP client as a traceback.
"""


class RefactorError(Exception):
    """Base exception for all refactoring errors."""


class SessionError(RefactorError):
    """Base exception for compiler-server session failures."""


class SessionStartError(SessionError):
    """The compiler server process could not be spawned or configured."""
    def __init__(self, command: list[str], reason: str):
        self.command = command
        self.reason = reason
        super().__init__(f"Failed to start compiler server ({' '.join(command)}): {reason}")


class SessionNotRunningError(SessionError):
    """A request was issued while the session is not running."""
    def __init__(self, state: str):
        self.state = state
        super().__init__(
            f"Compiler server is not running (state: {state}). "
            "Use restart_server to start it again."
        )


class SessionStoppedError(SessionError):
    """The session was stopped while the request was in flight."""
    def __init__(self, command: str | None = None):
        self.command = command
        super().__init__("Compiler server session stopped")


class SessionCrashedError(SessionError):
    """The compiler server exited on its own while requests were pending."""
    def __init__(self, returncode: int | None):
        self.returncode = returncode
        super().__init__(f"Compiler server exited unexpectedly (code {returncode})")


class RequestFailedError(SessionError):
    """The compiler answered a request with success=false."""
    def __init__(self, command: str, message: str):
        self.command = command
        self.server_message = message
        super().__init__(f"{command} failed: {message}")


class EditRangeError(RefactorError, ValueError):
    """A text edit addresses a span outside the file."""
    def __init__(self, path: str, line: int, line_count: int):
        self.path = path
        self.line = line
        self.line_count = line_count
        super().__init__(f"Edit at line {line} is outside {path} ({line_count} lines)")

#!/usr/bin/env python3
"""
Agents Refactor - tsserver wire protocol

Requests go out as one JSON object per line. Replies and events come back
framed with a Content-Length header, though bare JSON lines are accepted too.
"""

import asyncio
import json
from typing import Any

# Message types
REQUEST = "request"
RESPONSE = "response"
EVENT = "event"

# Commands
CONFIGURE = "configure"
OPEN = "open"
EXIT = "exit"
GET_APPLICABLE_REFACTORS = "getApplicableRefactors"
GET_EDITS_FOR_REFACTOR = "getEditsForRefactor"
RENAME = "rename"
REFERENCES = "references"
ORGANIZE_IMPORTS = "organizeImports"
GET_EDITS_FOR_FILE_RENAME = "getEditsForFileRename"
PROJECT_INFO = "projectInfo"
FILE_REFERENCES = "fileReferences"
SEMANTIC_DIAGNOSTICS_SYNC = "semanticDiagnosticsSync"
SUGGESTION_DIAGNOSTICS_SYNC = "suggestionDiagnosticsSync"
GET_CODE_FIXES = "getCodeFixes"
GET_COMBINED_CODE_FIX = "getCombinedCodeFix"

# Server events
PROJECT_LOADING_START = "projectLoadingStart"
PROJECT_LOADING_FINISH = "projectLoadingFinish"
PROJECTS_UPDATED_IN_BACKGROUND = "projectsUpdatedInBackground"

# Local lifecycle events published by ServerSession, never sent by tsserver
SESSION_STARTED = "session.started"
SESSION_STOPPED = "session.stopped"

CONTENT_LENGTH = b"Content-Length:"


def encode_request(seq: int, command: str, arguments: dict | None = None) -> bytes:
    """Serialize a request as a single newline-terminated JSON line."""
    message: dict[str, Any] = {"seq": seq, "type": REQUEST, "command": command}
    if arguments is not None:
        message["arguments"] = arguments
    return (json.dumps(message) + "\n").encode("utf-8")


def make_event(name: str, body: Any = None) -> dict:
    return {"type": EVENT, "event": name, "body": body}


def is_event(message: dict) -> bool:
    return message.get("type") == EVENT


def is_response(message: dict) -> bool:
    return message.get("type") == RESPONSE and "request_seq" in message


async def read_message(reader: asyncio.StreamReader) -> dict | None:
    """Read the next message from the server, or None at end of stream.

    Content-Length counts bytes of the JSON body (tsserver includes its
    trailing newline in the count).
    """
    while True:
        line = await reader.readline()
        if not line:
            return None

        stripped = line.strip()
        if not stripped:
            continue

        if stripped.startswith(CONTENT_LENGTH):
            length = int(stripped[len(CONTENT_LENGTH):].strip())
            # Consume the blank separator line(s) after the header
            while True:
                separator = await reader.readline()
                if not separator:
                    return None
                if not separator.strip():
                    break
            body = await reader.readexactly(length)
            return json.loads(body.decode("utf-8"))

        if stripped.startswith(b"{"):
            return json.loads(stripped.decode("utf-8"))

        # Anything else is noise on stdout (e.g. a startup banner)

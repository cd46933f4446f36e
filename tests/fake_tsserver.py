#!/usr/bin/env python3
"""
Scripted stand-in for tsserver, driven over stdio like the real thing.

Requests arrive as JSON lines; responses and events go out with
Content-Length framing. Extra commands let tests provoke the edge cases:

    echo      respond with the request arguments as body
    fail      respond with success=false
    hold      queue the request without responding
    release   respond to this request, then to every held one in reverse order
    emit      send the event named by arguments["event"], then respond
    bare      respond with a bare JSON line instead of a frame
    noise     write a non-JSON line, then respond
    crash     exit immediately with status 3

With --silent the server never answers configure, so start() hangs.
"""

import json
import sys


def write_framed(message):
    data = json.dumps(message).encode("utf-8")
    sys.stdout.buffer.write(b"Content-Length: %d\r\n\r\n" % len(data) + data + b"\n")
    sys.stdout.buffer.flush()


def write_bare(message):
    sys.stdout.buffer.write(json.dumps(message).encode("utf-8") + b"\n")
    sys.stdout.buffer.flush()


def response(request, body=None, success=True, message=None):
    reply = {
        "seq": 0,
        "type": "response",
        "command": request["command"],
        "request_seq": request["seq"],
        "success": success,
    }
    if body is not None:
        reply["body"] = body
    if message is not None:
        reply["message"] = message
    return reply


def main():
    held = []
    silent = "--silent" in sys.argv[1:]
    sys.stderr.write("fake tsserver ready\n")
    sys.stderr.flush()

    for line in sys.stdin:
        line = line.strip()
        if not line:
            continue
        request = json.loads(line)
        command = request["command"]
        arguments = request.get("arguments") or {}

        if command == "exit":
            return 0
        if command == "open":
            continue
        if command == "crash":
            sys.exit(3)
        if command == "hold":
            held.append(request)
            continue
        if command == "release":
            write_framed(response(request, {"released": len(held)}))
            for pending in reversed(held):
                write_framed(response(pending, pending.get("arguments")))
            held.clear()
        elif command == "fail":
            write_framed(response(request, success=False, message="boom"))
        elif command == "emit":
            write_framed({"seq": 0, "type": "event", "event": arguments["event"], "body": arguments.get("body")})
            write_framed(response(request, {}))
        elif command == "bare":
            write_bare(response(request, arguments))
        elif command == "noise":
            sys.stdout.buffer.write(b"Version 5.4.0\n")
            write_framed(response(request, arguments))
        elif command == "configure":
            if not silent:
                write_framed(response(request))
        else:
            write_framed(response(request, arguments))
    return 0


if __name__ == "__main__":
    sys.exit(main())

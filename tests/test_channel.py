import asyncio
import json

import pytest

from agents_refactor.channel import RequestChannel
from agents_refactor.errors import RequestFailedError, SessionStoppedError


class Wire:
    def __init__(self):
        self.sent = []

    def __call__(self, data: bytes):
        self.sent.append(json.loads(data))


def response(seq, body=None, success=True, message=None):
    return {"type": "response", "request_seq": seq, "success": success, "body": body, "message": message}


@pytest.mark.asyncio
async def test_out_of_order_responses_match_by_seq():
    wire = Wire()
    channel = RequestChannel(wire)

    first = asyncio.create_task(channel.send("echo", {"n": 1}))
    second = asyncio.create_task(channel.send("echo", {"n": 2}))
    await asyncio.sleep(0)
    assert [m["seq"] for m in wire.sent] == [1, 2]
    assert channel.pending_count == 2

    assert channel.dispatch(response(2, "two"))
    assert channel.dispatch(response(1, "one"))
    assert await first == "one"
    assert await second == "two"
    assert channel.pending_count == 0


@pytest.mark.asyncio
async def test_request_line_format():
    wire = Wire()
    channel = RequestChannel(wire)
    task = asyncio.create_task(channel.send("rename", {"file": "/a.ts"}))
    await asyncio.sleep(0)

    assert wire.sent == [{"seq": 1, "type": "request", "command": "rename", "arguments": {"file": "/a.ts"}}]
    channel.dispatch(response(1))
    assert await task is None


@pytest.mark.asyncio
async def test_failure_raises_with_server_message():
    channel = RequestChannel(Wire())
    task = asyncio.create_task(channel.send("rename"))
    await asyncio.sleep(0)
    channel.dispatch(response(1, success=False, message="No Project."))

    with pytest.raises(RequestFailedError) as info:
        await task
    assert info.value.server_message == "No Project."
    assert info.value.command == "rename"


@pytest.mark.asyncio
async def test_events_and_unknown_responses_are_not_matched():
    channel = RequestChannel(Wire())
    task = asyncio.create_task(channel.send("echo"))
    await asyncio.sleep(0)

    assert not channel.dispatch({"type": "event", "event": "projectLoadingFinish", "request_seq": 1})
    assert not channel.dispatch(response(99, "stray"))
    assert not task.done()

    channel.dispatch(response(1, "ok"))
    assert await task == "ok"


@pytest.mark.asyncio
async def test_notify_does_not_register_pending_request():
    wire = Wire()
    channel = RequestChannel(wire)
    channel.notify("open", {"file": "/a.ts", "fileContent": ""})

    assert channel.pending_count == 0
    assert channel.last_seq == 1
    assert wire.sent[0]["command"] == "open"


@pytest.mark.asyncio
async def test_reject_all_fails_pending_requests():
    channel = RequestChannel(Wire())
    tasks = [asyncio.create_task(channel.send("hold")) for _ in range(3)]
    await asyncio.sleep(0)

    assert channel.reject_all() == 3
    for task in tasks:
        with pytest.raises(SessionStoppedError):
            await task
    assert channel.pending_count == 0


@pytest.mark.asyncio
async def test_abandoned_wait_removes_pending_entry():
    channel = RequestChannel(Wire())
    with pytest.raises(asyncio.TimeoutError):
        await asyncio.wait_for(channel.send("hold"), timeout=0.01)

    assert channel.pending_count == 0
    assert not channel.dispatch(response(1, "late"))


@pytest.mark.asyncio
async def test_sequence_ids_increase_across_requests_and_notifications():
    wire = Wire()
    channel = RequestChannel(wire)
    channel.notify("open")
    task = asyncio.create_task(channel.send("echo"))
    await asyncio.sleep(0)
    channel.notify("open")

    assert [m["seq"] for m in wire.sent] == [1, 2, 3]
    channel.dispatch(response(2))
    await task

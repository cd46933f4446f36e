import asyncio
import os
import tempfile
from types import SimpleNamespace

from aiohttp.test_utils import AioHTTPTestCase

from agents_refactor.config import Settings
from agents_refactor.daemon import ENDPOINTS, RefactorDaemon
from agents_refactor.errors import RequestFailedError
from agents_refactor.results import RefactorResult
from agents_refactor.session import SessionState


class StubOperations:
    """Records calls and answers with canned results."""

    def __init__(self):
        self.calls = []
        self.session = SimpleNamespace(
            state=SessionState.RUNNING,
            opened_files={"/w/a.ts"},
            is_running=lambda: True,
        )
        self.gate = SimpleNamespace(is_loaded=lambda: True, close=lambda: None)
        self.delay = 0
        self.error = None

    async def _answer(self, name, *args, **kwargs):
        self.calls.append((name, args, kwargs))
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error:
            raise self.error
        return RefactorResult(True, f"{name} ok")

    async def rename(self, *args, **kwargs):
        return await self._answer("rename", *args, **kwargs)

    async def find_references(self, *args, **kwargs):
        return await self._answer("find_references", *args, **kwargs)

    async def extract_constant(self, *args, **kwargs):
        return await self._answer("extract_constant", *args, **kwargs)

    async def extract_function(self, *args, **kwargs):
        return await self._answer("extract_function", *args, **kwargs)

    async def move_file(self, *args, **kwargs):
        return await self._answer("move_file", *args, **kwargs)

    async def batch_move_files(self, *args, **kwargs):
        return await self._answer("batch_move_files", *args, **kwargs)

    async def inline_variable(self, *args, **kwargs):
        return await self._answer("inline_variable", *args, **kwargs)

    async def fix_all(self, *args, **kwargs):
        return await self._answer("fix_all", *args, **kwargs)

    async def refactor_module(self, *args, **kwargs):
        return await self._answer("refactor_module", *args, **kwargs)

    async def restart_server(self):
        return await self._answer("restart_server")


class TestRefactorDaemon(AioHTTPTestCase):
    async def get_application(self):
        self.workspace = os.path.realpath(tempfile.mkdtemp())
        self.operations = StubOperations()
        self.daemon = RefactorDaemon(
            self.workspace,
            settings=Settings(request_timeout=0.2),
            operations=self.operations,
        )
        return self.daemon.app

    async def test_rename_passes_fields(self):
        resp = await self.client.post("/rename", json={
            "filePath": "/w/a.ts", "line": 3, "text": "foo", "newName": "bar", "preview": True,
        })

        assert resp.status == 200
        assert await resp.json() == {"success": True, "message": "rename ok", "filesChanged": []}
        assert self.operations.calls == [
            ("rename", ("/w/a.ts", "bar", 3), {"column": None, "text": "foo", "preview": True}),
        ]

    async def test_missing_fields_are_rejected(self):
        resp = await self.client.post("/rename", json={"filePath": "/w/a.ts", "line": 3})

        assert resp.status == 400
        assert (await resp.json())["error"] == "Required: filePath, line, column or text, newName"
        assert self.operations.calls == []

    async def test_invalid_json_is_treated_as_empty(self):
        resp = await self.client.post("/move_file", data="not json")

        assert resp.status == 400
        assert (await resp.json())["error"] == "Required: sourcePath, destinationPath"

    async def test_extract_constant_selection(self):
        resp = await self.client.post("/extract_constant", json={
            "filePath": "/w/c.ts", "line": 2, "text": "3.14159", "constantName": "PI",
        })

        assert resp.status == 200
        [(name, args, kwargs)] = self.operations.calls
        assert (name, args) == ("extract_constant", ("/w/c.ts", "PI"))
        assert kwargs["line"] == 2
        assert kwargs["text"] == "3.14159"
        assert kwargs["start_line"] is None

    async def test_rewrite_and_fix_endpoints(self):
        await self.client.post("/inline_variable", json={"filePath": "/w/a.ts", "line": 4, "text": "multiplier"})
        await self.client.post("/fix_all", json={"filePath": "/w/a.ts", "preview": True})
        resp = await self.client.post("/refactor_module", json={"sourcePath": "/w/a.ts", "destinationPath": "/w/lib/a.ts"})

        assert resp.status == 200
        assert self.operations.calls == [
            ("inline_variable", ("/w/a.ts", 4), {"column": None, "text": "multiplier", "preview": False}),
            ("fix_all", ("/w/a.ts",), {"preview": True}),
            ("refactor_module", ("/w/a.ts", "/w/lib/a.ts"), {"preview": False}),
        ]

    async def test_remove_unused_requires_file(self):
        resp = await self.client.post("/remove_unused", json={})

        assert resp.status == 400
        assert (await resp.json())["error"] == "Required: filePath"

    async def test_batch_move_requires_files(self):
        resp = await self.client.post("/batch_move_files", json={"files": [], "targetFolder": "/w/lib"})
        assert resp.status == 400

    async def test_operation_timeout(self):
        self.operations.delay = 5

        resp = await self.client.post("/restart", json={})

        assert resp.status == 504
        assert (await resp.json())["error"] == "Operation timed out after 0.2s"

    async def test_unexpected_error_is_500(self):
        self.operations.error = RuntimeError("kaboom")

        resp = await self.client.post("/find_references", json={"filePath": "/w/a.ts", "line": 1, "column": 5})

        assert resp.status == 500
        assert (await resp.json())["error"] == "kaboom"

    async def test_session_error_escaping_operation_is_500(self):
        self.operations.error = RequestFailedError("rename", "boom")

        resp = await self.client.post("/rename", json={"filePath": "/w/a.ts", "line": 1, "column": 2, "newName": "x"})

        assert resp.status == 500
        assert (await resp.json())["error"] == "rename failed: boom"

    async def test_failure_result_is_still_200(self):
        async def failing(*args, **kwargs):
            return RefactorResult.failure("Move file failed: nope", ["Check paths"])

        self.operations.move_file = failing
        resp = await self.client.post("/move_file", json={"sourcePath": "/w/a.ts", "destinationPath": "/w/b.ts"})

        assert resp.status == 200
        data = await resp.json()
        assert data["success"] is False
        assert data["message"].endswith("Try:\n  1. Check paths")

    async def test_health_and_stats(self):
        resp = await self.client.get("/health")
        assert await resp.json() == {"status": "ok", "server_running": True, "project_loaded": True}

        await self.client.post("/restart", json={})
        resp = await self.client.get("/stats")
        stats = await resp.json()
        assert stats["request_count"] == 1
        assert stats["workspaces"] == {
            self.workspace: {"state": "running", "project_loaded": True, "opened_files_count": 1},
        }

    async def test_endpoint_index(self):
        resp = await self.client.get("/")
        data = await resp.json()

        assert data["service"] == "agents-refactor"
        assert data["endpoints"] == ENDPOINTS
        assert "/rename" in data["endpoints"]["symbols"]

    async def test_other_workspaces_get_their_own_session(self):
        other = os.path.join(self.workspace, "other")

        assert self.daemon.operations_for() is self.operations
        created = self.daemon.operations_for(other)
        assert created is not self.operations
        assert created.session.root_path == other
        assert self.daemon.operations_for(other) is created

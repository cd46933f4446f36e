#!/usr/bin/env python3
"""
Agents Refactor Daemon

A shared HTTP server that wraps tsserver, allowing multiple agents to share
one compiler process (and its project index) per workspace root.

Usage:
    python -m agents_refactor.daemon [--port 7910] [--workspace /path/to/workspace]

Endpoints:
    # Discovery (start here!)
    GET  /                  - Index of all endpoints with descriptions and examples
    GET  /endpoints         - Same as above

    # Symbols
    POST /rename            - Rename a symbol across files
    POST /find_references   - Find all references to a symbol

    # Extraction
    POST /extract_constant  - Extract a literal/expression to a named constant
    POST /extract_variable  - Extract an expression to a local variable
    POST /extract_function  - Extract statements to a new function

    # Rewrites & fixes
    POST /inline_variable   - Inline a variable into its usages
    POST /infer_return_type - Annotate a function with its inferred return type
    POST /fix_all           - Apply every automatic fix in a file
    POST /remove_unused     - Delete unused imports and declarations in a file

    # Imports & files
    POST /organize_imports  - Sort and prune imports in a file
    POST /move_file         - Move a file, updating imports
    POST /rename_file       - Rename a file in place, updating imports
    POST /batch_move_files  - Move several files into a folder
    POST /refactor_module   - Move a file, then organize imports and fix errors

    # Management
    POST /restart           - Restart tsserver (forces a re-index)
    GET  /health            - Health check
    GET  /stats             - Session statistics

Every refactoring endpoint accepts "preview": true to compute edits without
writing them, and an optional "workspace" to target another project root.

Example:
    curl -X POST http://localhost:7910/rename \\
      -H "Content-Type: application/json" \\
      -d '{"filePath": "/path/to/file.ts", "line": 12, "text": "processData", "newName": "transform"}'
"""

import argparse
import asyncio
import json
import logging
import os
import sys
from typing import Awaitable, Callable

from aiohttp import web

from .config import DEFAULT_PORT, Settings, configure_logging
from .errors import SessionError
from .operations import RefactorOperations
from .results import RefactorResult
from .session import ServerSession

logger = logging.getLogger(__name__)

OperationCall = Callable[[RefactorOperations, dict], Awaitable[RefactorResult]]

ENDPOINTS = {
    "symbols": {
        "/rename": {
            "method": "POST",
            "description": "Rename a symbol across all files, updating imports and exports",
            "params": "filePath, line, column | text, newName, preview?",
            "example": {"filePath": "/src/utils.ts", "line": 3, "text": "processData", "newName": "transform"},
        },
        "/find_references": {
            "method": "POST",
            "description": "Find every reference to a symbol, grouped by file",
            "params": "filePath, line, column | text",
            "example": {"filePath": "/src/utils.ts", "line": 3, "text": "processData"},
        },
    },
    "extraction": {
        "/extract_constant": {
            "method": "POST",
            "description": "Extract a literal or expression to a named constant",
            "params": "filePath, line + text | startLine, startColumn, endLine, endColumn, constantName?, preview?",
            "example": {"filePath": "/src/circle.ts", "line": 2, "text": "3.14159", "constantName": "PI"},
        },
        "/extract_variable": {
            "method": "POST",
            "description": "Extract an expression to a local variable",
            "params": "filePath, line + text | startLine, startColumn, endLine, endColumn, variableName?, preview?",
            "example": {"filePath": "/src/total.ts", "line": 5, "text": "price * quantity", "variableName": "subtotal"},
        },
        "/extract_function": {
            "method": "POST",
            "description": "Extract a range of statements to a new function",
            "params": "filePath, startLine, startColumn, endLine, endColumn, functionName?, preview?",
            "example": {"filePath": "/src/report.ts", "startLine": 4, "startColumn": 3, "endLine": 8,
                        "endColumn": 4, "functionName": "buildRows"},
        },
    },
    "rewrites": {
        "/inline_variable": {
            "method": "POST",
            "description": "Replace a variable's usages with its value and remove the declaration",
            "params": "filePath, line, column | text, preview?",
            "example": {"filePath": "/src/price.ts", "line": 4, "text": "multiplier"},
        },
        "/infer_return_type": {
            "method": "POST",
            "description": "Add the inferred return type to a function signature",
            "params": "filePath, line, column | text, preview?",
            "example": {"filePath": "/src/math.ts", "line": 1, "text": "add"},
        },
        "/fix_all": {
            "method": "POST",
            "description": "Apply every automatic fix for the errors in a file",
            "params": "filePath, preview?",
            "example": {"filePath": "/src/index.ts"},
        },
        "/remove_unused": {
            "method": "POST",
            "description": "Delete unused imports, variables and parameters in a file",
            "params": "filePath, preview?",
            "example": {"filePath": "/src/index.ts"},
        },
    },
    "files": {
        "/organize_imports": {
            "method": "POST",
            "description": "Sort imports and remove unused ones",
            "params": "filePath, preview?",
            "example": {"filePath": "/src/index.ts"},
        },
        "/move_file": {
            "method": "POST",
            "description": "Move a file and update every import that points at it",
            "params": "sourcePath, destinationPath, preview?",
            "example": {"sourcePath": "/src/utils.ts", "destinationPath": "/src/lib/utils.ts"},
        },
        "/rename_file": {
            "method": "POST",
            "description": "Rename a file in its directory and update imports",
            "params": "sourcePath, name, preview?",
            "example": {"sourcePath": "/src/utils.ts", "name": "helpers.ts"},
        },
        "/batch_move_files": {
            "method": "POST",
            "description": "Move several files into one folder and update imports",
            "params": "files, targetFolder, preview?",
            "example": {"files": ["/src/a.ts", "/src/b.ts"], "targetFolder": "/src/lib"},
        },
        "/refactor_module": {
            "method": "POST",
            "description": "Move a file, then organize imports and apply fixes in every touched file",
            "params": "sourcePath, destinationPath, preview?",
            "example": {"sourcePath": "/src/old/service.ts", "destinationPath": "/src/new/service.ts"},
        },
    },
    "management": {
        "/restart": {"method": "POST", "description": "Restart tsserver to force a full re-index"},
        "/health": {"method": "GET", "description": "Health check"},
        "/stats": {"method": "GET", "description": "Session statistics per workspace"},
    },
}


class RefactorDaemon:
    def __init__(
        self,
        workspace: str,
        port: int = DEFAULT_PORT,
        settings: Settings | None = None,
        operations: RefactorOperations | None = None,
    ):
        self.workspace = os.path.abspath(workspace)
        self.port = port
        self.settings = settings or Settings()
        self._workspaces: dict[str, RefactorOperations] = {}
        if operations is not None:
            self._workspaces[self.workspace] = operations
        self._request_count = 0
        self.app = web.Application()
        self._setup_routes()

    def _setup_routes(self):
        # Discovery
        self.app.router.add_get("/", self.handle_endpoints_index)
        self.app.router.add_get("/endpoints", self.handle_endpoints_index)

        # Symbols
        self.app.router.add_post("/rename", self.handle_rename)
        self.app.router.add_post("/find_references", self.handle_find_references)

        # Extraction
        self.app.router.add_post("/extract_constant", self.handle_extract_constant)
        self.app.router.add_post("/extract_variable", self.handle_extract_variable)
        self.app.router.add_post("/extract_function", self.handle_extract_function)

        # Rewrites & fixes
        self.app.router.add_post("/inline_variable", self.handle_inline_variable)
        self.app.router.add_post("/infer_return_type", self.handle_infer_return_type)
        self.app.router.add_post("/fix_all", self.handle_fix_all)
        self.app.router.add_post("/remove_unused", self.handle_remove_unused)

        # Imports & files
        self.app.router.add_post("/organize_imports", self.handle_organize_imports)
        self.app.router.add_post("/move_file", self.handle_move_file)
        self.app.router.add_post("/rename_file", self.handle_rename_file)
        self.app.router.add_post("/batch_move_files", self.handle_batch_move_files)
        self.app.router.add_post("/refactor_module", self.handle_refactor_module)

        # Management
        self.app.router.add_post("/restart", self.handle_restart)
        self.app.router.add_get("/health", self.handle_health)
        self.app.router.add_get("/stats", self.handle_stats)

    def operations_for(self, workspace: str | None = None) -> RefactorOperations:
        """Operations bound to the session for a workspace root, created on first use."""
        root = os.path.abspath(workspace) if workspace else self.workspace
        if root not in self._workspaces:
            logger.info("New workspace session: %s", root)
            session = ServerSession(root, self.settings)
            self._workspaces[root] = RefactorOperations(session, self.settings)
        return self._workspaces[root]

    async def start(self):
        """Start the compiler for the default workspace."""
        logger.info("Starting refactor daemon (workspace %s, port %d)", self.workspace, self.port)
        operations = self.operations_for()
        try:
            await operations.session.start()
        except SessionError as e:
            logger.error("Failed to start compiler server: %s", e)
            sys.exit(1)

    async def stop(self):
        """Stop every compiler session."""
        for operations in self._workspaces.values():
            operations.gate.close()
            await operations.session.stop()

    def _json_response(self, data: dict, status: int = 200) -> web.Response:
        return web.json_response(data, status=status)

    def _error_response(self, message: str, status: int = 400) -> web.Response:
        return self._json_response({"error": message}, status=status)

    async def _get_json_body(self, request: web.Request) -> dict:
        try:
            return await request.json()
        except json.JSONDecodeError:
            return {}

    async def _run_operation(
        self,
        request: web.Request,
        required: list[str],
        call: OperationCall,
        usage: str | None = None,
    ) -> web.Response:
        """Validate required fields, then run one operation under the request timeout."""
        self._request_count += 1
        body = await self._get_json_body(request)

        if any(body.get(key) in (None, "", []) for key in required):
            return self._error_response(f"Required: {usage or ', '.join(required)}")

        try:
            operations = self.operations_for(body.get("workspace"))
            result = await asyncio.wait_for(call(operations, body), timeout=self.settings.request_timeout)
            return self._json_response(result.to_dict())
        except asyncio.TimeoutError:
            return self._error_response(
                f"Operation timed out after {self.settings.request_timeout:g}s", 504
            )
        except Exception as e:
            logger.exception("Unhandled error in %s", request.path)
            return self._error_response(str(e), 500)

    # --- Endpoints ---

    async def handle_endpoints_index(self, request: web.Request) -> web.Response:
        """Return index of all available endpoints for agent discovery."""
        return self._json_response({
            "service": "agents-refactor",
            "workspace": self.workspace,
            "endpoints": ENDPOINTS,
            "notes": [
                "Positions are 1-indexed; give either column or the exact text on the line",
                "Pass preview: true to see edits without writing files",
            ],
        })

    async def handle_health(self, request: web.Request) -> web.Response:
        """Health check endpoint."""
        operations = self._workspaces.get(self.workspace)
        return self._json_response({
            "status": "ok",
            "server_running": operations is not None and operations.session.is_running(),
            "project_loaded": operations is not None and operations.gate.is_loaded(),
        })

    async def handle_stats(self, request: web.Request) -> web.Response:
        """Return daemon statistics."""
        return self._json_response({
            "request_count": self._request_count,
            "workspace": self.workspace,
            "workspaces": {
                root: {
                    "state": operations.session.state.value,
                    "project_loaded": operations.gate.is_loaded(),
                    "opened_files_count": len(operations.session.opened_files),
                }
                for root, operations in self._workspaces.items()
            },
        })

    async def handle_rename(self, request: web.Request) -> web.Response:
        """Rename a symbol across files."""
        return await self._run_operation(
            request,
            ["filePath", "line", "newName"],
            lambda ops, body: ops.rename(
                body["filePath"],
                body["newName"],
                body["line"],
                column=body.get("column"),
                text=body.get("text"),
                preview=body.get("preview", False),
            ),
            usage="filePath, line, column or text, newName",
        )

    async def handle_find_references(self, request: web.Request) -> web.Response:
        """Find all references to a symbol."""
        return await self._run_operation(
            request,
            ["filePath", "line"],
            lambda ops, body: ops.find_references(
                body["filePath"], body["line"], column=body.get("column"), text=body.get("text"),
            ),
            usage="filePath, line, column or text",
        )

    async def handle_extract_constant(self, request: web.Request) -> web.Response:
        """Extract a value to a named constant."""
        return await self._run_operation(
            request,
            ["filePath"],
            lambda ops, body: ops.extract_constant(
                body["filePath"], body.get("constantName"), **self._selection(body),
            ),
        )

    async def handle_extract_variable(self, request: web.Request) -> web.Response:
        """Extract an expression to a local variable."""
        return await self._run_operation(
            request,
            ["filePath"],
            lambda ops, body: ops.extract_variable(
                body["filePath"], body.get("variableName"), **self._selection(body),
            ),
        )

    async def handle_extract_function(self, request: web.Request) -> web.Response:
        """Extract statements to a new function."""
        return await self._run_operation(
            request,
            ["filePath", "startLine", "startColumn", "endLine", "endColumn"],
            lambda ops, body: ops.extract_function(
                body["filePath"],
                body["startLine"],
                body["startColumn"],
                body["endLine"],
                body["endColumn"],
                function_name=body.get("functionName"),
                preview=body.get("preview", False),
            ),
        )

    async def handle_inline_variable(self, request: web.Request) -> web.Response:
        """Inline a variable into its usages."""
        return await self._run_operation(
            request,
            ["filePath", "line"],
            lambda ops, body: ops.inline_variable(
                body["filePath"], body["line"], column=body.get("column"), text=body.get("text"),
                preview=body.get("preview", False),
            ),
            usage="filePath, line, column or text",
        )

    async def handle_infer_return_type(self, request: web.Request) -> web.Response:
        """Annotate a function with its inferred return type."""
        return await self._run_operation(
            request,
            ["filePath", "line"],
            lambda ops, body: ops.infer_return_type(
                body["filePath"], body["line"], column=body.get("column"), text=body.get("text"),
                preview=body.get("preview", False),
            ),
            usage="filePath, line, column or text",
        )

    async def handle_fix_all(self, request: web.Request) -> web.Response:
        """Apply every automatic fix in a file."""
        return await self._run_operation(
            request,
            ["filePath"],
            lambda ops, body: ops.fix_all(body["filePath"], preview=body.get("preview", False)),
        )

    async def handle_remove_unused(self, request: web.Request) -> web.Response:
        """Delete unused code in a file."""
        return await self._run_operation(
            request,
            ["filePath"],
            lambda ops, body: ops.remove_unused(body["filePath"], preview=body.get("preview", False)),
        )

    async def handle_organize_imports(self, request: web.Request) -> web.Response:
        """Organize imports in a file."""
        return await self._run_operation(
            request,
            ["filePath"],
            lambda ops, body: ops.organize_imports(body["filePath"], preview=body.get("preview", False)),
        )

    async def handle_move_file(self, request: web.Request) -> web.Response:
        """Move a file and update imports."""
        return await self._run_operation(
            request,
            ["sourcePath", "destinationPath"],
            lambda ops, body: ops.move_file(
                body["sourcePath"], body["destinationPath"], preview=body.get("preview", False),
            ),
        )

    async def handle_rename_file(self, request: web.Request) -> web.Response:
        """Rename a file in place and update imports."""
        return await self._run_operation(
            request,
            ["sourcePath", "name"],
            lambda ops, body: ops.rename_file(body["sourcePath"], body["name"], preview=body.get("preview", False)),
        )

    async def handle_batch_move_files(self, request: web.Request) -> web.Response:
        """Move several files into a folder."""
        return await self._run_operation(
            request,
            ["files", "targetFolder"],
            lambda ops, body: ops.batch_move_files(
                body["files"], body["targetFolder"], preview=body.get("preview", False),
            ),
        )

    async def handle_refactor_module(self, request: web.Request) -> web.Response:
        """Move a file, then clean up every file the move touched."""
        return await self._run_operation(
            request,
            ["sourcePath", "destinationPath"],
            lambda ops, body: ops.refactor_module(
                body["sourcePath"], body["destinationPath"], preview=body.get("preview", False),
            ),
        )

    async def handle_restart(self, request: web.Request) -> web.Response:
        """Restart tsserver for a workspace."""
        return await self._run_operation(request, [], lambda ops, body: ops.restart_server())

    @staticmethod
    def _selection(body: dict) -> dict:
        return {
            "line": body.get("line"),
            "text": body.get("text"),
            "start_line": body.get("startLine"),
            "start_column": body.get("startColumn"),
            "end_line": body.get("endLine"),
            "end_column": body.get("endColumn"),
            "preview": body.get("preview", False),
        }

    async def run(self):
        """Run the HTTP server."""
        await self.start()
        runner = web.AppRunner(self.app)
        await runner.setup()
        site = web.TCPSite(runner, "localhost", self.port)
        await site.start()
        logger.info("Ready! Listening on http://localhost:%d", self.port)

        # Keep running
        try:
            while True:
                await asyncio.sleep(3600)
        except asyncio.CancelledError:
            pass
        finally:
            await self.stop()
            await runner.cleanup()


async def main():
    parser = argparse.ArgumentParser(description="Refactor HTTP Daemon - Shared tsserver instance for all agents")
    parser.add_argument("--port", type=int, default=DEFAULT_PORT, help=f"HTTP port (default: {DEFAULT_PORT})")
    parser.add_argument("--workspace", type=str, default=os.getcwd(), help="Workspace root (default: cwd)")
    parser.add_argument("--log-level", type=str, default=None, help="Log level (default: INFO)")
    args = parser.parse_args()

    configure_logging(args.log_level)
    daemon = RefactorDaemon(workspace=args.workspace, port=args.port, settings=Settings.from_env())

    try:
        await daemon.run()
    except KeyboardInterrupt:
        logger.info("Shutting down...")


def cli():
    asyncio.run(main())


if __name__ == "__main__":
    cli()

#!/usr/bin/env python3
"""
Agents Refactor - Configuration

Defaults, environment overrides, and logging setup shared by the daemon,
the manager and the MCP bridge.
"""

import logging
import os
import shlex
import shutil
import sys
from dataclasses import dataclass, field, fields
from pathlib import Path

# Daemon
DEFAULT_PORT = 7910
RUN_DIR = Path("/tmp/agents_refactor")
STARTUP_TIMEOUT = 15  # seconds

# Compiler server
TSSERVER_RELATIVE_PATH = Path("node_modules") / "typescript" / "lib" / "tsserver.js"

SOURCE_EXTENSIONS = (".ts", ".tsx", ".js", ".jsx", ".mjs", ".cjs")
SKIPPED_DIRECTORIES = ("node_modules", "dist")

ENV_PREFIX = "AGENTS_REFACTOR_"
LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


@dataclass
class Settings:
    """Tunables for one workspace session. All durations are seconds."""
    server_command: list[str] | None = None
    ready_timeout: float = 30.0
    update_timeout: float = 5.0
    discovery_timeout: float = 5.0
    request_timeout: float = 60.0
    assume_loaded_after: float | None = 0.5
    stop_grace_period: float = 2.0
    file_index_attempts: int = 30
    retry_delay: float = 0.1
    source_extensions: tuple[str, ...] = SOURCE_EXTENSIONS
    skipped_directories: tuple[str, ...] = SKIPPED_DIRECTORIES
    preferences: dict = field(default_factory=lambda: {
        "includeCompletionsForModuleExports": True,
        "includeCompletionsWithInsertText": True,
        "allowIncompleteCompletions": True,
        "includeAutomaticOptionalChainCompletions": True,
    })

    @classmethod
    def from_env(cls, environ: dict | None = None) -> "Settings":
        """Build settings from AGENTS_REFACTOR_* environment variables."""
        env = os.environ if environ is None else environ
        settings = cls()

        command = env.get(f"{ENV_PREFIX}TSSERVER")
        if command:
            settings.server_command = shlex.split(command)

        for f in fields(cls):
            if f.type not in ("float", float):
                continue
            raw = env.get(f"{ENV_PREFIX}{f.name.upper()}")
            if raw:
                setattr(settings, f.name, float(raw))
        return settings

    def resolve_server_command(self, root_path: str) -> list[str]:
        """Pick the tsserver command for a workspace root."""
        if self.server_command:
            return list(self.server_command)

        local = Path(root_path) / TSSERVER_RELATIVE_PATH
        if local.exists():
            return ["node", str(local)]

        global_tsserver = shutil.which("tsserver")
        if global_tsserver:
            return [global_tsserver]
        return ["node", str(local)]


def configure_logging(level: str | None = None) -> None:
    """Send log records to stderr so stdout stays free for MCP stdio."""
    level = level or os.environ.get(f"{ENV_PREFIX}LOG_LEVEL", "INFO")
    logging.basicConfig(stream=sys.stderr, level=level.upper(), format=LOG_FORMAT)

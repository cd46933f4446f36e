#!/usr/bin/env python3
"""
Agents Refactor Daemon Manager

Keeps one refactor daemon per port alive for every agent on the machine.
Each port gets its own PID and log file under the run directory, so
daemons for unrelated workspaces can coexist.

Usage:
    python -m agents_refactor.manager ensure   # Start unless already healthy (MCP startup)
    python -m agents_refactor.manager start    # Start daemon if not running
    python -m agents_refactor.manager stop     # SIGTERM, then SIGKILL
    python -m agents_refactor.manager restart
    python -m agents_refactor.manager status [--json]
"""

import argparse
import grp
import json
import os
import signal
import subprocess
import sys
import time
from dataclasses import asdict, dataclass, field
from pathlib import Path

import requests

from .config import DEFAULT_PORT, RUN_DIR, STARTUP_TIMEOUT

POLL_INTERVAL = 0.5  # seconds
STOP_TIMEOUT = 5  # seconds before SIGKILL


@dataclass
class DaemonStatus:
    port: int
    pid: int | None
    healthy: bool
    pid_file: str
    log_file: str
    stats: dict = field(default_factory=dict)

    @property
    def running(self) -> bool:
        return self.pid is not None

    def to_dict(self) -> dict:
        return {"running": self.running, **asdict(self)}


class DaemonManager:
    """PID-file lifecycle for the daemon listening on one port."""

    def __init__(self, port: int = DEFAULT_PORT, run_dir: Path = RUN_DIR):
        self.port = port
        self.run_dir = Path(run_dir)
        self.pid_file = self.run_dir / f"daemon-{port}.pid"
        self.log_file = self.run_dir / f"daemon-{port}.log"
        self.base_url = f"http://localhost:{port}"

    def read_pid(self) -> int | None:
        """PID of a live daemon process, clearing a stale PID file."""
        try:
            pid = int(self.pid_file.read_text().strip())
            os.kill(pid, 0)
        except FileNotFoundError:
            return None
        except (ValueError, ProcessLookupError, PermissionError):
            self._clear_pid()
            return None
        return pid

    def is_healthy(self) -> bool:
        try:
            return requests.get(f"{self.base_url}/health", timeout=2).status_code == 200
        except requests.RequestException:
            return False

    def status(self) -> DaemonStatus:
        status = DaemonStatus(
            port=self.port,
            pid=self.read_pid(),
            healthy=self.is_healthy(),
            pid_file=str(self.pid_file),
            log_file=str(self.log_file),
        )
        if status.healthy:
            try:
                resp = requests.get(f"{self.base_url}/stats", timeout=2)
                if resp.ok:
                    status.stats = resp.json()
            except requests.RequestException:
                pass
        return status

    def ensure(self, workspace: str | None = None) -> bool:
        """Idempotent: a healthy daemon on the port is good enough."""
        return self.is_healthy() or self.start(workspace)

    def start(self, workspace: str | None = None) -> bool:
        pid = self.read_pid()
        if pid and self.is_healthy():
            print(f"Daemon already running on port {self.port} (PID {pid})")
            return True
        if pid:
            print(f"Daemon PID {pid} is not answering, killing it")
            self._kill(pid, signal.SIGKILL)
            self._clear_pid()
        elif self.is_healthy():
            # Started by hand or by another run directory
            print(f"Port {self.port} already serves a healthy refactor daemon")
            return True

        workspace = os.path.abspath(workspace or os.getcwd())
        self._prepare_run_dir()
        print(f"Starting refactor daemon on port {self.port} for {workspace}")
        with open(self.log_file, "a") as log:
            os.chmod(self.log_file, 0o660)
            process = subprocess.Popen(
                [sys.executable, "-m", "agents_refactor.daemon", "--port", str(self.port), "--workspace", workspace],
                stdout=log,
                stderr=log,
                start_new_session=True,
            )
        self.pid_file.write_text(str(process.pid))
        os.chmod(self.pid_file, 0o660)

        deadline = time.monotonic() + STARTUP_TIMEOUT
        while time.monotonic() < deadline:
            if self.is_healthy():
                print(f"Daemon ready (PID {process.pid})")
                return True
            if process.poll() is not None:
                print(f"ERROR: Daemon exited with code {process.returncode}")
                break
            time.sleep(POLL_INTERVAL)
        else:
            print(f"ERROR: Daemon not healthy after {STARTUP_TIMEOUT}s")

        print(f"See {self.log_file}")
        return False

    def stop(self) -> bool:
        pid = self.read_pid()
        if pid is None:
            print("Daemon not running")
            return True

        print(f"Stopping daemon (PID {pid})...")
        try:
            os.kill(pid, signal.SIGTERM)
        except PermissionError:
            print(f"ERROR: Not allowed to signal PID {pid}")
            return False
        except ProcessLookupError:
            pass
        else:
            if not self._wait_for_exit(pid):
                print("Daemon ignored SIGTERM, sending SIGKILL")
                self._kill(pid, signal.SIGKILL)

        self._clear_pid()
        print("Daemon stopped")
        return True

    def restart(self, workspace: str | None = None) -> bool:
        return self.stop() and self.start(workspace)

    def _wait_for_exit(self, pid: int) -> bool:
        deadline = time.monotonic() + STOP_TIMEOUT
        while time.monotonic() < deadline:
            try:
                os.kill(pid, 0)
            except ProcessLookupError:
                return True
            time.sleep(POLL_INTERVAL)
        return False

    def _kill(self, pid: int, sig: int) -> None:
        try:
            os.kill(pid, sig)
        except ProcessLookupError:
            pass

    def _clear_pid(self) -> None:
        try:
            self.pid_file.unlink(missing_ok=True)
        except PermissionError:
            pass

    def _prepare_run_dir(self) -> None:
        """Shared run directory, group-writable so any local user can manage the daemon."""
        if self.run_dir.exists():
            return
        self.run_dir.mkdir(mode=0o770, parents=True)
        try:
            os.chown(self.run_dir, -1, grp.getgrnam("staff").gr_gid)
        except (KeyError, PermissionError):
            pass
        os.chmod(self.run_dir, 0o770)


def print_status(status: DaemonStatus) -> None:
    if status.healthy:
        print(f"Daemon healthy on port {status.port} (PID {status.pid or 'unknown'})")
        stats = status.stats
        if stats:
            print(f"  Requests served: {stats.get('request_count', 0)}")
            for root, info in stats.get("workspaces", {}).items():
                loaded = "loaded" if info.get("project_loaded") else "indexing"
                print(f"  {root}: {info.get('state')}, {loaded}, {info.get('opened_files_count', 0)} open file(s)")
    elif status.running:
        print(f"Daemon process {status.pid} exists but does not answer on port {status.port}")
    else:
        print(f"No daemon on port {status.port}")
    print(f"Log: {status.log_file}")


def main(argv: list[str] | None = None):
    parser = argparse.ArgumentParser(description="Refactor daemon manager")
    parser.add_argument("command", choices=["start", "stop", "restart", "status", "ensure"])
    parser.add_argument("--port", "-p", type=int, default=DEFAULT_PORT, help=f"Daemon port (default: {DEFAULT_PORT})")
    parser.add_argument("--workspace", "-w", default=None, help="Workspace root for a new daemon (default: cwd)")
    parser.add_argument("--json", action="store_true", help="Print status as JSON")
    args = parser.parse_args(argv)

    manager = DaemonManager(args.port)
    if args.command == "status":
        status = manager.status()
        if args.json:
            print(json.dumps(status.to_dict(), indent=2))
        else:
            print_status(status)
        ok = status.healthy
    elif args.command == "stop":
        ok = manager.stop()
    elif args.command == "restart":
        ok = manager.restart(args.workspace)
    elif args.command == "start":
        ok = manager.start(args.workspace)
    else:
        ok = manager.ensure(args.workspace)
    sys.exit(0 if ok else 1)


if __name__ == "__main__":
    main()

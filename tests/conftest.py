"""Shared fakes for flutter-tools-mcp tests; ensures the repo root is on sys.path."""

from __future__ import annotations

import sys
import threading
import time
from pathlib import Path
from typing import Callable

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from flutter_tools_mcp.config import ServerConfig  # noqa: E402
from flutter_tools_mcp.pty_process import Disposable  # noqa: E402


class FakeProcess:
    """In-memory stand-in for PtyProcess; tests push output with ``emit``."""

    def __init__(self, argv: list[str] | None = None, pid: int = 4242):
        self.argv = argv or []
        self.pid = pid
        self.writes: list[str] = []
        self.attached: list[Callable[[str], None]] = []
        self.kills = 0
        self.starts = 0
        self.on_write: Callable[[FakeProcess, str], None] | None = None
        self.on_start: Callable[[FakeProcess], None] | None = None
        self._listeners: dict[int, Callable[[str], None]] = {}
        self._next = 0
        self._lock = threading.Lock()

    @property
    def listener_count(self) -> int:
        with self._lock:
            return len(self._listeners)

    def on_data(self, listener: Callable[[str], None]) -> Disposable:
        with self._lock:
            token = self._next
            self._next += 1
            self._listeners[token] = listener
            self.attached.append(listener)

        def remove() -> None:
            with self._lock:
                self._listeners.pop(token, None)

        return Disposable(remove)

    def emit(self, chunk: str) -> None:
        with self._lock:
            listeners = list(self._listeners.values())
        for listener in listeners:
            listener(chunk)

    def emit_later(self, chunks: list[str], delay: float = 0.01) -> threading.Thread:
        def run() -> None:
            for chunk in chunks:
                time.sleep(delay)
                self.emit(chunk)

        thread = threading.Thread(target=run, daemon=True)
        thread.start()
        return thread

    def write(self, data: str) -> None:
        self.writes.append(data)
        if self.on_write is not None:
            self.on_write(self, data)

    def start(self) -> None:
        self.starts += 1
        if self.on_start is not None:
            self.on_start(self)

    def kill(self) -> None:
        self.kills += 1


class FakeSpawner:
    """Records spawn calls and hands out FakeProcess objects."""

    def __init__(self) -> None:
        self.calls: list[dict[str, object]] = []
        self.processes: list[FakeProcess] = []
        self.daemon_setup: Callable[[FakeProcess], None] | None = None
        self.analyzer_setup: Callable[[FakeProcess], None] | None = None

    def __call__(self, argv: list[str], **kwargs: object) -> FakeProcess:
        self.calls.append({"argv": list(argv), **kwargs})
        process = FakeProcess(argv, pid=1000 + len(self.processes))
        setup = self.daemon_setup if argv[1:2] == ["daemon"] else self.analyzer_setup
        if setup is not None:
            setup(process)
        self.processes.append(process)
        return process

    def by_mode(self, mode: str) -> list[FakeProcess]:
        return [proc for proc in self.processes if proc.argv[1:2] == [mode]]


def fake_locator(name: str, *, explicit_path: str | None = None) -> str:
    return f"/opt/flutter/bin/{name}"


@pytest.fixture
def config() -> ServerConfig:
    return ServerConfig(timeout_seconds=2.0, poll_interval=0.02)


@pytest.fixture
def spawner() -> FakeSpawner:
    return FakeSpawner()

"""The single long-lived ``flutter daemon`` shared by every tool call."""

from __future__ import annotations

import enum
import logging
import threading
from contextlib import contextmanager
from typing import Callable, Iterator

from .config import ServerConfig
from .errors import NotInitializedError, SessionTerminatedError
from .locator import locate_tool
from .pty_process import Disposable, PtyProcess

log = logging.getLogger(__name__)

LINE_TERMINATOR = "\r"


class SessionState(enum.Enum):
    UNSTARTED = "unstarted"
    RUNNING = "running"
    TERMINATED = "terminated"


Spawner = Callable[..., PtyProcess]


class DaemonSession:
    """Owns the daemon process.

    Transitions only move forward: UNSTARTED -> RUNNING -> TERMINATED. A
    terminated session is never restarted. ``ensure_started`` does not probe
    whether a running daemon is still alive.
    """

    def __init__(
        self,
        config: ServerConfig,
        *,
        spawner: Spawner = PtyProcess.spawn,
        locator: Callable[..., str] = locate_tool,
    ):
        self.config = config
        self._spawner = spawner
        self._locator = locator
        self._state = SessionState.UNSTARTED
        self._process: PtyProcess | None = None
        self._lock = threading.Lock()
        self._stream_guard = threading.Lock()

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def is_running(self) -> bool:
        return self._state is SessionState.RUNNING

    @property
    def process(self) -> PtyProcess | None:
        return self._process

    @property
    def pid(self) -> int | None:
        return self._process.pid if self._process is not None else None

    def ensure_started(self) -> None:
        with self._lock:
            if self._state is SessionState.RUNNING:
                return
            if self._state is SessionState.TERMINATED:
                raise SessionTerminatedError("Flutter daemon session has been terminated")

            tool = self._locator(self.config.tool_name, explicit_path=self.config.flutter_path)
            argv = [tool, "daemon"]
            self._process = self._spawner(argv, cols=self.config.cols, rows=self.config.rows)
            self._state = SessionState.RUNNING
            log.info("started flutter daemon pid=%s argv=%s", self._process.pid, argv)

    def _require_process(self) -> PtyProcess:
        process = self._process
        if self._state is not SessionState.RUNNING or process is None:
            raise NotInitializedError("Flutter process not initialized")
        return process

    def write(self, command: str) -> None:
        self._require_process().write(command + LINE_TERMINATOR)

    def on_data(self, listener: Callable[[str], None]) -> Disposable:
        return self._require_process().on_data(listener)

    @contextmanager
    def exclusive(self) -> Iterator[DaemonSession]:
        """Give one caller at a time the daemon's input and output stream."""
        with self._stream_guard:
            yield self

    def terminate(self) -> None:
        with self._lock:
            process, self._process = self._process, None
            previous = self._state
            self._state = SessionState.TERMINATED
        if process is not None:
            process.kill()
            log.info("terminated flutter daemon pid=%s", process.pid)
        elif previous is not SessionState.TERMINATED:
            log.debug("daemon session closed before it was started")

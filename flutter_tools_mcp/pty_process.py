"""Child processes attached to a pseudo-terminal.

The Flutter tool buffers its output when stdout is a pipe, so both the daemon
and the one-shot analyzer run on a pty. A reader thread drains the master side
and hands decoded chunks to whoever is listening.
"""

from __future__ import annotations

import codecs
import fcntl
import logging
import os
import pty
import select
import signal
import struct
import subprocess
import termios
import threading
from typing import Callable

log = logging.getLogger(__name__)

Listener = Callable[[str], None]

READ_SIZE = 4096


class Disposable:
    """Handle returned by ``on_data``; ``dispose()`` detaches the listener."""

    def __init__(self, callback: Callable[[], None]):
        self._callback: Callable[[], None] | None = callback
        self._lock = threading.Lock()

    @property
    def disposed(self) -> bool:
        return self._callback is None

    def dispose(self) -> None:
        with self._lock:
            callback, self._callback = self._callback, None
        if callback is not None:
            callback()


def set_window_size(fd: int, cols: int, rows: int) -> None:
    fcntl.ioctl(fd, termios.TIOCSWINSZ, struct.pack("HHHH", rows, cols, 0, 0))


class PtyProcess:
    def __init__(self, proc: subprocess.Popen[bytes], master_fd: int, argv: list[str]):
        self._proc = proc
        self._master_fd = master_fd
        self.argv = argv
        self._lock = threading.Lock()
        self._listeners: dict[int, Listener] = {}
        self._next_id = 0
        self._closed = False
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._reader = threading.Thread(
            target=self._pump,
            name=f"pty-reader-{proc.pid}",
            daemon=True,
        )
        self._started = False

    @classmethod
    def spawn(
        cls,
        argv: list[str],
        *,
        cols: int = 80,
        rows: int = 30,
        cwd: str | None = None,
        env: dict[str, str] | None = None,
        start: bool = True,
    ) -> PtyProcess:
        """Spawn ``argv`` on a new pty.

        With ``start=False`` nothing is read from the pty until ``start()`` is
        called, so a listener attached in between sees the very first byte.
        """
        master_fd, slave_fd = pty.openpty()
        try:
            set_window_size(slave_fd, cols, rows)
            child_env = os.environ.copy()
            child_env["TERM"] = "xterm-color"
            child_env["COLUMNS"] = str(cols)
            child_env["LINES"] = str(rows)
            if env:
                child_env.update(env)
            proc = subprocess.Popen(
                argv,
                cwd=cwd,
                env=child_env,
                stdin=slave_fd,
                stdout=slave_fd,
                stderr=slave_fd,
                start_new_session=True,
            )
        except BaseException:
            os.close(master_fd)
            raise
        finally:
            os.close(slave_fd)
        process = cls(proc, master_fd, argv)
        if start:
            process.start()
        return process

    def start(self) -> None:
        with self._lock:
            if self._started:
                return
            self._started = True
        self._reader.start()

    @property
    def pid(self) -> int:
        return self._proc.pid

    def poll(self) -> int | None:
        return self._proc.poll()

    def wait(self, timeout: float | None = None) -> int:
        return self._proc.wait(timeout=timeout)

    def on_data(self, listener: Listener) -> Disposable:
        with self._lock:
            token = self._next_id
            self._next_id += 1
            self._listeners[token] = listener

        def remove() -> None:
            with self._lock:
                self._listeners.pop(token, None)

        return Disposable(remove)

    def write(self, data: str) -> None:
        payload = data.encode("utf-8")
        with self._lock:
            if self._closed:
                raise OSError(f"pty for pid {self.pid} is closed")
            while payload:
                written = os.write(self._master_fd, payload)
                payload = payload[written:]

    def kill(self) -> None:
        if self._proc.poll() is None:
            # The child leads its own session; take its descendants down too.
            try:
                os.killpg(self._proc.pid, signal.SIGKILL)
            except ProcessLookupError:
                pass
            except PermissionError:
                self._proc.kill()
        try:
            self._proc.wait(timeout=5)
        except subprocess.TimeoutExpired:
            log.warning("pid %s did not exit after SIGKILL", self.pid)
        # The reader closes the master fd once it sees the hangup.
        self.start()

    def _emit(self, chunk: str) -> None:
        if not chunk:
            return
        with self._lock:
            listeners = list(self._listeners.values())
        for listener in listeners:
            try:
                listener(chunk)
            except Exception:
                log.exception("pty listener failed for pid %s", self.pid)

    def _drain(self) -> None:
        while True:
            try:
                ready, _, _ = select.select([self._master_fd], [], [], 0)
                if not ready:
                    return
                data = os.read(self._master_fd, READ_SIZE)
            except (OSError, ValueError):
                return
            if not data:
                return
            self._emit(self._decoder.decode(data))

    def _pump(self) -> None:
        try:
            while True:
                try:
                    ready, _, _ = select.select([self._master_fd], [], [], 0.1)
                except (OSError, ValueError):
                    break
                if not ready:
                    if self._proc.poll() is not None:
                        # The child may have written its last bytes just before exiting.
                        self._drain()
                        break
                    continue
                try:
                    data = os.read(self._master_fd, READ_SIZE)
                except OSError:
                    # Linux reports EIO once the slave side has no more writers.
                    break
                if not data:
                    break
                self._emit(self._decoder.decode(data))
            self._emit(self._decoder.decode(b"", final=True))
        finally:
            with self._lock:
                self._closed = True
                os.close(self._master_fd)
            log.debug("pty reader for pid %s finished", self.pid)

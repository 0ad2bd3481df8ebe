"""Correlate unframed process output with a single logical request.

Neither the daemon nor the analyzer frames its responses, so completion is
inferred from the accumulated output: either the whole buffer parses as one
document, or a known marker shows up in it. A ``CompletionStrategy`` captures
which test to run and when (on each poll tick, on each chunk, or both);
``await_output`` runs that test against a deadline.
"""

from __future__ import annotations

import json
import logging
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Protocol

from .errors import OperationTimeoutError
from .pty_process import Disposable

log = logging.getLogger(__name__)


class IncompleteOutput(Exception):
    """Raised by ``CompletionStrategy.extract`` when more output is needed."""


class OutputSource(Protocol):
    def on_data(self, listener: Callable[[str], None]) -> Disposable: ...


@dataclass(frozen=True)
class CompletionStrategy:
    """How to decide that the buffered output holds a complete response.

    ``extract`` receives the full buffer and returns the result, or raises
    ``IncompleteOutput``/``ValueError`` to signal "not yet". ``poll`` runs it on
    every poll tick; ``check_on_chunk`` runs it inside the listener right after
    each chunk is appended.
    """

    name: str
    extract: Callable[[str], Any]
    poll: bool = True
    check_on_chunk: bool = False


def json_document() -> CompletionStrategy:
    return CompletionStrategy(name="json", extract=json.loads, poll=True, check_on_chunk=False)


def marker(text: str = "Applied") -> CompletionStrategy:
    def extract(buffer: str) -> str:
        if text not in buffer:
            raise IncompleteOutput(text)
        return buffer.strip()

    return CompletionStrategy(name=f"marker:{text}", extract=extract, poll=False, check_on_chunk=True)


_UNSET = object()


class PendingOperation:
    """Output buffer and resolution slot for one in-flight request."""

    def __init__(self, strategy: CompletionStrategy, label: str = ""):
        self.strategy = strategy
        self.label = label
        self.chunks: list[str] = []
        self.handle: Disposable | None = None
        self.closed = False
        self._lock = threading.Lock()
        self._done = threading.Event()
        self._value: Any = _UNSET
        self._error: BaseException | None = None

    @property
    def buffer(self) -> str:
        with self._lock:
            return "".join(self.chunks)

    @property
    def resolved(self) -> bool:
        return self._done.is_set()

    def feed(self, chunk: str) -> None:
        with self._lock:
            if self.closed:
                return
            self.chunks.append(chunk)
            if self.strategy.check_on_chunk:
                self._try_resolve()

    def check(self) -> bool:
        with self._lock:
            if self.closed:
                return self._done.is_set()
            return self._try_resolve()

    def wait(self, timeout: float) -> bool:
        return self._done.wait(timeout)

    def result(self) -> Any:
        if self._error is not None:
            raise self._error
        if self._value is _UNSET:
            raise RuntimeError(f"operation {self.label!r} has not resolved")
        return self._value

    def close(self) -> None:
        with self._lock:
            self.closed = True
            handle = self.handle
        if handle is not None:
            handle.dispose()

    def _try_resolve(self) -> bool:
        # caller holds self._lock
        try:
            value = self.strategy.extract("".join(self.chunks))
        except (IncompleteOutput, ValueError):
            return False
        except Exception as exc:
            self._error = exc
        else:
            self._value = value
        self.closed = True
        self._done.set()
        return True


def await_output(
    process: OutputSource,
    strategy: CompletionStrategy,
    *,
    timeout: float,
    poll_interval: float = 0.1,
    on_timeout: Callable[[], None] | None = None,
    description: str = "output",
    send: Callable[[], None] | None = None,
) -> Any:
    """Block until ``strategy`` accepts the output of ``process`` or ``timeout`` expires.

    ``send`` runs after the listener is attached, so a command written to a
    shared stream cannot have its reply missed. ``on_timeout`` runs after the
    listener is detached and before OperationTimeoutError is raised; one-shot
    callers pass the process's ``kill``, the shared daemon passes nothing.
    """
    pending = PendingOperation(strategy, label=description)
    pending.handle = process.on_data(pending.feed)
    deadline = time.monotonic() + timeout

    try:
        if send is not None:
            send()
        while True:
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                break
            step = min(poll_interval, remaining) if strategy.poll else remaining
            if pending.wait(step):
                break
            if strategy.poll and pending.check():
                break
    finally:
        pending.close()

    if pending.resolved:
        log.debug("%s resolved via %s after %d chunk(s)", description, strategy.name, len(pending.chunks))
        return pending.result()

    log.warning("timed out after %.1fs waiting for %s", timeout, description)
    if on_timeout is not None:
        try:
            on_timeout()
        except OSError as exc:
            log.warning("cleanup after timeout failed for %s: %s", description, exc)
    raise OperationTimeoutError(f"Timeout waiting for {description}")

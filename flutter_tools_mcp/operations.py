"""Tool handlers: diagnostics through a one-shot analyzer, fixes through the daemon."""

from __future__ import annotations

import json
import logging
from typing import Any, Callable

from .config import ServerConfig
from .correlator import await_output, json_document, marker
from .errors import InvalidParamsError, MethodNotFoundError, NotInitializedError
from .locator import locate_tool
from .pty_process import PtyProcess
from .session import DaemonSession

log = logging.getLogger(__name__)

FILE_SCHEMA: dict[str, Any] = {
    "type": "object",
    "properties": {
        "file": {
            "type": "string",
            "description": "Path to the Dart/Flutter file",
        },
    },
    "required": ["file"],
}

TOOL_DEFINITIONS: list[dict[str, Any]] = [
    {
        "name": "get_diagnostics",
        "description": "Get Flutter/Dart diagnostics for a file",
        "inputSchema": FILE_SCHEMA,
    },
    {
        "name": "apply_fixes",
        "description": "Apply Dart fix suggestions to a file",
        "inputSchema": FILE_SCHEMA,
    },
]

TOOL_NAMES = frozenset(tool["name"] for tool in TOOL_DEFINITIONS)


def require_file(payload: dict[str, Any]) -> str:
    value = payload.get("file")
    if not isinstance(value, str) or not value:
        raise InvalidParamsError("File path is required")
    return value


def text_content(text: str) -> dict[str, Any]:
    return {"content": [{"type": "text", "text": text}]}


class FlutterTools:
    def __init__(
        self,
        config: ServerConfig,
        session: DaemonSession,
        *,
        spawner: Callable[..., PtyProcess] = PtyProcess.spawn,
        locator: Callable[..., str] = locate_tool,
    ):
        self.config = config
        self.session = session
        self._spawner = spawner
        self._locator = locator

    def get_diagnostics(self, file_path: str) -> Any:
        tool = self._locator(self.config.tool_name, explicit_path=self.config.flutter_path)
        argv = [tool, "analyze", file_path, "--json"]
        process = self._spawner(argv, cols=self.config.cols, rows=self.config.rows, start=False)
        log.debug("spawned analyzer pid=%s for %s", process.pid, file_path)
        try:
            return await_output(
                process,
                json_document(),
                timeout=self.config.timeout_seconds,
                poll_interval=self.config.poll_interval,
                on_timeout=process.kill,
                description="diagnostics",
                send=process.start,
            )
        finally:
            # One-shot: whatever the outcome, the analyzer is done.
            process.kill()

    def apply_fixes(self, file_path: str) -> str:
        if not self.session.is_running:
            raise NotInitializedError("Flutter process not initialized")

        with self.session.exclusive() as session:
            return await_output(
                session,
                marker(self.config.fix_marker),
                timeout=self.config.timeout_seconds,
                poll_interval=self.config.poll_interval,
                description="dart fix to complete",
                send=lambda: session.write(f"dart fix --apply {file_path}"),
            )

    # --- Dispatch ---

    def call_tool(self, name: str, arguments: dict[str, Any]) -> dict[str, Any]:
        if name not in TOOL_NAMES:
            raise MethodNotFoundError(f"Unknown tool: {name}")
        if not isinstance(arguments, dict):
            raise InvalidParamsError("arguments must be an object")

        file_path = require_file(arguments)
        self.session.ensure_started()

        if name == "get_diagnostics":
            diagnostics = self.get_diagnostics(file_path)
            return text_content(json.dumps(diagnostics, indent=2))

        output = self.apply_fixes(file_path)
        return text_content(f"Applied fixes to {file_path}: {output}")

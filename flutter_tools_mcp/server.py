"""stdio MCP server for the Flutter tools."""

from __future__ import annotations

import datetime as dt
import json
import logging
import sys
from typing import Any, TextIO

from . import __version__
from .config import ServerConfig, load_config
from .errors import (
    INTERNAL_ERROR,
    INVALID_PARAMS,
    INVALID_REQUEST,
    METHOD_NOT_FOUND,
    PARSE_ERROR,
    FlutterToolsError,
)
from .operations import TOOL_DEFINITIONS, FlutterTools
from .session import DaemonSession

log = logging.getLogger(__name__)

PROTOCOL_VERSION = "2024-11-05"
SERVER_NAME = "flutter-tools"


def utc_now() -> str:
    return dt.datetime.now(dt.timezone.utc).isoformat(timespec="seconds").replace("+00:00", "Z")


def _result(request_id: Any, data: Any) -> dict[str, Any]:
    return {"jsonrpc": "2.0", "id": request_id, "result": data}


def _error(request_id: Any, code: int, message: str) -> dict[str, Any]:
    return {"jsonrpc": "2.0", "id": request_id, "error": {"code": code, "message": message}}


class RequestRouter:
    def __init__(self, tools: FlutterTools):
        self.tools = tools

    def dispatch(self, method: str, params: dict[str, Any], request_id: Any) -> dict[str, Any]:
        """Dispatch a JSON-RPC request and return the response envelope."""
        if method == "initialize":
            return _result(request_id, {
                "protocolVersion": PROTOCOL_VERSION,
                "serverInfo": {"name": SERVER_NAME, "version": __version__},
                "capabilities": {"resources": {}, "tools": {}},
            })

        if method == "notifications/initialized":
            return _result(request_id, {})

        if method == "tools/list":
            return _result(request_id, {"tools": TOOL_DEFINITIONS})

        if method == "tools/call":
            name = params.get("name")
            if not isinstance(name, str) or not name:
                return _error(request_id, INVALID_PARAMS, "tools/call requires name")
            arguments = params.get("arguments", {})
            if arguments is None:
                arguments = {}
            if not isinstance(arguments, dict):
                return _error(request_id, INVALID_PARAMS, "tools/call arguments must be an object")

            try:
                return _result(request_id, self.tools.call_tool(name, arguments))
            except FlutterToolsError as exc:
                return _error(request_id, exc.code, str(exc))
            except Exception as exc:
                log.exception("tool %s failed", name)
                return _error(request_id, INTERNAL_ERROR, f"internal error: {exc}")

        if method == "ping":
            return _result(request_id, {"ok": True, "ts": utc_now()})

        return _error(request_id, METHOD_NOT_FOUND, f"method not found: {method}")

    def handle_line(self, line: str) -> dict[str, Any] | None:
        """Handle one raw transport line; None means nothing is sent back."""
        try:
            body = json.loads(line)
        except json.JSONDecodeError:
            return _error(None, PARSE_ERROR, "parse error")

        if not isinstance(body, dict):
            return _error(None, INVALID_REQUEST, "invalid request")

        request_id = body.get("id")
        method = body.get("method")
        params = body.get("params", {})
        if params is None:
            params = {}

        if not isinstance(method, str):
            return _error(request_id, INVALID_REQUEST, "method is required")

        # Notifications carry no id and never get a reply, not even an error.
        if "id" not in body:
            log.debug("notification %s", method)
            if isinstance(params, dict):
                self.dispatch(method, params, None)
            return None

        if not isinstance(params, dict):
            return _error(request_id, INVALID_PARAMS, "invalid params: must be an object")

        return self.dispatch(method, params, request_id)


def run_stdio(router: RequestRouter, stdin: TextIO | None = None, stdout: TextIO | None = None) -> int:
    """Serve newline-delimited JSON-RPC until stdin closes."""
    stdin = stdin or sys.stdin
    stdout = stdout or sys.stdout
    for line in stdin:
        line = line.strip()
        if not line:
            continue

        response = router.handle_line(line)
        if response is None:
            continue
        stdout.write(json.dumps(response, separators=(",", ":")) + "\n")
        stdout.flush()

    return 0


def configure_logging(config: ServerConfig) -> None:
    logging.basicConfig(
        stream=sys.stderr,
        level=getattr(logging, config.log_level.upper()),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def main(argv: list[str]) -> int:
    config = load_config(argv)
    configure_logging(config)

    session = DaemonSession(config)
    router = RequestRouter(FlutterTools(config, session))

    print(f"{SERVER_NAME} mcp stdio ready tool={config.tool_name}", file=sys.stderr, flush=True)

    try:
        return run_stdio(router)
    except KeyboardInterrupt:
        log.info("interrupted, shutting down")
        return 0
    finally:
        session.terminate()


def cli() -> int:
    return main(sys.argv[1:])


if __name__ == "__main__":
    raise SystemExit(cli())

"""Error taxonomy surfaced to MCP clients as JSON-RPC errors."""

from __future__ import annotations

PARSE_ERROR = -32700
INVALID_REQUEST = -32600
METHOD_NOT_FOUND = -32601
INVALID_PARAMS = -32602
INTERNAL_ERROR = -32603


class FlutterToolsError(RuntimeError):
    code = -32000


class ToolNotFoundError(FlutterToolsError):
    code = -32000


class InvalidParamsError(FlutterToolsError):
    code = INVALID_PARAMS


class MethodNotFoundError(FlutterToolsError):
    code = METHOD_NOT_FOUND


class OperationTimeoutError(FlutterToolsError):
    code = -32001


class NotInitializedError(FlutterToolsError):
    code = -32002


class SessionTerminatedError(FlutterToolsError):
    code = -32003

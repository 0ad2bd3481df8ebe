"""MCP server exposing Flutter/Dart diagnostics and fixes over stdio."""

__version__ = "0.1.0"

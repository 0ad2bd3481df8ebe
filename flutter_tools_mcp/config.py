"""Server configuration: CLI flags, environment variables and an optional YAML file."""

from __future__ import annotations

import argparse
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml

DEFAULT_TOOL_NAME = "flutter"
DEFAULT_TIMEOUT_SECONDS = 30.0
DEFAULT_POLL_INTERVAL = 0.1
DEFAULT_FIX_MARKER = "Applied"
DEFAULT_COLS = 80
DEFAULT_ROWS = 30

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR")


@dataclass(frozen=True)
class ServerConfig:
    tool_name: str = DEFAULT_TOOL_NAME
    flutter_path: str | None = None
    timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS
    poll_interval: float = DEFAULT_POLL_INTERVAL
    fix_marker: str = DEFAULT_FIX_MARKER
    cols: int = DEFAULT_COLS
    rows: int = DEFAULT_ROWS
    log_level: str = "INFO"


# Keys accepted in the YAML file, with the type each value must have.
FILE_KEYS: dict[str, tuple[type, ...]] = {
    "tool_name": (str,),
    "flutter_path": (str,),
    "timeout_seconds": (int, float),
    "poll_interval": (int, float),
    "fix_marker": (str,),
    "cols": (int,),
    "rows": (int,),
    "log_level": (str,),
}


def env_float(name: str, default: float | None) -> float | None:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def load_config_file(path: Path) -> dict[str, Any]:
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise SystemExit(f"cannot read config file {path}: {exc}") from exc

    try:
        data = yaml.safe_load(text)
    except yaml.YAMLError as exc:
        raise SystemExit(f"invalid YAML in config file {path}: {exc}") from exc

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise SystemExit(f"config file {path} must contain a mapping")

    clean: dict[str, Any] = {}
    for key, value in data.items():
        expected = FILE_KEYS.get(key)
        if expected is None:
            raise SystemExit(f"unknown key in config file {path}: {key}")
        # bool is an int subclass; reject it for numeric keys
        if isinstance(value, bool) or not isinstance(value, expected):
            raise SystemExit(f"config key {key} has wrong type: {type(value).__name__}")
        clean[key] = value
    return clean


def load_config(argv: list[str]) -> ServerConfig:
    parser = argparse.ArgumentParser(prog="flutter-tools-mcp")
    parser.add_argument("--config", default=os.getenv("FLUTTER_TOOLS_MCP_CONFIG"))
    parser.add_argument("--tool-name", default=os.getenv("FLUTTER_TOOLS_MCP_TOOL"))
    parser.add_argument("--flutter-path", default=os.getenv("FLUTTER_TOOLS_MCP_FLUTTER_PATH"))
    parser.add_argument("--timeout", type=float, default=env_float("FLUTTER_TOOLS_MCP_TIMEOUT", None))
    parser.add_argument(
        "--poll-interval",
        type=float,
        default=env_float("FLUTTER_TOOLS_MCP_POLL_INTERVAL", None),
    )
    parser.add_argument("--fix-marker", default=os.getenv("FLUTTER_TOOLS_MCP_FIX_MARKER"))
    parser.add_argument("--cols", type=int, default=None)
    parser.add_argument("--rows", type=int, default=None)
    parser.add_argument(
        "--log-level",
        default=os.getenv("FLUTTER_TOOLS_MCP_LOG_LEVEL"),
        type=str.upper,
        choices=LOG_LEVELS,
    )

    args = parser.parse_args(argv)

    values: dict[str, Any] = {}
    if args.config:
        values.update(load_config_file(Path(args.config).expanduser()))

    overrides = {
        "tool_name": args.tool_name,
        "flutter_path": args.flutter_path,
        "timeout_seconds": args.timeout,
        "poll_interval": args.poll_interval,
        "fix_marker": args.fix_marker,
        "cols": args.cols,
        "rows": args.rows,
        "log_level": args.log_level,
    }
    values.update({key: value for key, value in overrides.items() if value is not None})

    config = ServerConfig(**values)

    if config.timeout_seconds <= 0:
        raise SystemExit("timeout must be positive")
    if config.poll_interval <= 0:
        raise SystemExit("poll interval must be positive")
    if config.cols < 1 or config.rows < 1:
        raise SystemExit("terminal geometry must be positive")
    if not config.fix_marker:
        raise SystemExit("fix marker must be a non-empty string")
    if config.log_level.upper() not in LOG_LEVELS:
        raise SystemExit(f"log level must be one of: {', '.join(LOG_LEVELS)}")

    return config

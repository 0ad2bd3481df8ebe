"""Resolve the Flutter executable on the host."""

from __future__ import annotations

import os
import shutil

from .errors import ToolNotFoundError


def locate_tool(
    name: str = "flutter",
    *,
    explicit_path: str | None = None,
    search_path: str | None = None,
) -> str:
    """Return an absolute path to ``name``, or raise ToolNotFoundError.

    ``explicit_path`` wins when it points at an executable file. The lookup is
    not cached; callers re-resolve on every spawn.
    """
    if explicit_path:
        candidate = os.path.abspath(os.path.expanduser(explicit_path))
        if os.path.isfile(candidate) and os.access(candidate, os.X_OK):
            return candidate

    found = shutil.which(name, path=search_path)
    if found is None:
        raise ToolNotFoundError(
            f"{name.capitalize()} SDK not found in PATH. "
            f"Please ensure {name.capitalize()} is installed and in your PATH."
        )
    return os.path.abspath(found)

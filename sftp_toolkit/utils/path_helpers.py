"""Helpers for rendering paths and sizes in log messages."""

from __future__ import annotations

import os


def human_readable_size(size_bytes: int | float) -> str:
    """Convert a byte count to a human-readable string (e.g. "4.2 MB").

    Uses 1024-based units (KiB/MiB/GiB) but labels them KB/MB/GB for
    familiarity with everyday usage.
    """
    if size_bytes < 0:
        return "0 B"
    for unit in ("B", "KB", "MB", "GB", "TB"):
        if size_bytes < 1024.0:
            if unit == "B":
                return f"{int(size_bytes)} B"
            return f"{size_bytes:.1f} {unit}"
        size_bytes /= 1024.0
    return f"{size_bytes:.1f} PB"


def display_path(path: str | bytes | os.PathLike) -> str:
    """Render a local or remote path for logging.

    Remote paths are arbitrary byte strings; undecodable bytes are replaced
    rather than raising inside a log call.
    """
    path = os.fspath(path)
    if isinstance(path, bytes):
        return path.decode("utf-8", errors="replace")
    return path

"""Filesystem helpers for crash-safe report writes."""

from __future__ import annotations

import contextlib
import os
import re
import tempfile
from pathlib import Path

PathLike = str | os.PathLike[str]

_UNSAFE_FILENAME_CHARS = re.compile(r"[^A-Za-z0-9._-]+")


def atomic_write(path: PathLike, data: bytes | str, *, encoding: str = "utf-8") -> None:
    """Write ``data`` to a temp file beside ``path``, fsync it, then ``os.replace``.

    Parent directories are created. Readers see either the old file or the new
    one, never a partial write.
    """

    target = Path(path)
    target.parent.mkdir(parents=True, exist_ok=True)
    fd, temp_name = tempfile.mkstemp(
        prefix=f".{target.name}.",
        suffix=".tmp",
        dir=str(target.parent),
    )
    temp_path = Path(temp_name)
    payload = data.encode(encoding) if isinstance(data, str) else data
    try:
        with os.fdopen(fd, "wb") as handle:
            handle.write(payload)
            handle.flush()
            os.fsync(handle.fileno())
        os.replace(temp_path, target)
    except Exception:
        with contextlib.suppress(OSError):
            temp_path.unlink(missing_ok=True)
        raise


def safe_filename(name: str, *, fallback: str = "unnamed") -> str:
    """Map an arbitrary repo name to a single path component."""

    cleaned = _UNSAFE_FILENAME_CHARS.sub("_", name.strip()).strip("._")
    return cleaned or fallback


__all__ = ["atomic_write", "safe_filename"]

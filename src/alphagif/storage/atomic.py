"""Atomic filesystem write helpers."""

from __future__ import annotations

from pathlib import Path
import os
import tempfile


def atomic_write_bytes(path: Path, content: bytes) -> None:
    """Write bytes atomically using a temp file + rename."""

    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", dir=str(path.parent))
    try:
        with os.fdopen(fd, "wb") as handle:
            handle.write(content)
        os.replace(tmp_name, path)
    finally:
        if os.path.exists(tmp_name):
            os.unlink(tmp_name)

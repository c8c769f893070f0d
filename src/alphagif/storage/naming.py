"""Output naming and size display helpers."""

from __future__ import annotations

from pathlib import Path


def default_output_path(input_path: Path) -> Path:
    """Place the GIF next to its source: ``clip.webm`` -> ``clip.gif``."""

    if not input_path.stem:
        return input_path.parent / "converted.gif"
    return input_path.with_suffix(".gif")


def format_file_size(num_bytes: int) -> str:
    if num_bytes < 1024:
        return f"{num_bytes} B"
    if num_bytes < 1024 * 1024:
        return f"{num_bytes / 1024:.1f} KB"
    return f"{num_bytes / (1024 * 1024):.1f} MB"

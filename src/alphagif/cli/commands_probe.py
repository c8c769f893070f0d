"""`alphagif probe` command."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Annotated

from rich.console import Console
from rich.table import Table
import tyro

from alphagif.config.loader import load_converter_config
from alphagif.errors import SourceLoadFailure
from alphagif.pipeline.converter import ConversionPipeline
from alphagif.storage.naming import format_file_size


@dataclass(slots=True)
class ProbeCommand:
    """Show source metadata and the frame count a conversion would produce."""

    input: Annotated[Path, tyro.conf.Positional]
    fps: int | None = None
    config: str | None = None


def execute(command: ProbeCommand) -> None:
    cfg = load_converter_config(command.config)
    fps = command.fps or cfg.options.fps
    pipeline = ConversionPipeline(cfg)
    try:
        source = pipeline.probe(command.input)
    except SourceLoadFailure as exc:
        Console(stderr=True).print(f"[red]{exc}[/red]")
        raise SystemExit(1) from None

    table = Table(show_header=False, pad_edge=False)
    table.add_row("file", str(source.path))
    table.add_row("size", format_file_size(source.path.stat().st_size))
    table.add_row("dimensions", f"{source.natural_width}x{source.natural_height}")
    table.add_row("duration", f"{source.duration:.1f}s")
    table.add_row("codec", source.codec or "unknown")
    table.add_row(f"frames @ {fps} fps", str(source.estimated_frames(fps)))
    Console().print(table)

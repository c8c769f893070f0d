"""`alphagif convert` command."""

from __future__ import annotations

from concurrent.futures import wait
from dataclasses import dataclass
from pathlib import Path
from typing import Annotated

from rich.console import Console
from rich.progress import BarColumn, Progress, TaskProgressColumn, TextColumn, TimeElapsedColumn
import tyro

from alphagif.config.loader import load_converter_config, override_options
from alphagif.errors import Cancelled, ConversionError, EncodeWorkerFailure
from alphagif.observability.logging import configure_logging
from alphagif.pipeline.converter import ConversionPipeline
from alphagif.pipeline.progress import ProgressState
from alphagif.storage.atomic import atomic_write_bytes
from alphagif.storage.naming import default_output_path, format_file_size


@dataclass(slots=True)
class ConvertCommand:
    """Convert a video with alpha into a transparent looping GIF."""

    input: Annotated[Path, tyro.conf.Positional]
    output: Path | None = None
    config: str | None = None
    fps: int | None = None
    quality: int | None = None
    width: int | None = None
    height: int | None = None
    threshold: int | None = None
    workers: int | None = None
    ffmpeg: str | None = None
    seek_timeout: float | None = None
    log_level: str | None = None
    quiet: bool = False


def _build_pipeline(command: ConvertCommand) -> ConversionPipeline:
    cfg = load_converter_config(command.config)
    cfg.options = override_options(
        cfg.options,
        fps=command.fps,
        quality=command.quality,
        width=command.width,
        height=command.height,
        transparent_threshold=command.threshold,
    )
    if command.workers is not None:
        cfg.encoder.max_workers = command.workers
    if command.ffmpeg is not None:
        cfg.decoder.ffmpeg_path = command.ffmpeg
    if command.seek_timeout is not None:
        cfg.decoder.seek_timeout = command.seek_timeout
    if command.log_level is not None:
        cfg.log_level = command.log_level
    configure_logging(cfg.log_level)
    return ConversionPipeline(cfg)


def execute(command: ConvertCommand) -> None:
    console = Console(stderr=True, quiet=command.quiet)
    pipeline = _build_pipeline(command)
    output_path = command.output or default_output_path(command.input)

    with Progress(
        TextColumn("{task.description}"),
        BarColumn(),
        TaskProgressColumn(),
        TimeElapsedColumn(),
        console=console,
        transient=True,
    ) as bar:
        task = bar.add_task("Loading video...", total=100)

        def _render(state: ProgressState) -> None:
            bar.update(task, completed=state.progress, description=state.message)

        pipeline.subscribe(_render)
        future = pipeline.submit(command.input)
        interrupted = False
        try:
            while not future.done():
                try:
                    wait([future], timeout=0.2)
                except KeyboardInterrupt:
                    interrupted = True
                    pipeline.cancel()
            result = future.result()
        except Cancelled:
            console.print("[yellow]Conversion cancelled[/yellow]")
            raise SystemExit(130) from None
        except ConversionError as exc:
            # Ctrl-C also reaches the pool workers, which may fail before the cancel lands.
            if interrupted and isinstance(exc, EncodeWorkerFailure):
                console.print("[yellow]Conversion cancelled[/yellow]")
                raise SystemExit(130) from None
            console.print(f"[red]Conversion failed:[/red] {exc}")
            raise SystemExit(1) from None
        finally:
            pipeline.close()

    atomic_write_bytes(output_path, result.data)
    print(
        f"wrote {output_path} frames={result.frame_count} "
        f"size={result.width}x{result.height} bytes={format_file_size(result.byte_length)}"
    )

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
import threading
from typing import Callable

import numpy as np
import pytest

from alphagif.decode.source import SourceVideo
from alphagif.pipeline.cancellation import CancellationToken


FramePainter = Callable[[float, tuple[int, int]], np.ndarray]


def solid(rgba: tuple[int, int, int, int]) -> FramePainter:
    def _paint(_timestamp: float, size: tuple[int, int]) -> np.ndarray:
        width, height = size
        frame = np.empty((height, width, 4), dtype=np.uint8)
        frame[...] = rgba
        return frame

    return _paint


class FakeDecoder:
    """In-memory decode service that paints frames from their timestamp."""

    def __init__(
        self,
        *,
        duration: float = 1.0,
        size: tuple[int, int] = (10, 10),
        painter: FramePainter | None = None,
        gate: threading.Event | None = None,
        on_read: Callable[[int], None] | None = None,
        missing_from: float | None = None,
    ) -> None:
        self.duration = duration
        self.size = size
        self.painter = painter or solid((10, 20, 30, 255))
        self.gate = gate
        self.on_read = on_read
        self.missing_from = missing_from
        self.timestamps: list[float] = []
        self.sizes: list[tuple[int, int]] = []
        self.opened: list[SourceVideo] = []

    def open(self, path: Path) -> SourceVideo:
        if self.gate is not None:
            self.gate.wait(5)
        source = SourceVideo(
            path=Path(path),
            duration=self.duration,
            natural_width=self.size[0],
            natural_height=self.size[1],
            codec="vp9",
        )
        self.opened.append(source)
        return source

    def read_frame(
        self,
        source: SourceVideo,
        timestamp: float,
        size: tuple[int, int],
        *,
        timeout: float,
        token: CancellationToken | None = None,
    ) -> np.ndarray | None:
        assert not source.closed
        self.timestamps.append(timestamp)
        self.sizes.append(size)
        if self.on_read is not None:
            self.on_read(len(self.timestamps) - 1)
        if self.missing_from is not None and timestamp >= self.missing_from:
            return None
        return self.painter(timestamp, size)


@pytest.fixture
def thread_pool() -> Callable[[int], ThreadPoolExecutor]:
    return lambda workers: ThreadPoolExecutor(max_workers=workers)

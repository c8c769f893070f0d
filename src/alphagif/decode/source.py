"""Source handle, raw frames and the decode service interface."""

from __future__ import annotations

from dataclasses import dataclass, field
import math
from pathlib import Path
from typing import Protocol

import numpy as np

from alphagif.pipeline.cancellation import CancellationToken


@dataclass(slots=True)
class SourceVideo:
    """An opened video, owned by one conversion until closed."""

    path: Path
    duration: float
    natural_width: int
    natural_height: int
    codec: str = ""
    fps: float | None = None
    closed: bool = field(default=False, compare=False)

    def estimated_frames(self, fps: int) -> int:
        """Number of frames a conversion at ``fps`` will sample."""

        if not math.isfinite(self.duration) or self.duration <= 0 or fps <= 0:
            return 0
        return math.floor(self.duration * fps)

    def close(self) -> None:
        self.closed = True


@dataclass(slots=True)
class RawFrame:
    """One sampled RGBA raster in presentation order."""

    index: int
    timestamp: float
    pixels: np.ndarray

    @property
    def width(self) -> int:
        return int(self.pixels.shape[1])

    @property
    def height(self) -> int:
        return int(self.pixels.shape[0])


class VideoDecoder(Protocol):
    """Black-box decode service driven by the frame sampler."""

    def open(self, path: Path) -> SourceVideo:
        """Open and probe ``path``; raise ``SourceLoadFailure`` on error."""
        ...

    def read_frame(
        self,
        source: SourceVideo,
        timestamp: float,
        size: tuple[int, int],
        *,
        timeout: float,
        token: CancellationToken | None = None,
    ) -> np.ndarray | None:
        """Seek to ``timestamp`` and return an RGBA ``(h, w, 4)`` raster.

        Returns None when no frame exists at or after ``timestamp``.
        """
        ...

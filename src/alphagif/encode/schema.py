"""Encoder result models."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class EncodedFrame:
    """One LZW-compressed frame as returned by an encoder worker."""

    index: int
    width: int
    height: int
    palette: bytes
    lzw_min_code_size: int
    data: bytes

    @property
    def palette_size(self) -> int:
        return len(self.palette) // 3


@dataclass(frozen=True, slots=True)
class EncodedOutput:
    """Finished animated GIF."""

    data: bytes
    frame_count: int
    width: int
    height: int
    delay_ms: int

    @property
    def byte_length(self) -> int:
        return len(self.data)

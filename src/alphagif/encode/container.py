"""Read and write GIF89a container blocks.

Workers hand back the LZW payload of single-frame GIFs; the coordinator
stitches those payloads into one animation with its own control blocks so
that every sampled frame survives, identical neighbours included.
"""

from __future__ import annotations

from dataclasses import dataclass, field
import struct
from typing import Iterable

from alphagif.encode.schema import EncodedFrame
from alphagif.errors import MalformedGif


TRANSPARENT_INDEX = 255
DISPOSAL_RESTORE_BACKGROUND = 2

_EXTENSION = 0x21
_IMAGE = 0x2C
_TRAILER = 0x3B
_GRAPHIC_CONTROL = 0xF9
_APPLICATION = 0xFF


@dataclass(slots=True)
class GifFrameInfo:
    width: int
    height: int
    left: int
    top: int
    delay_cs: int = 0
    disposal: int = 0
    transparent_index: int | None = None
    palette_size: int = 0


@dataclass(slots=True)
class GifSummary:
    """Structural view of a GIF byte stream."""

    version: str
    width: int
    height: int
    loop: int | None = None
    frames: list[GifFrameInfo] = field(default_factory=list)

    @property
    def frame_count(self) -> int:
        return len(self.frames)


class _Reader:
    def __init__(self, data: bytes) -> None:
        self.data = data
        self.pos = 0

    def take(self, count: int) -> bytes:
        end = self.pos + count
        if end > len(self.data):
            raise MalformedGif(f"Unexpected end of data at offset {self.pos}")
        chunk = self.data[self.pos : end]
        self.pos = end
        return chunk

    def byte(self) -> int:
        return self.take(1)[0]

    def sub_blocks(self) -> bytes:
        """Return the raw sub-block chain including its zero terminator."""

        start = self.pos
        while True:
            size = self.byte()
            if size == 0:
                return self.data[start : self.pos]
            self.take(size)


def _color_table_size(packed: int) -> int:
    return 2 ** ((packed & 0x07) + 1)


def _read_header(reader: _Reader) -> tuple[str, int, int, bytes | None]:
    signature = reader.take(6)
    if signature not in (b"GIF87a", b"GIF89a"):
        raise MalformedGif(f"Not a GIF stream: {signature!r}")
    width, height, packed, _bg, _aspect = struct.unpack("<HHBBB", reader.take(7))
    global_table = None
    if packed & 0x80:
        global_table = reader.take(3 * _color_table_size(packed))
    return signature.decode("ascii"), width, height, global_table


def parse_single_frame(data: bytes, index: int) -> EncodedFrame:
    """Extract palette and LZW data of the first image in ``data``."""

    reader = _Reader(data)
    _version, _width, _height, global_table = _read_header(reader)

    while True:
        introducer = reader.byte()
        if introducer == _EXTENSION:
            reader.byte()
            reader.sub_blocks()
            continue
        if introducer == _IMAGE:
            _left, _top, width, height, packed = struct.unpack("<HHHHB", reader.take(9))
            palette = global_table
            if packed & 0x80:
                palette = reader.take(3 * _color_table_size(packed))
            if palette is None:
                raise MalformedGif("Image has neither a local nor a global color table")
            min_code_size = reader.byte()
            if not 2 <= min_code_size <= 8:
                raise MalformedGif(f"Invalid LZW minimum code size {min_code_size}")
            return EncodedFrame(
                index=index,
                width=width,
                height=height,
                palette=bytes(palette),
                lzw_min_code_size=min_code_size,
                data=bytes(reader.sub_blocks()),
            )
        if introducer == _TRAILER:
            raise MalformedGif("GIF stream contains no image")
        raise MalformedGif(f"Unknown block introducer 0x{introducer:02x} at {reader.pos - 1}")


def _table_bits(palette: bytes) -> int:
    entries = len(palette) // 3
    if len(palette) % 3 or entries < 2 or entries > 256 or entries & (entries - 1):
        raise MalformedGif(f"Color table must hold a power of two entries, got {len(palette)} bytes")
    return entries.bit_length() - 2


def write_gif(
    frames: Iterable[EncodedFrame],
    width: int,
    height: int,
    delay_ms: int,
    *,
    transparent_index: int = TRANSPARENT_INDEX,
    loop: int = 0,
) -> bytes:
    """Assemble an infinitely looping animation from encoded frames."""

    delay_cs = max(0, round(delay_ms / 10))
    out = bytearray(b"GIF89a")
    out += struct.pack("<HHBBB", width, height, 0x70, 0, 0)
    out += bytes([_EXTENSION, _APPLICATION, 11]) + b"NETSCAPE2.0"
    out += struct.pack("<BBHB", 3, 1, loop, 0)

    for frame in frames:
        if (frame.width, frame.height) != (width, height):
            raise MalformedGif(
                f"Frame {frame.index} is {frame.width}x{frame.height}, canvas is {width}x{height}"
            )
        bits = _table_bits(frame.palette)
        if transparent_index >= frame.palette_size:
            raise MalformedGif(
                f"Frame {frame.index} palette has no entry {transparent_index}"
            )
        packed = (DISPOSAL_RESTORE_BACKGROUND << 2) | 0x01
        out += struct.pack("<BBBBHBB", _EXTENSION, _GRAPHIC_CONTROL, 4, packed, delay_cs, transparent_index, 0)
        out += struct.pack("<BHHHHB", _IMAGE, 0, 0, width, height, 0x80 | bits)
        out += frame.palette
        out.append(frame.lzw_min_code_size)
        out += frame.data

    out.append(_TRAILER)
    return bytes(out)


def inspect_gif(data: bytes) -> GifSummary:
    """Walk every block of ``data`` and summarise the animation."""

    reader = _Reader(data)
    version, width, height, _global_table = _read_header(reader)
    summary = GifSummary(version=version, width=width, height=height)
    control: dict[str, int | None] = {}

    while True:
        introducer = reader.byte()
        if introducer == _TRAILER:
            return summary
        if introducer == _EXTENSION:
            label = reader.byte()
            payload = reader.sub_blocks()
            if label == _GRAPHIC_CONTROL and len(payload) >= 6:
                packed, delay = payload[1], struct.unpack("<H", payload[2:4])[0]
                control = {
                    "delay_cs": delay,
                    "disposal": (packed >> 2) & 0x07,
                    "transparent_index": payload[4] if packed & 0x01 else None,
                }
            elif label == _APPLICATION and payload[1:12] == b"NETSCAPE2.0" and len(payload) >= 16:
                summary.loop = struct.unpack("<H", payload[14:16])[0]
            continue
        if introducer == _IMAGE:
            left, top, frame_w, frame_h, packed = struct.unpack("<HHHHB", reader.take(9))
            palette_size = 0
            if packed & 0x80:
                palette_size = _color_table_size(packed)
                reader.take(3 * palette_size)
            reader.byte()
            reader.sub_blocks()
            summary.frames.append(
                GifFrameInfo(
                    width=frame_w,
                    height=frame_h,
                    left=left,
                    top=top,
                    delay_cs=int(control.get("delay_cs") or 0),
                    disposal=int(control.get("disposal") or 0),
                    transparent_index=control.get("transparent_index"),
                    palette_size=palette_size,
                )
            )
            control = {}
            continue
        raise MalformedGif(f"Unknown block introducer 0x{introducer:02x} at {reader.pos - 1}")

"""Per-frame palette quantization and LZW compression.

Runs inside encoder worker processes, so everything here is module level and
works on plain numpy arrays.
"""

from __future__ import annotations

from io import BytesIO

import numpy as np
from PIL import Image

from alphagif.encode.container import TRANSPARENT_INDEX, parse_single_frame
from alphagif.encode.schema import EncodedFrame
from alphagif.errors import MalformedGif
from alphagif.keying.alpha import key_mask


_PALETTE_COLORS = 255


def build_palette(colors: np.ndarray, sample_interval: int) -> bytes:
    """Median-cut palette of at most 255 entries from every n-th color.

    ``colors`` is an ``(n, 3)`` uint8 array. The result is padded with black
    to exactly 255 entries.
    """

    sample = colors[:: max(1, sample_interval)]
    if sample.size == 0:
        return bytes(3 * _PALETTE_COLORS)

    strip = Image.fromarray(np.ascontiguousarray(sample.reshape(1, -1, 3)))
    reduced = strip.quantize(colors=_PALETTE_COLORS, method=Image.Quantize.MEDIANCUT)
    palette = bytes(reduced.getpalette() or [])[: 3 * _PALETTE_COLORS]
    return palette + bytes(3 * _PALETTE_COLORS - len(palette))


def quantize_frame(
    pixels: np.ndarray,
    color_key: tuple[int, int, int],
    sample_interval: int,
) -> tuple[np.ndarray, bytes]:
    """Map an opaque RGBA frame to palette indices.

    Key-colored pixels get the reserved transparent index; all other pixels
    map to their nearest palette entry without dithering. Returns the index
    raster and a 256-entry palette whose last entry is the key.
    """

    rgb = np.ascontiguousarray(pixels[..., :3])
    keyed = key_mask(pixels, color_key)
    palette = build_palette(rgb[~keyed], sample_interval)

    # Slot 255 duplicates slot 0 while mapping so no opaque pixel lands on the key.
    mapper = Image.new("P", (1, 1))
    mapper.putpalette(palette + palette[:3])
    mapped = Image.fromarray(rgb).quantize(palette=mapper, dither=Image.Dither.NONE)

    indices = np.array(mapped, dtype=np.uint8)
    indices[indices == TRANSPARENT_INDEX] = 0
    indices[keyed] = TRANSPARENT_INDEX
    return indices, palette + bytes(color_key)


def compress_indices(indices: np.ndarray, palette: bytes) -> bytes:
    """LZW-compress an index raster into a single-frame GIF."""

    height, width = indices.shape
    image = Image.frombytes("P", (width, height), np.ascontiguousarray(indices).tobytes())
    image.putpalette(palette)
    buffer = BytesIO()
    image.save(buffer, format="GIF", optimize=False)
    return buffer.getvalue()


def encode_frame(
    index: int,
    pixels: np.ndarray,
    color_key: tuple[int, int, int],
    sample_interval: int,
) -> EncodedFrame:
    """Worker entry point: quantize, compress and unwrap one frame."""

    indices, palette = quantize_frame(pixels, color_key, sample_interval)
    encoded = parse_single_frame(compress_indices(indices, palette), index)

    height, width = indices.shape
    if (encoded.width, encoded.height) != (width, height):
        raise MalformedGif(
            f"Encoder produced {encoded.width}x{encoded.height} for a {width}x{height} frame"
        )
    if encoded.palette_size <= TRANSPARENT_INDEX:
        raise MalformedGif(f"Encoder dropped palette entries: {encoded.palette_size} left")
    return encoded

"""Map a continuous alpha channel onto a single reserved color key."""

from __future__ import annotations

import numpy as np


def _check_rgba(pixels: np.ndarray) -> None:
    if pixels.ndim != 3 or pixels.shape[2] != 4:
        raise ValueError(f"Expected RGBA frame with shape (h, w, 4), got {pixels.shape}")
    if pixels.dtype != np.uint8:
        raise ValueError(f"Expected uint8 samples, got {pixels.dtype}")


def apply_alpha_key(
    pixels: np.ndarray,
    threshold: int,
    key: tuple[int, int, int],
) -> np.ndarray:
    """Rewrite an RGBA frame in place so that it carries no partial alpha.

    Pixels with ``alpha < threshold`` become the opaque color ``key``; every
    other pixel keeps its RGB and is forced opaque. Returns ``pixels``.
    """

    _check_rgba(pixels)
    transparent = pixels[..., 3] < threshold
    pixels[transparent, :3] = np.asarray(key, dtype=np.uint8)
    pixels[..., 3] = 255
    return pixels


def find_key_collisions(
    pixels: np.ndarray,
    threshold: int,
    key: tuple[int, int, int],
) -> int:
    """Count kept pixels whose original color already equals ``key``.

    Such pixels are indistinguishable from keyed ones after mapping and will
    render transparent. Must be called before :func:`apply_alpha_key`.
    """

    _check_rgba(pixels)
    kept = pixels[..., 3] >= threshold
    matches = np.all(pixels[..., :3] == np.asarray(key, dtype=np.uint8), axis=-1)
    return int(np.count_nonzero(kept & matches))


def key_mask(pixels: np.ndarray, key: tuple[int, int, int]) -> np.ndarray:
    """Boolean mask of pixels painted with ``key``."""

    return np.all(pixels[..., :3] == np.asarray(key, dtype=np.uint8), axis=-1)

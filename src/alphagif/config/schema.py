"""Dataclass-based configuration schema for alphagif."""

from __future__ import annotations

from dataclasses import dataclass, field


DEFAULT_COLOR_KEY = (0, 255, 0)


def _check_range(name: str, value: int, low: int, high: int) -> None:
    if isinstance(value, bool) or not isinstance(value, int):
        raise TypeError(f"{name} must be an int, got {type(value).__name__}")
    if not low <= value <= high:
        raise ValueError(f"{name} must be in [{low}, {high}], got {value}")


@dataclass(frozen=True, slots=True)
class ConversionOptions:
    """Per-conversion options chosen by the caller."""

    fps: int = 15
    quality: int = 10
    width: int | None = None
    height: int | None = None
    transparent_threshold: int = 128

    def __post_init__(self) -> None:
        _check_range("fps", self.fps, 1, 30)
        _check_range("quality", self.quality, 1, 30)
        _check_range("transparent_threshold", self.transparent_threshold, 0, 255)
        for name in ("width", "height"):
            value = getattr(self, name)
            if value is not None:
                _check_range(name, value, 1, 65535)

    @property
    def frame_delay_ms(self) -> int:
        """Display time of one frame in milliseconds."""

        return round(1000 / self.fps)

    @property
    def sample_interval(self) -> int:
        """Pixel sampling stride for palette building; lower is slower and better."""

        return max(1, min(30, 31 - self.quality))


@dataclass(slots=True)
class DecoderConfig:
    """Video decode service options."""

    # Binary used for frame grabs; probing follows imageio-ffmpeg (IMAGEIO_FFMPEG_EXE).
    ffmpeg_path: str | None = None
    seek_timeout: float = 30.0
    # Decoders that keep the alpha plane of WebM streams.
    alpha_decoders: dict[str, str] = field(
        default_factory=lambda: {"vp8": "libvpx", "vp9": "libvpx-vp9"}
    )


@dataclass(slots=True)
class EncoderConfig:
    """Frame encoder pool options."""

    max_workers: int | None = None
    frame_timeout: float = 120.0


@dataclass(slots=True)
class ConverterConfig:
    """Top-level converter configuration."""

    options: ConversionOptions = field(default_factory=ConversionOptions)
    decoder: DecoderConfig = field(default_factory=DecoderConfig)
    encoder: EncoderConfig = field(default_factory=EncoderConfig)
    color_key: tuple[int, int, int] = DEFAULT_COLOR_KEY
    log_level: str = "INFO"

    def __post_init__(self) -> None:
        self.color_key = validate_color_key(self.color_key)


def validate_color_key(value: tuple[int, int, int] | list[int]) -> tuple[int, int, int]:
    """Return ``value`` as an RGB tuple, raising on anything else."""

    key = tuple(value)
    if len(key) != 3:
        raise ValueError(f"color_key must have 3 components, got {len(key)}")
    for component in key:
        _check_range("color_key component", component, 0, 255)
    return key  # type: ignore[return-value]

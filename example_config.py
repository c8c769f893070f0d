"""Example alphagif converter config.

Use with ``alphagif convert clip.webm --config example_config.py:CONFIG``.
"""

from alphagif.config.schema import (
    ConversionOptions,
    ConverterConfig,
    DecoderConfig,
    EncoderConfig,
)


CONFIG = ConverterConfig(
    options=ConversionOptions(
        fps=15,
        quality=10,
        width=None,
        height=None,
        transparent_threshold=128,
    ),
    decoder=DecoderConfig(
        ffmpeg_path=None,
        seek_timeout=30.0,
    ),
    encoder=EncoderConfig(
        max_workers=None,
        frame_timeout=120.0,
    ),
    color_key=(0, 255, 0),
    log_level="INFO",
)

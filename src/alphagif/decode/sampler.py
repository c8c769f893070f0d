"""Sample a video at evenly spaced timestamps."""

from __future__ import annotations

from typing import Callable, Iterator

from alphagif.decode.source import RawFrame, SourceVideo, VideoDecoder
from alphagif.errors import DecodeFailure
from alphagif.observability.logging import get_logger, log_event
from alphagif.pipeline.cancellation import CancellationToken
from alphagif.pipeline.progress import ProgressTracker, Stage


_LOGGER = get_logger("alphagif.sampler")

FrameHook = Callable[[RawFrame], None]


class FrameSampler:
    """Drive a decoder through ``floor(duration * fps)`` seeks.

    Frames come out in strictly increasing timestamp order. Extraction
    reports progress on the first half of the 0-100 scale.
    """

    def __init__(
        self,
        decoder: VideoDecoder,
        *,
        seek_timeout: float,
        token: CancellationToken,
        progress: ProgressTracker | None = None,
    ) -> None:
        self.decoder = decoder
        self.seek_timeout = seek_timeout
        self.token = token
        self.progress = progress

    def sample(
        self,
        source: SourceVideo,
        fps: int,
        size: tuple[int, int],
        on_frame: FrameHook | None = None,
    ) -> Iterator[RawFrame]:
        total = source.estimated_frames(fps)
        interval = 1.0 / fps
        previous: RawFrame | None = None

        for i in range(total):
            self.token.raise_if_cancelled()
            timestamp = i * interval
            pixels = self.decoder.read_frame(
                source,
                timestamp,
                size,
                timeout=self.seek_timeout,
                token=self.token,
            )
            self.token.raise_if_cancelled()

            if pixels is None:
                # Seeking past the last decodable picture shows the final frame.
                if previous is None:
                    raise DecodeFailure(f"No frame decoded at {timestamp:.3f}s")
                pixels = previous.pixels.copy()
                log_event(_LOGGER, "frame_held", index=i, timestamp=timestamp)
            elif pixels.shape != (size[1], size[0], 4):
                raise DecodeFailure(
                    f"Frame {i} has shape {pixels.shape}, expected {(size[1], size[0], 4)}"
                )

            frame = RawFrame(index=i, timestamp=timestamp, pixels=pixels)
            if on_frame is not None:
                on_frame(frame)
            previous = frame

            if self.progress is not None:
                self.progress.update(
                    Stage.EXTRACTING,
                    (i + 1) / total * 50,
                    frames_extracted=i + 1,
                    total_frames=total,
                    message=f"Extracting frame {i + 1} of {total}",
                )
            yield frame

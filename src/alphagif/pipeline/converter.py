"""Conversion pipeline: load, sample, key, encode."""

from __future__ import annotations

from concurrent.futures import Future, ThreadPoolExecutor
from enum import Enum
import logging
from pathlib import Path
import threading
import time

from alphagif.config.schema import ConversionOptions, ConverterConfig
from alphagif.decode.ffmpeg import FFmpegDecoder
from alphagif.decode.sampler import FrameHook, FrameSampler
from alphagif.decode.source import RawFrame, SourceVideo, VideoDecoder
from alphagif.encode.coordinator import (
    EncodeCoordinator,
    ExecutorFactory,
    FrameEncoder,
    process_pool_executor,
)
from alphagif.encode.quantize import encode_frame
from alphagif.encode.schema import EncodedOutput
from alphagif.errors import (
    AlreadyConverting,
    Cancelled,
    ConversionError,
    EmptyInput,
    SourceLoadFailure,
)
from alphagif.keying.alpha import apply_alpha_key, find_key_collisions
from alphagif.observability.logging import get_logger, log_event
from alphagif.pipeline.cancellation import CancellationToken
from alphagif.pipeline.progress import ProgressSink, ProgressState, ProgressTracker, Stage


_LOGGER = get_logger("alphagif.pipeline")


class PipelineState(str, Enum):
    IDLE = "idle"
    LOADING = "loading"
    EXTRACTING = "extracting"
    ENCODING = "encoding"
    COMPLETE = "complete"
    FAILED = "failed"
    CANCELLED = "cancelled"


class ConversionPipeline:
    """Runs one conversion at a time and exposes progress and cancellation.

    ``start`` blocks until the GIF is ready; ``submit`` runs the same work on
    a background thread and returns a future. A second conversion while one
    is in flight is rejected with ``AlreadyConverting``.
    """

    def __init__(
        self,
        config: ConverterConfig | None = None,
        *,
        decoder: VideoDecoder | None = None,
        executor_factory: ExecutorFactory = process_pool_executor,
        frame_encoder: FrameEncoder = encode_frame,
    ) -> None:
        self.config = config or ConverterConfig()
        self.decoder = decoder or FFmpegDecoder(self.config.decoder)
        self.executor_factory = executor_factory
        self.frame_encoder = frame_encoder

        self._lock = threading.Lock()
        self._active = False
        self._state = PipelineState.IDLE
        self._token: CancellationToken | None = None
        self._sinks: list[ProgressSink] = []
        self._tracker = ProgressTracker()
        self._background: ThreadPoolExecutor | None = None

    @property
    def state(self) -> PipelineState:
        with self._lock:
            return self._state

    @property
    def progress(self) -> ProgressState:
        """Latest progress snapshot of the current or last conversion."""

        with self._lock:
            tracker = self._tracker
        return tracker.snapshot

    @property
    def is_converting(self) -> bool:
        with self._lock:
            return self._active

    def subscribe(self, sink: ProgressSink) -> None:
        with self._lock:
            self._sinks.append(sink)
            if self._active:
                self._tracker.subscribe(sink)

    def probe(self, source: Path | str) -> SourceVideo:
        """Open ``source`` for its metadata and release it straight away."""

        video = self.decoder.open(Path(source))
        video.close()
        return video

    def start(self, source: Path | str, options: ConversionOptions | None = None) -> EncodedOutput:
        token, tracker = self._begin()
        return self._convert(Path(source), options or self.config.options, token, tracker)

    def submit(
        self,
        source: Path | str,
        options: ConversionOptions | None = None,
    ) -> Future[EncodedOutput]:
        token, tracker = self._begin()
        try:
            with self._lock:
                if self._background is None:
                    self._background = ThreadPoolExecutor(
                        max_workers=1, thread_name_prefix="alphagif-conversion"
                    )
                background = self._background
            return background.submit(
                self._convert, Path(source), options or self.config.options, token, tracker
            )
        except BaseException:
            self._release()
            raise

    def cancel(self) -> None:
        """Request cancellation; a no-op when nothing is running."""

        with self._lock:
            token = self._token if self._active else None
        if token is not None and not token.cancelled:
            token.cancel()
            log_event(_LOGGER, "cancel_requested")

    def close(self) -> None:
        self.cancel()
        with self._lock:
            background, self._background = self._background, None
        if background is not None:
            background.shutdown(wait=True)

    def _begin(self) -> tuple[CancellationToken, ProgressTracker]:
        with self._lock:
            if self._active:
                raise AlreadyConverting("A conversion is already running on this pipeline")
            self._active = True
            self._state = PipelineState.IDLE
            self._token = CancellationToken()
            self._tracker = ProgressTracker(self._sinks)
            return self._token, self._tracker

    def _release(self) -> None:
        with self._lock:
            self._active = False

    def _set_state(self, state: PipelineState) -> None:
        with self._lock:
            self._state = state

    def _key_frames(self, options: ConversionOptions) -> FrameHook:
        key = self.config.color_key

        def _apply(frame: RawFrame) -> None:
            collisions = find_key_collisions(frame.pixels, options.transparent_threshold, key)
            if collisions:
                log_event(
                    _LOGGER,
                    "color_key_collision",
                    level=logging.WARNING,
                    index=frame.index,
                    pixels=collisions,
                    color_key=list(key),
                )
            apply_alpha_key(frame.pixels, options.transparent_threshold, key)

        return _apply

    def _convert(
        self,
        path: Path,
        options: ConversionOptions,
        token: CancellationToken,
        tracker: ProgressTracker,
    ) -> EncodedOutput:
        started_perf = time.perf_counter()
        source: SourceVideo | None = None
        frames: list[RawFrame] = []
        log_event(
            _LOGGER,
            "conversion_started",
            path=str(path),
            fps=options.fps,
            quality=options.quality,
            threshold=options.transparent_threshold,
        )

        try:
            self._set_state(PipelineState.LOADING)
            tracker.update(Stage.EXTRACTING, 0, message="Loading video...")
            token.raise_if_cancelled()
            try:
                source = self.decoder.open(path)
            except ConversionError:
                raise
            except Exception as exc:
                raise SourceLoadFailure(f"Failed to load video: {exc}") from exc
            token.raise_if_cancelled()

            width = options.width or source.natural_width
            height = options.height or source.natural_height
            total = source.estimated_frames(options.fps)
            log_event(
                _LOGGER,
                "source_loaded",
                duration=source.duration,
                width=width,
                height=height,
                total_frames=total,
            )
            if total == 0:
                raise EmptyInput(
                    f"Video of {source.duration:.3f}s yields no frames at {options.fps} fps"
                )

            self._set_state(PipelineState.EXTRACTING)
            tracker.update(
                Stage.EXTRACTING,
                0,
                frames_extracted=0,
                total_frames=total,
                message=f"Extracting frame 1 of {total}",
            )
            sampler = FrameSampler(
                self.decoder,
                seek_timeout=self.config.decoder.seek_timeout,
                token=token,
                progress=tracker,
            )
            for frame in sampler.sample(
                source, options.fps, (width, height), on_frame=self._key_frames(options)
            ):
                frames.append(frame)
            source.close()
            token.raise_if_cancelled()
            log_event(_LOGGER, "frames_extracted", frame_count=len(frames))

            self._set_state(PipelineState.ENCODING)
            tracker.update(
                Stage.ENCODING,
                50,
                frames_extracted=len(frames),
                total_frames=len(frames),
                message="Encoding GIF...",
            )
            coordinator = EncodeCoordinator(
                token=token,
                progress=tracker,
                max_workers=self.config.encoder.max_workers,
                frame_timeout=self.config.encoder.frame_timeout,
                executor_factory=self.executor_factory,
                frame_encoder=self.frame_encoder,
            )
            output = coordinator.encode(
                frames,
                width,
                height,
                delay_ms=options.frame_delay_ms,
                sample_interval=options.sample_interval,
                color_key=self.config.color_key,
            )

            self._set_state(PipelineState.COMPLETE)
            log_event(
                _LOGGER,
                "conversion_finished",
                status="COMPLETE",
                frame_count=output.frame_count,
                byte_length=output.byte_length,
                seconds=round(time.perf_counter() - started_perf, 3),
            )
            return output

        except Cancelled as exc:
            self._set_state(PipelineState.CANCELLED)
            tracker.fail(str(exc))
            log_event(
                _LOGGER,
                "conversion_cancelled",
                frames_extracted=tracker.snapshot.frames_extracted,
            )
            raise
        except Exception as exc:
            self._set_state(PipelineState.FAILED)
            message = str(exc) if isinstance(exc, ConversionError) else f"Conversion failed: {exc}"
            tracker.fail(message)
            log_event(
                _LOGGER,
                "conversion_finished",
                level=logging.ERROR,
                status="FAILED",
                error=f"{type(exc).__name__}: {exc}",
            )
            raise
        finally:
            if not tracker.snapshot.is_terminal:
                # Interrupts and exits from the conversion thread itself.
                self._set_state(PipelineState.FAILED)
                tracker.fail("Conversion interrupted")
                log_event(
                    _LOGGER, "conversion_finished", level=logging.ERROR, status="INTERRUPTED"
                )
            if source is not None:
                source.close()
            frames.clear()
            self._release()

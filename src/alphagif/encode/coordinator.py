"""Parallel frame encoding and in-order merging."""

from __future__ import annotations

from concurrent.futures import FIRST_COMPLETED, Executor, Future, ProcessPoolExecutor, wait
import time
from typing import Callable, Sequence

import numpy as np

from alphagif.decode.source import RawFrame
from alphagif.encode.container import write_gif
from alphagif.encode.quantize import encode_frame
from alphagif.encode.schema import EncodedFrame, EncodedOutput
from alphagif.errors import (
    Cancelled,
    EmptyInput,
    EncoderInitFailure,
    EncodeWorkerFailure,
    MalformedGif,
)
from alphagif.observability.logging import get_logger, log_event
from alphagif.pipeline.cancellation import CancellationToken
from alphagif.pipeline.progress import ProgressTracker, Stage
from alphagif.workers.pool import normalize_worker_count


_LOGGER = get_logger("alphagif.encoder")

# Completion waits wake up this often to observe cancellation.
_POLL_INTERVAL = 0.05

ExecutorFactory = Callable[[int], Executor]
FrameEncoder = Callable[[int, np.ndarray, tuple[int, int, int], int], EncodedFrame]


def process_pool_executor(max_workers: int) -> Executor:
    return ProcessPoolExecutor(max_workers=max_workers)


class EncodeCoordinator:
    """Fan frames out to a worker pool and merge results in sampling order."""

    def __init__(
        self,
        *,
        token: CancellationToken,
        progress: ProgressTracker | None = None,
        max_workers: int | None = None,
        frame_timeout: float = 120.0,
        executor_factory: ExecutorFactory = process_pool_executor,
        frame_encoder: FrameEncoder = encode_frame,
    ) -> None:
        self.token = token
        self.progress = progress
        self.max_workers = max_workers
        self.frame_timeout = frame_timeout
        self.executor_factory = executor_factory
        self.frame_encoder = frame_encoder

    def encode(
        self,
        frames: Sequence[RawFrame],
        width: int,
        height: int,
        *,
        delay_ms: int,
        sample_interval: int,
        color_key: tuple[int, int, int],
    ) -> EncodedOutput:
        total = len(frames)
        if total == 0:
            raise EmptyInput("No frames to encode")
        self.token.raise_if_cancelled()

        workers = min(normalize_worker_count(self.max_workers), total)
        try:
            executor = self.executor_factory(workers)
        except Exception as exc:
            raise EncoderInitFailure(f"Could not start {workers} encoder workers: {exc}") from exc

        log_event(_LOGGER, "encode_started", frame_count=total, workers=workers)
        started_perf = time.perf_counter()
        try:
            slots = self._run(executor, frames, sample_interval, color_key)
        finally:
            executor.shutdown(wait=True, cancel_futures=True)

        try:
            data = write_gif(slots, width, height, delay_ms)
        except MalformedGif as exc:
            raise EncodeWorkerFailure(f"Encoded frames cannot be merged: {exc}") from exc
        log_event(
            _LOGGER,
            "encode_finished",
            frame_count=total,
            byte_length=len(data),
            seconds=round(time.perf_counter() - started_perf, 3),
        )
        if self.progress is not None:
            self.progress.update(
                Stage.COMPLETE,
                100,
                frames_extracted=total,
                total_frames=total,
                message="Conversion complete!",
            )
        return EncodedOutput(
            data=data,
            frame_count=total,
            width=width,
            height=height,
            delay_ms=delay_ms,
        )

    def _run(
        self,
        executor: Executor,
        frames: Sequence[RawFrame],
        sample_interval: int,
        color_key: tuple[int, int, int],
    ) -> list[EncodedFrame]:
        total = len(frames)
        slots: list[EncodedFrame | None] = [None] * total
        positions: dict[Future[EncodedFrame], int] = {}

        for position, frame in enumerate(frames):
            self.token.raise_if_cancelled()
            future = executor.submit(
                self.frame_encoder, position, frame.pixels, color_key, sample_interval
            )
            positions[future] = position

        pending = set(positions)
        completed = 0
        last_completion = time.monotonic()
        while pending:
            done, pending = wait(pending, timeout=_POLL_INTERVAL, return_when=FIRST_COMPLETED)
            if self.token.cancelled:
                for future in pending:
                    future.cancel()
                raise Cancelled()
            if not done:
                if time.monotonic() - last_completion > self.frame_timeout:
                    raise EncodeWorkerFailure(
                        f"No frame finished encoding within {self.frame_timeout:.1f}s"
                    )
                continue

            for future in done:
                position = positions[future]
                slots[position] = self._collect(future, position)
                completed += 1
                if self.progress is not None:
                    fraction = completed / total
                    self.progress.update(
                        Stage.ENCODING,
                        50 + fraction * 50,
                        message=f"Encoding GIF... {round(fraction * 100)}%",
                    )
            last_completion = time.monotonic()

        missing = [position for position, slot in enumerate(slots) if slot is None]
        if missing:
            raise EncodeWorkerFailure(f"Frames never encoded: {missing[:20]}")
        return slots  # type: ignore[return-value]

    @staticmethod
    def _collect(future: Future[EncodedFrame], position: int) -> EncodedFrame:
        try:
            result = future.result()
        except BaseException as exc:
            raise EncodeWorkerFailure(
                f"Frame {position} failed: {type(exc).__name__}: {exc}"
            ) from exc
        if not isinstance(result, EncodedFrame):
            raise EncodeWorkerFailure(
                f"Frame {position} returned {type(result).__name__}, expected EncodedFrame"
            )
        if result.index != position:
            raise EncodeWorkerFailure(
                f"Frame {position} came back labelled as frame {result.index}"
            )
        return result

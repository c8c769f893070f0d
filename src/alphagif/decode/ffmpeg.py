"""Decode service backed by the ffmpeg executable."""

from __future__ import annotations

import math
from pathlib import Path
import subprocess
import time

import imageio_ffmpeg
import numpy as np

from alphagif.config.schema import DecoderConfig
from alphagif.decode.source import SourceVideo
from alphagif.errors import Cancelled, DecodeFailure, SeekTimeout, SourceLoadFailure
from alphagif.observability.logging import get_logger, log_event
from alphagif.pipeline.cancellation import CancellationToken


_LOGGER = get_logger("alphagif.decode")

# How often a blocked seek wakes up to look at the cancellation token.
_POLL_INTERVAL = 0.1


class FFmpegDecoder:
    """Seek-and-grab decoder spawning one ffmpeg process per sampled frame.

    Frames are scaled with bilinear filtering and delivered as packed RGBA.
    VP8/VP9 streams are decoded with libvpx so that their alpha plane
    survives.
    """

    def __init__(self, config: DecoderConfig | None = None) -> None:
        self.config = config or DecoderConfig()
        self._exe: str | None = None

    @property
    def executable(self) -> str:
        if self._exe is None:
            self._exe = self.config.ffmpeg_path or imageio_ffmpeg.get_ffmpeg_exe()
        return self._exe

    def open(self, path: Path) -> SourceVideo:
        path = Path(path)
        if not path.is_file():
            raise SourceLoadFailure(f"Input video does not exist: {path}")

        reader = None
        try:
            reader = imageio_ffmpeg.read_frames(str(path), pix_fmt="rgba")
            meta = next(reader)
        except (OSError, RuntimeError, StopIteration) as exc:
            raise SourceLoadFailure(f"Failed to load video: {exc}") from exc
        finally:
            if reader is not None:
                reader.close()

        duration = float(meta.get("duration") or 0.0)
        size = meta.get("size") or (0, 0)
        width, height = int(size[0]), int(size[1])
        if width <= 0 or height <= 0:
            raise SourceLoadFailure(f"Video has no decodable picture size: {path}")
        if not math.isfinite(duration):
            raise SourceLoadFailure(f"Video duration is not finite: {path}")

        source = SourceVideo(
            path=path,
            duration=duration,
            natural_width=width,
            natural_height=height,
            codec=str(meta.get("codec", "")).lower(),
            fps=meta.get("fps"),
        )
        log_event(
            _LOGGER,
            "source_probed",
            path=str(path),
            duration=duration,
            width=width,
            height=height,
            codec=source.codec,
        )
        return source

    def build_command(
        self,
        source: SourceVideo,
        timestamp: float,
        size: tuple[int, int],
    ) -> list[str]:
        width, height = size
        cmd = [
            self.executable,
            "-nostdin",
            "-loglevel",
            "error",
            "-ss",
            f"{timestamp:.6f}",
        ]
        alpha_decoder = self.config.alpha_decoders.get(source.codec)
        if alpha_decoder:
            cmd.extend(["-c:v", alpha_decoder])
        cmd.extend([
            "-i",
            str(source.path),
            "-frames:v",
            "1",
            "-an",
            "-vf",
            f"scale={width}:{height}:flags=bilinear",
            "-f",
            "rawvideo",
            "-pix_fmt",
            "rgba",
            "pipe:1",
        ])
        return cmd

    def read_frame(
        self,
        source: SourceVideo,
        timestamp: float,
        size: tuple[int, int],
        *,
        timeout: float,
        token: CancellationToken | None = None,
    ) -> np.ndarray | None:
        if source.closed:
            raise DecodeFailure(f"Source is closed: {source.path}")

        cmd = self.build_command(source, timestamp, size)
        try:
            proc = subprocess.Popen(cmd, stdout=subprocess.PIPE, stderr=subprocess.PIPE)
        except OSError as exc:
            raise DecodeFailure(f"Could not start ffmpeg: {exc}") from exc

        deadline = time.monotonic() + timeout
        while True:
            remaining = deadline - time.monotonic()
            try:
                stdout, stderr = proc.communicate(timeout=max(0.0, min(_POLL_INTERVAL, remaining)))
                break
            except subprocess.TimeoutExpired:
                if token is not None and token.cancelled:
                    _kill(proc)
                    raise Cancelled() from None
                if time.monotonic() >= deadline:
                    _kill(proc)
                    raise SeekTimeout(
                        f"Seek to {timestamp:.3f}s did not complete within {timeout:.1f}s"
                    ) from None

        if proc.returncode != 0:
            detail = stderr.decode("utf-8", errors="replace").strip()
            raise DecodeFailure(
                f"ffmpeg exited with code {proc.returncode} at {timestamp:.3f}s: {detail}"
            )

        width, height = size
        expected = width * height * 4
        if not stdout:
            return None
        if len(stdout) != expected:
            raise DecodeFailure(
                f"Decoder returned {len(stdout)} bytes at {timestamp:.3f}s, expected {expected}"
            )
        return np.frombuffer(stdout, dtype=np.uint8).reshape(height, width, 4).copy()


def _kill(proc: subprocess.Popen) -> None:
    proc.kill()
    proc.communicate()

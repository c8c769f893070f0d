"""Progress snapshots and the tracker that publishes them."""

from __future__ import annotations

from dataclasses import dataclass, replace
from enum import Enum
import threading
from typing import Callable

from alphagif.observability.logging import get_logger


_LOGGER = get_logger("alphagif.progress")


class Stage(str, Enum):
    IDLE = "idle"
    EXTRACTING = "extracting"
    ENCODING = "encoding"
    COMPLETE = "complete"
    ERROR = "error"


_ORDER = {
    Stage.IDLE: 0,
    Stage.EXTRACTING: 1,
    Stage.ENCODING: 2,
    Stage.COMPLETE: 3,
    Stage.ERROR: 3,
}

TERMINAL_STAGES = frozenset({Stage.COMPLETE, Stage.ERROR})


@dataclass(frozen=True, slots=True)
class ProgressState:
    """Immutable snapshot handed to progress sinks."""

    stage: Stage = Stage.IDLE
    progress: float = 0.0
    frames_extracted: int = 0
    total_frames: int = 0
    message: str = ""

    @property
    def is_terminal(self) -> bool:
        return self.stage in TERMINAL_STAGES


ProgressSink = Callable[[ProgressState], None]


class ProgressTracker:
    """Holds the current snapshot of one conversion and fans it out to sinks.

    Stages only move forward and progress never decreases inside a stage.
    After a terminal snapshot has been published every further update is
    ignored, so sinks see ``complete`` or ``error`` exactly once.
    """

    def __init__(self, sinks: list[ProgressSink] | None = None) -> None:
        self._lock = threading.Lock()
        self._state = ProgressState()
        self._sinks: list[ProgressSink] = list(sinks or [])

    @property
    def snapshot(self) -> ProgressState:
        with self._lock:
            return self._state

    def subscribe(self, sink: ProgressSink) -> None:
        with self._lock:
            self._sinks.append(sink)

    def update(
        self,
        stage: Stage,
        progress: float,
        *,
        frames_extracted: int | None = None,
        total_frames: int | None = None,
        message: str = "",
    ) -> bool:
        """Publish a new snapshot; return False when the update was dropped."""

        with self._lock:
            current = self._state
            if current.is_terminal:
                return False
            if _ORDER[stage] < _ORDER[current.stage]:
                raise ValueError(
                    f"Stage cannot move backwards: {current.stage.value} -> {stage.value}"
                )
            progress = min(max(float(progress), 0.0), 100.0)
            if stage == current.stage:
                progress = max(progress, current.progress)
            state = replace(
                current,
                stage=stage,
                progress=progress,
                message=message,
                frames_extracted=(
                    current.frames_extracted if frames_extracted is None else frames_extracted
                ),
                total_frames=current.total_frames if total_frames is None else total_frames,
            )
            self._state = state
            sinks = list(self._sinks)

        for sink in sinks:
            try:
                sink(state)
            except Exception:
                _LOGGER.exception("progress sink failed", extra={"event": "progress_sink_failed"})
        return True

    def fail(self, message: str) -> bool:
        """Publish the terminal error snapshot, keeping the last frame counts."""

        with self._lock:
            progress = self._state.progress
        return self.update(Stage.ERROR, progress, message=message)

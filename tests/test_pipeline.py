from __future__ import annotations

from io import BytesIO
from pathlib import Path
import threading

import numpy as np
from PIL import Image
import pytest

from alphagif.config.schema import ConversionOptions, ConverterConfig, EncoderConfig
from alphagif.decode.source import SourceVideo
from alphagif.encode.container import inspect_gif
from alphagif.errors import (
    AlreadyConverting,
    Cancelled,
    EmptyInput,
    EncodeWorkerFailure,
    SourceLoadFailure,
)
from alphagif.pipeline.converter import ConversionPipeline, PipelineState
from alphagif.pipeline.progress import ProgressState, Stage

from conftest import FakeDecoder, solid


def _pipeline(decoder, thread_pool, **config) -> ConversionPipeline:
    cfg = ConverterConfig(encoder=EncoderConfig(max_workers=2), **config)
    return ConversionPipeline(cfg, decoder=decoder, executor_factory=thread_pool)


def test_fully_transparent_clip_becomes_transparent_gif(thread_pool) -> None:
    decoder = FakeDecoder(duration=2.0, size=(10, 10), painter=solid((40, 80, 120, 0)))
    pipeline = _pipeline(decoder, thread_pool)

    output = pipeline.start(
        "clip.webm", ConversionOptions(fps=10, transparent_threshold=128)
    )

    assert output.frame_count == 20
    assert (output.width, output.height, output.delay_ms) == (10, 10, 100)
    summary = inspect_gif(output.data)
    assert summary.frame_count == 20
    assert summary.loop == 0
    assert all(info.disposal == 2 and info.delay_cs == 10 for info in summary.frames)

    with Image.open(BytesIO(output.data)) as image:
        assert image.n_frames == 20
        for position in range(20):
            image.seek(position)
            alpha = np.asarray(image.convert("RGBA"))[..., 3]
            assert not alpha.any()

    assert pipeline.state is PipelineState.COMPLETE
    assert pipeline.progress.stage is Stage.COMPLETE
    assert pipeline.progress.progress == 100


def test_half_transparent_frame_keeps_opaque_colors(thread_pool) -> None:
    def _painter(_t: float, size: tuple[int, int]) -> np.ndarray:
        width, height = size
        frame = np.zeros((height, width, 4), dtype=np.uint8)
        frame[:, : width // 2] = (220, 30, 30, 255)
        frame[:, width // 2 :] = (220, 30, 30, 60)
        return frame

    decoder = FakeDecoder(duration=0.5, size=(8, 4), painter=_painter)
    output = _pipeline(decoder, thread_pool).start("clip.webm", ConversionOptions(fps=4))

    with Image.open(BytesIO(output.data)) as image:
        rgba = np.asarray(image.convert("RGBA"))
    assert np.all(rgba[:, :4] == (220, 30, 30, 255))
    assert np.all(rgba[:, 4:, 3] == 0)


def test_output_size_overrides_source_size(thread_pool) -> None:
    decoder = FakeDecoder(duration=0.5, size=(10, 10))
    output = _pipeline(decoder, thread_pool).start(
        "clip.webm", ConversionOptions(fps=4, width=6)
    )

    assert (output.width, output.height) == (6, 10)
    assert set(decoder.sizes) == {(6, 10)}


def test_progress_stages_run_in_order(thread_pool) -> None:
    seen: list[ProgressState] = []
    decoder = FakeDecoder(duration=1.0)
    pipeline = _pipeline(decoder, thread_pool)
    pipeline.subscribe(seen.append)

    pipeline.start("clip.webm", ConversionOptions(fps=5))

    stages = [state.stage for state in seen]
    assert stages[0] is Stage.EXTRACTING
    assert seen[0].message == "Loading video..."
    assert stages.index(Stage.ENCODING) > stages.index(Stage.EXTRACTING)
    assert stages[-1] is Stage.COMPLETE
    assert sum(state.is_terminal for state in seen) == 1
    for earlier, later in zip(seen, seen[1:]):
        if earlier.stage is later.stage:
            assert later.progress >= earlier.progress


def test_zero_length_source_is_empty_input(thread_pool) -> None:
    seen: list[ProgressState] = []
    decoder = FakeDecoder(duration=0.0)
    pipeline = _pipeline(decoder, thread_pool)
    pipeline.subscribe(seen.append)

    with pytest.raises(EmptyInput):
        pipeline.start("clip.webm")

    assert pipeline.state is PipelineState.FAILED
    assert seen[-1].stage is Stage.ERROR
    assert decoder.opened[0].closed


def test_sub_frame_duration_is_empty_input(thread_pool) -> None:
    decoder = FakeDecoder(duration=0.05)

    with pytest.raises(EmptyInput):
        _pipeline(decoder, thread_pool).start("clip.webm", ConversionOptions(fps=10))


def test_cancel_right_after_submit(thread_pool) -> None:
    gate = threading.Event()
    decoder = FakeDecoder(duration=1.0, gate=gate)
    pipeline = _pipeline(decoder, thread_pool)

    future = pipeline.submit("clip.webm")
    pipeline.cancel()
    gate.set()

    with pytest.raises(Cancelled):
        future.result(timeout=10)
    assert pipeline.progress.frames_extracted == 0
    assert pipeline.progress.stage is Stage.ERROR
    assert pipeline.progress.message == "Conversion cancelled"
    assert pipeline.state is PipelineState.CANCELLED
    assert decoder.timestamps == []
    pipeline.close()


def test_cancel_during_extraction_releases_source(thread_pool) -> None:
    pipeline: ConversionPipeline

    def _cancel_at(index: int) -> None:
        if index == 3:
            pipeline.cancel()

    decoder = FakeDecoder(duration=2.0, on_read=_cancel_at)
    pipeline = _pipeline(decoder, thread_pool)

    with pytest.raises(Cancelled):
        pipeline.start("clip.webm", ConversionOptions(fps=10))

    assert pipeline.progress.frames_extracted == 3
    assert decoder.opened[0].closed
    assert not pipeline.is_converting


def test_cancel_during_encoding(thread_pool) -> None:
    pipeline: ConversionPipeline

    def _encoder(index, pixels, key, interval):
        pipeline.cancel()
        raise AssertionError("result should be discarded")

    decoder = FakeDecoder(duration=1.0)
    cfg = ConverterConfig(encoder=EncoderConfig(max_workers=1))
    pipeline = ConversionPipeline(
        cfg, decoder=decoder, executor_factory=thread_pool, frame_encoder=_encoder
    )

    with pytest.raises(Cancelled):
        pipeline.start("clip.webm", ConversionOptions(fps=4))
    assert pipeline.state is PipelineState.CANCELLED


def test_worker_exit_fails_the_conversion_once(thread_pool) -> None:
    def _encoder(index, pixels, key, interval):
        raise SystemExit(3)

    seen: list[ProgressState] = []
    cfg = ConverterConfig(encoder=EncoderConfig(max_workers=1))
    pipeline = ConversionPipeline(
        cfg, decoder=FakeDecoder(duration=1.0), executor_factory=thread_pool, frame_encoder=_encoder
    )
    pipeline.subscribe(seen.append)

    with pytest.raises(EncodeWorkerFailure, match="SystemExit"):
        pipeline.start("clip.webm", ConversionOptions(fps=4))

    assert pipeline.state is PipelineState.FAILED
    assert seen[-1].stage is Stage.ERROR
    assert [state.stage for state in seen].count(Stage.ERROR) == 1
    assert not pipeline.is_converting


def test_interrupt_on_conversion_thread_still_ends_in_error(thread_pool) -> None:
    def _interrupt(index: int) -> None:
        if index == 1:
            raise KeyboardInterrupt

    decoder = FakeDecoder(duration=1.0, on_read=_interrupt)
    seen: list[ProgressState] = []
    pipeline = _pipeline(decoder, thread_pool)
    pipeline.subscribe(seen.append)

    with pytest.raises(KeyboardInterrupt):
        pipeline.start("clip.webm", ConversionOptions(fps=4))

    assert pipeline.state is PipelineState.FAILED
    assert seen[-1].stage is Stage.ERROR
    assert seen[-1].message == "Conversion interrupted"
    assert all(source.closed for source in decoder.opened)
    # The pipeline is released for the next conversion.
    decoder.on_read = None
    assert pipeline.start("clip.webm", ConversionOptions(fps=4)).frame_count == 4


def test_second_start_is_rejected(thread_pool) -> None:
    gate = threading.Event()
    decoder = FakeDecoder(duration=0.5, gate=gate)
    pipeline = _pipeline(decoder, thread_pool)

    future = pipeline.submit("clip.webm", ConversionOptions(fps=4))
    with pytest.raises(AlreadyConverting):
        pipeline.start("other.webm")
    gate.set()

    assert future.result(timeout=10).frame_count == 2
    # A finished pipeline accepts the next conversion.
    assert pipeline.start("other.webm", ConversionOptions(fps=4)).frame_count == 2
    pipeline.close()


def test_cancel_is_a_noop_outside_a_conversion(thread_pool) -> None:
    decoder = FakeDecoder(duration=0.5)
    pipeline = _pipeline(decoder, thread_pool)
    pipeline.cancel()

    output = pipeline.start("clip.webm", ConversionOptions(fps=4))
    pipeline.cancel()
    pipeline.cancel()

    assert output.frame_count == 2
    assert pipeline.state is PipelineState.COMPLETE


def test_unexpected_load_errors_become_source_load_failure(thread_pool) -> None:
    class _Broken(FakeDecoder):
        def open(self, path: Path) -> SourceVideo:
            raise OSError("unreadable")

    pipeline = _pipeline(_Broken(), thread_pool)

    with pytest.raises(SourceLoadFailure, match="unreadable"):
        pipeline.start("clip.webm")
    assert pipeline.progress.stage is Stage.ERROR


def test_key_collisions_are_logged(thread_pool, caplog: pytest.LogCaptureFixture) -> None:
    decoder = FakeDecoder(duration=0.25, painter=solid((0, 255, 0, 255)))
    pipeline = _pipeline(decoder, thread_pool)

    with caplog.at_level("WARNING", logger="alphagif.pipeline"):
        output = pipeline.start("clip.webm", ConversionOptions(fps=4))

    assert any(record.getMessage() == "color_key_collision" for record in caplog.records)
    # Opaque pixels in the key color share the reserved index and render transparent.
    with Image.open(BytesIO(output.data)) as image:
        assert not np.asarray(image.convert("RGBA"))[..., 3].any()


def test_custom_color_key_flows_to_the_palette(thread_pool) -> None:
    decoder = FakeDecoder(duration=0.25, painter=solid((1, 2, 3, 0)))
    output = _pipeline(decoder, thread_pool, color_key=(255, 0, 255)).start(
        "clip.webm", ConversionOptions(fps=4)
    )

    with Image.open(BytesIO(output.data)) as image:
        palette = image.getpalette()
    assert palette[255 * 3 : 256 * 3] == [255, 0, 255]


def test_probe_closes_source(thread_pool) -> None:
    decoder = FakeDecoder(duration=3.0, size=(32, 16))
    source = _pipeline(decoder, thread_pool).probe("clip.webm")

    assert source.closed
    assert source.estimated_frames(15) == 45

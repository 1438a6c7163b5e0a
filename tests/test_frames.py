from __future__ import annotations

import time
from pathlib import Path

import pytest

import slideharvest.frames.extract as extract
from slideharvest.errors import ProcessFailedError


@pytest.mark.parametrize(
    ("requested", "actual", "expected"),
    [
        (12.5, None, 12.5),
        (120.1, 0.4, 120.5),
        (10.0, 42.25, 42.25),
        (30.0, 29.5, 29.5),
    ],
)
def test_resolve_extracted_timestamp(requested: float, actual: float | None, expected: float) -> None:
    assert extract.resolve_extracted_timestamp(requested=requested, actual=actual) == pytest.approx(expected)


def test_extract_frames_at_timestamps_keeps_index_order(tmp_path: Path, monkeypatch) -> None:
    outputs: list[str] = []

    def _run_process(command: str, args: list[str], **kwargs: object) -> None:
        requested = float(args[args.index("-ss") + 1])
        time.sleep(0.05 if requested < 20 else 0.0)
        Path(args[-1]).write_bytes(b"png")
        outputs.append(args[-1])
        kwargs["on_stderr_line"](f"[Parsed_showinfo_0 @ 0x1] n:0 pts:0 pts_time:{0.04}")

    monkeypatch.setattr(extract, "run_process", _run_process)

    slides = extract.extract_frames_at_timestamps(
        ffmpeg_path="ffmpeg",
        input_path="talk.mp4",
        output_dir=tmp_path,
        timestamps=[10.0, 25.0, 40.0],
        timeout_seconds=60,
        workers=3,
    )

    assert [slide.index for slide in slides] == [1, 2, 3]
    assert [Path(slide.image_path).name for slide in slides] == ["slide_0001.png", "slide_0002.png", "slide_0003.png"]
    assert [slide.timestamp for slide in slides] == pytest.approx([10.04, 25.04, 40.04])
    assert len(outputs) == 3


def test_extract_frames_at_timestamps_forces_monotonic_times(tmp_path: Path, monkeypatch) -> None:
    reported = {"5.0": 9.0, "8.0": 8.0}

    def _run_process(command: str, args: list[str], **kwargs: object) -> None:
        requested = args[args.index("-ss") + 1]
        kwargs["on_stderr_line"](f"[Parsed_showinfo_0 @ 0x1] n:0 pts_time:{reported[requested]}")

    monkeypatch.setattr(extract, "run_process", _run_process)

    slides = extract.extract_frames_at_timestamps(
        ffmpeg_path="ffmpeg",
        input_path="talk.mp4",
        output_dir=tmp_path,
        timestamps=[5.0, 8.0],
        timeout_seconds=60,
        workers=2,
    )

    assert [slide.timestamp for slide in slides] == [9.0, 9.0]


def test_extract_frames_at_timestamps_propagates_failure(tmp_path: Path, monkeypatch) -> None:
    def _run_process(command: str, args: list[str], **kwargs: object) -> None:
        raise ProcessFailedError("ffmpeg", 1, "Invalid data found when processing input")

    monkeypatch.setattr(extract, "run_process", _run_process)

    with pytest.raises(ProcessFailedError, match="Invalid data"):
        extract.extract_frames_at_timestamps(
            ffmpeg_path="ffmpeg",
            input_path="talk.mp4",
            output_dir=tmp_path,
            timestamps=[1.0, 2.0],
            timeout_seconds=60,
            workers=2,
        )


def test_extract_frame_for_roi_scales_frame(tmp_path: Path, monkeypatch) -> None:
    seen: list[list[str]] = []
    monkeypatch.setattr(extract, "run_process", lambda command, args, **kwargs: seen.append(list(args)))

    extract.extract_frame_for_roi(
        ffmpeg_path="ffmpeg",
        input_path="talk.mp4",
        timestamp=12.0,
        output_path=tmp_path / "roi_1.png",
        timeout_seconds=30,
    )

    assert seen[0][seen[0].index("-vf") + 1] == "scale=960:-2"
    assert seen[0][-1] == str(tmp_path / "roi_1.png")

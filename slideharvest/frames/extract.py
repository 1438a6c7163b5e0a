from __future__ import annotations

import logging
import math
import threading
from dataclasses import replace
from functools import partial
from pathlib import Path
from time import perf_counter

from slideharvest.detect.scenes import parse_showinfo_timestamp
from slideharvest.models import SlideImage
from slideharvest.runtime.executor import run_with_concurrency
from slideharvest.runtime.process import run_process

ROI_FRAME_WIDTH = 960
SEEK_OFFSET_TOLERANCE_SECONDS = 1.0

logger = logging.getLogger(__name__)


def extract_frames_at_timestamps(
    *,
    ffmpeg_path: str,
    input_path: str,
    output_dir: Path,
    timestamps: list[float],
    timeout_seconds: float,
    workers: int,
    cancel_event: threading.Event | None = None,
) -> list[SlideImage]:
    """Extract one PNG per timestamp in parallel, returned in timestamp-index order."""

    tasks = [
        partial(
            _extract_slide_frame,
            ffmpeg_path=ffmpeg_path,
            input_path=input_path,
            output_path=output_dir / f"slide_{index:04d}.png",
            index=index,
            timestamp=timestamp,
            timeout_seconds=timeout_seconds,
            cancel_event=cancel_event,
        )
        for index, timestamp in enumerate(timestamps, start=1)
    ]

    started_at = perf_counter()
    slides = sorted(run_with_concurrency(tasks, workers, cancel_event=cancel_event), key=lambda slide: slide.index)
    elapsed = perf_counter() - started_at
    logger.info("Extracted %d frames with %d workers elapsed=%.2fs", len(slides), workers, elapsed)
    return _enforce_monotonic(slides)


def extract_frame_for_roi(
    *,
    ffmpeg_path: str,
    input_path: str,
    timestamp: float,
    output_path: Path,
    timeout_seconds: float,
    cancel_event: threading.Event | None = None,
) -> None:
    run_process(
        ffmpeg_path,
        [
            "-hide_banner",
            "-ss",
            str(timestamp),
            "-i",
            input_path,
            "-vframes",
            "1",
            "-vf",
            f"scale={ROI_FRAME_WIDTH}:-2",
            "-q:v",
            "2",
            "-an",
            "-sn",
            "-y",
            str(output_path),
        ],
        timeout_seconds=timeout_seconds,
        label="ffmpeg",
        cancel_event=cancel_event,
    )


def resolve_extracted_timestamp(*, requested: float, actual: float | None) -> float:
    """Reconcile the requested seek time with the pts ffmpeg reported for the frame.

    Input seeking resets timestamps, so a pts well below the requested time
    is an offset from the seek point rather than an absolute position.
    """

    if actual is None or not math.isfinite(actual):
        return requested
    if actual + SEEK_OFFSET_TOLERANCE_SECONDS < requested:
        return requested + actual
    return actual


def _extract_slide_frame(
    *,
    ffmpeg_path: str,
    input_path: str,
    output_path: Path,
    index: int,
    timestamp: float,
    timeout_seconds: float,
    cancel_event: threading.Event | None,
) -> SlideImage:
    reported: list[float] = []

    def _collect(line: str) -> None:
        pts = parse_showinfo_timestamp(line)
        if pts is not None and not reported:
            reported.append(pts)

    run_process(
        ffmpeg_path,
        [
            "-hide_banner",
            "-ss",
            str(timestamp),
            "-i",
            input_path,
            "-vframes",
            "1",
            "-vf",
            "showinfo",
            "-q:v",
            "2",
            "-an",
            "-sn",
            "-y",
            str(output_path),
        ],
        timeout_seconds=timeout_seconds,
        label="ffmpeg",
        on_stderr_line=_collect,
        cancel_event=cancel_event,
    )
    return SlideImage(
        index=index,
        timestamp=resolve_extracted_timestamp(
            requested=timestamp,
            actual=reported[0] if reported else None,
        ),
        image_path=str(output_path),
    )


def _enforce_monotonic(slides: list[SlideImage]) -> list[SlideImage]:
    ordered: list[SlideImage] = []
    for slide in slides:
        if ordered and slide.timestamp < ordered[-1].timestamp:
            slide = replace(slide, timestamp=ordered[-1].timestamp)
        ordered.append(slide)
    return ordered

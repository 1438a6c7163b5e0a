from __future__ import annotations

import logging
import math
import re
import threading
from functools import partial

from slideharvest.models import CropRect, Segment
from slideharvest.runtime.executor import clamp_workers, run_with_concurrency
from slideharvest.runtime.process import run_process

DETECT_TIMEOUT_FLOOR_SECONDS = 300.0
SEGMENT_TARGET_SECONDS = 60.0
SHOWINFO_PTS_PATTERN = re.compile(r"pts_time:(\d+\.?\d*)")

logger = logging.getLogger(__name__)


def parse_showinfo_timestamp(line: str) -> float | None:
    """Extract the presentation timestamp from an ffmpeg showinfo log line."""

    if "showinfo" not in line:
        return None
    match = SHOWINFO_PTS_PATTERN.search(line)
    if not match:
        return None
    value = float(match.group(1))
    return value if math.isfinite(value) else None


def build_segments(duration_seconds: float | None, workers: int) -> list[Segment]:
    """Split a clip into roughly minute-long segments, one per worker at most.

    Unknown duration or a single worker gives one whole-input segment
    (duration 0 means "until the end of the input").
    """

    if not duration_seconds or duration_seconds <= 0 or workers <= 1:
        return [Segment(start=0.0, duration=0.0)]

    segment_count = min(clamp_workers(workers), math.ceil(duration_seconds / SEGMENT_TARGET_SECONDS))
    segment_duration = duration_seconds / segment_count
    segments: list[Segment] = []
    for index in range(segment_count):
        start = index * segment_duration
        duration = duration_seconds - start if index == segment_count - 1 else segment_duration
        segments.append(Segment(start=start, duration=duration))
    return segments


def build_scene_filter(threshold: float, crop: CropRect | None = None) -> str:
    select = f"select='gt(scene,{threshold})',showinfo"
    if crop is None:
        return select
    return f"crop={crop.width}:{crop.height}:{crop.x}:{crop.y},{select}"


def detect_scene_timestamps(
    *,
    ffmpeg_path: str,
    input_path: str,
    threshold: float,
    timeout_seconds: float,
    crop: CropRect | None = None,
    segments: list[Segment] | None = None,
    workers: int = 1,
    cancel_event: threading.Event | None = None,
) -> list[float]:
    """Run ffmpeg scene detection per segment and return sorted change timestamps."""

    scene_filter = build_scene_filter(threshold, crop)
    used_segments = segments or [Segment(start=0.0, duration=0.0)]
    tasks = [
        partial(
            _detect_segment,
            ffmpeg_path=ffmpeg_path,
            input_path=input_path,
            scene_filter=scene_filter,
            segment=segment,
            timeout_seconds=max(timeout_seconds, DETECT_TIMEOUT_FLOOR_SECONDS),
            cancel_event=cancel_event,
        )
        for segment in used_segments
    ]

    per_segment = run_with_concurrency(tasks, workers, cancel_event=cancel_event)
    merged = sorted(timestamp for timestamps in per_segment for timestamp in timestamps)
    logger.debug(
        "Scene detection threshold=%s segments=%d found=%d",
        threshold,
        len(used_segments),
        len(merged),
    )
    return merged


def _detect_segment(
    *,
    ffmpeg_path: str,
    input_path: str,
    scene_filter: str,
    segment: Segment,
    timeout_seconds: float,
    cancel_event: threading.Event | None,
) -> list[float]:
    window: list[str] = []
    if segment.duration > 0:
        window = ["-ss", str(segment.start), "-t", str(segment.duration)]

    command = [
        "-hide_banner",
        *window,
        "-i",
        input_path,
        "-vf",
        scene_filter,
        "-vsync",
        "vfr",
        "-an",
        "-sn",
        "-f",
        "null",
        "-",
    ]

    timestamps: list[float] = []

    def _collect(line: str) -> None:
        timestamp = parse_showinfo_timestamp(line)
        if timestamp is not None:
            timestamps.append(timestamp + segment.start)

    run_process(
        ffmpeg_path,
        command,
        timeout_seconds=timeout_seconds,
        label="ffmpeg",
        on_stderr_line=_collect,
        cancel_event=cancel_event,
    )
    return timestamps

from __future__ import annotations

import logging
import os
import threading
from contextlib import ExitStack
from pathlib import Path
from time import perf_counter
from typing import Mapping

from slideharvest.config import SlidesSettings, ToolSettings, VisionSettings
from slideharvest.detect.autotune import tune_scene_detection
from slideharvest.detect.scenes import build_segments, detect_scene_timestamps
from slideharvest.errors import NoCandidatesError
from slideharvest.export.artifact import ARTIFACT_NAME, write_slides_json
from slideharvest.frames.extract import extract_frames_at_timestamps
from slideharvest.frames.filters import (
    apply_max_slides_filter,
    apply_min_duration_filter,
    merge_timestamps,
    rename_slides_with_timestamps,
)
from slideharvest.ingest.download import downloaded_video
from slideharvest.ingest.probe import probe_video_info
from slideharvest.models import AutoTune, CropRect, Roi, SlideExtractionResult, SlideImage, Source
from slideharvest.ocr.tesseract import run_ocr_on_slides
from slideharvest.roi.refiner import VisionRequest, detect_slide_roi
from slideharvest.roi.vision import request_vision_text
from slideharvest.runtime.executor import clamp_workers
from slideharvest.runtime.tools import ToolLookup, require_tool, resolve_tool

logger = logging.getLogger(__name__)


def extract_slides_for_source(
    source: Source,
    settings: SlidesSettings,
    *,
    tools: ToolSettings | None = None,
    vision: VisionSettings | None = None,
    env: Mapping[str, str] | None = None,
    cancel_event: threading.Event | None = None,
    request_fn: VisionRequest = request_vision_text,
) -> SlideExtractionResult:
    """Run the full slide pipeline for one source and persist slides.json.

    Stages: download (remote only) -> probe -> adaptive scene detection
    (with ROI refinement when nothing is found) -> gap merge -> max-slides
    trim -> parallel frame extraction -> min-duration filter -> optional OCR.
    """

    tools = tools or ToolSettings()
    vision = vision or VisionSettings()
    env = os.environ if env is None else env
    workers = clamp_workers(settings.workers)
    warnings: list[str] = []
    started_at = perf_counter()
    logger.info(
        "Slides pipeline for %s: download(sequential) -> scene-detect(parallel:%d) -> "
        "extract-frames(parallel:%d) -> ocr(parallel:%d)",
        source.source_id,
        workers,
        workers,
        workers,
    )

    ffmpeg_path = require_tool(resolve_tool("ffmpeg", tools.ffmpeg_path), "install ffmpeg or add it to PATH")
    ffprobe = resolve_tool("ffprobe", tools.ffprobe_path)
    tesseract_path: str | None = None
    if settings.ocr:
        tesseract_path = require_tool(
            resolve_tool("tesseract", tools.tesseract_path),
            "install tesseract or run without OCR",
        )
    ytdlp_path: str | None = None
    if source.kind == "remote":
        ytdlp_path = require_tool(
            resolve_tool("yt-dlp", tools.ytdlp_path),
            "slides for hosted videos require yt-dlp",
        )

    slides_dir = Path(settings.output_dir).expanduser() / source.source_id
    prepare_slides_dir(slides_dir)

    with ExitStack() as stack:
        input_path = _local_input_path(source)
        if ytdlp_path is not None:
            download_started_at = perf_counter()
            downloaded = stack.enter_context(
                downloaded_video(
                    ytdlp_path,
                    source.url,
                    video_format=settings.ytdlp_format,
                    timeout_seconds=settings.timeout_seconds,
                    cancel_event=cancel_event,
                )
            )
            input_path = str(downloaded)
            _log_elapsed(f"yt-dlp download (format={settings.ytdlp_format})", download_started_at)

        slides, auto_tune = _extract_slides_with_ffmpeg(
            ffmpeg_path=ffmpeg_path,
            ffprobe=ffprobe,
            input_path=input_path,
            slides_dir=slides_dir,
            settings=settings,
            vision=vision,
            env=env,
            workers=workers,
            warnings=warnings,
            cancel_event=cancel_event,
            request_fn=request_fn,
        )

        slides = rename_slides_with_timestamps(slides, slides_dir)
        if not slides:
            raise NoCandidatesError(auto_tune.chosen_threshold)

        if tesseract_path is not None:
            ocr_started_at = perf_counter()
            slides = run_ocr_on_slides(
                slides,
                tesseract_path,
                workers=workers,
                warnings=warnings,
                cancel_event=cancel_event,
            )
            _log_elapsed(f"ocr (count={len(slides)}, workers={workers})", ocr_started_at)

        result = SlideExtractionResult(
            source_url=source.url,
            source_kind=source.kind,
            source_id=source.source_id,
            slides_dir=str(slides_dir),
            scene_threshold=settings.scene_threshold,
            auto_tune_threshold=settings.auto_tune_threshold,
            auto_tune=auto_tune,
            max_slides=settings.max_slides,
            min_slide_duration=settings.min_duration_seconds,
            ocr_requested=settings.ocr,
            ocr_available=tesseract_path is not None,
            slides=slides,
            warnings=warnings,
        )
        write_slides_json(result)

    _log_elapsed("slides total", started_at)
    return result


def prepare_slides_dir(slides_dir: Path) -> None:
    """Create the output dir and drop slide images and artifacts from earlier runs."""

    slides_dir.mkdir(parents=True, exist_ok=True)
    for entry in slides_dir.iterdir():
        if not entry.is_file():
            continue
        if (entry.name.startswith("slide_") and entry.suffix == ".png") or entry.name == ARTIFACT_NAME:
            entry.unlink(missing_ok=True)


def _extract_slides_with_ffmpeg(
    *,
    ffmpeg_path: str,
    ffprobe: ToolLookup,
    input_path: str,
    slides_dir: Path,
    settings: SlidesSettings,
    vision: VisionSettings,
    env: Mapping[str, str],
    workers: int,
    warnings: list[str],
    cancel_event: threading.Event | None,
    request_fn: VisionRequest,
) -> tuple[list[SlideImage], AutoTune]:
    probe_started_at = perf_counter()
    video_info = probe_video_info(
        ffprobe,
        input_path,
        timeout_seconds=settings.timeout_seconds,
        warnings=warnings,
        cancel_event=cancel_event,
    )
    _log_elapsed("ffprobe video info", probe_started_at)

    segments = build_segments(video_info.duration_seconds, workers)

    def _detect(threshold: float, crop: CropRect | None) -> list[float]:
        return detect_scene_timestamps(
            ffmpeg_path=ffmpeg_path,
            input_path=input_path,
            threshold=threshold,
            timeout_seconds=settings.timeout_seconds,
            crop=crop,
            segments=segments,
            workers=workers,
            cancel_event=cancel_event,
        )

    def _find_roi() -> Roi | None:
        roi_started_at = perf_counter()
        roi = detect_slide_roi(
            ffmpeg_path=ffmpeg_path,
            input_path=input_path,
            video_info=video_info,
            attempts=[attempt.to_attempt() for attempt in vision.attempts],
            env=env,
            warnings=warnings,
            timeout_seconds=settings.timeout_seconds,
            vision_timeout_seconds=vision.timeout_seconds,
            max_retries=vision.max_retries,
            ollama_endpoint=vision.ollama_endpoint,
            request_fn=request_fn,
            cancel_event=cancel_event,
        )
        _log_elapsed("roi detect (llm)", roi_started_at)
        return roi

    evaluation, auto_tune = tune_scene_detection(
        _detect,
        base_threshold=settings.scene_threshold,
        max_slides=settings.max_slides,
        auto_tune=settings.auto_tune_threshold,
        video_info=video_info,
        find_roi=_find_roi,
        warnings=warnings,
    )

    combined = merge_timestamps(evaluation.timestamps, [], settings.min_duration_seconds)
    candidates = apply_max_slides_filter(
        [SlideImage(index=index, timestamp=timestamp, image_path="") for index, timestamp in enumerate(combined, start=1)],
        settings.max_slides,
        warnings,
    )

    extracted = extract_frames_at_timestamps(
        ffmpeg_path=ffmpeg_path,
        input_path=input_path,
        output_dir=slides_dir,
        timestamps=[candidate.timestamp for candidate in candidates],
        timeout_seconds=settings.timeout_seconds,
        workers=workers,
        cancel_event=cancel_event,
    )
    return apply_min_duration_filter(extracted, settings.min_duration_seconds, warnings), auto_tune


def _local_input_path(source: Source) -> str:
    candidate = Path(source.url).expanduser()
    return str(candidate) if candidate.is_file() else source.url


def _log_elapsed(label: str, started_at: float) -> float:
    elapsed = perf_counter() - started_at
    logger.info("%s elapsed=%.2fs", label, elapsed)
    return elapsed

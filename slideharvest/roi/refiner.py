from __future__ import annotations

import json
import logging
import shutil
import tempfile
import threading
from http.client import HTTPException
from pathlib import Path
from typing import Callable, Mapping
from urllib.error import HTTPError, URLError

from slideharvest.errors import ProcessFailedError, ProcessTimeoutError
from slideharvest.frames.extract import extract_frame_for_roi
from slideharvest.models import Roi, VideoInfo, VisionAttempt
from slideharvest.roi.geometry import build_roi_sample_timestamps, merge_rois, parse_slide_roi
from slideharvest.roi.vision import build_roi_prompt, credential_available, lookup_credential, request_vision_text

NO_ROI_WARNING = "No LLM ROI model succeeded; continuing without ROI."

VisionRequest = Callable[..., str]

# failures of a single vision call; the next retry or attempt takes over
VISION_CALL_ERRORS = (
    json.JSONDecodeError,
    ValueError,
    HTTPError,
    URLError,
    HTTPException,
    TimeoutError,
    OSError,
    KeyError,
    IndexError,
    TypeError,
)

logger = logging.getLogger(__name__)


def detect_slide_roi(
    *,
    ffmpeg_path: str,
    input_path: str,
    video_info: VideoInfo,
    attempts: list[VisionAttempt],
    env: Mapping[str, str],
    warnings: list[str],
    timeout_seconds: float,
    vision_timeout_seconds: float,
    max_retries: int = 1,
    ollama_endpoint: str | None = None,
    request_fn: VisionRequest = request_vision_text,
    cancel_event: threading.Event | None = None,
) -> Roi | None:
    """Sample a few frames and ask the configured vision models where the slide is."""

    if not attempts:
        return None

    roi_dir = Path(tempfile.mkdtemp(prefix="slideharvest-roi-"))
    try:
        frame_paths: list[Path] = []
        for index, timestamp in enumerate(build_roi_sample_timestamps(video_info.duration_seconds), start=1):
            output_path = roi_dir / f"roi_{index}.png"
            extract_frame_for_roi(
                ffmpeg_path=ffmpeg_path,
                input_path=input_path,
                timestamp=timestamp,
                output_path=output_path,
                timeout_seconds=timeout_seconds,
                cancel_event=cancel_event,
            )
            frame_paths.append(output_path)

        roi, model = infer_slide_roi_from_frames(
            frame_paths,
            attempts=attempts,
            env=env,
            warnings=warnings,
            timeout_seconds=vision_timeout_seconds,
            max_retries=max_retries,
            ollama_endpoint=ollama_endpoint,
            request_fn=request_fn,
        )
        if roi is not None and model:
            warnings.append(f"LLM ROI model {model} selected for slide tuning")
        return roi
    except (ProcessFailedError, ProcessTimeoutError, *VISION_CALL_ERRORS) as exc:
        warnings.append(f"LLM ROI detection failed: {exc}")
        return None
    finally:
        shutil.rmtree(roi_dir, ignore_errors=True)


def infer_slide_roi_from_frames(
    frame_paths: list[Path],
    *,
    attempts: list[VisionAttempt],
    env: Mapping[str, str],
    warnings: list[str],
    timeout_seconds: float,
    max_retries: int = 1,
    ollama_endpoint: str | None = None,
    request_fn: VisionRequest = request_vision_text,
) -> tuple[Roi | None, str | None]:
    """Try each usable attempt in order; the first one with any usable ROI wins."""

    images = [path.read_bytes() for path in frame_paths]

    for attempt in attempts:
        if not credential_available(attempt.credential, env):
            logger.debug("Skipping ROI model %s: %s not set", attempt.model, attempt.credential.value)
            continue

        api_key = lookup_credential(attempt.credential, env)
        rois: list[Roi] = []
        for image_bytes in images:
            roi = _infer_roi_from_image(
                attempt,
                image_bytes=image_bytes,
                api_key=api_key,
                timeout_seconds=timeout_seconds,
                max_retries=max_retries,
                ollama_endpoint=ollama_endpoint,
                request_fn=request_fn,
            )
            if roi is not None:
                rois.append(roi)

        merged = merge_rois(rois)
        if merged is not None:
            return merged, attempt.model

    warnings.append(NO_ROI_WARNING)
    return None, None


def _infer_roi_from_image(
    attempt: VisionAttempt,
    *,
    image_bytes: bytes,
    api_key: str | None,
    timeout_seconds: float,
    max_retries: int,
    ollama_endpoint: str | None,
    request_fn: VisionRequest,
) -> Roi | None:
    system_prompt, user_prompt = build_roi_prompt()
    extra = {"ollama_endpoint": ollama_endpoint} if ollama_endpoint else {}
    for _ in range(max(0, max_retries) + 1):
        try:
            text = request_fn(
                attempt,
                image_bytes=image_bytes,
                api_key=api_key,
                system_prompt=system_prompt,
                user_prompt=user_prompt,
                timeout_seconds=timeout_seconds,
                **extra,
            )
        except VISION_CALL_ERRORS as exc:
            logger.warning("ROI model %s failed: %s", attempt.model, exc)
            continue
        return parse_slide_roi(text)
    return None

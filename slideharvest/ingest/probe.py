from __future__ import annotations

import json
import logging
import threading
from typing import Any

from slideharvest.errors import MissingToolError, ProcessFailedError, ProcessTimeoutError
from slideharvest.models import VideoInfo
from slideharvest.runtime.process import run_process_capture
from slideharvest.runtime.tools import Found, ToolLookup

PROBE_TIMEOUT_CAP_SECONDS = 30.0

logger = logging.getLogger(__name__)


def probe_video_info(
    ffprobe: ToolLookup,
    input_path: str,
    *,
    timeout_seconds: float,
    warnings: list[str] | None = None,
    cancel_event: threading.Event | None = None,
) -> VideoInfo:
    """Read duration and frame size via ffprobe; any failure yields an empty VideoInfo."""

    if not isinstance(ffprobe, Found):
        _degrade(warnings, f"ffprobe unavailable ({ffprobe.reason}); video duration and size unknown.")
        return VideoInfo()

    try:
        payload = _run_ffprobe(ffprobe.path, input_path, timeout_seconds, cancel_event)
    except (MissingToolError, ProcessFailedError, ProcessTimeoutError, json.JSONDecodeError) as exc:
        _degrade(warnings, f"ffprobe failed ({exc}); video duration and size unknown.")
        return VideoInfo()

    return _normalize_probe_payload(payload)


def _run_ffprobe(
    ffprobe_path: str,
    input_path: str,
    timeout_seconds: float,
    cancel_event: threading.Event | None,
) -> dict[str, Any]:
    command = [
        "-v",
        "quiet",
        "-print_format",
        "json",
        "-show_format",
        "-show_streams",
        input_path,
    ]
    output = run_process_capture(
        ffprobe_path,
        command,
        timeout_seconds=min(timeout_seconds, PROBE_TIMEOUT_CAP_SECONDS),
        label="ffprobe",
        cancel_event=cancel_event,
    )
    payload = json.loads(output)
    if not isinstance(payload, dict):
        raise json.JSONDecodeError("ffprobe output is not a JSON object", output, 0)
    return payload


def _normalize_probe_payload(payload: dict[str, Any]) -> VideoInfo:
    info = VideoInfo()
    for stream in payload.get("streams") or []:
        if not isinstance(stream, dict) or stream.get("codec_type") != "video":
            continue
        if info.width is None:
            info.width = _to_int(stream.get("width"))
        if info.height is None:
            info.height = _to_int(stream.get("height"))
        duration = _to_float(stream.get("duration"))
        if duration is not None and duration > 0:
            info.duration_seconds = duration

    if info.duration_seconds is None:
        format_entry = payload.get("format") or {}
        duration = _to_float(format_entry.get("duration")) if isinstance(format_entry, dict) else None
        if duration is not None and duration > 0:
            info.duration_seconds = duration

    return info


def _degrade(warnings: list[str] | None, message: str) -> None:
    logger.warning(message)
    if warnings is not None:
        warnings.append(message)


def _to_float(raw_value: Any) -> float | None:
    if raw_value in (None, "N/A", ""):
        return None
    try:
        return float(raw_value)
    except (TypeError, ValueError):
        return None


def _to_int(raw_value: Any) -> int | None:
    if raw_value in (None, "N/A", "") or isinstance(raw_value, bool):
        return None
    try:
        return int(raw_value)
    except (TypeError, ValueError):
        return None

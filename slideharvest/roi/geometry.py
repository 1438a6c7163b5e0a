from __future__ import annotations

import json
import math
from typing import Any

from slideharvest.models import CropRect, Roi, VideoInfo

ROI_SAMPLE_RATIOS = (0.12, 0.5, 0.85)
ROI_SAMPLE_END_MARGIN_SECONDS = 0.1
MIN_ROI_FRACTION = 0.2
MIN_CROP_SIDE_PX = 16
NO_REGION_TOKEN = "null"


def build_roi_sample_timestamps(duration_seconds: float | None) -> list[float]:
    if not duration_seconds or duration_seconds <= 0:
        return [0.0]
    upper = max(0.0, duration_seconds - ROI_SAMPLE_END_MARGIN_SECONDS)
    return [_clamp(duration_seconds * ratio, 0.0, upper) for ratio in ROI_SAMPLE_RATIOS]


def parse_slide_roi(text: str) -> Roi | None:
    """Parse a model answer into an ROI, tolerating prose around the JSON object.

    Accepts x/y/width/height, left/top/width/height, w/h or
    left/top/right/bottom, as 0-1 fractions or 0-100 percentages. Regions
    narrower or shorter than 20% of the frame are rejected.
    """

    trimmed = text.strip()
    if not trimmed or trimmed == NO_REGION_TOKEN:
        return None

    parsed = _first_json_object(trimmed)
    if parsed is None:
        return None

    x = normalize_roi_value(_first_present(parsed, "x", "left"))
    y = normalize_roi_value(_first_present(parsed, "y", "top"))
    width = normalize_roi_value(_first_present(parsed, "width", "w"))
    height = normalize_roi_value(_first_present(parsed, "height", "h"))
    right = normalize_roi_value(parsed.get("right"))
    bottom = normalize_roi_value(parsed.get("bottom"))

    if width is None and right is not None and x is not None:
        width = right - x
    if height is None and bottom is not None and y is not None:
        height = bottom - y

    if x is None or y is None or width is None or height is None:
        return None
    if width <= 0 or height <= 0:
        return None

    roi = Roi(
        x=_clamp(x, 0.0, 1.0),
        y=_clamp(y, 0.0, 1.0),
        width=_clamp(width, 0.0, 1.0),
        height=_clamp(height, 0.0, 1.0),
    )
    if roi.width < MIN_ROI_FRACTION or roi.height < MIN_ROI_FRACTION:
        return None
    return roi


def normalize_roi_value(value: Any) -> float | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        numeric = float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(numeric):
        return None
    if 1 < numeric <= 100:
        return numeric / 100
    return numeric


def merge_rois(rois: list[Roi]) -> Roi | None:
    """Merge per-frame proposals by taking the median of each coordinate independently."""

    if not rois:
        return None
    return Roi(
        x=_pick_median([roi.x for roi in rois]),
        y=_pick_median([roi.y for roi in rois]),
        width=_pick_median([roi.width for roi in rois]),
        height=_pick_median([roi.height for roi in rois]),
    )


def resolve_crop_from_roi(roi: Roi, video_info: VideoInfo) -> CropRect | None:
    frame_width = video_info.width
    frame_height = video_info.height
    if not frame_width or not frame_height:
        return None
    if frame_width < MIN_CROP_SIDE_PX or frame_height < MIN_CROP_SIDE_PX:
        return None

    width = round(roi.width * frame_width)
    height = round(roi.height * frame_height)
    if width < MIN_CROP_SIDE_PX or height < MIN_CROP_SIDE_PX:
        return None

    x = _clamp(round(roi.x * frame_width), 0, frame_width - MIN_CROP_SIDE_PX)
    y = _clamp(round(roi.y * frame_height), 0, frame_height - MIN_CROP_SIDE_PX)
    return CropRect(
        x=int(x),
        y=int(y),
        width=int(_clamp(width, MIN_CROP_SIDE_PX, frame_width - x)),
        height=int(_clamp(height, MIN_CROP_SIDE_PX, frame_height - y)),
    )


def _first_json_object(text: str) -> dict[str, Any] | None:
    decoder = json.JSONDecoder()
    start = text.find("{")
    while start != -1:
        try:
            candidate, _ = decoder.raw_decode(text, start)
        except json.JSONDecodeError:
            candidate = None
        if isinstance(candidate, dict):
            return candidate
        start = text.find("{", start + 1)
    return None


def _first_present(payload: dict[str, Any], *keys: str) -> Any:
    for key in keys:
        value = payload.get(key)
        if value is not None:
            return value
    return None


def _pick_median(values: list[float]) -> float:
    ordered = sorted(values)
    return ordered[len(ordered) // 2]


def _clamp(value: float, lower: float, upper: float) -> float:
    return max(lower, min(upper, value))

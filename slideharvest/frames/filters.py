from __future__ import annotations

import logging
import math
import os
import shutil
from dataclasses import replace
from pathlib import Path

from slideharvest.models import SlideImage

MIN_MERGE_GAP_SECONDS = 0.1

logger = logging.getLogger(__name__)


def merge_timestamps(
    scene_timestamps: list[float],
    interval_timestamps: list[float],
    min_duration_seconds: float,
) -> list[float]:
    """Combine timestamp sources, collapsing near-duplicates onto the earlier one."""

    merged = sorted(value for value in [*scene_timestamps, *interval_timestamps] if math.isfinite(value))
    min_gap = max(MIN_MERGE_GAP_SECONDS, min_duration_seconds * 0.5)

    result: list[float] = []
    for timestamp in merged:
        if not result or timestamp - result[-1] >= min_gap:
            result.append(timestamp)
    return result


def apply_max_slides_filter(slides: list[SlideImage], max_slides: int, warnings: list[str]) -> list[SlideImage]:
    if max_slides <= 0 or len(slides) <= max_slides:
        return slides

    for slide in slides[max_slides:]:
        _discard(slide)
    warnings.append(f"Trimmed slides to max {max_slides}")
    return _reindex(slides[:max_slides])


def apply_min_duration_filter(
    slides: list[SlideImage],
    min_duration_seconds: float,
    warnings: list[str],
) -> list[SlideImage]:
    """Keep a slide only when it starts at least `min_duration_seconds` after the last kept one."""

    if min_duration_seconds <= 0:
        return _reindex(slides)

    kept: list[SlideImage] = []
    for slide in slides:
        if not kept or slide.timestamp - kept[-1].timestamp >= min_duration_seconds:
            kept.append(slide)
        else:
            _discard(slide)

    dropped = len(slides) - len(kept)
    if dropped:
        warnings.append(f"Filtered {dropped} slides by min duration")
    return _reindex(kept)


def rename_slides_with_timestamps(slides: list[SlideImage], slides_dir: Path) -> list[SlideImage]:
    renamed: list[SlideImage] = []
    for slide in slides:
        target = slides_dir / f"slide_{slide.index:04d}_{slide.timestamp:.2f}s.png"
        source = Path(slide.image_path)
        if source != target:
            try:
                os.replace(source, target)
            except OSError:
                shutil.copyfile(source, target)
                source.unlink(missing_ok=True)
        renamed.append(replace(slide, image_path=str(target)))
    return renamed


def _reindex(slides: list[SlideImage]) -> list[SlideImage]:
    return [replace(slide, index=index) for index, slide in enumerate(slides, start=1)]


def _discard(slide: SlideImage) -> None:
    if not slide.image_path:
        return
    try:
        Path(slide.image_path).unlink(missing_ok=True)
    except OSError as exc:
        logger.warning("Could not remove filtered slide %s: %s", slide.image_path, exc)

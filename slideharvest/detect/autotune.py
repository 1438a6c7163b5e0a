from __future__ import annotations

import logging
import math
from time import perf_counter
from typing import Callable

from slideharvest.models import AutoTune, CropRect, Roi, SceneEvaluation, VideoInfo
from slideharvest.roi.geometry import resolve_crop_from_roi

MIN_THRESHOLD = 0.05
RETRY_FACTOR = 0.5
MAX_TARGET_SLIDES = 5
ROI_CONFIDENCE_MARGIN = 0.05
NO_SCENES_WARNING = "Scene detection did not find any candidate slide changes."

ThresholdDetector = Callable[[float], list[float]]
CropDetector = Callable[[float, CropRect | None], list[float]]

logger = logging.getLogger(__name__)


def round_threshold(value: float) -> float:
    return math.floor(value * 100 + 0.5) / 100


def target_min_slides(max_slides: int) -> int:
    return min(max_slides, MAX_TARGET_SLIDES)


def scene_confidence(scene_count: int, target: int) -> float:
    return max(0.0, min(1.0, scene_count / max(1, target)))


def detect_scene_timestamps_adaptive(
    detect: ThresholdDetector,
    *,
    threshold: float,
    target_min_slides: int,
    warnings: list[str],
    retry: bool = True,
    min_threshold: float = MIN_THRESHOLD,
) -> SceneEvaluation:
    """Detect scenes at `threshold`, retrying once at half the threshold when too few are found.

    The retry only wins when it finds strictly more timestamps than the
    first run; there is never more than one retry.
    """

    chosen = threshold
    started_at = perf_counter()
    timestamps = detect(chosen)
    logger.info(
        "Scene detection base threshold=%s found=%d elapsed=%.2fs",
        chosen,
        len(timestamps),
        perf_counter() - started_at,
    )

    if retry and len(timestamps) < target_min_slides and chosen > min_threshold:
        retry_threshold = max(min_threshold, round_threshold(chosen * RETRY_FACTOR))
        if retry_threshold != chosen:
            started_at = perf_counter()
            retried = detect(retry_threshold)
            logger.info(
                "Scene detection retry threshold=%s found=%d elapsed=%.2fs",
                retry_threshold,
                len(retried),
                perf_counter() - started_at,
            )
            if len(retried) > len(timestamps):
                chosen = retry_threshold
                timestamps = retried

    if not timestamps:
        warnings.append(NO_SCENES_WARNING)

    return SceneEvaluation(
        threshold=chosen,
        timestamps=timestamps,
        confidence=scene_confidence(len(timestamps), target_min_slides),
    )


def tune_scene_detection(
    detect: CropDetector,
    *,
    base_threshold: float,
    max_slides: int,
    auto_tune: bool,
    video_info: VideoInfo,
    find_roi: Callable[[], Roi | None],
    warnings: list[str],
) -> tuple[SceneEvaluation, AutoTune]:
    """Pick scene timestamps via the adaptive threshold, falling back to an ROI crop."""

    target = target_min_slides(max_slides)
    base_evaluation = detect_scene_timestamps_adaptive(
        lambda threshold: detect(threshold, None),
        threshold=base_threshold,
        target_min_slides=target,
        warnings=warnings,
        retry=True,
    )

    chosen = base_evaluation
    tuned = auto_tune and base_evaluation.threshold != base_threshold
    auto = AutoTune(
        enabled=tuned,
        chosen_threshold=base_evaluation.threshold,
        confidence=base_evaluation.confidence,
        strategy="adaptive" if tuned else "none",
    )

    if auto_tune and not base_evaluation.timestamps:
        roi = find_roi()
        crop = resolve_crop_from_roi(roi, video_info) if roi is not None else None
        if crop is not None:
            roi_evaluation = detect_scene_timestamps_adaptive(
                lambda threshold: detect(threshold, crop),
                threshold=base_threshold,
                target_min_slides=target,
                # empty-result warning was already recorded by the uncropped run
                warnings=[],
            )
            if roi_evaluation.confidence >= base_evaluation.confidence + ROI_CONFIDENCE_MARGIN:
                chosen = roi_evaluation
                auto = AutoTune(
                    enabled=True,
                    chosen_threshold=roi_evaluation.threshold,
                    confidence=roi_evaluation.confidence,
                    strategy="llm-roi",
                    roi=roi,
                )
        if chosen is base_evaluation:
            auto.roi = roi

    if auto_tune and chosen.threshold != base_threshold:
        warnings.append(
            f"Auto-tuned scene threshold from {base_threshold} to {chosen.threshold} "
            f"(detected {len(chosen.timestamps)} scenes)"
        )

    return chosen, auto

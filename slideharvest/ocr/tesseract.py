from __future__ import annotations

import logging
import re
import threading
from dataclasses import replace
from functools import partial

from slideharvest.errors import MissingToolError, ProcessFailedError, ProcessTimeoutError
from slideharvest.models import SlideImage
from slideharvest.runtime.executor import run_with_concurrency
from slideharvest.runtime.process import run_process_capture

TESSERACT_TIMEOUT_SECONDS = 120.0
MIN_LINE_CHARS = 2
MAX_UNBROKEN_TOKEN_CHARS = 20
ALNUM_PATTERN = re.compile(r"[a-z0-9]", re.IGNORECASE)

logger = logging.getLogger(__name__)


def run_ocr_on_slides(
    slides: list[SlideImage],
    tesseract_path: str,
    *,
    workers: int,
    warnings: list[str],
    timeout_seconds: float = TESSERACT_TIMEOUT_SECONDS,
    cancel_event: threading.Event | None = None,
) -> list[SlideImage]:
    """OCR every slide in parallel; a failed slide gets empty text and zero confidence."""

    tasks = [
        partial(
            _ocr_slide,
            slide,
            tesseract_path=tesseract_path,
            timeout_seconds=timeout_seconds,
            cancel_event=cancel_event,
        )
        for slide in slides
    ]
    outcomes = run_with_concurrency(tasks, workers, cancel_event=cancel_event)

    failed = sum(1 for _, ok in outcomes if not ok)
    if failed:
        warnings.append(f"OCR failed for {failed} slides")
    return sorted((slide for slide, _ in outcomes), key=lambda slide: slide.index)


def run_tesseract(
    tesseract_path: str,
    image_path: str,
    *,
    timeout_seconds: float = TESSERACT_TIMEOUT_SECONDS,
    cancel_event: threading.Event | None = None,
) -> str:
    return run_process_capture(
        tesseract_path,
        [image_path, "stdout", "--oem", "3", "--psm", "6"],
        timeout_seconds=timeout_seconds,
        label="tesseract",
        cancel_event=cancel_event,
    )


def clean_ocr_text(text: str) -> str:
    """Drop OCR noise: tiny lines, long unbroken tokens and lines without letters or digits."""

    lines = [line.strip() for line in text.splitlines()]
    kept = [
        line
        for line in lines
        if len(line) >= MIN_LINE_CHARS
        and not (len(line) > MAX_UNBROKEN_TOKEN_CHARS and " " not in line)
        and ALNUM_PATTERN.search(line)
    ]
    return "\n".join(kept)


def estimate_ocr_confidence(text: str) -> float:
    if not text:
        return 0.0
    alnum = len(ALNUM_PATTERN.findall(text))
    return min(1.0, alnum / len(text))


def _ocr_slide(
    slide: SlideImage,
    *,
    tesseract_path: str,
    timeout_seconds: float,
    cancel_event: threading.Event | None,
) -> tuple[SlideImage, bool]:
    try:
        raw_text = run_tesseract(
            tesseract_path,
            slide.image_path,
            timeout_seconds=timeout_seconds,
            cancel_event=cancel_event,
        )
    except (MissingToolError, ProcessFailedError, ProcessTimeoutError, OSError) as exc:
        logger.warning("OCR failed for slide %d (%s): %s", slide.index, slide.image_path, exc)
        return replace(slide, ocr_text="", ocr_confidence=0.0), False

    cleaned = clean_ocr_text(raw_text)
    return replace(slide, ocr_text=cleaned, ocr_confidence=estimate_ocr_confidence(cleaned)), True

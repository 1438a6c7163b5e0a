from __future__ import annotations

import json
from dataclasses import asdict
from pathlib import Path
from typing import Any

from slideharvest.models import AutoTune, Roi, SlideExtractionResult, SlideImage

ARTIFACT_NAME = "slides.json"


def build_result_payload(result: SlideExtractionResult) -> dict[str, Any]:
    """Shape a pipeline result into the slides.json contract."""

    return {
        "source_url": result.source_url,
        "source_kind": result.source_kind,
        "source_id": result.source_id,
        "slides_dir": result.slides_dir,
        "scene_threshold": result.scene_threshold,
        "auto_tune_threshold": result.auto_tune_threshold,
        "auto_tune": asdict(result.auto_tune),
        "max_slides": result.max_slides,
        "min_slide_duration": result.min_slide_duration,
        "ocr_requested": result.ocr_requested,
        "ocr_available": result.ocr_available,
        "slide_count": len(result.slides),
        "warnings": list(result.warnings),
        "slides": [asdict(slide) for slide in result.slides],
    }


def write_slides_json(result: SlideExtractionResult) -> Path:
    path = Path(result.slides_dir) / ARTIFACT_NAME
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(build_result_payload(result), indent=2, ensure_ascii=False), encoding="utf-8")
    return path


def load_slide_result(path: str | Path) -> SlideExtractionResult:
    """Load a slides.json artifact back into a result for downstream tooling."""

    payload = json.loads(Path(path).read_text(encoding="utf-8"))
    if not isinstance(payload, dict):
        raise ValueError("Slides artifact must be a JSON object.")

    rows = payload.get("slides", [])
    if not isinstance(rows, list):
        raise ValueError("Slides artifact 'slides' must be a JSON array.")

    slides: list[SlideImage] = []
    for idx, row in enumerate(rows, start=1):
        if not isinstance(row, dict):
            raise ValueError(f"Slide row {idx} must be an object.")
        slides.append(
            SlideImage(
                index=int(row["index"]),
                timestamp=float(row["timestamp"]),
                image_path=str(row["image_path"]),
                ocr_text=str(row["ocr_text"]) if row.get("ocr_text") is not None else None,
                ocr_confidence=float(row["ocr_confidence"]) if row.get("ocr_confidence") is not None else None,
            )
        )

    tune = payload.get("auto_tune") or {}
    roi = tune.get("roi")
    auto_tune = AutoTune(
        enabled=bool(tune.get("enabled", False)),
        chosen_threshold=float(tune.get("chosen_threshold", payload["scene_threshold"])),
        confidence=float(tune.get("confidence", 0.0)),
        strategy=tune.get("strategy", "none"),
        roi=Roi(**{key: float(roi[key]) for key in ("x", "y", "width", "height")}) if roi else None,
    )

    return SlideExtractionResult(
        source_url=str(payload["source_url"]),
        source_kind=payload["source_kind"],
        source_id=str(payload["source_id"]),
        slides_dir=str(payload["slides_dir"]),
        scene_threshold=float(payload["scene_threshold"]),
        auto_tune_threshold=bool(payload["auto_tune_threshold"]),
        auto_tune=auto_tune,
        max_slides=int(payload["max_slides"]),
        min_slide_duration=float(payload["min_slide_duration"]),
        ocr_requested=bool(payload["ocr_requested"]),
        ocr_available=bool(payload["ocr_available"]),
        slides=slides,
        warnings=[str(warning) for warning in payload.get("warnings", [])],
    )

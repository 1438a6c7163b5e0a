from __future__ import annotations

import json
from pathlib import Path

import pytest

from slideharvest.export.artifact import ARTIFACT_NAME, build_result_payload, load_slide_result, write_slides_json
from slideharvest.models import AutoTune, Roi, SlideExtractionResult, SlideImage


def _result(slides_dir: Path) -> SlideExtractionResult:
    return SlideExtractionResult(
        source_url="https://www.youtube.com/watch?v=dQw4w9WgXcQ",
        source_kind="remote",
        source_id="dQw4w9WgXcQ",
        slides_dir=str(slides_dir),
        scene_threshold=0.3,
        auto_tune_threshold=True,
        auto_tune=AutoTune(
            enabled=True,
            chosen_threshold=0.15,
            confidence=1.0,
            strategy="llm-roi",
            roi=Roi(x=0.0, y=0.0, width=0.75, height=1.0),
        ),
        max_slides=100,
        min_slide_duration=2.0,
        ocr_requested=True,
        ocr_available=True,
        slides=[
            SlideImage(index=1, timestamp=4.0, image_path=str(slides_dir / "slide_0001_4.00s.png"), ocr_text="Intro", ocr_confidence=1.0),
            SlideImage(index=2, timestamp=30.5, image_path=str(slides_dir / "slide_0002_30.50s.png"), ocr_text="", ocr_confidence=0.0),
        ],
        warnings=["Auto-tuned scene threshold from 0.3 to 0.15 (detected 6 scenes)"],
    )


def test_build_result_payload_uses_snake_case_contract(tmp_path: Path) -> None:
    payload = build_result_payload(_result(tmp_path))

    assert payload["slide_count"] == 2
    assert payload["auto_tune"]["strategy"] == "llm-roi"
    assert payload["auto_tune"]["roi"] == {"x": 0.0, "y": 0.0, "width": 0.75, "height": 1.0}
    assert payload["slides"][0]["ocr_text"] == "Intro"
    assert payload["min_slide_duration"] == 2.0


def test_write_and_load_slides_json(tmp_path: Path) -> None:
    result = _result(tmp_path / "dQw4w9WgXcQ")

    path = write_slides_json(result)

    assert path == tmp_path / "dQw4w9WgXcQ" / ARTIFACT_NAME
    parsed = json.loads(path.read_text(encoding="utf-8"))
    assert parsed["source_id"] == "dQw4w9WgXcQ"
    assert load_slide_result(path) == result


def test_load_slide_result_rejects_non_object(tmp_path: Path) -> None:
    path = tmp_path / ARTIFACT_NAME
    path.write_text("[]", encoding="utf-8")

    with pytest.raises(ValueError, match="JSON object"):
        load_slide_result(path)

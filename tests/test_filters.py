from __future__ import annotations

from pathlib import Path

from slideharvest.frames.filters import (
    apply_max_slides_filter,
    apply_min_duration_filter,
    merge_timestamps,
    rename_slides_with_timestamps,
)
from slideharvest.models import SlideImage


def _slides_on_disk(tmp_path: Path, timestamps: list[float]) -> list[SlideImage]:
    slides = []
    for index, timestamp in enumerate(timestamps, start=1):
        path = tmp_path / f"slide_{index:04d}.png"
        path.write_bytes(b"png")
        slides.append(SlideImage(index=index, timestamp=timestamp, image_path=str(path)))
    return slides


def test_merge_timestamps_collapses_near_duplicates() -> None:
    merged = merge_timestamps([10.0, 3.0, 10.5, 20.0], [3.05, 40.0], 2.0)

    assert merged == [3.0, 10.0, 20.0, 40.0]


def test_merge_timestamps_uses_minimum_gap_without_min_duration() -> None:
    assert merge_timestamps([1.0, 1.05, 1.2], [], 0.0) == [1.0, 1.2]


def test_apply_max_slides_filter_trims_and_warns(tmp_path: Path) -> None:
    slides = _slides_on_disk(tmp_path, [1.0, 2.0, 3.0, 4.0, 5.0])
    warnings: list[str] = []

    kept = apply_max_slides_filter(slides, 3, warnings)

    assert [slide.timestamp for slide in kept] == [1.0, 2.0, 3.0]
    assert [slide.index for slide in kept] == [1, 2, 3]
    assert warnings == ["Trimmed slides to max 3"]
    assert not (tmp_path / "slide_0004.png").exists()


def test_apply_max_slides_filter_non_positive_disables_cap() -> None:
    slides = [SlideImage(index=index, timestamp=float(index), image_path="") for index in range(1, 8)]
    warnings: list[str] = []

    assert apply_max_slides_filter(slides, 0, warnings) == slides
    assert warnings == []


def test_apply_min_duration_filter_spacing_and_cleanup(tmp_path: Path) -> None:
    slides = _slides_on_disk(tmp_path, [0.0, 1.0, 2.5, 3.0, 6.0])
    warnings: list[str] = []

    kept = apply_min_duration_filter(slides, 2.0, warnings)

    assert [slide.timestamp for slide in kept] == [0.0, 2.5, 6.0]
    assert [slide.index for slide in kept] == [1, 2, 3]
    for earlier, later in zip(kept, kept[1:]):
        assert later.timestamp - earlier.timestamp >= 2.0
    assert warnings == ["Filtered 2 slides by min duration"]
    assert not (tmp_path / "slide_0002.png").exists()
    assert not (tmp_path / "slide_0004.png").exists()
    assert (tmp_path / "slide_0003.png").exists()


def test_apply_min_duration_filter_zero_keeps_everything(tmp_path: Path) -> None:
    slides = _slides_on_disk(tmp_path, [0.0, 0.1, 0.2])
    warnings: list[str] = []

    assert len(apply_min_duration_filter(slides, 0.0, warnings)) == 3
    assert warnings == []


def test_rename_slides_with_timestamps(tmp_path: Path) -> None:
    slides = _slides_on_disk(tmp_path, [4.0, 63.5])

    renamed = rename_slides_with_timestamps(slides, tmp_path)

    assert [Path(slide.image_path).name for slide in renamed] == [
        "slide_0001_4.00s.png",
        "slide_0002_63.50s.png",
    ]
    assert all(Path(slide.image_path).exists() for slide in renamed)
    assert not (tmp_path / "slide_0001.png").exists()

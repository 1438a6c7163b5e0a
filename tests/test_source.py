from __future__ import annotations

import re
from pathlib import Path

import pytest

from slideharvest.ingest.source import (
    build_direct_source_id,
    extract_youtube_video_id,
    is_direct_media_url,
    resolve_slide_source,
)


@pytest.mark.parametrize(
    "url",
    [
        "https://www.youtube.com/watch?v=dQw4w9WgXcQ&t=42s",
        "https://youtu.be/dQw4w9WgXcQ?si=abc",
        "youtube.com/shorts/dQw4w9WgXcQ",
        "https://www.youtube.com/embed/dQw4w9WgXcQ",
        "https://m.youtube.com/live/dQw4w9WgXcQ",
    ],
)
def test_extract_youtube_video_id_variants(url: str) -> None:
    assert extract_youtube_video_id(url) == "dQw4w9WgXcQ"


@pytest.mark.parametrize(
    "url",
    [
        "https://www.youtube.com/watch?v=short",
        "https://www.youtube.com/channel/UC123",
        "https://vimeo.com/123456",
    ],
)
def test_extract_youtube_video_id_rejects_non_videos(url: str) -> None:
    assert extract_youtube_video_id(url) is None


def test_resolve_slide_source_normalizes_remote_url() -> None:
    source = resolve_slide_source("https://youtu.be/dQw4w9WgXcQ")

    assert source is not None
    assert source.kind == "remote"
    assert source.source_id == "dQw4w9WgXcQ"
    assert source.url == "https://www.youtube.com/watch?v=dQw4w9WgXcQ"


def test_resolve_slide_source_direct_media_url() -> None:
    source = resolve_slide_source("https://cdn.example.com/talks/Keynote%20Day-1.MP4?sig=abc")

    assert source is not None
    assert source.kind == "direct"
    assert re.fullmatch(r"keynote-20day-1-[0-9a-f]{8}", source.source_id)


def test_resolve_slide_source_local_file(tmp_path: Path) -> None:
    video = tmp_path / "lecture"
    video.write_bytes(b"data")

    source = resolve_slide_source(str(video))

    assert source is not None
    assert source.kind == "direct"
    assert source.source_id.startswith("lecture-")


def test_resolve_slide_source_rejects_unknown() -> None:
    assert resolve_slide_source("https://example.com/blog/post") is None
    assert resolve_slide_source("   ") is None


def test_build_direct_source_id_is_stable_and_falls_back() -> None:
    first = build_direct_source_id("https://cdn.example.com/a/talk.mp4")

    assert first == build_direct_source_id("https://cdn.example.com/a/talk.mp4")
    assert first != build_direct_source_id("https://cdn.example.com/b/talk.mp4")
    assert re.fullmatch(r"video-[0-9a-f]{8}", build_direct_source_id("https://cdn.example.com/"))


def test_is_direct_media_url_checks_extension() -> None:
    assert is_direct_media_url("https://cdn.example.com/stream/index.m3u8")
    assert not is_direct_media_url("https://cdn.example.com/page.html")

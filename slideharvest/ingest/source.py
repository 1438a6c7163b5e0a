from __future__ import annotations

import hashlib
import re
from pathlib import Path, PurePosixPath
from urllib.parse import parse_qs, urlparse

from slideharvest.models import Source

DIRECT_MEDIA_EXTENSIONS = {
    ".mp4",
    ".m4v",
    ".mov",
    ".webm",
    ".mkv",
    ".avi",
    ".flv",
    ".mpg",
    ".mpeg",
    ".ts",
    ".m3u8",
}
YOUTUBE_HOSTS = {"youtube.com", "www.youtube.com", "m.youtube.com", "music.youtube.com", "youtube-nocookie.com", "www.youtube-nocookie.com"}
YOUTUBE_ID_PATTERN = re.compile(r"^[A-Za-z0-9_-]{11}$")
YOUTUBE_PATH_PREFIXES = ("shorts", "embed", "live", "v")


def resolve_slide_source(url: str) -> Source | None:
    """Classify a URL or local path as a remote-hosted or direct-file slide source."""

    candidate = url.strip()
    if not candidate:
        return None

    video_id = extract_youtube_video_id(candidate)
    if video_id:
        return Source(
            url=f"https://www.youtube.com/watch?v={video_id}",
            kind="remote",
            source_id=video_id,
        )

    if is_direct_media_url(candidate):
        return Source(url=candidate, kind="direct", source_id=build_direct_source_id(candidate))

    return None


def extract_youtube_video_id(url: str) -> str | None:
    parsed = urlparse(url if "://" in url else f"https://{url}")
    host = (parsed.hostname or "").lower()

    if host in {"youtu.be", "www.youtu.be"}:
        return _valid_video_id(parsed.path.strip("/").split("/")[0])

    if host not in YOUTUBE_HOSTS:
        return None

    if parsed.path == "/watch":
        return _valid_video_id((parse_qs(parsed.query).get("v") or [""])[0])

    parts = [part for part in parsed.path.split("/") if part]
    if len(parts) >= 2 and parts[0] in YOUTUBE_PATH_PREFIXES:
        return _valid_video_id(parts[1])
    return None


def is_direct_media_url(url: str) -> bool:
    if Path(url).expanduser().is_file():
        return True
    parsed = urlparse(url)
    return PurePosixPath(parsed.path).suffix.lower() in DIRECT_MEDIA_EXTENSIONS


def build_direct_source_id(url: str) -> str:
    """Build a stable `<slug>-<hash>` directory name for a direct media URL."""

    raw_name = PurePosixPath(urlparse(url).path).name or "video"
    base = re.sub(r"\.[a-z0-9]+$", "", raw_name, flags=re.IGNORECASE).strip() or "video"
    slug = re.sub(r"[^a-z0-9]+", "-", base.lower()).strip("-")
    digest = hashlib.sha1(url.encode("utf-8")).hexdigest()[:8]
    return f"{slug}-{digest}" if slug else f"video-{digest}"


def _valid_video_id(candidate: str) -> str | None:
    return candidate if YOUTUBE_ID_PATTERN.match(candidate) else None

from __future__ import annotations

import logging
import shutil
import tempfile
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator

from slideharvest.errors import AcquisitionError
from slideharvest.runtime.process import run_process

YTDLP_TIMEOUT_FLOOR_SECONDS = 300.0
PARTIAL_SUFFIXES = (".part", ".ytdl")

logger = logging.getLogger(__name__)


@contextmanager
def downloaded_video(
    ytdlp_path: str,
    url: str,
    *,
    video_format: str,
    timeout_seconds: float,
    cancel_event: threading.Event | None = None,
) -> Iterator[Path]:
    """Download a hosted video into a private temp dir that is removed on exit."""

    download_dir = Path(tempfile.mkdtemp(prefix="slideharvest-download-"))
    try:
        run_process(
            ytdlp_path,
            [
                "-f",
                video_format,
                "--no-playlist",
                "--no-warnings",
                "--no-progress",
                "-o",
                str(download_dir / "video.%(ext)s"),
                url,
            ],
            timeout_seconds=max(timeout_seconds, YTDLP_TIMEOUT_FLOOR_SECONDS),
            label="yt-dlp",
            cancel_event=cancel_event,
        )
        video_path = pick_downloaded_file(download_dir)
        if video_path is None:
            raise AcquisitionError("yt-dlp completed but no video file was downloaded.")
        logger.info("Downloaded %s to %s (%d bytes)", url, video_path, video_path.stat().st_size)
        yield video_path
    finally:
        shutil.rmtree(download_dir, ignore_errors=True)


def pick_downloaded_file(directory: Path) -> Path | None:
    """Return the largest finished file in `directory`."""

    candidates = [
        entry
        for entry in directory.iterdir()
        if entry.is_file() and not entry.name.endswith(PARTIAL_SUFFIXES)
    ]
    if not candidates:
        return None
    return max(candidates, key=lambda entry: entry.stat().st_size)

from __future__ import annotations

import json
import logging
from dataclasses import asdict
from pathlib import Path
from time import perf_counter
from typing import Callable, TypeVar

import typer

from slideharvest.config import Settings, SlidesSettings, load_settings
from slideharvest.detect.autotune import detect_scene_timestamps_adaptive, target_min_slides
from slideharvest.detect.scenes import build_segments, detect_scene_timestamps
from slideharvest.export.artifact import ARTIFACT_NAME
from slideharvest.ingest.probe import probe_video_info
from slideharvest.ingest.source import resolve_slide_source
from slideharvest.logging_config import configure_logging
from slideharvest.models import Source
from slideharvest.pipeline import extract_slides_for_source
from slideharvest.runtime.executor import clamp_workers
from slideharvest.runtime.tools import require_tool, resolve_tool

app = typer.Typer(help="Adaptive slide extraction from lecture and talk videos.")
config_app = typer.Typer(help="Configuration commands.")
ingest_app = typer.Typer(help="Source and media inspection commands.")
detect_app = typer.Typer(help="Scene detection commands.")

app.add_typer(config_app, name="config")
app.add_typer(ingest_app, name="ingest")
app.add_typer(detect_app, name="detect")

logger = logging.getLogger(__name__)

T = TypeVar("T")

CONFIG_OPTION_HELP = "Path to YAML configuration file."

_cli_state = {"verbose": False}


def _run_with_progress(step_index: int, total_steps: int, label: str, work: Callable[[], T]) -> T:
    typer.echo(f"[{step_index}/{total_steps}] {label}...", err=True)
    started_at = perf_counter()
    try:
        result = work()
    except Exception:
        elapsed = perf_counter() - started_at
        typer.echo(f"[{step_index}/{total_steps}] {label} failed after {elapsed:.1f}s", err=True)
        raise
    elapsed = perf_counter() - started_at
    typer.echo(f"[{step_index}/{total_steps}] {label} done in {elapsed:.1f}s", err=True)
    return result


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log at DEBUG, including external tool commands."),
) -> None:
    """Adaptive slide extraction from lecture and talk videos."""

    _cli_state["verbose"] = verbose


def _bootstrap(config_path: Path) -> Settings:
    settings = load_settings(config_path)
    configure_logging(settings.logging, verbose=_cli_state["verbose"])
    logger.debug("Loaded runtime settings from %s", config_path)
    return settings


@config_app.command("show")
def show_config(
    config_path: Path = typer.Option(
        Path("configs/default.yaml"),
        "--config",
        "-c",
        envvar="SLIDEHARVEST_CONFIG",
        help=CONFIG_OPTION_HELP,
    )
) -> None:
    """Print resolved runtime configuration."""

    settings = _bootstrap(config_path)
    typer.echo(json.dumps(settings.model_dump(mode="json"), indent=2))


@ingest_app.command("source")
def source(url: str) -> None:
    """Show how a URL or path resolves to a slide source."""

    resolved = resolve_slide_source(url)
    if resolved is None:
        typer.echo(f"Error: not a supported video source: {url}", err=True)
        raise typer.Exit(code=1)
    typer.echo(json.dumps(asdict(resolved), indent=2))


@ingest_app.command("probe")
def probe(
    video_path: str,
    config_path: Path = typer.Option(
        Path("configs/default.yaml"),
        "--config",
        "-c",
        envvar="SLIDEHARVEST_CONFIG",
        help=CONFIG_OPTION_HELP,
    ),
) -> None:
    """Probe duration and frame size of a local video."""

    settings = _bootstrap(config_path)
    warnings: list[str] = []
    info = probe_video_info(
        resolve_tool("ffprobe", settings.tools.ffprobe_path),
        video_path,
        timeout_seconds=settings.slides.timeout_seconds,
        warnings=warnings,
    )
    typer.echo(json.dumps({**asdict(info), "warnings": warnings}, indent=2))


@detect_app.command("scenes")
def scenes(
    video_path: str,
    config_path: Path = typer.Option(
        Path("configs/default.yaml"),
        "--config",
        "-c",
        envvar="SLIDEHARVEST_CONFIG",
        help=CONFIG_OPTION_HELP,
    ),
    threshold: float | None = typer.Option(None, help="Scene change threshold in (0, 1]."),
    retry: bool = typer.Option(True, help="Retry once at half the threshold when too few scenes are found."),
) -> None:
    """Run adaptive scene detection only and print the chosen timestamps."""

    settings = _bootstrap(config_path)
    try:
        slides = settings.slides
        if threshold is not None:
            slides = SlidesSettings.model_validate({**slides.model_dump(), "scene_threshold": threshold})
        ffmpeg_path = require_tool(resolve_tool("ffmpeg", settings.tools.ffmpeg_path), "install ffmpeg or add it to PATH")
        warnings: list[str] = []
        info = probe_video_info(
            resolve_tool("ffprobe", settings.tools.ffprobe_path),
            video_path,
            timeout_seconds=slides.timeout_seconds,
            warnings=warnings,
        )
        workers = clamp_workers(slides.workers)
        segments = build_segments(info.duration_seconds, workers)
        evaluation = detect_scene_timestamps_adaptive(
            lambda value: detect_scene_timestamps(
                ffmpeg_path=ffmpeg_path,
                input_path=video_path,
                threshold=value,
                timeout_seconds=slides.timeout_seconds,
                segments=segments,
                workers=workers,
            ),
            threshold=slides.scene_threshold,
            target_min_slides=target_min_slides(slides.max_slides),
            warnings=warnings,
            retry=retry,
        )
    except (RuntimeError, ValueError) as exc:
        logger.error("Scene detection failed: %s", exc)
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from exc

    typer.echo(json.dumps({**asdict(evaluation), "segments": len(segments), "warnings": warnings}, indent=2))


@app.command("run")
def run_pipeline(
    url: str,
    config_path: Path = typer.Option(
        Path("configs/default.yaml"),
        "--config",
        "-c",
        envvar="SLIDEHARVEST_CONFIG",
        help=CONFIG_OPTION_HELP,
    ),
    output_dir: Path | None = typer.Option(None, "--output-dir", "-o", help="Root directory for per-source slide folders."),
    scene_threshold: float | None = typer.Option(None, "--scene-threshold", help="Scene change threshold in (0, 1]."),
    auto_tune: bool | None = typer.Option(None, "--auto-tune/--no-auto-tune", help="Fall back to an LLM slide ROI when no scenes are found."),
    max_slides: int | None = typer.Option(None, help="Maximum number of slides to extract (<=0 disables the cap)."),
    min_duration: float | None = typer.Option(None, help="Minimum seconds between kept slides."),
    ocr: bool | None = typer.Option(None, "--ocr/--no-ocr", help="Run tesseract OCR on every slide."),
    workers: int | None = typer.Option(None, help="Parallel subprocess workers (1-16)."),
) -> None:
    """Extract slides from a hosted video URL, a direct media URL, or a local file."""

    settings = _bootstrap(config_path)
    overrides = {
        "output_dir": output_dir,
        "scene_threshold": scene_threshold,
        "auto_tune_threshold": auto_tune,
        "max_slides": max_slides,
        "min_duration_seconds": min_duration,
        "ocr": ocr,
        "workers": workers,
    }
    total_steps = 2
    try:
        slide_settings = SlidesSettings.model_validate(
            {**settings.slides.model_dump(), **{key: value for key, value in overrides.items() if value is not None}}
        )
        resolved = _run_with_progress(1, total_steps, "Resolve source", lambda: _resolve_source_or_fail(url))
        result = _run_with_progress(
            2,
            total_steps,
            "Extract slides",
            lambda: extract_slides_for_source(
                resolved,
                slide_settings,
                tools=settings.tools,
                vision=settings.vision,
            ),
        )
    except (RuntimeError, ValueError) as exc:
        logger.error("Slide extraction failed: %s", exc)
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from exc

    for warning in result.warnings:
        typer.echo(f"Warning: {warning}", err=True)

    typer.echo(
        json.dumps(
            {
                "status": "ok",
                "source_id": result.source_id,
                "source_kind": result.source_kind,
                "slides_dir": result.slides_dir,
                "slide_count": len(result.slides),
                "chosen_threshold": result.auto_tune.chosen_threshold,
                "strategy": result.auto_tune.strategy,
                "artifact": str(Path(result.slides_dir) / ARTIFACT_NAME),
            },
            indent=2,
        )
    )


def _resolve_source_or_fail(url: str) -> Source:
    resolved = resolve_slide_source(url)
    if resolved is None:
        raise ValueError(f"Not a supported video source: {url}")
    return resolved


if __name__ == "__main__":
    app()

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field

from slideharvest.models import CredentialKind, Transport, VisionAttempt

DEFAULT_CONFIG_PATH = Path("configs/default.yaml")
ENV_PREFIX = "SLIDEHARVEST_"


class SlidesSettings(BaseModel):
    output_dir: Path = Path("data/slides")
    scene_threshold: float = Field(default=0.3, gt=0.0, le=1.0)
    auto_tune_threshold: bool = True
    max_slides: int = 100
    min_duration_seconds: float = Field(default=2.0, ge=0.0)
    ocr: bool = False
    workers: int = 8
    timeout_seconds: int = 120
    ytdlp_format: str = "best[height<=360]/best"


class ToolSettings(BaseModel):
    ffmpeg_path: str | None = None
    ffprobe_path: str | None = None
    tesseract_path: str | None = None
    ytdlp_path: str | None = None


class VisionAttemptSettings(BaseModel):
    model: str
    transport: Transport = Transport.OPENAI_CHAT
    credential: CredentialKind = CredentialKind.OPENAI
    base_url: str | None = None

    def to_attempt(self) -> VisionAttempt:
        return VisionAttempt(
            model=self.model,
            transport=self.transport,
            credential=self.credential,
            base_url=self.base_url,
        )


class VisionSettings(BaseModel):
    attempts: list[VisionAttemptSettings] = Field(default_factory=list)
    timeout_seconds: int = 45
    max_retries: int = 1
    ollama_endpoint: str = "http://localhost:11434"


class LoggingSettings(BaseModel):
    level: str = "INFO"


class Settings(BaseModel):
    slides: SlidesSettings = Field(default_factory=SlidesSettings)
    tools: ToolSettings = Field(default_factory=ToolSettings)
    vision: VisionSettings = Field(default_factory=VisionSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)


def load_settings(config_path: str | Path | None = None) -> Settings:
    """Load typed settings from YAML with environment-variable overrides."""

    resolved_path = Path(
        config_path
        or os.getenv(f"{ENV_PREFIX}CONFIG")
        or DEFAULT_CONFIG_PATH
    )
    raw_config: dict[str, Any] = {}
    if resolved_path.exists():
        raw_config = yaml.safe_load(resolved_path.read_text(encoding="utf-8")) or {}
    data = Settings.model_validate(raw_config).model_dump(mode="python")

    for key, raw_value in os.environ.items():
        if not key.startswith(ENV_PREFIX):
            continue

        suffix = key[len(ENV_PREFIX) :]
        if suffix == "CONFIG":
            continue

        path = [part.lower() for part in suffix.split("__")]
        _apply_override(data, path, raw_value)

    return Settings.model_validate(data)


def _apply_override(data: dict[str, Any], path: list[str], raw_value: str) -> None:
    current: Any = data
    for segment in path[:-1]:
        if not isinstance(current, dict) or segment not in current:
            return
        current = current[segment]

    if not isinstance(current, dict):
        return

    final_key = path[-1]
    if final_key not in current:
        return

    current[final_key] = _coerce_value(raw_value, current[final_key])


def _coerce_value(raw_value: str, existing_value: Any) -> Any:
    if isinstance(existing_value, bool):
        return raw_value.lower() in {"1", "true", "yes", "on"}
    if isinstance(existing_value, int) and not isinstance(existing_value, bool):
        return int(raw_value)
    if isinstance(existing_value, float):
        return float(raw_value)
    if isinstance(existing_value, list | dict):
        return json.loads(raw_value)
    if isinstance(existing_value, Path):
        return Path(raw_value)
    return raw_value

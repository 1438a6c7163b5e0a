from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Literal

SourceKind = Literal["remote", "direct"]
TuneStrategy = Literal["adaptive", "llm-roi", "none"]


@dataclass(frozen=True, slots=True)
class Source:
    """A video to harvest slides from; `source_id` names its output directory."""

    url: str
    kind: SourceKind
    source_id: str


@dataclass(slots=True)
class VideoInfo:
    duration_seconds: float | None = None
    width: int | None = None
    height: int | None = None


@dataclass(frozen=True, slots=True)
class CropRect:
    """Pixel crop region, always inside the frame."""

    x: int
    y: int
    width: int
    height: int


@dataclass(frozen=True, slots=True)
class Roi:
    """Region of interest as fractions of the frame size."""

    x: float
    y: float
    width: float
    height: float


@dataclass(frozen=True, slots=True)
class Segment:
    start: float
    duration: float


@dataclass(slots=True)
class SceneEvaluation:
    """Outcome of one adaptive scene detection run."""

    threshold: float
    timestamps: list[float]
    confidence: float


@dataclass(slots=True)
class AutoTune:
    enabled: bool
    chosen_threshold: float
    confidence: float
    strategy: TuneStrategy
    roi: Roi | None = None


@dataclass(slots=True)
class SlideImage:
    index: int
    timestamp: float
    image_path: str
    ocr_text: str | None = None
    ocr_confidence: float | None = None


@dataclass(slots=True)
class SlideExtractionResult:
    """Final pipeline result, mirrored one-to-one by slides.json."""

    source_url: str
    source_kind: SourceKind
    source_id: str
    slides_dir: str
    scene_threshold: float
    auto_tune_threshold: bool
    auto_tune: AutoTune
    max_slides: int
    min_slide_duration: float
    ocr_requested: bool
    ocr_available: bool
    slides: list[SlideImage] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)


class Transport(str, Enum):
    OLLAMA = "ollama"
    OPENAI_CHAT = "openai-chat"
    ANTHROPIC = "anthropic"


class CredentialKind(str, Enum):
    NONE = "none"
    OPENAI = "OPENAI_API_KEY"
    ANTHROPIC = "ANTHROPIC_API_KEY"
    GEMINI = "GEMINI_API_KEY"
    OPENROUTER = "OPENROUTER_API_KEY"
    XAI = "XAI_API_KEY"
    ZAI = "Z_AI_API_KEY"


@dataclass(frozen=True, slots=True)
class VisionAttempt:
    """One vision model to ask for a slide ROI, in attempt-list order."""

    model: str
    transport: Transport = Transport.OPENAI_CHAT
    credential: CredentialKind = CredentialKind.OPENAI
    base_url: str | None = None

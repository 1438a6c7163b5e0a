from __future__ import annotations


class SlideExtractionError(RuntimeError):
    """Base class for fatal slide pipeline errors."""


class MissingToolError(SlideExtractionError):
    def __init__(self, tool: str, hint: str | None = None) -> None:
        self.tool = tool
        message = f"Missing {tool}"
        if hint:
            message = f"{message} ({hint})"
        super().__init__(f"{message}.")


class ProcessTimeoutError(SlideExtractionError):
    def __init__(self, tool: str, timeout_seconds: float) -> None:
        self.tool = tool
        self.timeout_seconds = timeout_seconds
        super().__init__(f"{tool} timed out after {timeout_seconds:g}s")


class ProcessFailedError(SlideExtractionError):
    def __init__(self, tool: str, returncode: int, stderr_tail: str = "") -> None:
        self.tool = tool
        self.returncode = returncode
        self.stderr_tail = stderr_tail
        suffix = f": {stderr_tail.strip()}" if stderr_tail.strip() else ""
        super().__init__(f"{tool} exited with code {returncode}{suffix}")


class NoCandidatesError(SlideExtractionError):
    def __init__(self, threshold: float) -> None:
        self.threshold = threshold
        super().__init__(
            f"No slides extracted at scene threshold {threshold}; try lowering --scene-threshold."
        )


class AcquisitionError(SlideExtractionError):
    """The video could not be downloaded to a local file."""


class PipelineCancelledError(SlideExtractionError):
    def __init__(self, label: str) -> None:
        self.label = label
        super().__init__(f"{label} cancelled")

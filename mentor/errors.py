"""Error taxonomy for the analysis engine."""
from __future__ import annotations

PREVIEW_LIMIT = 500


def preview(text: str, limit: int = PREVIEW_LIMIT) -> str:
    """Truncate text for log output."""
    if len(text) <= limit:
        return text
    return text[:limit] + "..."


class MentorError(Exception):
    """Base class for all engine errors."""


class RequestValidationError(MentorError, ValueError):
    """The analysis request is unusable (empty image or prompt)."""


class ProviderError(MentorError):
    """Network or HTTP failure from the LLM, search or article backend."""

    def __init__(self, message: str, *, provider: str = ""):
        super().__init__(message)
        self.provider = provider


class DeserializationError(MentorError):
    """Model output was located but does not match the recommendation shape."""

    def __init__(self, message: str, *, text: str = "", extraction_method: str = ""):
        super().__init__(message)
        self.preview = preview(text)
        self.extraction_method = extraction_method


class PartialResearchFailure(MentorError):
    """A single research source could not be used. Never leaves the research loop."""

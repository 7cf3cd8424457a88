from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any

from mentor.errors import RequestValidationError
from mentor.tools.image_utils import detect_mime_type


class ResearchMode(str, Enum):
    SUMMARY_ONLY = "summary_only"
    FULL_ARTICLE = "full_article"


@dataclass(frozen=True)
class AnalysisRequest:
    """A screenshot plus the user's question. Owned by a single analysis call."""

    image: bytes
    prompt: str
    mime_type: str = "image/png"
    game_name: str | None = None

    def validate(self) -> None:
        if not self.image:
            raise RequestValidationError("Image data cannot be empty")
        if not self.prompt or not self.prompt.strip():
            raise RequestValidationError("Prompt cannot be empty")
        if not self.mime_type.lower().startswith("image/"):
            raise RequestValidationError(
                f"MIME type must be an image type (e.g. 'image/png'), got '{self.mime_type}'"
            )

    @classmethod
    def from_file(
        cls,
        path: str | Path,
        prompt: str,
        game_name: str | None = None,
    ) -> "AnalysisRequest":
        path = Path(path)
        data = path.read_bytes()
        return cls(
            image=data,
            prompt=prompt,
            mime_type=detect_mime_type(data, path),
            game_name=game_name,
        )


@dataclass
class SearchResult:
    title: str
    url: str
    content: str
    score: float = 0.0


@dataclass
class ResearchResult:
    title: str
    url: str
    content: str

    def to_dict(self) -> dict[str, Any]:
        return {"title": self.title, "url": self.url, "content": self.content}

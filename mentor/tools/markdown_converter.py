from __future__ import annotations

import asyncio
import re
from io import BytesIO
from typing import Protocol

from loguru import logger
from markitdown import MarkItDown
from pydantic import BaseModel, Field

from mentor.config import settings
from mentor.llm_client import LLMClient, conversion_options
from mentor.services.prompt_store import render_prompt
from mentor.tools.web_utils import collapse_blank_lines


class MarkdownConverter(Protocol):
    async def convert(self, text: str) -> str: ...


class MarkdownResponse(BaseModel):
    markdown: str = Field(default="", description="The article content converted to clean Markdown.")


def _tidy(markdown: str) -> str:
    markdown = collapse_blank_lines(markdown)
    markdown = re.sub(r"[ \t]+\n", "\n", markdown)
    return markdown.strip()


class MarkItDownConverter:
    """HTML to Markdown through markitdown, off the event loop."""

    def __init__(self) -> None:
        self._converter = MarkItDown()

    def _convert_sync(self, html: str) -> str:
        result = self._converter.convert_stream(BytesIO(html.encode("utf-8")), file_extension=".html")
        return result.text_content or ""

    async def convert(self, text: str) -> str:
        if not text or not text.strip():
            raise ValueError("HTML content cannot be empty")
        markdown = await asyncio.to_thread(self._convert_sync, text)
        logger.debug(f"markitdown conversion: {len(text)} -> {len(markdown)} chars")
        return _tidy(markdown)


class LlmMarkdownConverter:
    """HTML to Markdown by asking the model for a ``{"markdown": ...}`` object."""

    def __init__(self, llm: LLMClient):
        self._llm = llm

    async def convert(self, text: str) -> str:
        if not text or not text.strip():
            raise ValueError("HTML content cannot be empty")
        logger.info(f"Starting HTML to Markdown conversion. Input length: {len(text)} characters")
        response = await self._llm.call_structured(
            system=render_prompt("conversion.system_prompt"),
            messages=[{"role": "user", "content": render_prompt("conversion.user_prompt", html=text)}],
            response_model=MarkdownResponse,
            options=conversion_options(),
            caller="markdown_converter",
        )
        return _tidy(response.markdown)


def get_converter(kind: str | None = None, llm: LLMClient | None = None) -> MarkdownConverter:
    kind = (kind or settings.markdown_converter).lower().strip()
    if kind == "markitdown":
        return MarkItDownConverter()
    if kind == "llm":
        if llm is None:
            raise ValueError("The llm markdown converter needs an LLM client")
        return LlmMarkdownConverter(llm)
    raise ValueError(f"Unsupported MARKDOWN_CONVERTER: {kind}")

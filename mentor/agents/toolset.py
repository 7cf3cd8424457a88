from __future__ import annotations

import asyncio
import json
from typing import Any

from loguru import logger

from mentor.models.analysis import ResearchResult
from mentor.models.progress import LLM_ANALYSIS, WEB_SEARCH, Job, JobStatus, ProgressSink, ProgressTracker, article_tag
from mentor.services import logger as log_service
from mentor.services.cancellation import cancellable
from mentor.tools.article_reader import ArticleReader
from mentor.tools.markdown_converter import MarkdownConverter
from mentor.tools.search_provider import WebSearch, format_as_summary, results_to_dicts

SUMMARY_MAX_RESULTS = 10
STRUCTURED_MAX_RESULTS = 5

TOOL_DEFINITIONS: list[dict[str, Any]] = [
    {
        "name": "web_search_summary",
        "description": (
            "Search the web and return a condensed summary of up to 10 results. "
            "Use for a quick overview of a topic."
        ),
        "input_schema": {
            "type": "object",
            "properties": {
                "query": {"type": "string", "description": "The search query"},
            },
            "required": ["query"],
        },
    },
    {
        "name": "web_search_structured",
        "description": (
            "Search the web and return up to 5 results as JSON with title, url, content and score. "
            "Use when you need links to cite."
        ),
        "input_schema": {
            "type": "object",
            "properties": {
                "query": {"type": "string", "description": "The search query"},
            },
            "required": ["query"],
        },
    },
    {
        "name": "read_article",
        "description": "Read the main content of a web page, returned as Markdown.",
        "input_schema": {
            "type": "object",
            "properties": {
                "url": {"type": "string", "description": "Absolute http(s) URL of the article"},
            },
            "required": ["url"],
        },
    },
]


class ResearchToolset:
    """The model-callable research tools for one analysis call.

    Tool work shows up in the caller's tracker ahead of ``llm-analysis``.
    Structured search hits are collected for the final recommendation.
    """

    tools = TOOL_DEFINITIONS

    def __init__(
        self,
        search: WebSearch,
        article_reader: ArticleReader,
        converter: MarkdownConverter | None = None,
        *,
        game_name: str | None = None,
        tracker: ProgressTracker | None = None,
        progress_sink: ProgressSink | None = None,
        cancel: asyncio.Event | None = None,
    ):
        self.search = search
        self.article_reader = article_reader
        self.converter = converter
        self.game_name = game_name
        self.tracker = tracker or ProgressTracker()
        self.progress_sink = progress_sink
        self.cancel = cancel
        self.search_results: list[ResearchResult] = []
        self._searches = 0
        self._searches_done = 0
        self._search_failures = 0
        self._articles = 0

    def _track(self, tag: str, name: str, status: JobStatus, percent: float) -> None:
        job = self.tracker.get(tag)
        if job is None:
            self.tracker.insert_before(LLM_ANALYSIS, Job(tag=tag, name=name, status=status, percent=percent))
        else:
            self.tracker.upsert_job(tag, status, percent)
            self.tracker.rename(tag, name)
        self.tracker.snapshot(self.progress_sink)

    def _search_percent(self) -> float:
        # Approaches 100 as searches finish; only finish() reaches it.
        return 100.0 * self._searches_done / (self._searches_done + 1)

    async def _run_search(self, query: str, max_results: int):
        self._searches += 1
        label = f"Web search {self._searches}: {query}"
        self._track(WEB_SEARCH, label, JobStatus.IN_PROGRESS, self._search_percent())
        try:
            results = await cancellable(
                self.search.search(query, game_name=self.game_name, max_results=max_results),
                self.cancel,
            )
        except asyncio.CancelledError:
            raise
        except Exception:
            self._searches_done += 1
            self._search_failures += 1
            failed = f"Web search {self._searches} failed: {query}"
            self._track(WEB_SEARCH, failed, JobStatus.IN_PROGRESS, self._search_percent())
            raise
        self._searches_done += 1
        self._track(WEB_SEARCH, label, JobStatus.IN_PROGRESS, self._search_percent())
        return list(results)[:max_results]

    def finish(self) -> None:
        """Close the shared search job once the model stops calling tools."""
        if self.tracker.get(WEB_SEARCH) is None:
            return
        status = JobStatus.FAILED if self._search_failures == self._searches else JobStatus.COMPLETED
        suffix = "" if self._searches == 1 else "es"
        self._track(WEB_SEARCH, f"Searched web ({self._searches} search{suffix})", status, 100)

    async def web_search_summary(self, query: str) -> str:
        results = await self._run_search(query, SUMMARY_MAX_RESULTS)
        return format_as_summary(results) or "No results found."

    async def web_search_structured(self, query: str) -> str:
        results = await self._run_search(query, STRUCTURED_MAX_RESULTS)
        self.search_results.extend(ResearchResult(title=r.title, url=r.url, content=r.content) for r in results)
        return json.dumps(results_to_dicts(results))

    async def read_article(self, url: str) -> str:
        tag = article_tag(self._articles)
        self._articles += 1
        self._track(tag, f"Reading article: {url}", JobStatus.IN_PROGRESS, 0)
        try:
            content = await cancellable(self.article_reader.read(url), self.cancel)
            if self.converter is not None:
                self._track(tag, f"Converting article: {url}", JobStatus.IN_PROGRESS, 50)
                content = await cancellable(self.converter.convert(content), self.cancel)
        except asyncio.CancelledError:
            raise
        except Exception:
            self._track(tag, f"Error with article: {url}", JobStatus.FAILED, 100)
            raise
        self._track(tag, f"Read article: {url}", JobStatus.COMPLETED, 100)
        return content

    async def handle_tool_call(self, tool_name: str, tool_input: dict[str, Any]) -> str:
        log_service.log_analysis_step("tool_call", "started", {"tool": tool_name, "input": tool_input})
        if tool_name == "web_search_summary":
            return await self.web_search_summary(str(tool_input.get("query", "")))
        if tool_name == "web_search_structured":
            return await self.web_search_structured(str(tool_input.get("query", "")))
        if tool_name == "read_article":
            return await self.read_article(str(tool_input.get("url", "")))
        logger.warning(f"Model requested unknown tool: {tool_name}")
        raise ValueError(f"Unknown tool: {tool_name}")

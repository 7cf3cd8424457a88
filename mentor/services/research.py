"""Search, then turn each hit into a ResearchResult one at a time.

A failure on one hit marks only that hit's job Failed; the batch carries on.
The search call itself is not protected: if it fails, research fails.
"""
from __future__ import annotations

import asyncio
from dataclasses import dataclass, field

from loguru import logger

from mentor.errors import PartialResearchFailure
from mentor.models.analysis import AnalysisRequest, ResearchMode, ResearchResult, SearchResult
from mentor.models.progress import WEB_SEARCH, Job, JobStatus, ProgressSink, ProgressTracker, article_tag
from mentor.services import logger as log_service
from mentor.services.cancellation import cancellable
from mentor.services.prompt_store import render_prompt
from mentor.tools.article_reader import ArticleReader
from mentor.tools.markdown_converter import MarkdownConverter
from mentor.tools.search_provider import WebSearch

DEFAULT_MAX_RESULTS = 8


@dataclass
class ResearchOutcome:
    results: list[ResearchResult] = field(default_factory=list)
    tracker: ProgressTracker = field(default_factory=ProgressTracker)


class ResearchPipeline:
    def __init__(
        self,
        search: WebSearch,
        article_reader: ArticleReader | None = None,
        converter: MarkdownConverter | None = None,
        *,
        max_results: int = DEFAULT_MAX_RESULTS,
    ):
        self.search = search
        self.article_reader = article_reader
        self.converter = converter
        self.max_results = max_results

    def build_query(self, request: AnalysisRequest) -> str:
        return render_prompt(
            "research.search_query",
            game_name=request.game_name or "",
            prompt=request.prompt,
        )

    async def perform_research(
        self,
        request: AnalysisRequest,
        mode: ResearchMode = ResearchMode.SUMMARY_ONLY,
        progress_sink: ProgressSink | None = None,
        cancel: asyncio.Event | None = None,
    ) -> ResearchOutcome:
        if mode is ResearchMode.FULL_ARTICLE and (self.article_reader is None or self.converter is None):
            raise ValueError("Full-article research needs an article reader and a markdown converter")

        outcome = ResearchOutcome()
        tracker = outcome.tracker
        tracker.add_job(Job(tag=WEB_SEARCH, name="Searching web", status=JobStatus.IN_PROGRESS, percent=0))
        tracker.snapshot(progress_sink)

        query = self.build_query(request)
        log_service.log_analysis_step("research_search", "started", {"query": query, "mode": mode.value})
        try:
            hits = await cancellable(
                self.search.search(query, game_name=request.game_name, max_results=self.max_results),
                cancel,
            )
        except asyncio.CancelledError:
            raise
        except Exception:
            tracker.upsert_job(WEB_SEARCH, JobStatus.FAILED, 100)
            tracker.snapshot(progress_sink)
            raise
        hits = list(hits)[: self.max_results]

        tracker.upsert_job(WEB_SEARCH, JobStatus.COMPLETED, 100)
        tracker.rename(WEB_SEARCH, f"Searched web ({len(hits)} results)")
        tracker.snapshot(progress_sink)

        noun = "summary" if mode is ResearchMode.SUMMARY_ONLY else "article"
        for i, hit in enumerate(hits):
            tracker.add_job(Job(tag=article_tag(i), name=f"Processing {noun} {i + 1}: {hit.title}"))
        tracker.snapshot(progress_sink)

        for i, hit in enumerate(hits):
            tag = article_tag(i)
            tracker.upsert_job(tag, JobStatus.IN_PROGRESS, 0)
            tracker.snapshot(progress_sink)
            try:
                if mode is ResearchMode.SUMMARY_ONLY:
                    result = self._use_summary(i, hit, tracker)
                else:
                    result = await self._read_article(i, hit, tracker, progress_sink, cancel)
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                logger.warning(f"Research source {i + 1} ({hit.url}) failed: {exc}")
                tracker.upsert_job(tag, JobStatus.FAILED, 100)
                if not isinstance(exc, PartialResearchFailure):
                    tracker.rename(tag, f"Error with {noun} {i + 1}: {hit.title}")
                tracker.snapshot(progress_sink)
                continue

            outcome.results.append(result)
            tracker.upsert_job(tag, JobStatus.COMPLETED, 100)
            tracker.snapshot(progress_sink)

        log_service.log_analysis_step(
            "research_search",
            "completed",
            {"hits": len(hits), "results": len(outcome.results)},
        )
        return outcome

    def _use_summary(self, index: int, hit: SearchResult, tracker: ProgressTracker) -> ResearchResult:
        tag = article_tag(index)
        if not hit.content or not hit.content.strip():
            tracker.rename(tag, f"No content for summary {index + 1}: {hit.title}")
            raise PartialResearchFailure(f"Search result {hit.url} has no snippet")
        tracker.rename(tag, f"Processed summary {index + 1}: {hit.title}")
        return ResearchResult(title=hit.title, url=hit.url, content=hit.content)

    async def _read_article(
        self,
        index: int,
        hit: SearchResult,
        tracker: ProgressTracker,
        progress_sink: ProgressSink | None,
        cancel: asyncio.Event | None,
    ) -> ResearchResult:
        tag = article_tag(index)
        tracker.rename(tag, f"Reading article {index + 1}: {hit.title}")
        tracker.snapshot(progress_sink)
        html = await cancellable(self.article_reader.read(hit.url), cancel)

        tracker.upsert_job(tag, JobStatus.IN_PROGRESS, 50)
        tracker.rename(tag, f"Converting article {index + 1}: {hit.title}")
        tracker.snapshot(progress_sink)
        markdown = await cancellable(self.converter.convert(html), cancel)

        tracker.rename(tag, f"Converted article {index + 1}: {hit.title}")
        return ResearchResult(title=hit.title, url=hit.url, content=markdown)

from __future__ import annotations

import asyncio
from typing import Any

from loguru import logger

from mentor.agents.pipeline import AnalysisPipeline, StreamSink
from mentor.agents.strategies import ProviderCapabilities, StrategyPlan, resolve_plan
from mentor.llm_client import LLMClient
from mentor.llm_client import get_client as get_llm_client
from mentor.models.analysis import AnalysisRequest, ResearchMode
from mentor.models.progress import ProgressSink
from mentor.models.recommendation import Recommendation
from mentor.services.research import ResearchPipeline
from mentor.tools.article_reader import ArticleReader, HttpArticleReader
from mentor.tools.markdown_converter import MarkdownConverter, get_converter
from mentor.tools.search_provider import ConfiguredWebSearch, WebSearch


class AnalysisOrchestrator:
    """Public entry point: picks a strategy plan and runs the pipeline for it.

    Flow:
      1. Validate the request (no network before this)
      2. Resolve the plan from the configured strategy or the decision table
      3. Run the pipeline, reporting progress snapshots and streamed text
    """

    def __init__(
        self,
        llm: LLMClient,
        *,
        capabilities: ProviderCapabilities | None = None,
        strategy: str = "auto",
        search: WebSearch | None = None,
        article_reader: ArticleReader | None = None,
        converter: MarkdownConverter | None = None,
        research_mode: ResearchMode = ResearchMode.SUMMARY_ONLY,
        research_max_results: int = 8,
        max_turns: int = 8,
        max_output_tokens: int = 8000,
    ):
        self.llm = llm
        self.capabilities = capabilities or ProviderCapabilities()
        self.strategy = strategy
        self.search = search
        self.article_reader = article_reader
        self.converter = converter
        self.research_mode = research_mode
        self.research_max_results = research_max_results
        self.max_turns = max_turns
        self.max_output_tokens = max_output_tokens

    def plan(self, strategy: str | None = None) -> StrategyPlan:
        return resolve_plan(strategy or self.strategy, self.capabilities)

    def build_pipeline(self, plan: StrategyPlan) -> AnalysisPipeline:
        research = None
        if plan.upfront_research and self.search is not None:
            research = ResearchPipeline(
                self.search,
                self.article_reader,
                self.converter,
                max_results=self.research_max_results,
            )
        return AnalysisPipeline(
            self.llm,
            plan,
            research=research,
            research_mode=self.research_mode,
            search=self.search,
            article_reader=self.article_reader,
            converter=self.converter,
            max_turns=self.max_turns,
            max_output_tokens=self.max_output_tokens,
        )

    async def analyze(
        self,
        request: AnalysisRequest,
        *,
        on_progress: ProgressSink | None = None,
        on_stream: StreamSink | None = None,
        cancel: asyncio.Event | None = None,
        strategy: str | None = None,
    ) -> Recommendation:
        request.validate()
        plan = self.plan(strategy)
        logger.info(f"Analyzing with strategy '{plan.kind.value}' via {self.llm.provider_name}")
        pipeline = self.build_pipeline(plan)
        return await pipeline.analyze(request, on_progress=on_progress, on_stream=on_stream, cancel=cancel)


def build_orchestrator(settings: Any, *, llm: LLMClient | None = None) -> AnalysisOrchestrator:
    """Wire real collaborators from settings."""
    llm = llm or get_llm_client()
    return AnalysisOrchestrator(
        llm,
        capabilities=ProviderCapabilities.from_settings(settings),
        strategy=settings.analysis_strategy,
        search=ConfiguredWebSearch(
            provider=settings.search_provider,
            fallback_to_tavily=settings.search_fallback_to_tavily,
        ),
        article_reader=HttpArticleReader(
            timeout=settings.article_timeout_seconds,
            max_chars=settings.article_max_chars,
        ),
        converter=get_converter(settings.markdown_converter, llm=llm),
        research_mode=ResearchMode(settings.research_mode.lower().strip()),
        research_max_results=settings.research_max_results,
        max_turns=settings.autonomous_max_turns,
        max_output_tokens=settings.llm_max_output_tokens,
    )

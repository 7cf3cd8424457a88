"""One configurable analysis pipeline covering every strategy.

The pipeline itself holds only collaborators and the plan. Everything that
belongs to a single call lives in ``AnalysisContext`` so one pipeline can
serve overlapping calls.
"""
from __future__ import annotations

import asyncio
import json
import time
from dataclasses import dataclass, field
from typing import Any, Callable

from loguru import logger

from mentor.agents.strategies import ResponseStage, StrategyPlan
from mentor.agents.toolset import ResearchToolset
from mentor.llm_client import ChatOptions, LLMClient, MessageResponse, ToolMode
from mentor.models.analysis import AnalysisRequest, ResearchMode, ResearchResult
from mentor.models.progress import LLM_ANALYSIS, Job, JobStatus, ProgressSink, ProgressSnapshot, ProgressTracker
from mentor.models.recommendation import LLMResponse, Recommendation, from_llm_response, response_json_schema
from mentor.services import logger as log_service
from mentor.services.cancellation import cancellable, iterate_cancellable, raise_if_cancelled
from mentor.services.extraction import parse_recommendation_text
from mentor.services.prompt_store import render_prompt
from mentor.services.research import ResearchPipeline
from mentor.tools.article_reader import ArticleReader
from mentor.tools.image_utils import convert_to_png
from mentor.tools.markdown_converter import MarkdownConverter
from mentor.tools.search_provider import WebSearch

StreamSink = Callable[[str], None]

LLM_ANALYSIS_NAME = "Analyzing with LLM"


@dataclass
class AnalysisContext:
    request: AnalysisRequest
    tracker: ProgressTracker
    progress_sink: ProgressSink | None = None
    stream_sink: StreamSink | None = None
    cancel: asyncio.Event | None = None
    image: bytes = b""
    research_results: list[ResearchResult] = field(default_factory=list)
    search_results: list[ResearchResult] | None = None

    def report(self) -> ProgressSnapshot:
        return self.tracker.snapshot(self.progress_sink)


class AnalysisPipeline:
    def __init__(
        self,
        llm: LLMClient,
        plan: StrategyPlan,
        *,
        research: ResearchPipeline | None = None,
        research_mode: ResearchMode = ResearchMode.SUMMARY_ONLY,
        search: WebSearch | None = None,
        article_reader: ArticleReader | None = None,
        converter: MarkdownConverter | None = None,
        max_turns: int = 8,
        max_output_tokens: int = 8000,
        provider_name: str | None = None,
    ):
        if plan.upfront_research and research is None:
            raise ValueError(f"Strategy '{plan.kind.value}' needs a research pipeline")
        if plan.local_tools and (search is None or article_reader is None):
            raise ValueError(f"Strategy '{plan.kind.value}' needs a web search and an article reader")
        if max_turns < 1:
            raise ValueError("max_turns must be at least 1")
        if plan.local_tools and max_turns < 2:
            # Turn 0 must call a tool and the last turn may not, so one turn cannot do both.
            raise ValueError(f"Strategy '{plan.kind.value}' needs max_turns of at least 2")
        self.llm = llm
        self.plan = plan
        self.research = research
        self.research_mode = research_mode
        self.search = search
        self.article_reader = article_reader
        self.converter = converter
        self.max_turns = max_turns
        self.max_output_tokens = max_output_tokens
        self.provider_name = provider_name or llm.provider_name

    # --- prompt assembly ---

    def build_system_prompt(self, ctx: AnalysisContext) -> str:
        game = ctx.request.game_name
        game_clause = render_prompt("analysis.game_clause", game_name=game) if game else ""
        parts = [render_prompt("analysis.system_prompt", game_clause=game_clause)]
        parts.extend(render_prompt(key) for key in self.plan.prompt_additions)
        if ctx.research_results:
            parts.append(render_prompt("analysis.research_intro"))
            parts.extend(
                render_prompt("analysis.research_entry", title=r.title, url=r.url, content=r.content)
                for r in ctx.research_results
            )
        return "\n\n".join(parts)

    def build_messages(self, ctx: AnalysisContext) -> list[dict[str, Any]]:
        text = ctx.request.prompt
        if self.plan.extracts_findings:
            schema = json.dumps(response_json_schema(), indent=2)
            text = f"{text}\n\n{render_prompt('analysis.schema_instruction', schema=schema)}"
        return [
            {
                "role": "user",
                "content": [
                    {"type": "text", "text": text},
                    {"type": "image", "media_type": "image/png", "data": ctx.image},
                ],
            }
        ]

    def _options(self, **overrides: Any) -> ChatOptions:
        return ChatOptions(max_output_tokens=self.max_output_tokens, **overrides)

    # --- entry point ---

    async def analyze(
        self,
        request: AnalysisRequest,
        *,
        on_progress: ProgressSink | None = None,
        on_stream: StreamSink | None = None,
        cancel: asyncio.Event | None = None,
    ) -> Recommendation:
        request.validate()
        raise_if_cancelled(cancel)
        image = convert_to_png(request.image, request.mime_type)

        ctx = AnalysisContext(
            request=request,
            image=image,
            tracker=ProgressTracker([Job(tag=LLM_ANALYSIS, name=LLM_ANALYSIS_NAME)]),
            progress_sink=on_progress,
            stream_sink=on_stream,
            cancel=cancel,
        )
        log_service.log_analysis_step(
            "strategy",
            "started",
            {"strategy": self.plan.kind.value, "stage": self.plan.stage.value, "game": request.game_name},
        )
        ctx.report()

        t0 = time.monotonic()
        try:
            if self.plan.upfront_research:
                await self._run_upfront_research(ctx)

            ctx.tracker.upsert_job(LLM_ANALYSIS, JobStatus.IN_PROGRESS, 0)
            ctx.report()

            system = self.build_system_prompt(ctx)
            messages = self.build_messages(ctx)
            if self.plan.local_tools:
                recommendation = await self._run_tool_loop(ctx, system, messages)
            elif self.plan.stage is ResponseStage.STRUCTURED:
                recommendation = await self._run_structured(ctx, system, messages)
            else:
                recommendation = await self._run_streaming(ctx, system, messages)
        except asyncio.CancelledError:
            log_service.log_analysis_step("strategy", "cancelled", {"strategy": self.plan.kind.value})
            raise
        except Exception as exc:
            logger.error(f"Analysis with strategy '{self.plan.kind.value}' failed: {exc}")
            log_service.log_analysis_step("strategy", "failed", {"strategy": self.plan.kind.value, "error": str(exc)})
            raise
        finally:
            ctx.tracker.upsert_job(LLM_ANALYSIS, JobStatus.COMPLETED, 100)
            ctx.report()

        log_service.log_analysis_step(
            "strategy",
            "completed",
            {
                "strategy": self.plan.kind.value,
                "confidence": recommendation.confidence,
                "recommendations": len(recommendation.recommendations),
                "duration_ms": int((time.monotonic() - t0) * 1000),
            },
        )
        return recommendation

    # --- stages ---

    async def _run_upfront_research(self, ctx: AnalysisContext) -> None:
        def forward(snapshot: ProgressSnapshot) -> None:
            ctx.tracker.merge(snapshot, before=LLM_ANALYSIS)
            ctx.report()

        logger.info("Performing upfront research")
        outcome = await self.research.perform_research(
            ctx.request,
            self.research_mode,
            forward,
            ctx.cancel,
        )
        ctx.tracker.merge(outcome.tracker, before=LLM_ANALYSIS)
        ctx.report()
        ctx.research_results = outcome.results
        ctx.search_results = list(outcome.results)
        logger.info(f"Research completed with {len(outcome.results)} results")

    async def _run_structured(
        self,
        ctx: AnalysisContext,
        system: str,
        messages: list[dict[str, Any]],
    ) -> Recommendation:
        response: LLMResponse = await cancellable(
            self.llm.call_structured(
                system=system,
                messages=messages,
                response_model=LLMResponse,
                options=self._options(tool_mode=self.plan.tool_mode),
                caller=self.plan.kind.value,
            ),
            ctx.cancel,
        )
        return from_llm_response(response, self.provider_name, search_results=ctx.search_results)

    async def _stream_turn(
        self,
        ctx: AnalysisContext,
        system: str,
        messages: list[dict[str, Any]],
        options: ChatOptions,
    ) -> MessageResponse:
        async with self.llm.stream(
            system=system,
            messages=messages,
            options=options,
            caller=self.plan.kind.value,
            cancel=ctx.cancel,
        ) as stream:
            async for fragment in iterate_cancellable(stream.text_stream, ctx.cancel):
                if ctx.stream_sink is not None:
                    ctx.stream_sink(fragment)
            return await stream.get_final_message()

    async def _run_streaming(
        self,
        ctx: AnalysisContext,
        system: str,
        messages: list[dict[str, Any]],
    ) -> Recommendation:
        response = await self._stream_turn(ctx, system, messages, self._options(tool_mode=self.plan.tool_mode))
        return parse_recommendation_text(response.text, self.provider_name, search_results=ctx.search_results)

    async def _run_tool_loop(
        self,
        ctx: AnalysisContext,
        system: str,
        messages: list[dict[str, Any]],
    ) -> Recommendation:
        toolset = ResearchToolset(
            self.search,
            self.article_reader,
            self.converter,
            game_name=ctx.request.game_name,
            tracker=ctx.tracker,
            progress_sink=ctx.progress_sink,
            cancel=ctx.cancel,
        )
        messages = list(messages)
        response: MessageResponse | None = None

        try:
            for turn in range(self.max_turns):
                final_turn = turn == self.max_turns - 1
                if final_turn:
                    messages.append({"role": "user", "content": render_prompt("analysis.final_turn_instruction")})
                    mode = ToolMode.NONE
                else:
                    mode = self.plan.tool_mode if turn == 0 else ToolMode.AUTO

                response = await self._stream_turn(
                    ctx,
                    system,
                    messages,
                    self._options(tools=toolset.tools, tool_mode=mode),
                )
                if not response.tool_calls or final_turn:
                    break

                messages.append({"role": "assistant", "content": response.content})
                tool_results = []
                for tool_block in response.tool_calls:
                    try:
                        result_text = await toolset.handle_tool_call(tool_block.name, tool_block.input)
                        tool_results.append({
                            "type": "tool_result",
                            "tool_use_id": tool_block.id,
                            "content": result_text,
                        })
                    except asyncio.CancelledError:
                        raise
                    except Exception as e:
                        logger.warning(f"Tool {tool_block.name} failed: {e}")
                        tool_results.append({
                            "type": "tool_result",
                            "tool_use_id": tool_block.id,
                            "content": f"Error: {e}",
                            "is_error": True,
                        })
                messages.append({"role": "user", "content": tool_results})
        finally:
            toolset.finish()

        search_results = toolset.search_results or ctx.search_results
        return parse_recommendation_text(response.text, self.provider_name, search_results=search_results)

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Protocol

from loguru import logger

from mentor.config import settings
from mentor.errors import ProviderError
from mentor.models.analysis import SearchResult
from mentor.services import logger as log_service
from mentor.tools import brave_search, tavily_search

MAX_QUERY_CHARS = 400


@dataclass
class SearchResponse:
    results: list[SearchResult]
    provider: str
    fallback_from: str | None = None
    fallback_reason: str | None = None


class WebSearch(Protocol):
    async def search(
        self,
        query: str,
        *,
        game_name: str | None = None,
        max_results: int = 5,
    ) -> list[SearchResult]: ...


def build_query(query: str, game_name: str | None = None) -> str:
    """Prefix the game name and cap the query at the provider limit."""
    text = (query or "").strip()
    if not text:
        raise ValueError("Search query cannot be empty")
    if game_name:
        text = f"{game_name}, {text}"
    return text[:MAX_QUERY_CHARS]


async def search(
    query: str,
    *,
    max_results: int = 5,
    provider: str | None = None,
    fallback_to_tavily: bool | None = None,
) -> SearchResponse:
    provider = (provider or settings.search_provider).lower().strip()
    use_fallback = settings.search_fallback_to_tavily if fallback_to_tavily is None else fallback_to_tavily

    if provider == "tavily":
        results = await tavily_search.search(query=query, max_results=max_results)
        return SearchResponse(results=results, provider="tavily")

    if provider == "brave":
        try:
            results = await brave_search.search(query=query, max_results=max_results)
            if results or not use_fallback:
                return SearchResponse(results=results, provider="brave")
            reason = "brave returned zero results"
        except ProviderError as e:
            if not use_fallback:
                raise
            reason = str(e)

        logger.warning(f"Falling back to Tavily search: {reason}")
        log_service.log_event(
            event_type="search_fallback",
            message="Brave search unavailable, using Tavily",
            fallback_from="brave",
            reason=reason,
        )
        fallback_results = await tavily_search.search(query=query, max_results=max_results)
        return SearchResponse(
            results=fallback_results,
            provider="tavily",
            fallback_from="brave",
            fallback_reason=reason,
        )

    raise ValueError(f"Unsupported SEARCH_PROVIDER: {provider}")


class ConfiguredWebSearch:
    """WebSearch backed by the configured provider (Tavily or Brave)."""

    def __init__(self, provider: str | None = None, fallback_to_tavily: bool | None = None):
        self.provider = provider
        self.fallback_to_tavily = fallback_to_tavily

    async def search(
        self,
        query: str,
        *,
        game_name: str | None = None,
        max_results: int = 5,
    ) -> list[SearchResult]:
        full_query = build_query(query, game_name)
        logger.info(f"Searching for '{full_query}' (max_results={max_results})")
        response = await search(
            full_query,
            max_results=max_results,
            provider=self.provider,
            fallback_to_tavily=self.fallback_to_tavily,
        )
        logger.info(f"Search via {response.provider} returned {len(response.results)} result(s)")
        return response.results[:max_results]


def format_as_summary(results: list[SearchResult]) -> str:
    """Render results as a compact bullet summary for the model."""
    if not results:
        return ""
    lines = [f"Found {len(results)} result(s):", ""]
    for result in results:
        if result.content and result.content.strip():
            lines.append(f"- {result.content.strip()}")
    return "\n".join(lines).rstrip()


def results_to_dicts(results: list[SearchResult]) -> list[dict[str, Any]]:
    """Convert SearchResult list to JSON-serializable dicts."""
    return [
        {"title": r.title, "url": r.url, "content": r.content, "score": r.score}
        for r in results
    ]

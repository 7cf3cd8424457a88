from __future__ import annotations

from typing import Any

import httpx
from tavily import AsyncTavilyClient
from tavily.errors import InvalidAPIKeyError, MissingAPIKeyError, UsageLimitExceededError

from mentor.config import settings
from mentor.errors import ProviderError
from mentor.models.analysis import SearchResult

TAVILY_ERRORS = (InvalidAPIKeyError, MissingAPIKeyError, UsageLimitExceededError, httpx.HTTPError)


async def search(
    query: str,
    *,
    search_depth: str = "basic",
    max_results: int = 5,
    topic: str = "general",
    api_key: str | None = None,
) -> list[SearchResult]:
    """Execute a Tavily web search and return structured results."""
    kwargs: dict[str, Any] = {
        "query": query,
        "search_depth": search_depth,
        "max_results": max_results,
        "topic": topic,
        "include_answer": False,
    }

    try:
        client = AsyncTavilyClient(api_key=api_key or settings.tavily_api_key)
        response = await client.search(**kwargs)
    except TAVILY_ERRORS as exc:
        raise ProviderError(f"Tavily search failed: {exc}", provider="tavily") from exc

    return [
        SearchResult(
            title=r.get("title", ""),
            url=r.get("url", ""),
            content=r.get("content", ""),
            score=r.get("score", 0.0) or 0.0,
        )
        for r in response.get("results", [])[:max_results]
    ]

from __future__ import annotations

from typing import Any

import httpx

from mentor.config import settings
from mentor.errors import ProviderError
from mentor.models.analysis import SearchResult

BRAVE_SEARCH_URL = "https://api.search.brave.com/res/v1/web/search"


async def search(
    query: str,
    *,
    max_results: int = 5,
    api_key: str | None = None,
    timeout: float = 30.0,
) -> list[SearchResult]:
    """Execute a Brave web search and normalize results."""
    key = api_key or settings.brave_api_key
    if not key:
        raise ProviderError("BRAVE_API_KEY is not configured", provider="brave")

    params: dict[str, Any] = {
        "q": query,
        "count": max_results,
    }

    try:
        async with httpx.AsyncClient(timeout=timeout) as client:
            response = await client.get(
                BRAVE_SEARCH_URL,
                params=params,
                headers={
                    "Accept": "application/json",
                    "X-Subscription-Token": key,
                },
            )
            response.raise_for_status()
            payload = response.json()
    except httpx.HTTPError as exc:
        raise ProviderError(f"Brave search failed: {exc}", provider="brave") from exc

    raw_results = (payload.get("web") or {}).get("results", [])[:max_results]
    total = max(len(raw_results), 1)
    mapped: list[SearchResult] = []
    for idx, item in enumerate(raw_results):
        snippets = item.get("extra_snippets", []) or []
        description = item.get("description", "") or ""
        content = description.strip() or " ".join(snippets).strip()
        # Brave does not expose a relevance score; rank order stands in for it.
        score = max(0.0, 1.0 - (idx / total))
        mapped.append(
            SearchResult(
                title=item.get("title", ""),
                url=item.get("url", ""),
                content=content,
                score=score,
            )
        )
    return mapped

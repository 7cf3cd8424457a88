from __future__ import annotations

from typing import Protocol

import httpx
from bs4 import BeautifulSoup
from loguru import logger

from mentor.config import settings
from mentor.errors import ProviderError
from mentor.tools.web_utils import is_valid_url, truncate

USER_AGENT = "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36"

UNWANTED_SELECTORS = ", ".join(
    (
        "script, style, noscript, iframe, embed, object",
        "nav, header, footer, aside, .sidebar, .navigation, .menu",
        ".advertisement, .ad, .ads, .sponsored, .promo",
        ".social-share, .share-buttons, .comments, .comment-section",
        ".related-articles, .related-posts, .newsletter, .subscribe",
    )
)

MAIN_SELECTORS = ("article", "main", "[role='main']")

CONTENT_SELECTORS = (
    ".content",
    ".article-content",
    ".post-content",
    ".entry-content",
    "#content",
    "#main-content",
    "#article-content",
    ".article-body",
    ".post-body",
)

NO_CONTENT = "Unable to retrieve article content from the provided URL."
NO_MAIN_CONTENT = "Unable to extract main content from the article."


class ArticleReader(Protocol):
    async def read(self, url: str) -> str: ...


def extract_main_html(html: str) -> str:
    """Return the inner HTML of the most likely main-content element."""
    soup = BeautifulSoup(html, "html.parser")
    for element in soup.select(UNWANTED_SELECTORS):
        element.decompose()

    for selector in MAIN_SELECTORS + CONTENT_SELECTORS:
        found = soup.select_one(selector)
        if found is not None:
            return found.decode_contents()

    body = soup.body
    return body.decode_contents() if body is not None else ""


class HttpArticleReader:
    def __init__(
        self,
        *,
        timeout: float | None = None,
        max_chars: int | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.timeout = timeout if timeout is not None else settings.article_timeout_seconds
        self.max_chars = max_chars if max_chars is not None else settings.article_max_chars
        self._transport = transport

    async def _fetch(self, url: str) -> str:
        try:
            async with httpx.AsyncClient(
                timeout=self.timeout,
                follow_redirects=True,
                headers={"User-Agent": USER_AGENT},
                transport=self._transport,
            ) as client:
                response = await client.get(url)
                response.raise_for_status()
                return response.text
        except httpx.HTTPError as exc:
            raise ProviderError(f"Failed to fetch article {url}: {exc}", provider="http") from exc

    async def read(self, url: str) -> str:
        if not is_valid_url(url):
            raise ValueError(f"Invalid article URL: {url!r}")

        logger.info(f"Fetching article content from URL: {url}")
        html = await self._fetch(url)
        if not html.strip():
            logger.warning(f"No content retrieved from URL: {url}")
            return NO_CONTENT

        main = extract_main_html(html).strip()
        if not main:
            logger.warning(f"No main content extracted from URL: {url}")
            return NO_MAIN_CONTENT

        logger.info(f"Extracted {len(main)} characters of article content from {url}")
        return truncate(main, self.max_chars)

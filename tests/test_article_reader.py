"""Tests for HTTP article reading and main-content extraction."""
import httpx
import pytest

from mentor.errors import ProviderError
from mentor.tools.article_reader import NO_CONTENT, NO_MAIN_CONTENT, HttpArticleReader, extract_main_html

PAGE = """
<html><body>
  <nav>Home | Builds</nav>
  <article>
    <h1>Steel Fiber guide</h1>
    <p>Armor mods stack.</p>
    <div class="advertisement">Buy now</div>
    <script>track()</script>
  </article>
  <footer>(c) wiki</footer>
</body></html>
"""


def reader_for(handler, **kwargs) -> HttpArticleReader:
    return HttpArticleReader(transport=httpx.MockTransport(handler), timeout=5, **kwargs)


class TestExtractMainHtml:
    def test_prefers_article_and_drops_clutter(self):
        html = extract_main_html(PAGE)

        assert "Steel Fiber guide" in html
        assert "Armor mods stack." in html
        assert "Buy now" not in html
        assert "track()" not in html
        assert "Home | Builds" not in html

    def test_content_class_is_used_without_article(self):
        html = extract_main_html('<body><div class="post-content">Body text</div><p>other</p></body>')
        assert html == "Body text"

    def test_falls_back_to_body(self):
        assert extract_main_html("<body><p>plain</p></body>") == "<p>plain</p>"

    def test_nothing_usable(self):
        assert extract_main_html("") == ""


@pytest.mark.asyncio
async def test_read_returns_main_content():
    seen = {}

    def handler(request):
        seen["agent"] = request.headers["User-Agent"]
        return httpx.Response(200, text=PAGE)

    content = await reader_for(handler).read("https://wiki.example.com/steel-fiber")

    assert "Armor mods stack." in content
    assert "footer" not in content
    assert seen["agent"].startswith("Mozilla/5.0")


@pytest.mark.asyncio
async def test_read_truncates_long_content():
    page = "<article>" + "x" * 500 + "</article>"
    content = await reader_for(lambda r: httpx.Response(200, text=page), max_chars=100).read("https://a.example")

    assert len(content) == 103
    assert content.endswith("...")


@pytest.mark.asyncio
async def test_empty_page_and_missing_main_content():
    empty = await reader_for(lambda r: httpx.Response(200, text="  ")).read("https://a.example")
    bare = await reader_for(lambda r: httpx.Response(200, text="<nav>menu</nav>")).read("https://a.example")

    assert empty == NO_CONTENT
    assert bare == NO_MAIN_CONTENT


@pytest.mark.asyncio
async def test_http_errors_become_provider_errors():
    reader = reader_for(lambda r: httpx.Response(500))

    with pytest.raises(ProviderError):
        await reader.read("https://a.example/broken")


@pytest.mark.asyncio
@pytest.mark.parametrize("url", ["", "not a url", "ftp://files.example/x", "https://"])
async def test_invalid_urls_are_rejected(url):
    with pytest.raises(ValueError):
        await reader_for(lambda r: httpx.Response(200, text=PAGE)).read(url)

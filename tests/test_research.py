"""
Tests for web research providers and fallback context
"""

import asyncio

import httpx

from news_ninja.collectors.research import (
    FALLBACK_TEMPLATE,
    ResearchSource,
    SearchProvider,
    build_research_source,
    parse_duckduckgo_html,
)
from news_ninja.config import SearchConfig


DDG_HTML = """
<html><body>
<div class="result results_links web-result">
  <h2 class="result__title"><a class="result__a" href="https://example.com/1">Solar record in Italy</a></h2>
  <a class="result__snippet" href="https://example.com/1">Italy produced a record amount of solar power this week.</a>
</div>
<div class="result results_links web-result">
  <h2 class="result__title"><a class="result__a" href="https://example.com/2">Too short</a></h2>
  <a class="result__snippet" href="https://example.com/2">tiny snippet</a>
</div>
<div class="result results_links web-result">
  <a class="result__snippet" href="https://example.com/3">A snippet that has no title element but enough text.</a>
</div>
</body></html>
"""


def google_items(n: int):
    return {"items": [
        {"title": f"Result {i}", "snippet": f"Snippet number {i} with some content."}
        for i in range(1, n + 1)
    ]}


def run_search(handler, query: str, language: str = "en", **config_values):
    """以 MockTransport 執行 ResearchSource.search"""
    config = SearchConfig(**config_values)

    async def _run():
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            source = build_research_source(config, client)
            context = await source.search(query, language)
            return context, source

    return asyncio.run(_run())


def test_parse_duckduckgo_html():
    """測試 DuckDuckGo HTML 擷取"""
    snippets = parse_duckduckgo_html(DDG_HTML)

    assert len(snippets) == 2
    assert snippets[0].title == "Solar record in Italy"
    assert snippets[0].body == "Italy produced a record amount of solar power this week."
    assert snippets[1].title == "Search Result 2"


def test_parse_duckduckgo_html_respects_limit():
    snippets = parse_duckduckgo_html(DDG_HTML, max_results=1)

    assert len(snippets) == 1


def test_google_search_success():
    seen = []

    def handler(request):
        seen.append(dict(request.url.params))
        return httpx.Response(200, json=google_items(3))

    context, source = run_search(
        handler, "solar power", "it",
        google_api_key="key", google_cx="cx"
    )

    assert not context.is_fallback
    assert context.provider == "google"
    assert len(context.snippets) == 3
    assert seen[0]["lr"] == "lang_it"
    assert seen[0]["dateRestrict"] == "w2"
    assert seen[0]["num"] == "5"
    assert source.label_for(context) == "Google Search"


def test_snippets_capped_at_five():
    def handler(request):
        return httpx.Response(200, json=google_items(8))

    context, _ = run_search(handler, "election", google_api_key="key", google_cx="cx")

    assert len(context.snippets) == 5
    assert context.text.startswith("[Source 1] Result 1\nSnippet number 1")
    assert "\n\n[Source 5] Result 5\n" in context.text
    assert "[Source 6]" not in context.text


def test_duckduckgo_used_without_google_credentials():
    hosts = []

    def handler(request):
        hosts.append(request.url.host)
        assert request.url.params["kl"] == "it-it"
        return httpx.Response(200, text=DDG_HTML)

    context, source = run_search(handler, "energia solare", "it")

    assert hosts == ["html.duckduckgo.com"]
    assert context.provider == "duckduckgo"
    assert len(context.snippets) == 2
    assert source.label_for(context) == "DuckDuckGo"


def test_google_error_falls_through_to_duckduckgo():
    def handler(request):
        if request.url.host == "www.googleapis.com":
            return httpx.Response(429, json={"error": "quota"})
        return httpx.Response(200, text=DDG_HTML)

    context, _ = run_search(handler, "solar", google_api_key="key", google_cx="cx")

    assert context.provider == "duckduckgo"


def test_all_backends_fail_returns_fallback():
    """測試所有 backend 失敗時回傳 fallback context"""
    def handler(request):
        raise httpx.ConnectError("network down", request=request)

    context, source = run_search(handler, "quantum computing", google_api_key="key", google_cx="cx")

    assert context.is_fallback
    assert len(context.snippets) == 1
    assert context.snippets[0].body == FALLBACK_TEMPLATE.format(query="quantum computing")
    assert "quantum computing" in context.text
    assert source.label_for(context) is None


def test_raising_providers_never_propagate():
    class RaisingProvider(SearchProvider):
        name = "raising"

        async def try_fetch(self, query, language):
            raise RuntimeError("boom")

    source = ResearchSource([RaisingProvider(), RaisingProvider()])
    context = asyncio.run(source.search("bitcoin price", "en"))

    assert context.is_fallback
    assert context.text.strip()


def test_empty_results_use_fallback():
    def handler(request):
        if request.url.host == "www.googleapis.com":
            return httpx.Response(200, json={})
        return httpx.Response(200, text="<html><body>No results</body></html>")

    context, _ = run_search(handler, "obscure", google_api_key="key", google_cx="cx")

    assert context.is_fallback


def test_unknown_provider_ignored():
    def handler(request):
        return httpx.Response(200, text=DDG_HTML)

    context, source = run_search(handler, "travel", providers=["bing", "duckduckgo"])

    assert [p.name for p in source.providers] == ["duckduckgo"]
    assert context.provider == "duckduckgo"

"""
Tests for trend acquisition (providers + mock fallback)
"""

import asyncio
import random

import httpx

from news_ninja.collectors.trends import (
    MockTrendProvider,
    SerpApiTrendProvider,
    TrendProvider,
    TrendSource,
    build_trend_source,
    parse_search_volume,
)
from news_ninja.config import TrendsConfig


def make_config(**overrides) -> TrendsConfig:
    """Helper to create trends config with a key"""
    values = {"serpapi_key": "test-key", "use_real_trends": True}
    values.update(overrides)
    return TrendsConfig(**values)


def fetch_trends(handler, country_code: str, count: int, config: TrendsConfig = None):
    """以 MockTransport 執行 get_trends，回傳 (topics, source)"""
    config = config or make_config()

    async def _run():
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            source = build_trend_source(config, client, rng=random.Random(7))
            topics = await source.get_trends(country_code, count)
            return topics, source

    return asyncio.run(_run())


def assert_ranked(topics, count):
    assert len(topics) == count
    assert sorted(t.rank for t in topics) == list(range(1, count + 1))
    assert len({t.keyword.lower() for t in topics}) == count


def test_parse_search_volume():
    assert parse_search_volume("200K+") == 200000
    assert parse_search_volume("1M+") == 1000000
    assert parse_search_volume("2,000+") == 2000
    assert parse_search_volume(5000) == 5000
    assert parse_search_volume(None) == 10000
    assert parse_search_volume("n/a") == 10000


def test_mock_synthesis_ranges():
    """測試 mock topics 的欄位範圍"""
    provider = MockTrendProvider(rng=random.Random(42))
    topics = provider.synthesize("IT", 6)

    assert_ranked(topics, 6)
    for topic in topics:
        assert topic.source_country == "IT"
        assert topic.is_real is False
        assert 500 <= topic.popularity_score < 1500
        assert 20 <= topic.growth_rate < 100


def test_mock_synthesis_exceeds_catalog():
    """count 超過目錄大小時仍回傳 count 筆不重複 topics"""
    provider = MockTrendProvider(rng=random.Random(1), catalog=["alpha", "beta"])
    topics = provider.synthesize("US", 5)

    assert_ranked(topics, 5)
    assert {t.keyword.split(" ")[0] for t in topics} == {"alpha", "beta"}


def test_mock_synthesis_is_shuffled():
    catalog = [f"kw{i}" for i in range(30)]
    first = MockTrendProvider(rng=random.Random(1), catalog=catalog).synthesize("US", 10)
    second = MockTrendProvider(rng=random.Random(2), catalog=catalog).synthesize("US", 10)

    assert [t.keyword for t in first] != [t.keyword for t in second]


def test_upstream_error_falls_back_to_mock():
    """測試 provider 5xx 時回退到 mock"""
    def handler(request):
        return httpx.Response(503, json={"error": "unavailable"})

    topics, source = fetch_trends(handler, "US", 4)

    assert_ranked(topics, 4)
    assert all(not t.is_real for t in topics)
    assert source.provider_calls == 1
    assert source.quota_remaining == 100
    assert source.last_provider == "mock"


def test_missing_key_skips_provider():
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(200, json={})

    topics, source = fetch_trends(handler, "FR", 3, config=make_config(serpapi_key=None))

    assert_ranked(topics, 3)
    assert calls == []
    assert source.provider_calls == 0


def test_real_trends_disabled():
    def handler(request):
        raise AssertionError("provider must not be called")

    topics, _ = fetch_trends(handler, "DE", 2, config=make_config(use_real_trends=False))

    assert_ranked(topics, 2)


def test_real_trends_mapped_and_quota_decremented():
    """測試 SerpAPI 回應映射與額度遞減"""
    seen = []

    def handler(request):
        seen.append(dict(request.url.params))
        return httpx.Response(200, json={
            "daily_searches": [
                {"query": "election results", "searches": "200K+", "increase_percentage": 300},
                {"query": "champions league", "searches": "50K+"},
                {"query": "new phone", "searches": "10K+"},
            ]
        })

    topics, source = fetch_trends(handler, "GB", 2)

    assert_ranked(topics, 2)
    assert [t.keyword for t in topics] == ["election results", "champions league"]
    assert all(t.is_real for t in topics)
    assert topics[0].popularity_score == 200000
    assert topics[0].growth_rate == 300
    assert 50 <= topics[1].growth_rate < 150

    assert seen[0]["engine"] == "google_trends_trending_now"
    assert seen[0]["geo"] == "GB"
    assert seen[0]["api_key"] == "test-key"
    assert source.quota_remaining == 99
    assert source.label_for(topics[0]) == "SerpAPI Google Trends"


def test_short_real_result_is_padded_with_mock():
    def handler(request):
        return httpx.Response(200, json={"daily_searches": [{"query": "only one", "searches": "1K+"}]})

    topics, source = fetch_trends(handler, "US", 3)

    assert_ranked(topics, 3)
    assert topics[0].keyword == "only one"
    assert topics[0].is_real
    assert not topics[1].is_real and not topics[2].is_real
    assert source.label_for(topics[1]) == "Mock Trends"


def test_rising_queries_fallback_endpoint():
    """daily_searches 為空時改用 related_queries.rising"""
    def handler(request):
        if request.url.params["engine"] == "google_trends_trending_now":
            return httpx.Response(200, json={"daily_searches": []})
        return httpx.Response(200, json={
            "related_queries": {"rising": [
                {"query": "rising one", "value": "+250%", "extracted_value": 250},
                {"query": "rising two", "value": "Breakout"},
            ]}
        })

    topics, source = fetch_trends(handler, "JP", 2)

    assert [t.keyword for t in topics] == ["rising one", "rising two"]
    assert all(t.is_real for t in topics)
    assert source.provider_calls == 2


def test_quota_exceeded_disables_provider():
    config = make_config()

    def handler(request):
        return httpx.Response(429, json={"error": "quota"})

    async def _run():
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            provider = SerpApiTrendProvider(config, client)
            source = TrendSource([provider])
            first = await source.get_trends("US", 2)
            second = await source.get_trends("US", 2)
            return provider, first, second

    provider, first, second = asyncio.run(_run())

    assert provider.quota_remaining == 0
    assert not provider.is_available()
    assert provider.calls == 1
    assert_ranked(first, 2)
    assert_ranked(second, 2)


def test_provider_exception_never_propagates():
    class ExplodingProvider(TrendProvider):
        name = "exploding"

        async def try_fetch(self, country_code, count):
            raise RuntimeError("boom")

    source = TrendSource([ExplodingProvider()], mock=MockTrendProvider(rng=random.Random(3)))

    topics = asyncio.run(source.get_trends("ES", 5))

    assert_ranked(topics, 5)


def test_zero_count():
    topics, _ = fetch_trends(lambda request: httpx.Response(500), "US", 0)

    assert topics == []

"""
Trend Collector

依設定順序嘗試各 TrendProvider，第一個回傳結果者勝出；全部失敗或未設定時，
以內建主題目錄隨機合成 mock topics。get_trends() 永不拋出例外，且一定回傳 count 筆。
"""

import random
import re
from typing import Any, Dict, List, Optional
import logging

import httpx

from news_ninja.config import TrendsConfig
from news_ninja.models import Topic

logger = logging.getLogger(__name__)


MOCK_TOPIC_CATALOG: Dict[str, List[str]] = {
    "tech": [
        "artificial intelligence", "ChatGPT updates", "new smartphone releases",
        "machine learning trends", "quantum computing news", "cybersecurity threats",
        "5G technology", "blockchain applications", "metaverse development",
        "cloud computing trends", "edge computing", "IoT devices",
    ],
    "news": [
        "world news today", "breaking news", "election coverage",
        "economy news", "inflation rates", "stock market trends",
        "climate change news", "international relations", "global events",
    ],
    "business": [
        "startup funding", "cryptocurrency news", "Bitcoin price",
        "real estate market", "investment opportunities", "business trends",
        "remote work", "digital transformation", "sustainable business",
    ],
    "lifestyle": [
        "healthy recipes", "fitness trends", "yoga benefits",
        "mental health", "work life balance", "productivity tips",
        "sustainable living", "minimalism", "wellness trends",
    ],
    "entertainment": [
        "new movie releases", "streaming shows", "Netflix series",
        "music festivals", "celebrity news", "gaming news",
        "esports tournaments", "viral videos", "social media trends",
    ],
    "sports": [
        "champions league", "world cup", "formula 1",
        "olympic games", "tennis tournaments", "football news",
        "basketball scores", "sports betting", "fitness competitions",
    ],
    "travel": [
        "travel destinations", "budget travel", "luxury hotels",
        "backpacking tips", "cruise vacations", "adventure travel",
        "eco tourism", "digital nomad", "travel insurance",
    ],
    "food": [
        "vegan recipes", "meal prep ideas", "cooking trends",
        "restaurant reviews", "food delivery", "healthy eating",
        "international cuisine", "baking recipes", "food photography",
    ],
}


def all_mock_keywords() -> List[str]:
    return [kw for keywords in MOCK_TOPIC_CATALOG.values() for kw in keywords]


def parse_search_volume(value: Any, default: int = 10000) -> int:
    """
    解析搜尋量 ("200K+", "1M+", "2,000+", 5000)

    Args:
        value: provider 回傳的搜尋量
        default: 無法解析時的預設值

    Returns:
        整數搜尋量
    """
    if value is None:
        return default
    if isinstance(value, (int, float)):
        return int(value)

    text = str(value).strip().upper().replace(",", "")
    match = re.match(r"(\d+(?:\.\d+)?)\s*([KM]?)", text)
    if not match:
        return default

    number = float(match.group(1))
    multiplier = {"K": 1_000, "M": 1_000_000}.get(match.group(2), 1)
    return int(number * multiplier)


class TrendProvider:
    """
    Trend provider 策略介面

    try_fetch() 回傳 None 表示「沒有結果」(未設定、錯誤、空回應)，不拋出例外。
    """

    name = "base"

    def __init__(self):
        self.calls = 0
        self.quota_remaining: Optional[int] = None

    def is_available(self) -> bool:
        return True

    async def try_fetch(self, country_code: str, count: int) -> Optional[List[Dict[str, Any]]]:
        raise NotImplementedError


class SerpApiTrendProvider(TrendProvider):
    """Google Trends via SerpAPI（需要 API key，有每月額度）"""

    name = "serpapi"
    label = "SerpAPI Google Trends"

    def __init__(self, config: TrendsConfig, client: httpx.AsyncClient, rng: Optional[random.Random] = None):
        super().__init__()
        self.config = config
        self.client = client
        self.rng = rng or random.Random()
        self.quota_remaining = config.monthly_quota

    def is_available(self) -> bool:
        return bool(
            self.config.use_real_trends
            and self.config.serpapi_key
            and (self.quota_remaining or 0) > 0
        )

    async def _query(self, params: Dict[str, Any]) -> Dict[str, Any]:
        self.calls += 1
        response = await self.client.get(
            self.config.serpapi_url,
            params={**params, "api_key": self.config.serpapi_key},
            timeout=self.config.timeout_seconds,
        )
        response.raise_for_status()
        return response.json()

    def _map_entries(self, entries: List[Dict[str, Any]], volume_keys: List[str]) -> List[Dict[str, Any]]:
        trends = []
        for entry in entries[:self.config.max_candidates]:
            keyword = (entry.get("query") or "").strip()
            if not keyword:
                continue

            volume = None
            for key in volume_keys:
                if entry.get(key) is not None:
                    volume = entry[key]
                    break

            growth = entry.get("increase_percentage")
            trends.append({
                "keyword": keyword,
                "searches": parse_search_volume(volume),
                # Trending-now 不一定附成長率
                "growth_rate": float(growth) if growth is not None else float(self.rng.randrange(50, 150)),
            })
        return trends

    async def try_fetch(self, country_code: str, count: int) -> Optional[List[Dict[str, Any]]]:
        logger.info(f"Fetching real trends for {country_code} via SerpAPI...")

        try:
            data = await self._query({
                "engine": "google_trends_trending_now",
                "frequency": "daily",
                "geo": country_code,
            })
            entries = data.get("daily_searches") or data.get("trending_searches") or []
            trends = self._map_entries(entries, ["searches", "search_volume"])

            if not trends:
                logger.info("Trying alternative SerpAPI endpoint (related rising queries)...")
                data = await self._query({
                    "engine": "google_trends",
                    "q": "trending",
                    "geo": country_code,
                })
                rising = (data.get("related_queries") or {}).get("rising") or []
                trends = self._map_entries(rising, ["value", "extracted_value"])

        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            if status == 401:
                logger.error("SerpAPI: invalid API key")
            elif status == 429:
                logger.error("SerpAPI: quota exceeded")
                self.quota_remaining = 0
            else:
                logger.warning(f"SerpAPI error: HTTP {status}")
            return None
        except (httpx.HTTPError, ValueError, KeyError, TypeError, AttributeError) as e:
            logger.warning(f"SerpAPI error: {e}")
            return None

        if not trends:
            logger.warning(f"No trends found via SerpAPI for {country_code}")
            return None

        self.quota_remaining -= 1
        logger.info(f"✓ Found {len(trends)} real trends for {country_code} "
                    f"(quota: {self.quota_remaining}/{self.config.monthly_quota})")
        return trends


class MockTrendProvider(TrendProvider):
    """內建主題目錄的隨機合成（永遠可用，isReal=False）"""

    name = "mock"
    label = "Mock Trends"

    def __init__(self, rng: Optional[random.Random] = None, catalog: Optional[List[str]] = None):
        super().__init__()
        self.rng = rng or random.Random()
        self.catalog = list(catalog) if catalog else all_mock_keywords()

    def synthesize(
        self,
        country_code: str,
        count: int,
        start_rank: int = 1,
        exclude: Optional[set] = None
    ) -> List[Topic]:
        """
        合成 count 筆 mock topics

        目錄經無偏洗牌後取前 count 筆；count 超過目錄大小時，以輪次編號延伸關鍵字。

        Args:
            country_code: 國家代碼
            count: 筆數
            start_rank: 起始排名
            exclude: 已使用的關鍵字 (小寫)

        Returns:
            List of Topic
        """
        exclude = exclude or set()
        candidates = [kw for kw in self.catalog if kw.lower() not in exclude]
        round_no = 1
        if not candidates:
            candidates = list(self.catalog)
            round_no = 2

        keywords: List[str] = []
        while len(keywords) < count and candidates:
            shuffled = list(candidates)
            self.rng.shuffle(shuffled)
            suffix = "" if round_no == 1 else f" {round_no}"
            keywords.extend(f"{kw}{suffix}" for kw in shuffled[:count - len(keywords)])
            round_no += 1

        return [
            Topic(
                keyword=keyword,
                source_country=country_code,
                rank=start_rank + i,
                popularity_score=float(self.rng.randrange(500, 1500)),
                growth_rate=float(self.rng.randrange(20, 100)),
                is_real=False,
            )
            for i, keyword in enumerate(keywords)
        ]


class TrendSource:
    """
    依序嘗試 providers，全部失敗時回退到 mock
    """

    def __init__(self, providers: List[TrendProvider], mock: Optional[MockTrendProvider] = None):
        self.providers = [p for p in providers if not isinstance(p, MockTrendProvider)]
        self.mock = mock or MockTrendProvider()
        self.last_provider: Optional[str] = None

    @property
    def provider_calls(self) -> int:
        return sum(p.calls for p in self.providers)

    @property
    def quota_remaining(self) -> Optional[int]:
        quotas = [p.quota_remaining for p in self.providers if p.quota_remaining is not None]
        return min(quotas) if quotas else None

    def label_for(self, topic: Topic) -> str:
        """來源標籤 (寫入 article.sources)"""
        if not topic.is_real:
            return MockTrendProvider.label
        for provider in self.providers:
            if provider.name == self.last_provider:
                return getattr(provider, "label", provider.name)
        return "Trends API"

    async def get_trends(self, country_code: str, count: int) -> List[Topic]:
        """
        取得 country_code 的 count 筆 topics（永不拋出例外）

        Args:
            country_code: 國家代碼
            count: 筆數

        Returns:
            排名 1..count 的 Topic 清單
        """
        if count <= 0:
            return []

        for provider in self.providers:
            if not provider.is_available():
                logger.debug(f"Trend provider {provider.name} not available, skipping")
                continue

            try:
                raw = await provider.try_fetch(country_code, count)
            except Exception as e:
                logger.error(f"Trend provider {provider.name} failed for {country_code}: {e}")
                continue

            if not raw:
                continue

            topics = [
                Topic(
                    keyword=item["keyword"],
                    source_country=country_code,
                    rank=i + 1,
                    popularity_score=float(item.get("searches") or 0),
                    growth_rate=float(item.get("growth_rate") or 0),
                    is_real=True,
                )
                for i, item in enumerate(raw[:count])
            ]

            if len(topics) < count:
                logger.warning(f"{provider.name} returned {len(topics)}/{count} trends for "
                               f"{country_code}, filling the rest with mock topics")
                used = {t.keyword.lower() for t in topics}
                topics.extend(self.mock.synthesize(
                    country_code,
                    count - len(topics),
                    start_rank=len(topics) + 1,
                    exclude=used
                ))

            self.last_provider = provider.name
            return topics

        logger.warning(f"Using mock trends for {country_code}")
        self.last_provider = self.mock.name
        return self.mock.synthesize(country_code, count)


def build_trend_source(
    config: TrendsConfig,
    client: httpx.AsyncClient,
    rng: Optional[random.Random] = None
) -> TrendSource:
    """依 config.providers 順序建立 TrendSource"""
    registry = {
        "serpapi": lambda: SerpApiTrendProvider(config, client, rng=rng),
    }

    providers: List[TrendProvider] = []
    for name in config.providers:
        if name == "mock":
            continue
        factory = registry.get(name)
        if factory is None:
            logger.warning(f"Unknown trend provider '{name}', ignoring")
            continue
        providers.append(factory())

    return TrendSource(providers, mock=MockTrendProvider(rng=rng))

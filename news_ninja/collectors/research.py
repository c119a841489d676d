"""
Research Collector

依設定順序嘗試 search providers（結構化 API 優先，HTML 爬取其次），每次嘗試皆有 timeout，
錯誤一律降級為「沒有結果」。所有 provider 都沒有結果時，回傳帶有一段通用文字的
fallback context，確保文章生成永遠有非空的背景資料。
"""

from typing import List, Optional
import logging

import httpx
from bs4 import BeautifulSoup

from news_ninja.config import SearchConfig
from news_ninja.models import ResearchContext, Snippet
from news_ninja.utils.countries import search_region

logger = logging.getLogger(__name__)

FALLBACK_TEMPLATE = (
    "General information about {query}. This is a trending topic with growing interest "
    "globally. Recent developments show increased attention from industry experts and "
    "the general public."
)

USER_AGENT = "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36"

MIN_SNIPPET_LENGTH = 20


class SearchProvider:
    """
    Search provider 策略介面

    try_fetch() 回傳 None 表示沒有可用結果。
    """

    name = "base"
    label = "Web Search"

    def is_available(self) -> bool:
        return True

    async def try_fetch(self, query: str, language: str) -> Optional[List[Snippet]]:
        raise NotImplementedError


class GoogleSearchProvider(SearchProvider):
    """Google Custom Search JSON API（需要 API key + engine id）"""

    name = "google"
    label = "Google Search"

    def __init__(self, config: SearchConfig, client: httpx.AsyncClient):
        self.config = config
        self.client = client

    def is_available(self) -> bool:
        return bool(self.config.google_api_key and self.config.google_cx)

    async def try_fetch(self, query: str, language: str) -> Optional[List[Snippet]]:
        logger.info(f"Google Search: \"{query}\" ({language})")

        try:
            response = await self.client.get(
                self.config.google_url,
                params={
                    "key": self.config.google_api_key,
                    "cx": self.config.google_cx,
                    "q": query,
                    "num": min(self.config.max_results, 10),
                    "lr": f"lang_{language}",
                    "dateRestrict": "w2",  # 最近兩週
                },
                timeout=self.config.timeout_seconds,
            )
            response.raise_for_status()
            items = response.json().get("items") or []
        except httpx.HTTPStatusError as e:
            if e.response.status_code == 429:
                logger.warning("Google Search quota exceeded")
            else:
                logger.warning(f"Google Search error: HTTP {e.response.status_code}")
            return None
        except (httpx.HTTPError, ValueError, AttributeError) as e:
            logger.warning(f"Google Search error: {e}")
            return None

        snippets = [
            Snippet(title=(item.get("title") or "").strip(), body=(item.get("snippet") or "").strip())
            for item in items
            if (item.get("snippet") or "").strip()
        ]
        return snippets or None


class DuckDuckGoProvider(SearchProvider):
    """DuckDuckGo HTML 版（免 key，靠 HTML 結構擷取，較脆弱）"""

    name = "duckduckgo"
    label = "DuckDuckGo"

    def __init__(self, config: SearchConfig, client: httpx.AsyncClient):
        self.config = config
        self.client = client

    def is_available(self) -> bool:
        return self.config.duckduckgo_enabled

    async def try_fetch(self, query: str, language: str) -> Optional[List[Snippet]]:
        logger.info(f"DuckDuckGo search: \"{query}\" ({language})")

        try:
            response = await self.client.get(
                self.config.duckduckgo_url,
                params={"q": query, "kl": search_region(language)},
                headers={"User-Agent": USER_AGENT},
                timeout=self.config.timeout_seconds,
            )
            response.raise_for_status()
        except httpx.HTTPError as e:
            logger.warning(f"DuckDuckGo search error: {e}")
            return None

        snippets = parse_duckduckgo_html(response.text, self.config.max_results)
        return snippets or None


def parse_duckduckgo_html(html: str, max_results: int = 5) -> List[Snippet]:
    """
    從 DuckDuckGo HTML 結果頁擷取 snippets

    Args:
        html: 結果頁 HTML
        max_results: 最多筆數

    Returns:
        List of Snippet (body 少於 20 字元者捨棄)
    """
    soup = BeautifulSoup(html, "html.parser")
    snippets: List[Snippet] = []

    for node in soup.select(".result__snippet"):
        body = node.get_text(" ", strip=True)
        if len(body) <= MIN_SNIPPET_LENGTH:
            continue

        container = node.find_parent(class_="result")
        title_node = container.select_one(".result__a") if container else None
        title = title_node.get_text(" ", strip=True) if title_node else ""

        snippets.append(Snippet(title=title or f"Search Result {len(snippets) + 1}", body=body))
        if len(snippets) >= max_results:
            break

    return snippets


class ResearchSource:
    """依序嘗試 search providers，全部失敗時回傳 fallback context"""

    def __init__(self, providers: List[SearchProvider], max_snippets: int = 5):
        self.providers = providers
        self.max_snippets = max_snippets

    async def search(self, query: str, language: str = "en") -> ResearchContext:
        """
        搜尋 query 的背景資料（永不拋出例外）

        Args:
            query: 主題關鍵字
            language: 語言代碼

        Returns:
            ResearchContext
        """
        for provider in self.providers:
            if not provider.is_available():
                continue

            try:
                snippets = await provider.try_fetch(query, language)
            except Exception as e:
                logger.error(f"Search provider {provider.name} failed for \"{query}\": {e}")
                continue

            if snippets:
                snippets = snippets[:self.max_snippets]
                logger.info(f"✓ {provider.name}: {len(snippets)} results for \"{query}\"")
                return ResearchContext(
                    topic=query,
                    language=language,
                    snippets=snippets,
                    is_fallback=False,
                    provider=provider.name,
                )

        logger.warning(f"No search results for \"{query}\", using general knowledge fallback")
        return fallback_context(query, language)

    def label_for(self, context: ResearchContext) -> Optional[str]:
        """來源標籤 (fallback context 沒有標籤)"""
        if context.is_fallback:
            return None
        for provider in self.providers:
            if provider.name == context.provider:
                return provider.label
        return SearchProvider.label


def fallback_context(query: str, language: str = "en") -> ResearchContext:
    return ResearchContext(
        topic=query,
        language=language,
        snippets=[Snippet(title=query, body=FALLBACK_TEMPLATE.format(query=query))],
        is_fallback=True,
    )


def build_research_source(config: SearchConfig, client: httpx.AsyncClient) -> ResearchSource:
    """依 config.providers 順序建立 ResearchSource"""
    registry = {
        "google": GoogleSearchProvider,
        "duckduckgo": DuckDuckGoProvider,
    }

    providers: List[SearchProvider] = []
    for name in config.providers:
        provider_cls = registry.get(name)
        if provider_cls is None:
            logger.warning(f"Unknown search provider '{name}', ignoring")
            continue
        providers.append(provider_cls(config, client))

    return ResearchSource(providers, max_snippets=config.max_results)

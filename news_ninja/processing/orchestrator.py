"""
Pipeline Orchestrator

依序處理每個國家、每個 topic：
    TrendSource -> ResearchSource -> ArticleGenerator -> Persistence

單一 topic / 國家的失敗只會記錄在 RunStatistics，不會中止整個 run。
每個工作單位之間固定暫停，避免觸發第三方服務的 rate limit。
"""

import asyncio
import uuid
from datetime import datetime
from enum import Enum
from typing import Awaitable, Callable, Dict, List, Optional, Tuple
import logging

import httpx

from news_ninja.collectors.research import ResearchSource, build_research_source
from news_ninja.collectors.trends import TrendSource, build_trend_source
from news_ninja.config import NewsNinjaConfig, PipelineRunConfig
from news_ninja.generation.article import ArticleGenerator
from news_ninja.generation.ollama import OllamaClient
from news_ninja.models import Article, ArticleRecord, ArticleStatus, RunStatistics, Topic
from news_ninja.utils.countries import language_for_country, select_countries
from news_ninja.utils.time import analysis_date, format_duration, utcnow

logger = logging.getLogger(__name__)

AI_LABEL = "AI Generated"
CUSTOM_LABEL = "Custom Topic"


class RunState(str, Enum):
    IDLE = "idle"
    SELECTING_COUNTRIES = "selecting_countries"
    FETCHING_TRENDS = "fetching_trends"
    RESEARCHING = "researching"
    GENERATING = "generating"
    SAVING = "saving"
    COMPLETE = "complete"


def new_run_id(now: Optional[datetime] = None) -> str:
    """run_<timestamp>_<hex8>"""
    timestamp = (now or datetime.now()).strftime("%Y%m%d_%H%M%S")
    return f"run_{timestamp}_{uuid.uuid4().hex[:8]}"


class PipelineOrchestrator:
    """
    趨勢 -> 研究 -> 生成 -> 儲存 的循序 pipeline

    每次 run() 建立自己的 RunStatistics 並在結束時回傳，orchestrator 本身不保留跨 run 的計數。
    """

    def __init__(
        self,
        trend_source: TrendSource,
        research_source: ResearchSource,
        generator: ArticleGenerator,
        store,
        config: Optional[PipelineRunConfig] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep
    ):
        """
        初始化 PipelineOrchestrator

        Args:
            trend_source: 趨勢來源
            research_source: 搜尋來源
            generator: 文章生成器
            store: PostgresStore 或 FileStore
            config: 節奏設定
            sleep: 暫停函式 (測試可替換)
        """
        self.trend_source = trend_source
        self.research_source = research_source
        self.generator = generator
        self.store = store
        self.config = config or PipelineRunConfig()
        self.sleep = sleep
        self.state = RunState.IDLE
        # run_id -> provider 累計呼叫數 (run 開始時)
        self._call_baselines: Dict[str, int] = {}

    def _new_stats(self) -> RunStatistics:
        stats = RunStatistics(run_id=new_run_id(), started_at=utcnow())
        self._call_baselines[stats.run_id] = self.trend_source.provider_calls
        return stats

    def _finish(self, stats: RunStatistics) -> RunStatistics:
        stats.finished_at = utcnow()
        stats.duration_seconds = (stats.finished_at - stats.started_at).total_seconds()
        baseline = self._call_baselines.pop(stats.run_id, 0)
        stats.trend_provider_calls = self.trend_source.provider_calls - baseline
        stats.trend_quota_remaining = self.trend_source.quota_remaining
        self.state = RunState.COMPLETE
        return stats

    async def _pause(self, seconds: float):
        if seconds > 0:
            await self.sleep(seconds)

    async def run(self, country_count: int, topics_per_country: int) -> RunStatistics:
        """
        執行一次完整 pipeline

        Args:
            country_count: 處理的國家數
            topics_per_country: 每個國家的 topic 數

        Returns:
            RunStatistics
        """
        stats = self._new_stats()
        logger.info(f"Run ID: {stats.run_id}")

        self.state = RunState.SELECTING_COUNTRIES
        countries = select_countries(country_count, self.config.country_codes)
        logger.info(f"Processing {len(countries)} countries x {topics_per_country} topics")

        for c_idx, country in enumerate(countries):
            logger.info("=" * 40)
            logger.info(f"[{c_idx + 1}/{len(countries)}] {country.name} ({country.code})")
            logger.info("=" * 40)

            try:
                await self._process_country(country.code, country.name, topics_per_country, stats)
                stats.countries_processed += 1
            except Exception as e:
                logger.error(f"Country {country.code} failed: {e}")
                stats.countries_failed += 1

            if c_idx < len(countries) - 1:
                await self._pause(self.config.country_delay_seconds)

        stats = self._finish(stats)
        logger.info(f"✓ Run {stats.run_id} complete in {format_duration(stats.duration_seconds)}: "
                    f"{stats.articles_succeeded} articles, {stats.articles_failed} failed")
        return stats

    async def _process_country(
        self,
        country_code: str,
        country_name: str,
        topics_per_country: int,
        stats: RunStatistics
    ):
        self.state = RunState.FETCHING_TRENDS
        topics = await self.trend_source.get_trends(country_code, topics_per_country)

        real = sum(1 for t in topics if t.is_real)
        stats.trends_real += real
        stats.trends_mock += len(topics) - real
        logger.info(f"✓ {len(topics)} topics for {country_code} ({real} real, {len(topics) - real} mock)")

        if self.config.save_trend_snapshots:
            await self._save_snapshot(country_code, country_name, topics, stats)

        await self._process_topics(topics, country_code, country_name, stats)

    async def _save_snapshot(self, country_code: str, country_name: str, topics: List[Topic], stats: RunStatistics):
        try:
            saved = await asyncio.to_thread(
                self.store.save_trend_snapshot,
                country_code,
                country_name,
                topics,
                analysis_date(self.config.run_timezone)
            )
            stats.snapshots_saved += saved
        except Exception as e:
            logger.error(f"Failed to save trend snapshot for {country_code}: {e}")
            stats.snapshots_failed += 1

    async def _process_topics(
        self,
        topics: List[Topic],
        country_code: str,
        country_name: str,
        stats: RunStatistics,
        trend_label: Optional[str] = None
    ) -> List[int]:
        language = language_for_country(country_code)
        saved_ids = []

        for t_idx, topic in enumerate(topics):
            logger.info(f"Topic {t_idx + 1}/{len(topics)}: \"{topic.keyword}\" (rank {topic.rank})")
            article_id = await self._process_topic(
                topic, country_code, country_name, language, stats, trend_label
            )
            if article_id is not None:
                saved_ids.append(article_id)

            if t_idx < len(topics) - 1:
                await self._pause(self.config.topic_delay_seconds)

        return saved_ids

    async def _process_topic(
        self,
        topic: Topic,
        country_code: str,
        country_name: str,
        language: str,
        stats: RunStatistics,
        trend_label: Optional[str] = None
    ) -> Optional[int]:
        """Research -> Generate -> Save；失敗記錄為 failed article 並回傳 None"""
        stats.topics_attempted += 1

        self.state = RunState.RESEARCHING
        context = await self.research_source.search(topic.keyword, language)
        if context.is_fallback:
            stats.searches_failed += 1
        else:
            stats.searches_succeeded += 1

        await self._pause(self.config.research_delay_seconds)

        try:
            self.state = RunState.GENERATING
            generated = await self.generator.generate(topic, context, language, country_name)

            self.state = RunState.SAVING
            record = ArticleRecord(
                title=generated.title,
                summary=generated.summary,
                content=generated.body,
                country_code=country_code,
                country_name=country_name,
                language=language,
                trend_keyword=topic.keyword,
                trend_rank=topic.rank,
                search_queries=[topic.keyword],
                sources=self._source_labels(topic, context, trend_label),
                status=ArticleStatus.PUBLISHED,
            )
            article_id = await asyncio.to_thread(self.store.save_article, record)
        except Exception as e:
            logger.error(f"✗ Article for \"{topic.keyword}\" ({country_code}) failed: {e}")
            stats.articles_failed += 1
            return None

        stats.articles_succeeded += 1
        stats.article_ids.append(article_id)
        logger.info(f"✓ Saved article {article_id}: {generated.title[:60]}")
        return article_id

    def _source_labels(self, topic: Topic, context, trend_label: Optional[str] = None) -> List[str]:
        labels = [trend_label or self.trend_source.label_for(topic)]
        if topic.is_real or trend_label:
            research_label = self.research_source.label_for(context)
            if research_label:
                labels.append(research_label)
        labels.append(AI_LABEL)
        return labels

    async def generate_for_topics(
        self,
        topics: List[Topic],
        country_code: str,
        country_name: str
    ) -> Tuple[List[Article], RunStatistics]:
        """
        為呼叫端提供的 topics 生成文章（REST 自訂生成）

        Args:
            topics: 主題清單 (排名 1..n)
            country_code: 國家代碼
            country_name: 國家名稱

        Returns:
            (已儲存的文章, RunStatistics)
        """
        stats = self._new_stats()
        saved_ids = await self._process_topics(
            topics, country_code, country_name, stats, trend_label=CUSTOM_LABEL
        )
        stats.countries_processed = 1

        articles = []
        for article_id in saved_ids:
            article = await asyncio.to_thread(self.store.get_by_id, article_id)
            if article is not None:
                articles.append(article)
        return articles, self._finish(stats)


def build_orchestrator(
    config: NewsNinjaConfig,
    store,
    client: httpx.AsyncClient,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep
) -> PipelineOrchestrator:
    """以設定組出完整 pipeline (所有 provider 共用同一個 httpx client)"""
    return PipelineOrchestrator(
        trend_source=build_trend_source(config.trends, client),
        research_source=build_research_source(config.search, client),
        generator=ArticleGenerator(OllamaClient(config.ollama, client)),
        store=store,
        config=config.pipeline,
        sleep=sleep,
    )

"""
Core data models for the News Ninja pipeline

Topic -> ResearchContext -> GeneratedArticle -> ArticleRecord 是 pipeline 的核心契約；
Article / TrendSnapshot / ViewEvent 對應儲存層的資料列；RunStatistics 由每次 run 擁有並回傳。
"""

from datetime import date, datetime
from enum import Enum
from typing import Optional, List, Dict, Any
from pydantic import BaseModel, Field, field_validator


class Topic(BaseModel):
    """
    單一熱門主題 (每次 run 重新產生)
    """
    keyword: str = Field(..., description="主題關鍵字")
    source_country: str = Field(..., description="來源國家代碼")
    rank: int = Field(..., ge=1, description="排名 (1 起算)")
    popularity_score: float = Field(..., description="熱度 (搜尋量 / 訪客數)")
    growth_rate: float = Field(..., description="成長率 (%)，可為負")
    is_real: bool = Field(default=False, description="是否來自真實 trends provider")


class Snippet(BaseModel):
    """搜尋結果片段"""
    title: str
    body: str


class ResearchContext(BaseModel):
    """
    Web research 結果 (不落地)

    只有 text 會被嵌入 prompt。
    """
    topic: str = Field(..., description="搜尋的主題")
    language: str = Field(default="en", description="語言代碼")
    snippets: List[Snippet] = Field(default_factory=list, description="依序排列的片段 (最多 5 筆)")
    is_fallback: bool = Field(default=False, description="是否為預設文字")
    provider: Optional[str] = Field(None, description="提供結果的 search provider")

    @property
    def text(self) -> str:
        """[Source i] <title>\\n<body> 區塊，以空行分隔"""
        return "\n\n".join(
            f"[Source {i}] {snippet.title}\n{snippet.body}"
            for i, snippet in enumerate(self.snippets, 1)
        )


class GeneratedArticle(BaseModel):
    """LLM 輸出解析後的文章 (title / body 永不為空)"""
    title: str
    summary: str = ""
    body: str


class ArticleStatus(str, Enum):
    DRAFT = "draft"
    PUBLISHED = "published"


class ArticleRecord(BaseModel):
    """待寫入 articles 表的一筆資料"""
    title: str = Field(..., min_length=1)
    summary: str = ""
    content: str = Field(..., min_length=1)
    country_code: str
    country_name: str
    language: str
    trend_keyword: str
    trend_rank: int = Field(..., ge=1)
    search_queries: List[str] = Field(default_factory=list)
    sources: List[str] = Field(default_factory=list)
    status: ArticleStatus = ArticleStatus.PUBLISHED


class Article(ArticleRecord):
    """articles 表中的一筆資料 (欄位名稱即 REST 回傳的 JSON 鍵)"""
    id: int
    views: int = Field(default=0, ge=0)
    published_at: datetime
    created_at: Optional[datetime] = None

    @field_validator("search_queries", "sources", mode="before")
    @classmethod
    def _none_to_list(cls, value):
        return value or []

    def to_api(self) -> Dict[str, Any]:
        return self.model_dump(mode="json")


class TrendSnapshot(BaseModel):
    """trends 表的一筆資料，(country_code, keyword, analyzed_date) 唯一"""
    country_code: str
    country_name: str
    keyword: str
    rank: int
    visitors: float
    growth_rate: float
    analyzed_date: date


class ViewEvent(BaseModel):
    """article_views 表的一筆資料 (append-only)"""
    article_id: int
    viewer_country: str = "Unknown"
    viewer_country_code: str = "XX"
    viewed_at: datetime


class RunStatistics(BaseModel):
    """
    單次 pipeline run 的統計

    由 orchestrator 建立、累加並在結束時回傳，不使用模組層級的可變狀態。
    """
    run_id: str
    started_at: datetime
    finished_at: Optional[datetime] = None
    duration_seconds: float = 0.0

    countries_processed: int = 0
    countries_failed: int = 0
    topics_attempted: int = 0
    articles_succeeded: int = 0
    articles_failed: int = 0
    searches_succeeded: int = 0
    searches_failed: int = 0
    trends_real: int = 0
    trends_mock: int = 0
    trend_provider_calls: int = 0
    trend_quota_remaining: Optional[int] = None
    snapshots_saved: int = 0
    snapshots_failed: int = 0

    article_ids: List[int] = Field(default_factory=list)

    class Config:
        json_schema_extra = {
            "example": {
                "run_id": "run_20260213_110000_ab12cd34",
                "started_at": "2026-02-13T11:00:00Z",
                "finished_at": "2026-02-13T11:04:10Z",
                "duration_seconds": 250.0,
                "countries_processed": 2,
                "topics_attempted": 4,
                "articles_succeeded": 4,
                "articles_failed": 0,
                "searches_succeeded": 3,
                "searches_failed": 1,
                "trends_real": 2,
                "trends_mock": 2,
                "trend_provider_calls": 2,
                "trend_quota_remaining": 98,
                "article_ids": [101, 102, 103, 104]
            }
        }
